"""Tests for table pagination."""

import pytest

from errors import InvalidInputError
from paginator import estimate_cell_height, estimate_row_height, page_height, paginate

WIDTHS = [50, 50, 75, 250, 75, 180]
HEADER = ["ID", "Area", "Status", "Recommendation", "Done", "Notes"]


def _row(text: str = "x") -> list:
    """A row whose tallest cell is the recommendation column."""
    return ["1", "UX", "Open", text, "No", ""]


def _rows_of_height(height_lines: list[int]) -> list[list]:
    """Rows whose height is n lines of 10pt: 25 characters per line at width 250."""
    return [_row("a" * (25 * n)) for n in height_lines]


class TestEstimates:
    def test_cell_height(self):
        # 30 chars * 10 / 50 = 6 -> 6 lines * 10pt
        assert estimate_cell_height(30, 50, 10) == 60

    def test_cell_height_rounds_up(self):
        assert estimate_cell_height(26, 250, 10) == 20

    def test_empty_cell_has_no_height(self):
        assert estimate_cell_height(0, 50, 10) == 0

    def test_row_height_is_tallest_cell(self):
        row = ["1", "UX", "Open", "a" * 100, "No", ""]
        assert estimate_row_height(row, WIDTHS, 10) == 40

    def test_row_height_handles_numbers_and_none(self):
        row = [12345, None, "", "", "", ""]
        assert estimate_row_height(row, WIDTHS, 10) == 10


class TestPaginate:
    def test_all_rows_fit_on_one_page(self):
        rows = _rows_of_height([1, 1, 1])
        pages = paginate(HEADER, rows, WIDTHS, 10, 175)
        assert pages == [[HEADER] + rows]

    def test_overflow_starts_a_new_page(self):
        # 5 rows: rows 1-3 fit (150pt), row 4 pushes past 175, row 5 fits after the reset
        rows = _rows_of_height([5, 5, 5, 5, 5])
        pages = paginate(HEADER, rows, WIDTHS, 10, 175)
        assert pages == [[HEADER] + rows[:3], [HEADER] + rows[3:]]

    def test_header_repeated_on_every_page(self):
        rows = _rows_of_height([10] * 6)
        pages = paginate(HEADER, rows, WIDTHS, 10, 175)
        assert len(pages) == 6
        assert all(page[0] == HEADER for page in pages)

    def test_rows_preserved_in_order(self):
        rows = _rows_of_height([3, 7, 1, 9, 2, 4, 8, 1, 1, 6, 5])
        for i, row in enumerate(rows):
            row[0] = str(i)
        pages = paginate(HEADER, rows, WIDTHS, 10, 175)
        flattened = [row for page in pages for row in page[1:]]
        assert flattened == rows

    def test_pages_respect_max_height(self):
        rows = _rows_of_height([3, 7, 1, 9, 2, 4, 8, 1, 1, 6, 5, 17])
        pages = paginate(HEADER, rows, WIDTHS, 10, 175)
        for page in pages:
            assert page_height(page, WIDTHS, 10) <= 175

    def test_exact_fit_stays_on_page(self):
        rows = _rows_of_height([10, 7, 1])
        pages = paginate(HEADER, rows, WIDTHS, 10, 170)
        assert pages == [[HEADER] + rows[:2], [HEADER] + rows[2:]]

    def test_single_oversized_row_gets_one_page(self):
        rows = [_row("a" * 1000)]
        pages = paginate(HEADER, rows, WIDTHS, 10, 175)
        assert pages == [[HEADER] + rows]

    def test_oversized_row_in_the_middle_is_alone(self):
        rows = _rows_of_height([2, 30, 2])
        pages = paginate(HEADER, rows, WIDTHS, 10, 175)
        assert [len(p) - 1 for p in pages] == [1, 1, 1]
        assert pages[1][1] == rows[1]

    def test_idempotent(self):
        rows = _rows_of_height([3, 7, 1, 9, 2, 4, 8])
        assert paginate(HEADER, rows, WIDTHS, 10, 175) == paginate(HEADER, rows, WIDTHS, 10, 175)

    def test_inputs_not_mutated(self):
        rows = _rows_of_height([9, 9, 9])
        snapshot = [list(r) for r in rows]
        paginate(HEADER, rows, WIDTHS, 10, 175)
        assert rows == snapshot


class TestPaginateErrors:
    def test_empty_rows(self):
        with pytest.raises(InvalidInputError):
            paginate(HEADER, [], WIDTHS, 10, 175)

    def test_row_width_mismatch(self):
        rows = [_row(), ["too", "short"]]
        with pytest.raises(InvalidInputError, match="Row 2 has 2 columns, expected 6"):
            paginate(HEADER, rows, WIDTHS, 10, 175)

    def test_header_width_mismatch(self):
        with pytest.raises(InvalidInputError, match="Header"):
            paginate(HEADER[:5], [_row()], WIDTHS, 10, 175)

    def test_non_positive_width(self):
        with pytest.raises(InvalidInputError):
            paginate(HEADER, [_row()], [50, 0, 75, 250, 75, 180], 10, 175)

    @pytest.mark.parametrize("line_height, max_height", [(0, 175), (10, 0), (-1, 175)])
    def test_non_positive_sizes(self, line_height, max_height):
        with pytest.raises(InvalidInputError):
            paginate(HEADER, [_row()], WIDTHS, line_height, max_height)

    def test_invalid_input_is_a_value_error(self):
        with pytest.raises(ValueError):
            paginate(HEADER, [], WIDTHS, 10, 175)
