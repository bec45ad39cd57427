"""Table pagination: splits spreadsheet rows into slide-sized pages.

Pure computation module. Takes plain rows and column widths, returns pages
of rows with the header repeated on each page. No API calls, no file I/O.
"""

import math

from errors import InvalidInputError


def estimate_cell_height(text_length: int, column_width: float, line_height: float) -> float:
    """Estimate the wrapped height of a cell in points.

    Formula: ceil(text_length * line_height / column_width) * line_height
    An empty cell has no height.
    """
    return math.ceil(text_length * line_height / column_width) * line_height


def estimate_row_height(row: list, column_widths: list[float], line_height: float) -> float:
    """Return the tallest estimated cell height of a row."""
    height = 0
    for col, cell in enumerate(row):
        text = "" if cell is None else str(cell)
        cell_height = estimate_cell_height(len(text), column_widths[col], line_height)
        if cell_height > height:
            height = cell_height
    return height


def _validate(header_row: list, data_rows: list[list], column_widths: list[float],
              line_height: float, max_page_height: float) -> None:
    if not data_rows:
        raise InvalidInputError("Cannot paginate an empty set of rows")
    if not column_widths or any(w <= 0 for w in column_widths):
        raise InvalidInputError("Column widths must all be positive numbers")
    if line_height <= 0 or max_page_height <= 0:
        raise InvalidInputError("Line height and max page height must be positive")

    expected = len(column_widths)
    if len(header_row) != expected:
        raise InvalidInputError(
            f"Header has {len(header_row)} columns, expected {expected}"
        )
    for i, row in enumerate(data_rows):
        if len(row) != expected:
            raise InvalidInputError(
                f"Row {i + 1} has {len(row)} columns, expected {expected}"
            )


def paginate(
    header_row: list,
    data_rows: list[list],
    column_widths: list[float],
    line_height: float,
    max_page_height: float,
) -> list[list[list]]:
    """Greedily pack rows into pages whose estimated height fits a slide.

    Each page is a list of rows with header_row at index 0. A row that would
    push the running height over max_page_height closes the current page and
    opens the next one. A row that is taller than max_page_height on its own
    gets a page to itself rather than being split or dropped.

    Raises:
        InvalidInputError: If data_rows is empty, a row's column count does
            not match column_widths, or a size argument is not positive.
    """
    _validate(header_row, data_rows, column_widths, line_height, max_page_height)

    pages = []
    page = []
    running_height = 0

    for row in data_rows:
        row_height = estimate_row_height(row, column_widths, line_height)
        running_height += row_height

        if running_height > max_page_height and page:
            pages.append([header_row] + page)
            page = [row]
            running_height = row_height
        else:
            # An empty page keeps an oversized row; it is flushed by the next row
            page.append(row)

    pages.append([header_row] + page)
    return pages


def page_height(page: list[list], column_widths: list[float], line_height: float) -> float:
    """Total estimated height of a page's data rows (header excluded)."""
    return sum(estimate_row_height(row, column_widths, line_height) for row in page[1:])
