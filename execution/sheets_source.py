"""Google Sheets API v4 helpers: reading table data and writing results.

Values come back from the API as formatted strings with trailing blank
cells trimmed, so every read pads rows to a common width.
"""

import logging

from errors import InvalidInputError
from psi_api import Device, MetricRequestSpec, MetricResultRow, error_note

logger = logging.getLogger(__name__)

ERROR_ROW_BACKGROUND = {"red": 0xfd / 255, "green": 0xf6 / 255, "blue": 0xf6 / 255}  # #fdf6f6
NOTE_COLUMN_INDEX = 3  # column D


def a1(sheet_name: str, cell_range: str = "") -> str:
    """Quote a sheet name for A1 notation, optionally with a cell range."""
    quoted = "'" + sheet_name.replace("'", "''") + "'"
    return f"{quoted}!{cell_range}" if cell_range else quoted


def pad_rows(values: list[list]) -> list[list]:
    """Pad ragged rows with empty strings to the widest row."""
    width = max((len(row) for row in values), default=0)
    return [list(row) + [""] * (width - len(row)) for row in values]


def _is_blank(row: list) -> bool:
    return all(str(cell).strip() == "" for cell in row)


def read_sheet_values(sheets_service, spreadsheet_id: str, a1_range: str) -> list[list]:
    """Read a range and return padded rows, trailing blank rows removed."""
    response = sheets_service.spreadsheets().values().get(
        spreadsheetId=spreadsheet_id,
        range=a1_range,
    ).execute()
    values = pad_rows(response.get("values", []))
    while values and _is_blank(values[-1]):
        values.pop()
    return values


def read_range_value(sheets_service, spreadsheet_id: str, sheet_name: str, cell: str) -> str:
    """Return the top-left value of a range on a sheet, or '' when empty."""
    values = read_sheet_values(sheets_service, spreadsheet_id, a1(sheet_name, cell))
    if not values or not values[0]:
        return ""
    return values[0][0]


def read_section(sheets_service, spreadsheet_id: str, sheet_name: str,
                 starting_row: int = 1) -> tuple[list, list[list]]:
    """Read the table of a sheet starting at starting_row.

    Returns (header_row, data_rows). data_rows is empty when the sheet only
    has a header.
    """
    values = read_sheet_values(sheets_service, spreadsheet_id,
                               a1(sheet_name, f"A{starting_row}:ZZZ"))
    if not values:
        return [], []
    return values[0], values[1:]


def read_dictionary(sheets_service, spreadsheet_id: str, sheet_name: str) -> list[tuple[str, str]]:
    """Read placeholder -> replacement pairs below the header, up to the first blank key."""
    values = read_sheet_values(sheets_service, spreadsheet_id, a1(sheet_name, "A2:B"))
    pairs = []
    for row in values:
        if not row or not str(row[0]).strip():
            break
        pairs.append((str(row[0]), str(row[1]) if len(row) > 1 else ""))
    return pairs


# ---------------------------------------------------------------------------
# Filter and sort
# ---------------------------------------------------------------------------

def _column_value(row: list, column: int):
    """1-based column lookup that tolerates short rows."""
    index = column - 1
    return row[index] if 0 <= index < len(row) else ""


def _sort_key(value) -> tuple:
    """Numbers sort before text; text sorts case-insensitively."""
    if isinstance(value, (int, float)):
        return (0, float(value), "")
    text = str(value).strip()
    try:
        return (0, float(text.replace(",", "")), "")
    except ValueError:
        return (1, 0.0, text.lower())


def filter_and_sort(
    rows: list[list],
    filter_column: int | None = None,
    filter_text: str = "",
    sorting_column: int | None = None,
    ascending: bool = False,
) -> list[list]:
    """Keep rows whose filter cell contains filter_text, then sort them.

    Matching is case-insensitive. The sort is stable; rows with equal keys
    keep their sheet order. Either step is skipped when its column is unset.
    """
    result = list(rows)
    if filter_column:
        needle = filter_text.lower()
        result = [r for r in result if needle in str(_column_value(r, filter_column)).lower()]
    if sorting_column:
        result.sort(key=lambda r: _sort_key(_column_value(r, sorting_column)),
                    reverse=not ascending)
    return result


# ---------------------------------------------------------------------------
# PageSpeed Insights sheets
# ---------------------------------------------------------------------------

def read_url_settings(sheets_service, spreadsheet_id: str, sheet_name: str) -> list[MetricRequestSpec]:
    """Read (url, label, device) rows below the header into request specs.

    Raises:
        InvalidInputError: If a row names an unknown device.
    """
    values = read_sheet_values(sheets_service, spreadsheet_id, a1(sheet_name, "A2:C"))
    specs = []
    for i, row in enumerate(values, start=2):
        url = str(row[0]).strip() if row else ""
        if not url:
            continue
        label = str(row[1]).strip() if len(row) > 1 else ""
        device = row[2] if len(row) > 2 and str(row[2]).strip() else Device.MOBILE
        try:
            specs.append(MetricRequestSpec(url=url, label=label, device=Device.parse(device)))
        except InvalidInputError as e:
            raise InvalidInputError(f"{sheet_name} row {i}: {e}") from e
    return specs


def get_sheet_id(sheets_service, spreadsheet_id: str, sheet_name: str) -> int:
    """Return the numeric sheetId for a sheet title."""
    response = sheets_service.spreadsheets().get(
        spreadsheetId=spreadsheet_id,
        fields="sheets.properties",
    ).execute()
    for sheet in response.get("sheets", []):
        props = sheet.get("properties", {})
        if props.get("title") == sheet_name:
            return props["sheetId"]
    raise InvalidInputError(f"Sheet not found: {sheet_name}")


def _error_row_requests(sheet_id: int, row_index: int, note: str) -> list[dict]:
    """Light red background on the whole row and a note on column D."""
    return [
        {
            "repeatCell": {
                "range": {
                    "sheetId": sheet_id,
                    "startRowIndex": row_index,
                    "endRowIndex": row_index + 1,
                },
                "cell": {"userEnteredFormat": {"backgroundColor": ERROR_ROW_BACKGROUND}},
                "fields": "userEnteredFormat.backgroundColor",
            }
        },
        {
            "updateCells": {
                "range": {
                    "sheetId": sheet_id,
                    "startRowIndex": row_index,
                    "endRowIndex": row_index + 1,
                    "startColumnIndex": NOTE_COLUMN_INDEX,
                    "endColumnIndex": NOTE_COLUMN_INDEX + 1,
                },
                "rows": [{"values": [{"note": note}]}],
                "fields": "note",
            }
        },
    ]


def _reset_formatting_requests(sheet_id: int) -> list[dict]:
    """Clear backgrounds and notes left below the header by an earlier run."""
    below_header = {"sheetId": sheet_id, "startRowIndex": 1}
    return [
        {
            "repeatCell": {
                "range": below_header,
                "cell": {"userEnteredFormat": {}},
                "fields": "userEnteredFormat.backgroundColor",
            }
        },
        # updateCells without rows clears the named fields over the range
        {"updateCells": {"range": below_header, "fields": "note"}},
    ]


def write_psi_results(sheets_service, spreadsheet_id: str, sheet_name: str,
                      results: list[MetricResultRow], today: str) -> int:
    """Replace the rows below the results header with one row per result.

    Values, error backgrounds and error notes from the previous run are
    cleared first. Returns the number of error rows written.
    """
    header = read_sheet_values(sheets_service, spreadsheet_id, a1(sheet_name, "1:1"))
    width = len(header[0]) if header else 0
    sheet_id = get_sheet_id(sheets_service, spreadsheet_id, sheet_name)

    values = sheets_service.spreadsheets().values()
    values.clear(
        spreadsheetId=spreadsheet_id,
        range=a1(sheet_name, "A2:ZZZ"),
        body={},
    ).execute()

    rows = [r.to_sheet_row(today, width) for r in results]
    if rows:
        values.update(
            spreadsheetId=spreadsheet_id,
            range=a1(sheet_name, "A2"),
            valueInputOption="RAW",
            body={"values": rows},
        ).execute()

    format_requests = _reset_formatting_requests(sheet_id)
    error_count = 0
    for i, r in enumerate(results):
        if r.is_error:
            # Row 0 is the header
            format_requests += _error_row_requests(sheet_id, i + 1, error_note(r.error))
            error_count += 1
    sheets_service.spreadsheets().batchUpdate(
        spreadsheetId=spreadsheet_id,
        body={"requests": format_requests},
    ).execute()

    return error_count


# ---------------------------------------------------------------------------
# Readiness analysis (sustainability benchmark)
# ---------------------------------------------------------------------------

def build_readiness_analysis(
    all_rows: list[list],
    visible_rows: list[list],
    category_names: list[str],
    column: int,
) -> tuple[list[int], list[int]]:
    """Count category mentions per row set.

    Each cell in column holds a comma-separated list of category names.
    Returns (partial, total): counts over visible_rows and over all_rows,
    aligned with category_names. Unknown names are logged and ignored.
    """
    def count(rows: list[list]) -> list[int]:
        counts = [0] * len(category_names)
        for row in rows:
            cell = str(_column_value(row, column)).strip()
            if not cell:
                continue
            for name in (item.strip() for item in cell.split(",")):
                if name in category_names:
                    counts[category_names.index(name)] += 1
                elif name:
                    logger.warning("Unknown category %r in readiness column", name)
        return counts

    return count(visible_rows), count(all_rows)


def write_readiness_analysis(sheets_service, spreadsheet_id: str, chart_sheet: str,
                             partial_range: str, total_range: str,
                             partial: list[int], total: list[int]) -> None:
    """Write the partial and total count vectors next to the readiness chart."""
    sheets_service.spreadsheets().values().batchUpdate(
        spreadsheetId=spreadsheet_id,
        body={
            "valueInputOption": "RAW",
            "data": [
                {"range": a1(chart_sheet, partial_range), "values": [partial]},
                {"range": a1(chart_sheet, total_range), "values": [total]},
            ],
        },
    ).execute()


def get_first_chart_id(sheets_service, spreadsheet_id: str, sheet_name: str) -> int:
    """Return the chartId of the first chart embedded on a sheet."""
    response = sheets_service.spreadsheets().get(
        spreadsheetId=spreadsheet_id,
        fields="sheets(properties(title),charts(chartId))",
    ).execute()
    for sheet in response.get("sheets", []):
        if sheet.get("properties", {}).get("title") != sheet_name:
            continue
        charts = sheet.get("charts", [])
        if charts:
            return charts[0]["chartId"]
        break
    raise InvalidInputError(f"No chart found on sheet {sheet_name}")
