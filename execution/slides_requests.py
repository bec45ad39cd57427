"""Google Slides API request builders.

Every function here returns plain request dicts (or lists of them) for
presentations.batchUpdate. Nothing in this module talks to the API.
"""

# ---------------------------------------------------------------------------
# Design constants
# ---------------------------------------------------------------------------
EMU_PT = 12700      # 1 point = 12700 EMU

FONT_FAMILY = "Roboto"
TABLE_FONT_SIZE = 9


def hex_to_rgb(value: str) -> dict:
    """'#1E8E3E' -> {"red": 0.117, "green": 0.556, "blue": 0.243}"""
    value = value.lstrip("#")
    red, green, blue = (int(value[i:i + 2], 16) / 255 for i in (0, 2, 4))
    return {"red": red, "green": green, "blue": blue}


# Table colours (RGB floats 0-1)
WHITE      = {"red": 1.0, "green": 1.0, "blue": 1.0}
HEADER_FILL = {"red": 0.26, "green": 0.52, "blue": 0.96}
YES_GREEN  = hex_to_rgb("#1E8E3E")
NO_RED     = hex_to_rgb("#A50E0E")

# Core Web Vitals ratings
CWV_GOOD      = hex_to_rgb("#34A853")
CWV_AVERAGE   = hex_to_rgb("#FBBC04")
CWV_POOR      = hex_to_rgb("#EA4335")
CWV_NONE      = hex_to_rgb("#F8F9FA")

# (good up to, poor from) per table header
CWV_THRESHOLDS = {
    "CRUX_LCP": (2500, 4000),
    "CRUX_FID": (100, 300),
    "CRUX_INP": (100, 300),
    "CRUX_CLS": (0.1, 0.25),
}

PLACEHOLDER_TYPES = ("TITLE", "SUBTITLE", "BODY")


def cwv_color(thresholds: tuple[float, float], value) -> dict:
    """Rating colour of a Core Web Vitals value. Blank or non-numeric is unrated."""
    low, high = thresholds
    text = "" if value is None else str(value).strip()
    try:
        number = float(text.replace(",", ""))
    except ValueError:
        return CWV_NONE
    if number <= low:
        return CWV_GOOD
    if number < high:
        return CWV_AVERAGE
    return CWV_POOR


# ---------------------------------------------------------------------------
# Slides and text
# ---------------------------------------------------------------------------

def create_slide(page_id: str, layout_id: str,
                 placeholder_ids: dict[tuple[str, int], str] | None = None) -> dict:
    """Append a slide based on a template layout.

    placeholder_ids maps (placeholder type, index) on the layout to the
    objectId the new slide's copy of that placeholder should get.
    """
    request = {
        "objectId": page_id,
        "slideLayoutReference": {"layoutId": layout_id},
    }
    if placeholder_ids:
        request["placeholderIdMappings"] = [
            {
                "layoutPlaceholder": {"type": ptype, "index": index},
                "objectId": oid,
            }
            for (ptype, index), oid in placeholder_ids.items()
        ]
    return {"createSlide": request}


def _text(oid: str, text: str, cell: dict | None = None) -> dict:
    request = {"objectId": oid, "text": text, "insertionIndex": 0}
    if cell is not None:
        request["cellLocation"] = cell
    return {"insertText": request}


def _style(oid: str, size: int, color: dict | None = None, bold: bool = False,
           font: str = FONT_FAMILY, cell: dict | None = None) -> dict:
    style = {
        "fontSize": {"magnitude": size, "unit": "PT"},
        "bold": bold,
        "fontFamily": font,
    }
    fields = "fontSize,bold,fontFamily"
    if color is not None:
        style["foregroundColor"] = {"opaqueColor": {"rgbColor": color}}
        fields = "foregroundColor," + fields
    request = {
        "objectId": oid,
        "style": style,
        "textRange": {"type": "ALL"},
        "fields": fields,
    }
    if cell is not None:
        request["cellLocation"] = cell
    return {"updateTextStyle": request}


def insert_text(oid: str, text) -> list[dict]:
    """Insert text into an empty shape. Blank text produces no request."""
    text = "" if text is None else str(text)
    if not text:
        return []
    return [_text(oid, text)]


def replace_all_text(find: str, replace: str, match_case: bool = True) -> dict:
    """Deck-wide find and replace."""
    return {
        "replaceAllText": {
            "containsText": {"text": find, "matchCase": match_case},
            "replaceText": replace,
        }
    }


def update_slides_position(slide_ids: list[str], insertion_index: int) -> dict:
    return {
        "updateSlidesPosition": {
            "slideObjectIds": slide_ids,
            "insertionIndex": insertion_index,
        }
    }


# ---------------------------------------------------------------------------
# Elements placed on a marker shape
# ---------------------------------------------------------------------------

def element_properties(page_id: str, marker: dict, height: dict | None = None) -> dict:
    """Copy a marker element's size and transform onto a new page element.

    height overrides the marker's height, e.g. for tables sized by row count.
    """
    size = dict(marker.get("size", {}))
    if height is not None:
        size["height"] = height
    transform = {"scaleX": 1, "scaleY": 1, "translateX": 0, "translateY": 0, "unit": "EMU"}
    transform.update(marker.get("transform", {}))
    return {
        "pageObjectId": page_id,
        "size": size,
        "transform": transform,
    }


def create_image(oid: str, page_id: str, url: str, marker: dict) -> dict:
    return {
        "createImage": {
            "objectId": oid,
            "url": url,
            "elementProperties": element_properties(page_id, marker),
        }
    }


def create_sheets_chart(oid: str, page_id: str, spreadsheet_id: str, chart_id: int,
                        marker: dict) -> dict:
    """Embed a Sheets chart LINKED so it can be refreshed from the spreadsheet."""
    return {
        "createSheetsChart": {
            "objectId": oid,
            "spreadsheetId": spreadsheet_id,
            "chartId": chart_id,
            "linkingMode": "LINKED",
            "elementProperties": element_properties(page_id, marker),
        }
    }


# ---------------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------------

def create_table(table_id: str, page_id: str, rows: int, columns: int,
                 marker: dict, row_height: float) -> dict:
    height = {"magnitude": rows * row_height, "unit": "PT"}
    return {
        "createTable": {
            "objectId": table_id,
            "rows": rows,
            "columns": columns,
            "elementProperties": element_properties(page_id, marker, height=height),
        }
    }


def _cell_text_color(text: str, is_header: bool) -> dict | None:
    if is_header:
        return WHITE
    if text == "Yes":
        return YES_GREEN
    if text == "No":
        return NO_RED
    return None


def fill_table_cells(table_id: str, page: list[list]) -> list[dict]:
    """Insert and style the text of every non-blank cell. Row 0 is the header."""
    reqs = []
    for row_index, row in enumerate(page):
        for column_index, value in enumerate(row):
            text = "" if value is None else str(value)
            if not text.strip():
                continue
            cell = {"rowIndex": row_index, "columnIndex": column_index}
            is_header = row_index == 0
            reqs.append(_text(table_id, text, cell))
            reqs.append(_style(
                table_id, TABLE_FONT_SIZE,
                color=_cell_text_color(text.strip(), is_header),
                bold=is_header, cell=cell,
            ))
    return reqs


def column_widths(table_id: str, widths: list[float]) -> list[dict]:
    return [
        {
            "updateTableColumnProperties": {
                "objectId": table_id,
                "columnIndices": [i],
                "tableColumnProperties": {
                    "columnWidth": {"magnitude": width, "unit": "PT"},
                },
                "fields": "columnWidth",
            }
        }
        for i, width in enumerate(widths)
    ]


def cell_background(table_id: str, row_index: int, column_index: int, color: dict,
                    row_span: int = 1, column_span: int = 1) -> dict:
    return {
        "updateTableCellProperties": {
            "objectId": table_id,
            "tableRange": {
                "location": {"rowIndex": row_index, "columnIndex": column_index},
                "rowSpan": row_span,
                "columnSpan": column_span,
            },
            "tableCellProperties": {
                "tableCellBackgroundFill": {
                    "solidFill": {"color": {"rgbColor": color}},
                },
            },
            "fields": "tableCellBackgroundFill.solidFill.color",
        }
    }


def header_fill(table_id: str, columns: int) -> dict:
    return cell_background(table_id, 0, 0, HEADER_FILL, column_span=columns)


def color_cwv_cells(table_id: str, page: list[list]) -> list[dict]:
    """Background-colour the data cells of Core Web Vitals columns by rating."""
    reqs = []
    header = page[0]
    for column_index, name in enumerate(header):
        thresholds = CWV_THRESHOLDS.get(str(name).strip())
        if thresholds is None:
            continue
        for row_index in range(1, len(page)):
            color = cwv_color(thresholds, page[row_index][column_index])
            reqs.append(cell_background(table_id, row_index, column_index, color))
    return reqs


def table_requests(table_id: str, page_id: str, page: list[list], marker: dict,
                   widths: list[float], row_height: float) -> list[dict]:
    """Everything needed to draw one page of a paginated table."""
    columns = len(page[0])
    reqs = [create_table(table_id, page_id, len(page), columns, marker, row_height)]
    reqs += fill_table_cells(table_id, page)
    reqs += column_widths(table_id, widths)
    reqs.append(header_fill(table_id, columns))
    reqs += color_cwv_cells(table_id, page)
    return reqs
