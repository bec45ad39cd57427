"""Deck renderer: copies the template deck and fills it from spreadsheet data.

Usage:
    # Called by pipeline.py:
    from slides_report import create_base_deck, DeckContext
    deck_id = create_base_deck(drive_service, deck_config, spreadsheet_id)
    ctx = DeckContext.open(sheets_service, slides_service, drive_service,
                           spreadsheet_id, deck_id, deck_config)
    resolve_handler("collection")(ctx, datasource_config)
    ctx.flush()

Slides are created from the template's layouts. Placeholder text goes into
the TITLE/SUBTITLE/BODY placeholders; tables, images and charts are placed
on layout shapes whose text contains a marker string (e.g. "table_shape").
Requests are queued on the context and sent in ordered batchUpdate chunks.
"""

import base64
import binascii
import io
import logging
import re
import time
from dataclasses import dataclass, field

from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseUpload

from configuration import DatasourceConfig, DeckConfig
from errors import InvalidInputError, LayoutNotFoundError, ShapeNotFoundError
from handlers import register_handler
from paginator import paginate
from sheets_source import (
    build_readiness_analysis, filter_and_sort, get_first_chart_id,
    read_range_value, read_section, write_readiness_analysis,
)
from slides_requests import (
    PLACEHOLDER_TYPES, create_image, create_sheets_chart, create_slide,
    insert_text, replace_all_text, table_requests, update_slides_position,
)

logger = logging.getLogger(__name__)

TABLE_MARKER = "table_shape"
CHART_MARKER = "chart-location"

# presentations.batchUpdate is atomic per call; keep each call reasonably small
BATCH_CHUNK_SIZE = 400

_DATA_IMAGE = re.compile(r"^data:(image/[\w.+-]+);base64,(.+)$", re.DOTALL)


# ---------------------------------------------------------------------------
# API helpers
# ---------------------------------------------------------------------------

def _retry_api(func, *args, max_retries: int = 3, delay: float = 2.0, **kwargs):
    """Retry API calls with exponential backoff on 429/500/503."""
    for attempt in range(max_retries + 1):
        try:
            return func(*args, **kwargs)
        except HttpError as e:
            status = e.resp.status
            if status in (429, 500, 503) and attempt < max_retries:
                wait = delay * (2 ** attempt)
                logger.warning("Google API error %s (attempt %d), retrying in %ss",
                               status, attempt + 1, wait)
                time.sleep(wait)
            else:
                raise
        except OSError as e:
            # Socket timeouts and dropped connections
            if attempt < max_retries:
                wait = delay * (2 ** attempt)
                logger.warning("Connection error %s (attempt %d), retrying in %ss",
                               e, attempt + 1, wait)
                time.sleep(wait)
            else:
                raise


def send_requests(slides_service, presentation_id: str, requests: list[dict],
                  chunk_size: int = BATCH_CHUNK_SIZE) -> int:
    """Send requests in order, chunk by chunk. Returns the number of calls made."""
    calls = 0
    for start in range(0, len(requests), chunk_size):
        chunk = requests[start:start + chunk_size]
        _retry_api(
            slides_service.presentations().batchUpdate(
                presentationId=presentation_id,
                body={"requests": chunk},
            ).execute
        )
        calls += 1
    return calls


def get_parent_folder(drive_service, file_id: str) -> str | None:
    """Return the first parent folder of a Drive file, if any."""
    response = _retry_api(
        drive_service.files().get(fileId=file_id, fields="parents").execute
    )
    parents = response.get("parents") or []
    return parents[0] if parents else None


def create_base_deck(drive_service, deck_config: DeckConfig, spreadsheet_id: str) -> str:
    """Copy the template deck next to the spreadsheet. Returns the new deck id."""
    body = {"name": deck_config.output_deck_name}
    folder_id = get_parent_folder(drive_service, spreadsheet_id)
    if folder_id:
        body["parents"] = [folder_id]

    copy_response = _retry_api(
        drive_service.files().copy(
            fileId=deck_config.template_deck_id,
            body=body,
        ).execute
    )
    return copy_response["id"]


def share_deck(drive_service, file_id: str) -> None:
    """Make a Drive file viewable by anyone with the link."""
    _retry_api(
        drive_service.permissions().create(
            fileId=file_id,
            body={"type": "anyone", "role": "reader"},
            fields="id",
        ).execute
    )


def deck_url(presentation_id: str) -> str:
    return f"https://docs.google.com/presentation/d/{presentation_id}/edit"


# ---------------------------------------------------------------------------
# Layout lookups
# ---------------------------------------------------------------------------

def get_template_layout(presentation: dict, layout_name: str) -> dict:
    """Return the layout whose displayName matches layout_name."""
    for layout in presentation.get("layouts", []):
        if layout.get("layoutProperties", {}).get("displayName") == layout_name:
            return layout
    raise LayoutNotFoundError(
        f"There was a problem retrieving the slide layout {layout_name!r}, "
        "please check the configuration tab."
    )


def get_template_layout_id(presentation: dict, layout_name: str) -> str:
    return get_template_layout(presentation, layout_name)["objectId"]


def shape_text(element: dict) -> str:
    """Plain text of a shape page element ('' for non-text elements)."""
    text = element.get("shape", {}).get("text", {})
    return "".join(
        part.get("textRun", {}).get("content", "")
        for part in text.get("textElements", [])
    )


def retrieve_shape(layout: dict, marker: str) -> dict:
    """First layout element whose text contains marker.

    Raises:
        ShapeNotFoundError: If no shape on the layout carries the marker.
    """
    for element in layout.get("pageElements", []):
        if marker in shape_text(element):
            return element
    raise ShapeNotFoundError(f"There was a problem retrieving the shape layout. {marker}")


def layout_placeholders(layout: dict) -> dict[str, tuple[str, int]]:
    """Map TITLE/SUBTITLE/BODY to the (type, index) of that placeholder on a layout.

    A CENTERED_TITLE placeholder serves as the TITLE slot.
    """
    found = {}
    for element in layout.get("pageElements", []):
        placeholder = element.get("shape", {}).get("placeholder")
        if not placeholder:
            continue
        ptype = placeholder.get("type")
        slot = "TITLE" if ptype == "CENTERED_TITLE" else ptype
        if slot in PLACEHOLDER_TYPES and slot not in found:
            found[slot] = (ptype, placeholder.get("index", 0))
    return found


# ---------------------------------------------------------------------------
# Deck context
# ---------------------------------------------------------------------------

@dataclass
class DeckContext:
    """Services, ids and the pending request queue for one generated deck."""
    sheets_service: object
    slides_service: object
    drive_service: object
    spreadsheet_id: str
    presentation_id: str
    deck_config: DeckConfig
    presentation: dict = field(default_factory=dict)
    folder_id: str | None = None
    requests: list[dict] = field(default_factory=list)
    slides_created: int = 0
    # title of the section header slide just emitted for the current data source
    section_header: str = ""
    _counter: int = 0

    @classmethod
    def open(cls, sheets_service, slides_service, drive_service,
             spreadsheet_id: str, presentation_id: str, deck_config: DeckConfig) -> "DeckContext":
        presentation = _retry_api(
            slides_service.presentations().get(presentationId=presentation_id).execute
        )
        return cls(
            sheets_service=sheets_service,
            slides_service=slides_service,
            drive_service=drive_service,
            spreadsheet_id=spreadsheet_id,
            presentation_id=presentation_id,
            deck_config=deck_config,
            presentation=presentation,
            folder_id=get_parent_folder(drive_service, spreadsheet_id),
        )

    def new_id(self, kind: str) -> str:
        self._counter += 1
        return f"ss_{kind}_{self._counter:05d}"

    def layout(self, name: str) -> dict:
        return get_template_layout(self.presentation, name)

    def add(self, reqs: list[dict]) -> None:
        self.requests.extend(reqs)

    def flush(self) -> None:
        if self.requests:
            send_requests(self.slides_service, self.presentation_id, self.requests)
            self.requests = []


# ---------------------------------------------------------------------------
# Slide builders
# ---------------------------------------------------------------------------

def add_slide(ctx: DeckContext, layout: dict, texts: dict[str, str] | None = None) -> str:
    """Queue a new slide on layout, filling placeholders from texts. Returns its page id.

    texts maps TITLE/SUBTITLE/BODY to the text for that placeholder. Types
    the layout does not have are skipped with a warning.
    """
    page_id = ctx.new_id("slide")
    placeholders = layout_placeholders(layout)
    placeholder_ids = {}
    fills = []
    for ptype, text in (texts or {}).items():
        if ptype not in placeholders:
            logger.warning("Layout %s has no %s placeholder",
                           layout.get("layoutProperties", {}).get("displayName"), ptype)
            continue
        oid = f"{page_id}_{ptype.lower()}"
        placeholder_ids[placeholders[ptype]] = oid
        fills += insert_text(oid, text)

    ctx.add([create_slide(page_id, layout["objectId"], placeholder_ids)] + fills)
    ctx.slides_created += 1
    return page_id


def create_header_slide(ctx: DeckContext, layout: dict, title: str) -> str:
    return add_slide(ctx, layout, {"TITLE": title})


def create_table_slide(ctx: DeckContext, layout: dict, title: str, page: list[list]) -> str:
    """One slide with the section title and one table page on the table marker."""
    marker = retrieve_shape(layout, TABLE_MARKER)
    page_id = add_slide(ctx, layout, {"TITLE": title})
    ctx.add(table_requests(
        ctx.new_id("table"), page_id, page, marker,
        list(ctx.deck_config.column_widths), ctx.deck_config.row_height,
    ))
    return page_id


def create_paginated_table_slides(ctx: DeckContext, layout: dict, title: str,
                                  header_row: list, data_rows: list[list]) -> int:
    """Split rows into pages that fit a slide and add one table slide per page."""
    config = ctx.deck_config
    pages = paginate(header_row, data_rows, list(config.column_widths),
                     config.line_height, config.max_page_height)
    for page in pages:
        create_table_slide(ctx, layout, title, page)
    return len(pages)


# ---------------------------------------------------------------------------
# Images
# ---------------------------------------------------------------------------

def is_image_url(value: str) -> bool:
    return value.startswith(("http://", "https://"))


def _public_url(file_id: str) -> str:
    return f"https://drive.google.com/uc?export=view&id={file_id}"


def upload_data_image(drive_service, data_uri: str, folder_id: str | None,
                      name: str = "slide-starter-image") -> str:
    """Upload a base64 data URI to Drive, share it and return a fetchable URL."""
    match = _DATA_IMAGE.match(data_uri.strip())
    if not match:
        raise InvalidInputError("Not a base64 image data URI")
    mime_type, payload = match.groups()
    try:
        raw = base64.b64decode(payload, validate=False)
    except (binascii.Error, ValueError) as e:
        raise InvalidInputError(f"Invalid base64 image data: {e}") from e

    metadata = {"name": name, "mimeType": mime_type}
    if folder_id:
        metadata["parents"] = [folder_id]
    media = MediaIoBaseUpload(io.BytesIO(raw), mimetype=mime_type)
    created = _retry_api(
        drive_service.files().create(body=metadata, media_body=media, fields="id").execute
    )
    share_deck(drive_service, created["id"])
    return _public_url(created["id"])


def find_image_in_folder(drive_service, folder_id: str | None, image_name: str) -> str | None:
    """Look an image up by name in the spreadsheet's folder. First match wins."""
    escaped = image_name.replace("\\", "\\\\").replace("'", "\\'")
    query = f"name contains '{escaped}' and mimeType contains 'image/' and trashed = false"
    if folder_id:
        query = f"'{folder_id}' in parents and " + query

    response = _retry_api(
        drive_service.files().list(
            q=query,
            fields="files(id, name)",
            orderBy="name",
            pageSize=10,
        ).execute
    )
    files = response.get("files", [])
    if not files:
        logger.warning("No images found for %s", image_name)
        return None
    if len(files) > 1:
        logger.warning("Multiple images found for %s, using %s", image_name, files[0]["name"])

    share_deck(drive_service, files[0]["id"])
    return _public_url(files[0]["id"])


def resolve_image(ctx: DeckContext, raw_value) -> str | None:
    """Turn a cell value into an image URL the Slides API can fetch.

    Empty cells use the default image; data URIs are uploaded; anything that
    is not a URL is treated as a file name in the spreadsheet's folder.
    """
    default = ctx.deck_config.default_image_url or None
    value = "" if raw_value is None else str(raw_value).strip()
    if not value:
        return default
    if value.startswith("data:image"):
        return upload_data_image(ctx.drive_service, value, ctx.folder_id)
    if is_image_url(value):
        return value
    return find_image_in_folder(ctx.drive_service, ctx.folder_id, value) or default


def place_images(ctx: DeckContext, page_id: str, layout: dict,
                 shape_markers: tuple[str, ...], values: list) -> int:
    """Insert one image per (marker, value) pair onto the marker's position."""
    placed = 0
    for marker_text, value in zip(shape_markers, values):
        if not marker_text:
            continue
        marker = retrieve_shape(layout, marker_text)
        url = resolve_image(ctx, value)
        if not url:
            logger.warning("No image for %s on %s and no default image configured",
                           marker_text, page_id)
            continue
        ctx.add([create_image(ctx.new_id("image"), page_id, url, marker)])
        placed += 1
    return placed


# ---------------------------------------------------------------------------
# Built-in handlers
# ---------------------------------------------------------------------------

def _cell(row: list, column: int | None) -> str:
    if not column or column > len(row):
        return ""
    value = row[column - 1]
    return "" if value is None else str(value)


def _datasource_rows(ctx: DeckContext, datasource: DatasourceConfig,
                     sheet_name: str | None = None) -> tuple[list, list[list], list[list]]:
    """Return (header, all rows, filtered and sorted rows) of a data source sheet."""
    header, rows = read_section(ctx.sheets_service, ctx.spreadsheet_id,
                                sheet_name or datasource.sheet_name, datasource.starting_row)
    visible = filter_and_sort(
        rows,
        filter_column=datasource.filter_column,
        filter_text=datasource.filter_text_value,
        sorting_column=datasource.sorting_column,
        ascending=datasource.sorting_ascending,
    )
    return header, rows, visible


@register_handler("collection")
def create_collection_slides(ctx: DeckContext, datasource: DatasourceConfig) -> int:
    """One slide per visible row, with placeholder text and images from columns."""
    columns = {
        "TITLE": datasource.title_column,
        "SUBTITLE": datasource.subtitle_column,
        "BODY": datasource.body_column,
    }
    if not any(columns.values()):
        logger.warning("%s sets no TITLE/SUBTITLE/BODY column, no slides created",
                       datasource.sheet_name)
        return 0

    layout = ctx.layout(datasource.layout_name)
    _, _, rows = _datasource_rows(ctx, datasource)
    for row in rows:
        texts = {ptype: _cell(row, col) for ptype, col in columns.items() if col}
        page_id = add_slide(ctx, layout, texts)
        image_values = [_cell(row, col) for col in datasource.image_columns]
        place_images(ctx, page_id, layout, datasource.image_shapes, image_values)
    return len(rows)


@register_handler("single")
def create_single_slide(ctx: DeckContext, datasource: DatasourceConfig) -> int:
    """One slide whose text and images come from fixed cell ranges."""
    def value_at(cell_range: str) -> str:
        return read_range_value(ctx.sheets_service, ctx.spreadsheet_id,
                                datasource.sheet_name, cell_range)

    layout = ctx.layout(datasource.layout_name)
    ranges = {
        "TITLE": datasource.title_range,
        "SUBTITLE": datasource.subtitle_range,
        "BODY": datasource.body_range,
    }
    texts = {ptype: value_at(r) for ptype, r in ranges.items() if r}
    page_id = add_slide(ctx, layout, texts)

    image_values = [value_at(r) if r else "" for r in datasource.image_ranges]
    place_images(ctx, page_id, layout, datasource.image_shapes, image_values)
    return 1


@register_handler("paginated_table")
def create_table_section(ctx: DeckContext, datasource: DatasourceConfig) -> int:
    """Header slide plus the data source rows as paginated table slides."""
    header, _, rows = _datasource_rows(ctx, datasource)
    if not rows:
        logger.info("%s has no rows, skipping table section", datasource.sheet_name)
        return 0

    if ctx.deck_config.header_layout_name and ctx.section_header != datasource.sheet_name:
        create_header_slide(ctx, ctx.layout(ctx.deck_config.header_layout_name),
                            datasource.sheet_name)
    layout_name = datasource.layout_name or ctx.deck_config.table_layout_name
    return create_paginated_table_slides(ctx, ctx.layout(layout_name),
                                         datasource.sheet_name, header, rows)


@register_handler("readiness_chart")
def create_readiness_chart_slide(ctx: DeckContext, datasource: DatasourceConfig) -> int:
    """Count recommendation categories next to the chart, then embed the chart.

    The data source sheet holds the chart; the recommendations sheet holds
    the rows that are counted.
    """
    if not datasource.recommendations_sheet or not datasource.policy_mapping_column:
        raise InvalidInputError(
            "RECOMMENDATIONS_SHEET and POLICY_MAPPING_COLUMN are required for the readiness chart"
        )

    _, rows, visible = _datasource_rows(ctx, datasource, datasource.recommendations_sheet)
    partial, total = build_readiness_analysis(
        rows, visible, list(datasource.category_names), datasource.policy_mapping_column
    )
    write_readiness_analysis(
        ctx.sheets_service, ctx.spreadsheet_id, datasource.sheet_name,
        datasource.partial_results_range, datasource.total_results_range,
        partial, total,
    )

    chart_id = get_first_chart_id(ctx.sheets_service, ctx.spreadsheet_id, datasource.sheet_name)
    layout = ctx.layout(datasource.layout_name)
    marker = retrieve_shape(layout, CHART_MARKER)
    page_id = add_slide(ctx, layout)
    ctx.add([create_sheets_chart(ctx.new_id("chart"), page_id, ctx.spreadsheet_id,
                                 chart_id, marker)])
    return 1


# ---------------------------------------------------------------------------
# Deck-wide steps
# ---------------------------------------------------------------------------

def custom_data_injection(ctx: DeckContext, pairs: list[tuple[str, str]]) -> int:
    """Queue a deck-wide replaceAllText for every dictionary entry."""
    ctx.add([replace_all_text(find, replace) for find, replace in pairs])
    return len(pairs)


def append_end_slide(ctx: DeckContext, end_slide_id: str) -> None:
    """Move the template's closing slide behind everything generated."""
    ctx.flush()
    presentation = _retry_api(
        ctx.slides_service.presentations().get(
            presentationId=ctx.presentation_id,
            fields="slides.objectId",
        ).execute
    )
    slide_ids = [s["objectId"] for s in presentation.get("slides", [])]
    if end_slide_id not in slide_ids:
        raise InvalidInputError(f"END_SLIDE_ID {end_slide_id!r} is not a slide of the template deck")
    ctx.add([update_slides_position([end_slide_id], len(slide_ids))])
