"""Configuration loading: spreadsheet properties and .env values.

The spreadsheet keeps a two-column key/value range on its Configuration
sheet. It is read once per run and typed into the dataclasses below, which
are then passed explicitly to the code that needs them.
"""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv
from googleapiclient.errors import HttpError

from errors import ConfigurationError

_PROJECT_ROOT = Path(__file__).resolve().parent.parent

DEFAULT_CONFIG_RANGE = "Configuration!A2:B"
ERROR_MISSING_RANGE = "Couldn't find the named range in Configuration."

DEFAULT_COLUMN_WIDTHS = (50, 50, 75, 250, 75, 180)
DEFAULT_MAX_PAGE_HEIGHT = 175
DEFAULT_LINE_HEIGHT = 10
DEFAULT_ROW_HEIGHT = 20

TRUE_VALUES = ("TRUE", "YES", "1", "Y")


def load_env() -> None:
    """Load .env from the project root (existing env vars win)."""
    load_dotenv(_PROJECT_ROOT / ".env")


def datasource_config_range(datasource: str) -> str:
    """A1 range of the per-datasource configuration sheet."""
    return f"'Configuration_{datasource}'!A2:B"


def load_properties(sheets_service, spreadsheet_id: str,
                    range_name: str = DEFAULT_CONFIG_RANGE) -> dict[str, str]:
    """Read a key/value range into a dict of strings.

    Raises:
        ConfigurationError: If the range does not exist or is empty.
    """
    try:
        response = sheets_service.spreadsheets().values().get(
            spreadsheetId=spreadsheet_id,
            range=range_name,
        ).execute()
    except HttpError as e:
        if e.resp.status == 400:
            raise ConfigurationError(f"{ERROR_MISSING_RANGE} ({range_name})") from e
        raise

    values = response.get("values", [])
    if not values:
        raise ConfigurationError(f"{ERROR_MISSING_RANGE} ({range_name})")

    return parse_properties(values)


def parse_properties(values: list[list]) -> dict[str, str]:
    """Turn [[key, value], ...] rows into a dict. Blank keys are skipped."""
    props = {}
    for row in values:
        if not row or not str(row[0]).strip():
            continue
        value = row[1] if len(row) > 1 else ""
        props[str(row[0]).strip()] = "" if value is None else str(value)
    return props


# ---------------------------------------------------------------------------
# Typed accessors
# ---------------------------------------------------------------------------

def get_str(props: dict[str, str], key: str, default: str = "") -> str:
    value = props.get(key)
    if value is None:
        return default
    value = value.strip()
    return value if value else default


def get_required(props: dict[str, str], key: str) -> str:
    value = get_str(props, key)
    if not value:
        raise ConfigurationError(f"{key} must be set in the Configuration sheet")
    return value


def get_bool(props: dict[str, str], key: str, default: bool = False) -> bool:
    value = get_str(props, key)
    if not value:
        return default
    return value.upper() in TRUE_VALUES


def get_float(props: dict[str, str], key: str, default: float | None = None) -> float | None:
    value = get_str(props, key)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigurationError(f"{key} must be a number, got {value!r}") from None


def get_int(props: dict[str, str], key: str, default: int | None = None) -> int | None:
    value = get_float(props, key)
    if value is None:
        return default
    if value != int(value):
        raise ConfigurationError(f"{key} must be a whole number, got {props[key]!r}")
    return int(value)


def get_list(props: dict[str, str], key: str) -> list[str]:
    """Split a comma-separated value, dropping blank items."""
    return [item.strip() for item in get_str(props, key).split(",") if item.strip()]


def get_int_list(props: dict[str, str], key: str) -> list[int]:
    items = get_list(props, key)
    try:
        return [int(float(item)) for item in items]
    except ValueError:
        raise ConfigurationError(f"{key} must be a comma-separated list of numbers") from None


# ---------------------------------------------------------------------------
# Config structs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DeckConfig:
    """Deck-wide settings from the main Configuration sheet."""
    template_deck_id: str
    data_sources: tuple[str, ...]
    output_deck_name: str = "Slide Starter deck"
    section_layout_name: str = ""
    header_layout_name: str = ""
    table_layout_name: str = ""
    dictionary_sheet_name: str = ""
    end_slide_id: str = ""
    default_image_url: str = ""
    column_widths: tuple[float, ...] = DEFAULT_COLUMN_WIDTHS
    max_page_height: float = DEFAULT_MAX_PAGE_HEIGHT
    line_height: float = DEFAULT_LINE_HEIGHT
    row_height: float = DEFAULT_ROW_HEIGHT

    @classmethod
    def from_properties(cls, props: dict[str, str]) -> "DeckConfig":
        data_sources = tuple(get_list(props, "DATA_SOURCE_SHEET"))
        if not data_sources:
            raise ConfigurationError("DATA_SOURCE_SHEET must list at least one sheet")

        widths = get_list(props, "COLUMN_WIDTHS")
        try:
            column_widths = tuple(float(w) for w in widths) if widths else DEFAULT_COLUMN_WIDTHS
        except ValueError:
            raise ConfigurationError("COLUMN_WIDTHS must be a comma-separated list of numbers") from None

        return cls(
            template_deck_id=get_required(props, "TEMPLATE_DECK_ID"),
            data_sources=data_sources,
            output_deck_name=get_str(props, "OUTPUT_DECK_NAME", "Slide Starter deck"),
            section_layout_name=get_str(props, "SECTION_LAYOUT_NAME"),
            header_layout_name=get_str(props, "HEADER_LAYOUT_NAME"),
            table_layout_name=get_str(props, "TABLE_LAYOUT_NAME"),
            dictionary_sheet_name=get_str(props, "DICTIONARY_SHEET_NAME"),
            end_slide_id=get_str(props, "END_SLIDE_ID"),
            default_image_url=get_str(props, "DEFAULT_IMAGE_URL"),
            column_widths=column_widths,
            max_page_height=get_float(props, "MAX_PAGE_HEIGHT", DEFAULT_MAX_PAGE_HEIGHT),
            line_height=get_float(props, "LINE_HEIGHT", DEFAULT_LINE_HEIGHT),
            row_height=get_float(props, "ROW_HEIGHT", DEFAULT_ROW_HEIGHT),
        )


@dataclass(frozen=True)
class DatasourceConfig:
    """Settings for one data source sheet. Column numbers are 1-based."""
    sheet_name: str
    layout_name: str = ""
    custom_function: str = ""
    single_value: bool = False
    title_column: int | None = None
    subtitle_column: int | None = None
    body_column: int | None = None
    title_range: str = ""
    subtitle_range: str = ""
    body_range: str = ""
    image_shapes: tuple[str, ...] = ()
    image_columns: tuple[int, ...] = ()
    image_ranges: tuple[str, ...] = ()
    filter_column: int | None = None
    filter_text_value: str = ""
    sorting_column: int | None = None
    sorting_ascending: bool = False
    starting_row: int = 1
    category_names: tuple[str, ...] = ()
    policy_mapping_column: int | None = None
    partial_results_range: str = ""
    total_results_range: str = ""
    recommendations_sheet: str = ""

    @classmethod
    def from_properties(cls, props: dict[str, str], sheet_name: str = "") -> "DatasourceConfig":
        sheet_name = sheet_name or get_required(props, "DATA_SOURCE_SHEET").split(",")[0].strip()
        starting_row = get_int(props, "STARTING_ROW", 1)
        if starting_row < 1:
            raise ConfigurationError(f"STARTING_ROW must be 1 or more, got {starting_row}")

        return cls(
            sheet_name=sheet_name,
            layout_name=get_str(props, "LAYOUT_NAME"),
            custom_function=get_str(props, "CUSTOM_FUNCTION"),
            single_value=get_bool(props, "SINGLE_VALUE"),
            title_column=get_int(props, "TITLE_COLUMN"),
            subtitle_column=get_int(props, "SUBTITLE_COLUMN"),
            body_column=get_int(props, "BODY_COLUMN"),
            title_range=get_str(props, "TITLE_RANGE"),
            subtitle_range=get_str(props, "SUBTITLE_RANGE"),
            body_range=get_str(props, "BODY_RANGE"),
            image_shapes=tuple(get_list(props, "IMAGE_SHAPES")),
            image_columns=tuple(get_int_list(props, "IMAGE_COLUMNS")),
            image_ranges=tuple(get_list(props, "IMAGE_RANGES")),
            filter_column=get_int(props, "FILTER_COLUMN"),
            filter_text_value=get_str(props, "FILTER_TEXT_VALUE"),
            sorting_column=get_int(props, "SORTING_COLUMN"),
            sorting_ascending=get_bool(props, "SORTING_ORDER"),
            starting_row=starting_row,
            category_names=tuple(get_list(props, "CATEGORY_NAMES_LIST")),
            policy_mapping_column=get_int(props, "POLICY_MAPPING_COLUMN"),
            partial_results_range=get_str(props, "PARTIAL_RESULTS_RANGE"),
            total_results_range=get_str(props, "TOTAL_RESULTS_RANGE"),
            recommendations_sheet=get_str(props, "RECOMMENDATIONS_SHEET"),
        )


@dataclass(frozen=True)
class PsiConfig:
    """Settings for a PageSpeed Insights run."""
    api_key: str
    include_co2: bool = False
    requests_sheet: str = "Performance"
    results_sheet: str = "Performance Results"
    max_workers: int = 8
    request_timeout: float = 60.0
    batch_timeout: float | None = None

    @classmethod
    def from_properties(cls, props: dict[str, str]) -> "PsiConfig":
        api_key = get_str(props, "PSI_API_KEY") or (os.getenv("PSI_API_KEY") or "").strip()
        if not api_key:
            raise ConfigurationError("The PSI API key must be set to use this tool.")

        max_workers = get_int(props, "PSI_MAX_WORKERS", 8)
        if max_workers < 1:
            raise ConfigurationError("PSI_MAX_WORKERS must be at least 1")

        return cls(
            api_key=api_key,
            include_co2=get_bool(props, "INCLUDE_CO2EQ"),
            requests_sheet=get_str(props, "PSI_REQUESTS_SHEET", "Performance"),
            results_sheet=get_str(props, "PSI_RESULTS_SHEET", "Performance Results"),
            max_workers=max_workers,
            request_timeout=get_float(props, "PSI_REQUEST_TIMEOUT", 60.0),
            batch_timeout=get_float(props, "PSI_BATCH_TIMEOUT"),
        )
