"""Reusable pipeline logic for Slide Starter.

Called by the CLI. Yields progress/result/error dicts instead of printing
directly.
"""

import logging
from datetime import datetime, timezone
from typing import Generator

from googleapiclient.errors import HttpError

from configuration import (
    DEFAULT_CONFIG_RANGE, DatasourceConfig, DeckConfig, PsiConfig,
    datasource_config_range, load_env, load_properties,
)
from errors import ConfigurationError, SlideStarterError
from handlers import resolve_handler, select_handler_name
from psi_api import FetchSettings, ResultFieldMap, fetch_and_parse
from sheets_source import read_dictionary, read_url_settings, write_psi_results
from slides_report import (  # importing registers the built-in slide handlers
    DeckContext, append_end_slide, create_base_deck, create_header_slide,
    custom_data_injection, deck_url, share_deck,
)


logger = logging.getLogger(__name__)


def _build_services(server_mode: bool):
    from auth import build_services
    return build_services(server_mode)


def load_datasource_config(sheets_service, spreadsheet_id: str, global_props: dict[str, str],
                           datasource: str) -> DatasourceConfig:
    """Per-data-source properties layered over the global ones."""
    props = dict(global_props)
    try:
        props.update(load_properties(sheets_service, spreadsheet_id,
                                     datasource_config_range(datasource)))
    except ConfigurationError:
        logger.debug("No configuration sheet for %s, using global properties", datasource)
    return DatasourceConfig.from_properties(props, sheet_name=datasource)


def _flush_partial(ctx: DeckContext) -> None:
    """Send what is queued so the partial deck shows progress up to the failure."""
    try:
        ctx.flush()
    except HttpError as e:
        logger.warning("Dropped %d queued requests for %s: %s",
                       len(ctx.requests), ctx.presentation_id, e)
        ctx.requests = []


def run_deck_pipeline(
    spreadsheet_id: str,
    config_range: str = DEFAULT_CONFIG_RANGE,
    server_mode: bool = False,
    share: bool = False,
    services: tuple | None = None,
) -> Generator[dict, None, None]:
    """Generate a deck from the data sources listed in the configuration.

    Yields dicts with keys:
        {"type": "progress", "message": "..."}
        {"type": "result", "report_url": "...", "summary": {...}}
        {"type": "error", "message": "..."}
    """
    load_env()

    try:
        sheets, slides, drive = services or _build_services(server_mode)
    except (RuntimeError, FileNotFoundError) as e:
        yield {"type": "error", "message": f"Google authorization failed: {e}"}
        return

    try:
        props = load_properties(sheets, spreadsheet_id, config_range)
        deck_config = DeckConfig.from_properties(props)
    except (ConfigurationError, HttpError) as e:
        yield {"type": "error", "message": str(e)}
        return

    yield {"type": "progress", "message": f"Data sources: {', '.join(deck_config.data_sources)}"}
    yield {"type": "progress", "message": "Copying template deck..."}
    try:
        deck_id = create_base_deck(drive, deck_config, spreadsheet_id)
    except HttpError as e:
        yield {"type": "error", "message": f"Could not copy template deck {deck_config.template_deck_id}: {e}"}
        return
    try:
        ctx = DeckContext.open(sheets, slides, drive, spreadsheet_id, deck_id, deck_config)
    except HttpError as e:
        yield {"type": "error", "message": f"Could not open the new deck: {e}\nPartial deck: {deck_url(deck_id)}"}
        return
    yield {"type": "progress", "message": f"  Deck created: {deck_config.output_deck_name}"}

    sections = {}
    try:
        section_layout = None
        if deck_config.section_layout_name:
            section_layout = ctx.layout(deck_config.section_layout_name)

        for datasource in deck_config.data_sources:
            yield {"type": "progress", "message": f"Creating slides for {datasource}..."}
            ds_config = load_datasource_config(sheets, spreadsheet_id, props, datasource)
            handler_name = select_handler_name(ds_config)
            handler = resolve_handler(handler_name)

            ctx.section_header = ""
            if section_layout is not None:
                create_header_slide(ctx, section_layout, datasource)
                ctx.section_header = datasource
            count = handler(ctx, ds_config)
            ctx.flush()
            sections[datasource] = count
            yield {"type": "progress", "message": f"  {datasource}: {count} ({handler_name})"}

        if deck_config.dictionary_sheet_name:
            yield {"type": "progress", "message": "Autofilling strings..."}
            pairs = read_dictionary(sheets, spreadsheet_id, deck_config.dictionary_sheet_name)
            custom_data_injection(ctx, pairs)
            yield {"type": "progress", "message": f"  {len(pairs)} placeholders replaced"}

        if deck_config.end_slide_id:
            append_end_slide(ctx, deck_config.end_slide_id)

        ctx.flush()
    except (SlideStarterError, HttpError) as e:
        _flush_partial(ctx)
        yield {"type": "error", "message": f"{e}\nPartial deck: {deck_url(deck_id)}"}
        return

    if share:
        try:
            share_deck(drive, deck_id)
        except HttpError as e:
            yield {"type": "error", "message": f"Could not share the deck: {e}\nDeck: {deck_url(deck_id)}"}
            return
        yield {"type": "progress", "message": "  Deck shared: anyone with the link can view"}

    report_url = deck_url(deck_id)
    summary = {
        "deck_id": deck_id,
        "slides_created": ctx.slides_created,
        "sections": sections,
        "report_url": report_url,
    }
    yield {"type": "result", "report_url": report_url, "summary": summary}


def run_psi_pipeline(
    spreadsheet_id: str,
    config_range: str = DEFAULT_CONFIG_RANGE,
    server_mode: bool = False,
    include_co2: bool | None = None,
    field_map: ResultFieldMap | None = None,
    services: tuple | None = None,
) -> Generator[dict, None, None]:
    """Measure the URLs of the requests sheet and write the results sheet.

    include_co2 overrides the INCLUDE_CO2EQ property when not None.
    """
    load_env()

    try:
        sheets = (services or _build_services(server_mode))[0]
    except (RuntimeError, FileNotFoundError) as e:
        yield {"type": "error", "message": f"Google authorization failed: {e}"}
        return

    try:
        props = load_properties(sheets, spreadsheet_id, config_range)
        psi_config = PsiConfig.from_properties(props)
        specs = read_url_settings(sheets, spreadsheet_id, psi_config.requests_sheet)
    except (SlideStarterError, HttpError) as e:
        yield {"type": "error", "message": str(e)}
        return

    if not specs:
        yield {"type": "error", "message": f"No URLs found on {psi_config.requests_sheet}"}
        return

    co2 = psi_config.include_co2 if include_co2 is None else include_co2
    settings = FetchSettings(
        max_workers=psi_config.max_workers,
        request_timeout=psi_config.request_timeout,
        batch_timeout=psi_config.batch_timeout,
    )

    yield {"type": "progress", "message": f"Measuring {len(specs)} URLs with PageSpeed Insights..."}
    results = fetch_and_parse(
        specs,
        field_map or ResultFieldMap.default(),
        psi_config.api_key,
        include_environmental_impact=co2,
        settings=settings,
    )
    for row in results:
        if row.is_error:
            yield {"type": "progress", "message": f"  Warning: {row.spec.url} ({row.spec.device.value}): {row.error}"}

    today = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    try:
        errors = write_psi_results(sheets, spreadsheet_id, psi_config.results_sheet, results, today)
    except (SlideStarterError, HttpError) as e:
        yield {"type": "error", "message": f"Could not write results to {psi_config.results_sheet}: {e}"}
        return
    yield {"type": "progress", "message": f"  Results written to {psi_config.results_sheet}"}

    summary = {
        "urls_measured": len(results),
        "errors": errors,
        "results_sheet": psi_config.results_sheet,
        "include_co2": co2,
    }
    yield {"type": "result", "summary": summary}
