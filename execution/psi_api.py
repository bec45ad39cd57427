"""PageSpeed Insights API v5 wrapper: batch fetch and result extraction.

Usage:
    from psi_api import MetricRequestSpec, Device, ResultFieldMap, fetch_and_parse
    rows = fetch_and_parse(
        [MetricRequestSpec("https://example.com", "Home", Device.MOBILE)],
        ResultFieldMap.default(),
        api_key,
        include_environmental_impact=False,
    )
"""

import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum

import requests

from errors import InvalidInputError, LookupFailure, ParseError, RemoteRequestError
from sustainability import Co2Estimator

logger = logging.getLogger(__name__)

PSI_ENDPOINT = "https://www.googleapis.com/pagespeedonline/v5/runPagespeed"
PSI_WEB_UI = "https://developers.google.com/speed/pagespeed/insights/"

DEFAULT_REQUEST_CATEGORIES = ("BEST_PRACTICES", "PERFORMANCE")

# Field data reports layout shift in hundredths
LAYOUT_SHIFT_METRIC = "CUMULATIVE_LAYOUT_SHIFT_SCORE"

NOT_AVAILABLE = "N/A"
PSI_ERROR_SUMMARY = "PSI Error"
PARSE_FAILURE_MESSAGE = "Unable to parse the PageSpeed Insights response."
BATCH_TIMEOUT_MESSAGE = "PageSpeed Insights request did not finish before the batch timeout."

RETRYABLE_STATUS = (429, 500, 503)


class Device(str, Enum):
    MOBILE = "MOBILE"
    DESKTOP = "DESKTOP"

    @classmethod
    def parse(cls, value) -> "Device":
        """Accept a Device or a case-insensitive strategy string."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise InvalidInputError(
                f"Unknown device {value!r}, expected MOBILE or DESKTOP"
            ) from None


@dataclass(frozen=True)
class MetricRequestSpec:
    """One measurement request. Batch order defines output order."""
    url: str
    label: str
    device: Device


@dataclass(frozen=True)
class ResultFieldMap:
    """Which fields to extract from a PSI result and in what column order."""
    categories: tuple[str, ...]
    lab_metrics: tuple[str, ...]
    field_metrics: tuple[str, ...]
    assets: tuple[str, ...] = ()

    @classmethod
    def default(cls) -> "ResultFieldMap":
        return cls(
            categories=("performance",),
            lab_metrics=(
                "server-response-time",
                "first-contentful-paint",
                "largest-contentful-paint",
                "total-blocking-time",
                "cumulative-layout-shift",
            ),
            field_metrics=(
                "FIRST_CONTENTFUL_PAINT_MS",
                "LARGEST_CONTENTFUL_PAINT_MS",
                "FIRST_INPUT_DELAY_MS",
                "CUMULATIVE_LAYOUT_SHIFT_SCORE",
                "INTERACTION_TO_NEXT_PAINT",
            ),
            assets=(
                "total", "script", "image", "stylesheet", "document",
                "font", "other", "media", "third-party",
            ),
        )


@dataclass(frozen=True)
class FetchSettings:
    """Concurrency and timeout knobs for one batch."""
    max_workers: int = 8
    request_timeout: float = 60.0
    batch_timeout: float | None = None
    max_retries: int = 1
    retry_delay: float = 2.0
    categories: tuple[str, ...] = DEFAULT_REQUEST_CATEGORIES


@dataclass(frozen=True)
class MetricResultRow:
    """Flat result for one request: extracted data or an error message."""
    spec: MetricRequestSpec
    data: list = field(default_factory=list)
    crux_data: bool = False
    origin_fallback: bool = False
    error: str | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @property
    def crux_data_type(self) -> str:
        """PAGE, ORIGIN or NONE depending on the field data that was reported."""
        if not self.crux_data:
            return "NONE"
        if self.origin_fallback:
            return "ORIGIN"
        return "PAGE"

    @property
    def subtitle_summary(self) -> str:
        if self.is_error:
            return PSI_ERROR_SUMMARY
        return f"{self.spec.device.value.lower()} - {self.crux_data_type.lower()}"

    def to_sheet_row(self, today: str, width: int = 0) -> list:
        """Lay the row out for the results sheet.

        Success: [url, label, device, date, crux type, *data, summary]
        Error:   [url, label, device, N/A..., summary] padded to width columns
        """
        prefix = [self.spec.url, self.spec.label, self.spec.device.value]
        if self.is_error:
            placeholders = [NOT_AVAILABLE] * max(width - len(prefix) - 1, 0)
            return prefix + placeholders + [self.subtitle_summary]
        return prefix + [today, self.crux_data_type, *self.data, self.subtitle_summary]


def error_note(message: str) -> str:
    """Note text attached to an error row in the results sheet."""
    return (
        f"{message}\n\n"
        "If this error persists, investigate the cause by running the "
        f"URL manually via {PSI_WEB_UI}"
    )


# ---------------------------------------------------------------------------
# Request building
# ---------------------------------------------------------------------------

def build_request_url(spec: MetricRequestSpec, api_key: str,
                      categories: tuple[str, ...] = DEFAULT_REQUEST_CATEGORIES) -> str:
    """Build the runPagespeed URL for one spec, with the target URL encoded."""
    params = [("category", c) for c in categories]
    params += [
        ("strategy", spec.device.value),
        ("url", spec.url),
        ("key", api_key),
    ]
    return requests.Request("GET", PSI_ENDPOINT, params=params).prepare().url


def _validate_specs(specs: list[MetricRequestSpec], api_key: str) -> None:
    if not api_key or not api_key.strip():
        raise InvalidInputError("The PSI API key must be set to use this tool.")
    for i, spec in enumerate(specs):
        if not isinstance(spec, MetricRequestSpec):
            raise InvalidInputError(f"Spec {i} is not a MetricRequestSpec: {spec!r}")
        if not isinstance(spec.device, Device):
            raise InvalidInputError(f"Spec {i} has an invalid device: {spec.device!r}")
        if not spec.url or not str(spec.url).strip():
            raise InvalidInputError(f"Spec {i} has an empty url")


# ---------------------------------------------------------------------------
# Response extraction
# ---------------------------------------------------------------------------

def _extract_field_data(loading_experience: dict, field_map: ResultFieldMap) -> tuple[list, bool, bool]:
    """Return (values, crux_data, origin_fallback) for the field-experience section."""
    metrics = (loading_experience or {}).get("metrics")
    if not metrics:
        return [], False, False

    values = [loading_experience.get("overall_category", NOT_AVAILABLE)]
    for name in field_map.field_metrics:
        metric = metrics.get(name)
        if not metric or metric.get("percentile") is None:
            values.append(NOT_AVAILABLE)
            continue
        percentile = metric["percentile"]
        if name == LAYOUT_SHIFT_METRIC:
            percentile = percentile / 100
        values.append(percentile)

    # Insufficient page-level field data falls back to origin-level data
    origin_fallback = bool(loading_experience.get("origin_fallback"))
    return values, True, origin_fallback


def _failed_audits(audits: dict) -> str:
    """Comma-joined ids of audits scored below 1. A null score means not applicable."""
    failed = [
        name for name, audit in audits.items()
        if isinstance(audit, dict) and audit.get("score") is not None and audit["score"] < 1
    ]
    return ",".join(failed)


def parse_results(content: dict, field_map: ResultFieldMap) -> dict:
    """Extract the configured fields from a successful PSI response.

    Returns a dict with keys data, crux_data, origin_fallback. The data list
    is ordered: screenshot, field data, category scores, lab metrics, failed
    audits, Lighthouse version.

    Raises:
        ParseError: If the result document lacks one of the expected paths.
    """
    try:
        lighthouse = content["lighthouseResult"]
        audits = lighthouse["audits"]
        version = lighthouse["lighthouseVersion"]
        screenshot = audits["final-screenshot"]["details"]["data"]

        categories = []
        for category in field_map.categories:
            score = lighthouse["categories"][category]["score"]
            categories.append(score * 100 if score is not None else NOT_AVAILABLE)

        lab_metrics = [audits[metric]["numericValue"] for metric in field_map.lab_metrics]
    except (KeyError, TypeError) as e:
        raise ParseError(f"Unexpected PageSpeed Insights response: missing {e}") from e

    crux, crux_data, origin_fallback = _extract_field_data(
        content.get("loadingExperience") or {}, field_map
    )

    return {
        "data": [screenshot, *crux, *categories, *lab_metrics, _failed_audits(audits), version],
        "crux_data": crux_data,
        "origin_fallback": origin_fallback,
    }


def _co2_value(content: dict, estimator: Co2Estimator) -> float:
    """CO2e estimate for the response, 0 when the lookup fails."""
    lighthouse = content.get("lighthouseResult", {})
    total_bytes = (
        lighthouse.get("audits", {}).get("total-byte-weight", {}).get("numericValue") or 0
    )
    url = lighthouse.get("finalUrl") or ""
    try:
        return estimator.estimate(total_bytes, url)
    except LookupFailure as e:
        logger.warning("CO2e estimate skipped for %s: %s", url, e)
        return 0


def parse_response(spec: MetricRequestSpec, body: str, field_map: ResultFieldMap,
                   co2_estimator: Co2Estimator | None = None) -> MetricResultRow:
    """Turn one raw response body into a MetricResultRow. Never raises."""
    try:
        content = json.loads(body)
    except (TypeError, ValueError):
        return MetricResultRow(spec=spec, error=PARSE_FAILURE_MESSAGE)

    if not isinstance(content, dict):
        return MetricResultRow(spec=spec, error=PARSE_FAILURE_MESSAGE)

    error = content.get("error")
    if error and not content.get("lighthouseResult"):
        message = error.get("message") if isinstance(error, dict) else str(error)
        return MetricResultRow(spec=spec, error=message or "Unknown PageSpeed Insights error")

    try:
        results = parse_results(content, field_map)
    except ParseError as e:
        return MetricResultRow(spec=spec, error=str(e))

    data = results["data"]
    if co2_estimator is not None:
        data.append(_co2_value(content, co2_estimator))

    return MetricResultRow(
        spec=spec,
        data=data,
        crux_data=results["crux_data"],
        origin_fallback=results["origin_fallback"],
    )


# ---------------------------------------------------------------------------
# Fetching
# ---------------------------------------------------------------------------

def _fetch(url: str, timeout: float) -> str:
    """GET one PSI URL and return the body.

    API-level errors come back as JSON bodies with a non-2xx status and are
    returned for parsing. Only transport failures and retryable statuses raise.
    """
    try:
        resp = requests.get(url, timeout=timeout)
    except requests.RequestException as e:
        raise RemoteRequestError(f"PageSpeed Insights request failed: {e}") from e

    if resp.status_code in RETRYABLE_STATUS:
        raise RemoteRequestError(
            f"PageSpeed Insights returned HTTP {resp.status_code}", resp.text
        )
    return resp.text


def _retry(func, *args, max_retries: int = 1, delay: float = 2.0, **kwargs):
    """Retry a function on RemoteRequestError with exponential backoff."""
    for attempt in range(max_retries + 1):
        try:
            return func(*args, **kwargs)
        except RemoteRequestError as e:
            if attempt < max_retries:
                wait_s = delay * (2 ** attempt)
                logger.info("%s (attempt %d), retrying in %ss", e.args[0], attempt + 1, wait_s)
                time.sleep(wait_s)
            else:
                raise


def _fetch_one(spec: MetricRequestSpec, api_key: str, field_map: ResultFieldMap,
               settings: FetchSettings, co2_estimator: Co2Estimator | None) -> MetricResultRow:
    url = build_request_url(spec, api_key, settings.categories)
    try:
        body = _retry(_fetch, url, settings.request_timeout,
                      max_retries=settings.max_retries, delay=settings.retry_delay)
    except RemoteRequestError as e:
        # A retryable status may still carry a PSI error document
        if len(e.args) > 1 and e.args[1]:
            row = parse_response(spec, e.args[1], field_map)
            if row.is_error and row.error != PARSE_FAILURE_MESSAGE:
                return row
        return MetricResultRow(spec=spec, error=e.args[0])
    return parse_response(spec, body, field_map, co2_estimator)


def fetch_and_parse(
    specs: list[MetricRequestSpec],
    field_map: ResultFieldMap,
    api_key: str,
    include_environmental_impact: bool = False,
    *,
    settings: FetchSettings | None = None,
    co2_estimator: Co2Estimator | None = None,
) -> list[MetricResultRow]:
    """Measure every spec concurrently and return one row per spec, in order.

    Individual failures (transport, API error, bad JSON, unexpected shape,
    batch timeout) are returned as error rows; they never abort the batch.

    Raises:
        InvalidInputError: If the request list or API key is malformed.
    """
    specs = list(specs)
    _validate_specs(specs, api_key)
    if not specs:
        return []

    settings = settings or FetchSettings()
    if include_environmental_impact and co2_estimator is None:
        co2_estimator = Co2Estimator()
    if not include_environmental_impact:
        co2_estimator = None

    results: list[MetricResultRow | None] = [None] * len(specs)
    workers = max(1, min(settings.max_workers, len(specs)))

    executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="psi")
    try:
        futures = {
            executor.submit(_fetch_one, spec, api_key, field_map, settings, co2_estimator): i
            for i, spec in enumerate(specs)
        }
        done, _ = wait(futures, timeout=settings.batch_timeout)

        for future, index in futures.items():
            if future not in done:
                future.cancel()
                results[index] = MetricResultRow(spec=specs[index], error=BATCH_TIMEOUT_MESSAGE)
                continue
            try:
                results[index] = future.result()
            except Exception as e:  # a bug in extraction must not sink the batch
                logger.exception("Unexpected failure measuring %s", specs[index].url)
                results[index] = MetricResultRow(spec=specs[index], error=f"Unexpected error: {e}")
    finally:
        executor.shutdown(wait=settings.batch_timeout is None, cancel_futures=True)

    return results
