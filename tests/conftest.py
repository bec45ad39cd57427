"""Shared pytest fixtures."""

import copy
import json
import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest


EXECUTION_DIR = Path(__file__).resolve().parents[1] / "execution"
if str(EXECUTION_DIR) not in sys.path:
    sys.path.insert(0, str(EXECUTION_DIR))


SCREENSHOT = "data:image/jpeg;base64,/9j/4AAQSkZJRgABAQAAAQABAAD"

_PSI_RESPONSE = {
    "lighthouseResult": {
        "lighthouseVersion": "11.0.0",
        "finalUrl": "https://a.example/",
        "categories": {
            "performance": {"score": 0.5},
            "best-practices": {"score": 1},
        },
        "audits": {
            "final-screenshot": {"details": {"data": SCREENSHOT}},
            "server-response-time": {"score": 1, "numericValue": 120.5},
            "first-contentful-paint": {"score": 0.9, "numericValue": 1400},
            "largest-contentful-paint": {"score": 0.6, "numericValue": 2900},
            "total-blocking-time": {"score": 1, "numericValue": 40},
            "cumulative-layout-shift": {"score": 1, "numericValue": 0.02},
            "total-byte-weight": {"score": 1, "numericValue": 1_000_000_000},
            "uses-http2": {"score": None},
            "font-display": {"score": 0},
        },
    },
    "loadingExperience": {},
}

_FIELD_DATA = {
    "overall_category": "AVERAGE",
    "metrics": {
        "FIRST_CONTENTFUL_PAINT_MS": {"percentile": 1800},
        "LARGEST_CONTENTFUL_PAINT_MS": {"percentile": 2600},
        "FIRST_INPUT_DELAY_MS": {"percentile": 20},
        "CUMULATIVE_LAYOUT_SHIFT_SCORE": {"percentile": 1500},
        "INTERACTION_TO_NEXT_PAINT": {"percentile": 180},
    },
}


@pytest.fixture
def psi_response():
    """Factory for PageSpeed Insights v5 response documents."""
    def make(field_data: bool = False, origin_fallback: bool = False, **overrides) -> dict:
        response = copy.deepcopy(_PSI_RESPONSE)
        if field_data:
            response["loadingExperience"] = copy.deepcopy(_FIELD_DATA)
            if origin_fallback:
                response["loadingExperience"]["origin_fallback"] = True
        response.update(overrides)
        return response
    return make


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, body, status_code: int = 200) -> None:
        self.text = body if isinstance(body, str) else json.dumps(body)
        self.status_code = status_code

    def json(self):
        return json.loads(self.text)

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            import requests
            raise requests.HTTPError(f"HTTP {self.status_code}")


@pytest.fixture
def fake_response():
    return FakeResponse


@pytest.fixture
def sheets_service():
    """MagicMock shaped like a Sheets v4 resource. Set execute return values per test."""
    return MagicMock(name="sheets")


@pytest.fixture
def slides_service():
    return MagicMock(name="slides")


@pytest.fixture
def drive_service():
    return MagicMock(name="drive")


def values_get(service: MagicMock) -> MagicMock:
    """The execute() mock behind spreadsheets().values().get(...)."""
    return service.spreadsheets.return_value.values.return_value.get.return_value.execute
