"""Tests for the CO2e model and green-hosting lookup."""

import time
from concurrent.futures import ThreadPoolExecutor

import pytest
import requests

import sustainability
from errors import LookupFailure
from sustainability import Co2Estimator, check_green_hosting, co2_per_byte


class TestCo2PerByte:
    def test_one_gigabyte_grey_hosting(self):
        # 0.81 kWh at 442 g/kWh across every segment
        assert co2_per_byte(1_000_000_000) == pytest.approx(0.81 * 442)

    def test_green_hosting_only_discounts_data_centre(self):
        grey = co2_per_byte(1_000_000_000)
        green = co2_per_byte(1_000_000_000, green=True)
        assert grey - green == pytest.approx(0.81 * 0.15 * (442 - 50))

    def test_zero_bytes(self):
        assert co2_per_byte(0) == 0


class TestGreenCheck:
    def test_green_host(self, monkeypatch, fake_response):
        seen = []

        def get(url, timeout=None):
            seen.append(url)
            return fake_response({"url": "a.example", "green": True})

        monkeypatch.setattr(sustainability.requests, "get", get)
        assert check_green_hosting("https://a.example/page?x=1") is True
        assert seen == ["https://api.thegreenwebfoundation.org/greencheck/a.example"]

    def test_grey_host(self, monkeypatch, fake_response):
        monkeypatch.setattr(sustainability.requests, "get",
                            lambda url, timeout=None: fake_response({"green": False}))
        assert check_green_hosting("https://a.example") is False

    def test_no_hostname(self):
        with pytest.raises(LookupFailure):
            check_green_hosting("not a url")

    def test_http_error(self, monkeypatch, fake_response):
        monkeypatch.setattr(sustainability.requests, "get",
                            lambda url, timeout=None: fake_response("", 500))
        with pytest.raises(LookupFailure):
            check_green_hosting("https://a.example")

    def test_transport_error(self, monkeypatch):
        def get(url, timeout=None):
            raise requests.Timeout("slow")

        monkeypatch.setattr(sustainability.requests, "get", get)
        with pytest.raises(LookupFailure):
            check_green_hosting("https://a.example")

    def test_invalid_json(self, monkeypatch, fake_response):
        monkeypatch.setattr(sustainability.requests, "get",
                            lambda url, timeout=None: fake_response("<html>", 200))
        with pytest.raises(LookupFailure):
            check_green_hosting("https://a.example")


class TestCo2Estimator:
    def test_caches_per_host(self, monkeypatch):
        calls = []

        def check(url, timeout=10.0):
            calls.append(url)
            return True

        monkeypatch.setattr(sustainability, "check_green_hosting", check)
        estimator = Co2Estimator()
        first = estimator.estimate(1_000_000, "https://a.example/one")
        second = estimator.estimate(1_000_000, "https://a.example/two")
        assert first == second == co2_per_byte(1_000_000, green=True)
        assert len(calls) == 1

    def test_without_url_assumes_grey(self, monkeypatch):
        monkeypatch.setattr(sustainability, "check_green_hosting",
                            lambda url, timeout=10.0: pytest.fail("no lookup expected"))
        assert Co2Estimator().estimate(1_000_000) == co2_per_byte(1_000_000)

    def test_concurrent_callers_share_one_lookup(self, monkeypatch):
        calls = []

        def check(url, timeout=10.0):
            calls.append(url)
            time.sleep(0.05)
            return False

        monkeypatch.setattr(sustainability, "check_green_hosting", check)
        estimator = Co2Estimator()
        urls = [f"https://a.example/page{i}" for i in range(8)]
        with ThreadPoolExecutor(max_workers=8) as pool:
            answers = list(pool.map(estimator.is_green, urls))

        assert answers == [False] * 8
        assert len(calls) == 1
