"""CO2e estimation for page weight, with a green-hosting lookup.

Uses the Sustainable Web Design (v3) per-byte model and The Green Web
Foundation's greencheck API to decide whether the data centre segment runs
on renewable energy.
"""

import logging
import threading
from urllib.parse import urlparse

import requests

from errors import LookupFailure

logger = logging.getLogger(__name__)

GREENCHECK_API = "https://api.thegreenwebfoundation.org/greencheck"

# Sustainable Web Design model constants
KWH_PER_GB = 0.81
GLOBAL_GRID_INTENSITY = 442      # g CO2e / kWh
RENEWABLES_GRID_INTENSITY = 50   # g CO2e / kWh

# Share of the energy per segment of the system
CONSUMER_DEVICE_SHARE = 0.52
NETWORK_SHARE = 0.14
DATA_CENTER_SHARE = 0.15
PRODUCTION_SHARE = 0.19


def co2_per_byte(total_bytes: float, green: bool = False) -> float:
    """Estimate grams of CO2e for transferring total_bytes.

    Only the data centre segment benefits from green hosting; every other
    segment uses the global grid intensity.
    """
    energy = total_bytes / 1_000_000_000 * KWH_PER_GB

    data_center_intensity = RENEWABLES_GRID_INTENSITY if green else GLOBAL_GRID_INTENSITY

    consumer = energy * CONSUMER_DEVICE_SHARE * GLOBAL_GRID_INTENSITY
    network = energy * NETWORK_SHARE * GLOBAL_GRID_INTENSITY
    data_center = energy * DATA_CENTER_SHARE * data_center_intensity
    production = energy * PRODUCTION_SHARE * GLOBAL_GRID_INTENSITY

    return consumer + network + data_center + production


def check_green_hosting(url: str, timeout: float = 10.0) -> bool:
    """Return True if the URL's host is listed as a green hosting provider.

    Raises:
        LookupFailure: If the hostname cannot be derived, the request fails
            or the response cannot be read.
    """
    hostname = urlparse(url).hostname
    if not hostname:
        raise LookupFailure(f"Cannot derive a hostname from {url!r}")

    try:
        resp = requests.get(f"{GREENCHECK_API}/{hostname}", timeout=timeout)
        resp.raise_for_status()
        payload = resp.json()
    except requests.RequestException as e:
        raise LookupFailure(f"Green hosting lookup failed for {hostname}: {e}") from e
    except ValueError as e:
        raise LookupFailure(f"Green hosting lookup returned invalid JSON for {hostname}") from e

    return bool(payload.get("green", False))


class Co2Estimator:
    """Estimate CO2e per page load, caching green-hosting answers per host."""

    def __init__(self, timeout: float = 10.0) -> None:
        self.timeout = timeout
        self._green_cache: dict[str, bool] = {}
        # PSI workers share one estimator; one lookup per host
        self._lock = threading.Lock()

    def is_green(self, url: str) -> bool:
        hostname = urlparse(url).hostname or url
        with self._lock:
            if hostname not in self._green_cache:
                self._green_cache[hostname] = check_green_hosting(url, timeout=self.timeout)
            return self._green_cache[hostname]

    def estimate(self, total_bytes: float, url: str = "") -> float:
        """CO2e in grams for total_bytes served from url.

        Raises LookupFailure when the green-hosting check fails.
        """
        green = self.is_green(url) if url else False
        return co2_per_byte(total_bytes, green)
