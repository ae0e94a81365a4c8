"""Lightweight reverse geocoding helpers using OpenStreetMap Nominatim.

Turning GPS coordinates into an address is an optional enrichment for
captions: every failure returns None and the caption simply has no place
line. Addresses are persisted per file by the view-count ledger, so each
photo is looked up at most once.
"""

from __future__ import annotations

import logging
import re
import threading
import time
from functools import lru_cache
from typing import Any, Optional

import requests

from settings import settings

NOMINATIM_BASE_URL = "https://nominatim.openstreetmap.org/reverse"
logger = logging.getLogger(__name__)
_session = requests.Session()
_last_request_ts: float = 0.0
_lock = threading.Lock()
_MIN_INTERVAL_SEC = settings.NOMINATIM_MIN_INTERVAL
_logged_ua = False
NOMINATIM_USER_AGENT = settings.NOMINATIM_USER_AGENT

FALLBACK_UA = "photo-frame/0.1 (contact: example@example.com)"

# Addresses shorter than this stay on one caption line.
SINGLE_LINE_MAX = 40


def _redact_email(ua: str) -> str:
    if "@" not in ua:
        return ua
    return re.sub(r"\S+@\S+", "<redacted>", ua)


_ua_value = NOMINATIM_USER_AGENT or FALLBACK_UA
NOMINATIM_HEADERS = {
    "User-Agent": _ua_value,
}


def _round_coord(value: float, decimals: int = 5) -> float:
    """Round coordinates before lookup to limit request diversity."""
    return round(value, decimals)


def _throttled_get(
    url: str,
    *,
    params: dict[str, Any],
    headers: dict[str, str],
    timeout: float,
) -> requests.Response:
    """Perform a GET request with a simple global rate limit."""
    global _last_request_ts
    with _lock:
        now = time.time()
        delta = now - _last_request_ts
        if delta < _MIN_INTERVAL_SEC:
            time.sleep(_MIN_INTERVAL_SEC - delta)
        _last_request_ts = time.time()
    return _session.get(url, params=params, headers=headers, timeout=timeout)


@lru_cache(maxsize=512)
def reverse_geocode_address(lat: float, lon: float) -> Optional[str]:
    """Reverse geocode a coordinate into a human readable address.

    Returns None on network or parsing errors.
    """
    lat_r = _round_coord(lat)
    lon_r = _round_coord(lon)

    global _logged_ua
    if not _logged_ua:
        if NOMINATIM_USER_AGENT is None:
            logger.warning(
                "NOMINATIM_USER_AGENT not set in environment; using fallback UA. "
                "This may violate Nominatim usage policy."
            )
        logger.debug("Nominatim User-Agent: %s", _redact_email(_ua_value))
        _logged_ua = True

    params = {
        "format": "jsonv2",
        "lat": str(lat_r),
        "lon": str(lon_r),
        "zoom": "18",
        "addressdetails": "0",
    }

    try:
        resp = _throttled_get(
            NOMINATIM_BASE_URL, params=params, headers=NOMINATIM_HEADERS, timeout=5.0
        )
    except Exception as exc:
        logger.warning(
            "Nominatim reverse geocode error for lat=%s lon=%s: %s", lat_r, lon_r, exc
        )
        return None

    if resp is None:
        return None

    try:
        data = resp.json()
    except Exception as exc:
        logger.warning(
            "Nominatim reverse geocode JSON error for lat=%s lon=%s: %s",
            lat_r,
            lon_r,
            exc,
        )
        return None

    if not isinstance(data, dict):
        return None
    address = data.get("display_name")
    if not isinstance(address, str) or not address.strip():
        return None
    return address.strip()


def format_location(location: str) -> str:
    """Break a long comma-separated address over two lines.

    Parts are collected from the end until the tail would exceed half the
    address; everything before that goes on the first line.
    """
    if len(location) < SINGLE_LINE_MAX:
        return location

    parts = [p.strip() for p in location.split(",") if p.strip()]
    if len(parts) < 2:
        return location
    max_length = len(location) // 2
    formatted = ""
    for i in range(len(parts) - 1, -1, -1):
        if len(formatted + parts[i]) > max_length:
            return ", ".join(parts[: i + 1]) + ",\n" + formatted
        formatted = parts[i] if not formatted else f"{parts[i]}, {formatted}"
    return formatted
