"""Network-based (IP) geolocation lookup."""

from __future__ import annotations

import logging
import math

from requests import RequestException, Session

from quakescope.http import create_session
from quakescope.models import UserLocation

logger = logging.getLogger(__name__)

IPAPI_URL = "https://ipapi.co/json/"


def _coordinate(value: object, limit: float) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    value = float(value)
    if not math.isfinite(value) or abs(value) > limit:
        return None
    return value


def parse_ip_location(payload: object) -> UserLocation | None:
    """Extract an approximate location from an ipapi-style JSON payload.

    Only numeric, in-range ``latitude``/``longitude`` values are accepted.
    """
    if not isinstance(payload, dict):
        return None
    lat = _coordinate(payload.get("latitude"), 90.0)
    lng = _coordinate(payload.get("longitude"), 180.0)
    if lat is None or lng is None:
        return None
    return UserLocation(lat=lat, lng=lng, approximate=True)


def lookup_ip_location(
    url: str = IPAPI_URL,
    timeout: float = 8.0,
    session: Session | None = None,
) -> UserLocation | None:
    """Look up the caller's approximate position from its public IP.

    Returns None on any network, HTTP or payload failure (non-fatal).
    """
    if session is None:
        session = create_session(retries=0)
    try:
        resp = session.get(url, timeout=timeout)
        if resp.status_code != 200:
            logger.debug("IP lookup returned HTTP %d", resp.status_code)
            return None
        payload = resp.json()
    except (RequestException, ValueError):
        logger.debug("IP lookup failed", exc_info=True)
        return None
    return parse_ip_location(payload)
