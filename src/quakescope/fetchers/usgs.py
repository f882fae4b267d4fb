"""USGS FDSN event fetcher."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Protocol

from requests import RequestException, Session

from quakescope.errors import DataFetchError
from quakescope.http import create_session
from quakescope.models import FilterOptions, SeismicEvent

logger = logging.getLogger(__name__)

FDSN_QUERY_URL = "https://earthquake.usgs.gov/fdsnws/event/1/query"

TIME_RANGES: dict[str, timedelta] = {
    "1hour": timedelta(hours=1),
    "1day": timedelta(days=1),
    "7days": timedelta(days=7),
    "30days": timedelta(days=30),
}


def build_query_params(
    filters: FilterOptions,
    now: datetime | None = None,
    limit: int = 1000,
) -> dict[str, str | float | int]:
    """Translate filter options into FDSN query parameters."""
    end = now or datetime.now(timezone.utc)
    start = end - TIME_RANGES.get(filters.time_range, TIME_RANGES["1day"])
    min_mag, max_mag = filters.magnitude_range
    min_depth, max_depth = filters.depth_range
    return {
        "format": "geojson",
        "starttime": start.strftime("%Y-%m-%dT%H:%M:%S"),
        "endtime": end.strftime("%Y-%m-%dT%H:%M:%S"),
        "minmagnitude": max(0.0, min_mag),
        "maxmagnitude": max_mag,
        "mindepth": min_depth,
        "maxdepth": max_depth,
        "orderby": "time",
        "limit": limit,
    }


def fetch_events(
    filters: FilterOptions | None = None,
    timeout: int = 30,
    limit: int = 1000,
    session: Session | None = None,
    now: datetime | None = None,
) -> list[SeismicEvent]:
    """Fetch events matching *filters* from the USGS FDSN Event Web Service.

    Raises:
        DataFetchError: on network errors, HTTP errors or malformed payloads.
    """
    if session is None:
        session = create_session()
    filters = filters or FilterOptions()
    params = build_query_params(filters, now=now, limit=limit)

    try:
        resp = session.get(FDSN_QUERY_URL, params=params, timeout=timeout)
        resp.raise_for_status()
    except RequestException as exc:
        raise DataFetchError(f"Failed to fetch earthquake data: {exc}") from exc
    try:
        features = resp.json()["features"]
    except (ValueError, KeyError, TypeError) as exc:
        raise DataFetchError(f"Malformed earthquake feed: {exc}") from exc
    if not isinstance(features, list):
        raise DataFetchError("Malformed earthquake feed: features is not a list")

    events: list[SeismicEvent] = []
    for feat in features:
        try:
            events.append(SeismicEvent.from_geojson_feature(feat))
        except (TypeError, ValueError, IndexError, AttributeError):
            logger.debug("Skipping malformed feature %r", feat.get("id") if isinstance(feat, dict) else feat)
    logger.debug("Fetched %d events (%s)", len(events), filters.time_range)
    return events


class EventSource(Protocol):
    """Anything that can supply events for a set of filters."""

    async def fetch_events(self, filters: FilterOptions) -> list[SeismicEvent]: ...


class UsgsEventSource:
    """Async event source backed by :func:`fetch_events` on a worker thread."""

    def __init__(
        self,
        timeout: int = 30,
        limit: int = 1000,
        session: Session | None = None,
    ) -> None:
        self._timeout = timeout
        self._limit = limit
        self._session = session or create_session()

    async def fetch_events(self, filters: FilterOptions) -> list[SeismicEvent]:
        return await asyncio.to_thread(
            fetch_events,
            filters,
            timeout=self._timeout,
            limit=self._limit,
            session=self._session,
        )
