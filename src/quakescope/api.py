"""FastAPI wrapper serving map snapshots, events and insights."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Annotated, Any

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response

from quakescope import __version__
from quakescope.config import OutputFormat, QuakeScopeConfig, TimeRange
from quakescope.errors import DataFetchError
from quakescope.exporters import build_feature_collection, render_html
from quakescope.fetchers.usgs import UsgsEventSource
from quakescope.geolocation import FixedPositionProvider
from quakescope.models import FilterOptions
from quakescope.summary import SummaryCache, SummaryService
from quakescope.viewer import MapSnapshot, take_snapshot

logger = logging.getLogger(__name__)

_CONTENT_TYPES: dict[str, str] = {
    "geojson": "application/geo+json",
    "html": "text/html; charset=utf-8",
}


@asynccontextmanager
async def lifespan(application: FastAPI) -> AsyncGenerator[None, None]:
    """Build shared clients and startup state for the /health endpoint."""
    config = QuakeScopeConfig()
    application.state.config = config
    application.state.source = UsgsEventSource(
        timeout=config.request_timeout, limit=config.event_limit
    )
    application.state.summaries = SummaryService(
        config.openrouter_api_key,
        model=config.summary_model,
        timeout=config.summary_timeout_s,
        app_url=config.app_url,
        app_title=config.app_title,
        cache=SummaryCache(config.summary_cache_size),
    )
    application.state.start_time = datetime.now(tz=timezone.utc)
    application.state.last_fetch = None
    application.state.fetch_count = 0
    yield


app = FastAPI(
    title="QuakeScope API",
    description="Real-time earthquake map snapshots and seismic insights.",
    version=__version__,
    lifespan=lifespan,
)


@app.exception_handler(DataFetchError)
async def _data_fetch_error(request: Request, exc: DataFetchError) -> JSONResponse:
    logger.error("Event fetch failed: %s", exc)
    return JSONResponse(status_code=502, content={"detail": f"Upstream data error: {exc}"})


def filter_params(
    time_range: Annotated[
        TimeRange, Query(alias="range", description="Time window."),
    ] = "1day",
    min_magnitude: Annotated[
        float, Query(ge=0.0, le=10.0, description="Minimum magnitude."),
    ] = 0.0,
    max_magnitude: Annotated[
        float, Query(ge=0.0, le=10.0, description="Maximum magnitude."),
    ] = 10.0,
    min_depth: Annotated[
        float, Query(ge=0.0, le=700.0, description="Minimum depth in km."),
    ] = 0.0,
    max_depth: Annotated[
        float, Query(ge=0.0, le=700.0, description="Maximum depth in km."),
    ] = 700.0,
    heatmap: Annotated[
        bool, Query(description="Overlay a heatmap."),
    ] = False,
    clusters: Annotated[
        bool, Query(description="Group nearby events."),
    ] = False,
) -> FilterOptions:
    """Query parameters shared by every endpoint that fetches events."""
    if min_magnitude > max_magnitude or min_depth > max_depth:
        raise HTTPException(status_code=422, detail="Range minimum exceeds maximum")
    return FilterOptions(
        time_range=time_range,
        magnitude_range=(min_magnitude, max_magnitude),
        depth_range=(min_depth, max_depth),
        show_heatmap=heatmap,
        show_clusters=clusters,
    )


Filters = Annotated[FilterOptions, Depends(filter_params)]


async def _snapshot(
    filters: FilterOptions,
    *,
    progress: float | None = None,
    lat: float | None = None,
    lng: float | None = None,
) -> MapSnapshot:
    provider = FixedPositionProvider(lat, lng) if lat is not None and lng is not None else None
    snap = await take_snapshot(
        app.state.source,
        filters,
        config=app.state.config,
        position_provider=provider,
        locate=provider is not None,
        progress=progress,
    )
    app.state.last_fetch = datetime.now(tz=timezone.utc)
    app.state.fetch_count += 1
    return snap


@app.get("/health")
def health() -> dict[str, Any]:
    """Server health check with uptime, version, and fetch count."""
    now = datetime.now(tz=timezone.utc)
    return {
        "status": "ok",
        "version": __version__,
        "uptime_seconds": round((now - app.state.start_time).total_seconds(), 1),
        "last_fetch": app.state.last_fetch.isoformat() if app.state.last_fetch else None,
        "fetch_count": app.state.fetch_count,
        "cached_summaries": len(app.state.summaries.cache),
    }


@app.get("/events")
async def get_events(
    filters: Filters,
    progress: Annotated[
        float | None, Query(ge=0.0, le=1.0, description="Timeline position."),
    ] = None,
) -> dict[str, Any]:
    """Events matching the filters, cut off at the timeline position if given."""
    snap = await _snapshot(filters, progress=progress)
    return {
        "count": len(snap.visible),
        "total": len(snap.events),
        "events": [asdict(eq) for eq in snap.visible],
    }


@app.get("/stats")
async def get_stats(filters: Filters) -> dict[str, Any]:
    """Aggregate statistics for the insights panel."""
    snap = await _snapshot(filters)
    return asdict(snap.stats)


@app.get("/map")
async def get_map(
    filters: Filters,
    format: Annotated[
        OutputFormat, Query(description="Output format."),
    ] = "html",
    progress: Annotated[
        float | None, Query(ge=0.0, le=1.0, description="Timeline position."),
    ] = None,
    lat: Annotated[
        float | None, Query(ge=-90.0, le=90.0, description="User latitude."),
    ] = None,
    lng: Annotated[
        float | None, Query(ge=-180.0, le=180.0, description="User longitude."),
    ] = None,
) -> Response:
    """Render the map once and return it as HTML or GeoJSON.

    ``lat``/``lng`` place the user marker and add nearest-event impact.
    """
    if (lat is None) != (lng is None):
        raise HTTPException(status_code=422, detail="lat and lng must be given together")
    snap = await _snapshot(filters, progress=progress, lat=lat, lng=lng)
    if format == "geojson":
        return JSONResponse(
            content=build_feature_collection(
                snap.visible, user_location=snap.user_location, nearest=snap.nearest
            ),
            media_type=_CONTENT_TYPES["geojson"],
        )
    content = render_html(
        snap.layers,
        snap.visible,
        snap.stats,
        center=snap.center,
        zoom=snap.zoom,
        nearest=snap.nearest,
    )
    return Response(content=content, media_type=_CONTENT_TYPES["html"])


@app.get("/events/{event_id}/summary")
async def get_summary(
    event_id: str,
    time_range: Annotated[
        TimeRange, Query(alias="range", description="Time window to search for the event."),
    ] = "30days",
    force: Annotated[
        bool, Query(description="Regenerate instead of using the cache."),
    ] = False,
) -> dict[str, Any]:
    """Short plain-language summary of one event."""
    events = await app.state.source.fetch_events(FilterOptions(time_range=time_range))
    event = next((eq for eq in events if eq.id == event_id), None)
    if event is None:
        raise HTTPException(status_code=404, detail=f"Unknown event: {event_id}")
    text = await asyncio.to_thread(app.state.summaries.summarize, event, force)
    return {"id": event.id, "summary": text}
