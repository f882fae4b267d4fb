"""Configuration model for the QuakeScope viewer."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings

TimeRange = Literal["1hour", "1day", "7days", "30days"]
OutputFormat = Literal["html", "geojson"]


class QuakeScopeConfig(BaseSettings):
    """All tunable parameters for the viewer session.

    Values can be set via constructor arguments, environment variables
    prefixed with QUAKESCOPE_, or defaults.
    """

    model_config = {"env_prefix": "QUAKESCOPE_"}

    request_timeout: int = Field(
        default=30, ge=5, le=300, description="USGS request timeout in seconds."
    )
    event_limit: int = Field(
        default=1000, ge=1, le=20000, description="Maximum events per fetch."
    )
    refresh_interval_s: float = Field(
        default=300.0, gt=0.0, description="Auto-refresh interval in seconds."
    )

    playback_duration_ms: float = Field(
        default=30_000.0, gt=0.0, description="Wall-clock length of a full replay."
    )
    frame_interval_ms: float = Field(
        default=16.0, gt=0.0, le=1000.0, description="Playback frame interval."
    )

    cluster_radius_px: float = Field(
        default=50.0, gt=0.0, description="Proximity clustering radius in pixels."
    )
    recent_window_ms: int = Field(
        default=3_600_000, ge=0, description="Events newer than this pulse on the map."
    )
    initial_zoom: int = Field(default=2, ge=0, le=18, description="Initial map zoom.")
    initial_center: tuple[float, float] = Field(
        default=(20.0, 0.0), description="Initial map center (lat, lng)."
    )

    single_fix_timeout_s: float = Field(
        default=20.0, gt=0.0, description="Provider timeout for the precise fix."
    )
    single_fix_deadline_s: float = Field(
        default=23.0, gt=0.0, description="Hard caller deadline for the precise fix."
    )
    watch_deadline_s: float = Field(
        default=20.0, gt=0.0, description="Hard deadline for the continuous watch."
    )
    ip_lookup_url: str = Field(
        default="https://ipapi.co/json/", description="IP geolocation endpoint."
    )
    ip_lookup_timeout_s: float = Field(
        default=8.0, gt=0.0, description="IP geolocation request timeout."
    )

    openrouter_api_key: str | None = Field(
        default=None, description="API key for generated event summaries."
    )
    summary_model: str = Field(
        default="openai/gpt-oss-20b:free", description="Chat model for summaries."
    )
    summary_timeout_s: float = Field(
        default=8.0, gt=0.0, description="Summary request timeout."
    )
    summary_cache_size: int = Field(
        default=128, ge=1, description="Maximum cached summaries."
    )
    app_url: str | None = Field(default=None, description="Referer sent with summaries.")
    app_title: str | None = Field(default=None, description="Title sent with summaries.")
