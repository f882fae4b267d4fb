"""CLI interface using Typer."""

from __future__ import annotations

import asyncio
import colorsys
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, TextColumn, TimeElapsedColumn
from rich.table import Table

from quakescope import __version__
from quakescope.config import OutputFormat, QuakeScopeConfig, TimeRange
from quakescope.errors import DataFetchError
from quakescope.exporters import export_geojson, export_html
from quakescope.fetchers.usgs import UsgsEventSource
from quakescope.geolocation import FixedPositionProvider, NullPositionProvider
from quakescope.models import FilterOptions, Notification
from quakescope.playback import PlaybackStatus
from quakescope.stats import DEPTH_LABELS, DepthBand
from quakescope.styles import BAND_LABELS, MagnitudeBand, legend_entries
from quakescope.surface import InMemorySurface
from quakescope.viewer import MapSnapshot, QuakeScopeViewer, take_snapshot

app = typer.Typer(
    name="quakescope",
    help="Real-time earthquake map snapshots, replays and insights.",
    add_completion=False,
)
console = Console()


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"quakescope {__version__}")
        raise typer.Exit()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[logging.StreamHandler()],
    )


def _print_notification(note: Notification) -> None:
    color = "red" if note.level == "error" else "cyan"
    console.print(f"[{color}]{note.title}:[/{color}] {note.description}")


def _format_time(time_ms: int) -> str:
    return datetime.fromtimestamp(time_ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M UTC")


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=_version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """QuakeScope: real-time seismic event map viewer."""


@app.command()
def snapshot(
    time_range: Annotated[
        TimeRange,
        typer.Option("--range", "-r", help="Time window: 1hour, 1day, 7days, 30days."),
    ] = "1day",
    min_magnitude: Annotated[
        float,
        typer.Option("--min-magnitude", "-m", help="Minimum magnitude."),
    ] = 0.0,
    max_magnitude: Annotated[
        float,
        typer.Option("--max-magnitude", help="Maximum magnitude."),
    ] = 10.0,
    min_depth: Annotated[
        float,
        typer.Option("--min-depth", help="Minimum depth in km."),
    ] = 0.0,
    max_depth: Annotated[
        float,
        typer.Option("--max-depth", help="Maximum depth in km."),
    ] = 700.0,
    heatmap: Annotated[
        bool,
        typer.Option("--heatmap", help="Overlay a magnitude-weighted heatmap."),
    ] = False,
    clusters: Annotated[
        bool,
        typer.Option("--clusters", help="Group nearby events into clusters."),
    ] = False,
    progress: Annotated[
        float | None,
        typer.Option("--progress", "-p", min=0.0, max=1.0, help="Timeline position (0-1)."),
    ] = None,
    locate: Annotated[
        bool,
        typer.Option("--locate", help="Estimate your location from your network address."),
    ] = False,
    lat: Annotated[
        float | None,
        typer.Option("--lat", help="Your latitude (skips network lookup)."),
    ] = None,
    lng: Annotated[
        float | None,
        typer.Option("--lng", help="Your longitude (skips network lookup)."),
    ] = None,
    output: Annotated[
        Path,
        typer.Option("--output", "-o", help="Output file path."),
    ] = Path("quakescope_map.html"),
    output_format: Annotated[
        OutputFormat,
        typer.Option("--format", "-f", help="Output format: html or geojson."),
    ] = "html",
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose logging."),
    ] = False,
) -> None:
    """Fetch events, render the map once and export it."""
    _setup_logging(verbose)
    if (lat is None) != (lng is None):
        console.print("[red]--lat and --lng must be given together.[/red]")
        raise typer.Exit(code=2)

    config = QuakeScopeConfig()
    filters = FilterOptions(
        time_range=time_range,
        magnitude_range=(min_magnitude, max_magnitude),
        depth_range=(min_depth, max_depth),
        show_heatmap=heatmap,
        show_clusters=clusters,
    )
    provider = (
        FixedPositionProvider(lat, lng) if lat is not None and lng is not None
        else NullPositionProvider()
    )
    source = UsgsEventSource(timeout=config.request_timeout, limit=config.event_limit)

    try:
        snap = asyncio.run(take_snapshot(
            source,
            filters,
            config=config,
            position_provider=provider,
            locate=locate or lat is not None,
            progress=progress,
            notify=_print_notification,
        ))
    except DataFetchError as exc:
        console.print(f"[red]Fetch failed:[/red] {exc}")
        raise typer.Exit(code=1) from None

    if output_format == "html":
        export_html(
            snap.layers,
            snap.visible,
            snap.stats,
            output,
            center=snap.center,
            zoom=snap.zoom,
            nearest=snap.nearest,
        )
    else:
        export_geojson(snap.visible, output, user_location=snap.user_location, nearest=snap.nearest)

    _print_stats(snap)
    console.print(f"\n{output_format.upper()} written to [bold]{output}[/bold]")


def _print_stats(snap: MapSnapshot) -> None:
    stats = snap.stats
    console.print()
    table = Table(title="Seismic Insights")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Events", str(stats.total_count))
    table.add_row("Shown", str(len(snap.visible)))
    table.add_row("Largest", f"M{stats.largest_magnitude:.1f}")
    table.add_row("Average", f"M{stats.average_magnitude:.2f}")
    table.add_row("Depth range", f"{stats.shallowest_depth_km:.1f}-{stats.deepest_depth_km:.1f} km")
    if stats.total_count:
        table.add_row("Most recent", _format_time(stats.most_recent_time_ms))
    for band in MagnitudeBand:
        table.add_row(BAND_LABELS[band], str(stats.magnitude_distribution[band.value]))
    for depth in DepthBand:
        table.add_row(DEPTH_LABELS[depth], str(stats.depth_distribution[depth.value]))
    console.print(table)

    if snap.nearest is not None:
        eq = snap.nearest.event
        approx = " (approximate location)" if snap.user_location and snap.user_location.approximate else ""
        console.print(
            f"\nNearest: [bold]M{eq.magnitude:.1f}[/bold] {eq.place}, "
            f"{snap.nearest.distance_km} km away{approx}. "
            f"Estimated impact: [bold]{snap.nearest.impact.value}[/bold]"
        )


@app.command()
def replay(
    time_range: Annotated[
        TimeRange,
        typer.Option("--range", "-r", help="Time window: 1hour, 1day, 7days, 30days."),
    ] = "1day",
    min_magnitude: Annotated[
        float,
        typer.Option("--min-magnitude", "-m", help="Minimum magnitude."),
    ] = 2.5,
    duration: Annotated[
        float,
        typer.Option("--duration", "-d", min=0.5, help="Replay length in seconds."),
    ] = 10.0,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose logging."),
    ] = False,
) -> None:
    """Replay the selected window chronologically in the terminal."""
    _setup_logging(verbose)
    config = QuakeScopeConfig(playback_duration_ms=duration * 1000)
    filters = FilterOptions(time_range=time_range, magnitude_range=(min_magnitude, 10.0))
    source = UsgsEventSource(timeout=config.request_timeout, limit=config.event_limit)
    code = asyncio.run(_replay(source, filters, config))
    if code:
        raise typer.Exit(code=code)


async def _replay(source: UsgsEventSource, filters: FilterOptions, config: QuakeScopeConfig) -> int:
    viewer = QuakeScopeViewer(
        InMemorySurface(zoom=config.initial_zoom, center=config.initial_center),
        source,
        config=config,
        filters=filters,
        notify=_print_notification,
    )
    try:
        if not await viewer.refresh():
            return 1
        if not viewer.events:
            console.print("[yellow]No events in the selected window.[/yellow]")
            return 0
        total = len(viewer.events)
        viewer.toggle_playback()
        with Progress(
            TextColumn("[bold]{task.description}"),
            BarColumn(),
            TextColumn("{task.fields[shown]}/{task.fields[events]} events"),
            TimeElapsedColumn(),
            console=console,
        ) as bar:
            task = bar.add_task("Replaying", total=1.0, shown=0, events=total)
            while viewer.playback.status is PlaybackStatus.RUNNING:
                await asyncio.sleep(0.1)
                bar.update(task, completed=viewer.playback.progress, shown=len(viewer.visible_events()))
            bar.update(task, completed=1.0, shown=len(viewer.visible_events()))
        for eq in sorted(viewer.events, key=lambda e: e.time_ms)[-5:]:
            console.print(f"  {_format_time(eq.time_ms)}  M{eq.magnitude:.1f}  {eq.place}")
        return 0
    finally:
        viewer.close()


@app.command()
def legend() -> None:
    """Print the magnitude legend used on the map."""
    table = Table(title="Magnitude Legend")
    table.add_column("Band", style="bold")
    table.add_column("Color")
    table.add_column("Radius", justify="right")
    for label, style in legend_entries():
        table.add_row(label, f"[{_rich_color(style.color)}]●[/] {style.color}", str(style.radius))
    console.print(table)


def _rich_color(hsl: str) -> str:
    """Approximate an ``hsl(h, s%, l%)`` color as a Rich hex color."""
    h, s, lum = (float(part.strip(" %")) for part in hsl[hsl.index("(") + 1:-1].split(","))
    r, g, b = colorsys.hls_to_rgb(h / 360, lum / 100, s / 100)
    return f"#{round(r * 255):02x}{round(g * 255):02x}{round(b * 255):02x}"
