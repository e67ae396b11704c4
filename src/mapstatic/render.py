"""Render orchestration: resolve the view, then draw tiles, markers and overlay."""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import Iterable, Sequence

import requests

from .attribution import create_attribution_svg
from .cache import TileCache
from .compositor import (
    Viewport,
    circle_to_svg,
    draw_layer,
    draw_markers,
    draw_svg,
    line_to_svg,
    multipolygon_to_svg,
    text_to_svg,
)
from .config import AppConfig, RenderOptions
from .errors import EmptyMapError, MapRenderError
from .extent import ExtentResolver, extent_is_valid
from .image import Canvas
from .models import Bound, Circle, FeatureSet, Marker, MultiPolygon, Polyline, Text
from .projection import lat_to_y, lon_to_x
from .tiles import TileFetcher


_LOGGER = logging.getLogger("mapstatic.render")


class RenderStage(IntEnum):
    EMPTY = 0
    EXTENT_RESOLVED = 1
    TILES_DRAWN = 2
    MARKERS_DRAWN = 3
    OVERLAY_DRAWN = 4


@dataclass(slots=True)
class RenderState:
    """Mutable bookkeeping owned by a single ``render()`` call."""

    features: FeatureSet
    center: tuple[float, ...] | None = None
    stage: RenderStage = RenderStage.EMPTY
    zoom: int | None = None
    center_x: float = 0.0
    center_y: float = 0.0
    canvas: Canvas | None = None
    tiles_requested: int = 0
    tiles_drawn: int = 0
    markers_drawn: int = 0

    def advance(self, stage: RenderStage) -> None:
        if stage != self.stage + 1:
            raise RuntimeError(f"Render stage {stage.name} cannot follow {self.stage.name}")
        self.stage = stage


@dataclass(frozen=True, slots=True)
class RenderResult:
    canvas: Canvas
    zoom: int
    center: tuple[float, float]
    center_x: float
    center_y: float
    tiles_requested: int
    tiles_drawn: int
    markers_drawn: int


class StaticMap:
    """Collect features and render them over raster tiles.

    Features added here are snapshotted at the start of each ``render()``,
    so one instance can be rendered repeatedly, including from several
    threads sharing the same tile cache.

    Pass ``cache`` to share tiles between instances, or ``fetcher`` to supply
    a fully configured one; a fetcher already owns its cache.
    """

    def __init__(
        self,
        options: RenderOptions,
        *,
        cache: TileCache | None = None,
        fetcher: TileFetcher | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.options = options
        if fetcher is not None and cache is not None:
            raise ValueError("Pass either cache or fetcher, not both; a fetcher brings its own cache")
        if fetcher is None:
            fetcher = TileFetcher(
                cache if cache is not None else TileCache(),
                headers=options.tile_request_headers,
                timeout_s=options.tile_request_timeout_s,
                request_limit=options.tile_request_limit,
            )
        self.fetcher = fetcher
        self.cache = fetcher.cache
        self._rng = rng
        self._markers: list[Marker] = []
        self._lines: list[Polyline] = []
        self._multipolygons: list[MultiPolygon] = []
        self._circles: list[Circle] = []
        self._texts: list[Text] = []
        self._bounds: list[Bound] = []

    def add_marker(self, marker: Marker) -> None:
        self._markers.append(marker)

    def add_line(self, line: Polyline) -> None:
        self._lines.append(line)

    def add_polygon(self, polygon: Polyline) -> None:
        if not polygon.is_polygon:
            _LOGGER.debug("Polygon ring is open; drawing it as a polyline")
        self._lines.append(polygon)

    def add_multipolygon(self, multipolygon: MultiPolygon) -> None:
        self._multipolygons.append(multipolygon)

    def add_circle(self, circle: Circle) -> None:
        self._circles.append(circle)

    def add_text(self, text: Text) -> None:
        self._texts.append(text)

    def add_bound(self, bound: Bound) -> None:
        self._bounds.append(bound)

    def add_features(self, features: FeatureSet) -> None:
        self._markers.extend(features.markers)
        self._lines.extend(features.lines)
        self._multipolygons.extend(features.multipolygons)
        self._circles.extend(features.circles)
        self._texts.extend(features.texts)
        self._bounds.extend(features.bounds)

    def features(self) -> FeatureSet:
        return FeatureSet(
            markers=tuple(self._markers),
            lines=tuple(self._lines),
            multipolygons=tuple(self._multipolygons),
            circles=tuple(self._circles),
            texts=tuple(self._texts),
            bounds=tuple(self._bounds),
        )

    def render(self, center: Sequence[float] | None = None, zoom: int | None = None) -> RenderResult:
        opts = self.options
        if center is None:
            center = opts.center
        if zoom is None:
            zoom = opts.zoom

        state = RenderState(features=self.features(), center=None if center is None else tuple(center))
        if state.features.is_empty and state.center is None:
            raise EmptyMapError("Cannot render empty map: add a center or at least one feature.")

        self._resolve_view(state, zoom)
        viewport = Viewport(
            center_x=state.center_x,
            center_y=state.center_y,
            zoom=state.zoom if state.zoom is not None else opts.zoom_range.min,
            width=opts.width,
            height=opts.height,
            tile_size=opts.tile_size,
        )
        _LOGGER.debug(
            "Rendering map at zoom %d with center tile (%.4f, %.4f)",
            viewport.zoom,
            viewport.center_x,
            viewport.center_y,
        )

        state.canvas = Canvas.blank(opts.width, opts.height)
        for layer in opts.tile_layers:
            stats = draw_layer(
                state.canvas,
                viewport,
                layer,
                self.fetcher,
                reverse_y=opts.reverse_y,
                rng=self._rng,
            )
            state.tiles_requested += stats.requested
            state.tiles_drawn += stats.drawn
        state.advance(RenderStage.TILES_DRAWN)

        state.markers_drawn = draw_markers(
            state.canvas,
            state.features.markers,
            viewport,
            self.fetcher,
            request_limit=opts.tile_request_limit,
        )
        state.advance(RenderStage.MARKERS_DRAWN)

        canvas = state.canvas
        lon, lat = state.center or (0.0, 0.0)
        draw_svg(canvas, state.features.lines, lambda f: line_to_svg(f, viewport))
        draw_svg(canvas, state.features.multipolygons, lambda f: multipolygon_to_svg(f, viewport))
        draw_svg(canvas, state.features.circles, lambda f: circle_to_svg(f, viewport))
        draw_svg(canvas, state.features.texts, lambda f: text_to_svg(f, viewport))
        state.advance(RenderStage.OVERLAY_DRAWN)

        return RenderResult(
            canvas=canvas,
            zoom=viewport.zoom,
            center=(lon, lat),
            center_x=state.center_x,
            center_y=state.center_y,
            tiles_requested=state.tiles_requested,
            tiles_drawn=state.tiles_drawn,
            markers_drawn=state.markers_drawn,
        )

    def _resolve_view(self, state: RenderState, zoom: int | None) -> None:
        opts = self.options
        resolver = ExtentResolver(
            state.features,
            tile_size=opts.tile_size,
            width=opts.width,
            height=opts.height,
            padding_x=opts.padding_x,
            padding_y=opts.padding_y,
            zoom_range=opts.zoom_range,
            center=state.center,
        )
        if zoom is None:
            state.zoom = resolver.calculate_zoom()
        else:
            state.zoom = opts.zoom_range.clamp(int(zoom))

        if state.center is not None and len(state.center) == 2:
            lon, lat = state.center
        else:
            extent = resolver.determine_extent(state.zoom)
            if not extent_is_valid(extent):
                raise EmptyMapError("Cannot render map: no feature has usable coordinates.")
            lon = (extent[0] + extent[2]) / 2
            lat = (extent[1] + extent[3]) / 2
        state.center_x = lon_to_x(lon, state.zoom)
        state.center_y = lat_to_y(lat, state.zoom)
        state.center = (lon, lat)
        state.advance(RenderStage.EXTENT_RESOLVED)


@dataclass(slots=True)
class RenderReport:
    output_path: Path | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    infos: list[str] = field(default_factory=list)
    summary: dict[str, int] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)

    def add_info(self, msg: str) -> None:
        self.infos.append(msg)


def build_fetcher(
    cfg: AppConfig,
    *,
    use_cache: bool = True,
    session: requests.Session | None = None,
) -> TileFetcher:
    cache = TileCache(
        cfg.cache.ttl_s,
        enabled=cfg.cache.enabled and use_cache,
        max_entries=cfg.cache.max_entries,
    )
    return TileFetcher(
        cache,
        session=session,
        headers=cfg.render.tile_request_headers,
        timeout_s=cfg.render.tile_request_timeout_s,
        request_limit=cfg.render.tile_request_limit,
        max_retries=cfg.fetch.max_retries,
        retry_backoff_s=cfg.fetch.retry_backoff_s,
        user_agent=cfg.fetch.user_agent,
    )


def run_render(
    cfg: AppConfig,
    *,
    output_path: Path | None = None,
    fmt: str | None = None,
    use_cache: bool = True,
    session: requests.Session | None = None,
) -> RenderReport:
    """Render the configured map and write the encoded image to disk."""
    out_path = output_path or cfg.output.path
    out_format = fmt or cfg.output.format
    report = RenderReport(output_path=out_path)

    fetcher = build_fetcher(cfg, use_cache=use_cache, session=session)
    static_map = StaticMap(cfg.render, fetcher=fetcher)
    static_map.add_features(cfg.features)
    report.add_info(f"Loaded features: {_format_counts(cfg.features.summary().items())}")

    t0 = time.perf_counter()
    try:
        result = static_map.render()
    except MapRenderError as exc:
        report.add_error(f"Render failed: {exc}")
        return report
    except RuntimeError as exc:
        report.add_error(str(exc))
        return report

    try:
        if cfg.attribution.show:
            text = cfg.attribution.resolve_text(cfg.render.attribution)
            if text:
                result.canvas.composite_svg(
                    create_attribution_svg(text, result.canvas.width, result.canvas.height)
                )
        result.canvas.add_frame(cfg.output.frame_px, cfg.output.frame_color)
        data = result.canvas.encode(out_format, cfg.output.quality)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_bytes(data)
    except (RuntimeError, ValueError, OSError) as exc:
        report.add_error(f"Writing map image failed: {exc}")
        return report

    elapsed = time.perf_counter() - t0
    _LOGGER.info("Image rendered in %d ms (%d bytes)", round(elapsed * 1000), len(data))

    report.summary = {
        "zoom": result.zoom,
        "tiles_requested": result.tiles_requested,
        "tiles_drawn": result.tiles_drawn,
        "markers_drawn": result.markers_drawn,
        "bytes_written": len(data),
    }
    if result.tiles_requested and result.tiles_drawn < result.tiles_requested:
        report.add_warning(
            f"Only {result.tiles_drawn}/{result.tiles_requested} tiles were drawn; see log for failures."
        )
    if result.markers_drawn < len(cfg.features.markers):
        report.add_warning(
            f"{len(cfg.features.markers) - result.markers_drawn} marker(s) were off-canvas or failed to load."
        )
    report.add_info(
        "Render summary: "
        f"zoom={result.zoom}, "
        f"center={result.center[0]:.5f},{result.center[1]:.5f}, "
        f"tiles={result.tiles_drawn}/{result.tiles_requested}, "
        f"markers={result.markers_drawn}"
    )
    report.add_info(f"Map written to {out_path}")
    return report


def format_render_lines(report: RenderReport) -> Sequence[str]:
    lines: list[str] = []
    lines.extend(f"[INFO] {msg}" for msg in report.infos)
    lines.extend(f"[WARN] {msg}" for msg in report.warnings)
    lines.extend(f"[ERROR] {msg}" for msg in report.errors)
    if report.ok:
        lines.append("[OK] Map rendering completed with no errors.")
    return lines


def _format_counts(items: Iterable[tuple[str, int]]) -> str:
    return ", ".join(f"{key}={value}" for key, value in items)
