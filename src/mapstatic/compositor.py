"""Draw tile layers, markers and the vector overlay onto a canvas."""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass
from html import escape
from pathlib import Path
from typing import Callable, Sequence, TypeVar

from PIL import Image

from .config import TileLayerConfig
from .errors import InvalidFeatureError, MarkerSizeError, MissingCoordinateError
from .geometry import chaikin_smooth, douglas_peucker
from .image import Canvas, default_pin, image_size, load_image, resize_image
from .models import DEFAULT_PIN_SIZE, Circle, Marker, MultiPolygon, Polyline, Text
from .projection import lat_to_y, lon_to_x, meter_to_pixel
from .tiles import TileFetcher, TileRequest, tile_xy_to_quadkey
from .util import bounded_map, chunked, format_code_list


_LOGGER = logging.getLogger("mapstatic.compositor")

RENDER_CHUNK_SIZE = 1000
SMOOTHING_EPSILON_PX = 2.0
SMOOTHING_ITERATIONS = 2

_F = TypeVar("_F")


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _num(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.3f}".rstrip("0").rstrip(".")


def _attr(value: object) -> str:
    return escape(str(value), quote=True)


@dataclass(frozen=True, slots=True)
class Viewport:
    """Pixel frame of a render: canvas size plus the center in tile units."""

    center_x: float
    center_y: float
    zoom: int
    width: int
    height: int
    tile_size: int

    def x_to_px(self, x: float) -> int:
        return _round_half_up((x - self.center_x) * self.tile_size + self.width / 2)

    def y_to_px(self, y: float) -> int:
        return _round_half_up((y - self.center_y) * self.tile_size + self.height / 2)

    def project(self, lon: float, lat: float) -> tuple[int, int]:
        return (self.x_to_px(lon_to_x(lon, self.zoom)), self.y_to_px(lat_to_y(lat, self.zoom)))


@dataclass(frozen=True, slots=True)
class LayerStats:
    requested: int = 0
    drawn: int = 0
    failed: int = 0


def build_tile_requests(
    viewport: Viewport,
    layer: TileLayerConfig,
    *,
    reverse_y: bool = False,
    rng: random.Random | None = None,
) -> list[TileRequest]:
    """List every tile covering the canvas, wrapped across the antimeridian."""
    if not layer.tile_url:
        return []
    rng = rng or random.Random()
    half_w = 0.5 * viewport.width / viewport.tile_size
    half_h = 0.5 * viewport.height / viewport.tile_size
    x_min = math.floor(viewport.center_x - half_w)
    y_min = math.floor(viewport.center_y - half_h)
    x_max = math.ceil(viewport.center_x + half_w)
    y_max = math.ceil(viewport.center_y + half_h)
    max_tile = 1 << viewport.zoom

    requests_: list[TileRequest] = []
    for x in range(x_min, x_max):
        for y in range(y_min, y_max):
            tile_x = x % max_tile
            tile_y = y % max_tile
            if reverse_y:
                tile_y = max_tile - tile_y - 1

            if "{quadkey}" in layer.tile_url:
                url = layer.tile_url.replace("{quadkey}", tile_xy_to_quadkey(tile_x, tile_y, viewport.zoom))
            else:
                url = (
                    layer.tile_url.replace("{z}", str(viewport.zoom))
                    .replace("{x}", str(tile_x))
                    .replace("{y}", str(tile_y))
                )
            if layer.subdomains:
                url = url.replace("{s}", rng.choice(layer.subdomains))

            box = (
                viewport.x_to_px(x),
                viewport.y_to_px(y),
                viewport.x_to_px(x + 1),
                viewport.y_to_px(y + 1),
            )
            requests_.append(TileRequest(url=url, box=box))
    return requests_


def draw_layer(
    canvas: Canvas,
    viewport: Viewport,
    layer: TileLayerConfig,
    fetcher: TileFetcher,
    *,
    reverse_y: bool = False,
    rng: random.Random | None = None,
) -> LayerStats:
    requests_ = build_tile_requests(viewport, layer, reverse_y=reverse_y, rng=rng)
    if not requests_:
        _LOGGER.debug("Layer has no tile URL; nothing to draw")
        return LayerStats()

    results = fetcher.get_tiles(requests_)
    failed = [result for result in results if not result.success]
    for result in failed:
        _LOGGER.debug("Tile failed %s: %s", result.url, result.error)
    if failed:
        _LOGGER.warning(
            "%d/%d tile(s) failed for layer %s",
            len(failed),
            len(results),
            layer.tile_url,
        )
    drawn = canvas.draw_tiles(result for result in results if result.success)
    return LayerStats(requested=len(requests_), drawn=drawn, failed=len(failed))


def draw_svg(
    canvas: Canvas,
    features: Sequence[_F],
    render_fn: Callable[[_F], str],
    *,
    chunk_size: int = RENDER_CHUNK_SIZE,
) -> int:
    """Composite features as canvas-sized SVG documents, ``chunk_size`` features each.

    Returns the number of documents composited.
    """
    if not features:
        return 0
    count = 0
    for chunk in chunked(features, chunk_size):
        body = "\n".join(render_fn(feature) for feature in chunk)
        svg = (
            f'<svg width="{canvas.width}px" height="{canvas.height}px" version="1.1" '
            f'xmlns="http://www.w3.org/2000/svg">{body}</svg>'
        )
        canvas.composite_svg(svg)
        count += 1
    return count


def _dasharray_attr(values: Sequence[float]) -> str:
    if not values:
        return ""
    return f' stroke-dasharray="{",".join(_num(v) for v in values)}"'


def line_to_svg(line: Polyline, viewport: Viewport) -> str:
    pixels = [viewport.project(lon, lat) for lon, lat in line.points]
    if len(pixels) < 2:
        return ""

    if line.is_polygon:
        points: Sequence[tuple[float, float]] = pixels
    elif len(pixels) == 2:
        points = chaikin_smooth(douglas_peucker(pixels, SMOOTHING_EPSILON_PX), SMOOTHING_ITERATIONS)
    else:
        points = pixels

    d = f"M{_num(points[0][0])},{_num(points[0][1])} " + " ".join(
        f"L{_num(x)},{_num(y)}" for x, y in points[1:]
    )
    if line.is_polygon:
        d += " Z"
    return (
        f'<path d="{d}" fill="{_attr(line.fill or "none")}" stroke="{_attr(line.color)}"'
        f' stroke-width="{_num(line.width)}" stroke-linejoin="round" stroke-linecap="round"'
        f' shape-rendering="geometricPrecision"{_dasharray_attr(line.stroke_dasharray)}/>'
    )


def multipolygon_to_svg(multipolygon: MultiPolygon, viewport: Viewport) -> str:
    subpaths: list[str] = []
    for ring in multipolygon.rings:
        pixels = [viewport.project(lon, lat) for lon, lat in ring]
        if not pixels:
            continue
        head = f"M{_num(pixels[0][0])},{_num(pixels[0][1])}"
        tail = " ".join(f"L{_num(x)},{_num(y)}" for x, y in pixels[1:])
        subpaths.append(f"{head} {tail} Z" if tail else f"{head} Z")
    if not subpaths:
        return ""
    return (
        f'<path d="{" ".join(subpaths)}" fill-rule="evenodd" fill="{_attr(multipolygon.fill or "none")}"'
        f' stroke="{_attr(multipolygon.color)}" stroke-width="{_num(multipolygon.width)}"'
        f' stroke-linejoin="round" stroke-linecap="round"{_dasharray_attr(multipolygon.stroke_dasharray)}/>'
    )


def circle_to_svg(circle: Circle, viewport: Viewport) -> str:
    coord = circle.coord
    if not isinstance(coord, (list, tuple)) or len(coord) != 2:
        raise InvalidFeatureError("Invalid circle: missing or malformed coordinates.")
    lon, lat = coord
    radius_px = meter_to_pixel(circle.radius, viewport.zoom, lat)
    cx, cy = viewport.project(lon, lat)
    return (
        f'<circle cx="{cx}" cy="{cy}" r="{_num(radius_px)}" stroke="{_attr(circle.color)}"'
        f' fill="{_attr(circle.fill or "none")}" stroke-width="{_num(circle.width)}"'
        f"{_dasharray_attr(circle.stroke_dasharray)}/>"
    )


def text_to_svg(text: Text, viewport: Viewport) -> str:
    if text.coord is None:
        raise InvalidFeatureError("No text coordinates given")
    px, py = viewport.project(*text.coord)
    x = px - text.offset_x
    y = py - text.offset_y
    return (
        f'<text x="{_num(x)}" y="{_num(y)}" font-family="{_attr(text.font)}" font-size="{_num(text.size)}pt"'
        f' stroke="{_attr(text.color)}" fill="{_attr(text.fill or "none")}" stroke-width="{_attr(text.width)}"'
        f' text-anchor="{_attr(text.anchor)}">{escape(text.text)}</text>'
    )


@dataclass(frozen=True, slots=True)
class _LoadedIcon:
    marker: Marker
    image: Image.Image


def _is_url(value: str) -> bool:
    return value.startswith(("http://", "https://"))


def _read_icon_bytes(img: str, fetcher: TileFetcher) -> bytes | None:
    if _is_url(img):
        result = fetcher.get_tile(TileRequest(url=img))
        if not result.success or result.body is None:
            _LOGGER.warning("Failed to fetch marker icon %s: %s", img, result.error)
            return None
        return result.body
    try:
        return Path(img).expanduser().read_bytes()
    except OSError as exc:
        _LOGGER.warning("Failed to read marker icon %s: %s", img, exc)
        return None


def _load_marker_icon(marker: Marker, fetcher: TileFetcher) -> _LoadedIcon | None:
    if marker.img is None:
        width = marker.draw_width or marker.width or DEFAULT_PIN_SIZE
        height = marker.draw_height or marker.height or DEFAULT_PIN_SIZE
        return _LoadedIcon(marker=marker, image=default_pin(width, height, marker.color))

    data = _read_icon_bytes(marker.img, fetcher)
    if data is None:
        return None

    if not marker.has_size:
        size = image_size(data)
        if size is None:
            raise MarkerSizeError(f"Cannot detect image size of marker {marker.img}. Please define manually!")
        marker = marker.with_size(*size)

    draw_size = (marker.draw_width or 1, marker.draw_height or 1)
    icon = load_image(data)
    if icon.size != draw_size:
        icon = resize_image(icon, draw_size[0], draw_size[1], marker.resize_mode)
    return _LoadedIcon(marker=marker, image=icon)


def _estimated_anchor(marker: Marker) -> tuple[float, float]:
    if marker.has_size:
        return marker.anchor
    ox = marker.offset_x if marker.offset_x is not None else (marker.draw_width or DEFAULT_PIN_SIZE) / 2
    oy = marker.offset_y if marker.offset_y is not None else float(marker.draw_height or DEFAULT_PIN_SIZE)
    return (ox, oy)


def _top_left(marker: Marker, viewport: Viewport, anchor: tuple[float, float]) -> tuple[int, int]:
    lon, lat = marker.coord or (0.0, 0.0)
    px, py = viewport.project(lon, lat)
    return (_round_half_up(px - anchor[0]), _round_half_up(py - anchor[1]))


def _outside(canvas: Canvas, left: int, top: int) -> bool:
    return top < 0 or left < 0 or top > canvas.height or left > canvas.width


def _marker_label(marker: Marker) -> str:
    lon, lat = marker.coord or (0.0, 0.0)
    return f"{lon:.4f},{lat:.4f}"


def draw_markers(
    canvas: Canvas,
    markers: Sequence[Marker],
    viewport: Viewport,
    fetcher: TileFetcher,
    *,
    request_limit: int = 2,
) -> int:
    """Load icons concurrently, then composite them in input order.

    Markers whose anchored top-left corner falls outside the canvas are
    skipped before their icon is loaded; icons without a known size are
    placed with a 20px anchor for that check. Returns the number of markers
    drawn.
    """
    if not markers:
        return 0
    for marker in markers:
        if marker.coord is None:
            raise MissingCoordinateError("No marker coord")

    skipped: list[str] = []
    visible: list[Marker] = []
    for marker in markers:
        left, top = _top_left(marker, viewport, _estimated_anchor(marker))
        if _outside(canvas, left, top):
            skipped.append(_marker_label(marker))
        else:
            visible.append(marker)

    icons = bounded_map(lambda m: _load_marker_icon(m, fetcher), visible, request_limit)

    drawn = 0
    for icon in icons:
        if icon is None:
            continue
        marker = icon.marker
        left, top = _top_left(marker, viewport, marker.anchor)
        if _outside(canvas, left, top) or not canvas.composite(icon.image, left, top):
            skipped.append(_marker_label(marker))
            continue
        drawn += 1
    if skipped:
        _LOGGER.debug("Skipped %d off-canvas marker(s): %s", len(skipped), format_code_list(skipped))
    return drawn
