"""Feature value types drawn on a static map."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Mapping

from .errors import InvalidFeatureError
from .geometry import create_geodesic_line


Coordinate = tuple[float, float]
Extent = tuple[float, float, float, float]

DEFAULT_COLOR = "#000000BB"
DEFAULT_MARKER_COLOR = "#d9534f"
DEFAULT_PIN_SIZE = 20
DEFAULT_STROKE_WIDTH = 3.0
DEFAULT_TEXT_STROKE = "1px"
METERS_PER_DEGREE = 111_320.0

RESIZE_MODES = frozenset({"cover", "contain", "fill", "inside", "outside"})
TEXT_ANCHORS = frozenset({"start", "middle", "end"})


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _finite_or_none(value: Any) -> float | None:
    if _is_number(value) and math.isfinite(value):
        return float(value)
    return None


def _require_coord(value: Any, field_name: str) -> Coordinate:
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        raise InvalidFeatureError(f"Expected [lon, lat] pair for '{field_name}'")
    lon, lat = value
    if not (_is_number(lon) and _is_number(lat)) or not (math.isfinite(lon) and math.isfinite(lat)):
        raise InvalidFeatureError(f"Expected finite numbers for '{field_name}'")
    return (float(lon), float(lat))


def _require_coords(value: Any, field_name: str, *, min_len: int = 1) -> tuple[Coordinate, ...]:
    if not isinstance(value, (list, tuple)):
        raise InvalidFeatureError(f"Expected list of coordinates for '{field_name}'")
    coords = tuple(_require_coord(item, f"{field_name}[{idx}]") for idx, item in enumerate(value))
    if len(coords) < min_len:
        raise InvalidFeatureError(f"'{field_name}' needs at least {min_len} coordinate(s)")
    return coords


def _optional_str(value: Any, field_name: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        raise InvalidFeatureError(f"Expected non-empty string for '{field_name}'")
    return value.strip()


def normalize_stroke_dasharray(value: Any) -> tuple[float, ...]:
    if value is None:
        return ()
    if isinstance(value, (list, tuple)) and all(
        _is_number(n) and math.isfinite(n) and n >= 0 for n in value
    ):
        return tuple(float(n) for n in value)
    raise InvalidFeatureError("Invalid stroke_dasharray: must be a list of non-negative finite numbers")


def _bbox(points: Iterable[Coordinate]) -> Extent:
    lons: list[float] = []
    lats: list[float] = []
    for lon, lat in points:
        lons.append(lon)
        lats.append(lat)
    return (min(lons), min(lats), max(lons), max(lats))


@dataclass(frozen=True, slots=True)
class Marker:
    """Icon pinned to a coordinate, anchored bottom-center by default.

    ``width``/``height`` are the intrinsic icon size; ``None`` means detect it
    from the image bytes at render time. ``draw_width``/``draw_height`` are the
    size composited on the map and default to the intrinsic size. Markers
    without ``img`` use a generated pin.
    """

    coord: Coordinate | None
    img: str | None = None
    width: int | None = None
    height: int | None = None
    draw_width: int | None = None
    draw_height: int | None = None
    resize_mode: str = "cover"
    offset_x: float | None = None
    offset_y: float | None = None
    color: str = DEFAULT_MARKER_COLOR

    def __post_init__(self) -> None:
        if self.coord is not None:
            object.__setattr__(self, "coord", _require_coord(self.coord, "marker.coord"))
        for name in ("width", "height", "draw_width", "draw_height"):
            raw = getattr(self, name)
            if raw is None:
                continue
            size = _finite_or_none(raw)
            if size is None or size <= 0:
                raise InvalidFeatureError(f"marker.{name} must be a positive number")
            object.__setattr__(self, name, int(round(size)))
        for name in ("offset_x", "offset_y"):
            object.__setattr__(self, name, _finite_or_none(getattr(self, name)))
        if self.resize_mode not in RESIZE_MODES:
            object.__setattr__(self, "resize_mode", "cover")
        if self.img is None:
            if self.width is None:
                object.__setattr__(self, "width", self.draw_width or DEFAULT_PIN_SIZE)
            if self.height is None:
                object.__setattr__(self, "height", self.draw_height or DEFAULT_PIN_SIZE)
        if self.draw_width is None and self.width is not None:
            object.__setattr__(self, "draw_width", self.width)
        if self.draw_height is None and self.height is not None:
            object.__setattr__(self, "draw_height", self.height)

    @property
    def has_size(self) -> bool:
        return self.width is not None and self.height is not None

    def with_size(self, width: int, height: int) -> Marker:
        """Return a copy carrying a detected intrinsic size."""
        return replace(
            self,
            width=width,
            height=height,
            draw_width=self.draw_width or width,
            draw_height=self.draw_height or height,
        )

    @property
    def anchor(self) -> tuple[float, float]:
        ox = self.offset_x if self.offset_x is not None else (self.draw_width or 0) / 2
        oy = self.offset_y if self.offset_y is not None else float(self.draw_height or 0)
        return (ox, oy)

    def extent(self) -> Extent:
        if self.coord is None:
            raise InvalidFeatureError("Marker has no coordinate")
        lon, lat = self.coord
        return (lon, lat, lon, lat)

    def extent_px(self) -> tuple[float, float, float, float]:
        """Pixel padding around the anchor as (left, bottom, right, top)."""
        ox, oy = self.anchor
        return (ox, (self.draw_height or 0) - oy, (self.draw_width or 0) - ox, oy)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Marker:
        coord_raw = data.get("coord")
        return cls(
            coord=None if coord_raw is None else _require_coord(coord_raw, "marker.coord"),
            img=_optional_str(data.get("img"), "marker.img"),
            width=data.get("width"),
            height=data.get("height"),
            draw_width=data.get("draw_width"),
            draw_height=data.get("draw_height"),
            resize_mode=str(data.get("resize_mode") or "cover"),
            offset_x=data.get("offset_x"),
            offset_y=data.get("offset_y"),
            color=_optional_str(data.get("color"), "marker.color") or DEFAULT_MARKER_COLOR,
        )


@dataclass(frozen=True, slots=True)
class Polyline:
    """Line or polygon through ``coords``.

    Equal first and last coordinates make a polygon, drawn as given. Anything
    else is a polyline whose consecutive waypoints are joined by great-circle
    arcs; ``points`` holds that expanded ``(lon, lat)`` path.
    """

    coords: tuple[Coordinate, ...]
    color: str = DEFAULT_COLOR
    fill: str | None = None
    width: float = DEFAULT_STROKE_WIDTH
    stroke_dasharray: tuple[float, ...] = ()
    segments: int = 70
    kind: str = field(init=False, default="polyline")
    points: tuple[Coordinate, ...] = field(init=False, default=())

    def __post_init__(self) -> None:
        coords = _require_coords(self.coords, "line.coords", min_len=2)
        object.__setattr__(self, "coords", coords)
        width = _finite_or_none(self.width)
        object.__setattr__(self, "width", DEFAULT_STROKE_WIDTH if width is None else width)
        object.__setattr__(self, "stroke_dasharray", normalize_stroke_dasharray(self.stroke_dasharray))

        if coords[0] == coords[-1]:
            object.__setattr__(self, "kind", "polygon")
            object.__setattr__(self, "points", coords)
            return

        expanded: list[Coordinate] = []
        for (lon1, lat1), (lon2, lat2) in zip(coords, coords[1:]):
            arc = create_geodesic_line((lat1, lon1), (lat2, lon2), self.segments)
            if expanded:
                arc = arc[1:]
            expanded.extend(arc)
        object.__setattr__(self, "points", tuple(expanded))

    @property
    def is_polygon(self) -> bool:
        return self.kind == "polygon"

    def extent(self) -> Extent:
        return _bbox(self.points)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, close: bool = False) -> Polyline:
        coords = list(_require_coords(data.get("coords"), "line.coords", min_len=2))
        if close and coords[0] != coords[-1]:
            coords.append(coords[0])
        return cls(
            coords=tuple(coords),
            color=_optional_str(data.get("color"), "line.color") or DEFAULT_COLOR,
            fill=_optional_str(data.get("fill"), "line.fill"),
            width=data.get("width", DEFAULT_STROKE_WIDTH),
            stroke_dasharray=data.get("stroke_dasharray"),
        )


@dataclass(frozen=True, slots=True)
class MultiPolygon:
    """Several polygon rings drawn as one even-odd filled path."""

    rings: tuple[tuple[Coordinate, ...], ...]
    color: str = DEFAULT_COLOR
    fill: str | None = None
    width: float = DEFAULT_STROKE_WIDTH
    stroke_dasharray: tuple[float, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.rings, (list, tuple)) or not self.rings:
            raise InvalidFeatureError("multipolygon.coords needs at least one ring")
        rings = tuple(
            _require_coords(ring, f"multipolygon.coords[{idx}]", min_len=1)
            for idx, ring in enumerate(self.rings)
        )
        object.__setattr__(self, "rings", rings)
        width = _finite_or_none(self.width)
        object.__setattr__(self, "width", DEFAULT_STROKE_WIDTH if width is None else width)
        object.__setattr__(self, "stroke_dasharray", normalize_stroke_dasharray(self.stroke_dasharray))

    def extent(self) -> Extent:
        return _bbox(point for ring in self.rings for point in ring)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> MultiPolygon:
        return cls(
            rings=data.get("coords") or (),
            color=_optional_str(data.get("color"), "multipolygon.color") or DEFAULT_COLOR,
            fill=_optional_str(data.get("fill"), "multipolygon.fill"),
            width=data.get("width", DEFAULT_STROKE_WIDTH),
            stroke_dasharray=data.get("stroke_dasharray"),
        )


@dataclass(frozen=True, slots=True)
class Circle:
    """Circle with a radius in meters around ``coord``."""

    coord: Coordinate
    radius: float
    color: str = DEFAULT_COLOR
    fill: str | None = None
    width: float = DEFAULT_STROKE_WIDTH
    stroke_dasharray: tuple[float, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.coord, (list, tuple)) or len(self.coord) != 2:
            raise InvalidFeatureError("Specify center of circle as [lon, lat]")
        object.__setattr__(self, "coord", _require_coord(self.coord, "circle.coord"))
        radius = _finite_or_none(self.radius)
        if radius is None or radius <= 0:
            raise InvalidFeatureError("Specify valid radius for circle")
        object.__setattr__(self, "radius", radius)
        width = _finite_or_none(self.width)
        object.__setattr__(self, "width", DEFAULT_STROKE_WIDTH if width is None else width)
        if self.fill is None:
            object.__setattr__(self, "fill", self.color)
        object.__setattr__(self, "stroke_dasharray", normalize_stroke_dasharray(self.stroke_dasharray))

    def extent(self) -> Extent:
        lon, lat = self.coord
        d_lat = self.radius / METERS_PER_DEGREE
        d_lon = self.radius / (math.cos(math.radians(lat)) * METERS_PER_DEGREE)
        return (lon - d_lon, lat - d_lat, lon + d_lon, lat + d_lat)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Circle:
        return cls(
            coord=data.get("coord"),
            radius=data.get("radius"),
            color=_optional_str(data.get("color"), "circle.color") or DEFAULT_COLOR,
            fill=_optional_str(data.get("fill"), "circle.fill"),
            width=data.get("width", DEFAULT_STROKE_WIDTH),
            stroke_dasharray=data.get("stroke_dasharray"),
        )


@dataclass(frozen=True, slots=True)
class Text:
    """Text label anchored at a coordinate, shifted by a pixel offset."""

    coord: Coordinate | None
    text: str = ""
    color: str = DEFAULT_COLOR
    width: str = DEFAULT_TEXT_STROKE
    fill: str | None = None
    size: float = 12
    font: str = "Arial"
    anchor: str = "start"
    offset_x: float = 0.0
    offset_y: float = 0.0

    def __post_init__(self) -> None:
        if self.coord is not None:
            object.__setattr__(self, "coord", _require_coord(self.coord, "text.coord"))
        if _is_number(self.width):
            stroke = f"{self.width}px" if math.isfinite(self.width) else DEFAULT_TEXT_STROKE
            object.__setattr__(self, "width", stroke)
        elif not isinstance(self.width, str) or not self.width.strip():
            object.__setattr__(self, "width", DEFAULT_TEXT_STROKE)
        if self.fill is None:
            object.__setattr__(self, "fill", self.color)
        size = _finite_or_none(self.size)
        object.__setattr__(self, "size", 12 if size is None or size <= 0 else size)
        if self.anchor not in TEXT_ANCHORS:
            raise InvalidFeatureError(f"text.anchor must be one of: {', '.join(sorted(TEXT_ANCHORS))}")
        object.__setattr__(self, "offset_x", _finite_or_none(self.offset_x) or 0.0)
        object.__setattr__(self, "offset_y", _finite_or_none(self.offset_y) or 0.0)

    def extent(self) -> Extent:
        if self.coord is None:
            raise InvalidFeatureError("No text coordinates given")
        lon, lat = self.coord
        return (lon, lat, lon, lat)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Text:
        coord_raw = data.get("coord")
        text_raw = data.get("text", "")
        return cls(
            coord=None if coord_raw is None else _require_coord(coord_raw, "text.coord"),
            text="" if text_raw is None else str(text_raw),
            color=_optional_str(data.get("color"), "text.color") or DEFAULT_COLOR,
            width=data.get("width", DEFAULT_TEXT_STROKE),
            fill=_optional_str(data.get("fill"), "text.fill"),
            size=data.get("size", 12),
            font=_optional_str(data.get("font"), "text.font") or "Arial",
            anchor=str(data.get("anchor") or "start"),
            offset_x=data.get("offset_x", 0.0),
            offset_y=data.get("offset_y", 0.0),
        )


@dataclass(frozen=True, slots=True)
class Bound:
    """Invisible set of coordinates that must stay in view."""

    coords: tuple[Coordinate, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "coords", _require_coords(self.coords, "bound.coords", min_len=1))

    def extent(self) -> Extent:
        return _bbox(self.coords)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Bound:
        return cls(coords=data.get("coords") or ())


def _mapping_list(raw: Any, field_name: str) -> list[Mapping[str, Any]]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValueError(f"Expected list for '{field_name}'")
    out: list[Mapping[str, Any]] = []
    for idx, item in enumerate(raw):
        if not isinstance(item, Mapping):
            raise ValueError(f"Expected mapping at '{field_name}[{idx}]'")
        out.append(item)
    return out


@dataclass(frozen=True, slots=True)
class FeatureSet:
    """Immutable snapshot of every feature on one map."""

    markers: tuple[Marker, ...] = ()
    lines: tuple[Polyline, ...] = ()
    multipolygons: tuple[MultiPolygon, ...] = ()
    circles: tuple[Circle, ...] = ()
    texts: tuple[Text, ...] = ()
    bounds: tuple[Bound, ...] = ()

    @property
    def is_empty(self) -> bool:
        return self.count == 0

    @property
    def count(self) -> int:
        return (
            len(self.markers)
            + len(self.lines)
            + len(self.multipolygons)
            + len(self.circles)
            + len(self.texts)
            + len(self.bounds)
        )

    def summary(self) -> dict[str, int]:
        return {
            "markers": len(self.markers),
            "lines": len(self.lines),
            "multipolygons": len(self.multipolygons),
            "circles": len(self.circles),
            "texts": len(self.texts),
            "bounds": len(self.bounds),
        }

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> FeatureSet:
        lines = [Polyline.from_mapping(item) for item in _mapping_list(raw.get("lines"), "features.lines")]
        lines.extend(
            Polyline.from_mapping(item, close=True)
            for item in _mapping_list(raw.get("polygons"), "features.polygons")
        )
        texts_raw = raw.get("text", raw.get("texts"))
        return cls(
            markers=tuple(
                Marker.from_mapping(item) for item in _mapping_list(raw.get("markers"), "features.markers")
            ),
            lines=tuple(lines),
            multipolygons=tuple(
                MultiPolygon.from_mapping(item)
                for item in _mapping_list(raw.get("multipolygons"), "features.multipolygons")
            ),
            circles=tuple(
                Circle.from_mapping(item) for item in _mapping_list(raw.get("circles"), "features.circles")
            ),
            texts=tuple(Text.from_mapping(item) for item in _mapping_list(texts_raw, "features.text")),
            bounds=tuple(
                Bound.from_mapping(item) for item in _mapping_list(raw.get("bounds"), "features.bounds")
            ),
        )
