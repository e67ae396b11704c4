"""Resolve the geographic extent of a feature set and the zoom that fits it."""

from __future__ import annotations

import math
from typing import Sequence

from .config import ZoomRange
from .errors import MissingCoordinateError
from .models import Extent, FeatureSet
from .projection import lat_to_y, lon_to_x, x_to_lon, y_to_lat


EMPTY_EXTENT: Extent = (math.inf, math.inf, -math.inf, -math.inf)


def extent_is_valid(extent: Sequence[float]) -> bool:
    if len(extent) != 4 or not all(math.isfinite(v) for v in extent):
        return False
    return extent[0] <= extent[2] and extent[1] <= extent[3]


class ExtentResolver:
    """Union feature extents and pick the deepest zoom that fits the canvas.

    ``center`` may be a 4-value ``(min_lon, min_lat, max_lon, max_lat)`` box,
    which is then included in the extent. A 2-value center does not
    contribute.
    """

    def __init__(
        self,
        features: FeatureSet,
        *,
        tile_size: int,
        width: int,
        height: int,
        padding_x: int,
        padding_y: int,
        zoom_range: ZoomRange,
        center: Sequence[float] | None = None,
    ) -> None:
        self.features = features
        self.tile_size = tile_size
        self.width = width
        self.height = height
        self.padding_x = padding_x
        self.padding_y = padding_y
        self.zoom_range = zoom_range
        self.center = tuple(center) if center is not None else None

    def determine_extent(self, zoom: int | None = None) -> Extent:
        extents: list[Sequence[float]] = []
        if self.center is not None and len(self.center) >= 4:
            extents.append(self.center[:4])
        extents.extend(bound.extent() for bound in self.features.bounds)
        extents.extend(line.extent() for line in self.features.lines)
        extents.extend(mp.extent() for mp in self.features.multipolygons)
        extents.extend(circle.extent() for circle in self.features.circles)
        extents.extend(text.extent() for text in self.features.texts if text.coord is not None)

        for marker in self.features.markers:
            if marker.coord is None:
                raise MissingCoordinateError("Marker coordinates undefined")
            lon, lat = marker.coord
            if zoom is None:
                extents.append((lon, lat, lon, lat))
                continue
            # Grow the point by the icon's pixel box at this zoom.
            left, bottom, right, top = marker.extent_px()
            x = lon_to_x(lon, zoom)
            y = lat_to_y(lat, zoom)
            extents.append(
                (
                    x_to_lon(x - left / self.tile_size, zoom),
                    y_to_lat(y + bottom / self.tile_size, zoom),
                    x_to_lon(x + right / self.tile_size, zoom),
                    y_to_lat(y - top / self.tile_size, zoom),
                )
            )

        if not extents:
            return EMPTY_EXTENT
        return (
            min(e[0] for e in extents),
            min(e[1] for e in extents),
            max(e[2] for e in extents),
            max(e[3] for e in extents),
        )

    def calculate_zoom(self) -> int:
        if not extent_is_valid(self.determine_extent()):
            return self.zoom_range.min

        avail_w = self.width - self.padding_x * 2
        avail_h = self.height - self.padding_y * 2
        for zoom in range(self.zoom_range.max, self.zoom_range.min - 1, -1):
            extent = self.determine_extent(zoom)
            width_px = (lon_to_x(extent[2], zoom) - lon_to_x(extent[0], zoom)) * self.tile_size
            if width_px > avail_w:
                continue
            height_px = (lat_to_y(extent[1], zoom) - lat_to_y(extent[3], zoom)) * self.tile_size
            if height_px > avail_h:
                continue
            return zoom
        return self.zoom_range.min
