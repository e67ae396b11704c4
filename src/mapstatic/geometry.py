"""Great-circle interpolation and polyline simplification/smoothing."""

from __future__ import annotations

import math
from typing import Sequence


Point = tuple[float, float]

# acos cannot resolve angles much below 1.5e-8 rad near cos = 1.
_ZERO_ANGLE_EPS = 1e-7


def create_geodesic_line(start: Point, end: Point, segments: int = 70) -> list[Point]:
    """Interpolate the great circle between two points.

    Axis order matters here: ``start`` and ``end`` are ``(lat, lon)`` while
    every returned point is ``(lon, lat)``. Callers holding ``(lon, lat)``
    coordinates must swap before calling.

    The result always has ``segments + 1`` points. Coincident inputs yield the
    start point followed by repeated copies of the end point.
    """
    segments = max(int(segments), 1)
    lat1, lon1 = math.radians(start[0]), math.radians(start[1])
    lat2, lon2 = math.radians(end[0]), math.radians(end[1])

    cos_delta = math.sin(lat1) * math.sin(lat2) + math.cos(lat1) * math.cos(lat2) * math.cos(lon2 - lon1)
    delta = math.acos(max(-1.0, min(1.0, cos_delta)))
    sin_delta = math.sin(delta)

    if start == end or delta < _ZERO_ANGLE_EPS or abs(sin_delta) < _ZERO_ANGLE_EPS:
        return [(float(start[1]), float(start[0]))] + [(float(end[1]), float(end[0]))] * segments

    points: list[Point] = []
    for i in range(segments + 1):
        f = i / segments
        a = math.sin((1.0 - f) * delta) / sin_delta
        b = math.sin(f * delta) / sin_delta
        x = a * math.cos(lat1) * math.cos(lon1) + b * math.cos(lat2) * math.cos(lon2)
        y = a * math.cos(lat1) * math.sin(lon1) + b * math.cos(lat2) * math.sin(lon2)
        z = a * math.sin(lat1) + b * math.sin(lat2)
        lat = math.atan2(z, math.sqrt(x * x + y * y))
        lon = math.atan2(y, x)
        points.append((math.degrees(lon), math.degrees(lat)))
    return points


def _farthest_from_chord(points: Sequence[Point], first: int, last: int) -> tuple[int, float]:
    x1, y1 = points[first]
    x2, y2 = points[last]
    dx = x2 - x1
    dy = y2 - y1
    len2 = dx * dx + dy * dy

    index = first
    max_dist = 0.0
    for i in range(first + 1, last):
        x0, y0 = points[i]
        t = 0.0 if len2 == 0 else ((x0 - x1) * dx + (y0 - y1) * dy) / len2
        px = x1 + t * dx
        py = y1 + t * dy
        dist = math.hypot(x0 - px, y0 - py)
        if dist > max_dist:
            index = i
            max_dist = dist
    return index, max_dist


def douglas_peucker(points: Sequence[Point], epsilon: float) -> list[Point]:
    """Drop points closer than ``epsilon`` to the simplified chord.

    Uses an explicit stack so very long polylines cannot exhaust the
    interpreter recursion limit. First and last points are always kept.
    """
    if len(points) < 3:
        return list(points)

    keep = [False] * len(points)
    keep[0] = keep[-1] = True
    stack = [(0, len(points) - 1)]
    while stack:
        first, last = stack.pop()
        if last - first < 2:
            continue
        index, dist = _farthest_from_chord(points, first, last)
        if dist > epsilon:
            keep[index] = True
            stack.append((first, index))
            stack.append((index, last))
    return [point for point, kept in zip(points, keep) if kept]


def chaikin_smooth(points: Sequence[Point], iterations: int = 2) -> list[Point]:
    """Round corners by cutting every segment at 1/4 and 3/4."""
    coords = list(points)
    if len(coords) < 2:
        return coords

    for _ in range(max(int(iterations), 0)):
        cut: list[Point] = []
        for (x0, y0), (x1, y1) in zip(coords, coords[1:]):
            cut.append((0.75 * x0 + 0.25 * x1, 0.75 * y0 + 0.25 * y1))
            cut.append((0.25 * x0 + 0.75 * x1, 0.25 * y0 + 0.75 * y1))
        coords = [coords[0], *cut, coords[-1]]
    return coords
