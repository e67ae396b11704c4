"""Spherical Web Mercator conversions between degrees, tile units and pixels.

All functions are pure and never raise: out-of-range longitudes are wrapped
and latitudes are clamped to the Mercator-valid band before conversion.
Tile units are fractional tile indices at the given zoom; multiply by the
tile size to get pixels.
"""

from __future__ import annotations

import math


MAX_LATITUDE = 85.0511287798
METERS_PER_PIXEL_EQUATOR = 156543.03392


def normalize_lon(lon: float) -> float:
    if -180.0 <= lon <= 180.0:
        return lon
    return ((lon + 180.0) % 360.0 + 360.0) % 360.0 - 180.0


def clamp_lat(lat: float) -> float:
    return max(-MAX_LATITUDE, min(MAX_LATITUDE, lat))


def lon_to_x(lon: float, zoom: float) -> float:
    lon = normalize_lon(lon)
    return (lon + 180.0) / 360.0 * (2.0**zoom)


def lat_to_y(lat: float, zoom: float) -> float:
    rad = math.radians(clamp_lat(lat))
    merc = math.log(math.tan(rad) + 1.0 / math.cos(rad))
    return (1.0 - merc / math.pi) / 2.0 * (2.0**zoom)


def x_to_lon(x: float, zoom: float) -> float:
    return x / (2.0**zoom) * 360.0 - 180.0


def y_to_lat(y: float, zoom: float) -> float:
    n = math.pi * (1.0 - 2.0 * y / (2.0**zoom))
    return math.degrees(math.atan(math.sinh(n)))


def meter_to_pixel(meters: float, zoom: float, lat: float) -> float:
    meters_per_pixel = METERS_PER_PIXEL_EQUATOR * math.cos(math.radians(lat)) / (2.0**zoom)
    return meters / meters_per_pixel
