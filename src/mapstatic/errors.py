"""Exceptions surfaced by the rendering engine."""

from __future__ import annotations


class MapRenderError(Exception):
    """Base class for fatal rendering errors."""


class EmptyMapError(MapRenderError):
    """Raised when a map has neither a center nor any feature to fit."""


class InvalidFeatureError(MapRenderError, ValueError):
    """Raised when feature geometry or style data is malformed."""


class MissingCoordinateError(MapRenderError):
    """Raised when a marker reaches extent or placement without a coordinate."""


class MarkerSizeError(MapRenderError):
    """Raised when a marker icon has no explicit size and none can be detected."""
