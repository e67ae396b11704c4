import math

import pytest

from mapstatic.config import ZoomRange
from mapstatic.errors import MissingCoordinateError
from mapstatic.extent import EMPTY_EXTENT, ExtentResolver, extent_is_valid
from mapstatic.models import Bound, FeatureSet, Marker, Polyline, Text
from mapstatic.projection import lat_to_y, lon_to_x


def _resolver(features: FeatureSet, **kwargs) -> ExtentResolver:
    params = dict(
        tile_size=256,
        width=800,
        height=600,
        padding_x=0,
        padding_y=0,
        zoom_range=ZoomRange(min=1, max=17),
    )
    params.update(kwargs)
    return ExtentResolver(features, **params)


def _fits(resolver: ExtentResolver, zoom: int) -> bool:
    ext = resolver.determine_extent(zoom)
    w = (lon_to_x(ext[2], zoom) - lon_to_x(ext[0], zoom)) * resolver.tile_size
    h = (lat_to_y(ext[1], zoom) - lat_to_y(ext[3], zoom)) * resolver.tile_size
    return w <= resolver.width - 2 * resolver.padding_x and h <= resolver.height - 2 * resolver.padding_y


def test_extent_validity():
    assert not extent_is_valid(EMPTY_EXTENT)
    assert not extent_is_valid((0, 0, 1))
    assert not extent_is_valid((2, 0, 1, 1))
    assert extent_is_valid((1, 1, 1, 1))


def test_empty_features_use_minimum_zoom():
    resolver = _resolver(FeatureSet(), zoom_range=ZoomRange(min=3, max=17))
    assert resolver.determine_extent() == EMPTY_EXTENT
    assert resolver.calculate_zoom() == 3


def test_chosen_zoom_is_deepest_that_fits():
    features = FeatureSet(markers=(Marker(coord=(1.0, 2.0)), Marker(coord=(3.0, 4.0))))
    resolver = _resolver(features)
    zoom = resolver.calculate_zoom()
    assert 1 <= zoom < 17
    assert _fits(resolver, zoom)
    assert not _fits(resolver, zoom + 1)


def test_single_point_hits_maximum_zoom():
    resolver = _resolver(FeatureSet(markers=(Marker(coord=(10.0, 50.0)),)), zoom_range=ZoomRange(min=1, max=15))
    assert resolver.calculate_zoom() == 15


def test_padding_lowers_zoom():
    features = FeatureSet(lines=(Polyline(coords=((0.0, 0.0), (1.0, 1.0))),))
    plain = _resolver(features).calculate_zoom()
    padded = _resolver(features, padding_x=300, padding_y=200).calculate_zoom()
    assert padded < plain


def test_marker_pixel_box_grows_extent():
    features = FeatureSet(markers=(Marker(coord=(5.0, 5.0)),))
    resolver = _resolver(features)
    min_lon, min_lat, max_lon, max_lat = resolver.determine_extent(10)
    assert min_lon < 5.0 < max_lon
    # bottom-center anchor: the icon sits entirely above the point
    assert min_lat == pytest.approx(5.0)
    assert max_lat > 5.0


def test_marker_without_coord_raises():
    resolver = _resolver(FeatureSet(markers=(Marker(coord=None),)))
    with pytest.raises(MissingCoordinateError):
        resolver.determine_extent()


def test_text_without_coord_ignored():
    features = FeatureSet(texts=(Text(coord=None, text="floating"), Text(coord=(1.0, 1.0), text="a")))
    assert _resolver(features).determine_extent() == (1.0, 1.0, 1.0, 1.0)


def test_box_center_is_included():
    features = FeatureSet(bounds=(Bound(coords=((0.0, 0.0),)),))
    resolver = _resolver(features, center=(-10.0, -5.0, 10.0, 5.0))
    assert resolver.determine_extent() == (-10.0, -5.0, 10.0, 5.0)


def test_point_center_is_not_included():
    features = FeatureSet(bounds=(Bound(coords=((0.0, 0.0),)),))
    resolver = _resolver(features, center=(50.0, 50.0))
    assert resolver.determine_extent() == (0.0, 0.0, 0.0, 0.0)
    assert all(math.isfinite(v) for v in resolver.determine_extent())
