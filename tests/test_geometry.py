import pytest

from mapstatic.geometry import chaikin_smooth, create_geodesic_line, douglas_peucker


class TestGeodesicLine:
    def test_point_count_and_axis_order(self):
        # (lat, lon) in, (lon, lat) out
        line = create_geodesic_line((48.8566, 2.3522), (45.7640, 4.8357), 10)
        assert len(line) == 11
        assert line[0] == pytest.approx((2.3522, 48.8566))
        assert line[-1] == pytest.approx((4.8357, 45.7640))

    @pytest.mark.parametrize("p", [(10.0, 20.0), (48.8566, 2.3522), (-33.8688, 151.2093), (0.0, 0.0)])
    def test_coincident_points(self, p):
        line = create_geodesic_line(p, p, 5)
        assert len(line) == 6
        assert line == [(p[1], p[0])] * 6

    def test_nearly_coincident_points_are_not_interpolated(self):
        line = create_geodesic_line((10.0, 20.0), (10.0, 20.0 + 1e-12), 3)
        assert line[0] == (20.0, 10.0)
        assert line[1:] == [(20.0 + 1e-12, 10.0)] * 3

    def test_equator_midpoint(self):
        line = create_geodesic_line((0.0, 0.0), (0.0, 90.0), 2)
        assert line[1] == pytest.approx((45.0, 0.0), abs=1e-9)


class TestDouglasPeucker:
    def test_short_inputs_unchanged(self):
        assert douglas_peucker([], 1.0) == []
        assert douglas_peucker([(0, 0), (1, 1)], 1.0) == [(0, 0), (1, 1)]

    def test_near_collinear_triple_collapses(self):
        pts = [(0.0, 0.0), (5.0, 0.1), (10.0, 0.0)]
        assert douglas_peucker(pts, 1.0) == [(0.0, 0.0), (10.0, 0.0)]

    def test_keeps_significant_corner(self):
        pts = [(0.0, 0.0), (5.0, 5.0), (10.0, 0.0)]
        assert douglas_peucker(pts, 1.0) == pts

    def test_endpoints_always_kept(self):
        pts = [(float(i), float(i % 3)) for i in range(50)]
        out = douglas_peucker(pts, 0.5)
        assert out[0] == pts[0]
        assert out[-1] == pts[-1]

    def test_long_input_does_not_recurse(self):
        pts = [(float(i), float((-1) ** i)) for i in range(2500)]
        out = douglas_peucker(pts, 0.1)
        assert len(out) == len(pts)


class TestChaikin:
    def test_grows_and_keeps_endpoints(self):
        pts = [(0.0, 0.0), (10.0, 10.0), (20.0, 0.0)]
        out = chaikin_smooth(pts, 1)
        assert len(out) > len(pts)
        assert out[0] == pts[0]
        assert out[-1] == pts[-1]

    def test_cut_points(self):
        out = chaikin_smooth([(0.0, 0.0), (4.0, 0.0)], 1)
        assert out == [(0.0, 0.0), (1.0, 0.0), (3.0, 0.0), (4.0, 0.0)]

    def test_single_point_returned(self):
        assert chaikin_smooth([(1.0, 1.0)], 3) == [(1.0, 1.0)]
