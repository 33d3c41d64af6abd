"""Tests for geometry_primitives and transform modules."""
import math

import numpy as np
import pytest

from geometry_primitives import (
    GeometryError,
    X3,
    Y3,
    Z3,
    convex_hull,
    format_number,
    intersect_lines,
    keyed_2d,
    linearization_matrix,
    minus3,
    mult,
    plus3,
    apply_matrix2,
    offset_polyline,
    place_along,
    polygon_center,
    signed_area,
    slide_line,
)
from transform import (
    a2m,
    from_wire,
    invert,
    is_rigid,
    reflection,
    rotation,
    to_wire,
    transform_point3,
    translation,
)


class TestFormatNumber:
    """Numbers must render like ECMAScript Number#toString."""

    @pytest.mark.parametrize("value,expected", [
        (0, "0"),
        (-0.0, "0"),
        (100, "100"),
        (-7.5, "-7.5"),
        (53.210678118654755, "53.210678118654755"),
        (1e21, "1e+21"),
        (123456789012345680000, "123456789012345680000"),
        (0.000001, "0.000001"),
        (-3.061616997868383e-16, "-3.061616997868383e-16"),
        (2.042810365310288e-14, "2.042810365310288e-14"),
    ])
    def test_renders_like_javascript(self, value, expected):
        assert format_number(value) == expected


class TestVectors:

    def test_arithmetic(self):
        assert mult((1, -2), 3) == (3, -6)
        assert plus3((1, 2, 3), (1, 1, 1)) == (2, 3, 4)
        assert minus3((1, 2, 3), (1, 1, 1)) == (0, 1, 2)

    def test_place_along_from_start(self):
        assert place_along((0, 0), (10, 0), from_start=3) == pytest.approx((3, 0))

    def test_place_along_from_end_goes_past_the_end(self):
        assert place_along((0, 0), (10, 0), from_end=2) == pytest.approx((12, 0))
        assert place_along((0, 0), (10, 0), from_end=-2) == pytest.approx((8, 0))

    def test_place_along_fraction(self):
        assert place_along((0, 0), (10, 20), fraction=0.5) == pytest.approx((5, 10))

    def test_offset_polyline_shifts_left(self):
        shifted = offset_polyline([(0, 0), (10, 0)], 2)
        assert shifted[0] == pytest.approx((0, 2))
        assert shifted[1] == pytest.approx((10, 2))

    def test_slide_line(self):
        slid = slide_line((0, 0), (0, 10), -5)
        assert slid[0] == pytest.approx((0, -5))
        assert slid[1] == pytest.approx((0, 5))

    def test_parallel_lines_do_not_intersect(self):
        assert intersect_lines((0, 0), (1, 0), (0, 1), (1, 1)) is None
        assert intersect_lines((0, 0), (2, 2), (0, 2), (2, 0)) == pytest.approx((1, 1))

    def test_linearization_matrix(self):
        m = linearization_matrix((10, 10), (10, 20))
        assert apply_matrix2(m, (10, 10)) == pytest.approx((0, 0))
        assert apply_matrix2(m, (10, 20)) == pytest.approx((1, 0))
        assert apply_matrix2(m, (10, 15)) == pytest.approx((0.5, 0))

    def test_keyed_2d_ignores_float_noise(self):
        assert keyed_2d((1.0, 2.0)) == keyed_2d((1.0 + 1e-12, 2.0 - 1e-12))


class TestPolygons:

    def test_convex_hull_is_clockwise_from_lowest_x(self):
        hull = convex_hull([(0, 0), (10, 0)], [(10, 10), (0, 10)], [(5, 5)])
        assert hull == [(0, 0), (0, 10), (10, 10), (10, 0)]
        assert signed_area(hull) < 0

    def test_convex_hull_starts_at_lowest_y_among_lowest_x(self):
        hull = convex_hull([(10, 10), (0, 5), (10, 0), (0, 0), (4, 4)])
        assert hull == [(0, 0), (0, 5), (10, 10), (10, 0)]

    def test_convex_hull_drops_points_on_edges(self):
        hull = convex_hull([(0, 0), (5, 0), (10, 0), (10, 10), (0, 10)])
        assert hull == [(0, 0), (0, 10), (10, 10), (10, 0)]

    def test_convex_hull_of_collinear_points(self):
        assert convex_hull([(10, 0), (0, 0), (5, 0)]) == [(0, 0), (10, 0)]

    def test_signed_area(self):
        assert signed_area([(0, 0), (10, 0), (10, 10), (0, 10)]) == pytest.approx(100)
        assert signed_area([(0, 0), (0, 10), (10, 10), (10, 0)]) == pytest.approx(-100)
        assert signed_area([(0, 0), (10, 0)]) == 0

    def test_polygon_center_of_triangle(self):
        assert polygon_center([(0, 0), (6, 0), (0, 6)]) == pytest.approx((2, 2))

    def test_polygon_center_of_flat_polygon(self):
        assert polygon_center([(0, 0), (5, 0), (10, 0)]) == pytest.approx((5, 0))

    def test_polygon_center(self):
        assert polygon_center([(0, 0), (0, 10), (20, 10), (20, 0)]) == pytest.approx((10, 5))

    def test_polygon_center_of_empty_polygon(self):
        with pytest.raises(GeometryError):
            polygon_center([])


class TestTransforms:

    def test_a2m_builds_right_handed_frame(self):
        m = a2m((1, 2, 3), X3, Y3)
        np.testing.assert_allclose(m[:3, 0], Y3)
        np.testing.assert_allclose(m[:3, 1], Z3)
        np.testing.assert_allclose(m[:3, 2], X3)
        np.testing.assert_allclose(m[:3, 3], (1, 2, 3))

    def test_a2m_picks_y_when_z_is_along_x(self):
        m = a2m(None, X3)
        np.testing.assert_allclose(m[:3, 0], Y3)

    def test_invert_is_exact_inverse(self):
        m = translation(5, -2, 7) @ rotation((1, 2, 3), 0.7)
        np.testing.assert_allclose(m @ invert(m), np.eye(4), atol=1e-12)
        assert is_rigid(m)

    def test_reflection_is_an_involution(self):
        r = reflection((0, 0, 1), (0, 0, 5))
        assert transform_point3(r, (1, 2, 0)) == pytest.approx((1, 2, 10))
        np.testing.assert_allclose(r @ r, np.eye(4), atol=1e-12)
        assert np.linalg.det(r[:3, :3]) < 0

    def test_wire_format_is_column_major(self):
        m = translation(52, 40, -36)
        wire = to_wire(m)
        assert wire[12:15] == [52, 40, -36]
        np.testing.assert_allclose(from_wire(wire), m)

    def test_transform_vector_ignores_translation(self):
        m = translation(10, 0, 0)
        assert transform_point3(m, (1, 0, 0), vector=True) == pytest.approx((1, 0, 0))
        assert transform_point3(m, (1, 0)) == pytest.approx((11, 0, 0))

    def test_rotation_quarter_turn(self):
        m = rotation(Z3, math.pi / 2)
        assert transform_point3(m, (1, 0, 0)) == pytest.approx((0, 1, 0))
