"""Tests for the geometry helpers."""

from __future__ import annotations

import math

import pytest

from beaconnet.geometry import (
    angle_between_points,
    bounding_box,
    centroid,
    circumcircle,
    distance,
    distance_squared,
    mean_pairwise_distance,
    normalize,
    points_equal,
    polar_offset,
    rotate,
    side_lengths,
    signed_area,
    sort_clockwise,
    triangle_area,
)


UNIT_SQUARE = [(0.0, 0.0), (1.0, 0.0), (1.0, 1.0), (0.0, 1.0)]


class TestDistances:
    def test_distance(self):
        assert distance((0, 0), (3, 4)) == pytest.approx(5.0)
        assert distance_squared((0, 0), (3, 4)) == pytest.approx(25.0)

    def test_points_equal(self):
        assert points_equal((1.0, 2.0), (1.0, 2.0 + 1e-12))
        assert not points_equal((1.0, 2.0), (1.0, 2.1))

    def test_mean_pairwise_distance(self):
        assert mean_pairwise_distance([(0, 0), (3, 4)]) == pytest.approx(5.0)
        assert mean_pairwise_distance([(0, 0)]) == 0.0
        tri = [(0, 0), (2, 0), (1, math.sqrt(3))]
        assert mean_pairwise_distance(tri) == pytest.approx(2.0)


class TestCentroidAndOrdering:
    def test_centroid(self):
        assert centroid(UNIT_SQUARE) == pytest.approx((0.5, 0.5))

    def test_centroid_empty(self):
        assert centroid([]) == (0.0, 0.0)

    def test_sort_clockwise_is_order_independent(self):
        shuffled = [UNIT_SQUARE[2], UNIT_SQUARE[0], UNIT_SQUARE[3], UNIT_SQUARE[1]]
        assert sort_clockwise(shuffled) == UNIT_SQUARE

    def test_sort_clockwise_short_input(self):
        assert sort_clockwise([(1, 1), (0, 0)]) == [(1, 1), (0, 0)]

    def test_side_lengths(self):
        assert side_lengths(UNIT_SQUARE) == pytest.approx([1.0, 1.0, 1.0, 1.0])

    def test_bounding_box(self):
        assert bounding_box([(1, 5), (-2, 3), (4, -1)]) == (-2, -1, 4, 5)
        assert bounding_box([]) == (0.0, 0.0, 0.0, 0.0)


class TestAnglesAndAreas:
    def test_right_angle(self):
        assert angle_between_points((1, 0), (0, 0), (0, 1)) == pytest.approx(math.pi / 2)

    def test_angle_is_smaller_side(self):
        assert angle_between_points((1, 0), (0, 0), (0, -1)) == pytest.approx(math.pi / 2)

    def test_signed_area_ccw_positive(self):
        assert signed_area(UNIT_SQUARE) == pytest.approx(1.0)
        assert signed_area(list(reversed(UNIT_SQUARE))) == pytest.approx(-1.0)

    def test_triangle_area(self):
        assert triangle_area((0, 0), (2, 0), (0, 2)) == pytest.approx(2.0)
        assert triangle_area((0, 0), (1, 0), (2, 0)) == 0.0


class TestCircumcircle:
    def test_right_triangle(self):
        center, radius = circumcircle((0, 0), (2, 0), (0, 2))
        assert center == pytest.approx((1.0, 1.0))
        assert radius == pytest.approx(math.sqrt(2))

    def test_collinear_falls_back_to_centroid(self):
        center, radius = circumcircle((0, 0), (1, 0), (2, 0))
        assert center == pytest.approx((1.0, 0.0))
        assert radius == pytest.approx(1.0)
        assert math.isfinite(radius)


class TestVectors:
    def test_rotate_quarter_turn(self):
        assert rotate((1, 0), math.pi / 2) == pytest.approx((0.0, 1.0))

    def test_polar_offset(self):
        assert polar_offset((1, 1), 2.0, 0.0) == pytest.approx((3.0, 1.0))

    def test_normalize(self):
        assert normalize((3, 4)) == pytest.approx((0.6, 0.8))

    def test_normalize_zero_vector(self):
        assert normalize((0, 0)) == (0.0, 0.0)
