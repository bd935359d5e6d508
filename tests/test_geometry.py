"""Tests for oriented box corners, bounds, and IoU."""

from __future__ import annotations

import math

import pytest

from obb_geo.geometry import (
    aabb_iou,
    axis_aligned_bounds,
    obb_corners,
    polygon_iou,
    round_half_up,
    square_bounds,
)
from tests.conftest import make_detection

# ---------------------------------------------------------------------------
# Tests: obb_corners
# ---------------------------------------------------------------------------


class TestObbCorners:
    """Test corner computation."""

    @pytest.mark.parametrize(
        "cx, cy, w, h",
        [(100.0, 100.0, 40.0, 20.0), (0.0, 0.0, 1.0, 1.0), (12.5, -7.0, 3.0, 9.0)],
    )
    def test_zero_angle_gives_axis_aligned_corners_in_order(self, cx, cy, w, h):
        d = make_detection(cx=cx, cy=cy, width=w, height=h, angle=0.0)
        assert obb_corners(d) == [
            (cx - w / 2, cy - h / 2),
            (cx + w / 2, cy - h / 2),
            (cx + w / 2, cy + h / 2),
            (cx - w / 2, cy + h / 2),
        ]

    @pytest.mark.parametrize("angle", [0.0, 0.3, math.pi / 4, math.pi / 2, 2.5, -1.1])
    def test_corners_equidistant_from_center(self, angle):
        d = make_detection(cx=50.0, cy=60.0, width=30.0, height=10.0, angle=angle)
        expected = math.sqrt(15.0**2 + 5.0**2)
        for x, y in obb_corners(d):
            assert math.hypot(x - 50.0, y - 60.0) == pytest.approx(expected)

    def test_quarter_turn_rotates_first_corner(self):
        """Rotating (-w/2, -h/2) by 90 degrees gives (h/2, -w/2)."""
        d = make_detection(cx=0.0, cy=0.0, width=4.0, height=2.0, angle=math.pi / 2)
        x, y = obb_corners(d)[0]
        assert x == pytest.approx(1.0)
        assert y == pytest.approx(-2.0)

    def test_repeated_calls_identical(self):
        d = make_detection(angle=0.7)
        assert obb_corners(d) == obb_corners(d)

    def test_nan_propagates(self):
        d = make_detection(width=float("nan"))
        assert all(math.isnan(x) for x, _ in obb_corners(d))


# ---------------------------------------------------------------------------
# Tests: bounds
# ---------------------------------------------------------------------------


class TestBounds:
    def test_axis_aligned_bounds(self):
        points = [(3.0, -1.0), (0.0, 4.0), (-2.0, 2.0), (1.0, 1.0)]
        assert axis_aligned_bounds(points) == (-2.0, -1.0, 3.0, 4.0)

    def test_rotated_box_bounds_grow(self):
        d = make_detection(cx=0.0, cy=0.0, width=2.0, height=2.0, angle=math.pi / 4)
        min_x, min_y, max_x, max_y = axis_aligned_bounds(obb_corners(d))
        assert max_x == pytest.approx(math.sqrt(2))
        assert min_y == pytest.approx(-math.sqrt(2))

    def test_square_bounds_uses_larger_side(self):
        d = make_detection(cx=100.0, cy=100.0, width=40.0, height=20.0)
        assert square_bounds(d) == (80.0, 80.0, 120.0, 120.0)


# ---------------------------------------------------------------------------
# Tests: IoU
# ---------------------------------------------------------------------------


class TestAabbIoU:
    """Test axis-aligned IoU computation."""

    def test_identical_boxes_iou_is_1(self):
        box = (10.0, 10.0, 50.0, 50.0)
        assert aabb_iou(box, box) == pytest.approx(1.0)

    def test_non_overlapping_boxes_iou_is_0(self):
        assert aabb_iou((0.0, 0.0, 10.0, 10.0), (20.0, 20.0, 30.0, 30.0)) == 0.0

    def test_partial_overlap(self):
        # Intersection 100, union 700
        assert aabb_iou((0.0, 0.0, 20.0, 20.0), (10.0, 10.0, 30.0, 30.0)) == pytest.approx(100.0 / 700.0)

    def test_touching_edges_no_area(self):
        assert aabb_iou((0.0, 0.0, 10.0, 10.0), (10.0, 0.0, 20.0, 10.0)) == 0.0

    def test_degenerate_boxes_never_match(self):
        point = (5.0, 5.0, 5.0, 5.0)
        assert aabb_iou(point, point) == 0.0


class TestPolygonIoU:
    def test_matches_aabb_for_axis_aligned_boxes(self):
        a = make_detection(cx=10.0, cy=10.0, width=20.0, height=20.0)
        b = make_detection(cx=20.0, cy=20.0, width=20.0, height=20.0)
        assert polygon_iou(obb_corners(a), obb_corners(b)) == pytest.approx(100.0 / 700.0)

    def test_crossed_thin_boxes_are_tighter_than_aabb(self):
        """A thin box and its 90-degree twin overlap little as polygons."""
        a = make_detection(cx=0.0, cy=0.0, width=100.0, height=10.0, angle=0.0)
        b = make_detection(cx=0.0, cy=0.0, width=100.0, height=10.0, angle=math.pi / 2)
        exact = polygon_iou(obb_corners(a), obb_corners(b))
        assert exact == pytest.approx(100.0 / 1900.0)
        assert aabb_iou(square_bounds(a), square_bounds(b)) == pytest.approx(1.0)

    def test_zero_area_polygon(self):
        a = make_detection(width=0.0, height=0.0)
        assert polygon_iou(obb_corners(a), obb_corners(a)) == 0.0


class TestRoundHalfUp:
    @pytest.mark.parametrize(
        "value, expected",
        [(2.5, 3), (3.5, 4), (360.5, 361), (2.4999, 2), (-2.5, -2), (-2.6, -3), (7.0, 7)],
    )
    def test_halves_round_up(self, value, expected):
        assert round_half_up(value) == expected

    def test_returns_int(self):
        assert isinstance(round_half_up(1.5), int)
