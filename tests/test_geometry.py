"""
Unit tests for cad_drawing.geometry.

Tests:
- Point arithmetic and coercion
- Bounds construction, union and intersection
- Point-to-segment and polyline distances
- Segment crossing and segment/box tests
- Even-odd point-in-polygon
- Rotation and block placement transforms
- R-tree index queries
"""

import math

import pytest

from cad_drawing.geometry import (
    Bounds,
    Point,
    distance,
    place_point,
    point_in_polygon,
    point_segment_distance,
    polyline_distance,
    rotate_point,
    segment_intersects_bounds,
    segments_intersect,
    union_bounds,
)
from cad_drawing.geometry.primitives import normalize_angle
from cad_drawing.geometry.spatial_index import build_rtree_index, query_rtree


class TestPoint:
    """Tests for the Point value type."""

    def test_arithmetic(self):
        """Test addition, subtraction and scaling."""
        assert Point(1, 2) + Point(3, 4) == Point(4, 6)
        assert Point(5, 5) - Point(1, 2) == Point(4, 3)
        assert Point(1, -2) * 3 == Point(3, -6)
        assert 2 * Point(1, 1) == Point(2, 2)

    def test_of_accepts_pairs_and_dicts(self):
        """Test coercion from tuples and {"x", "y"} mappings."""
        assert Point.of((1, 2)) == Point(1.0, 2.0)
        assert Point.of({"x": 3, "y": 4}) == Point(3.0, 4.0)
        p = Point(7, 8)
        assert Point.of(p) is p

    def test_distance(self):
        """Test 3-4-5 triangle distance."""
        assert distance(Point(0, 0), Point(3, 4)) == pytest.approx(5.0)
        assert Point(0, 0).distance_to(Point(3, 4)) == pytest.approx(5.0)

    def test_unpacking(self):
        """Test that points unpack as (x, y)."""
        x, y = Point(2, 9)
        assert (x, y) == (2, 9)


class TestBounds:
    """Tests for axis-aligned bounding boxes."""

    def test_from_points(self):
        """Test box around a point cloud."""
        box = Bounds.from_points([Point(1, 5), Point(-2, 3), Point(4, -1)])
        assert box == Bounds(-2, -1, 4, 5)
        assert box.width == 6
        assert box.height == 6

    def test_from_points_empty(self):
        """Test empty input gives no box."""
        assert Bounds.from_points([]) is None

    def test_from_corners_any_order(self):
        """Test that corner order does not matter."""
        assert Bounds.from_corners(Point(10, 0), Point(0, 10)) == Bounds(0, 0, 10, 10)

    def test_touching_boxes_intersect(self):
        """Test that shared edges count as intersection."""
        a = Bounds(0, 0, 10, 10)
        assert a.intersects(Bounds(10, 0, 20, 10))
        assert not a.intersects(Bounds(10.1, 0, 20, 10))

    def test_union_skips_none(self):
        """Test union_bounds ignores missing boxes."""
        box = union_bounds([None, Bounds(0, 0, 1, 1), Bounds(5, 5, 6, 6), None])
        assert box == Bounds(0, 0, 6, 6)
        assert union_bounds([None]) is None

    def test_center_and_expand(self):
        """Test center and margin growth."""
        box = Bounds(0, 0, 10, 20)
        assert box.center == Point(5, 10)
        assert box.expand(2) == Bounds(-2, -2, 12, 22)
        assert box.max_dimension == 20

    def test_negative_sizes_normalised(self):
        """Test negative radii and inverted boxes give ordinary boxes."""
        assert Bounds.around(Point(0, 0), -2) == Bounds(-2, -2, 2, 2)
        assert Bounds(10, 5, 0, 0).normalized() == Bounds(0, 0, 10, 5)


class TestDistances:
    """Tests for point-to-segment and polyline distances."""

    def test_perpendicular_foot(self):
        """Test distance to the interior of a segment."""
        assert point_segment_distance(Point(5, 3), Point(0, 0), Point(10, 0)) == pytest.approx(3.0)

    def test_beyond_endpoint(self):
        """Test distance past the end clamps to the endpoint."""
        assert point_segment_distance(Point(13, 4), Point(0, 0), Point(10, 0)) == pytest.approx(5.0)

    def test_zero_length_segment(self):
        """Test degenerate segment falls back to point distance."""
        assert point_segment_distance(Point(3, 4), Point(0, 0), Point(0, 0)) == pytest.approx(5.0)

    def test_closed_polyline_includes_closing_edge(self):
        """Test closing edge is only considered for closed polylines."""
        pts = [Point(0, 0), Point(10, 0), Point(10, 10)]
        query = Point(4, 6)
        assert polyline_distance(query, pts, closed=True) < polyline_distance(query, pts)

    def test_empty_polyline(self):
        """Test empty polyline is infinitely far away."""
        assert polyline_distance(Point(0, 0), []) == math.inf


class TestIntersections:
    """Tests for crossing and containment predicates."""

    def test_crossing_segments(self):
        """Test an X crossing."""
        assert segments_intersect(Point(0, 0), Point(10, 10), Point(0, 10), Point(10, 0))

    def test_parallel_segments(self):
        """Test parallel segments never cross."""
        assert not segments_intersect(Point(0, 0), Point(10, 0), Point(0, 1), Point(10, 1))

    def test_segment_through_box(self):
        """Test segment crossing a box with both endpoints outside."""
        box = Bounds(0, 0, 10, 10)
        assert segment_intersects_bounds(Point(-5, 5), Point(15, 5), box)

    def test_segment_missing_box(self):
        """Test segment passing beside a box."""
        box = Bounds(0, 0, 10, 10)
        assert not segment_intersects_bounds(Point(-5, 20), Point(15, 20), box)

    def test_segment_endpoint_inside_box(self):
        """Test an endpoint inside the box is enough."""
        assert segment_intersects_bounds(Point(5, 5), Point(50, 50), Bounds(0, 0, 10, 10))

    def test_point_in_square(self):
        """Test even-odd containment on a square."""
        square = [Point(0, 0), Point(10, 0), Point(10, 10), Point(0, 10)]
        assert point_in_polygon(Point(5, 5), square)
        assert not point_in_polygon(Point(15, 5), square)

    def test_point_in_concave_polygon(self):
        """Test the notch of a U shape is outside."""
        u_shape = [Point(0, 0), Point(30, 0), Point(30, 30), Point(20, 30),
                   Point(20, 10), Point(10, 10), Point(10, 30), Point(0, 30)]
        assert point_in_polygon(Point(5, 20), u_shape)
        assert not point_in_polygon(Point(15, 20), u_shape)

    def test_degenerate_polygon(self):
        """Test fewer than three vertices contain nothing."""
        assert not point_in_polygon(Point(0, 0), [Point(0, 0), Point(1, 1)])


class TestTransforms:
    """Tests for rotation and placement."""

    def test_rotate_quarter_turn(self):
        """Test 90° rotation about the origin."""
        p = rotate_point(Point(1, 0), math.pi / 2)
        assert p.x == pytest.approx(0.0, abs=1e-12)
        assert p.y == pytest.approx(1.0)

    def test_rotate_about_pivot(self):
        """Test 180° rotation about a pivot."""
        p = rotate_point(Point(2, 1), math.pi, pivot=Point(1, 1))
        assert p.x == pytest.approx(0.0)
        assert p.y == pytest.approx(1.0)

    def test_place_scale_rotate_translate(self):
        """Test placement order: scale, then rotate, then translate."""
        p = place_point(Point(1, 0), Point(100, 100), scale_x=2, scale_y=3,
                        rotation_rad=math.pi / 2)
        assert p.x == pytest.approx(100.0)
        assert p.y == pytest.approx(102.0)

    @pytest.mark.parametrize("angle,expected", [
        (-math.pi / 2, 3 * math.pi / 2),
        (5 * math.pi, math.pi),
        (0.0, 0.0),
    ])
    def test_normalize_angle(self, angle, expected):
        """Test angle wrapping into [0, 2π)."""
        assert normalize_angle(angle) == pytest.approx(expected)


class TestSpatialIndex:
    """Tests for the R-tree wrapper."""

    def test_query_returns_overlapping_positions(self):
        """Test window query returns list positions of hit boxes."""
        idx = build_rtree_index([
            Bounds(0, 0, 10, 10),
            None,
            Bounds(100, 100, 110, 110),
            Bounds(5, 5, 20, 20),
        ])
        assert query_rtree(idx, (8, 8, 9, 9)) == [0, 3]
        assert query_rtree(idx, (105, 105, 200, 200)) == [2]
        assert query_rtree(idx, (50, 50, 60, 60)) == []

    def test_inverted_box_indexed(self):
        """Test a box with min greater than max is stored normalised."""
        idx = build_rtree_index([Bounds(30, 60, 50, 50)])
        assert query_rtree(idx, (40, 55, 41, 56)) == [0]
