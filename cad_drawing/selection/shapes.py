"""
Per-type geometry queries used by selection.

For every record variant this module knows three things:

- ``reference_point``: the point hit candidates are ranked by
- ``record_bounds``: the axis-aligned box used by rectangle and fence
  selection (``None`` for empty geometry)
- ``outline_hit``: whether a point lies within a tolerance of the drawn
  outline

Dispatch goes through tables keyed by record class. A class missing from
the tables is treated as having no geometry: no bounds and no hit.
"""

import math
from typing import Callable, Dict, List, Optional, Tuple, Type

from cad_drawing import config as cfg
from cad_drawing.geometry.primitives import (
    Bounds,
    Point,
    normalize_angle,
    point_in_polygon,
    point_segment_distance,
    polyline_distance,
    rotate_point,
)
from cad_drawing.model.entities import (
    AngularDimension,
    ArcEntity,
    CircleEntity,
    DiametralDimension,
    EllipseEntity,
    Entity,
    LeaderAnnotation,
    LinearDimension,
    LineEntity,
    PolylineEntity,
    RadialDimension,
    RectangleEntity,
    SplineEntity,
    TextAnnotation,
    TextEntity,
)


# ---------------------------------------------------------------------------
# Text extent estimate
# ---------------------------------------------------------------------------

def font_size_of(record: Entity) -> float:
    return record.style.font_size or cfg.DEFAULT_FONT_SIZE


def text_extent(content: str, font_size: float) -> Tuple[float, float]:
    """Estimated (width, height) of a single text line."""
    return len(content) * font_size * cfg.TEXT_WIDTH_FACTOR, font_size


def _text_box(anchor: Point, content: str, font_size: float,
              align: Optional[str] = None) -> Bounds:
    width, height = text_extent(content, font_size)
    left = anchor.x
    if align == "center":
        left -= width / 2
    elif align == "right":
        left -= width
    return Bounds(left, anchor.y, left + width, anchor.y + height)


def _text_hit(anchor: Point, content: str, font_size: float, align: Optional[str],
              rotation: float, point: Point, tolerance: float) -> bool:
    """Point inside the text box grown by ``tolerance``.

    The box is ``TEXT_HEIGHT_FACTOR`` times the font size tall; rotated
    text is tested in its own frame.
    """
    local = rotate_point(point, -rotation, anchor) if rotation else point
    box = _text_box(anchor, content, font_size, align)
    box = Bounds(box.min_x, box.min_y, box.max_x,
                 box.min_y + font_size * cfg.TEXT_HEIGHT_FACTOR)
    return box.expand(tolerance).contains_point(local)


# ---------------------------------------------------------------------------
# Derived outlines
# ---------------------------------------------------------------------------

def rectangle_corners(rect: RectangleEntity) -> List[Point]:
    """Corners of a rectangle after rotation about its center."""
    p = rect.position
    corners = [
        p,
        Point(p.x + rect.width, p.y),
        Point(p.x + rect.width, p.y + rect.height),
        Point(p.x, p.y + rect.height),
    ]
    if not rect.rotation:
        return corners
    center = rect.center
    return [rotate_point(c, rect.rotation, center) for c in corners]


def linear_dimension_lines(dim: LinearDimension) -> List[Tuple[Point, Point]]:
    """Extension lines and the dimension line of a linear dimension."""
    start_ext = Point(dim.start.x, dim.start.y + dim.offset)
    end_ext = Point(dim.end.x, dim.end.y + dim.offset)
    return [(dim.start, start_ext), (dim.end, end_ext), (start_ext, end_ext)]


def _linear_dimension_text_anchor(dim: LinearDimension) -> Point:
    return Point((dim.start.x + dim.end.x) / 2, dim.start.y + dim.offset + 2)


def _angle_in_sweep(angle: float, start: float, end: float, counterclockwise: bool) -> bool:
    """Whether ``angle`` falls on the arc from ``start`` to ``end``.

    All three are normalised into [0, 2*pi) first.
    """
    angle = normalize_angle(angle)
    start = normalize_angle(start)
    end = normalize_angle(end)
    if counterclockwise:
        if start > end:
            return end <= angle <= start
        return angle <= start or angle >= end
    if start < end:
        return start <= angle <= end
    return angle >= start or angle <= end


# ---------------------------------------------------------------------------
# Reference points
# ---------------------------------------------------------------------------

def _first_point(points: List[Point]) -> Optional[Point]:
    return points[0] if points else None


_REFERENCE_POINT: Dict[Type[Entity], Callable[[Entity], Optional[Point]]] = {
    LineEntity: lambda e: Point((e.start.x + e.end.x) / 2, (e.start.y + e.end.y) / 2),
    CircleEntity: lambda e: e.center,
    ArcEntity: lambda e: e.center,
    EllipseEntity: lambda e: e.center,
    RectangleEntity: lambda e: e.center,
    PolylineEntity: lambda e: _first_point(e.points),
    SplineEntity: lambda e: _first_point(e.points),
    TextEntity: lambda e: e.position,
    LinearDimension: lambda e: Point((e.start.x + e.end.x) / 2, (e.start.y + e.end.y) / 2),
    AngularDimension: lambda e: e.vertex,
    RadialDimension: lambda e: e.center,
    DiametralDimension: lambda e: e.center,
    TextAnnotation: lambda e: e.position,
    LeaderAnnotation: lambda e: e.start,
}


def reference_point(record: Entity) -> Optional[Point]:
    """Point used to rank overlapping hits; None for empty geometry."""
    getter = _REFERENCE_POINT.get(type(record))
    return getter(record) if getter else None


def reference_distance(record: Entity, point: Point) -> float:
    """Distance from ``point`` to the record's reference point (inf if none)."""
    ref = reference_point(record)
    return math.inf if ref is None else ref.distance_to(point)


# ---------------------------------------------------------------------------
# Bounding boxes
# ---------------------------------------------------------------------------

def _radial_bounds(center: Point, point_on_circle: Point) -> Bounds:
    return Bounds.around(center, center.distance_to(point_on_circle))


def _leader_bounds(leader: LeaderAnnotation) -> Bounds:
    box = Bounds.from_points([leader.start] + list(leader.points))
    if leader.content:
        box = box.union(_text_box(leader.anchor, leader.content, font_size_of(leader)))
    return box


def _linear_dimension_bounds(dim: LinearDimension) -> Bounds:
    pts = [p for segment in linear_dimension_lines(dim) for p in segment]
    return Bounds.from_points(pts)


_BOUNDS: Dict[Type[Entity], Callable[[Entity], Optional[Bounds]]] = {
    LineEntity: lambda e: Bounds.from_corners(e.start, e.end),
    CircleEntity: lambda e: Bounds.around(e.center, e.radius),
    ArcEntity: lambda e: Bounds.around(e.center, e.radius),
    EllipseEntity: lambda e: Bounds.around(e.center, max(abs(e.radius_x), abs(e.radius_y))),
    RectangleEntity: lambda e: Bounds.from_corners(
        e.position, Point(e.position.x + e.width, e.position.y + e.height)),
    PolylineEntity: lambda e: Bounds.from_points(e.points),
    SplineEntity: lambda e: Bounds.from_points(e.points),
    TextEntity: lambda e: _text_box(e.position, e.content, font_size_of(e)),
    LinearDimension: _linear_dimension_bounds,
    AngularDimension: lambda e: Bounds.from_points([e.vertex, e.start, e.end]),
    RadialDimension: lambda e: _radial_bounds(e.center, e.point_on_circle),
    DiametralDimension: lambda e: _radial_bounds(e.center, e.point_on_circle),
    TextAnnotation: lambda e: _text_box(e.position, e.content, font_size_of(e)),
    LeaderAnnotation: _leader_bounds,
}


def record_bounds(record: Entity) -> Optional[Bounds]:
    """Axis-aligned box of a record; None when it has no geometry."""
    getter = _BOUNDS.get(type(record))
    return getter(record) if getter else None


# ---------------------------------------------------------------------------
# Outline hit tests
# ---------------------------------------------------------------------------

def _line_hit(e: LineEntity, p: Point, tol: float) -> bool:
    return point_segment_distance(p, e.start, e.end) <= tol


def _circle_hit(e: CircleEntity, p: Point, tol: float) -> bool:
    return abs(p.distance_to(e.center) - e.radius) <= tol


def _arc_hit(e: ArcEntity, p: Point, tol: float) -> bool:
    if abs(p.distance_to(e.center) - e.radius) > tol:
        return False
    angle = math.atan2(p.y - e.center.y, p.x - e.center.x)
    return _angle_in_sweep(angle, e.start_angle, e.end_angle, e.counterclockwise)


def _ellipse_hit(e: EllipseEntity, p: Point, tol: float) -> bool:
    min_radius = min(e.radius_x, e.radius_y)
    if min_radius <= 0:
        return False
    local = rotate_point(p, -e.rotation, e.center) - e.center
    normalized = (local.x * local.x) / (e.radius_x * e.radius_x) \
        + (local.y * local.y) / (e.radius_y * e.radius_y)
    return abs(normalized - 1) <= tol / min_radius


def _rectangle_hit(e: RectangleEntity, p: Point, tol: float) -> bool:
    return polyline_distance(p, rectangle_corners(e), closed=True) <= tol


def _polyline_hit(e: PolylineEntity, p: Point, tol: float) -> bool:
    if len(e.points) < 2:
        return False
    if polyline_distance(p, e.points, closed=e.closed) <= tol:
        return True
    # A closed outline also picks from its interior
    return e.closed and len(e.points) > 2 and point_in_polygon(p, e.points)


def _text_entity_hit(e: TextEntity, p: Point, tol: float) -> bool:
    return _text_hit(e.position, e.content, font_size_of(e), e.style.text_align,
                     e.rotation, p, tol)


def _text_annotation_hit(e: TextAnnotation, p: Point, tol: float) -> bool:
    return _text_hit(e.position, e.content, font_size_of(e), e.style.text_align,
                     0.0, p, tol)


def _leader_hit(e: LeaderAnnotation, p: Point, tol: float) -> bool:
    if not e.points:
        return False
    if polyline_distance(p, [e.start] + list(e.points)) <= tol:
        return True
    if e.text_position is None:
        return False
    return _text_hit(e.text_position, e.content, font_size_of(e), None, 0.0, p, tol)


def _linear_dimension_hit(e: LinearDimension, p: Point, tol: float) -> bool:
    for start, end in linear_dimension_lines(e):
        if point_segment_distance(p, start, end) <= tol:
            return True
    anchor = _linear_dimension_text_anchor(e)
    return _text_hit(anchor, e.text, font_size_of(e), "center", 0.0, p, tol)


def _angular_dimension_hit(e: AngularDimension, p: Point, tol: float) -> bool:
    if point_segment_distance(p, e.vertex, e.start) <= tol:
        return True
    if point_segment_distance(p, e.vertex, e.end) <= tol:
        return True
    if e.radius <= 0 or abs(p.distance_to(e.vertex) - e.radius) > tol:
        return False
    a1 = math.atan2(e.start.y - e.vertex.y, e.start.x - e.vertex.x)
    a2 = math.atan2(e.end.y - e.vertex.y, e.end.x - e.vertex.x)
    angle = math.atan2(p.y - e.vertex.y, p.x - e.vertex.x)
    # The dimension arc spans the smaller angle between the two rays
    if normalize_angle(a2 - a1) <= math.pi:
        return _angle_in_sweep(angle, a1, a2, False)
    return _angle_in_sweep(angle, a2, a1, False)


def _radial_dimension_hit(e: RadialDimension, p: Point, tol: float) -> bool:
    return point_segment_distance(p, e.center, e.point_on_circle) <= tol


def _diametral_dimension_hit(e: DiametralDimension, p: Point, tol: float) -> bool:
    opposite = e.center - (e.point_on_circle - e.center)
    return point_segment_distance(p, opposite, e.point_on_circle) <= tol


_OUTLINE_HIT: Dict[Type[Entity], Callable[[Entity, Point, float], bool]] = {
    LineEntity: _line_hit,
    CircleEntity: _circle_hit,
    ArcEntity: _arc_hit,
    EllipseEntity: _ellipse_hit,
    RectangleEntity: _rectangle_hit,
    PolylineEntity: _polyline_hit,
    SplineEntity: _polyline_hit,
    TextEntity: _text_entity_hit,
    LinearDimension: _linear_dimension_hit,
    AngularDimension: _angular_dimension_hit,
    RadialDimension: _radial_dimension_hit,
    DiametralDimension: _diametral_dimension_hit,
    TextAnnotation: _text_annotation_hit,
    LeaderAnnotation: _leader_hit,
}


def outline_hit(record: Entity, point: Point, tolerance: float) -> bool:
    """True when ``point`` is within ``tolerance`` of the record's outline.

    Splines are tested against their through-points as a polyline.
    """
    test = _OUTLINE_HIT.get(type(record))
    return bool(test and test(record, point, tolerance))
