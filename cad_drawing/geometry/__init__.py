"""Planar geometry: points, boxes, distances, intersection tests, spatial index."""

from cad_drawing.geometry.primitives import (
    ORIGIN,
    Bounds,
    Point,
    ccw,
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

__all__ = [
    "ORIGIN",
    "Bounds",
    "Point",
    "ccw",
    "distance",
    "place_point",
    "point_in_polygon",
    "point_segment_distance",
    "polyline_distance",
    "rotate_point",
    "segment_intersects_bounds",
    "segments_intersect",
    "union_bounds",
]
