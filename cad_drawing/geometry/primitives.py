"""
Planar geometry primitives used by every engine.

Provides:
- Point: immutable 2D value type
- Bounds: axis-aligned bounding box with union/intersection helpers
- Distances: point-to-point, point-to-segment
- Orientation: counter-clockwise test and segment/segment intersection
- Containment: even-odd point-in-polygon
- Transforms: rotation about a pivot, scale-rotate-translate placement

Everything here is pure; no function mutates its arguments.
"""

import math
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from cad_drawing.config import EPSILON


@dataclass(frozen=True)
class Point:
    """A point or vector in drawing units."""
    x: float = 0.0
    y: float = 0.0

    def __add__(self, other: 'Point') -> 'Point':
        return Point(self.x + other.x, self.y + other.y)

    def __sub__(self, other: 'Point') -> 'Point':
        return Point(self.x - other.x, self.y - other.y)

    def __mul__(self, factor: float) -> 'Point':
        return Point(self.x * factor, self.y * factor)

    __rmul__ = __mul__

    def __iter__(self):
        yield self.x
        yield self.y

    def distance_to(self, other: 'Point') -> float:
        return math.hypot(self.x - other.x, self.y - other.y)

    def length(self) -> float:
        return math.hypot(self.x, self.y)

    def as_tuple(self) -> Tuple[float, float]:
        return (self.x, self.y)

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y}

    @classmethod
    def of(cls, value) -> 'Point':
        """Coerce a Point, an (x, y) pair or an {"x", "y"} mapping."""
        if isinstance(value, Point):
            return value
        if isinstance(value, dict):
            return cls(float(value["x"]), float(value["y"]))
        x, y = value
        return cls(float(x), float(y))


ORIGIN = Point(0.0, 0.0)


@dataclass(frozen=True)
class Bounds:
    """Axis-aligned bounding box.

    Attributes:
        min_x, min_y: Lower-left corner
        max_x, max_y: Upper-right corner
    """
    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @classmethod
    def from_points(cls, points: Sequence[Point]) -> Optional['Bounds']:
        """Smallest box holding all points; None for an empty sequence."""
        if not points:
            return None
        coords = np.array([(p.x, p.y) for p in points], dtype=np.float64)
        lo = coords.min(axis=0)
        hi = coords.max(axis=0)
        return cls(float(lo[0]), float(lo[1]), float(hi[0]), float(hi[1]))

    @classmethod
    def from_corners(cls, a: Point, b: Point) -> 'Bounds':
        """Box spanned by two opposite corners given in any order."""
        return cls(min(a.x, b.x), min(a.y, b.y), max(a.x, b.x), max(a.y, b.y))

    @classmethod
    def around(cls, center: Point, rx: float, ry: Optional[float] = None) -> 'Bounds':
        """Box of half-size ``rx`` by ``ry`` about ``center`` (sizes taken as absolute)."""
        rx = abs(rx)
        ry = rx if ry is None else abs(ry)
        return cls(center.x - rx, center.y - ry, center.x + rx, center.y + ry)

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    @property
    def center(self) -> Point:
        return Point((self.min_x + self.max_x) / 2, (self.min_y + self.max_y) / 2)

    @property
    def max_dimension(self) -> float:
        """Larger of width and height."""
        return max(self.width, self.height)

    @property
    def diagonal(self) -> float:
        return math.hypot(self.width, self.height)

    def corners(self) -> List[Point]:
        """Corners in counter-clockwise order starting at the lower-left."""
        return [
            Point(self.min_x, self.min_y),
            Point(self.max_x, self.min_y),
            Point(self.max_x, self.max_y),
            Point(self.min_x, self.max_y),
        ]

    def normalized(self) -> 'Bounds':
        """Same box with min and max swapped on any inverted axis."""
        return Bounds(min(self.min_x, self.max_x), min(self.min_y, self.max_y),
                      max(self.min_x, self.max_x), max(self.min_y, self.max_y))

    def contains_point(self, point: Point) -> bool:
        return (self.min_x <= point.x <= self.max_x
                and self.min_y <= point.y <= self.max_y)

    def intersects(self, other: 'Bounds') -> bool:
        """True unless the boxes are separated on some axis (touching counts)."""
        return not (self.max_x < other.min_x or self.min_x > other.max_x
                    or self.max_y < other.min_y or self.min_y > other.max_y)

    def expand(self, margin: float) -> 'Bounds':
        return Bounds(self.min_x - margin, self.min_y - margin,
                      self.max_x + margin, self.max_y + margin)

    def union(self, other: 'Bounds') -> 'Bounds':
        return Bounds(min(self.min_x, other.min_x), min(self.min_y, other.min_y),
                      max(self.max_x, other.max_x), max(self.max_y, other.max_y))

    def as_tuple(self) -> Tuple[float, float, float, float]:
        """(min_x, min_y, max_x, max_y), the layout rtree expects."""
        return (self.min_x, self.min_y, self.max_x, self.max_y)

    def to_dict(self) -> dict:
        return {
            "min": {"x": self.min_x, "y": self.min_y},
            "max": {"x": self.max_x, "y": self.max_y},
            "width": self.width,
            "height": self.height,
        }


def union_bounds(boxes: Iterable[Optional[Bounds]]) -> Optional[Bounds]:
    """Union of all non-None boxes, or None when there are none."""
    result: Optional[Bounds] = None
    for box in boxes:
        if box is None:
            continue
        result = box if result is None else result.union(box)
    return result


# ---------------------------------------------------------------------------
# Distances
# ---------------------------------------------------------------------------

def distance(a: Point, b: Point) -> float:
    return math.hypot(a.x - b.x, a.y - b.y)


def point_segment_distance(point: Point, start: Point, end: Point) -> float:
    """Shortest distance from a point to the closed segment start-end.

    A zero-length segment degrades to the distance to its endpoint.
    """
    dx = end.x - start.x
    dy = end.y - start.y
    length_sq = dx * dx + dy * dy
    if length_sq < EPSILON:
        return distance(point, start)

    t = ((point.x - start.x) * dx + (point.y - start.y) * dy) / length_sq
    t = max(0.0, min(1.0, t))
    return math.hypot(point.x - (start.x + t * dx), point.y - (start.y + t * dy))


def polyline_distance(point: Point, points: Sequence[Point], closed: bool = False) -> float:
    """Distance to the nearest segment of a polyline (inf when empty)."""
    if not points:
        return math.inf
    if len(points) == 1:
        return distance(point, points[0])

    best = min(
        point_segment_distance(point, points[i], points[i + 1])
        for i in range(len(points) - 1)
    )
    if closed and len(points) > 2:
        best = min(best, point_segment_distance(point, points[-1], points[0]))
    return best


# ---------------------------------------------------------------------------
# Orientation and intersection
# ---------------------------------------------------------------------------

def ccw(a: Point, b: Point, c: Point) -> bool:
    """True when a -> b -> c turns counter-clockwise."""
    return (c.y - a.y) * (b.x - a.x) > (b.y - a.y) * (c.x - a.x)


def segments_intersect(a: Point, b: Point, c: Point, d: Point) -> bool:
    """Proper crossing test for segments ab and cd.

    Collinear overlaps are not reported, matching the plain orientation test.
    """
    return ccw(a, c, d) != ccw(b, c, d) and ccw(a, b, c) != ccw(a, b, d)


def segment_intersects_bounds(start: Point, end: Point, box: Bounds) -> bool:
    """Segment touches a box: an endpoint inside, or a crossing with an edge."""
    if box.contains_point(start) or box.contains_point(end):
        return True

    corners = box.corners()
    for i in range(4):
        if segments_intersect(start, end, corners[i], corners[(i + 1) % 4]):
            return True
    return False


def point_in_polygon(point: Point, polygon: Sequence[Point]) -> bool:
    """Even-odd ray casting along +x."""
    n = len(polygon)
    if n < 3:
        return False

    inside = False
    j = n - 1
    for i in range(n):
        pi, pj = polygon[i], polygon[j]
        if (pi.y > point.y) != (pj.y > point.y):
            x_cross = (pj.x - pi.x) * (point.y - pi.y) / (pj.y - pi.y) + pi.x
            if point.x < x_cross:
                inside = not inside
        j = i
    return inside


# ---------------------------------------------------------------------------
# Angles and transforms
# ---------------------------------------------------------------------------

def normalize_angle(angle: float) -> float:
    """Wrap an angle in radians into [0, 2*pi)."""
    two_pi = 2 * math.pi
    angle = math.fmod(angle, two_pi)
    if angle < 0:
        angle += two_pi
    return angle


def rotate_point(point: Point, angle_rad: float, pivot: Point = ORIGIN) -> Point:
    """Rotate counter-clockwise about ``pivot``."""
    if angle_rad == 0:
        return point
    cos_a = math.cos(angle_rad)
    sin_a = math.sin(angle_rad)
    dx = point.x - pivot.x
    dy = point.y - pivot.y
    return Point(pivot.x + dx * cos_a - dy * sin_a,
                 pivot.y + dx * sin_a + dy * cos_a)


def place_point(point: Point, insertion: Point, scale_x: float = 1.0,
                scale_y: float = 1.0, rotation_rad: float = 0.0) -> Point:
    """Scale about the origin, rotate about the origin, then translate."""
    scaled = Point(point.x * scale_x, point.y * scale_y)
    return rotate_point(scaled, rotation_rad) + insertion
