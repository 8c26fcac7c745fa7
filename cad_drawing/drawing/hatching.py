"""
Hatch pattern generation.

A hatch pattern is a list of ruling families (:class:`HatchLine`): an
angle, a base point, the offset between neighbouring rulings and an
optional draw/gap dash cycle, all in pattern units. :class:`HatchEngine`
turns a pattern plus a set of closed boundaries into plain line segments;
drawing them is left to the caller (see :func:`render_hatch_to_svg`).

Standard catalog (loaded into every engine):
- ANSI31: Iron, brick, stone masonry (45°)
- ANSI32: Steel (45° + 135°)
- ANSI33: Bronze, brass, copper
- ANSI34: Plastic, rubber
- ANSI35: Fire brick, refractory material
- ANSI36: Marble, slate, glass (dashed 45°)
- ANSI37: Lead, zinc, magnesium
- ANSI38: Aluminum
- BRICK:  Running-bond brick
- DOTS:   Dot grid

Generation:
1. Union box of the boundaries, grown by ``2 * scale``.
2. Per ruling family, effective angle = family angle + hatch angle;
   ``ceil(2 * max_dim / |scaled_offset|) + 10`` rulings on each side.
3. Ruling ``i`` passes through ``origin + R(base * scale + i * offset * scale)``
   and spans ``3 * max_dim`` on either side.
4. Dash cycles split rulings into draw pieces (index 0 draws).
5. Pieces are clipped against the boundaries (exact interval clipping by
   default, or the coarse keep-if-an-endpoint-is-inside rule).
"""

import copy
import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from cad_drawing import config as cfg
from cad_drawing.errors import NotFoundError
from cad_drawing.geometry.primitives import ORIGIN, Bounds, Point, point_in_polygon, union_bounds
from cad_drawing.logging_config import log_timing
from cad_drawing.model.entities import (
    CircleEntity,
    Entity,
    PolylineEntity,
    RectangleEntity,
    SplineEntity,
    Style,
    new_id,
)
from cad_drawing.selection.shapes import rectangle_corners

logger = logging.getLogger(__name__)

Segment = List[Point]


class PatternType(Enum):
    """Origin of a hatch pattern."""
    PREDEFINED = "predefined"
    USER = "user"
    SOLID = "solid"
    GRADIENT = "gradient"


class BoundaryType(Enum):
    POLYLINE = "polyline"
    CIRCLE = "circle"
    RECTANGLE = "rectangle"
    SPLINE = "spline"


class ClipMode(Enum):
    """How ruling pieces are trimmed to the boundaries.

    EXACT: split each piece where it crosses a boundary and keep the parts
        inside (union of all boundaries).
    ENDPOINT: keep a piece whole if either endpoint lies inside any
        boundary, drop it otherwise.
    """
    EXACT = "exact"
    ENDPOINT = "endpoint"


# ---------------------------------------------------------------------------
# Pattern and boundary records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class HatchLine:
    """One family of parallel rulings.

    Attributes:
        angle: Ruling direction in degrees
        base_point: Pattern-space point the family is anchored at
        offset: Pattern-space step from one ruling to the next
        dash_lengths: Alternating draw/gap lengths; empty means continuous
    """
    angle: float
    base_point: Point = ORIGIN
    offset: Point = Point(0.0, 0.125)
    dash_lengths: Tuple[float, ...] = ()


@dataclass
class HatchPattern:
    """Named, ordered collection of ruling families."""
    id: str
    name: str
    lines: List[HatchLine] = field(default_factory=list)
    description: Optional[str] = None
    pattern_type: PatternType = PatternType.USER


@dataclass
class HatchBoundary:
    """Closed region a hatch fills.

    Rectangles are given by center, width and height. Polyline and spline
    boundaries use their point list as a polygon; they only enclose
    anything when ``closed`` is set.
    """
    boundary_type: BoundaryType
    points: List[Point] = field(default_factory=list)
    center: Optional[Point] = None
    radius: float = 0.0
    width: float = 0.0
    height: float = 0.0
    closed: bool = True

    @classmethod
    def polygon(cls, points: Sequence[Point], closed: bool = True) -> 'HatchBoundary':
        return cls(BoundaryType.POLYLINE, points=list(points), closed=closed)

    @classmethod
    def circle(cls, center: Point, radius: float) -> 'HatchBoundary':
        return cls(BoundaryType.CIRCLE, center=center, radius=radius)

    @classmethod
    def rectangle(cls, center: Point, width: float, height: float) -> 'HatchBoundary':
        return cls(BoundaryType.RECTANGLE, center=center, width=width, height=height)

    @classmethod
    def from_entity(cls, entity: Entity) -> Optional['HatchBoundary']:
        """Boundary matching a document entity, or None for open shapes.

        Rotated rectangles become polygons.
        """
        if isinstance(entity, CircleEntity):
            return cls.circle(entity.center, entity.radius)
        if isinstance(entity, RectangleEntity):
            if entity.rotation:
                return cls.polygon(rectangle_corners(entity))
            return cls.rectangle(entity.center, entity.width, entity.height)
        if isinstance(entity, SplineEntity) and entity.closed:
            return cls(BoundaryType.SPLINE, points=list(entity.points), closed=True)
        if isinstance(entity, PolylineEntity) and entity.closed:
            return cls.polygon(entity.points)
        return None

    def bounds(self) -> Optional[Bounds]:
        if self.boundary_type is BoundaryType.CIRCLE:
            if self.center is None or self.radius <= 0:
                return None
            return Bounds.around(self.center, self.radius)
        if self.boundary_type is BoundaryType.RECTANGLE:
            if self.center is None or self.width <= 0 or self.height <= 0:
                return None
            return Bounds.around(self.center, self.width / 2, self.height / 2)
        return Bounds.from_points(self.points)

    def contains(self, point: Point) -> bool:
        """Inside test: circle and rectangle inclusive, polygons even-odd."""
        if self.boundary_type is BoundaryType.CIRCLE:
            if self.center is None or self.radius <= 0:
                return False
            dx = point.x - self.center.x
            dy = point.y - self.center.y
            return dx * dx + dy * dy <= self.radius * self.radius
        if self.boundary_type is BoundaryType.RECTANGLE:
            box = self.bounds()
            return box is not None and box.contains_point(point)
        return self.closed and point_in_polygon(point, self.points)

    def edges(self) -> List[Tuple[Point, Point]]:
        """Straight edges (empty for circles)."""
        if self.boundary_type is BoundaryType.CIRCLE:
            return []
        if self.boundary_type is BoundaryType.RECTANGLE:
            box = self.bounds()
            pts = box.corners() if box else []
        else:
            pts = self.points if self.closed else []
        if len(pts) < 2:
            return []
        return [(pts[i], pts[(i + 1) % len(pts)]) for i in range(len(pts))]


@dataclass
class HatchDefinition:
    """A pattern applied to concrete boundaries.

    When ``associative`` is set, ``boundary_entity_ids`` names the document
    entities the boundaries were taken from, and
    :meth:`HatchEngine.refresh_boundaries` rebuilds them after edits.
    """
    boundaries: List[HatchBoundary]
    pattern: HatchPattern
    scale: float = 1.0
    angle: float = 0.0
    origin: Point = ORIGIN
    style: Style = field(default_factory=Style)
    associative: bool = False
    boundary_entity_ids: List[str] = field(default_factory=list)
    id: str = field(default_factory=lambda: new_id("hatch"))


# ---------------------------------------------------------------------------
# Standard catalog
# ---------------------------------------------------------------------------

def _family(angle: float, offset: Tuple[float, float], base: Tuple[float, float] = (0.0, 0.0),
            dashes: Tuple[float, ...] = ()) -> HatchLine:
    return HatchLine(angle=angle, base_point=Point(*base), offset=Point(*offset),
                     dash_lengths=dashes)


_CATALOG = [
    ("ANSI31", "Iron, Brick, Stone masonry", [
        _family(45, (0, 0.125)),
    ]),
    ("ANSI32", "Steel", [
        _family(45, (0, 0.125)),
        _family(135, (0, 0.125)),
    ]),
    ("ANSI33", "Bronze, Brass, Copper", [
        _family(45, (0, 0.125)),
        _family(135, (0, 0.125), base=(0, 0.0625)),
    ]),
    ("ANSI34", "Plastic, Rubber", [
        _family(45, (0, 0.125)),
        _family(135, (0, 0.125)),
        _family(0, (0, 0.25)),
    ]),
    ("ANSI35", "Fire brick, Refractory material", [
        _family(45, (0, 0.125)),
        _family(135, (0, 0.25), base=(0, 0.0625)),
    ]),
    ("ANSI36", "Marble, Slate, Glass", [
        _family(45, (0, 0.125), dashes=(0.125, 0.0625)),
    ]),
    ("ANSI37", "Lead, Zinc, Magnesium", [
        _family(45, (0, 0.125)),
        _family(135, (0, 0.125)),
        _family(0, (0, 0.25), base=(0, 0.125)),
    ]),
    ("ANSI38", "Aluminum", [
        _family(45, (0, 0.125)),
        _family(135, (0, 0.375)),
    ]),
    ("BRICK", "Brick pattern", [
        _family(0, (0, 0.25)),
        _family(0, (0, 0.25), base=(0.125, 0.125)),
        _family(90, (0.25, 0), dashes=(0.125, 0.125)),
    ]),
    ("DOTS", "Dots pattern", [
        _family(0, (0.125, 0.125), dashes=(0, 0.125)),
    ]),
]

STANDARD_PATTERNS: Dict[str, HatchPattern] = {
    pattern_id: HatchPattern(
        id=pattern_id,
        name=pattern_id,
        description=description,
        pattern_type=PatternType.PREDEFINED,
        lines=lines,
    )
    for pattern_id, description, lines in _CATALOG
}


# ---------------------------------------------------------------------------
# Segment helpers
# ---------------------------------------------------------------------------

def split_dashes(start: Point, end: Point, dash_lengths: Sequence[float]) -> List[Segment]:
    """Cut a segment into the draw pieces of a dash cycle.

    Walks from ``start`` toward ``end`` taking the dash lengths in turn;
    even positions draw, odd positions skip. The last piece is cut short
    at ``end``. Zero-length draws (dots) are dropped, as are cycles whose
    lengths are all zero.

    Args:
        start: Segment start
        end: Segment end
        dash_lengths: Draw/gap lengths, cycled

    Returns:
        Draw pieces as ``[start, end]`` pairs
    """
    total = start.distance_to(end)
    if total < cfg.EPSILON or not dash_lengths:
        return [[start, end]] if total >= cfg.EPSILON else []
    if sum(abs(d) for d in dash_lengths) < cfg.EPSILON:
        return []

    ux = (end.x - start.x) / total
    uy = (end.y - start.y) / total

    pieces: List[Segment] = []
    travelled = 0.0
    index = 0
    while travelled < total:
        dash = abs(dash_lengths[index % len(dash_lengths)])
        next_travelled = min(travelled + dash, total)
        if index % 2 == 0 and dash > 0:
            pieces.append([
                Point(start.x + ux * travelled, start.y + uy * travelled),
                Point(start.x + ux * next_travelled, start.y + uy * next_travelled),
            ])
        travelled = next_travelled
        index += 1
    return pieces


def _segment_circle_params(a: Point, b: Point, center: Point, radius: float) -> List[float]:
    dx, dy = b.x - a.x, b.y - a.y
    fx, fy = a.x - center.x, a.y - center.y
    qa = dx * dx + dy * dy
    qb = 2 * (fx * dx + fy * dy)
    qc = fx * fx + fy * fy - radius * radius
    disc = qb * qb - 4 * qa * qc
    if qa < cfg.EPSILON or disc < 0:
        return []
    root = math.sqrt(disc)
    return [(-qb - root) / (2 * qa), (-qb + root) / (2 * qa)]


def _segment_segment_param(a: Point, b: Point, c: Point, d: Point) -> Optional[float]:
    rx, ry = b.x - a.x, b.y - a.y
    sx, sy = d.x - c.x, d.y - c.y
    denom = rx * sy - ry * sx
    if abs(denom) < cfg.EPSILON:
        return None
    qx, qy = c.x - a.x, c.y - a.y
    t = (qx * sy - qy * sx) / denom
    u = (qx * ry - qy * rx) / denom
    if 0.0 <= u <= 1.0:
        return t
    return None


def _inside_any(point: Point, boundaries: Sequence[HatchBoundary]) -> bool:
    return any(boundary.contains(point) for boundary in boundaries)


def clip_segment(segment: Segment, boundaries: Sequence[HatchBoundary],
                 mode: ClipMode = ClipMode.EXACT) -> List[Segment]:
    """Trim one segment to the union of the boundaries.

    Args:
        segment: ``[start, end]``
        boundaries: Closed regions
        mode: Exact interval clipping or the coarse endpoint rule

    Returns:
        Zero or more pieces of the segment
    """
    a, b = segment[0], segment[-1]
    if mode is ClipMode.ENDPOINT:
        if _inside_any(a, boundaries) or _inside_any(b, boundaries):
            return [list(segment)]
        return []

    params = {0.0, 1.0}
    for boundary in boundaries:
        if boundary.boundary_type is BoundaryType.CIRCLE and boundary.center is not None:
            params.update(_segment_circle_params(a, b, boundary.center, boundary.radius))
        for c, d in boundary.edges():
            t = _segment_segment_param(a, b, c, d)
            if t is not None:
                params.add(t)
    cuts = sorted(t for t in params if 0.0 <= t <= 1.0)

    def at(t: float) -> Point:
        return Point(a.x + (b.x - a.x) * t, a.y + (b.y - a.y) * t)

    pieces: List[Segment] = []
    run_start: Optional[float] = None
    for t0, t1 in zip(cuts, cuts[1:]):
        if t1 - t0 < cfg.EPSILON:
            continue
        if _inside_any(at((t0 + t1) / 2), boundaries):
            if run_start is None:
                run_start = t0
            run_end = t1
        elif run_start is not None:
            pieces.append([at(run_start), at(run_end)])
            run_start = None
    if run_start is not None:
        pieces.append([at(run_start), at(run_end)])
    return pieces


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class HatchEngine:
    """Pattern catalog plus hatch line generation.

    Args:
        clip_mode: Default clipping applied by :meth:`generate_hatch_lines`
    """

    def __init__(self, clip_mode: ClipMode = ClipMode.EXACT):
        self.clip_mode = clip_mode
        self._patterns: Dict[str, HatchPattern] = {
            pattern_id: copy.deepcopy(pattern)
            for pattern_id, pattern in STANDARD_PATTERNS.items()
        }

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def add_pattern(self, pattern: HatchPattern) -> None:
        """Register or replace a pattern under its id."""
        self._patterns[pattern.id] = pattern
        logger.debug("Registered hatch pattern %s (%d families)",
                     pattern.id, len(pattern.lines))

    def get_pattern(self, pattern_id: str) -> Optional[HatchPattern]:
        return self._patterns.get(pattern_id)

    def require_pattern(self, pattern_id: str) -> HatchPattern:
        pattern = self._patterns.get(pattern_id)
        if pattern is None:
            raise NotFoundError("Hatch pattern", pattern_id)
        return pattern

    def get_all_patterns(self) -> List[HatchPattern]:
        return list(self._patterns.values())

    @staticmethod
    def create_simple_pattern(pattern_id: str, name: str, angle: float, spacing: float,
                              description: Optional[str] = None) -> HatchPattern:
        """Single family of continuous rulings ``spacing`` apart."""
        return HatchPattern(
            id=pattern_id,
            name=name,
            description=description,
            pattern_type=PatternType.USER,
            lines=[HatchLine(angle=angle, offset=Point(0.0, spacing))],
        )

    @staticmethod
    def create_cross_hatch_pattern(pattern_id: str, name: str, angle1: float, angle2: float,
                                   spacing: float,
                                   description: Optional[str] = None) -> HatchPattern:
        """Two families of continuous rulings with the same spacing."""
        return HatchPattern(
            id=pattern_id,
            name=name,
            description=description,
            pattern_type=PatternType.USER,
            lines=[
                HatchLine(angle=angle1, offset=Point(0.0, spacing)),
                HatchLine(angle=angle2, offset=Point(0.0, spacing)),
            ],
        )

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def _rulings(self, family: HatchLine, box: Bounds, scale: float,
                 angle_deg: float, origin: Point) -> List[Segment]:
        """Full-length rulings (dash-split) for one family over ``box``."""
        offset = np.array([family.offset.x, family.offset.y]) * scale
        offset_length = float(np.hypot(*offset))
        if offset_length < cfg.EPSILON:
            logger.debug("Skipping hatch family at %.1f°: zero offset", family.angle)
            return []

        theta = math.radians(angle_deg)
        cos_t, sin_t = math.cos(theta), math.sin(theta)
        rotation = np.array([[cos_t, -sin_t], [sin_t, cos_t]])
        direction = np.array([cos_t, sin_t])
        perpendicular = np.array([-sin_t, cos_t])

        max_dim = box.max_dimension
        num = int(math.ceil(max_dim * 2 / offset_length)) + cfg.HATCH_LINE_MARGIN
        half_length = max_dim * cfg.HATCH_LENGTH_FACTOR

        base = np.array([family.base_point.x, family.base_point.y]) * scale
        origin_xy = np.array([origin.x, origin.y])
        center_xy = np.array([box.center.x, box.center.y])

        # Index window centred on the ruling nearest the box center
        step_across = float((rotation @ offset) @ perpendicular)
        first = 0
        if abs(step_across) > cfg.EPSILON:
            across = float((center_xy - origin_xy - rotation @ base) @ perpendicular)
            first = int(round(across / step_across))

        indices = np.arange(first - num, first + num + 1, dtype=np.float64)
        anchors = origin_xy + (base + indices[:, None] * offset) @ rotation.T

        # Slide each anchor along its ruling toward the box center by whole
        # dash periods so the dash phase stays tied to the pattern
        along = (center_xy - anchors) @ direction
        period = float(sum(abs(d) for d in family.dash_lengths)) * scale
        if period > cfg.EPSILON:
            along = np.round(along / period) * period
        centers = anchors + along[:, None] * direction

        dashes = [d * scale for d in family.dash_lengths]
        segments: List[Segment] = []
        for cx, cy in centers:
            start = Point(float(cx - direction[0] * half_length), float(cy - direction[1] * half_length))
            end = Point(float(cx + direction[0] * half_length), float(cy + direction[1] * half_length))
            if dashes:
                segments.extend(split_dashes(start, end, dashes))
            else:
                segments.append([start, end])
        return segments

    def generate_hatch_lines(
        self,
        boundaries: Sequence[HatchBoundary],
        pattern: HatchPattern,
        scale: float = 1.0,
        angle: float = 0.0,
        origin: Point = ORIGIN,
        clip_mode: Optional[ClipMode] = None,
    ) -> List[Segment]:
        """Fill segments for ``pattern`` inside ``boundaries``.

        Output depends only on the arguments; repeated calls return equal
        lists.

        Args:
            boundaries: Closed regions to fill (union)
            pattern: Ruling families to draw
            scale: Pattern units to drawing units
            angle: Extra rotation in degrees added to every family
            origin: Pattern anchor in drawing units
            clip_mode: Override of the engine's clip mode

        Returns:
            Segments as ``[start, end]`` point lists
        """
        box = union_bounds(b.bounds() for b in boundaries)
        if box is None or scale <= 0:
            return []

        mode = clip_mode or self.clip_mode
        expanded = box.expand(cfg.HATCH_BOX_MARGIN_FACTOR * scale)
        result: List[Segment] = []

        with log_timing(logger, "hatch generation", pattern=pattern.id) as info:
            for family in pattern.lines:
                for segment in self._rulings(family, expanded, scale,
                                             family.angle + angle, origin):
                    result.extend(clip_segment(segment, boundaries, mode))
            info["segments"] = len(result)

        return result

    def generate_for_definition(self, definition: HatchDefinition,
                                clip_mode: Optional[ClipMode] = None) -> List[Segment]:
        """Shorthand for :meth:`generate_hatch_lines` on a definition."""
        return self.generate_hatch_lines(
            definition.boundaries,
            definition.pattern,
            definition.scale,
            definition.angle,
            definition.origin,
            clip_mode,
        )

    def create_hatch(self, boundaries: Sequence[HatchBoundary], pattern_id: str,
                     scale: Optional[float] = None, angle: Optional[float] = None,
                     origin: Point = ORIGIN, style: Optional[Style] = None) -> HatchDefinition:
        """Build a definition from a catalog pattern and configured defaults.

        Raises:
            NotFoundError: If the pattern id is unknown
        """
        return HatchDefinition(
            boundaries=list(boundaries),
            pattern=self.require_pattern(pattern_id),
            scale=cfg.DEFAULT_HATCH_SCALE if scale is None else scale,
            angle=cfg.DEFAULT_HATCH_ANGLE if angle is None else angle,
            origin=origin,
            style=style or Style(),
        )

    def hatch_from_entities(self, document, entity_ids: Sequence[str], pattern_id: str,
                            **options) -> HatchDefinition:
        """Associative hatch whose boundaries come from document entities.

        Raises:
            NotFoundError: For unknown entity or pattern ids
        """
        definition = self.create_hatch([], pattern_id, **options)
        definition.associative = True
        definition.boundary_entity_ids = list(entity_ids)
        self.refresh_boundaries(definition, document)
        return definition

    def refresh_boundaries(self, definition: HatchDefinition, document) -> bool:
        """Rebuild an associative hatch's boundaries from the document.

        Entities that are gone or no longer closed are dropped from the
        boundary set.

        Returns:
            True if the boundaries changed
        """
        if not definition.associative:
            return False

        boundaries = []
        for entity_id in definition.boundary_entity_ids:
            entity = document.entity_by_id(entity_id)
            if entity is None:
                logger.warning("Hatch %s: boundary entity %s is gone",
                               definition.id, entity_id)
                continue
            boundary = HatchBoundary.from_entity(entity)
            if boundary is not None:
                boundaries.append(boundary)

        changed = boundaries != definition.boundaries
        definition.boundaries = boundaries
        return changed


# ---------------------------------------------------------------------------
# SVG preview
# ---------------------------------------------------------------------------

def render_hatch_to_svg(dwg, definition: HatchDefinition,
                        engine: Optional[HatchEngine] = None,
                        ) -> 'svgwrite.container.Group':
    """Render a hatch definition into an SVG group.

    Solid patterns fill their polygon and circle boundaries; all other
    patterns are drawn as generated line segments.

    Args:
        dwg: svgwrite.Drawing instance
        definition: Hatch to draw
        engine: Engine used for generation (a fresh one if None)

    Returns:
        SVG group holding the hatch geometry
    """
    engine = engine or HatchEngine()
    group = dwg.g()
    group['data-hatch-pattern'] = definition.pattern.id

    style = {
        'stroke': definition.style.stroke_color,
        'stroke_width': definition.style.stroke_width,
        'stroke_linecap': 'butt',
    }

    if definition.pattern.pattern_type is PatternType.SOLID:
        fill = definition.style.fill_color or definition.style.stroke_color
        for boundary in definition.boundaries:
            if boundary.boundary_type is BoundaryType.CIRCLE and boundary.center is not None:
                group.add(dwg.circle(center=boundary.center.as_tuple(), r=boundary.radius,
                                     fill=fill, stroke='none'))
            else:
                corners = [c for c, _ in boundary.edges()]
                if corners:
                    group.add(dwg.polygon([p.as_tuple() for p in corners],
                                          fill=fill, stroke='none'))
        return group

    segments = engine.generate_for_definition(definition)
    for segment in segments:
        if len(segment) >= 2:
            group.add(dwg.line(start=segment[0].as_tuple(), end=segment[-1].as_tuple(), **style))

    logger.debug("Rendered %d hatch segments for pattern %s",
                 len(segments), definition.pattern.id)
    return group
