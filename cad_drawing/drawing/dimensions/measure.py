"""
Dimension measurement and display text.

Measurement rules for associative relationships:
  - linear:    distance between the first two measurement points if given;
               else the length of a single bound line; else the distance
               between the reference points of the first two entities
               (circle -> center, line -> midpoint, rectangle -> position,
               anything else -> origin)
  - angular:   angle between two bound lines, in degrees, within [0, 180]
  - radial:    radius of the first bound circle (0 if none)
  - diametral: twice that radius
  - area:      enclosed area of the first bound circle, rectangle or
               closed polyline (0 otherwise)

Display text by dimension kind:
  - linear    "12.50"
  - angular   "45.0°"
  - radial    "R5.00"
  - diametral "Ø10.00"
"""

import math
import re
from enum import Enum
from typing import Optional, Sequence

from cad_drawing import config as cfg
from cad_drawing.geometry.primitives import ORIGIN, Point
from cad_drawing.model.entities import (
    AngularDimension,
    CircleEntity,
    DiametralDimension,
    Dimension,
    Entity,
    LinearDimension,
    LineEntity,
    PolylineEntity,
    RadialDimension,
    RectangleEntity,
)

_NUMBER = re.compile(r"-?(?:\d+(?:\.\d*)?|\.\d+)")


class RelationshipType(Enum):
    """What an associative relationship measures."""
    LINEAR = "linear"
    ANGULAR = "angular"
    RADIAL = "radial"
    DIAMETRAL = "diametral"
    AREA = "area"


# ---------------------------------------------------------------------------
# Text
# ---------------------------------------------------------------------------

def parse_dimension_value(text: Optional[str]) -> float:
    """First number (with an optional leading minus) in a dimension text, 0.0 if none.

    Prefixes and suffixes are skipped: "R5.00" -> 5.0, "45.0°" -> 45.0.
    """
    if not text:
        return 0.0
    match = _NUMBER.search(text)
    return float(match.group(0)) if match else 0.0


def format_dimension_text(dimension: Dimension, value: float) -> str:
    """Display text for ``value`` in the notation of ``dimension``'s kind."""
    if isinstance(dimension, AngularDimension):
        return f"{value:.{cfg.DIM_ANGULAR_DECIMALS}f}°"
    linear = f"{value:.{cfg.DIM_LINEAR_DECIMALS}f}"
    if isinstance(dimension, RadialDimension):
        return "R" + linear
    if isinstance(dimension, DiametralDimension):
        return "Ø" + linear
    return linear


def measure_dimension(dimension: Dimension) -> float:
    """Value a dimension's own geometry shows, ignoring any bound entities."""
    if isinstance(dimension, LinearDimension):
        return dimension.start.distance_to(dimension.end)
    if isinstance(dimension, AngularDimension):
        a1 = math.atan2(dimension.start.y - dimension.vertex.y,
                        dimension.start.x - dimension.vertex.x)
        a2 = math.atan2(dimension.end.y - dimension.vertex.y,
                        dimension.end.x - dimension.vertex.x)
        return _fold_angle(a2 - a1)
    if isinstance(dimension, RadialDimension):
        return dimension.center.distance_to(dimension.point_on_circle)
    if isinstance(dimension, DiametralDimension):
        return 2 * dimension.center.distance_to(dimension.point_on_circle)
    return 0.0


# ---------------------------------------------------------------------------
# Measurements over bound entities
# ---------------------------------------------------------------------------

def _fold_angle(diff: float) -> float:
    """|diff| folded into [0, pi], in degrees."""
    diff = abs(diff)
    if diff > math.pi:
        diff = 2 * math.pi - diff
    return math.degrees(diff)


def measurement_reference_point(entity: Entity) -> Point:
    if isinstance(entity, CircleEntity):
        return entity.center
    if isinstance(entity, LineEntity):
        return Point((entity.start.x + entity.end.x) / 2, (entity.start.y + entity.end.y) / 2)
    if isinstance(entity, RectangleEntity):
        return entity.position
    return ORIGIN


def measure_linear(entities: Sequence[Entity],
                   measurement_points: Optional[Sequence[Point]] = None) -> float:
    if measurement_points and len(measurement_points) >= 2:
        return measurement_points[0].distance_to(measurement_points[1])
    if len(entities) == 1 and isinstance(entities[0], LineEntity):
        return entities[0].length
    if len(entities) >= 2:
        return measurement_reference_point(entities[0]).distance_to(
            measurement_reference_point(entities[1]))
    return 0.0


def measure_angular(entities: Sequence[Entity]) -> float:
    if len(entities) != 2:
        return 0.0
    first, second = entities
    if not (isinstance(first, LineEntity) and isinstance(second, LineEntity)):
        return 0.0
    a1 = math.atan2(first.end.y - first.start.y, first.end.x - first.start.x)
    a2 = math.atan2(second.end.y - second.start.y, second.end.x - second.start.x)
    return _fold_angle(a2 - a1)


def measure_radius(entities: Sequence[Entity]) -> float:
    for entity in entities:
        if isinstance(entity, CircleEntity):
            return entity.radius
    return 0.0


def _polygon_area(points: Sequence[Point]) -> float:
    twice = 0.0
    n = len(points)
    for i in range(n):
        j = (i + 1) % n
        twice += points[i].x * points[j].y - points[j].x * points[i].y
    return abs(twice) / 2


def measure_area(entities: Sequence[Entity]) -> float:
    if not entities:
        return 0.0
    entity = entities[0]
    if isinstance(entity, CircleEntity):
        return math.pi * entity.radius * entity.radius
    if isinstance(entity, RectangleEntity):
        return entity.width * entity.height
    if isinstance(entity, PolylineEntity) and entity.closed and len(entity.points) >= 3:
        return _polygon_area(entity.points)
    return 0.0


def measure(relationship_type: RelationshipType, entities: Sequence[Entity],
            measurement_points: Optional[Sequence[Point]] = None) -> float:
    """Live value of a relationship over its bound entities."""
    if relationship_type is RelationshipType.LINEAR:
        return measure_linear(entities, measurement_points)
    if relationship_type is RelationshipType.ANGULAR:
        return measure_angular(entities)
    if relationship_type is RelationshipType.RADIAL:
        return measure_radius(entities)
    if relationship_type is RelationshipType.DIAMETRAL:
        return 2 * measure_radius(entities)
    if relationship_type is RelationshipType.AREA:
        return measure_area(entities)
    raise ValueError(f"Unsupported relationship type: {relationship_type}")
