"""
Drawing record types.

Three families of records live in a document, each a closed set of
dataclass variants tagged by a ``kind`` class attribute:

- Entities: line, circle, arc, ellipse, rectangle, polyline, spline, text
- Dimensions: linear, angular, radial, diametral
- Annotations: text annotation, leader

Plus Layer and Style. Records reference each other only by id (entity ->
layer), so every record is a plain tree that serialises with
:func:`record_to_dict` and comes back with :func:`record_from_dict`.

Angles stored on records (arc sweep, rectangle/ellipse/text rotation) are
in radians.
"""

import uuid
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Type, Union

from cad_drawing import config as cfg
from cad_drawing.geometry.primitives import ORIGIN, Point


def new_id(prefix: str) -> str:
    """Fresh record id such as ``entity_3f9c2a7b81d0``."""
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


# ---------------------------------------------------------------------------
# Style
# ---------------------------------------------------------------------------

class StrokePattern(Enum):
    """Line pattern of a stroke."""
    SOLID = "solid"
    DASHED = "dashed"
    DOTTED = "dotted"
    DASH_DOT = "dash-dot"
    CENTER = "center"


@dataclass(frozen=True)
class Style:
    """Visual style of a record.

    ``by_layer=True`` means the rendering side resolves the style from the
    owning layer; the core never resolves it.
    """
    stroke_color: str = cfg.DEFAULT_STROKE_COLOR
    stroke_width: float = cfg.DEFAULT_STROKE_WIDTH
    stroke_pattern: StrokePattern = StrokePattern.SOLID
    fill_color: Optional[str] = None
    fill_opacity: Optional[float] = None
    font_size: Optional[float] = None
    font_family: Optional[str] = None
    text_align: Optional[str] = None  # "left", "center", "right"
    by_layer: bool = False


BY_LAYER = Style(by_layer=True)


# ---------------------------------------------------------------------------
# Layers
# ---------------------------------------------------------------------------

@dataclass
class Layer:
    """Named visibility/style group. Lower ``order`` paints first."""
    id: str = field(default_factory=lambda: new_id("layer"))
    name: str = ""
    visible: bool = True
    locked: bool = False
    style: Style = field(default_factory=Style)
    order: int = 0


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------

@dataclass
class Entity:
    """Fields shared by every record placed on a layer.

    Variant-specific geometry fields follow in the subclasses; construct
    records with keyword arguments.
    """
    kind: ClassVar[str] = ""
    id_prefix: ClassVar[str] = "entity"

    id: str = ""
    layer: str = cfg.DEFAULT_LAYER_ID
    visible: bool = True
    locked: bool = False
    style: Style = field(default_factory=Style)

    def __post_init__(self) -> None:
        if not self.id:
            self.id = new_id(self.id_prefix)


@dataclass
class LineEntity(Entity):
    kind: ClassVar[str] = "line"

    start: Point = ORIGIN
    end: Point = ORIGIN

    @property
    def length(self) -> float:
        return self.start.distance_to(self.end)


@dataclass
class CircleEntity(Entity):
    kind: ClassVar[str] = "circle"

    center: Point = ORIGIN
    radius: float = 0.0


@dataclass
class ArcEntity(Entity):
    """Arc from ``start_angle`` to ``end_angle`` (radians)."""
    kind: ClassVar[str] = "arc"

    center: Point = ORIGIN
    radius: float = 0.0
    start_angle: float = 0.0
    end_angle: float = 0.0
    counterclockwise: bool = False


@dataclass
class EllipseEntity(Entity):
    kind: ClassVar[str] = "ellipse"

    center: Point = ORIGIN
    radius_x: float = 0.0
    radius_y: float = 0.0
    rotation: float = 0.0


@dataclass
class RectangleEntity(Entity):
    """Rectangle anchored at its lower-left ``position``.

    ``rotation`` turns the rectangle about its own center.
    """
    kind: ClassVar[str] = "rectangle"

    position: Point = ORIGIN
    width: float = 0.0
    height: float = 0.0
    rotation: float = 0.0

    @property
    def center(self) -> Point:
        return Point(self.position.x + self.width / 2, self.position.y + self.height / 2)


@dataclass
class PolylineEntity(Entity):
    kind: ClassVar[str] = "polyline"

    points: List[Point] = field(default_factory=list)
    closed: bool = False


@dataclass
class SplineEntity(Entity):
    """Spline through ``points``; ``control_points`` are kept for the renderer."""
    kind: ClassVar[str] = "spline"

    points: List[Point] = field(default_factory=list)
    closed: bool = False
    control_points: Optional[List[Point]] = None


@dataclass
class TextEntity(Entity):
    """Single-line text; ``position`` is the baseline anchor."""
    kind: ClassVar[str] = "text"

    position: Point = ORIGIN
    content: str = ""
    rotation: float = 0.0


# ---------------------------------------------------------------------------
# Dimensions
# ---------------------------------------------------------------------------

@dataclass
class Dimension(Entity):
    """A measurement annotation.

    ``text`` is cached display data; the geometry is the source of truth.
    """
    id_prefix: ClassVar[str] = "dim"

    text: str = ""
    offset: float = 0.0


@dataclass
class LinearDimension(Dimension):
    kind: ClassVar[str] = "linear"

    start: Point = ORIGIN
    end: Point = ORIGIN


@dataclass
class AngularDimension(Dimension):
    kind: ClassVar[str] = "angular"

    vertex: Point = ORIGIN
    start: Point = ORIGIN
    end: Point = ORIGIN
    radius: float = 0.0


@dataclass
class RadialDimension(Dimension):
    kind: ClassVar[str] = "radial"

    center: Point = ORIGIN
    point_on_circle: Point = ORIGIN


@dataclass
class DiametralDimension(Dimension):
    kind: ClassVar[str] = "diametral"

    center: Point = ORIGIN
    point_on_circle: Point = ORIGIN


# ---------------------------------------------------------------------------
# Annotations
# ---------------------------------------------------------------------------

@dataclass
class Annotation(Entity):
    id_prefix: ClassVar[str] = "annotation"

    content: str = ""


@dataclass
class TextAnnotation(Annotation):
    kind: ClassVar[str] = "text_annotation"

    position: Point = ORIGIN


@dataclass
class LeaderAnnotation(Annotation):
    """Arrow at ``start`` running through ``points`` to the note text."""
    kind: ClassVar[str] = "leader"

    start: Point = ORIGIN
    points: List[Point] = field(default_factory=list)
    text_position: Optional[Point] = None

    @property
    def anchor(self) -> Point:
        """Where the note text sits."""
        if self.text_position is not None:
            return self.text_position
        return self.points[-1] if self.points else self.start


AnyRecord = Union[Entity, Dimension, Annotation]

ENTITY_TYPES: Dict[str, Type[Entity]] = {
    cls.kind: cls for cls in (
        LineEntity, CircleEntity, ArcEntity, EllipseEntity,
        RectangleEntity, PolylineEntity, SplineEntity, TextEntity,
    )
}

DIMENSION_TYPES: Dict[str, Type[Dimension]] = {
    cls.kind: cls for cls in (
        LinearDimension, AngularDimension, RadialDimension, DiametralDimension,
    )
}

ANNOTATION_TYPES: Dict[str, Type[Annotation]] = {
    cls.kind: cls for cls in (TextAnnotation, LeaderAnnotation)
}

RECORD_TYPES: Dict[str, Type[Entity]] = {**ENTITY_TYPES, **DIMENSION_TYPES, **ANNOTATION_TYPES}


def is_dimension(record: Any) -> bool:
    return isinstance(record, Dimension)


def is_annotation(record: Any) -> bool:
    return isinstance(record, Annotation)


def is_plain_entity(record: Any) -> bool:
    return isinstance(record, Entity) and not isinstance(record, (Dimension, Annotation))


# ---------------------------------------------------------------------------
# Serialisation
# ---------------------------------------------------------------------------

def _encode(value: Any) -> Any:
    if isinstance(value, Point):
        return value.to_dict()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Style):
        return {f.name: _encode(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, (list, tuple)):
        return [_encode(v) for v in value]
    return value


def record_to_dict(record: Entity) -> Dict[str, Any]:
    """Plain-dict form of any entity, dimension or annotation."""
    data: Dict[str, Any] = {"type": record.kind}
    for f in fields(record):
        data[f.name] = _encode(getattr(record, f.name))
    return data


def style_to_dict(style: Style) -> Dict[str, Any]:
    return _encode(style)


def style_from_dict(data: Optional[Dict[str, Any]]) -> Style:
    if not data:
        return Style()
    values = dict(data)
    if "stroke_pattern" in values:
        values["stroke_pattern"] = StrokePattern(values["stroke_pattern"])
    known = {f.name for f in fields(Style)}
    return Style(**{k: v for k, v in values.items() if k in known})


def _decode_field(name: str, value: Any) -> Any:
    if value is None:
        return None
    if name == "style":
        return style_from_dict(value)
    if isinstance(value, dict) and "x" in value and "y" in value:
        return Point.of(value)
    if isinstance(value, list) and value and isinstance(value[0], dict):
        return [Point.of(v) for v in value]
    return value


def record_from_dict(data: Dict[str, Any]) -> Entity:
    """Rebuild a record from :func:`record_to_dict` output.

    Raises:
        ValueError: If the ``type`` tag is unknown
    """
    kind = data.get("type")
    cls = RECORD_TYPES.get(kind)
    if cls is None:
        raise ValueError(f"Unknown record type: {kind!r}")

    known = {f.name for f in fields(cls)}
    kwargs = {
        name: _decode_field(name, value)
        for name, value in data.items()
        if name in known
    }
    return cls(**kwargs)
