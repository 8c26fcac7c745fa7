"""
Block records: definitions, instances, libraries, categories and the
standard symbol templates.

A block definition owns template entities in block-local coordinates
(relative to its ``insertion_point``). Template entities are ordinary
entity records, but their ids are internal to the definition; every
placement or explode produces fresh ids.
"""

import math
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from cad_drawing import config as cfg
from cad_drawing.geometry.primitives import ORIGIN, Bounds, Point
from cad_drawing.model.entities import (
    ArcEntity,
    CircleEntity,
    Entity,
    LineEntity,
    PolylineEntity,
    RectangleEntity,
    StrokePattern,
    Style,
    new_id,
    record_from_dict,
    record_to_dict,
)


class StandardBlockCategory(Enum):
    MECHANICAL = "mechanical"
    ELECTRICAL = "electrical"
    ARCHITECTURAL = "architectural"
    CIVIL = "civil"
    SYMBOLS = "symbols"
    ANNOTATIONS = "annotations"
    FASTENERS = "fasteners"
    FIXTURES = "fixtures"
    CUSTOM = "custom"


@dataclass
class BlockAttribute:
    """Named, positioned text field filled in per instance.

    Attributes:
        tag: Key used in instance attribute maps
        value: Value shown in the definition itself
        default_value: Value given to new instances (falls back to ``value``)
    """
    name: str
    tag: str
    value: str = ""
    position: Point = ORIGIN
    visible: bool = True
    editable: bool = True
    prompt: Optional[str] = None
    default_value: Optional[str] = None
    required: bool = False
    id: str = field(default_factory=lambda: new_id("attr"))

    @property
    def initial_value(self) -> str:
        return self.default_value if self.default_value else self.value


@dataclass
class BlockCategory:
    id: str
    name: str
    description: str = ""
    icon: Optional[str] = None
    color: Optional[str] = None
    parent_id: Optional[str] = None
    order: int = 0
    visible: bool = True


@dataclass
class BlockDefinition:
    """Reusable symbol.

    ``bounding_box`` is derived from the template entities when the
    definition is registered; see :func:`block_bounding_box`.
    """
    name: str
    entities: List[Entity] = field(default_factory=list)
    insertion_point: Point = ORIGIN
    category: str = cfg.BLOCK_DEFAULT_CATEGORY
    attributes: List[BlockAttribute] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    description: str = ""
    author: Optional[str] = None
    version: str = "1.0.0"
    bounding_box: Bounds = field(default_factory=lambda: Bounds(0.0, 0.0, 0.0, 0.0))
    metadata: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: new_id("block"))
    created: float = field(default_factory=time.time)
    modified: float = field(default_factory=time.time)


@dataclass
class BlockInstance:
    """Placement of a definition: scale, then rotate (radians), then translate."""
    block_definition_id: str
    insertion_point: Point = ORIGIN
    scale: Tuple[float, float] = (1.0, 1.0)
    rotation: float = 0.0
    attributes: Dict[str, str] = field(default_factory=dict)
    layer: str = cfg.DEFAULT_LAYER_ID
    visible: bool = True
    locked: bool = False
    exploded: bool = False
    id: str = field(default_factory=lambda: new_id("insert"))
    created: float = field(default_factory=time.time)
    modified: float = field(default_factory=time.time)


@dataclass
class BlockLibrary:
    """Named collection of definitions. ``block_ids`` keeps insertion order."""
    id: str
    name: str
    description: str = ""
    block_ids: List[str] = field(default_factory=list)
    version: str = "1.0.0"
    is_default: bool = False
    read_only: bool = False
    shared: bool = False
    author: Optional[str] = None
    created: float = field(default_factory=time.time)
    modified: float = field(default_factory=time.time)


class SortKey(Enum):
    NAME = "name"
    USAGE = "usage"
    DATE = "date"
    CATEGORY = "category"


@dataclass
class BlockSearchCriteria:
    """Filters for :meth:`BlockManager.search_blocks`; unset fields match everything.

    Attributes:
        query: Case-insensitive substring of name, description or any tag
        tags: Block must carry at least one of these tags
        date_range: Inclusive (start, end) creation timestamps
        has_attributes: True/False to require blocks with/without attributes
        sort_by: Optional ordering (name, usage, date, category)
        limit: Maximum number of results after sorting
    """
    query: Optional[str] = None
    category: Optional[str] = None
    tags: Optional[List[str]] = None
    author: Optional[str] = None
    date_range: Optional[Tuple[float, float]] = None
    has_attributes: Optional[bool] = None
    sort_by: Optional[SortKey] = None
    limit: Optional[int] = None


class BlockChangeType(Enum):
    BLOCK_ADDED = "block-added"
    BLOCK_UPDATED = "block-updated"
    BLOCK_DELETED = "block-deleted"
    INSTANCE_CREATED = "instance-created"
    INSTANCE_UPDATED = "instance-updated"
    INSTANCE_DELETED = "instance-deleted"
    INSTANCE_EXPLODED = "instance-exploded"
    CATEGORY_ADDED = "category-added"
    LIBRARY_ADDED = "library-added"


@dataclass(frozen=True)
class BlockChangeEvent:
    type: BlockChangeType
    block_id: Optional[str] = None
    instance_id: Optional[str] = None
    category_id: Optional[str] = None
    library_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Bounding box
# ---------------------------------------------------------------------------

def template_bounds(entity: Entity) -> Bounds:
    """Box of one template entity.

    Only lines, circles and unrotated rectangle extents are measured; any
    other entity contributes a zero box at the origin.
    """
    if isinstance(entity, LineEntity):
        return Bounds.from_corners(entity.start, entity.end)
    if isinstance(entity, CircleEntity):
        return Bounds.around(entity.center, entity.radius)
    if isinstance(entity, RectangleEntity):
        return Bounds(entity.position.x, entity.position.y,
                      entity.position.x + entity.width, entity.position.y + entity.height)
    return Bounds(0.0, 0.0, 0.0, 0.0)


def block_bounding_box(entities: List[Entity]) -> Bounds:
    if not entities:
        return Bounds(0.0, 0.0, 0.0, 0.0)
    box = template_bounds(entities[0])
    for entity in entities[1:]:
        box = box.union(template_bounds(entity))
    return box


# ---------------------------------------------------------------------------
# Standard library
# ---------------------------------------------------------------------------

DEFAULT_BLOCK_CATEGORIES: List[BlockCategory] = [
    BlockCategory("mechanical", "Mechanical", "Mechanical components and symbols",
                  "⚙️", "#1890ff", order=1),
    BlockCategory("electrical", "Electrical", "Electrical components and symbols",
                  "⚡", "#faad14", order=2),
    BlockCategory("architectural", "Architectural", "Architectural elements and symbols",
                  "🏠", "#52c41a", order=3),
    BlockCategory("civil", "Civil", "Civil engineering symbols",
                  "🏗️", "#722ed1", order=4),
    BlockCategory("symbols", "Symbols", "General symbols and markers",
                  "🔣", "#eb2f96", order=5),
    BlockCategory("annotations", "Annotations", "Annotation and markup symbols",
                  "📝", "#13c2c2", order=6),
    BlockCategory("fasteners", "Fasteners", "Bolts, screws, and fasteners",
                  "🔩", "#f759ab", order=7),
    BlockCategory("fixtures", "Fixtures", "Fixtures and fittings",
                  "🔧", "#36cfc9", order=8),
    BlockCategory("custom", "Custom", "User-defined blocks",
                  "✨", "#ff7a45", order=9),
]


@dataclass
class BlockTemplate:
    id: str
    name: str
    description: str
    category: StandardBlockCategory
    tags: List[str]
    entities: List[Entity]
    attributes: List[BlockAttribute]


_THIN = Style(stroke_color="#000000", stroke_width=1.0)
_THICK = Style(stroke_color="#000000", stroke_width=2.0)
_THIN_DASHED = Style(stroke_color="#000000", stroke_width=1.0,
                     stroke_pattern=StrokePattern.DASHED)


def regular_polygon(center: Point, radius: float, sides: int) -> List[Point]:
    """Vertices of a regular polygon, the first one on the +X axis."""
    return [
        Point(center.x + radius * math.cos(2 * math.pi * i / sides),
              center.y + radius * math.sin(2 * math.pi * i / sides))
        for i in range(sides)
    ]


def standard_block_templates() -> List[BlockTemplate]:
    """Fresh copies of the built-in symbols."""
    return [
        BlockTemplate(
            id="bearing-ball",
            name="Ball Bearing",
            description="Standard ball bearing symbol",
            category=StandardBlockCategory.MECHANICAL,
            tags=["bearing", "mechanical", "rotation"],
            entities=[
                CircleEntity(center=ORIGIN, radius=20, style=_THIN),
                CircleEntity(center=ORIGIN, radius=12, style=_THIN),
            ],
            attributes=[
                BlockAttribute("Size", "SIZE", "20mm", Point(0, -30),
                               prompt="Enter bearing size"),
            ],
        ),
        BlockTemplate(
            id="resistor",
            name="Resistor",
            description="Standard resistor symbol (IEEE)",
            category=StandardBlockCategory.ELECTRICAL,
            tags=["resistor", "electrical", "component"],
            entities=[
                RectangleEntity(position=Point(-15, -5), width=30, height=10, style=_THIN),
                LineEntity(start=Point(-25, 0), end=Point(-15, 0), style=_THIN),
                LineEntity(start=Point(15, 0), end=Point(25, 0), style=_THIN),
            ],
            attributes=[
                BlockAttribute("Value", "VALUE", "1kΩ", Point(0, 15),
                               prompt="Enter resistance value"),
                BlockAttribute("Reference", "REF", "R1", Point(0, -15),
                               prompt="Enter reference designator"),
            ],
        ),
        BlockTemplate(
            id="door-single",
            name="Single Door",
            description="Standard single door symbol",
            category=StandardBlockCategory.ARCHITECTURAL,
            tags=["door", "architectural", "opening"],
            entities=[
                LineEntity(start=ORIGIN, end=Point(30, 0), style=_THICK),
                ArcEntity(center=ORIGIN, radius=30, start_angle=0.0,
                          end_angle=math.pi / 2, style=_THIN_DASHED),
            ],
            attributes=[
                BlockAttribute("Width", "WIDTH", "800mm", Point(15, -10),
                               prompt="Enter door width"),
            ],
        ),
        BlockTemplate(
            id="section-marker",
            name="Section Marker",
            description="Standard section view marker",
            category=StandardBlockCategory.ANNOTATIONS,
            tags=["section", "annotation", "view"],
            entities=[
                CircleEntity(center=ORIGIN, radius=15, style=_THICK),
                LineEntity(start=Point(-10, 0), end=Point(10, 0), style=_THIN),
            ],
            attributes=[
                BlockAttribute("Section", "SECTION", "A", Point(0, 5),
                               prompt="Enter section identifier"),
                BlockAttribute("Sheet", "SHEET", "1", Point(0, -5),
                               prompt="Enter sheet number"),
            ],
        ),
        BlockTemplate(
            id="bolt-hex",
            name="Hex Bolt",
            description="Standard hexagonal bolt",
            category=StandardBlockCategory.FASTENERS,
            tags=["bolt", "fastener", "hex"],
            entities=[
                CircleEntity(center=ORIGIN, radius=8, style=_THIN),
                PolylineEntity(points=regular_polygon(ORIGIN, 6, 6), closed=True, style=_THIN),
            ],
            attributes=[
                BlockAttribute("Size", "SIZE", "M8", Point(12, 0),
                               prompt="Enter bolt size"),
            ],
        ),
    ]


# ---------------------------------------------------------------------------
# Serialisation
# ---------------------------------------------------------------------------

def attribute_to_dict(attribute: BlockAttribute) -> Dict[str, Any]:
    return {
        "id": attribute.id,
        "name": attribute.name,
        "tag": attribute.tag,
        "value": attribute.value,
        "position": attribute.position.to_dict(),
        "visible": attribute.visible,
        "editable": attribute.editable,
        "prompt": attribute.prompt,
        "default_value": attribute.default_value,
        "required": attribute.required,
    }


def attribute_from_dict(data: Dict[str, Any]) -> BlockAttribute:
    values = dict(data)
    values["position"] = Point.of(values.get("position", ORIGIN))
    return BlockAttribute(**values)


def definition_to_dict(definition: BlockDefinition) -> Dict[str, Any]:
    return {
        "id": definition.id,
        "name": definition.name,
        "description": definition.description,
        "category": definition.category,
        "entities": [record_to_dict(e) for e in definition.entities],
        "insertion_point": definition.insertion_point.to_dict(),
        "bounding_box": definition.bounding_box.to_dict(),
        "attributes": [attribute_to_dict(a) for a in definition.attributes],
        "tags": list(definition.tags),
        "author": definition.author,
        "version": definition.version,
        "metadata": dict(definition.metadata),
        "created": definition.created,
        "modified": definition.modified,
    }


def definition_from_dict(data: Dict[str, Any]) -> BlockDefinition:
    """Rebuild a definition; the bounding box is recomputed, not trusted."""
    entities = [record_from_dict(e) for e in data.get("entities", [])]
    now = time.time()
    return BlockDefinition(
        id=data.get("id") or new_id("block"),
        name=data["name"],
        description=data.get("description", ""),
        category=data.get("category", cfg.BLOCK_DEFAULT_CATEGORY),
        entities=entities,
        insertion_point=Point.of(data.get("insertion_point", ORIGIN)),
        bounding_box=block_bounding_box(entities),
        attributes=[attribute_from_dict(a) for a in data.get("attributes", [])],
        tags=list(data.get("tags", [])),
        author=data.get("author"),
        version=data.get("version", "1.0.0"),
        metadata=dict(data.get("metadata", {})),
        created=data.get("created", now),
        modified=data.get("modified", now),
    )


def category_to_dict(category: BlockCategory) -> Dict[str, Any]:
    return {
        "id": category.id,
        "name": category.name,
        "description": category.description,
        "icon": category.icon,
        "color": category.color,
        "parent_id": category.parent_id,
        "order": category.order,
        "visible": category.visible,
    }


def category_from_dict(data: Dict[str, Any]) -> BlockCategory:
    return BlockCategory(**data)
