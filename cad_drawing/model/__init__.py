"""Drawing records (entities, dimensions, annotations, layers) and the document store."""

from cad_drawing.model.document import (
    ChangeKind,
    DocumentChange,
    DrawingDocument,
    RecordStore,
    translate_record,
)
from cad_drawing.model.entities import (
    BY_LAYER,
    AngularDimension,
    Annotation,
    ArcEntity,
    CircleEntity,
    DiametralDimension,
    Dimension,
    EllipseEntity,
    Entity,
    Layer,
    LeaderAnnotation,
    LinearDimension,
    LineEntity,
    PolylineEntity,
    RadialDimension,
    RectangleEntity,
    SplineEntity,
    StrokePattern,
    Style,
    TextAnnotation,
    TextEntity,
    record_from_dict,
    record_to_dict,
)

__all__ = [
    "BY_LAYER",
    "AngularDimension",
    "Annotation",
    "ArcEntity",
    "ChangeKind",
    "CircleEntity",
    "DiametralDimension",
    "Dimension",
    "DocumentChange",
    "DrawingDocument",
    "EllipseEntity",
    "Entity",
    "Layer",
    "LeaderAnnotation",
    "LinearDimension",
    "LineEntity",
    "PolylineEntity",
    "RadialDimension",
    "RecordStore",
    "RectangleEntity",
    "SplineEntity",
    "StrokePattern",
    "Style",
    "TextAnnotation",
    "TextEntity",
    "record_from_dict",
    "record_to_dict",
    "translate_record",
]
