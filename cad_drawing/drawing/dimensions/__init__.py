"""
Associative dimensions.

Modules:
  - measure:     measurement rules and dimension display text
  - associative: relationship/dependency engine that keeps texts in sync
"""

from cad_drawing.drawing.dimensions.associative import (
    AssociativeDimensionEngine,
    AssociativeRelationship,
    DependencyType,
    DimensionDependency,
    DimensionUpdateEvent,
    UpdateSource,
    dependent_value,
)
from cad_drawing.drawing.dimensions.measure import (
    RelationshipType,
    format_dimension_text,
    measure,
    measure_dimension,
    parse_dimension_value,
)

__all__ = [
    'AssociativeDimensionEngine',
    'AssociativeRelationship',
    'DependencyType',
    'DimensionDependency',
    'DimensionUpdateEvent',
    'RelationshipType',
    'UpdateSource',
    'dependent_value',
    'format_dimension_text',
    'measure',
    'measure_dimension',
    'parse_dimension_value',
]
