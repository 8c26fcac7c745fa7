"""
Drawing integrity checks.

Validates a :class:`DrawingDocument` and, optionally, the engines that
hold references into it:
- Dangling layer references (record on a layer that no longer exists)
- Degenerate geometry (zero-length lines, non-positive radii, empty text)
- Dimension text that disagrees with the dimension's own geometry
- Associative relationships pointing at missing records or out of sync
- Dimension dependency cycles
- Block instances whose definition is gone

Degenerate geometry is legal in a document, so it is reported as a
warning; broken references between engines and the document are errors.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set

from cad_drawing.drawing.dimensions.associative import AssociativeDimensionEngine
from cad_drawing.drawing.dimensions.measure import measure_dimension, parse_dimension_value
from cad_drawing.model.document import DrawingDocument
from cad_drawing.model.entities import (
    ArcEntity,
    CircleEntity,
    EllipseEntity,
    Entity,
    LineEntity,
    PolylineEntity,
    RectangleEntity,
    TextAnnotation,
    TextEntity,
)

logger = logging.getLogger(__name__)

DIMENSION_TEXT_TOLERANCE = 0.01


class ValidationSeverity(Enum):
    """Severity level of validation issues."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class ValidationIssue:
    """A single validation issue found in the drawing."""
    code: str
    severity: ValidationSeverity
    message: str
    count: int = 1
    details: List[str] = field(default_factory=list)  # record ids

    def __str__(self) -> str:
        if self.count > 1:
            return f"[{self.severity.value.upper()}] {self.code}: {self.message} ({self.count} occurrences)"
        return f"[{self.severity.value.upper()}] {self.code}: {self.message}"


@dataclass
class ValidationReport:
    """Complete validation report for a drawing."""
    is_valid: bool

    n_entities: int
    n_dimensions: int
    n_annotations: int
    n_layers: int

    issues: List[ValidationIssue] = field(default_factory=list)

    @property
    def warnings(self) -> List[ValidationIssue]:
        """Get all warning-level issues."""
        return [i for i in self.issues if i.severity == ValidationSeverity.WARNING]

    @property
    def errors(self) -> List[ValidationIssue]:
        """Get all error-level issues."""
        return [i for i in self.issues if i.severity == ValidationSeverity.ERROR]

    def codes(self) -> Set[str]:
        return {i.code for i in self.issues}

    def summary(self) -> str:
        """Generate human-readable summary."""
        lines = [
            "Drawing Validation Report",
            "=" * 40,
            f"Entities: {self.n_entities}",
            f"Dimensions: {self.n_dimensions}",
            f"Annotations: {self.n_annotations}",
            f"Layers: {self.n_layers}",
        ]

        if self.issues:
            lines.append("")
            lines.append("Issues:")
            for issue in self.issues:
                lines.append(f"  - {issue}")

        lines.append("")
        lines.append(f"Overall: {'VALID' if self.is_valid else 'INVALID'}")

        return "\n".join(lines)


def _is_degenerate(record: Entity) -> bool:
    if isinstance(record, LineEntity):
        return record.length == 0
    if isinstance(record, (CircleEntity, ArcEntity)):
        return record.radius <= 0
    if isinstance(record, EllipseEntity):
        return record.radius_x <= 0 or record.radius_y <= 0
    if isinstance(record, RectangleEntity):
        return record.width == 0 or record.height == 0
    if isinstance(record, PolylineEntity):
        return len(record.points) < 2
    if isinstance(record, TextEntity):
        return not record.content
    if isinstance(record, TextAnnotation):
        return not record.content
    return False


def _issue(code: str, severity: ValidationSeverity, message: str,
           ids: List[str]) -> ValidationIssue:
    return ValidationIssue(code=code, severity=severity, message=message,
                           count=len(ids), details=ids[:10])


def _find_cycle_members(edges: Dict[str, List[str]]) -> List[str]:
    """Nodes that sit on at least one directed cycle."""
    members = []
    for start in edges:
        stack = list(edges.get(start, []))
        seen: Set[str] = set()
        while stack:
            node = stack.pop()
            if node == start:
                members.append(start)
                break
            if node in seen:
                continue
            seen.add(node)
            stack.extend(edges.get(node, []))
    return members


def _check_dimension_engine(document: DrawingDocument, engine: AssociativeDimensionEngine,
                            issues: List[ValidationIssue]) -> Set[str]:
    """Append relationship/dependency issues; return the associated dimension ids."""
    associated: Set[str] = set()
    dangling: List[str] = []
    out_of_sync: List[str] = []

    for relationship in engine.get_all_relationships():
        associated.add(relationship.dimension_id)
        missing = [relationship.dimension_id] if relationship.dimension_id not in document else []
        missing += [e for e in relationship.entity_ids if e not in document]
        if missing:
            dangling.append(relationship.id)
            continue
        live = engine.measure_relationship(relationship)
        if live is not None and abs(live - relationship.last_value) > relationship.tolerance:
            out_of_sync.append(relationship.id)

    if dangling:
        issues.append(_issue("DANGLING_RELATIONSHIP", ValidationSeverity.ERROR,
                             f"{len(dangling)} associative relationships reference missing records",
                             dangling))
        logger.error("%d associative relationships reference missing records", len(dangling))
    if out_of_sync:
        issues.append(_issue("RELATIONSHIP_OUT_OF_SYNC", ValidationSeverity.WARNING,
                             f"{len(out_of_sync)} relationships drifted from their geometry",
                             out_of_sync))
        logger.warning("%d associative relationships are out of sync", len(out_of_sync))

    edges: Dict[str, List[str]] = {}
    for dependency in engine.get_all_dependencies():
        edges.setdefault(dependency.parent_dimension_id, []).extend(dependency.child_dimension_ids)
    cyclic = _find_cycle_members(edges)
    if cyclic:
        issues.append(_issue("DEPENDENCY_CYCLE", ValidationSeverity.ERROR,
                             f"Dimension dependencies form a cycle through {len(cyclic)} dimensions",
                             cyclic))
        logger.error("Dimension dependency cycle through %d dimensions", len(cyclic))

    return associated


def validate_document(document: DrawingDocument,
                      dimension_engine: Optional[AssociativeDimensionEngine] = None,
                      block_manager=None) -> ValidationReport:
    """Validate drawing integrity.

    Args:
        document: Drawing to check
        dimension_engine: Associative engine bound to ``document``, if any
        block_manager: :class:`~cad_drawing.blocks.BlockManager` whose
            instances should be checked, if any

    Returns:
        ValidationReport with all findings
    """
    issues: List[ValidationIssue] = []
    layer_ids = {layer.id for layer in document.layers()}

    logger.debug("Validating drawing: %d records, %d layers", len(document), len(layer_ids))

    dangling_layers = [record.id for _, record in document.iter_records()
                       if record.layer not in layer_ids]
    if dangling_layers:
        issues.append(_issue("DANGLING_LAYER", ValidationSeverity.WARNING,
                             f"{len(dangling_layers)} records reference missing layers",
                             dangling_layers))
        logger.warning("%d records reference missing layers", len(dangling_layers))

    degenerate = [record.id for _, record in document.iter_records() if _is_degenerate(record)]
    if degenerate:
        issues.append(_issue("DEGENERATE_GEOMETRY", ValidationSeverity.WARNING,
                             f"{len(degenerate)} records have degenerate geometry",
                             degenerate))
        logger.warning("%d records have degenerate geometry", len(degenerate))

    associated: Set[str] = set()
    if dimension_engine is not None:
        associated = _check_dimension_engine(document, dimension_engine, issues)

    stale = []
    for dimension in document.dimensions():
        if dimension.id in associated or not dimension.text:
            continue
        if abs(parse_dimension_value(dimension.text) - measure_dimension(dimension)) \
                > DIMENSION_TEXT_TOLERANCE:
            stale.append(dimension.id)
    if stale:
        issues.append(_issue("DIMENSION_TEXT_MISMATCH", ValidationSeverity.INFO,
                             f"{len(stale)} dimensions show a value other than their geometry",
                             stale))

    if block_manager is not None:
        orphans = [i.id for i in block_manager.get_all_block_instances()
                   if block_manager.get_block_definition(i.block_definition_id) is None]
        if orphans:
            issues.append(_issue("ORPHAN_BLOCK_INSTANCE", ValidationSeverity.ERROR,
                                 f"{len(orphans)} block instances reference missing definitions",
                                 orphans))
            logger.error("%d block instances reference missing definitions", len(orphans))

    is_valid = len([i for i in issues if i.severity == ValidationSeverity.ERROR]) == 0

    report = ValidationReport(
        is_valid=is_valid,
        n_entities=len(document.entities()),
        n_dimensions=len(document.dimensions()),
        n_annotations=len(document.annotations()),
        n_layers=len(layer_ids),
        issues=issues,
    )

    logger.info("Validation complete: %s", "VALID" if is_valid else "INVALID")
    return report
