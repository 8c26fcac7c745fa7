"""
Associative dimensions.

An :class:`AssociativeRelationship` ties one dimension to the entities it
measures. The engine listens to the document; whenever geometry changes it
re-measures every auto-updating relationship and, when the live value has
drifted from the last one seen by more than the relationship tolerance,
rewrites the dimension text.

Dimensions can also drive each other: a :class:`DimensionDependency` maps a
parent dimension to child dimensions, and an update pushed into the parent
is carried down to the children (unchanged for ``direct`` and
``constraint``, doubled for ``calculated``).

Updates are guarded by a drop-not-queue ``is_updating`` flag: writing a
dimension text triggers a document change, which would otherwise call
straight back into the engine.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from cad_drawing import config as cfg
from cad_drawing.drawing.dimensions.measure import (
    RelationshipType,
    format_dimension_text,
    measure,
    parse_dimension_value,
)
from cad_drawing.errors import InvalidStateError, NotFoundError
from cad_drawing.geometry.primitives import Point
from cad_drawing.model.document import ChangeKind, DocumentChange, DrawingDocument, RecordStore
from cad_drawing.model.entities import new_id

logger = logging.getLogger(__name__)


class DependencyType(Enum):
    """How a parent dimension value is carried to its children."""
    DIRECT = "direct"
    CALCULATED = "calculated"
    CONSTRAINT = "constraint"


class UpdateSource(Enum):
    """Who initiated a dimension update."""
    USER = "user"
    CONSTRAINT = "constraint"
    CALCULATION = "calculation"


@dataclass
class AssociativeRelationship:
    """Binding between one dimension and the entities it measures.

    Attributes:
        dimension_id: Dimension whose text is kept in sync
        entity_ids: Measured entities, in measurement order
        relationship_type: What is measured
        measurement_points: Explicit points for linear measurement
        tolerance: Drift allowed before the dimension is rewritten
        last_value: Last measurement pushed into (or read from) the dimension
        auto_update: Take part in reconciliation
    """
    dimension_id: str
    entity_ids: List[str]
    relationship_type: RelationshipType
    measurement_points: List[Point] = field(default_factory=list)
    tolerance: float = cfg.DIM_TOLERANCE
    last_value: float = 0.0
    auto_update: bool = True
    id: str = field(default_factory=lambda: new_id("assoc"))
    created: float = field(default_factory=time.time)
    modified: float = field(default_factory=time.time)


@dataclass
class DimensionDependency:
    """Parent dimension driving a list of child dimensions."""
    parent_dimension_id: str
    child_dimension_ids: List[str]
    dependency_type: DependencyType = DependencyType.DIRECT
    id: str = field(default_factory=lambda: new_id("dep"))
    created: float = field(default_factory=time.time)


@dataclass(frozen=True)
class DimensionUpdateEvent:
    """One dimension touched by an update cycle."""
    dimension_id: str
    old_value: float
    new_value: float
    affected_entities: Tuple[str, ...]
    timestamp: float
    source: UpdateSource


UpdateListener = Callable[[DimensionUpdateEvent], None]


def dependent_value(dependency_type: DependencyType, value: float) -> float:
    """Value a child receives when its parent is set to ``value``."""
    if dependency_type is DependencyType.CALCULATED:
        return value * 2
    return value


class AssociativeDimensionEngine:
    """Keeps dimension texts in step with geometry and with each other.

    The engine subscribes to ``document`` on construction; call
    :meth:`detach` to stop it reacting to document changes.

    Args:
        document: Document holding the dimensions and measured entities
        tolerance: Default drift tolerance for new relationships
        max_propagation_depth: Deepest dependency chain an update follows
    """

    def __init__(
        self,
        document: DrawingDocument,
        tolerance: Optional[float] = None,
        max_propagation_depth: Optional[int] = None,
    ):
        self.document = document
        self.tolerance = cfg.DIM_TOLERANCE if tolerance is None else tolerance
        self.max_propagation_depth = (cfg.DIM_MAX_PROPAGATION_DEPTH
                                      if max_propagation_depth is None
                                      else max_propagation_depth)
        self.auto_update = cfg.DIM_AUTO_UPDATE
        self.is_updating = False

        self._relationships: Dict[str, AssociativeRelationship] = {}
        self._dependencies: Dict[str, DimensionDependency] = {}
        self._listeners: List[UpdateListener] = []

        document.add_listener(self._on_document_change)

    def detach(self) -> None:
        """Stop listening to the document."""
        self.document.remove_listener(self._on_document_change)

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    def create_associative_relationship(
        self,
        dimension_id: str,
        entity_ids: Sequence[str],
        relationship_type: RelationshipType,
        measurement_points: Optional[Sequence[Point]] = None,
        tolerance: Optional[float] = None,
    ) -> str:
        """Bind a dimension to entities and record the current measurement.

        Raises:
            NotFoundError: If the dimension or any entity does not exist
        """
        self.document.get_dimension(dimension_id)
        for entity_id in entity_ids:
            if self.document.entity_by_id(entity_id) is None:
                raise NotFoundError("Entity", entity_id)

        relationship = AssociativeRelationship(
            dimension_id=dimension_id,
            entity_ids=list(entity_ids),
            relationship_type=RelationshipType(relationship_type),
            measurement_points=list(measurement_points or []),
            tolerance=self.tolerance if tolerance is None else tolerance,
        )
        relationship.last_value = self.measure_relationship(relationship) or 0.0
        self._relationships[relationship.id] = relationship

        logger.info("Associated %s with %d entities (%s, value %.4f)",
                    dimension_id, len(relationship.entity_ids),
                    relationship.relationship_type.value, relationship.last_value)
        return relationship.id

    def remove_relationship(self, relationship_id: str) -> bool:
        removed = self._relationships.pop(relationship_id, None)
        if removed is not None:
            logger.info("Removed associative relationship %s", relationship_id)
        return removed is not None

    def get_relationship(self, relationship_id: str) -> AssociativeRelationship:
        try:
            return self._relationships[relationship_id]
        except KeyError:
            raise NotFoundError("Relationship", relationship_id) from None

    def set_auto_update(self, relationship_id: str, enabled: bool) -> None:
        relationship = self.get_relationship(relationship_id)
        relationship.auto_update = enabled
        relationship.modified = time.time()

    def get_all_relationships(self) -> List[AssociativeRelationship]:
        return list(self._relationships.values())

    def get_relationships_for_dimension(self, dimension_id: str) -> List[AssociativeRelationship]:
        return [r for r in self._relationships.values() if r.dimension_id == dimension_id]

    def get_relationships_for_entity(self, entity_id: str) -> List[AssociativeRelationship]:
        return [r for r in self._relationships.values() if entity_id in r.entity_ids]

    def measure_relationship(self, relationship: AssociativeRelationship) -> Optional[float]:
        """Live measurement, or None while a bound entity is missing."""
        entities = []
        for entity_id in relationship.entity_ids:
            entity = self.document.entity_by_id(entity_id)
            if entity is None:
                return None
            entities.append(entity)
        return measure(relationship.relationship_type, entities,
                       relationship.measurement_points)

    # ------------------------------------------------------------------
    # Dependencies
    # ------------------------------------------------------------------

    def _children_of(self, dimension_id: str) -> List[Tuple[str, DependencyType]]:
        children = []
        for dependency in self._dependencies.values():
            if dependency.parent_dimension_id == dimension_id:
                for child in dependency.child_dimension_ids:
                    children.append((child, dependency.dependency_type))
        return children

    def _reaches(self, start: str, target: str) -> bool:
        stack = [start]
        seen: Set[str] = set()
        while stack:
            current = stack.pop()
            if current == target:
                return True
            if current in seen:
                continue
            seen.add(current)
            stack.extend(child for child, _ in self._children_of(current))
        return False

    def create_dimension_dependency(
        self,
        parent_dimension_id: str,
        child_dimension_ids: Sequence[str],
        dependency_type: DependencyType = DependencyType.DIRECT,
    ) -> str:
        """Make ``parent_dimension_id`` drive the given children.

        Raises:
            NotFoundError: If any of the dimensions does not exist
            InvalidStateError: If the dependency would close a cycle
        """
        self.document.get_dimension(parent_dimension_id)
        for child in child_dimension_ids:
            self.document.get_dimension(child)
            if self._reaches(child, parent_dimension_id):
                raise InvalidStateError(
                    f"Dependency {parent_dimension_id} -> {child} would create a cycle"
                )

        dependency = DimensionDependency(
            parent_dimension_id=parent_dimension_id,
            child_dimension_ids=list(child_dimension_ids),
            dependency_type=DependencyType(dependency_type),
        )
        self._dependencies[dependency.id] = dependency
        logger.info("Dimension %s now drives %s (%s)", parent_dimension_id,
                    ", ".join(dependency.child_dimension_ids), dependency.dependency_type.value)
        return dependency.id

    def remove_dependency(self, dependency_id: str) -> bool:
        return self._dependencies.pop(dependency_id, None) is not None

    def get_dependency(self, dependency_id: str) -> DimensionDependency:
        try:
            return self._dependencies[dependency_id]
        except KeyError:
            raise NotFoundError("Dependency", dependency_id) from None

    def get_all_dependencies(self) -> List[DimensionDependency]:
        return list(self._dependencies.values())

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def update_dimension(self, dimension_id: str, new_value: float,
                         source: UpdateSource = UpdateSource.USER) -> List[DimensionUpdateEvent]:
        """Write ``new_value`` into a dimension and carry it to its dependents.

        Returns one event per dimension touched, parent first. A call made
        while another update is running is dropped and returns ``[]``.

        Raises:
            NotFoundError: If the dimension does not exist
        """
        if self.is_updating:
            logger.warning("Dropped update of %s: another update is in progress", dimension_id)
            return []

        self.document.get_dimension(dimension_id)
        self.is_updating = True
        try:
            events: List[DimensionUpdateEvent] = []
            self._apply(dimension_id, new_value, UpdateSource(source), events,
                        depth=0, visited=set())
            for event in events:
                self._notify(event)
        finally:
            self.is_updating = False

        logger.debug("Updated %s to %.4f (%d dimensions touched)",
                     dimension_id, new_value, len(events))
        return events

    def _apply(self, dimension_id: str, value: float, source: UpdateSource,
               events: List[DimensionUpdateEvent], depth: int, visited: Set[str]) -> None:
        dimension = self.document.get_dimension(dimension_id)
        old_value = parse_dimension_value(dimension.text)
        self.document.update_dimension(dimension_id, text=format_dimension_text(dimension, value))
        visited.add(dimension_id)

        affected: List[str] = []
        for relationship in self.get_relationships_for_dimension(dimension_id):
            affected.extend(e for e in relationship.entity_ids if e not in affected)

        events.append(DimensionUpdateEvent(
            dimension_id=dimension_id,
            old_value=old_value,
            new_value=value,
            affected_entities=tuple(affected),
            timestamp=time.time(),
            source=source,
        ))

        for child, dependency_type in self._children_of(dimension_id):
            if child in visited:
                logger.warning("Skipped %s: already updated in this cycle", child)
                continue
            if depth + 1 > self.max_propagation_depth:
                logger.warning("Stopped propagation at %s: depth limit %d reached",
                               child, self.max_propagation_depth)
                continue
            if child not in self.document:
                logger.warning("Skipped dependent dimension %s: not in document", child)
                continue
            self._apply(child, dependent_value(dependency_type, value),
                        UpdateSource.CALCULATION, events, depth + 1, visited)

    def reconcile(self) -> List[DimensionUpdateEvent]:
        """Push drifted measurements into their dimensions.

        Runs automatically after every document change; once everything is
        in sync it does nothing.
        """
        if self.is_updating or not self.auto_update:
            return []

        events: List[DimensionUpdateEvent] = []
        for relationship in list(self._relationships.values()):
            if not relationship.auto_update:
                continue
            if relationship.dimension_id not in self.document:
                continue
            live = self.measure_relationship(relationship)
            if live is None:
                continue
            if abs(live - relationship.last_value) > relationship.tolerance:
                logger.debug("Relationship %s drifted: %.4f -> %.4f",
                             relationship.id, relationship.last_value, live)
                events.extend(self.update_dimension(relationship.dimension_id, live,
                                                    UpdateSource.CONSTRAINT))
                relationship.last_value = live
                relationship.modified = time.time()
        return events

    def _on_document_change(self, change: DocumentChange) -> None:
        if self.is_updating:
            return
        if change.kind is ChangeKind.DELETED and change.store is RecordStore.DIMENSION:
            self._forget_dimension(change.record_id)
            return
        self.reconcile()

    def _forget_dimension(self, dimension_id: str) -> None:
        for relationship in self.get_relationships_for_dimension(dimension_id):
            self.remove_relationship(relationship.id)
        for dependency in list(self._dependencies.values()):
            if dependency.parent_dimension_id == dimension_id:
                del self._dependencies[dependency.id]
            elif dimension_id in dependency.child_dimension_ids:
                dependency.child_dimension_ids.remove(dimension_id)

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_update_listener(self, listener: UpdateListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_update_listener(self, listener: UpdateListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, event: DimensionUpdateEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Dimension update listener %r failed for %s",
                                 listener, event.dimension_id)
