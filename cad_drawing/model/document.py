"""
Authoritative drawing state.

A :class:`DrawingDocument` keeps entities, dimensions and annotations in
three id-keyed stores plus the layer table. Records never hold each other;
they point at layers by id, and a layer id that no longer resolves is
read as the default layer.

Every mutation bumps :attr:`DrawingDocument.revision` and is announced to
the registered listeners as a :class:`DocumentChange`. Listeners run
synchronously in registration order; one that raises is logged and
skipped.
"""

import logging
from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from cad_drawing import config as cfg
from cad_drawing.errors import InvalidStateError, NotFoundError
from cad_drawing.geometry.primitives import Point
from cad_drawing.model.entities import (
    Annotation,
    AnyRecord,
    Dimension,
    Entity,
    Layer,
    Style,
    is_annotation,
    is_dimension,
    new_id,
    record_from_dict,
    record_to_dict,
    style_from_dict,
    style_to_dict,
)

logger = logging.getLogger(__name__)


class ChangeKind(Enum):
    ADDED = "added"
    UPDATED = "updated"
    DELETED = "deleted"


class RecordStore(Enum):
    """Which table a change touched; also the paint order within a layer."""
    ENTITY = "entity"
    DIMENSION = "dimension"
    ANNOTATION = "annotation"
    LAYER = "layer"


@dataclass(frozen=True)
class DocumentChange:
    """Notification payload sent to document listeners."""
    kind: ChangeKind
    store: RecordStore
    record_id: str
    revision: int


DocumentListener = Callable[[DocumentChange], None]

_PAINT_ORDER = (RecordStore.ENTITY, RecordStore.DIMENSION, RecordStore.ANNOTATION)


def store_for(record: Entity) -> RecordStore:
    """Table a record belongs to."""
    if is_dimension(record):
        return RecordStore.DIMENSION
    if is_annotation(record):
        return RecordStore.ANNOTATION
    return RecordStore.ENTITY


def translate_record(record: AnyRecord, dx: float, dy: float) -> AnyRecord:
    """Copy of ``record`` with every point-valued field shifted by (dx, dy)."""
    delta = Point(dx, dy)
    changes: Dict[str, Any] = {}
    for f in fields(record):
        value = getattr(record, f.name)
        if isinstance(value, Point):
            changes[f.name] = value + delta
        elif isinstance(value, list) and value and isinstance(value[0], Point):
            changes[f.name] = [p + delta for p in value]
    return replace(record, **changes)


class DrawingDocument:
    """Entity, dimension, annotation and layer stores for one drawing.

    Args:
        default_layer_name: Display name of the undeletable default layer
    """

    def __init__(self, default_layer_name: Optional[str] = None):
        self.default_layer_id = cfg.DEFAULT_LAYER_ID
        self._stores: Dict[RecordStore, Dict[str, AnyRecord]] = {
            RecordStore.ENTITY: {},
            RecordStore.DIMENSION: {},
            RecordStore.ANNOTATION: {},
        }
        self._layers: Dict[str, Layer] = {
            self.default_layer_id: Layer(
                id=self.default_layer_id,
                name=default_layer_name or cfg.DEFAULT_LAYER_NAME,
                style=Style(stroke_color=cfg.DEFAULT_STROKE_COLOR,
                            stroke_width=cfg.DEFAULT_STROKE_WIDTH),
                order=0,
            )
        }
        self.active_layer_id = self.default_layer_id
        self.revision = 0
        self._listeners: List[DocumentListener] = []

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, listener: DocumentListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: DocumentListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, kind: ChangeKind, store: RecordStore, record_id: str) -> None:
        self.revision += 1
        change = DocumentChange(kind, store, record_id, self.revision)
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                logger.exception("Document listener %r failed on %s %s %s",
                                 listener, kind.value, store.value, record_id)

    # ------------------------------------------------------------------
    # Generic record storage
    # ------------------------------------------------------------------

    def _add(self, store: RecordStore, record: AnyRecord) -> str:
        if store_for(record) is not store:
            raise TypeError(
                f"{type(record).__name__} does not belong in the {store.value} store"
            )
        table = self._stores[store]
        if record.id in table:
            raise InvalidStateError(f"Duplicate {store.value} id: {record.id}")
        if not record.layer:
            record = replace(record, layer=self.active_layer_id)
        table[record.id] = record
        logger.debug("Added %s %s (%s)", store.value, record.id, record.kind)
        self._emit(ChangeKind.ADDED, store, record.id)
        return record.id

    def _get(self, store: RecordStore, record_id: str) -> AnyRecord:
        try:
            return self._stores[store][record_id]
        except KeyError:
            raise NotFoundError(store.value.capitalize(), record_id) from None

    def _update(self, store: RecordStore, record_id: str, changes: Dict[str, Any]) -> AnyRecord:
        current = self._get(store, record_id)
        if 'id' in changes and changes['id'] != record_id:
            raise InvalidStateError("Record ids are immutable")
        updated = replace(current, **changes)
        self._stores[store][record_id] = updated
        self._emit(ChangeKind.UPDATED, store, record_id)
        return updated

    def _put(self, store: RecordStore, record: AnyRecord) -> AnyRecord:
        self._get(store, record.id)
        self._stores[store][record.id] = record
        self._emit(ChangeKind.UPDATED, store, record.id)
        return record

    def _delete(self, store: RecordStore, record_id: str) -> AnyRecord:
        record = self._get(store, record_id)
        del self._stores[store][record_id]
        logger.debug("Deleted %s %s", store.value, record_id)
        self._emit(ChangeKind.DELETED, store, record_id)
        return record

    # ------------------------------------------------------------------
    # Entities
    # ------------------------------------------------------------------

    def add_entity(self, entity: Entity) -> str:
        """Store a plain entity and return its id."""
        return self._add(RecordStore.ENTITY, entity)

    def get_entity(self, entity_id: str) -> Entity:
        return self._get(RecordStore.ENTITY, entity_id)

    def update_entity(self, entity_id: str, **changes: Any) -> Entity:
        """Overwrite the given fields of an entity (last write wins).

        Raises:
            NotFoundError: If the entity does not exist
        """
        return self._update(RecordStore.ENTITY, entity_id, changes)

    def replace_entity(self, entity: Entity) -> Entity:
        """Swap in a whole new record under an existing id."""
        return self._put(RecordStore.ENTITY, entity)

    def delete_entity(self, entity_id: str) -> Entity:
        return self._delete(RecordStore.ENTITY, entity_id)

    def entities(self) -> List[Entity]:
        return list(self._stores[RecordStore.ENTITY].values())

    # ------------------------------------------------------------------
    # Dimensions
    # ------------------------------------------------------------------

    def add_dimension(self, dimension: Dimension) -> str:
        return self._add(RecordStore.DIMENSION, dimension)

    def get_dimension(self, dimension_id: str) -> Dimension:
        return self._get(RecordStore.DIMENSION, dimension_id)

    def update_dimension(self, dimension_id: str, **changes: Any) -> Dimension:
        return self._update(RecordStore.DIMENSION, dimension_id, changes)

    def delete_dimension(self, dimension_id: str) -> Dimension:
        return self._delete(RecordStore.DIMENSION, dimension_id)

    def dimensions(self) -> List[Dimension]:
        return list(self._stores[RecordStore.DIMENSION].values())

    # ------------------------------------------------------------------
    # Annotations
    # ------------------------------------------------------------------

    def add_annotation(self, annotation: Annotation) -> str:
        return self._add(RecordStore.ANNOTATION, annotation)

    def get_annotation(self, annotation_id: str) -> Annotation:
        return self._get(RecordStore.ANNOTATION, annotation_id)

    def update_annotation(self, annotation_id: str, **changes: Any) -> Annotation:
        return self._update(RecordStore.ANNOTATION, annotation_id, changes)

    def delete_annotation(self, annotation_id: str) -> Annotation:
        return self._delete(RecordStore.ANNOTATION, annotation_id)

    def annotations(self) -> List[Annotation]:
        return list(self._stores[RecordStore.ANNOTATION].values())

    # ------------------------------------------------------------------
    # Cross-store reads
    # ------------------------------------------------------------------

    def entity_by_id(self, record_id: str) -> Optional[AnyRecord]:
        """Look a record up in all three stores; None if absent."""
        for table in self._stores.values():
            record = table.get(record_id)
            if record is not None:
                return record
        return None

    def __contains__(self, record_id: object) -> bool:
        return any(record_id in table for table in self._stores.values())

    def __len__(self) -> int:
        return sum(len(table) for table in self._stores.values())

    def iter_records(self) -> Iterator[Tuple[RecordStore, AnyRecord]]:
        """All records, entities first, then dimensions, then annotations."""
        for store in _PAINT_ORDER:
            for record in self._stores[store].values():
                yield store, record

    def all_entities_on_visible_layers(self) -> List[AnyRecord]:
        """Every record whose (resolved) layer is visible."""
        return [
            record for _, record in self.iter_records()
            if self.resolve_layer(record.layer).visible
        ]

    def render_order(self) -> List[AnyRecord]:
        """Visible records in paint order.

        Ascending layer order; inside a layer entities, then dimensions,
        then annotations, each in insertion order.
        """
        ranked = []
        for position, (store, record) in enumerate(self.iter_records()):
            if not record.visible:
                continue
            layer = self.resolve_layer(record.layer)
            if not layer.visible:
                continue
            ranked.append((layer.order, _PAINT_ORDER.index(store), position, record))
        ranked.sort(key=lambda item: item[:3])
        return [item[3] for item in ranked]

    def is_selectable(self, record: AnyRecord) -> bool:
        """Visible and unlocked, on a visible and unlocked layer."""
        if not record.visible or record.locked:
            return False
        layer = self.resolve_layer(record.layer)
        return layer.visible and not layer.locked

    # ------------------------------------------------------------------
    # Editing helpers
    # ------------------------------------------------------------------

    def _store_of(self, record_id: str) -> RecordStore:
        for store, table in self._stores.items():
            if record_id in table:
                return store
        raise NotFoundError("Record", record_id)

    def move_entity(self, record_id: str, dx: float, dy: float) -> AnyRecord:
        """Translate any record by (dx, dy)."""
        store = self._store_of(record_id)
        moved = translate_record(self._stores[store][record_id], dx, dy)
        return self._put(store, moved)

    def copy_entity(self, record_id: str,
                    offset: Tuple[float, float] = cfg.COPY_OFFSET) -> str:
        """Duplicate a record under a fresh id, shifted by ``offset``."""
        store = self._store_of(record_id)
        source = self._stores[store][record_id]
        copy = translate_record(source, offset[0], offset[1])
        copy = replace(copy, id=new_id(source.id_prefix))
        return self._add(store, copy)

    # ------------------------------------------------------------------
    # Layers
    # ------------------------------------------------------------------

    @property
    def default_layer(self) -> Layer:
        return self._layers[self.default_layer_id]

    def layers(self) -> List[Layer]:
        """Layers in paint order."""
        return sorted(self._layers.values(), key=lambda layer: layer.order)

    def get_layer(self, layer_id: str) -> Layer:
        try:
            return self._layers[layer_id]
        except KeyError:
            raise NotFoundError("Layer", layer_id) from None

    def resolve_layer(self, layer_id: Optional[str]) -> Layer:
        """The named layer, or the default layer when the id dangles."""
        return self._layers.get(layer_id or "", self.default_layer)

    def add_layer(self, layer: Layer) -> str:
        if layer.id in self._layers:
            raise InvalidStateError(f"Duplicate layer id: {layer.id}")
        self._layers[layer.id] = layer
        logger.info("Added layer %s (%s)", layer.id, layer.name)
        self._emit(ChangeKind.ADDED, RecordStore.LAYER, layer.id)
        return layer.id

    def update_layer(self, layer_id: str, **changes: Any) -> Layer:
        layer = self.get_layer(layer_id)
        if 'id' in changes and changes['id'] != layer_id:
            raise InvalidStateError("Layer ids are immutable")
        updated = replace(layer, **changes)
        self._layers[layer_id] = updated
        self._emit(ChangeKind.UPDATED, RecordStore.LAYER, layer_id)
        return updated

    def delete_layer(self, layer_id: str) -> Layer:
        """Remove a layer, moving its records onto the default layer.

        Raises:
            InvalidStateError: For the default layer
            NotFoundError: If the layer does not exist
        """
        if layer_id == self.default_layer_id:
            raise InvalidStateError("The default layer cannot be deleted")
        layer = self.get_layer(layer_id)

        for store, record in list(self.iter_records()):
            if record.layer == layer_id:
                self._stores[store][record.id] = replace(record, layer=self.default_layer_id)
                self._emit(ChangeKind.UPDATED, store, record.id)

        del self._layers[layer_id]
        if self.active_layer_id == layer_id:
            self.active_layer_id = self.default_layer_id
        logger.info("Deleted layer %s", layer_id)
        self._emit(ChangeKind.DELETED, RecordStore.LAYER, layer_id)
        return layer

    def set_active_layer(self, layer_id: str) -> None:
        """Layer that new records without an explicit layer land on."""
        self.get_layer(layer_id)
        self.active_layer_id = layer_id

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Plain, cycle-free representation for persistence."""
        return {
            "default_layer_id": self.default_layer_id,
            "active_layer_id": self.active_layer_id,
            "layers": [
                {
                    "id": layer.id,
                    "name": layer.name,
                    "visible": layer.visible,
                    "locked": layer.locked,
                    "order": layer.order,
                    "style": style_to_dict(layer.style),
                }
                for layer in self.layers()
            ],
            "entities": [record_to_dict(r) for r in self.entities()],
            "dimensions": [record_to_dict(r) for r in self.dimensions()],
            "annotations": [record_to_dict(r) for r in self.annotations()],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DrawingDocument':
        """Rebuild a document from :meth:`to_dict` output (no notifications)."""
        doc = cls()
        for layer_data in data.get("layers", []):
            layer = Layer(
                id=layer_data["id"],
                name=layer_data.get("name", ""),
                visible=layer_data.get("visible", True),
                locked=layer_data.get("locked", False),
                order=layer_data.get("order", 0),
                style=style_from_dict(layer_data.get("style")),
            )
            doc._layers[layer.id] = layer

        for key, store in (("entities", RecordStore.ENTITY),
                           ("dimensions", RecordStore.DIMENSION),
                           ("annotations", RecordStore.ANNOTATION)):
            for record_data in data.get(key, []):
                record = record_from_dict(record_data)
                doc._stores[store][record.id] = record

        active = data.get("active_layer_id")
        if active in doc._layers:
            doc.active_layer_id = active
        return doc

