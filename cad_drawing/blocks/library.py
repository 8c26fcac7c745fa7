"""
Block library manager.

:class:`BlockManager` owns libraries, definitions, instances and
categories for one session. It starts with a writable "Standard Library"
holding the built-in symbols.

Placing a template entity applies the instance transform in a fixed
order: subtract the definition insertion point, scale by (sx, sy), rotate
by the instance rotation, translate to the instance insertion point.
Circle and arc radii scale by ``max(sx, sy)``, so non-uniform scaling
keeps them round.
"""

import json
import logging
import time
from dataclasses import fields, replace
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from cad_drawing import config as cfg
from cad_drawing.blocks.types import (
    DEFAULT_BLOCK_CATEGORIES,
    BlockAttribute,
    BlockCategory,
    BlockChangeEvent,
    BlockChangeType,
    BlockDefinition,
    BlockInstance,
    BlockLibrary,
    BlockSearchCriteria,
    BlockTemplate,
    SortKey,
    block_bounding_box,
    category_from_dict,
    category_to_dict,
    definition_from_dict,
    definition_to_dict,
    standard_block_templates,
)
from cad_drawing.errors import InvalidStateError, NotFoundError
from cad_drawing.geometry.primitives import ORIGIN, Point, place_point
from cad_drawing.logging_config import log_timing
from cad_drawing.model.entities import (
    ArcEntity,
    CircleEntity,
    EllipseEntity,
    Entity,
    LineEntity,
    PolylineEntity,
    RectangleEntity,
    SplineEntity,
    TextEntity,
    is_plain_entity,
    new_id,
)

logger = logging.getLogger(__name__)

BlockListener = Callable[[BlockChangeEvent], None]

LIBRARY_FORMAT_VERSION = "1.0"

_INSTANCE_FIELDS = {"insertion_point", "scale", "rotation", "attributes",
                    "layer", "visible", "locked"}


# ---------------------------------------------------------------------------
# Instance transform
# ---------------------------------------------------------------------------

def place_template_entity(entity: Entity, definition: BlockDefinition,
                          instance: BlockInstance) -> Entity:
    """Freestanding copy of a template entity under an instance transform.

    The copy gets a fresh id and the instance's layer.
    """
    sx, sy = instance.scale
    rotation = instance.rotation
    base = definition.insertion_point

    def tp(point: Point) -> Point:
        return place_point(point - base, instance.insertion_point, sx, sy, rotation)

    changes: Dict[str, Any] = {"id": "", "layer": instance.layer}

    if isinstance(entity, LineEntity):
        changes.update(start=tp(entity.start), end=tp(entity.end))
    elif isinstance(entity, SplineEntity):
        changes["points"] = [tp(p) for p in entity.points]
        if entity.control_points:
            changes["control_points"] = [tp(p) for p in entity.control_points]
    elif isinstance(entity, PolylineEntity):
        changes["points"] = [tp(p) for p in entity.points]
    elif isinstance(entity, ArcEntity):
        changes.update(center=tp(entity.center),
                       radius=entity.radius * max(sx, sy),
                       start_angle=entity.start_angle + rotation,
                       end_angle=entity.end_angle + rotation)
    elif isinstance(entity, CircleEntity):
        changes.update(center=tp(entity.center), radius=entity.radius * max(sx, sy))
    elif isinstance(entity, EllipseEntity):
        changes.update(center=tp(entity.center),
                       radius_x=entity.radius_x * abs(sx),
                       radius_y=entity.radius_y * abs(sy),
                       rotation=entity.rotation + rotation)
    elif isinstance(entity, RectangleEntity):
        changes.update(position=tp(entity.position),
                       width=entity.width * sx,
                       height=entity.height * sy,
                       rotation=entity.rotation + rotation)
    elif isinstance(entity, TextEntity):
        changes.update(position=tp(entity.position), rotation=entity.rotation + rotation)

    return replace(entity, **changes)


class BlockManager:
    """Libraries, definitions, instances and categories for one session.

    Args:
        load_standard_library: Populate the default library with the
            built-in symbols
    """

    def __init__(self, load_standard_library: bool = True):
        self.libraries: Dict[str, BlockLibrary] = {}
        self.definitions: Dict[str, BlockDefinition] = {}
        self.instances: Dict[str, BlockInstance] = {}
        self.categories: Dict[str, BlockCategory] = {}
        self._listeners: List[BlockListener] = []

        self.libraries[cfg.BLOCK_DEFAULT_LIBRARY_ID] = BlockLibrary(
            id=cfg.BLOCK_DEFAULT_LIBRARY_ID,
            name=cfg.BLOCK_DEFAULT_LIBRARY_NAME,
            description="Standard CAD blocks and symbols",
            is_default=True,
            author="System",
        )
        self._reset_categories()

        if load_standard_library:
            for template in standard_block_templates():
                self.add_block_definition(self._definition_from_template(template))

        logger.info("Block manager ready: %d libraries, %d blocks",
                    len(self.libraries), len(self.definitions))

    def _reset_categories(self) -> None:
        self.categories = {c.id: replace(c) for c in DEFAULT_BLOCK_CATEGORIES}

    @staticmethod
    def _definition_from_template(template: BlockTemplate) -> BlockDefinition:
        return BlockDefinition(
            id=template.id,
            name=template.name,
            description=template.description,
            category=template.category.value,
            entities=list(template.entities),
            insertion_point=ORIGIN,
            attributes=list(template.attributes),
            tags=list(template.tags),
            author="System",
        )

    # ------------------------------------------------------------------
    # Libraries
    # ------------------------------------------------------------------

    def create_library(self, name: str, description: str = "", read_only: bool = False,
                       author: Optional[str] = None) -> str:
        library = BlockLibrary(id=new_id("library"), name=name, description=description,
                               read_only=read_only, author=author)
        self.libraries[library.id] = library
        logger.info("Created block library %r (%s)", name, library.id)
        self._notify(BlockChangeEvent(BlockChangeType.LIBRARY_ADDED, library_id=library.id))
        return library.id

    def get_library(self, library_id: str) -> BlockLibrary:
        try:
            return self.libraries[library_id]
        except KeyError:
            raise NotFoundError("Block library", library_id) from None

    def get_all_libraries(self) -> List[BlockLibrary]:
        return list(self.libraries.values())

    def _writable_library(self, library_id: str) -> BlockLibrary:
        library = self.get_library(library_id)
        if library.read_only:
            raise InvalidStateError(f"Block library {library_id} is read-only")
        return library

    def _library_of(self, block_id: str) -> Optional[BlockLibrary]:
        for library in self.libraries.values():
            if block_id in library.block_ids:
                return library
        return None

    # ------------------------------------------------------------------
    # Definitions
    # ------------------------------------------------------------------

    def add_block_definition(self, definition: BlockDefinition,
                             library_id: str = cfg.BLOCK_DEFAULT_LIBRARY_ID) -> str:
        """Register a definition in a library and cache its bounding box.

        Raises:
            NotFoundError: If the library does not exist
            InvalidStateError: If the library is read-only or the id is taken
        """
        library = self._writable_library(library_id)
        if definition.id in self.definitions:
            raise InvalidStateError(f"Duplicate block definition id: {definition.id}")

        definition.bounding_box = block_bounding_box(definition.entities)
        library.block_ids.append(definition.id)
        library.modified = time.time()
        self.definitions[definition.id] = definition

        logger.info("Added block %r (%s) to library %s", definition.name,
                    definition.id, library_id)
        self._notify(BlockChangeEvent(BlockChangeType.BLOCK_ADDED,
                                      block_id=definition.id, library_id=library_id))
        return definition.id

    def create_block_definition(
        self,
        name: str,
        entities: Sequence[Entity],
        insertion_point: Point = ORIGIN,
        category: str = cfg.BLOCK_DEFAULT_CATEGORY,
        attributes: Optional[Sequence[BlockAttribute]] = None,
        description: str = "",
        tags: Optional[Sequence[str]] = None,
        author: Optional[str] = None,
        library_id: str = cfg.BLOCK_DEFAULT_LIBRARY_ID,
    ) -> str:
        """Build a definition from template entities and register it.

        Template entities are copied with fresh ids; the caller's records
        are left untouched.

        Raises:
            TypeError: If an entity is a dimension or annotation
        """
        templates = []
        for entity in entities:
            if not is_plain_entity(entity):
                raise TypeError(f"{type(entity).__name__} cannot be used in a block")
            templates.append(replace(entity, id=""))

        definition = BlockDefinition(
            name=name,
            entities=templates,
            insertion_point=Point.of(insertion_point),
            category=category,
            attributes=list(attributes or []),
            tags=list(tags or []),
            description=description,
            author=author,
        )
        return self.add_block_definition(definition, library_id)

    def create_custom_block(
        self,
        entities: Sequence[Entity],
        name: str,
        insertion_point: Point,
        description: str = "",
        category: Optional[str] = None,
        attributes: Optional[Sequence[BlockAttribute]] = None,
        tags: Optional[Sequence[str]] = None,
    ) -> str:
        """Turn a selection of drawing entities into a user block."""
        return self.create_block_definition(
            name,
            entities,
            insertion_point=insertion_point,
            category=category or cfg.BLOCK_DEFAULT_CATEGORY,
            attributes=attributes,
            description=description,
            tags=tags,
            author=cfg.BLOCK_DEFAULT_AUTHOR,
        )

    def get_block_definition(self, block_id: str) -> Optional[BlockDefinition]:
        return self.definitions.get(block_id)

    def require_block_definition(self, block_id: str) -> BlockDefinition:
        definition = self.definitions.get(block_id)
        if definition is None:
            raise NotFoundError("Block definition", block_id)
        return definition

    def get_all_block_definitions(self) -> List[BlockDefinition]:
        return list(self.definitions.values())

    def update_block_definition(self, block_id: str, **changes: Any) -> BlockDefinition:
        """Overwrite definition fields; the bounding box follows the entities.

        Raises:
            NotFoundError: If the definition does not exist
            InvalidStateError: If its library is read-only
            ValueError: On an unknown field or an id change
        """
        definition = self.require_block_definition(block_id)
        library = self._library_of(block_id)
        if library is not None and library.read_only:
            raise InvalidStateError(f"Block library {library.id} is read-only")

        known = {f.name for f in fields(BlockDefinition)} - {"id", "created", "bounding_box"}
        unknown = set(changes) - known
        if unknown:
            raise ValueError(f"Cannot update block fields: {', '.join(sorted(unknown))}")

        for name, value in changes.items():
            setattr(definition, name, value)
        definition.bounding_box = block_bounding_box(definition.entities)
        definition.modified = time.time()

        self._notify(BlockChangeEvent(BlockChangeType.BLOCK_UPDATED, block_id=block_id))
        return definition

    def delete_block_definition(self, block_id: str) -> bool:
        """Remove a definition together with all of its instances."""
        if block_id not in self.definitions:
            return False
        library = self._library_of(block_id)
        if library is not None:
            if library.read_only:
                raise InvalidStateError(f"Block library {library.id} is read-only")
            library.block_ids.remove(block_id)
            library.modified = time.time()

        del self.definitions[block_id]
        orphans = [i.id for i in self.instances.values() if i.block_definition_id == block_id]
        for instance_id in orphans:
            del self.instances[instance_id]

        logger.info("Deleted block %s (%d instances removed)", block_id, len(orphans))
        self._notify(BlockChangeEvent(BlockChangeType.BLOCK_DELETED, block_id=block_id,
                                      library_id=library.id if library else None))
        return True

    # ------------------------------------------------------------------
    # Instances
    # ------------------------------------------------------------------

    def create_block_instance(
        self,
        definition_id: str,
        insertion_point: Point,
        scale: Union[float, Tuple[float, float]] = (1.0, 1.0),
        rotation: float = 0.0,
        attributes: Optional[Dict[str, str]] = None,
        layer: str = cfg.DEFAULT_LAYER_ID,
    ) -> str:
        """Place a definition.

        Attribute tags not given in ``attributes`` take the definition's
        default value.

        Raises:
            NotFoundError: If the definition does not exist
        """
        definition = self.require_block_definition(definition_id)
        if isinstance(scale, (int, float)):
            scale = (float(scale), float(scale))

        values = dict(attributes or {})
        for attribute in definition.attributes:
            values.setdefault(attribute.tag, attribute.initial_value)

        instance = BlockInstance(
            block_definition_id=definition_id,
            insertion_point=Point.of(insertion_point),
            scale=(float(scale[0]), float(scale[1])),
            rotation=rotation,
            attributes=values,
            layer=layer,
        )
        self.instances[instance.id] = instance

        logger.info("Inserted %r at (%.3f, %.3f) as %s", definition.name,
                    instance.insertion_point.x, instance.insertion_point.y, instance.id)
        self._notify(BlockChangeEvent(BlockChangeType.INSTANCE_CREATED,
                                      block_id=definition_id, instance_id=instance.id))
        return instance.id

    def insert_block(self, definition_id: str, position: Point, rotation: float = 0.0,
                     scale_x: float = 1.0, scale_y: Optional[float] = None,
                     layer: str = cfg.DEFAULT_LAYER_ID) -> str:
        """Shorthand for :meth:`create_block_instance`; ``scale_y`` defaults to ``scale_x``."""
        return self.create_block_instance(
            definition_id, position,
            scale=(scale_x, scale_x if scale_y is None else scale_y),
            rotation=rotation, layer=layer,
        )

    def get_block_instance(self, instance_id: str) -> Optional[BlockInstance]:
        return self.instances.get(instance_id)

    def require_block_instance(self, instance_id: str) -> BlockInstance:
        instance = self.instances.get(instance_id)
        if instance is None:
            raise NotFoundError("Block instance", instance_id)
        return instance

    def get_all_block_instances(self) -> List[BlockInstance]:
        return list(self.instances.values())

    def get_instances_of_block(self, block_id: str) -> List[BlockInstance]:
        return [i for i in self.instances.values() if i.block_definition_id == block_id]

    def usage_count(self, block_id: str) -> int:
        """Number of live (not exploded) instances of a definition."""
        return sum(1 for i in self.instances.values()
                   if i.block_definition_id == block_id and not i.exploded)

    def update_block_instance(self, instance_id: str, **changes: Any) -> BlockInstance:
        """Overwrite placement fields of an instance.

        Raises:
            NotFoundError: If the instance does not exist
            ValueError: On a field other than insertion_point, scale,
                rotation, attributes, layer, visible or locked
        """
        instance = self.require_block_instance(instance_id)
        unknown = set(changes) - _INSTANCE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update instance fields: {', '.join(sorted(unknown))}")

        if "insertion_point" in changes:
            changes["insertion_point"] = Point.of(changes["insertion_point"])
        if "scale" in changes and isinstance(changes["scale"], (int, float)):
            changes["scale"] = (float(changes["scale"]), float(changes["scale"]))
        for name, value in changes.items():
            setattr(instance, name, value)
        instance.modified = time.time()

        logger.debug("Updated block instance %s: %s", instance_id, ", ".join(sorted(changes)))
        self._notify(BlockChangeEvent(BlockChangeType.INSTANCE_UPDATED,
                                      block_id=instance.block_definition_id,
                                      instance_id=instance_id))
        return instance

    def update_block_attributes(self, instance_id: str,
                                attributes: Dict[str, str]) -> BlockInstance:
        """Merge attribute values into an instance."""
        instance = self.require_block_instance(instance_id)
        merged = dict(instance.attributes)
        merged.update(attributes)
        return self.update_block_instance(instance_id, attributes=merged)

    def delete_block_instance(self, instance_id: str) -> bool:
        instance = self.instances.pop(instance_id, None)
        if instance is None:
            return False
        logger.info("Deleted block instance %s", instance_id)
        self._notify(BlockChangeEvent(BlockChangeType.INSTANCE_DELETED,
                                      block_id=instance.block_definition_id,
                                      instance_id=instance_id))
        return True

    def generate_block_entities(self, instance_id: str) -> List[Entity]:
        """Entities an instance currently displays; empty once exploded.

        Raises:
            NotFoundError: If the instance or its definition does not exist
        """
        instance = self.require_block_instance(instance_id)
        if instance.exploded:
            return []
        definition = self.require_block_definition(instance.block_definition_id)
        return [place_template_entity(e, definition, instance) for e in definition.entities]

    def explode_block_instance(self, instance_id: str, document=None) -> List[Entity]:
        """Turn an instance into freestanding entities.

        The instance stays registered but is marked exploded and no longer
        produces live geometry. When ``document`` is given the new entities
        are also added to it.

        Raises:
            NotFoundError: If the instance or its definition does not exist
            InvalidStateError: If the instance was already exploded
        """
        instance = self.require_block_instance(instance_id)
        if instance.exploded:
            raise InvalidStateError(f"Block instance {instance_id} is already exploded")
        definition = self.require_block_definition(instance.block_definition_id)

        entities = [place_template_entity(e, definition, instance) for e in definition.entities]
        instance.exploded = True
        instance.modified = time.time()

        if document is not None:
            for entity in entities:
                document.add_entity(entity)

        logger.info("Exploded block instance %s into %d entities", instance_id, len(entities))
        self._notify(BlockChangeEvent(BlockChangeType.INSTANCE_EXPLODED,
                                      block_id=definition.id, instance_id=instance_id))
        return entities

    # ------------------------------------------------------------------
    # Search and categories
    # ------------------------------------------------------------------

    def search_blocks(self, criteria: Optional[BlockSearchCriteria] = None) -> List[BlockDefinition]:
        """Definitions matching every set criterion, optionally sorted and capped."""
        criteria = criteria or BlockSearchCriteria()
        results = list(self.definitions.values())

        if criteria.query:
            query = criteria.query.lower()
            results = [
                b for b in results
                if query in b.name.lower()
                or query in (b.description or "").lower()
                or any(query in tag.lower() for tag in b.tags)
            ]
        if criteria.category:
            results = [b for b in results if b.category == criteria.category]
        if criteria.tags:
            wanted = set(criteria.tags)
            results = [b for b in results if wanted.intersection(b.tags)]
        if criteria.author:
            results = [b for b in results if b.author == criteria.author]
        if criteria.date_range is not None:
            start, end = criteria.date_range
            results = [b for b in results if start <= b.created <= end]
        if criteria.has_attributes is not None:
            results = [b for b in results if bool(b.attributes) == criteria.has_attributes]

        if criteria.sort_by is not None:
            sort_by = SortKey(criteria.sort_by)
            if sort_by is SortKey.NAME:
                results.sort(key=lambda b: b.name.lower())
            elif sort_by is SortKey.USAGE:
                results.sort(key=lambda b: self.usage_count(b.id), reverse=True)
            elif sort_by is SortKey.DATE:
                results.sort(key=lambda b: b.created, reverse=True)
            elif sort_by is SortKey.CATEGORY:
                results.sort(key=lambda b: (b.category, b.name.lower()))

        if criteria.limit is not None:
            results = results[:criteria.limit]

        logger.debug("Block search returned %d results", len(results))
        return results

    def create_category(self, name: str, description: str = "", icon: Optional[str] = None,
                        color: Optional[str] = None, parent_id: Optional[str] = None,
                        order: Optional[int] = None, visible: bool = True) -> str:
        if order is None:
            order = max((c.order for c in self.categories.values()), default=0) + 1
        category = BlockCategory(id=new_id("category"), name=name, description=description,
                                 icon=icon, color=color, parent_id=parent_id,
                                 order=order, visible=visible)
        self.categories[category.id] = category
        self._notify(BlockChangeEvent(BlockChangeType.CATEGORY_ADDED, category_id=category.id))
        return category.id

    def get_category(self, category_id: str) -> Optional[BlockCategory]:
        return self.categories.get(category_id)

    def get_all_categories(self) -> List[BlockCategory]:
        return sorted(self.categories.values(), key=lambda c: c.order)

    def get_blocks_by_category(self, category_id: str) -> List[BlockDefinition]:
        return [b for b in self.definitions.values() if b.category == category_id]

    # ------------------------------------------------------------------
    # Import / export
    # ------------------------------------------------------------------

    def export_library(self, library_id: Optional[str] = None) -> str:
        """JSON dump of the categories and the definitions of one or all libraries."""
        if library_id is None:
            blocks = list(self.definitions.values())
        else:
            blocks = [self.definitions[b] for b in self.get_library(library_id).block_ids]
        data = {
            "version": LIBRARY_FORMAT_VERSION,
            "timestamp": time.time(),
            "categories": [category_to_dict(c) for c in self.get_all_categories()],
            "block_definitions": [definition_to_dict(b) for b in blocks],
        }
        return json.dumps(data, indent=2, ensure_ascii=False)

    def import_library(self, data: str, merge: bool = False,
                       library_id: str = cfg.BLOCK_DEFAULT_LIBRARY_ID) -> int:
        """Load an :meth:`export_library` dump.

        Without ``merge`` all existing definitions (with their instances)
        and custom categories are dropped first. With ``merge`` imported
        blocks whose id is already taken get a fresh id.

        Returns:
            Number of definitions imported

        Raises:
            ValueError: If ``data`` is not a valid library dump
            InvalidStateError: If the target library is read-only
        """
        self._writable_library(library_id)
        try:
            payload = json.loads(data)
            categories = [category_from_dict(c) for c in payload.get("categories", [])]
            blocks = [definition_from_dict(b) for b in payload.get("block_definitions", [])]
        except (json.JSONDecodeError, AttributeError, KeyError, TypeError) as err:
            raise ValueError("Invalid library data format") from err

        if not merge:
            for block_id in list(self.definitions):
                library = self._library_of(block_id)
                if library is not None:
                    library.block_ids.remove(block_id)
                del self.definitions[block_id]
            self.instances.clear()
            self._reset_categories()

        for category in categories:
            self.categories[category.id] = category

        with log_timing(logger, "block library import", library=library_id) as info:
            for block in blocks:
                if block.id in self.definitions:
                    if not merge:
                        raise ValueError(f"Duplicate block id in library data: {block.id}")
                    block.id = new_id("block")
                self.add_block_definition(block, library_id)
            info["blocks"] = len(blocks)

        logger.info("Imported %d blocks into library %s (merge=%s)",
                    len(blocks), library_id, merge)
        return len(blocks)

    def get_library_stats(self) -> Dict[str, Any]:
        category_counts: Dict[str, int] = {}
        for block in self.definitions.values():
            category_counts[block.category] = category_counts.get(block.category, 0) + 1
        return {
            "total_libraries": len(self.libraries),
            "total_blocks": len(self.definitions),
            "total_instances": len(self.instances),
            "exploded_instances": sum(1 for i in self.instances.values() if i.exploded),
            "category_counts": category_counts,
        }

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_change_listener(self, listener: BlockListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_change_listener(self, listener: BlockListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, event: BlockChangeEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Block change listener %r failed on %s",
                                 listener, event.type.value)
