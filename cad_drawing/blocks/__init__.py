"""Reusable block definitions, their placed instances and the block library manager."""

from cad_drawing.blocks.library import BlockManager, place_template_entity
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
    SortKey,
    StandardBlockCategory,
    block_bounding_box,
    standard_block_templates,
)

__all__ = [
    "DEFAULT_BLOCK_CATEGORIES",
    "BlockAttribute",
    "BlockCategory",
    "BlockChangeEvent",
    "BlockChangeType",
    "BlockDefinition",
    "BlockInstance",
    "BlockLibrary",
    "BlockManager",
    "BlockSearchCriteria",
    "SortKey",
    "StandardBlockCategory",
    "block_bounding_box",
    "place_template_entity",
    "standard_block_templates",
]
