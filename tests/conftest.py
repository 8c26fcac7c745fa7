"""
Pytest configuration and shared fixtures for cad_drawing tests.

Fixtures:
- document: empty drawing
- sample_document: drawing with one entity of each common kind
- hit_engine / hatch_engine / dimension_engine / block_manager
- tmp_output_dir: scratch directory for exported files
"""

import logging
import math
from pathlib import Path

import pytest

from cad_drawing.blocks import BlockManager
from cad_drawing.drawing.dimensions import AssociativeDimensionEngine
from cad_drawing.drawing.hatching import HatchEngine
from cad_drawing.geometry import Point
from cad_drawing.logging_config import PACKAGE_LOGGER
from cad_drawing.model import (
    ArcEntity,
    CircleEntity,
    Layer,
    LinearDimension,
    LineEntity,
    PolylineEntity,
    RectangleEntity,
    TextAnnotation,
    TextEntity,
)
from cad_drawing.model.document import DrawingDocument
from cad_drawing.selection import HitTestEngine


# ============================================================================
# Logging isolation
# ============================================================================

@pytest.fixture(autouse=True)
def reset_package_logger():
    """Undo setup_logging() side effects so caplog keeps working."""
    yield
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.handlers.clear()
    logger.filters.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


# ============================================================================
# Documents
# ============================================================================

@pytest.fixture
def document() -> DrawingDocument:
    """Empty drawing holding only the default layer."""
    return DrawingDocument()


@pytest.fixture
def sample_document() -> DrawingDocument:
    """Drawing with a line, circle, rectangle, closed polyline, text and dimension.

    Entity ids are fixed so tests can refer to them by name.
    """
    doc = DrawingDocument()
    doc.add_layer(Layer(id="annotations", name="ANNOT", order=1))

    doc.add_entity(LineEntity(id="line", start=Point(0, 0), end=Point(100, 0)))
    doc.add_entity(CircleEntity(id="circle", center=Point(200, 200), radius=25))
    doc.add_entity(RectangleEntity(id="rect", position=Point(300, 0), width=40, height=20))
    doc.add_entity(PolylineEntity(id="triangle", closed=True, points=[
        Point(0, 300), Point(60, 300), Point(30, 350),
    ]))
    doc.add_entity(ArcEntity(id="arc", center=Point(500, 500), radius=10,
                             start_angle=0.0, end_angle=math.pi / 2))
    doc.add_entity(TextEntity(id="label", position=Point(400, 400), content="NOTE"))
    doc.add_dimension(LinearDimension(id="dim", start=Point(0, 0), end=Point(100, 0),
                                      offset=10, text="100.00", layer="annotations"))
    doc.add_annotation(TextAnnotation(id="note", position=Point(-100, -100),
                                      content="See detail A", layer="annotations"))
    return doc


# ============================================================================
# Engines
# ============================================================================

@pytest.fixture
def hit_engine(sample_document: DrawingDocument) -> HitTestEngine:
    return HitTestEngine(sample_document)


@pytest.fixture
def hatch_engine() -> HatchEngine:
    return HatchEngine()


@pytest.fixture
def dimension_engine(document: DrawingDocument) -> AssociativeDimensionEngine:
    """Engine attached to the empty ``document`` fixture."""
    engine = AssociativeDimensionEngine(document)
    yield engine
    engine.detach()


@pytest.fixture
def block_manager() -> BlockManager:
    """Manager pre-loaded with the standard symbols."""
    return BlockManager()


@pytest.fixture
def empty_block_manager() -> BlockManager:
    return BlockManager(load_standard_library=False)


# ============================================================================
# Filesystem
# ============================================================================

@pytest.fixture
def tmp_output_dir(tmp_path: Path) -> Path:
    """Directory for exported drawings."""
    out = tmp_path / "output"
    out.mkdir()
    return out

