"""
Unit tests for cad_drawing.blocks.

Tests:
- Standard library contents and categories
- Block definitions: creation, bounding box, update, delete
- Block instances: placement transform, attributes, explode
- Search and sorting
- Library import/export
- Change listeners
"""

import json
import math

import pytest

from cad_drawing.blocks import (
    BlockAttribute,
    BlockChangeType,
    BlockManager,
    BlockSearchCriteria,
    SortKey,
    block_bounding_box,
    standard_block_templates,
)
from cad_drawing.errors import InvalidStateError, NotFoundError
from cad_drawing.geometry import Bounds, Point
from cad_drawing.model import (
    ArcEntity,
    CircleEntity,
    EllipseEntity,
    LinearDimension,
    LineEntity,
    PolylineEntity,
    RectangleEntity,
    TextEntity,
)


@pytest.fixture
def circle_block(empty_block_manager):
    """Definition holding one circle of radius 5 at the origin."""
    return empty_block_manager.create_block_definition(
        "Dot", [CircleEntity(center=Point(0, 0), radius=5)])


class TestStandardLibrary:
    """Tests for the built-in blocks and categories."""

    def test_standard_blocks_loaded(self, block_manager):
        """Test the default library holds the five built-in symbols."""
        library = block_manager.get_library("default")
        assert library.is_default
        assert library.block_ids == ["bearing-ball", "resistor", "door-single",
                                     "section-marker", "bolt-hex"]

    def test_default_categories(self, block_manager):
        """Test the nine default categories in order."""
        categories = block_manager.get_all_categories()
        assert [c.id for c in categories][:3] == ["mechanical", "electrical", "architectural"]
        assert len(categories) == 9
        assert categories[-1].id == "custom"

    def test_empty_manager(self, empty_block_manager):
        """Test the standard symbols can be skipped."""
        assert empty_block_manager.get_all_block_definitions() == []
        assert len(empty_block_manager.get_all_categories()) == 9

    def test_resistor_bounding_box(self, block_manager):
        """Test the resistor box covers its leads."""
        resistor = block_manager.get_block_definition("resistor")
        assert resistor.bounding_box == Bounds(-25, -5, 25, 5)

    def test_bolt_hexagon(self):
        """Test the hex bolt outline is a closed six-vertex polyline."""
        bolt = next(t for t in standard_block_templates() if t.id == "bolt-hex")
        hexagon = bolt.entities[1]
        assert isinstance(hexagon, PolylineEntity)
        assert hexagon.closed
        assert len(hexagon.points) == 6
        assert hexagon.points[0].x == pytest.approx(6.0)

    def test_door_arc_is_quarter_turn(self, block_manager):
        """Test door swing arc sweeps 90°."""
        door = block_manager.get_block_definition("door-single")
        arc = door.entities[1]
        assert isinstance(arc, ArcEntity)
        assert arc.end_angle - arc.start_angle == pytest.approx(math.pi / 2)

    def test_templates_are_fresh(self):
        """Test each call returns new records."""
        assert standard_block_templates()[0].entities[0] is not \
            standard_block_templates()[0].entities[0]


class TestBlockDefinitions:
    """Tests for definition management."""

    def test_create_copies_entities(self, empty_block_manager):
        """Test template entities get fresh ids."""
        line = LineEntity(id="source", start=Point(0, 0), end=Point(10, 0))
        block_id = empty_block_manager.create_block_definition("Bar", [line])
        definition = empty_block_manager.get_block_definition(block_id)

        assert definition.entities[0].id != "source"
        assert definition.entities[0].end == Point(10, 0)
        assert line.id == "source"

    def test_dimension_not_allowed(self, empty_block_manager):
        """Test dimensions cannot be block content."""
        with pytest.raises(TypeError):
            empty_block_manager.create_block_definition("Bad", [LinearDimension()])

    def test_bounding_box_counts_supported_types(self):
        """Test only lines, circles and rectangles extend the box."""
        box = block_bounding_box([
            CircleEntity(center=Point(10, 10), radius=2),
            TextEntity(position=Point(100, 100), content="far away"),
        ])
        assert box == Bounds(0, 0, 12, 12)

    def test_empty_bounding_box(self):
        """Test an empty block has a zero box."""
        assert block_bounding_box([]) == Bounds(0, 0, 0, 0)

    def test_duplicate_id(self, block_manager):
        """Test registering an existing id is refused."""
        definition = block_manager.get_block_definition("resistor")
        with pytest.raises(InvalidStateError):
            block_manager.add_block_definition(definition)

    def test_read_only_library(self, empty_block_manager):
        """Test read-only libraries refuse new blocks."""
        library_id = empty_block_manager.create_library("Vendor", read_only=True)
        with pytest.raises(InvalidStateError):
            empty_block_manager.create_block_definition("X", [LineEntity()],
                                                        library_id=library_id)

    def test_unknown_library(self, empty_block_manager):
        """Test adding to a library that does not exist."""
        with pytest.raises(NotFoundError):
            empty_block_manager.create_block_definition("X", [LineEntity()],
                                                        library_id="nope")

    def test_update_recomputes_box(self, empty_block_manager, circle_block):
        """Test replacing entities refreshes the bounding box."""
        definition = empty_block_manager.update_block_definition(
            circle_block, entities=[LineEntity(start=Point(0, 0), end=Point(30, 40))])
        assert definition.bounding_box == Bounds(0, 0, 30, 40)

    def test_update_unknown_field(self, empty_block_manager, circle_block):
        """Test updates are limited to definition fields."""
        with pytest.raises(ValueError):
            empty_block_manager.update_block_definition(circle_block, colour="red")

    def test_delete_removes_instances(self, empty_block_manager, circle_block):
        """Test deleting a definition drops its instances."""
        instance_id = empty_block_manager.insert_block(circle_block, Point(0, 0))
        assert empty_block_manager.delete_block_definition(circle_block)
        assert empty_block_manager.get_block_instance(instance_id) is None
        assert circle_block not in empty_block_manager.get_library("default").block_ids
        assert not empty_block_manager.delete_block_definition(circle_block)

    def test_custom_block_author(self, empty_block_manager):
        """Test user blocks are attributed to the default author."""
        block_id = empty_block_manager.create_custom_block(
            [LineEntity(end=Point(1, 0))], "Mine", Point(0, 0))
        definition = empty_block_manager.get_block_definition(block_id)
        assert definition.author == "User"
        assert definition.category == "custom"


class TestBlockInstances:
    """Tests for placing and exploding instances."""

    def test_scaled_circle(self, empty_block_manager, circle_block):
        """Test a radius-5 circle at scale 2 placed at (100, 100)."""
        instance_id = empty_block_manager.create_block_instance(
            circle_block, Point(100, 100), scale=(2, 2))
        entities = empty_block_manager.explode_block_instance(instance_id)

        assert len(entities) == 1
        assert entities[0].center == Point(100, 100)
        assert entities[0].radius == 10

    def test_non_uniform_scale_keeps_circles_round(self, empty_block_manager, circle_block):
        """Test circles take the larger scale factor."""
        instance_id = empty_block_manager.create_block_instance(
            circle_block, Point(0, 0), scale=(2, 3))
        assert empty_block_manager.generate_block_entities(instance_id)[0].radius == 15

    def test_insertion_point_subtracted(self, empty_block_manager):
        """Test the definition insertion point maps to the instance position."""
        block_id = empty_block_manager.create_block_definition(
            "Offset", [LineEntity(start=Point(10, 10), end=Point(20, 10))],
            insertion_point=Point(10, 10))
        instance_id = empty_block_manager.insert_block(block_id, Point(0, 0))
        line = empty_block_manager.generate_block_entities(instance_id)[0]
        assert line.start == Point(0, 0)
        assert line.end == Point(10, 0)

    def test_rotation(self, empty_block_manager):
        """Test a quarter turn maps +X onto +Y."""
        block_id = empty_block_manager.create_block_definition(
            "Arm", [LineEntity(start=Point(0, 0), end=Point(10, 0))])
        instance_id = empty_block_manager.insert_block(block_id, Point(5, 5),
                                                       rotation=math.pi / 2)
        line = empty_block_manager.generate_block_entities(instance_id)[0]
        assert line.end.x == pytest.approx(5.0)
        assert line.end.y == pytest.approx(15.0)

    def test_other_entity_kinds(self, empty_block_manager):
        """Test arcs, ellipses, rectangles, text and polylines are placed."""
        block_id = empty_block_manager.create_block_definition("Mixed", [
            ArcEntity(center=Point(0, 0), radius=1, start_angle=0, end_angle=1),
            EllipseEntity(center=Point(0, 0), radius_x=2, radius_y=1),
            RectangleEntity(position=Point(1, 1), width=2, height=3),
            TextEntity(position=Point(0, 1), content="A"),
            PolylineEntity(points=[Point(0, 0), Point(1, 0)]),
        ])
        instance_id = empty_block_manager.create_block_instance(
            block_id, Point(10, 0), scale=(2, 3), rotation=0.5)
        arc, ellipse, rect, text, poly = empty_block_manager.generate_block_entities(instance_id)

        assert arc.radius == 3
        assert arc.start_angle == pytest.approx(0.5)
        assert ellipse.radius_x == 4
        assert ellipse.radius_y == 3
        assert ellipse.rotation == pytest.approx(0.5)
        assert rect.width == 4
        assert rect.height == 9
        assert rect.rotation == pytest.approx(0.5)
        assert text.rotation == pytest.approx(0.5)
        assert poly.points[0] == Point(10, 0)

    def test_placed_entities_get_instance_layer_and_fresh_ids(self, empty_block_manager,
                                                               circle_block):
        """Test generated entities are new records on the instance layer."""
        instance_id = empty_block_manager.create_block_instance(
            circle_block, Point(0, 0), layer="symbols")
        template = empty_block_manager.get_block_definition(circle_block).entities[0]
        first = empty_block_manager.generate_block_entities(instance_id)[0]
        second = empty_block_manager.generate_block_entities(instance_id)[0]

        assert first.layer == "symbols"
        assert len({template.id, first.id, second.id}) == 3

    def test_scalar_scale(self, empty_block_manager, circle_block):
        """Test a single number scales both axes."""
        instance_id = empty_block_manager.create_block_instance(circle_block, Point(0, 0),
                                                                scale=3)
        assert empty_block_manager.get_block_instance(instance_id).scale == (3.0, 3.0)

    def test_attribute_defaults(self, block_manager):
        """Test missing attribute values come from the definition."""
        instance_id = block_manager.create_block_instance(
            "resistor", Point(0, 0), attributes={"REF": "R7"})
        attributes = block_manager.get_block_instance(instance_id).attributes
        assert attributes == {"REF": "R7", "VALUE": "1kΩ"}

    def test_attribute_default_value_preferred(self, empty_block_manager):
        """Test default_value wins over value for new instances."""
        block_id = empty_block_manager.create_block_definition(
            "Tagged", [LineEntity(end=Point(1, 0))],
            attributes=[BlockAttribute("Name", "NAME", value="x", default_value="y")])
        instance_id = empty_block_manager.insert_block(block_id, Point(0, 0))
        assert empty_block_manager.get_block_instance(instance_id).attributes == {"NAME": "y"}

    def test_update_attributes_merges(self, block_manager):
        """Test attribute updates merge into existing values."""
        instance_id = block_manager.insert_block("resistor", Point(0, 0))
        block_manager.update_block_attributes(instance_id, {"VALUE": "10kΩ"})
        attributes = block_manager.get_block_instance(instance_id).attributes
        assert attributes["VALUE"] == "10kΩ"
        assert attributes["REF"] == "R1"

    def test_update_instance_fields(self, empty_block_manager, circle_block):
        """Test placement fields can be changed and others cannot."""
        instance_id = empty_block_manager.insert_block(circle_block, Point(0, 0))
        empty_block_manager.update_block_instance(instance_id, insertion_point=(7, 8))
        assert empty_block_manager.get_block_instance(instance_id).insertion_point == Point(7, 8)
        with pytest.raises(ValueError):
            empty_block_manager.update_block_instance(instance_id, block_definition_id="x")

    def test_unknown_definition(self, empty_block_manager):
        """Test placing an unknown block."""
        with pytest.raises(NotFoundError):
            empty_block_manager.insert_block("nope", Point(0, 0))

    def test_delete_instance(self, empty_block_manager, circle_block):
        """Test deleting an instance."""
        instance_id = empty_block_manager.insert_block(circle_block, Point(0, 0))
        assert empty_block_manager.delete_block_instance(instance_id)
        assert not empty_block_manager.delete_block_instance(instance_id)


class TestExplode:
    """Tests for explode_block_instance."""

    def test_explode_marks_instance(self, empty_block_manager, circle_block):
        """Test exploded instances stop generating geometry."""
        instance_id = empty_block_manager.insert_block(circle_block, Point(0, 0))
        empty_block_manager.explode_block_instance(instance_id)

        instance = empty_block_manager.get_block_instance(instance_id)
        assert instance.exploded
        assert empty_block_manager.generate_block_entities(instance_id) == []
        assert empty_block_manager.usage_count(circle_block) == 0

    def test_explode_twice(self, empty_block_manager, circle_block):
        """Test an instance can only be exploded once."""
        instance_id = empty_block_manager.insert_block(circle_block, Point(0, 0))
        empty_block_manager.explode_block_instance(instance_id)
        with pytest.raises(InvalidStateError):
            empty_block_manager.explode_block_instance(instance_id)

    def test_explode_into_document(self, empty_block_manager, circle_block, document):
        """Test exploded entities can be added to a document."""
        instance_id = empty_block_manager.insert_block(circle_block, Point(50, 50))
        entities = empty_block_manager.explode_block_instance(instance_id, document)

        stored = document.get_entity(entities[0].id)
        assert isinstance(stored, CircleEntity)
        assert stored.center == Point(50, 50)

    def test_explode_unknown(self, empty_block_manager):
        """Test exploding an unknown instance."""
        with pytest.raises(NotFoundError):
            empty_block_manager.explode_block_instance("nope")


class TestSearch:
    """Tests for search_blocks."""

    def test_query_matches_name_description_tags(self, block_manager):
        """Test the free-text query is case-insensitive."""
        ids = {b.id for b in block_manager.search_blocks(BlockSearchCriteria(query="BEAR"))}
        assert ids == {"bearing-ball"}
        ids = {b.id for b in block_manager.search_blocks(BlockSearchCriteria(query="fastener"))}
        assert ids == {"bolt-hex"}

    def test_category_filter(self, block_manager):
        """Test filtering by category."""
        results = block_manager.search_blocks(BlockSearchCriteria(category="electrical"))
        assert [b.id for b in results] == ["resistor"]

    def test_tags_any_of(self, block_manager):
        """Test blocks matching any requested tag are returned."""
        results = block_manager.search_blocks(BlockSearchCriteria(tags=["door", "bolt"]))
        assert {b.id for b in results} == {"door-single", "bolt-hex"}

    def test_has_attributes(self, block_manager):
        """Test filtering by presence of attributes."""
        block_manager.create_block_definition("Plain", [LineEntity(end=Point(1, 0))])
        without = block_manager.search_blocks(BlockSearchCriteria(has_attributes=False))
        assert [b.name for b in without] == ["Plain"]

    def test_sort_by_name_and_limit(self, block_manager):
        """Test sorting by name with a result cap."""
        results = block_manager.search_blocks(BlockSearchCriteria(sort_by=SortKey.NAME, limit=2))
        assert [b.name for b in results] == ["Ball Bearing", "Hex Bolt"]

    def test_sort_by_usage(self, block_manager):
        """Test most used blocks come first."""
        block_manager.insert_block("door-single", Point(0, 0))
        block_manager.insert_block("door-single", Point(1, 0))
        block_manager.insert_block("resistor", Point(0, 0))
        results = block_manager.search_blocks(BlockSearchCriteria(sort_by=SortKey.USAGE))
        assert [b.id for b in results[:2]] == ["door-single", "resistor"]

    def test_blocks_by_category(self, block_manager):
        """Test category lookup."""
        assert [b.id for b in block_manager.get_blocks_by_category("fasteners")] == ["bolt-hex"]

    def test_create_category_appends(self, block_manager):
        """Test new categories sort after the defaults."""
        category_id = block_manager.create_category("Piping")
        assert block_manager.get_all_categories()[-1].id == category_id
        assert block_manager.get_category(category_id).order == 10


class TestImportExport:
    """Tests for export_library/import_library."""

    def test_export_format(self, block_manager):
        """Test the dump holds version, categories and definitions."""
        data = json.loads(block_manager.export_library())
        assert data["version"] == "1.0"
        assert len(data["categories"]) == 9
        assert [b["id"] for b in data["block_definitions"]][:2] == ["bearing-ball", "resistor"]

    def test_round_trip(self, block_manager, empty_block_manager):
        """Test an exported library loads into another manager."""
        count = empty_block_manager.import_library(block_manager.export_library())

        assert count == 5
        resistor = empty_block_manager.get_block_definition("resistor")
        assert resistor.bounding_box == Bounds(-25, -5, 25, 5)
        assert [a.tag for a in resistor.attributes] == ["VALUE", "REF"]
        assert len(resistor.entities) == 3

    def test_replace_clears_existing(self, block_manager):
        """Test a non-merge import replaces definitions and instances."""
        dump = BlockManager(load_standard_library=False)
        dump.create_block_definition("Only", [LineEntity(end=Point(1, 0))])
        block_manager.insert_block("resistor", Point(0, 0))

        block_manager.import_library(dump.export_library())

        assert [b.name for b in block_manager.get_all_block_definitions()] == ["Only"]
        assert block_manager.get_all_block_instances() == []

    def test_merge_renames_conflicts(self, block_manager):
        """Test merged blocks with taken ids get new ids."""
        count = block_manager.import_library(block_manager.export_library(), merge=True)

        assert count == 5
        assert len(block_manager.get_all_block_definitions()) == 10
        names = [b.name for b in block_manager.get_all_block_definitions()]
        assert names.count("Resistor") == 2

    def test_invalid_data(self, block_manager):
        """Test malformed dumps are rejected."""
        with pytest.raises(ValueError, match="Invalid library data format"):
            block_manager.import_library("not json")
        with pytest.raises(ValueError):
            block_manager.import_library(json.dumps({"block_definitions": [{"id": "x"}]}))

    def test_stats(self, block_manager):
        """Test library statistics."""
        instance_id = block_manager.insert_block("resistor", Point(0, 0))
        block_manager.explode_block_instance(instance_id)
        stats = block_manager.get_library_stats()
        assert stats["total_blocks"] == 5
        assert stats["total_instances"] == 1
        assert stats["exploded_instances"] == 1
        assert stats["category_counts"]["electrical"] == 1


class TestListeners:
    """Tests for block change notifications."""

    def test_events_emitted(self, empty_block_manager):
        """Test add, insert and explode events in order."""
        events = []
        empty_block_manager.add_change_listener(events.append)

        block_id = empty_block_manager.create_block_definition("B", [LineEntity(end=Point(1, 0))])
        instance_id = empty_block_manager.insert_block(block_id, Point(0, 0))
        empty_block_manager.explode_block_instance(instance_id)

        assert [e.type for e in events] == [
            BlockChangeType.BLOCK_ADDED,
            BlockChangeType.INSTANCE_CREATED,
            BlockChangeType.INSTANCE_EXPLODED,
        ]
        assert events[1].instance_id == instance_id

    def test_failing_listener_isolated(self, empty_block_manager):
        """Test a raising listener does not break the manager."""
        def broken(event):
            raise RuntimeError("nope")

        empty_block_manager.add_change_listener(broken)
        block_id = empty_block_manager.create_block_definition("B", [LineEntity()])
        assert empty_block_manager.get_block_definition(block_id) is not None
