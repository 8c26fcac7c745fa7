"""
Unit tests for cad_drawing.io.validator module.

Tests:
- Clean drawings validate
- Dangling layer references
- Degenerate geometry detection
- Dimension text that disagrees with its geometry
- Associative relationship and dependency checks
- Orphaned block instances
- Validation report generation
"""

import pytest

from cad_drawing.drawing.dimensions import RelationshipType
from cad_drawing.geometry import Point
from cad_drawing.io.validator import (
    validate_document,
    ValidationIssue,
    ValidationReport,
    ValidationSeverity,
)
from cad_drawing.model import (
    CircleEntity,
    LinearDimension,
    LineEntity,
    PolylineEntity,
    TextAnnotation,
)


class TestValidateDocument:
    """Tests for validate_document on the document alone."""

    def test_empty_document(self, document):
        """Test an empty drawing is valid and has no issues."""
        report = validate_document(document)

        assert report.is_valid
        assert report.issues == []
        assert report.n_layers == 1

    def test_sample_document_valid(self, sample_document):
        """Test the sample drawing is clean."""
        report = validate_document(sample_document)

        assert report.is_valid
        assert report.issues == []
        assert report.n_entities == 6
        assert report.n_dimensions == 1
        assert report.n_annotations == 1
        assert report.n_layers == 2

    def test_dangling_layer(self, document):
        """Test records on unknown layers are reported as warnings."""
        document.add_entity(LineEntity(id="stray", layer="ghost", end=Point(1, 0)))

        report = validate_document(document)

        assert "DANGLING_LAYER" in report.codes()
        assert report.warnings[0].details == ["stray"]
        assert report.is_valid

    def test_degenerate_geometry(self, document):
        """Test zero-length, zero-radius and empty records are flagged."""
        document.add_entity(LineEntity(id="dot", start=Point(1, 1), end=Point(1, 1)))
        document.add_entity(CircleEntity(id="c0", radius=0))
        document.add_entity(PolylineEntity(id="p1", points=[Point(0, 0)]))
        document.add_annotation(TextAnnotation(id="blank", content=""))

        report = validate_document(document)
        issue = next(i for i in report.issues if i.code == "DEGENERATE_GEOMETRY")

        assert issue.severity == ValidationSeverity.WARNING
        assert issue.count == 4
        assert set(issue.details) == {"dot", "c0", "p1", "blank"}
        assert report.is_valid

    def test_details_capped(self, document):
        """Test at most ten ids are kept per issue."""
        for i in range(15):
            document.add_entity(CircleEntity(id=f"c{i}", radius=0))

        issue = validate_document(document).issues[0]

        assert issue.count == 15
        assert len(issue.details) == 10

    def test_dimension_text_mismatch(self, sample_document):
        """Test a dimension showing the wrong value is reported as info."""
        sample_document.add_dimension(LinearDimension(id="wrong", start=Point(0, 0),
                                                      end=Point(30, 0), text="25.00"))

        report = validate_document(sample_document)
        issue = next(i for i in report.issues if i.code == "DIMENSION_TEXT_MISMATCH")

        assert issue.severity == ValidationSeverity.INFO
        assert issue.details == ["wrong"]
        assert report.is_valid

    def test_empty_dimension_text_skipped(self, document):
        """Test dimensions without text are not compared."""
        document.add_dimension(LinearDimension(start=Point(0, 0), end=Point(5, 0), text=""))
        assert validate_document(document).issues == []


class TestDimensionEngineChecks:
    """Tests for checks involving the associative dimension engine."""

    @pytest.fixture
    def bound(self, document, dimension_engine):
        document.add_entity(LineEntity(id="L", start=Point(0, 0), end=Point(10, 0)))
        document.add_dimension(LinearDimension(id="D", start=Point(0, 0), end=Point(10, 0),
                                               text="10.00"))
        return dimension_engine.create_associative_relationship("D", ["L"],
                                                                RelationshipType.LINEAR)

    def test_in_sync(self, document, dimension_engine, bound):
        """Test a freshly bound dimension is clean."""
        report = validate_document(document, dimension_engine)
        assert report.issues == []

    def test_reconciled_edit_stays_clean(self, document, dimension_engine, bound):
        """Test automatic reconciliation leaves nothing to report."""
        document.update_entity("L", end=Point(20, 0))
        report = validate_document(document, dimension_engine)
        assert report.issues == []

    def test_out_of_sync(self, document, dimension_engine, bound):
        """Test a relationship with auto update off drifts and is reported."""
        dimension_engine.set_auto_update(bound, False)
        document.update_entity("L", end=Point(20, 0))

        report = validate_document(document, dimension_engine)

        assert report.codes() == {"RELATIONSHIP_OUT_OF_SYNC"}
        assert report.warnings[0].details == [bound]
        assert report.is_valid

    def test_dangling_relationship(self, document, dimension_engine, bound):
        """Test a relationship to a deleted entity is an error."""
        document.delete_entity("L")

        report = validate_document(document, dimension_engine)

        assert "DANGLING_RELATIONSHIP" in report.codes()
        assert not report.is_valid
        assert report.errors[0].details == [bound]

    def test_associated_dimension_text_not_compared(self, document, dimension_engine):
        """Test associated dimensions are checked through their relationship only."""
        document.add_entity(LineEntity(id="L", start=Point(0, 0), end=Point(10, 0)))
        document.add_dimension(LinearDimension(id="D", start=Point(0, 0), end=Point(99, 0),
                                               text="10.00"))
        dimension_engine.create_associative_relationship("D", ["L"], RelationshipType.LINEAR)

        assert validate_document(document, dimension_engine).issues == []
        assert "DIMENSION_TEXT_MISMATCH" in validate_document(document).codes()

    def test_dependency_cycle(self, document, dimension_engine):
        """Test a cycle forced into the dependency table is reported."""
        for dim_id in ("A", "B", "C"):
            document.add_dimension(LinearDimension(id=dim_id, text=""))
        dimension_engine.create_dimension_dependency("A", ["B"])
        dep_id = dimension_engine.create_dimension_dependency("B", ["C"])
        dimension_engine.get_dependency(dep_id).child_dimension_ids.append("A")

        report = validate_document(document, dimension_engine)
        issue = next(i for i in report.errors if i.code == "DEPENDENCY_CYCLE")

        assert set(issue.details) == {"A", "B"}
        assert not report.is_valid

    def test_acyclic_dependencies_clean(self, document, dimension_engine):
        """Test a diamond of dependencies is not a cycle."""
        for dim_id in ("A", "B", "C", "D"):
            document.add_dimension(LinearDimension(id=dim_id, text=""))
        dimension_engine.create_dimension_dependency("A", ["B", "C"])
        dimension_engine.create_dimension_dependency("B", ["D"])
        dimension_engine.create_dimension_dependency("C", ["D"])

        assert validate_document(document, dimension_engine).issues == []


class TestBlockChecks:
    """Tests for block instance checks."""

    def test_instances_with_definitions(self, document, block_manager):
        """Test live instances are fine."""
        block_manager.insert_block("resistor", Point(0, 0))
        assert validate_document(document, block_manager=block_manager).is_valid

    def test_orphan_instance(self, document, block_manager):
        """Test an instance whose definition vanished is an error."""
        instance_id = block_manager.insert_block("resistor", Point(0, 0))
        del block_manager.definitions["resistor"]

        report = validate_document(document, block_manager=block_manager)

        assert report.codes() == {"ORPHAN_BLOCK_INSTANCE"}
        assert report.errors[0].details == [instance_id]
        assert not report.is_valid


class TestValidationReport:
    """Tests for ValidationReport class."""

    def test_warnings_property(self):
        """Test warnings property filters correctly."""
        report = ValidationReport(
            is_valid=True,
            n_entities=10,
            n_dimensions=2,
            n_annotations=0,
            n_layers=1,
            issues=[
                ValidationIssue("W1", ValidationSeverity.WARNING, "Warning 1"),
                ValidationIssue("E1", ValidationSeverity.ERROR, "Error 1"),
                ValidationIssue("I1", ValidationSeverity.INFO, "Info 1"),
            ],
        )

        assert len(report.warnings) == 1
        assert report.warnings[0].code == "W1"
        assert len(report.errors) == 1
        assert report.errors[0].code == "E1"
        assert report.codes() == {"W1", "E1", "I1"}

    def test_summary_format(self, sample_document):
        """Test summary contains the counts and verdict."""
        summary = validate_document(sample_document).summary()

        assert "Drawing Validation Report" in summary
        assert "Entities: 6" in summary
        assert "Layers: 2" in summary
        assert "VALID" in summary

    def test_summary_lists_issues(self, document):
        """Test summary lists each issue."""
        document.add_entity(CircleEntity(id="c0", radius=0))
        summary = validate_document(document).summary()

        assert "Issues:" in summary
        assert "[WARNING] DEGENERATE_GEOMETRY" in summary


class TestValidationIssue:
    """Tests for ValidationIssue class."""

    def test_str_single(self):
        """Test string representation for single occurrence."""
        issue = ValidationIssue("TEST", ValidationSeverity.WARNING, "Test message")
        assert str(issue) == "[WARNING] TEST: Test message"

    def test_str_multiple(self):
        """Test string representation for multiple occurrences."""
        issue = ValidationIssue("TEST", ValidationSeverity.ERROR, "Test message", count=5)
        assert "(5 occurrences)" in str(issue)
