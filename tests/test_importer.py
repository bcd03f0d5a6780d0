"""
Tests for the JSON importer.

Test Coverage:
    - Empty documents
    - Importing the test data (counts, ordering, inverses, values)
    - Forward references and identifier handling
    - Insert-or-update semantics
    - Error taxonomy with document paths
    - Atomicity of failed imports
"""

import pytest
import json
from datetime import datetime, timezone

from entityjson.core.config import MapperConfig
from entityjson.core.errors import (
    EntityJSONError,
    InvalidRelationshipTarget,
    InvalidScalarFormat,
    MalformedInput,
    UnknownAttribute,
    UnknownEntityType,
    UnknownRelationship,
    UnresolvedReference,
)
from entityjson.mapping.importer import JSONImporter


def dumps(document):
    return json.dumps(document).encode("utf-8")


class TestImportEmpty:
    """Tests for the empty document."""

    def test_import_empty(self, importer, store):
        """Importing [] succeeds and creates nothing."""
        result = importer.import_records(b"[]")
        assert result.success
        assert result.roots == []
        assert result.total == 0
        assert store.count() == 0

    def test_import_empty_text(self, importer, store):
        """Text input is accepted as well as bytes."""
        importer.import_records("  [ ]  ")
        assert store.count() == 0


class TestImportData:
    """Tests against the test data document."""

    def test_counts(self, importer, store, test_data):
        """1 company, 2 departments and 6 employees are created."""
        result = importer.import_records(test_data)
        assert store.count("Company") == 1
        assert store.count("Department") == 2
        assert store.count("Employee") == 6
        assert result.inserted == 9
        assert result.updated == 0

    def test_roots(self, importer, store, test_data):
        """The result lists the top-level entities."""
        result = importer.import_records(test_data)
        assert result.roots == store.fetch_all("Company")

    def test_company_and_inverse(self, importer, store, test_data):
        """Every department points back at the company."""
        importer.import_records(test_data)
        company = store.fetch_all("Company")[0]
        assert store.get_attribute(company, "title") == "Company Name"
        for department in store.fetch_all("Department"):
            assert store.get_relationship(department, "company") is company

    def test_to_many_order(self, importer, store, test_data):
        """To-many relationships keep array order."""
        importer.import_records(test_data)
        company = store.fetch_all("Company")[0]
        departments = store.get_relationship(company, "departments")
        assert store.get_attribute(departments[0], "label") == "D1"
        assert store.get_attribute(departments[-1], "label") == "D2"

        names = [store.get_attribute(e, "name") for e in store.get_relationship(departments[0], "employees")]
        assert names == ["Alice", "Bob", "Carol"]

    def test_attribute_values(self, importer, store, test_data):
        """Scalars are coerced to their kinds; absent attributes keep defaults."""
        importer.import_records(test_data)
        company = store.lookup_by_identifier("Company", "acme")
        assert store.get_attribute(company, "founded") == datetime(2001, 9, 1, 8, 30, tzinfo=timezone.utc)

        d1 = store.lookup_by_identifier("Department", "d1")
        assert store.get_attribute(d1, "budget") == 125000.5

        bob = store.lookup_by_identifier("Employee", "e2")
        assert store.get_attribute(bob, "level") == 1
        assert store.get_attribute(bob, "active") is True

        carol = store.lookup_by_identifier("Employee", "e3")
        assert store.get_attribute(carol, "active") is False
        assert store.get_attribute(carol, "since") == datetime(2019, 1, 7, 8, tzinfo=timezone.utc)

    def test_references(self, importer, store, test_data):
        """Bare identifiers resolve, including ones defined later."""
        importer.import_records(test_data)
        alice = store.lookup_by_identifier("Employee", "e1")
        bob = store.lookup_by_identifier("Employee", "e2")
        carol = store.lookup_by_identifier("Employee", "e3")
        dave = store.lookup_by_identifier("Employee", "e4")
        assert store.get_relationship(bob, "mentor") is alice
        assert store.get_relationship(carol, "mentor") is dave

    def test_reimport_is_idempotent(self, importer, store, test_data):
        """Importing the same records twice does not duplicate them."""
        importer.import_records(test_data)
        result = importer.import_records(test_data)
        assert result.inserted == 0
        assert result.updated == 9
        assert store.count("Company") == 1
        assert store.count("Department") == 2
        assert store.count("Employee") == 6


class TestIdentity:
    """Tests for identity resolution."""

    def test_update_in_place(self, importer, store):
        """The second import's values win, on the same entity."""
        importer.import_records(dumps([{"entity": "Company", "id": "c1", "attributes": {"title": "First"}}]))
        company = store.lookup_by_identifier("Company", "c1")

        importer.import_records(dumps([{"entity": "Company", "id": "c1", "attributes": {"title": "Second"}}]))

        assert store.count("Company") == 1
        assert store.lookup_by_identifier("Company", "c1") is company
        assert store.get_attribute(company, "title") == "Second"

    def test_update_keeps_absent_attributes(self, importer, store):
        """Attributes missing from an update are left alone."""
        importer.import_records(dumps([{
            "entity": "Company", "id": "c1",
            "attributes": {"title": "ACME", "founded": "2001-09-01T08:30:00Z"},
        }]))
        importer.import_records(dumps([{"entity": "Company", "id": "c1", "attributes": {"title": "ACME 2"}}]))
        company = store.lookup_by_identifier("Company", "c1")
        assert store.get_attribute(company, "founded") is not None

    def test_records_without_id_always_insert(self, importer, store):
        """Records without identifier create a new entity each time."""
        document = dumps([{"entity": "Company", "attributes": {"title": "ACME"}}])
        importer.import_records(document)
        importer.import_records(document)
        assert store.count("Company") == 2
        ids = [c.id for c in store.fetch_all("Company")]
        assert ids[0] != ids[1]

    def test_same_id_twice_in_document(self, importer, store):
        """Repeated records in one document are one entity."""
        importer.import_records(dumps([
            {"entity": "Company", "id": "c1", "attributes": {"title": "A"}},
            {"entity": "Company", "id": "c1", "attributes": {"title": "B"}},
        ]))
        assert store.count("Company") == 1
        assert store.get_attribute(store.lookup_by_identifier("Company", "c1"), "title") == "B"

    def test_forward_reference_record(self, importer, store):
        """A reference record may come before the full record."""
        importer.import_records(dumps([
            {"entity": "Department", "id": "d1",
             "relationships": {"company": {"entity": "Company", "id": "c1"}}},
            {"entity": "Company", "id": "c1", "attributes": {"title": "Later"}},
        ]))
        company = store.lookup_by_identifier("Company", "c1")
        department = store.lookup_by_identifier("Department", "d1")
        assert store.count("Company") == 1
        assert store.get_relationship(department, "company") is company
        assert store.get_attribute(company, "title") == "Later"

    def test_nested_identity_record_inserts(self, importer, store):
        """A nested {entity, id} object for an unknown id creates the entity."""
        result = importer.import_records(dumps([
            {"entity": "Department", "id": "d1", "relationships": {"company": {"entity": "Company", "id": "c9"}}},
        ]))
        company = store.lookup_by_identifier("Company", "c9")
        assert company is not None
        assert result.inserted == 2
        assert store.get_relationship(store.lookup_by_identifier("Department", "d1"), "company") is company
        assert store.get_attribute(company, "title") == ""

    def test_nested_identity_record_reuses(self, importer, store):
        """A nested {entity, id} object for a known id links without changing it."""
        importer.import_records(dumps([{"entity": "Company", "id": "c1", "attributes": {"title": "ACME"}}]))
        company = store.lookup_by_identifier("Company", "c1")

        result = importer.import_records(dumps([
            {"entity": "Department", "id": "d1", "relationships": {"company": {"entity": "Company", "id": "c1"}}},
        ]))

        assert result.inserted == 1
        assert result.updated == 1
        assert store.count("Company") == 1
        assert store.get_attribute(company, "title") == "ACME"
        assert store.get_relationship(company, "departments") == [store.lookup_by_identifier("Department", "d1")]

    def test_reference_to_existing_entity(self, importer, store):
        """Bare identifiers resolve against entities already in the store."""
        importer.import_records(dumps([{"entity": "Employee", "id": "boss", "attributes": {"name": "Boss"}}]))
        importer.import_records(dumps([
            {"entity": "Employee", "id": "new", "relationships": {"mentor": "boss"}},
        ]))
        new = store.lookup_by_identifier("Employee", "new")
        assert store.get_relationship(new, "mentor") is store.lookup_by_identifier("Employee", "boss")

    def test_integer_identifier(self, importer, store):
        """Numeric identifiers are kept as strings."""
        importer.import_records(dumps([{"entity": "Company", "id": 7}]))
        assert store.lookup_by_identifier("Company", "7") is not None

    def test_untyped_nested_record(self, importer, store):
        """Nested records may omit 'entity'."""
        importer.import_records(dumps([
            {"entity": "Company", "relationships": {"departments": [{"attributes": {"label": "D1"}}]}},
        ]))
        assert store.count("Department") == 1

    def test_untyped_nested_record_disallowed(self, registry, store):
        """Untyped nested records can be switched off."""
        importer = JSONImporter(registry, store, MapperConfig(allow_untyped_nested=False))
        with pytest.raises(MalformedInput):
            importer.import_records(dumps([
                {"entity": "Company", "relationships": {"departments": [{"attributes": {"label": "D1"}}]}},
            ]))

    def test_to_one_null_clears(self, importer, store):
        """null under a to-one relationship removes the link."""
        importer.import_records(dumps([
            {"entity": "Department", "id": "d1", "relationships": {"company": {"entity": "Company", "id": "c1", "attributes": {"title": "ACME"}}}},
        ]))
        importer.import_records(dumps([
            {"entity": "Department", "id": "d1", "relationships": {"company": None}},
        ]))
        company = store.lookup_by_identifier("Company", "c1")
        assert store.get_relationship(store.lookup_by_identifier("Department", "d1"), "company") is None
        assert store.get_relationship(company, "departments") == []

    def test_to_many_replaces(self, importer, store):
        """A to-many array replaces the previous content."""
        importer.import_records(dumps([
            {"entity": "Department", "id": "d1", "relationships": {"employees": [
                {"entity": "Employee", "id": "e1", "attributes": {"name": "Alice"}},
                {"entity": "Employee", "id": "e2", "attributes": {"name": "Bob"}},
            ]}},
        ]))
        importer.import_records(dumps([
            {"entity": "Department", "id": "d1", "relationships": {"employees": ["e2", "e1"]}},
        ]))
        department = store.lookup_by_identifier("Department", "d1")
        assert [e.id for e in store.get_relationship(department, "employees")] == ["e2", "e1"]

    def test_null_attribute(self, importer, store):
        """null clears optional attributes."""
        importer.import_records(dumps([
            {"entity": "Employee", "id": "e1", "attributes": {"name": "Bob", "since": None}},
        ]))
        employee = store.lookup_by_identifier("Employee", "e1")
        assert store.get_attribute(employee, "since") is None

    def test_binary_and_uuid(self, importer, store):
        """String-encoded kinds are decoded."""
        importer.import_records(dumps([{
            "entity": "Employee", "id": "e1",
            "attributes": {"photo": "aGVsbG8=", "badge": "12345678-1234-5678-1234-567812345678"},
        }]))
        employee = store.lookup_by_identifier("Employee", "e1")
        assert store.get_attribute(employee, "photo") == b"hello"
        assert str(store.get_attribute(employee, "badge")) == "12345678-1234-5678-1234-567812345678"


class TestImportErrors:
    """Tests for the error taxonomy."""

    @pytest.mark.parametrize("data", [
        b"not json",
        b'{"entity": "Company"}',
        b'"Company"',
        b"[1]",
        b'[{"attributes": {}}]',
        b'[{"entity": "Company", "colour": "red"}]',
        b'[{"entity": "Company", "attributes": []}]',
        b"\xff\xfe",
    ])
    def test_malformed_input(self, importer, store, data):
        """Invalid JSON or record shapes are MalformedInput."""
        with pytest.raises(MalformedInput):
            importer.import_records(data)
        assert store.count() == 0

    def test_unknown_entity_type(self, importer, store):
        """Undeclared types fail and nothing is created."""
        with pytest.raises(UnknownEntityType) as exc:
            importer.import_records(dumps([
                {"entity": "Company", "attributes": {"title": "ACME"}},
                {"entity": "Nope"},
            ]))
        assert exc.value.entity_name == "Nope"
        assert exc.value.path == "/1"
        assert store.count() == 0

    def test_unknown_attribute(self, importer, store):
        """Undeclared attributes fail."""
        with pytest.raises(UnknownAttribute) as exc:
            importer.import_records(dumps([{"entity": "Company", "attributes": {"revenue": 10}}]))
        assert exc.value.key == "revenue"
        assert store.count() == 0

    def test_unknown_relationship(self, importer, store):
        """Undeclared relationships fail."""
        with pytest.raises(UnknownRelationship):
            importer.import_records(dumps([{"entity": "Company", "relationships": {"owners": []}}]))

    def test_invalid_date(self, importer, store):
        """Malformed dates fail."""
        with pytest.raises(InvalidScalarFormat) as exc:
            importer.import_records(dumps([{"entity": "Employee", "attributes": {"since": "May 1st"}}]))
        assert exc.value.key == "since"
        assert store.count() == 0

    @pytest.mark.parametrize("name,value", [
        ("level", "3"),
        ("level", True),
        ("active", "yes"),
        ("name", 42),
    ])
    def test_wrong_json_type(self, importer, store, name, value):
        """JSON types must match the attribute kind."""
        with pytest.raises(InvalidScalarFormat):
            importer.import_records(dumps([{"entity": "Employee", "attributes": {name: value}}]))

    def test_null_on_required_attribute(self, importer):
        """null is only accepted for optional attributes."""
        with pytest.raises(InvalidScalarFormat):
            importer.import_records(dumps([{"entity": "Company", "attributes": {"title": None}}]))

    def test_nested_error_path(self, importer):
        """Errors in nested records report where they happened."""
        with pytest.raises(InvalidScalarFormat) as exc:
            importer.import_records(dumps([{
                "entity": "Company",
                "relationships": {"departments": [
                    {"entity": "Department", "attributes": {"label": "D1"}},
                    {"entity": "Department", "attributes": {"budget": "lots"}},
                ]},
            }]))
        assert exc.value.path == "/0/relationships/departments/1"

    def test_wrong_nested_type(self, importer, store):
        """Nested records must match the relationship target."""
        with pytest.raises(InvalidRelationshipTarget):
            importer.import_records(dumps([
                {"entity": "Company", "relationships": {"departments": [{"entity": "Employee"}]}},
            ]))
        assert store.count() == 0

    def test_wrong_cardinality(self, importer):
        """Arrays go under to-many, objects under to-one."""
        with pytest.raises(InvalidRelationshipTarget):
            importer.import_records(dumps([
                {"entity": "Company", "relationships": {"departments": {"entity": "Department"}}},
            ]))
        with pytest.raises(InvalidRelationshipTarget):
            importer.import_records(dumps([
                {"entity": "Department", "relationships": {"company": [{"entity": "Company"}]}},
            ]))
        with pytest.raises(InvalidRelationshipTarget):
            importer.import_records(dumps([
                {"entity": "Department", "relationships": {"employees": [42]}},
            ]))

    def test_unresolved_reference(self, importer, store):
        """Bare identifiers must name an entity."""
        with pytest.raises(UnresolvedReference):
            importer.import_records(dumps([
                {"entity": "Employee", "relationships": {"mentor": "ghost"}},
            ]))
        assert store.count() == 0

    def test_reference_record_of_wrong_type(self, importer):
        """Reference records are checked against the relationship target."""
        with pytest.raises(InvalidRelationshipTarget):
            importer.import_records(dumps([
                {"entity": "Employee", "id": "e1", "relationships": {"mentor": {"entity": "Company", "id": "e1"}}},
            ]))

    @pytest.mark.parametrize("literal", ["NaN", "Infinity", "-Infinity"])
    def test_non_finite_number(self, importer, store, literal):
        """NaN and Infinity are not JSON numbers."""
        data = b'[{"entity": "Department", "attributes": {"budget": ' + literal.encode() + b"}}]"
        with pytest.raises(InvalidScalarFormat) as exc:
            importer.import_records(data)
        assert exc.value.key == "budget"
        assert store.count() == 0

    def test_deeply_nested_text(self, importer, store):
        """Nesting deeper than the parser can follow is malformed input."""
        with pytest.raises(MalformedInput):
            importer.import_records("[" * 100000 + "]" * 100000)
        assert store.count() == 0

    def test_deeply_nested_records(self, importer, store):
        """Record chains deeper than the importer can follow are rolled back."""
        record = {"entity": "Employee", "attributes": {"name": "last"}}
        for _ in range(20000):
            record = {"entity": "Employee", "relationships": {"mentor": record}}
        with pytest.raises(MalformedInput):
            importer.import_objects([record])
        assert store.count() == 0

    def test_errors_share_a_base(self, importer):
        """Every failure is an EntityJSONError."""
        with pytest.raises(EntityJSONError):
            importer.import_records(b"[{]")


class TestAtomicity:
    """Tests that failed imports leave no trace."""

    def test_failed_update_restores_values(self, importer, store):
        """Attribute changes made before the failure are undone."""
        importer.import_records(dumps([{"entity": "Company", "id": "c1", "attributes": {"title": "Old"}}]))

        with pytest.raises(InvalidScalarFormat):
            importer.import_records(dumps([
                {"entity": "Company", "id": "c1", "attributes": {"title": "New"}},
                {"entity": "Company", "id": "c2", "attributes": {"founded": "garbage"}},
            ]))

        assert store.get_attribute(store.lookup_by_identifier("Company", "c1"), "title") == "Old"
        assert store.lookup_by_identifier("Company", "c2") is None
        assert store.count("Company") == 1

    def test_failed_import_restores_relationships(self, importer, store):
        """Relationship changes made before the failure are undone."""
        importer.import_records(dumps([
            {"entity": "Company", "id": "c1", "relationships": {"departments": [
                {"entity": "Department", "id": "d1", "attributes": {"label": "D1"}},
            ]}},
        ]))

        with pytest.raises(UnresolvedReference):
            importer.import_records(dumps([
                {"entity": "Company", "id": "c2", "relationships": {"departments": ["d1"]}},
                {"entity": "Employee", "relationships": {"mentor": "ghost"}},
            ]))

        c1 = store.lookup_by_identifier("Company", "c1")
        d1 = store.lookup_by_identifier("Department", "d1")
        assert store.get_relationship(d1, "company") is c1
        assert store.get_relationship(c1, "departments") == [d1]
        assert store.count("Company") == 1
        assert store.count("Employee") == 0

    def test_store_usable_after_failure(self, importer, store, test_data):
        """A failed import does not poison the next one."""
        with pytest.raises(UnknownEntityType):
            importer.import_records(dumps([{"entity": "Nope"}]))
        importer.import_records(test_data)
        assert store.count("Employee") == 6
