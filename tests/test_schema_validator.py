import json

import pytest
from pydantic import ValidationError as PydanticValidationError

from core.schema_validator import GraphSchema
from models.schema_models import PropertyType, SchemaDefinition


def _messages(errors):
    return [(e.field, e.message) for e in errors]


class TestLabels:
    def test_label_lookup(self, schema):
        assert schema.get_vertex_labels() == ["Person", "Company"]
        assert schema.get_edge_labels() == ["KNOWS", "WORKS_AT"]
        assert schema.has_vertex_label("Person")
        assert not schema.has_edge_label("Person")
        assert schema.edge_label("WORKS_AT").from_label == "Person"
        assert schema.edge_label("WORKS_AT").to_label == "Company"

    def test_identifier_defaults_to_id(self, schema):
        assert schema.identifier_for("Person") == "id"
        assert schema.identifier_for("Unknown") == "id"

    def test_writable_properties(self, schema):
        assert schema.writable_properties("Person") == ["id", "name", "age"]
        assert schema.writable_properties("WORKS_AT") == ["role"]
        assert schema.writable_properties("Nope") == []

    def test_custom_identifier_comes_first(self):
        schema = GraphSchema.from_dict(
            {"vertices": {"Product": {"identifier": "sku", "properties": {"name": {"type": "string"}}}}}
        )
        assert schema.writable_properties("Product") == ["sku", "name"]


class TestVertexValidation:
    def test_valid_record(self, schema):
        assert schema.validate("Person", {"id": "p1", "name": "Alice", "age": 30}) == []

    def test_missing_and_unknown(self, schema):
        errors = schema.validate("Person", {"id": "p1", "nickname": "Al"})
        assert _messages(errors) == [("name", "Missing required property"), ("nickname", "Unknown property: nickname")]

    def test_unknown_properties_allowed_when_configured(self, schema):
        lenient = GraphSchema(schema.definition, allow_unknown_properties=True)
        assert lenient.validate("Person", {"id": "p1", "name": "A", "nickname": "Al"}) == []

    def test_type_and_null_checks(self, schema):
        assert _messages(schema.validate("Person", {"id": "p1", "name": None})) == [
            ("name", "Property cannot be null")
        ]
        assert schema.validate("Person", {"id": "p1", "name": "A", "age": None}) == []
        assert _messages(schema.validate("Person", {"id": "p1", "name": "A", "age": 1.5})) == [
            ("age", "Invalid type: expected integer, got number")
        ]
        assert _messages(schema.validate("Person", {"id": "p1", "name": "A", "age": True})) == [
            ("age", "Invalid type: expected integer, got boolean")
        ]

    def test_non_finite_numbers_rejected(self, schema):
        errors = schema.validate("Person", {"id": "p1", "name": "A", "age": float("inf")})
        assert _messages(errors) == [("age", "Property must be a finite number")]

    def test_number_minimum(self, schema):
        errors = schema.validate("Person", {"id": "p1", "name": "A", "age": -1})
        assert _messages(errors) == [("age", "Number must be at least 0.0")]

    def test_record_must_be_object(self, schema):
        assert _messages(schema.validate("Person", ["p1"])) == [("<record>", "Vertex data must be an object")]

    def test_unknown_label(self, schema):
        assert _messages(schema.validate("Robot", {})) == [("<label>", "Unknown label: Robot")]


class TestEdgeValidation:
    def test_endpoints_required(self, schema):
        errors = schema.validate("KNOWS", {"since": 2020})
        assert _messages(errors) == [
            ("from", "Edge endpoint 'from' is required"),
            ("to", "Edge endpoint 'to' is required"),
        ]

    def test_endpoints_are_not_properties(self, schema):
        assert schema.validate("WORKS_AT", {"from": "p1", "to": "c1", "role": "cto"}) == []


class TestConstraints:
    @pytest.fixture
    def rich_schema(self):
        return GraphSchema.from_dict(
            {
                "vertices": {
                    "Item": {
                        "properties": {
                            "code": {"type": "string", "stringConstraints": {"pattern": "^[A-Z]{3}$"}},
                            "status": {"type": "string", "stringConstraints": {"enum": ["new", "used"]}},
                            "price": {
                                "type": "number",
                                "numberConstraints": {"minimum": 0, "exclusiveMinimum": True, "multipleOf": 0.5},
                            },
                            "tags": {
                                "type": "array",
                                "arrayConstraints": {"maxItems": 2, "uniqueItems": True, "items": {"type": "string"}},
                            },
                            "dims": {
                                "type": "object",
                                "objectConstraints": {
                                    "required": ["w"],
                                    "properties": {"w": {"type": "number"}},
                                    "additionalProperties": False,
                                },
                            },
                            "when": {"type": "date", "nullable": True},
                        }
                    }
                }
            }
        )

    def test_valid(self, rich_schema):
        record = {
            "id": "i1",
            "code": "ABC",
            "status": "new",
            "price": 9.5,
            "tags": ["a"],
            "dims": {"w": 1},
            "when": "2024-05-01",
        }
        assert rich_schema.validate("Item", record) == []

    def test_violations(self, rich_schema):
        record = {
            "code": "abcd",
            "status": "broken",
            "price": 0,
            "tags": ["a", "a", 3],
            "dims": {"h": 2},
            "when": "yesterday",
        }
        messages = _messages(rich_schema.validate("Item", record))

        assert ("code", "String does not match pattern: ^[A-Z]{3}$") in messages
        assert ("status", "Value must be one of: new, used") in messages
        assert ("price", "Number must be greater than 0.0") in messages
        assert ("tags", "Array must have at most 2 items") in messages
        assert ("tags", "Array items must be unique") in messages
        assert ("tags[2]", "Invalid type: expected string, got number") in messages
        assert ("dims.w", "Missing required property") in messages
        assert ("dims.h", "Unknown property: h") in messages
        assert ("when", "Invalid type: expected date, got string") in messages


class TestSchemaDefinition:
    def test_edges_must_reference_known_vertices(self):
        with pytest.raises(PydanticValidationError):
            SchemaDefinition.model_validate({"edges": {"OWNS": {"fromVertex": "Ghost", "toVertex": "Ghost"}}})

    def test_snake_case_names_accepted(self):
        definition = SchemaDefinition.model_validate(
            {"vertices": {"A": {}}, "edges": {"R": {"from_vertex": {"label": "A"}, "to_vertex": "A"}}}
        )
        assert definition.edges["R"].from_label == "A"

    def test_property_type_list(self):
        definition = SchemaDefinition.model_validate(
            {"vertices": {"A": {"properties": {"v": {"type": ["string", "number"]}}}}}
        )
        assert definition.vertices["A"].properties["v"].types == [PropertyType.STRING, PropertyType.NUMBER]

    def test_from_file(self, tmp_path):
        path = tmp_path / "schema.yaml"
        path.write_text("vertices:\n  Person:\n    properties:\n      name: {type: string}\n", encoding="utf-8")

        schema = GraphSchema.from_file(path)

        assert schema.get_vertex_labels() == ["Person"]

    def test_from_json_file(self, tmp_path):
        path = tmp_path / "schema.json"
        path.write_text(json.dumps({"vertices": {"Person": {}}}), encoding="utf-8")

        assert GraphSchema.from_file(path).has_vertex_label("Person")
