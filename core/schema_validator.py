# core/schema_validator.py
"""
Schema validation for graph records.

Implements enforcement of a [`SchemaDefinition`](models/schema_models.py:133), including:
- Label lookup for vertex and edge labels
- Required-property and unknown-property checks
- Type checks and string/number/array/object constraint checks

Failures are returned as lists of `FieldError`; nothing here raises on bad data.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime
from pathlib import Path
from typing import Any

import structlog

from core.exceptions import FieldError
from models.graph_data import EDGE_FROM_FIELD, EDGE_TO_FIELD
from models.schema_models import (
    EdgeLabel,
    PropertyDefinition,
    PropertyType,
    SchemaDefinition,
    VertexLabel,
)

logger = structlog.get_logger(__name__)


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def _is_date_like(value: Any) -> bool:
    if isinstance(value, date | datetime):
        return True
    if isinstance(value, str):
        try:
            datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return False
        return True
    return False


def _value_type(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if _is_number(value):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list | tuple):
        return "array"
    if isinstance(value, dict):
        return "object"
    if isinstance(value, date | datetime):
        return "date"
    return type(value).__name__


_TYPE_CHECKS = {
    PropertyType.STRING: lambda v: isinstance(v, str),
    PropertyType.NUMBER: _is_number,
    PropertyType.INTEGER: lambda v: _is_number(v) and float(v).is_integer(),
    PropertyType.BOOLEAN: lambda v: isinstance(v, bool),
    PropertyType.DATE: _is_date_like,
    PropertyType.DATETIME: _is_date_like,
    PropertyType.OBJECT: lambda v: isinstance(v, dict),
    PropertyType.ARRAY: lambda v: isinstance(v, list | tuple),
    PropertyType.ANY: lambda v: True,
}


class GraphSchema:
    """
    Service for checking labels and records against a schema definition.

    Edge records carry structural ``from``/``to`` fields that reference vertex
    identifiers; they are always required and are not treated as properties.
    """

    def __init__(self, definition: SchemaDefinition, allow_unknown_properties: bool = False):
        self.definition = definition
        self.allow_unknown_properties = allow_unknown_properties

    @classmethod
    def from_dict(cls, data: dict[str, Any], **kwargs: Any) -> GraphSchema:
        return cls(SchemaDefinition.model_validate(data), **kwargs)

    @classmethod
    def from_file(cls, path: str | Path, **kwargs: Any) -> GraphSchema:
        return cls(SchemaDefinition.from_file(path), **kwargs)

    def get_vertex_labels(self) -> list[str]:
        return list(self.definition.vertices)

    def get_edge_labels(self) -> list[str]:
        return list(self.definition.edges)

    def has_vertex_label(self, label: str) -> bool:
        return label in self.definition.vertices

    def has_edge_label(self, label: str) -> bool:
        return label in self.definition.edges

    def vertex_label(self, label: str) -> VertexLabel | None:
        return self.definition.vertices.get(label)

    def edge_label(self, label: str) -> EdgeLabel | None:
        return self.definition.edges.get(label)

    def identifier_for(self, label: str) -> str:
        """Return the identifier property of a vertex label (``id`` when unknown)."""
        vertex = self.definition.vertices.get(label)
        return vertex.identifier if vertex else "id"

    def get_property_definitions(self, label: str) -> dict[str, PropertyDefinition]:
        """Return the declared properties of a vertex or edge label.

        Unknown labels yield an empty mapping.
        """
        if label in self.definition.vertices:
            return dict(self.definition.vertices[label].properties)
        if label in self.definition.edges:
            return dict(self.definition.edges[label].properties)
        return {}

    def writable_properties(self, label: str) -> list[str]:
        """Return the property names a creation query writes for ``label``.

        For vertices the identifier comes first, whether or not it is declared.
        """
        if label in self.definition.vertices:
            vertex = self.definition.vertices[label]
            names = [vertex.identifier]
            names.extend(p for p in vertex.properties if p != vertex.identifier)
            return names
        if label in self.definition.edges:
            return [p for p in self.definition.edges[label].properties if p not in (EDGE_FROM_FIELD, EDGE_TO_FIELD)]
        return []

    def validate(self, label: str, record: Any) -> list[FieldError]:
        """Validate ``record`` against whichever vertex or edge label ``label`` names."""
        if label in self.definition.vertices:
            return self.validate_vertex(label, record)
        if label in self.definition.edges:
            return self.validate_edge(label, record)
        return [FieldError(field="<label>", message=f"Unknown label: {label}", value=label)]

    def validate_vertex(self, label: str, record: Any) -> list[FieldError]:
        vertex = self.definition.vertices.get(label)
        if vertex is None:
            return [FieldError(field="<label>", message=f"Unknown vertex label: {label}", value=label)]
        if not isinstance(record, dict):
            return [FieldError(field="<record>", message="Vertex data must be an object", value=record)]
        return self._validate_record(vertex.properties, vertex.required, record, implicit={vertex.identifier})

    def validate_edge(self, label: str, record: Any) -> list[FieldError]:
        edge = self.definition.edges.get(label)
        if edge is None:
            return [FieldError(field="<label>", message=f"Unknown edge label: {label}", value=label)]
        if not isinstance(record, dict):
            return [FieldError(field="<record>", message="Edge data must be an object", value=record)]

        errors: list[FieldError] = []
        for end in (EDGE_FROM_FIELD, EDGE_TO_FIELD):
            if record.get(end) is None:
                errors.append(FieldError(field=end, message=f"Edge endpoint '{end}' is required"))
        properties = {k: v for k, v in record.items() if k not in (EDGE_FROM_FIELD, EDGE_TO_FIELD)}
        errors.extend(self._validate_record(edge.properties, edge.required, properties, implicit=set()))
        return errors

    def _validate_record(
        self,
        properties: dict[str, PropertyDefinition],
        required: list[str],
        record: dict[str, Any],
        implicit: set[str],
    ) -> list[FieldError]:
        errors: list[FieldError] = []
        for name in required:
            if name in (EDGE_FROM_FIELD, EDGE_TO_FIELD):
                continue
            if name not in record:
                errors.append(FieldError(field=name, message="Missing required property"))

        for name, value in record.items():
            definition = properties.get(name)
            if definition is None:
                if name not in implicit and not self.allow_unknown_properties:
                    errors.append(FieldError(field=name, message=f"Unknown property: {name}", value=value))
                continue
            errors.extend(self.validate_property(name, definition, value))
        return errors

    def validate_property(self, name: str, definition: PropertyDefinition, value: Any) -> list[FieldError]:
        """Check one value against its definition."""
        if value is None:
            if definition.nullable:
                return []
            return [FieldError(field=name, message="Property cannot be null")]

        if isinstance(value, float) and not math.isfinite(value):
            return [FieldError(field=name, message="Property must be a finite number", value=value)]

        types = definition.types
        if not any(_TYPE_CHECKS[t](value) for t in types):
            expected = " | ".join(t.value for t in types)
            return [
                FieldError(
                    field=name,
                    message=f"Invalid type: expected {expected}, got {_value_type(value)}",
                    value=value,
                )
            ]

        errors: list[FieldError] = []
        if definition.string_constraints and isinstance(value, str):
            errors.extend(self._check_string(name, definition, value))
        if definition.number_constraints and _is_number(value):
            errors.extend(self._check_number(name, definition, value))
        if definition.array_constraints and isinstance(value, list | tuple):
            errors.extend(self._check_array(name, definition, list(value)))
        if definition.object_constraints and isinstance(value, dict):
            errors.extend(self._check_object(name, definition, value))
        return errors

    def _check_string(self, name: str, definition: PropertyDefinition, value: str) -> list[FieldError]:
        c = definition.string_constraints
        errors: list[FieldError] = []
        if c.min_length is not None and len(value) < c.min_length:
            errors.append(
                FieldError(
                    field=name,
                    message=f"String is too short ({len(value)} chars), minimum length is {c.min_length}",
                    value=value,
                )
            )
        if c.max_length is not None and len(value) > c.max_length:
            errors.append(
                FieldError(
                    field=name,
                    message=f"String is too long ({len(value)} chars), maximum length is {c.max_length}",
                    value=value,
                )
            )
        if c.pattern is not None and not re.search(c.pattern, value):
            errors.append(FieldError(field=name, message=f"String does not match pattern: {c.pattern}", value=value))
        if c.enum is not None and value not in c.enum:
            errors.append(
                FieldError(field=name, message=f"Value must be one of: {', '.join(c.enum)}", value=value)
            )
        return errors

    def _check_number(self, name: str, definition: PropertyDefinition, value: float) -> list[FieldError]:
        c = definition.number_constraints
        errors: list[FieldError] = []
        if c.minimum is not None:
            too_small = value <= c.minimum if c.exclusive_minimum else value < c.minimum
            if too_small:
                bound = "greater than" if c.exclusive_minimum else "at least"
                errors.append(FieldError(field=name, message=f"Number must be {bound} {c.minimum}", value=value))
        if c.maximum is not None:
            too_large = value >= c.maximum if c.exclusive_maximum else value > c.maximum
            if too_large:
                bound = "less than" if c.exclusive_maximum else "at most"
                errors.append(FieldError(field=name, message=f"Number must be {bound} {c.maximum}", value=value))
        if c.multiple_of:
            quotient = value / c.multiple_of
            if not math.isclose(quotient, round(quotient)):
                errors.append(
                    FieldError(field=name, message=f"Number must be a multiple of {c.multiple_of}", value=value)
                )
        if c.enum is not None and value not in c.enum:
            allowed = ", ".join(str(v) for v in c.enum)
            errors.append(FieldError(field=name, message=f"Value must be one of: {allowed}", value=value))
        return errors

    def _check_array(self, name: str, definition: PropertyDefinition, value: list[Any]) -> list[FieldError]:
        c = definition.array_constraints
        errors: list[FieldError] = []
        if c.min_items is not None and len(value) < c.min_items:
            errors.append(
                FieldError(field=name, message=f"Array must have at least {c.min_items} items", value=value)
            )
        if c.max_items is not None and len(value) > c.max_items:
            errors.append(
                FieldError(field=name, message=f"Array must have at most {c.max_items} items", value=value)
            )
        if c.unique_items:
            seen: list[Any] = []
            for item in value:
                if item in seen:
                    errors.append(FieldError(field=name, message="Array items must be unique", value=value))
                    break
                seen.append(item)
        if c.items is not None:
            for i, item in enumerate(value):
                errors.extend(self.validate_property(f"{name}[{i}]", c.items, item))
        return errors

    def _check_object(self, name: str, definition: PropertyDefinition, value: dict[str, Any]) -> list[FieldError]:
        c = definition.object_constraints
        errors: list[FieldError] = []
        for key in c.required:
            if key not in value:
                errors.append(FieldError(field=f"{name}.{key}", message="Missing required property"))
        for key, item in value.items():
            nested = c.properties.get(key)
            if nested is None:
                if not c.additional_properties:
                    errors.append(FieldError(field=f"{name}.{key}", message=f"Unknown property: {key}", value=item))
                continue
            errors.extend(self.validate_property(f"{name}.{key}", nested, item))
        return errors
