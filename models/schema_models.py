# models/schema_models.py
"""Define the graph schema models consumed by validation, querying and loading.

A schema names every vertex and edge label the client may touch, the properties each
label carries, and (for edges) which vertex labels the endpoints must have. The same
definition drives three things:

- record validation in [`GraphSchema`](core/schema_validator.py:1),
- label/property checks in the query builder, and
- the property list written by the batch loader's creation queries.

Schema documents may use either snake_case keys or the camelCase keys of the JSON
schema format (`fromVertex`, `stringConstraints`, ...); both populate the same fields.
"""

from __future__ import annotations

import re
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from utils.file_io import load_structured_file

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class PropertyType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME = "datetime"
    OBJECT = "object"
    ARRAY = "array"
    ANY = "any"


class _SchemaModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class StringConstraints(_SchemaModel):
    min_length: int | None = None
    max_length: int | None = None
    pattern: str | None = None
    enum: list[str] | None = None
    format: str | None = None


class NumberConstraints(_SchemaModel):
    minimum: float | None = None
    maximum: float | None = None
    exclusive_minimum: bool = False
    exclusive_maximum: bool = False
    multiple_of: float | None = None
    enum: list[float] | None = None


class ArrayConstraints(_SchemaModel):
    min_items: int | None = None
    max_items: int | None = None
    unique_items: bool = False
    items: PropertyDefinition | None = None


class ObjectConstraints(_SchemaModel):
    required: list[str] = Field(default_factory=list)
    properties: dict[str, PropertyDefinition] = Field(default_factory=dict)
    additional_properties: bool = True


class PropertyDefinition(_SchemaModel):
    """Describe one property: its accepted type(s), nullability and value constraints."""

    type: PropertyType | list[PropertyType] = PropertyType.ANY
    description: str | None = None
    default: Any = None
    nullable: bool = False
    string_constraints: StringConstraints | None = None
    number_constraints: NumberConstraints | None = None
    array_constraints: ArrayConstraints | None = None
    object_constraints: ObjectConstraints | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def types(self) -> list[PropertyType]:
        return list(self.type) if isinstance(self.type, list) else [self.type]


class VertexConnectionConstraint(_SchemaModel):
    label: str
    properties: dict[str, Any] = Field(default_factory=dict)


class VertexLabel(_SchemaModel):
    """Describe a vertex label.

    ``identifier`` names the property edge records reference through their
    ``from``/``to`` fields.
    """

    properties: dict[str, PropertyDefinition] = Field(default_factory=dict)
    required: list[str] = Field(default_factory=list)
    identifier: str = "id"
    description: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class EdgeLabel(_SchemaModel):
    """Describe an edge label and the vertex labels its endpoints must carry."""

    properties: dict[str, PropertyDefinition] = Field(default_factory=dict)
    required: list[str] = Field(default_factory=list)
    from_vertex: VertexConnectionConstraint | str
    to_vertex: VertexConnectionConstraint | str
    description: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def from_label(self) -> str:
        return self.from_vertex if isinstance(self.from_vertex, str) else self.from_vertex.label

    @property
    def to_label(self) -> str:
        return self.to_vertex if isinstance(self.to_vertex, str) else self.to_vertex.label


class SchemaDefinition(_SchemaModel):
    """Top-level schema document."""

    version: str | dict[str, Any] = "1.0.0"
    vertices: dict[str, VertexLabel] = Field(default_factory=dict)
    edges: dict[str, EdgeLabel] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def check_names(self) -> SchemaDefinition:
        # Labels and property names end up verbatim in query text.
        problems: list[str] = []
        for kind, labels in (("vertex", self.vertices), ("edge", self.edges)):
            for label, definition in labels.items():
                if not IDENTIFIER_PATTERN.match(label):
                    problems.append(f"{kind} label {label!r} is not a valid identifier")
                for prop in definition.properties:
                    if not IDENTIFIER_PATTERN.match(prop):
                        problems.append(f"property {label}.{prop!r} is not a valid identifier")
        for label, vertex in self.vertices.items():
            if not IDENTIFIER_PATTERN.match(vertex.identifier):
                problems.append(f"identifier of vertex {label!r} is not a valid identifier")
        for label, edge in self.edges.items():
            for end in (edge.from_label, edge.to_label):
                if end not in self.vertices:
                    problems.append(f"edge {label!r} references unknown vertex label {end!r}")
        if problems:
            raise ValueError("; ".join(problems))
        return self

    @classmethod
    def from_file(cls, path: str | Path) -> SchemaDefinition:
        """Load a schema from a ``.json``, ``.yaml`` or ``.yml`` file."""
        return cls.model_validate(load_structured_file(path))


ArrayConstraints.model_rebuild()
ObjectConstraints.model_rebuild()
PropertyDefinition.model_rebuild()
