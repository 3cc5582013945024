# data_access/cypher_builders/patterns.py
"""
Vertex and edge pattern value objects used inside MATCH parts.

Property constraints never appear as literals in query text: each renders as a
``$<prefix>_<property>`` reference, and the value travels in the parameter map.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from core.exceptions import FieldError, ValidationError

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def check_identifier(value: str, kind: str) -> str:
    """Return ``value`` if it is a safe Cypher identifier, else raise `ValidationError`."""
    if not isinstance(value, str) or not IDENTIFIER_RE.match(value):
        raise ValidationError(
            f"invalid {kind} {value!r}",
            errors=[FieldError(field=kind, message="must match [A-Za-z_][A-Za-z0-9_]*", value=value)],
        )
    return value


def check_constraint_values(alias: str, properties: dict[str, Any]) -> None:
    """Reject values an inline property map cannot express.

    Cypher has no way to match "property is null" inside a pattern map, so None
    and NaN are refused before any query text exists.
    """
    errors: list[FieldError] = []
    for key, value in properties.items():
        check_identifier(key, "property name")
        if value is None or (isinstance(value, float) and math.isnan(value)):
            errors.append(
                FieldError(
                    field=key,
                    message=(
                        f"Invalid property value for '{key}': {value}. Inline constraints cannot "
                        f"express null or NaN; to match a missing property use "
                        f"where('NOT exists({alias}.{key})')."
                    ),
                    value=value,
                )
            )
    if errors:
        raise ValidationError(f"invalid constraint on '{alias}'", errors=errors)


class Direction(str, Enum):
    OUTGOING = "OUTGOING"
    INCOMING = "INCOMING"
    BOTH = "BOTH"


@dataclass
class VertexPattern:
    label: str
    alias: str
    constraints: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        check_identifier(self.label, "vertex label")
        check_identifier(self.alias, "alias")
        check_constraint_values(self.alias, self.constraints)

    @property
    def param_prefix(self) -> str:
        return self.alias

    def add_constraints(self, properties: dict[str, Any]) -> None:
        check_constraint_values(self.alias, properties)
        self.constraints.update(properties)

    def parameters(self) -> dict[str, Any]:
        return {f"{self.param_prefix}_{key}": value for key, value in self.constraints.items()}

    def render(self) -> str:
        return f"({self.alias}:{self.label}{_render_map(self.param_prefix, self.constraints)})"


@dataclass
class EdgePattern:
    """An edge between two aliases bound by earlier vertex patterns."""

    label: str
    source_alias: str
    target_alias: str
    alias: str | None = None
    direction: Direction = Direction.OUTGOING
    constraints: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        check_identifier(self.label, "edge label")
        check_identifier(self.source_alias, "alias")
        check_identifier(self.target_alias, "alias")
        if self.alias is not None:
            check_identifier(self.alias, "alias")
        check_constraint_values(self.alias or self.param_prefix, self.constraints)

    @property
    def param_prefix(self) -> str:
        return self.alias or f"{self.source_alias}_{self.label.lower()}_{self.target_alias}"

    def add_constraints(self, properties: dict[str, Any]) -> None:
        check_constraint_values(self.alias or self.param_prefix, properties)
        self.constraints.update(properties)

    def parameters(self) -> dict[str, Any]:
        return {f"{self.param_prefix}_{key}": value for key, value in self.constraints.items()}

    def render(self) -> str:
        body = f"[{self.alias or ''}:{self.label}{_render_map(self.param_prefix, self.constraints)}]"
        if self.direction is Direction.OUTGOING:
            return f"({self.source_alias})-{body}->({self.target_alias})"
        if self.direction is Direction.INCOMING:
            return f"({self.source_alias})<-{body}-({self.target_alias})"
        return f"({self.source_alias})-{body}-({self.target_alias})"


def _render_map(prefix: str, constraints: dict[str, Any]) -> str:
    if not constraints:
        return ""
    items = ", ".join(f"{key}: ${prefix}_{key}" for key in constraints)
    return f" {{{items}}}"
