# data_access/cypher_builders/parts.py
"""
Renderable clause units. A query is an ordered list of parts joined by newlines.

Every part exposes `render()` and `parameters()`; only `ReturnPart` (group-by keys)
and `OrderByPart` (ordering items) change after construction.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any

from core.exceptions import FieldError, ValidationError
from data_access.cypher_builders.patterns import EdgePattern, VertexPattern, check_identifier

_AS_RE = re.compile(r"\s+AS\s+([A-Za-z_][A-Za-z0-9_]*)\s*$", re.IGNORECASE)
_BARE_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_PROPERTY_RE = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)\.([A-Za-z_][A-Za-z0-9_]*)$")


class PartKind(str, Enum):
    MATCH = "MATCH"
    WHERE = "WHERE"
    RETURN = "RETURN"
    ORDER_BY = "ORDER BY"
    SKIP = "SKIP"
    LIMIT = "LIMIT"
    WITH = "WITH"
    UNWIND = "UNWIND"


class SortOrder(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


def output_name(expression: str, position: int) -> str:
    """Column name a projection item produces (``x AS y`` -> ``y``, ``n.name`` -> ``n_name``)."""
    text = expression.strip()
    match = _AS_RE.search(text)
    if match:
        return match.group(1)
    if _BARE_RE.match(text):
        return text
    match = _PROPERTY_RE.match(text)
    if match:
        return f"{match.group(1)}_{match.group(2)}"
    return f"col{position}"


def _require_items(kind: PartKind, items: tuple[str, ...] | list[str]) -> list[str]:
    cleaned = [item.strip() for item in items if item and item.strip()]
    if not cleaned:
        raise ValidationError(f"{kind.value} needs at least one expression")
    return cleaned


class QueryPart:
    kind: PartKind

    def render(self) -> str:
        raise NotImplementedError

    def parameters(self) -> dict[str, Any]:
        return {}


class MatchPart(QueryPart):
    kind = PartKind.MATCH

    def __init__(self, patterns: list[VertexPattern | EdgePattern] | None = None, optional: bool = False):
        self.patterns: list[VertexPattern | EdgePattern] = list(patterns or [])
        self.optional = optional

    def add_pattern(self, pattern: VertexPattern | EdgePattern) -> None:
        self.patterns.append(pattern)

    def render(self) -> str:
        if not self.patterns:
            return ""
        keyword = "OPTIONAL MATCH" if self.optional else "MATCH"
        return f"{keyword} {', '.join(p.render() for p in self.patterns)}"

    def parameters(self) -> dict[str, Any]:
        params: dict[str, Any] = {}
        for pattern in self.patterns:
            params.update(pattern.parameters())
        return params


class WherePart(QueryPart):
    kind = PartKind.WHERE

    def __init__(self, condition: str, params: dict[str, Any] | None = None):
        if not condition or not condition.strip():
            raise ValidationError("WHERE condition cannot be empty")
        self.condition = condition.strip()
        self.params = dict(params or {})
        for name in self.params:
            check_identifier(name, "parameter name")

    def combine(self, other: WherePart) -> WherePart:
        """Return one WHERE holding both conditions joined by AND."""
        clash = {
            name for name in other.params if name in self.params and self.params[name] != other.params[name]
        }
        if clash:
            raise ValidationError(
                "conflicting parameter values",
                errors=[FieldError(field=name, message="bound twice with different values") for name in sorted(clash)],
            )
        merged = WherePart(f"({self.condition}) AND ({other.condition})", {**self.params, **other.params})
        return merged

    def render(self) -> str:
        return f"WHERE {self.condition}"

    def parameters(self) -> dict[str, Any]:
        return dict(self.params)


class ReturnPart(QueryPart):
    """RETURN projection.

    Grouping in Cypher is implicit: every non-aggregate item is a grouping key.
    `add_group_by` therefore appends keys that are not already projected.
    """

    kind = PartKind.RETURN

    def __init__(self, items: tuple[str, ...] | list[str], distinct: bool = False):
        self.items = _require_items(self.kind, items)
        self.distinct = distinct
        self.group_by: list[str] = []

    def add_group_by(self, expressions: tuple[str, ...] | list[str]) -> None:
        for expression in _require_items(self.kind, expressions):
            if expression not in self.items and expression not in self.group_by:
                self.group_by.append(expression)

    def projected(self) -> list[str]:
        return self.group_by + self.items

    def columns(self) -> list[str]:
        names: list[str] = []
        for position, item in enumerate(self.projected()):
            name = output_name(item, position)
            while name in names:
                name = f"{name}_{position}"
            names.append(name)
        return names

    def render(self) -> str:
        distinct = "DISTINCT " if self.distinct else ""
        return f"RETURN {distinct}{', '.join(self.projected())}"


class OrderByPart(QueryPart):
    kind = PartKind.ORDER_BY

    def __init__(self, items: list[tuple[str, SortOrder]] | None = None):
        self.items: list[tuple[str, SortOrder]] = list(items or [])

    def add_item(self, expression: str, direction: SortOrder | str = SortOrder.ASC) -> None:
        if not expression or not expression.strip():
            raise ValidationError("ORDER BY expression cannot be empty")
        try:
            order = SortOrder(direction.upper() if isinstance(direction, str) else direction)
        except ValueError as e:
            raise ValidationError(f"invalid sort direction {direction!r}") from e
        self.items.append((expression.strip(), order))

    def render(self) -> str:
        if not self.items:
            return ""
        return "ORDER BY " + ", ".join(f"{expr} {order.value}" for expr, order in self.items)


class _CountPart(QueryPart):
    def __init__(self, count: int):
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            raise ValidationError(
                f"{self.kind.value} needs a non-negative integer",
                errors=[FieldError(field="count", message="must be an integer >= 0", value=count)],
            )
        self.count = count

    def render(self) -> str:
        return f"{self.kind.value} {self.count}"


class SkipPart(_CountPart):
    kind = PartKind.SKIP


class LimitPart(_CountPart):
    kind = PartKind.LIMIT


class WithPart(QueryPart):
    """WITH projection. ``carry`` names extra variables kept in scope at render time."""

    kind = PartKind.WITH

    def __init__(self, items: tuple[str, ...] | list[str], distinct: bool = False):
        self.items = _require_items(self.kind, items)
        self.distinct = distinct

    def output_names(self) -> list[str]:
        return [output_name(item, i) for i, item in enumerate(self.items)]

    def render(self, carry: str | None = None) -> str:
        distinct = "DISTINCT " if self.distinct else ""
        items = list(self.items)
        if carry and carry not in items:
            items.append(carry)
        return f"WITH {distinct}{', '.join(items)}"


class UnwindPart(QueryPart):
    kind = PartKind.UNWIND

    def __init__(self, expression: str, alias: str):
        if not expression or not expression.strip():
            raise ValidationError("UNWIND expression cannot be empty")
        self.expression = expression.strip()
        self.alias = check_identifier(alias, "alias")

    def render(self) -> str:
        return f"UNWIND {self.expression} AS {self.alias}"
