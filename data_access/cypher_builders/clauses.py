# data_access/cypher_builders/clauses.py
"""
Scoped views returned by `QueryBuilder` methods.

Each clause is bound to one pattern or part and offers only the operations that
make sense there. `done()` always hands back the owning builder.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from core.exceptions import ValidationError
from data_access.cypher_builders.parts import MatchPart, ReturnPart, SortOrder
from data_access.cypher_builders.patterns import Direction, EdgePattern, VertexPattern

if TYPE_CHECKING:
    from data_access.cypher_builders.query_builder import QueryBuilder


def _merge_properties(properties: dict[str, Any] | None, extra: dict[str, Any]) -> dict[str, Any]:
    merged = dict(properties or {})
    merged.update(extra)
    return merged


class VertexMatchClause:
    """Operations on the vertex just matched: constraints and traversals."""

    def __init__(self, builder: QueryBuilder, part: MatchPart, pattern: VertexPattern):
        self._builder = builder
        self._part = part
        self.pattern = pattern

    def constraint(self, properties: dict[str, Any] | None = None, **kwargs: Any) -> VertexMatchClause:
        """Require property values inline, e.g. ``constraint(name="Alice")``.

        Raises:
            ValidationError: If a value is None or NaN.
        """
        self.pattern.add_constraints(_merge_properties(properties, kwargs))
        return self

    def optional(self, flag: bool = True) -> VertexMatchClause:
        self._part.optional = flag
        return self

    def where(self, condition: str, params: dict[str, Any] | None = None) -> VertexMatchClause:
        self._builder.where(condition, params)
        return self

    def _traverse(
        self, edge_label: str, edge_alias: str, other_label: str, other_alias: str, direction: Direction
    ) -> VertexMatchClause:
        other = VertexPattern(label=other_label, alias=other_alias)
        if direction is Direction.INCOMING:
            edge = EdgePattern(label=edge_label, source_alias=other_alias, target_alias=self.pattern.alias, alias=edge_alias)
        else:
            edge = EdgePattern(
                label=edge_label,
                source_alias=self.pattern.alias,
                target_alias=other_alias,
                alias=edge_alias,
                direction=direction,
            )
        self._builder._check_alias(other_alias)
        self._builder._check_alias(edge_alias)
        if edge_alias == other_alias:
            raise ValidationError(f"alias '{edge_alias}' is already bound")
        self._builder._bind_vertex(other)
        self._builder._bind_alias(edge_alias)
        self._part.add_pattern(other)
        self._part.add_pattern(edge)
        return self

    def outgoing(self, edge_label: str, edge_alias: str, target_label: str, target_alias: str) -> VertexMatchClause:
        """Add ``(this)-[edge_alias:edge_label]->(target_alias:target_label)`` to the same MATCH."""
        return self._traverse(edge_label, edge_alias, target_label, target_alias, Direction.OUTGOING)

    def incoming(self, edge_label: str, edge_alias: str, source_label: str, source_alias: str) -> VertexMatchClause:
        """Add ``(source_alias:source_label)-[edge_alias:edge_label]->(this)`` to the same MATCH."""
        return self._traverse(edge_label, edge_alias, source_label, source_alias, Direction.INCOMING)

    def related(self, edge_label: str, edge_alias: str, other_label: str, other_alias: str) -> VertexMatchClause:
        """Add an undirected edge to ``other_alias``."""
        return self._traverse(edge_label, edge_alias, other_label, other_alias, Direction.BOTH)

    def done(self) -> QueryBuilder:
        return self._builder


class EdgeMatchClause:
    """Operations on the edge just matched, plus passthroughs to the builder."""

    def __init__(self, builder: QueryBuilder, part: MatchPart, pattern: EdgePattern):
        self._builder = builder
        self._part = part
        self.pattern = pattern

    def constraint(self, properties: dict[str, Any] | None = None, **kwargs: Any) -> EdgeMatchClause:
        self.pattern.add_constraints(_merge_properties(properties, kwargs))
        return self

    def optional(self, flag: bool = True) -> EdgeMatchClause:
        self._part.optional = flag
        return self

    def where(self, condition: str, params: dict[str, Any] | None = None) -> EdgeMatchClause:
        self._builder.where(condition, params)
        return self

    def return_(self, *expressions: str, distinct: bool = False) -> ReturnClause:
        return self._builder.return_(*expressions, distinct=distinct)

    def order_by(self, expression: str, direction: SortOrder | str = SortOrder.ASC) -> EdgeMatchClause:
        self._builder.order_by(expression, direction)
        return self

    def limit(self, count: int) -> EdgeMatchClause:
        self._builder.limit(count)
        return self

    def skip(self, count: int) -> EdgeMatchClause:
        self._builder.skip(count)
        return self

    def with_(self, *expressions: str, distinct: bool = False) -> EdgeMatchClause:
        self._builder.with_(*expressions, distinct=distinct)
        return self

    def unwind(self, expression: str, alias: str) -> EdgeMatchClause:
        self._builder.unwind(expression, alias)
        return self

    def with_param(self, name: str, value: Any) -> EdgeMatchClause:
        self._builder.with_param(name, value)
        return self

    def to_cypher(self) -> str:
        return self._builder.to_cypher()

    async def execute(self, graph_name: str | None = None, validate: bool = True) -> list[dict[str, Any]]:
        return await self._builder.execute(graph_name=graph_name, validate=validate)

    def done(self) -> QueryBuilder:
        return self._builder


class ReturnClause:
    def __init__(self, builder: QueryBuilder, part: ReturnPart):
        self._builder = builder
        self._part = part

    def group_by(self, *expressions: str) -> QueryBuilder:
        """Project grouping keys alongside the aggregates; Cypher groups by them implicitly."""
        self._part.add_group_by(expressions)
        return self._builder

    def done(self) -> QueryBuilder:
        return self._builder
