# data_access/cypher_builders/query_builder.py
"""
Fluent Cypher query builder for Apache AGE.

The builder keeps an ordered list of parts and renders them on demand; rendering is
read-only and repeatable. Values are never written into query text. `execute()` stages
the parameter map as one row of the staging table, prefixes the query with

    WITH <schema>.get('<key>') AS __params

and rewrites every ``$name`` reference to ``__params.name``. The row is removed once
the query has run, whether it succeeded or not.
"""

from __future__ import annotations

import re
import uuid
from typing import Any

import structlog

from core.exceptions import FieldError, GraphClientError, QueryValidationError, ValidationError
from data_access.cypher_builders.clauses import EdgeMatchClause, ReturnClause, VertexMatchClause
from data_access.cypher_builders.parts import (
    LimitPart,
    MatchPart,
    OrderByPart,
    PartKind,
    QueryPart,
    ReturnPart,
    SkipPart,
    SortOrder,
    UnwindPart,
    WherePart,
    WithPart,
)
from data_access.cypher_builders.patterns import Direction, EdgePattern, VertexPattern, check_identifier
from data_access.staging_store import StagingStore

logger = structlog.get_logger(__name__)

PARAMS_ALIAS = "__params"
# Quoted literals match first so a "$" inside a string is never a parameter.
_PARAM_REF_RE = re.compile(r"'(?:[^'\\]|\\.)*'|\"(?:[^\"\\]|\\.)*\"|\$([A-Za-z_][A-Za-z0-9_]*)")

_AFTER_PROJECTION = {PartKind.WITH, PartKind.RETURN}


class QueryBuilder:
    """Compose, validate and execute one Cypher query against an AGE graph.

    Args:
        schema: Optional schema provider used by `validate_query()`. Without one,
            only structural checks run.
        executor: Statement executor; defaults to the shared `age_manager`.
        store: Staging store for parameters; defaults to one on ``executor``.
        graph_name: Graph to query; defaults to the executor's graph.
    """

    def __init__(
        self,
        schema: Any | None = None,
        executor: Any | None = None,
        store: StagingStore | None = None,
        graph_name: str | None = None,
    ):
        if executor is None:
            from core.db_manager import age_manager

            executor = age_manager
        self.schema = schema
        self.executor = executor
        self.store = store or StagingStore(executor)
        self.graph_name = check_identifier(graph_name, "graph name") if graph_name else None
        self.reset()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def reset(self) -> QueryBuilder:
        """Discard parts, aliases and query parameters. Staged values are untouched."""
        self._parts: list[QueryPart] = []
        self._params: dict[str, Any] = {}
        self._vertex_aliases: dict[str, VertexPattern] = {}
        self._aliases: set[str] = set()
        self._scope: list[str] = []
        return self

    @property
    def parts(self) -> list[QueryPart]:
        return list(self._parts)

    def _check_alias(self, alias: str) -> None:
        check_identifier(alias, "alias")
        if alias == PARAMS_ALIAS:
            raise ValidationError(f"alias '{alias}' is reserved")
        if alias in self._aliases:
            raise ValidationError(
                f"alias '{alias}' is already bound",
                errors=[FieldError(field="alias", message="must be unique within one query", value=alias)],
            )

    def _bind_alias(self, alias: str) -> None:
        self._check_alias(alias)
        self._aliases.add(alias)
        self._scope.append(alias)

    def _bind_vertex(self, pattern: VertexPattern) -> None:
        self._bind_alias(pattern.alias)
        self._vertex_aliases[pattern.alias] = pattern

    def _require_vertex_alias(self, alias: str) -> VertexPattern:
        pattern = self._vertex_aliases.get(alias)
        if pattern is None:
            raise ValidationError(
                f"alias '{alias}' is not bound by an earlier vertex match",
                errors=[FieldError(field="alias", message="match the vertex before matching its edges", value=alias)],
            )
        return pattern

    # ------------------------------------------------------------------
    # MATCH
    # ------------------------------------------------------------------

    def match(
        self,
        label_or_source: str,
        alias_or_edge_label: str,
        target_alias: str | None = None,
        edge_alias: str | None = None,
        *,
        optional: bool = False,
        direction: Direction | str = Direction.OUTGOING,
    ) -> VertexMatchClause | EdgeMatchClause:
        """Match a vertex, or an edge between two bound aliases.

        ``match("Person", "p")`` matches a vertex. ``match("p", "KNOWS", "q")``
        matches an edge between the already-bound ``p`` and ``q``.
        """
        if target_alias is not None:
            return self.match_edge(
                label_or_source, alias_or_edge_label, target_alias, edge_alias, optional=optional, direction=direction
            )
        pattern = VertexPattern(label=label_or_source, alias=alias_or_edge_label)
        self._bind_vertex(pattern)
        part = MatchPart([pattern], optional=optional)
        self._parts.append(part)
        return VertexMatchClause(self, part, pattern)

    def match_edge(
        self,
        source_alias: str,
        edge_label: str,
        target_alias: str,
        edge_alias: str | None = None,
        *,
        optional: bool = False,
        direction: Direction | str = Direction.OUTGOING,
    ) -> EdgeMatchClause:
        self._require_vertex_alias(source_alias)
        self._require_vertex_alias(target_alias)
        pattern = EdgePattern(
            label=edge_label,
            source_alias=source_alias,
            target_alias=target_alias,
            alias=edge_alias,
            direction=Direction(direction),
        )
        if edge_alias is not None:
            self._bind_alias(edge_alias)
        part = MatchPart([pattern], optional=optional)
        self._parts.append(part)
        return EdgeMatchClause(self, part, pattern)

    # ------------------------------------------------------------------
    # Clauses
    # ------------------------------------------------------------------

    def where(self, condition: str, params: dict[str, Any] | None = None) -> QueryBuilder:
        """Add a WHERE; consecutive WHERE calls are joined with AND."""
        part = WherePart(condition, params)
        if self._parts and isinstance(self._parts[-1], WherePart):
            self._parts[-1] = self._parts[-1].combine(part)
        else:
            self._parts.append(part)
        return self

    def return_(self, *expressions: str, distinct: bool = False) -> ReturnClause:
        part = ReturnPart(expressions, distinct=distinct)
        self._parts.append(part)
        return ReturnClause(self, part)

    def order_by(self, expression: str, direction: SortOrder | str = SortOrder.ASC) -> QueryBuilder:
        if self._parts and isinstance(self._parts[-1], OrderByPart):
            self._parts[-1].add_item(expression, direction)
        else:
            part = OrderByPart()
            part.add_item(expression, direction)
            self._parts.append(part)
        return self

    def limit(self, count: int) -> QueryBuilder:
        self._parts.append(LimitPart(count))
        return self

    def skip(self, count: int) -> QueryBuilder:
        self._parts.append(SkipPart(count))
        return self

    def with_(self, *expressions: str, distinct: bool = False) -> QueryBuilder:
        part = WithPart(expressions, distinct=distinct)
        self._parts.append(part)
        for name in part.output_names():
            self._aliases.add(name)
        self._scope = part.output_names()
        return self

    def unwind(self, expression: str, alias: str) -> QueryBuilder:
        part = UnwindPart(expression, alias)
        self._bind_alias(alias)
        self._parts.append(part)
        return self

    def with_param(self, name: str, value: Any) -> QueryBuilder:
        """Bind a query parameter referenced as ``$name``."""
        check_identifier(name, "parameter name")
        self._params[name] = value
        return self

    # ------------------------------------------------------------------
    # Staged parameters
    # ------------------------------------------------------------------

    async def set_param(self, key: str, value: Any) -> None:
        """Upsert ``value`` into the staging table; returns once it is committed."""
        await self.store.upsert(key, value)

    def with_age_param(self, key: str, alias: str) -> QueryBuilder:
        """Bring a staged value into scope: ``WITH ..., <schema>.get('key') AS alias``."""
        return self._with_expression(self.store.get_expression(key), alias)

    def with_all_age_params(self, alias: str) -> QueryBuilder:
        """Bring every staged value into scope as one map."""
        return self._with_expression(self.store.get_all_expression(), alias)

    def _with_expression(self, expression: str, alias: str) -> QueryBuilder:
        carried = [name for name in self._scope if name != alias]
        self._bind_alias(alias)
        self._parts.append(WithPart([*carried, f"{expression} AS {alias}"]))
        self._scope = [*carried, alias]
        return self

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def _render_parts(self, carry: str | None = None) -> list[str]:
        rendered = []
        for part in self._parts:
            text = part.render(carry) if isinstance(part, WithPart) else part.render()
            if text:
                rendered.append(text)
        return rendered

    def to_cypher(self) -> str:
        return "\n".join(self._render_parts())

    def get_parameters(self) -> dict[str, Any]:
        params = dict(self._params)
        for part in self._parts:
            params.update(part.parameters())
        return params

    def build(self) -> tuple[str, dict[str, Any]]:
        return self.to_cypher(), self.get_parameters()

    def return_columns(self) -> list[str]:
        for part in reversed(self._parts):
            if isinstance(part, ReturnPart):
                return part.columns()
        return []

    def staged_cypher(self, params_key: str) -> str:
        """Query text with ``$name`` references read from a staged parameter row."""
        header = f"WITH {self.store.get_expression(params_key)} AS {PARAMS_ALIAS}"
        body = "\n".join(self._render_parts(carry=PARAMS_ALIAS))
        body = _PARAM_REF_RE.sub(
            lambda m: f"{PARAMS_ALIAS}.{m.group(1)}" if m.group(1) else m.group(0), body
        )
        return f"{header}\n{body}"

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_query(self) -> list[str]:
        """Return every problem found; never raises."""
        errors = self._ordering_errors()
        errors.extend(self._parameter_errors())
        if self.schema is not None:
            errors.extend(self._schema_errors())
        return errors

    def _ordering_errors(self) -> list[str]:
        errors: list[str] = []
        if not self._parts:
            return ["Query is empty"]

        previous: PartKind | None = None
        projection: PartKind | None = None
        for part in self._parts:
            kind = part.kind
            if projection is PartKind.RETURN and kind not in (PartKind.ORDER_BY, PartKind.SKIP, PartKind.LIMIT):
                errors.append(f"{kind.value} cannot follow RETURN")
            elif kind is PartKind.WHERE:
                after_with = projection is PartKind.WITH and previous in (
                    PartKind.WITH,
                    PartKind.ORDER_BY,
                    PartKind.SKIP,
                    PartKind.LIMIT,
                )
                if previous is not PartKind.MATCH and not after_with:
                    errors.append("WHERE must follow MATCH or WITH")
            elif kind is PartKind.ORDER_BY and previous not in _AFTER_PROJECTION:
                errors.append("ORDER BY must follow WITH or RETURN")
            elif kind is PartKind.SKIP and previous not in (*_AFTER_PROJECTION, PartKind.ORDER_BY):
                errors.append("SKIP must follow WITH, RETURN or ORDER BY")
            elif kind is PartKind.LIMIT and previous not in (*_AFTER_PROJECTION, PartKind.ORDER_BY, PartKind.SKIP):
                errors.append("LIMIT must follow WITH, RETURN, ORDER BY or SKIP")

            if kind in _AFTER_PROJECTION:
                projection = kind
            elif kind in (PartKind.MATCH, PartKind.UNWIND):
                projection = None if projection is PartKind.WITH else projection
            previous = kind

        if projection is not PartKind.RETURN:
            errors.append("Query must end with RETURN")
        return errors

    def _parameter_errors(self) -> list[str]:
        available = self.get_parameters()
        referenced = {m.group(1) for m in _PARAM_REF_RE.finditer(self.to_cypher()) if m.group(1)}
        return [f"Missing parameter: {name}" for name in sorted(referenced - set(available))]

    def _schema_errors(self) -> list[str]:
        errors: list[str] = []
        vertex_labels = set(self.schema.get_vertex_labels())
        edge_labels = set(self.schema.get_edge_labels())

        for part in self._parts:
            if not isinstance(part, MatchPart):
                continue
            for pattern in part.patterns:
                if isinstance(pattern, VertexPattern):
                    if pattern.label not in vertex_labels:
                        errors.append(f"Invalid vertex label: {pattern.label}")
                        continue
                    known = self.schema.get_property_definitions(pattern.label)
                    identifier = _identifier_of(self.schema, pattern.label)
                    for prop in pattern.constraints:
                        if prop not in known and prop != identifier:
                            errors.append(f"Invalid property '{prop}' for vertex label '{pattern.label}'")
                    continue

                if pattern.label not in edge_labels:
                    errors.append(f"Invalid edge label: {pattern.label}")
                    continue
                known = self.schema.get_property_definitions(pattern.label)
                for prop in pattern.constraints:
                    if prop not in known:
                        errors.append(f"Invalid property '{prop}' for edge label '{pattern.label}'")
                errors.extend(self._endpoint_errors(pattern))
        return errors

    def _endpoint_errors(self, pattern: EdgePattern) -> list[str]:
        edge_label = getattr(self.schema, "edge_label", None)
        definition = edge_label(pattern.label) if edge_label else None
        if definition is None or pattern.direction is Direction.BOTH:
            return []
        source = self._vertex_aliases[pattern.source_alias].label
        target = self._vertex_aliases[pattern.target_alias].label
        if pattern.direction is Direction.INCOMING:
            source, target = target, source
        errors = []
        if source != definition.from_label:
            errors.append(
                f"Invalid source vertex label for edge '{pattern.label}': "
                f"expected '{definition.from_label}', got '{source}'"
            )
        if target != definition.to_label:
            errors.append(
                f"Invalid target vertex label for edge '{pattern.label}': "
                f"expected '{definition.to_label}', got '{target}'"
            )
        return errors

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(self, graph_name: str | None = None, validate: bool = True) -> list[dict[str, Any]]:
        """Validate, stage parameters, run the query and return decoded rows."""
        if validate:
            errors = self.validate_query()
            if errors:
                raise QueryValidationError(
                    f"Query validation failed: {', '.join(errors)}",
                    details={"cypher": self.to_cypher()},
                )

        graph = graph_name or self.graph_name or self.executor.graph_name
        columns = self.return_columns()
        params = self.get_parameters()
        if not params:
            return await self.executor.execute_cypher(graph, self.to_cypher(), columns)

        params_key = f"query_{uuid.uuid4().hex}"
        await self.store.upsert(params_key, params)
        try:
            return await self.executor.execute_cypher(graph, self.staged_cypher(params_key), columns)
        finally:
            try:
                await self.store.delete(params_key)
            except GraphClientError as e:
                logger.warning("Failed to remove staged query parameters", key=params_key, error=str(e))


def _identifier_of(schema: Any, label: str) -> str | None:
    identifier_for = getattr(schema, "identifier_for", None)
    return identifier_for(label) if identifier_for else None
