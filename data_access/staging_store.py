# data_access/staging_store.py
"""
Parameter staging table and the database-side functions that read it back.

AGE runs Cypher through ``ag_catalog.cypher(graph, $$text$$)`` and cannot bind
client values into that text. A value the query needs is therefore written to
``<schema>.<table>`` first (a ``key text -> value jsonb`` table) and the query reads
it with one of the retrieval functions installed next to the table:

- ``<schema>.get('key')``: the staged value, or null
- ``<schema>.get_array('key')``: the staged array (``[]`` when missing), for ``UNWIND``
- ``<schema>.get_all()``: a map of every staged key to its value
- ``<schema>.get_<type>_vertices()`` / ``get_<type>_edges()``: generated per record
  type, equivalent to ``get_array('vertex_<Type>')`` / ``get_array('edge_<Type>')``

All writes go through bind parameters. Keys end up inside query text, so they are
restricted to ``[A-Za-z0-9_:.-]``.
"""

from __future__ import annotations

import json
import re
from typing import Any, Literal

import structlog

import config
from core.database_interface import GraphSession
from core.exceptions import FieldError, ValidationError
from data_access.cypher_builders.patterns import check_identifier

logger = structlog.get_logger(__name__)

KEY_RE = re.compile(r"^[A-Za-z0-9_:.\-]+$")
NAMESPACE_SEPARATOR = ":"

RecordKind = Literal["vertices", "edges"]


def type_key(type_name: str, kind: RecordKind) -> str:
    """Fixed staging key for the records of one type (``vertex_Person``, ``edge_KNOWS``)."""
    check_identifier(type_name, "type name")
    return f"{'vertex' if kind == 'vertices' else 'edge'}_{type_name}"


def serialize_value(value: Any) -> str:
    """Serialize a value for a ``jsonb`` column; NaN and Infinity are rejected."""
    try:
        return json.dumps(value, allow_nan=False, default=_json_default)
    except (TypeError, ValueError) as e:
        raise ValidationError(
            "value cannot be staged as JSON",
            errors=[FieldError(field="value", message=str(e))],
        ) from e


def _json_default(value: Any) -> Any:
    isoformat = getattr(value, "isoformat", None)
    if callable(isoformat):
        return isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class StagingStore:
    """Key/value staging table shared by the query builder and the batch loader.

    A store may be scoped to a namespace (`scoped()`); its keys are then stored as
    ``<namespace>:<key>`` and `delete_namespace()` removes them all at once.
    """

    def __init__(
        self,
        executor: Any | None = None,
        schema_name: str | None = None,
        table_name: str | None = None,
        namespace: str | None = None,
    ):
        if executor is None:
            from core.db_manager import age_manager

            executor = age_manager
        self._executor = executor
        self.schema_name = check_identifier(schema_name or config.settings.STAGING_SCHEMA, "schema name")
        self.table_name = check_identifier(table_name or config.settings.STAGING_TABLE, "table name")
        if namespace is not None:
            self._check_key(namespace)
        self.namespace = namespace

    @property
    def qualified_table(self) -> str:
        return f"{self.schema_name}.{self.table_name}"

    def scoped(self, namespace: str) -> StagingStore:
        """Return a store whose keys live under ``namespace`` (nested under this one's)."""
        full = self.full_key(namespace)
        return StagingStore(self._executor, self.schema_name, self.table_name, namespace=full)

    def using(self, session: GraphSession) -> StagingStore:
        """Return the same store bound to ``session`` so writes join its transaction."""
        return StagingStore(session, self.schema_name, self.table_name, namespace=self.namespace)

    def full_key(self, key: str) -> str:
        self._check_key(key)
        if self.namespace:
            return f"{self.namespace}{NAMESPACE_SEPARATOR}{key}"
        return key

    @staticmethod
    def _check_key(key: str) -> None:
        if not isinstance(key, str) or not KEY_RE.match(key):
            raise ValidationError(
                f"invalid staging key {key!r}",
                errors=[FieldError(field="key", message="must match [A-Za-z0-9_:.-]+", value=key)],
            )

    # ------------------------------------------------------------------
    # Installation
    # ------------------------------------------------------------------

    def install_statements(self) -> list[str]:
        table = self.qualified_table
        schema = self.schema_name
        return [
            f"CREATE SCHEMA IF NOT EXISTS {schema}",
            f"CREATE TABLE IF NOT EXISTS {table} (key text PRIMARY KEY, value jsonb NOT NULL)",
            f"""CREATE OR REPLACE FUNCTION {schema}.get(param_key ag_catalog.agtype)
RETURNS ag_catalog.agtype
LANGUAGE plpgsql STABLE AS $fn$
DECLARE
    staged jsonb;
BEGIN
    SELECT value INTO staged FROM {table} WHERE key = trim(both '"' from param_key::text);
    IF staged IS NULL THEN
        RETURN 'null'::ag_catalog.agtype;
    END IF;
    RETURN staged::text::ag_catalog.agtype;
END;
$fn$""",
            f"""CREATE OR REPLACE FUNCTION {schema}.get_array(param_key ag_catalog.agtype)
RETURNS ag_catalog.agtype
LANGUAGE plpgsql STABLE AS $fn$
DECLARE
    staged jsonb;
BEGIN
    SELECT value INTO staged FROM {table} WHERE key = trim(both '"' from param_key::text);
    IF staged IS NULL OR jsonb_typeof(staged) <> 'array' THEN
        RETURN '[]'::ag_catalog.agtype;
    END IF;
    RETURN staged::text::ag_catalog.agtype;
END;
$fn$""",
            f"""CREATE OR REPLACE FUNCTION {schema}.get_all()
RETURNS ag_catalog.agtype
LANGUAGE sql STABLE AS $fn$
    SELECT coalesce(jsonb_object_agg(key, value), '{{}}'::jsonb)::text::ag_catalog.agtype FROM {table}
$fn$""",
        ]

    async def install(self) -> None:
        """Create the schema, table and retrieval functions if they do not exist."""
        for statement in self.install_statements():
            await self._executor.execute(statement)
        logger.info("Staging store installed", table=self.qualified_table)

    def type_function_name(self, type_name: str, kind: RecordKind) -> str:
        check_identifier(type_name, "type name")
        return f"get_{type_name.lower()}_{kind}"

    async def ensure_type_function(self, type_name: str, kind: RecordKind) -> str:
        """Create ``get_<type>_<kind>()`` reading this store's key for that type."""
        name = self.type_function_name(type_name, kind)
        key = self.full_key(type_key(type_name, kind))
        await self._executor.execute(
            f"""CREATE OR REPLACE FUNCTION {self.schema_name}.{name}()
RETURNS ag_catalog.agtype
LANGUAGE sql STABLE AS $fn$
    SELECT coalesce(
        (SELECT value FROM {self.qualified_table} WHERE key = '{key}' AND jsonb_typeof(value) = 'array'),
        '[]'::jsonb
    )::text::ag_catalog.agtype
$fn$"""
        )
        logger.debug("Type retrieval function ready", function=f"{self.schema_name}.{name}", key=key)
        return name

    # ------------------------------------------------------------------
    # Data access
    # ------------------------------------------------------------------

    async def upsert(self, key: str, value: Any) -> None:
        """Write ``value`` under ``key``; the last write wins."""
        full = self.full_key(key)
        payload = serialize_value(value)
        await self._executor.execute(
            f"INSERT INTO {self.qualified_table} (key, value) VALUES (%s, %s::jsonb) "
            f"ON CONFLICT (key) DO UPDATE SET value = EXCLUDED.value",
            (full, payload),
        )
        logger.debug("Staged value", key=full, size=len(payload))

    async def get(self, key: str) -> Any:
        """Read back a staged value, or ``None`` when the key is absent."""
        rows = await self._executor.execute(
            f"SELECT value FROM {self.qualified_table} WHERE key = %s", (self.full_key(key),)
        )
        return rows[0]["value"] if rows else None

    async def delete(self, key: str) -> bool:
        rows = await self._executor.execute(
            f"DELETE FROM {self.qualified_table} WHERE key = %s RETURNING key", (self.full_key(key),)
        )
        return bool(rows)

    async def delete_namespace(self, namespace: str | None = None) -> int:
        """Remove every key under ``namespace`` (default: this store's namespace)."""
        target = namespace if namespace is not None else self.namespace
        if not target:
            raise ValidationError("delete_namespace needs a namespace")
        self._check_key(target)
        rows = await self._executor.execute(
            f"DELETE FROM {self.qualified_table} WHERE starts_with(key, %s) RETURNING key",
            (f"{target}{NAMESPACE_SEPARATOR}",),
        )
        if rows:
            logger.debug("Removed staged keys", namespace=target, count=len(rows))
        return len(rows)

    async def keys(self) -> list[str]:
        """List keys visible to this store (its namespace only, when scoped)."""
        if self.namespace:
            rows = await self._executor.execute(
                f"SELECT key FROM {self.qualified_table} WHERE starts_with(key, %s) ORDER BY key",
                (f"{self.namespace}{NAMESPACE_SEPARATOR}",),
            )
        else:
            rows = await self._executor.execute(f"SELECT key FROM {self.qualified_table} ORDER BY key")
        return [row["key"] for row in rows]

    # ------------------------------------------------------------------
    # Cypher expressions
    # ------------------------------------------------------------------

    def get_expression(self, key: str) -> str:
        return f"{self.schema_name}.get('{self.full_key(key)}')"

    def get_array_expression(self, key: str) -> str:
        return f"{self.schema_name}.get_array('{self.full_key(key)}')"

    def get_all_expression(self) -> str:
        return f"{self.schema_name}.get_all()"

    def type_function_expression(self, type_name: str, kind: RecordKind) -> str:
        return f"{self.schema_name}.{self.type_function_name(type_name, kind)}()"
