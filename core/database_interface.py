# core/database_interface.py
"""
Protocols for the collaborators the query builder and batch loader depend on.

The concrete executor is [`AgeConnectionManager`](core/db_manager.py:1); tests
substitute an in-memory fake. Keeping the seam narrow means neither the builder
nor the loader knows anything about pools, retries or the wire driver.
"""

from collections.abc import Sequence
from contextlib import AbstractAsyncContextManager
from typing import Any, Protocol

from core.exceptions import FieldError
from models.schema_models import PropertyDefinition

Row = dict[str, Any]


class GraphSession(Protocol):
    """One pooled connection with explicit transaction control."""

    async def begin(self) -> None:
        """Open a transaction on this session."""
        ...

    async def commit(self) -> None:
        """Commit the open transaction."""
        ...

    async def rollback(self) -> None:
        """Roll back the open transaction."""
        ...

    async def execute(self, statement: str, params: Sequence[Any] | dict[str, Any] | None = None) -> list[Row]:
        """Run a SQL statement and return rows as dictionaries."""
        ...

    async def execute_cypher(self, graph_name: str, cypher: str, columns: Sequence[str]) -> list[Row]:
        """Run Cypher text through ``ag_catalog.cypher`` and return decoded rows."""
        ...


class GraphExecutor(Protocol):
    """Runs statements against the graph database."""

    @property
    def graph_name(self) -> str:
        """Graph used when a caller does not name one."""
        ...

    async def execute(self, statement: str, params: Sequence[Any] | dict[str, Any] | None = None) -> list[Row]:
        """Run one SQL statement in its own committed transaction."""
        ...

    async def execute_cypher(self, graph_name: str, cypher: str, columns: Sequence[str]) -> list[Row]:
        """Run Cypher text in its own committed transaction."""
        ...

    def session(self) -> AbstractAsyncContextManager[GraphSession]:
        """Borrow a connection for a multi-statement unit of work."""
        ...


class SchemaProvider(Protocol):
    """Answers label and property questions and validates records."""

    def get_vertex_labels(self) -> list[str]: ...

    def get_edge_labels(self) -> list[str]: ...

    def get_property_definitions(self, label: str) -> dict[str, PropertyDefinition]: ...

    def validate(self, label: str, record: Any) -> list[FieldError]: ...
