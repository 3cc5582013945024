# tests/test_db_manager.py
"""Tests for core/db_manager.py"""

import asyncio
import gc
import weakref
from unittest.mock import AsyncMock, MagicMock

import psycopg2
import psycopg2.errors
import psycopg2.pool
import pytest

import config
from core.db_manager import AgeConnectionManager, age_manager, build_cypher_statement
from core.exceptions import (
    DatabaseConnectionError,
    DatabaseTransactionError,
    OperationTimeoutError,
    QueryError,
)


@pytest.fixture(autouse=True)
def _restore_global_age_manager_state():
    """
    Prevent state leakage from these unit tests into the rest of the suite.

    `AgeConnectionManager` is a true singleton; tests here swap its pool for mocks.
    """
    manager = AgeConnectionManager()
    original_pool = manager.pool
    original_prepared = weakref.WeakSet(manager._prepared)
    original_graph = manager._graph_name

    yield

    manager.pool = original_pool
    manager._prepared = original_prepared
    manager._graph_name = original_graph
    manager._slots = None


def _connection(rows=None, description=True):
    """Build a mock psycopg2 connection whose cursor returns ``rows``."""
    conn = MagicMock()
    conn.closed = 0
    cursor = conn.cursor.return_value.__enter__.return_value
    cursor.description = [("col",)] if description else None
    cursor.fetchall.return_value = rows or []
    return conn, cursor


def _pool(conn):
    pool = MagicMock()
    pool.getconn.return_value = conn
    return pool


def _executed(cursor):
    return [c.args[0] for c in cursor.execute.call_args_list]


class TestBuildCypherStatement:
    def test_wraps_cypher_in_dollar_quotes(self):
        statement = build_cypher_statement("social", "MATCH (n) RETURN n", ["n"])
        assert statement == (
            "SELECT * FROM ag_catalog.cypher('social', $cypher$MATCH (n) RETURN n$cypher$) AS (n ag_catalog.agtype)"
        )

    def test_quote_tag_avoids_collisions(self):
        statement = build_cypher_statement("g", "RETURN '$cypher$' AS x", ["x"])
        assert "$cypher1$RETURN '$cypher$' AS x$cypher1$" in statement

    def test_default_result_column(self):
        assert statement_columns(build_cypher_statement("g", "RETURN 1", [])) == "result ag_catalog.agtype"

    @pytest.mark.parametrize("graph", ["", "bad-name", "g'); DROP TABLE x; --"])
    def test_rejects_invalid_graph_name(self, graph):
        with pytest.raises(QueryError, match="Invalid graph name"):
            build_cypher_statement(graph, "RETURN 1", ["x"])

    def test_rejects_invalid_column(self):
        with pytest.raises(QueryError, match="Invalid result column name"):
            build_cypher_statement("g", "RETURN 1", ["count(*)"])


def statement_columns(statement):
    return statement.rsplit("AS (", 1)[1].rstrip(")")


class TestSingleton:
    def test_singleton_pattern(self):
        """Multiple instantiations return the same instance"""
        assert AgeConnectionManager() is AgeConnectionManager()
        assert AgeConnectionManager() is age_manager

    def test_initialization_only_once(self):
        manager = AgeConnectionManager()
        manager._graph_name = "kept"
        assert AgeConnectionManager().graph_name == "kept"


class TestConnection:
    async def test_connect_prepares_connection(self, monkeypatch):
        conn, cursor = _connection()
        pool = _pool(conn)
        factory = MagicMock(return_value=pool)
        monkeypatch.setattr(psycopg2.pool, "ThreadedConnectionPool", factory)
        monkeypatch.setattr(config.settings, "AGE_CREATE_GRAPH_IF_MISSING", False)

        manager = AgeConnectionManager()
        manager.pool = None
        manager._prepared = weakref.WeakSet()
        await manager.connect(graph_name="social")

        assert manager.pool is pool
        assert manager.graph_name == "social"
        assert conn.autocommit is True
        assert _executed(cursor) == ["LOAD 'age'", 'SET search_path = ag_catalog, "$user", public']
        pool.putconn.assert_called_once_with(conn, close=False)

    async def test_connect_retries_then_fails(self, monkeypatch):
        factory = MagicMock(side_effect=psycopg2.OperationalError("could not connect"))
        monkeypatch.setattr(psycopg2.pool, "ThreadedConnectionPool", factory)
        monkeypatch.setattr(config.settings, "DB_CONNECT_RETRY_ATTEMPTS", 2)
        monkeypatch.setattr(config.settings, "DB_CONNECT_RETRY_DELAY_SECONDS", 0)

        manager = AgeConnectionManager()
        manager.pool = None
        with pytest.raises(DatabaseConnectionError, match="PostgreSQL database is not available") as exc_info:
            await manager.connect()

        assert factory.call_count == 2
        assert exc_info.value.details["attempts"] == 2
        assert manager.pool is None

    async def test_connect_creates_missing_graph(self, monkeypatch):
        conn, _ = _connection()
        monkeypatch.setattr(psycopg2.pool, "ThreadedConnectionPool", MagicMock(return_value=_pool(conn)))
        monkeypatch.setattr(config.settings, "AGE_CREATE_GRAPH_IF_MISSING", True)

        manager = AgeConnectionManager()
        manager.pool = None
        ensure = AsyncMock(return_value=True)
        monkeypatch.setattr(manager, "ensure_graph", ensure)
        await manager.connect(graph_name="fresh")

        ensure.assert_awaited_once_with("fresh")

    async def test_close(self):
        manager = AgeConnectionManager()
        pool = MagicMock()
        manager.pool = pool
        prepared = [MagicMock(), MagicMock()]
        manager._prepared = weakref.WeakSet(prepared)

        await manager.close()

        pool.closeall.assert_called_once()
        assert manager.pool is None
        assert len(manager._prepared) == 0


class TestExecution:
    async def test_execute_returns_dict_rows(self):
        conn, cursor = _connection(rows=[{"n": 1}])
        manager = AgeConnectionManager()
        manager.pool = _pool(conn)

        rows = await manager.execute("SELECT 1 AS n WHERE %s", (True,))

        assert rows == [{"n": 1}]
        cursor.execute.assert_called_with("SELECT 1 AS n WHERE %s", (True,))
        manager.pool.putconn.assert_called_with(conn, close=False)

    async def test_statement_without_result_set(self):
        conn, _ = _connection(description=False)
        manager = AgeConnectionManager()
        manager.pool = _pool(conn)

        assert await manager.execute("DELETE FROM t") == []

    async def test_execute_cypher_decodes_agtype(self):
        conn, cursor = _connection(rows=[{"name": '"Alice"', "age": "34"}])
        manager = AgeConnectionManager()
        manager.pool = _pool(conn)

        rows = await manager.execute_cypher("social", "MATCH (p) RETURN p.name, p.age", ["name", "age"])

        assert rows == [{"name": "Alice", "age": 34}]
        assert "ag_catalog.cypher('social'" in cursor.execute.call_args.args[0]

    async def test_driver_errors_are_converted(self):
        conn, cursor = _connection()
        manager = AgeConnectionManager()
        manager.pool = _pool(conn)
        manager._prepared = weakref.WeakSet([conn])
        cursor.execute.side_effect = psycopg2.ProgrammingError("syntax error at or near")

        with pytest.raises(QueryError) as exc_info:
            await manager.execute("SELEC 1")

        assert exc_info.value.statement == "SELEC 1"
        assert isinstance(exc_info.value.__cause__, psycopg2.ProgrammingError)

    async def test_broken_connection_is_discarded(self):
        conn, _ = _connection()
        conn.closed = 2
        manager = AgeConnectionManager()
        manager.pool = _pool(conn)

        await manager.execute("SELECT 1")

        manager.pool.putconn.assert_called_with(conn, close=True)
        assert conn not in manager._prepared

    async def test_each_pooled_connection_is_prepared_once(self):
        first, first_cursor = _connection()
        second, second_cursor = _connection()
        manager = AgeConnectionManager()
        manager.pool = MagicMock()
        manager.pool.getconn.side_effect = [first, second, first]
        manager._prepared = weakref.WeakSet()

        for _ in range(3):
            await manager.execute("SELECT 1")

        setup = ["LOAD 'age'", 'SET search_path = ag_catalog, "$user", public']
        assert _executed(first_cursor) == [*setup, "SELECT 1", "SELECT 1"]
        assert _executed(second_cursor) == [*setup, "SELECT 1"]

    async def test_prepared_connections_are_tracked_weakly(self):
        conn, cursor = _connection()
        manager = AgeConnectionManager()
        manager.pool = _pool(conn)
        manager._prepared = weakref.WeakSet()

        await manager.execute("SELECT 1")
        assert conn in manager._prepared

        manager.pool = None
        del conn, cursor
        gc.collect()

        assert len(manager._prepared) == 0

    async def test_ensure_graph(self, monkeypatch):
        manager = AgeConnectionManager()
        execute = AsyncMock(side_effect=[[{"n": 0}], []])
        monkeypatch.setattr(manager, "execute", execute)

        assert await manager.ensure_graph("social") is True
        assert execute.await_args_list[1].args == ("SELECT ag_catalog.create_graph(%s)", ("social",))

    async def test_ensure_graph_existing(self, monkeypatch):
        manager = AgeConnectionManager()
        monkeypatch.setattr(manager, "execute", AsyncMock(return_value=[{"n": 1}]))

        assert await manager.ensure_graph("social") is False

    async def test_ensure_graph_rejects_bad_name(self):
        with pytest.raises(QueryError):
            await AgeConnectionManager().ensure_graph("bad name")


class TestSession:
    async def test_transaction_statements(self):
        conn, cursor = _connection(description=False)
        manager = AgeConnectionManager()
        manager.pool = _pool(conn)
        manager._prepared = weakref.WeakSet([conn])

        async with manager.session() as session:
            await session.begin()
            assert session.in_transaction
            await session.execute("INSERT INTO t VALUES (%s)", (1,))
            await session.commit()

        assert _executed(cursor) == ["BEGIN", "INSERT INTO t VALUES (%s)", "COMMIT"]
        assert not session.in_transaction

    async def test_open_transaction_is_rolled_back_on_exit(self):
        conn, cursor = _connection(description=False)
        manager = AgeConnectionManager()
        manager.pool = _pool(conn)
        manager._prepared = weakref.WeakSet([conn])

        with pytest.raises(RuntimeError):
            async with manager.session() as session:
                await session.begin()
                raise RuntimeError("caller failed")

        assert _executed(cursor) == ["BEGIN", "ROLLBACK"]
        manager.pool.putconn.assert_called_once_with(conn, close=False)

    async def test_sessions_queue_for_pooled_connections(self, monkeypatch):
        monkeypatch.setattr(config.settings, "DB_POOL_MAX_CONNECTIONS", 1)
        conn, _ = _connection(description=False)
        manager = AgeConnectionManager()
        manager.pool = _pool(conn)
        manager._prepared = weakref.WeakSet([conn])
        manager._slots = None
        release = asyncio.Event()
        entered: list[str] = []

        async def hold():
            async with manager.session():
                entered.append("first")
                await release.wait()

        async def borrow():
            async with manager.session():
                entered.append("second")

        first = asyncio.create_task(hold())
        while not entered:
            await asyncio.sleep(0.01)
        second = asyncio.create_task(borrow())
        await asyncio.sleep(0.05)

        assert entered == ["first"]
        assert manager.pool.getconn.call_count == 1

        release.set()
        await asyncio.gather(first, second)

        assert entered == ["first", "second"]
        assert manager.pool.getconn.call_count == 2

    async def test_double_begin_and_stray_commit(self):
        conn, _ = _connection(description=False)
        manager = AgeConnectionManager()
        manager.pool = _pool(conn)
        manager._prepared = weakref.WeakSet([conn])

        async with manager.session() as session:
            with pytest.raises(DatabaseTransactionError):
                await session.commit()
            await session.begin()
            with pytest.raises(DatabaseTransactionError):
                await session.begin()
            await session.rollback()
            await session.rollback()

    async def test_cancelled_statement_becomes_timeout(self):
        conn, cursor = _connection(description=False)
        manager = AgeConnectionManager()
        manager.pool = _pool(conn)
        manager._prepared = weakref.WeakSet([conn])

        async with manager.session() as session:
            cursor.execute.side_effect = psycopg2.errors.QueryCanceled("canceling statement due to statement timeout")
            with pytest.raises(OperationTimeoutError):
                await session.execute_cypher("g", "MATCH (n) RETURN n", ["n"])
