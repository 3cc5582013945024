# core/db_manager.py
import asyncio
import re
import weakref
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from typing import Any

import psycopg2
import psycopg2.extras
import psycopg2.pool
import structlog

import config
from core.exceptions import (
    DatabaseConnectionError,
    DatabaseTransactionError,
    QueryError,
    handle_database_error,
)
from utils.agtype import decode_row

logger = structlog.get_logger(__name__)

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

AGE_SESSION_SETUP = ("LOAD 'age'", 'SET search_path = ag_catalog, "$user", public')


def _dollar_quote(text: str) -> str:
    """Wrap ``text`` in a dollar-quote tag that does not occur inside it."""
    tag = "cypher"
    counter = 0
    while f"${tag}$" in text:
        counter += 1
        tag = f"cypher{counter}"
    return f"${tag}${text}${tag}$"


def build_cypher_statement(graph_name: str, cypher: str, columns: Sequence[str]) -> str:
    """Render the SQL that runs ``cypher`` against ``graph_name`` through AGE."""
    if not _IDENTIFIER_RE.match(graph_name or ""):
        raise QueryError(f"Invalid graph name: {graph_name!r}")
    columns = list(columns) or ["result"]
    for column in columns:
        if not _IDENTIFIER_RE.match(column):
            raise QueryError(f"Invalid result column name: {column!r}", statement=cypher)
    column_list = ", ".join(f"{column} ag_catalog.agtype" for column in columns)
    return f"SELECT * FROM ag_catalog.cypher('{graph_name}', {_dollar_quote(cypher)}) AS ({column_list})"


def _sync_run(conn: Any, statement: str, params: Sequence[Any] | dict[str, Any] | None) -> list[dict[str, Any]]:
    with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
        cur.execute(statement, params)
        if cur.description is None:
            return []
        return [dict(row) for row in cur.fetchall()]


class AgeSession:
    """One pooled connection with explicit transaction control.

    The connection runs in autocommit mode; `begin()` opens an explicit
    transaction and `commit()`/`rollback()` close it.
    """

    def __init__(self, manager: "AgeConnectionManager", conn: Any):
        self._manager = manager
        self._conn = conn
        self.in_transaction = False

    async def begin(self) -> None:
        if self.in_transaction:
            raise DatabaseTransactionError("Transaction already open on this session")
        await self._run("BEGIN", None, "begin")
        self.in_transaction = True

    async def commit(self) -> None:
        if not self.in_transaction:
            raise DatabaseTransactionError("No open transaction to commit")
        try:
            await self._run("COMMIT", None, "commit")
        finally:
            self.in_transaction = False

    async def rollback(self) -> None:
        if not self.in_transaction:
            return
        try:
            await self._run("ROLLBACK", None, "rollback")
        finally:
            self.in_transaction = False

    async def execute(
        self, statement: str, params: Sequence[Any] | dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        return await self._run(statement, params, "execute")

    async def execute_cypher(
        self, graph_name: str, cypher: str, columns: Sequence[str] = ("result",)
    ) -> list[dict[str, Any]]:
        statement = build_cypher_statement(graph_name, cypher, columns)
        rows = await self._run(statement, None, "execute_cypher")
        return [decode_row(row) for row in rows]

    async def _run(
        self, statement: str, params: Sequence[Any] | dict[str, Any] | None, operation: str
    ) -> list[dict[str, Any]]:
        logger.debug("Executing statement", operation=operation, statement=statement)
        try:
            return await asyncio.to_thread(_sync_run, self._conn, statement, params)
        except psycopg2.Error as e:
            raise handle_database_error(operation, e, statement=statement) from e


class AgeConnectionManager:
    """Process-wide psycopg2 pool for an AGE-enabled PostgreSQL database.

    psycopg2 is synchronous; every call runs in a worker thread via
    ``asyncio.to_thread`` so the public API stays async. Connection
    acquisition is retried, statement execution never is.
    """

    _instance = None

    def __new__(cls, *args, **kwargs):
        if not cls._instance:
            cls._instance = super().__new__(cls)
            cls._instance._initialized_flag = False
        return cls._instance

    def __init__(self):
        if self._initialized_flag:
            return

        self.logger = structlog.get_logger(__name__)
        self.pool: psycopg2.pool.ThreadedConnectionPool | None = None
        self._prepared: weakref.WeakSet = weakref.WeakSet()
        self._slots: asyncio.Semaphore | None = None
        self._slots_loop: asyncio.AbstractEventLoop | None = None
        self._graph_name: str = config.settings.AGE_GRAPH_NAME
        self._initialized_flag = True
        self.logger.info("AgeConnectionManager initialized. Call connect() to establish connection.")

    @property
    def graph_name(self) -> str:
        return self._graph_name

    async def connect(self, graph_name: str | None = None) -> None:
        """Create the pool, verify a connection and optionally create the graph."""
        if self.pool:
            await self.close()
        if graph_name:
            self._graph_name = graph_name

        settings = config.settings
        self._slots = None
        attempts = max(1, settings.DB_CONNECT_RETRY_ATTEMPTS)
        last_error: Exception | None = None
        for attempt in range(1, attempts + 1):
            try:
                pool = await asyncio.to_thread(
                    psycopg2.pool.ThreadedConnectionPool,
                    settings.DB_POOL_MIN_CONNECTIONS,
                    settings.DB_POOL_MAX_CONNECTIONS,
                    **settings.connection_kwargs(),
                )
                self.pool = pool
                conn = await asyncio.to_thread(self._acquire_sync)
                await asyncio.to_thread(self._release_sync, conn)
                break
            except psycopg2.OperationalError as e:
                last_error = e
                self.logger.warning(
                    "PostgreSQL connection attempt failed",
                    attempt=attempt,
                    max_attempts=attempts,
                    host=settings.PGHOST,
                    error=str(e),
                )
                await self._discard_pool()
                if attempt < attempts:
                    await asyncio.sleep(settings.DB_CONNECT_RETRY_DELAY_SECONDS * attempt)
            except psycopg2.Error as e:
                await self._discard_pool()
                raise handle_database_error("connection", e, host=settings.PGHOST) from e
        else:
            self.logger.critical("PostgreSQL unavailable", host=settings.PGHOST, error=str(last_error))
            raise DatabaseConnectionError(
                "PostgreSQL database is not available",
                details={
                    "host": settings.PGHOST,
                    "port": settings.PGPORT,
                    "attempts": attempts,
                    "original_error": str(last_error),
                    "suggestion": "Ensure PostgreSQL with the AGE extension is running and accessible",
                },
            ) from last_error

        self.logger.info("Successfully connected to PostgreSQL", host=settings.PGHOST, graph=self._graph_name)
        if settings.AGE_CREATE_GRAPH_IF_MISSING:
            await self.ensure_graph(self._graph_name)

    async def close(self) -> None:
        """Close every pooled connection."""
        if self.pool:
            try:
                await asyncio.to_thread(self.pool.closeall)
                self.logger.info("PostgreSQL pool closed.")
            except psycopg2.Error as e:
                self.logger.error(f"Error while closing PostgreSQL pool: {e}", exc_info=True)
            finally:
                self.pool = None
                self._prepared.clear()
        else:
            self.logger.info("No active PostgreSQL pool to close (pool was None).")

    async def _discard_pool(self) -> None:
        pool, self.pool = self.pool, None
        self._prepared.clear()
        if pool is not None:
            try:
                await asyncio.to_thread(pool.closeall)
            except psycopg2.Error:
                self.logger.debug("Ignoring error while discarding pool", exc_info=True)

    def _connection_slots(self) -> asyncio.Semaphore:
        """One slot per pooled connection; callers queue here instead of exhausting the pool."""
        loop = asyncio.get_running_loop()
        if self._slots is None or self._slots_loop is not loop:
            self._slots = asyncio.Semaphore(max(1, config.settings.DB_POOL_MAX_CONNECTIONS))
            self._slots_loop = loop
        return self._slots

    async def _ensure_connected(self) -> None:
        if self.pool is None:
            self.logger.info("Pool is None, attempting to connect.")
            await self.connect()

        if self.pool is None:
            raise DatabaseConnectionError(
                "PostgreSQL pool not initialized",
                details={"suggestion": "Call connect() method first to establish database connection"},
            )

    # -------------------------------------------------------------------------
    # Synchronous helper implementations (run in thread)
    # -------------------------------------------------------------------------

    def _acquire_sync(self) -> Any:
        if self.pool is None:
            raise DatabaseConnectionError(
                "PostgreSQL pool not initialized (synchronous helper called without connection)",
                details={},
            )
        conn = self.pool.getconn()
        conn.autocommit = True
        if conn not in self._prepared:
            with conn.cursor() as cur:
                for statement in AGE_SESSION_SETUP:
                    cur.execute(statement)
            self._prepared.add(conn)
        return conn

    def _release_sync(self, conn: Any) -> None:
        if self.pool is None:
            return
        broken = bool(conn.closed)
        if broken:
            self._prepared.discard(conn)
        self.pool.putconn(conn, close=broken)

    def _sync_execute(
        self, statement: str, params: Sequence[Any] | dict[str, Any] | None
    ) -> list[dict[str, Any]]:
        conn = self._acquire_sync()
        try:
            return _sync_run(conn, statement, params)
        finally:
            self._release_sync(conn)

    # -------------------------------------------------------------------------
    # Public async API
    # -------------------------------------------------------------------------

    async def execute(
        self, statement: str, params: Sequence[Any] | dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """Run one statement on a pooled connection (autocommitted)."""
        await self._ensure_connected()
        self.logger.debug("Executing statement", statement=statement)
        try:
            async with self._connection_slots():
                return await asyncio.to_thread(self._sync_execute, statement, params)
        except psycopg2.Error as e:
            raise handle_database_error("execute", e, statement=statement) from e

    async def execute_cypher(
        self, graph_name: str, cypher: str, columns: Sequence[str] = ("result",)
    ) -> list[dict[str, Any]]:
        """Run Cypher text through ``ag_catalog.cypher`` and decode agtype columns."""
        statement = build_cypher_statement(graph_name, cypher, columns)
        rows = await self.execute(statement)
        return [decode_row(row) for row in rows]

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AgeSession]:
        """Borrow one connection; an open transaction is rolled back on exit."""
        await self._ensure_connected()
        async with self._connection_slots():
            try:
                conn = await asyncio.to_thread(self._acquire_sync)
            except psycopg2.Error as e:
                raise handle_database_error("acquire", e) from e
            session = AgeSession(self, conn)
            try:
                yield session
            finally:
                if session.in_transaction:
                    try:
                        await session.rollback()
                    except Exception as e:
                        self.logger.warning("Rollback on session exit failed", error=str(e))
                await asyncio.to_thread(self._release_sync, conn)

    async def ensure_graph(self, graph_name: str | None = None) -> bool:
        """Create the AGE graph when missing. Returns ``True`` if it was created."""
        name = graph_name or self._graph_name
        if not _IDENTIFIER_RE.match(name):
            raise QueryError(f"Invalid graph name: {name!r}")
        rows = await self.execute("SELECT count(*) AS n FROM ag_catalog.ag_graph WHERE name = %s", (name,))
        if rows and rows[0]["n"]:
            return False
        await self.execute("SELECT ag_catalog.create_graph(%s)", (name,))
        self.logger.info("Created AGE graph", graph=name)
        return True


age_manager = AgeConnectionManager()
