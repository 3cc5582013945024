# data_access/batch_loader.py
"""
Bulk loading of vertices and edges into an AGE graph.

A load runs in three ordered phases:

1. Validation: every record is checked against the schema. Invalid records
   either abort the call or are reported and dropped (`continue_on_error`).
2. Vertices: each vertex type is chunked, every chunk is staged under
   ``<load_id>:vertex_<Type>`` and created by one UNWIND query that reads the
   staged array back through ``get_array``.
3. Edges: only once every vertex type is done. Each edge chunk is staged, its
   endpoint references are resolved first (every unresolved edge is reported as
   its own error), and the remaining edges are created.

Each chunk runs in its own transaction: staging write, Cypher and key removal
commit together or not at all. ``atomic=True`` runs the whole load in a single
transaction instead. Staged keys for the load are removed in a ``finally``
block whatever the outcome.
"""

from __future__ import annotations

import asyncio
import inspect
import time
import uuid
from pathlib import Path
from typing import Any

import structlog
from pydantic import ValidationError as PydanticValidationError

from core.exceptions import (
    BatchLoaderError,
    FieldError,
    GraphClientError,
    OperationTimeoutError,
    ValidationError,
)
from data_access.cypher_builders.load_queries import (
    CREATED_EDGES_COLUMN,
    CREATED_VERTICES_COLUMN,
    create_edges_cypher,
    create_vertices_cypher,
    unresolved_references_cypher,
)
from data_access.staging_store import RecordKind, StagingStore, type_key
from models.graph_data import (
    EDGE_FROM_FIELD,
    EDGE_TO_FIELD,
    GraphData,
    GraphValidationReport,
    LoadIssue,
    LoadOptions,
    LoadProgress,
    LoadResult,
    LoadResultBuilder,
)

logger = structlog.get_logger(__name__)


def _chunks(records: list[dict[str, Any]], size: int) -> list[tuple[int, list[dict[str, Any]]]]:
    return [(offset, records[offset : offset + size]) for offset in range(0, len(records), size)]


def _coerce_data(data: GraphData | dict[str, Any]) -> GraphData:
    if isinstance(data, GraphData):
        return data
    try:
        return GraphData.model_validate(data)
    except PydanticValidationError as e:
        raise BatchLoaderError("Graph data is malformed", phase="validation", cause=e) from e


def _coerce_options(options: LoadOptions | None, overrides: dict[str, Any]) -> LoadOptions:
    options = options or LoadOptions()
    if not overrides:
        return options
    values = {name: getattr(options, name) for name in LoadOptions.model_fields}
    try:
        return LoadOptions.model_validate({**values, **overrides})
    except PydanticValidationError as e:
        raise BatchLoaderError("Load options are invalid", phase="validation", cause=e) from e


def _int_value(rows: list[dict[str, Any]], column: str) -> int:
    if not rows:
        return 0
    value = rows[0].get(column)
    return int(value) if value is not None else 0


class _LoadRun:
    """State of one `load_graph_data` call."""

    def __init__(
        self,
        loader: BatchLoader,
        options: LoadOptions,
        store: StagingStore,
        graph_name: str,
        result: LoadResultBuilder,
    ):
        self.loader = loader
        self.options = options
        self.store = store
        self.graph_name = graph_name
        self.result = result
        self.started = time.monotonic()
        self.deadline = self.started + options.transaction_timeout

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started

    def timeout_error(self) -> OperationTimeoutError:
        return OperationTimeoutError(
            f"Load exceeded its {self.options.transaction_timeout}s budget",
            timeout=self.options.transaction_timeout,
            partial_result=self.result.build(self.elapsed),
            details={"load_id": self.result.load_id},
        )

    def check_deadline(self) -> None:
        if time.monotonic() >= self.deadline:
            raise self.timeout_error()

    def statement_timeout_ms(self) -> int:
        return max(1, int((self.deadline - time.monotonic()) * 1000))

    async def report_progress(
        self, kind: RecordKind, type_name: str, processed: int, total: int, batch_number: int, total_batches: int
    ) -> None:
        callback = self.options.on_progress
        if callback is None:
            return
        progress = LoadProgress(
            phase=kind,
            type=type_name,
            processed=processed,
            total=total,
            batch_number=batch_number,
            total_batches=total_batches,
            elapsed=self.elapsed,
        )
        outcome = callback(progress)
        if inspect.isawaitable(outcome):
            await outcome

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def run_chunked(self, data: GraphData) -> None:
        await self._run_phase("vertices", data.vertices)
        await self._run_phase("edges", data.edges)

    async def _run_phase(self, kind: RecordKind, groups: dict[str, list[dict[str, Any]]]) -> None:
        types = [(name, records) for name, records in groups.items()]
        parallel = self.options.max_parallel_batches
        if parallel <= 1 or len(types) <= 1:
            for type_name, records in types:
                await self._load_type(kind, type_name, records)
            return

        semaphore = asyncio.Semaphore(parallel)

        async def guarded(type_name: str, records: list[dict[str, Any]]) -> None:
            async with semaphore:
                await self._load_type(kind, type_name, records)

        outcomes = await asyncio.gather(
            *(guarded(name, records) for name, records in types), return_exceptions=True
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome

    async def _load_type(self, kind: RecordKind, type_name: str, records: list[dict[str, Any]]) -> None:
        self._count(kind, type_name, 0)
        if not records:
            return
        if not self.loader._knows(kind, type_name):
            self._fail_type(kind, type_name, records)
            return
        if self.options.use_type_functions:
            await self.store.ensure_type_function(type_name, kind)

        batches = _chunks(records, self.options.batch_size)
        for number, (offset, chunk) in enumerate(batches, start=1):
            self.check_deadline()
            await self._run_chunk_transaction(kind, type_name, offset, chunk, number, len(batches))
            await self.report_progress(kind, type_name, offset + len(chunk), len(records), number, len(batches))

    async def _run_chunk_transaction(
        self,
        kind: RecordKind,
        type_name: str,
        offset: int,
        chunk: list[dict[str, Any]],
        number: int,
        total_batches: int,
    ) -> None:
        pending = LoadResultBuilder()
        try:
            async with self.loader.executor.session() as session:
                await session.begin()
                try:
                    await self._run_chunk(session, kind, type_name, offset, chunk, pending)
                    await session.commit()
                except BaseException:
                    await session.rollback()
                    raise
        except OperationTimeoutError as e:
            raise self.timeout_error() from e
        except BatchLoaderError:
            raise
        except GraphClientError as e:
            if not self.options.continue_on_error:
                raise self._chunk_error(kind, type_name, offset, chunk, e) from e
            logger.error(
                "Batch failed; rolled back",
                load_id=self.result.load_id,
                type=type_name,
                batch=f"{number}/{total_batches}",
                error=str(e),
            )
            # Per-edge reference errors from this chunk survive the rollback.
            self.result.extend_errors(pending.errors)
            self.result.error(
                kind,
                f"Batch {number}/{total_batches} failed: {e}",
                type_name=type_name,
                index=offset,
            )
            return
        self._merge(pending)
        logger.info(
            "Batch committed",
            load_id=self.result.load_id,
            type=type_name,
            batch=f"{number}/{total_batches}",
            created=sum((pending.vertex_counts if kind == "vertices" else pending.edge_counts).values()),
        )

    async def run_atomic(self, data: GraphData) -> None:
        """Every chunk of every type in one transaction; any failure undoes the load."""
        pending = LoadResultBuilder()
        try:
            async with self.loader.executor.session() as session:
                await session.begin()
                try:
                    for kind, groups in (("vertices", data.vertices), ("edges", data.edges)):
                        for type_name, records in groups.items():
                            await self._load_type_atomic(session, kind, type_name, records, pending)
                    await session.commit()
                except OperationTimeoutError as e:
                    await session.rollback()
                    logger.error("Atomic load timed out and was rolled back", load_id=self.result.load_id)
                    raise self.timeout_error() from e
                except BaseException:
                    await session.rollback()
                    logger.error("Atomic load rolled back", load_id=self.result.load_id)
                    raise
        except (BatchLoaderError, OperationTimeoutError):
            raise
        except GraphClientError as e:
            raise BatchLoaderError(f"Atomic load failed: {e}", phase="transaction", cause=e) from e
        self._merge(pending)

    async def _load_type_atomic(
        self,
        session: Any,
        kind: RecordKind,
        type_name: str,
        records: list[dict[str, Any]],
        pending: LoadResultBuilder,
    ) -> None:
        if kind == "vertices":
            pending.add_vertices(type_name, 0)
        else:
            pending.add_edges(type_name, 0)
        if not records:
            return
        if not self.loader._knows(kind, type_name):
            self._fail_type(kind, type_name, records)
            return
        if self.options.use_type_functions:
            await self.store.using(session).ensure_type_function(type_name, kind)

        batches = _chunks(records, self.options.batch_size)
        for number, (offset, chunk) in enumerate(batches, start=1):
            self.check_deadline()
            try:
                await self._run_chunk(session, kind, type_name, offset, chunk, pending)
            except (BatchLoaderError, OperationTimeoutError):
                raise
            except GraphClientError as e:
                raise self._chunk_error(kind, type_name, offset, chunk, e) from e
            await self.report_progress(kind, type_name, offset + len(chunk), len(records), number, len(batches))

    # ------------------------------------------------------------------
    # One chunk
    # ------------------------------------------------------------------

    async def _run_chunk(
        self,
        session: Any,
        kind: RecordKind,
        type_name: str,
        offset: int,
        chunk: list[dict[str, Any]],
        pending: LoadResultBuilder,
    ) -> None:
        await session.execute(f"SET LOCAL statement_timeout = {self.statement_timeout_ms()}")
        store = self.store.using(session)
        key = type_key(type_name, kind)
        await store.upsert(key, chunk)
        source = (
            store.type_function_expression(type_name, kind)
            if self.options.use_type_functions
            else store.get_array_expression(key)
        )

        if kind == "vertices":
            cypher, columns = create_vertices_cypher(
                type_name, self.loader.schema.writable_properties(type_name), source
            )
            rows = await session.execute_cypher(self.graph_name, cypher, columns)
            created = _int_value(rows, CREATED_VERTICES_COLUMN)
            pending.add_vertices(type_name, created)
            staged = len(chunk)
        else:
            remaining = await self._resolve_references(session, store, key, source, type_name, offset, chunk, pending)
            staged = len(remaining)
            created = 0
            if remaining:
                edge = self.loader.schema.edge_label(type_name)
                cypher, columns = create_edges_cypher(
                    type_name,
                    edge.from_label,
                    self.loader.schema.identifier_for(edge.from_label),
                    edge.to_label,
                    self.loader.schema.identifier_for(edge.to_label),
                    self.loader.schema.writable_properties(type_name),
                    source,
                )
                rows = await session.execute_cypher(self.graph_name, cypher, columns)
                created = _int_value(rows, CREATED_EDGES_COLUMN)
            pending.add_edges(type_name, created)

        await store.delete(key)
        if created < staged:
            message = f"Created {created} of {staged} staged {kind} for {type_name}"
            logger.warning(message, load_id=self.result.load_id, type=type_name, offset=offset)
            pending.warn(kind, message, type_name=type_name, index=offset)

    async def _resolve_references(
        self,
        session: Any,
        store: StagingStore,
        key: str,
        source: str,
        type_name: str,
        offset: int,
        chunk: list[dict[str, Any]],
        pending: LoadResultBuilder,
    ) -> list[dict[str, Any]]:
        """Report each edge whose endpoint is missing and re-stage the rest."""
        schema = self.loader.schema
        edge = schema.edge_label(type_name)
        from_id = schema.identifier_for(edge.from_label)
        to_id = schema.identifier_for(edge.to_label)
        cypher, columns = unresolved_references_cypher(edge.from_label, from_id, edge.to_label, to_id, source)
        rows = await session.execute_cypher(self.graph_name, cypher, columns)
        if not rows:
            return chunk

        unresolved: dict[int, dict[str, Any]] = {int(row["idx"]): row for row in rows}
        for position in sorted(unresolved):
            row = unresolved[position]
            record = chunk[position]
            missing = []
            if not row.get("src_found"):
                missing.append(f"source {edge.from_label}{{{from_id}: {record.get(EDGE_FROM_FIELD)!r}}}")
            if not row.get("dst_found"):
                missing.append(f"target {edge.to_label}{{{to_id}: {record.get(EDGE_TO_FIELD)!r}}}")
            message = f"Unresolved reference: {' and '.join(missing)} not found"
            if not self.options.continue_on_error:
                raise BatchLoaderError(
                    message,
                    phase="edges",
                    type_name=type_name,
                    index=offset + position,
                    record=record,
                    cause=ValidationError(
                        message,
                        errors=[
                            FieldError(
                                field=EDGE_TO_FIELD if row.get("src_found") else EDGE_FROM_FIELD,
                                message=message,
                                value=record,
                            )
                        ],
                    ),
                )
            pending.error("edges", message, type_name=type_name, index=offset + position, record=record)

        logger.warning(
            "Edges with unresolved references skipped",
            load_id=self.result.load_id,
            type=type_name,
            count=len(unresolved),
        )
        remaining = [record for position, record in enumerate(chunk) if position not in unresolved]
        if remaining:
            await store.upsert(key, remaining)
        return remaining

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def _count(self, kind: RecordKind, type_name: str, created: int) -> None:
        if kind == "vertices":
            self.result.add_vertices(type_name, created)
        else:
            self.result.add_edges(type_name, created)

    def _merge(self, pending: LoadResultBuilder) -> None:
        for type_name, created in pending.vertex_counts.items():
            self.result.add_vertices(type_name, created)
        for type_name, created in pending.edge_counts.items():
            self.result.add_edges(type_name, created)
        self.result.warnings.extend(pending.warnings)
        self.result.extend_errors(pending.errors)

    def _fail_type(self, kind: RecordKind, type_name: str, records: list[dict[str, Any]]) -> None:
        message = f"Unknown {'vertex' if kind == 'vertices' else 'edge'} label: {type_name}"
        if not self.options.continue_on_error:
            raise BatchLoaderError(message, phase=kind, type_name=type_name)
        logger.error(message, load_id=self.result.load_id, records=len(records))
        self.result.error(kind, message, type_name=type_name)

    def _chunk_error(
        self, kind: RecordKind, type_name: str, offset: int, chunk: list[dict[str, Any]], error: Exception
    ) -> BatchLoaderError:
        return BatchLoaderError(
            f"Loading {kind} of type {type_name} failed at record {offset}: {error}",
            phase=kind,
            type_name=type_name,
            index=offset,
            record=chunk[0] if chunk else None,
            statement=getattr(error, "statement", None),
            cause=error,
        )


class BatchLoader:
    """Validate and bulk-load `GraphData` into an AGE graph.

    Args:
        schema: A `GraphSchema` describing the labels being loaded.
        executor: Statement executor; defaults to the shared `age_manager`.
        store: Staging store; defaults to one on ``executor``. Each load works in
            its own namespace under it.
        graph_name: Graph to load into; defaults to the executor's graph.
    """

    def __init__(
        self,
        schema: Any,
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
        self.graph_name = graph_name

    def _knows(self, kind: RecordKind, type_name: str) -> bool:
        if kind == "vertices":
            return self.schema.has_vertex_label(type_name)
        return self.schema.has_edge_label(type_name)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_graph_data(self, data: GraphData | dict[str, Any]) -> GraphValidationReport:
        """Check every record against the schema; never raises on bad records.

        Returns:
            A report with one `LoadIssue` per failed check and a copy of the data
            holding only the records that passed.
        """
        data = _coerce_data(data)
        errors: list[LoadIssue] = []
        valid = GraphData()

        for kind, groups, target in (
            ("vertices", data.vertices, valid.vertices),
            ("edges", data.edges, valid.edges),
        ):
            for type_name, records in groups.items():
                kept: list[dict[str, Any]] = []
                for index, record in enumerate(records):
                    failures = self.schema.validate(type_name, record)
                    if not failures:
                        kept.append(record)
                        continue
                    for failure in failures:
                        errors.append(
                            LoadIssue(
                                phase="validation",
                                type=type_name,
                                index=index,
                                message=f"{failure.field}: {failure.message}",
                                record=record,
                            )
                        )
                target[type_name] = kept

        if errors:
            logger.info("Graph data failed validation", error_count=len(errors))
        return GraphValidationReport(valid=not errors, errors=tuple(errors), valid_data=valid)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load_graph_data(
        self, data: GraphData | dict[str, Any], options: LoadOptions | None = None, **overrides: Any
    ) -> LoadResult:
        """Load vertices, then edges, and return the sealed outcome.

        Keyword overrides are applied on top of ``options``
        (``load_graph_data(data, batch_size=500)``).

        Raises:
            BatchLoaderError: On the first failure when ``continue_on_error`` is off.
            OperationTimeoutError: When the load exceeds ``transaction_timeout``.
        """
        data = _coerce_data(data)
        options = _coerce_options(options, overrides)

        load_id = f"load_{uuid.uuid4().hex[:12]}"
        result = LoadResultBuilder(load_id=load_id)
        graph_name = options.graph_name or self.graph_name or self.executor.graph_name
        store = self.store if options.use_type_functions else self.store.scoped(load_id)
        run = _LoadRun(self, options, store, graph_name, result)

        logger.info(
            "Starting graph load",
            load_id=load_id,
            graph=graph_name,
            vertices=data.vertex_total,
            edges=data.edge_total,
            batch_size=options.batch_size,
            atomic=options.atomic,
        )
        try:
            if options.validate_data:
                data = self._validation_phase(data, options, result)
            if options.atomic:
                await run.run_atomic(data)
            else:
                await run.run_chunked(data)
        finally:
            await self._cleanup(store, data, options, load_id)

        outcome = result.build(run.elapsed)
        log = logger.info if outcome.success else logger.warning
        log(
            "Graph load finished",
            load_id=load_id,
            success=outcome.success,
            vertices=outcome.vertex_count,
            edges=outcome.edge_count,
            warnings=len(outcome.warnings),
            errors=len(outcome.errors),
            duration=round(outcome.duration, 3),
        )
        return outcome

    def _validation_phase(self, data: GraphData, options: LoadOptions, result: LoadResultBuilder) -> GraphData:
        report = self.validate_graph_data(data)
        if report.valid:
            return data
        if not options.continue_on_error:
            first = report.errors[0]
            cause = ValidationError(
                f"{len(report.errors)} problem(s) in graph data",
                errors=[
                    FieldError(field=f"{issue.type}[{issue.index}]", message=issue.message) for issue in report.errors
                ],
            )
            raise BatchLoaderError(
                f"Graph data failed validation: {first.message}",
                phase="validation",
                type_name=first.type,
                index=first.index,
                record=first.record,
                cause=cause,
            )
        result.extend_errors(report.errors)
        return report.valid_data

    async def _cleanup(self, store: StagingStore, data: GraphData, options: LoadOptions, load_id: str) -> None:
        try:
            if store.namespace and not options.use_type_functions:
                await store.delete_namespace()
                return
            for kind, groups in (("vertices", data.vertices), ("edges", data.edges)):
                for type_name in groups:
                    await store.delete(type_key(type_name, kind))
        except GraphClientError as e:
            logger.warning("Staging cleanup failed", load_id=load_id, error=str(e))

    async def load_vertices(
        self, vertices: dict[str, list[dict[str, Any]]], options: LoadOptions | None = None, **overrides: Any
    ) -> LoadResult:
        return await self.load_graph_data(GraphData(vertices=vertices), options, **overrides)

    async def load_edges(
        self, edges: dict[str, list[dict[str, Any]]], options: LoadOptions | None = None, **overrides: Any
    ) -> LoadResult:
        """Load edges only; their endpoint vertices must already exist."""
        return await self.load_graph_data(GraphData(edges=edges), options, **overrides)

    async def load_from_file(
        self, path: str | Path, options: LoadOptions | None = None, **overrides: Any
    ) -> LoadResult:
        """Load a ``.json`` / ``.yaml`` document shaped like `GraphData`."""
        logger.info("Loading graph data from file", path=str(path))
        return await self.load_graph_data(GraphData.from_file(path), options, **overrides)
