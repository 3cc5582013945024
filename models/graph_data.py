# models/graph_data.py
"""Define the payload, option and result models of a bulk graph load.

Notes:
- [`GraphData`](models/graph_data.py:30) is the input: records grouped by vertex label and by
  edge label. Edge records reference their endpoints through `from`/`to`, which match the
  identifier property of the source/target vertex label.
- [`LoadResult`](models/graph_data.py:140) is frozen. The loader accumulates into a
  [`LoadResultBuilder`](models/graph_data.py:175) and seals it once, when the call returns.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field

import config
from utils.file_io import load_structured_file

LoadPhase = Literal["validation", "vertices", "edges", "transaction", "cleanup"]

EDGE_FROM_FIELD = "from"
EDGE_TO_FIELD = "to"


class GraphData(BaseModel):
    """Records to load, grouped by label."""

    vertices: dict[str, list[dict[str, Any]]] = Field(default_factory=dict)
    edges: dict[str, list[dict[str, Any]]] = Field(default_factory=dict)

    @property
    def vertex_total(self) -> int:
        return sum(len(records) for records in self.vertices.values())

    @property
    def edge_total(self) -> int:
        return sum(len(records) for records in self.edges.values())

    @classmethod
    def from_file(cls, path: str | Path) -> GraphData:
        """Load graph data from a ``.json``, ``.yaml`` or ``.yml`` document."""
        return cls.model_validate(load_structured_file(path))


class LoadProgress(BaseModel):
    """Progress snapshot emitted after every committed chunk."""

    model_config = ConfigDict(frozen=True)

    phase: Literal["vertices", "edges"]
    type: str
    processed: int
    total: int
    batch_number: int
    total_batches: int
    elapsed: float

    @computed_field  # type: ignore[prop-decorator]
    @property
    def percentage(self) -> float:
        if self.total <= 0:
            return 100.0
        return round(self.processed * 100.0 / self.total, 2)


ProgressCallback = Callable[[LoadProgress], Awaitable[None] | None]


class LoadOptions(BaseModel):
    """Tuning knobs for one load call. Unset values come from configuration."""

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid")

    batch_size: int = Field(default_factory=lambda: config.settings.BATCH_SIZE, ge=1)
    continue_on_error: bool = False
    validate_data: bool = Field(default_factory=lambda: config.settings.VALIDATE_BEFORE_LOAD)
    transaction_timeout: float = Field(
        default_factory=lambda: config.settings.TRANSACTION_TIMEOUT_SECONDS, gt=0
    )
    max_parallel_batches: int = Field(default_factory=lambda: config.settings.MAX_PARALLEL_BATCHES, ge=1)
    atomic: bool = False
    graph_name: str | None = None
    use_type_functions: bool = False
    on_progress: ProgressCallback | None = None


class LoadIssue(BaseModel):
    """One warning or error recorded during a load."""

    model_config = ConfigDict(frozen=True)

    phase: LoadPhase
    type: str | None = None
    index: int | None = None
    message: str
    record: Any = None


class LoadResult(BaseModel):
    """Outcome of a load call. Sealed: fields cannot be reassigned."""

    model_config = ConfigDict(frozen=True)

    success: bool
    vertex_count: int = 0
    edge_count: int = 0
    vertex_counts: dict[str, int] = Field(default_factory=dict)
    edge_counts: dict[str, int] = Field(default_factory=dict)
    warnings: tuple[LoadIssue, ...] = ()
    errors: tuple[LoadIssue, ...] = ()
    duration: float = 0.0
    load_id: str | None = None


class GraphValidationReport(BaseModel):
    """Result of validating a payload without loading it."""

    model_config = ConfigDict(frozen=True)

    valid: bool
    errors: tuple[LoadIssue, ...] = ()
    valid_data: GraphData = Field(default_factory=GraphData)


@dataclass
class LoadResultBuilder:
    """Append-only accumulator behind a `LoadResult`."""

    load_id: str | None = None
    vertex_counts: dict[str, int] = field(default_factory=dict)
    edge_counts: dict[str, int] = field(default_factory=dict)
    warnings: list[LoadIssue] = field(default_factory=list)
    errors: list[LoadIssue] = field(default_factory=list)

    def add_vertices(self, type_name: str, created: int) -> None:
        self.vertex_counts[type_name] = self.vertex_counts.get(type_name, 0) + created

    def add_edges(self, type_name: str, created: int) -> None:
        self.edge_counts[type_name] = self.edge_counts.get(type_name, 0) + created

    def warn(self, phase: LoadPhase, message: str, type_name: str | None = None, index: int | None = None) -> None:
        self.warnings.append(LoadIssue(phase=phase, type=type_name, index=index, message=message))

    def error(
        self,
        phase: LoadPhase,
        message: str,
        type_name: str | None = None,
        index: int | None = None,
        record: Any = None,
    ) -> None:
        self.errors.append(LoadIssue(phase=phase, type=type_name, index=index, message=message, record=record))

    def extend_errors(self, issues: list[LoadIssue] | tuple[LoadIssue, ...]) -> None:
        self.errors.extend(issues)

    def build(self, duration: float) -> LoadResult:
        return LoadResult(
            success=not self.errors,
            vertex_count=sum(self.vertex_counts.values()),
            edge_count=sum(self.edge_counts.values()),
            vertex_counts=dict(self.vertex_counts),
            edge_counts=dict(self.edge_counts),
            warnings=tuple(self.warnings),
            errors=tuple(self.errors),
            duration=duration,
            load_id=self.load_id,
        )
