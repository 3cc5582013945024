# ui/progress_display.py
"""Render best-effort terminal progress for bulk graph loads.

[`LoadProgressDisplay`](ui/progress_display.py:40) is a callable that can be passed
as `LoadOptions.on_progress`. It keeps one Rich progress bar per record type and
phase. When Rich progress is disabled in configuration, each update is logged
instead.
"""

from __future__ import annotations

from typing import Any

import structlog
from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TaskID, TextColumn, TimeElapsedColumn

import config
from models.graph_data import LoadProgress

logger = structlog.get_logger(__name__)

_shared_console: Console | None = None


def get_shared_console() -> Console:
    """Return the process-wide Rich `Console`.

    Progress rendering and Rich logging share one console so log lines are
    printed above the bars instead of through them.
    """
    global _shared_console
    if _shared_console is None:
        _shared_console = Console()
    return _shared_console


class LoadProgressDisplay:
    """Show load progress as Rich progress bars.

    Lifecycle:
        - Use as a context manager, or call `start()` / `stop()` explicitly.
        - Pass the instance as ``on_progress``; it is invoked once per chunk.

    Rendering is best-effort. A failed refresh is logged at debug level and
    never interrupts the load.
    """

    def __init__(self, enabled: bool | None = None, console: Console | None = None) -> None:
        self.enabled = config.ENABLE_RICH_PROGRESS if enabled is None else enabled
        self.progress: Progress | None = None
        self._tasks: dict[tuple[str, str], TaskID] = {}
        if self.enabled:
            self.progress = Progress(
                TextColumn("[bold blue]{task.description}"),
                BarColumn(),
                MofNCompleteColumn(),
                TextColumn("batch {task.fields[batch]}"),
                TimeElapsedColumn(),
                console=console or get_shared_console(),
                transient=False,
            )

    def start(self) -> None:
        if self.progress is not None:
            self.progress.start()

    def stop(self) -> None:
        if self.progress is not None:
            self.progress.stop()

    def __enter__(self) -> LoadProgressDisplay:
        self.start()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.stop()

    def __call__(self, progress: LoadProgress) -> None:
        if self.progress is None:
            logger.info(
                "Load progress",
                phase=progress.phase,
                type=progress.type,
                processed=progress.processed,
                total=progress.total,
                batch=f"{progress.batch_number}/{progress.total_batches}",
                percentage=progress.percentage,
            )
            return

        key = (progress.phase, progress.type)
        batch = f"{progress.batch_number}/{progress.total_batches}"
        task_id = self._tasks.get(key)
        if task_id is None:
            task_id = self.progress.add_task(f"{progress.phase} {progress.type}", total=progress.total, batch=batch)
            self._tasks[key] = task_id
        try:
            self.progress.update(task_id, completed=progress.processed, total=progress.total, batch=batch)
        except Exception as e:
            logger.debug("Failed to refresh load progress display", error=str(e))

    def task_count(self) -> int:
        return len(self._tasks)
