from __future__ import annotations

import threading

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)

from adbmirror.models import ProgressEvent


def _shorten_path(path: str, max_len: int = 64) -> str:
    if len(path) <= max_len:
        return path
    keep = max_len - 3
    head = keep // 2
    tail = keep - head
    return f"{path[:head]}...{path[-tail:]}"


class SyncProgressUI:
    """Rich progress bar driven by :class:`ProgressEvent` notifications.

    Events arrive on the sync worker thread; the instance is itself a
    progress listener.
    """

    def __init__(self, console: Console | None = None, *, transient: bool = False) -> None:
        self._lock = threading.Lock()
        self._task_id: TaskID | None = None
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold]{task.fields[action]}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            TextColumn("{task.fields[path]}"),
            console=console,
            transient=transient,
            expand=True,
        )

    def __enter__(self) -> "SyncProgressUI":
        self._progress.__enter__()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._progress.__exit__(exc_type, exc, tb)

    def __call__(self, event: ProgressEvent) -> None:
        with self._lock:
            action = "Planning" if event.dry_run else "Mirroring"
            path = _shorten_path(event.current_file or "")
            if self._task_id is None:
                self._task_id = self._progress.add_task(
                    "sync",
                    total=event.total_files,
                    action=action,
                    path=path,
                )
            self._progress.update(
                self._task_id,
                total=event.total_files,
                completed=min(event.processed_files, event.total_files),
                path=path,
            )
