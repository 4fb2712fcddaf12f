"""CLI progress display for uploads and downloads.

This module provides a Rich-based progress bar fed by the
``progress_callback(bytes_done, total_bytes)`` hooks of the client.
"""

from typing import Optional

from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TaskProgressColumn,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)


class TransferProgressDisplay:
    """Rich progress bar for a single file transfer.

    Use as a context manager and pass :meth:`update` as the progress
    callback. When ``enabled`` is False the display does nothing, which is
    how quiet and JSON modes suppress it.
    """

    def __init__(self, description: str, enabled: bool = True) -> None:
        self.description = description
        self.enabled = enabled
        self._progress: Optional[Progress] = None
        self._task: Optional[TaskID] = None

    def __enter__(self) -> "TransferProgressDisplay":
        """Enter context manager - start progress display."""
        if not self.enabled:
            return self
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            DownloadColumn(),
            TransferSpeedColumn(),
            TimeRemainingColumn(),
            console=Console(stderr=True),
            refresh_per_second=4,
        )
        self._progress.__enter__()
        self._task = self._progress.add_task(self.description, total=None)
        return self

    def update(self, completed: int, total: int) -> None:
        """Progress callback: bytes transferred so far and total bytes."""
        if self._progress is None or self._task is None:
            return
        self._progress.update(self._task, completed=completed, total=total or None)

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit context manager - stop progress display."""
        if self._progress is not None:
            self._progress.__exit__(exc_type, exc_val, exc_tb)
            self._progress = None
            self._task = None
