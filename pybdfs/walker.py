"""Recursive traversal of a remote directory tree."""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, cast

from .models import FileEntry

if TYPE_CHECKING:
    from .api import PanClient

logger = logging.getLogger(__name__)

# Marks the end of the entry stream
_DONE = object()

# How often a blocked producer re-checks for cancellation
_PUT_POLL_INTERVAL = 0.1


@dataclass
class WalkError:
    """A directory that could not be listed during a walk."""

    path: str
    error: Exception

    def __str__(self) -> str:
        return f"{self.path}: {self.error}"


class DirectoryWalk:
    """A running walk over one remote subtree.

    Entries are produced by a background thread into a queue holding a
    single item, so the producer only lists ahead as fast as the consumer
    reads. Iterate over the walk to receive entries in depth-first
    pre-order. Listing failures go to :attr:`errors`; the failing branch is
    skipped and its siblings are still visited.

    Example:
        >>> with client.walk("/photos") as walk:  # doctest: +SKIP
        ...     for entry in walk:
        ...         print(entry.path)
        ...     failed = walk.error_list()
    """

    def __init__(self, client: PanClient, root_path: str):
        self.client = client
        self.root_path = root_path
        self.errors: queue.Queue[WalkError] = queue.Queue()
        self._entries: queue.Queue[object] = queue.Queue(maxsize=1)
        self._stop = threading.Event()
        self._finished = False
        self._thread = threading.Thread(
            target=self._run, name=f"walk:{root_path}", daemon=True
        )

    def start(self) -> DirectoryWalk:
        """Start the producer thread."""
        self._thread.start()
        return self

    def __iter__(self) -> Iterator[FileEntry]:
        return self

    def __next__(self) -> FileEntry:
        if self._finished:
            raise StopIteration
        item = self._entries.get()
        if item is _DONE:
            self._finished = True
            self._thread.join()
            raise StopIteration
        return cast(FileEntry, item)

    def __enter__(self) -> DirectoryWalk:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        """Stop the walk early and wait for the producer to exit."""
        self._stop.set()
        # Unblock a producer waiting on a full queue
        while True:
            try:
                self._entries.get_nowait()
            except queue.Empty:
                break
        if self._thread.is_alive():
            self._thread.join()
        self._finished = True

    def error_list(self) -> list[WalkError]:
        """Drain and return the errors collected so far."""
        errors = []
        while True:
            try:
                errors.append(self.errors.get_nowait())
            except queue.Empty:
                return errors

    def _run(self) -> None:
        try:
            self._walk()
        finally:
            self._put(_DONE)

    def _walk(self) -> None:
        entries = self._list(self.root_path)
        if entries is None:
            return

        # Stack of sibling iterators; the top is the directory being expanded
        stack = [iter(entries)]
        while stack:
            entry = next(stack[-1], None)
            if entry is None:
                stack.pop()
                continue
            if not self._put(entry):
                return
            if entry.is_dir:
                children = self._list(entry.path)
                if children is not None:
                    stack.append(iter(children))

    def _list(self, path: str) -> Optional[list[FileEntry]]:
        if self._stop.is_set():
            return None
        try:
            return self.client.list_files(path)
        except Exception as e:
            # Malformed listings count as failures of that directory
            logger.warning(f"Failed to list {path}: {e}")
            self.errors.put(WalkError(path, e))
            return None

    def _put(self, item: object) -> bool:
        """Put an item on the entry queue, giving up if the walk was closed."""
        while not self._stop.is_set():
            try:
                self._entries.put(item, timeout=_PUT_POLL_INTERVAL)
                return True
            except queue.Full:
                continue
        return False


class DirectoryWalker:
    """Expands remote directories into a flat stream of entries."""

    def __init__(self, client: PanClient):
        self.client = client

    def walk(self, root_path: str = "/") -> DirectoryWalk:
        """Start walking ``root_path``.

        The root itself is not emitted, only its descendants.
        """
        return DirectoryWalk(self.client, root_path).start()
