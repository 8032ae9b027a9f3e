"""Fire-and-forget background operations and the bookkeeping of their results."""

import logging
import queue
import threading
from enum import Enum
from typing import Callable, List, Optional, Tuple, Union

from ghall.domain.messages import ErrorLogEntry, OrgsLoaded, TaskResult

logger = logging.getLogger(__name__)

TaskMessage = Union[TaskResult, OrgsLoaded]


class RefreshKind(Enum):
    FULL = "full"
    LOCAL = "local"


class RefreshLatch:
    """
    Pending-refresh flags set by completed operations.

    Flags are booleans, so any number of completions between two drains
    collapse into a single follow-up refresh. A pending full refresh always
    supersedes a pending local-only one.
    """

    def __init__(self):
        self.full = False
        self.local = False

    def latch(self, invalidates_github_cache: bool) -> None:
        if invalidates_github_cache:
            self.full = True
        else:
            self.local = True

    @property
    def pending(self) -> bool:
        return self.full or self.local

    def take(self) -> Optional[RefreshKind]:
        """Return the refresh to run now and clear both flags."""
        if self.full:
            kind = RefreshKind.FULL
        elif self.local:
            kind = RefreshKind.LOCAL
        else:
            return None
        self.full = False
        self.local = False
        return kind


class ErrorLog:
    """Append-only, in-memory log of failed operations; lives as long as the process."""

    def __init__(self):
        self._entries: List[ErrorLogEntry] = []

    def append(self, operation: str, message: str) -> ErrorLogEntry:
        entry = ErrorLogEntry(operation=operation, message=message)
        self._entries.append(entry)
        return entry

    @property
    def entries(self) -> Tuple[ErrorLogEntry, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def to_lines(self) -> List[str]:
        lines = []
        for entry in self._entries:
            lines.extend([f"[{entry.timestamp}] {entry.operation}", entry.message, ""])
        return lines


class TaskExecutor:
    """
    Runs one background unit per user action on its own daemon thread.

    Each unit delivers exactly one message on a bounded queue; the owner of the
    application state drains it without blocking once per loop iteration.
    Units cannot be cancelled and results still queued at exit are dropped.
    """

    CHANNEL_CAPACITY = 32

    def __init__(self, capacity: int = CHANNEL_CAPACITY):
        self._results: "queue.Queue[TaskMessage]" = queue.Queue(maxsize=capacity)

    def spawn(
        self,
        operation: str,
        work: Callable[[], TaskResult],
        invalidates_github_cache: bool = False,
    ) -> threading.Thread:
        """
        Start ``work`` in the background.

        Args:
            operation: Label used in logs and in the error log
            work: Callable producing the TaskResult; exceptions it raises are
                converted into a failed TaskResult
            invalidates_github_cache: Refresh kind to request if ``work`` crashes

        Returns:
            The started thread
        """
        def run():
            try:
                result = work()
            except Exception as e:
                logger.error(f"Background operation '{operation}' crashed: {e}", exc_info=True)
                result = TaskResult(
                    success=False,
                    message=f"{operation.capitalize()} failed (E: view errors)",
                    operation=operation,
                    stderr=f"{type(e).__name__}: {e}",
                    invalidates_github_cache=invalidates_github_cache,
                )
            self._results.put(result)

        thread = threading.Thread(target=run, name=f"ghall-{operation}", daemon=True)
        thread.start()
        logger.info(f"Started background operation: {operation}")
        return thread

    def spawn_message(self, name: str, produce: Callable[[], TaskMessage]) -> threading.Thread:
        """Run a background fetch whose payload is not a TaskResult; failures are only logged."""
        def run():
            try:
                message = produce()
            except Exception as e:
                logger.warning(f"Background fetch '{name}' failed: {e}")
                return
            self._results.put(message)

        thread = threading.Thread(target=run, name=f"ghall-{name}", daemon=True)
        thread.start()
        return thread

    def drain(self) -> List[TaskMessage]:
        """Return every message delivered so far without waiting for more."""
        messages = []
        while True:
            try:
                messages.append(self._results.get_nowait())
            except queue.Empty:
                return messages
