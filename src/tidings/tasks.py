"""
Background tasks for Tidings.

Remote calls never run on the foreground loop. Each one is submitted to a
runner, and whatever happens to it (result or exception) comes back as a
Completion on a queue that the foreground drains once per frame. The
foreground alone decides what a failure means (rollback, error banner).
"""

import logging
import queue
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Completion:
    """Outcome of a background task."""

    kind: str
    ok: bool
    value: Any = None
    error: Exception | None = None
    context: Any = None

    @property
    def message(self) -> str:
        return str(self.error) if self.error else ""


@dataclass
class TaskRunner:
    """
    Runs callables in a thread pool and posts their outcomes to a queue.

    With inline=True tasks run synchronously inside submit(), which makes
    the whole optimistic-update/rollback cycle deterministic in tests.
    """

    max_workers: int = 4
    inline: bool = False
    _completions: "queue.Queue[Completion]" = field(default_factory=queue.Queue, init=False)
    _executor: ThreadPoolExecutor | None = field(default=None, init=False)
    _pending: int = field(default=0, init=False)
    _idle: threading.Condition = field(default_factory=threading.Condition, init=False)

    def submit(
        self,
        kind: str,
        fn: Callable[..., Any],
        *args: Any,
        context: Any = None,
    ) -> None:
        """Run fn(*args) in the background; its outcome is posted as a Completion."""
        with self._idle:
            self._pending += 1

        if self.inline:
            self._run(kind, fn, args, context)
            return

        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.max_workers, thread_name_prefix="tidings"
            )
        self._executor.submit(self._run, kind, fn, args, context)

    def _run(self, kind: str, fn: Callable[..., Any], args: tuple, context: Any) -> None:
        try:
            value = fn(*args)
        except Exception as e:
            logger.exception(f"Background task {kind} failed: {e}")
            completion = Completion(kind=kind, ok=False, error=e, context=context)
        else:
            completion = Completion(kind=kind, ok=True, value=value, context=context)

        self._completions.put(completion)
        with self._idle:
            self._pending -= 1
            self._idle.notify_all()

    def drain(self) -> list[Completion]:
        """Take every completion posted so far, oldest first. Never blocks."""
        completions = []
        while True:
            try:
                completions.append(self._completions.get_nowait())
            except queue.Empty:
                return completions

    @property
    def busy(self) -> bool:
        with self._idle:
            return self._pending > 0

    def wait(self, timeout: float | None = None) -> bool:
        """Block until no task is running. Returns False on timeout."""
        with self._idle:
            return self._idle.wait_for(lambda: self._pending == 0, timeout=timeout)

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
