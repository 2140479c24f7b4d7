"""
Delay scheduler for timed re-entries.

Backoff re-entries into the dispatch loop are registered here, keyed by
request id, instead of as free-floating timer callbacks. Scheduling the
same key again replaces the earlier entry, and cancelling a key (for
example when its request is removed) drops the re-entry.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from resilient_net.telemetry.logger import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

logger = get_logger("resilient_net.resilience.scheduler")


@dataclass
class ScheduledTask:
    """A pending timed callback.

    Attributes:
        key: Scheduling key
        due_at: Wall-clock time the callback fires
        handle: Event loop timer handle
    """

    key: str
    due_at: float
    handle: asyncio.TimerHandle | None = field(default=None, repr=False)

    @property
    def remaining(self) -> float:
        """Seconds until the callback fires."""
        return max(0.0, self.due_at - time.time())


class DelayScheduler:
    """Keyed delay queue on top of the running event loop.

    Example:
        >>> scheduler = DelayScheduler()
        >>> scheduler.schedule("req-1", 2.0, dispatcher.kick)
        >>> scheduler.cancel("req-1")
    """

    def __init__(self) -> None:
        self._tasks: dict[str, ScheduledTask] = {}
        self._closed = False

    def schedule(self, key: str, delay: float, callback: Callable[[], object]) -> ScheduledTask:
        """Run `callback` after `delay` seconds, replacing any entry for `key`.

        Args:
            key: Scheduling key
            delay: Delay in seconds
            callback: Zero-argument callable run on the event loop

        Returns:
            The scheduled task
        """
        if self._closed:
            raise RuntimeError("DelayScheduler is closed")

        self.cancel(key)
        loop = asyncio.get_running_loop()
        task = ScheduledTask(key=key, due_at=time.time() + delay)

        def _fire() -> None:
            if self._tasks.get(key) is not task:
                return
            del self._tasks[key]
            try:
                callback()
            except Exception:
                logger.exception("Scheduled callback raised", key=key)

        task.handle = loop.call_later(max(delay, 0.0), _fire)
        self._tasks[key] = task
        return task

    def cancel(self, key: str) -> bool:
        """Cancel the entry for `key`.

        Returns:
            True if an entry was cancelled
        """
        task = self._tasks.pop(key, None)
        if task is None:
            return False
        if task.handle is not None:
            task.handle.cancel()
        return True

    def cancel_all(self) -> int:
        """Cancel every entry.

        Returns:
            Number of cancelled entries
        """
        keys = list(self._tasks)
        for key in keys:
            self.cancel(key)
        return len(keys)

    def close(self) -> None:
        """Cancel everything and refuse further scheduling."""
        self.cancel_all()
        self._closed = True

    def get(self, key: str) -> ScheduledTask | None:
        """Get the pending entry for `key`."""
        return self._tasks.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)
