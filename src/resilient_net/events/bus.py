"""
Typed publish/subscribe channel.

Handlers are registered per event kind, run in registration order, and
are isolated from each other: an exception raised by one handler is logged
and never reaches the publisher or the remaining handlers.
"""

from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from resilient_net.events.types import EventKind
from resilient_net.telemetry.logger import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

    from resilient_net.events.types import Event

logger = get_logger("resilient_net.events")


@dataclass
class Subscription:
    """Explicit unsubscribe token returned by `EventBus.subscribe`.

    Attributes:
        kind: Event kind subscribed to
        handler: Registered callback
        seq: Registration sequence number
    """

    kind: EventKind
    handler: Callable[[Any], Any]
    seq: int
    _bus: EventBus | None = field(default=None, repr=False)

    @property
    def active(self) -> bool:
        """Check if the subscription is still registered."""
        return self._bus is not None

    def cancel(self) -> bool:
        """Unsubscribe.

        Returns:
            True if removed, False if already cancelled
        """
        if self._bus is None:
            return False
        removed = self._bus._remove(self)
        self._bus = None
        return removed


class EventBus:
    """Publish/subscribe channel keyed by `EventKind`.

    Handlers may be plain callables or coroutine functions; coroutine
    results are scheduled as tasks on the running loop.

    Example:
        >>> bus = EventBus()
        >>> sub = bus.subscribe(EventKind.REQUEST_COMPLETED, lambda e: print(e.request.id))
        >>> bus.publish(RequestCompleted(request=req))
        >>> sub.cancel()
    """

    def __init__(self) -> None:
        self._handlers: dict[EventKind, list[Subscription]] = {}
        self._seq = itertools.count()
        self._tasks: set[asyncio.Task[Any]] = set()

    def subscribe(
        self,
        kind: EventKind | str,
        handler: Callable[[Any], Any],
    ) -> Subscription:
        """Register a handler for one event kind.

        Args:
            kind: Event kind (enum or its string value, e.g. "request-failed")
            handler: Callback receiving the event

        Returns:
            Subscription token
        """
        kind = EventKind(kind)
        sub = Subscription(kind=kind, handler=handler, seq=next(self._seq), _bus=self)
        self._handlers.setdefault(kind, []).append(sub)
        return sub

    def _remove(self, sub: Subscription) -> bool:
        subs = self._handlers.get(sub.kind, [])
        if sub in subs:
            subs.remove(sub)
            return True
        return False

    def handler_count(self, kind: EventKind | str | None = None) -> int:
        """Count registered handlers, optionally for one kind."""
        if kind is None:
            return sum(len(s) for s in self._handlers.values())
        return len(self._handlers.get(EventKind(kind), []))

    def publish(self, event: Event) -> None:
        """Deliver an event to every handler of its kind.

        Args:
            event: Event to publish
        """
        # Copy so handlers may unsubscribe while being notified
        for sub in list(self._handlers.get(event.kind, [])):
            try:
                result = sub.handler(event)
                if asyncio.iscoroutine(result):
                    self._spawn(result, event.kind)
            except Exception:
                logger.exception(
                    "Event handler raised",
                    event=event.kind.value,
                    handler=getattr(sub.handler, "__qualname__", repr(sub.handler)),
                )

    def _spawn(self, coro: Any, kind: EventKind) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)

        def _done(t: asyncio.Task[Any]) -> None:
            self._tasks.discard(t)
            if not t.cancelled() and t.exception() is not None:
                logger.error(
                    "Async event handler raised",
                    event=kind.value,
                    error=repr(t.exception()),
                )

        task.add_done_callback(_done)

    def clear(self) -> None:
        """Remove all handlers and cancel pending async handler tasks."""
        for subs in self._handlers.values():
            for sub in subs:
                sub._bus = None
        self._handlers.clear()
        for task in self._tasks:
            task.cancel()
        self._tasks.clear()
