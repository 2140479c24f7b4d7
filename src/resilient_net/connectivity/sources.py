"""
Connectivity collaborators.

A ConnectivitySource supplies the current NetworkState and an async
stream of changes. Two implementations are provided:

- QueueConnectivitySource: fed by the host application (OS callbacks,
  tests) through `push()`
- PollingConnectivitySource: derives state from periodic probes when the
  host offers no change notifications
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from resilient_net.telemetry.logger import get_logger
from resilient_net.types.network import AttachmentType, NetworkState

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from resilient_net.connectivity.probe import ConnectivityProbe

logger = get_logger("resilient_net.connectivity.sources")


class ConnectivitySource(ABC):
    """Abstract connectivity collaborator."""

    @abstractmethod
    async def snapshot(self) -> NetworkState:
        """Get the current state."""
        ...

    @abstractmethod
    def changes(self) -> AsyncIterator[NetworkState]:
        """Stream state changes until the source is closed."""
        ...

    async def close(self) -> None:
        """Release resources and end the change stream."""


class QueueConnectivitySource(ConnectivitySource):
    """Push-fed source.

    Example:
        >>> source = QueueConnectivitySource(NetworkState.online())
        >>> source.push(NetworkState.disconnected())
    """

    def __init__(self, initial: NetworkState | None = None) -> None:
        self._current = initial or NetworkState.disconnected()
        self._queue: asyncio.Queue[NetworkState | None] = asyncio.Queue()
        self._closed = False

    @property
    def latest(self) -> NetworkState:
        """Most recently pushed state."""
        return self._current

    def push(self, state: NetworkState) -> None:
        """Report a new state."""
        if self._closed:
            raise RuntimeError("QueueConnectivitySource is closed")
        self._current = state
        self._queue.put_nowait(state)

    async def snapshot(self) -> NetworkState:
        return self._current

    async def changes(self) -> AsyncIterator[NetworkState]:
        while True:
            state = await self._queue.get()
            if state is None:
                return
            yield state

    async def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(None)


class PollingConnectivitySource(ConnectivitySource):
    """Probe-driven source.

    Each poll turns a probe result into a NetworkState; a change is
    emitted only when reachability flips.
    """

    def __init__(
        self,
        probe: ConnectivityProbe,
        *,
        interval: float = 15.0,
        attachment: AttachmentType = AttachmentType.OTHER,
    ) -> None:
        """Initialize the poller.

        Args:
            probe: Probe used for each poll
            interval: Seconds between polls
            attachment: Attachment type reported while reachable
        """
        self._probe = probe
        self._interval = interval
        self._attachment = attachment
        self._last: NetworkState | None = None
        self._closed = asyncio.Event()

    async def snapshot(self) -> NetworkState:
        result = await self._probe.probe()
        if result.success:
            state = NetworkState.online(self._attachment)
        else:
            state = NetworkState.disconnected()
        self._last = state
        return state

    async def changes(self) -> AsyncIterator[NetworkState]:
        while not self._closed.is_set():
            try:
                await asyncio.wait_for(self._closed.wait(), timeout=self._interval)
                return
            except asyncio.TimeoutError:
                pass
            previous = self._last
            state = await self.snapshot()
            if previous is None or previous.is_reachable != state.is_reachable:
                logger.debug("Polled connectivity changed", reachable=state.is_reachable)
                yield state

    async def close(self) -> None:
        self._closed.set()
