"""连接监控：网络状态的唯一可信来源，并决定何时触发故障切换。

Connectivity monitor.

Holds the authoritative NetworkState, derives the quality class, keeps a
bounded history, publishes `state-changed` events and decides when a
failover run should start. Failover itself is delegated to a handler
(normally `FailoverCoordinator.run`), executed as a single tracked task.
"""

from __future__ import annotations

import asyncio
import os
from collections import Counter, deque
from contextlib import suppress
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from resilient_net.connectivity.quality import classify_quality, is_attachment_poor
from resilient_net.events.types import StateChanged
from resilient_net.telemetry.logger import get_logger
from resilient_net.types.network import AttachmentType, NetworkState, QualityClass

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from resilient_net.connectivity.probe import ConnectivityProbe, ProbeResult
    from resilient_net.connectivity.sources import ConnectivitySource
    from resilient_net.events.bus import EventBus, Subscription
    from resilient_net.events.types import EventKind
    from resilient_net.failover.store import BackupNetworkStore

logger = get_logger("resilient_net.connectivity.monitor")


@dataclass
class MonitorConfig:
    """Configuration for the connectivity monitor.

    Attributes:
        history_size: Number of states kept for statistics
        recent_history: Number of states included in `current()`
        probe_on_start: Run one probe during `initialize()`
    """

    history_size: int = 20
    recent_history: int = 5
    probe_on_start: bool = False

    @classmethod
    def from_env(cls) -> MonitorConfig:
        """Create configuration from environment variables.

        Reads ``RESILIENT_NET_MONITOR_HISTORY`` and
        ``RESILIENT_NET_MONITOR_PROBE_ON_START``.
        """
        return cls(
            history_size=int(os.getenv("RESILIENT_NET_MONITOR_HISTORY", "20")),
            probe_on_start=os.getenv("RESILIENT_NET_MONITOR_PROBE_ON_START", "0") == "1",
        )


@dataclass(frozen=True)
class ConnectivitySnapshot:
    """Point-in-time view returned by `ConnectivityMonitor.current()`."""

    state: NetworkState | None
    quality: QualityClass
    is_switching: bool
    last_probe: ProbeResult | None
    history: tuple[NetworkState, ...] = ()


@dataclass(frozen=True)
class ConnectivityStatistics:
    """History-derived connectivity statistics.

    Attributes:
        total: Number of states in the history
        success_rate: Percentage of states that were connected
        internet_success_rate: Percentage of states with confirmed internet
        type_distribution: Count of states per attachment type
        current_quality: Quality at the time of the call
        switch_in_progress: Whether a failover run is active
    """

    total: int
    success_rate: float
    internet_success_rate: float
    type_distribution: dict[str, int] = field(default_factory=dict)
    current_quality: QualityClass = QualityClass.DISCONNECTED
    switch_in_progress: bool = False


class ConnectivityMonitor:
    """Single source of truth for network state.

    Example:
        >>> monitor = ConnectivityMonitor(source, probe, bus, store=store)
        >>> monitor.set_failover_handler(coordinator.run)
        >>> await monitor.initialize()
        >>> monitor.current().quality
        <QualityClass.GOOD: 'good'>
    """

    def __init__(
        self,
        source: ConnectivitySource,
        probe: ConnectivityProbe,
        bus: EventBus,
        *,
        store: BackupNetworkStore | None = None,
        config: MonitorConfig | None = None,
    ) -> None:
        """Initialize the monitor.

        Args:
            source: Connectivity collaborator
            probe: Probe used by `force_probe()`
            bus: Shared event bus
            store: Backup catalogue, consulted for the poor-cellular trigger
            config: Monitor configuration
        """
        self._source = source
        self._probe = probe
        self._bus = bus
        self._store = store
        self._config = config or MonitorConfig()

        self._state: NetworkState | None = None
        self._last_probe: ProbeResult | None = None
        self._history: deque[NetworkState] = deque(maxlen=self._config.history_size)
        self._switching = False
        self._initialized = False

        self._watch_task: asyncio.Task[None] | None = None
        self._failover_task: asyncio.Task[Any] | None = None
        self._failover_handler: Callable[[], Awaitable[Any]] | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> NetworkState:
        """Take one snapshot and start consuming the change stream.

        Idempotent.

        Returns:
            The initial state
        """
        if self._initialized and self._state is not None:
            return self._state

        state = await self._source.snapshot()
        self._state = state
        self._history.append(state)
        self._initialized = True

        if self._config.probe_on_start and state.connected:
            await self.force_probe()

        self._watch_task = asyncio.get_running_loop().create_task(self._watch())
        logger.info(
            "Connectivity monitor initialized",
            attachment=state.attachment.value,
            connected=state.connected,
            reachable=state.internet_reachable,
        )
        return state

    async def shutdown(self) -> None:
        """Stop consuming changes and cancel an active failover run."""
        for task in (self._watch_task, self._failover_task):
            if task is not None and not task.done():
                task.cancel()
                with suppress(asyncio.CancelledError):
                    await task
        self._watch_task = None
        self._failover_task = None
        self._initialized = False
        logger.info("Connectivity monitor stopped")

    async def _watch(self) -> None:
        async for state in self._source.changes():
            try:
                await self.handle_state_change(state)
            except Exception:
                logger.exception("Failed to handle connectivity change")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def state(self) -> NetworkState | None:
        """Latest snapshot."""
        return self._state

    @property
    def is_switching(self) -> bool:
        """Whether a failover run is in progress."""
        return self._switching

    @property
    def is_reachable(self) -> bool:
        """Whether the current path is believed to reach the internet."""
        return self._state is not None and self._state.is_reachable

    @property
    def quality(self) -> QualityClass:
        """Current quality class."""
        return classify_quality(
            self._state, switching=self._switching, last_probe=self._last_probe
        )

    @property
    def last_probe(self) -> ProbeResult | None:
        """Most recent probe result."""
        return self._last_probe

    @property
    def failover_active(self) -> bool:
        """Whether a failover task is running."""
        return self._failover_task is not None and not self._failover_task.done()

    def current(self) -> ConnectivitySnapshot:
        """Get the current view without blocking."""
        recent = list(self._history)[-self._config.recent_history :]
        return ConnectivitySnapshot(
            state=self._state,
            quality=self.quality,
            is_switching=self._switching,
            last_probe=self._last_probe,
            history=tuple(recent),
        )

    def statistics(self) -> ConnectivityStatistics:
        """Summarize the state history."""
        history = list(self._history)
        total = len(history)
        connected = sum(1 for s in history if s.connected)
        reachable = sum(1 for s in history if s.internet_reachable)
        distribution = Counter(s.attachment.value for s in history)
        return ConnectivityStatistics(
            total=total,
            success_rate=(connected / total) * 100 if total else 0.0,
            internet_success_rate=(reachable / total) * 100 if total else 0.0,
            type_distribution=dict(distribution),
            current_quality=self.quality,
            switch_in_progress=self._switching,
        )

    def subscribe(self, kind: EventKind | str, handler: Callable[[Any], Any]) -> Subscription:
        """Register an event handler on the shared bus."""
        return self._bus.subscribe(kind, handler)

    async def force_probe(self) -> ProbeResult:
        """Run an out-of-band probe and record it as the last probe."""
        logger.debug("Forcing connectivity probe")
        result = await self._probe.probe()
        self.record_probe(result)
        return result

    def record_probe(self, result: ProbeResult) -> None:
        """Record a probe run elsewhere, such as failover verification."""
        self._last_probe = result

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    async def handle_state_change(self, state: NetworkState) -> None:
        """Apply a delivered state.

        Records it, publishes `state-changed` and starts failover when
        `should_failover` says so.
        """
        previous = self._state
        self._state = state
        self._history.append(state)

        logger.info(
            "Network state changed",
            attachment=state.attachment.value,
            connected=state.connected,
            reachable=state.internet_reachable,
        )
        self._bus.publish(StateChanged(current=state, previous=previous))

        if self.should_failover(previous, state):
            self._start_failover()

    def should_failover(self, previous: NetworkState | None, current: NetworkState) -> bool:
        """Decide whether a transition warrants a failover run."""
        if self._switching:
            return False

        if previous is not None and previous.connected and not current.connected:
            logger.info("Lost connectivity, attempting failover")
            return True

        if (
            previous is not None
            and previous.internet_reachable is True
            and current.internet_reachable is False
        ):
            logger.info("Lost internet access, attempting failover")
            return True

        if (
            current.connected
            and current.attachment == AttachmentType.CELLULAR
            and is_attachment_poor(current)
            and self._backup_count() > 0
        ):
            logger.info("Poor cellular connection, checking backup networks")
            return True

        return False

    def _backup_count(self) -> int:
        return len(self._store) if self._store is not None else 0

    # ------------------------------------------------------------------
    # Failover
    # ------------------------------------------------------------------

    def set_failover_handler(self, handler: Callable[[], Awaitable[Any]] | None) -> None:
        """Set the coroutine function run when failover triggers."""
        self._failover_handler = handler

    def begin_switch(self) -> bool:
        """Claim the switching flag.

        Returns:
            False if a switch is already in progress
        """
        if self._switching:
            return False
        self._switching = True
        return True

    def end_switch(self) -> None:
        """Release the switching flag."""
        self._switching = False

    async def trigger_failover(self) -> Any:
        """Manually start a failover run and wait for it.

        Returns:
            The handler's result, or None if the trigger was dropped
        """
        logger.info("Manual failover triggered")
        task = self._start_failover()
        if task is None:
            return None
        return await task

    def _start_failover(self) -> asyncio.Task[Any] | None:
        if self._failover_handler is None:
            logger.debug("No failover handler registered")
            return None
        if self.failover_active or self._switching:
            logger.info("Failover already in progress, trigger dropped")
            return None
        self._failover_task = asyncio.get_running_loop().create_task(self._run_failover())
        return self._failover_task

    async def _run_failover(self) -> Any:
        assert self._failover_handler is not None
        try:
            return await self._failover_handler()
        except Exception:
            logger.exception("Failover run raised")
            return None
