"""Root pytest fixtures for resilient-net tests."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest
import pytest_asyncio
from support import (
    FakeTransport,
    FlakyCredentialStore,
    FlakyStore,
    ScriptedProbe,
    fast_dispatcher_config,
)

from resilient_net.connectivity.monitor import ConnectivityMonitor
from resilient_net.connectivity.sources import QueueConnectivitySource
from resilient_net.dispatch.dispatcher import ResilientDispatcher
from resilient_net.events.bus import EventBus
from resilient_net.types.network import NetworkState

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def kv_store() -> FlakyStore:
    return FlakyStore()


@pytest.fixture
def credentials() -> FlakyCredentialStore:
    return FlakyCredentialStore()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def probe() -> ScriptedProbe:
    return ScriptedProbe()


@pytest.fixture
def source() -> QueueConnectivitySource:
    return QueueConnectivitySource(NetworkState.online())


@pytest.fixture
def monitor(source: QueueConnectivitySource, probe: ScriptedProbe, bus: EventBus) -> ConnectivityMonitor:
    """Monitor over the online source (call `initialize()` in the test)."""
    return ConnectivityMonitor(source, probe, bus)  # type: ignore[arg-type]


@pytest.fixture
def dispatcher(
    transport: FakeTransport,
    monitor: ConnectivityMonitor,
    bus: EventBus,
    kv_store: FlakyStore,
) -> ResilientDispatcher:
    return ResilientDispatcher(
        transport,  # type: ignore[arg-type]
        monitor,
        bus,
        kv_store,
        fast_dispatcher_config(),
    )


@pytest.fixture
def recorded(bus: EventBus) -> Callable[..., list[Any]]:
    """Subscribe a recorder to the given event kinds and return its list."""

    def _record(*kinds: str) -> list[Any]:
        events: list[Any] = []
        for kind in kinds:
            bus.subscribe(kind, events.append)
        return events

    return _record


@pytest_asyncio.fixture
async def live_monitor(monitor: ConnectivityMonitor) -> AsyncIterator[ConnectivityMonitor]:
    """Initialized monitor, shut down after the test."""
    await monitor.initialize()
    yield monitor
    await monitor.shutdown()


@pytest_asyncio.fixture
async def live_dispatcher(
    live_monitor: ConnectivityMonitor,
    dispatcher: ResilientDispatcher,
) -> AsyncIterator[ResilientDispatcher]:
    """Loaded and started dispatcher over an online monitor."""
    await dispatcher.load()
    dispatcher.start()
    yield dispatcher
    await dispatcher.close()
