"""
Delivery runtime.

Builds the components in dependency order, shares one EventBus between
them and owns their start/shutdown lifecycle.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

from resilient_net._features import HAS_KEYRING
from resilient_net.connectivity.monitor import ConnectivityMonitor, MonitorConfig
from resilient_net.connectivity.probe import ConnectivityProbe, ProbeConfig
from resilient_net.credentials.stores import (
    CredentialStore,
    KeyringCredentialStore,
    MemoryCredentialStore,
)
from resilient_net.dispatch.dispatcher import DispatcherConfig, ResilientDispatcher
from resilient_net.errors import StoreError
from resilient_net.events.bus import EventBus
from resilient_net.failover.attach import NetworkAttacher, UnsupportedAttacher
from resilient_net.failover.coordinator import FailoverConfig, FailoverCoordinator
from resilient_net.failover.store import BackupNetworkStore
from resilient_net.storage.backends import FileStore, KeyValueStore, MemoryStore
from resilient_net.telemetry.logger import get_logger
from resilient_net.transport.http import HttpTransport

if TYPE_CHECKING:
    from resilient_net.connectivity.sources import ConnectivitySource

logger = get_logger("resilient_net.runtime")


def _default_credentials() -> CredentialStore:
    if HAS_KEYRING:
        return KeyringCredentialStore()
    logger.warning(
        "keyring not installed, backup network credentials are kept in memory only",
        hint="pip install resilient-net[keyring]",
    )
    return MemoryCredentialStore()


class DeliveryRuntime:
    """Assembled delivery subsystem.

    Example:
        >>> source = QueueConnectivitySource(NetworkState.online())
        >>> async with await DeliveryRuntime.create(source, storage_path="~/.resilient-net") as rt:
        ...     await rt.networks.add("Home", "secret", priority_rank=3)
        ...     data = await rt.dispatcher.make_resilient_call(RequestTarget(url=url))
    """

    def __init__(
        self,
        source: ConnectivitySource,
        *,
        transport: HttpTransport | None = None,
        kv_store: KeyValueStore | None = None,
        credentials: CredentialStore | None = None,
        attacher: NetworkAttacher | None = None,
        bus: EventBus | None = None,
        probe_config: ProbeConfig | None = None,
        monitor_config: MonitorConfig | None = None,
        failover_config: FailoverConfig | None = None,
        dispatcher_config: DispatcherConfig | None = None,
    ) -> None:
        """Wire the components (internal use).

        Use DeliveryRuntime.create() for public construction.
        """
        self._source = source
        self._owns_transport = transport is None
        self.transport = transport or HttpTransport()
        self.kv_store = kv_store or MemoryStore()
        self.credentials = credentials or _default_credentials()
        self.attacher = attacher or UnsupportedAttacher()
        self.bus = bus or EventBus()

        self.probe = ConnectivityProbe(self.transport, probe_config)
        self.networks = BackupNetworkStore(self.kv_store, self.credentials)
        self.monitor = ConnectivityMonitor(
            source, self.probe, self.bus, store=self.networks, config=monitor_config
        )
        self.failover = FailoverCoordinator(
            self.monitor,
            self.networks,
            self.attacher,
            self.probe,
            self.bus,
            failover_config,
        )
        self.monitor.set_failover_handler(self.failover.run)
        self.dispatcher = ResilientDispatcher(
            self.transport, self.monitor, self.bus, self.kv_store, dispatcher_config
        )
        self._started = False
        self._closed = False

    @classmethod
    async def create(
        cls,
        source: ConnectivitySource,
        *,
        storage_path: str | Path | None = None,
        start: bool = True,
        **kwargs: Any,
    ) -> DeliveryRuntime:
        """Create a runtime.

        Args:
            source: Connectivity collaborator
            storage_path: Directory for durable state (a FileStore); ignored
                when `kv_store` is passed
            start: Start the runtime before returning
            **kwargs: Collaborators and configs accepted by the constructor

        Returns:
            DeliveryRuntime
        """
        if storage_path is not None and kwargs.get("kv_store") is None:
            kwargs["kv_store"] = FileStore(Path(storage_path).expanduser())
        runtime = cls(source, **kwargs)
        if start:
            await runtime.start()
        return runtime

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        """Load durable state, start monitoring and resume the queue."""
        if self._started:
            return
        try:
            await self.networks.load()
        except StoreError:
            logger.exception("Could not load backup networks, starting with none")
        await self.monitor.initialize()
        await self.dispatcher.load()
        self.dispatcher.start()
        self._started = True
        logger.info(
            "Delivery runtime started",
            backup_networks=len(self.networks),
            queued=len(self.dispatcher),
            quality=self.monitor.quality.value,
        )

    async def close(self) -> None:
        """Stop every component and release resources."""
        if self._closed:
            return
        self._closed = True
        await self.dispatcher.close()
        await self.monitor.shutdown()
        await self._source.close()
        self.bus.clear()
        if self._owns_transport:
            await self.transport.close()
        await self.kv_store.close()
        logger.info("Delivery runtime closed")

    async def __aenter__(self) -> DeliveryRuntime:
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()
