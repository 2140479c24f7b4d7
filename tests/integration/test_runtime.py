"""
End-to-end tests for the assembled delivery runtime.

Wires every component through DeliveryRuntime with scripted
collaborators at the edges (transport, attacher, connectivity source).
"""

from pathlib import Path

import pytest
from support import (
    FakeAttacher,
    FakeTransport,
    fast_dispatcher_config,
    fast_failover_config,
    wait_until,
)

from resilient_net import DeliveryRuntime, NetworkState, PriorityTier, RequestTarget
from resilient_net.connectivity import QueueConnectivitySource
from resilient_net.credentials import KeyringCredentialStore, MemoryCredentialStore
from resilient_net.events import EventKind, SwitchFailureReason
from resilient_net.failover import STORAGE_KEY as NETWORKS_KEY
from resilient_net.storage import FileStore

URL = "https://api.test/events"


async def _runtime(
    source: QueueConnectivitySource,
    transport: FakeTransport,
    storage: Path,
    **kwargs,
) -> DeliveryRuntime:
    kwargs.setdefault("credentials", MemoryCredentialStore())
    kwargs.setdefault("attacher", FakeAttacher())
    return await DeliveryRuntime.create(
        source,
        storage_path=storage,
        transport=transport,
        failover_config=fast_failover_config(),
        dispatcher_config=fast_dispatcher_config(),
        **kwargs,
    )


class TestRuntimeLifecycle:
    """Tests for create / start / close."""

    @pytest.mark.asyncio
    async def test_start_and_deliver(self, tmp_path: Path) -> None:
        """Test a started runtime delivers queued requests."""
        transport = FakeTransport()
        source = QueueConnectivitySource(NetworkState.online())
        async with await _runtime(source, transport, tmp_path) as runtime:
            assert runtime.started
            completed: list = []
            runtime.bus.subscribe(EventKind.REQUEST_COMPLETED, completed.append)

            await runtime.dispatcher.enqueue(RequestTarget(url=URL, method="POST"), PriorityTier.HIGH)
            await wait_until(lambda: len(completed) == 1)

        assert transport.urls == [URL]
        assert not transport.closed

    @pytest.mark.asyncio
    async def test_queue_survives_restart(self, tmp_path: Path) -> None:
        """Test requests queued offline are delivered by the next runtime."""
        transport = FakeTransport()
        offline = QueueConnectivitySource(NetworkState.disconnected())
        runtime = await _runtime(offline, transport, tmp_path)
        request_id = await runtime.dispatcher.enqueue(RequestTarget(url=URL))
        await runtime.close()
        assert transport.calls == []

        online = QueueConnectivitySource(NetworkState.online())
        runtime = await _runtime(online, transport, tmp_path)
        try:
            await wait_until(lambda: len(runtime.dispatcher) == 0)
        finally:
            await runtime.close()
        assert transport.urls == [URL]
        assert runtime.dispatcher.get(request_id) is None

    @pytest.mark.asyncio
    async def test_networks_survive_restart(self, tmp_path: Path) -> None:
        """Test the backup catalogue is reloaded on start."""
        credentials = MemoryCredentialStore()
        source = QueueConnectivitySource(NetworkState.online())
        runtime = await _runtime(source, FakeTransport(), tmp_path, credentials=credentials)
        await runtime.networks.add("Office", "pw", 3)
        await runtime.close()

        source = QueueConnectivitySource(NetworkState.online())
        runtime = await _runtime(source, FakeTransport(), tmp_path, credentials=credentials)
        try:
            office = runtime.networks.find("Office")
            assert office is not None
            assert await runtime.networks.resolve_credential(office) == "pw"
        finally:
            await runtime.close()

    @pytest.mark.asyncio
    async def test_corrupt_catalogue_logged(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test an unreadable catalogue does not prevent start."""
        await FileStore(tmp_path).set(NETWORKS_KEY, b"{broken")
        source = QueueConnectivitySource(NetworkState.online())
        runtime = await _runtime(source, FakeTransport(), tmp_path)
        try:
            assert runtime.started
            assert len(runtime.networks) == 0
            assert "Could not load backup networks" in caplog.text
        finally:
            await runtime.close()

    @pytest.mark.asyncio
    async def test_close_idempotent(self, tmp_path: Path) -> None:
        """Test closing twice is harmless."""
        source = QueueConnectivitySource(NetworkState.online())
        runtime = await _runtime(source, FakeTransport(), tmp_path)
        await runtime.close()
        await runtime.close()
        assert runtime.bus.handler_count() == 0

    @pytest.mark.asyncio
    async def test_create_without_start(self, tmp_path: Path) -> None:
        """Test start=False leaves the runtime idle."""
        runtime = await DeliveryRuntime.create(
            QueueConnectivitySource(NetworkState.online()),
            storage_path=tmp_path,
            start=False,
            transport=FakeTransport(),
            credentials=MemoryCredentialStore(),
        )
        assert not runtime.started
        assert runtime.monitor.state is None
        await runtime.close()


class TestCredentialDefaults:
    """Tests for the default credential store."""

    def test_keyring_used_when_available(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test the keyring store is the default when installed."""
        monkeypatch.setattr("resilient_net.runtime.HAS_KEYRING", True)
        runtime = DeliveryRuntime(QueueConnectivitySource(), transport=FakeTransport())
        assert isinstance(runtime.credentials, KeyringCredentialStore)

    def test_memory_fallback(
        self, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test a missing keyring falls back to memory with a warning."""
        monkeypatch.setattr("resilient_net.runtime.HAS_KEYRING", False)
        runtime = DeliveryRuntime(QueueConnectivitySource(), transport=FakeTransport())
        assert isinstance(runtime.credentials, MemoryCredentialStore)
        assert "keyring not installed" in caplog.text


class TestRuntimeFailover:
    """Tests for connectivity loss driving failover."""

    @pytest.mark.asyncio
    async def test_disconnect_switches_to_backup(self, tmp_path: Path) -> None:
        """Test losing the link joins the best backup and resumes the queue."""
        transport = FakeTransport()
        attacher = FakeAttacher({"Office": [False, True]})
        source = QueueConnectivitySource(NetworkState.online())
        runtime = await _runtime(source, transport, tmp_path, attacher=attacher)
        try:
            await runtime.networks.add("Cafe", None, 1)
            await runtime.networks.add("Office", "pw", 5)
            switched: list = []
            completed: list = []
            runtime.bus.subscribe(EventKind.SWITCH_SUCCEEDED, switched.append)
            runtime.bus.subscribe(EventKind.REQUEST_COMPLETED, completed.append)

            source.push(NetworkState.disconnected())
            await wait_until(lambda: len(switched) == 1)
            assert switched[0].candidate.name == "Office"
            assert attacher.attempts == [("Office", "pw"), ("Office", "pw")]
            assert not runtime.monitor.is_switching

            await runtime.dispatcher.enqueue(RequestTarget(url=URL))
            source.push(NetworkState.online())
            await wait_until(lambda: len(completed) == 1)
        finally:
            await runtime.close()

    @pytest.mark.asyncio
    async def test_unsupported_attacher_asks_user(self, tmp_path: Path) -> None:
        """Test platforms without attachment publish manual-action-required."""
        source = QueueConnectivitySource(NetworkState.online())
        runtime = await _runtime(
            source, FakeTransport(), tmp_path, attacher=FakeAttacher(supported=False)
        )
        try:
            await runtime.networks.add("Office", "pw", 2)
            manual: list = []
            failed: list = []
            runtime.bus.subscribe(EventKind.MANUAL_ACTION_REQUIRED, manual.append)
            runtime.bus.subscribe(EventKind.SWITCH_FAILED, failed.append)

            source.push(NetworkState.disconnected())
            await wait_until(lambda: len(failed) == 1)
            assert manual[0].candidate.name == "Office"
            assert failed[0].reason == SwitchFailureReason.MANUAL_ACTION_REQUIRED
        finally:
            await runtime.close()

    @pytest.mark.asyncio
    async def test_no_backups(self, tmp_path: Path) -> None:
        """Test failover without a catalogue reports no candidates."""
        source = QueueConnectivitySource(NetworkState.online())
        runtime = await _runtime(source, FakeTransport(), tmp_path)
        try:
            failed: list = []
            runtime.bus.subscribe(EventKind.SWITCH_FAILED, failed.append)
            source.push(NetworkState.disconnected())
            await wait_until(lambda: len(failed) == 1)
            assert failed[0].reason == SwitchFailureReason.NO_CANDIDATES
        finally:
            await runtime.close()
