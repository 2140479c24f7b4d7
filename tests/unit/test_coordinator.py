"""Tests for the failover coordinator."""

import asyncio

import pytest
from support import (
    FakeAttacher,
    FlakyCredentialStore,
    FlakyStore,
    ScriptedProbe,
    SleepRecorder,
    fast_failover_config,
)

from resilient_net.connectivity import ConnectivityMonitor
from resilient_net.errors import StoreError
from resilient_net.events import EventBus, EventKind, SwitchFailureReason
from resilient_net.failover import BackupNetworkStore, FailoverConfig, FailoverCoordinator
from resilient_net.types import NetworkState, QualityClass

OUTCOME_KINDS = (
    EventKind.SWITCH_STARTED,
    EventKind.SWITCH_SUCCEEDED,
    EventKind.SWITCH_FAILED,
    EventKind.MANUAL_ACTION_REQUIRED,
)


class BrokenProbe:
    async def probe(self):
        raise RuntimeError("probe exploded")


class SlowAttacher(FakeAttacher):
    async def associate(self, name: str, credential: str | None) -> bool:
        self.attempts.append((name, credential))
        await asyncio.sleep(1.0)
        return True


@pytest.fixture
def networks(kv_store: FlakyStore, credentials: FlakyCredentialStore) -> BackupNetworkStore:
    return BackupNetworkStore(kv_store, credentials)


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()


def _coordinator(
    monitor: ConnectivityMonitor,
    networks: BackupNetworkStore,
    attacher: FakeAttacher,
    probe,
    bus: EventBus,
    config: FailoverConfig | None = None,
    sleep: SleepRecorder | None = None,
) -> FailoverCoordinator:
    return FailoverCoordinator(
        monitor,
        networks,
        attacher,
        probe,
        bus,
        config or fast_failover_config(),
        sleep=sleep,
    )


class TestFailoverOutcomes:
    """Tests for run outcomes and published events."""

    @pytest.mark.asyncio
    async def test_no_candidates(self, monitor, networks, probe, bus, recorded) -> None:
        """An empty catalogue fails immediately."""
        events = recorded(*OUTCOME_KINDS)
        result = await _coordinator(monitor, networks, FakeAttacher(), probe, bus).run()

        assert not result.success
        assert result.reason == SwitchFailureReason.NO_CANDIDATES
        assert [e.kind for e in events] == [EventKind.SWITCH_STARTED, EventKind.SWITCH_FAILED]
        assert events[1].reason == SwitchFailureReason.NO_CANDIDATES
        assert not monitor.is_switching

    @pytest.mark.asyncio
    async def test_first_candidate_wins(self, monitor, networks, probe, bus, recorded) -> None:
        """The top-ranked reachable candidate is chosen."""
        await networks.add("Cafe", None, 1)
        await networks.add("Office", "pw", 5)
        attacher = FakeAttacher()
        events = recorded(*OUTCOME_KINDS)

        result = await _coordinator(monitor, networks, attacher, probe, bus).run()

        assert result.success
        assert result.candidate.name == "Office"
        assert result.tried == ("Office",)
        assert attacher.attempts == [("Office", "pw")]
        assert events[-1].kind == EventKind.SWITCH_SUCCEEDED
        assert events[-1].candidate.name == "Office"

    @pytest.mark.asyncio
    async def test_flag_released_before_outcome(self, monitor, networks, probe, bus) -> None:
        """Outcome handlers already see the switch as finished."""
        await networks.add("Office", None, 2)
        seen: list[bool] = []
        bus.subscribe(EventKind.SWITCH_SUCCEEDED, lambda e: seen.append(monitor.is_switching))
        bus.subscribe(EventKind.SWITCH_STARTED, lambda e: seen.append(monitor.is_switching))

        await _coordinator(monitor, networks, FakeAttacher(), probe, bus).run()

        assert seen == [True, False]

    @pytest.mark.asyncio
    async def test_unreachable_candidate_skipped(self, monitor, networks, bus) -> None:
        """A candidate whose probe fails is passed over."""
        await networks.add("Dead", None, 5)
        await networks.add("Alive", None, 1)
        probe = ScriptedProbe(False, True)

        result = await _coordinator(monitor, networks, FakeAttacher(), probe, bus).run()

        assert result.success
        assert result.candidate.name == "Alive"
        assert result.tried == ("Dead", "Alive")

    @pytest.mark.asyncio
    async def test_verification_updates_monitor(self, source, networks, bus) -> None:
        """The winning candidate's probe becomes the monitor's last probe."""
        monitor = ConnectivityMonitor(source, ScriptedProbe(latency_ms=5000.0), bus)
        await monitor.handle_state_change(NetworkState.online())
        await monitor.force_probe()
        assert monitor.quality == QualityClass.POOR

        await networks.add("Office", None, 2)
        verify = ScriptedProbe(latency_ms=20.0)
        result = await _coordinator(monitor, networks, FakeAttacher(), verify, bus).run()

        assert result.success
        assert monitor.last_probe.latency_ms == 20.0
        assert monitor.quality == QualityClass.EXCELLENT

    @pytest.mark.asyncio
    async def test_all_failed(self, monitor, networks, bus, recorded) -> None:
        """Every candidate unreachable ends in all-candidates-failed."""
        await networks.add("A", None, 2)
        await networks.add("B", None, 1)
        events = recorded(EventKind.SWITCH_FAILED)

        result = await _coordinator(
            monitor, networks, FakeAttacher(), ScriptedProbe(default=False), bus
        ).run()

        assert not result.success
        assert result.reason == SwitchFailureReason.ALL_CANDIDATES_FAILED
        assert result.tried == ("A", "B")
        assert events[0].detail == "All networks failed"

    @pytest.mark.asyncio
    async def test_manual_action_required(self, monitor, networks, probe, bus, recorded) -> None:
        """Without attachment support the user is asked to join the top candidate."""
        await networks.add("Low", None, 1)
        await networks.add("Top", "pw", 4)
        attacher = FakeAttacher(supported=False)
        events = recorded(*OUTCOME_KINDS)

        result = await _coordinator(monitor, networks, attacher, probe, bus).run()

        assert result.reason == SwitchFailureReason.MANUAL_ACTION_REQUIRED
        assert attacher.attempts == []
        assert [e.kind for e in events] == [
            EventKind.SWITCH_STARTED,
            EventKind.MANUAL_ACTION_REQUIRED,
            EventKind.SWITCH_FAILED,
        ]
        assert events[1].candidate.name == "Top"

    @pytest.mark.asyncio
    async def test_skipped_while_switching(self, monitor, networks, probe, bus, recorded) -> None:
        """A run started during another run does nothing."""
        await networks.add("Office", None, 2)
        events = recorded(*OUTCOME_KINDS)
        assert monitor.begin_switch()

        result = await _coordinator(monitor, networks, FakeAttacher(), probe, bus).run()

        assert result.skipped
        assert events == []
        assert monitor.is_switching
        monitor.end_switch()

    @pytest.mark.asyncio
    async def test_unexpected_error(self, monitor, networks, bus, recorded) -> None:
        """An unexpected exception ends the run with reason error."""
        await networks.add("Office", None, 2)
        events = recorded(EventKind.SWITCH_FAILED)

        result = await _coordinator(monitor, networks, FakeAttacher(), BrokenProbe(), bus).run()

        assert result.reason == SwitchFailureReason.ERROR
        assert "probe exploded" in result.detail
        assert events[0].reason == SwitchFailureReason.ERROR
        assert not monitor.is_switching


class TestCandidateAttempts:
    """Tests for per-candidate association."""

    @pytest.mark.asyncio
    async def test_association_backoff(self, monitor, networks, probe, bus, sleep) -> None:
        """Three refused attempts with 1s and 2s backoff, then the next candidate."""
        await networks.add("Refuses", None, 5)
        await networks.add("Accepts", None, 1)
        attacher = FakeAttacher({"Refuses": [False, False, False]})

        result = await _coordinator(
            monitor, networks, attacher, probe, bus, FailoverConfig(), sleep
        ).run()

        assert result.candidate.name == "Accepts"
        assert [a[0] for a in attacher.attempts] == ["Refuses"] * 3 + ["Accepts"]
        # Two backoff delays, then the settle delay for the winner
        assert sleep.delays == [1.0, 2.0, 3.0]
        assert probe.calls == 1

    @pytest.mark.asyncio
    async def test_association_recovers_on_retry(self, monitor, networks, probe, bus, sleep) -> None:
        """A refusal followed by success wins on the same candidate."""
        await networks.add("Flaky", None, 2)
        attacher = FakeAttacher({"Flaky": [False, True]})

        result = await _coordinator(monitor, networks, attacher, probe, bus, sleep=sleep).run()

        assert result.success
        assert len(attacher.attempts) == 2

    @pytest.mark.asyncio
    async def test_joined_despite_failure_is_probed(self, monitor, networks, probe, bus) -> None:
        """If the platform ended up on the candidate anyway, it is verified."""
        await networks.add("Sticky", None, 2)
        attacher = FakeAttacher({"Sticky": [False, False, False]}, current="Sticky")

        result = await _coordinator(monitor, networks, attacher, probe, bus).run()

        assert result.success
        assert probe.calls == 1

    @pytest.mark.asyncio
    async def test_association_timeout(self, monitor, networks, probe, bus) -> None:
        """Attempts exceeding the timeout count as failures."""
        await networks.add("Slow", None, 2)
        attacher = SlowAttacher()

        result = await _coordinator(
            monitor, networks, attacher, probe, bus, fast_failover_config(association_timeout=0.01)
        ).run()

        assert result.reason == SwitchFailureReason.ALL_CANDIDATES_FAILED
        assert len(attacher.attempts) == 3
        assert probe.calls == 0

    @pytest.mark.asyncio
    async def test_missing_credential_skipped(
        self, monitor, networks, credentials, probe, bus
    ) -> None:
        """A secure network whose secret vanished is skipped."""
        vanished = await networks.add("Vanished", "pw", 5)
        await networks.add("Open", None, 1)
        await credentials.delete(vanished.credential_ref)
        attacher = FakeAttacher()

        result = await _coordinator(monitor, networks, attacher, probe, bus).run()

        assert result.candidate.name == "Open"
        assert attacher.attempts == [("Open", None)]

    @pytest.mark.asyncio
    async def test_credential_store_error_skipped(
        self, monitor, networks, probe, bus, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A credential store failure skips the candidate."""
        await networks.add("Locked", "pw", 5)
        await networks.add("Open", None, 1)

        async def locked(network):
            if network.secure:
                raise StoreError("keychain locked")
            return None

        monkeypatch.setattr(networks, "resolve_credential", locked)
        attacher = FakeAttacher()

        result = await _coordinator(monitor, networks, attacher, probe, bus).run()

        assert result.candidate.name == "Open"
        assert result.tried == ("Locked", "Open")
