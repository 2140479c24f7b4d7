"""
Failover coordinator.

Walks the backup catalogue in priority order and tries to re-establish a
reachable path: resolve the credential, associate with retry and
backoff, let the link settle, then verify with a probe. The first
candidate whose probe succeeds wins.

The coordinator shares the monitor's switching flag, so a run started
while another is active returns immediately, and the flag is always
released before the outcome event is published.
"""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from resilient_net.errors import AssociationError, StoreError
from resilient_net.events.types import (
    Event,
    ManualActionRequired,
    SwitchFailed,
    SwitchFailureReason,
    SwitchStarted,
    SwitchSucceeded,
)
from resilient_net.resilience.retry import RetryConfig, RetryPolicy
from resilient_net.telemetry.logger import get_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from resilient_net.connectivity.monitor import ConnectivityMonitor
    from resilient_net.connectivity.probe import ConnectivityProbe
    from resilient_net.events.bus import EventBus
    from resilient_net.failover.attach import NetworkAttacher
    from resilient_net.failover.store import BackupNetworkStore
    from resilient_net.types.network import BackupNetwork

logger = get_logger("resilient_net.failover")


@dataclass
class FailoverConfig:
    """Configuration for failover runs.

    Attributes:
        settle_delay: Seconds to wait after association before probing
        association_timeout: Timeout of one association attempt in seconds
        retry: Backoff schedule for association attempts
    """

    settle_delay: float = 3.0
    association_timeout: float = 30.0
    retry: RetryConfig = field(default_factory=RetryConfig.association)

    @classmethod
    def from_env(cls) -> FailoverConfig:
        """Create configuration from environment variables.

        Reads ``RESILIENT_NET_FAILOVER_SETTLE_SECS``,
        ``RESILIENT_NET_FAILOVER_ASSOCIATION_TIMEOUT_SECS`` and the
        ``RESILIENT_NET_FAILOVER_RETRY_*`` backoff variables.
        """
        return cls(
            settle_delay=float(os.getenv("RESILIENT_NET_FAILOVER_SETTLE_SECS", "3")),
            association_timeout=float(
                os.getenv("RESILIENT_NET_FAILOVER_ASSOCIATION_TIMEOUT_SECS", "30")
            ),
            retry=RetryConfig.from_env(
                "RESILIENT_NET_FAILOVER_RETRY", base=RetryConfig.association()
            ),
        )


@dataclass(frozen=True)
class FailoverResult:
    """Outcome of one failover run.

    Attributes:
        success: Whether a candidate was attached and verified
        candidate: The winning candidate
        reason: Why the run failed
        detail: Extra failure description
        tried: Names of the candidates attempted, in order
        skipped: True if the run was dropped because another was active
    """

    success: bool
    candidate: BackupNetwork | None = None
    reason: SwitchFailureReason | None = None
    detail: str | None = None
    tried: tuple[str, ...] = ()
    skipped: bool = False


class FailoverCoordinator:
    """Attempts backup networks in priority order.

    Example:
        >>> coordinator = FailoverCoordinator(monitor, store, attacher, probe, bus)
        >>> monitor.set_failover_handler(coordinator.run)
        >>> result = await coordinator.run()
    """

    def __init__(
        self,
        monitor: ConnectivityMonitor,
        store: BackupNetworkStore,
        attacher: NetworkAttacher,
        probe: ConnectivityProbe,
        bus: EventBus,
        config: FailoverConfig | None = None,
        *,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ) -> None:
        """Initialize the coordinator.

        Args:
            monitor: Owner of the switching flag
            store: Backup network catalogue
            attacher: Network attachment collaborator
            probe: Probe used to verify a candidate
            bus: Shared event bus
            config: Failover configuration
            sleep: Awaitable sleep for settle and backoff delays
        """
        self._monitor = monitor
        self._store = store
        self._attacher = attacher
        self._probe = probe
        self._bus = bus
        self._config = config or FailoverConfig()
        self._sleep = sleep or asyncio.sleep
        self._retry = RetryPolicy(self._config.retry, sleep=self._sleep)

    @property
    def config(self) -> FailoverConfig:
        """Get failover configuration."""
        return self._config

    async def run(self) -> FailoverResult:
        """Run one failover attempt.

        Returns:
            FailoverResult
        """
        if not self._monitor.begin_switch():
            logger.info("Failover already in progress, run skipped")
            return FailoverResult(success=False, skipped=True)

        outcome: list[Event]
        try:
            self._bus.publish(SwitchStarted())
            logger.info("Starting failover", candidates=len(self._store))
            result, outcome = await self._attempt_candidates()
        except Exception as e:
            logger.exception("Failover run failed")
            result = FailoverResult(
                success=False, reason=SwitchFailureReason.ERROR, detail=str(e)
            )
            outcome = [SwitchFailed(reason=SwitchFailureReason.ERROR, detail=str(e))]
        finally:
            self._monitor.end_switch()

        for event in outcome:
            self._bus.publish(event)
        return result

    async def _attempt_candidates(self) -> tuple[FailoverResult, list[Event]]:
        candidates = self._store.list()
        if not candidates:
            logger.info("No backup networks available")
            return (
                FailoverResult(success=False, reason=SwitchFailureReason.NO_CANDIDATES),
                [
                    SwitchFailed(
                        reason=SwitchFailureReason.NO_CANDIDATES,
                        detail="No backup networks",
                    )
                ],
            )

        if not self._attacher.supported:
            top = candidates[0]
            detail = f"Join '{top.name}' manually"
            logger.warning("Network attachment unsupported, manual action required", network=top.name)
            return (
                FailoverResult(
                    success=False,
                    candidate=top,
                    reason=SwitchFailureReason.MANUAL_ACTION_REQUIRED,
                    detail=detail,
                ),
                [
                    ManualActionRequired(candidate=top),
                    SwitchFailed(
                        reason=SwitchFailureReason.MANUAL_ACTION_REQUIRED, detail=detail
                    ),
                ],
            )

        tried: list[str] = []
        for candidate in candidates:
            tried.append(candidate.name)
            logger.info(
                "Attempting backup network",
                network=candidate.name,
                priority_rank=candidate.priority_rank,
            )
            if await self._try_candidate(candidate):
                logger.info("Switched to backup network", network=candidate.name)
                return (
                    FailoverResult(success=True, candidate=candidate, tried=tuple(tried)),
                    [SwitchSucceeded(candidate=candidate)],
                )

        logger.warning("All backup networks failed", tried=len(tried))
        return (
            FailoverResult(
                success=False,
                reason=SwitchFailureReason.ALL_CANDIDATES_FAILED,
                detail="All networks failed",
                tried=tuple(tried),
            ),
            [
                SwitchFailed(
                    reason=SwitchFailureReason.ALL_CANDIDATES_FAILED,
                    detail="All networks failed",
                )
            ],
        )

    async def _try_candidate(self, candidate: BackupNetwork) -> bool:
        credential: str | None = None
        if candidate.secure:
            try:
                credential = await self._store.resolve_credential(candidate)
            except StoreError as e:
                logger.warning(
                    "Could not read credential, skipping",
                    network=candidate.name,
                    error=e.message,
                )
                return False
            if credential is None:
                logger.warning("Secure network has no credential, skipping", network=candidate.name)
                return False

        def _on_retry(attempt: int, error: Exception, delay: float) -> None:
            logger.warning(
                "Association failed, retrying",
                network=candidate.name,
                attempt=attempt,
                delay_s=delay,
                error=str(error),
            )

        result = await self._retry.execute(
            lambda: self._associate(candidate, credential), on_retry=_on_retry
        )

        if result.success:
            await self._sleep(self._config.settle_delay)
        else:
            logger.warning(
                "Association gave up",
                network=candidate.name,
                attempts=result.attempts,
                error=str(result.error),
            )
            # The platform may have joined the network despite reporting failure
            if await self._attacher.current_network() != candidate.name:
                return False

        probe = await self._probe.probe()
        self._monitor.record_probe(probe)
        if not probe.success:
            logger.info("Backup network not reachable", network=candidate.name, error=probe.error)
        return probe.success

    async def _associate(self, candidate: BackupNetwork, credential: str | None) -> bool:
        try:
            accepted = await asyncio.wait_for(
                self._attacher.associate(candidate.name, credential),
                timeout=self._config.association_timeout,
            )
        except asyncio.TimeoutError as e:
            raise AssociationError(
                f"Association with '{candidate.name}' timed out",
                network=candidate.name,
                cause=e,
            ) from e
        if not accepted:
            raise AssociationError(
                f"Association with '{candidate.name}' was refused",
                network=candidate.name,
            )
        return True
