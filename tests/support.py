"""Collaborator fakes and helpers shared by resilient-net tests."""

from __future__ import annotations

import asyncio
import json
import time
from collections import defaultdict, deque
from typing import TYPE_CHECKING, Any

import pytest

from resilient_net.connectivity.probe import ProbeResult
from resilient_net.credentials.stores import MemoryCredentialStore
from resilient_net.dispatch.dispatcher import DispatcherConfig
from resilient_net.errors import StoreError
from resilient_net.failover.attach import NetworkAttacher
from resilient_net.failover.coordinator import FailoverConfig
from resilient_net.resilience.retry import RetryConfig
from resilient_net.storage.backends import MemoryStore
from resilient_net.transport.http import TransportResponse

if TYPE_CHECKING:
    from collections.abc import Callable


def json_response(data: Any, status: int = 200) -> TransportResponse:
    """Build a JSON TransportResponse."""
    return TransportResponse(
        status=status,
        headers={"content-type": "application/json"},
        body=json.dumps(data).encode(),
    )


class FakeTransport:
    """Scripted stand-in for HttpTransport.

    Outcomes are consumed per URL in order; a TransportResponse is
    returned, an exception is raised. Unscripted calls get the default.
    """

    def __init__(self, default: TransportResponse | None = None) -> None:
        self.calls: list[dict[str, Any]] = []
        self.default = default or json_response({"ok": True})
        self._scripts: dict[str, deque[Any]] = defaultdict(deque)
        self.closed = False

    def script(self, url: str, *outcomes: Any) -> None:
        self._scripts[url].extend(outcomes)

    @property
    def urls(self) -> list[str]:
        return [c["url"] for c in self.calls]

    async def call(
        self,
        url: str,
        method: str = "GET",
        headers: dict[str, str] | None = None,
        body: str | bytes | None = None,
        timeout: float | None = None,
        *,
        json: Any = None,
    ) -> TransportResponse:
        self.calls.append(
            {
                "url": url,
                "method": method,
                "headers": dict(headers or {}),
                "body": body,
                "json": json,
                "timeout": timeout,
            }
        )
        await asyncio.sleep(0)
        queue = self._scripts.get(url)
        outcome = queue.popleft() if queue else self.default
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def close(self) -> None:
        self.closed = True


class ScriptedProbe:
    """Probe returning scripted successes, then `default`."""

    def __init__(self, *results: bool, latency_ms: float = 50.0, default: bool = True) -> None:
        self._results = deque(results)
        self.latency_ms = latency_ms
        self.default = default
        self.calls = 0

    async def probe(self) -> ProbeResult:
        self.calls += 1
        success = self._results.popleft() if self._results else self.default
        return ProbeResult(
            success=success,
            latency_ms=self.latency_ms,
            timestamp=time.time(),
            status=204 if success else None,
            error=None if success else "unreachable",
        )


class FakeAttacher(NetworkAttacher):
    """Attacher with scripted association outcomes per network name."""

    def __init__(
        self,
        outcomes: dict[str, list[Any]] | None = None,
        *,
        current: str | None = None,
        supported: bool = True,
    ) -> None:
        self.outcomes = outcomes or {}
        self.attempts: list[tuple[str, str | None]] = []
        self.current = current
        self._supported = supported

    @property
    def supported(self) -> bool:
        return self._supported

    async def associate(self, name: str, credential: str | None) -> bool:
        self.attempts.append((name, credential))
        script = self.outcomes.get(name)
        outcome = script.pop(0) if script else True
        if isinstance(outcome, BaseException):
            raise outcome
        if outcome:
            self.current = name
        return bool(outcome)

    async def current_network(self) -> str | None:
        return self.current


class FlakyStore(MemoryStore):
    """MemoryStore whose writes can be made to fail."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_writes = False
        self.writes = 0

    async def set(self, key: str, value: bytes) -> None:
        if self.fail_writes:
            raise StoreError("disk full", key=key)
        self.writes += 1
        await super().set(key, value)


class FlakyCredentialStore(MemoryCredentialStore):
    """MemoryCredentialStore whose writes can be made to fail."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_writes = False

    async def set(self, ref: str, secret: str) -> None:
        if self.fail_writes:
            raise StoreError("keychain locked", key=ref)
        await super().set(ref, secret)


class SleepRecorder:
    """Awaitable sleep that records delays and only yields."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll `predicate` until true or fail the test."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            pytest.fail("condition not met in time")
        await asyncio.sleep(0.005)


def fast_dispatcher_config(**overrides: Any) -> DispatcherConfig:
    """Dispatcher config without pauses and with millisecond backoff."""
    values: dict[str, Any] = {
        "pause": 0.0,
        "retry": RetryConfig(max_retries=4, min_delay_ms=10, max_delay_ms=40),
    }
    values.update(overrides)
    return DispatcherConfig(**values)


def fast_failover_config(**overrides: Any) -> FailoverConfig:
    """Failover config without settle or backoff delays."""
    values: dict[str, Any] = {
        "settle_delay": 0.0,
        "association_timeout": 1.0,
        "retry": RetryConfig(max_retries=2, min_delay_ms=0, max_delay_ms=0),
    }
    values.update(overrides)
    return FailoverConfig(**values)


