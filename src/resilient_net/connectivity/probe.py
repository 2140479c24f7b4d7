"""
Active connectivity probe.

Issues a lightweight uncached GET against a known endpoint with a bounded
timeout and reports success and latency. Used by the monitor for quality
classification and by the failover coordinator to verify a new path.
"""

from __future__ import annotations

import os
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from resilient_net.errors import ResilientNetError
from resilient_net.telemetry.logger import get_logger

if TYPE_CHECKING:
    from resilient_net.transport.http import HttpTransport

logger = get_logger("resilient_net.connectivity.probe")

DEFAULT_PROBE_URL = "https://clients3.google.com/generate_204"


@dataclass
class ProbeConfig:
    """Configuration for the connectivity probe.

    Attributes:
        url: Endpoint to fetch
        timeout: Overall timeout in seconds
        method: HTTP method
    """

    url: str = DEFAULT_PROBE_URL
    timeout: float = 10.0
    method: str = "GET"

    @classmethod
    def from_env(cls) -> ProbeConfig:
        """Create configuration from environment variables.

        Reads ``RESILIENT_NET_PROBE_URL`` and ``RESILIENT_NET_PROBE_TIMEOUT_SECS``.
        """
        return cls(
            url=os.getenv("RESILIENT_NET_PROBE_URL", DEFAULT_PROBE_URL),
            timeout=float(os.getenv("RESILIENT_NET_PROBE_TIMEOUT_SECS", "10")),
        )


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of one probe.

    Attributes:
        success: Whether the endpoint answered with a 2xx status
        latency_ms: Wall time of the exchange in milliseconds
        timestamp: Time the probe finished
        status: HTTP status, if a response arrived
        error: Failure description, if any
    """

    success: bool
    latency_ms: float
    timestamp: float
    status: int | None = None
    error: str | None = None


class ConnectivityProbe:
    """Reachability test against a fixed endpoint.

    Never raises for network failures; they are reported as an
    unsuccessful ProbeResult.

    Example:
        >>> probe = ConnectivityProbe(transport)
        >>> result = await probe.probe()
        >>> result.success, result.latency_ms
    """

    def __init__(self, transport: HttpTransport, config: ProbeConfig | None = None) -> None:
        self._transport = transport
        self._config = config or ProbeConfig()

    @property
    def config(self) -> ProbeConfig:
        """Get probe configuration."""
        return self._config

    async def probe(self) -> ProbeResult:
        """Run one probe.

        Returns:
            ProbeResult
        """
        started = time.monotonic()
        try:
            response = await self._transport.call(
                self._config.url,
                self._config.method,
                headers={"Cache-Control": "no-cache"},
                timeout=self._config.timeout,
            )
        except ResilientNetError as e:
            latency_ms = (time.monotonic() - started) * 1000
            logger.info("Connectivity probe failed", url=self._config.url, error=e.message)
            return ProbeResult(
                success=False,
                latency_ms=latency_ms,
                timestamp=time.time(),
                error=e.message,
            )

        latency_ms = (time.monotonic() - started) * 1000
        if not response.ok:
            logger.info(
                "Connectivity probe got bad response",
                url=self._config.url,
                status=response.status,
            )
            return ProbeResult(
                success=False,
                latency_ms=latency_ms,
                timestamp=time.time(),
                status=response.status,
                error=f"HTTP {response.status}",
            )

        logger.debug("Connectivity probe succeeded", latency_ms=round(latency_ms, 1))
        return ProbeResult(
            success=True,
            latency_ms=latency_ms,
            timestamp=time.time(),
            status=response.status,
        )
