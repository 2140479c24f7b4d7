"""
Connectivity layer - State monitoring, quality scoring and probing.

This module provides:
- ConnectivityMonitor: Authoritative network state and failover trigger
- ConnectivityProbe: Lightweight reachability/latency check
- ConnectivitySource: Collaborator interface with push and polling implementations
- classify_quality: Quality class derivation
"""

from resilient_net.connectivity.monitor import (
    ConnectivityMonitor,
    ConnectivitySnapshot,
    ConnectivityStatistics,
    MonitorConfig,
)
from resilient_net.connectivity.probe import (
    DEFAULT_PROBE_URL,
    ConnectivityProbe,
    ProbeConfig,
    ProbeResult,
)
from resilient_net.connectivity.quality import classify_quality, is_attachment_poor
from resilient_net.connectivity.sources import (
    ConnectivitySource,
    PollingConnectivitySource,
    QueueConnectivitySource,
)

__all__ = [
    "DEFAULT_PROBE_URL",
    # Monitor
    "ConnectivityMonitor",
    # Probe
    "ConnectivityProbe",
    "ConnectivitySnapshot",
    # Sources
    "ConnectivitySource",
    "ConnectivityStatistics",
    "MonitorConfig",
    "PollingConnectivitySource",
    "ProbeConfig",
    "ProbeResult",
    "QueueConnectivitySource",
    # Quality
    "classify_quality",
    "is_attachment_poor",
]
