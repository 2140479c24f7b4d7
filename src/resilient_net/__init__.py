"""弹性网络投递子系统：连接监控、持久化重试队列与备用网络故障切换。

resilient-net: Resilient network delivery for Python.

Monitors live connectivity quality, keeps a durable priority-ordered
retry queue of outbound calls and fails over to backup networks when the
primary path degrades.
"""
from __future__ import annotations

from resilient_net._features import HAS_HTTP2, HAS_KEYRING, require_extra
from resilient_net.connectivity import (
    ConnectivityMonitor,
    ConnectivityProbe,
    ConnectivitySource,
    PollingConnectivitySource,
    QueueConnectivitySource,
)
from resilient_net.dispatch import DispatcherConfig, ResilientDispatcher
from resilient_net.errors import (
    ProtocolError,
    ResilientNetError,
    SerializationError,
    TransportError,
)
from resilient_net.events import EventBus, EventKind
from resilient_net.failover import (
    BackupNetworkStore,
    FailoverCoordinator,
    NetworkAttacher,
    UnsupportedAttacher,
)
from resilient_net.runtime import DeliveryRuntime
from resilient_net.types import (
    AttachmentType,
    BackupNetwork,
    NetworkState,
    PendingRequest,
    PriorityTier,
    QualityClass,
    RequestStatus,
    RequestTarget,
)

__version__ = "0.1.0"

__all__ = [
    # Feature flags
    "HAS_HTTP2",
    "HAS_KEYRING",
    # Types
    "AttachmentType",
    "BackupNetwork",
    # Components
    "BackupNetworkStore",
    "ConnectivityMonitor",
    "ConnectivityProbe",
    "ConnectivitySource",
    "DeliveryRuntime",
    "DispatcherConfig",
    # Events
    "EventBus",
    "EventKind",
    "FailoverCoordinator",
    "NetworkAttacher",
    "NetworkState",
    "PendingRequest",
    "PollingConnectivitySource",
    "PriorityTier",
    # Errors
    "ProtocolError",
    "QualityClass",
    "QueueConnectivitySource",
    "RequestStatus",
    "RequestTarget",
    "ResilientDispatcher",
    "ResilientNetError",
    "SerializationError",
    "TransportError",
    "UnsupportedAttacher",
    # Version
    "__version__",
    "require_extra",
]
