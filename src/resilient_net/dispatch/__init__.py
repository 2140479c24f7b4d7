"""
Dispatch layer - Persistent priority queue of outbound calls.

This module provides:
- ResilientDispatcher: Enqueue, single-flight dispatch loop, direct calls
- ActiveSet: Ordered in-memory set of non-terminal requests
- DispatchStats / QueueStatus: Delivery counters and queue summary
"""

from resilient_net.dispatch.dispatcher import (
    DispatchOutcome,
    DispatchStats,
    DispatcherConfig,
    QueueStatus,
    ResilientDispatcher,
)
from resilient_net.dispatch.queue import ActiveSet, QueueSnapshotStore

__all__ = [
    # Queue
    "ActiveSet",
    "DispatchOutcome",
    "DispatchStats",
    "DispatcherConfig",
    "QueueSnapshotStore",
    "QueueStatus",
    # Dispatcher
    "ResilientDispatcher",
]
