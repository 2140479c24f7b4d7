"""
Event system - typed publish/subscribe for connectivity, failover and
request lifecycle events.
"""

from resilient_net.events.bus import EventBus, Subscription
from resilient_net.events.types import (
    Event,
    EventKind,
    ManualActionRequired,
    ProcessingStarted,
    ProcessingStopped,
    QueueCapacityExceeded,
    QueueCleared,
    RequestCancelled,
    RequestCompleted,
    RequestExpired,
    RequestFailed,
    RequestQueued,
    RequestRetrying,
    RequestStarted,
    StateChanged,
    SwitchFailed,
    SwitchFailureReason,
    SwitchStarted,
    SwitchSucceeded,
)

__all__ = [
    "Event",
    "EventBus",
    "EventKind",
    "ManualActionRequired",
    "ProcessingStarted",
    "ProcessingStopped",
    "QueueCapacityExceeded",
    "QueueCleared",
    "RequestCancelled",
    "RequestCompleted",
    "RequestExpired",
    "RequestFailed",
    "RequestQueued",
    "RequestRetrying",
    "RequestStarted",
    "StateChanged",
    "Subscription",
    "SwitchFailed",
    "SwitchFailureReason",
    "SwitchStarted",
    "SwitchSucceeded",
]
