"""
Typed event payloads.

Every event carries a snapshot of the relevant record(s) at the moment it
was published.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar

if TYPE_CHECKING:
    from resilient_net.types.network import BackupNetwork, NetworkState
    from resilient_net.types.request import PendingRequest


class EventKind(str, Enum):
    """Kinds of observable events."""

    # Connectivity
    STATE_CHANGED = "state-changed"

    # Failover
    SWITCH_STARTED = "switch-started"
    SWITCH_SUCCEEDED = "switch-succeeded"
    SWITCH_FAILED = "switch-failed"
    MANUAL_ACTION_REQUIRED = "manual-action-required"

    # Request lifecycle
    REQUEST_QUEUED = "request-queued"
    REQUEST_STARTED = "request-started"
    REQUEST_RETRYING = "request-retrying"
    REQUEST_COMPLETED = "request-completed"
    REQUEST_FAILED = "request-failed"
    REQUEST_EXPIRED = "request-expired"
    REQUEST_CANCELLED = "request-cancelled"

    # Queue
    QUEUE_CLEARED = "queue-cleared"
    QUEUE_CAPACITY_EXCEEDED = "queue-capacity-exceeded"
    PROCESSING_STARTED = "processing-started"
    PROCESSING_STOPPED = "processing-stopped"


class SwitchFailureReason(str, Enum):
    """Why a failover run ended without a reachable path."""

    NO_CANDIDATES = "no-candidates"
    ALL_CANDIDATES_FAILED = "all-candidates-failed"
    MANUAL_ACTION_REQUIRED = "manual-action-required"
    ERROR = "error"


@dataclass(frozen=True)
class Event:
    """Base class for all events."""

    kind: ClassVar[EventKind]
    timestamp: float = field(default_factory=time.time, kw_only=True)


@dataclass(frozen=True)
class StateChanged(Event):
    kind: ClassVar[EventKind] = EventKind.STATE_CHANGED
    current: NetworkState
    previous: NetworkState | None = None


@dataclass(frozen=True)
class SwitchStarted(Event):
    kind: ClassVar[EventKind] = EventKind.SWITCH_STARTED


@dataclass(frozen=True)
class SwitchSucceeded(Event):
    kind: ClassVar[EventKind] = EventKind.SWITCH_SUCCEEDED
    candidate: BackupNetwork


@dataclass(frozen=True)
class SwitchFailed(Event):
    kind: ClassVar[EventKind] = EventKind.SWITCH_FAILED
    reason: SwitchFailureReason
    detail: str | None = None


@dataclass(frozen=True)
class ManualActionRequired(Event):
    """The platform cannot attach networks; the user must join `candidate`."""

    kind: ClassVar[EventKind] = EventKind.MANUAL_ACTION_REQUIRED
    candidate: BackupNetwork


@dataclass(frozen=True)
class RequestQueued(Event):
    kind: ClassVar[EventKind] = EventKind.REQUEST_QUEUED
    request: PendingRequest


@dataclass(frozen=True)
class RequestStarted(Event):
    kind: ClassVar[EventKind] = EventKind.REQUEST_STARTED
    request: PendingRequest


@dataclass(frozen=True)
class RequestRetrying(Event):
    kind: ClassVar[EventKind] = EventKind.REQUEST_RETRYING
    request: PendingRequest
    delay: float


@dataclass(frozen=True)
class RequestCompleted(Event):
    kind: ClassVar[EventKind] = EventKind.REQUEST_COMPLETED
    request: PendingRequest
    response: Any = None


@dataclass(frozen=True)
class RequestFailed(Event):
    kind: ClassVar[EventKind] = EventKind.REQUEST_FAILED
    request: PendingRequest
    last_error: str | None = None


@dataclass(frozen=True)
class RequestExpired(Event):
    kind: ClassVar[EventKind] = EventKind.REQUEST_EXPIRED
    request: PendingRequest


@dataclass(frozen=True)
class RequestCancelled(Event):
    kind: ClassVar[EventKind] = EventKind.REQUEST_CANCELLED
    request: PendingRequest


@dataclass(frozen=True)
class QueueCleared(Event):
    kind: ClassVar[EventKind] = EventKind.QUEUE_CLEARED
    count: int
    requests: tuple[PendingRequest, ...] = ()


@dataclass(frozen=True)
class QueueCapacityExceeded(Event):
    kind: ClassVar[EventKind] = EventKind.QUEUE_CAPACITY_EXCEEDED
    capacity: int
    evicted: tuple[PendingRequest, ...] = ()


@dataclass(frozen=True)
class ProcessingStarted(Event):
    kind: ClassVar[EventKind] = EventKind.PROCESSING_STARTED
    queued: int = 0


@dataclass(frozen=True)
class ProcessingStopped(Event):
    kind: ClassVar[EventKind] = EventKind.PROCESSING_STOPPED
    queued: int = 0
