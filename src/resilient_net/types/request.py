"""
Pending outbound request models.

A PendingRequest is created on enqueue and mutated only by the dispatcher.
"""

from __future__ import annotations

import time
import uuid
from enum import Enum, IntEnum
from typing import Any

from pydantic import BaseModel, Field


class PriorityTier(IntEnum):
    """Discrete urgency level governing dispatch order."""

    LOW = 1
    NORMAL = 2
    HIGH = 3
    CRITICAL = 4


class RequestStatus(str, Enum):
    """Lifecycle status of a pending request."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        """Check if no further transition is possible."""
        return self in (RequestStatus.COMPLETED, RequestStatus.FAILED, RequestStatus.EXPIRED)


class RequestTarget(BaseModel):
    """Everything needed to execute one outbound call.

    Attributes:
        url: Absolute URL
        method: HTTP method
        headers: Request headers
        body: Raw text body
        json_body: JSON body (takes precedence over `body`)
    """

    url: str
    method: str = Field(default="GET")
    headers: dict[str, str] = Field(default_factory=dict)
    body: str | None = Field(default=None)
    json_body: Any = Field(default=None)

    def with_header(self, name: str, value: str) -> RequestTarget:
        """Return a copy with an additional header."""
        return self.model_copy(update={"headers": {**self.headers, name: value}})


def _new_request_id() -> str:
    return f"{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class PendingRequest(BaseModel):
    """A queued outbound call and its delivery bookkeeping.

    Invariant: ``attempt_count <= max_attempts``.
    """

    id: str = Field(default_factory=_new_request_id)
    target: RequestTarget
    priority: PriorityTier = Field(default=PriorityTier.NORMAL)
    status: RequestStatus = Field(default=RequestStatus.PENDING)
    attempt_count: int = Field(default=0, ge=0)
    max_attempts: int = Field(default=5, ge=1)
    created_at: float = Field(default_factory=time.time)
    last_attempt_at: float | None = Field(default=None)
    last_error: str | None = Field(default=None)
    next_attempt_at: float | None = Field(default=None)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def description(self) -> str:
        """Human-readable description for logs."""
        return str(self.metadata.get("description", "API request"))

    @property
    def attempts_exhausted(self) -> bool:
        """Check if no attempt is left."""
        return self.attempt_count >= self.max_attempts

    def is_expired(self, horizon_seconds: float, now: float | None = None) -> bool:
        """Check if the request is older than the retention horizon."""
        return (now if now is not None else time.time()) > self.created_at + horizon_seconds

    def is_due(self, now: float | None = None) -> bool:
        """Check if a scheduled backoff, if any, has elapsed."""
        if self.next_attempt_at is None:
            return True
        return (now if now is not None else time.time()) >= self.next_attempt_at

    @property
    def order_key(self) -> tuple[int, float]:
        """Dispatch order: priority desc, then created_at asc."""
        return (-int(self.priority), self.created_at)
