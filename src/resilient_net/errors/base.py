"""错误基类：提供分层错误体系和结构化错误上下文。

Base error classes for resilient-net.

Provides a layered error hierarchy:
- ResilientNetError: Base class for all library errors
- TransportError: Timeouts, refused connections, resolve failures
- ProtocolError: Non-2xx responses from the remote endpoint
- SerializationError: Response bodies that cannot be decoded
- CapacityError: Queue capacity exceeded (resolved by eviction)
- StoreError: Durable persistence or credential store failures
- AssociationError: A backup network could not be attached
- ValidationError: Invalid arguments (unknown ids, bad ranks)
- NotSupportedError: Collaborator capability missing on this platform
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class ErrorContext:
    """Structured error context for diagnostics.

    Provides actionable information for debugging and error handling.
    """

    details: dict[str, Any] = field(default_factory=dict)
    """Additional details about the error"""

    source: str | None = None
    """Error source (e.g., 'transport', 'store', 'failover')"""

    hint: str | None = None
    """Actionable hint for resolving the error"""

    def __str__(self) -> str:
        parts = []
        if self.source:
            parts.append(f"[{self.source}]")
        if self.hint:
            parts.append(f"(hint: {self.hint})")
        return " ".join(parts)


class ResilientNetError(Exception):
    """Base class for all resilient-net errors.

    All errors from this library inherit from this class, making it easy
    to catch all library errors with a single except clause.

    Attributes:
        message: Human-readable error message
        context: Optional structured error context
    """

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
    ) -> None:
        self.message = message
        self.context = context or ErrorContext()
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the full error message."""
        ctx_str = str(self.context)
        if ctx_str:
            return f"{self.message} {ctx_str}"
        return self.message

    def with_hint(self, hint: str) -> ResilientNetError:
        """Add a hint to this error."""
        self.context.hint = hint
        return self


class TransportError(ResilientNetError):
    """Error during HTTP transport.

    Raised when:
    - Network connection failure (refused, reset)
    - Host name resolution failure
    - Timeout (connect, read or overall deadline)

    Transport errors are retryable and are also treated as a signal that
    connectivity is degraded.
    """

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        *,
        url: str | None = None,
        timed_out: bool = False,
        cause: Exception | None = None,
    ) -> None:
        ctx = context or ErrorContext(source="transport")
        if url:
            ctx.details["url"] = url
        if timed_out:
            ctx.details["timed_out"] = True
        super().__init__(message, ctx)
        self.url = url
        self.timed_out = timed_out
        self.__cause__ = cause


class ProtocolError(ResilientNetError):
    """Non-2xx response from the remote endpoint.

    Retryable with backoff, but not a connectivity signal: the network
    delivered the request and the server answered.
    """

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        *,
        status_code: int,
        url: str | None = None,
        body: bytes | None = None,
    ) -> None:
        ctx = context or ErrorContext(source="protocol")
        ctx.details["status_code"] = status_code
        if url:
            ctx.details["url"] = url
        super().__init__(message, ctx)
        self.status_code = status_code
        self.url = url
        self.body = body


class SerializationError(ResilientNetError):
    """Response body could not be decoded. Terminal, never retried."""

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        *,
        content_type: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        ctx = context or ErrorContext(source="serialization")
        if content_type:
            ctx.details["content_type"] = content_type
        super().__init__(message, ctx)
        self.content_type = content_type
        self.__cause__ = cause


class CapacityError(ResilientNetError):
    """Queue capacity exceeded.

    Never raised by `enqueue`: the dispatcher resolves it by evicting the
    lowest-priority entries and publishes it as a warning payload. A
    `make_resilient_call` waiter whose request was evicted receives it.
    """

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        *,
        capacity: int,
        evicted_ids: list[str] | None = None,
    ) -> None:
        ctx = context or ErrorContext(source="dispatch")
        ctx.details["capacity"] = capacity
        super().__init__(message, ctx)
        self.capacity = capacity
        self.evicted_ids = evicted_ids or []


class StoreError(ResilientNetError):
    """Durable persistence or credential store failure."""

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        *,
        key: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        ctx = context or ErrorContext(source="store")
        if key:
            ctx.details["key"] = key
        super().__init__(message, ctx)
        self.key = key
        self.__cause__ = cause


class AssociationError(ResilientNetError):
    """A candidate backup network failed to attach."""

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        *,
        network: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        ctx = context or ErrorContext(source="failover")
        if network:
            ctx.details["network"] = network
        super().__init__(message, ctx)
        self.network = network
        self.__cause__ = cause


class ValidationError(ResilientNetError):
    """Invalid argument passed to a component.

    Raised when:
    - A backup network id is unknown
    - A network name is empty
    """

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        *,
        field: str | None = None,
        actual: Any = None,
    ) -> None:
        ctx = context or ErrorContext(source="validation")
        if field:
            ctx.details["field"] = field
        if actual is not None:
            ctx.details["actual"] = actual
        super().__init__(message, ctx)
        self.field = field
        self.actual = actual


class NotSupportedError(ResilientNetError):
    """A collaborator capability is unavailable on this platform."""

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
    ) -> None:
        ctx = context or ErrorContext(source="platform")
        super().__init__(message, ctx)


class DeliveryError(ResilientNetError):
    """A queued call ended without a response.

    Raised to `make_resilient_call` callers when their request expired or
    was removed from the queue.
    """

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        *,
        request_id: str | None = None,
        status: str | None = None,
    ) -> None:
        ctx = context or ErrorContext(source="dispatch")
        if request_id:
            ctx.details["request_id"] = request_id
        if status:
            ctx.details["status"] = status
        super().__init__(message, ctx)
        self.request_id = request_id
        self.status = status
