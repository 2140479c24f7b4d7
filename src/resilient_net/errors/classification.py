"""错误分类模块：将异常映射到投递决策所需的错误类别。

Error classification for delivery decisions.

Maps exceptions raised while executing an outbound call onto a small set of
error classes that drive the dispatcher's retry, defer and fail decisions.
"""

from __future__ import annotations

import asyncio
from enum import Enum

from resilient_net.errors.base import (
    AssociationError,
    CapacityError,
    ProtocolError,
    SerializationError,
    StoreError,
    TransportError,
)


class ErrorClass(str, Enum):
    """Standard error classification."""

    TRANSPORT = "transport"
    """Timeout, refused connection or resolve failure; also a connectivity signal."""

    PROTOCOL = "protocol"
    """Non-2xx response; retryable with backoff."""

    SERIALIZATION = "serialization"
    """Malformed response body; terminal."""

    CAPACITY = "capacity"
    """Queue full; resolved by eviction."""

    STORE = "store"
    """Persistence failure; absorbed and reconciled on the next persist."""

    ASSOCIATION = "association"
    """Backup network failed to attach; the coordinator advances."""

    UNRECOVERABLE = "unrecoverable"
    """Anything else; terminal."""


# Error classes that allow another attempt of the same unit of work
_RETRYABLE_CLASSES: set[ErrorClass] = {
    ErrorClass.TRANSPORT,
    ErrorClass.PROTOCOL,
    ErrorClass.ASSOCIATION,
}

# Error classes that say something about the network path itself
_CONNECTIVITY_CLASSES: set[ErrorClass] = {
    ErrorClass.TRANSPORT,
}


def classify_error(error: BaseException) -> ErrorClass:
    """Classify an exception into a standard error class.

    Args:
        error: The exception raised by an operation

    Returns:
        ErrorClass representing the error type
    """
    if isinstance(error, TransportError):
        return ErrorClass.TRANSPORT
    if isinstance(error, ProtocolError):
        return ErrorClass.PROTOCOL
    if isinstance(error, SerializationError):
        return ErrorClass.SERIALIZATION
    if isinstance(error, CapacityError):
        return ErrorClass.CAPACITY
    if isinstance(error, StoreError):
        return ErrorClass.STORE
    if isinstance(error, AssociationError):
        return ErrorClass.ASSOCIATION
    # asyncio.wait_for deadline exceeded outside the transport's own timeout
    if isinstance(error, (TimeoutError, asyncio.TimeoutError)):
        return ErrorClass.TRANSPORT
    return ErrorClass.UNRECOVERABLE


def is_retryable(error_class: ErrorClass) -> bool:
    """Check if an error class allows another attempt.

    Args:
        error_class: The error class to check

    Returns:
        True if the operation may be attempted again
    """
    return error_class in _RETRYABLE_CLASSES


def is_connectivity_signal(error_class: ErrorClass) -> bool:
    """Check if an error class indicates a degraded network path.

    Args:
        error_class: The error class to check

    Returns:
        True if the failure should defer work until connectivity recovers
    """
    return error_class in _CONNECTIVITY_CLASSES
