"""错误体系：提供弹性投递子系统的结构化错误类型。

Error hierarchy for resilient-net.

Provides structured error types and the classification used for retry,
defer and fail decisions.
"""

from resilient_net.errors.base import (
    AssociationError,
    CapacityError,
    DeliveryError,
    ErrorContext,
    NotSupportedError,
    ProtocolError,
    ResilientNetError,
    SerializationError,
    StoreError,
    TransportError,
    ValidationError,
)
from resilient_net.errors.classification import (
    ErrorClass,
    classify_error,
    is_connectivity_signal,
    is_retryable,
)

__all__ = [
    "AssociationError",
    "CapacityError",
    "DeliveryError",
    # Classification
    "ErrorClass",
    "ErrorContext",
    "NotSupportedError",
    "ProtocolError",
    # Base errors
    "ResilientNetError",
    "SerializationError",
    "StoreError",
    "TransportError",
    "ValidationError",
    "classify_error",
    "is_connectivity_signal",
    "is_retryable",
]
