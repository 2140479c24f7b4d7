"""
Type definitions for resilient-net.

Provides the network and request models shared by every component.
"""

from resilient_net.types.network import (
    AttachmentType,
    BackupNetwork,
    NetworkState,
    QualityClass,
)
from resilient_net.types.request import (
    PendingRequest,
    PriorityTier,
    RequestStatus,
    RequestTarget,
)

__all__ = [
    # Network
    "AttachmentType",
    "BackupNetwork",
    "NetworkState",
    # Request
    "PendingRequest",
    "PriorityTier",
    "QualityClass",
    "RequestStatus",
    "RequestTarget",
]
