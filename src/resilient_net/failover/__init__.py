"""
Failover layer - Backup network catalogue and switching.

This module provides:
- BackupNetworkStore: Durable, priority-ordered backup networks
- FailoverCoordinator: Tries candidates in order until one is reachable
- NetworkAttacher: Platform attachment collaborator
"""

from resilient_net.failover.attach import NetworkAttacher, UnsupportedAttacher
from resilient_net.failover.coordinator import (
    FailoverConfig,
    FailoverCoordinator,
    FailoverResult,
)
from resilient_net.failover.store import (
    CREDENTIAL_PREFIX,
    STORAGE_KEY,
    BackupNetworkStore,
    NetworkRecommendation,
    credential_ref_for,
    score_network,
)

__all__ = [
    "CREDENTIAL_PREFIX",
    "STORAGE_KEY",
    # Store
    "BackupNetworkStore",
    # Coordinator
    "FailoverConfig",
    "FailoverCoordinator",
    "FailoverResult",
    # Attachment
    "NetworkAttacher",
    "NetworkRecommendation",
    "UnsupportedAttacher",
    "credential_ref_for",
    "score_network",
]
