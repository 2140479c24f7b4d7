"""
Resilience layer - Retry backoff and timed re-entry scheduling.

This module provides:
- RetryPolicy: Exponential backoff with optional jitter
- DelayScheduler: Keyed delay queue feeding the dispatch worker
"""

from resilient_net.resilience.retry import (
    JitterStrategy,
    RetryConfig,
    RetryPolicy,
    RetryResult,
)
from resilient_net.resilience.scheduler import DelayScheduler, ScheduledTask

__all__ = [
    # Scheduling
    "DelayScheduler",
    # Retry
    "JitterStrategy",
    "RetryConfig",
    "RetryPolicy",
    "RetryResult",
    "ScheduledTask",
]
