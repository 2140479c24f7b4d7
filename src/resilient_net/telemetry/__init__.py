"""
Telemetry module for resilient-net.

Provides structured logging with sensitive data masking.
"""

from resilient_net.telemetry.logger import (
    LogContext,
    LogLevel,
    NetLogger,
    SensitiveDataMasker,
    clear_log_context,
    get_log_context,
    get_logger,
    set_log_context,
)

__all__ = [
    "LogContext",
    "LogLevel",
    "NetLogger",
    "SensitiveDataMasker",
    "clear_log_context",
    "get_log_context",
    "get_logger",
    "set_log_context",
]
