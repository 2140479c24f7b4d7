"""
Transport layer - HTTP client for outbound calls.

Provides httpx-based transport with:
- Explicit per-call timeouts
- Proxy configuration
- Error mapping onto the resilient-net taxonomy
- Content-type aware body decoding
"""

from resilient_net.transport.http import HttpTransport, TransportResponse

__all__ = [
    "HttpTransport",
    "TransportResponse",
]
