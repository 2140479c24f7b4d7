"""HTTP 传输层：基于 httpx 的异步 HTTP 客户端，所有调用均带显式超时。

HTTP transport using httpx for async requests.

Provides:
- A generic `call(url, method, headers, body, timeout)` used by the
  dispatcher, the connectivity probe and failover verification
- Explicit per-call timeouts (a timeout is a transport failure)
- Mapping of httpx exceptions onto TransportError
- Response decoding by content type
"""

from __future__ import annotations

import json as json_module
import os
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Any

import httpx

from resilient_net._features import HAS_HTTP2
from resilient_net.errors import ProtocolError, SerializationError, TransportError

# Default timeouts
_DEFAULT_TIMEOUT = 30.0
_DEFAULT_CONNECT_TIMEOUT = 10.0


_UA_VERSION: str | None = None


def _trust_env_enabled() -> bool:
    """Use env proxy settings only when explicitly enabled."""
    return os.getenv("RESILIENT_NET_HTTP_TRUST_ENV", "0") == "1"


def _get_ua_version() -> str:
    """Get package version for User-Agent (cached)."""
    global _UA_VERSION
    if _UA_VERSION is None:
        try:
            from importlib.metadata import version

            _UA_VERSION = version("resilient-net")
        except Exception:
            _UA_VERSION = "0.1.0"
    return _UA_VERSION


@dataclass
class TransportResponse:
    """Outcome of a completed HTTP exchange.

    Attributes:
        status: HTTP status code
        headers: Response headers (lower-cased names)
        body: Raw response body
        url: Final request URL
        elapsed_ms: Wall time of the exchange in milliseconds
    """

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    url: str | None = None
    elapsed_ms: float = 0.0

    @property
    def ok(self) -> bool:
        """Check for a 2xx status."""
        return 200 <= self.status < 300

    @property
    def content_type(self) -> str:
        """Media type without parameters."""
        return self.headers.get("content-type", "").split(";")[0].strip().lower()

    def raise_for_status(self) -> TransportResponse:
        """Raise ProtocolError unless the status is 2xx.

        Returns:
            Self for chaining
        """
        if not self.ok:
            reason = httpx.codes.get_reason_phrase(self.status) or "Error"
            raise ProtocolError(
                f"HTTP {self.status}: {reason}",
                status_code=self.status,
                url=self.url,
                body=self.body,
            )
        return self

    def decode(self) -> Any:
        """Decode the body by content type.

        - JSON media types are parsed
        - text/* is decoded to str
        - anything else is summarised as blob info

        Raises:
            SerializationError: If a JSON or text body is malformed
        """
        ctype = self.content_type
        if ctype == "application/json" or ctype.endswith("+json"):
            if not self.body:
                return None
            try:
                return json_module.loads(self.body)
            except (json_module.JSONDecodeError, UnicodeDecodeError) as e:
                raise SerializationError(
                    f"Malformed JSON body: {e}", content_type=ctype, cause=e
                ) from e
        if ctype.startswith("text/"):
            try:
                return self.body.decode(self._charset())
            except (UnicodeDecodeError, LookupError) as e:
                raise SerializationError(
                    f"Undecodable text body: {e}", content_type=ctype, cause=e
                ) from e
        return {"type": "blob", "size": len(self.body), "content_type": ctype or None}

    def _charset(self) -> str:
        for param in self.headers.get("content-type", "").split(";")[1:]:
            name, _, value = param.strip().partition("=")
            if name.lower() == "charset" and value:
                return value.strip('"')
        return "utf-8"


class HttpTransport:
    """HTTP transport for outbound calls.

    Uses httpx for async HTTP requests.

    Example:
        >>> transport = HttpTransport(timeout=10.0)
        >>> response = await transport.call("https://example.com/api", "POST", body='{"a": 1}')
        >>> response.raise_for_status().decode()
    """

    def __init__(
        self,
        *,
        timeout: float | None = None,
        connect_timeout: float = _DEFAULT_CONNECT_TIMEOUT,
        proxy: str | None = None,
        default_headers: dict[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize HTTP transport.

        Args:
            timeout: Default request timeout in seconds
            connect_timeout: Connect phase timeout in seconds
            proxy: Proxy URL
            default_headers: Headers sent with every call
            client: Pre-built httpx client (owned by the caller)
        """
        self._timeout = timeout
        if self._timeout is None:
            env_timeout = os.getenv("RESILIENT_NET_HTTP_TIMEOUT_SECS")
            if env_timeout:
                with suppress(ValueError):
                    self._timeout = float(env_timeout)
        if self._timeout is None:
            self._timeout = _DEFAULT_TIMEOUT

        self._connect_timeout = connect_timeout

        if proxy is not None:
            self._proxy = proxy
        elif _trust_env_enabled():
            self._proxy = os.getenv("RESILIENT_NET_PROXY_URL")
        else:
            self._proxy = None

        self._default_headers = default_headers or {}
        self._client = client
        self._owns_client = client is None

    @property
    def timeout(self) -> float:
        """Default request timeout in seconds."""
        return self._timeout  # type: ignore[return-value]

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout, connect=self._connect_timeout),
                proxy=self._proxy,
                http2=HAS_HTTP2,
                trust_env=_trust_env_enabled(),
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    def _build_headers(self, extra_headers: dict[str, str] | None = None) -> dict[str, str]:
        headers = {
            "User-Agent": f"resilient-net/{_get_ua_version()}",
        }
        headers.update(self._default_headers)
        if extra_headers:
            headers.update(extra_headers)
        return headers

    async def call(
        self,
        url: str,
        method: str = "GET",
        headers: dict[str, str] | None = None,
        body: str | bytes | None = None,
        timeout: float | None = None,
        *,
        json: Any = None,
    ) -> TransportResponse:
        """Execute one HTTP exchange.

        Non-2xx statuses are returned, not raised; use
        `TransportResponse.raise_for_status()`.

        Args:
            url: Absolute URL
            method: HTTP method
            headers: Additional headers
            body: Raw body
            timeout: Overall timeout in seconds (defaults to the transport's)
            json: JSON body (takes precedence over `body`)

        Returns:
            TransportResponse

        Raises:
            TransportError: On timeout, refused connection or resolve failure
        """
        client = self._get_client()
        effective = timeout if timeout is not None else self._timeout
        request_timeout = httpx.Timeout(
            effective, connect=min(self._connect_timeout, effective)  # type: ignore[type-var]
        )

        try:
            response = await client.request(
                method=method.upper(),
                url=url,
                headers=self._build_headers(headers),
                content=None if json is not None else body,
                json=json,
                timeout=request_timeout,
            )
        except httpx.TimeoutException as e:
            raise TransportError(
                f"Request timed out: {e}",
                url=url,
                timed_out=True,
                cause=e,
            ) from e
        except httpx.ConnectError as e:
            raise TransportError(
                f"Connection failed: {e}",
                url=url,
                cause=e,
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(
                f"HTTP error: {e}",
                url=url,
                cause=e,
            ) from e

        return TransportResponse(
            status=response.status_code,
            headers={k.lower(): v for k, v in response.headers.items()},
            body=response.content,
            url=str(response.url),
            elapsed_ms=response.elapsed.total_seconds() * 1000,
        )

    async def __aenter__(self) -> HttpTransport:
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()
