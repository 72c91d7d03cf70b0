# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Transport abstraction and the httpx-based implementation.

The proxy hands each ``EncodedRequest`` to a ``Transport`` and awaits a
``ResponseEnvelope``.  Connection pooling, TLS, redirects and timeouts
are the transport's business.  Transports signal connection-level
failures by raising ``NetworkError``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Protocol

import httpx

from httprpc._debug import fmt_body, fmt_headers, wire_http_logger
from httprpc.errors import NetworkError
from httprpc.request import EncodedRequest

__all__ = [
    "HttpxTransport",
    "ResponseEnvelope",
    "Transport",
]


@dataclass(frozen=True)
class ResponseEnvelope:
    """Raw HTTP response, opaque until decoded.

    Attributes:
        status_code: HTTP status code.
        headers: Response headers (case-insensitive lookup for httpx headers).
        body: Raw response body.

    """

    status_code: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def content_type(self) -> str | None:
        """The ``Content-Type`` header value, or ``None``."""
        if isinstance(self.headers, httpx.Headers):
            return self.headers.get("content-type")
        for key, value in self.headers.items():
            if key.lower() == "content-type":
                return value
        return None

    @property
    def is_success(self) -> bool:
        """Whether the status code is in 200-299."""
        return 200 <= self.status_code <= 299


class Transport(Protocol):
    """Asynchronous HTTP transport used by ``WebServiceProxy``."""

    async def send(self, request: EncodedRequest) -> ResponseEnvelope:
        """Send *request* and return the complete response.

        Raises:
            NetworkError: If no response could be obtained.

        """
        ...

    async def aclose(self) -> None:
        """Release transport resources."""
        ...


class HttpxTransport:
    """``Transport`` backed by ``httpx.AsyncClient``.

    The client is created lazily on first use so it binds to the event
    loop that runs the invocations.
    """

    __slots__ = ("_client", "_follow_redirects", "_timeout", "_transport")

    def __init__(
        self,
        *,
        timeout: float | None = 30.0,
        connect_timeout: float | None = None,
        follow_redirects: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize with timeouts and an optional underlying httpx transport.

        Args:
            timeout: Read/write/pool timeout in seconds, ``None`` for no limit.
            connect_timeout: Connect timeout in seconds; defaults to *timeout*.
            follow_redirects: Whether redirects are followed.
            transport: Custom httpx transport (e.g. ``httpx.MockTransport``).

        """
        self._timeout = httpx.Timeout(timeout, connect=connect_timeout if connect_timeout is not None else timeout)
        self._follow_redirects = follow_redirects
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                follow_redirects=self._follow_redirects,
                transport=self._transport,
            )
        return self._client

    async def send(self, request: EncodedRequest) -> ResponseEnvelope:
        """Send *request* with httpx and read the full body."""
        if wire_http_logger.isEnabledFor(logging.DEBUG):
            wire_http_logger.debug(
                "HTTP %s %s headers=%s body=%s",
                request.method,
                request.url,
                fmt_headers(request.headers),
                fmt_body(request.body),
            )
        try:
            response = await self._get_client().request(
                request.method,
                request.url,
                headers=list(request.headers),
                content=request.body,
            )
        except httpx.TransportError as exc:
            raise NetworkError(exc) from exc
        if wire_http_logger.isEnabledFor(logging.DEBUG):
            wire_http_logger.debug(
                "HTTP %d from %s %s body=%s",
                response.status_code,
                request.method,
                request.url,
                fmt_body(response.content),
            )
        return ResponseEnvelope(response.status_code, response.headers, response.content)

    async def aclose(self) -> None:
        """Close the underlying client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
