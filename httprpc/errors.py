# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Error domain for HTTP-RPC invocations.

Every failure of an invocation is represented as an ``HttpRpcError``
subclass and delivered to the caller's callback as a value.  The
``kind`` attribute carries the symbolic error kind for programmatic
handling.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

__all__ = [
    "CancellationError",
    "DecodeError",
    "EncodingError",
    "ErrorKind",
    "HTTPStatusError",
    "HttpRpcError",
    "NetworkError",
]


class ErrorKind(StrEnum):
    """Symbolic kinds of the HTTP-RPC error domain."""

    ENCODING = "encoding"
    NETWORK = "network"
    HTTP_STATUS = "http_status"
    DECODE = "decode"
    CANCELLED = "cancelled"


class HttpRpcError(Exception):
    """Base class for all errors delivered by an invocation."""

    kind: ErrorKind

    def __init__(self, message: str) -> None:
        """Initialize with a human-readable message."""
        self.message = message
        super().__init__(f"{self.kind.value}: {message}")


class EncodingError(HttpRpcError):
    """Caller-supplied arguments or attachments cannot be encoded.

    Attributes:
        reason: Short machine-readable reason, e.g. ``"unsupported-shape"``.

    """

    kind = ErrorKind.ENCODING

    def __init__(self, reason: str, detail: str = "") -> None:
        """Initialize with a reason code and optional detail."""
        self.reason = reason
        self.detail = detail
        super().__init__(f"{reason} ({detail})" if detail else reason)


class NetworkError(HttpRpcError):
    """Transport-level failure before any response was received.

    Attributes:
        cause: The underlying transport exception.

    """

    kind = ErrorKind.NETWORK

    def __init__(self, cause: BaseException) -> None:
        """Initialize with the underlying transport exception."""
        self.cause = cause
        super().__init__(f"{type(cause).__name__}: {cause}")


class HTTPStatusError(HttpRpcError):
    """A response was received with a status outside 200-299.

    Attributes:
        status_code: The HTTP status code.
        body: The raw response body.
        content_type: The response ``Content-Type`` header, if any.
        result: The decoded body when decoding succeeded, else ``None``.

    """

    kind = ErrorKind.HTTP_STATUS

    def __init__(
        self,
        status_code: int,
        body: bytes,
        *,
        content_type: str | None = None,
        result: Any = None,
    ) -> None:
        """Initialize with the status code, raw body and decoded body."""
        self.status_code = status_code
        self.body = body
        self.content_type = content_type
        self.result = result
        super().__init__(f"HTTP {status_code}")


class DecodeError(HttpRpcError):
    """The response body could not be decoded.

    Attributes:
        content_type: The response content type that failed to decode
            (empty string when the response carried none).
        cause: The decoder exception, or ``None`` if no decoder was found.

    """

    kind = ErrorKind.DECODE

    def __init__(self, content_type: str, cause: BaseException | None = None) -> None:
        """Initialize with the content type and optional decoder exception."""
        self.content_type = content_type
        self.cause = cause
        if cause is None:
            message = f"no decoder for content type {content_type!r}"
        else:
            message = f"cannot decode {content_type!r}: {cause}"
        super().__init__(message)


class CancellationError(HttpRpcError):
    """The invocation was cancelled before it completed."""

    kind = ErrorKind.CANCELLED

    def __init__(self) -> None:
        """Initialize the cancellation error."""
        super().__init__("invocation cancelled")
