"""Debug logging infrastructure for wire-level diagnostics.

Provides logger instances under the ``httprpc.wire.*`` hierarchy and
formatting helpers for requests and responses.  Enabling
``logging.getLogger("httprpc.wire").setLevel(logging.DEBUG)`` shows what
each invocation puts on the wire and what comes back.

All formatting helpers return ``str`` and never log directly.
They are designed to be called inside ``isEnabledFor`` guards so
there is zero overhead when debug logging is disabled.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

# ---------------------------------------------------------------------------
# Logger hierarchy: httprpc.wire.*
# ---------------------------------------------------------------------------

wire_request_logger = logging.getLogger("httprpc.wire.request")
"""Argument flattening and request construction."""

wire_response_logger = logging.getLogger("httprpc.wire.response")
"""Response classification and decoding."""

wire_http_logger = logging.getLogger("httprpc.wire.http")
"""Transport round-trips."""

# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

_MAX_VALUE_LEN = 80
"""Maximum length for individual values in fmt_pairs / fmt_headers."""

_REDACTED_HEADERS = frozenset({"authorization", "proxy-authorization", "cookie"})


def _truncate(value: str) -> str:
    if len(value) > _MAX_VALUE_LEN:
        return value[:_MAX_VALUE_LEN] + "..."
    return value


def fmt_pairs(pairs: Sequence[tuple[str, str]]) -> str:
    """Format wire pairs compactly.

    Returns:
        ``"[a='1', b='2', b='3']"`` or ``"[]"`` when empty.

    """
    return "[" + ", ".join(f"{name}={_truncate(value)!r}" for name, value in pairs) + "]"


def fmt_headers(headers: Iterable[tuple[str, str]]) -> str:
    """Format headers compactly with credentials redacted.

    Returns:
        ``"{Accept='application/json', Authorization=<redacted>}"``

    """
    parts: list[str] = []
    for name, value in headers:
        if name.lower() in _REDACTED_HEADERS:
            parts.append(f"{name}=<redacted>")
        else:
            parts.append(f"{name}={_truncate(value)!r}")
    return "{" + ", ".join(parts) + "}"


def fmt_body(body: bytes | None, limit: int = 200) -> str:
    """Format a body preview.

    Returns:
        ``"none"``, or ``"<n bytes> 'preview'"`` with the first *limit*
        bytes decoded leniently.

    """
    if body is None:
        return "none"
    preview = body[:limit].decode(errors="replace")
    return f"<{len(body)} bytes> {preview!r}"
