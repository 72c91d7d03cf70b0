# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Request building: query string, url-encoded body, or multipart body.

The encoding strategy is chosen from the verb and the attachment set:

- **Body-less verb** (GET, HEAD, DELETE by default): wire pairs go into the
  URL query string; attachments are rejected.
- **No attachments**: ``application/x-www-form-urlencoded`` body.
- **Attachments**: ``multipart/form-data`` body with a boundary checked
  against every part's content.

Names and values are percent-encoded per RFC 3986 (UTF-8, space as
``%20``) in both query and url-encoded body position.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, replace
from urllib.parse import quote

import httpx

from httprpc._debug import fmt_headers, fmt_pairs, wire_request_logger
from httprpc.arguments import Attachments, FileReference, WirePair
from httprpc.errors import EncodingError

__all__ = [
    "DEFAULT_BODY_LESS_VERBS",
    "EncodedRequest",
    "FORM_URLENCODED",
    "MULTIPART_FORM_DATA",
    "build_request",
    "percent_encode",
    "resolve_url",
]

FORM_URLENCODED = "application/x-www-form-urlencoded"
MULTIPART_FORM_DATA = "multipart/form-data"

DEFAULT_BODY_LESS_VERBS: frozenset[str] = frozenset({"GET", "HEAD", "DELETE"})

_CRLF = b"\r\n"
_MAX_BOUNDARY_ATTEMPTS = 16

Header = tuple[str, str]


@dataclass(frozen=True)
class EncodedRequest:
    """A fully-formed HTTP request ready for dispatch.

    Attributes:
        method: Upper-case HTTP verb.
        url: Absolute URL including any query string.
        headers: Ordered header pairs; names compare case-insensitively.
        body: Request body, or ``None`` for body-less requests.

    """

    method: str
    url: str
    headers: tuple[Header, ...] = ()
    body: bytes | None = None

    def header(self, name: str) -> str | None:
        """Return the first value of header *name*, or ``None``."""
        lowered = name.lower()
        for key, value in self.headers:
            if key.lower() == lowered:
                return value
        return None

    def with_header(self, name: str, value: str) -> EncodedRequest:
        """Return a copy with header *name* set to *value*, replacing existing values."""
        lowered = name.lower()
        kept = tuple((k, v) for k, v in self.headers if k.lower() != lowered)
        return replace(self, headers=(*kept, (name, value)))


# ---------------------------------------------------------------------------
# Percent-encoding
# ---------------------------------------------------------------------------


def _utf8(text: str) -> bytes:
    try:
        return text.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise EncodingError("unencodable-text", f"{text!r} is not valid UTF-8 text") from exc


def percent_encode(text: str) -> str:
    """Percent-encode *text* as an RFC 3986 query component.

    Only unreserved characters (``A-Z a-z 0-9 - . _ ~``) pass through;
    everything else, including space, is encoded from its UTF-8 bytes.
    """
    return quote(_utf8(text), safe="-._~")


def _urlencode(pairs: Iterable[WirePair]) -> str:
    return "&".join(f"{percent_encode(name)}={percent_encode(value)}" for name, value in pairs)


def _append_query(url: str, query: str) -> str:
    if not query:
        return url
    base, sep, fragment = url.partition("#")
    joiner = "&" if "?" in base else "?"
    if base.endswith(("?", "&")):
        joiner = ""
    return f"{base}{joiner}{query}{sep}{fragment}"


# ---------------------------------------------------------------------------
# Multipart
# ---------------------------------------------------------------------------


def _default_boundary() -> str:
    return f"httprpc-{uuid.uuid4().hex}"


def _quote_param(value: str) -> str:
    # multipart/form-data escaping for quoted-string parameters
    return value.replace("\\", "\\\\").replace('"', "%22").replace("\r", "%0D").replace("\n", "%0A")


@dataclass
class _Part:
    name: str
    content: bytes
    filename: str | None = None
    content_type: str | None = None

    def head(self) -> bytes:
        disposition = f'Content-Disposition: form-data; name="{_quote_param(self.name)}"'
        if self.filename is not None:
            disposition += f'; filename="{_quote_param(self.filename)}"'
        lines = [_utf8(disposition)]
        if self.content_type is not None:
            lines.append(f"Content-Type: {self.content_type}".encode("utf-8"))
        return _CRLF.join(lines) + _CRLF + _CRLF


def _choose_boundary(parts: Sequence[_Part], make_boundary: Callable[[], str]) -> str:
    for _ in range(_MAX_BOUNDARY_ATTEMPTS):
        boundary = make_boundary()
        token = boundary.encode("ascii")
        if not any(token in part.content or token in part.head() for part in parts):
            return boundary
        wire_request_logger.debug("Boundary %r collides with part content, regenerating", boundary)
    raise EncodingError("boundary-exhausted", f"no unique boundary after {_MAX_BOUNDARY_ATTEMPTS} attempts")


def _encode_multipart(
    pairs: Sequence[WirePair],
    attachments: Attachments,
    make_boundary: Callable[[], str],
) -> tuple[str, bytes]:
    parts = [_Part(name, _utf8(value)) for name, value in pairs]
    for name, reference in attachments.items():
        if not isinstance(name, str):
            raise EncodingError("unsupported-shape", f"attachment name {name!r} is not a string")
        if not isinstance(reference, FileReference):
            raise EncodingError("unsupported-attachment", f"attachment {name!r} is not a FileReference")
        parts.append(
            _Part(
                name,
                reference.read_bytes(),
                filename=reference.resolved_filename,
                content_type=reference.resolved_content_type,
            )
        )

    boundary = _choose_boundary(parts, make_boundary)
    delimiter = b"--" + boundary.encode("ascii")
    chunks: list[bytes] = []
    for part in parts:
        chunks += [delimiter, _CRLF, part.head(), part.content, _CRLF]
    chunks += [delimiter, b"--", _CRLF]
    return f"{MULTIPART_FORM_DATA}; boundary={boundary}", b"".join(chunks)


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


def resolve_url(base_url: str | None, path: str) -> str:
    """Resolve *path* against *base_url*; absolute URLs are returned unchanged.

    Raises:
        EncodingError: If either URL is malformed, or the result is not an
            absolute URL (a relative *path* without a *base_url*).

    """
    try:
        url = httpx.URL(path) if base_url is None else httpx.URL(base_url).join(path)
    except (httpx.InvalidURL, UnicodeEncodeError) as exc:
        raise EncodingError("invalid-url", str(exc)) from exc
    if not url.scheme or not url.host:
        raise EncodingError("invalid-url", f"{str(url)!r} is not an absolute URL")
    return str(url)


def build_request(
    verb: str,
    url: str,
    pairs: Sequence[WirePair],
    attachments: Attachments | None = None,
    *,
    headers: Iterable[Header] = (),
    body_less_verbs: frozenset[str] = DEFAULT_BODY_LESS_VERBS,
    make_boundary: Callable[[], str] = _default_boundary,
) -> EncodedRequest:
    """Build an encoded request from flattened wire pairs.

    Args:
        verb: HTTP verb (case-insensitive).
        url: Absolute target URL, possibly with an existing query.
        pairs: Wire pairs from ``flatten``.
        attachments: Field name to ``FileReference`` mapping.
        headers: Extra headers placed before the content headers.
        body_less_verbs: Verbs whose arguments travel in the query string.
        make_boundary: Boundary factory (injectable for tests).

    Returns:
        The encoded request.

    Raises:
        EncodingError: If attachments are given with a body-less verb, or
            an attachment cannot be read.

    """
    method = verb.upper()
    attachments = attachments or {}
    base_headers = tuple(headers)

    if method in body_less_verbs:
        if attachments:
            raise EncodingError("attachments-with-body-less-verb", f"{method} cannot carry attachments")
        request = EncodedRequest(method, _append_query(url, _urlencode(pairs)), base_headers, None)
    elif not attachments:
        body = _urlencode(pairs).encode("ascii")
        request = EncodedRequest(method, url, (*base_headers, ("Content-Type", FORM_URLENCODED)), body)
    else:
        content_type, body = _encode_multipart(pairs, attachments, make_boundary)
        request = EncodedRequest(method, url, (*base_headers, ("Content-Type", content_type)), body)

    if wire_request_logger.isEnabledFor(logging.DEBUG):
        wire_request_logger.debug(
            "Built request: %s %s pairs=%s attachments=%s headers=%s body_size=%s",
            request.method,
            request.url,
            fmt_pairs(pairs),
            sorted(attachments),
            fmt_headers(request.headers),
            "none" if request.body is None else len(request.body),
        )
    return request
