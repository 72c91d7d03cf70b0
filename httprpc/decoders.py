# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Response content decoders and the decoder registry.

A decoder is a callable ``(body, content_type) -> value`` turning raw
response bytes into a generic value tree.  ``DecoderRegistry`` maps MIME
types to decoders.  Lookup uses the bare MIME type (parameters such as
``charset`` are stripped and handed to the decoder) and falls back to a
``type/*`` wildcard entry.

Built-in decoders:

- ``application/json``: objects to ``dict``, arrays to ``list``,
  integers to ``int``, other numbers to ``Decimal``.
- ``text/*``: ``str`` decoded with the declared charset (UTF-8 default).
- ``image/*`` and ``application/octet-stream``: raw ``bytes``.
- ``application/vnd.apache.arrow.stream``: list of row maps.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from io import BytesIO
from types import MappingProxyType
from typing import Any

import pyarrow as pa
from pyarrow import ipc

from httprpc._debug import wire_response_logger
from httprpc.errors import DecodeError

__all__ = [
    "ARROW_STREAM",
    "APPLICATION_JSON",
    "ContentType",
    "Decoder",
    "DecoderRegistry",
    "decode_arrow_stream",
    "decode_bytes",
    "decode_json",
    "decode_text",
    "default_registry",
    "parse_content_type",
    "run_decoder",
]

APPLICATION_JSON = "application/json"
ARROW_STREAM = "application/vnd.apache.arrow.stream"

_DEFAULT_CHARSET = "utf-8"


@dataclass(frozen=True)
class ContentType:
    """A parsed ``Content-Type`` header value.

    Attributes:
        mime_type: Lower-cased ``type/subtype`` without parameters.
        params: Lower-cased parameter names mapped to unquoted values.

    """

    mime_type: str
    params: Mapping[str, str] = field(default_factory=dict)

    @property
    def charset(self) -> str | None:
        """The ``charset`` parameter, if present."""
        return self.params.get("charset")

    @property
    def wildcard(self) -> str:
        """The ``type/*`` form of the MIME type."""
        major, _, _ = self.mime_type.partition("/")
        return f"{major}/*"


def parse_content_type(value: str) -> ContentType:
    """Parse a ``Content-Type`` header value.

    Args:
        value: Raw header value, e.g. ``"text/plain; charset=ISO-8859-1"``.

    Returns:
        The parsed content type.

    """
    mime_type, *raw_params = value.split(";")
    params: dict[str, str] = {}
    for raw in raw_params:
        key, sep, val = raw.partition("=")
        if not sep:
            continue
        val = val.strip()
        if len(val) >= 2 and val[0] == val[-1] == '"':
            val = val[1:-1]
        params[key.strip().lower()] = val
    return ContentType(mime_type.strip().lower(), params)


Decoder = Callable[[bytes, ContentType], Any]
"""Callable turning a response body and its content type into a value tree."""


# ---------------------------------------------------------------------------
# Built-in decoders
# ---------------------------------------------------------------------------


def _text(body: bytes, content_type: ContentType) -> str:
    return body.decode(content_type.charset or _DEFAULT_CHARSET)


def decode_json(body: bytes, content_type: ContentType) -> Any:
    """Decode a JSON document, keeping non-integer numbers as ``Decimal``."""
    return json.loads(_text(body, content_type), parse_float=Decimal)


def decode_text(body: bytes, content_type: ContentType) -> str:
    """Decode a text body using its declared charset."""
    return _text(body, content_type)


def decode_bytes(body: bytes, content_type: ContentType) -> bytes:
    """Return the body unchanged."""
    return body


def decode_arrow_stream(body: bytes, content_type: ContentType) -> list[dict[str, Any]]:
    """Decode an Arrow IPC stream into a list of row maps."""
    table: pa.Table = ipc.open_stream(BytesIO(body)).read_all()
    return table.to_pylist()


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DecoderRegistry:
    """Immutable mapping from MIME type to decoder.

    ``register`` returns a new registry, so a registry shared by
    concurrent invocations is never mutated.

    Attributes:
        decoders: MIME type (or ``type/*`` wildcard) to decoder.

    """

    decoders: Mapping[str, Decoder] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Freeze and normalize the decoder table."""
        table = {key.lower(): decoder for key, decoder in self.decoders.items()}
        object.__setattr__(self, "decoders", MappingProxyType(table))

    def register(self, mime_type: str, decoder: Decoder) -> DecoderRegistry:
        """Return a new registry with *decoder* registered for *mime_type*."""
        return DecoderRegistry({**self.decoders, mime_type.lower(): decoder})

    def lookup(self, content_type: ContentType) -> Decoder | None:
        """Return the decoder for *content_type*, trying the exact type then ``type/*``."""
        decoder = self.decoders.get(content_type.mime_type)
        if decoder is None:
            decoder = self.decoders.get(content_type.wildcard)
        return decoder

    def decode(self, content_type: str | None, body: bytes) -> Any:
        """Decode *body* according to *content_type*.

        Args:
            content_type: Raw ``Content-Type`` header value, or ``None``.
            body: Response body.

        Returns:
            The decoded value tree.

        Raises:
            DecodeError: If no decoder is registered or the decoder fails.

        """
        raw = content_type or ""
        parsed = parse_content_type(raw)
        decoder = self.lookup(parsed)
        if decoder is None:
            raise DecodeError(raw)
        return run_decoder(decoder, parsed, raw, body)


def run_decoder(decoder: Decoder, parsed: ContentType, raw: str, body: bytes) -> Any:
    """Run *decoder*, mapping any failure to ``DecodeError``."""
    try:
        return decoder(body, parsed)
    except Exception as exc:
        # registered decoders may raise anything
        if wire_response_logger.isEnabledFor(logging.DEBUG):
            wire_response_logger.debug("Decoder for %r failed: %s", raw, exc)
        raise DecodeError(raw, exc) from exc


def default_registry() -> DecoderRegistry:
    """Return a registry with the built-in decoders."""
    return DecoderRegistry(
        {
            APPLICATION_JSON: decode_json,
            "text/*": decode_text,
            "image/*": decode_bytes,
            "application/octet-stream": decode_bytes,
            ARROW_STREAM: decode_arrow_stream,
        }
    )
