# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Argument model and encoder.

Arguments are a mapping from name to a scalar (``str``, ``int``,
``float``, ``Decimal``, ``bool`` or ``None``) or to a ``list``/``tuple``
of scalars.  Files travel separately as ``FileReference`` values in the
attachment set.

``flatten`` turns an argument mapping into the ordered sequence of
``(name, value)`` wire pairs shared by every request encoding.
"""

from __future__ import annotations

import math
import mimetypes
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from urllib.parse import unquote, urlsplit

from httprpc.errors import EncodingError

__all__ = [
    "ArgumentValue",
    "Arguments",
    "Attachments",
    "FileReference",
    "Scalar",
    "WirePair",
    "flatten",
    "format_scalar",
]

Scalar = str | int | float | Decimal | bool | None
ArgumentValue = Scalar | Sequence[Scalar]
Arguments = Mapping[str, ArgumentValue]

WirePair = tuple[str, str]
"""A flattened ``(name, value)`` unit with the value already rendered as text."""

_DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class FileReference:
    """A locatable byte source sent as a multipart file part.

    Exactly one of *source* and *data* must be given.

    Attributes:
        source: Filesystem path or ``file:`` URL of the content.
        filename: Filename declared in the part; defaults to the last
            component of *source*.
        content_type: MIME type declared in the part; sniffed from the
            filename when omitted.
        data: In-memory content, used instead of reading *source*.

    """

    source: str | Path | None = None
    filename: str | None = None
    content_type: str | None = None
    data: bytes | None = None

    def __post_init__(self) -> None:
        """Validate that exactly one content origin is present."""
        if (self.source is None) == (self.data is None):
            raise ValueError("FileReference requires exactly one of source or data")

    def _path(self) -> Path:
        if isinstance(self.source, Path):
            return self.source
        assert self.source is not None
        parts = urlsplit(self.source)
        if parts.scheme == "file":
            return Path(unquote(parts.path))
        # Windows drive letters parse as a one-letter scheme
        if parts.scheme and len(parts.scheme) > 1:
            raise EncodingError("unsupported-file-reference", f"cannot read {self.source!r}")
        return Path(self.source)

    @property
    def resolved_filename(self) -> str:
        """Filename to declare in the multipart part."""
        if self.filename:
            return self.filename
        if self.source is None:
            return "file"
        return self._path().name or "file"

    @property
    def resolved_content_type(self) -> str:
        """MIME type to declare, sniffed from the filename when not given."""
        if self.content_type:
            return self.content_type
        guessed, _ = mimetypes.guess_type(self.resolved_filename)
        return guessed or _DEFAULT_CONTENT_TYPE

    def read_bytes(self) -> bytes:
        """Return the referenced content.

        Raises:
            EncodingError: If the source cannot be read.

        """
        if self.data is not None:
            return self.data
        path = self._path()
        try:
            return path.read_bytes()
        except OSError as exc:
            raise EncodingError("unreadable-file-reference", f"{path}: {exc.strerror or exc}") from exc


Attachments = Mapping[str, FileReference]


# ---------------------------------------------------------------------------
# Scalar rendering
# ---------------------------------------------------------------------------


def _format_number(value: int | float | Decimal) -> str:
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise EncodingError("non-finite-number", repr(value))
        text = repr(value)
        if "e" not in text:
            return text
        value = Decimal(text)
    if not value.is_finite():
        raise EncodingError("non-finite-number", str(value))
    return format(value, "f")


def format_scalar(value: Scalar) -> str:
    """Render a scalar argument as wire text.

    Booleans render as ``"true"``/``"false"``, ``None`` as the empty
    string, and numbers in plain locale-independent decimal notation
    (never exponent form).

    Raises:
        EncodingError: If *value* is not a supported scalar or is a
            non-finite number.

    """
    if value is None:
        return ""
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, int | float | Decimal):
        return _format_number(value)
    if isinstance(value, FileReference):
        raise EncodingError("file-reference-in-arguments", "files must be passed as attachments")
    raise EncodingError("unsupported-shape", f"unsupported argument type {type(value).__name__}")


# ---------------------------------------------------------------------------
# Flattening
# ---------------------------------------------------------------------------


def _is_list(value: object) -> bool:
    return isinstance(value, list | tuple)


def flatten(arguments: Arguments) -> list[WirePair]:
    """Flatten an argument mapping into ordered wire pairs.

    Mapping order is preserved.  A list contributes one pair per element,
    repeating its name; an empty list contributes nothing.

    Args:
        arguments: Argument mapping in declaration order.

    Returns:
        The wire pairs, values rendered with ``format_scalar``.

    Raises:
        EncodingError: On nested lists, maps, file references or other
            unsupported values.

    """
    pairs: list[WirePair] = []
    for name, value in arguments.items():
        if not isinstance(name, str):
            raise EncodingError("unsupported-shape", f"argument name {name!r} is not a string")
        if isinstance(value, Mapping):
            raise EncodingError("unsupported-shape", f"argument {name!r} is a map")
        if _is_list(value):
            assert isinstance(value, list | tuple)
            for element in value:
                if _is_list(element) or isinstance(element, Mapping):
                    raise EncodingError("unsupported-shape", f"argument {name!r} is nested")
                pairs.append((name, format_scalar(element)))
        else:
            pairs.append((name, format_scalar(value)))  # type: ignore[arg-type]
    return pairs
