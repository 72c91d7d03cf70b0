# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Client-side authentication providers.

An authentication provider is a small capability: ``apply(request)``
returns a copy of the built request with credentials added.  Providers
may add or replace headers but never touch the URL or body.  The proxy
applies its provider once per invocation, immediately before dispatch.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from httprpc.request import EncodedRequest

__all__ = [
    "AUTHORIZATION_HEADER",
    "Authentication",
    "BasicAuthentication",
    "BearerAuthentication",
    "NoAuthentication",
]

AUTHORIZATION_HEADER = "Authorization"


@runtime_checkable
class Authentication(Protocol):
    """Capability that decorates a built request with credentials."""

    def apply(self, request: EncodedRequest) -> EncodedRequest:
        """Return *request* with credentials added."""
        ...


@dataclass(frozen=True)
class NoAuthentication:
    """Identity provider: requests are sent unchanged."""

    def apply(self, request: EncodedRequest) -> EncodedRequest:
        """Return *request* unchanged."""
        return request


@dataclass(frozen=True)
class BasicAuthentication:
    """HTTP Basic authentication (RFC 7617).

    Attributes:
        username: User name; must not contain ``:``.
        password: Password.

    Raises:
        ValueError: If *username* contains a colon.

    """

    username: str
    password: str = field(repr=False)

    def __post_init__(self) -> None:
        """Validate the user name."""
        if ":" in self.username:
            raise ValueError("username must not contain ':'")

    @property
    def header_value(self) -> str:
        """The ``Authorization`` header value."""
        credentials = f"{self.username}:{self.password}".encode()
        return "Basic " + base64.b64encode(credentials).decode("ascii")

    def apply(self, request: EncodedRequest) -> EncodedRequest:
        """Add ``Authorization: Basic ...``, replacing any existing value."""
        return request.with_header(AUTHORIZATION_HEADER, self.header_value)


@dataclass(frozen=True)
class BearerAuthentication:
    """Bearer token authentication (RFC 6750).

    Attributes:
        token: The opaque access token.

    """

    token: str = field(repr=False)

    def __post_init__(self) -> None:
        """Validate the token."""
        if not self.token:
            raise ValueError("token must be non-empty")

    def apply(self, request: EncodedRequest) -> EncodedRequest:
        """Add ``Authorization: Bearer ...``, replacing any existing value."""
        return request.with_header(AUTHORIZATION_HEADER, f"Bearer {self.token}")
