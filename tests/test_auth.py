"""Tests for authentication providers."""

from __future__ import annotations

import pytest

from httprpc import (
    Authentication,
    BasicAuthentication,
    BearerAuthentication,
    EncodedRequest,
    NoAuthentication,
)

_REQUEST = EncodedRequest(
    "POST",
    "http://h/op",
    (("Accept", "application/json"), ("Content-Type", "application/x-www-form-urlencoded")),
    b"a=1",
)


class TestBasicAuthentication:
    """HTTP Basic credentials."""

    def test_header_value(self) -> None:
        """The header is ``Basic base64(user:password)``."""
        assert BasicAuthentication("user", "pass").header_value == "Basic dXNlcjpwYXNz"

    def test_apply_adds_header(self) -> None:
        """Only the Authorization header changes."""
        applied = BasicAuthentication("user", "pass").apply(_REQUEST)
        assert applied.header("Authorization") == "Basic dXNlcjpwYXNz"
        assert applied.url == _REQUEST.url
        assert applied.body == _REQUEST.body
        assert applied.header("Accept") == "application/json"

    def test_apply_replaces_existing(self) -> None:
        """An existing Authorization header is replaced, not duplicated."""
        req = _REQUEST.with_header("authorization", "Bearer stale")
        applied = BasicAuthentication("user", "pass").apply(req)
        assert [v for k, v in applied.headers if k.lower() == "authorization"] == ["Basic dXNlcjpwYXNz"]

    def test_utf8_credentials(self) -> None:
        """Non-ASCII credentials are UTF-8 encoded before base64."""
        assert BasicAuthentication("zoë", "pw").header_value == "Basic em/Dqzpwdw=="

    def test_colon_in_username_rejected(self) -> None:
        """User names cannot contain the separator."""
        with pytest.raises(ValueError, match="':'"):
            BasicAuthentication("a:b", "pw")

    def test_password_not_in_repr(self) -> None:
        """The password is kept out of ``repr``."""
        assert "secret" not in repr(BasicAuthentication("user", "secret"))


class TestBearerAuthentication:
    """Bearer tokens."""

    def test_apply(self) -> None:
        """The token is sent as ``Bearer <token>``."""
        applied = BearerAuthentication("tok123").apply(_REQUEST)
        assert applied.header("Authorization") == "Bearer tok123"

    def test_empty_token_rejected(self) -> None:
        """Empty tokens are invalid."""
        with pytest.raises(ValueError, match="non-empty"):
            BearerAuthentication("")


class TestNoAuthentication:
    """Identity provider."""

    def test_request_unchanged(self) -> None:
        """The same request object is returned."""
        assert NoAuthentication().apply(_REQUEST) is _REQUEST

    @pytest.mark.parametrize(
        "provider",
        [NoAuthentication(), BasicAuthentication("u", "p"), BearerAuthentication("t")],
    )
    def test_protocol_conformance(self, provider: object) -> None:
        """Built-in providers satisfy the ``Authentication`` protocol."""
        assert isinstance(provider, Authentication)
