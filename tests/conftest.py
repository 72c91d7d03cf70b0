# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Shared fixtures for the httprpc test suite.

Proxies are wired to in-process backends only: ``httpx.MockTransport``
handlers, the Falcon echo app through ``httpx.ASGITransport``, or
``GatedTransport`` when a test needs to hold a request in flight.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Callable, Iterator
from typing import Any

import httpx
import pytest

from httprpc import HttpRpcError, ProxyConfig, WebServiceProxy
from httprpc._testing import TEST_BASE_URL, make_test_proxy
from httprpc.request import EncodedRequest
from httprpc.transport import HttpxTransport, ResponseEnvelope

# ---------------------------------------------------------------------------
# Callback recorder
# ---------------------------------------------------------------------------


class Recorder:
    """Result callback that records every delivery."""

    def __init__(self) -> None:
        self.calls: list[tuple[Any, HttpRpcError | None]] = []
        self.threads: list[str] = []
        self._event = threading.Event()

    def __call__(self, result: Any, error: HttpRpcError | None) -> None:
        self.calls.append((result, error))
        self.threads.append(threading.current_thread().name)
        self._event.set()

    def wait(self, timeout: float = 5.0) -> tuple[Any, HttpRpcError | None]:
        """Block until the first delivery and return it."""
        assert self._event.wait(timeout), "callback was not delivered"
        return self.calls[0]


# ---------------------------------------------------------------------------
# Gated transport
# ---------------------------------------------------------------------------


class GatedTransport:
    """Transport that holds every request until ``release()`` is called."""

    def __init__(self, response: ResponseEnvelope | None = None) -> None:
        self.response = response or ResponseEnvelope(200, {"Content-Type": "application/json"}, b'{"ok": true}')
        self.requests: list[EncodedRequest] = []
        self.started = threading.Event()
        self.closed = False
        self._gate = threading.Event()

    async def send(self, request: EncodedRequest) -> ResponseEnvelope:
        self.requests.append(request)
        self.started.set()
        while not self._gate.is_set():
            await asyncio.sleep(0.001)
        return self.response

    def release(self) -> None:
        self._gate.set()

    async def aclose(self) -> None:
        self.closed = True


def drain(proxy: WebServiceProxy) -> None:
    """Wait until callbacks already scheduled on the proxy's loop have run."""
    loop = proxy._loop_thread.get()
    asyncio.run_coroutine_threadsafe(asyncio.sleep(0.05), loop).result(timeout=5)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def recorder() -> Recorder:
    """Return a fresh callback recorder."""
    return Recorder()


@pytest.fixture
def echo_proxy() -> Iterator[WebServiceProxy]:
    """Proxy bound to the in-process Falcon echo app."""
    proxy = make_test_proxy()
    yield proxy
    proxy.close()


MockHandler = Callable[[httpx.Request], httpx.Response]


@pytest.fixture
def mock_proxy() -> Iterator[Callable[..., WebServiceProxy]]:
    """Factory for proxies whose requests are answered by an ``httpx.MockTransport`` handler."""
    proxies: list[WebServiceProxy] = []

    def factory(handler: MockHandler, **kwargs: Any) -> WebServiceProxy:
        config = kwargs.pop("config", None) or ProxyConfig(base_url=TEST_BASE_URL)
        transport = HttpxTransport(transport=httpx.MockTransport(handler))
        proxy = WebServiceProxy(config, transport=transport, **kwargs)
        proxies.append(proxy)
        return proxy

    yield factory
    for proxy in proxies:
        proxy.close()


@pytest.fixture
def gated() -> Iterator[tuple[WebServiceProxy, GatedTransport]]:
    """Proxy over a ``GatedTransport``; the gate is released on teardown."""
    transport = GatedTransport()
    proxy = WebServiceProxy(ProxyConfig(base_url=TEST_BASE_URL), transport=transport)
    yield proxy, transport
    transport.release()
    proxy.close()
