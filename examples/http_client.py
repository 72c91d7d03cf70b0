"""Calling a live HTTP-RPC service.

Usage::

    python examples/http_client.py https://httpbin.org/

Each call is dispatched without blocking; results arrive on the proxy's
loop thread through the callback.  Set ``HTTPRPC_TOKEN`` to send a bearer
token.
"""

from __future__ import annotations

import logging
import os
import sys
import threading
from typing import Any

from httprpc import BearerAuthentication, HttpRpcError, ProxyConfig, WebServiceProxy, value_at


def main(base_url: str) -> None:
    """Issue a few calls against *base_url* and print what comes back."""
    logging.basicConfig(level=logging.INFO)
    token = os.environ.get("HTTPRPC_TOKEN")
    config = ProxyConfig(base_url=base_url, timeout=10.0, connect_timeout=3.0)
    auth = BearerAuthentication(token) if token else None

    pending = threading.Semaphore(0)

    def report(label: str) -> Any:
        def callback(result: Any, error: HttpRpcError | None) -> None:
            if error is not None:
                print(f"{label}: {error}")
            elif isinstance(result, dict):
                print(f"{label}: args={value_at(result, 'args')} form={value_at(result, 'form')}")
            else:
                print(f"{label}: {result!r}")
            pending.release()

        return callback

    with WebServiceProxy(config, authentication=auth) as proxy:
        proxy.invoke("GET", "get", {"q": "hello world", "tag": ["a", "b"]}, callback=report("GET"))
        proxy.invoke("POST", "post", {"amount": 12.5, "flag": True}, callback=report("POST"))
        proxy.invoke("GET", "status/418", callback=report("teapot"))

        slow = proxy.invoke("GET", "delay/5", callback=report("cancelled"))
        slow.cancel()

        for _ in range(4):
            pending.acquire(timeout=15)


if __name__ == "__main__":
    main(sys.argv[1] if len(sys.argv) > 1 else "https://httpbin.org/")
