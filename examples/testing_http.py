"""Exercising a WebServiceProxy without a running server.

``make_test_proxy`` mounts any ASGI application behind ``httpx.ASGITransport``
so the full client stack (encoding, authentication, decoding, callbacks)
runs in-process with zero network I/O.

Requires ``pip install httprpc[test]``

Run::

    python examples/testing_http.py
"""

from __future__ import annotations

import json
import threading
from typing import Any

import falcon
import falcon.asgi

from httprpc import BearerAuthentication, ContentType, FileReference, HTTPStatusError, HttpRpcError
from httprpc._testing import make_test_proxy

# ---------------------------------------------------------------------------
# 1. A small Falcon service
# ---------------------------------------------------------------------------


class SumResource:
    """``GET /api/sum?values=1&values=2`` returns the total."""

    async def on_get(self, req: falcon.asgi.Request, resp: falcon.asgi.Response) -> None:
        values = req.get_param_as_list("values", transform=int, default=[])
        resp.media = {"total": sum(values), "count": len(values)}


class UploadResource:
    """``POST /api/upload`` stores a multipart file; requires a bearer token."""

    async def on_post(self, req: falcon.asgi.Request, resp: falcon.asgi.Response) -> None:
        if req.get_header("Authorization") != "Bearer s3cret":
            raise falcon.HTTPUnauthorized(title="bad token")
        form = await req.get_media()
        received: dict[str, Any] = {}
        async for part in form:
            data = await part.get_data()
            received[part.name] = part.filename or data.decode()
            if part.filename:
                received["size"] = len(data)
        resp.media = received


def create_app() -> falcon.asgi.App:
    """Build the demo application."""
    app = falcon.asgi.App()
    app.add_route("/api/sum", SumResource())
    app.add_route("/api/upload", UploadResource())
    return app


# ---------------------------------------------------------------------------
# 2. Drive it through the proxy
# ---------------------------------------------------------------------------


def main() -> None:
    """Run the demo calls and print their outcomes."""
    app = create_app()

    with make_test_proxy(app) as proxy:
        # Blocking convenience
        print(f"sum: {proxy.invoke('GET', 'sum', {'values': [1, 2, 3]}).result(timeout=5)}")

        # Callback delivery
        done = threading.Event()

        def on_result(result: Any, error: HttpRpcError | None) -> None:
            print(f"callback: result={result} error={error}")
            done.set()

        proxy.invoke("GET", "sum", {"values": [10, 20]}, callback=on_result)
        done.wait(5)

        # Per-call decoder override
        total = proxy.invoke("GET", "sum", {"values": [4, 5]}, decoder=_total_only).result(timeout=5)
        print(f"override: {total}")

        # HTTP status errors keep the decoded body
        try:
            proxy.invoke("POST", "upload", attachments={"doc": FileReference(data=b"x")}).result(timeout=5)
        except HTTPStatusError as e:
            print(f"status error: {e.status_code} {e.result['title']}")

    with make_test_proxy(app, authentication=BearerAuthentication("s3cret")) as proxy:
        uploaded = proxy.invoke(
            "POST",
            "upload",
            {"title": "report"},
            {"doc": FileReference(data=b"quarterly numbers", filename="q3.txt")},
        ).result(timeout=5)
        print(f"upload: {uploaded}")


def _total_only(body: bytes, content_type: ContentType) -> int:
    return int(json.loads(body)["total"])


if __name__ == "__main__":
    main()
