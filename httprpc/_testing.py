# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""In-process test server for the HTTP-RPC client.

Provides ``make_echo_app``, a Falcon ASGI application that reports back
what it received, and ``make_test_proxy``, which wires a
``WebServiceProxy`` to any ASGI app through ``httpx.ASGITransport``, so no
real HTTP server needed.

Routes of the echo app:

- ``/echo`` (any verb): JSON with ``method``, ``query``, ``content_type``,
  ``authorization``, ``accept`` and the raw ``body`` text.
- ``/status/{code}``: JSON error document with the given status.
- ``/text``: ``text/plain; charset=utf-8`` body.
- ``/empty``: ``204 No Content``.
- ``/arrow``: Arrow IPC stream with two rows.
"""

from __future__ import annotations

from io import BytesIO
from typing import Any

import falcon
import falcon.asgi
import httpx
import pyarrow as pa
from pyarrow import ipc

from httprpc.decoders import ARROW_STREAM
from httprpc.proxy import ProxyConfig, WebServiceProxy
from httprpc.transport import HttpxTransport

TEST_BASE_URL = "http://testserver/api/"


class _EchoResource:
    async def on_get(self, req: falcon.asgi.Request, resp: falcon.asgi.Response) -> None:
        body = await req.stream.read()
        resp.media = {
            "method": req.method,
            "query": req.query_string,
            "content_type": req.content_type,
            "authorization": req.get_header("Authorization"),
            "accept": req.get_header("Accept"),
            "body": body.decode("utf-8", errors="replace"),
        }

    on_post = on_get
    on_put = on_get
    on_patch = on_get
    on_delete = on_get


class _StatusResource:
    async def on_get(self, req: falcon.asgi.Request, resp: falcon.asgi.Response, code: int) -> None:
        resp.status = code
        resp.media = {"error": "requested status", "code": code}

    on_post = on_get


class _TextResource:
    async def on_get(self, req: falcon.asgi.Request, resp: falcon.asgi.Response) -> None:
        resp.content_type = "text/plain; charset=utf-8"
        resp.text = "héllo wörld"


class _EmptyResource:
    async def on_get(self, req: falcon.asgi.Request, resp: falcon.asgi.Response) -> None:
        resp.status = falcon.HTTP_204

    on_delete = on_get


class _ArrowResource:
    async def on_get(self, req: falcon.asgi.Request, resp: falcon.asgi.Response) -> None:
        table = pa.table({"id": [1, 2], "name": ["a", "b"]})
        buf = BytesIO()
        with ipc.new_stream(buf, table.schema) as writer:
            writer.write_table(table)
        resp.content_type = ARROW_STREAM
        resp.data = buf.getvalue()


def make_echo_app() -> falcon.asgi.App:
    """Create the echo ASGI application."""
    app = falcon.asgi.App()
    app.add_route("/api/echo", _EchoResource())
    app.add_route("/api/status/{code:int}", _StatusResource())
    app.add_route("/api/text", _TextResource())
    app.add_route("/api/empty", _EmptyResource())
    app.add_route("/api/arrow", _ArrowResource())
    return app


def make_test_proxy(app: Any | None = None, **kwargs: Any) -> WebServiceProxy:
    """Create a ``WebServiceProxy`` that talks to *app* in-process.

    Args:
        app: ASGI application; the echo app when ``None``.
        **kwargs: Passed to ``WebServiceProxy`` (e.g. ``authentication``).

    Returns:
        A proxy whose base URL is ``TEST_BASE_URL``.

    """
    transport = HttpxTransport(transport=httpx.ASGITransport(app=app or make_echo_app()))
    config = kwargs.pop("config", None) or ProxyConfig(base_url=TEST_BASE_URL)
    return WebServiceProxy(config, transport=transport, **kwargs)
