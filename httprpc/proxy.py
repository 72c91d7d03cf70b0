# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Invocation proxy: encode, dispatch, decode, deliver exactly once.

``WebServiceProxy.invoke`` flattens the arguments, builds the request,
applies authentication and schedules the round-trip on a private event
loop running in a daemon thread.  It returns an ``InvocationHandle``
immediately; the caller's thread never waits on the network.

Each invocation moves through ``CREATED -> DISPATCHED`` and then to
exactly one of ``SUCCEEDED``, ``FAILED`` or ``CANCELLED``.  The terminal
transition is guarded by a lock (first writer wins), and the callback
runs once, on the loop thread, with either ``(result, None)`` or
``(None, error)``.

Logger: ``httprpc.proxy``: lifecycle events at DEBUG, callback failures
at ERROR.  Records carry ``invocation_id``, ``verb`` and ``url`` extras.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import uuid
from collections.abc import Callable, Mapping, MutableMapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType, TracebackType
from typing import Any, Protocol

from httprpc._debug import wire_response_logger
from httprpc.arguments import Arguments, Attachments, flatten
from httprpc.auth import Authentication, NoAuthentication
from httprpc.decoders import Decoder, DecoderRegistry, default_registry, parse_content_type, run_decoder
from httprpc.errors import CancellationError, DecodeError, EncodingError, HTTPStatusError, HttpRpcError, NetworkError
from httprpc.request import DEFAULT_BODY_LESS_VERBS, EncodedRequest, build_request, resolve_url
from httprpc.transport import HttpxTransport, ResponseEnvelope, Transport

__all__ = [
    "DEFAULT_ACCEPT",
    "InvocationHandle",
    "InvocationHook",
    "InvocationState",
    "ProxyConfig",
    "ResultCallback",
    "WebServiceProxy",
]

_logger = logging.getLogger("httprpc.proxy")

DEFAULT_ACCEPT = "application/json, image/*, text/*"

# Set per request by the proxy or the request builder
_REQUEST_MANAGED_HEADERS = frozenset({"accept", "content-type"})

ResultCallback = Callable[[Any, HttpRpcError | None], None]
"""Completion callback: ``(result, None)`` on success, ``(None, error)`` otherwise."""


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProxyConfig:
    """Immutable proxy configuration.

    Attributes:
        base_url: URL that invocation paths are resolved against; ``None``
            requires absolute paths.
        timeout: Transport read/write timeout in seconds (``None`` = no limit).
        connect_timeout: Connect timeout in seconds; defaults to *timeout*.
        body_less_verbs: Verbs whose arguments are sent in the query string.
        accept: Value of the ``Accept`` header sent with every request.
        headers: Extra headers sent with every request; ``Accept`` and
            ``Content-Type`` entries are ignored.

    Raises:
        ValueError: If a timeout is negative or *body_less_verbs* is empty.

    """

    base_url: str | None = None
    timeout: float | None = 30.0
    connect_timeout: float | None = None
    body_less_verbs: frozenset[str] = DEFAULT_BODY_LESS_VERBS
    accept: str = DEFAULT_ACCEPT
    headers: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate and normalize configuration values."""
        if self.timeout is not None and self.timeout < 0:
            raise ValueError(f"timeout must be >= 0, got {self.timeout}")
        if self.connect_timeout is not None and self.connect_timeout < 0:
            raise ValueError(f"connect_timeout must be >= 0, got {self.connect_timeout}")
        if not self.body_less_verbs:
            raise ValueError("body_less_verbs must not be empty")
        object.__setattr__(self, "body_less_verbs", frozenset(v.upper() for v in self.body_less_verbs))
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))


# ---------------------------------------------------------------------------
# Invocation handle
# ---------------------------------------------------------------------------


class InvocationState(StrEnum):
    """Lifecycle states of one invocation."""

    CREATED = "created"
    DISPATCHED = "dispatched"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        """Whether no further transition is possible."""
        return self in _TERMINAL


_TERMINAL = frozenset({InvocationState.SUCCEEDED, InvocationState.FAILED, InvocationState.CANCELLED})


class _InvocationLoggerAdapter(logging.LoggerAdapter[logging.Logger]):
    """LoggerAdapter binding invocation fields; bound fields win on conflict."""

    def process(self, msg: str, kwargs: MutableMapping[str, Any]) -> tuple[str, MutableMapping[str, Any]]:
        """Merge user extra with invocation extra."""
        user_extra = kwargs.get("extra", {})
        kwargs["extra"] = {**user_extra, **(self.extra or {})}
        return msg, kwargs


class InvocationHandle:
    """Cancellation token and outcome holder for one invocation.

    The proxy is the only writer of the outcome; ``cancel()`` competes
    with completion for the single terminal transition.
    """

    __slots__ = (
        "_callback",
        "_done",
        "_error",
        "_future",
        "_lock",
        "_loop",
        "_result",
        "_state",
        "invocation_id",
        "logger",
        "status_code",
        "url",
        "verb",
    )

    def __init__(
        self,
        verb: str,
        url: str,
        callback: ResultCallback | None,
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        """Initialize a handle in the ``CREATED`` state."""
        self.invocation_id = uuid.uuid4().hex
        self.verb = verb
        self.url = url
        self.status_code: int | None = None
        self.logger = _InvocationLoggerAdapter(
            _logger, {"invocation_id": self.invocation_id, "verb": verb, "url": url}
        )
        self._callback = callback
        self._loop = loop
        self._lock = threading.Lock()
        self._done = threading.Event()
        self._state = InvocationState.CREATED
        self._result: Any = None
        self._error: HttpRpcError | None = None
        self._future: Any = None

    def __repr__(self) -> str:
        """Return a short description including the current state."""
        return f"InvocationHandle({self.verb} {self.url}, state={self._state.value})"

    @property
    def state(self) -> InvocationState:
        """Current lifecycle state."""
        return self._state

    @property
    def error(self) -> HttpRpcError | None:
        """The delivered error, or ``None`` while pending or on success."""
        return self._error

    def done(self) -> bool:
        """Whether the outcome has been determined."""
        return self._done.is_set()

    def cancelled(self) -> bool:
        """Whether the invocation ended by cancellation."""
        return self._state is InvocationState.CANCELLED

    def cancel(self) -> bool:
        """Cancel the invocation if its outcome is not yet determined.

        Returns:
            ``True`` if this call cancelled the invocation, ``False`` if the
            outcome was already determined (including a prior cancel).

        """
        with self._lock:
            if self._state.terminal:
                return False
            self._state = InvocationState.CANCELLED
            self._error = CancellationError()
            future = self._future
        self._done.set()
        self.logger.debug("Invocation cancelled")
        if future is not None:
            future.cancel()
        self._schedule_delivery()
        return True

    def result(self, timeout: float | None = None) -> Any:
        """Block until the outcome is determined and return it.

        Args:
            timeout: Seconds to wait, ``None`` to wait indefinitely.

        Returns:
            The decoded result.

        Raises:
            TimeoutError: If the outcome is not determined within *timeout*.
            HttpRpcError: The delivered error.

        """
        if not self._done.wait(timeout):
            raise TimeoutError(f"invocation {self.invocation_id} not complete after {timeout}s")
        if self._error is not None:
            raise self._error
        return self._result

    def _mark_dispatched(self, future: Any) -> None:
        with self._lock:
            self._future = future
            if self._state is InvocationState.CREATED:
                self._state = InvocationState.DISPATCHED

    def _settle(self, result: Any, error: HttpRpcError | None) -> bool:
        """Record the outcome unless one already exists; first writer wins."""
        with self._lock:
            if self._state.terminal:
                return False
            self._state = InvocationState.FAILED if error is not None else InvocationState.SUCCEEDED
            self._result = result
            self._error = error
        self._done.set()
        self.logger.debug(
            "Invocation %s (status=%s, error=%s)",
            self._state.value,
            self.status_code,
            error.kind.value if error is not None else None,
        )
        self._schedule_delivery()
        return True

    def _schedule_delivery(self) -> None:
        try:
            self._loop.call_soon_threadsafe(self._deliver)
        except RuntimeError:
            # loop already closed
            self._deliver()

    def _deliver(self) -> None:
        callback = self._callback
        if callback is None:
            return
        try:
            callback(self._result, self._error)
        except Exception:
            self.logger.exception("Result callback raised")


# ---------------------------------------------------------------------------
# Hooks
# ---------------------------------------------------------------------------


class InvocationHook(Protocol):
    """Observer of dispatched invocations, called on the loop thread.

    ``on_dispatch`` sees the authenticated request and may return a
    decorated copy (e.g. with trace headers).  ``on_complete`` runs once
    for every invocation whose ``on_dispatch`` ran, after the outcome is
    determined or the invocation was cancelled.
    """

    def on_dispatch(self, handle: InvocationHandle, request: EncodedRequest) -> EncodedRequest:
        """Observe (and optionally decorate) a request about to be sent."""
        ...

    def on_complete(self, handle: InvocationHandle) -> None:
        """Observe the end of an invocation."""
        ...


# ---------------------------------------------------------------------------
# Event loop thread
# ---------------------------------------------------------------------------


@dataclass
class _LoopThread:
    """Daemon thread running the event loop shared by a proxy's invocations."""

    lock: threading.Lock = field(default_factory=threading.Lock)
    loop: asyncio.AbstractEventLoop | None = None
    thread: threading.Thread | None = None

    def get(self) -> asyncio.AbstractEventLoop:
        """Return the running loop, starting the thread on first use."""
        with self.lock:
            if self.loop is None:
                loop = asyncio.new_event_loop()
                thread = threading.Thread(target=self._run, args=(loop,), name="httprpc-loop", daemon=True)
                thread.start()
                self.loop = loop
                self.thread = thread
            return self.loop

    @staticmethod
    def _run(loop: asyncio.AbstractEventLoop) -> None:
        asyncio.set_event_loop(loop)
        try:
            loop.run_forever()
        finally:
            loop.close()

    def stop(self, transport: Transport) -> None:
        """Close *transport* on the loop, then stop the loop and join the thread."""
        with self.lock:
            loop, thread = self.loop, self.thread
            self.loop = None
            self.thread = None
        if loop is None:
            return
        if not loop.is_closed():
            asyncio.run_coroutine_threadsafe(transport.aclose(), loop).result(timeout=5)
            loop.call_soon_threadsafe(loop.stop)
        if thread is not None:
            thread.join(timeout=5)


# ---------------------------------------------------------------------------
# Proxy
# ---------------------------------------------------------------------------


class WebServiceProxy:
    """Asynchronous HTTP-RPC client.

    Example::

        with WebServiceProxy(ProxyConfig("https://example.com/api/")) as proxy:
            handle = proxy.invoke("GET", "sum", {"values": [1, 2, 3]})
            print(handle.result(timeout=10))

    Configuration, authentication and decoders are fixed at construction
    and shared read-only by all invocations.
    """

    __slots__ = (
        "_authentication",
        "_closed",
        "_config",
        "_decoders",
        "_hooks",
        "_inflight",
        "_inflight_lock",
        "_loop_thread",
        "_transport",
    )

    def __init__(
        self,
        config: ProxyConfig | str | None = None,
        *,
        authentication: Authentication | None = None,
        decoders: DecoderRegistry | None = None,
        transport: Transport | None = None,
        hooks: Sequence[InvocationHook] = (),
    ) -> None:
        """Initialize the proxy.

        Args:
            config: Configuration, or a base URL string for defaults.
            authentication: Credentials provider; ``NoAuthentication`` if omitted.
            decoders: Decoder registry; the built-in registry if omitted.
            transport: Transport; an ``HttpxTransport`` built from *config*
                if omitted.
            hooks: Invocation hooks, e.g. OpenTelemetry instrumentation.

        """
        if config is None or isinstance(config, str):
            config = ProxyConfig(base_url=config)
        self._config = config
        self._authentication: Authentication = authentication or NoAuthentication()
        self._decoders = decoders if decoders is not None else default_registry()
        self._transport: Transport = transport or HttpxTransport(
            timeout=config.timeout, connect_timeout=config.connect_timeout
        )
        self._hooks: tuple[InvocationHook, ...] = tuple(hooks)
        self._loop_thread = _LoopThread()
        self._inflight: set[InvocationHandle] = set()
        self._inflight_lock = threading.Lock()
        self._closed = False

    @property
    def config(self) -> ProxyConfig:
        """The proxy configuration."""
        return self._config

    @property
    def authentication(self) -> Authentication:
        """The authentication provider."""
        return self._authentication

    @property
    def decoders(self) -> DecoderRegistry:
        """The decoder registry."""
        return self._decoders

    def add_hook(self, hook: InvocationHook) -> None:
        """Register an invocation hook.

        Must be called before the first ``invoke()``; hooks are not
        synchronized with in-flight invocations.
        """
        self._hooks = (*self._hooks, hook)

    # -- Lifecycle -----------------------------------------------------------

    def close(self) -> None:
        """Cancel in-flight invocations, close the transport and stop the loop thread."""
        with self._inflight_lock:
            if self._closed:
                return
            self._closed = True
            pending = list(self._inflight)
            self._inflight.clear()
        for handle in pending:
            handle.cancel()
        self._loop_thread.stop(self._transport)

    def __enter__(self) -> WebServiceProxy:
        """Enter context manager."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Close the proxy."""
        self.close()

    # -- Invocation ----------------------------------------------------------

    def invoke(
        self,
        verb: str,
        path: str,
        arguments: Arguments | None = None,
        attachments: Attachments | None = None,
        callback: ResultCallback | None = None,
        *,
        decoder: Decoder | None = None,
    ) -> InvocationHandle:
        """Invoke a remote operation asynchronously.

        Encoding errors do not raise; they are delivered through
        *callback* and the returned handle is already ``FAILED``.

        Args:
            verb: HTTP verb.
            path: Operation path, resolved against ``config.base_url``.
            arguments: Argument mapping; order is preserved on the wire.
            attachments: Field name to ``FileReference`` mapping.
            callback: Called once with ``(result, error)``.
            decoder: One-shot decoder overriding the registry for this call.

        Returns:
            The invocation handle.

        Raises:
            RuntimeError: If the proxy is closed.

        """
        method = verb.upper()
        with self._inflight_lock:
            if self._closed:
                raise RuntimeError("WebServiceProxy is closed")
            loop = self._loop_thread.get()
        try:
            url = resolve_url(self._config.base_url, path)
        except EncodingError as exc:
            return self._fail(InvocationHandle(method, path, callback, loop), exc)
        handle = InvocationHandle(method, url, callback, loop)

        try:
            pairs = flatten(arguments or {})
            request = build_request(
                method,
                url,
                pairs,
                attachments,
                headers=self._default_headers(),
                body_less_verbs=self._config.body_less_verbs,
            )
            request = self._authentication.apply(request)
        except EncodingError as exc:
            return self._fail(handle, exc)

        with self._inflight_lock:
            if self._closed:
                # closed while encoding; the loop is stopping
                raise RuntimeError("WebServiceProxy is closed")
            self._inflight.add(handle)
            future = asyncio.run_coroutine_threadsafe(self._round_trip(handle, request, decoder), loop)
            handle._mark_dispatched(future)
        future.add_done_callback(lambda _: self._discard(handle))
        handle.logger.debug("Invocation dispatched")
        return handle

    @staticmethod
    def _fail(handle: InvocationHandle, error: EncodingError) -> InvocationHandle:
        handle.logger.debug("Encoding failed: %s", error)
        handle._settle(None, error)
        return handle

    def _discard(self, handle: InvocationHandle) -> None:
        with self._inflight_lock:
            self._inflight.discard(handle)

    def _default_headers(self) -> list[tuple[str, str]]:
        headers = [("Accept", self._config.accept)]
        headers += [(k, v) for k, v in self._config.headers.items() if k.lower() not in _REQUEST_MANAGED_HEADERS]
        return headers

    async def _round_trip(self, handle: InvocationHandle, request: EncodedRequest, decoder: Decoder | None) -> None:
        started: list[InvocationHook] = []
        try:
            for hook in self._hooks:
                request = hook.on_dispatch(handle, request)
                started.append(hook)
            response = await self._transport.send(request)
        except NetworkError as exc:
            handle._settle(None, exc)
        except Exception as exc:
            handle.logger.exception("Transport failed unexpectedly")
            handle._settle(None, NetworkError(exc))
        else:
            handle.status_code = response.status_code
            result, error = self._classify(response, decoder)
            handle._settle(result, error)
        finally:
            for hook in started:
                try:
                    hook.on_complete(handle)
                except Exception:
                    handle.logger.exception("Invocation hook %r failed in on_complete", hook)

    def _classify(self, response: ResponseEnvelope, decoder: Decoder | None) -> tuple[Any, HttpRpcError | None]:
        content_type = response.content_type
        decoded: Any = None
        decode_error: DecodeError | None = None
        if response.body:
            try:
                decoded = self._decode(content_type, response.body, decoder)
            except DecodeError as exc:
                decode_error = exc

        if wire_response_logger.isEnabledFor(logging.DEBUG):
            wire_response_logger.debug(
                "Classify response: status=%d, content_type=%r, body_size=%d, decode_error=%s",
                response.status_code,
                content_type,
                len(response.body),
                decode_error,
            )

        if not response.is_success:
            return None, HTTPStatusError(
                response.status_code, response.body, content_type=content_type, result=decoded
            )
        if decode_error is not None:
            return None, decode_error
        return decoded, None

    def _decode(self, content_type: str | None, body: bytes, decoder: Decoder | None) -> Any:
        if decoder is None:
            return self._decoders.decode(content_type, body)
        raw = content_type or ""
        value = run_decoder(decoder, parse_content_type(raw), raw, body)
        if value is None:
            raise DecodeError(raw)
        return value
