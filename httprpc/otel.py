# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""OpenTelemetry client-side instrumentation for httprpc.

Provides ``OtelConfig`` and ``instrument_proxy()`` for adding a CLIENT span
per dispatched invocation, W3C trace context propagation in request
headers, and invocation metrics (counter, duration histogram).

Requires ``pip install httprpc[otel]`` (opentelemetry-api + opentelemetry-sdk).

Usage::

    from httprpc.otel import OtelConfig, instrument_proxy

    proxy = WebServiceProxy(ProxyConfig("https://example.com/api/"))
    instrument_proxy(proxy)  # uses global TracerProvider / MeterProvider
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass, field

from opentelemetry import propagate, trace
from opentelemetry.metrics import Counter, Histogram, Meter, MeterProvider, get_meter_provider
from opentelemetry.trace import SpanKind, StatusCode, Tracer, TracerProvider, get_tracer_provider

from httprpc.proxy import InvocationHandle, WebServiceProxy
from httprpc.request import EncodedRequest

__all__ = ["OtelConfig", "instrument_proxy"]

_logger = logging.getLogger("httprpc.otel")

_INSTRUMENTATION_NAME = "httprpc"
_INSTRUMENTATION_VERSION = "0.1.0"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OtelConfig:
    """Configuration for OpenTelemetry instrumentation.

    Attributes:
        tracer_provider: Custom ``TracerProvider``; uses the global provider when ``None``.
        meter_provider: Custom ``MeterProvider``; uses the global provider when ``None``.
        enable_tracing: Enable span creation (default ``True``).
        enable_metrics: Enable counter/histogram recording (default ``True``).
        propagate_context: Inject W3C trace context headers (default ``True``).
        custom_attributes: Extra span/metric attributes merged into every invocation.

    """

    tracer_provider: TracerProvider | None = None
    meter_provider: MeterProvider | None = None
    enable_tracing: bool = True
    enable_metrics: bool = True
    propagate_context: bool = True
    custom_attributes: Mapping[str, str] = field(default_factory=dict)


def instrument_proxy(proxy: WebServiceProxy, config: OtelConfig | None = None) -> WebServiceProxy:
    """Attach OpenTelemetry tracing and metrics to a proxy.

    Must be called before the first ``invoke()``.

    Args:
        proxy: The ``WebServiceProxy`` to instrument.
        config: Optional configuration; uses global providers and defaults when ``None``.

    Returns:
        The same *proxy* instance (for chaining).

    """
    proxy.add_hook(_OtelInvocationHook(config or OtelConfig()))
    return proxy


# ---------------------------------------------------------------------------
# Internal invocation hook
# ---------------------------------------------------------------------------


@dataclass
class _Active:
    span: trace.Span | None
    start_time: float


class _OtelInvocationHook:
    """Implements ``InvocationHook`` with OpenTelemetry spans and metrics.

    Only called from the proxy's loop thread, so ``_active`` needs no lock.
    """

    __slots__ = ("_active", "_config", "_counter", "_histogram", "_meter", "_tracer")

    def __init__(self, config: OtelConfig) -> None:
        self._config = config
        self._active: dict[str, _Active] = {}

        tp = config.tracer_provider or get_tracer_provider()
        self._tracer: Tracer = tp.get_tracer(_INSTRUMENTATION_NAME, _INSTRUMENTATION_VERSION)

        mp: MeterProvider = config.meter_provider or get_meter_provider()
        self._meter: Meter = mp.get_meter(_INSTRUMENTATION_NAME, _INSTRUMENTATION_VERSION)
        self._counter: Counter = self._meter.create_counter(
            "httprpc.client.invocations",
            unit="{invocation}",
            description="Number of dispatched invocations",
        )
        self._histogram: Histogram = self._meter.create_histogram(
            "httprpc.client.duration",
            unit="s",
            description="Duration of dispatched invocations",
        )

    def on_dispatch(self, handle: InvocationHandle, request: EncodedRequest) -> EncodedRequest:
        """Start a span and inject its context into the request headers."""
        span: trace.Span | None = None
        if self._config.enable_tracing:
            attrs: dict[str, str] = {
                "http.request.method": request.method,
                "url.full": request.url,
                "httprpc.invocation_id": handle.invocation_id,
            }
            attrs.update(self._config.custom_attributes)
            span = self._tracer.start_span(f"httprpc {request.method}", kind=SpanKind.CLIENT, attributes=attrs)
            if self._config.propagate_context:
                carrier: dict[str, str] = {}
                propagate.inject(carrier, context=trace.set_span_in_context(span))
                for name, value in carrier.items():
                    request = request.with_header(name, value)
        self._active[handle.invocation_id] = _Active(span, time.monotonic())
        return request

    def on_complete(self, handle: InvocationHandle) -> None:
        """End the span and record metrics."""
        active = self._active.pop(handle.invocation_id, None)
        if active is None:
            _logger.debug("No active span for invocation %s", handle.invocation_id)
            return

        duration = time.monotonic() - active.start_time
        outcome = handle.state.value
        error_kind = _error_kind(handle)

        if active.span is not None:
            if handle.status_code is not None:
                active.span.set_attribute("http.response.status_code", handle.status_code)
            if error_kind is not None:
                active.span.set_attribute("httprpc.error.kind", error_kind)
                active.span.set_status(StatusCode.ERROR, error_kind)
            else:
                active.span.set_status(StatusCode.OK)
            active.span.end()

        if self._config.enable_metrics:
            metric_attrs: dict[str, str] = {
                "http.request.method": handle.verb,
                "httprpc.outcome": outcome,
                **self._config.custom_attributes,
            }
            self._counter.add(1, metric_attrs)
            self._histogram.record(duration, metric_attrs)


def _error_kind(handle: InvocationHandle) -> str | None:
    error = handle.error
    return None if error is None else error.kind.value
