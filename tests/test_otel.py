# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Tests for OpenTelemetry client-side instrumentation."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, cast

import httpx
import pytest
from opentelemetry.metrics import MeterProvider
from opentelemetry.sdk.metrics import MeterProvider as SdkMeterProvider
from opentelemetry.sdk.metrics.export import InMemoryMetricReader
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import SpanKind, StatusCode

from conftest import GatedTransport, drain
from httprpc import HTTPStatusError, NetworkError, WebServiceProxy
from httprpc.otel import OtelConfig, instrument_proxy

ProxyFactory = Callable[..., WebServiceProxy]
OtelProviders = tuple[TracerProvider, SdkMeterProvider, InMemorySpanExporter, InMemoryMetricReader]

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def otel_providers() -> OtelProviders:
    """Create in-memory OTel providers for testing."""
    exporter = InMemorySpanExporter()
    tracer_provider = TracerProvider()
    tracer_provider.add_span_processor(SimpleSpanProcessor(exporter))

    metric_reader = InMemoryMetricReader()
    meter_provider = SdkMeterProvider(metric_readers=[metric_reader])

    return tracer_provider, meter_provider, exporter, metric_reader


@pytest.fixture()
def otel_config(otel_providers: OtelProviders) -> OtelConfig:
    """Create an OtelConfig with in-memory providers."""
    tracer_provider, meter_provider, _, _ = otel_providers
    return OtelConfig(
        tracer_provider=tracer_provider,
        meter_provider=cast("MeterProvider", meter_provider),
    )


def _metric_points(reader: InMemoryMetricReader, name: str) -> list[Any]:
    points: list[Any] = []
    data = reader.get_metrics_data()
    if data is None:
        return points
    for resource_metric in data.resource_metrics:
        for scope_metric in resource_metric.scope_metrics:
            for metric in scope_metric.metrics:
                if metric.name == name:
                    points.extend(metric.data.data_points)  # type: ignore[union-attr]
    return points


# ---------------------------------------------------------------------------
# Spans
# ---------------------------------------------------------------------------


class TestSpans:
    """One CLIENT span per dispatched invocation."""

    def test_success_span(
        self, mock_proxy: ProxyFactory, otel_providers: OtelProviders, otel_config: OtelConfig
    ) -> None:
        """A successful call produces an OK span with request attributes."""
        _, _, exporter, _ = otel_providers
        proxy = instrument_proxy(mock_proxy(lambda request: httpx.Response(200, json={"x": 1})), otel_config)
        handle = proxy.invoke("GET", "op", {"a": 1})
        handle.result(timeout=5)
        drain(proxy)

        spans = exporter.get_finished_spans()
        assert len(spans) == 1
        span = spans[0]
        assert span.name == "httprpc GET"
        assert span.kind == SpanKind.CLIENT
        assert span.status.status_code == StatusCode.OK
        attrs = dict(span.attributes or {})
        assert attrs["http.request.method"] == "GET"
        assert attrs["url.full"] == "http://testserver/api/op?a=1"
        assert attrs["httprpc.invocation_id"] == handle.invocation_id
        assert attrs["http.response.status_code"] == 200

    def test_http_error_span(
        self, mock_proxy: ProxyFactory, otel_providers: OtelProviders, otel_config: OtelConfig
    ) -> None:
        """Status errors mark the span as failed with the error kind."""
        _, _, exporter, _ = otel_providers
        proxy = instrument_proxy(mock_proxy(lambda request: httpx.Response(503, json={})), otel_config)
        with pytest.raises(HTTPStatusError):
            proxy.invoke("POST", "op").result(timeout=5)
        drain(proxy)

        (span,) = exporter.get_finished_spans()
        assert span.status.status_code == StatusCode.ERROR
        attrs = dict(span.attributes or {})
        assert attrs["httprpc.error.kind"] == "http_status"
        assert attrs["http.response.status_code"] == 503

    def test_network_error_span(
        self, mock_proxy: ProxyFactory, otel_providers: OtelProviders, otel_config: OtelConfig
    ) -> None:
        """Network failures have no status code attribute."""
        _, _, exporter, _ = otel_providers

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        proxy = instrument_proxy(mock_proxy(handler), otel_config)
        with pytest.raises(NetworkError):
            proxy.invoke("GET", "op").result(timeout=5)
        drain(proxy)

        (span,) = exporter.get_finished_spans()
        attrs = dict(span.attributes or {})
        assert attrs["httprpc.error.kind"] == "network"
        assert "http.response.status_code" not in attrs

    def test_cancelled_span(self, otel_providers: OtelProviders, otel_config: OtelConfig) -> None:
        """Cancelled invocations still end their span."""
        _, _, exporter, _ = otel_providers
        transport = GatedTransport()
        with instrument_proxy(WebServiceProxy("http://h/", transport=transport), otel_config) as proxy:
            handle = proxy.invoke("GET", "op")
            assert transport.started.wait(5)
            handle.cancel()
            drain(proxy)
            transport.release()

        (span,) = exporter.get_finished_spans()
        assert dict(span.attributes or {})["httprpc.error.kind"] == "cancelled"

    def test_encoding_failure_has_no_span(
        self, mock_proxy: ProxyFactory, otel_providers: OtelProviders, otel_config: OtelConfig
    ) -> None:
        """Invocations that never dispatch produce no span."""
        _, _, exporter, _ = otel_providers
        proxy = instrument_proxy(mock_proxy(lambda request: httpx.Response(200)), otel_config)
        with pytest.raises(Exception, match="unsupported-shape"):
            proxy.invoke("GET", "op", {"a": [[1]]}).result(timeout=5)
        drain(proxy)
        assert exporter.get_finished_spans() == ()

    def test_custom_attributes(self, mock_proxy: ProxyFactory, otel_providers: OtelProviders) -> None:
        """Custom attributes are merged into every span."""
        tracer_provider, meter_provider, exporter, _ = otel_providers
        config = OtelConfig(
            tracer_provider=tracer_provider,
            meter_provider=cast("MeterProvider", meter_provider),
            custom_attributes={"deployment": "test"},
        )
        proxy = instrument_proxy(mock_proxy(lambda request: httpx.Response(204)), config)
        proxy.invoke("GET", "op").result(timeout=5)
        drain(proxy)
        (span,) = exporter.get_finished_spans()
        assert dict(span.attributes or {})["deployment"] == "test"

    def test_tracing_disabled(self, mock_proxy: ProxyFactory, otel_providers: OtelProviders) -> None:
        """No spans are recorded when tracing is disabled."""
        tracer_provider, meter_provider, exporter, _ = otel_providers
        config = OtelConfig(
            tracer_provider=tracer_provider,
            meter_provider=cast("MeterProvider", meter_provider),
            enable_tracing=False,
        )
        proxy = instrument_proxy(mock_proxy(lambda request: httpx.Response(204)), config)
        proxy.invoke("GET", "op").result(timeout=5)
        drain(proxy)
        assert exporter.get_finished_spans() == ()


# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------


class TestPropagation:
    """W3C trace context headers on outgoing requests."""

    def test_traceparent_injected(
        self, mock_proxy: ProxyFactory, otel_providers: OtelProviders, otel_config: OtelConfig
    ) -> None:
        """The request carries the span's trace id."""
        _, _, exporter, _ = otel_providers
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(204)

        proxy = instrument_proxy(mock_proxy(handler), otel_config)
        proxy.invoke("GET", "op").result(timeout=5)
        drain(proxy)

        (span,) = exporter.get_finished_spans()
        traceparent = seen[0].headers["traceparent"]
        assert format(span.context.trace_id, "032x") in traceparent
        assert format(span.context.span_id, "016x") in traceparent

    def test_propagation_disabled(self, mock_proxy: ProxyFactory, otel_providers: OtelProviders) -> None:
        """No trace headers when propagation is disabled."""
        tracer_provider, meter_provider, _, _ = otel_providers
        config = OtelConfig(
            tracer_provider=tracer_provider,
            meter_provider=cast("MeterProvider", meter_provider),
            propagate_context=False,
        )
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(204)

        proxy = instrument_proxy(mock_proxy(handler), config)
        proxy.invoke("GET", "op").result(timeout=5)
        assert "traceparent" not in seen[0].headers


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------


class TestMetrics:
    """Invocation counter and duration histogram."""

    def test_counter_and_histogram(
        self, mock_proxy: ProxyFactory, otel_providers: OtelProviders, otel_config: OtelConfig
    ) -> None:
        """Each completed invocation is counted with its outcome."""
        _, _, _, reader = otel_providers
        proxy = instrument_proxy(mock_proxy(lambda request: httpx.Response(200, json=1)), otel_config)
        for _ in range(3):
            proxy.invoke("GET", "op").result(timeout=5)
        drain(proxy)

        counts = _metric_points(reader, "httprpc.client.invocations")
        assert sum(dp.value for dp in counts) == 3
        assert all(dict(dp.attributes)["httprpc.outcome"] == "succeeded" for dp in counts)
        durations = _metric_points(reader, "httprpc.client.duration")
        assert sum(dp.count for dp in durations) == 3

    def test_outcomes_split(
        self, mock_proxy: ProxyFactory, otel_providers: OtelProviders, otel_config: OtelConfig
    ) -> None:
        """Failures are counted under their own outcome."""
        _, _, _, reader = otel_providers
        proxy = instrument_proxy(mock_proxy(lambda request: httpx.Response(500, json={})), otel_config)
        with pytest.raises(HTTPStatusError):
            proxy.invoke("GET", "op").result(timeout=5)
        drain(proxy)

        (point,) = _metric_points(reader, "httprpc.client.invocations")
        assert dict(point.attributes)["httprpc.outcome"] == "failed"

    def test_metrics_disabled(self, mock_proxy: ProxyFactory, otel_providers: OtelProviders) -> None:
        """Nothing is recorded when metrics are disabled."""
        tracer_provider, meter_provider, _, reader = otel_providers
        config = OtelConfig(
            tracer_provider=tracer_provider,
            meter_provider=cast("MeterProvider", meter_provider),
            enable_metrics=False,
        )
        proxy = instrument_proxy(mock_proxy(lambda request: httpx.Response(204)), config)
        proxy.invoke("GET", "op").result(timeout=5)
        drain(proxy)
        assert _metric_points(reader, "httprpc.client.invocations") == []
