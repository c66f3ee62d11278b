"""OpenTelemetry metrics instrumentation helpers."""

from __future__ import annotations

import logging

from opentelemetry import metrics
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import ConsoleMetricExporter, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource

from notifier.core.config import settings

_logger = logging.getLogger(__name__)

_metrics_enabled = False
_meter = None
_provider: MeterProvider | None = None
_notification_counter = None
_attribution_failure_counter = None
_dispatch_duration_hist = None


def configure_metrics() -> None:
    """Initialise the metrics provider if enabled via settings."""

    global _metrics_enabled, _meter, _provider, _notification_counter, _attribution_failure_counter, _dispatch_duration_hist

    if not settings.otel_enabled:
        return
    if _metrics_enabled:
        return

    exporter_name = settings.otel_exporter.lower().strip()
    metric_readers = []

    if exporter_name == "console":
        metric_readers.append(PeriodicExportingMetricReader(ConsoleMetricExporter()))
    elif exporter_name == "prometheus":
        try:
            from opentelemetry.exporter.prometheus import PrometheusMetricReader  # type: ignore
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise RuntimeError(
                "Prometheus exporter selected but opentelemetry-exporter-prometheus is not installed."
            ) from exc
        metric_readers.append(PrometheusMetricReader())
    elif exporter_name == "otlp":
        try:
            from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter  # type: ignore
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise RuntimeError(
                "OTLP exporter selected but opentelemetry-exporter-otlp is not installed."
            ) from exc
        endpoint = settings.otel_otlp_endpoint
        exporter = OTLPMetricExporter(endpoint=endpoint) if endpoint else OTLPMetricExporter()
        metric_readers.append(PeriodicExportingMetricReader(exporter))
    else:
        _logger.warning("Unsupported OTEL exporter '%s'; defaulting to console", exporter_name)
        metric_readers.append(PeriodicExportingMetricReader(ConsoleMetricExporter()))

    _provider = MeterProvider(
        metric_readers=metric_readers,
        resource=Resource.create({"service.name": "build-issue-notifier"}),
    )
    metrics.set_meter_provider(_provider)
    _meter = metrics.get_meter("build-issue-notifier")
    _notification_counter = _meter.create_counter(
        name="notifier.notifications",
        unit="1",
        description="Build notifications processed, by outcome",
    )
    _attribution_failure_counter = _meter.create_counter(
        name="notifier.attribution.failures",
        unit="1",
        description="Committer or tagger lookups that failed",
    )
    _dispatch_duration_hist = _meter.create_histogram(
        name="notifier.dispatch.duration",
        unit="s",
        description="GitHub issue request duration in seconds",
    )
    _metrics_enabled = True


def record_notification(outcome: str) -> None:
    if _metrics_enabled and _notification_counter is not None:
        _notification_counter.add(1, {"outcome": outcome})


def record_attribution_failure(ref_kind: str) -> None:
    if _metrics_enabled and _attribution_failure_counter is not None:
        _attribution_failure_counter.add(1, {"ref_kind": ref_kind})


def record_dispatch_duration(seconds: float) -> None:
    if _metrics_enabled and _dispatch_duration_hist is not None:
        _dispatch_duration_hist.record(max(seconds, 0.0))


def collect_prometheus_metrics() -> tuple[bytes, str]:
    from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

    return generate_latest(), CONTENT_TYPE_LATEST


def shutdown_metrics() -> None:
    global _metrics_enabled, _provider
    if _metrics_enabled and _provider is not None:
        try:
            _provider.shutdown()
        except Exception:  # pragma: no cover - defensive
            _logger.exception("Failed to shutdown metrics provider")
        finally:
            _metrics_enabled = False
            _provider = None
