"""Telemetry utilities for notifier metrics."""

from .metrics import (
    configure_metrics,
    record_notification,
    record_attribution_failure,
    record_dispatch_duration,
    shutdown_metrics,
    collect_prometheus_metrics,
)

__all__ = [
    "configure_metrics",
    "record_notification",
    "record_attribution_failure",
    "record_dispatch_duration",
    "shutdown_metrics",
    "collect_prometheus_metrics",
]
