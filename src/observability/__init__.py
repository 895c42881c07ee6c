"""
Observability module for tracing and metrics.

Provides OpenTelemetry spans and Prometheus metrics for the distribution job.
"""

from .tracing import setup_tracing, create_span, get_tracer, shutdown_tracing
from .metrics import metrics_collector, MetricsCollector, MetricsContext

__all__ = [
    'setup_tracing',
    'create_span',
    'get_tracer',
    'shutdown_tracing',
    'metrics_collector',
    'MetricsCollector',
    'MetricsContext',
]
