"""
OpenTelemetry tracing for the distribution job.

Every invocation produces a `distribution.cycle` span, with one child span
per phase (claim, selection, payout, persistence) tagged with the cycle id.
Until setup_tracing() runs, spans go to the global no-op provider.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import Span

logger = logging.getLogger(__name__)

TRACER_NAME = "holder-distribution"

_provider: Optional[TracerProvider] = None
_tracer: Optional[trace.Tracer] = None


def setup_tracing(
    service_name: str,
    otlp_endpoint: Optional[str] = None,
    console_export: bool = False,
    version: str = "1.0.0",
) -> trace.Tracer:
    """
    Install a tracer provider for the process.

    Args:
        service_name: Resource service name
        otlp_endpoint: gRPC collector endpoint; spans are only exported when set
        console_export: Also print finished spans (local debugging)
        version: Resource service version

    Returns:
        Tracer used by create_span()
    """
    global _provider, _tracer

    _provider = TracerProvider(
        resource=Resource.create({SERVICE_NAME: service_name, SERVICE_VERSION: version})
    )

    if otlp_endpoint:
        try:
            _provider.add_span_processor(
                BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True))
            )
            logger.info(f"Exporting spans to {otlp_endpoint}")
        except Exception as e:
            logger.warning(f"OTLP exporter unavailable, spans stay local: {e}")

    if console_export:
        _provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(_provider)
    _tracer = _provider.get_tracer(TRACER_NAME, version)
    logger.info(f"Tracing enabled for {service_name}")
    return _tracer


def get_tracer() -> trace.Tracer:
    """Tracer from setup_tracing(), or the global provider's tracer"""
    if _tracer is None:
        return trace.get_tracer(TRACER_NAME)
    return _tracer


@contextmanager
def create_span(name: str, attributes: Optional[Dict[str, Any]] = None) -> Iterator[Span]:
    """
    Run a block inside a span.

    None-valued attributes are dropped; other values are stringified. An
    exception escaping the block is recorded on the span and marks it as an
    error before propagating.

    Usage:
        with create_span("distribution.payout", {"cycle.id": cycle.id}):
            ...
    """
    clean = {key: str(value) for key, value in (attributes or {}).items() if value is not None}
    with get_tracer().start_as_current_span(
        name,
        attributes=clean,
        record_exception=True,
        set_status_on_exception=True,
    ) as span:
        yield span


def shutdown_tracing() -> None:
    """Flush pending spans; call once before the process exits"""
    global _provider, _tracer

    if _provider is not None:
        _provider.shutdown()
        logger.info("Tracing shut down")
    _provider = None
    _tracer = None
