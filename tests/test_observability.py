"""
Tests for tracing helpers and Prometheus metrics.
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import pytest
from prometheus_client import REGISTRY

from observability.metrics import MetricsContext, cycle_latency, metrics_collector
from observability.tracing import create_span, get_tracer, setup_tracing, shutdown_tracing


def sample(name, labels=None):
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


class TestTracing:
    """Test span helpers"""

    def test_get_tracer_without_setup(self):
        """Test that a tracer is available before setup (no-op provider)"""
        import observability.tracing as tracing_module

        tracing_module._tracer = None
        assert get_tracer() is not None

    def test_setup_tracing(self):
        tracer = setup_tracing("test-service")

        assert tracer is not None
        assert get_tracer() is tracer

        shutdown_tracing()

    def test_create_span(self):
        with create_span("distribution.cycle", {"cycle.id": 1, "winner": None}) as span:
            assert span is not None

    def test_create_span_reraises(self):
        with pytest.raises(ValueError):
            with create_span("distribution.payout"):
                raise ValueError("transfer failed")


class TestMetrics:
    """Test the metrics collector"""

    def test_record_cycle(self):
        before = sample("holder_distribution_cycles_total", {"outcome": "distributed"})

        metrics_collector.record_cycle(42, "distributed")

        assert sample("holder_distribution_cycles_total", {"outcome": "distributed"}) == before + 1
        assert sample("holder_distribution_last_cycle_id") == 42

    def test_negative_claim_not_counted(self):
        before = sample("holder_distribution_claimed_lamports_total")

        metrics_collector.record_claimed(-500)
        metrics_collector.record_claimed(1_000)

        assert sample("holder_distribution_claimed_lamports_total") == before + 1_000

    def test_distributed_by_share_type(self):
        before = sample("holder_distribution_distributed_lamports_total", {"share_type": "SECONDARY"})

        metrics_collector.record_distributed("SECONDARY", 500_000)

        assert sample(
            "holder_distribution_distributed_lamports_total", {"share_type": "SECONDARY"}
        ) == before + 500_000

    def test_metrics_context_observes_on_error(self):
        before = sample("holder_distribution_cycle_latency_seconds_count")

        with pytest.raises(RuntimeError):
            with MetricsContext(cycle_latency):
                raise RuntimeError("fatal")

        assert sample("holder_distribution_cycle_latency_seconds_count") == before + 1

    def test_exposition(self):
        output = metrics_collector.get_metrics().decode()
        assert "holder_distribution_randomness_wait_seconds" in output
        assert "holder_distribution_uptime_seconds" in output
