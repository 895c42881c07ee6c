"""Prometheus metrics for the distribution job.

Counts invocations by outcome, tracks claimed and paid-out lamports, and
times whole cycles and the randomness oracle round trip.
"""

import time

from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, Counter, Gauge, Histogram, generate_latest


cycles_total = Counter(
    "holder_distribution_cycles_total",
    "Distribution invocations by outcome",
    ["outcome"],
)

cycle_errors_total = Counter(
    "holder_distribution_cycle_errors_total",
    "Invocations that raised, by error class",
    ["error_type"],
)

claimed_lamports_total = Counter(
    "holder_distribution_claimed_lamports_total",
    "Lamports measured as claimed fees (positive deltas only)",
)

distributed_lamports_total = Counter(
    "holder_distribution_distributed_lamports_total",
    "Lamports paid out, by recipient role",
    ["share_type"],
)

cycle_latency = Histogram(
    "holder_distribution_cycle_latency_seconds",
    "Wall time of one invocation, claim settle and randomness wait included",
    buckets=[0.1, 0.5, 1.0, 5.0, 10.0, 20.0, 30.0, 60.0, 120.0],
)

randomness_wait = Histogram(
    "holder_distribution_randomness_wait_seconds",
    "Time from randomness request to observed fulfillment",
    buckets=[1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0, 120.0],
)

eligible_holders = Gauge(
    "holder_distribution_eligible_holders",
    "Eligible holders in the most recent selection",
)

last_cycle_id = Gauge(
    "holder_distribution_last_cycle_id",
    "Most recent cycle id that reached a terminal outcome",
)

uptime_seconds = Gauge(
    "holder_distribution_uptime_seconds",
    "Seconds since the metrics collector was created",
)


class MetricsContext:
    """
    Observe the duration of a block into a histogram, whether or not it raises.

    Example:
        with MetricsContext(cycle_latency):
            await orchestrator.run()
    """

    def __init__(self, histogram: Histogram):
        self.histogram = histogram
        self._started = 0.0

    def __enter__(self):
        self._started = time.monotonic()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.histogram.observe(time.monotonic() - self._started)
        return False


class MetricsCollector:
    """Recording API used by the orchestrator and the randomness source"""

    def __init__(self):
        self._created = time.monotonic()

    def record_cycle(self, cycle_id: int, outcome: str):
        cycles_total.labels(outcome=outcome).inc()
        last_cycle_id.set(cycle_id)

    def record_cycle_error(self, error_type: str):
        cycle_errors_total.labels(error_type=error_type).inc()

    def record_claimed(self, amount: int):
        """Negative deltas (balance dropped during the claim) are not counted"""
        if amount > 0:
            claimed_lamports_total.inc(amount)

    def record_distributed(self, share_type: str, amount: int):
        if amount > 0:
            distributed_lamports_total.labels(share_type=share_type).inc(amount)

    def record_randomness_wait(self, seconds: float):
        randomness_wait.observe(seconds)

    def set_eligible_holders(self, count: int):
        eligible_holders.set(count)

    def get_metrics(self) -> bytes:
        """Current registry in the Prometheus text exposition format"""
        uptime_seconds.set(time.monotonic() - self._created)
        return generate_latest(REGISTRY)


metrics_collector = MetricsCollector()


def setup_metrics_endpoint_fastapi(app):
    """
    Register GET /metrics on a FastAPI app.

    Args:
        app: FastAPI application instance
    """
    from fastapi import Response

    @app.get("/metrics", include_in_schema=False)
    async def metrics():
        return Response(content=metrics_collector.get_metrics(), media_type=CONTENT_TYPE_LATEST)
