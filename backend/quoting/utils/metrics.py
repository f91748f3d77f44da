"""Prometheus metrics for upstream calls, matching and mutations."""

from prometheus_client import Counter, Histogram

# Upstream call metrics
upstream_latency_ms = Histogram(
    "upstream_latency_ms",
    "Upstream call latency in milliseconds",
    ["upstream", "outcome"],
    buckets=[10, 50, 100, 200, 500, 1000, 2000, 4000, 8000, 16000],
)

upstream_errors_total = Counter(
    "upstream_errors_total",
    "Total upstream call errors",
    ["upstream", "reason"],
)

# Engine metrics
place_match_results_total = Counter(
    "place_match_results_total",
    "Place matcher results by tier",
    ["tier"],
)

itinerary_mutations_total = Counter(
    "itinerary_mutations_total",
    "Itinerary mutation attempts by action and outcome",
    ["action", "outcome"],
)


class PrometheusUpstreamMetrics:
    """Prometheus-based upstream metrics implementation."""

    def record_latency(self, upstream: str, outcome: str, latency_ms: float) -> None:
        """Record upstream call latency."""
        upstream_latency_ms.labels(upstream=upstream, outcome=outcome).observe(latency_ms)

    def inc_error(self, upstream: str, reason: str) -> None:
        """Increment error counter."""
        upstream_errors_total.labels(upstream=upstream, reason=reason).inc()


def record_match_tiers(tiers: dict[str, int]) -> None:
    """Add one batch of matcher tier counts."""
    for tier, count in tiers.items():
        if count:
            place_match_results_total.labels(tier=tier).inc(count)


def record_mutation(action: str, success: bool) -> None:
    itinerary_mutations_total.labels(
        action=action, outcome="success" if success else "declined"
    ).inc()
