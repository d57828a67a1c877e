"""Prometheus metrics for the Prompt Optimiser.

Thread-safe counters, gauges and latency histograms rendered in the
Prometheus text exposition format.

Example:
    >>> from prompt_optimiser.metrics import metrics, track_request
    >>>
    >>> with track_request("critique"):
    ...     result = await orchestrator.handle(request, headers)
    >>>
    >>> metrics.get_prometheus_metrics()

Antagon Inc. | CAGE: 17E75 | UEI: KBSGT7CZ4AH3
"""

from __future__ import annotations

import threading
import time
from collections import defaultdict
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass, field

from prompt_optimiser.errors import OptimiserError

PREFIX = "promptopt"


@dataclass
class HistogramBucket:
    """Histogram bucket for latency tracking."""

    le: float  # Less than or equal
    count: int = 0


@dataclass
class MetricsState:
    """Metrics state container."""

    # Counters
    requests_total: dict[tuple[str, str], int] = field(default_factory=lambda: defaultdict(int))
    failures_total: dict[str, int] = field(default_factory=lambda: defaultdict(int))
    rate_limited_total: int = 0

    # Gauges
    active_requests: int = 0

    # Histograms (latency in seconds)
    request_latency_sum: dict[str, float] = field(default_factory=lambda: defaultdict(float))
    request_latency_count: dict[str, int] = field(default_factory=lambda: defaultdict(int))
    request_latency_buckets: dict[str, list[HistogramBucket]] = field(default_factory=dict)

    start_time: float = field(default_factory=time.time)

    _lock: threading.Lock = field(default_factory=threading.Lock)


class PrometheusMetrics:
    """Prometheus metrics collector.

    Latency histograms are created lazily per mode label.
    """

    # Upstream completions are slow; buckets reach well past 10s
    DEFAULT_BUCKETS = [0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 40.0, 60.0]

    def __init__(self) -> None:
        self.state = MetricsState()

    def _buckets_for(self, mode: str) -> list[HistogramBucket]:
        buckets = self.state.request_latency_buckets.get(mode)
        if buckets is None:
            buckets = [HistogramBucket(le=b) for b in self.DEFAULT_BUCKETS]
            buckets.append(HistogramBucket(le=float("inf")))
            self.state.request_latency_buckets[mode] = buckets
        return buckets

    def inc_requests(self, mode: str, status: str = "success") -> None:
        with self.state._lock:
            self.state.requests_total[(mode, status)] += 1

    def inc_failures(self, category: str) -> None:
        with self.state._lock:
            self.state.failures_total[category] += 1

    def inc_rate_limited(self) -> None:
        with self.state._lock:
            self.state.rate_limited_total += 1

    def observe_latency(self, mode: str, latency_seconds: float) -> None:
        with self.state._lock:
            self.state.request_latency_sum[mode] += latency_seconds
            self.state.request_latency_count[mode] += 1
            for bucket in self._buckets_for(mode):
                if latency_seconds <= bucket.le:
                    bucket.count += 1

    def inc_active_requests(self) -> None:
        with self.state._lock:
            self.state.active_requests += 1

    def dec_active_requests(self) -> None:
        with self.state._lock:
            self.state.active_requests = max(0, self.state.active_requests - 1)

    def get_prometheus_metrics(self) -> str:
        """Generate Prometheus text format metrics."""
        lines: list[str] = []

        with self.state._lock:
            lines.append(f"# HELP {PREFIX}_requests_total Total number of analyse requests")
            lines.append(f"# TYPE {PREFIX}_requests_total counter")
            for (mode, status), count in self.state.requests_total.items():
                lines.append(f'{PREFIX}_requests_total{{mode="{mode}",status="{status}"}} {count}')

            lines.append("")
            lines.append(f"# HELP {PREFIX}_failures_total Failed requests by category")
            lines.append(f"# TYPE {PREFIX}_failures_total counter")
            for category, count in self.state.failures_total.items():
                lines.append(f'{PREFIX}_failures_total{{category="{category}"}} {count}')

            lines.append("")
            lines.append(f"# HELP {PREFIX}_rate_limited_total Requests rejected by the rate limiter")
            lines.append(f"# TYPE {PREFIX}_rate_limited_total counter")
            lines.append(f"{PREFIX}_rate_limited_total {self.state.rate_limited_total}")

            lines.append("")
            lines.append(f"# HELP {PREFIX}_active_requests Current number of active requests")
            lines.append(f"# TYPE {PREFIX}_active_requests gauge")
            lines.append(f"{PREFIX}_active_requests {self.state.active_requests}")

            lines.append("")
            lines.append(f"# HELP {PREFIX}_uptime_seconds Server uptime in seconds")
            lines.append(f"# TYPE {PREFIX}_uptime_seconds gauge")
            lines.append(f"{PREFIX}_uptime_seconds {time.time() - self.state.start_time:.3f}")

            lines.append("")
            lines.append(f"# HELP {PREFIX}_request_latency_seconds Request latency in seconds")
            lines.append(f"# TYPE {PREFIX}_request_latency_seconds histogram")
            for mode, buckets in self.state.request_latency_buckets.items():
                for bucket in buckets:
                    le_str = "+Inf" if bucket.le == float("inf") else f"{bucket.le}"
                    lines.append(
                        f'{PREFIX}_request_latency_seconds_bucket{{mode="{mode}",le="{le_str}"}} {bucket.count}'
                    )
                lines.append(
                    f'{PREFIX}_request_latency_seconds_sum{{mode="{mode}"}} {self.state.request_latency_sum[mode]:.6f}'
                )
                lines.append(
                    f'{PREFIX}_request_latency_seconds_count{{mode="{mode}"}} {self.state.request_latency_count[mode]}'
                )

        return "\n".join(lines) + "\n"

    def reset(self) -> None:
        """Reset all metrics (useful for testing)."""
        self.state = MetricsState()


# Global metrics instance
metrics = PrometheusMetrics()


@contextmanager
def track_request(mode: str) -> Generator[None, None, None]:
    """Track count, latency, active gauge and failure category of a request.

    Example:
        >>> with track_request("generate"):
        ...     process_request()
    """
    metrics.inc_active_requests()
    start_time = time.perf_counter()
    status = "success"

    try:
        yield
    except OptimiserError as e:
        status = "error"
        metrics.inc_failures(e.category.value)
        raise
    except Exception:
        status = "error"
        metrics.inc_failures("unexpected")
        raise
    finally:
        latency = time.perf_counter() - start_time
        metrics.dec_active_requests()
        metrics.inc_requests(mode, status)
        metrics.observe_latency(mode, latency)
