"""
Observability module for the ScyllaDB repository.

Provides:
- OpenTelemetry spans around repository operations
- Per-statement-kind metrics with percentile latencies
"""

import logging
import statistics
from typing import Any, Optional
from collections import defaultdict, deque
from contextlib import asynccontextmanager

from opentelemetry import trace

logger = logging.getLogger(__name__)

# Statements slower than this are logged as warnings
SLOW_STATEMENT_MS = 100.0


# ============================================================================
# OpenTelemetry Tracing
# ============================================================================

class Tracer:
    """
    Span factory for repository operations.

    Uses the globally configured OpenTelemetry tracer provider; exporters and
    resources are the application's concern. Spans are no-ops when disabled.
    """

    def __init__(self, service_name: str = "scylladb-repository", enabled: bool = True):
        self.service_name = service_name
        self.enabled = enabled
        self._tracer = trace.get_tracer(service_name) if enabled else None

        if enabled:
            logger.info(f"OpenTelemetry tracing enabled for {service_name}")

    @asynccontextmanager
    async def span(self, name: str, attributes: Optional[dict[str, Any]] = None):
        """
        Create a traced span for an operation.

        Args:
            name: Span name (e.g., "repository.find", "repository.save")
            attributes: Span attributes such as the table and key values

        Yields:
            The active span, or None when tracing is disabled
        """
        if self._tracer is None:
            yield None
            return

        with self._tracer.start_as_current_span(name) as span:
            for key, value in (attributes or {}).items():
                # Key tuples and UUIDs are not valid attribute values
                span.set_attribute(key, value if isinstance(value, (str, int, float, bool)) else str(value))

            try:
                yield span
                span.set_status(trace.Status(trace.StatusCode.OK))
            except Exception as e:
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                span.record_exception(e)
                raise


# ============================================================================
# Metrics
# ============================================================================

class PercentileTracker:
    """
    Track percentile latencies (p50, p95, p99) over a sliding window.
    """

    def __init__(self, window_size: int = 1000, percentiles: list[float] = None):
        """
        Initialize percentile tracker.

        Args:
            window_size: Number of recent samples to keep
            percentiles: Percentiles to track (e.g., [0.5, 0.95, 0.99])
        """
        self.window_size = window_size
        self.percentiles = percentiles or [0.5, 0.95, 0.99]
        self.samples = deque(maxlen=window_size)

    def record(self, value: float):
        self.samples.append(value)

    def get_percentiles(self) -> dict[str, float]:
        """
        Calculate percentile values.

        Returns:
            Dictionary with keys like "p50", "p95", "p99"
        """
        if not self.samples:
            return {f"p{int(p*100)}": 0.0 for p in self.percentiles}

        if len(self.samples) == 1:
            only = self.samples[0]
            return {f"p{int(p*100)}": only for p in self.percentiles}

        cuts = statistics.quantiles(sorted(self.samples), n=100, method='inclusive')
        result = {}
        for p in self.percentiles:
            index = min(max(int(p * 100) - 1, 0), len(cuts) - 1)
            result[f"p{int(p*100)}"] = cuts[index]
        return result

    def get_stats(self) -> dict[str, Any]:
        """Percentiles plus count, avg, min and max of the window."""
        if not self.samples:
            return {
                "count": 0,
                "avg": 0.0,
                "min": 0.0,
                "max": 0.0,
                **{f"p{int(p*100)}": 0.0 for p in self.percentiles}
            }

        return {
            "count": len(self.samples),
            "avg": statistics.mean(self.samples),
            "min": min(self.samples),
            "max": max(self.samples),
            **self.get_percentiles()
        }


class EnhancedMetrics:
    """
    Statement metrics keyed by statement kind (``select_all``, ``upsert``, ...).

    Tracks latency percentiles, statement and error counts, and driver error
    types. A disabled instance records nothing.
    """

    def __init__(
        self,
        service_name: str = "scylladb_repository",
        percentiles: list[float] = None,
        enabled: bool = True,
    ):
        self.service_name = service_name
        self.percentiles = percentiles or [0.5, 0.95, 0.99]
        self.enabled = enabled

        self.latencies: dict[str, PercentileTracker] = defaultdict(
            lambda: PercentileTracker(percentiles=self.percentiles)
        )
        self.operation_counts: dict[str, int] = defaultdict(int)
        self.error_counts: dict[str, int] = defaultdict(int)
        self.error_types: dict[str, int] = defaultdict(int)

    def record_query(self, operation: str, latency_ms: float, success: bool = True, error_type: str | None = None):
        """
        Record a statement execution.

        Args:
            operation: Statement kind (e.g., 'select_all', 'upsert')
            latency_ms: Latency in milliseconds
            success: Whether the statement succeeded
            error_type: Driver exception class name if it failed
        """
        if not self.enabled:
            return

        self.latencies[operation].record(latency_ms)
        self.operation_counts[operation] += 1
        if not success:
            self.error_counts[operation] += 1
            if error_type:
                self.error_types[error_type] += 1

        if latency_ms > SLOW_STATEMENT_MS:
            logger.warning(
                f"Slow statement detected: {operation} took {latency_ms:.2f}ms",
                extra={"statement": operation, "latency_ms": latency_ms, "success": success}
            )

    def get_stats(self) -> dict[str, Any]:
        """
        Get summary stats.

        Returns:
            Dictionary with total_queries, avg_latency_ms, error_rate, etc.
        """
        total_operations = sum(self.operation_counts.values())
        total_errors = sum(self.error_counts.values())

        all_latencies = []
        for tracker in self.latencies.values():
            all_latencies.extend(tracker.samples)

        if all_latencies:
            avg_latency = sum(all_latencies) / len(all_latencies)
            min_latency = min(all_latencies)
            max_latency = max(all_latencies)
        else:
            avg_latency = 0.0
            min_latency = 0.0
            max_latency = 0.0

        return {
            "total_queries": total_operations,
            "total_errors": total_errors,
            "error_rate": total_errors / total_operations if total_operations > 0 else 0.0,
            "avg_latency_ms": avg_latency,
            "min_latency_ms": min_latency,
            "max_latency_ms": max_latency,
            "operations": dict(self.operation_counts),
            "error_types": dict(self.error_types),
        }

    def reset(self):
        """Reset all metrics counters."""
        self.latencies.clear()
        self.operation_counts.clear()
        self.error_counts.clear()
        self.error_types.clear()

    def export_prometheus(self) -> str:
        """
        Export statement metrics in Prometheus text format.

        Every series carries a ``service`` label (the executor's keyspace
        name) and a ``statement`` label (the statement kind).
        """
        service = self.service_name
        lines = []

        for statement, count in sorted(self.operation_counts.items()):
            labels = f'service="{service}",statement="{statement}"'
            lines.append(f'scylladb_repository_statements_total{{{labels}}} {count}')
            lines.append(
                f'scylladb_repository_statement_errors_total{{{labels}}} {self.error_counts.get(statement, 0)}'
            )
            for name, value in self.latencies[statement].get_percentiles().items():
                lines.append(
                    f'scylladb_repository_statement_latency_ms{{{labels},percentile="{name}"}} {value}'
                )

        for error_type, count in sorted(self.error_types.items()):
            lines.append(
                f'scylladb_repository_driver_errors_total{{service="{service}",error_type="{error_type}"}} {count}'
            )

        return '\n'.join(lines)
