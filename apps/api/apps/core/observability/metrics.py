"""
Metrics instrumentation wrapper around prometheus_client.
"""
import time
from functools import wraps

from prometheus_client import Counter, Histogram


class MetricsRegistry:
    """
    Central metrics registry for the clinic API.

    Provides typed access to all application metrics.
    """

    def __init__(self):
        """Initialize metrics registry."""
        self._setup_metrics()

    def _create_counter(self, name, description, labels=None):
        """Create a counter metric."""
        return Counter(name, description, labels or [])

    def _create_histogram(self, name, description, labels=None, buckets=None):
        """Create a histogram metric."""
        if buckets:
            return Histogram(name, description, labels or [], buckets=buckets)
        return Histogram(name, description, labels or [])

    def _setup_metrics(self):
        """Setup all application metrics."""

        # ===================================================================
        # HTTP Metrics
        # ===================================================================
        self.http_requests_total = self._create_counter(
            'http_requests_total',
            'Total HTTP requests',
            ['path', 'method', 'status']
        )

        self.exceptions_total = self._create_counter(
            'exceptions_total',
            'Total exceptions',
            ['exception_type', 'location']
        )

        # ===================================================================
        # Anamnesis Metrics
        # ===================================================================
        self.anamnesis_mutations_total = self._create_counter(
            'anamnesis_mutations_total',
            'Anamnesis mutations (create, update, restore)',
            ['action', 'result']  # result: success|conflict|not_found|integrity_violation
        )

        self.anamnesis_version_conflicts_total = self._create_counter(
            'anamnesis_version_conflicts_total',
            'Optimistic concurrency conflicts on anamnesis commit'
        )

        self.anamnesis_commit_duration_seconds = self._create_histogram(
            'anamnesis_commit_duration_seconds',
            'Duration of the anamnesis mutation transaction',
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
        )

        self.anamnesis_pending_reviews_total = self._create_counter(
            'anamnesis_pending_reviews_total',
            'Pending reviews enqueued for critical field changes',
            ['severity']
        )

        self.anamnesis_access_events_total = self._create_counter(
            'anamnesis_access_events_total',
            'Observational audit events (view, export, print)',
            ['action', 'result']  # result: success|failure
        )

        self.anamnesis_audit_access_denied_total = self._create_counter(
            'anamnesis_audit_access_denied_total',
            'Anamnesis audit access denied',
            ['role', 'capability']
        )

        self.anamnesis_secondary_audit_failures_total = self._create_counter(
            'anamnesis_secondary_audit_failures_total',
            'Failures in the secondary (general-purpose) audit channel',
            ['stage']  # dispatch, task, merge
        )

        self.anamnesis_integrity_violations_total = self._create_counter(
            'anamnesis_integrity_violations_total',
            'Stored anamnesis versions whose integrity hash no longer matches'
        )

    def track_duration(self, histogram_metric):
        """
        Decorator to track function duration.

        Usage:
            @metrics.track_duration(metrics.anamnesis_commit_duration_seconds)
            def commit_mutation(...):
                ...
        """
        def decorator(func):
            @wraps(func)
            def wrapper(*args, **kwargs):
                start_time = time.time()
                try:
                    return func(*args, **kwargs)
                finally:
                    duration = time.time() - start_time
                    histogram_metric.observe(duration)
            return wrapper
        return decorator


# Global metrics instance
metrics = MetricsRegistry()
