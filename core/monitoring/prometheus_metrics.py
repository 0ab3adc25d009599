"""
Prometheus metrics for position reconciliation and performance aggregation
"""

from prometheus_client import Counter, Histogram, CollectorRegistry
from typing import Optional


class LifecycleMetricsCollector:
    """Counters for lifecycle decisions and aggregation writes"""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()

        self.reconciliation_outcomes = Counter(
            'lifecycle_reconciliation_outcomes_total',
            'Reconciliation decisions by outcome action',
            ['action'],
            registry=self.registry
        )

        self.status_transitions = Counter(
            'lifecycle_status_transitions_total',
            'Applied position status transitions',
            ['from_status', 'to_status'],
            registry=self.registry
        )

        self.aggregation_period_updates = Counter(
            'performance_period_updates_total',
            'Performance period updates by outcome',
            ['period', 'outcome'],
            registry=self.registry
        )

        self.aggregation_failures = Counter(
            'performance_aggregation_failures_total',
            'Liquidation events that could not be aggregated at all',
            registry=self.registry
        )

        self.aggregation_latency = Histogram(
            'performance_aggregation_latency_seconds',
            'Time spent folding one liquidation into all periods',
            buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
            registry=self.registry
        )

    def record_outcome(self, action: str):
        self.reconciliation_outcomes.labels(action=action).inc()

    def record_transition(self, from_status: str, to_status: str):
        self.status_transitions.labels(from_status=from_status, to_status=to_status).inc()

    def record_period_update(self, period: str, outcome: str):
        """outcome is one of created|merged|duplicate|failed"""
        self.aggregation_period_updates.labels(period=period, outcome=outcome).inc()

    def record_aggregation_failure(self):
        self.aggregation_failures.inc()

    def observe_aggregation_latency(self, seconds: float):
        self.aggregation_latency.observe(seconds)
