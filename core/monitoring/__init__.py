"""
Monitoring components for the position lifecycle core
"""

from .prometheus_metrics import LifecycleMetricsCollector

__all__ = ["LifecycleMetricsCollector"]
