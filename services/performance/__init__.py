"""
Performance Aggregation Service

Folds liquidated positions into daily/weekly/monthly/yearly/overall statistics.
"""

from .aggregator import (
    AggregatorConfig,
    PerformanceAggregator,
    process_position_liquidation,
)
from .periods import period_key, period_keys, period_bounds
from .stats import calculate_initial_stats, calculate_updated_stats
