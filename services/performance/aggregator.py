"""
Performance aggregation.

Folds one closed position into five independently keyed statistics
records (daily, weekly, monthly, yearly, overall). Each period is its own
read-modify-write cycle guarded by the store's compare-and-swap, so a
failure in one bucket never blocks the others and concurrent liquidations
for the same bucket cannot overwrite each other.

Statistics are advisory: per-period failures are logged and left out of
the result instead of failing the whole call.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from typing import Callable, Dict, Optional

from core.config.settings import Settings
from core.logging import get_performance_logger_safe, get_error_logger_safe
from core.monitoring import LifecycleMetricsCollector
from core.trading.interfaces import RecordStore
from core.trading.models import (
    PERIOD_ORDER,
    PerformancePeriod,
    PerformanceProcessResult,
    PerformanceRecord,
    PositionLiquidationInfo,
)
from core.utils.exceptions import create_error_context
from core.utils.ids import performance_document_id
from .periods import localize, period_bounds, period_keys, resolve_timezone
from .stats import calculate_initial_stats, calculate_updated_stats

DEFAULT_COLLECTIONS: Dict[PerformancePeriod, str] = {
    period: f"{period.value}_performance" for period in PERIOD_ORDER
}


@dataclass
class AggregatorConfig:
    store: RecordStore[PerformanceRecord]
    # period name -> collection name
    collection_name_overrides: Dict[str, str] = field(default_factory=dict)
    clock: Optional[Callable[[], datetime]] = None
    timezone: Optional[tzinfo] = None
    deduplicate: bool = False
    max_attempts: int = 5
    metrics: Optional[LifecycleMetricsCollector] = None

    @classmethod
    def from_settings(cls, store: RecordStore[PerformanceRecord], settings: Settings,
                      **overrides) -> "AggregatorConfig":
        perf = settings.performance
        values = dict(
            store=store,
            collection_name_overrides=dict(perf.collections),
            timezone=resolve_timezone(perf.timezone),
            deduplicate=perf.deduplicate_liquidations,
            max_attempts=perf.cas_max_attempts,
        )
        values.update(overrides)
        return cls(**values)


class PerformanceAggregator:
    """Merges liquidation events into per-period performance records"""

    def __init__(self, config: AggregatorConfig):
        self.config = config
        self.store = config.store
        self.clock = config.clock or (lambda: datetime.now(timezone.utc))
        self.metrics = config.metrics
        self.logger = get_performance_logger_safe("performance_aggregator")
        self.error_logger = get_error_logger_safe("performance_aggregator_errors")

    def collection_name(self, period: PerformancePeriod) -> str:
        period = PerformancePeriod(period)
        return self.config.collection_name_overrides.get(period.value) or DEFAULT_COLLECTIONS[period]

    async def process_position_liquidation(self, info: PositionLiquidationInfo) -> PerformanceProcessResult:
        """Fold one liquidation into all five period records.

        Always returns a result. ``success`` is False only when the event
        itself cannot be interpreted (e.g. a malformed close timestamp).
        """
        result = PerformanceProcessResult()
        started = time.perf_counter()

        try:
            close_moment = localize(info.close_datetime(), self.config.timezone)
            keys = period_keys(close_moment)

            # periods are independent; fixed order keeps logs and results stable
            for period in PERIOD_ORDER:
                await self._process_period(info, period, keys[period], close_moment, result)
        except Exception as e:
            result.success = False
            result.error = str(e)
            self.error_logger.error("Performance aggregation failed",
                                    **create_error_context(e, "process_position_liquidation",
                                                           {"position_id": info.position_id,
                                                            "user_id": info.user_id}))
            if self.metrics:
                self.metrics.record_aggregation_failure()
        finally:
            if self.metrics:
                self.metrics.observe_aggregation_latency(time.perf_counter() - started)

        if result.success:
            self.logger.info("Liquidation aggregated",
                             position_id=info.position_id,
                             user_id=info.user_id,
                             updated_periods=[p.value for p in result.updated_periods],
                             created=len(result.created_records),
                             merged=len(result.updated_records),
                             duplicates=len(result.skipped_duplicates))
        return result

    async def _process_period(self, info: PositionLiquidationInfo, period: PerformancePeriod,
                              period_key: str, close_moment: datetime,
                              result: PerformanceProcessResult) -> None:
        collection = self.collection_name(period)
        document_id = performance_document_id(info.user_id, period_key)
        label = f"{period.value}:{document_id}"

        def fold(current: Optional[PerformanceRecord]) -> Optional[PerformanceRecord]:
            now = self.clock()
            if current is None:
                start_date, end_date = period_bounds(close_moment, period)
                return PerformanceRecord(
                    user_id=info.user_id,
                    period=period,
                    period_key=period_key,
                    start_date=start_date,
                    end_date=end_date,
                    stats=calculate_initial_stats(info),
                    liquidated_position_ids=[info.position_id],
                    created_at=now,
                    updated_at=now,
                )
            if self.config.deduplicate and info.position_id in current.liquidated_position_ids:
                return None
            return current.model_copy(update={
                "stats": calculate_updated_stats(current.stats, info),
                "liquidated_position_ids": [*current.liquidated_position_ids, info.position_id],
                "updated_at": now,
            })

        try:
            previous, written = await self.store.update_atomic(
                collection, document_id, fold, max_attempts=self.config.max_attempts
            )
        except Exception as e:
            self.error_logger.error("Failed to update performance period",
                                    **create_error_context(e, "update_period",
                                                           {"period": period.value,
                                                            "collection": collection,
                                                            "document_id": document_id,
                                                            "position_id": info.position_id}))
            if self.metrics:
                self.metrics.record_period_update(period.value, "failed")
            return

        if written is None:
            self.logger.warning("Liquidation already folded into record, skipping",
                                period=period.value, document_id=document_id,
                                position_id=info.position_id)
            result.skipped_duplicates.append(label)
            if self.metrics:
                self.metrics.record_period_update(period.value, "duplicate")
            return

        if previous is None:
            result.created_records.append(label)
            outcome = "created"
        else:
            result.updated_records.append(label)
            outcome = "merged"
        result.updated_periods.append(period)
        if self.metrics:
            self.metrics.record_period_update(period.value, outcome)


async def process_position_liquidation(info: PositionLiquidationInfo,
                                       config: AggregatorConfig) -> PerformanceProcessResult:
    """Entry point: fold one liquidation into the five performance periods."""
    return await PerformanceAggregator(config).process_position_liquidation(info)
