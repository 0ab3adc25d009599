import asyncio
from datetime import datetime
from zoneinfo import ZoneInfo

import pytest
from prometheus_client import CollectorRegistry

from core.config.settings import PerformanceSettings, Settings
from core.monitoring import LifecycleMetricsCollector
from core.trading.memory_store import InMemoryRecordStore
from core.trading.models import PerformancePeriod as P, PerformanceRecord
from core.utils.exceptions import StoreError
from services.performance import (
    AggregatorConfig,
    PerformanceAggregator,
    process_position_liquidation,
)


ALL_PERIODS = [P.DAILY, P.WEEKLY, P.MONTHLY, P.YEARLY, P.OVERALL]

EXPECTED_DOCUMENTS = {
    "daily_performance": "user-1_2025-01-01",
    "weekly_performance": "user-1_2025-W01",
    "monthly_performance": "user-1_2025-01",
    "yearly_performance": "user-1_2025",
    "overall_performance": "user-1_overall",
}


class FailingCollectionStore(InMemoryRecordStore):
    """Raises on every write to one collection"""

    def __init__(self, failing_collection):
        super().__init__(PerformanceRecord)
        self.failing_collection = failing_collection

    async def compare_and_swap(self, collection, document_id, expected_version, record):
        if collection == self.failing_collection:
            raise StoreError("write refused", operation="compare_and_swap",
                             collection=collection, document_id=document_id)
        return await super().compare_and_swap(collection, document_id, expected_version, record)


class RacingStore(InMemoryRecordStore):
    """Runs ``interloper`` once, just before the next compare-and-swap lands"""

    def __init__(self):
        super().__init__(PerformanceRecord)
        self.interloper = None
        self.cas_calls = 0

    async def compare_and_swap(self, collection, document_id, expected_version, record):
        self.cas_calls += 1
        interloper, self.interloper = self.interloper, None
        if interloper is not None:
            await interloper()
        return await super().compare_and_swap(collection, document_id, expected_version, record)


class AlwaysLosingStore(InMemoryRecordStore):

    def __init__(self):
        super().__init__(PerformanceRecord)
        self.cas_calls = 0

    async def compare_and_swap(self, collection, document_id, expected_version, record):
        self.cas_calls += 1
        return False


@pytest.fixture
def aggregator(memory_store, fixed_clock):
    return PerformanceAggregator(AggregatorConfig(store=memory_store, clock=fixed_clock))


@pytest.mark.asyncio
async def test_first_liquidation_creates_five_records(aggregator, memory_store, fixed_clock, make_liquidation):
    result = await aggregator.process_position_liquidation(make_liquidation())

    assert result.success
    assert result.error is None
    assert result.updated_periods == ALL_PERIODS
    assert len(result.created_records) == 5
    assert result.updated_records == []
    assert "daily:user-1_2025-01-01" in result.created_records

    for collection, document_id in EXPECTED_DOCUMENTS.items():
        record = await memory_store.get(collection, document_id)
        assert record is not None, collection
        assert record.user_id == "user-1"
        assert record.stats.total_trades == 1
        assert record.stats.total_realized_pl == 49000
        assert record.liquidated_position_ids == ["pos-1"]
        assert record.created_at == fixed_clock()
        assert record.updated_at == fixed_clock()
        assert record.version == 1


@pytest.mark.asyncio
async def test_records_carry_period_bounds(aggregator, memory_store, make_liquidation):
    await aggregator.process_position_liquidation(make_liquidation())

    weekly = await memory_store.get("weekly_performance", "user-1_2025-W01")
    assert weekly.period is P.WEEKLY
    assert weekly.period_key == "2025-W01"
    assert weekly.start_date == datetime(2024, 12, 30)
    assert weekly.end_date == datetime(2025, 1, 5, 23, 59, 59, 999000)

    overall = await memory_store.get("overall_performance", "user-1_overall")
    assert overall.start_date is None
    assert overall.end_date is None


@pytest.mark.asyncio
async def test_stored_documents_use_camel_case(aggregator, memory_store, make_liquidation):
    await aggregator.process_position_liquidation(make_liquidation())

    document = memory_store.documents("daily_performance")["daily_performance/user-1_2025-01-01"]
    assert document["userId"] == "user-1"
    assert document["periodKey"] == "2025-01-01"
    assert document["liquidatedPositionIds"] == ["pos-1"]
    assert document["stats"]["totalRealizedPL"] == 49000
    assert document["version"] == 1


@pytest.mark.asyncio
async def test_second_liquidation_merges(aggregator, memory_store, make_liquidation):
    await aggregator.process_position_liquidation(make_liquidation())
    result = await aggregator.process_position_liquidation(make_liquidation(
        position_id="pos-2", open_price=50000, amount=5, fee=500,
        realized_pl=-10000, pl_ratio=-2.0,
    ))

    assert result.success
    assert result.created_records == []
    assert len(result.updated_records) == 5

    record = await memory_store.get("monthly_performance", "user-1_2025-01")
    assert record.stats.total_trades == 2
    assert record.stats.win_rate == 50
    assert record.stats.total_investment == 950000
    assert record.stats.profit_loss_ratio == pytest.approx(4.9)
    assert record.liquidated_position_ids == ["pos-1", "pos-2"]
    assert record.version == 2


@pytest.mark.asyncio
async def test_different_days_land_in_different_daily_records(aggregator, memory_store, make_liquidation):
    await aggregator.process_position_liquidation(make_liquidation())
    result = await aggregator.process_position_liquidation(
        make_liquidation(position_id="pos-2", close_date=datetime(2025, 1, 3, 10, 0)))

    assert "daily:user-1_2025-01-03" in result.created_records
    assert "weekly:user-1_2025-W01" in result.updated_records
    assert len(memory_store.documents("daily_performance")) == 2


@pytest.mark.asyncio
async def test_failure_in_one_period_does_not_block_others(fixed_clock, make_liquidation):
    store = FailingCollectionStore("weekly_performance")
    config = AggregatorConfig(store=store, clock=fixed_clock)

    result = await process_position_liquidation(make_liquidation(), config)

    assert result.success
    assert result.updated_periods == [P.DAILY, P.MONTHLY, P.YEARLY, P.OVERALL]
    assert not any(label.startswith("weekly:") for label in result.created_records)
    assert await store.get("weekly_performance", "user-1_2025-W01") is None
    assert await store.get("yearly_performance", "user-1_2025") is not None


@pytest.mark.asyncio
async def test_malformed_close_timestamp_fails_the_call(aggregator, memory_store, make_liquidation):
    result = await aggregator.process_position_liquidation(make_liquidation(close_date="yesterday-ish"))

    assert not result.success
    assert "closeDate" in result.error
    assert result.updated_periods == []
    assert memory_store.documents() == {}


@pytest.mark.asyncio
async def test_replay_is_double_counted_by_default(aggregator, memory_store, make_liquidation):
    event = make_liquidation()
    await aggregator.process_position_liquidation(event)
    result = await aggregator.process_position_liquidation(event)

    assert result.success
    assert result.skipped_duplicates == []
    record = await memory_store.get("overall_performance", "user-1_overall")
    assert record.stats.total_trades == 2
    assert record.liquidated_position_ids == ["pos-1", "pos-1"]


@pytest.mark.asyncio
async def test_replay_is_skipped_when_deduplicating(memory_store, fixed_clock, make_liquidation):
    aggregator = PerformanceAggregator(AggregatorConfig(store=memory_store, clock=fixed_clock,
                                                        deduplicate=True))
    event = make_liquidation()
    await aggregator.process_position_liquidation(event)
    result = await aggregator.process_position_liquidation(event)

    assert result.success
    assert result.updated_periods == []
    assert len(result.skipped_duplicates) == 5
    record = await memory_store.get("overall_performance", "user-1_overall")
    assert record.stats.total_trades == 1
    assert record.version == 1


@pytest.mark.asyncio
async def test_collection_name_overrides(memory_store, fixed_clock, make_liquidation):
    config = AggregatorConfig(store=memory_store, clock=fixed_clock,
                              collection_name_overrides={"daily": "perf_daily"})
    aggregator = PerformanceAggregator(config)

    assert aggregator.collection_name(P.DAILY) == "perf_daily"
    assert aggregator.collection_name("weekly") == "weekly_performance"

    await aggregator.process_position_liquidation(make_liquidation())
    assert await memory_store.get("perf_daily", "user-1_2025-01-01") is not None
    assert memory_store.documents("daily_performance") == {}


@pytest.mark.asyncio
async def test_timezone_decides_calendar_buckets(memory_store, fixed_clock, make_liquidation):
    config = AggregatorConfig(store=memory_store, clock=fixed_clock, timezone=ZoneInfo("Asia/Seoul"))
    close = datetime(2024, 12, 31, 16, 30, tzinfo=ZoneInfo("UTC"))

    result = await PerformanceAggregator(config).process_position_liquidation(
        make_liquidation(close_date=close))

    assert "daily:user-1_2025-01-01" in result.created_records
    assert "yearly:user-1_2025" in result.created_records


@pytest.mark.asyncio
async def test_same_instant_lands_in_same_buckets_however_encoded(fixed_clock, make_liquidation):
    epoch = 1735741800  # 2025-01-01T14:30:00Z
    encodings = [
        epoch,
        {"seconds": epoch, "nanoseconds": 0},
        "2025-01-01T14:30:00Z",
        "2025-01-01T23:30:00+09:00",
        datetime(2025, 1, 1, 14, 30, tzinfo=ZoneInfo("UTC")),
    ]
    local = datetime.fromtimestamp(epoch).astimezone()
    expected_daily = f"daily:user-1_{local:%Y-%m-%d}"

    for close in encodings:
        store = InMemoryRecordStore(PerformanceRecord)
        aggregator = PerformanceAggregator(AggregatorConfig(store=store, clock=fixed_clock))
        result = await aggregator.process_position_liquidation(make_liquidation(close_date=close))

        assert result.success, close
        assert expected_daily in result.created_records, close


@pytest.mark.asyncio
async def test_concurrent_liquidations_are_not_lost(memory_store, fixed_clock, make_liquidation):
    aggregator = PerformanceAggregator(AggregatorConfig(store=memory_store, clock=fixed_clock))
    events = [make_liquidation(position_id=f"pos-{i}") for i in range(10)]

    results = await asyncio.gather(*(aggregator.process_position_liquidation(e) for e in events))

    assert all(r.success for r in results)
    record = await memory_store.get("overall_performance", "user-1_overall")
    assert record.stats.total_trades == 10
    assert sorted(record.liquidated_position_ids) == sorted(e.position_id for e in events)


@pytest.mark.asyncio
async def test_lost_race_is_retried_with_fresh_read(fixed_clock, make_liquidation):
    store = RacingStore()
    competing = PerformanceAggregator(AggregatorConfig(store=store, clock=fixed_clock))
    store.interloper = lambda: competing.process_position_liquidation(
        make_liquidation(position_id="pos-competitor"))
    aggregator = PerformanceAggregator(AggregatorConfig(store=store, clock=fixed_clock))

    result = await aggregator.process_position_liquidation(make_liquidation())

    assert result.success
    assert result.updated_periods == ALL_PERIODS
    # the competitor created every record first, so each write became a merge
    assert result.created_records == []
    assert len(result.updated_records) == 5
    # one lost attempt, five competitor writes, five successful retries
    assert store.cas_calls == 11
    for collection, document_id in EXPECTED_DOCUMENTS.items():
        record = await store.get(collection, document_id)
        assert record.stats.total_trades == 2
        assert record.liquidated_position_ids == ["pos-competitor", "pos-1"]
        assert record.version == 2


@pytest.mark.asyncio
async def test_exhausted_retries_drop_the_period(fixed_clock, make_liquidation):
    store = AlwaysLosingStore()
    aggregator = PerformanceAggregator(AggregatorConfig(store=store, clock=fixed_clock, max_attempts=3))

    result = await aggregator.process_position_liquidation(make_liquidation())

    assert result.success
    assert result.updated_periods == []
    assert store.cas_calls == 3 * 5


@pytest.mark.asyncio
async def test_metrics(memory_store, fixed_clock, make_liquidation):
    registry = CollectorRegistry()
    aggregator = PerformanceAggregator(AggregatorConfig(
        store=memory_store, clock=fixed_clock, metrics=LifecycleMetricsCollector(registry)))

    await aggregator.process_position_liquidation(make_liquidation())
    await aggregator.process_position_liquidation(make_liquidation(position_id="pos-2"))
    await aggregator.process_position_liquidation(make_liquidation(close_date="garbage"))

    assert registry.get_sample_value(
        "performance_period_updates_total", {"period": "daily", "outcome": "created"}) == 1.0
    assert registry.get_sample_value(
        "performance_period_updates_total", {"period": "overall", "outcome": "merged"}) == 1.0
    assert registry.get_sample_value("performance_aggregation_failures_total") == 1.0
    assert registry.get_sample_value("performance_aggregation_latency_seconds_count") == 3.0


def test_config_from_settings(memory_store):
    settings = Settings(performance=PerformanceSettings(
        collections={"weekly": "wk"}, timezone="Asia/Seoul",
        deduplicate_liquidations=True, cas_max_attempts=2))

    config = AggregatorConfig.from_settings(memory_store, settings, deduplicate=False)

    assert config.store is memory_store
    assert config.collection_name_overrides == {"weekly": "wk"}
    assert config.timezone == ZoneInfo("Asia/Seoul")
    assert config.deduplicate is False
    assert config.max_attempts == 2
