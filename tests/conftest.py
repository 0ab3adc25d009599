"""
Pytest configuration and shared fixtures for position lifecycle tests.
"""
from datetime import datetime, timezone
from typing import Any, Dict

import pytest

from core.config.settings import Settings, LifecycleSettings, PerformanceSettings, LoggingSettings
from core.trading.memory_store import InMemoryRecordStore
from core.trading.models import PerformanceRecord, PositionLiquidationInfo


FIXED_NOW = datetime(2025, 1, 2, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def test_settings():
    """Test settings configuration."""
    return Settings(
        environment="testing",
        logging=LoggingSettings(level="DEBUG", console_enabled=False),
        lifecycle=LifecycleSettings(staleness_threshold_hours=24),
        performance=PerformanceSettings(),
    )


@pytest.fixture
def fixed_clock():
    """Clock returning a constant instant."""
    return lambda: FIXED_NOW


@pytest.fixture
def memory_store():
    """Empty in-memory performance record store."""
    return InMemoryRecordStore(PerformanceRecord)


@pytest.fixture
def make_liquidation():
    """Factory for liquidation events with overridable fields."""

    def _make(**overrides: Any) -> PositionLiquidationInfo:
        data: Dict[str, Any] = {
            "user_id": "user-1",
            "position_id": "pos-1",
            "symbol": "005930",
            "name": "Samsung Electronics",
            "open_price": 70000,
            "close_price": 74900,
            "amount": 10,
            "open_date": datetime(2024, 12, 20, 9, 0),
            "close_date": datetime(2025, 1, 1, 14, 30),
            "fee": 1000,
            "realized_pl": 49000,
            "pl_ratio": 7.14,
        }
        data.update(overrides)
        return PositionLiquidationInfo(**data)

    return _make
