from datetime import datetime, timedelta, timezone

import pytest

from core.trading.utils import to_datetime
from core.utils.exceptions import LiquidationDataError


EPOCH = 1735741800  # 2025-01-01T14:30:00Z


def test_datetime_passes_through():
    moment = datetime(2025, 1, 1, 14, 30)
    assert to_datetime(moment) is moment


@pytest.mark.parametrize("text,expected", [
    ("2025-01-01T14:30:00", datetime(2025, 1, 1, 14, 30)),
    ("2025-01-01T14:30:00+09:00", datetime(2025, 1, 1, 14, 30, tzinfo=timezone(timedelta(hours=9)))),
    ("2025-01-01T14:30:00Z", datetime(2025, 1, 1, 14, 30, tzinfo=timezone.utc)),
    (" 2025-01-01 ", datetime(2025, 1, 1)),
])
def test_iso_strings(text, expected):
    assert to_datetime(text) == expected


def test_epoch_seconds_become_local_aware_time():
    moment = to_datetime(EPOCH)
    assert moment.tzinfo is not None
    assert moment == datetime(2025, 1, 1, 14, 30, tzinfo=timezone.utc)


def test_float_epoch():
    assert to_datetime(EPOCH + 0.5) == datetime(2025, 1, 1, 14, 30, 0, 500000, tzinfo=timezone.utc)


@pytest.mark.parametrize("value", [
    {"seconds": EPOCH, "nanoseconds": 0},
    {"_seconds": EPOCH, "_nanoseconds": 0},
    {"seconds": EPOCH},
])
def test_seconds_mappings(value):
    assert to_datetime(value) == datetime(2025, 1, 1, 14, 30, tzinfo=timezone.utc)


def test_nanoseconds_are_applied():
    moment = to_datetime({"seconds": EPOCH, "nanoseconds": 250_000_000})
    assert moment == datetime(2025, 1, 1, 14, 30, 0, 250000, tzinfo=timezone.utc)


@pytest.mark.parametrize("value", [
    "not a date",
    "",
    True,
    None,
    {"nanoseconds": 5},
    {"seconds": "soon"},
    [2025, 1, 1],
    10 ** 20,
])
def test_uninterpretable_values(value):
    with pytest.raises(LiquidationDataError) as exc_info:
        to_datetime(value, field="closeDate")
    assert exc_info.value.field == "closeDate"
    assert "closeDate" in str(exc_info.value)


def test_liquidation_parses_lazily(make_liquidation):
    info = make_liquidation(close_date={"seconds": EPOCH, "nanoseconds": 0}, open_date="2024-12-20T09:00:00Z")
    assert info.close_datetime() == datetime(2025, 1, 1, 14, 30, tzinfo=timezone.utc)
    assert info.open_datetime() == datetime(2024, 12, 20, 9, 0, tzinfo=timezone.utc)

    broken = make_liquidation(close_date="garbage")
    with pytest.raises(LiquidationDataError):
        broken.close_datetime()


def test_liquidation_reads_stored_field_names():
    from core.trading.models import PositionLiquidationInfo

    info = PositionLiquidationInfo.model_validate({
        "userId": "u", "positionId": "p", "symbol": "AAPL",
        "openPrice": 100, "closePrice": 110, "amount": 2,
        "openDate": "2025-01-01T00:00:00Z", "closeDate": EPOCH,
        "realizedPL": 20, "plRatio": 10,
    })
    assert info.realized_pl == 20
    assert info.pl_ratio == 10
    assert info.fee is None
    assert info.investment == 200
    assert info.is_win
