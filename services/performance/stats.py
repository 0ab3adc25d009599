"""
Performance statistics arithmetic.

Sign conventions worth keeping in mind:

- a trade with ``realized_pl > 0`` is a win; zero counts as a loss;
- ``max_loss`` is stored signed (never positive);
- ``total_loss`` is stored as a magnitude (never negative).
"""

from typing import Optional

from core.trading.models import PerformanceStats, PositionLiquidationInfo


def _profit_loss_ratio(total_profit: float, win_count: int,
                       total_loss: float, lose_count: int) -> Optional[float]:
    """Average win over average loss; undefined until there is a non-zero average loss."""
    average_profit = total_profit / win_count if win_count > 0 else 0.0
    average_loss = total_loss / lose_count if lose_count > 0 else 0.0
    if average_loss == 0:
        return None
    return average_profit / average_loss


def calculate_initial_stats(info: PositionLiquidationInfo) -> PerformanceStats:
    """Stats for the first trade folded into a period bucket."""
    is_win = info.is_win
    pl = info.realized_pl
    return PerformanceStats(
        total_trades=1,
        win_count=1 if is_win else 0,
        lose_count=0 if is_win else 1,
        win_rate=100.0 if is_win else 0.0,
        total_realized_pl=pl,
        average_pl=pl,
        average_pl_ratio=info.pl_ratio,
        max_profit=pl if is_win else 0.0,
        max_loss=0.0 if is_win else pl,
        total_fee=info.fee or 0.0,
        total_investment=info.investment,
        total_profit=pl if is_win else 0.0,
        total_loss=0.0 if is_win else abs(pl),
        # needs both a win and a loss
        profit_loss_ratio=None,
    )


def calculate_updated_stats(existing: PerformanceStats, info: PositionLiquidationInfo) -> PerformanceStats:
    """Fold one more trade into existing stats."""
    is_win = info.is_win
    pl = info.realized_pl

    total_trades = existing.total_trades + 1
    win_count = existing.win_count + (1 if is_win else 0)
    lose_count = existing.lose_count + (0 if is_win else 1)
    total_realized_pl = existing.total_realized_pl + pl
    total_profit = existing.total_profit + (pl if is_win else 0.0)
    total_loss = existing.total_loss + (0.0 if is_win else abs(pl))

    return PerformanceStats(
        total_trades=total_trades,
        win_count=win_count,
        lose_count=lose_count,
        win_rate=win_count / total_trades * 100,
        total_realized_pl=total_realized_pl,
        average_pl=total_realized_pl / total_trades,
        # weighted by the prior record's own trade count
        average_pl_ratio=(existing.average_pl_ratio * existing.total_trades + info.pl_ratio) / total_trades,
        max_profit=max(existing.max_profit, pl if is_win else 0.0),
        max_loss=min(existing.max_loss, 0.0 if is_win else pl),
        total_fee=existing.total_fee + (info.fee or 0.0),
        total_investment=existing.total_investment + info.investment,
        total_profit=total_profit,
        total_loss=total_loss,
        profit_loss_ratio=_profit_loss_ratio(total_profit, win_count, total_loss, lose_count),
    )
