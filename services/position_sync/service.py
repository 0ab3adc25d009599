from datetime import datetime, timedelta
from typing import Awaitable, Callable, Iterable, Optional

from core.config.settings import Settings
from core.logging import get_trading_logger_safe, get_error_logger_safe
from core.monitoring import LifecycleMetricsCollector
from core.trading.models import ReconciliationOutcome, SweepResult, TrackedPosition
from core.utils.exceptions import create_error_context
from .engine import ReconciliationEngine, record_outcome

# Persists one changed position (new status + transition log). Owned by the caller.
OutcomeHandler = Callable[[TrackedPosition, ReconciliationOutcome], Awaitable[None]]


class PositionSyncService:
    """Periodic reconciliation sweep over non-terminal positions.

    The engine decides; this service drives the sweep and hands every
    state-changing outcome to the caller's persistence callback.
    """

    def __init__(self, settings: Settings, engine: Optional[ReconciliationEngine] = None,
                 metrics: Optional[LifecycleMetricsCollector] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.settings = settings
        self.engine = engine or ReconciliationEngine(
            staleness_threshold=timedelta(hours=settings.lifecycle.staleness_threshold_hours),
            clock=clock,
            metrics=metrics,
        )
        self.logger = get_trading_logger_safe("position_sync")
        self.error_logger = get_error_logger_safe("position_sync_errors")

    async def run_daily_sync(self, positions: Iterable[TrackedPosition],
                             on_outcome: Optional[OutcomeHandler] = None) -> SweepResult:
        """Reconcile every position and persist changes through ``on_outcome``.

        A failure evaluating or persisting one position is recorded in
        ``SweepResult.errors`` and the sweep moves on.
        """
        now = self.engine.clock()
        result = SweepResult()

        for position in positions:
            result.processed_positions += 1
            try:
                outcome = self.engine.evaluate(position, now)
                if outcome.changed and on_outcome is not None:
                    await on_outcome(position, outcome)
            except Exception as e:
                self.error_logger.error("Position sync failed",
                                        **create_error_context(e, "run_daily_sync",
                                                               {"position_id": position.position_id}))
                result.errors.append(f"{position.position_id}: {e}")
                continue

            record_outcome(result, outcome)

        self.logger.info("Daily position sync complete",
                         processed=result.processed_positions,
                         transitioned=result.positions_transitioned,
                         expired=result.positions_expired,
                         untouched=result.positions_untouched,
                         errors=len(result.errors),
                         summary=result.summary)
        return result
