# Position lifecycle and performance data models
# Stored documents use camelCase keys so records written by other clients stay readable

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from core.trading.lifecycle import (
    PositionLifecycleStatus,
    StatusTransitionEvent,
    TransitionActor,
)
from core.trading.utils import to_datetime
from core.utils.ids import generate_transition_log_id


# Accepted shapes for timestamps coming from the store or callers
TimestampLike = Union[datetime, str, int, float, Dict[str, Any]]


class LifecycleBaseModel(BaseModel):
    """Base model for lifecycle documents (Pydantic v2)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=False,
    )

    def to_document(self) -> Dict[str, Any]:
        """JSON-safe dict using stored (camelCase) field names."""
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class OrderStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class SyncAction(str, Enum):
    TRANSITION = "transition"
    EXPIRE = "expire"
    MAINTAIN = "maintain"


class OutcomeAction(str, Enum):
    """What the reconciliation engine decided for one position"""
    NO_RULE = "no_rule"        # no rule covers the pair
    MAINTAIN = "maintain"      # a rule explicitly says leave it alone
    TRANSITION = "transition"
    EXPIRE = "expire"
    NOT_STALE = "not_stale"    # expire rule matched but threshold not reached
    REJECTED = "rejected"      # rule target not allowed by the transition matrix


class PerformancePeriod(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    OVERALL = "overall"


PERIOD_ORDER = (
    PerformancePeriod.DAILY,
    PerformancePeriod.WEEKLY,
    PerformancePeriod.MONTHLY,
    PerformancePeriod.YEARLY,
    PerformancePeriod.OVERALL,
)


# --- Reconciliation -------------------------------------------------------

class SyncRule(LifecycleBaseModel):
    model_config = ConfigDict(frozen=True)

    order_status: OrderStatus = Field(alias="pendingOrderStatus")
    current_status: PositionLifecycleStatus = Field(alias="currentPositionStatus")
    target_status: PositionLifecycleStatus = Field(alias="targetPositionStatus")
    action: SyncAction
    reason: str

    @property
    def key(self) -> tuple:
        return (self.order_status, self.current_status)


class TransitionMetadata(LifecycleBaseModel):
    model_config = ConfigDict(frozen=True)

    order_id: Optional[str] = None
    reason: Optional[str] = None
    error_message: Optional[str] = None
    user_action: Optional[str] = None
    system_process: Optional[str] = None


class StatusTransitionLog(LifecycleBaseModel):
    """Append-only audit record of one status change"""
    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    position_id: str
    from_status: PositionLifecycleStatus
    to_status: PositionLifecycleStatus
    event: StatusTransitionEvent
    timestamp: datetime
    triggered_by: TransitionActor
    metadata: TransitionMetadata = Field(default_factory=TransitionMetadata)


def create_status_transition_log(
    user_id: str,
    position_id: str,
    from_status: PositionLifecycleStatus,
    to_status: PositionLifecycleStatus,
    event: StatusTransitionEvent,
    triggered_by: TransitionActor,
    metadata: Optional[Union[TransitionMetadata, Dict[str, Any]]] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> StatusTransitionLog:
    now = (clock or (lambda: datetime.now(timezone.utc)))()
    if metadata is None:
        metadata = TransitionMetadata()
    elif not isinstance(metadata, TransitionMetadata):
        metadata = TransitionMetadata.model_validate(metadata)
    return StatusTransitionLog(
        id=generate_transition_log_id(position_id, now),
        user_id=user_id,
        position_id=position_id,
        from_status=from_status,
        to_status=to_status,
        event=event,
        timestamp=now,
        triggered_by=triggered_by,
        metadata=metadata,
    )


class TrackedPosition(LifecycleBaseModel):
    """A non-terminal position as seen by the reconciliation sweep"""
    user_id: str
    position_id: str
    lifecycle_status: PositionLifecycleStatus
    order_status: OrderStatus
    order_id: Optional[str] = None
    status_changed_at: datetime


class ReconciliationOutcome(LifecycleBaseModel):
    position_id: str
    action: OutcomeAction
    rule: Optional[SyncRule] = None
    previous_status: PositionLifecycleStatus
    new_status: Optional[PositionLifecycleStatus] = None
    log_entry: Optional[StatusTransitionLog] = None
    reason: Optional[str] = None

    @property
    def changed(self) -> bool:
        return self.new_status is not None


class SweepResult(LifecycleBaseModel):
    processed_positions: int = 0
    positions_transitioned: int = 0
    positions_expired: int = 0
    positions_untouched: int = 0
    errors: List[str] = Field(default_factory=list)
    # "{from}->{to}" -> count
    summary: Dict[str, int] = Field(default_factory=dict)
    outcomes: List[ReconciliationOutcome] = Field(default_factory=list)


# --- Performance ----------------------------------------------------------

class PositionLiquidationInfo(LifecycleBaseModel):
    """Facts about a closed position, folded into performance records"""
    model_config = ConfigDict(frozen=True)

    user_id: str
    position_id: str
    symbol: str
    name: Optional[str] = None
    open_price: float = Field(ge=0)
    close_price: float = Field(ge=0)
    amount: float = Field(gt=0)
    # Parsed lazily so a malformed timestamp surfaces as an aggregation failure
    open_date: TimestampLike
    close_date: TimestampLike
    # negative fees are broker rebates
    fee: Optional[float] = None
    realized_pl: float = Field(alias="realizedPL")
    pl_ratio: float = Field(alias="plRatio")

    def close_datetime(self) -> datetime:
        return to_datetime(self.close_date, field="closeDate")

    def open_datetime(self) -> datetime:
        return to_datetime(self.open_date, field="openDate")

    @property
    def is_win(self) -> bool:
        # zero P/L counts as a loss
        return self.realized_pl > 0

    @property
    def investment(self) -> float:
        return self.open_price * self.amount


class PerformanceStats(LifecycleBaseModel):
    total_trades: int = 0
    win_count: int = 0
    lose_count: int = 0
    win_rate: float = 0.0
    total_realized_pl: float = Field(default=0.0, alias="totalRealizedPL")
    average_pl: float = Field(default=0.0, alias="averagePL")
    average_pl_ratio: float = Field(default=0.0, alias="averagePLRatio")
    max_profit: float = 0.0
    # non-positive: the most negative single result
    max_loss: float = 0.0
    total_fee: float = 0.0
    total_investment: float = 0.0
    total_profit: float = 0.0
    # non-negative magnitude, unlike max_loss
    total_loss: float = 0.0
    profit_loss_ratio: Optional[float] = None


class PerformanceRecord(LifecycleBaseModel):
    user_id: str
    period: PerformancePeriod
    period_key: str
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    stats: PerformanceStats
    liquidated_position_ids: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    # bumped on every write; compare-and-swap guard
    version: int = 0


class PerformanceProcessResult(LifecycleBaseModel):
    success: bool = True
    updated_periods: List[PerformancePeriod] = Field(default_factory=list)
    created_records: List[str] = Field(default_factory=list)
    updated_records: List[str] = Field(default_factory=list)
    skipped_duplicates: List[str] = Field(default_factory=list)
    error: Optional[str] = None
