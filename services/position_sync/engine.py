"""
Reconciliation engine.

Reduces "current lifecycle status + freshly observed order status" to one
decision per position. The engine is pure: it never touches storage, it
only tells the caller what to persist.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, Optional, Tuple

from core.logging import get_trading_logger_safe, get_audit_logger_safe
from core.monitoring import LifecycleMetricsCollector
from core.trading.lifecycle import (
    LifecyclePhase,
    PositionLifecycleStatus,
    StatusTransitionEvent,
    TransitionActor,
    is_valid_transition,
    phase_of,
)
from core.trading.models import (
    OrderStatus,
    OutcomeAction,
    ReconciliationOutcome,
    SweepResult,
    SyncAction,
    SyncRule,
    TrackedPosition,
    create_status_transition_log,
)
from .rules import DAILY_SYNC_RULES, find_rule_problems, validate_sync_rules

DEFAULT_STALENESS_THRESHOLD = timedelta(hours=24)

_ORDER_EVENTS: Dict[Tuple[LifecyclePhase, OrderStatus], StatusTransitionEvent] = {
    (LifecyclePhase.ENTRY, OrderStatus.PENDING): StatusTransitionEvent.ENTRY_ORDER_SUBMITTED,
    (LifecyclePhase.ENTRY, OrderStatus.COMPLETED): StatusTransitionEvent.ENTRY_ORDER_EXECUTED,
    (LifecyclePhase.ENTRY, OrderStatus.FAILED): StatusTransitionEvent.ENTRY_ORDER_FAILED,
    (LifecyclePhase.ENTRY, OrderStatus.CANCELLED): StatusTransitionEvent.ENTRY_ORDER_CANCELLED,
    (LifecyclePhase.EXIT, OrderStatus.PENDING): StatusTransitionEvent.EXIT_ORDER_SUBMITTED,
    (LifecyclePhase.EXIT, OrderStatus.COMPLETED): StatusTransitionEvent.EXIT_ORDER_EXECUTED,
    (LifecyclePhase.EXIT, OrderStatus.FAILED): StatusTransitionEvent.EXIT_ORDER_FAILED,
    (LifecyclePhase.EXIT, OrderStatus.CANCELLED): StatusTransitionEvent.EXIT_ORDER_CANCELLED,
}


def _as_aware(value: datetime) -> datetime:
    # naive timestamps are taken as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def transition_event_for(current_status: PositionLifecycleStatus,
                         order_status: OrderStatus) -> StatusTransitionEvent:
    return _ORDER_EVENTS.get((phase_of(current_status), order_status),
                             StatusTransitionEvent.DAILY_CLEANUP)


class ReconciliationEngine:
    """Applies the sync rule table to tracked positions"""

    def __init__(self, rules: Iterable[SyncRule] = DAILY_SYNC_RULES,
                 staleness_threshold: timedelta = DEFAULT_STALENESS_THRESHOLD,
                 clock: Optional[Callable[[], datetime]] = None,
                 metrics: Optional[LifecycleMetricsCollector] = None,
                 strict: bool = True):
        """
        Args:
            rules: sync rule table
            staleness_threshold: how long an expire-able status may persist
            clock: returns "now"; injectable for tests
            metrics: optional Prometheus collector
            strict: reject inconsistent rule sets at construction. When False
                the first rule per key wins and forbidden transitions are
                rejected per position at evaluation time instead.
        """
        self.logger = get_trading_logger_safe("reconciliation_engine")
        self.audit_logger = get_audit_logger_safe("reconciliation_audit")
        self.staleness_threshold = staleness_threshold
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.metrics = metrics

        if strict:
            self._rules = validate_sync_rules(rules)
        else:
            rules = tuple(rules)
            for problem in find_rule_problems(rules):
                self.logger.warning("Inconsistent sync rule loaded", problem=problem)
            self._rules = {}
            for rule in rules:
                self._rules.setdefault(rule.key, rule)

    @property
    def rules(self) -> Tuple[SyncRule, ...]:
        return tuple(self._rules.values())

    def find_rule(self, order_status: OrderStatus,
                  current_status: PositionLifecycleStatus) -> Optional[SyncRule]:
        return self._rules.get((OrderStatus(order_status), PositionLifecycleStatus(current_status)))

    def is_stale(self, position: TrackedPosition, now: Optional[datetime] = None) -> bool:
        now = _as_aware(now or self.clock())
        return now - _as_aware(position.status_changed_at) > self.staleness_threshold

    def evaluate(self, position: TrackedPosition, now: Optional[datetime] = None) -> ReconciliationOutcome:
        """Decide what should happen to one position. Does not persist anything."""
        now = now or self.clock()
        current = position.lifecycle_status
        rule = self.find_rule(position.order_status, current)

        if rule is None:
            outcome = ReconciliationOutcome(
                position_id=position.position_id,
                action=OutcomeAction.NO_RULE,
                previous_status=current,
                reason=f"No sync rule for {position.order_status.value}/{current.value}",
            )
        elif rule.action is SyncAction.MAINTAIN:
            outcome = ReconciliationOutcome(
                position_id=position.position_id,
                action=OutcomeAction.MAINTAIN,
                rule=rule,
                previous_status=current,
                reason=rule.reason,
            )
        elif rule.action is SyncAction.EXPIRE:
            outcome = self._evaluate_expiry(position, rule, now)
        else:
            outcome = self._evaluate_transition(position, rule, now)

        if self.metrics:
            self.metrics.record_outcome(outcome.action.value)
            if outcome.changed:
                self.metrics.record_transition(current.value, outcome.new_status.value)
        return outcome

    def _evaluate_transition(self, position: TrackedPosition, rule: SyncRule,
                             now: datetime) -> ReconciliationOutcome:
        current = position.lifecycle_status
        if not is_valid_transition(current, rule.target_status):
            return self._rejected(position, rule, rule.target_status)

        log_entry = create_status_transition_log(
            user_id=position.user_id,
            position_id=position.position_id,
            from_status=current,
            to_status=rule.target_status,
            event=transition_event_for(current, position.order_status),
            triggered_by=TransitionActor.SCHEDULER,
            metadata={"order_id": position.order_id, "reason": rule.reason,
                      "system_process": "daily_sync"},
            clock=lambda: now,
        )
        self.audit_logger.info("Position status transition",
                               position_id=position.position_id,
                               user_id=position.user_id,
                               from_status=current.value,
                               to_status=rule.target_status.value,
                               transition_event=log_entry.event.value)
        return ReconciliationOutcome(
            position_id=position.position_id,
            action=OutcomeAction.TRANSITION,
            rule=rule,
            previous_status=current,
            new_status=rule.target_status,
            log_entry=log_entry,
            reason=rule.reason,
        )

    def _rejected(self, position: TrackedPosition, rule: SyncRule,
                  target: PositionLifecycleStatus) -> ReconciliationOutcome:
        current = position.lifecycle_status
        self.logger.error("Sync rule names a transition the matrix forbids",
                          position_id=position.position_id,
                          from_status=current.value,
                          to_status=target.value)
        return ReconciliationOutcome(
            position_id=position.position_id,
            action=OutcomeAction.REJECTED,
            rule=rule,
            previous_status=current,
            reason=f"Transition {current.value} -> {target.value} is not allowed",
        )

    def _evaluate_expiry(self, position: TrackedPosition, rule: SyncRule,
                         now: datetime) -> ReconciliationOutcome:
        current = position.lifecycle_status
        if not self.is_stale(position, now):
            return ReconciliationOutcome(
                position_id=position.position_id,
                action=OutcomeAction.NOT_STALE,
                rule=rule,
                previous_status=current,
                reason="Within staleness threshold",
            )

        target = PositionLifecycleStatus.EXPIRED
        if not is_valid_transition(current, target):
            return self._rejected(position, rule, target)

        log_entry = create_status_transition_log(
            user_id=position.user_id,
            position_id=position.position_id,
            from_status=current,
            to_status=target,
            event=StatusTransitionEvent.AUTO_EXPIRED,
            triggered_by=TransitionActor.SCHEDULER,
            metadata={"order_id": position.order_id, "reason": rule.reason,
                      "system_process": "daily_sync"},
            clock=lambda: now,
        )
        self.audit_logger.info("Position expired",
                               position_id=position.position_id,
                               user_id=position.user_id,
                               from_status=current.value,
                               stale_since=position.status_changed_at.isoformat())
        return ReconciliationOutcome(
            position_id=position.position_id,
            action=OutcomeAction.EXPIRE,
            rule=rule,
            previous_status=current,
            new_status=target,
            log_entry=log_entry,
            reason=rule.reason,
        )

    def sweep(self, positions: Iterable[TrackedPosition],
              now: Optional[datetime] = None) -> SweepResult:
        """Evaluate every position; one bad position does not stop the sweep."""
        now = now or self.clock()
        result = SweepResult()

        for position in positions:
            result.processed_positions += 1
            try:
                outcome = self.evaluate(position, now)
            except Exception as e:
                self.logger.error("Failed to reconcile position",
                                  position_id=getattr(position, "position_id", None),
                                  error=str(e))
                result.errors.append(f"{getattr(position, 'position_id', '?')}: {e}")
                continue

            record_outcome(result, outcome)

        self.logger.info("Reconciliation sweep complete",
                         processed=result.processed_positions,
                         transitioned=result.positions_transitioned,
                         expired=result.positions_expired,
                         errors=len(result.errors))
        return result


def record_outcome(result: SweepResult, outcome: ReconciliationOutcome) -> None:
    """Fold one outcome into sweep counters"""
    result.outcomes.append(outcome)
    if outcome.action is OutcomeAction.TRANSITION:
        result.positions_transitioned += 1
    elif outcome.action is OutcomeAction.EXPIRE:
        result.positions_expired += 1
    else:
        result.positions_untouched += 1
    if outcome.changed:
        key = f"{outcome.previous_status.value}->{outcome.new_status.value}"
        result.summary[key] = result.summary.get(key, 0) + 1
