# Position sync rules: observed order status x current lifecycle status -> action
from typing import Dict, Iterable, List, Mapping, Tuple

from core.trading.lifecycle import (
    ALLOWED_TRANSITIONS,
    PositionLifecycleStatus as S,
    is_valid_transition,
)
from core.trading.models import OrderStatus, SyncAction, SyncRule
from core.utils.exceptions import SyncRuleConfigurationError

RuleKey = Tuple[OrderStatus, S]


DAILY_SYNC_RULES: Tuple[SyncRule, ...] = (
    SyncRule(
        order_status=OrderStatus.COMPLETED,
        current_status=S.ENTRY_ORDER_PENDING,
        target_status=S.ENTRY_UNCONFIRMED,
        action=SyncAction.TRANSITION,
        reason="Entry order filled, awaiting user confirmation",
    ),
    SyncRule(
        order_status=OrderStatus.FAILED,
        current_status=S.ENTRY_ORDER_PENDING,
        target_status=S.ENTRY_ORDER_FAILED,
        action=SyncAction.TRANSITION,
        reason="Entry order failed",
    ),
    SyncRule(
        order_status=OrderStatus.CANCELLED,
        current_status=S.ENTRY_ORDER_PENDING,
        target_status=S.ENTRY_ORDER_CANCELLED,
        action=SyncAction.TRANSITION,
        reason="Entry order cancelled",
    ),
    SyncRule(
        order_status=OrderStatus.PENDING,
        current_status=S.ENTRY_ORDER_PENDING,
        target_status=S.EXPIRED,
        action=SyncAction.EXPIRE,
        reason="Entry order still unfilled past the staleness threshold",
    ),
    SyncRule(
        order_status=OrderStatus.COMPLETED,
        current_status=S.ENTRY_UNCONFIRMED,
        target_status=S.EXPIRED,
        action=SyncAction.EXPIRE,
        reason="Filled entry left unconfirmed past the staleness threshold",
    ),
    SyncRule(
        order_status=OrderStatus.COMPLETED,
        current_status=S.EXIT_ORDER_PENDING,
        target_status=S.LIQUIDATED,
        action=SyncAction.TRANSITION,
        reason="Exit order filled, position liquidated",
    ),
    SyncRule(
        order_status=OrderStatus.FAILED,
        current_status=S.EXIT_ORDER_PENDING,
        target_status=S.EXIT_ORDER_FAILED,
        action=SyncAction.TRANSITION,
        reason="Exit order failed",
    ),
    SyncRule(
        order_status=OrderStatus.CANCELLED,
        current_status=S.EXIT_ORDER_PENDING,
        target_status=S.EXIT_ORDER_CANCELLED,
        action=SyncAction.TRANSITION,
        reason="Exit order cancelled",
    ),
)


def find_rule_problems(rules: Iterable[SyncRule],
                       transitions: Mapping = ALLOWED_TRANSITIONS) -> List[str]:
    """Return every consistency problem between a rule set and the transition matrix."""
    problems: List[str] = []
    seen: Dict[RuleKey, SyncRule] = {}

    for rule in rules:
        label = f"{rule.order_status.value}/{rule.current_status.value}"
        if rule.key in seen:
            problems.append(f"duplicate rule for {label}")
        seen[rule.key] = rule

        if rule.action in (SyncAction.TRANSITION, SyncAction.EXPIRE):
            if not is_valid_transition(rule.current_status, rule.target_status, transitions):
                problems.append(
                    f"{label}: {rule.current_status.value} -> {rule.target_status.value} "
                    f"is not in the transition matrix"
                )
        if rule.action is SyncAction.EXPIRE and rule.target_status is not S.EXPIRED:
            problems.append(f"{label}: expire rule must target expired, not {rule.target_status.value}")

    return problems


def validate_sync_rules(rules: Iterable[SyncRule],
                        transitions: Mapping = ALLOWED_TRANSITIONS) -> Dict[RuleKey, SyncRule]:
    """
    Validate a rule set and index it by (order status, current status).

    Raises:
        SyncRuleConfigurationError: on duplicate keys or rules the matrix forbids
    """
    rules = tuple(rules)
    problems = find_rule_problems(rules, transitions)
    if problems:
        raise SyncRuleConfigurationError(
            f"Invalid sync rules: {'; '.join(problems)}", problems=problems
        )
    return {rule.key: rule for rule in rules}
