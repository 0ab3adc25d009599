"""
Position lifecycle state machine.

A position moves through four phases:

- entry: an entry order is placed, fills (``entry_unconfirmed``), fails or
  is cancelled;
- holding: the user confirmed the filled entry (``confirmed``);
- exit: an exit order is placed, fills, fails or is cancelled;
- terminal: ``liquidated`` (no way out) or ``expired`` (may be re-ordered).

``ALLOWED_TRANSITIONS`` is the single source of truth for legal moves and is
shared by every component that changes a position's status. It is exposed
read-only and validated once at import time.
"""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import Any, FrozenSet, List, Mapping

from core.utils.exceptions import InvalidTransitionError, TransitionMatrixError


class PositionLifecycleStatus(str, Enum):
    # entry
    ENTRY_ORDER_PENDING = "entry_order_pending"
    ENTRY_ORDER_FAILED = "entry_order_failed"
    ENTRY_ORDER_CANCELLED = "entry_order_cancelled"
    ENTRY_UNCONFIRMED = "entry_unconfirmed"
    # holding
    CONFIRMED = "confirmed"
    # exit
    EXIT_ORDER_PENDING = "exit_order_pending"
    EXIT_ORDER_FAILED = "exit_order_failed"
    EXIT_ORDER_CANCELLED = "exit_order_cancelled"
    # terminal
    LIQUIDATED = "liquidated"
    EXPIRED = "expired"


class LifecyclePhase(str, Enum):
    ENTRY = "entry"
    HOLDING = "holding"
    EXIT = "exit"
    TERMINAL = "terminal"


class StatusTransitionEvent(str, Enum):
    """What caused a status change; recorded on every transition log."""
    ENTRY_ORDER_SUBMITTED = "entry_order_submitted"
    ENTRY_ORDER_EXECUTED = "entry_order_executed"
    ENTRY_ORDER_FAILED = "entry_order_failed"
    ENTRY_ORDER_CANCELLED = "entry_order_cancelled"
    USER_CONFIRMED = "user_confirmed"
    EXIT_ORDER_SUBMITTED = "exit_order_submitted"
    EXIT_ORDER_EXECUTED = "exit_order_executed"
    EXIT_ORDER_FAILED = "exit_order_failed"
    EXIT_ORDER_CANCELLED = "exit_order_cancelled"
    AUTO_EXPIRED = "auto_expired"
    DAILY_CLEANUP = "daily_cleanup"


class TransitionActor(str, Enum):
    SYSTEM = "system"
    USER = "user"
    SCHEDULER = "scheduler"


S = PositionLifecycleStatus

_PHASES = MappingProxyType({
    S.ENTRY_ORDER_PENDING: LifecyclePhase.ENTRY,
    S.ENTRY_ORDER_FAILED: LifecyclePhase.ENTRY,
    S.ENTRY_ORDER_CANCELLED: LifecyclePhase.ENTRY,
    S.ENTRY_UNCONFIRMED: LifecyclePhase.ENTRY,
    S.CONFIRMED: LifecyclePhase.HOLDING,
    S.EXIT_ORDER_PENDING: LifecyclePhase.EXIT,
    S.EXIT_ORDER_FAILED: LifecyclePhase.EXIT,
    S.EXIT_ORDER_CANCELLED: LifecyclePhase.EXIT,
    S.LIQUIDATED: LifecyclePhase.TERMINAL,
    S.EXPIRED: LifecyclePhase.TERMINAL,
})


def _freeze(table: Mapping[S, Any]) -> Mapping[S, FrozenSet[S]]:
    return MappingProxyType({status: frozenset(targets) for status, targets in table.items()})


ALLOWED_TRANSITIONS: Mapping[PositionLifecycleStatus, FrozenSet[PositionLifecycleStatus]] = _freeze({
    S.ENTRY_ORDER_PENDING: {S.ENTRY_UNCONFIRMED, S.ENTRY_ORDER_FAILED, S.ENTRY_ORDER_CANCELLED, S.EXPIRED},
    S.ENTRY_ORDER_FAILED: {S.ENTRY_ORDER_PENDING},  # re-order
    S.ENTRY_ORDER_CANCELLED: {S.ENTRY_ORDER_PENDING},  # re-order
    S.ENTRY_UNCONFIRMED: {S.CONFIRMED, S.EXPIRED},
    S.CONFIRMED: {S.EXIT_ORDER_PENDING},
    S.EXIT_ORDER_PENDING: {S.LIQUIDATED, S.EXIT_ORDER_FAILED, S.EXIT_ORDER_CANCELLED},
    S.EXIT_ORDER_FAILED: {S.EXIT_ORDER_PENDING, S.CONFIRMED},  # retry or keep holding
    S.EXIT_ORDER_CANCELLED: {S.EXIT_ORDER_PENDING, S.CONFIRMED},
    S.LIQUIDATED: set(),
    S.EXPIRED: {S.ENTRY_ORDER_PENDING},  # re-order
})


def _coerce_status(value: Any):
    if isinstance(value, PositionLifecycleStatus):
        return value
    try:
        return PositionLifecycleStatus(value)
    except ValueError:
        return None


def phase_of(status: PositionLifecycleStatus) -> LifecyclePhase:
    return _PHASES[PositionLifecycleStatus(status)]


def is_valid_transition(from_status: Any, to_status: Any,
                        transitions: Mapping[PositionLifecycleStatus, FrozenSet[PositionLifecycleStatus]] = ALLOWED_TRANSITIONS) -> bool:
    """
    Check whether ``to_status`` is directly reachable from ``from_status``.

    Never raises: unknown statuses on either side simply yield False.
    """
    source = _coerce_status(from_status)
    target = _coerce_status(to_status)
    if source is None or target is None:
        return False
    return target in transitions.get(source, frozenset())


def get_allowed_transitions(status: Any) -> FrozenSet[PositionLifecycleStatus]:
    source = _coerce_status(status)
    if source is None:
        return frozenset()
    return ALLOWED_TRANSITIONS[source]


def is_terminal(status: Any) -> bool:
    """True only for statuses with no outgoing transitions (``liquidated``)."""
    source = _coerce_status(status)
    return source is not None and not ALLOWED_TRANSITIONS[source]


def is_final(status: Any) -> bool:
    """True for statuses in the terminal phase, including re-orderable ``expired``."""
    source = _coerce_status(status)
    return source is not None and _PHASES[source] is LifecyclePhase.TERMINAL


def require_valid_transition(from_status: Any, to_status: Any) -> None:
    """Raise InvalidTransitionError unless the move is in the transition matrix."""
    if not is_valid_transition(from_status, to_status):
        raise InvalidTransitionError(
            f"Transition {getattr(from_status, 'value', from_status)} -> "
            f"{getattr(to_status, 'value', to_status)} is not allowed",
            from_status=from_status,
            to_status=to_status,
        )


def validate_transition_matrix(transitions: Mapping[Any, Any]) -> None:
    """
    Validate a transition matrix against the status set.

    The matrix must have an entry for every status, reference only known
    statuses, and leave ``liquidated`` as the only status without exits.

    Raises:
        TransitionMatrixError: listing every problem found
    """
    problems: List[str] = []

    for status in PositionLifecycleStatus:
        if status not in transitions:
            problems.append(f"missing entry for {status.value}")

    for source, targets in transitions.items():
        if _coerce_status(source) is None:
            problems.append(f"unknown source status {source!r}")
            continue
        for target in targets:
            if _coerce_status(target) is None:
                problems.append(f"unknown target status {target!r} from {source}")
        if not targets and _coerce_status(source) is not S.LIQUIDATED:
            problems.append(f"{_coerce_status(source).value} has no outgoing transitions")

    if transitions.get(S.LIQUIDATED):
        problems.append("liquidated must not have outgoing transitions")

    if problems:
        raise TransitionMatrixError(
            f"Invalid transition matrix: {'; '.join(problems)}", problems=problems
        )


validate_transition_matrix(ALLOWED_TRANSITIONS)
