"""
Centralized identifier generation for lifecycle documents.

Keeping the formats in one place lets readers (reports, archival jobs)
parse ids without duplicating the rules.
"""

from __future__ import annotations

from datetime import datetime


def generate_transition_log_id(position_id: str, at: datetime) -> str:
    """Transition log id: ``{positionId}_{epoch milliseconds}``."""
    return f"{position_id}_{int(at.timestamp() * 1000)}"


def performance_document_id(user_id: str, period_key: str) -> str:
    """One performance record per user per period bucket: ``{userId}_{periodKey}``."""
    return f"{user_id}_{period_key}"
