"""
Position Sync Service

Reconciles locally stored position statuses with observed order statuses.
"""

from .rules import DAILY_SYNC_RULES, validate_sync_rules
from .engine import ReconciliationEngine
from .service import PositionSyncService
