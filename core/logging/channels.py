"""
Logging channel definitions for the position lifecycle core.
Each channel tags records so operators can route lifecycle audit trails
separately from aggregation statistics and error reports.
"""

from enum import Enum
from typing import Dict, Any


class LogChannel(str, Enum):
    """Logging channels for different components."""

    APPLICATION = "application"  # General application logs
    TRADING = "trading"          # Reconciliation sweeps and position handling
    AUDIT = "audit"              # Status transition audit trail
    PERFORMANCE = "performance"  # Performance aggregation
    DATABASE = "database"        # Record store operations
    ERROR = "error"              # Error logs


def get_channel_for_component(component: str) -> LogChannel:
    """Get the appropriate logging channel for a component."""
    component_mapping = {
        "position_sync": LogChannel.TRADING,
        "reconciliation": LogChannel.TRADING,
        "lifecycle": LogChannel.AUDIT,
        "audit": LogChannel.AUDIT,
        "performance": LogChannel.PERFORMANCE,
        "aggregator": LogChannel.PERFORMANCE,
        "record_store": LogChannel.DATABASE,
        "redis": LogChannel.DATABASE,
    }

    return component_mapping.get(component, LogChannel.APPLICATION)


def get_channel_statistics() -> Dict[str, Any]:
    """Get statistics about all logging channels."""
    return {
        "total_channels": len(LogChannel),
        "channels": [channel.value for channel in LogChannel],
    }
