# Structured logging with multi-channel support
import structlog
from typing import Optional, Dict, Any

from core.config.settings import Settings
from .channels import LogChannel
from .enhanced_logging import (
    configure_enhanced_logging,
    get_enhanced_logger,
    get_channel_logger,
    get_logging_statistics,
    get_trading_logger,
    get_audit_logger,
    get_performance_logger,
    get_database_logger,
    get_error_logger,
)


def configure_logging(settings: Settings) -> None:
    """Configure the logging system. Safe to call more than once."""
    configure_enhanced_logging(settings)


def get_logger(name: str, component: Optional[str] = None) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return get_enhanced_logger(name, component)


def get_statistics() -> Dict[str, Any]:
    """Get logging system statistics."""
    return get_logging_statistics()


def get_trading_logger_safe(name: str) -> structlog.BoundLogger:
    """Get a trading logger with safe fallback."""
    try:
        return get_trading_logger(name)
    except Exception:
        return get_enhanced_logger(name, "position_sync")


def get_audit_logger_safe(name: str) -> structlog.BoundLogger:
    """Get an audit logger with safe fallback."""
    try:
        return get_audit_logger(name)
    except Exception:
        return get_enhanced_logger(name, "audit")


def get_performance_logger_safe(name: str) -> structlog.BoundLogger:
    """Get a performance logger with safe fallback."""
    try:
        return get_performance_logger(name)
    except Exception:
        return get_enhanced_logger(name, "performance")


def get_database_logger_safe(name: str) -> structlog.BoundLogger:
    """Get a record store logger with safe fallback."""
    try:
        return get_database_logger(name)
    except Exception:
        return get_enhanced_logger(name, "record_store")


def get_error_logger_safe(name: str) -> structlog.BoundLogger:
    """Get an error logger with safe fallback."""
    try:
        return get_error_logger(name)
    except Exception:
        return get_enhanced_logger(name, "error")


__all__ = [
    "LogChannel",
    "configure_logging",
    "get_logger",
    "get_channel_logger",
    "get_statistics",
    "get_trading_logger_safe",
    "get_audit_logger_safe",
    "get_performance_logger_safe",
    "get_database_logger_safe",
    "get_error_logger_safe",
]
