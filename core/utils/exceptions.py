# Structured exception hierarchy for the position lifecycle core

from typing import Dict, Any, Optional
from datetime import datetime, timezone


class LifecycleException(Exception):
    """Base exception for all position lifecycle errors"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None,
                 correlation_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.correlation_id = correlation_id
        self.timestamp = datetime.now(timezone.utc)


class TransientError(LifecycleException):
    """Base class for transient errors that may succeed on retry"""

    def __init__(self, message: str, retry_count: int = 0, max_retries: int = 5,
                 details: Optional[Dict[str, Any]] = None, correlation_id: Optional[str] = None):
        super().__init__(message, details, correlation_id)
        self.retry_count = retry_count
        self.max_retries = max_retries
        self.retryable = retry_count < max_retries


class PermanentError(LifecycleException):
    """Base class for permanent errors that must not be retried"""
    pass


# Record store errors
class StoreError(TransientError):
    """Record store transport or operation failures"""

    def __init__(self, message: str, operation: str, collection: Optional[str] = None,
                 document_id: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.operation = operation
        self.collection = collection
        self.document_id = document_id


class ConcurrentUpdateError(StoreError):
    """Compare-and-swap kept losing to concurrent writers"""

    def __init__(self, message: str, collection: str, document_id: str, attempts: int,
                 operation: str = "update_atomic", **kwargs):
        super().__init__(message, operation=operation, collection=collection,
                         document_id=document_id, **kwargs)
        self.attempts = attempts


class RecordExistsError(PermanentError):
    """create() called for a document that already exists"""

    def __init__(self, message: str, collection: str, document_id: str, **kwargs):
        super().__init__(message, **kwargs)
        self.collection = collection
        self.document_id = document_id


class RecordNotFoundError(PermanentError):
    """update() called for a document that does not exist"""

    def __init__(self, message: str, collection: str, document_id: str, **kwargs):
        super().__init__(message, **kwargs)
        self.collection = collection
        self.document_id = document_id


# Lifecycle errors
class InvalidTransitionError(PermanentError):
    """Status change rejected by the transition matrix"""

    def __init__(self, message: str, from_status: Any, to_status: Any, **kwargs):
        super().__init__(message, **kwargs)
        self.from_status = from_status
        self.to_status = to_status


# Configuration Errors
class ConfigurationError(PermanentError):
    """Configuration validation errors"""

    def __init__(self, message: str, config_field: str, config_value: Any = None,
                 **kwargs):
        super().__init__(message, **kwargs)
        self.config_field = config_field
        self.config_value = config_value


class TransitionMatrixError(ConfigurationError):
    """Transition matrix is not total or references unknown statuses"""

    def __init__(self, message: str, problems: list, **kwargs):
        super().__init__(message, config_field="transitions", config_value=problems, **kwargs)
        self.problems = problems


class SyncRuleConfigurationError(ConfigurationError):
    """Sync rule set has duplicate keys or disagrees with the transition matrix"""

    def __init__(self, message: str, problems: list, **kwargs):
        super().__init__(message, config_field="sync_rules", config_value=problems, **kwargs)
        self.problems = problems


# Validation Errors
class LiquidationDataError(PermanentError):
    """Liquidation event carries data the aggregator cannot interpret"""

    def __init__(self, message: str, field: str, value: Any, **kwargs):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value


def is_retryable_error(error: Exception) -> bool:
    """
    Determine if an error should be retried

    Returns:
        True if error is transient and retryable, False otherwise
    """
    if isinstance(error, TransientError):
        return error.retryable
    return False


def create_error_context(error: Exception, operation: str,
                         additional_context: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Create structured error context for logging

    Args:
        error: The exception that occurred
        operation: The operation that failed
        additional_context: Additional context information

    Returns:
        Structured error context dictionary
    """
    context = {
        "error_type": type(error).__name__,
        "error_message": str(error),
        "operation": operation,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "retryable": is_retryable_error(error)
    }

    if isinstance(error, LifecycleException):
        if error.correlation_id:
            context["correlation_id"] = error.correlation_id
        if error.details:
            context["error_details"] = error.details

        if isinstance(error, TransientError):
            context["retry_count"] = error.retry_count
            context["max_retries"] = error.max_retries

        if isinstance(error, StoreError):
            context["store_operation"] = error.operation
            context["collection"] = error.collection
            context["document_id"] = error.document_id

        if isinstance(error, InvalidTransitionError):
            context["from_status"] = str(error.from_status)
            context["to_status"] = str(error.to_status)

    if additional_context:
        context.update(additional_context)

    return context
