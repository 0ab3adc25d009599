"""
Configuration validation at application startup.

Checks the static lifecycle configuration (transition matrix, sync rules)
and the runtime settings before any sweep or aggregation runs, so that
configuration defects are rejected up front instead of mid-sweep.
"""

import logging
from typing import List, Dict, Any
from dataclasses import dataclass
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import redis.asyncio as redis

from .settings import Settings

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Result of a configuration validation check"""
    is_valid: bool
    component: str
    message: str
    severity: str = "error"  # "error", "warning", "info"


class ConfigurationValidator:
    """
    Startup configuration validator.

    Validates the lifecycle tables and settings values, optionally
    testing Redis connectivity when the Redis record store is in use.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.validation_results: List[ValidationResult] = []

    async def validate_all(self, check_redis: bool = False) -> bool:
        """
        Run all validation checks.

        Returns:
            bool: True if all critical validations pass
        """
        logger.info("Starting configuration validation")

        self._validate_transition_matrix()
        self._validate_sync_rules()
        self._validate_logging_settings()
        self._validate_performance_settings()
        if check_redis:
            await self._validate_redis_connection()

        errors = [r for r in self.validation_results if r.severity == "error"]
        warnings = [r for r in self.validation_results if r.severity == "warning"]

        if errors:
            logger.error(f"Configuration validation failed: {len(errors)} errors, {len(warnings)} warnings")
            for result in errors:
                logger.error(f"   ERROR [{result.component}]: {result.message}")

        for result in warnings:
            logger.warning(f"   WARNING [{result.component}]: {result.message}")

        if not errors:
            logger.info(f"Configuration validation passed with {len(warnings)} warnings")

        return len(errors) == 0

    def _validate_transition_matrix(self):
        from core.trading.lifecycle import ALLOWED_TRANSITIONS, validate_transition_matrix
        from core.utils.exceptions import TransitionMatrixError

        try:
            validate_transition_matrix(ALLOWED_TRANSITIONS)
        except TransitionMatrixError as e:
            for problem in e.problems:
                self.validation_results.append(ValidationResult(
                    is_valid=False, component="Transition Matrix", message=problem))
            return

        self.validation_results.append(ValidationResult(
            is_valid=True, component="Transition Matrix",
            message=f"{len(ALLOWED_TRANSITIONS)} statuses, matrix is total", severity="info"))

    def _validate_sync_rules(self):
        from services.position_sync.rules import DAILY_SYNC_RULES, find_rule_problems

        problems = find_rule_problems(DAILY_SYNC_RULES)
        for problem in problems:
            self.validation_results.append(ValidationResult(
                is_valid=False, component="Sync Rules", message=problem))
        if not problems:
            self.validation_results.append(ValidationResult(
                is_valid=True, component="Sync Rules",
                message=f"{len(DAILY_SYNC_RULES)} rules consistent with transition matrix",
                severity="info"))

    def _validate_logging_settings(self):
        """Validate logging configuration"""
        valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

        if self.settings.logging.level.upper() not in valid_log_levels:
            self.validation_results.append(ValidationResult(
                is_valid=False,
                component="Logging",
                message=f"Invalid log level: {self.settings.logging.level}",
                severity="error"
            ))

    def _validate_performance_settings(self):
        """Validate aggregation configuration"""
        perf = self.settings.performance
        if perf.timezone:
            try:
                ZoneInfo(perf.timezone)
            except (ZoneInfoNotFoundError, ValueError):
                self.validation_results.append(ValidationResult(
                    is_valid=False,
                    component="Performance",
                    message=f"Unknown timezone: {perf.timezone}",
                    severity="error"
                ))

        names = list(perf.collections.values())
        if len(names) != len(set(names)):
            self.validation_results.append(ValidationResult(
                is_valid=False,
                component="Performance",
                message="Two periods share one collection; their records would collide",
                severity="error"
            ))

        if not perf.deduplicate_liquidations:
            self.validation_results.append(ValidationResult(
                is_valid=True,
                component="Performance",
                message="Liquidation de-duplication disabled; replayed events are double counted",
                severity="warning"
            ))

    async def _validate_redis_connection(self):
        """Validate Redis connection"""
        try:
            redis_client = redis.from_url(self.settings.redis.url, socket_connect_timeout=5.0)
            await redis_client.ping()
            await redis_client.aclose()

            self.validation_results.append(ValidationResult(
                is_valid=True,
                component="Redis",
                message="Redis connection successful",
                severity="info"
            ))

        except Exception as e:
            self.validation_results.append(ValidationResult(
                is_valid=False,
                component="Redis",
                message=f"Cannot connect to Redis: {e}",
                severity="error"
            ))

    def get_validation_summary(self) -> Dict[str, Any]:
        """Get a summary of validation results"""
        errors = [r for r in self.validation_results if r.severity == "error"]
        warnings = [r for r in self.validation_results if r.severity == "warning"]

        return {
            "total_checks": len(self.validation_results),
            "errors": len(errors),
            "warnings": len(warnings),
            "is_valid": len(errors) == 0,
            "error_details": [{"component": r.component, "message": r.message} for r in errors],
            "warning_details": [{"component": r.component, "message": r.message} for r in warnings]
        }


async def validate_startup_configuration(settings: Settings, check_redis: bool = False) -> bool:
    """
    Convenience function to run startup configuration validation.

    Args:
        settings: Application settings to validate
        check_redis: also ping the configured Redis

    Returns:
        bool: True if validation passes (no critical errors)
    """
    validator = ConfigurationValidator(settings)
    return await validator.validate_all(check_redis=check_redis)
