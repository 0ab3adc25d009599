"""
Tests for settings loading and startup configuration validation
"""

import pytest
from pydantic import ValidationError

from core.config.settings import (
    Environment,
    LifecycleSettings,
    LoggingSettings,
    PerformanceSettings,
    Settings,
)
from core.config.validator import ConfigurationValidator, validate_startup_configuration


class TestSettings:

    def test_defaults(self):
        settings = Settings()
        assert settings.lifecycle.staleness_threshold_hours == 24
        assert settings.performance.collections == {}
        assert settings.performance.deduplicate_liquidations is False
        assert settings.performance.cas_max_attempts == 5
        assert settings.redis.namespace == "lifecycle"

    def test_every_setting_is_consumed(self):
        assert set(LoggingSettings.model_fields) == {
            "level", "json_format", "console_enabled", "multi_channel_enabled",
            "database_level", "redact_keys",
        }
        assert set(LifecycleSettings.model_fields) == {"staleness_threshold_hours"}
        assert set(Settings.model_fields) == {
            "app_name", "version", "environment", "redis", "logging", "lifecycle", "performance",
        }

    def test_nested_environment_variables(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "production")
        monkeypatch.setenv("LIFECYCLE__STALENESS_THRESHOLD_HOURS", "12")
        monkeypatch.setenv("PERFORMANCE__DEDUPLICATE_LIQUIDATIONS", "true")
        monkeypatch.setenv("REDIS__NAMESPACE", "prod")

        settings = Settings()

        assert settings.environment is Environment.PRODUCTION
        assert settings.lifecycle.staleness_threshold_hours == 12
        assert settings.performance.deduplicate_liquidations is True
        assert settings.redis.namespace == "prod"

    @pytest.mark.parametrize("hours", [0, -1])
    def test_threshold_must_be_positive(self, hours):
        with pytest.raises(ValidationError):
            LifecycleSettings(staleness_threshold_hours=hours)

    def test_collections_must_name_known_periods(self):
        PerformanceSettings(collections={"daily": "d", "overall": "o"})
        with pytest.raises(ValidationError):
            PerformanceSettings(collections={"hourly": "h"})

    def test_cas_attempts_must_be_positive(self):
        with pytest.raises(ValidationError):
            PerformanceSettings(cas_max_attempts=0)


class TestConfigurationValidator:

    @pytest.mark.asyncio
    async def test_default_configuration_is_valid(self, test_settings):
        validator = ConfigurationValidator(test_settings)

        assert await validator.validate_all()

        summary = validator.get_validation_summary()
        assert summary["is_valid"]
        assert summary["errors"] == 0
        components = {r.component for r in validator.validation_results}
        assert {"Transition Matrix", "Sync Rules"} <= components

    @pytest.mark.asyncio
    async def test_disabled_dedupe_is_a_warning(self, test_settings):
        validator = ConfigurationValidator(test_settings)
        await validator.validate_all()

        summary = validator.get_validation_summary()
        assert summary["warnings"] == 1
        assert summary["warning_details"][0]["component"] == "Performance"

    @pytest.mark.asyncio
    async def test_enabled_dedupe_has_no_warning(self):
        settings = Settings(performance=PerformanceSettings(deduplicate_liquidations=True))
        validator = ConfigurationValidator(settings)
        await validator.validate_all()
        assert validator.get_validation_summary()["warnings"] == 0

    @pytest.mark.asyncio
    async def test_bad_log_level(self):
        settings = Settings(logging=LoggingSettings(level="LOUD", console_enabled=False))
        validator = ConfigurationValidator(settings)

        assert not await validator.validate_all()
        details = validator.get_validation_summary()["error_details"]
        assert details == [{"component": "Logging", "message": "Invalid log level: LOUD"}]

    @pytest.mark.asyncio
    async def test_unknown_timezone(self):
        settings = Settings(performance=PerformanceSettings(timezone="Mars/Olympus_Mons"))
        assert not await validate_startup_configuration(settings)

    @pytest.mark.asyncio
    async def test_known_timezone(self):
        settings = Settings(performance=PerformanceSettings(timezone="Asia/Seoul"))
        assert await validate_startup_configuration(settings)

    @pytest.mark.asyncio
    async def test_shared_collection_names(self):
        settings = Settings(performance=PerformanceSettings(
            collections={"daily": "perf", "weekly": "perf"}))
        validator = ConfigurationValidator(settings)

        assert not await validator.validate_all()
        assert "collide" in validator.get_validation_summary()["error_details"][0]["message"]

    @pytest.mark.asyncio
    async def test_unreachable_redis(self, monkeypatch):
        class Unreachable:
            async def ping(self):
                raise ConnectionError("refused")

        import core.config.validator as validator_module
        monkeypatch.setattr(validator_module.redis, "from_url", lambda *a, **kw: Unreachable())

        validator = ConfigurationValidator(Settings())
        assert not await validator.validate_all(check_redis=True)
        details = validator.get_validation_summary()["error_details"]
        assert details[0]["component"] == "Redis"
        assert "refused" in details[0]["message"]
