"""
Tests for environment-based configuration.
"""

import pytest

from absgate.config import ConfigurationError, GateConfig, get_config, is_production, reset_config

LONG_SECRET = "x" * 40

ENV_VARS = [
    "ABS_SECRET_KEY",
    "ABS_KEY_ID",
    "ENVIRONMENT",
    "ABS_MONITOR_MODE",
    "ABS_REQUIRED_CHECKS",
    "ABS_APPROVAL_THRESHOLD",
    "ABS_DENY_THRESHOLD",
    "ABS_MIN_CONFIDENCE",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


class TestGateConfig:

    def test_defaults(self):
        config = GateConfig(secret_key=LONG_SECRET)
        assert config.environment == "development"
        assert config.monitor_mode is False
        assert config.decision_ttl_seconds == 300
        assert config.required_checks == ["TENANT_ACTIVE", "POLICY_ACTIVE"]
        assert config.approval_threshold == 50
        assert config.deny_threshold == 80
        assert config.min_confidence == 0.8

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("ABS_SECRET_KEY", LONG_SECRET)
        monkeypatch.setenv("ABS_MONITOR_MODE", "true")
        monkeypatch.setenv("ABS_REQUIRED_CHECKS", "TENANT_ACTIVE, BUDGET_OK,")
        monkeypatch.setenv("ABS_APPROVAL_THRESHOLD", "40")

        config = GateConfig()
        assert config.secret_key == LONG_SECRET
        assert config.monitor_mode is True
        assert config.required_checks == ["TENANT_ACTIVE", "BUDGET_OK"]
        assert config.approval_threshold == 40

    def test_missing_secret_generated_outside_production(self):
        config = GateConfig(environment="development")
        assert len(config.secret_key) == 64
        assert GateConfig(environment="development").secret_key != config.secret_key

    def test_missing_secret_fails_in_production(self):
        with pytest.raises(ConfigurationError):
            GateConfig(environment="production")

    def test_short_secret_fails_in_production(self):
        with pytest.raises(ConfigurationError):
            GateConfig(secret_key="short", environment="production")
        assert GateConfig(secret_key="short", environment="development").secret_key == "short"

    def test_inverted_thresholds_rejected(self):
        with pytest.raises(ConfigurationError):
            GateConfig(secret_key=LONG_SECRET, approval_threshold=90, deny_threshold=80)

    @pytest.mark.parametrize("field,value", [
        ("approval_threshold", -1),
        ("deny_threshold", 101),
        ("min_confidence", 1.5),
        ("decision_ttl_seconds", 0),
    ])
    def test_out_of_range_rejected(self, field, value):
        with pytest.raises(ConfigurationError):
            GateConfig(secret_key=LONG_SECRET, **{field: value})

    def test_warnings(self):
        config = GateConfig(secret_key=LONG_SECRET, environment="production", monitor_mode=True, required_checks=[])
        warnings = config.validate()
        assert len(warnings) == 2


class TestConfigSingleton:

    def test_get_config_is_cached(self, monkeypatch):
        monkeypatch.setenv("ABS_SECRET_KEY", LONG_SECRET)
        assert get_config() is get_config()

        reset_config()
        monkeypatch.setenv("ABS_KEY_ID", "rotated")
        assert get_config().key_id == "rotated"

    def test_is_production(self, monkeypatch):
        assert not is_production()
        monkeypatch.setenv("ENVIRONMENT", "production")
        assert is_production()
