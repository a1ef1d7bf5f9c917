"""
ABS Configuration

Environment-based configuration for the governance gate.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

from absgate.core.crypto import generate_secret
from absgate.monitoring.logging import get_logger

logger = get_logger(__name__)


class ConfigurationError(Exception):
    """Raised when configuration is invalid."""
    pass


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_list(name: str, default: str) -> List[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


@dataclass
class GateConfig:
    """Configuration for the governance gate."""

    # Signing
    secret_key: str = field(default_factory=lambda: os.getenv("ABS_SECRET_KEY", ""))
    key_id: str = field(default_factory=lambda: os.getenv("ABS_KEY_ID", "default"))

    environment: str = field(default_factory=lambda: os.getenv("ENVIRONMENT", "development"))

    # Decisions
    monitor_mode: bool = field(default_factory=lambda: _env_bool("ABS_MONITOR_MODE", "false"))
    decision_ttl_seconds: int = field(default_factory=lambda: int(os.getenv("ABS_DECISION_TTL_SECONDS", "300")))
    max_clock_skew_ms: int = field(default_factory=lambda: int(os.getenv("ABS_MAX_CLOCK_SKEW_MS", "30000")))
    required_checks: List[str] = field(
        default_factory=lambda: _env_list("ABS_REQUIRED_CHECKS", "TENANT_ACTIVE,POLICY_ACTIVE")
    )
    policy_name: str = field(default_factory=lambda: os.getenv("ABS_POLICY_NAME", "abs-risk-policy"))
    policy_version: str = field(default_factory=lambda: os.getenv("ABS_POLICY_VERSION", "1.0.0"))

    # Agent state
    session_timeout_minutes: int = field(
        default_factory=lambda: int(os.getenv("ABS_SESSION_TIMEOUT_MINUTES", "30"))
    )
    sequence_history_ttl_ms: int = field(default_factory=lambda: int(os.getenv("ABS_SEQUENCE_TTL_MS", "300000")))
    sequence_max_history: int = field(default_factory=lambda: int(os.getenv("ABS_SEQUENCE_MAX_HISTORY", "20")))

    # Risk policy
    approval_threshold: int = field(default_factory=lambda: int(os.getenv("ABS_APPROVAL_THRESHOLD", "50")))
    deny_threshold: int = field(default_factory=lambda: int(os.getenv("ABS_DENY_THRESHOLD", "80")))
    min_confidence: float = field(default_factory=lambda: float(os.getenv("ABS_MIN_CONFIDENCE", "0.8")))

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    log_json: bool = field(default_factory=lambda: _env_bool("LOG_JSON", "true"))

    def __post_init__(self):
        production = self.environment == "production"

        if not self.secret_key:
            if production:
                raise ConfigurationError(
                    "ABS_SECRET_KEY environment variable is required in production.\n"
                    "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
                )
            # Auto-generate for development (warn user)
            self.secret_key = generate_secret()
            logger.warning(
                "ABS_SECRET_KEY not set - using auto-generated secret. "
                "Signatures will not verify across restarts."
            )
        elif len(self.secret_key) < 32:
            if production:
                raise ConfigurationError("ABS_SECRET_KEY must be at least 32 characters for security.")
            logger.warning("ABS_SECRET_KEY is too short (< 32 chars). Use a longer secret in production.")

        self.validate()

    def validate(self) -> List[str]:
        """Validate configuration and return list of warnings."""
        for name in ("approval_threshold", "deny_threshold"):
            value = getattr(self, name)
            if not 0 <= value <= 100:
                raise ConfigurationError(f"{name} must be within [0, 100], got {value}")
        if self.approval_threshold > self.deny_threshold:
            raise ConfigurationError(
                f"approval_threshold ({self.approval_threshold}) must not exceed "
                f"deny_threshold ({self.deny_threshold})"
            )
        if not 0.0 <= self.min_confidence <= 1.0:
            raise ConfigurationError(f"min_confidence must be within [0, 1], got {self.min_confidence}")
        if self.decision_ttl_seconds <= 0:
            raise ConfigurationError("decision_ttl_seconds must be positive")

        warnings = []
        if self.monitor_mode and self.environment == "production":
            warnings.append("Monitor mode is enabled in production. No decision will be executable.")
        if not self.required_checks:
            warnings.append("No required checks configured. Receipts will carry no gates.")
        return warnings


_config_instance: Optional[GateConfig] = None


def get_config() -> GateConfig:
    """Get the current configuration (cached singleton)."""
    global _config_instance
    if _config_instance is None:
        _config_instance = GateConfig()
    return _config_instance


def reset_config() -> None:
    """Drop the cached configuration (tests)."""
    global _config_instance
    _config_instance = None


def is_production() -> bool:
    return os.getenv("ENVIRONMENT", "development") == "production"
