"""
Structured Logging for ABS

Provides JSON-formatted logging for production use and the audit-trail
logger used by the gate's components.
"""

import logging
import sys
import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog

_RESERVED_ATTRS = frozenset((
    "name", "msg", "args", "levelname", "levelno", "pathname",
    "filename", "module", "lineno", "funcName", "created",
    "msecs", "relativeCreated", "thread", "threadName",
    "processName", "process", "exc_info", "exc_text", "stack_info",
    "message", "taskName",
))


class JSONFormatter(logging.Formatter):
    """JSON log formatter for standard logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, default=str)


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None,
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting (recommended for production)
        log_file: Optional file path for log output
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)

    if json_format:
        console_handler.setFormatter(JSONFormatter())
    else:
        console_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S"
            )
        )

    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if json_format else structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def configure_logging_from_config(config: Any, log_file: Optional[str] = None) -> None:
    """
    Configure logging from a GateConfig (``log_level`` and ``log_json``).

    Call once at process start, before building a gateway.
    """
    configure_logging(level=config.log_level, json_format=config.log_json, log_file=log_file)


def get_logger(name: str) -> Any:
    """Get a structlog logger bound to ``name``."""
    return structlog.get_logger(name)


class AuditLogger:
    """Audit-trail events for decisions, executions and security findings."""

    def __init__(self, name: str = "absgate.audit"):
        self.logger = get_logger(name)

    def log_decision(
        self,
        decision_id: str,
        agent_id: str,
        tenant_id: str,
        verdict: str,
        reason_code: str,
        risk_score: int,
        **kwargs
    ) -> None:
        """Log a governance decision."""
        self.logger.info(
            "decision_made",
            event_type="decision",
            decision_id=decision_id,
            agent_id=agent_id,
            tenant_id=tenant_id,
            verdict=verdict,
            reason_code=reason_code,
            risk_score=risk_score,
            **kwargs
        )

    def log_execution(
        self,
        decision_id: str,
        receipt_id: str,
        outcome: str,
        executor_id: str,
        details: Optional[str] = None,
        **kwargs
    ) -> None:
        """Log an execution attempt. Blocked attempts are logged at WARNING."""
        level = "info" if outcome == "EXECUTED" else "warning"
        getattr(self.logger, level)(
            "execution_attempted",
            event_type="execution",
            decision_id=decision_id,
            receipt_id=receipt_id,
            outcome=outcome,
            executor_id=executor_id,
            details=details,
            **kwargs
        )

    def log_sanitization(
        self,
        rule: str,
        event_type: str,
        requires_confirmation: bool,
        changes: Optional[List[str]] = None,
        **kwargs
    ) -> None:
        """Log an action rewrite."""
        self.logger.info(
            "action_sanitized",
            rule=rule,
            action_type=event_type,
            requires_confirmation=requires_confirmation,
            changes=changes or [],
            **kwargs
        )

    def log_session_event(
        self,
        event_type: str,
        agent_id: str,
        session_id: str,
        **kwargs
    ) -> None:
        """Log a session lifecycle event."""
        self.logger.info(
            "session_event",
            event_type=event_type,
            agent_id=agent_id,
            session_id=session_id,
            **kwargs
        )

    def log_security_event(
        self,
        event_type: str,
        severity: str = "warning",
        **kwargs
    ) -> None:
        """Log a security event (signature failures, injection flags)."""
        level = severity if severity in ("info", "warning", "error", "critical") else "warning"
        getattr(self.logger, level)(
            "security_event",
            event_type=event_type,
            severity=severity,
            **kwargs
        )
