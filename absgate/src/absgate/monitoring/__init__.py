"""
Structured logging and audit trail.
"""

from absgate.monitoring.logging import configure_logging, configure_logging_from_config, get_logger, AuditLogger

__all__ = ["configure_logging", "configure_logging_from_config", "get_logger", "AuditLogger"]
