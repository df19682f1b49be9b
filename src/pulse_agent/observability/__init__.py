"""Public observability primitives: structured logging and correlation fields."""

from pulse_agent.observability.logging import (
    LOGGER_NAME,
    JsonLineFormatter,
    LoggingConfig,
    LoggingHandle,
    LogRedactor,
    correlation_scope,
    default_log_redactor,
    get_active_logging_handle,
    get_correlation_context,
    heartbeat_log_fields,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    "JsonLineFormatter",
    "LOGGER_NAME",
    "LogRedactor",
    "LoggingConfig",
    "LoggingHandle",
    "correlation_scope",
    "default_log_redactor",
    "get_active_logging_handle",
    "get_correlation_context",
    "heartbeat_log_fields",
    "setup_logging",
    "shutdown_logging",
]
