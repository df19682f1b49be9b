"""Structured logging setup with JSON-lines output and API key redaction."""

from __future__ import annotations

import contextvars
import json
import logging
import math
import re
import sys
import threading
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Final, TextIO

if TYPE_CHECKING:
    from pulse_agent.params import Params

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]
LogRedactor = Callable[[JSONValue], JSONValue]

_REDACTED_VALUE: Final[str] = "***REDACTED***"
LOGGER_NAME: Final[str] = "pulse_agent"

_SENSITIVE_KEY_TERMS: Final[tuple[str, ...]] = (
    "api_key",
    "apikey",
    "authorization",
    "password",
    "secret",
    "token",
)

_SENSITIVE_ASSIGNMENT_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"(?i)\b(api[_-]?key|key|token|password|secret|authorization)\b\s*([:=])\s*([^\s,;]+)"
)
_BASIC_AUTH_PATTERN: Final[re.Pattern[str]] = re.compile(r"(?i)\bbasic\s+[A-Za-z0-9+/]+=*")
_API_KEY_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"(?i)\b(?:waka_)?[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}\b"
)

_STANDARD_LOG_RECORD_FIELDS: Final[frozenset[str]] = frozenset(
    {
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "message",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "thread",
        "threadName",
        "taskName",
    }
)

_CorrelationState = tuple[tuple[str, str], ...]
_CORRELATION_CONTEXT: contextvars.ContextVar[_CorrelationState] = contextvars.ContextVar(
    "pulse_observability_correlation", default=()
)

_ACTIVE_HANDLE_LOCK = threading.Lock()
_ACTIVE_HANDLE: LoggingHandle | None = None


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Where and how verbosely the agent logs."""

    log_file: Path | str | None = None
    log_to_stdout: bool = False
    verbose: bool = False
    logger_name: str = LOGGER_NAME
    redactor: LogRedactor | None = None


class JsonLineFormatter(logging.Formatter):
    """Formatter that emits one canonical JSON object per log line."""

    def __init__(self, *, redactor: LogRedactor | None = None) -> None:
        super().__init__()
        self._redactor = redactor or default_log_redactor

    def format(self, record: logging.LogRecord) -> str:
        event: dict[str, JSONValue] = {
            "timestamp": _iso8601z_from_epoch(record.created),
            "level": record.levelname,
            "logger": record.name,
            "message": _coerce_log_message(self._redactor(record.getMessage())),
        }

        for key, value in sorted(get_correlation_context().items()):
            event[key] = self._redactor(value)

        extras = _extract_extra_fields(record)
        if extras:
            event["fields"] = self._redactor(extras)

        if record.exc_info is not None:
            event["exception"] = _coerce_log_message(
                self._redactor(self.formatException(record.exc_info))
            )
        if record.stack_info:
            event["stack"] = _coerce_log_message(self._redactor(str(record.stack_info)))

        return json.dumps(event, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class LoggingHandle:
    """Runtime handle for an active logging setup."""

    def __init__(
        self,
        *,
        logger: logging.Logger,
        handler: logging.Handler,
        formatter: logging.Formatter,
        log_path: Path | None,
    ) -> None:
        self.logger = logger
        self.handler = handler
        self.formatter = formatter
        self.log_path = log_path
        self._is_shutdown = False

    @property
    def is_shutdown(self) -> bool:
        return self._is_shutdown

    def shutdown(self) -> None:
        if self._is_shutdown:
            return
        self.handler.flush()
        self.logger.removeHandler(self.handler)
        self.handler.close()
        self._is_shutdown = True


def setup_logging(config: LoggingConfig, *, stream: TextIO | None = None) -> LoggingHandle:
    """Install the file (or stdout) sink on the agent logger, replacing any previous one."""

    shutdown_logging()

    level = logging.DEBUG if config.verbose else logging.INFO
    formatter = JsonLineFormatter(redactor=config.redactor)

    log_path: Path | None = None
    handler: logging.Handler
    if config.log_to_stdout or config.log_file is None:
        handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
    else:
        log_path = Path(config.log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(formatter)

    logger = logging.getLogger(config.logger_name)
    logger.setLevel(level)
    logger.propagate = False
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()
    logger.addHandler(handler)

    handle = LoggingHandle(logger=logger, handler=handler, formatter=formatter, log_path=log_path)
    with _ACTIVE_HANDLE_LOCK:
        global _ACTIVE_HANDLE
        _ACTIVE_HANDLE = handle
    return handle


def shutdown_logging(handle: LoggingHandle | None = None) -> None:
    resolved = handle if handle is not None else get_active_logging_handle()
    if resolved is None:
        return
    resolved.shutdown()
    with _ACTIVE_HANDLE_LOCK:
        global _ACTIVE_HANDLE
        if _ACTIVE_HANDLE is resolved:
            _ACTIVE_HANDLE = None


def get_active_logging_handle() -> LoggingHandle | None:
    with _ACTIVE_HANDLE_LOCK:
        return _ACTIVE_HANDLE


def get_correlation_context() -> dict[str, str]:
    """Return the current correlation context as a plain dictionary."""
    return dict(_CORRELATION_CONTEXT.get())


@contextmanager
def correlation_scope(**fields: object) -> Iterator[None]:
    """Bind fields to every record emitted in scope; ``None`` values are skipped."""

    state = get_correlation_context()
    for key, value in fields.items():
        if value is None:
            continue
        text = str(value).lower() if isinstance(value, bool) else str(value)
        if text.strip():
            state[key] = text.strip()
    token = _CORRELATION_CONTEXT.set(tuple(state.items()))
    try:
        yield
    finally:
        _CORRELATION_CONTEXT.reset(token)


def heartbeat_log_fields(params: Params) -> dict[str, object]:
    """Per-command correlation fields: plugin, file, time, lineno, is_write."""

    fields: dict[str, object] = {"plugin": params.api.plugin}
    if params.heartbeat is not None:
        fields.update(
            file=params.heartbeat.entity,
            time=params.heartbeat.time,
            lineno=params.heartbeat.line_number,
            is_write=params.heartbeat.is_write,
        )
    return fields


def default_log_redactor(value: JSONValue) -> JSONValue:
    """Deep redaction of API keys and credential-like fields."""
    return _redact_value(value, key_context=None)


def _iso8601z_from_epoch(epoch_seconds: float) -> str:
    timestamp = datetime.fromtimestamp(epoch_seconds, tz=UTC)
    return timestamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _coerce_log_message(value: JSONValue) -> str:
    if isinstance(value, str):
        return value
    if value is None:
        return ""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _extract_extra_fields(record: logging.LogRecord) -> dict[str, JSONValue]:
    fields: dict[str, JSONValue] = {}
    for key, value in record.__dict__.items():
        if key in _STANDARD_LOG_RECORD_FIELDS or key.startswith("_"):
            continue
        fields[key] = _normalize_json_value(value)
    return fields


def _normalize_json_value(value: object) -> JSONValue:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else _REDACTED_VALUE
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, Mapping):
        return {str(key): _normalize_json_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize_json_value(item) for item in value]
    return repr(value)


def _redact_value(value: JSONValue, *, key_context: str | None) -> JSONValue:
    if key_context is not None and any(
        term in key_context.lower() for term in _SENSITIVE_KEY_TERMS
    ):
        return _REDACTED_VALUE
    if isinstance(value, str):
        return _redact_string(value)
    if isinstance(value, list):
        return [_redact_value(item, key_context=None) for item in value]
    if isinstance(value, dict):
        return {key: _redact_value(item, key_context=key) for key, item in value.items()}
    return value


def _redact_string(text: str) -> str:
    redacted = _SENSITIVE_ASSIGNMENT_PATTERN.sub(
        lambda match: f"{match.group(1)}{match.group(2)}{_REDACTED_VALUE}", text
    )
    redacted = _BASIC_AUTH_PATTERN.sub(f"Basic {_REDACTED_VALUE}", redacted)
    return _API_KEY_PATTERN.sub(_REDACTED_VALUE, redacted)


__all__ = [
    "JSONValue",
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
