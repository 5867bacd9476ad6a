"""
line-build-core — structured logging

File: src/line_build_core/observability/logging.py

Purpose
- Turn ``structlog`` events from every component into one JSON object per line.

What should be included in this file
- A processor chain that lifts correlation keys (``build_id``, ``rule_id``,
  ``work_unit_id``) to the top level and nests every other keyword under ``fields``.
- Deep redaction of secret-looking keys and inline credentials.
- A bounded queue between callers and the file/stderr sinks; records are dropped
  (and counted) rather than blocking a validation run.

Functional requirements
- Correlation context is bound with ``structlog.contextvars`` so it follows
  asyncio tasks spawned inside a scope.
- ``shutdown()`` drains the queue and is safe to call more than once.
"""

from __future__ import annotations

import logging
import logging.handlers
import math
import queue
import re
import sys
import threading
import time
from collections.abc import Callable, Iterator, Mapping, MutableMapping
from contextlib import contextmanager
from contextvars import Token
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Final

import structlog

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]
LogRedactor = Callable[[JSONValue], JSONValue]

REDACTED: Final[str] = "***REDACTED***"

CORRELATION_KEYS: Final[frozenset[str]] = frozenset(
    {"correlation_id", "build_id", "rule_id", "work_unit_id"}
)
_ENVELOPE_KEYS: Final[frozenset[str]] = frozenset(
    {"timestamp", "level", "logger", "message", "exception"}
)

_SENSITIVE_KEY_TERMS: Final[tuple[str, ...]] = (
    "secret",
    "token",
    "password",
    "api_key",
    "apikey",
    "authorization",
    "credential",
)
_INLINE_SECRET_PATTERNS: Final[tuple[tuple[re.Pattern[str], str], ...]] = (
    (
        re.compile(r"(?i)\b(api[_-]?key|token|password|secret|authorization)\b(\s*[:=]\s*)[^\s,;]+"),
        rf"\1\2{REDACTED}",
    ),
    (re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/-]+=*"), f"Bearer {REDACTED}"),
    (re.compile(r"\bsk-ant-[A-Za-z0-9_-]{12,}\b"), REDACTED),
    (re.compile(r"\bsk-[A-Za-z0-9]{12,}\b"), REDACTED),
)


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Where JSON lines go and how they are filtered."""

    logger_name: str = "line_build_core"
    level: int | str = "INFO"
    log_file: Path | str | None = None
    log_to_stderr: bool = True
    queue_size: int = 4096
    redact_secrets: bool = True
    redactor: LogRedactor | None = None


class _DroppingQueueHandler(logging.handlers.QueueHandler):
    def __init__(self, log_queue: queue.Queue[Any]) -> None:
        super().__init__(log_queue)
        self.dropped = 0

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            self.dropped += 1


@dataclass(slots=True)
class StructuredLoggingHandle:
    """Owns the queue listener and sinks installed by :func:`setup_structured_logging`."""

    logger: logging.Logger
    _queue: queue.Queue[Any]
    _queue_handler: _DroppingQueueHandler
    _listener: logging.handlers.QueueListener
    _sinks: tuple[logging.Handler, ...]
    _lock: threading.Lock = field(default_factory=threading.Lock)
    _closed: bool = False

    @property
    def dropped_records(self) -> int:
        return self._queue_handler.dropped

    @property
    def is_shutdown(self) -> bool:
        return self._closed

    def flush(self, *, timeout_seconds: float = 2.0) -> None:
        deadline = time.monotonic() + max(timeout_seconds, 0.0)
        while self._queue.unfinished_tasks and time.monotonic() < deadline:
            time.sleep(0.01)
        for sink in self._sinks:
            sink.flush()

    def shutdown(self, *, timeout_seconds: float = 2.0) -> None:
        with self._lock:
            if self._closed:
                return
            self.flush(timeout_seconds=timeout_seconds)
            self._listener.stop()
            self.logger.removeHandler(self._queue_handler)
            self._queue_handler.close()
            for sink in self._sinks:
                sink.close()
            self._closed = True


def configure_structlog(redactor: LogRedactor | None = None) -> None:
    """Install the JSON-lines processor chain for all ``structlog`` loggers."""

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
            structlog.processors.format_exc_info,
            structlog.processors.EventRenamer("message"),
            _nest_fields,
            _RedactProcessor(redactor if redactor is not None else default_log_redactor),
            structlog.processors.JSONRenderer(
                sort_keys=True, separators=(",", ":"), ensure_ascii=False
            ),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def setup_structured_logging(config: LoggingConfig) -> StructuredLoggingHandle:
    """Route the ``config.logger_name`` tree into queue-backed JSON-lines sinks."""

    name = config.logger_name.strip() if isinstance(config.logger_name, str) else ""
    if not name:
        raise ValueError("logger_name must not be empty")
    level = _parse_level(config.level)
    if isinstance(config.queue_size, bool) or not isinstance(config.queue_size, int):
        raise ValueError("queue_size must be an integer")
    if config.queue_size <= 0:
        raise ValueError("queue_size must be > 0")

    sinks: list[logging.Handler] = []
    if config.log_file is not None:
        path = Path(config.log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        sinks.append(logging.FileHandler(path, encoding="utf-8"))
    if config.log_to_stderr:
        sinks.append(logging.StreamHandler(sys.stderr))
    if not sinks:
        sinks.append(logging.NullHandler())
    for sink in sinks:
        sink.setFormatter(logging.Formatter("%(message)s"))

    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False
    for stale in list(logger.handlers):
        logger.removeHandler(stale)
        stale.close()

    log_queue: queue.Queue[Any] = queue.Queue(maxsize=config.queue_size)
    queue_handler = _DroppingQueueHandler(log_queue)
    listener = logging.handlers.QueueListener(log_queue, *sinks)
    listener.start()
    logger.addHandler(queue_handler)

    if config.redactor is not None:
        redactor = config.redactor
    elif config.redact_secrets:
        redactor = default_log_redactor
    else:
        redactor = _keep
    configure_structlog(redactor)

    return StructuredLoggingHandle(
        logger=logger,
        _queue=log_queue,
        _queue_handler=queue_handler,
        _listener=listener,
        _sinks=tuple(sinks),
    )


def get_correlation_context() -> dict[str, Any]:
    return dict(structlog.contextvars.get_contextvars())


def bind_correlation(**fields: str) -> Mapping[str, Token[Any]]:
    """Bind non-empty correlation values; pass the result to :func:`reset_correlation`."""

    for key, value in fields.items():
        if not isinstance(value, str) or not value.strip():
            raise ValueError(f"correlation value for {key!r} must be a non-empty string")
    return structlog.contextvars.bind_contextvars(
        **{key: value.strip() for key, value in fields.items()}
    )


def reset_correlation(tokens: Mapping[str, Token[Any]]) -> None:
    structlog.contextvars.reset_contextvars(**tokens)


@contextmanager
def correlation_scope(**fields: str) -> Iterator[None]:
    """Bind correlation fields, e.g. ``build_id``, for every event logged in scope."""

    tokens = bind_correlation(**fields)
    try:
        yield
    finally:
        reset_correlation(tokens)


def default_log_redactor(value: JSONValue) -> JSONValue:
    """Mask values under secret-looking keys and scrub credentials from strings."""
    return _redact(value, key=None)


def _parse_level(value: int | str) -> int:
    if isinstance(value, bool):
        raise ValueError("level must be int or str, got bool")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        resolved = logging.getLevelName(value.strip().upper())
        if isinstance(resolved, int):
            return resolved
    raise ValueError(f"unsupported logging level {value!r}")


def _nest_fields(
    logger: object, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    del logger, method_name
    top_level = _ENVELOPE_KEYS | CORRELATION_KEYS | set(structlog.contextvars.get_contextvars())
    nested = {key: event_dict.pop(key) for key in list(event_dict) if key not in top_level}
    if nested:
        event_dict["fields"] = _to_json(nested)
    return event_dict


class _RedactProcessor:
    def __init__(self, redactor: LogRedactor) -> None:
        self._redactor = redactor

    def __call__(
        self, logger: object, method_name: str, event_dict: MutableMapping[str, Any]
    ) -> MutableMapping[str, Any]:
        for key in ("message", "exception", "fields"):
            if key in event_dict:
                event_dict[key] = self._redactor(_to_json(event_dict[key]))
        return event_dict


def _to_json(value: object) -> JSONValue:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else repr(value)
    if isinstance(value, datetime):
        aware = value if value.tzinfo is not None else value.replace(tzinfo=UTC)
        return aware.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, Mapping):
        return {str(key): _to_json(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_to_json(item) for item in value]
    return str(value)


def _keep(value: JSONValue) -> JSONValue:
    return value


def _redact(value: JSONValue, *, key: str | None) -> JSONValue:
    if key is not None and any(term in key.lower() for term in _SENSITIVE_KEY_TERMS):
        return REDACTED
    if isinstance(value, str):
        for pattern, replacement in _INLINE_SECRET_PATTERNS:
            value = pattern.sub(replacement, value)
        return value
    if isinstance(value, list):
        return [_redact(item, key=None) for item in value]
    if isinstance(value, dict):
        return {name: _redact(item, key=name) for name, item in value.items()}
    return value


__all__ = [
    "CORRELATION_KEYS",
    "JSONValue",
    "LogRedactor",
    "LoggingConfig",
    "REDACTED",
    "StructuredLoggingHandle",
    "bind_correlation",
    "configure_structlog",
    "correlation_scope",
    "default_log_redactor",
    "get_correlation_context",
    "reset_correlation",
    "setup_structured_logging",
]
