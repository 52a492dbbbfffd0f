"""
Structured logger construction with fan-out to several sinks.

A built logger hands every record to a single ``FanoutHandler`` which
dispatches it, in declaration order, to:
- console: JSON (or text) lines on stdout, with trace/span correlation
- telemetry bridge (optional): the OpenTelemetry logs pipeline
- Sentry: records at ERROR and above become Sentry events

Each sink applies its own level and receives its own copy of the record. A
sink that raises is reported through its own ``handleError`` and never stops
delivery to the remaining sinks.
"""

from __future__ import annotations

import copy
import json
import logging
import sys
import time
from dataclasses import dataclass
from typing import IO, Any, MutableMapping, Optional, Sequence

from opentelemetry import trace
from opentelemetry._logs import get_logger_provider
from sentry_sdk.integrations.logging import EventHandler

try:
    # the bridge handler moved out of the SDK (where it is now deprecated)
    from opentelemetry.instrumentation.logging.handler import (
        LoggingHandler as OtelLoggingHandler,  # type: ignore
    )
except ImportError:  # older opentelemetry-instrumentation-logging releases
    from opentelemetry.sdk._logs import LoggingHandler as OtelLoggingHandler

from .config import resolve

DEFAULT_LOGGER_NAME = "main"

_CORRELATION_FIELDS = ("trace_id", "span_id", "service_name", "service_version")
_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime", *_CORRELATION_FIELDS}


@dataclass(frozen=True)
class LoggingConfig:
    """Runtime logging configuration."""

    name: str
    service_name: Optional[str]
    service_version: Optional[str]
    level: str
    fmt: str  # "json" or "text"


def _resolve_level(level: str) -> int:
    value = logging.getLevelName(level.upper())
    if isinstance(value, int):
        return value
    return logging.INFO


def _current_trace_span_ids() -> tuple[Optional[str], Optional[str]]:
    span = trace.get_current_span()
    ctx = span.get_span_context()
    if not ctx or not ctx.is_valid:
        return (None, None)
    trace_id = f"{ctx.trace_id:032x}"
    span_id = f"{ctx.span_id:016x}"
    return (trace_id, span_id)


class TraceContextFilter(logging.Filter):
    """Inject trace/span + service metadata into every LogRecord."""

    def __init__(
        self, *, service_name: Optional[str], service_version: Optional[str]
    ) -> None:
        super().__init__()
        self._service_name = service_name
        self._service_version = service_version

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        trace_id, span_id = _current_trace_span_ids()
        setattr(record, "trace_id", trace_id)
        setattr(record, "span_id", span_id)
        setattr(record, "service_name", self._service_name)
        setattr(record, "service_version", self._service_version)
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: MutableMapping[str, Any] = {
            "ts": int(time.time() * 1000),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key in _CORRELATION_FIELDS:
            payload[key] = getattr(record, key, None)

        # logger.info("x", extra={"foo": "bar"})
        extra = {k: v for k, v in record.__dict__.items() if k not in _RESERVED_ATTRS}
        if extra:
            payload["extra"] = extra

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


class FanoutHandler(logging.Handler):
    """Dispatch each record to every child handler, in order, isolating failures."""

    def __init__(self, handlers: Sequence[logging.Handler]) -> None:
        super().__init__(level=logging.NOTSET)
        self.handlers = list(handlers)

    def handle(self, record: logging.LogRecord) -> bool:
        # children take their own locks
        rv = self.filter(record)
        if rv:
            self.emit(record)
        return bool(rv)

    def emit(self, record: logging.LogRecord) -> None:
        for handler in self.handlers:
            if record.levelno < handler.level:
                continue
            # each sink gets its own copy; filters may set attributes on it
            own = copy.copy(record)
            try:
                handler.handle(own)
            except Exception:  # noqa: BLE001
                handler.handleError(own)

    def flush(self) -> None:
        for handler in self.handlers:
            handler.flush()

    def close(self) -> None:
        for handler in self.handlers:
            handler.close()
        super().close()


def console_handler(
    cfg: LoggingConfig, stream: Optional[IO[str]] = None
) -> logging.Handler:
    handler = logging.StreamHandler(stream=stream or sys.stdout)
    handler.addFilter(
        TraceContextFilter(
            service_name=cfg.service_name, service_version=cfg.service_version
        )
    )
    if cfg.fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s %(levelname)s %(name)s "
                "service=%(service_name)s trace_id=%(trace_id)s span_id=%(span_id)s - %(message)s"
            )
        )
    return handler


def telemetry_handler() -> logging.Handler:
    """Bridge into the globally installed OpenTelemetry logger provider."""
    return OtelLoggingHandler(
        level=logging.NOTSET, logger_provider=get_logger_provider()
    )


def sentry_handler(level: int = logging.ERROR) -> logging.Handler:
    return EventHandler(level=level)


def resolve_logging_config(
    name: str,
    *,
    service_name: Optional[str] = None,
    service_version: Optional[str] = None,
    log_level: Optional[str] = None,
    fmt: Optional[str] = None,
) -> LoggingConfig:
    return LoggingConfig(
        name=name,
        service_name=service_name,
        service_version=service_version,
        level=(log_level or resolve("LOG_LEVEL", "info")).lower(),
        fmt=(fmt or resolve("LOG_FORMAT", "json")).lower(),
    )


def _assemble(cfg: LoggingConfig, sinks: Sequence[logging.Handler]) -> logging.Logger:
    log = logging.getLogger(cfg.name)
    # Rebuilding replaces the previous fan-out instead of stacking a second one.
    for h in list(log.handlers):
        log.removeHandler(h)
        h.close()
    log.addHandler(FanoutHandler(sinks))
    log.setLevel(_resolve_level(cfg.level))
    log.propagate = False
    return log


def create_logger(
    name: str = DEFAULT_LOGGER_NAME,
    *,
    service_name: Optional[str] = None,
    service_version: Optional[str] = None,
    log_level: Optional[str] = None,
    fmt: Optional[str] = None,
    stream: Optional[IO[str]] = None,
) -> logging.Logger:
    """
    Build a logger fanning out to console and Sentry.

    Environment variables (defaults shown):
      - LOG_LEVEL=info
      - LOG_FORMAT=json  (json|text)

    Returns:
        logging.Logger
    """
    cfg = resolve_logging_config(
        name,
        service_name=service_name,
        service_version=service_version,
        log_level=log_level,
        fmt=fmt,
    )
    return _assemble(cfg, [console_handler(cfg, stream), sentry_handler()])


def create_logger_with_telemetry(
    name: str = DEFAULT_LOGGER_NAME,
    *,
    service_name: Optional[str] = None,
    service_version: Optional[str] = None,
    log_level: Optional[str] = None,
    fmt: Optional[str] = None,
    stream: Optional[IO[str]] = None,
) -> logging.Logger:
    """Same as ``create_logger`` plus the OpenTelemetry logs bridge (between console and Sentry)."""
    cfg = resolve_logging_config(
        name,
        service_name=service_name,
        service_version=service_version,
        log_level=log_level,
        fmt=fmt,
    )
    return _assemble(
        cfg, [console_handler(cfg, stream), telemetry_handler(), sentry_handler()]
    )
