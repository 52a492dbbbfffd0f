"""
Sentry error-reporting bootstrap.

Env:
- SENTRY_DSN          (unset -> reporting disabled, normal path)
- SENTRY_SAMPLE_RATE  (float, clamped to [0, 1]; unparsable/NaN/inf -> 1.0)
- SENTRY_ENV, SENTRY_RELEASE
- SENTRY_FLUSH_MS     (shutdown flush bound, default 2000; negative/invalid ignored)

A reporting dependency must never block or crash service startup, so every
failure here is logged and degrades to a no-op shutdown.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable, Optional

import sentry_sdk
from sentry_sdk.integrations.logging import LoggingIntegration

from .config import resolve
from .context import TelemetryContext, default_context

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_RATE = 1.0
DEFAULT_FLUSH_TIMEOUT_MS = 2000


@dataclass(frozen=True)
class ErrorReportingConfig:
    """Resolved Sentry settings."""

    dsn: str
    sample_rate: float
    environment: str
    release: str


def parse_sample_rate(raw: str, default: float = DEFAULT_SAMPLE_RATE) -> float:
    """
    Parse and clamp an event sample rate.

    Negative values clamp to 0, values above 1 clamp to 1. Empty input,
    non-numeric input, NaN and infinities yield ``default``.
    """
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    if math.isnan(value) or math.isinf(value):
        return default
    return min(max(value, 0.0), 1.0)


def parse_flush_timeout_ms(raw: str, default: int = DEFAULT_FLUSH_TIMEOUT_MS) -> int:
    """Parse a flush timeout in ms; negative or non-integer input is ignored."""
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    if value < 0:
        return default
    return value


def resolve_error_reporting_config() -> ErrorReportingConfig:
    return ErrorReportingConfig(
        dsn=resolve("SENTRY_DSN", ""),
        sample_rate=parse_sample_rate(resolve("SENTRY_SAMPLE_RATE", "")),
        environment=resolve("SENTRY_ENV", ""),
        release=resolve("SENTRY_RELEASE", ""),
    )


def _noop() -> None:
    return None


def init_error_reporting(
    *, context: Optional[TelemetryContext] = None
) -> Callable[[], None]:
    """
    Initialize Sentry and return its shutdown (flush) function.

    Log records reach Sentry only through the error sink of the fan-out
    logger; the SDK's own logging integration is kept to breadcrumbs.

    Args:
        context: startup context; defaults to the process-wide one

    Returns:
        Callable[[], None]: flushes pending events, bounded by SENTRY_FLUSH_MS.
        A no-op when reporting is disabled or failed to initialize.
    """
    ctx = context or default_context()
    cfg = resolve_error_reporting_config()
    if not cfg.dsn:
        logger.info("Sentry not configured (SENTRY_DSN not set); error reporting disabled")
        return _noop

    try:
        sentry_sdk.init(
            dsn=cfg.dsn,
            sample_rate=cfg.sample_rate,
            environment=cfg.environment or None,
            release=cfg.release or None,
            integrations=[LoggingIntegration(level=logging.INFO, event_level=None)],
        )
    except Exception as exc:  # noqa: BLE001
        logger.error("Sentry init failed", extra={"error": str(exc)})
        return _noop

    client = sentry_sdk.get_client()
    ctx.reporting_client = client
    logger.info(
        "Sentry initialization complete",
        extra={"sample_rate": cfg.sample_rate, "sentry_env": cfg.environment},
    )

    def shutdown() -> None:
        flush_ms = parse_flush_timeout_ms(resolve("SENTRY_FLUSH_MS", ""))
        try:
            client.flush(timeout=flush_ms / 1000.0)
        except Exception:  # noqa: BLE001
            logger.exception("Sentry flush failed")

    return shutdown
