"""
Telemetry bootstrap for services.

This package provides:
- OpenTelemetry tracing (OTLP/gRPC -> Collector) with W3C propagation and
  traced outbound HTTP
- Sentry error reporting
- Structured logging fanned out to console, OpenTelemetry logs and Sentry
- OpenTelemetry meter access (and an optional OTLP metrics provider)

Design goals:
- Safe defaults (a local collector, full sampling)
- Environment-variable overrides (12-factor)
- Reporting/logging misconfiguration degrades, tracing exporter failure is fatal
- Every shutdown function is safe to call, whatever its initializer did
"""

from __future__ import annotations

from dataclasses import dataclass
from logging import Logger, getLogger
from typing import Callable, Optional, Sequence

from opentelemetry.metrics import Meter

from .config import resolve
from .context import TelemetryContext, default_context
from .error_reporting import init_error_reporting
from .errors import ExporterInitError, TelemetryError
from .logging import create_logger, create_logger_with_telemetry
from .metrics import get_meter, init_metrics
from .tracing import init_tracing

__all__ = [
    "ExporterInitError",
    "ObservabilityHandle",
    "TelemetryContext",
    "TelemetryError",
    "create_logger",
    "create_logger_with_telemetry",
    "default_context",
    "get_meter",
    "init_error_reporting",
    "init_metrics",
    "init_tracing",
    "setup_observability",
]

_log = getLogger(__name__)


@dataclass(frozen=True)
class ObservabilityHandle:
    """Holds the startup products and the shutdown functions to run at exit."""

    service_name: str
    logger: Logger
    meter: Meter
    shutdowns: Sequence[Callable[[], None]]

    def shutdown(self) -> None:
        """Run every shutdown function; one failing does not skip the others."""
        for fn in self.shutdowns:
            try:
                fn()
            except Exception:  # noqa: BLE001
                _log.exception("Telemetry shutdown step failed")


def setup_observability(
    service_name: str,
    *,
    with_metrics: bool = False,
    context: Optional[TelemetryContext] = None,
) -> ObservabilityHandle:
    """
    Initialize tracing, error reporting, logging and metrics, in that order.

    This is intended to be called once per process (at service startup).

    Args:
        service_name: Logical service name (e.g. "api_gateway").
        with_metrics: Also install an OTLP metrics provider.
        context: Startup context; defaults to the process-wide one.

    Returns:
        ObservabilityHandle
    """
    ctx = context or default_context()
    shutdowns = [
        init_tracing(service_name, context=ctx),
        init_error_reporting(context=ctx),
    ]
    logger = create_logger_with_telemetry(
        service_name=service_name,
        service_version=resolve("SERVICE_VERSION", "") or None,
    )
    if with_metrics:
        shutdowns.append(init_metrics(service_name, context=ctx))
    return ObservabilityHandle(
        service_name=service_name,
        logger=logger,
        meter=get_meter(ctx),
        shutdowns=tuple(shutdowns),
    )
