"""
OpenTelemetry metrics: meter accessor and optional provider bootstrap.

``get_meter`` works whether or not a provider was installed: without one the
API hands back a no-op meter, so call sites never need to know.

Env overrides for ``init_metrics``:
- OTEL_EXPORTER_OTLP_ENDPOINT
- OTEL_METRIC_EXPORT_INTERVAL  (seconds, min 1)
- SERVICE_VERSION, OTEL_SERVICE_ENV
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from opentelemetry import metrics
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.metrics import Meter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import (
    DEPLOYMENT_ENVIRONMENT,
    SERVICE_NAME,
    SERVICE_VERSION,
    Resource,
)

from .config import DEFAULT_OTLP_ENDPOINT, resolve, resolve_environment
from .context import TelemetryContext, default_context
from .errors import ExporterInitError
from .tracing import is_secure_endpoint, normalize_endpoint

logger = logging.getLogger(__name__)

METER_NAME = "main"


@dataclass(frozen=True)
class MetricsConfig:
    """Resolved metrics settings."""

    endpoint: str
    insecure: bool
    export_interval_ms: int
    service_name: str
    service_version: str
    environment: str


def _export_interval_ms(raw: str) -> int:
    try:
        seconds = int(raw)
    except ValueError:
        seconds = 10
    return max(1, seconds) * 1000


def resolve_metrics_config(service_name: str) -> MetricsConfig:
    raw_endpoint = resolve("OTEL_EXPORTER_OTLP_ENDPOINT", DEFAULT_OTLP_ENDPOINT)
    return MetricsConfig(
        endpoint=normalize_endpoint(raw_endpoint),
        insecure=not is_secure_endpoint(raw_endpoint),
        export_interval_ms=_export_interval_ms(resolve("OTEL_METRIC_EXPORT_INTERVAL", "10")),
        service_name=service_name,
        service_version=resolve("SERVICE_VERSION", ""),
        environment=resolve_environment(),
    )


def init_metrics(
    service_name: str, *, context: Optional[TelemetryContext] = None
) -> Callable[[], None]:
    """
    Initialize an OTLP metrics provider and return its shutdown function.

    Args:
        service_name: e.g. "api_gateway"
        context: startup context; defaults to the process-wide one

    Raises:
        ExporterInitError: the OTLP exporter could not be constructed
    """
    ctx = context or default_context()
    cfg = resolve_metrics_config(service_name)

    try:
        exporter = OTLPMetricExporter(endpoint=cfg.endpoint, insecure=cfg.insecure)
    except Exception as exc:  # noqa: BLE001
        raise ExporterInitError(
            f"Failed to initialize OTLP metric exporter (endpoint={cfg.endpoint})"
        ) from exc

    reader = PeriodicExportingMetricReader(
        exporter, export_interval_millis=cfg.export_interval_ms
    )
    provider = MeterProvider(
        resource=Resource.create(
            {
                SERVICE_NAME: cfg.service_name,
                SERVICE_VERSION: cfg.service_version,
                DEPLOYMENT_ENVIRONMENT: cfg.environment,
            }
        ),
        metric_readers=[reader],
    )
    ctx.install_meter_provider(provider)
    logger.info("Metrics initialized", extra={"endpoint": cfg.endpoint})

    def shutdown() -> None:
        try:
            provider.shutdown()
        except Exception:  # noqa: BLE001
            logger.exception("Failed to shutdown meter provider")

    return shutdown


def get_meter(context: Optional[TelemetryContext] = None) -> Meter:
    """
    Return the "main" Meter for instrument creation.

    Uses the context's provider when one was installed there, the global
    provider otherwise.
    """
    if context is not None and context.meter_provider is not None:
        return context.meter_provider.get_meter(METER_NAME)
    return metrics.get_meter(METER_NAME)
