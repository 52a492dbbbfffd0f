"""
OpenTelemetry tracing bootstrap (OTLP/gRPC -> Collector).

Defaults:
- OTLP endpoint: http://otel-collector:4317
- Sampler: parent-based, ratio 1.0 (keep every span unless told otherwise)

Env overrides:
- OTEL_EXPORTER_OTLP_ENDPOINT  (http:// -> insecure channel, https:// -> TLS)
- OTEL_SAMPLER_RATIO           (0..1; anything else falls back to 1.0)
- SERVICE_VERSION
- OTEL_SERVICE_ENV             (falls back to SENTRY_ENV)

Exporter construction failure is fatal: ``ExporterInitError`` propagates to
the caller and startup should abort.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Optional

from opentelemetry.baggage.propagation import W3CBaggagePropagator
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.propagators.composite import CompositePropagator
from opentelemetry.sdk.resources import (
    DEPLOYMENT_ENVIRONMENT,
    SERVICE_NAME,
    SERVICE_VERSION,
    Resource,
)
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

from .config import DEFAULT_OTLP_ENDPOINT, resolve, resolve_environment
from .context import TelemetryContext, default_context
from .errors import ExporterInitError
from .http_instrumentation import instrument_requests, name_outbound_span

logger = logging.getLogger(__name__)

DEFAULT_SAMPLER_RATIO = 1.0

_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)
_RATIO_CHARS = frozenset("0123456789.")


@dataclass(frozen=True)
class TracingConfig:
    """Resolved tracing settings."""

    endpoint: str
    insecure: bool
    service_name: str
    service_version: str
    environment: str
    sampler_ratio: float


def normalize_endpoint(endpoint: str) -> str:
    """Strip a leading http:// or https:// (the gRPC exporter wants host:port)."""
    if not endpoint:
        return endpoint
    return _SCHEME_RE.sub("", endpoint, count=1)


def is_secure_endpoint(endpoint: str) -> bool:
    return endpoint.lower().startswith("https://")


def parse_ratio(raw: str, default: float = DEFAULT_SAMPLER_RATIO) -> float:
    """
    Parse a sampling ratio.

    Only digits and '.' are accepted. Empty input, any other character, a
    malformed number or a value outside [0, 1] yields ``default``.
    """
    if not raw or any(ch not in _RATIO_CHARS for ch in raw):
        return default
    try:
        ratio = float(raw)
    except ValueError:
        return default
    if ratio < 0.0 or ratio > 1.0:
        return default
    return ratio


def resolve_tracing_config(service_name: str) -> TracingConfig:
    raw_endpoint = resolve("OTEL_EXPORTER_OTLP_ENDPOINT", DEFAULT_OTLP_ENDPOINT)
    return TracingConfig(
        endpoint=normalize_endpoint(raw_endpoint),
        insecure=not is_secure_endpoint(raw_endpoint),
        service_name=service_name,
        service_version=resolve("SERVICE_VERSION", ""),
        environment=resolve_environment(),
        sampler_ratio=parse_ratio(resolve("OTEL_SAMPLER_RATIO", "1")),
    )


def build_resource(cfg: TracingConfig) -> Resource:
    return Resource.create(
        {
            SERVICE_NAME: cfg.service_name,
            SERVICE_VERSION: cfg.service_version,
            DEPLOYMENT_ENVIRONMENT: cfg.environment,
        }
    )


def _build_exporter(cfg: TracingConfig) -> OTLPSpanExporter:
    try:
        return OTLPSpanExporter(endpoint=cfg.endpoint, insecure=cfg.insecure)
    except Exception as exc:  # noqa: BLE001
        raise ExporterInitError(
            f"Failed to initialize OTLP trace exporter (endpoint={cfg.endpoint})"
        ) from exc


def init_tracing(
    service_name: str, *, context: Optional[TelemetryContext] = None
) -> Callable[[], None]:
    """
    Initialize OpenTelemetry tracing and return its shutdown function.

    Installs the tracer provider and the W3C trace-context + baggage
    propagator on the context, and wraps the context's outbound transport
    with tracing unless it is already wrapped.

    Args:
        service_name: e.g. "api_gateway"
        context: startup context; defaults to the process-wide one

    Returns:
        Callable[[], None]: flushes and shuts down the tracer provider

    Raises:
        ExporterInitError: the OTLP exporter could not be constructed
    """
    ctx = context or default_context()
    cfg = resolve_tracing_config(service_name)

    exporter = _build_exporter(cfg)
    provider = TracerProvider(
        resource=build_resource(cfg),
        sampler=ParentBased(TraceIdRatioBased(cfg.sampler_ratio)),
    )
    provider.add_span_processor(BatchSpanProcessor(exporter))
    ctx.install_tracer_provider(provider)

    ctx.install_propagator(
        ctx.propagator
        or CompositePropagator([TraceContextTextMapPropagator(), W3CBaggagePropagator()])
    )

    ctx.wrap_transport(provider, name_outbound_span)
    if ctx.install_globals:
        instrument_requests(tracer_provider=provider)

    logger.info(
        "Tracing initialized",
        extra={
            "service": cfg.service_name,
            "endpoint": cfg.endpoint,
            "insecure": cfg.insecure,
            "sampler_ratio": cfg.sampler_ratio,
        },
    )

    done = False

    def shutdown() -> None:
        nonlocal done
        if done:
            return
        done = True
        try:
            provider.shutdown()
        except Exception:  # noqa: BLE001
            logger.exception("Failed to shutdown tracer provider")

    return shutdown
