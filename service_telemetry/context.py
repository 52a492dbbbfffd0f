"""
Startup context owning the process-wide telemetry handles.

The tracer provider, propagator, outbound transport, reporting client and
meter provider live here as explicit handles instead of hidden module
globals. Each ``install_*`` method checks what is currently installed before
overwriting it, which gives once-per-process semantics for the default
context while keeping tests free to build isolated contexts.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import httpx
from opentelemetry import metrics, propagate, trace
from opentelemetry.instrumentation.httpx import SyncOpenTelemetryTransport
from opentelemetry.propagators.textmap import TextMapPropagator
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.trace import TracerProvider

logger = logging.getLogger(__name__)


@dataclass
class TelemetryContext:
    """Holds the telemetry singletons installed at startup."""

    install_globals: bool = True
    transport: httpx.BaseTransport = field(default_factory=httpx.HTTPTransport)
    tracer_provider: Optional[TracerProvider] = None
    propagator: Optional[TextMapPropagator] = None
    meter_provider: Optional[MeterProvider] = None
    reporting_client: Optional[Any] = None

    def install_tracer_provider(self, provider: TracerProvider) -> None:
        self.tracer_provider = provider
        if not self.install_globals:
            return
        current = trace.get_tracer_provider()
        if isinstance(current, TracerProvider):
            logger.warning(
                "Global TracerProvider already installed; keeping the existing one",
                extra={"installed": repr(current)},
            )
            return
        trace.set_tracer_provider(provider)

    def install_propagator(self, propagator: TextMapPropagator) -> None:
        self.propagator = propagator
        if not self.install_globals:
            return
        if propagate.get_global_textmap() is propagator:
            return
        propagate.set_global_textmap(propagator)

    def install_meter_provider(self, provider: MeterProvider) -> None:
        self.meter_provider = provider
        if not self.install_globals:
            return
        current = metrics.get_meter_provider()
        if isinstance(current, MeterProvider):
            logger.warning(
                "Global MeterProvider already installed; keeping the existing one",
                extra={"installed": repr(current)},
            )
            return
        metrics.set_meter_provider(provider)

    def wrap_transport(
        self,
        tracer_provider: TracerProvider,
        request_hook: Callable[..., None],
    ) -> httpx.BaseTransport:
        """
        Wrap the shared outbound transport with tracing, exactly once.

        Returns:
            The (possibly pre-existing) tracing transport.
        """
        if isinstance(self.transport, SyncOpenTelemetryTransport):
            logger.debug("Outbound transport already traced; not wrapping again")
            return self.transport
        self.transport = SyncOpenTelemetryTransport(
            self.transport,
            tracer_provider=tracer_provider,
            request_hook=request_hook,
        )
        return self.transport

    def http_client(self, **kwargs: Any) -> httpx.Client:
        """Build an ``httpx.Client`` on top of the shared (traced) transport."""
        return httpx.Client(transport=self.transport, **kwargs)


_LOCK = threading.Lock()
_DEFAULT: Optional[TelemetryContext] = None


def default_context() -> TelemetryContext:
    """Return the process-wide context, creating it on first use."""
    global _DEFAULT
    with _LOCK:
        if _DEFAULT is None:
            _DEFAULT = TelemetryContext()
        return _DEFAULT
