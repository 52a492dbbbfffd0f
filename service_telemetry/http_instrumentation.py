"""
Outbound HTTP instrumentation helpers.

- httpx: the shared transport in ``TelemetryContext`` is wrapped with a tracing
  transport (see ``TelemetryContext.wrap_transport``)
- requests: the library is instrumented process-wide, once

Outbound spans are named ``"<METHOD> <HOST>"``. The path is left out so that
path parameters never blow up span-name cardinality.
"""

from __future__ import annotations

import logging
from typing import Any, Optional
from urllib.parse import urlsplit

from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.trace import Span

logger = logging.getLogger(__name__)


def _text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("ascii", errors="replace")
    return str(value)


def outbound_span_name(method: Any, url: Any) -> str:
    """
    Format the span name for an outbound call.

    Args:
        method: HTTP verb (str or bytes).
        url: Destination URL (str, ``httpx.URL`` or anything whose str() is a URL).

    Returns:
        str: e.g. ``"GET example.com:8080"``
    """
    parts = urlsplit(_text(url))
    host = parts.hostname or ""
    if parts.port is not None:
        host = f"{host}:{parts.port}"
    return f"{_text(method).upper()} {host}"


def name_outbound_span(span: Span, request: Any) -> None:
    """
    Request hook renaming an outbound span to ``"<METHOD> <HOST>"``.

    Works for both the httpx transport (``RequestInfo``) and requests
    (``PreparedRequest``): each exposes ``method`` and ``url``.
    """
    if span is None or not span.is_recording():
        return
    span.update_name(outbound_span_name(request.method, request.url))


def instrument_requests(tracer_provider: Optional[TracerProvider] = None) -> None:
    """
    Instrument the ``requests`` library (outgoing calls + header propagation).

    Idempotent: a library that is already instrumented is left alone.

    Args:
        tracer_provider: provider the spans are recorded on
    """
    try:
        from opentelemetry.instrumentation.requests import (
            RequestsInstrumentor,  # type: ignore
        )
    except ImportError:
        logger.warning(
            "requests instrumentation not installed (opentelemetry-instrumentation-requests)"
        )
        return

    instrumentor = RequestsInstrumentor()
    if instrumentor.is_instrumented_by_opentelemetry:
        logger.debug("requests already instrumented; skipping")
        return
    try:
        instrumentor.instrument(
            tracer_provider=tracer_provider, request_hook=name_outbound_span
        )
        logger.info("requests OpenTelemetry instrumentation enabled")
    except Exception as exc:  # noqa: BLE001
        logger.exception("requests instrumentation failed", extra={"error": str(exc)})
