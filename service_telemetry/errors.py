class TelemetryError(Exception):
    """Base telemetry bootstrap error."""


class ExporterInitError(TelemetryError):
    """Raised when an OTLP exporter cannot be constructed (fatal at startup)."""
