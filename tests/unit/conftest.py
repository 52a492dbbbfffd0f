import pytest

_TELEMETRY_ENV = (
    "OTEL_EXPORTER_OTLP_ENDPOINT",
    "OTEL_SAMPLER_RATIO",
    "OTEL_SERVICE_ENV",
    "OTEL_METRIC_EXPORT_INTERVAL",
    "SERVICE_VERSION",
    "SENTRY_DSN",
    "SENTRY_SAMPLE_RATE",
    "SENTRY_ENV",
    "SENTRY_RELEASE",
    "SENTRY_FLUSH_MS",
    "LOG_LEVEL",
    "LOG_FORMAT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in _TELEMETRY_ENV:
        monkeypatch.delenv(key, raising=False)
