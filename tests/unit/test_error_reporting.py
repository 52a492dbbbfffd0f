import logging

import pytest
import sentry_sdk

from service_telemetry.context import TelemetryContext
from service_telemetry.error_reporting import (
    init_error_reporting,
    parse_flush_timeout_ms,
    parse_sample_rate,
)


class _RecordingClient:
    def __init__(self):
        self.flush_timeouts = []

    def flush(self, timeout=None, callback=None):
        self.flush_timeouts.append(timeout)


@pytest.fixture
def fake_sentry(monkeypatch):
    calls = {}
    client = _RecordingClient()

    def fake_init(**kwargs):
        calls.update(kwargs)

    monkeypatch.setattr(sentry_sdk, "init", fake_init)
    monkeypatch.setattr(sentry_sdk, "get_client", lambda: client)
    return calls, client


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("-5", 0.0),
        ("5", 1.0),
        ("abc", 1.0),
        ("", 1.0),
        ("nan", 1.0),
        ("inf", 1.0),
        ("-inf", 1.0),
        ("0.3", 0.3),
        ("0", 0.0),
    ],
)
def test_parse_sample_rate(raw, expected):
    assert parse_sample_rate(raw) == expected


@pytest.mark.parametrize(
    "raw,expected", [("500", 500), ("0", 0), ("-1", 2000), ("xyz", 2000), ("", 2000)]
)
def test_parse_flush_timeout_ms(raw, expected):
    assert parse_flush_timeout_ms(raw) == expected


def test_no_dsn_returns_noop_shutdown(monkeypatch, caplog):
    # Even if sample rate/env/release are set, without DSN it should skip
    caplog.set_level(logging.INFO)
    monkeypatch.setenv("SENTRY_SAMPLE_RATE", "not-a-float")
    monkeypatch.setenv("SENTRY_ENV", "test")
    monkeypatch.setenv("SENTRY_RELEASE", "1.2.3")

    def must_not_init(**kwargs):
        raise AssertionError("sentry_sdk.init must not be called without a DSN")

    monkeypatch.setattr(sentry_sdk, "init", must_not_init)
    ctx = TelemetryContext(install_globals=False)
    shutdown = init_error_reporting(context=ctx)

    assert shutdown() is None
    assert ctx.reporting_client is None
    assert "error reporting disabled" in caplog.text


def test_init_failure_degrades_to_noop(monkeypatch, caplog):
    monkeypatch.setenv("SENTRY_DSN", "https://public@example.com/1")

    def broken_init(**kwargs):
        raise RuntimeError("transport exploded")

    monkeypatch.setattr(sentry_sdk, "init", broken_init)
    ctx = TelemetryContext(install_globals=False)
    shutdown = init_error_reporting(context=ctx)

    shutdown()
    assert ctx.reporting_client is None
    assert "Sentry init failed" in caplog.text


def test_invalid_dsn_does_not_crash(monkeypatch):
    monkeypatch.setenv("SENTRY_DSN", "not-a-dsn")
    shutdown = init_error_reporting(context=TelemetryContext(install_globals=False))
    shutdown()


def test_init_passes_clamped_rate_and_tags(monkeypatch, fake_sentry):
    calls, client = fake_sentry
    monkeypatch.setenv("SENTRY_DSN", "https://public@example.com/1")
    monkeypatch.setenv("SENTRY_SAMPLE_RATE", "5")
    monkeypatch.setenv("SENTRY_ENV", "prod")
    monkeypatch.setenv("SENTRY_RELEASE", "svc@1.2.3")

    ctx = TelemetryContext(install_globals=False)
    init_error_reporting(context=ctx)

    assert calls["dsn"] == "https://public@example.com/1"
    assert calls["sample_rate"] == 1.0
    assert calls["environment"] == "prod"
    assert calls["release"] == "svc@1.2.3"
    assert ctx.reporting_client is client


@pytest.mark.parametrize("flush_ms,expected", [("500", 0.5), ("-1", 2.0), ("xyz", 2.0)])
def test_shutdown_flush_is_bounded_by_timeout(monkeypatch, fake_sentry, flush_ms, expected):
    _, client = fake_sentry
    monkeypatch.setenv("SENTRY_DSN", "https://public@example.com/1")
    monkeypatch.setenv("SENTRY_FLUSH_MS", flush_ms)

    shutdown = init_error_reporting(context=TelemetryContext(install_globals=False))
    shutdown()

    assert client.flush_timeouts == [expected]
