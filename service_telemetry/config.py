"""
Environment-backed configuration resolution.

Every initializer resolves only the keys it needs, through ``resolve``.
Absence is never an error here: callers apply their own defaulting rules.
"""

from __future__ import annotations

import os

DEFAULT_OTLP_ENDPOINT = "http://otel-collector:4317"


def resolve(key: str, default: str) -> str:
    """
    Return the environment value for ``key``, or ``default`` if unset/empty.

    Args:
        key: Environment variable name.
        default: Fallback value.

    Returns:
        str
    """
    value = os.getenv(key, "").strip()
    if not value:
        return default
    return value


def resolve_environment() -> str:
    # deployment.environment falls back to the shared Sentry environment tag
    return resolve("OTEL_SERVICE_ENV", resolve("SENTRY_ENV", ""))
