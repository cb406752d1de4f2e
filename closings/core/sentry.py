"""Sentry setup shared by the closings API and its Celery worker."""

import sentry_sdk
import structlog
from sentry_sdk.integrations.celery import CeleryIntegration
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

logger = structlog.get_logger()

# Bearer tokens carry firm and staff claims
_REDACTED_HEADERS = frozenset({"authorization", "cookie", "x-api-key"})


def _redact_headers(event: dict, hint: dict) -> dict:
    headers = event.get("request", {}).get("headers", {})
    for name in list(headers):
        if name.lower() in _REDACTED_HEADERS:
            headers[name] = "[REDACTED]"
    return event


def _traces_sample_rate(environment: str) -> float:
    return 0.1 if environment == "production" else 1.0


def init_sentry(dsn: str | None, environment: str = "development", release: str | None = None) -> None:
    """Start error reporting; does nothing without a DSN."""
    if not dsn:
        logger.info("sentry_skipped", environment=environment)
        return

    sample_rate = _traces_sample_rate(environment)
    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        release=release,
        traces_sample_rate=sample_rate,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            CeleryIntegration(monitor_beat_tasks=True),
        ],
        send_default_pii=False,
        before_send=_redact_headers,
    )
    logger.info("sentry_enabled", environment=environment, traces_sample_rate=sample_rate)
