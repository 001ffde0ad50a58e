"""
Sentry integration for error tracking.
"""
from typing import Optional

import sentry_sdk
from sentry_sdk.integrations.celery import CeleryIntegration
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from backfill.core.config import settings


def init_sentry(dsn: Optional[str] = None, traces_sample_rate: float = 0.1):
    """
    Initialize Sentry for error tracking and performance monitoring.

    Args:
        dsn: Sentry DSN (Data Source Name). If None, Sentry will be disabled.
        traces_sample_rate: Percentage of transactions to trace (0.0 to 1.0)
    """
    if not dsn:
        return

    # Adjust sample rates based on environment
    if settings.ENVIRONMENT == "production":
        traces_sample_rate = 0.2
    elif settings.ENVIRONMENT == "staging":
        traces_sample_rate = 0.5
    else:
        traces_sample_rate = 1.0

    sentry_sdk.init(
        dsn=dsn,
        environment=settings.ENVIRONMENT,
        release=f"{settings.APP_NAME}@{settings.APP_VERSION}",
        traces_sample_rate=traces_sample_rate,
        integrations=[
            FastApiIntegration(
                transaction_style="endpoint",  # Group by endpoint instead of URL
            ),
            SqlalchemyIntegration(),
            CeleryIntegration(),
        ],
        send_default_pii=False,  # Uploaded exports contain visitor data
        attach_stacktrace=True,
        max_breadcrumbs=50,
    )


def capture_exception(error: Exception, context: Optional[dict] = None):
    """
    Manually capture an exception to Sentry.

    Does nothing when Sentry has not been initialized.

    Args:
        error: Exception to capture
        context: Optional context data to include
    """
    with sentry_sdk.new_scope() as scope:
        if context:
            for key, value in context.items():
                scope.set_context(key, value)

        sentry_sdk.capture_exception(error)


def set_tag(key: str, value: str):
    sentry_sdk.set_tag(key, value)
