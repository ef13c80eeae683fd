"""
Staff Directory Core - Sentry Integration

Error tracking with Sentry. Initialization is skipped when no DSN is
configured; the capture helpers are then no-ops (sentry_sdk drops events
when no client is bound).
"""

import os
import logging
from typing import Optional, Dict, Any

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

logger = logging.getLogger(__name__)


SENSITIVE_KEYS = [
    "password", "token", "secret", "apikey", "api_key", "authorization",
    "service_role", "jwt", "access_token", "refresh_token", "cookie"
]


def init_sentry(
    dsn: Optional[str] = None,
    environment: str = "development",
    release: Optional[str] = None,
    sample_rate: float = 1.0,
    traces_sample_rate: float = 0.0,
) -> bool:
    """
    Initialize Sentry error tracking.

    Args:
        dsn: Sentry DSN (from environment if not provided)
        environment: Environment name (production, staging, development)
        release: Release version
        sample_rate: Error sampling rate (0.0 to 1.0)
        traces_sample_rate: Performance tracing sample rate

    Returns:
        True if Sentry was initialized, False otherwise
    """
    dsn = dsn or os.environ.get("SENTRY_DSN", "")

    if not dsn:
        logger.info("Sentry DSN not configured. Error tracking disabled.")
        return False

    try:
        sentry_sdk.init(
            dsn=dsn,
            environment=environment,
            release=release or os.environ.get("GIT_SHA", "unknown"),
            sample_rate=sample_rate,
            traces_sample_rate=traces_sample_rate,
            integrations=[
                FastApiIntegration(transaction_style="endpoint"),
                SqlalchemyIntegration(),
                LoggingIntegration(
                    level=logging.INFO,
                    event_level=logging.ERROR
                ),
            ],
            # Don't send PII
            send_default_pii=False,
            before_send=filter_sensitive_data,
        )

        logger.info(f"Sentry initialized for environment: {environment}")
        return True

    except Exception as e:
        logger.error(f"Failed to initialize Sentry: {e}")
        return False


def redact_dict(d: Any) -> Any:
    """Recursively replace values of sensitive keys with [REDACTED]."""
    if not isinstance(d, dict):
        return d

    result = {}
    for key, value in d.items():
        key_lower = str(key).lower()
        if any(s in key_lower for s in SENSITIVE_KEYS):
            result[key] = "[REDACTED]"
        elif isinstance(value, dict):
            result[key] = redact_dict(value)
        elif isinstance(value, list):
            result[key] = [redact_dict(v) for v in value]
        else:
            result[key] = value
    return result


def filter_sensitive_data(event: Dict[str, Any], hint: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Filter sensitive data from Sentry events.
    """
    if "request" in event:
        if "headers" in event["request"]:
            event["request"]["headers"] = redact_dict(event["request"]["headers"])
        if "data" in event["request"]:
            event["request"]["data"] = redact_dict(event["request"]["data"])

    if "extra" in event:
        event["extra"] = redact_dict(event["extra"])

    return event


def capture_exception(exception: Exception, **kwargs) -> Optional[str]:
    """
    Capture an exception to Sentry.

    Args:
        exception: The exception to capture
        **kwargs: Additional context

    Returns:
        Event ID if captured, None otherwise
    """
    try:
        with sentry_sdk.new_scope() as scope:
            for key, value in kwargs.items():
                scope.set_extra(key, value)
            return sentry_sdk.capture_exception(exception)
    except Exception as e:
        logger.error(f"Failed to capture exception to Sentry: {e}")
        return None