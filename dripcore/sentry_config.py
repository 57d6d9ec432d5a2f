"""
Sentry configuration for operational error tracking.

Only backend outages (identity store unreachable, unexpected exceptions)
are reported; user-caused login failures are not.
"""
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from dripcore.config import Settings
from dripcore.logging_config import get_logger

log = get_logger(component="sentry")

# Query parameters that must never leave the process
_SCRUBBED_PARAMS = ("code", "state", "token")


def configure_sentry(settings: Settings) -> bool:
    """
    Initialize Sentry with FastAPI and SQLAlchemy integrations.

    Does nothing when SENTRY_DSN is unset. Returns whether Sentry is active.
    """
    if not settings.SENTRY_DSN:
        log.info("sentry_disabled")
        return False

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        integrations=[
            FastApiIntegration(),
            SqlalchemyIntegration(),
        ],
        before_send=scrub_event,
        traces_sample_rate=0.1,
        environment=settings.ENVIRONMENT,
        release=settings.APP_VERSION,
        send_default_pii=False,
    )
    log.info("sentry_enabled", environment=settings.ENVIRONMENT)
    return True


def scrub_event(event, hint):
    """Drop authorization codes, state and tokens from captured request data."""
    request = event.get("request") or {}
    query = request.get("query_string")
    if isinstance(query, str) and query:
        pairs = []
        for pair in query.split("&"):
            name = pair.split("=", 1)[0]
            pairs.append(f"{name}=[Filtered]" if name in _SCRUBBED_PARAMS else pair)
        request["query_string"] = "&".join(pairs)
    return event


def capture_exception(exc_info=None):
    """Capture an exception to Sentry if it is enabled."""
    if sentry_sdk.get_client().is_active():
        sentry_sdk.capture_exception(exc_info)
