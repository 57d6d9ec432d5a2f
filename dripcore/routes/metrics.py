"""
Prometheus metrics endpoint.

Exposes request and login-flow metrics for monitoring.
"""
from fastapi import APIRouter, Response
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

router = APIRouter()

# ============================================
# HTTP Request Metrics
# ============================================

http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status']
)

http_request_duration = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# ============================================
# Login Flow Metrics
# ============================================

google_logins = Counter(
    'google_logins_total',
    'Google login callbacks by outcome',
    ['outcome']
)

accounts_provisioned = Counter(
    'accounts_provisioned_total',
    'Local accounts created from a Google profile'
)

credential_verifications = Counter(
    'credential_verifications_total',
    'Issued credential verifications by result',
    ['result']
)


def track_request(method: str, endpoint: str, status: int, duration_seconds: float):
    """Record HTTP request metrics."""
    http_requests_total.labels(
        method=method,
        endpoint=endpoint,
        status=status
    ).inc()

    http_request_duration.labels(
        method=method,
        endpoint=endpoint
    ).observe(duration_seconds)


def track_login(outcome: str):
    """Record a finished callback; outcome is "success" or an error code."""
    google_logins.labels(outcome=outcome).inc()


def track_account_provisioned():
    accounts_provisioned.inc()


def track_credential_verification(result: str):
    credential_verifications.labels(result=result).inc()


@router.get("/metrics")
async def metrics():
    """Return all registered metrics in Prometheus format."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
