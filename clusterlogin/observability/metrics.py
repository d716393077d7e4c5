import time
from typing import Callable

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from starlette.requests import Request
from starlette.responses import Response


REQUEST_COUNTER = Counter(
    "api_requests_total",
    "HTTP requests total",
    ["method", "path", "status"],
)

REQUEST_LATENCY = Histogram(
    "api_request_duration_seconds",
    "HTTP request latency",
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10),
)

LOGIN_COUNTER = Counter(
    "cluster_logins_total",
    "Platform login attempts by outcome",
    ["outcome"],
)

MATRIX_UPDATE_COUNTER = Counter(
    "authorization_matrix_updates_total",
    "Authorization matrix synchronizations by result",
    ["result"],
)

LOGIN_OUTCOMES = ("authenticated", "anonymous", "stale_session", "failed", "denied")


def increment_login(outcome: str) -> None:
    if outcome not in LOGIN_OUTCOMES:
        raise ValueError(f"Unknown login outcome {outcome!r}")
    LOGIN_COUNTER.labels(outcome).inc()


def increment_matrix_update(result: str) -> None:
    MATRIX_UPDATE_COUNTER.labels(result).inc()


async def metrics_endpoint(_: Request) -> Response:
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


async def request_metrics_middleware(request: Request, call_next: Callable):
    start = time.time()
    response = await call_next(request)
    elapsed = time.time() - start
    REQUEST_COUNTER.labels(request.method, request.url.path, str(response.status_code)).inc()
    REQUEST_LATENCY.observe(elapsed)
    return response
