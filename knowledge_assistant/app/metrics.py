from __future__ import annotations

"""Prometheus instrumentation for HTTP requests and answer turns."""

import time

from fastapi import Request
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.responses import Response

from knowledge_assistant.app.settings import settings

HTTP_REQUESTS = Counter(
    "assistant_http_requests_total",
    "HTTP requests by route template and status code",
    ["method", "route", "status"],
)
HTTP_LATENCY = Histogram(
    "assistant_http_request_seconds",
    "Wall time spent serving HTTP requests",
    ["method", "route"],
)
TURN_COUNT = Counter(
    "rag_turns_total",
    "Answer turns by outcome",
    ["status"],
)
FRAGMENT_COUNT = Counter(
    "rag_fragments_total",
    "Answer fragments streamed to clients",
)


def _route_label(request: Request) -> str:
    # Route templates keep document ids out of label values.
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


def record_turn(status: str, fragments: int = 0) -> None:
    if not settings.metrics_enabled:
        return
    TURN_COUNT.labels(status).inc()
    if fragments:
        FRAGMENT_COUNT.inc(fragments)


async def metrics_middleware(request: Request, call_next):
    """Time every request except scrapes of the metrics endpoint itself."""
    if not settings.metrics_enabled or request.url.path == "/metrics":
        return await call_next(request)
    started = time.monotonic()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        route = _route_label(request)
        HTTP_REQUESTS.labels(request.method, route, str(status_code)).inc()
        HTTP_LATENCY.labels(request.method, route).observe(time.monotonic() - started)


def metrics_response() -> Response:
    if not settings.metrics_enabled:
        return Response(status_code=404)
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
