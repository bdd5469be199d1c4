from __future__ import annotations

import time
from typing import Iterable

from fastapi import APIRouter, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import PlainTextResponse

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

# Lifecycle counters
consents_created_total = Counter(
    "consents_created_total",
    "Total number of consents created (awaiting authorisation)"
)
consents_authorised_total = Counter(
    "consents_authorised_total",
    "Total number of consents moved to AUTHORISED"
)
consents_rejected_total = Counter(
    "consents_rejected_total",
    "Total number of consents moved to REJECTED, explicit or on read",
    labelnames=("rejected_by", "reason"),
)
consents_extended_total = Counter(
    "consents_extended_total",
    "Total number of consent expiration extensions"
)
consent_write_conflicts_total = Counter(
    "consent_write_conflicts_total",
    "Optimistic concurrency conflicts hit while persisting consents"
)

request_latency_seconds = Histogram(
    "request_latency_seconds",
    "HTTP request latency in seconds",
    labelnames=("route", "status_code"),
)

def inc_consents_created() -> None:
    consents_created_total.inc()

def inc_consents_authorised() -> None:
    consents_authorised_total.inc()

def inc_consents_rejected(rejected_by: str, reason: str) -> None:
    consents_rejected_total.labels(rejected_by=rejected_by, reason=reason).inc()

def inc_consents_extended() -> None:
    consents_extended_total.inc()

def inc_write_conflicts() -> None:
    consent_write_conflicts_total.inc()

class MetricsMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, exclude_routes: Iterable[str] | None = None):
        super().__init__(app)
        self.exclude_routes = set(exclude_routes or [])

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.exclude_routes:
            return await call_next(request)

        start = time.perf_counter()
        status_code = "500"
        try:
            response: Response = await call_next(request)
            status_code = str(response.status_code)
            return response
        finally:
            duration = time.perf_counter() - start
            request_latency_seconds.labels(
                route=self._resolve_route_template(request), status_code=status_code
            ).observe(duration)

    @staticmethod
    def _resolve_route_template(request: Request) -> str:
        # Route template keeps label cardinality low; raw path only for 404s
        route = request.scope.get("route")
        if route and getattr(route, "path", None):
            return route.path
        return request.url.path

router = APIRouter()

@router.get("/metrics", include_in_schema=False)
async def metrics_endpoint():
    return PlainTextResponse(content=generate_latest().decode("utf-8"), media_type=CONTENT_TYPE_LATEST)
