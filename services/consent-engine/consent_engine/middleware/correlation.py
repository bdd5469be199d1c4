from __future__ import annotations
import logging
import time
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from consent_engine.core.correlation import bind_consent_id, reset_consent_id, reset_correlation_id, set_correlation_id

log = logging.getLogger("consent_engine.access")

class CorrelationMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable):
        # Accept the caller's X-Request-ID (FAPI clients send x-fapi-interaction-id) or mint one
        inbound = request.headers.get("X-Request-ID") or request.headers.get("x-fapi-interaction-id")
        cid, token = set_correlation_id(inbound)
        consent_token = bind_consent_id(None)
        request.state.correlation_id = cid

        start = time.perf_counter()
        status_code = 500
        try:
            response: Response = await call_next(request)
            status_code = response.status_code
        finally:
            log.info(
                "request_completed",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": status_code,
                    "duration_ms": int((time.perf_counter() - start) * 1000),
                },
            )
            reset_consent_id(consent_token)
            reset_correlation_id(token)

        response.headers["X-Request-ID"] = cid
        response.headers["x-fapi-interaction-id"] = cid
        response.headers.setdefault("Cache-Control", "no-store")
        return response
