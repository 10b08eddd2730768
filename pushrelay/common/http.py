"""Shared HTTP plumbing: request context middleware and JSON error bodies."""

from time import perf_counter
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from pushrelay.common.config import settings
from pushrelay.common.errors import RelayError
from pushrelay.common.logging import request_id_ctx, user_id_ctx
from pushrelay.common.metrics import http_request_duration_seconds, http_requests_total


def elapsed_ms(start: float) -> int:
    """Milliseconds since a `perf_counter()` reading."""

    return int((perf_counter() - start) * 1000)


def error_response(exc: Exception, start: float) -> JSONResponse:
    """Render any exception as `{ok: false, error, duration_ms}`."""

    status_code = exc.status_code if isinstance(exc, RelayError) else 500
    content = {"ok": False, "error": str(exc), "duration_ms": elapsed_ms(start)}
    if isinstance(exc, RelayError) and exc.details is not None:
        content["details"] = exc.details
    return JSONResponse(status_code=status_code, content=content)


def install_request_middleware(app: FastAPI) -> None:
    """Assign a request id and record count/latency for every HTTP call."""

    @app.middleware("http")
    async def request_middleware(request: Request, call_next):
        start = perf_counter()
        route = request.url.path
        method = request.method
        status_code = 500
        request_token = request_id_ctx.set(request.headers.get("x-request-id") or str(uuid4()))
        user_token = user_id_ctx.set("")
        try:
            response = await call_next(request)
            status_code = response.status_code
            route_obj = request.scope.get("route")
            if route_obj is not None and getattr(route_obj, "path", None):
                route = route_obj.path
            response.headers["x-request-id"] = request_id_ctx.get()
            return response
        finally:
            elapsed = max(0.0, perf_counter() - start)
            http_request_duration_seconds.labels(
                service=settings.service_name,
                route=route,
                method=method,
            ).observe(elapsed)
            http_requests_total.labels(
                service=settings.service_name,
                route=route,
                method=method,
                status_code=str(status_code),
            ).inc()
            request_id_ctx.reset(request_token)
            user_id_ctx.reset(user_token)
