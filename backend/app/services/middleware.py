"""Per-request access log for the entry screens and dashboard."""
import os
import time
import uuid
import logging
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("nursing-api.access")

QUIET_PATHS = {"/health"}
SLOW_REQUEST_MS = float(os.getenv("SLOW_REQUEST_MS", "2000"))


def request_context(request: Request) -> dict:
    """Ward / department / date query parameters, renamed to the log fields."""
    params = request.query_params
    context = {}
    if params.get("wardId"):
        context["ward_id"] = params["wardId"]
    if params.get("deptType"):
        context["dept_type"] = params["deptType"]
    if params.get("date"):
        context["record_date"] = params["date"]
    return context


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """
    One log line per request with its X-Request-ID and duration.

    The caller's X-Request-ID is reused when present so a save on an entry
    screen can be traced end to end. Slow requests log at WARNING and server
    errors at ERROR; /health is not logged.
    """

    def __init__(self, app, slow_ms: float = SLOW_REQUEST_MS):
        super().__init__(app)
        self.slow_ms = slow_ms

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        request.state.request_id = request_id
        started = time.perf_counter()

        response: Response = await call_next(request)

        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(duration_ms)

        if request.url.path in QUIET_PATHS:
            return response

        if response.status_code >= 500:
            level = logging.ERROR
        elif duration_ms >= self.slow_ms:
            level = logging.WARNING
        else:
            level = logging.INFO
        logger.log(
            level,
            f"{request.method} {request.url.path} {response.status_code}",
            extra={
                "http_method": request.method,
                "http_path": request.url.path,
                "http_status": response.status_code,
                "request_id": request_id,
                "duration_ms": duration_ms,
                **request_context(request),
            },
        )
        return response
