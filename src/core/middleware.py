"""HTTP middleware binding a logging context to every request."""

import time
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from src.core.context import (
    clear_context,
    set_correlation_id,
    set_request_id,
    set_trace_id,
)
from src.core.logging import get_logger


logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def trace_id_from(request: Request) -> str | None:
    """Trace id from ``X-Trace-ID`` or the W3C ``traceparent`` header.

    traceparent is ``version-traceid-parentid-flags``.
    """
    if trace_id := request.headers.get("X-Trace-ID"):
        return trace_id
    parts = request.headers.get("traceparent", "").split("-")
    return parts[1] if len(parts) == 4 and parts[1] else None  # noqa: PLR2004


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind request, trace and correlation ids, and log each request.

    A caller-supplied ``X-Request-ID`` is reused and always echoed back.
    WebSocket sessions bind their own context in the realtime router.
    """

    def __init__(
        self,
        app: ASGIApp,
        log_requests: bool = True,
        exclude_paths: list[str] | None = None,
    ) -> None:
        super().__init__(app)
        self.log_requests = log_requests
        self.exclude_paths = tuple(exclude_paths or ["/health"])

    def _bind_context(self, request: Request) -> str:
        request_id = set_request_id(request.headers.get(REQUEST_ID_HEADER))
        set_trace_id(trace_id_from(request))
        set_correlation_id(request.headers.get("X-Correlation-ID"))
        request.state.request_id = request_id
        return request_id

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        started = time.perf_counter()
        request_id = self._bind_context(request)
        path = request.url.path
        logged = self.log_requests and not path.startswith(self.exclude_paths)

        def elapsed_ms() -> float:
            return round((time.perf_counter() - started) * 1000, 2)

        if logged:
            logger.info(
                "request_started",
                method=request.method,
                path=path,
                client_ip=request.client.host if request.client else None,
            )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(
                "request_failed",
                method=request.method,
                path=path,
                error_type=type(e).__name__,
                duration_ms=elapsed_ms(),
            )
            raise
        else:
            if logged:
                log = logger.warning if response.status_code >= 400 else logger.info  # noqa: PLR2004
                log(
                    "request_completed",
                    method=request.method,
                    path=path,
                    status_code=response.status_code,
                    duration_ms=elapsed_ms(),
                )
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            clear_context()
