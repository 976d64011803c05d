"""Per-request logging context held in contextvars.

HTTP requests are bound by ``RequestContextMiddleware``; WebSocket sessions
use ``RequestContext`` for their lifetime. ``get_context`` feeds the
structlog processor that stamps these ids onto every event.
"""

from contextvars import ContextVar, Token
from typing import Any
from uuid import uuid4


request_id_var: ContextVar[str] = ContextVar("request_id", default="")
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)
trace_id_var: ContextVar[str | None] = ContextVar("trace_id", default=None)
correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)

_CONTEXT_VARS: dict[str, ContextVar[Any]] = {
    "request_id": request_id_var,
    "user_id": user_id_var,
    "trace_id": trace_id_var,
    "correlation_id": correlation_id_var,
}


def get_request_id() -> str:
    return request_id_var.get()


def set_request_id(request_id: str | None = None) -> str:
    """Bind the request id, generating one when the caller sent none."""
    rid = request_id or str(uuid4())
    request_id_var.set(rid)
    return rid


def set_user_id(user_id: str | None) -> None:
    user_id_var.set(user_id)


def set_trace_id(trace_id: str | None) -> None:
    trace_id_var.set(trace_id)


def set_correlation_id(correlation_id: str | None) -> None:
    correlation_id_var.set(correlation_id)


def get_context() -> dict[str, Any]:
    """Bound ids, omitting the ones that are unset."""
    return {name: value for name, var in _CONTEXT_VARS.items() if (value := var.get())}


def clear_context() -> None:
    request_id_var.set("")
    for var in (user_id_var, trace_id_var, correlation_id_var):
        var.set(None)


class RequestContext:
    """Scope a request id and user id to a block, restoring them on exit.

    Usage:
        with RequestContext(user_id=principal.id):
            logger.info("subscription_opened")  # carries request_id, user_id
    """

    def __init__(self, request_id: str | None = None, user_id: str | None = None) -> None:
        self.request_id = request_id
        self.user_id = user_id
        self._tokens: list[tuple[ContextVar[Any], Token[Any]]] = []

    def __enter__(self) -> "RequestContext":
        self._tokens.append(
            (request_id_var, request_id_var.set(self.request_id or str(uuid4())))
        )
        if self.user_id is not None:
            self._tokens.append((user_id_var, user_id_var.set(self.user_id)))
        return self

    def __exit__(self, *_: object) -> None:
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)
