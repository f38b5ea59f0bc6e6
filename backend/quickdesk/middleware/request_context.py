"""
Request context middleware for log correlation.

WHAT: Middleware that gives every request an id and the caller's address,
available anywhere during the request through a ContextVar.

WHY: Workflow logs ("Ticket <id> updated by user <id>") and the catch-all
error handler need a request id so a support engineer can follow one
request through the log and match it to the X-Request-ID the client saw.

HOW: Uses Starlette's BaseHTTPMiddleware. An incoming X-Request-ID header
is honoured (proxies often assign one); otherwise a UUID4 is generated.
"""

import uuid
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Optional, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


REQUEST_ID_HEADER = "X-Request-ID"


@dataclass(frozen=True)
class RequestContext:
    """
    Request-scoped data captured once at the edge.

    Fields:
    - request_id: Unique identifier for the request (for log correlation)
    - ip_address: Client's real IP (considering proxies)
    - path: Request path
    - method: HTTP method
    """

    request_id: str
    ip_address: str
    path: str
    method: str


_request_context: ContextVar[Optional[RequestContext]] = ContextVar(
    "request_context", default=None
)


def get_request_context() -> Optional[RequestContext]:
    """
    Get the current request context.

    Returns:
        RequestContext if within a request, None otherwise (background tasks)
    """
    return _request_context.get()


def get_request_id() -> str:
    """Request id for log lines; "-" outside a request (dispatcher, startup)."""
    context = _request_context.get()
    return context.request_id if context else "-"


def get_client_ip(request: Request) -> str:
    """
    Extract the real client IP address from a request.

    Checks X-Real-IP, then the first hop of X-Forwarded-For, then the
    socket peer.

    Args:
        request: The incoming request

    Returns:
        Client IP address as string
    """
    x_real_ip = request.headers.get("X-Real-IP")
    if x_real_ip:
        return x_real_ip.strip()

    x_forwarded_for = request.headers.get("X-Forwarded-For")
    if x_forwarded_for:
        # Format: "client, proxy1, proxy2"
        return x_forwarded_for.split(",")[0].strip()

    if request.client and request.client.host:
        return request.client.host

    return "unknown"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Middleware that captures and stores request context.

    Stores context in both request.state (for handlers) and a ContextVar
    (for services and DAOs without the request object), and echoes the
    request id back in the X-Request-ID response header.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())

        context = RequestContext(
            request_id=request_id,
            ip_address=get_client_ip(request),
            path=request.url.path,
            method=request.method,
        )
        request.state.context = context
        token = _request_context.set(context)

        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            _request_context.reset(token)
