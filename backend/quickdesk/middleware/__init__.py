"""
Middleware package.

WHY: Middleware provides cross-cutting concerns that apply to all requests.
"""

from quickdesk.middleware.request_context import (
    RequestContextMiddleware,
    RequestContext,
    get_request_context,
    get_request_id,
    get_client_ip,
)

__all__ = [
    "RequestContextMiddleware",
    "RequestContext",
    "get_request_context",
    "get_request_id",
    "get_client_ip",
]
