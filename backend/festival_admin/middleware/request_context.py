from __future__ import annotations

import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ..logging_context import pop_log_context, push_request_context


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Populate ContextVars with the request id for structured logging."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        token = push_request_context(request_id)
        request.state.request_id = request_id
        try:
            response: Response = await call_next(request)
        finally:
            pop_log_context(token)
        response.headers.setdefault("X-Request-ID", request_id)
        return response
