from __future__ import annotations

import logging
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from sessionkit.errors import CsrfError
from sessionkit.services.session_context import SessionContext
from sessionkit.services.session_manager import SessionManager
from sessionkit.utils.logging import current_request_id
from sessionkit.utils.metrics import CSRF_REJECTIONS

logger = logging.getLogger(__name__)


class SessionMiddleware(BaseHTTPMiddleware):
    """
    Session transport + CSRF middleware.
    1. Propagate / generate X-Request-ID into the log context
    2. Extract session, csrf and refresh values via the configured transport
    3. Reject state-changing requests whose CSRF header does not match (403)
    4. Issue a CSRF token when the client has none
    5. Expose a lazy SessionContext as request.state.session
    6. Apply the accumulated slot directives to the response
    """

    def __init__(self, app, session_manager: SessionManager):
        super().__init__(app)
        self._manager = session_manager

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("x-request-id") or uuid4().hex[:12]
        token = current_request_id.set(request_id)
        try:
            values = self._manager.transport.extract(request)

            guard = self._manager.csrf
            if guard.requires_check(request.method, request.url.path):
                submitted = request.headers.get(self._manager.config.csrf_submit_header)
                try:
                    guard.check(submitted, values.csrf)
                except CsrfError as e:
                    CSRF_REJECTIONS.labels(kind=e.kind.value).inc()
                    logger.warning("CSRF check failed: %s %s (%s)", request.method, request.url.path, e.kind.value)
                    # same body for every kind: no hint which check failed
                    response = JSONResponse({"detail": "Forbidden"}, status_code=403)
                    response.headers["X-Request-ID"] = request_id
                    return response

            context = SessionContext(self._manager, values)
            context.ensure_csrf_token()
            request.state.session = context

            response = await call_next(request)
            if not context.directives.is_empty:
                self._manager.transport.apply(response, context.directives)
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            current_request_id.reset(token)
