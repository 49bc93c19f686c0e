from __future__ import annotations

import logging
import time
import uuid

from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from rootra.core.auth import auth_required, resolve_user_from_headers

logger = logging.getLogger("rootra.access")


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = request_id
        logger.info(
            "%s %s -> %s in %.1fms [%s]",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            request_id,
        )
        return response


class AuthRequiredMiddleware(BaseHTTPMiddleware):
    """Reject unauthenticated writes early.

    Consumer verification (trace scan, QR decode) stays open so anyone holding
    a product can check it.
    """

    def __init__(self, app):
        super().__init__(app)
        self.exempt_paths = {"/health", "/api/v1/trace/scan", "/api/v1/qr/decode"}
        self.safe_methods = {"GET", "HEAD", "OPTIONS"}

    async def dispatch(self, request: Request, call_next) -> Response:
        if not auth_required():
            return await call_next(request)

        if request.method in self.safe_methods:
            return await call_next(request)

        if request.url.path in self.exempt_paths:
            return await call_next(request)

        if not request.url.path.startswith("/api/"):
            return await call_next(request)

        user = resolve_user_from_headers(request.headers)
        if not user:
            request_id = getattr(request.state, "request_id", None)
            return JSONResponse(
                status_code=401,
                content={
                    "error": {
                        "code": "authentication_required",
                        "message": "Authentication token required for write operations.",
                        "request_id": request_id,
                    }
                },
            )

        request.state.auth_user = user
        return await call_next(request)
