from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class TraceabilityError(Exception):
    """Base for every recoverable error raised by the traceability core."""

    code = "traceability_error"
    status_code = 400

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code


class NotFound(TraceabilityError):
    code = "not_found"
    status_code = 404


class Forbidden(TraceabilityError):
    code = "forbidden"
    status_code = 403


class InvalidTransition(TraceabilityError):
    code = "invalid_transition"
    status_code = 409


class DuplicateBatchId(TraceabilityError):
    code = "duplicate_batch_id"
    status_code = 409


class InvalidQuantity(TraceabilityError):
    code = "invalid_quantity"
    status_code = 422


class CertificateRequired(TraceabilityError):
    code = "certificate_required"
    status_code = 409


class InvalidCertificate(TraceabilityError):
    code = "invalid_certificate"
    status_code = 422


class InvalidAlert(TraceabilityError):
    code = "invalid_alert"
    status_code = 422


class DecodeError(TraceabilityError):
    code = "decode_error"
    status_code = 400


class MalformedPayload(DecodeError):
    code = "malformed_payload"
    status_code = 400


class SchemaMismatch(DecodeError):
    code = "schema_mismatch"
    status_code = 422


def _error_body(code: str, message: str, request_id: str | None) -> dict:
    return {"error": {"code": code, "message": message, "request_id": request_id}}


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(TraceabilityError)
    async def traceability_exception_handler(request: Request, exc: TraceabilityError):
        request_id = getattr(request.state, "request_id", None)
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.code, exc.message, request_id),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        request_id = getattr(request.state, "request_id", None)
        return JSONResponse(
            status_code=422,
            content=_error_body("validation_error", "Invalid request payload.", request_id),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        request_id = getattr(request.state, "request_id", None)
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body("http_error", str(exc.detail), request_id),
            headers=exc.headers,
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        request_id = getattr(request.state, "request_id", None)
        logger.exception("Unhandled server error: %s", exc)
        return JSONResponse(
            status_code=500,
            content=_error_body(
                "internal_server_error",
                "Unexpected server error. Contact support with request_id.",
                request_id,
            ),
        )
