"""
BudgetDesk — Error Taxonomy & Handlers

Every failure is terminal for its request and rendered as
{"error", "code", "timestamp"[, "details"]}:

  UnauthorizedError  → 401  missing / invalid / expired token
  ForbiddenError     → 403  no organization, insufficient role
  ValidationError    → 400  bad input, with field-level details
  NotFoundError      → 404  missing entity or another tenant's entity
  ConflictError      → 409  duplicate email / slug
  anything else      → 500  generic message, traceback logged
"""
import logging
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


# ============================================================
# EXCEPTIONS
# ============================================================
class AppError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str = "Internal server error", details: list = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"


class UnauthorizedError(AppError):
    status_code = 401
    code = "UNAUTHORIZED"

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class ForbiddenError(AppError):
    status_code = 403
    code = "FORBIDDEN"

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message)


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, resource: str = "Resource"):
        super().__init__(f"{resource} not found")


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"


# ============================================================
# RESPONSE RENDERING
# ============================================================
def error_body(message: str, code: str, details: list = None) -> dict:
    body = {"error": message, "code": code, "timestamp": datetime.now().isoformat()}
    if details is not None:
        body["details"] = details
    return body


def field_details(errors: list) -> list:
    """Flatten pydantic error entries into [{field, message}]."""
    out = []
    for e in errors:
        loc = [str(p) for p in e.get("loc", ()) if p not in ("body", "query", "path")]
        out.append({"field": ".".join(loc), "message": e.get("msg", "Invalid value")})
    return out


async def _app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(error_body(exc.message, exc.code, exc.details), status_code=exc.status_code)


async def _request_validation_handler(request: Request, exc: RequestValidationError):
    details = field_details(exc.errors())
    logger.info("Validation failed on %s %s: %s", request.method, request.url.path, details)
    return JSONResponse(error_body("Invalid data", "VALIDATION_ERROR", details), status_code=400)


async def _pydantic_validation_handler(request: Request, exc: PydanticValidationError):
    details = field_details(exc.errors())
    return JSONResponse(error_body("Invalid data", "VALIDATION_ERROR", details), status_code=400)


async def _http_exception_handler(request: Request, exc: StarletteHTTPException):
    codes = {401: "UNAUTHORIZED", 403: "FORBIDDEN", 404: "NOT_FOUND", 405: "METHOD_NOT_ALLOWED"}
    code = codes.get(exc.status_code, "HTTP_ERROR")
    return JSONResponse(error_body(str(exc.detail), code), status_code=exc.status_code,
                        headers=getattr(exc, "headers", None))


async def _unhandled_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(error_body("Internal server error", "INTERNAL_ERROR"), status_code=500)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, _app_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(PydanticValidationError, _pydantic_validation_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(Exception, _unhandled_handler)
