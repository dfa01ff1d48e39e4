"""
Error taxonomy for the API. Every failure leaves the server as ``{"error": message}``.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

GENERIC_SERVER_ERROR = "An error occurred. Please try again later."


class ApiError(Exception):
    status_code: int = 400
    default_message: str = "Bad request"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ApiError):
    """Malformed input; the message is safe to show."""
    status_code = 400
    default_message = "Invalid request"


class PreconditionError(ApiError):
    status_code = 400
    default_message = "Request cannot be completed"


class RateLimitError(ApiError):
    status_code = 429
    default_message = "Too many OTP requests. Please try again in a few minutes."


class VerificationError(ApiError):
    """Wrong, expired, already used or never issued OTP, or bad admin credentials."""
    status_code = 401
    default_message = "Invalid or expired OTP. Please request a new one."


class DeliveryError(ApiError):
    status_code = 502
    default_message = "Could not deliver the verification code. Please try again later."


class ServerError(ApiError):
    status_code = 500
    default_message = GENERIC_SERVER_ERROR


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return error_response(exc.status_code, exc.message)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info("Rejected request body on %s: %s", request.url.path, exc.errors())
    return error_response(400, "Invalid request body")


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(500, GENERIC_SERVER_ERROR)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    # must stay sync: SlowAPIMiddleware calls it without awaiting
    return error_response(429, "Too many requests. Please try again later.")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
