import traceback
from typing import Any

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse

from app.core.config import get_settings


class AppError(Exception):
    """Base application error with consistent schema."""

    def __init__(
        self,
        message: str,
        code: str = "ERROR",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class UnauthorizedError(AppError):
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, code="UNAUTHORIZED", status_code=status.HTTP_401_UNAUTHORIZED)


class ForbiddenError(AppError):
    def __init__(self, message: str = "Forbidden"):
        super().__init__(message, code="FORBIDDEN", status_code=status.HTTP_403_FORBIDDEN)


class NotFoundError(AppError):
    def __init__(self, message: str = "Not found"):
        super().__init__(message, code="NOT_FOUND", status_code=status.HTTP_404_NOT_FOUND)


class ConflictError(AppError):
    def __init__(self, message: str = "Conflict", details: dict[str, Any] | None = None):
        super().__init__(message, code="CONFLICT", status_code=status.HTTP_409_CONFLICT, details=details)


class BadRequestError(AppError):
    def __init__(self, message: str = "Bad request", details: dict[str, Any] | None = None):
        super().__init__(message, code="BAD_REQUEST", status_code=status.HTTP_400_BAD_REQUEST, details=details)


class UploadError(AppError):
    def __init__(self, message: str = "Image upload failed", details: dict[str, Any] | None = None):
        super().__init__(message, code="UPLOAD_ERROR", status_code=status.HTTP_502_BAD_GATEWAY, details=details)


class GatewayError(AppError):
    """Payment provider call failed. Upstream status/body go in details (operators only)."""

    def __init__(
        self,
        message: str = "Payment provider request failed",
        upstream_status: int | None = None,
        upstream_body: Any = None,
        code: str = "GATEWAY_ERROR",
    ):
        self.upstream_status = upstream_status
        self.upstream_body = upstream_body
        super().__init__(
            message,
            code=code,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details={"upstream_status": upstream_status, "upstream_body": upstream_body},
        )


class GatewayAuthError(GatewayError):
    """Could not obtain a provider access token."""

    def __init__(
        self,
        message: str = "Payment provider authentication failed",
        upstream_status: int | None = None,
        upstream_body: Any = None,
    ):
        super().__init__(message, upstream_status, upstream_body, code="GATEWAY_AUTH_ERROR")


class GatewayAuthExpired(GatewayError):
    """Provider rejected a previously valid token (401)."""

    def __init__(
        self,
        message: str = "Payment provider token rejected",
        upstream_status: int | None = 401,
        upstream_body: Any = None,
    ):
        super().__init__(message, upstream_status, upstream_body, code="GATEWAY_AUTH_EXPIRED")


def _envelope(request: Request, error_type: str, status_code: int, message: str) -> dict[str, Any]:
    body: dict[str, Any] = {
        "success": False,
        "errorType": error_type,
        "status": status_code,
        "message": message,
    }
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return body


def error_response(request: Request, exc: AppError) -> ORJSONResponse:
    body = _envelope(request, type(exc).__name__, exc.status_code, exc.message)
    body["code"] = exc.code
    if exc.details and (exc.status_code < 500 or get_settings().debug):
        body["details"] = exc.details
    return ORJSONResponse(status_code=exc.status_code, content=body)


async def app_exception_handler(request: Request, exc: AppError) -> ORJSONResponse:
    if exc.status_code >= 500:
        from app.core.logging import get_logger
        get_logger(__name__).warning(
            "app_error",
            error_type=type(exc).__name__,
            message=exc.message,
            details=exc.details,
        )
    return error_response(request, exc)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> ORJSONResponse:
    errors = exc.errors()
    message = ", ".join(
        f"{'.'.join(str(p) for p in e.get('loc', ()) if p != 'body')}: {e.get('msg')}" for e in errors
    ) or "Validation error"
    body = _envelope(request, "ValidationError", status.HTTP_400_BAD_REQUEST, message)
    body["code"] = "VALIDATION_ERROR"
    body["details"] = {"errors": [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in errors]}
    return ORJSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body)


async def generic_exception_handler(request: Request, exc: Exception) -> ORJSONResponse:
    from app.core.logging import get_logger
    get_logger(__name__).exception("unhandled_exception", exc_info=exc)
    body = _envelope(request, "InternalError", status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")
    body["code"] = "INTERNAL_ERROR"
    if get_settings().debug:
        body["message"] = str(exc) or body["message"]
        body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return ORJSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=body,
    )
