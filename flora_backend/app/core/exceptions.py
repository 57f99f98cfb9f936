"""
Application errors and the handlers that render them.

Every error leaves the API as ``{"error_code", "message", "details"}`` so the
mobile client can branch on ``error_code`` alone.
"""

import logging
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Any, Dict, Optional

logger = logging.getLogger("flora.errors")

# Error codes for HTTPExceptions raised by FastAPI itself or by auth guards
HTTP_ERROR_CODES = {
    400: "ERR_BAD_REQUEST",
    401: "ERR_UNAUTHORIZED",
    403: "ERR_FORBIDDEN",
    404: "ERR_NOT_FOUND",
    500: "ERR_INTERNAL_SERVER",
}


class AppException(Exception):
    """Base class for errors with a stable error code and HTTP status."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code = "ERR_INTERNAL_SERVER"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ResourceNotFoundError(AppException):
    """An order (or other resource) does not exist in the caller's organization."""

    status_code = status.HTTP_404_NOT_FOUND
    error_code = "ERR_NOT_FOUND"

    def __init__(self, resource: str, resource_id: Any = None):
        if resource_id is None:
            message = f"{resource} not found"
        else:
            message = f"{resource} {resource_id} not found"
        super().__init__(message, {"resource": resource, "id": resource_id})


class InvalidPositionError(AppException):
    """Latitude/longitude missing, non-numeric, non-finite or out of range."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "ERR_POSITION_INVALID"

    def __init__(self, message: str = "lat and lon are required numeric values",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class MissingAddressError(AppException):
    """Order has no delivery address to geocode."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "ERR_GEOCODE_NO_ADDRESS"

    def __init__(self, order_id: Any):
        super().__init__("Delivery address is not set", {"order_id": order_id})


class UpstreamGeocodeError(AppException):
    """Geocoding provider unreachable, failing, or returning garbage."""

    status_code = status.HTTP_502_BAD_GATEWAY
    error_code = "ERR_GEOCODE_UPSTREAM"

    def __init__(self, message: str = "Geocoding provider error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


def error_response(status_code: int, error_code: str, message: Any, details: Optional[dict] = None,
                   headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error_code": error_code, "message": message, "details": details or {}},
        headers=headers,
    )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    return error_response(exc.status_code, exc.error_code, exc.message, exc.details)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return error_response(
        exc.status_code,
        HTTP_ERROR_CODES.get(exc.status_code, "ERR_UNKNOWN"),
        exc.detail,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # ``ctx`` may carry exception instances that are not JSON serializable
    errors = [
        {key: value for key, value in error.items() if key in ("type", "loc", "msg")}
        for error in exc.errors()
    ]
    return error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY, "ERR_VALIDATION", "Validation error", {"errors": errors}
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR, "ERR_INTERNAL_SERVER", "An internal server error occurred"
    )
