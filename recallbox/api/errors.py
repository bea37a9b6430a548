"""
Error Handlers
Custom exception handlers for FastAPI.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..ml.caching import RedisCacheError
from ..ml.errors import EmptyInput, ItemStoreError, OwnerIsolationViolation, SessionExpired

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base exception for API errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class SessionExpiredError(APIError):
    """Raised when a follow-up page is requested for a missing or expired session."""

    def __init__(self, session_key: str):
        super().__init__(
            message="Search session expired or not found; run a new search",
            status_code=status.HTTP_410_GONE,
            details={"session_key": session_key},
        )


class StorageUnavailableError(APIError):
    """Raised when the item store cannot be read."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(
            message=message, status_code=status.HTTP_503_SERVICE_UNAVAILABLE, details=details
        )


class InvalidRequestError(APIError):
    """Exception raised for invalid requests."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message=message, status_code=status.HTTP_400_BAD_REQUEST, details=details)


class FeatureDisabledError(APIError):
    """Raised when a feature flag turns an endpoint off."""

    def __init__(self, feature: str):
        super().__init__(
            message=f"{feature} is disabled",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details={"feature": feature},
        )


def _error_response(status_code: int, message: str, error_type: str, details=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"message": message, "type": error_type, "details": details or {}}},
    )


def setup_error_handlers(app: FastAPI) -> None:
    """
    Set up custom error handlers for the FastAPI app.

    Args:
        app: FastAPI application instance
    """

    @app.exception_handler(APIError)
    async def api_error_handler(request: Request, exc: APIError):
        """Handle custom API errors."""
        logger.error(
            f"API error: {exc.message}",
            extra={
                "status_code": exc.status_code,
                "details": exc.details,
                "path": request.url.path,
            },
        )
        return _error_response(exc.status_code, exc.message, exc.__class__.__name__, exc.details)

    @app.exception_handler(SessionExpired)
    async def session_expired_handler(request: Request, exc: SessionExpired):
        """Follow-up request after the search session timed out."""
        logger.info(f"Session expired: {exc.session_key}", extra={"path": request.url.path})
        error = SessionExpiredError(exc.session_key)
        return _error_response(error.status_code, error.message, "SessionExpired", error.details)

    @app.exception_handler(EmptyInput)
    async def empty_input_handler(request: Request, exc: EmptyInput):
        logger.warning(f"Empty input: {exc}", extra={"path": request.url.path})
        return _error_response(status.HTTP_400_BAD_REQUEST, str(exc), "EmptyInput")

    @app.exception_handler(ItemStoreError)
    async def item_store_error_handler(request: Request, exc: ItemStoreError):
        logger.error(f"Item store error: {exc}", extra={"path": request.url.path})
        return _error_response(
            status.HTTP_503_SERVICE_UNAVAILABLE, "Item store unavailable", "ItemStoreError"
        )

    @app.exception_handler(RedisCacheError)
    async def session_store_error_handler(request: Request, exc: RedisCacheError):
        logger.error(f"Session store error: {exc}", extra={"path": request.url.path})
        error = StorageUnavailableError("Session store unavailable")
        return _error_response(error.status_code, error.message, "SessionStoreError")

    @app.exception_handler(OwnerIsolationViolation)
    async def isolation_error_handler(request: Request, exc: OwnerIsolationViolation):
        logger.critical(
            f"Owner isolation violation: {exc}",
            extra={
                "path": request.url.path,
                "expected_owner": exc.expected_owner,
                "actual_owner": exc.actual_owner,
            },
        )
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "An unexpected error occurred",
            "InternalServerError",
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        """Handle request validation errors."""
        logger.warning(f"Validation error: {exc}", extra={"path": request.url.path})

        errors = []
        for error in exc.errors():
            errors.append(
                {
                    "loc": error.get("loc", []),
                    "msg": str(error.get("msg", "")),
                    "type": error.get("type", ""),
                }
            )

        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": {
                    "message": "Request validation failed",
                    "type": "ValidationError",
                    "details": errors,
                }
            },
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        """Handle value errors."""
        logger.warning(f"Value error: {exc}", extra={"path": request.url.path})
        return _error_response(status.HTTP_400_BAD_REQUEST, str(exc), "ValueError")

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.error(f"Unexpected error: {exc}", exc_info=True, extra={"path": request.url.path})
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "An unexpected error occurred",
            "InternalServerError",
        )
