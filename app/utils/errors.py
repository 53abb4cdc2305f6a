from typing import Optional
import traceback

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .logging import get_logger
from .responses import ResponseBuilder

logger = get_logger()


class AppError(Exception):
    """Base for errors carrying a machine readable code and the HTTP status to answer with."""

    default_error_code = "APP_ERROR"
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, error_code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_error_code


class BusinessLogicError(AppError):
    default_error_code = "BLOC_ERROR"
    http_status = status.HTTP_400_BAD_REQUEST


class InvalidLocationError(AppError, ValueError):
    """A location is not a known IANA timezone identifier."""

    default_error_code = "INVALID_LOCATION"
    http_status = status.HTTP_400_BAD_REQUEST


class TaskStoreError(AppError):
    """The delayed task store or the outcome sets are unreachable."""

    default_error_code = "TASK_STORE_ERROR"
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE


class EligibilitySourceError(AppError):
    """User records cannot be read or their flags updated."""

    default_error_code = "ELIGIBILITY_SOURCE_ERROR"
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE


class NotificationDeliveryError(AppError):
    """A call to the email service did not deliver the message."""

    default_error_code = "DELIVERY_ERROR"
    http_status = status.HTTP_502_BAD_GATEWAY


class DeliveryNetworkError(NotificationDeliveryError):
    default_error_code = "DELIVERY_NETWORK_ERROR"


class DeliveryTimeoutError(NotificationDeliveryError):
    default_error_code = "DELIVERY_TIMEOUT"


class DeliveryStatusError(NotificationDeliveryError):
    default_error_code = "DELIVERY_BAD_STATUS"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        # Status returned by the email service
        self.status_code = status_code


def setup_error_handlers(app: FastAPI):
    """Map exceptions to the standard error response."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        logger.warning(f"HTTP Exception: {exc.status_code} - {exc.detail}")
        return ResponseBuilder.error(
            request=request,
            message=str(exc.detail),
            error_code="HTTP_ERROR",
            status_code=exc.status_code,
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        logger.warning(f"Request Validation Error: {exc.errors()}")

        formatted_errors = [
            {
                "field": " -> ".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            }
            for error in exc.errors()
        ]

        return ResponseBuilder.error(
            request=request,
            message="Request validation failed",
            errors=formatted_errors,
            error_code="VALIDATION_ERROR",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        )

    @app.exception_handler(ValidationError)
    async def pydantic_validation_exception_handler(
        request: Request, exc: ValidationError
    ):
        logger.error(f"Pydantic Validation Error: {exc.errors()}")

        return ResponseBuilder.error(
            request=request,
            message="Data validation failed",
            error_code="INTERNAL_VALIDATION_ERROR",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    @app.exception_handler(SQLAlchemyError)
    async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError):
        logger.error(f"SQLAlchemy Error: {exc}")

        # Internal database details stay in the logs
        return ResponseBuilder.error(
            request=request,
            message="A database error occurred",
            error_code="DATABASE_ERROR",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        logger.error(f"{type(exc).__name__}: {exc.message}")

        return ResponseBuilder.error(
            request=request,
            message=exc.message,
            error_code=exc.error_code,
            status_code=exc.http_status,
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle all other unhandled exceptions"""
        logger.error(f"Unhandled Exception: {exc}\n{traceback.format_exc()}")

        return ResponseBuilder.error(
            request=request,
            message="An internal server error occurred",
            error_code="INTERNAL_ERROR",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
