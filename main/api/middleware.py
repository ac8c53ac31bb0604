"""
Middleware for request logging and error handling.
"""
import logging
import time
from uuid import uuid4

from django.http import JsonResponse

from main.domain.coins import InsufficientBalance, InvalidAmount
from main.domain.errors import DuplicateRequest, InvalidState, NotFound
from main.domain.product import OutOfStock
from main.infra.json_store import PersistenceError, StaleDocumentError

logger = logging.getLogger(__name__)


class ValidationError(Exception):
    """Custom validation error."""
    def __init__(self, message: str, code: str = "VALIDATION_ERROR"):
        self.message = message
        self.code = code
        super().__init__(self.message)


class ErrorHandler:
    """Error handler for API responses."""

    ERROR_CODES = {
        "VALIDATION_ERROR": 400,
        "INVALID_STATE": 400,
        "NOT_FOUND": 404,
        "DUPLICATE_REQUEST": 409,
        "CONFLICT": 409,
        "OUT_OF_STOCK": 409,
        # domain failure reported in the payload, not as an HTTP error
        "INSUFFICIENT_BALANCE": 200,
        "PERSISTENCE_ERROR": 500,
        "INTERNAL_ERROR": 500,
    }

    # Order matters: subclasses of ValueError before ValueError itself.
    EXCEPTION_CODES = (
        (ValidationError, None),
        (InsufficientBalance, "INSUFFICIENT_BALANCE"),
        (InvalidAmount, "VALIDATION_ERROR"),
        (InvalidState, "INVALID_STATE"),
        (OutOfStock, "OUT_OF_STOCK"),
        (NotFound, "NOT_FOUND"),
        (DuplicateRequest, "DUPLICATE_REQUEST"),
        (StaleDocumentError, "CONFLICT"),
        (ValueError, "VALIDATION_ERROR"),
    )

    @classmethod
    def classify(cls, error: Exception) -> str | None:
        for exc_type, code in cls.EXCEPTION_CODES:
            if isinstance(error, exc_type):
                return code or error.code
        return None

    @classmethod
    def handle_error(cls, error: Exception) -> JsonResponse:
        """Handle error and return JSON response."""
        code = cls.classify(error)
        if code is not None:
            payload = {"success": False, "error": str(error), "code": code}
            if isinstance(error, OutOfStock):
                payload["productIds"] = error.product_ids
            return JsonResponse(payload, status=cls.ERROR_CODES.get(code, 400))

        if isinstance(error, PersistenceError):
            logger.error(
                "persistence_error",
                extra={"error_message": str(error)},
                exc_info=True,
            )
            return JsonResponse(
                {"success": False, "error": "Storage is unavailable", "code": "PERSISTENCE_ERROR"},
                status=500,
            )

        # Log unexpected errors
        logger.error(
            "unexpected_error",
            extra={
                "error_type": type(error).__name__,
                "error_message": str(error),
            },
            exc_info=True,
        )

        return JsonResponse(
            {"success": False, "error": "Internal server error", "code": "INTERNAL_ERROR"},
            status=500,
        )


class RequestLoggingMiddleware:
    """Attach a request id and log every request/response pair."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        request.request_id = request.headers.get("X-Request-ID") or str(uuid4())
        started = time.monotonic()
        logger.info(
            "http_request",
            extra={"request_id": request.request_id, "method": request.method, "path": request.path},
        )

        response = self.get_response(request)

        response["X-Request-ID"] = request.request_id
        logger.info(
            "http_response",
            extra={
                "request_id": request.request_id,
                "status": response.status_code,
                "duration_ms": round((time.monotonic() - started) * 1000, 1),
            },
        )
        return response
