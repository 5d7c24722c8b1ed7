from typing import Dict, Any, Optional
import logging

import httpx

logger = logging.getLogger(__name__)


class BaseClientException(Exception):
    """Base class for client exceptions"""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.error_code = error_code
        super().__init__(self.message)


class TransportError(BaseClientException):
    """The request never produced an HTTP response"""

    def __init__(
        self,
        message: str = "Network request failed",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=None,
            details=details,
            error_code=error_code or "TRANSPORT_ERROR"
        )


class ApiError(BaseClientException):
    """Exception for non-2xx responses"""

    def __init__(
        self,
        message: str = "Operation failed",
        status_code: Optional[int] = httpx.codes.BAD_REQUEST,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status_code,
            details=details,
            error_code=error_code or "API_ERROR"
        )


class AuthenticationError(ApiError):
    """Session missing or expired"""

    def __init__(self, message: str = "Unauthorized", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=httpx.codes.UNAUTHORIZED,
            details=details,
            error_code="AUTHENTICATION_ERROR"
        )


class AuthorizationError(ApiError):
    def __init__(self, message: str = "Access denied", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=httpx.codes.FORBIDDEN,
            details=details,
            error_code="AUTHORIZATION_ERROR"
        )


class NotFoundError(ApiError):
    def __init__(self, message: str = "Resource not found", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=httpx.codes.NOT_FOUND,
            details=details,
            error_code="NOT_FOUND_ERROR"
        )


class ConflictError(ApiError):
    def __init__(self, message: str = "Resource conflict", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=httpx.codes.CONFLICT,
            details=details,
            error_code="CONFLICT_ERROR"
        )


class ServerError(ApiError):
    def __init__(
        self,
        message: str = "Internal Server Error",
        status_code: int = httpx.codes.INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            status_code=status_code,
            details=details,
            error_code="SERVER_ERROR"
        )


class InvalidResponseError(ApiError):
    """A 2xx response whose body does not match the expected shape"""

    def __init__(
        self,
        message: str = "Unexpected response from server",
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            status_code=status_code,
            details=details,
            error_code="INVALID_RESPONSE_ERROR"
        )


class FormValidationError(BaseClientException):
    """Client-side validation failure, raised before any request is made"""

    def __init__(
        self,
        message: str = "Please fill in all required fields",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=None,
            details=details,
            error_code=error_code or "VALIDATION_ERROR"
        )


STATUS_MAPPING = {
    httpx.codes.UNAUTHORIZED: AuthenticationError,
    httpx.codes.FORBIDDEN: AuthorizationError,
    httpx.codes.NOT_FOUND: NotFoundError,
    httpx.codes.CONFLICT: ConflictError,
}


def extract_error_message(response: httpx.Response) -> Optional[str]:
    """Pull a human readable message out of an error body, if there is one"""
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        for key in ("error", "message", "detail"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    return None


def error_from_response(response: httpx.Response, fallback: str = "Operation failed") -> ApiError:
    """Convert a non-2xx response into the matching ApiError subclass"""
    message = extract_error_message(response) or fallback
    details = {
        "method": response.request.method,
        "url": str(response.request.url),
        "status_code": response.status_code,
    }

    exception_class = STATUS_MAPPING.get(response.status_code)
    if exception_class is not None:
        return exception_class(message=message, details=details)
    if response.status_code >= 500:
        return ServerError(message=message, status_code=response.status_code, details=details)
    return ApiError(message=message, status_code=response.status_code, details=details)


def handle_transport_error(error: Exception, operation: str = "request") -> TransportError:
    """Handle httpx transport failures"""
    logger.error(f"Transport error during {operation}: {error}")

    error_message = "Network request failed"
    if isinstance(error, httpx.TimeoutException):
        error_message = "Request timed out"
    elif isinstance(error, httpx.ConnectError):
        error_message = "Could not connect to server"

    return TransportError(
        message=error_message,
        details={"operation": operation, "original_error": str(error)},
    )


EXCEPTION_MAPPING = {
    "ValueError": FormValidationError,
    "TypeError": FormValidationError,
    "KeyError": InvalidResponseError,
    "ValidationError": InvalidResponseError,
    "ConnectionError": TransportError,
    "TimeoutError": TransportError,
}


def map_exception_to_custom(error: Exception) -> BaseClientException:
    """Map standard exceptions to client exceptions"""
    error_type = type(error).__name__

    if isinstance(error, httpx.TransportError):
        return handle_transport_error(error)

    if error_type in EXCEPTION_MAPPING:
        custom_exception_class = EXCEPTION_MAPPING[error_type]
        return custom_exception_class(
            message=str(error),
            details={"original_error": str(error)},
        )

    return BaseClientException(
        message="An unexpected error occurred",
        details={"original_error": str(error)},
        error_code="UNEXPECTED_ERROR"
    )


class ErrorHandler:
    """Context manager for consistent error handling"""

    def __init__(self, operation: str, log_errors: bool = True):
        self.operation = operation
        self.log_errors = log_errors

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None and issubclass(exc_type, Exception):
            if self.log_errors:
                logger.error(f"Error in {self.operation}: {exc_val}")

            if not issubclass(exc_type, BaseClientException):
                custom_exception = map_exception_to_custom(exc_val)
                custom_exception.details.setdefault("operation", self.operation)
                raise custom_exception from exc_val

        return False
