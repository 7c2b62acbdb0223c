"""Custom exception classes for the External API Gateway."""

from typing import Any


class GatewayError(Exception):
    """Base exception for the gateway."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize exception.

        Args:
            message: Human-readable error message
            status_code: HTTP status code
            error_code: Machine-readable error code
            details: Additional error details
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}


class InvalidApiKeyError(GatewayError):
    """Raised when the presented credential is unknown, revoked or expired (401)."""

    def __init__(
        self,
        message: str = "Invalid or inactive API key",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=401,
            error_code="INVALID_API_KEY",
            details=details,
        )


class ForbiddenError(GatewayError):
    """Raised when access to the admin API is denied (403)."""

    def __init__(
        self,
        message: str = "Forbidden: Access denied",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=403,
            error_code="FORBIDDEN",
            details=details,
        )


class InsufficientPermissionsError(GatewayError):
    """Raised when a key lacks the permission for an operation (403)."""

    def __init__(
        self,
        message: str = "Insufficient permissions for this operation",
        resource: str | None = None,
        action: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize InsufficientPermissionsError.

        Args:
            message: Error message
            resource: Resource that was requested
            action: Action that was requested
            details: Additional error details
        """
        error_details = details or {}
        if resource:
            error_details["resource"] = resource
        if action:
            error_details["action"] = action
        super().__init__(
            message=message,
            status_code=403,
            error_code="INSUFFICIENT_PERMISSIONS",
            details=error_details,
        )


class RateLimitExceededError(GatewayError):
    """Raised when rate limit is exceeded (429)."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: int = 60,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize RateLimitExceededError.

        Args:
            message: Error message
            retry_after: Seconds until retry is allowed
            details: Additional error details
        """
        error_details = details or {}
        error_details["retryAfter"] = retry_after
        super().__init__(
            message=message,
            status_code=429,
            error_code="RATE_LIMIT_EXCEEDED",
            details=error_details,
        )
        self.retry_after = retry_after


class NotFoundError(GatewayError):
    """Raised when a resource or operation does not exist (404)."""

    def __init__(
        self,
        message: str = "Resource not found",
        resource: str | None = None,
        resource_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize NotFoundError.

        Args:
            message: Error message
            resource: Resource name that was requested
            resource_id: Identifier that was not found
            details: Additional error details
        """
        error_details = details or {}
        if resource:
            error_details["resource"] = resource
        if resource_id:
            error_details["id"] = resource_id
        super().__init__(
            message=message,
            status_code=404,
            error_code="NOT_FOUND",
            details=error_details,
        )


class InvalidRequestError(GatewayError):
    """Raised when a request is malformed (400)."""

    def __init__(
        self,
        message: str = "Invalid request",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=400,
            error_code="VALIDATION_ERROR",
            details=details,
        )


class RequestTooLargeError(GatewayError):
    """Raised when request payload exceeds size limit (413)."""

    def __init__(
        self,
        message: str = "Request payload too large",
        max_size: str = "512KB",
        details: dict[str, Any] | None = None,
    ) -> None:
        error_details = details or {}
        error_details["max_size"] = max_size
        super().__init__(
            message=message,
            status_code=413,
            error_code="PAYLOAD_TOO_LARGE",
            details=error_details,
        )


class InternalError(GatewayError):
    """Raised for unexpected failures inside a resource handler (500)."""

    def __init__(
        self,
        message: str = "Internal server error",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=500,
            error_code="INTERNAL_ERROR",
            details=details,
        )


_STATUS_BY_CODE: dict[str, int] = {
    "INVALID_API_KEY": 401,
    "FORBIDDEN": 403,
    "INSUFFICIENT_PERMISSIONS": 403,
    "NOT_FOUND": 404,
    "VALIDATION_ERROR": 400,
    "PAYLOAD_TOO_LARGE": 413,
    "RATE_LIMIT_EXCEEDED": 429,
    "INTERNAL_ERROR": 500,
}


def status_for_code(error_code: str) -> int:
    """
    Map a stable error code to its HTTP status.

    Args:
        error_code: Machine-readable error code

    Returns:
        HTTP status code (500 for unknown codes)
    """
    return _STATUS_BY_CODE.get(error_code, 500)
