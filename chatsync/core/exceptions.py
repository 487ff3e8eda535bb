"""App-wide exception hierarchy.

Every failure the rendering layer can see is an AppException subclass carrying
its own status_code and error_type. Domain packages (auth, store, gateway, ...)
extend these base classes in their own exceptions module.
"""


class AppException(Exception):
    """Base exception for all application errors."""

    status_code: int = 500
    error_type: str = "internal_error"

    def __init__(self, message: str = "An unexpected error occurred"):
        self.message = message
        super().__init__(message)


# Authorization errors (403)
class AuthorizationError(AppException):
    """Base class for actions the viewer is not allowed to perform."""

    status_code = 403
    error_type = "authorization_error"

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


# Not found errors (404)
class NotFoundError(AppException):
    """Base class for resource not found errors."""

    status_code = 404
    error_type = "not_found"

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message)


# Conflict errors (409)
class ConflictError(AppException):
    """Base class for resource conflict errors."""

    status_code = 409
    error_type = "conflict"

    def __init__(self, message: str = "Resource conflict"):
        super().__init__(message)


# Validation errors (400)
class ValidationError(AppException):
    """Base class for validation errors."""

    status_code = 400
    error_type = "validation_error"

    def __init__(self, message: str = "Validation failed"):
        super().__init__(message)


# Rate limit errors (429)
class RateLimitError(AppException):
    """Raised when rate limit is exceeded."""

    status_code = 429
    error_type = "rate_limit_exceeded"

    def __init__(
        self,
        message: str = "Too many requests, please try again later",
        retry_after: int | None = None,
    ):
        self.retry_after = retry_after
        super().__init__(message)


# Capacity errors (503)
class CapacityError(AppException):
    """Raised when a bounded process-wide resource is exhausted."""

    status_code = 503
    error_type = "capacity_exceeded"

    def __init__(self, message: str = "Resource limit reached"):
        super().__init__(message)


# External service errors (502)
class ExternalServiceError(AppException):
    """Base class for external service failures."""

    status_code = 502
    error_type = "external_service_error"

    def __init__(self, message: str = "External service error"):
        super().__init__(message)


class ProviderError(ExternalServiceError):
    """Raised when an upstream provider returns an unexpected response."""

    error_type = "provider_error"

    def __init__(
        self, message: str = "Authentication provider returned an invalid response"
    ):
        super().__init__(message)

