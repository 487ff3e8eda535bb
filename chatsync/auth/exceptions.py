"""Auth domain exceptions.

Messages are shown to the user verbatim.
"""

from chatsync.core.exceptions import (
    AppException,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)


# Authentication errors (401)
class AuthenticationError(AppException):
    """Base class for authentication failures."""

    status_code = 401
    error_type = "authentication_error"

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message)


class InvalidCredentialsError(AuthenticationError):
    """Raised when email/password combination is invalid."""

    error_type = "invalid_credentials"

    def __init__(self, message: str = "Invalid email or password"):
        super().__init__(message)


class InvalidTokenError(AuthenticationError):
    """Raised when an ID token is invalid or expired."""

    error_type = "invalid_token"

    def __init__(self, message: str = "Invalid authentication token"):
        super().__init__(message)


class RequiresRecentLoginError(AuthenticationError):
    """The provider wants a fresh sign-in before a credential change."""

    error_type = "requires_recent_login"

    def __init__(
        self,
        message: str = (
            "For security, please sign out and sign in again before setting a password."
        ),
    ):
        super().__init__(message)


# Authorization errors (403)
class UserDisabledError(AuthorizationError):
    """Raised when the account is disabled at the provider."""

    error_type = "user_disabled"

    def __init__(self, message: str = "User account is disabled"):
        super().__init__(message)


# Conflict errors (409)
class EmailExistsError(ConflictError):
    error_type = "email_exists"

    def __init__(self, message: str = "Email already in use"):
        super().__init__(message)


# Not found errors (404)
class AccountNotFoundError(NotFoundError):
    error_type = "account_not_found"

    def __init__(self, message: str = "No account found for this email"):
        super().__init__(message)


# Validation errors (400)
class WeakPasswordError(ValidationError):
    """Raised when a password is rejected as too weak."""

    error_type = "weak_password"

    def __init__(self, message: str = "Password must be at least 6 characters"):
        super().__init__(message)


class PasswordMismatchError(ValidationError):
    error_type = "password_mismatch"

    def __init__(self, message: str = "Passwords do not match"):
        super().__init__(message)


class InvalidAuthTransitionError(ValidationError):
    """Raised for an auth view mode change outside the allowed transitions."""

    error_type = "invalid_auth_transition"

    def __init__(self, message: str = "Invalid auth view transition"):
        super().__init__(message)
