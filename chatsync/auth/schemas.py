"""Auth domain schemas.

Request and response schemas for authentication operations.
"""

from pydantic import BaseModel, EmailStr, Field

from chatsync.auth.flow import AuthMode


class CredentialsRequest(BaseModel):
    """Email/password pair for register and login."""

    email: EmailStr
    password: str = Field(min_length=1)


class OAuthRequest(BaseModel):
    """Credential obtained from an OAuth popup, exchanged for a session."""

    provider_id: str = "google.com"
    id_token: str | None = None
    access_token: str | None = None


class PasswordResetRequest(BaseModel):
    email: EmailStr


class SetPasswordRequest(BaseModel):
    password: str
    confirmation: str


class AuthSession(BaseModel):
    """Returned after a successful sign-in."""

    uid: str
    email: str | None
    display_name: str
    photo_url: str | None
    id_token: str | None
    refresh_token: str | None
    needs_password: bool


class AuthMessage(BaseModel):
    """Generic auth message response."""

    message: str


class AuthModeRequest(BaseModel):
    """A sign-in form mode change."""

    current: AuthMode = AuthMode.login
    target: AuthMode


class AuthModeRead(BaseModel):
    mode: AuthMode
