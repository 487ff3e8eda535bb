"""Identity provider service.

Wraps the Identity Toolkit REST API (credential operations) and the Firebase
Admin SDK (token verification and revocation).
"""

import contextlib
import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any
from urllib.parse import urlencode

import httpx
from firebase_admin import auth as firebase_admin_auth
from firebase_admin.exceptions import FirebaseError

from chatsync.auth.exceptions import (
    AccountNotFoundError,
    EmailExistsError,
    InvalidCredentialsError,
    InvalidTokenError,
    RequiresRecentLoginError,
    UserDisabledError,
    WeakPasswordError,
)
from chatsync.auth.identity_toolkit import (
    IDENTITY_TOOLKIT_ENDPOINTS,
    PASSWORD_PROVIDER,
    LookupResponse,
    SignInResponse,
    UpdateAccountResponse,
)
from chatsync.core.exceptions import (
    AppException,
    ProviderError,
    RateLimitError,
    ValidationError,
)
from chatsync.core.http import get_identity_client
from chatsync.core.retry import with_retry

logger = logging.getLogger(__name__)

_INVALID_CREDENTIALS_MESSAGES = {
    "EMAIL_NOT_FOUND",
    "INVALID_PASSWORD",
    "INVALID_LOGIN_CREDENTIALS",
}


@dataclass(frozen=True)
class Identity:
    """An authenticated identity with its linked credential providers."""

    uid: str
    email: str | None = None
    display_name: str | None = None
    photo_url: str | None = None
    providers: tuple[str, ...] = field(default_factory=tuple)
    id_token: str | None = None
    refresh_token: str | None = None

    @property
    def has_password_provider(self) -> bool:
        return PASSWORD_PROVIDER in self.providers


@dataclass(frozen=True)
class TokenClaims:
    uid: str
    email: str | None = None
    sign_in_provider: str | None = None


class IdentityService:
    """Credential operations against the identity provider."""

    def __init__(
        self,
        api_key: str | None,
        identity_toolkit_base_url: str = "https://identitytoolkit.googleapis.com",
        oauth_request_uri: str = "http://localhost",
    ):
        self._api_key = api_key
        self._identity_toolkit_base_url = identity_toolkit_base_url
        self._oauth_request_uri = oauth_request_uri

    def _ensure_api_key(self) -> str:
        if not self._api_key:
            raise AppException("Firebase API key not configured")
        return self._api_key

    async def _request(
        self, endpoint: str, payload: dict[str, Any], *, retry: bool = False
    ) -> dict[str, Any]:
        """POST to an Identity Toolkit endpoint.

        Only transport errors are retried, and only when ``retry`` is set.

        Raises:
            AppException subclass matching the provider's error code
            ProviderError: If the provider is unreachable or answers garbage
        """
        api_key = self._ensure_api_key()
        url = f"{self._identity_toolkit_base_url}/{endpoint}?key={api_key}"
        client = get_identity_client(self._identity_toolkit_base_url)

        async def do_request() -> httpx.Response:
            return await client.post(url, json=payload)

        try:
            response = await with_retry(
                do_request,
                attempts=2 if retry else 1,
                exceptions=(httpx.RequestError,),
            )
        except httpx.RequestError as e:
            raise ProviderError("Authentication provider unavailable") from e

        if response.status_code != 200:
            self._handle_error(response)

        try:
            return response.json()
        except ValueError as e:
            raise ProviderError() from e

    @staticmethod
    def _parse_retry_after(value: str | None) -> int | None:
        if not value:
            return None
        with contextlib.suppress(ValueError):
            parsed = int(value)
            if parsed >= 0:
                return parsed
        return None

    def _rate_limited(self, response: httpx.Response) -> RateLimitError:
        return RateLimitError(
            "Too many attempts, try again later",
            retry_after=self._parse_retry_after(response.headers.get("Retry-After")),
        )

    @staticmethod
    def _sanitize_error_code(error_message: str) -> str:
        """Leading error code only; the rest may echo user input."""
        match = re.match(r"[A-Z0-9_]+", error_message)
        return match.group(0) if match else "UNKNOWN"

    def _handle_error(self, response: httpx.Response) -> None:
        try:
            error_message = response.json().get("error", {}).get("message", "")
        except ValueError as e:
            if response.status_code == 429:
                raise self._rate_limited(response) from e
            raise ProviderError() from e

        error_code = self._sanitize_error_code(error_message)
        logger.info(
            "Identity Toolkit error: status=%s, code=%s",
            response.status_code,
            error_code,
        )

        if response.status_code == 429 or error_code == "TOO_MANY_ATTEMPTS_TRY_LATER":
            raise self._rate_limited(response)
        if error_code in _INVALID_CREDENTIALS_MESSAGES:
            raise InvalidCredentialsError()
        if error_code == "USER_DISABLED":
            raise UserDisabledError()
        if error_code == "WEAK_PASSWORD":
            raise WeakPasswordError()
        if error_code == "EMAIL_EXISTS":
            raise EmailExistsError()
        if error_code == "INVALID_EMAIL":
            raise ValidationError("Invalid email address")
        if error_code == "CREDENTIAL_TOO_OLD_LOGIN_AGAIN":
            raise RequiresRecentLoginError()
        if error_code in {"TOKEN_EXPIRED", "INVALID_ID_TOKEN", "USER_NOT_FOUND"}:
            raise InvalidTokenError("Session expired, please login again")
        if error_code in {"INVALID_IDP_RESPONSE", "INVALID_CREDENTIAL_OR_PROVIDER_ID"}:
            raise InvalidCredentialsError("Sign-in with this provider failed")
        if response.status_code in {400, 401, 403}:
            raise InvalidCredentialsError("Authentication failed")

        raise ProviderError(f"Authentication failed: {error_code}")

    async def _complete_sign_in(self, data: SignInResponse) -> Identity:
        id_token = data.get("idToken")
        if not id_token or not data.get("localId"):
            raise InvalidCredentialsError("Authentication failed")
        identity = await self.lookup(id_token)
        return Identity(
            uid=identity.uid,
            email=identity.email,
            display_name=identity.display_name,
            photo_url=identity.photo_url,
            providers=identity.providers,
            id_token=id_token,
            refresh_token=data.get("refreshToken"),
        )

    async def sign_in(self, email: str, password: str) -> Identity:
        """Authenticate with email and password."""
        data: SignInResponse = await self._request(
            IDENTITY_TOOLKIT_ENDPOINTS["signInWithPassword"],
            {"email": email, "password": password, "returnSecureToken": True},
            retry=True,
        )
        return await self._complete_sign_in(data)

    async def sign_up(self, email: str, password: str) -> Identity:
        """Register a new email/password account and sign it in."""
        data: SignInResponse = await self._request(
            IDENTITY_TOOLKIT_ENDPOINTS["signUp"],
            {"email": email, "password": password, "returnSecureToken": True},
        )
        return await self._complete_sign_in(data)

    async def sign_in_with_oauth(
        self,
        provider_id: str,
        id_token: str | None = None,
        access_token: str | None = None,
    ) -> Identity:
        """Exchange an OAuth provider credential for a session.

        Args:
            provider_id: e.g. "google.com"
            id_token: Provider-issued OpenID token
            access_token: Provider OAuth access token (when there is no id_token)
        """
        credential: dict[str, str] = {"providerId": provider_id}
        if id_token:
            credential["id_token"] = id_token
        elif access_token:
            credential["access_token"] = access_token
        else:
            raise ValidationError("An OAuth id_token or access_token is required")

        data: SignInResponse = await self._request(
            IDENTITY_TOOLKIT_ENDPOINTS["signInWithIdp"],
            {
                "postBody": urlencode(credential),
                "requestUri": self._oauth_request_uri,
                "returnSecureToken": True,
                "returnIdpCredential": True,
            },
        )
        return await self._complete_sign_in(data)

    async def send_password_reset_email(self, email: str) -> None:
        try:
            await self._request(
                IDENTITY_TOOLKIT_ENDPOINTS["sendOobCode"],
                {"requestType": "PASSWORD_RESET", "email": email},
                retry=True,
            )
        except InvalidCredentialsError as e:
            raise AccountNotFoundError() from e

    async def update_password(self, id_token: str, new_password: str) -> None:
        """Attach or replace the password credential of the token's account.

        Raises:
            RequiresRecentLoginError: If the sign-in is too old for this change
            WeakPasswordError: If the provider rejects the password
        """
        data: UpdateAccountResponse = await self._request(
            IDENTITY_TOOLKIT_ENDPOINTS["update"],
            {"idToken": id_token, "password": new_password, "returnSecureToken": True},
        )
        if not data.get("localId"):
            raise ProviderError("Failed to update password")

    async def lookup(self, id_token: str) -> Identity:
        """Fetch the account behind an ID token, including linked providers."""
        data: LookupResponse = await self._request(
            IDENTITY_TOOLKIT_ENDPOINTS["lookup"], {"idToken": id_token}, retry=True
        )
        users = data.get("users") or []
        if not users:
            raise InvalidTokenError("Session expired, please login again")
        user = users[0]
        providers = tuple(
            info["providerId"]
            for info in user.get("providerUserInfo", [])
            if info.get("providerId")
        )
        return Identity(
            uid=user["localId"],
            email=user.get("email"),
            display_name=user.get("displayName"),
            photo_url=user.get("photoUrl"),
            providers=providers,
            id_token=id_token,
        )

    def verify_id_token(self, id_token: str) -> TokenClaims:
        try:
            decoded = firebase_admin_auth.verify_id_token(id_token)
        except (ValueError, FirebaseError) as e:
            raise InvalidTokenError() from e

        uid = decoded.get("uid")
        if not uid:
            raise InvalidTokenError("Invalid token: missing uid")
        return TokenClaims(
            uid=uid,
            email=decoded.get("email"),
            sign_in_provider=decoded.get("firebase", {}).get("sign_in_provider"),
        )

    def revoke_refresh_tokens(self, uid: str) -> None:
        """Best-effort revocation on sign-out."""
        try:
            firebase_admin_auth.revoke_refresh_tokens(uid)
        except FirebaseError as e:
            logger.warning("Token revocation failed: %s", e, extra={"uid": uid})


@lru_cache
def get_identity_service() -> IdentityService:
    """Cached identity service for the application lifetime."""
    from chatsync.core.settings import get_settings

    settings = get_settings()
    return IdentityService(
        api_key=settings.firebase_api_key,
        identity_toolkit_base_url=settings.identity_toolkit_base_url,
        oauth_request_uri=settings.oauth_request_uri,
    )
