"""Identity Toolkit REST endpoints and payload shapes.

https://cloud.google.com/identity-platform/docs/reference/rest/v1/accounts
"""

from typing import Literal, NotRequired, TypedDict

IDENTITY_TOOLKIT_ENDPOINTS: dict[str, str] = {
    "signInWithPassword": "v1/accounts:signInWithPassword",
    "signUp": "v1/accounts:signUp",
    "signInWithIdp": "v1/accounts:signInWithIdp",
    "sendOobCode": "v1/accounts:sendOobCode",
    "update": "v1/accounts:update",
    "lookup": "v1/accounts:lookup",
}

# Provider id of email/password credentials
PASSWORD_PROVIDER = "password"


class SignInWithPasswordRequest(TypedDict):
    email: str
    password: str
    returnSecureToken: bool


class SignInResponse(TypedDict, total=False):
    """Shared response shape of signInWithPassword, signUp and signInWithIdp."""

    kind: str
    localId: str  # uid
    email: str
    displayName: str
    photoUrl: str
    idToken: str
    refreshToken: str
    expiresIn: str
    registered: bool
    # signInWithIdp only
    providerId: str
    isNewUser: bool


class SignInWithIdpRequest(TypedDict):
    """OAuth credential exchange.

    postBody carries the provider credential, e.g.
    ``id_token=<google id token>&providerId=google.com``.
    """

    postBody: str
    requestUri: str
    returnSecureToken: bool
    returnIdpCredential: NotRequired[bool]


class SendOobCodeRequest(TypedDict):
    requestType: Literal["PASSWORD_RESET", "VERIFY_EMAIL"]
    email: str


class UpdateAccountRequest(TypedDict, total=False):
    idToken: str
    password: str
    returnSecureToken: bool


class UpdateAccountResponse(TypedDict, total=False):
    kind: str
    localId: str
    email: str
    providerUserInfo: list["ProviderUserInfo"]
    idToken: str
    refreshToken: str
    expiresIn: str


class ProviderUserInfo(TypedDict, total=False):
    providerId: str
    email: str
    displayName: str
    photoUrl: str
    federatedId: str


class LookupUser(TypedDict, total=False):
    localId: str
    email: str
    displayName: str
    photoUrl: str
    emailVerified: bool
    disabled: bool
    providerUserInfo: list[ProviderUserInfo]


class LookupResponse(TypedDict, total=False):
    kind: str
    users: list[LookupUser]
