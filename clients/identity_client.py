# clients/identity_client.py
"""
Thin client for the managed identity provider.

Token verification happens locally with python-jose, either against a shared
HS256 secret or against the provider's published JWKS. Password sign-in,
sign-up, password reset and display-name updates are forwarded to the
provider's REST API; OAuth popups run in the browser and only hand us the
resulting ID token.
"""
import logging
import os
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests
from cachetools import TTLCache
from jose import JWTError, jwt

from services.exceptions import AuthenticationError, ConflictError, ExternalServiceError, InvalidInputError
from utils.sanitization import hash_email

logger = logging.getLogger(__name__)

IDENTITY_API_URL = os.getenv("IDENTITY_API_URL", "https://identitytoolkit.googleapis.com/v1")
IDENTITY_API_KEY = os.getenv("IDENTITY_API_KEY", "")
IDENTITY_JWT_SECRET = os.getenv("IDENTITY_JWT_SECRET")
IDENTITY_JWKS_URL = os.getenv("IDENTITY_JWKS_URL")
IDENTITY_JWT_ALGORITHM = os.getenv("IDENTITY_JWT_ALGORITHM")
IDENTITY_AUDIENCE = os.getenv("IDENTITY_AUDIENCE")
IDENTITY_ISSUER = os.getenv("IDENTITY_ISSUER")

REQUEST_TIMEOUT = 10
JWKS_CACHE_TTL = 3600

# Provider error codes -> messages safe to show to the user
PROVIDER_ERROR_MESSAGES = {
    "EMAIL_NOT_FOUND": "Invalid email/username or password.",
    "INVALID_PASSWORD": "Invalid email/username or password.",
    "INVALID_LOGIN_CREDENTIALS": "Invalid email/username or password.",
    "INVALID_EMAIL": "The email address is not valid.",
    "USER_DISABLED": "This user account has been disabled.",
    "EMAIL_EXISTS": "This email address is already in use.",
    "WEAK_PASSWORD": "The password is too weak.",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "Too many attempts. Please try again later.",
    "OPERATION_NOT_ALLOWED": "This sign-in method is not enabled.",
    "INVALID_ID_TOKEN": "Your session has expired. Please sign in again.",
    "TOKEN_EXPIRED": "Your session has expired. Please sign in again.",
}

# Codes that describe bad user input rather than bad credentials
_INPUT_ERROR_CODES = {"INVALID_EMAIL", "WEAK_PASSWORD"}


@dataclass
class IdentityClaims:
    uid: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    photo_url: Optional[str] = None


@dataclass
class ProviderSession:
    id_token: str
    uid: str
    email: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_in: int = 3600


def provider_error_message(code: str, fallback: str) -> str:
    return PROVIDER_ERROR_MESSAGES.get(code, fallback)


def _extract_error_code(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return ""
    message = (body.get("error") or {}).get("message") or ""
    # e.g. "WEAK_PASSWORD : Password should be at least 6 characters"
    return message.split(":")[0].strip()


class IdentityProviderClient:
    def __init__(
        self,
        api_url: str = IDENTITY_API_URL,
        api_key: str = IDENTITY_API_KEY,
        jwt_secret: Optional[str] = None,
        jwks_url: Optional[str] = None,
        algorithm: Optional[str] = None,
        audience: Optional[str] = None,
        issuer: Optional[str] = None,
    ):
        if not jwt_secret and not jwks_url:
            raise ValueError("CRITICAL: IDENTITY_JWT_SECRET or IDENTITY_JWKS_URL must be set. Authentication cannot proceed.")

        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.jwt_secret = jwt_secret
        self.jwks_url = jwks_url
        self.algorithm = algorithm or ("HS256" if jwt_secret else "RS256")
        self.audience = audience
        self.issuer = issuer

        self._jwks_cache = TTLCache(maxsize=1, ttl=JWKS_CACHE_TTL)
        self._jwks_lock = threading.Lock()

    @classmethod
    def from_env(cls) -> "IdentityProviderClient":
        return cls(
            api_url=IDENTITY_API_URL,
            api_key=IDENTITY_API_KEY,
            jwt_secret=IDENTITY_JWT_SECRET,
            jwks_url=IDENTITY_JWKS_URL,
            algorithm=IDENTITY_JWT_ALGORITHM,
            audience=IDENTITY_AUDIENCE,
            issuer=IDENTITY_ISSUER,
        )

    # ------------------------------------------------------------
    # TOKEN VERIFICATION
    # ------------------------------------------------------------
    def _get_jwks(self) -> Dict[str, List[Dict[str, Any]]]:
        with self._jwks_lock:
            cached = self._jwks_cache.get("jwks")
            if cached is not None:
                return cached
            try:
                resp = requests.get(self.jwks_url, timeout=REQUEST_TIMEOUT)
                resp.raise_for_status()
                jwks = resp.json()
            except (requests.RequestException, ValueError) as e:
                logger.error(f"Failed to fetch identity provider JWKS: {e}")
                raise ExternalServiceError("Could not verify your session with the identity provider.") from e
            self._jwks_cache["jwks"] = jwks
            return jwks

    def verify_id_token(self, token: str) -> IdentityClaims:
        """
        Decodes and verifies a provider ID token.
        Raises:
            AuthenticationError: If the token is malformed, expired or not signed by the provider.
        """
        if not token:
            raise AuthenticationError("Could not validate credentials")

        key = self.jwt_secret if self.jwt_secret else self._get_jwks()
        options = {"verify_aud": bool(self.audience)}

        try:
            payload = jwt.decode(
                token,
                key,
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
                options=options,
            )
        except JWTError as e:
            logger.info(f"Rejected identity token: {e}")
            raise AuthenticationError("Could not validate credentials") from e

        uid = payload.get("sub") or payload.get("user_id")
        if not uid:
            raise AuthenticationError("Could not validate credentials")

        return IdentityClaims(
            uid=uid,
            email=payload.get("email"),
            display_name=payload.get("name"),
            photo_url=payload.get("picture"),
        )

    # ------------------------------------------------------------
    # PROVIDER REST CALLS
    # ------------------------------------------------------------
    def _post(self, endpoint: str, payload: Dict[str, Any], failure_message: str) -> Dict[str, Any]:
        url = f"{self.api_url}/{endpoint}"
        try:
            resp = requests.post(url, params={"key": self.api_key}, json=payload, timeout=REQUEST_TIMEOUT)
        except requests.RequestException as e:
            logger.error(f"Identity provider request to {endpoint} failed: {e}", exc_info=True)
            raise ExternalServiceError("The authentication service is unreachable. Please try again.") from e

        if resp.status_code >= 400:
            code = _extract_error_code(resp)
            message = provider_error_message(code, failure_message)
            logger.warning(f"Identity provider rejected {endpoint}: {code or resp.status_code}")
            if code == "EMAIL_EXISTS":
                raise ConflictError(message)
            if code in _INPUT_ERROR_CODES:
                raise InvalidInputError(message)
            if resp.status_code >= 500:
                raise ExternalServiceError(message)
            raise AuthenticationError(message)

        try:
            return resp.json()
        except ValueError as e:
            raise ExternalServiceError(failure_message) from e

    def _to_session(self, data: Dict[str, Any]) -> ProviderSession:
        return ProviderSession(
            id_token=data.get("idToken", ""),
            uid=data.get("localId", ""),
            email=data.get("email"),
            refresh_token=data.get("refreshToken"),
            expires_in=int(data.get("expiresIn", 3600)),
        )

    def sign_in_with_password(self, email: str, password: str) -> ProviderSession:
        logger.info(f"Password sign-in for: {hash_email(email)}")
        data = self._post(
            "accounts:signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": True},
            "An unknown error occurred during login.",
        )
        return self._to_session(data)

    def sign_up(self, email: str, password: str, display_name: Optional[str] = None) -> ProviderSession:
        logger.info(f"Creating identity account for: {hash_email(email)}")
        data = self._post(
            "accounts:signUp",
            {"email": email, "password": password, "returnSecureToken": True},
            "An unknown error occurred during signup.",
        )
        session = self._to_session(data)
        if display_name:
            self.update_display_name(session.id_token, display_name)
        return session

    def send_password_reset_email(self, email: str) -> None:
        self._post(
            "accounts:sendOobCode",
            {"requestType": "PASSWORD_RESET", "email": email},
            "Could not send the password reset email.",
        )

    def update_display_name(self, id_token: str, display_name: str) -> None:
        self._post(
            "accounts:update",
            {"idToken": id_token, "displayName": display_name, "returnSecureToken": False},
            "Could not update your display name.",
        )
