"""Email OTP login and session lookup against a GoTrue-compatible auth provider."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any

import httpx
import jwt
from jwt import InvalidTokenError

from profiledesk.web.config import WebSettings

logger = logging.getLogger(__name__)

OTP_TYPES = {"email", "magiclink", "signup", "invite", "recovery", "email_change"}


class AuthProviderError(Exception):
    """Raised when the auth provider rejects or fails a request."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_client_error(self) -> bool:
        return self.status_code is not None and 400 <= self.status_code < 500


@dataclass(frozen=True)
class AuthSession:
    """Authenticated user as seen by this app for the length of one request."""

    email: str
    access_token: str
    expires_at: int | None = None


@dataclass(frozen=True)
class IssuedSession:
    """Tokens returned by the provider after a successful OTP verification."""

    access_token: str
    expires_in: int
    email: str | None


class OTPAuthClient:
    """Small client for magic-link/OTP sign-in, user lookup and sign-out."""

    def __init__(self, settings: WebSettings) -> None:
        self.settings = settings

    @property
    def configured(self) -> bool:
        return bool(self.settings.auth_base_url and self.settings.auth_anon_key)

    def _headers(self, access_token: str | None = None) -> dict[str, str]:
        headers = {
            "apikey": self.settings.auth_anon_key,
            "Content-Type": "application/json",
        }
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    async def send_otp(
        self,
        http_client: httpx.AsyncClient,
        *,
        email: str,
        redirect_to: str,
    ) -> None:
        """Ask the provider to email a magic link / one-time code."""
        response = await self._request(
            http_client,
            "POST",
            "/otp",
            params={"redirect_to": redirect_to},
            json={"email": email, "create_user": True},
        )
        logger.info("Sent login OTP email=%s status=%s", email, response.status_code)

    async def verify_token_hash(
        self,
        http_client: httpx.AsyncClient,
        *,
        token_hash: str,
        otp_type: str,
    ) -> IssuedSession:
        """Exchange the token hash from a magic link for a session."""
        response = await self._request(
            http_client,
            "POST",
            "/verify",
            json={"type": otp_type, "token_hash": token_hash},
        )
        return _issued_session_from_payload(response.json())

    async def verify_code(
        self,
        http_client: httpx.AsyncClient,
        *,
        email: str,
        token: str,
    ) -> IssuedSession:
        """Exchange a typed one-time code for a session."""
        response = await self._request(
            http_client,
            "POST",
            "/verify",
            json={"type": "email", "email": email, "token": token},
        )
        return _issued_session_from_payload(response.json())

    async def get_user_email(
        self, http_client: httpx.AsyncClient, *, access_token: str
    ) -> str | None:
        response = await http_client.get(
            f"{self.settings.auth_base_url}/user",
            headers=self._headers(access_token),
            timeout=self.settings.auth_http_timeout_seconds,
        )
        if response.status_code in {401, 403}:
            return None
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, dict):
            return None
        return normalize_email(payload.get("email"))

    async def sign_out(
        self, http_client: httpx.AsyncClient, *, access_token: str
    ) -> None:
        """Invalidate the session upstream; an already dead token is fine."""
        response = await http_client.post(
            f"{self.settings.auth_base_url}/logout",
            headers=self._headers(access_token),
            timeout=self.settings.auth_http_timeout_seconds,
        )
        if response.status_code in {401, 403, 404}:
            return
        response.raise_for_status()

    async def resolve_session(
        self, http_client: httpx.AsyncClient, *, access_token: str
    ) -> AuthSession | None:
        """Return the session for a cookie token, or None when it is not valid."""
        if self.settings.auth_jwt_secret:
            return self._decode_access_token(access_token)

        try:
            email = await self.get_user_email(http_client, access_token=access_token)
        except httpx.HTTPError:
            logger.warning("Auth provider user lookup failed", exc_info=True)
            return None
        if email is None:
            return None
        return AuthSession(email=email, access_token=access_token)

    def _decode_access_token(self, access_token: str) -> AuthSession | None:
        try:
            claims = jwt.decode(
                access_token,
                key=self.settings.auth_jwt_secret,
                algorithms=["HS256"],
                audience=self.settings.auth_jwt_audience,
                options={"require": ["exp", "sub"]},
            )
        except InvalidTokenError:
            logger.info("Rejected invalid or expired access token")
            return None

        email = normalize_email(claims.get("email"))
        if email is None:
            return None
        raw_exp = claims.get("exp")
        return AuthSession(
            email=email,
            access_token=access_token,
            expires_at=raw_exp if isinstance(raw_exp, int) else None,
        )

    async def _request(
        self,
        http_client: httpx.AsyncClient,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
    ) -> httpx.Response:
        try:
            response = await http_client.request(
                method,
                f"{self.settings.auth_base_url}{path}",
                headers=self._headers(),
                params=params,
                json=json,
                timeout=self.settings.auth_http_timeout_seconds,
            )
        except httpx.HTTPError as exc:
            raise AuthProviderError(f"Auth provider unreachable: {exc}") from exc

        if response.is_error:
            raise AuthProviderError(
                _error_message(response), status_code=response.status_code
            )
        return response


def normalize_email(value: object) -> str | None:
    """Lower-case and trim an email; None when blank or obviously not an email."""
    if value is None:
        return None
    text = str(value).strip().lower()
    if not text or "@" not in text:
        return None
    return text


def build_confirm_redirect(settings: WebSettings, *, request_base_url: str) -> str:
    """URL the magic link should land on for the current deployment."""
    base = (settings.public_base_url or "").strip().rstrip("/")
    if not base:
        base = request_base_url.strip().rstrip("/")
    return f"{base}/auth/confirm"


def session_expiry(issued: IssuedSession, *, max_ttl_seconds: int) -> int:
    """Cookie lifetime in seconds, capped by configuration."""
    ttl = issued.expires_in if issued.expires_in > 0 else max_ttl_seconds
    return max(1, min(ttl, max_ttl_seconds))


def _issued_session_from_payload(payload: object) -> IssuedSession:
    if not isinstance(payload, dict):
        raise AuthProviderError("Invalid verify response payload")

    access_token = payload.get("access_token")
    if not isinstance(access_token, str) or not access_token:
        raise AuthProviderError("Verify response did not include an access token")

    user = payload.get("user")
    email = normalize_email(user.get("email")) if isinstance(user, dict) else None

    expires_in = payload.get("expires_in")
    if not isinstance(expires_in, int):
        raw_expires_at = payload.get("expires_at")
        if isinstance(raw_expires_at, int):
            expires_in = raw_expires_at - int(time.time())
        else:
            expires_in = 0

    return IssuedSession(
        access_token=access_token,
        expires_in=expires_in,
        email=email,
    )


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        for key in ("msg", "error_description", "message", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return f"Auth provider returned HTTP {response.status_code}"
