"""Sign-in against the Supabase identity provider.

Promixel does not manage accounts.  It exchanges an email and password for a
session at the provider's GoTrue endpoint and only checks that a session is
present (and unexpired) before allowing generation.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

import httpx

logger = logging.getLogger(__name__)


class AuthError(Exception):
    """Sign-in failed or the identity provider is not configured.

    The message is intended to be displayed directly to the user.
    """

    pass


@dataclass(frozen=True)
class AuthSession:
    """Signed-in user as reported by the identity provider."""

    access_token: str
    user_id: str
    email: str
    expires_at: float | None = None

    def is_expired(self, now: float | None = None) -> bool:
        if self.expires_at is None:
            return False
        return (now if now is not None else time.time()) >= self.expires_at

    def to_dict(self) -> dict:
        return {
            "access_token": self.access_token,
            "user_id": self.user_id,
            "email": self.email,
            "expires_at": self.expires_at,
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> AuthSession | None:
        if not isinstance(data, dict):
            return None
        try:
            return cls(
                access_token=str(data["access_token"]),
                user_id=str(data["user_id"]),
                email=str(data["email"]),
                expires_at=data.get("expires_at"),
            )
        except KeyError:
            return None


class SupabaseAuthClient:
    """Minimal GoTrue client: password sign-in and sign-out.

    Args:
        url: Supabase project URL.
        anon_key: Public anon key for the project.
        http_client: Optional shared :class:`httpx.Client`.
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        url: str | None,
        anon_key: str | None,
        *,
        http_client: httpx.Client | None = None,
        timeout: float = 15.0,
    ) -> None:
        self.url = (url or "").rstrip("/")
        self.anon_key = anon_key or ""
        self._http_client = http_client
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.url and self.anon_key)

    def _headers(self, access_token: str | None = None) -> dict[str, str]:
        headers = {"apikey": self.anon_key, "Content-Type": "application/json"}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    def _post(self, path: str, **kwargs) -> httpx.Response:
        url = f"{self.url}{path}"
        if self._http_client is not None:
            return self._http_client.post(url, timeout=self.timeout, **kwargs)
        with httpx.Client(timeout=self.timeout) as client:
            return client.post(url, **kwargs)

    def sign_in(self, email: str, password: str) -> AuthSession:
        """Exchange credentials for a session.

        Raises:
            AuthError: When unconfigured, on network failure, or when the
                provider rejects the credentials.
        """
        if not self.is_configured:
            logger.error(f"Missing Supabase credentials: has_url={bool(self.url)}")
            raise AuthError("Sign-in is not available: identity provider not configured")
        if not email or not password:
            raise AuthError("Email and password are required")

        try:
            response = self._post(
                "/auth/v1/token",
                params={"grant_type": "password"},
                json={"email": email, "password": password},
                headers=self._headers(),
            )
        except httpx.HTTPError as e:
            logger.error(f"Sign-in request failed: {e}")
            raise AuthError("Could not reach the sign-in service") from e

        if not response.is_success:
            logger.info(f"Sign-in rejected with status {response.status_code}")
            raise AuthError("Invalid email or password")

        try:
            data = response.json()
            user = data["user"]
            expires_in = data.get("expires_in")
            return AuthSession(
                access_token=data["access_token"],
                user_id=str(user["id"]),
                email=user.get("email") or email,
                expires_at=time.time() + expires_in if isinstance(expires_in, (int, float)) else None,
            )
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Unexpected sign-in response: {e}")
            raise AuthError("Unexpected response from the sign-in service") from e

    def sign_out(self, session: AuthSession) -> None:
        """Revoke the session at the provider.  Failures are logged, not raised."""
        if not self.is_configured:
            return
        try:
            response = self._post("/auth/v1/logout", headers=self._headers(session.access_token))
            if not response.is_success:
                logger.warning(f"Sign-out returned status {response.status_code}")
        except httpx.HTTPError as e:
            logger.warning(f"Sign-out request failed: {e}")
