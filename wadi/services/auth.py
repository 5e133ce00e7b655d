"""Bearer token verification against the external identity provider."""

import logging
from typing import Optional

import httpx

from wadi.config import settings
from wadi.errors import AuthenticationError

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from an ``Authorization: Bearer ...`` header value."""
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        return None
    return authorization[len(BEARER_PREFIX):].strip() or None


class IdentityClient:
    """Resolves access tokens to user ids via a Supabase-style ``/user`` endpoint."""

    def __init__(
        self,
        auth_url: Optional[str] = None,
        api_key: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.auth_url = (auth_url or settings.AUTH_URL).rstrip("/")
        self.api_key = settings.AUTH_API_KEY if api_key is None else api_key
        self._transport = transport

    def get_user_id(self, token: Optional[str]) -> str:
        """
        Validate a token and return the user id it belongs to.

        Raises:
            AuthenticationError: Missing, invalid or expired token, or the
                identity provider could not be reached
        """
        if not token:
            raise AuthenticationError("Missing or invalid authorization header")
        if not self.auth_url:
            raise AuthenticationError("Identity provider not configured")

        headers = {"Authorization": f"{BEARER_PREFIX}{token}"}
        if self.api_key:
            headers["apikey"] = self.api_key

        try:
            with httpx.Client(timeout=10.0, transport=self._transport) as client:
                response = client.get(f"{self.auth_url}/user", headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Identity provider unreachable: {e}")
            raise AuthenticationError("Authentication failed") from e

        if response.status_code != 200:
            message = response.text.lower()
            if "expired" in message:
                raise AuthenticationError("Token expired")
            raise AuthenticationError("Invalid token")

        user_id = response.json().get("id")
        if not user_id:
            raise AuthenticationError("Invalid token")
        return str(user_id)
