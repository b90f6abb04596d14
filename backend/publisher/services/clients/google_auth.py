"""
Google OAuth2 access tokens from a long-lived refresh token.

Drive and YouTube adapters share one GoogleAuth instance so the token
is refreshed once per expiry rather than per request.
"""

import logging
import time

import httpx

from publisher.config import Settings
from publisher.services.errors import ConfigurationError, PublisherError

logger = logging.getLogger(__name__)

# Refresh slightly before the reported expiry
EXPIRY_MARGIN_SECONDS = 60


class GoogleAuthError(PublisherError):
    """Raised when the token endpoint refuses the refresh token."""

    pass


class GoogleAuth:
    """
    Access token provider using the OAuth2 refresh-token grant.

    Example:
        auth = GoogleAuth.from_settings(settings)
        headers = await auth.auth_headers()
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        refresh_token: str,
        token_url: str = "https://oauth2.googleapis.com/token",
        http_client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize token provider.

        Args:
            client_id: OAuth client id
            client_secret: OAuth client secret
            refresh_token: Long-lived refresh token
            token_url: Token endpoint
            http_client: Optional shared HTTP client
        """
        if not client_id.endswith(".apps.googleusercontent.com"):
            logger.warning("GOOGLE_CLIENT_ID does not look like a Google OAuth client id")

        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_token = refresh_token
        self.token_url = token_url
        self.http_client = http_client or httpx.AsyncClient(timeout=30.0)
        self._access_token: str | None = None
        self._expires_at: float = 0.0

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        http_client: httpx.AsyncClient | None = None,
    ) -> "GoogleAuth":
        """
        Create GoogleAuth from application settings.

        Raises:
            ConfigurationError: If Google credentials are missing
        """
        settings.validate_required("google")
        return cls(
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            refresh_token=settings.google_refresh_token,
            token_url=settings.google_token_url,
            http_client=http_client,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.http_client.aclose()

    async def get_access_token(self) -> str:
        """
        Return a valid access token, refreshing it when expired.

        Raises:
            GoogleAuthError: If the refresh grant fails
        """
        if self._access_token and time.monotonic() < self._expires_at:
            return self._access_token

        if not self.refresh_token:
            raise ConfigurationError(
                "Google refresh token not configured",
                missing_keys=["GOOGLE_REFRESH_TOKEN"],
            )

        logger.debug("Refreshing Google access token")
        try:
            response = await self.http_client.post(
                self.token_url,
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "refresh_token": self.refresh_token,
                    "grant_type": "refresh_token",
                },
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise GoogleAuthError(
                f"Token refresh failed: HTTP {e.response.status_code} - {e.response.text[:200]}",
                original_error=e,
            ) from e
        except httpx.HTTPError as e:
            raise GoogleAuthError(f"Token refresh failed: {e}", original_error=e) from e

        payload = response.json()
        self._access_token = payload["access_token"]
        expires_in = float(payload.get("expires_in", 3600))
        self._expires_at = time.monotonic() + max(expires_in - EXPIRY_MARGIN_SECONDS, 0)

        logger.info(f"Google access token refreshed (valid {expires_in:.0f}s)")
        return self._access_token

    async def auth_headers(self) -> dict[str, str]:
        """Authorization header for Google API requests."""
        token = await self.get_access_token()
        return {"Authorization": f"Bearer {token}"}
