"""
Google Drive storage source implementation.

Lists video files of a Drive folder through the Drive v3 REST API.
Public downloads go through the fetch strategy's candidate URLs;
stream() is the authenticated fallback.
"""

import logging
from collections.abc import AsyncIterator

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from publisher.config import Settings
from publisher.models.schemas import InventoryItem
from publisher.services.clients.base import ClientConfig
from publisher.services.clients.google_auth import GoogleAuth
from publisher.services.errors import SourceUnavailable
from publisher.utils.media_utils import format_file_size

logger = logging.getLogger(__name__)

# Retry configuration for transient errors
RETRY_DECORATOR = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((httpx.ConnectError, httpx.TimeoutException)),
    reraise=True,
)

LIST_FIELDS = "nextPageToken, files(id, name, mimeType, size, createdTime, modifiedTime, webViewLink)"


class DriveClient:
    """
    Async HTTP client for the Google Drive v3 API.

    Implements StorageSource protocol.

    Example:
        async with DriveClient.from_settings(settings, auth) as drive:
            items = await drive.list(settings.google_drive_folder_id)
    """

    def __init__(
        self,
        config: ClientConfig,
        auth: GoogleAuth,
        http_client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize Drive client.

        Args:
            config: Client configuration with Drive API URL
            auth: Shared Google token provider
            http_client: Optional preconfigured HTTP client
        """
        self.config = config
        self.auth = auth
        self.http_client = http_client or httpx.AsyncClient(timeout=config.timeout)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        auth: GoogleAuth,
        http_client: httpx.AsyncClient | None = None,
    ) -> "DriveClient":
        """Create DriveClient from application settings."""
        config = ClientConfig(base_url=settings.drive_api_url)
        return cls(config=config, auth=auth, http_client=http_client)

    async def __aenter__(self) -> "DriveClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.http_client.aclose()

    @RETRY_DECORATOR
    async def _get(self, path: str, params: dict) -> httpx.Response:
        headers = await self.auth.auth_headers()
        return await self.http_client.get(
            f"{self.config.base_url}{path}",
            params=params,
            headers=headers,
        )

    async def _get_json(self, path: str, params: dict) -> dict:
        try:
            response = await self._get(path, params)
            response.raise_for_status()
            return response.json()

        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 404:
                message = "Drive resource not found (404)"
            elif status == 403:
                message = "No permission to access Drive resource (403)"
            else:
                message = f"Drive request failed: HTTP {status}"
            logger.error(f"{message}: {e.response.text[:200]}")
            raise SourceUnavailable(message, status_code=status, original_error=e) from e

        except httpx.HTTPError as e:
            logger.error(f"Drive request failed: {type(e).__name__}: {e}")
            raise SourceUnavailable(f"Drive unreachable: {e}", original_error=e) from e

    async def list(self, folder_ref: str) -> list[InventoryItem]:
        """
        List non-trashed videos in a folder, newest first.

        Args:
            folder_ref: Drive folder id

        Returns:
            Inventory items in reverse-chronological order

        Raises:
            SourceUnavailable: If the listing fails
        """
        logger.info(f"Listing videos in Drive folder {folder_ref}")

        params = {
            "q": f"'{folder_ref}' in parents and mimeType contains 'video/' and trashed=false",
            "fields": LIST_FIELDS,
            "orderBy": "createdTime desc",
            "pageSize": 100,
        }

        items: list[InventoryItem] = []
        while True:
            data = await self._get_json("/files", params)

            for entry in data.get("files", []):
                items.append(
                    InventoryItem(
                        source_id=entry["id"],
                        original_name=entry.get("name", ""),
                        mime_type=entry.get("mimeType", ""),
                        byte_size=int(entry.get("size") or 0),
                        created_at=entry.get("createdTime"),
                        modified_at=entry.get("modifiedTime"),
                    )
                )

            token = data.get("nextPageToken")
            if not token:
                break
            params = {**params, "pageToken": token}

        for item in items:
            logger.debug(
                f"  {item.display_name} | {format_file_size(item.byte_size)} | {item.canonical_link}"
            )
        logger.info(f"Found {len(items)} video(s) in Drive")
        return items

    async def stream(self, source_id: str) -> AsyncIterator[bytes]:
        """
        Stream a file's content with the OAuth token (alt=media).

        Used as the last fetch candidate when every public download URL
        failed.

        Args:
            source_id: Drive file id

        Yields:
            Raw content chunks

        Raises:
            SourceUnavailable: If Drive refuses the download
        """
        headers = await self.auth.auth_headers()
        url = f"{self.config.base_url}/files/{source_id}"

        try:
            async with self.http_client.stream(
                "GET", url, params={"alt": "media"}, headers=headers
            ) as response:
                if response.status_code >= 400:
                    await response.aread()
                    raise SourceUnavailable(
                        f"Drive download failed: HTTP {response.status_code}",
                        status_code=response.status_code,
                    )
                async for chunk in response.aiter_bytes():
                    yield chunk

        except httpx.HTTPError as e:
            raise SourceUnavailable(f"Drive download interrupted: {e}", original_error=e) from e

    async def check_connection(self) -> bool:
        """
        Check that Drive accepts the configured credentials.

        Returns:
            True if available, False otherwise
        """
        try:
            data = await self._get_json("/about", {"fields": "user"})
            logger.debug(f"Drive connected as {data.get('user', {}).get('displayName')}")
            return True
        except Exception as e:
            logger.debug(f"Drive not available: {e}")
            return False
