"""
YouTube publish target implementation.

Uploads videos through the YouTube Data API v3 resumable upload
protocol. Owns the single category and privacy translation tables used
by the rest of the application.
"""

import asyncio
import logging
import time
from collections.abc import Iterator
from pathlib import Path

import httpx

from publisher.config import Settings
from publisher.models.schemas import PublishMetadata, PublishResult, utc_now
from publisher.services.clients.base import ClientConfig
from publisher.services.clients.google_auth import GoogleAuth
from publisher.services.errors import PublishRejected
from publisher.utils.media_utils import format_file_size

logger = logging.getLogger(__name__)

# Record category name -> YouTube category id
CATEGORY_IDS = {
    "Education": "27",
    "Entertainment": "24",
    "Music": "10",
    "Gaming": "20",
    "Sports": "17",
    "Science & Technology": "28",
    "News & Politics": "25",
    "Howto & Style": "26",
    "People & Blogs": "22",
    "Comedy": "34",
    "Film & Animation": "1",
    "Autos & Vehicles": "2",
}
DEFAULT_CATEGORY_ID = CATEGORY_IDS["Education"]

# Record privacy option -> YouTube privacyStatus
PRIVACY_STATUSES = {
    "Public": "public",
    "Unlisted": "unlisted",
    "Private": "private",
}
DEFAULT_PRIVACY_STATUS = "public"

UPLOAD_CHUNK_SIZE = 8 * 1024 * 1024

WATCH_URL = "https://www.youtube.com/watch?v={video_id}"
THUMBNAIL_URL = "https://img.youtube.com/vi/{video_id}/maxresdefault.jpg"


def category_id(category: str | None, overrides: dict[str, str] | None = None) -> str:
    """
    Map a record category name to a YouTube category id.

    Args:
        category: Category name from the record
        overrides: Extra name -> id entries from publish config

    Returns:
        Category id, Education for unknown names
    """
    table = {**CATEGORY_IDS, **(overrides or {})}
    return str(table.get(category or "", DEFAULT_CATEGORY_ID))


def privacy_status(privacy: str | None) -> str:
    """Map a record privacy option to a YouTube privacyStatus."""
    return PRIVACY_STATUSES.get(privacy or "", DEFAULT_PRIVACY_STATUS)


def classify_rejection(status_code: int | None, body: str) -> str:
    """
    Classify a failed upload for error reporting.

    Returns:
        One of "quota", "permission", "invalid_data", "unknown"
    """
    if "quota" in body.lower():
        return "quota"
    if status_code == 403:
        return "permission"
    if status_code == 400:
        return "invalid_data"
    return "unknown"


REJECTION_MESSAGES = {
    "quota": "YouTube API quota exceeded",
    "permission": "No permission to upload (check quota/API access)",
    "invalid_data": "Invalid data for upload",
    "unknown": "YouTube upload failed",
}


def _iter_file(path: Path, chunk_size: int) -> Iterator[bytes]:
    with open(path, "rb") as f:
        while chunk := f.read(chunk_size):
            yield chunk


class YouTubeClient:
    """
    Async client for YouTube video uploads.

    Implements PublishTarget protocol. The session is opened with an
    async request; the media body is sent from a worker thread so large
    files never block the event loop.

    Example:
        async with YouTubeClient.from_settings(settings, auth) as youtube:
            result = await youtube.insert(metadata, Path("temp/video_abc.mp4"))
    """

    def __init__(
        self,
        config: ClientConfig,
        auth: GoogleAuth,
        upload_url: str,
        upload_timeout: float = 3600.0,
        http_client: httpx.AsyncClient | None = None,
        upload_transport: httpx.BaseTransport | None = None,
    ):
        """
        Initialize YouTube client.

        Args:
            config: Client configuration with Data API URL
            auth: Shared Google token provider
            upload_url: Base URL of the upload endpoint
            upload_timeout: Timeout for the media transfer in seconds
            http_client: Optional preconfigured async HTTP client
            upload_transport: Optional transport for the media transfer
        """
        self.config = config
        self.auth = auth
        self.upload_url = upload_url
        self.upload_timeout = upload_timeout
        self.http_client = http_client or httpx.AsyncClient(timeout=config.timeout)
        self.upload_transport = upload_transport

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        auth: GoogleAuth,
        http_client: httpx.AsyncClient | None = None,
    ) -> "YouTubeClient":
        """Create YouTubeClient from application settings."""
        config = ClientConfig(base_url=settings.youtube_api_url)
        return cls(
            config=config,
            auth=auth,
            upload_url=settings.youtube_upload_url,
            upload_timeout=settings.publish_timeout,
            http_client=http_client,
        )

    async def __aenter__(self) -> "YouTubeClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.http_client.aclose()

    def _build_body(self, metadata: PublishMetadata) -> dict:
        snippet = {
            "title": metadata.title,
            "description": metadata.description,
            "tags": metadata.tags,
            "categoryId": metadata.category_id,
        }
        if metadata.default_language:
            snippet["defaultLanguage"] = metadata.default_language
            snippet["defaultAudioLanguage"] = metadata.default_language

        return {
            "snippet": snippet,
            "status": {
                "privacyStatus": metadata.privacy_status,
                "selfDeclaredMadeForKids": False,
                "embeddable": True,
                "publicStatsViewable": True,
            },
        }

    def _rejected(self, response: httpx.Response) -> PublishRejected:
        body = response.text[:500]
        reason = classify_rejection(response.status_code, body)
        logger.error(f"YouTube rejected upload: {response.status_code} - {body[:200]}")
        return PublishRejected(
            f"{REJECTION_MESSAGES[reason]} (HTTP {response.status_code})",
            status_code=response.status_code,
            reason=reason,
        )

    async def _start_session(self, metadata: PublishMetadata, size: int) -> str:
        """Open a resumable upload session and return its URL."""
        headers = await self.auth.auth_headers()
        headers.update({
            "X-Upload-Content-Type": "video/*",
            "X-Upload-Content-Length": str(size),
        })

        response = await self.http_client.post(
            f"{self.upload_url}/videos",
            params={"uploadType": "resumable", "part": "snippet,status"},
            json=self._build_body(metadata),
            headers=headers,
        )
        if response.status_code >= 400:
            raise self._rejected(response)

        session_url = response.headers.get("location")
        if not session_url:
            raise PublishRejected("Upload session URL missing from response")
        return session_url

    def _sync_upload(self, session_url: str, media_path: Path, size: int) -> httpx.Response:
        """
        Send the media body to the upload session.

        Runs in a thread pool to avoid blocking the event loop.
        """
        with httpx.Client(timeout=self.upload_timeout, transport=self.upload_transport) as sync_client:
            return sync_client.put(
                session_url,
                content=_iter_file(media_path, UPLOAD_CHUNK_SIZE),
                headers={"Content-Type": "video/*", "Content-Length": str(size)},
            )

    async def insert(self, metadata: PublishMetadata, media_path: Path) -> PublishResult:
        """
        Upload a video with metadata.

        Args:
            metadata: Prepared publish metadata
            media_path: Local video file

        Returns:
            PublishResult with video id and watch URL

        Raises:
            PublishRejected: If the upload fails or is refused
        """
        media_path = Path(media_path)
        if not media_path.exists():
            raise PublishRejected(f"Video file not found: {media_path}", reason="file")

        size = media_path.stat().st_size
        logger.info(
            f"Uploading to YouTube: {metadata.title!r} "
            f"({format_file_size(size)}, {metadata.privacy_status})"
        )

        start_time = time.time()
        try:
            session_url = await self._start_session(metadata, size)
            response = await asyncio.to_thread(self._sync_upload, session_url, media_path, size)

        except httpx.TimeoutException as e:
            elapsed = time.time() - start_time
            logger.error(f"Upload timeout after {elapsed:.1f}s: {e}")
            raise PublishRejected(
                f"Upload timeout after {elapsed:.1f}s",
                reason="timeout",
                original_error=e,
            ) from e

        except httpx.HTTPError as e:
            logger.error(f"Upload failed: {type(e).__name__}: {e}")
            raise PublishRejected(
                f"Upload failed: {e}",
                reason="connection",
                original_error=e,
            ) from e

        if response.status_code >= 400:
            raise self._rejected(response)

        elapsed = round(time.time() - start_time, 1)
        video_id = response.json().get("id")
        if not video_id:
            raise PublishRejected("Upload response has no video id")

        result = PublishResult(
            video_id=video_id,
            url=WATCH_URL.format(video_id=video_id),
            thumbnail_url=THUMBNAIL_URL.format(video_id=video_id),
            privacy=metadata.privacy_status,
            category_id=metadata.category_id,
            upload_seconds=elapsed,
            uploaded_at=utc_now(),
            file_size=size,
        )
        logger.info(f"Upload complete in {elapsed}s: {result.url}")
        return result

    async def check_connection(self) -> bool:
        """
        Check that the channel is reachable with the configured credentials.

        Returns:
            True if available, False otherwise
        """
        try:
            headers = await self.auth.auth_headers()
            response = await self.http_client.get(
                f"{self.config.base_url}/channels",
                params={"part": "snippet", "mine": "true"},
                headers=headers,
            )
            if response.status_code == 200:
                items = response.json().get("items", [])
                if items:
                    logger.debug(f"YouTube channel: {items[0]['snippet']['title']}")
                return True
        except Exception as e:
            logger.debug(f"YouTube not available: {e}")
        return False
