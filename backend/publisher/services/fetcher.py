"""
Asset fetcher for Drive-hosted videos.

Resolves a source link into a local file by trying ordered download
candidates. Large Drive files often answer with an HTML interstitial
(virus-scan or quota page) instead of the binary, so every candidate is
checked for a markup content type before its body is read, and every
completed download is validated before it is accepted.

Download progress is exposed as a finite async iterator of ChunkEvent
objects; callers consume it instead of registering stream callbacks.
"""

import logging
import time
from collections.abc import AsyncGenerator, AsyncIterator, Awaitable, Callable
from contextlib import aclosing
from dataclasses import dataclass
from pathlib import Path

import httpx

from publisher.config import Settings, get_settings
from publisher.models.schemas import FetchResult
from publisher.services.clients.base import StorageSource
from publisher.services.errors import (
    FetchExhausted,
    PublisherError,
    SourceUnavailable,
    ValidationFailure,
)
from publisher.services.reference_parser import build_candidate_urls, extract_source_id
from publisher.utils.media_utils import format_file_size, is_markup_content_type

logger = logging.getLogger(__name__)

# Browser-like headers; some mirrors refuse bare HTTP clients
BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
    ),
    "Accept": "*/*",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}

MAX_REDIRECTS = 5
DEFAULT_MIME_TYPE = "video/mp4"

# Below this a "video" is almost certainly an error body
SUSPICIOUS_SIZE = 1024


@dataclass
class ChunkEvent:
    """
    Bytes received so far for one download attempt.

    Attributes:
        bytes_received: Cumulative bytes written to the sink
        total_bytes: Declared Content-Length, if the server sent one
    """

    bytes_received: int
    total_bytes: int | None = None

    @property
    def percent(self) -> float | None:
        """Completion percentage, None when the total is unknown."""
        if not self.total_bytes:
            return None
        return min(self.bytes_received / self.total_bytes * 100, 100.0)


# Async consumer for chunk events
ChunkConsumer = Callable[[ChunkEvent], Awaitable[None]]


@dataclass
class DownloadAttempt:
    """
    One candidate download into a sink file.

    Response metadata is filled in by AssetFetcher.iter_download once the
    headers have been accepted.
    """

    url: str
    sink: Path
    content_type: str = ""
    declared_size: int | None = None
    bytes_received: int = 0


def cleanup_temp_file(path: Path | None) -> bool:
    """
    Remove a temporary file, ignoring errors.

    Args:
        path: File to remove (None is accepted)

    Returns:
        True if a file was removed
    """
    if path is None:
        return False
    try:
        path = Path(path)
        if path.exists():
            path.unlink()
            logger.debug(f"Removed temp file: {path.name}")
            return True
    except OSError as e:
        logger.warning(f"Failed to remove temp file {path}: {e}")
    return False


def cleanup_temp_dir(temp_dir: Path) -> int:
    """
    Remove every file in the temp directory.

    Args:
        temp_dir: Directory holding downloaded videos

    Returns:
        Number of files removed
    """
    temp_dir = Path(temp_dir)
    if not temp_dir.exists():
        return 0

    removed = 0
    for path in temp_dir.iterdir():
        if path.is_file() and cleanup_temp_file(path):
            removed += 1

    if removed:
        logger.info(f"Cleaned {removed} file(s) from {temp_dir}")
    return removed


class AssetFetcher:
    """
    Multi-candidate downloader for source videos.

    Tries each candidate URL in order and stops at the first one that
    yields a validated file. When a storage source is supplied, its
    authenticated stream is tried after every public candidate failed.

    Example:
        fetcher = AssetFetcher(settings)
        result = await fetcher.fetch_asset(record.source_link)
        print(result.path, result.size)
    """

    def __init__(
        self,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
        source: StorageSource | None = None,
    ):
        """
        Initialize fetcher.

        Args:
            settings: Application settings (uses defaults if None)
            http_client: Optional preconfigured HTTP client
            source: Optional storage source used as the last candidate
        """
        self.settings = settings or get_settings()
        self.http_client = http_client or httpx.AsyncClient(
            timeout=self.settings.fetch_timeout,
            follow_redirects=True,
            max_redirects=MAX_REDIRECTS,
        )
        self.source = source

    async def __aenter__(self) -> "AssetFetcher":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.http_client.aclose()

    def sink_path(self, source_id: str) -> Path:
        """Local file a source id is downloaded into."""
        return self.settings.temp_dir / f"video_{source_id}.mp4"

    def _accept_response(self, attempt: DownloadAttempt, response: httpx.Response) -> None:
        """
        Inspect status and headers before any body byte is read.

        Raises:
            SourceUnavailable: On an error status
            ValidationFailure: If the response is a markup page
        """
        if response.status_code >= 400:
            raise SourceUnavailable(
                f"Candidate returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        attempt.content_type = response.headers.get("content-type", "")
        if is_markup_content_type(attempt.content_type):
            raise ValidationFailure(
                f"Candidate returned a markup page ({attempt.content_type})"
            )

        length = response.headers.get("content-length")
        attempt.declared_size = int(length) if length and length.isdigit() else None

        logger.debug(
            f"Status {response.status_code}, "
            f"Content-Type: {attempt.content_type or '-'}, "
            f"Content-Length: {attempt.declared_size}"
        )

    async def _write_chunks(
        self,
        attempt: DownloadAttempt,
        chunks: AsyncIterator[bytes],
    ) -> AsyncIterator[ChunkEvent]:
        attempt.sink.parent.mkdir(parents=True, exist_ok=True)
        with open(attempt.sink, "wb") as f:
            async for chunk in chunks:
                if not chunk:
                    continue
                f.write(chunk)
                attempt.bytes_received += len(chunk)
                yield ChunkEvent(attempt.bytes_received, attempt.declared_size)

    async def iter_download(self, attempt: DownloadAttempt) -> AsyncIterator[ChunkEvent]:
        """
        Stream one candidate into its sink, yielding progress events.

        The sink is deleted before writing and again on any failure, so a
        partial file never survives a rejected candidate. The iterator is
        single-pass: create a new DownloadAttempt to retry.

        Args:
            attempt: Candidate URL and sink path

        Yields:
            ChunkEvent after each chunk written

        Raises:
            SourceUnavailable: On error status or transport failure
            ValidationFailure: If the response is a markup page
        """
        cleanup_temp_file(attempt.sink)

        try:
            async with self.http_client.stream(
                "GET",
                attempt.url,
                headers=BROWSER_HEADERS,
                timeout=self.settings.fetch_timeout,
            ) as response:
                self._accept_response(attempt, response)
                chunks = response.aiter_bytes(self.settings.fetch_chunk_size)
                async with aclosing(self._write_chunks(attempt, chunks)) as events:
                    async for event in events:
                        yield event

        except httpx.HTTPError as e:
            cleanup_temp_file(attempt.sink)
            raise SourceUnavailable(
                f"Download interrupted: {type(e).__name__}: {e}",
                original_error=e,
            ) from e

        except Exception:
            cleanup_temp_file(attempt.sink)
            raise

    async def iter_source_download(
        self,
        attempt: DownloadAttempt,
        source_id: str,
    ) -> AsyncIterator[ChunkEvent]:
        """
        Stream a file through the storage source's authenticated API.

        Raises:
            SourceUnavailable: If no source is configured or it fails
        """
        if self.source is None:
            raise SourceUnavailable("No storage source configured")

        cleanup_temp_file(attempt.sink)
        attempt.content_type = DEFAULT_MIME_TYPE

        try:
            async with aclosing(self._write_chunks(attempt, self.source.stream(source_id))) as events:
                async for event in events:
                    yield event
        except Exception:
            cleanup_temp_file(attempt.sink)
            raise

    def validate(self, attempt: DownloadAttempt) -> int:
        """
        Check the completed sink file.

        Args:
            attempt: Finished download attempt

        Returns:
            Size of the file in bytes

        Raises:
            ValidationFailure: If the file is missing, empty or its size
                differs from the declared length beyond tolerance
        """
        if not attempt.sink.exists():
            raise ValidationFailure(f"File not created: {attempt.sink.name}")

        size = attempt.sink.stat().st_size
        if size == 0:
            raise ValidationFailure("Downloaded file is empty")

        if attempt.declared_size is not None:
            drift = abs(size - attempt.declared_size)
            if drift > self.settings.fetch_size_tolerance:
                raise ValidationFailure(
                    f"Size mismatch: got {size} bytes, "
                    f"server declared {attempt.declared_size}"
                )

        if size < SUSPICIOUS_SIZE:
            logger.warning(f"Downloaded file is only {size} bytes, may not be a valid video")

        return size

    async def _run_attempt(
        self,
        attempt: DownloadAttempt,
        events: AsyncGenerator[ChunkEvent, None],
        on_chunk: ChunkConsumer | None,
    ) -> int:
        # The generator is closed before the sink is removed, whatever on_chunk raises
        try:
            async with aclosing(events):
                async for event in events:
                    if on_chunk is not None:
                        await on_chunk(event)
            return self.validate(attempt)
        except Exception:
            cleanup_temp_file(attempt.sink)
            raise

    def _result(self, attempt: DownloadAttempt, size: int, started: float) -> FetchResult:
        mime_type = attempt.content_type.split(";")[0].strip().lower()
        if not mime_type or mime_type == "application/octet-stream":
            mime_type = DEFAULT_MIME_TYPE

        return FetchResult(
            path=attempt.sink,
            name=attempt.sink.name,
            size=size,
            mime_type=mime_type,
            source_url=attempt.url,
            declared_size=attempt.declared_size,
            elapsed_seconds=round(time.time() - started, 1),
        )

    async def fetch_asset(
        self,
        link: str,
        on_chunk: ChunkConsumer | None = None,
    ) -> FetchResult:
        """
        Download the asset behind a source link.

        Args:
            link: Drive link or bare file id
            on_chunk: Optional async consumer of download progress

        Returns:
            FetchResult for the first candidate that validated

        Raises:
            InvalidReference: If the link has no recognizable file id
            FetchExhausted: If every candidate failed
        """
        source_id = extract_source_id(link)
        urls = build_candidate_urls(source_id, self.settings.candidate_templates)
        sink = self.sink_path(source_id)

        logger.info(f"Fetching {source_id} ({len(urls)} candidate(s))")
        started = time.time()
        last_error: Exception | None = None

        for index, url in enumerate(urls, 1):
            attempt = DownloadAttempt(url=url, sink=sink)
            logger.info(f"Candidate {index}/{len(urls)}: {url}")

            try:
                size = await self._run_attempt(attempt, self.iter_download(attempt), on_chunk)
            except (PublisherError, OSError) as e:
                last_error = e
                logger.warning(f"Candidate {index} rejected: {e}")
                continue

            result = self._result(attempt, size, started)
            logger.info(
                f"Downloaded {result.name}: {format_file_size(size)} "
                f"in {result.elapsed_seconds}s (candidate {index})"
            )
            return result

        attempted = list(urls)
        if self.source is not None:
            attempt = DownloadAttempt(url=f"source:{source_id}", sink=sink)
            attempted.append(attempt.url)
            logger.info(f"Public candidates failed, trying storage source for {source_id}")

            try:
                size = await self._run_attempt(
                    attempt, self.iter_source_download(attempt, source_id), on_chunk
                )
            except (PublisherError, OSError) as e:
                last_error = e
                logger.warning(f"Storage source download rejected: {e}")
            else:
                result = self._result(attempt, size, started)
                logger.info(f"Downloaded {result.name} via storage source: {format_file_size(size)}")
                return result

        cleanup_temp_file(sink)
        raise FetchExhausted(
            f"All {len(attempted)} download candidate(s) failed for {source_id}",
            attempted=attempted,
            last_error=last_error,
        )
