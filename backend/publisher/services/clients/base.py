"""
Collaborator protocols for the publishing pipeline.

Defines the interfaces the core consumes, allowing the Notion, Drive
and YouTube adapters to be swapped for in-memory implementations.
"""

from collections.abc import AsyncIterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from publisher.models.schemas import (
    InventoryItem,
    PublishMetadata,
    PublishResult,
    RecordFilter,
    RecordSort,
    RecordStatus,
    VideoRecord,
)


@dataclass
class ClientConfig:
    """
    Configuration for HTTP client instances.

    Attributes:
        base_url: API endpoint URL
        timeout: Request timeout in seconds
        api_key: Optional token for authenticated services
        max_retries: Number of retry attempts for transient errors
    """

    base_url: str
    timeout: float = 30.0
    api_key: str | None = None
    max_retries: int = 3


@runtime_checkable
class RecordStore(Protocol):
    """
    Persistent records keyed by a stable identifier.

    Field dictionaries passed to create/patch use VideoRecord attribute
    names; adapters translate them to their storage format.
    """

    async def query(
        self,
        filter: RecordFilter | None = None,
        sort: RecordSort | None = None,
        limit: int | None = None,
    ) -> list[VideoRecord]:
        """
        Return records matching filter, in sort order, at most limit.

        Raises:
            StoreUnavailable: If the store cannot be queried
        """
        ...

    async def get(self, record_id: str) -> VideoRecord:
        """Fetch one record by id."""
        ...

    async def create(self, fields: dict[str, Any]) -> VideoRecord:
        """Create a record and return it with its assigned id."""
        ...

    async def patch(self, record_id: str, fields: dict[str, Any]) -> VideoRecord:
        """Update the given fields and return the updated record."""
        ...

    async def patch_if_status(
        self,
        record_id: str,
        expected: RecordStatus,
        fields: dict[str, Any],
    ) -> VideoRecord | None:
        """
        Update the record only if its current status equals expected.

        Returns:
            Updated record, or None if the status did not match
        """
        ...

    async def comment(self, record_id: str, text: str) -> None:
        """Append a human-readable note to the record's audit trail."""
        ...


@runtime_checkable
class StorageSource(Protocol):
    """File storage holding the source videos."""

    async def list(self, folder_ref: str) -> list[InventoryItem]:
        """
        List video files in a folder, newest first.

        Raises:
            SourceUnavailable: If the listing fails
        """
        ...

    def stream(self, source_id: str) -> AsyncIterator[bytes]:
        """
        Stream the raw bytes of one file through the authenticated API.

        Raises:
            SourceUnavailable: If the file cannot be read
        """
        ...


@runtime_checkable
class PublishTarget(Protocol):
    """Video platform receiving the uploads."""

    async def insert(self, metadata: PublishMetadata, media_path: Path) -> PublishResult:
        """
        Upload media with metadata.

        Raises:
            PublishRejected: If the platform refuses the upload
        """
        ...
