"""
Collaborator clients for the publishing pipeline.

This package provides the protocols the core depends on and their HTTP
implementations:
- NotionRecordStore: Notion database of video records (RecordStore)
- DriveClient: Google Drive folder listing (StorageSource)
- YouTubeClient: YouTube resumable uploads (PublishTarget)
- GoogleAuth: OAuth2 access tokens shared by Drive and YouTube

Usage:
    from publisher.services.clients import GoogleAuth, NotionRecordStore, YouTubeClient

    auth = GoogleAuth.from_settings(settings)
    async with NotionRecordStore.from_settings(settings) as store:
        records = await store.query()
"""

from publisher.services.clients.base import (
    ClientConfig,
    PublishTarget,
    RecordStore,
    StorageSource,
)
from publisher.services.clients.drive_client import DriveClient
from publisher.services.clients.google_auth import GoogleAuth, GoogleAuthError
from publisher.services.clients.notion_client import NotionRecordStore
from publisher.services.clients.youtube_client import (
    CATEGORY_IDS,
    PRIVACY_STATUSES,
    YouTubeClient,
    category_id,
    privacy_status,
)

__all__ = [
    # Protocols
    "RecordStore",
    "StorageSource",
    "PublishTarget",
    "ClientConfig",
    # Implementations
    "NotionRecordStore",
    "DriveClient",
    "YouTubeClient",
    "GoogleAuth",
    "GoogleAuthError",
    # Canonical mappings
    "CATEGORY_IDS",
    "PRIVACY_STATUSES",
    "category_id",
    "privacy_status",
]
