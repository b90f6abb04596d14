"""
Drive to record store reconciliation.

Registers videos found in the source folder that the record store does
not know yet. A video is considered known when either its normalized
title or its canonical link already appears on a record.
"""

import asyncio
import logging
from pathlib import Path

from publisher.config import Settings, get_settings
from publisher.models.schemas import (
    DEFAULT_CATEGORY,
    InventoryItem,
    Privacy,
    ReconcileResult,
    RecordStatus,
)
from publisher.services.clients.base import RecordStore, StorageSource
from publisher.services.errors import ConfigurationError, InvalidReference
from publisher.services.reference_parser import extract_source_id
from publisher.utils.media_utils import bytes_to_mb, is_video_file
from publisher.utils.text_utils import canonical_link, normalize_title

logger = logging.getLogger(__name__)


class Reconciler:
    """
    Creates Pending records for new videos in the source folder.

    Example:
        reconciler = Reconciler(store, drive, settings)
        result = await reconciler.reconcile(limit=5)
        print(f"{result.created} created, {result.skipped} already tracked")
    """

    def __init__(
        self,
        store: RecordStore,
        source: StorageSource,
        settings: Settings | None = None,
    ):
        """
        Initialize reconciler.

        Args:
            store: Record store receiving new records
            source: Storage source listing the videos
            settings: Application settings (uses defaults if None)
        """
        self.store = store
        self.source = source
        self.settings = settings or get_settings()

    @staticmethod
    def link_key(link: str) -> str:
        """Canonical form of a stored link, or the link itself if it has no file id."""
        try:
            return canonical_link(extract_source_id(link))
        except InvalidReference:
            return link

    async def load_existing_keys(self) -> tuple[set[str], set[str]]:
        """
        Read every record and collect its dedup keys.

        Returns:
            (normalized titles, canonical source links)

        Raises:
            StoreUnavailable: If the store cannot be queried
        """
        records = await self.store.query()

        titles = {record.normalized_title for record in records if record.normalized_title}
        links = {self.link_key(record.source_link) for record in records if record.source_link}

        logger.info(f"Record store holds {len(records)} record(s)")
        return titles, links

    def build_fields(self, item: InventoryItem) -> dict:
        """Record fields for a newly discovered video."""
        return {
            "title": item.display_name,
            "source_link": item.canonical_link,
            "description": "",
            "tags": "",
            "category": DEFAULT_CATEGORY,
            "privacy": Privacy.PUBLIC,
            "status": RecordStatus.PENDING,
            "file_size_mb": bytes_to_mb(item.byte_size),
            "source_created_at": item.created_at,
        }

    async def reconcile(
        self,
        source_folder: str | None = None,
        dry_run: bool = False,
        limit: int | None = None,
        force: bool = False,
    ) -> ReconcileResult:
        """
        Register new videos from the source folder.

        Items are processed newest first. Keys of each accepted item are
        added to the known sets at once, so one pass never registers two
        records with the same normalized title or link. A failed creation
        is counted and logged; the pass continues.

        Args:
            source_folder: Folder to list (default: settings folder id)
            dry_run: Count what would be created without writing
            limit: Register at most this many new items
            force: Ignore records that already exist in the store

        Returns:
            ReconcileResult with created/skipped/errors/deferred counts

        Raises:
            SourceUnavailable: If the folder cannot be listed
            ConfigurationError: If no folder is given or configured
            StoreUnavailable: If existing records cannot be read
        """
        folder = source_folder or self.settings.google_drive_folder_id
        if not folder:
            raise ConfigurationError(
                "No source folder configured",
                missing_keys=["GOOGLE_DRIVE_FOLDER_ID"],
            )
        if dry_run:
            logger.info("Dry run: no records will be created")

        inventory = await self.source.list(folder)
        videos = [
            item for item in inventory
            if item.mime_type.startswith("video/") or is_video_file(Path(item.original_name))
        ]
        if len(videos) < len(inventory):
            logger.info(f"Ignoring {len(inventory) - len(videos)} non-video file(s)")

        result = ReconcileResult(total=len(videos), dry_run=dry_run)
        if not videos:
            logger.info("No videos found in source folder")
            return result

        if force:
            logger.warning("Force mode: existing records are not checked")
            titles, links = set(), set()
        else:
            titles, links = await self.load_existing_keys()

        new_items: list[InventoryItem] = []
        for item in videos:
            title_key = normalize_title(item.display_name)
            if title_key in titles or item.canonical_link in links:
                logger.debug(f"Already tracked: {item.display_name!r}")
                result.skipped += 1
                continue

            titles.add(title_key)
            links.add(item.canonical_link)
            new_items.append(item)

        to_create = new_items[:limit] if limit else new_items
        result.deferred = len(new_items) - len(to_create)

        logger.info(f"{len(new_items)} new video(s), registering {len(to_create)}")
        if result.deferred:
            logger.info(f"Limit {limit} reached, {result.deferred} video(s) left for a later pass")

        for index, item in enumerate(to_create):
            if dry_run:
                logger.info(f"Would register: {item.display_name!r}")
                result.created += 1
                result.created_titles.append(item.display_name)
                continue

            if index > 0 and self.settings.sync_create_delay > 0:
                await asyncio.sleep(self.settings.sync_create_delay)

            try:
                record = await self.store.create(self.build_fields(item))
            except Exception as e:
                logger.error(f"Failed to register {item.display_name!r}: {e}")
                result.errors += 1
                continue

            logger.info(f"Registered {item.display_name!r} as {record.record_id}")
            result.created += 1
            result.created_titles.append(item.display_name)

        logger.info(
            f"Reconcile done: {result.created} created, {result.skipped} skipped, "
            f"{result.errors} error(s), {result.deferred} deferred, {result.total} in source"
        )
        return result
