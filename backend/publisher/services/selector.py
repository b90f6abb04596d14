"""
Next-record selection and record statistics.

Pure reads against the record store: nothing here changes a record.
"""

import logging

from publisher.models.schemas import (
    RecordFilter,
    RecordSort,
    RecordStats,
    RecordStatus,
    VideoRecord,
)
from publisher.services.clients.base import RecordStore

logger = logging.getLogger(__name__)


class RecordSelector:
    """
    Picks the next Pending record to publish.

    Records are taken in normalized-title order (record id breaks ties),
    so repeated runs over an unchanged store select the same record.

    Example:
        selector = RecordSelector(store)
        record = await selector.select_next()
        if record is None:
            print("Nothing to publish")
    """

    def __init__(self, store: RecordStore):
        """
        Initialize selector.

        Args:
            store: Record store to read from
        """
        self.store = store

    async def select_next(self) -> VideoRecord | None:
        """
        Return the first publishable Pending record.

        Records failing validation (no title or no source link) are
        logged and skipped.

        Returns:
            VideoRecord or None when nothing is eligible

        Raises:
            StoreUnavailable: If the store cannot be queried
        """
        records = await self.store.query(
            RecordFilter(status=RecordStatus.PENDING),
            sort=RecordSort.TITLE_ASC,
        )
        logger.info(f"{len(records)} pending record(s)")

        ordered = sorted(records, key=lambda r: (r.normalized_title, r.record_id))

        for record in ordered:
            validation = record.validate_for_publish()
            if not validation.is_valid:
                logger.warning(
                    f"Skipping record {record.record_id} ({record.title!r}): "
                    f"{'; '.join(validation.errors)}"
                )
                continue

            for warning in validation.warnings:
                logger.warning(f"Record {record.record_id}: {warning}")

            logger.info(f"Selected {record.record_id}: {record.title!r}")
            return record

        return None

    async def stats(self) -> RecordStats:
        """
        Count records per status and find the latest upload.

        Returns:
            RecordStats over the whole store
        """
        records = await self.store.query()

        stats = RecordStats(total=len(records))
        for record in records:
            if record.status == RecordStatus.PENDING:
                stats.pending += 1
            elif record.status == RecordStatus.PROCESSING:
                stats.processing += 1
            elif record.status == RecordStatus.UPLOADED:
                stats.uploaded += 1
                if record.uploaded_at and (
                    stats.last_upload is None or record.uploaded_at > stats.last_upload
                ):
                    stats.last_upload = record.uploaded_at
            elif record.status == RecordStatus.ERROR:
                stats.error += 1

        return stats
