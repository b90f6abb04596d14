"""
Record lifecycle driver.

Owns every status transition of a video record:

    Pending -> Processing          claim()
    Processing -> Uploaded         mark_uploaded()
    Processing -> Error            mark_failed(), recover_stuck_processing()
    Error -> Pending               reset_stale_errors()

attempts only grows on a transition into Error. last_error and error_at
are set together with Error and cleared when the record leaves it.
"""

import logging
from datetime import timedelta

from publisher.config import Settings, get_settings
from publisher.models.schemas import (
    FetchResult,
    PublishResult,
    RecordFilter,
    RecordStatus,
    VideoRecord,
    utc_now,
)
from publisher.services.clients.base import RecordStore
from publisher.services.errors import ClaimConflict, ResultPersistError, StoreUnavailable
from publisher.utils.media_utils import bytes_to_mb, format_file_size
from publisher.utils.text_utils import truncate

logger = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = "Interrupted: still Processing after {minutes} min (worker stopped mid-run)"


def error_message(error: BaseException | str, max_length: int) -> str:
    """
    Text stored on a failed record.

    Args:
        error: Exception or message
        max_length: Store limit for the message

    Returns:
        Non-empty message no longer than max_length
    """
    if isinstance(error, BaseException):
        text = str(error).strip() or type(error).__name__
    else:
        text = error.strip() or "Unknown error"
    return truncate(text, max_length, "...")


class LifecycleDriver:
    """
    Drives records through their publishing states.

    Example:
        driver = LifecycleDriver(store, settings)
        record = await driver.claim(record)
        try:
            ...
        except PublisherError as e:
            await driver.mark_failed(record, e)
    """

    def __init__(self, store: RecordStore, settings: Settings | None = None):
        """
        Initialize driver.

        Args:
            store: Record store holding the records
            settings: Application settings (uses defaults if None)
        """
        self.store = store
        self.settings = settings or get_settings()

    async def annotate(self, record_id: str, text: str) -> None:
        """Append a comment to the record. Failures are logged only."""
        try:
            await self.store.comment(record_id, text)
        except Exception as e:
            logger.warning(f"Could not comment on {record_id}: {e}")

    async def claim(self, record: VideoRecord) -> VideoRecord:
        """
        Move a record from Pending to Processing.

        Args:
            record: Selected record

        Returns:
            Record in Processing state

        Raises:
            ClaimConflict: If the record is no longer Pending
            StoreUnavailable: If the store cannot be updated
        """
        claimed = await self.store.patch_if_status(
            record.record_id,
            RecordStatus.PENDING,
            {"status": RecordStatus.PROCESSING, "claimed_at": utc_now()},
        )
        if claimed is None:
            current = await self.store.get(record.record_id)
            raise ClaimConflict(record.record_id, current_status=current.status.value)

        logger.info(f"Claimed {record.record_id}: {record.title!r}")
        return claimed

    async def mark_uploaded(
        self,
        record: VideoRecord,
        fetch_result: FetchResult | None,
        publish_result: PublishResult,
    ) -> VideoRecord:
        """
        Persist a successful publish.

        Args:
            record: Claimed record
            fetch_result: Downloaded file info (for the size field)
            publish_result: Platform response

        Returns:
            Record in Uploaded state

        Raises:
            ValueError: If the publish result has no url or id
            ResultPersistError: If the store rejects the update
        """
        if not publish_result.url or not publish_result.video_id:
            raise ValueError("Publish result must carry a url and a video id")

        fields = {
            "status": RecordStatus.UPLOADED,
            "published_url": publish_result.url,
            "published_id": publish_result.video_id,
            "upload_seconds": publish_result.upload_seconds,
            "final_privacy": publish_result.privacy,
            "final_category": publish_result.category_id,
            "uploaded_at": publish_result.uploaded_at,
            "last_error": None,
            "error_at": None,
        }
        if fetch_result is not None:
            fields["file_size_mb"] = bytes_to_mb(fetch_result.size)

        try:
            updated = await self.store.patch(record.record_id, fields)
        except StoreUnavailable as e:
            logger.critical(
                f"Video {publish_result.url} was published but record "
                f"{record.record_id} could not be marked Uploaded: {e}"
            )
            raise ResultPersistError(
                f"Could not persist upload result: {e.message}",
                outcome=RecordStatus.UPLOADED.value,
                record_id=record.record_id,
                original_error=e,
            ) from e

        logger.info(f"Record {record.record_id} marked Uploaded: {publish_result.url}")

        await self.annotate(
            record.record_id,
            "Upload completed\n"
            f"URL: {publish_result.url}\n"
            f"Time: {publish_result.upload_seconds}s\n"
            f"Size: {format_file_size(publish_result.file_size)}\n"
            f"Date: {publish_result.uploaded_at:%d/%m/%Y %H:%M}",
        )
        return updated

    async def mark_failed(self, record: VideoRecord, error: BaseException | str) -> VideoRecord:
        """
        Persist a failed attempt.

        The attempt counter is re-read from the store so an externally
        edited value is not overwritten with a stale one.

        Args:
            record: Claimed record
            error: Failure cause

        Returns:
            Record in Error state

        Raises:
            ResultPersistError: If the store cannot be read or updated
        """
        message = error_message(error, self.settings.max_error_length)

        try:
            current = await self.store.get(record.record_id)
            updated = await self.store.patch(
                record.record_id,
                {
                    "status": RecordStatus.ERROR,
                    "last_error": message,
                    "attempts": current.attempts + 1,
                    "error_at": utc_now(),
                },
            )
        except StoreUnavailable as e:
            logger.critical(
                f"Record {record.record_id} failed ({message}) and the failure "
                f"could not be recorded: {e}"
            )
            raise ResultPersistError(
                f"Could not persist failure: {e.message}",
                outcome=RecordStatus.ERROR.value,
                record_id=record.record_id,
                original_error=e,
            ) from e

        logger.warning(
            f"Record {record.record_id} marked Error "
            f"(attempt {updated.attempts}): {message}"
        )

        await self.annotate(
            record.record_id,
            f"Upload failed (attempt {updated.attempts})\n{message}\n"
            f"Date: {utc_now():%d/%m/%Y %H:%M}",
        )
        return updated

    async def run_lifecycle(
        self,
        record: VideoRecord,
        fetch_result: FetchResult | None,
        outcome: PublishResult | BaseException,
    ) -> VideoRecord:
        """
        Persist the outcome of one publishing attempt.

        Args:
            record: Claimed record
            fetch_result: Downloaded file info, None if the fetch failed
            outcome: PublishResult on success, the exception on failure

        Returns:
            Updated record (Uploaded or Error)
        """
        if isinstance(outcome, PublishResult):
            return await self.mark_uploaded(record, fetch_result, outcome)
        return await self.mark_failed(record, outcome)

    async def reset_stale_errors(self, max_age_days: int | None = None) -> int:
        """
        Return old Error records to Pending for another try.

        Args:
            max_age_days: Minimum age of the error (default: settings)

        Returns:
            Number of records reset
        """
        days = self.settings.error_reset_days if max_age_days is None else max_age_days
        threshold = utc_now() - timedelta(days=days)

        records = await self.store.query(
            RecordFilter(status=RecordStatus.ERROR, error_before=threshold)
        )
        logger.info(f"{len(records)} error record(s) older than {days} day(s)")

        reset = 0
        for record in records:
            try:
                await self.store.patch(
                    record.record_id,
                    {
                        "status": RecordStatus.PENDING,
                        "attempts": 0,
                        "last_error": None,
                        "error_at": None,
                    },
                )
            except Exception as e:
                logger.error(f"Could not reset {record.record_id}: {e}")
                continue

            reset += 1
            logger.info(f"Reset {record.record_id} ({record.title!r}) to Pending")
            await self.annotate(record.record_id, f"Reset to Pending after {days} day(s) in Error")

        return reset

    async def recover_stuck_processing(self, max_age_minutes: int | None = None) -> int:
        """
        Fail records left in Processing by a run that never finished.

        Args:
            max_age_minutes: Minimum claim age (default: settings)

        Returns:
            Number of records moved to Error
        """
        minutes = (
            self.settings.stuck_processing_minutes
            if max_age_minutes is None
            else max_age_minutes
        )
        threshold = utc_now() - timedelta(minutes=minutes)

        records = await self.store.query(
            RecordFilter(status=RecordStatus.PROCESSING, claimed_before=threshold)
        )
        if not records:
            return 0

        logger.warning(f"{len(records)} record(s) stuck in Processing for over {minutes} min")
        message = INTERRUPTED_MESSAGE.format(minutes=minutes)

        recovered = 0
        for record in records:
            try:
                updated = await self.store.patch_if_status(
                    record.record_id,
                    RecordStatus.PROCESSING,
                    {
                        "status": RecordStatus.ERROR,
                        "last_error": message,
                        "attempts": record.attempts + 1,
                        "error_at": utc_now(),
                    },
                )
            except Exception as e:
                logger.error(f"Could not recover {record.record_id}: {e}")
                continue

            if updated is None:
                continue

            recovered += 1
            logger.info(f"Recovered stuck record {record.record_id} ({record.title!r})")
            await self.annotate(record.record_id, message)

        return recovered
