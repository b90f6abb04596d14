"""
Pipeline orchestrator for video publishing.

Runs one publishing pass: recover stuck claims, reconcile the source
folder, select the next record, claim it, fetch the video, publish it
and persist the outcome. At most one record is in flight per pass.
"""

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from publisher.config import Settings, get_settings, load_publish_config
from publisher.logging_config import record_log_context
from publisher.models.schemas import (
    FetchResult,
    PipelineOptions,
    PipelineRunResult,
    PipelineStep,
    PublishResult,
    ReconcileResult,
    VideoRecord,
)
from publisher.services.clients import (
    DriveClient,
    GoogleAuth,
    NotionRecordStore,
    PublishTarget,
    RecordStore,
    StorageSource,
    YouTubeClient,
)
from publisher.services.errors import ClaimConflict, PublisherError, StoreUnavailable
from publisher.services.fetcher import AssetFetcher, cleanup_temp_file
from publisher.services.lifecycle import LifecycleDriver
from publisher.services.publish_metadata import build_publish_metadata
from publisher.services.reconciler import Reconciler
from publisher.services.selector import RecordSelector

from .progress_manager import ProgressCallback, ProgressManager

logger = logging.getLogger(__name__)


class PipelineError(PublisherError):
    """
    Pipeline step error with context.

    Attributes:
        step: Pipeline step where the error occurred
        message: Error description
        cause: Original exception (if any)
    """

    def __init__(
        self,
        step: PipelineStep,
        message: str,
        cause: Exception | None = None,
        record_id: str | None = None,
    ):
        super().__init__(message, record_id=record_id, original_error=cause)
        self.step = step
        self.cause = cause

    def __str__(self) -> str:
        return f"[{self.step.value}] {super().__str__()}"


class PipelineOrchestrator:
    """
    Pipeline orchestrator for video publishing.

    Collaborators are injected, so the same orchestrator runs against
    Notion/Drive/YouTube (see open()) or in-memory fakes.

    Example:
        async with PipelineOrchestrator.open(settings) as orchestrator:
            result = await orchestrator.run_pipeline_once(PipelineOptions())
            print(result.step, result.success)
    """

    def __init__(
        self,
        store: RecordStore,
        source: StorageSource,
        target: PublishTarget,
        settings: Settings | None = None,
        fetcher: AssetFetcher | None = None,
        publish_config: dict | None = None,
    ):
        """
        Initialize pipeline orchestrator.

        Args:
            store: Record store
            source: Storage source listing the videos
            target: Publish target
            settings: Application settings (uses defaults if None)
            fetcher: Asset fetcher (created from settings if None)
            publish_config: Parsed publish.yaml (loaded if None)
        """
        self.settings = settings or get_settings()
        self.store = store
        self.source = source
        self.target = target
        self.fetcher = fetcher or AssetFetcher(self.settings, source=source)
        self.publish_config = (
            publish_config if publish_config is not None else load_publish_config(self.settings)
        )

        self.reconciler = Reconciler(store, source, self.settings)
        self.selector = RecordSelector(store)
        self.lifecycle = LifecycleDriver(store, self.settings)
        self.progress_manager = ProgressManager()

    @classmethod
    @asynccontextmanager
    async def open(cls, settings: Settings | None = None) -> AsyncIterator["PipelineOrchestrator"]:
        """
        Build an orchestrator wired to the real services.

        All HTTP clients are closed when the context exits.

        Raises:
            ConfigurationError: If Notion or Google credentials are missing
        """
        settings = settings or get_settings()

        settings.validate_required("notion", "google")
        auth = GoogleAuth.from_settings(settings)
        async with (
            NotionRecordStore.from_settings(settings) as store,
            DriveClient.from_settings(settings, auth) as drive,
            YouTubeClient.from_settings(settings, auth) as youtube,
            AssetFetcher(settings, source=drive) as fetcher,
        ):
            try:
                yield cls(store, drive, youtube, settings=settings, fetcher=fetcher)
            finally:
                await auth.close()

    async def reconcile(self, options: PipelineOptions) -> ReconcileResult:
        """
        Run the reconcile step for a pipeline pass.

        Preview passes reconcile in dry-run mode.

        Raises:
            PipelineError: If the folder or the store cannot be read
        """
        try:
            return await self.reconciler.reconcile(
                source_folder=options.source_folder,
                dry_run=options.preview,
                limit=options.sync_limit,
                force=options.force_sync,
            )
        except PublisherError as e:
            raise PipelineError(PipelineStep.SYNC, f"Sync failed: {e}", e) from e

    async def select(self) -> VideoRecord | None:
        """
        Pick the next record.

        Raises:
            PipelineError: If the store cannot be queried
        """
        try:
            return await self.selector.select_next()
        except StoreUnavailable as e:
            raise PipelineError(PipelineStep.SELECT, f"Selection failed: {e}", e) from e

    async def fetch(
        self,
        record: VideoRecord,
        progress_callback: ProgressCallback | None = None,
    ) -> FetchResult:
        """Download the record's video."""
        await self.progress_manager.update_progress(
            progress_callback, PipelineStep.FETCH, 0, f"Downloading: {record.title}"
        )
        result = await self.fetcher.fetch_asset(
            record.source_link,
            on_chunk=self.progress_manager.chunk_consumer(progress_callback),
        )
        await self.progress_manager.update_progress(
            progress_callback, PipelineStep.FETCH, 100, f"Downloaded: {result.name}"
        )
        return result

    async def publish(
        self,
        record: VideoRecord,
        fetch_result: FetchResult,
        progress_callback: ProgressCallback | None = None,
    ) -> PublishResult:
        """Upload the downloaded video with metadata built from the record."""
        metadata = build_publish_metadata(record, self.settings, self.publish_config)

        await self.progress_manager.update_progress(
            progress_callback, PipelineStep.PUBLISH, 0, f"Uploading: {metadata.title}"
        )
        result = await self.target.insert(metadata, fetch_result.path)
        await self.progress_manager.update_progress(
            progress_callback, PipelineStep.PUBLISH, 100, f"Published: {result.url}"
        )
        return result

    async def run_pipeline_once(
        self,
        options: PipelineOptions | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> PipelineRunResult:
        """
        Publish at most one record.

        Steps:
        1. Recover records stuck in Processing (skipped in preview)
        2. Reconcile source folder (unless options.sync is False)
        3. Select next Pending record
        4. Preview: stop and report the selected record
        5. Claim -> fetch -> publish -> persist Uploaded
        6. Remove the downloaded file

        A failure after the claim marks the record Error before the
        result is returned.

        Args:
            options: Run options (defaults if None)
            progress_callback: Optional async callback for progress updates

        Returns:
            PipelineRunResult; success is True for a completed upload,
            an empty queue or a preview

        Raises:
            ResultPersistError: If the final outcome could not be stored
        """
        options = options or PipelineOptions()
        started = time.time()

        def finish(success: bool, step: PipelineStep, **fields) -> PipelineRunResult:
            result = PipelineRunResult(
                success=success,
                step=step,
                duration_seconds=round(time.time() - started, 1),
                **fields,
            )
            log = logger.info if success else logger.error
            log(
                f"Pipeline finished at step '{step.value}' "
                f"({'ok' if success else 'failed'}) in {result.duration_seconds}s"
                + (f": {result.error}" if result.error else "")
            )
            return result

        if options.preview:
            logger.info("Preview mode: nothing will be changed")
        else:
            try:
                await self.lifecycle.recover_stuck_processing()
            except StoreUnavailable as e:
                logger.warning(f"Stuck record recovery skipped: {e}")

        # Step 1: Reconcile
        sync_result: ReconcileResult | None = None
        if options.sync:
            await self.progress_manager.update_progress(
                progress_callback, PipelineStep.SYNC, 0, "Syncing source folder"
            )
            try:
                sync_result = await self.reconcile(options)
            except PipelineError as e:
                return finish(False, PipelineStep.SYNC, error=str(e.cause or e))
        else:
            logger.info("Sync skipped")

        # Step 2: Select
        await self.progress_manager.update_progress(
            progress_callback, PipelineStep.SELECT, 0, "Selecting next video"
        )
        try:
            record = await self.select()
        except PipelineError as e:
            return finish(False, PipelineStep.SELECT, sync=sync_result, error=str(e.cause or e))

        if record is None:
            logger.info("No pending video to publish")
            return finish(True, PipelineStep.NO_VIDEO, sync=sync_result)

        if options.preview:
            logger.info(f"Preview: next video would be {record.title!r} ({record.record_id})")
            return finish(True, PipelineStep.PREVIEW, record=record, sync=sync_result)

        with record_log_context(record.record_id):
            # Step 3: Claim
            try:
                record = await self.lifecycle.claim(record)
            except (ClaimConflict, StoreUnavailable) as e:
                logger.warning(f"Claim failed for {record.record_id}: {e}")
                return finish(
                    False, PipelineStep.CLAIM, record=record, sync=sync_result, error=str(e)
                )
            await self.progress_manager.update_progress(
                progress_callback, PipelineStep.CLAIM, 100, f"Claimed: {record.title}"
            )

            # Steps 4-6: Fetch, publish, persist
            fetch_result: FetchResult | None = None
            step = PipelineStep.FETCH
            try:
                try:
                    fetch_result = await self.fetch(record, progress_callback)
                    step = PipelineStep.PUBLISH
                    publish_result = await self.publish(record, fetch_result, progress_callback)
                except Exception as e:
                    if not isinstance(e, PublisherError):
                        logger.exception(f"Unexpected error during {step.value}")
                    failed = await self.lifecycle.run_lifecycle(record, fetch_result, e)
                    return finish(
                        False,
                        step,
                        record=failed,
                        sync=sync_result,
                        fetch=fetch_result,
                        error=str(e) or type(e).__name__,
                    )

                await self.progress_manager.update_progress(
                    progress_callback, PipelineStep.PERSIST, 0, "Saving result"
                )
                uploaded = await self.lifecycle.run_lifecycle(record, fetch_result, publish_result)

            finally:
                if fetch_result is not None:
                    cleanup_temp_file(fetch_result.path)

            await self.progress_manager.update_progress(
                progress_callback, PipelineStep.COMPLETE, 100, f"Published: {publish_result.url}"
            )
            return finish(
                True,
                PipelineStep.COMPLETE,
                record=uploaded,
                sync=sync_result,
                fetch=fetch_result,
                publish=publish_result,
            )
