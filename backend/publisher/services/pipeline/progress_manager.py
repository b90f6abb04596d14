"""
Progress management for pipeline steps.

Calculates overall progress from step weights and turns download
ChunkEvents into throttled progress updates.
"""

import logging
from typing import Awaitable, Callable

from publisher.models.schemas import PipelineStep
from publisher.services.fetcher import ChunkConsumer, ChunkEvent
from publisher.utils.media_utils import format_file_size

logger = logging.getLogger(__name__)

# Type alias for progress callback
# Signature: (step, progress_percent, message) -> None
ProgressCallback = Callable[[PipelineStep, float, str], Awaitable[None]]

# Report unknown-size downloads every this many bytes
UNKNOWN_SIZE_REPORT_BYTES = 10 * 1024 * 1024


class ProgressManager:
    """
    Manages progress calculation and reporting for pipeline steps.

    Fetch and publish dominate: both move the whole video over the
    network, the rest are single store calls.

    Example:
        manager = ProgressManager()
        overall = manager.calculate_overall_progress(
            PipelineStep.FETCH, 50
        )  # Returns 31.5 (9 + 22.5)
    """

    # Progress weights for each step (must sum to 100)
    STAGE_WEIGHTS = {
        PipelineStep.SYNC: 5,       # 0-5%
        PipelineStep.SELECT: 2,     # 5-7%
        PipelineStep.CLAIM: 2,      # 7-9%
        PipelineStep.FETCH: 45,     # 9-54%: download
        PipelineStep.PUBLISH: 43,   # 54-97%: upload
        PipelineStep.PERSIST: 3,    # 97-100%
    }

    # Define step order for progress calculation
    STAGE_ORDER = [
        PipelineStep.SYNC,
        PipelineStep.SELECT,
        PipelineStep.CLAIM,
        PipelineStep.FETCH,
        PipelineStep.PUBLISH,
        PipelineStep.PERSIST,
    ]

    def calculate_overall_progress(
        self,
        current_step: PipelineStep,
        step_progress: float = 100,
    ) -> float:
        """
        Calculate overall progress percentage.

        Args:
            current_step: Current pipeline step
            step_progress: Progress within current step (0-100)

        Returns:
            Overall progress (0-100)
        """
        if current_step == PipelineStep.COMPLETE:
            return 100.0

        base_progress = 0.0
        for step in self.STAGE_ORDER:
            if step == current_step:
                break
            base_progress += self.STAGE_WEIGHTS.get(step, 0)

        current_weight = self.STAGE_WEIGHTS.get(current_step, 0)
        step_contribution = (step_progress / 100) * current_weight

        return min(base_progress + step_contribution, 100)

    async def update_progress(
        self,
        callback: ProgressCallback | None,
        step: PipelineStep,
        step_progress: float,
        message: str,
    ) -> None:
        """
        Update progress via callback.

        Args:
            callback: Progress callback (may be None)
            step: Current pipeline step
            step_progress: Progress within current step (0-100)
            message: Human-readable status message
        """
        if callback is None:
            return

        overall_progress = self.calculate_overall_progress(step, step_progress)

        try:
            await callback(step, overall_progress, message)
        except Exception as e:
            # Never fail due to callback error
            logger.warning(f"Progress callback error: {e}")

    def chunk_consumer(self, callback: ProgressCallback | None) -> ChunkConsumer | None:
        """
        Build a download event consumer reporting through callback.

        Updates are emitted when the whole percentage changes, or every
        10 MB when the server did not declare a size.

        Args:
            callback: Progress callback (may be None)

        Returns:
            Async ChunkEvent consumer, or None without a callback
        """
        if callback is None:
            return None

        last_reported = {"percent": -1, "bytes": 0}

        async def consume(event: ChunkEvent) -> None:
            percent = event.percent
            if percent is not None:
                whole = int(percent)
                if whole == last_reported["percent"]:
                    return
                last_reported["percent"] = whole
                message = (
                    f"Downloading: {whole}% "
                    f"({format_file_size(event.bytes_received)}/{format_file_size(event.total_bytes)})"
                )
                await self.update_progress(callback, PipelineStep.FETCH, percent, message)
                return

            if event.bytes_received - last_reported["bytes"] < UNKNOWN_SIZE_REPORT_BYTES:
                return
            last_reported["bytes"] = event.bytes_received
            await self.update_progress(
                callback,
                PipelineStep.FETCH,
                0,
                f"Downloaded: {format_file_size(event.bytes_received)}",
            )

        return consume
