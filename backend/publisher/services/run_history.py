"""
Run history for pipeline invocations.

Appends one JSON line per action to a log file so that the "last
upload" status survives restarts and is shared by the CLI and the HTTP
trigger.
"""

import json
import logging
from datetime import datetime, timedelta
from pathlib import Path

from pydantic import BaseModel, Field

from publisher.config import Settings
from publisher.models.schemas import (
    LastUploadStatus,
    PipelineRunResult,
    PipelineStep,
    as_utc,
    utc_now,
)

logger = logging.getLogger(__name__)

UPLOAD_COMPLETED = "UPLOAD_COMPLETED"
UPLOAD_FAILED = "UPLOAD_FAILED"
NO_PENDING_VIDEOS = "NO_PENDING_VIDEOS"
PREVIEW = "PREVIEW"


class HistoryEntry(BaseModel):
    """One logged pipeline action."""

    timestamp: datetime = Field(default_factory=utc_now)
    action: str
    success: bool = True
    record_id: str | None = None
    details: str = ""


def action_for(result: PipelineRunResult) -> str:
    """History action name for a run result."""
    if result.step == PipelineStep.COMPLETE:
        return UPLOAD_COMPLETED
    if result.step == PipelineStep.NO_VIDEO:
        return NO_PENDING_VIDEOS
    if result.step == PipelineStep.PREVIEW:
        return PREVIEW
    return UPLOAD_FAILED


class RunHistory:
    """
    Append-only log of pipeline runs.

    Example:
        history = RunHistory.from_settings(settings)
        history.record_run(result)
        status = history.last_upload_status(hours=2)
    """

    def __init__(self, path: Path):
        """
        Initialize run history.

        Args:
            path: JSON lines file (created on first write)
        """
        self.path = Path(path)

    @classmethod
    def from_settings(cls, settings: Settings) -> "RunHistory":
        """Create RunHistory from application settings."""
        return cls(settings.history_file)

    def append(self, entry: HistoryEntry) -> None:
        """
        Append an entry. Write errors are logged, never raised.

        Args:
            entry: Entry to store
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(entry.model_dump_json() + "\n")
        except OSError as e:
            logger.warning(f"Failed to write run history {self.path}: {e}")
            return

        logger.debug(f"History: {entry.action} ({'ok' if entry.success else 'failed'})")

    def record_run(self, result: PipelineRunResult) -> HistoryEntry:
        """
        Log the outcome of a pipeline run.

        Args:
            result: Run result

        Returns:
            Stored entry
        """
        if result.publish is not None:
            details = result.publish.url
        else:
            details = result.error or ""

        entry = HistoryEntry(
            action=action_for(result),
            success=result.success,
            record_id=result.record.record_id if result.record else None,
            details=details,
        )
        self.append(entry)
        return entry

    def entries(self) -> list[HistoryEntry]:
        """
        Read all entries, oldest first.

        Lines that cannot be parsed are skipped.
        """
        if not self.path.exists():
            return []

        entries: list[HistoryEntry] = []
        with open(self.path, "r", encoding="utf-8") as f:
            for line_number, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(HistoryEntry.model_validate(json.loads(line)))
                except ValueError as e:
                    logger.warning(f"Skipping history line {line_number}: {e}")
        return entries

    def last_upload(self) -> HistoryEntry | None:
        """Most recent successful upload, if any."""
        for entry in reversed(self.entries()):
            if entry.action == UPLOAD_COMPLETED and entry.success:
                return entry
        return None

    def last_upload_status(self, hours: int) -> LastUploadStatus:
        """
        Check whether an upload succeeded within the last hours.

        Args:
            hours: Size of the window

        Returns:
            LastUploadStatus with the latest upload time
        """
        last = self.last_upload()
        if last is None:
            return LastUploadStatus(
                upload_executed_recently=False,
                message="No upload recorded",
            )

        timestamp = as_utc(last.timestamp)

        recent = utc_now() - timestamp <= timedelta(hours=hours)
        if recent:
            message = f"Upload completed within the last {hours}h: {last.details}"
        else:
            message = f"No upload in the last {hours}h"

        return LastUploadStatus(
            upload_executed_recently=recent,
            last_upload=timestamp,
            message=message,
        )
