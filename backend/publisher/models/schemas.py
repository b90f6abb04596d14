"""
Pydantic models for the video publishing pipeline.
"""

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, computed_field, field_validator

from publisher.utils.text_utils import canonical_link, normalize_title, strip_extension

DEFAULT_CATEGORY = "Education"

# Limits of the publish target
MAX_TITLE_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 4500


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes as UTC so stored and computed times compare."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class RecordStatus(str, Enum):
    """Upload status of a tracked video record."""
    PENDING = "Pending"
    PROCESSING = "Processing"
    UPLOADED = "Uploaded"
    ERROR = "Error"


class Privacy(str, Enum):
    """Privacy option as stored on the record."""
    PUBLIC = "Public"
    UNLISTED = "Unlisted"
    PRIVATE = "Private"


class RecordSort(str, Enum):
    """Supported orderings for record queries."""
    TITLE_ASC = "title_asc"
    CREATED_DESC = "created_desc"


class PipelineStep(str, Enum):
    """Phase of a pipeline run, reported with its result."""
    SYNC = "sync"
    SELECT = "select"
    NO_VIDEO = "no_video"
    PREVIEW = "preview"
    CLAIM = "claim"
    FETCH = "fetch"
    PUBLISH = "publish"
    PERSIST = "persist"
    COMPLETE = "complete"


class InventoryItem(BaseModel):
    """File discovered in the storage source folder."""

    source_id: str
    original_name: str
    mime_type: str = ""
    byte_size: int = 0
    created_at: datetime | None = None
    modified_at: datetime | None = None

    @field_validator("created_at", "modified_at")
    @classmethod
    def ensure_utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)

    @computed_field
    @property
    def display_name(self) -> str:
        """File name without its extension, used as the record title."""
        return strip_extension(self.original_name)

    @computed_field
    @property
    def canonical_link(self) -> str:
        """Deterministic share link derived from source_id."""
        return canonical_link(self.source_id)


class RecordValidation(BaseModel):
    """Outcome of checking a record before publishing."""

    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @computed_field
    @property
    def is_valid(self) -> bool:
        """True when there are no blocking errors."""
        return not self.errors


class VideoRecord(BaseModel):
    """Tracked video awaiting or having completed publication."""

    record_id: str
    title: str = ""
    description: str = ""
    tags: str = ""
    category: str = DEFAULT_CATEGORY
    privacy: str = Privacy.PUBLIC.value
    source_link: str = ""
    status: RecordStatus = RecordStatus.PENDING
    attempts: int = Field(default=0, ge=0)
    last_error: str | None = None
    error_at: datetime | None = None
    claimed_at: datetime | None = None
    published_url: str | None = None
    published_id: str | None = None
    upload_seconds: float | None = None
    final_privacy: str | None = None
    final_category: str | None = None
    uploaded_at: datetime | None = None
    file_size_mb: float | None = None
    source_created_at: datetime | None = None
    created_at: datetime | None = None
    last_edited_at: datetime | None = None

    @field_validator(
        "error_at",
        "claimed_at",
        "uploaded_at",
        "source_created_at",
        "created_at",
        "last_edited_at",
    )
    @classmethod
    def ensure_utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)

    @computed_field
    @property
    def normalized_title(self) -> str:
        """Case-insensitive title key used for dedup and ordering."""
        return normalize_title(self.title)

    def validate_for_publish(self) -> RecordValidation:
        """
        Check that the record carries enough data to be published.

        Returns:
            RecordValidation with blocking errors and soft warnings
        """
        result = RecordValidation()

        if not self.title.strip():
            result.errors.append("Title is required")
        elif len(self.title) > MAX_TITLE_LENGTH:
            result.warnings.append("Title too long (will be truncated)")

        if not self.source_link:
            result.errors.append("Source link is required")
        elif "drive.google.com" not in self.source_link:
            result.warnings.append("Link does not look like a Google Drive link")

        if len(self.description) > MAX_DESCRIPTION_LENGTH:
            result.warnings.append("Description too long (will be truncated)")

        return result


class RecordFilter(BaseModel):
    """Filter for record store queries. Unset fields do not constrain."""

    status: RecordStatus | None = None
    error_before: datetime | None = None
    claimed_before: datetime | None = None

    @field_validator("error_before", "claimed_before")
    @classmethod
    def ensure_utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)


class FetchResult(BaseModel):
    """Local copy of a fetched asset."""

    path: Path
    name: str
    size: int
    mime_type: str
    source_url: str
    declared_size: int | None = None
    elapsed_seconds: float = 0.0


class PublishMetadata(BaseModel):
    """Metadata sent to the publish target with the media."""

    title: str
    description: str = ""
    tags: list[str] = Field(default_factory=list)
    category_id: str
    privacy_status: str
    default_language: str | None = None


class PublishResult(BaseModel):
    """Outcome of a successful publish call."""

    video_id: str
    url: str
    thumbnail_url: str | None = None
    privacy: str
    category_id: str | None = None
    upload_seconds: float = 0.0
    uploaded_at: datetime = Field(default_factory=utc_now)
    file_size: int = 0


class ReconcileResult(BaseModel):
    """Counts from one reconciliation pass."""

    created: int = 0
    skipped: int = 0
    errors: int = 0
    deferred: int = 0
    total: int = 0
    dry_run: bool = False
    created_titles: list[str] = Field(default_factory=list)


class PipelineOptions(BaseModel):
    """Options for a single pipeline run."""

    sync: bool = True
    preview: bool = False
    sync_limit: int | None = Field(default=None, ge=1)
    force_sync: bool = False
    source_folder: str | None = None


class PipelineRunResult(BaseModel):
    """Result of one pipeline invocation."""

    success: bool
    step: PipelineStep
    record: VideoRecord | None = None
    sync: ReconcileResult | None = None
    fetch: FetchResult | None = None
    publish: PublishResult | None = None
    error: str | None = None
    started_at: datetime = Field(default_factory=utc_now)
    duration_seconds: float = 0.0


class RecordStats(BaseModel):
    """Record counts per status."""

    total: int = 0
    pending: int = 0
    processing: int = 0
    uploaded: int = 0
    error: int = 0
    last_upload: datetime | None = None


class RunRequest(BaseModel):
    """Request body for triggering a pipeline run over HTTP."""

    preview: bool = False
    sync: bool = True
    sync_limit: int | None = Field(default=None, ge=1)


class SyncRequest(BaseModel):
    """Request body for a reconciliation-only pass."""

    dry_run: bool = False
    limit: int | None = Field(default=None, ge=1)
    force: bool = False


class ResetErrorsRequest(BaseModel):
    """Request body for the stale error reset."""

    max_age_days: int | None = Field(default=None, ge=0)


class LastUploadStatus(BaseModel):
    """Whether a successful upload happened recently."""

    upload_executed_recently: bool
    last_upload: datetime | None = None
    message: str
