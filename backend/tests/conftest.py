import sys
from pathlib import Path

# Add backend directory to Python path FIRST
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

# Now import after path is set
import itertools
from datetime import datetime, timedelta, timezone
from enum import Enum

import pytest

from publisher.config import Settings
from publisher.models.schemas import (
    FetchResult,
    InventoryItem,
    PublishMetadata,
    PublishResult,
    RecordFilter,
    RecordSort,
    RecordStatus,
    VideoRecord,
    utc_now,
)
from publisher.services.errors import SourceUnavailable, StoreUnavailable
from publisher.services.fetcher import ChunkEvent


class InMemoryRecordStore:
    """RecordStore backed by a dict. patch_if_status is atomic."""

    def __init__(self):
        self.records: dict[str, VideoRecord] = {}
        self.comments: list[tuple[str, str]] = []
        self.fail_methods: set[str] = set()
        self.fail_create_titles: set[str] = set()
        self.fail_comments = False
        self._ids = itertools.count(1)

    def _check(self, method: str) -> None:
        if method in self.fail_methods:
            raise StoreUnavailable(f"{method} unavailable", status_code=503)

    @staticmethod
    def _apply(record: VideoRecord, fields: dict) -> VideoRecord:
        data = record.model_dump(exclude={"normalized_title"})
        for key, value in fields.items():
            data[key] = value.value if isinstance(value, Enum) else value
        return VideoRecord.model_validate(data)

    def add(self, **fields) -> VideoRecord:
        """Insert a record directly, bypassing failure injection."""
        record_id = fields.pop("record_id", None) or f"rec-{next(self._ids)}"
        record = self._apply(VideoRecord(record_id=record_id), fields)
        self.records[record_id] = record
        return record

    def _matches(self, record: VideoRecord, filter: RecordFilter | None) -> bool:
        if filter is None:
            return True
        if filter.status is not None and record.status != filter.status:
            return False
        if filter.error_before is not None and (
            record.error_at is None or record.error_at >= filter.error_before
        ):
            return False
        if filter.claimed_before is not None and (
            record.claimed_at is None or record.claimed_at >= filter.claimed_before
        ):
            return False
        return True

    async def query(self, filter=None, sort=None, limit=None):
        self._check("query")
        records = [r for r in self.records.values() if self._matches(r, filter)]
        if sort == RecordSort.TITLE_ASC:
            records.sort(key=lambda r: r.title)
        elif sort == RecordSort.CREATED_DESC:
            records.sort(key=lambda r: r.created_at or datetime.min.replace(tzinfo=timezone.utc), reverse=True)
        return records[:limit] if limit else records

    async def get(self, record_id):
        self._check("get")
        return self.records[record_id]

    async def create(self, fields):
        self._check("create")
        if fields.get("title") in self.fail_create_titles:
            raise StoreUnavailable(f"create failed for {fields['title']}")
        fields = dict(fields)
        fields.setdefault("created_at", utc_now())
        return self.add(**fields)

    async def patch(self, record_id, fields):
        self._check("patch")
        record = self._apply(self.records[record_id], fields)
        self.records[record_id] = record
        return record

    async def patch_if_status(self, record_id, expected, fields):
        self._check("patch_if_status")
        if self.records[record_id].status != expected:
            return None
        return await self.patch(record_id, fields)

    async def comment(self, record_id, text):
        if self.fail_comments:
            raise StoreUnavailable("comments unavailable")
        self.comments.append((record_id, text))


class FakeStorageSource:
    """StorageSource returning a fixed inventory."""

    def __init__(self, items: list[InventoryItem] | None = None, content: bytes | None = None):
        self.items = items or []
        self.content = content
        self.fail = False
        self.listed: list[str] = []

    async def list(self, folder_ref):
        self.listed.append(folder_ref)
        if self.fail:
            raise SourceUnavailable("Drive listing failed", status_code=500)
        return list(self.items)

    async def stream(self, source_id):
        if self.content is None:
            raise SourceUnavailable("Drive download failed", status_code=403)
        for start in range(0, len(self.content), 1024):
            yield self.content[start:start + 1024]


class FakePublishTarget:
    """PublishTarget recording every upload."""

    def __init__(self, error: Exception | None = None):
        self.error = error
        self.calls: list[tuple[PublishMetadata, Path, bool]] = []

    async def insert(self, metadata, media_path):
        self.calls.append((metadata, Path(media_path), Path(media_path).exists()))
        if self.error is not None:
            raise self.error
        return PublishResult(
            video_id="yt-123",
            url="https://www.youtube.com/watch?v=yt-123",
            thumbnail_url="https://img.youtube.com/vi/yt-123/maxresdefault.jpg",
            privacy=metadata.privacy_status,
            category_id=metadata.category_id,
            upload_seconds=1.5,
            file_size=Path(media_path).stat().st_size,
        )


class FakeFetcher:
    """Fetcher writing fixed bytes to the sink instead of downloading."""

    def __init__(self, settings: Settings, content: bytes = b"video-bytes" * 100, error=None):
        self.settings = settings
        self.content = content
        self.error = error
        self.links: list[str] = []

    async def fetch_asset(self, link, on_chunk=None):
        self.links.append(link)
        if self.error is not None:
            raise self.error
        path = self.settings.temp_dir / "video_fake.mp4"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self.content)
        if on_chunk is not None:
            total = len(self.content)
            await on_chunk(ChunkEvent(bytes_received=total // 2, total_bytes=total))
            await on_chunk(ChunkEvent(bytes_received=total, total_bytes=total))
        return FetchResult(
            path=path,
            name=path.name,
            size=len(self.content),
            mime_type="video/mp4",
            source_url=link,
        )


def make_item(source_id: str, name: str, age_minutes: int = 0, mime_type: str = "video/mp4") -> InventoryItem:
    """Inventory item created age_minutes ago."""
    created = utc_now() - timedelta(minutes=age_minutes)
    return InventoryItem(
        source_id=source_id,
        original_name=name,
        mime_type=mime_type,
        byte_size=5 * 1024 * 1024,
        created_at=created,
        modified_at=created,
    )


def drive_link(source_id: str) -> str:
    return f"https://drive.google.com/file/d/{source_id}/view?usp=sharing"


@pytest.fixture
def settings(tmp_path):
    """Settings isolated from the environment and .env files."""
    return Settings(
        _env_file=None,
        notion_token="secret_test",
        notion_database_id="db-1",
        google_client_id="client.apps.googleusercontent.com",
        google_client_secret="client-secret",
        google_refresh_token="refresh-token",
        google_drive_folder_id="folder-1",
        temp_dir=tmp_path / "temp",
        history_file=tmp_path / "history.jsonl",
        sync_create_delay=0,
        api_secret="test-secret",
    )


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def source():
    return FakeStorageSource()


@pytest.fixture
def target():
    return FakePublishTarget()


@pytest.fixture
def publish_config():
    return {
        "description_footer": "\n\n---\nPublished {date}",
        "auto_tags": ["auto-publisher"],
        "categories": {},
    }


@pytest.fixture
def pending_record(store):
    return store.add(
        title="Sermon 1",
        source_link=drive_link("abc123"),
        status=RecordStatus.PENDING,
    )
