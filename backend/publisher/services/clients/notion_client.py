"""
Notion record store implementation.

Provides async HTTP client for the Notion database holding one page per
video. Implements the RecordStore protocol: VideoRecord field names are
mapped to the database's property names and types here and nowhere else.
"""

import logging
from datetime import datetime
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from publisher.config import Settings
from publisher.models.schemas import (
    RecordFilter,
    RecordSort,
    RecordStatus,
    VideoRecord,
)
from publisher.services.clients.base import ClientConfig
from publisher.services.errors import StoreUnavailable

logger = logging.getLogger(__name__)

# Retry configuration for transient errors
RETRY_DECORATOR = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((httpx.ConnectError, httpx.TimeoutException)),
    reraise=True,
)

# Notion rich text content limit per block
RICH_TEXT_LIMIT = 2000

# Notion maximum page size for database queries
MAX_PAGE_SIZE = 100

# VideoRecord field -> (Notion property name, property type)
PROPERTY_MAP: dict[str, tuple[str, str]] = {
    "title": ("Video Title", "title"),
    "description": ("Video Description", "rich_text"),
    "tags": ("Tags", "rich_text"),
    "category": ("Category", "select"),
    "privacy": ("Privacy", "select"),
    "source_link": ("Drive Link", "url"),
    "status": ("Upload Status", "select"),
    "attempts": ("Upload Attempts", "number"),
    "last_error": ("Error Message", "rich_text"),
    "error_at": ("Error Date", "date"),
    "claimed_at": ("Last Attempt", "date"),
    "published_url": ("YouTube URL", "url"),
    "published_id": ("Video ID", "rich_text"),
    "upload_seconds": ("Upload Time (s)", "number"),
    "final_privacy": ("Final Privacy", "select"),
    "final_category": ("Final Category", "rich_text"),
    "uploaded_at": ("Upload Date", "date"),
    "file_size_mb": ("File Size (MB)", "number"),
    "source_created_at": ("Drive Created", "date"),
}


def rich_text(text: str | None) -> list[dict]:
    """Build a Notion rich text array, truncated to the block limit."""
    if not text:
        return []
    return [{"type": "text", "text": {"content": text[:RICH_TEXT_LIMIT]}}]


def plain_text(items: list[dict] | None) -> str:
    """Join the plain_text of a Notion rich text or title array."""
    if not items:
        return ""
    return "".join(item.get("plain_text") or item.get("text", {}).get("content", "") for item in items).strip()


def _format_date(value: datetime | str | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def encode_properties(fields: dict[str, Any]) -> dict[str, Any]:
    """
    Translate VideoRecord fields to a Notion properties payload.

    Args:
        fields: Mapping of VideoRecord attribute names to values

    Returns:
        Notion properties dictionary

    Raises:
        KeyError: If a field has no Notion property
    """
    properties: dict[str, Any] = {}

    for field_name, value in fields.items():
        prop_name, prop_type = PROPERTY_MAP[field_name]

        if hasattr(value, "value"):
            value = value.value

        if prop_type in ("title", "rich_text"):
            properties[prop_name] = {prop_type: rich_text(value)}
        elif prop_type == "url":
            properties[prop_name] = {"url": value or None}
        elif prop_type == "select":
            properties[prop_name] = {"select": {"name": value} if value else None}
        elif prop_type == "number":
            properties[prop_name] = {"number": value}
        elif prop_type == "date":
            start = _format_date(value)
            properties[prop_name] = {"date": {"start": start} if start else None}

    return properties


def decode_page(page: dict) -> VideoRecord:
    """
    Build a VideoRecord from a Notion page object.

    Missing status defaults to Pending; an unrecognized status is
    treated as Error so the record is never picked up silently.

    Args:
        page: Notion page JSON

    Returns:
        VideoRecord
    """
    properties = page.get("properties", {})
    values: dict[str, Any] = {}

    for field_name, (prop_name, prop_type) in PROPERTY_MAP.items():
        prop = properties.get(prop_name)
        if not prop:
            continue

        raw = prop.get(prop_type)
        if prop_type in ("title", "rich_text"):
            text = plain_text(raw)
            values[field_name] = text if text or field_name in ("title", "description", "tags") else None
        elif prop_type == "select":
            if raw and raw.get("name"):
                values[field_name] = raw["name"]
        elif prop_type == "date":
            if raw and raw.get("start"):
                values[field_name] = raw["start"]
        elif raw is not None:
            values[field_name] = raw

    status_name = values.pop("status", None)
    if status_name is None:
        status = RecordStatus.PENDING
    else:
        try:
            status = RecordStatus(status_name)
        except ValueError:
            logger.warning(f"Unknown status {status_name!r} on page {page.get('id')}, treating as Error")
            status = RecordStatus.ERROR

    if values.get("attempts") is None:
        values.pop("attempts", None)
    else:
        values["attempts"] = max(int(values["attempts"]), 0)

    return VideoRecord(
        record_id=page["id"],
        status=status,
        created_at=page.get("created_time"),
        last_edited_at=page.get("last_edited_time"),
        **values,
    )


def build_filter(filter: RecordFilter | None) -> dict | None:
    """Translate a RecordFilter to a Notion database filter."""
    if filter is None:
        return None

    conditions: list[dict] = []
    if filter.status is not None:
        conditions.append({
            "property": PROPERTY_MAP["status"][0],
            "select": {"equals": filter.status.value},
        })
    if filter.error_before is not None:
        conditions.append({
            "property": PROPERTY_MAP["error_at"][0],
            "date": {"before": filter.error_before.isoformat()},
        })
    if filter.claimed_before is not None:
        conditions.append({
            "property": PROPERTY_MAP["claimed_at"][0],
            "date": {"before": filter.claimed_before.isoformat()},
        })

    if not conditions:
        return None
    if len(conditions) == 1:
        return conditions[0]
    return {"and": conditions}


def build_sorts(sort: RecordSort | None) -> list[dict] | None:
    """Translate a RecordSort to Notion sorts."""
    if sort == RecordSort.TITLE_ASC:
        return [{"property": PROPERTY_MAP["title"][0], "direction": "ascending"}]
    if sort == RecordSort.CREATED_DESC:
        return [{"timestamp": "created_time", "direction": "descending"}]
    return None


class NotionRecordStore:
    """
    Async HTTP client for a Notion video database.

    Implements RecordStore protocol. Notion has no compare-and-set, so
    patch_if_status re-reads the page right before writing; this narrows
    but does not close the window between two concurrent claimers.

    Example:
        async with NotionRecordStore.from_settings(settings) as store:
            pending = await store.query(RecordFilter(status=RecordStatus.PENDING))
    """

    def __init__(
        self,
        config: ClientConfig,
        database_id: str,
        notion_version: str = "2022-06-28",
        http_client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize Notion store.

        Args:
            config: Client configuration with API URL and integration token
            database_id: Target database id
            notion_version: Notion-Version header value
            http_client: Optional preconfigured HTTP client
        """
        self.config = config
        self.database_id = database_id
        self.http_client = http_client or httpx.AsyncClient(timeout=config.timeout)
        self.headers = {
            "Authorization": f"Bearer {config.api_key}",
            "Notion-Version": notion_version,
            "Content-Type": "application/json",
        }

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        http_client: httpx.AsyncClient | None = None,
    ) -> "NotionRecordStore":
        """
        Create NotionRecordStore from application settings.

        Raises:
            ConfigurationError: If Notion credentials are missing
        """
        settings.validate_required("notion")
        config = ClientConfig(
            base_url=settings.notion_url,
            timeout=settings.notion_timeout,
            api_key=settings.notion_token,
        )
        return cls(
            config=config,
            database_id=settings.notion_database_id,
            notion_version=settings.notion_version,
            http_client=http_client,
        )

    async def __aenter__(self) -> "NotionRecordStore":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.http_client.aclose()

    @RETRY_DECORATOR
    async def _send(self, method: str, path: str, json: dict | None = None) -> httpx.Response:
        return await self.http_client.request(
            method,
            f"{self.config.base_url}{path}",
            json=json,
            headers=self.headers,
        )

    async def _request(self, method: str, path: str, json: dict | None = None) -> dict:
        """
        Send a request and return the decoded JSON body.

        Raises:
            StoreUnavailable: On connection errors (after retries) or error status
        """
        try:
            response = await self._send(method, path, json)
            response.raise_for_status()
            return response.json()

        except httpx.HTTPStatusError as e:
            logger.error(
                f"Notion {method} {path} failed: "
                f"{e.response.status_code} - {e.response.text[:200]}"
            )
            raise StoreUnavailable(
                f"Notion request failed: HTTP {e.response.status_code}",
                status_code=e.response.status_code,
                original_error=e,
            ) from e

        except httpx.HTTPError as e:
            logger.error(f"Notion {method} {path} failed: {type(e).__name__}: {e}")
            raise StoreUnavailable(
                f"Notion unreachable: {e}",
                original_error=e,
            ) from e

    async def check_connection(self) -> bool:
        """
        Check that the database is reachable with the configured token.

        Returns:
            True if available, False otherwise
        """
        try:
            await self._request("GET", f"/v1/databases/{self.database_id}")
            return True
        except StoreUnavailable as e:
            logger.debug(f"Notion not available: {e}")
            return False

    async def query(
        self,
        filter: RecordFilter | None = None,
        sort: RecordSort | None = None,
        limit: int | None = None,
    ) -> list[VideoRecord]:
        """
        Query the database, following pagination until limit is reached.

        Args:
            filter: Optional record filter
            sort: Optional ordering
            limit: Maximum number of records (None = all)

        Returns:
            Matching records in store order
        """
        body: dict[str, Any] = {}
        notion_filter = build_filter(filter)
        if notion_filter:
            body["filter"] = notion_filter
        sorts = build_sorts(sort)
        if sorts:
            body["sorts"] = sorts

        records: list[VideoRecord] = []
        cursor: str | None = None

        while True:
            remaining = MAX_PAGE_SIZE if limit is None else limit - len(records)
            if remaining <= 0:
                break

            page_body = {**body, "page_size": min(remaining, MAX_PAGE_SIZE)}
            if cursor:
                page_body["start_cursor"] = cursor

            data = await self._request(
                "POST", f"/v1/databases/{self.database_id}/query", page_body
            )
            records.extend(decode_page(page) for page in data.get("results", []))

            if not data.get("has_more") or not data.get("next_cursor"):
                break
            cursor = data["next_cursor"]

        logger.debug(f"Notion query returned {len(records)} record(s)")
        return records

    async def get(self, record_id: str) -> VideoRecord:
        """Fetch one page by id."""
        page = await self._request("GET", f"/v1/pages/{record_id}")
        return decode_page(page)

    async def create(self, fields: dict[str, Any]) -> VideoRecord:
        """Create a page in the database."""
        page = await self._request(
            "POST",
            "/v1/pages",
            {
                "parent": {"database_id": self.database_id},
                "properties": encode_properties(fields),
            },
        )
        logger.debug(f"Created Notion page {page['id']}")
        return decode_page(page)

    async def patch(self, record_id: str, fields: dict[str, Any]) -> VideoRecord:
        """Update page properties."""
        page = await self._request(
            "PATCH",
            f"/v1/pages/{record_id}",
            {"properties": encode_properties(fields)},
        )
        return decode_page(page)

    async def patch_if_status(
        self,
        record_id: str,
        expected: RecordStatus,
        fields: dict[str, Any],
    ) -> VideoRecord | None:
        """Re-read the page and update it only if status still matches."""
        current = await self.get(record_id)
        if current.status != expected:
            logger.info(
                f"Page {record_id} status is {current.status.value}, "
                f"expected {expected.value}; not updating"
            )
            return None
        return await self.patch(record_id, fields)

    async def comment(self, record_id: str, text: str) -> None:
        """Add a comment to the page."""
        await self._request(
            "POST",
            "/v1/comments",
            {"parent": {"page_id": record_id}, "rich_text": rich_text(text)},
        )
