"""
Publish metadata builder.

Turns a record's free-form fields into metadata that satisfies the
platform limits: title <= 100 chars, description <= 5000 chars, each
tag <= 500 chars and all tags together <= 500 chars.
"""

import logging
from datetime import datetime

from publisher.config import Settings, get_settings, load_publish_config
from publisher.models.schemas import MAX_TITLE_LENGTH, PublishMetadata, VideoRecord, utc_now
from publisher.services.clients.youtube_client import category_id, privacy_status
from publisher.utils.text_utils import truncate

logger = logging.getLogger(__name__)

UNTITLED_TITLE = "Untitled video"
MAX_PUBLISH_DESCRIPTION = 5000
MAX_TAG_LENGTH = 500
MAX_TAGS_TOTAL = 500
ELLIPSIS = "..."


def build_title(title: str | None) -> str:
    """Trimmed title, placeholder when empty, '...' when too long."""
    title = (title or "").strip()
    if not title:
        return UNTITLED_TITLE
    return truncate(title, MAX_TITLE_LENGTH, ELLIPSIS)


def build_description(
    description: str | None,
    footer: str = "",
    date: datetime | None = None,
) -> str:
    """
    Append the footer, shortening the description so both fit.

    Args:
        description: Record description
        footer: Footer template; {date} becomes DD/MM/YYYY
        date: Date for the footer (default: now)

    Returns:
        Description no longer than 5000 characters
    """
    description = (description or "").strip()
    if footer:
        footer = footer.replace("{date}", (date or utc_now()).strftime("%d/%m/%Y"))

    room = MAX_PUBLISH_DESCRIPTION - len(footer)
    if room <= len(ELLIPSIS):
        return truncate(description, MAX_PUBLISH_DESCRIPTION, ELLIPSIS)

    return truncate(description, room, ELLIPSIS) + footer


def build_tags(tags: str | None, auto_tags: list[str] | None = None) -> list[str]:
    """
    Split comma-separated tags and append automatic tags.

    Empty and over-long tags are dropped, duplicates (case-insensitive)
    are kept once, and tags stop being added once the combined length
    (with separators) would pass the platform limit.

    Args:
        tags: Comma-separated tag text from the record
        auto_tags: Tags added to every upload

    Returns:
        Tag list in input order, record tags first
    """
    candidates = [tag.strip() for tag in (tags or "").split(",")]
    candidates.extend(tag.strip() for tag in auto_tags or [])

    result: list[str] = []
    seen: set[str] = set()
    total = 0

    for tag in candidates:
        if not tag or len(tag) > MAX_TAG_LENGTH or tag.lower() in seen:
            continue

        cost = len(tag) + (1 if result else 0)
        if total + cost > MAX_TAGS_TOTAL:
            logger.debug(f"Tag limit reached, dropping {tag!r}")
            continue

        result.append(tag)
        seen.add(tag.lower())
        total += cost

    return result


def build_publish_metadata(
    record: VideoRecord,
    settings: Settings | None = None,
    publish_config: dict | None = None,
) -> PublishMetadata:
    """
    Build platform metadata for a record.

    Args:
        record: Record selected for publishing
        settings: Application settings (uses defaults if None)
        publish_config: Parsed publish.yaml (loaded if None)

    Returns:
        PublishMetadata within platform limits
    """
    settings = settings or get_settings()
    if publish_config is None:
        publish_config = load_publish_config(settings)

    metadata = PublishMetadata(
        title=build_title(record.title),
        description=build_description(
            record.description,
            publish_config.get("description_footer") or "",
        ),
        tags=build_tags(record.tags, publish_config.get("auto_tags") or []),
        category_id=category_id(record.category, publish_config.get("categories") or {}),
        privacy_status=privacy_status(record.privacy),
        default_language=settings.publish_language or None,
    )

    logger.debug(
        f"Metadata for {record.record_id}: title={metadata.title!r}, "
        f"{len(metadata.description)} chars, {len(metadata.tags)} tag(s), "
        f"category={metadata.category_id}, privacy={metadata.privacy_status}"
    )
    return metadata
