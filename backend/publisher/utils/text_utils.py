"""
Text helpers shared by reconciliation, selection and publishing.

Title normalization here defines the dedup key: two records with the
same normalized title are considered the same video.
"""

import re

# Shareable link format for a Drive file id
CANONICAL_LINK_TEMPLATE = "https://drive.google.com/file/d/{source_id}/view?usp=sharing"

_EXTENSION_PATTERN = re.compile(r"\.[^/.]+$")


def strip_extension(filename: str) -> str:
    """Remove a single trailing extension: 'Sermon 1.mp4' -> 'Sermon 1'."""
    return _EXTENSION_PATTERN.sub("", filename)


def normalize_title(title: str | None) -> str:
    """
    Build the case-insensitive title key used for dedup and ordering.

    Args:
        title: Raw title (may be None)

    Returns:
        Trimmed, lower-cased title
    """
    if not title:
        return ""
    return title.strip().lower()


def canonical_link(source_id: str) -> str:
    """Derive the canonical Drive link for a file id."""
    return CANONICAL_LINK_TEMPLATE.format(source_id=source_id)


def truncate(text: str, max_length: int, suffix: str = "") -> str:
    """
    Truncate text to max_length characters including the suffix.

    Args:
        text: Text to truncate
        max_length: Maximum resulting length
        suffix: Marker appended when truncation happens (e.g. "...")

    Returns:
        Text no longer than max_length
    """
    if len(text) <= max_length:
        return text
    if len(suffix) >= max_length:
        return text[:max_length]
    return text[: max_length - len(suffix)] + suffix
