"""
Media utilities for video file handling.

Provides common functions for downloaded media:
- Media type detection by extension and declared content type
- Human readable file sizes
"""

from pathlib import Path

# Supported media extensions
VIDEO_EXTENSIONS = frozenset({".mp4", ".mov", ".avi", ".wmv", ".flv", ".webm", ".mkv"})

# Declared content types that mean "this is a web page, not the file"
MARKUP_CONTENT_TYPES = ("text/html", "application/xhtml+xml", "text/xml")


def is_video_file(file_path: Path) -> bool:
    """Check if file is a video file by extension.

    Args:
        file_path: Path to media file

    Returns:
        True if file has video extension
    """
    return Path(file_path).suffix.lower() in VIDEO_EXTENSIONS


def is_markup_content_type(content_type: str | None) -> bool:
    """Check whether a declared Content-Type indicates an HTML/XML page.

    Args:
        content_type: Raw Content-Type header value (may include charset)

    Returns:
        True for markup types, False for binary or missing types
    """
    if not content_type:
        return False
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type in MARKUP_CONTENT_TYPES


def format_file_size(size_bytes: int) -> str:
    """Format a byte count for logs: 52428800 -> '50 MB'.

    Args:
        size_bytes: Size in bytes

    Returns:
        Size with the largest fitting unit, up to two decimals
    """
    if size_bytes <= 0:
        return "0 Bytes"

    units = ["Bytes", "KB", "MB", "GB", "TB"]
    value = float(size_bytes)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    return f"{round(value, 2):g} {units[index]}"


def bytes_to_mb(size_bytes: int) -> float:
    """Convert bytes to megabytes rounded to two decimals."""
    return round(size_bytes / (1024 * 1024), 2)
