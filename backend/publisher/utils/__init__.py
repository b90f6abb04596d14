"""
Shared utilities for pipeline services.

Modules:
    text_utils: Title normalization, canonical links, truncation
    media_utils: Content type checks and file size formatting
"""

from publisher.utils.media_utils import (
    bytes_to_mb,
    format_file_size,
    is_markup_content_type,
    is_video_file,
)
from publisher.utils.text_utils import (
    canonical_link,
    normalize_title,
    strip_extension,
    truncate,
)

__all__ = [
    # text_utils
    "canonical_link",
    "normalize_title",
    "strip_extension",
    "truncate",
    # media_utils
    "bytes_to_mb",
    "format_file_size",
    "is_markup_content_type",
    "is_video_file",
]
