"""
Source reference parser.

Extracts Drive file ids from the link formats people paste into the
record store and expands an id into download candidate URLs.

Supported link formats (tried in order):
    https://drive.google.com/file/d/<id>/view?usp=sharing
    https://drive.google.com/open?id=<id>
    https://docs.google.com/.../d/<id>/edit
    ...?id=<id>
    <id>
"""

import logging
import re

from publisher.config import DEFAULT_CANDIDATE_TEMPLATES
from publisher.services.errors import InvalidReference

logger = logging.getLogger(__name__)

_ID = r"([a-zA-Z0-9_-]+)"

SOURCE_ID_PATTERNS = [
    re.compile(rf"/file/d/{_ID}"),
    re.compile(rf"/open\?id={_ID}"),
    re.compile(rf"/d/{_ID}"),
    re.compile(rf"[?&]id={_ID}"),
    re.compile(rf"^{_ID}$"),
]


def extract_source_id(link: str) -> str:
    """
    Extract the file id from a Drive link or bare id.

    Args:
        link: Share link, download link or bare file id

    Returns:
        File id

    Raises:
        InvalidReference: If no pattern matches

    Example:
        >>> extract_source_id("https://drive.google.com/file/d/1AbC_d-9/view")
        '1AbC_d-9'
    """
    link = (link or "").strip()

    for pattern in SOURCE_ID_PATTERNS:
        match = pattern.search(link)
        if match:
            return match.group(1)

    raise InvalidReference(link)


def build_candidate_urls(
    source_id: str,
    templates: list[str] | None = None,
) -> list[str]:
    """
    Expand a file id into ordered download candidates.

    Args:
        source_id: Drive file id
        templates: URL templates with a {source_id} placeholder

    Returns:
        Candidate URLs in the order they should be tried
    """
    templates = templates or DEFAULT_CANDIDATE_TEMPLATES
    urls = [template.format(source_id=source_id) for template in templates]
    logger.debug(f"Built {len(urls)} download candidate(s) for {source_id}")
    return urls
