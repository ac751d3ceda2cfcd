"""
Domain utilities for company websites.

Used to derive the root domain stored alongside each finalized record.
"""

import re
from typing import Optional
from urllib.parse import urlparse

# Loose fallback for values urlparse cannot make sense of
_HOST_PATTERN = re.compile(r"^(?:https?://)?(?:www\.)?([^/]+)", re.IGNORECASE)


def extract_root_domain(url: Optional[str]) -> str:
    """
    Reduce a website URL to its host without a leading www.

    - "https://www.Example.com/about" → "example.com"
    - "deepstash.com/" → "deepstash.com"
    - "" → ""

    Args:
        url: Website as typed in the file, with or without scheme

    Returns:
        Lowercase host, or the input unchanged if no host can be found
    """
    if not url or not url.strip():
        return ""

    candidate = url.strip()
    if not re.match(r"^[a-z][a-z0-9+.-]*://", candidate, re.IGNORECASE):
        candidate = f"https://{candidate}"

    try:
        hostname = urlparse(candidate).hostname
    except ValueError:
        hostname = None

    if hostname:
        return hostname[4:] if hostname.startswith("www.") else hostname

    match = _HOST_PATTERN.match(url.strip())
    if match and match.group(1):
        return match.group(1).lower()

    return url
