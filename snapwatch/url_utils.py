"""Shared URL utilities — normalize target URLs and derive stable target IDs."""

from __future__ import annotations

import hashlib
from urllib.parse import quote, urlparse


def normalize_url(url: str) -> str:
    """Normalize a URL so that equivalent spellings compare equal."""
    parsed = urlparse(url.strip())
    path = parsed.path.rstrip("/") or "/"
    query = ""
    if parsed.query:
        params = sorted(parsed.query.split("&"))
        query = "?" + "&".join(params)
    return f"{parsed.scheme.lower()}://{parsed.netloc.lower()}{path}{query}"


def target_id_from_url(url: str) -> str:
    """Generate a stable target ID from the normalized URL."""
    return hashlib.md5(normalize_url(url).encode()).hexdigest()[:12]


def storage_folder(handle: str, url: str) -> str:
    """Folder under which a target's images are stored, e.g. ``alice/https%3A%2F%2Fexample.com%2F``."""
    return f"{handle}/{quote(normalize_url(url), safe='')}"
