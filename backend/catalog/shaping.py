"""
Request/response shaping helpers shared by the catalog routes.
"""

import re
from typing import Optional
from urllib.parse import urlencode

from fastapi import Request

MANGA_ID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
MANGA_ID_EXAMPLE = "32d76d19-8a05-4db0-9fc2-e0b0648fe9d0"

PLACEHOLDER_COVER_URL = "https://via.placeholder.com/400x600/333/ccc?text=No+Cover"


def is_manga_id(value: str) -> bool:
    return bool(MANGA_ID_PATTERN.match(value))


def normalize_query(text: str) -> str:
    """Collapse whitespace and lower-case, so equivalent searches share a cache key."""
    return " ".join(text.split()).lower()


def parse_page(raw: Optional[str], default: int = 1) -> int:
    """1-based page/chapter number; missing, non-numeric or < 1 means `default`."""
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value >= 1 else default


def search_cache_key(text: str, page: int) -> str:
    return f"{normalize_query(text)}_{page}"


def public_base_url(request: Request) -> str:
    """Scheme and host as the client sees them (honours X-Forwarded-Proto)."""
    forwarded = request.headers.get("x-forwarded-proto")
    scheme = forwarded.split(",")[0].strip() if forwarded else request.url.scheme
    host = request.headers.get("host") or request.url.netloc
    return f"{scheme}://{host}"


def proxy_url(base_url: str, source_url: str, width: int, quality: Optional[int] = None) -> str:
    """URL of `source_url` routed through this gateway's image proxy."""
    params = {"url": source_url, "width": width}
    if quality is not None:
        params["quality"] = quality
    return f"{base_url}/image/proxy?{urlencode(params)}"
