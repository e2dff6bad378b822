"""
MangaDex Catalog Client

Thin async wrapper over the MangaDex REST API:
- Manga search with cover art included
- Manga lookup and rating statistics
- Chapter feed paging
- At-home server lookup for chapter page URLs

Upstream failures surface as CatalogError (or CatalogNotFound for 404s).
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from gateway.errors import UpstreamError

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.mangadex.org"
DEFAULT_UPLOADS_URL = "https://uploads.mangadex.org"

CONTENT_RATINGS = ("safe", "suggestive", "erotica", "pornographic")
FEED_LANGUAGES = ("en",)

Params = List[Tuple[str, Any]]


class CatalogError(UpstreamError):
    status_code = 500


class CatalogNotFound(CatalogError):
    status_code = 404


@dataclass
class MangaSummary:
    """The parts of a MangaDex manga record the gateway uses."""
    id: str
    titles: Dict[str, str] = field(default_factory=dict)
    tags: List[str] = field(default_factory=list)
    cover_file_name: Optional[str] = None

    @property
    def title(self) -> str:
        return preferred_title(self.titles)


@dataclass
class Chapter:
    id: str
    chapter: Optional[str] = None
    pages: int = 0


@dataclass
class Page:
    """One page of a collection endpoint."""
    items: list
    total: int


@dataclass
class ChapterListing:
    """Aggregate of a bounded walk over a manga's chapter feed."""
    total_chapters: int = 0
    page_count: int = 0
    truncated: bool = False


def preferred_title(titles: Optional[Dict[str, str]]) -> str:
    """Pick `en`, then `ja-ro`, then the first available title."""
    if not titles or not isinstance(titles, dict):
        return "untitled"
    for lang in ("en", "ja-ro"):
        if titles.get(lang):
            return titles[lang]
    for value in titles.values():
        if value:
            return value
    return "untitled"


def _parse_manga(data: Dict[str, Any]) -> MangaSummary:
    attributes = data.get("attributes") or {}

    tags = []
    for tag in attributes.get("tags") or []:
        names = (tag.get("attributes") or {}).get("name") or {}
        name = names.get("en") or next(iter(names.values()), None)
        if name:
            tags.append(name)

    cover_file_name = None
    for rel in data.get("relationships") or []:
        if rel.get("type") == "cover_art":
            cover_file_name = (rel.get("attributes") or {}).get("fileName")
            break

    return MangaSummary(
        id=data["id"],
        titles=attributes.get("title") or {},
        tags=tags,
        cover_file_name=cover_file_name,
    )


def _parse_chapter(data: Dict[str, Any]) -> Chapter:
    attributes = data.get("attributes") or {}
    return Chapter(
        id=data["id"],
        chapter=attributes.get("chapter"),
        pages=int(attributes.get("pages") or 0),
    )


def _multi(name: str, values: Sequence[str]) -> Params:
    return [(f"{name}[]", value) for value in values]


class MangaDexClient:
    """
    MangaDex API client over a shared httpx.AsyncClient.

    Usage:
        catalog = MangaDexClient(MangaDexClient.build_client())
        page = await catalog.search_manga("naruto", limit=10, offset=0)
    """

    def __init__(self, client: httpx.AsyncClient, uploads_url: str = DEFAULT_UPLOADS_URL):
        self.client = client
        self.uploads_url = uploads_url.rstrip("/")

    @staticmethod
    def build_client(
        api_url: str = DEFAULT_API_URL,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=api_url,
            timeout=timeout,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    async def _get(self, path: str, params: Optional[Params] = None) -> Dict[str, Any]:
        try:
            response = await self.client.get(path, params=params)
        except httpx.TimeoutException:
            logger.error(f"[MangaDex] Timeout: {path}")
            raise CatalogError(f"MangaDex request timed out: {path}")
        except httpx.RequestError as e:
            logger.error(f"[MangaDex] Request failed: {path} - {e}")
            raise CatalogError(f"MangaDex request failed: {e}")

        if response.status_code == 404:
            raise CatalogNotFound(f"MangaDex resource not found: {path}")
        if not response.is_success:
            logger.error(f"[MangaDex] HTTP {response.status_code}: {path}")
            raise CatalogError(f"MangaDex returned {response.status_code} for {path}")

        try:
            payload = response.json()
        except ValueError:
            raise CatalogError(f"MangaDex returned invalid JSON for {path}")

        if payload.get("result") == "error":
            raise CatalogError(f"MangaDex reported an error for {path}")
        return payload

    def cover_url(self, manga_id: str, file_name: str) -> str:
        return f"{self.uploads_url}/covers/{manga_id}/{file_name}.256.jpg"

    async def search_manga(self, title: str, limit: int = 10, offset: int = 0) -> Page:
        """Search by title, most relevant first, only manga that have chapters."""
        params: Params = [
            ("title", title),
            ("limit", limit),
            ("offset", offset),
            ("hasAvailableChapters", "true"),
            ("order[relevance]", "desc"),
            *_multi("contentRating", CONTENT_RATINGS),
            *_multi("includes", ("cover_art",)),
        ]
        payload = await self._get("/manga", params)
        items = [_parse_manga(item) for item in payload.get("data") or []]
        return Page(items=items, total=int(payload.get("total") or 0))

    async def get_manga(self, manga_id: str) -> MangaSummary:
        payload = await self._get(f"/manga/{manga_id}", _multi("includes", ("cover_art",)))
        return _parse_manga(payload["data"])

    async def get_rating(self, manga_id: str) -> Optional[float]:
        """Bayesian rating rounded to 2 places, None if MangaDex has none."""
        payload = await self._get(f"/statistics/manga/{manga_id}")
        stats = (payload.get("statistics") or {}).get(manga_id) or {}
        bayesian = (stats.get("rating") or {}).get("bayesian")
        if bayesian is None:
            return None
        return round(float(bayesian), 2)

    async def get_feed(self, manga_id: str, limit: int = 1, offset: int = 0) -> Page:
        """English chapters in ascending chapter order."""
        params: Params = [
            ("limit", limit),
            ("offset", offset),
            ("order[chapter]", "asc"),
            *_multi("translatedLanguage", FEED_LANGUAGES),
            *_multi("contentRating", CONTENT_RATINGS),
        ]
        payload = await self._get(f"/manga/{manga_id}/feed", params)
        items = [_parse_chapter(item) for item in payload.get("data") or []]
        return Page(items=items, total=int(payload.get("total") or 0))

    async def list_chapters(
        self,
        manga_id: str,
        batch_size: int = 100,
        max_batches: int = 10,
    ) -> ChapterListing:
        """
        Walk the chapter feed in batches, counting chapters and pages.

        Stops at `max_batches` (marking the listing truncated) or at the
        first failed batch, keeping whatever was counted so far.
        """
        listing = ChapterListing()
        offset = 0

        for _ in range(max_batches):
            try:
                batch = await self.get_feed(manga_id, limit=batch_size, offset=offset)
            except CatalogError as e:
                logger.warning(f"[MangaDex] Feed batch at offset {offset} failed, keeping partial count: {e}")
                listing.truncated = True
                return listing

            listing.total_chapters += len(batch.items)
            listing.page_count += sum(chapter.pages for chapter in batch.items)
            offset += len(batch.items)

            if not batch.items or offset >= batch.total:
                return listing

        listing.truncated = True
        logger.info(f"[MangaDex] Chapter walk for {manga_id} capped at {offset} chapters")
        return listing

    async def get_page_urls(self, chapter_id: str) -> List[str]:
        """Full-quality page image URLs for a chapter."""
        payload = await self._get(f"/at-home/server/{chapter_id}")
        if not payload.get("baseUrl"):
            raise CatalogError(f"MangaDex at-home response missing baseUrl for chapter {chapter_id}")
        base_url = payload["baseUrl"].rstrip("/")
        chapter = payload.get("chapter") or {}
        chapter_hash = chapter.get("hash")
        return [f"{base_url}/data/{chapter_hash}/{name}" for name in chapter.get("data") or []]
