"""
Catalog API Routes

Re-exposes MangaDex in the shape the reader app expects:
- GET /config                      - Source descriptor
- GET /search/{text}[/{page}]      - Search (cached for a short window)
- GET /comic/{id}                  - Manga detail
- GET /photo/{id}[/ch/{ch}]        - Page images of one chapter

Every image URL returned points back at /image/proxy.
"""

import asyncio
import logging
from typing import List, Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from cache import ResultCache
from gateway.errors import GatewayError, UpstreamError, ValidationError

from .client import CatalogError, CatalogNotFound, MangaDexClient, MangaSummary
from .shaping import (
    MANGA_ID_EXAMPLE,
    PLACEHOLDER_COVER_URL,
    is_manga_id,
    normalize_query,
    parse_page,
    proxy_url,
    public_base_url,
    search_cache_key,
)

logger = logging.getLogger(__name__)

SEARCH_PAGE_SIZE = 10
SEARCH_COVER_WIDTH = 100
DETAIL_COVER_WIDTH = 256
PAGE_IMAGE_WIDTH = 600
PAGE_IMAGE_QUALITY = 50

router = APIRouter(tags=["Catalog"])


# ============================================
# Response Models
# ============================================

class SourceConfig(BaseModel):
    name: str
    apiUrl: str
    detailPath: str
    photoPath: str
    searchPath: str
    type: str


class ConfigResponse(BaseModel):
    MangaDex: SourceConfig


class SearchResult(BaseModel):
    comic_id: str
    title: str
    cover_url: str


class SearchResponse(BaseModel):
    page: int
    has_more: bool
    current_page_results: int
    results: List[SearchResult]


class ComicDetailResponse(BaseModel):
    item_id: str
    name: str
    page_count: int
    rate: float
    cover: str
    tags: List[str]
    total_chapters: int
    truncated: bool


class PhotoImage(BaseModel):
    url: str


class PhotoResponse(BaseModel):
    title: str
    images: List[PhotoImage]


# ============================================
# Helpers
# ============================================

def _catalog(request: Request) -> MangaDexClient:
    return request.app.state.catalog


def _cover_source(catalog: MangaDexClient, manga: MangaSummary) -> str:
    if not manga.cover_file_name:
        return PLACEHOLDER_COVER_URL
    return catalog.cover_url(manga.id, manga.cover_file_name)


# ============================================
# Endpoints
# ============================================

@router.get("/config", response_model=ConfigResponse)
async def get_config(request: Request):
    """Describe this source to the reader app."""
    return ConfigResponse(
        MangaDex=SourceConfig(
            name="MangaDex",
            apiUrl=public_base_url(request),
            detailPath="/comic/<id>",
            photoPath="/photo/<id>",
            searchPath="/search/<text>/<page>",
            type="mangedex",
        )
    )


@router.get("/search/{text}", response_model=SearchResponse)
@router.get("/search/{text}/{page}", response_model=SearchResponse)
async def search_comics(request: Request, text: str, page: Optional[str] = None):
    """
    Search MangaDex by title, 10 results per page.

    Identical searches within the cache window are answered from memory
    without touching MangaDex.
    """
    current_page = parse_page(page)
    cache_key = search_cache_key(text, current_page)
    search_cache: ResultCache = request.app.state.search_cache

    cached = search_cache.get(cache_key)
    if cached is not None:
        logger.info(f"[Search] Cache hit: {cache_key}")
        return JSONResponse(content=cached)

    catalog = _catalog(request)
    offset = (current_page - 1) * SEARCH_PAGE_SIZE
    try:
        found = await catalog.search_manga(normalize_query(text), limit=SEARCH_PAGE_SIZE, offset=offset)
    except CatalogError as e:
        logger.error(f"[Search] Failed for {cache_key}: {e}")
        raise UpstreamError("search failed", status_code=500)

    base_url = public_base_url(request)
    results = [
        SearchResult(
            comic_id=manga.id,
            title=manga.title,
            cover_url=proxy_url(base_url, _cover_source(catalog, manga), SEARCH_COVER_WIDTH),
        )
        for manga in found.items
    ]
    response = SearchResponse(
        page=current_page,
        has_more=offset + len(results) < found.total,
        current_page_results=len(results),
        results=results,
    )

    payload = response.model_dump()
    search_cache.put(cache_key, payload)
    logger.info(f"[Search] Cached {cache_key} ({len(results)} results)")
    return JSONResponse(content=payload)


@router.get("/comic/{manga_id}", response_model=ComicDetailResponse)
async def get_comic_detail(request: Request, manga_id: str):
    """Manga detail with rating, tags and a bounded chapter/page count."""
    if not is_manga_id(manga_id):
        raise ValidationError(
            "invalid comic id format",
            extra={"expected_format": f"UUID, e.g. {MANGA_ID_EXAMPLE}"},
        )

    catalog = _catalog(request)
    logger.info(f"[Comic] Loading detail: {manga_id}")
    try:
        manga, rating, listing = await asyncio.gather(
            catalog.get_manga(manga_id),
            catalog.get_rating(manga_id),
            catalog.list_chapters(manga_id),
        )
    except CatalogNotFound:
        raise GatewayError("comic not found", status_code=404, extra={"manga_id": manga_id})
    except CatalogError as e:
        logger.error(f"[Comic] Detail failed for {manga_id}: {e}")
        raise UpstreamError(
            "failed to load comic detail",
            status_code=500,
            extra={"manga_id": manga_id, "message": e.message},
        )

    return ComicDetailResponse(
        item_id=manga.id,
        name=manga.title,
        page_count=listing.page_count,
        rate=rating if rating is not None else 0.0,
        cover=proxy_url(public_base_url(request), _cover_source(catalog, manga), DETAIL_COVER_WIDTH),
        tags=manga.tags,
        total_chapters=listing.total_chapters,
        truncated=listing.truncated,
    )


@router.get("/photo/{manga_id}", response_model=PhotoResponse)
@router.get("/photo/{manga_id}/ch/{ch}", response_model=PhotoResponse)
async def get_comic_photos(request: Request, manga_id: str, ch: Optional[str] = None):
    """Page images of chapter `ch` (1-based, in ascending chapter order)."""
    chapter_number = parse_page(ch)
    catalog = _catalog(request)

    try:
        manga, feed = await asyncio.gather(
            catalog.get_manga(manga_id),
            catalog.get_feed(manga_id, limit=1, offset=chapter_number - 1),
        )
        if not feed.items:
            raise GatewayError(
                "chapter not found",
                status_code=404,
                extra={"manga_id": manga_id, "chapter": chapter_number},
            )
        page_urls = await catalog.get_page_urls(feed.items[0].id)
    except CatalogNotFound:
        raise GatewayError("comic not found", status_code=404, extra={"manga_id": manga_id})
    except CatalogError as e:
        logger.error(f"[Photo] Failed for {manga_id} ch {chapter_number}: {e}")
        raise UpstreamError(
            "failed to load comic images",
            status_code=500,
            extra={"manga_id": manga_id},
        )

    base_url = public_base_url(request)
    return PhotoResponse(
        title=manga.title,
        images=[
            PhotoImage(url=proxy_url(base_url, url, PAGE_IMAGE_WIDTH, PAGE_IMAGE_QUALITY))
            for url in page_urls
        ],
    )
