"""
MangaDex client tests
"""

import httpx
import pytest

from catalog.client import CatalogError, CatalogNotFound, MangaDexClient, preferred_title
from conftest import CHAPTER_ID, MANGA_ID, MISSING_MANGA_ID


def make_catalog(handler) -> MangaDexClient:
    client = MangaDexClient.build_client(transport=httpx.MockTransport(handler))
    return MangaDexClient(client, uploads_url="https://uploads.mangadex.org/")


@pytest.fixture
def catalog(upstream):
    return make_catalog(upstream.handler)


class TestPreferredTitle:

    def test_english_first(self):
        assert preferred_title({"ja-ro": "Naruto", "en": "Naruto EN"}) == "Naruto EN"

    def test_romanized_japanese_second(self):
        assert preferred_title({"ko": "나루토", "ja-ro": "Naruto"}) == "Naruto"

    def test_any_title_last(self):
        assert preferred_title({"ko": "나루토"}) == "나루토"

    def test_no_titles(self):
        assert preferred_title({}) == "untitled"
        assert preferred_title(None) == "untitled"


class TestSearch:

    @pytest.mark.asyncio
    async def test_parses_results(self, catalog, upstream):
        page = await catalog.search_manga("naruto", limit=10, offset=10)

        assert page.total == 12
        assert len(page.items) == 2
        first = page.items[0]
        assert first.title == "naruto 10"
        assert first.tags == ["Action", "Comedy"]
        assert first.cover_file_name == "cover.jpg"

    @pytest.mark.asyncio
    async def test_sends_mangadex_query_params(self, catalog, upstream):
        await catalog.search_manga("one piece", limit=10, offset=0)

        params = upstream.requests[-1].url.params
        assert params["title"] == "one piece"
        assert params["hasAvailableChapters"] == "true"
        assert params["order[relevance]"] == "desc"
        assert params.get_list("includes[]") == ["cover_art"]
        assert "safe" in params.get_list("contentRating[]")

    @pytest.mark.asyncio
    async def test_upstream_failure(self, catalog, upstream):
        upstream.fail_search = True

        with pytest.raises(CatalogError) as exc_info:
            await catalog.search_manga("naruto")
        assert not isinstance(exc_info.value, CatalogNotFound)

    def test_cover_url(self, catalog):
        assert catalog.cover_url(MANGA_ID, "cover.jpg") == (
            f"https://uploads.mangadex.org/covers/{MANGA_ID}/cover.jpg.256.jpg"
        )


class TestMangaLookup:

    @pytest.mark.asyncio
    async def test_get_manga(self, catalog):
        manga = await catalog.get_manga(MANGA_ID)

        assert manga.id == MANGA_ID
        assert manga.title == "Sample Manga"

    @pytest.mark.asyncio
    async def test_missing_manga(self, catalog):
        with pytest.raises(CatalogNotFound) as exc_info:
            await catalog.get_manga(MISSING_MANGA_ID)
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_rating_rounded(self, catalog):
        assert await catalog.get_rating(MANGA_ID) == 7.88

    @pytest.mark.asyncio
    async def test_rating_absent(self):
        catalog = make_catalog(
            lambda request: httpx.Response(200, json={"result": "ok", "statistics": {}})
        )
        assert await catalog.get_rating(MANGA_ID) is None

    @pytest.mark.asyncio
    async def test_error_result_in_body(self):
        catalog = make_catalog(lambda request: httpx.Response(200, json={"result": "error"}))

        with pytest.raises(CatalogError):
            await catalog.get_manga(MANGA_ID)

    @pytest.mark.asyncio
    async def test_timeout_is_catalog_error(self):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        with pytest.raises(CatalogError):
            await make_catalog(handler).get_manga(MANGA_ID)


class TestChapterListing:
    """分批遍历章节列表"""

    @pytest.mark.asyncio
    async def test_walks_all_batches(self, catalog, upstream):
        upstream.chapter_total = 250

        listing = await catalog.list_chapters(MANGA_ID, batch_size=100)

        assert listing.total_chapters == 250
        assert listing.page_count == 250 * 20
        assert listing.truncated is False
        assert upstream.count(f"/manga/{MANGA_ID}/feed") == 3

    @pytest.mark.asyncio
    async def test_stops_at_batch_cap(self, catalog, upstream):
        upstream.chapter_total = 1000

        listing = await catalog.list_chapters(MANGA_ID, batch_size=100, max_batches=2)

        assert listing.total_chapters == 200
        assert listing.truncated is True

    @pytest.mark.asyncio
    async def test_failed_batch_keeps_partial_count(self, upstream):
        upstream.chapter_total = 300

        def handler(request):
            if request.url.params.get("offset") == "100":
                return httpx.Response(500)
            return upstream.handler(request)

        listing = await make_catalog(handler).list_chapters(MANGA_ID, batch_size=100)

        assert listing.total_chapters == 100
        assert listing.page_count == 2000
        assert listing.truncated is True

    @pytest.mark.asyncio
    async def test_feed_offset(self, catalog):
        page = await catalog.get_feed(MANGA_ID, limit=1, offset=0)

        assert page.total == 3
        assert page.items[0].id == CHAPTER_ID
        assert page.items[0].chapter == "1"


class TestPageUrls:

    @pytest.mark.asyncio
    async def test_builds_page_urls(self, catalog):
        urls = await catalog.get_page_urls(CHAPTER_ID)

        assert urls == [
            "https://cdn.example.org/data/abc123/1.png",
            "https://cdn.example.org/data/abc123/2.png",
        ]

    @pytest.mark.asyncio
    async def test_missing_base_url(self):
        catalog = make_catalog(lambda request: httpx.Response(200, json={"result": "ok", "chapter": {}}))

        with pytest.raises(CatalogError):
            await catalog.get_page_urls(CHAPTER_ID)
