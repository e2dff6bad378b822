"""
Gateway test configuration

Fixtures:
- make_image: in-memory test images generated with Pillow
- upstream: a fake MangaDex API + image host served through httpx.MockTransport
- client: a TestClient around a fully started app wired to the fake upstream

Run:
    pytest backend/tests -v
"""

import re
import sys
from io import BytesIO
from pathlib import Path
from typing import List

import httpx
import pytest
from fastapi.testclient import TestClient
from PIL import Image

# Make the backend packages importable without installing
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from gateway.app import create_app
from gateway.config import Settings


MANGA_ID = "32d76d19-8a05-4db0-9fc2-e0b0648fe9d0"
MISSING_MANGA_ID = "00000000-0000-0000-0000-000000000000"
EMPTY_MANGA_ID = "11111111-1111-1111-1111-111111111111"
CHAPTER_ID = "c0ffee00-0000-4000-8000-000000000001"


# ============================================
# Image helpers
# ============================================

def encode_image(width: int, height: int, mode: str = "RGB", fmt: str = "JPEG") -> bytes:
    color = {"RGB": (200, 40, 40), "RGBA": (40, 200, 40, 128), "L": 128, "P": 3}[mode]
    img = Image.new(mode, (width, height), color)
    output = BytesIO()
    img.save(output, format=fmt)
    return output.getvalue()


@pytest.fixture
def make_image():
    return encode_image


# ============================================
# Fake upstream
# ============================================

def _manga(manga_id: str, title: dict, cover: str = "cover.jpg") -> dict:
    relationships = [{"id": "author-1", "type": "author"}]
    if cover:
        relationships.append({"id": "cover-1", "type": "cover_art", "attributes": {"fileName": cover}})
    return {
        "id": manga_id,
        "type": "manga",
        "attributes": {
            "title": title,
            "tags": [
                {"id": "t1", "attributes": {"name": {"en": "Action"}}},
                {"id": "t2", "attributes": {"name": {"en": "Comedy"}}},
            ],
        },
        "relationships": relationships,
    }


class FakeUpstream:
    """Routes MockTransport requests to canned MangaDex / image responses."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.search_total = 12
        self.chapter_total = 3
        self.fail_search = False
        self.source_image = encode_image(1200, 1600)

    def count(self, path_prefix: str) -> int:
        return sum(1 for r in self.requests if r.url.path.startswith(path_prefix))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == "api.mangadex.org":
            return self._api(request)
        return self._image(request)

    def _image(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.endswith("missing.jpg"):
            return httpx.Response(404)
        if path.endswith("garbage.jpg"):
            return httpx.Response(200, content=b"definitely not an image")
        if path.endswith("slow.jpg"):
            raise httpx.ReadTimeout("timed out", request=request)
        return httpx.Response(200, content=self.source_image, headers={"Content-Type": "image/jpeg"})

    def _api(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        params = request.url.params

        if path == "/manga":
            if self.fail_search:
                return httpx.Response(503, json={"result": "error", "errors": []})
            offset = int(params.get("offset", 0))
            limit = int(params.get("limit", 10))
            count = max(0, min(limit, self.search_total - offset))
            data = [
                _manga(f"{i:08d}-0000-4000-8000-000000000000", {"en": f"{params['title']} {i}"})
                for i in range(offset, offset + count)
            ]
            return httpx.Response(200, json={"result": "ok", "data": data, "total": self.search_total})

        match = re.fullmatch(r"/manga/([^/]+)", path)
        if match:
            manga_id = match.group(1)
            if manga_id == MISSING_MANGA_ID:
                return httpx.Response(404, json={"result": "error", "errors": [{"status": 404}]})
            return httpx.Response(200, json={
                "result": "ok",
                "data": _manga(manga_id, {"ja-ro": "Sample Manga"}),
            })

        match = re.fullmatch(r"/statistics/manga/([^/]+)", path)
        if match:
            manga_id = match.group(1)
            return httpx.Response(200, json={
                "result": "ok",
                "statistics": {manga_id: {"rating": {"average": 8.1, "bayesian": 7.8765}}},
            })

        match = re.fullmatch(r"/manga/([^/]+)/feed", path)
        if match:
            manga_id = match.group(1)
            if manga_id == MISSING_MANGA_ID:
                return httpx.Response(404, json={"result": "error", "errors": []})
            total = 0 if manga_id == EMPTY_MANGA_ID else self.chapter_total
            offset = int(params.get("offset", 0))
            limit = int(params.get("limit", 1))
            data = [
                {"id": CHAPTER_ID if i == 0 else f"chapter-{i}", "attributes": {"chapter": str(i + 1), "pages": 20}}
                for i in range(offset, min(total, offset + limit))
            ]
            return httpx.Response(200, json={"result": "ok", "data": data, "total": total})

        match = re.fullmatch(r"/at-home/server/([^/]+)", path)
        if match:
            return httpx.Response(200, json={
                "result": "ok",
                "baseUrl": "https://cdn.example.org",
                "chapter": {"hash": "abc123", "data": ["1.png", "2.png"], "dataSaver": []},
            })

        return httpx.Response(404, json={"result": "error"})


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def client(upstream, settings):
    app = create_app(settings, transport=httpx.MockTransport(upstream.handler))
    with TestClient(app) as test_client:
        yield test_client
