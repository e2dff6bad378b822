"""
Image Fetcher

Downloads a remote image with:
- A request deadline
- A cap on followed redirects
- A byte ceiling checked against Content-Length and while streaming

A single attempt is made; failures surface as FetchError subclasses that
already carry the HTTP status the proxy should answer with.
"""

import asyncio
import logging
from typing import Optional

import httpx

from gateway.errors import GatewayError, GatewayTimeout, ResourceLimitError, UpstreamError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
DEFAULT_MAX_REDIRECTS = 3
DEFAULT_MAX_BYTES = 50 * 1024 * 1024

DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Accept": "image/avif,image/webp,image/apng,image/*,*/*;q=0.8",
}


class FetchError(GatewayError):
    """Base class for fetch failures."""


class FetchTimeout(FetchError, GatewayTimeout):
    pass


class UpstreamHTTPError(FetchError, UpstreamError):
    """Origin answered with a non-2xx status; the proxy mirrors it."""

    def __init__(self, status: int):
        super().__init__(f"Image download failed: {status}", status_code=status)
        self.status = status


class NetworkError(FetchError, UpstreamError):
    pass


class PayloadTooLarge(FetchError, ResourceLimitError):
    pass


class ImageFetcher:
    """
    Fetches remote image bytes over a shared httpx.AsyncClient.

    Usage:
        fetcher = ImageFetcher(client)
        data = await fetcher.fetch("https://example.com/a.jpg")
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        max_bytes: int = DEFAULT_MAX_BYTES,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.client = client
        self.max_bytes = max_bytes
        self.timeout = timeout

    @staticmethod
    def build_client(
        timeout: float = DEFAULT_TIMEOUT,
        max_redirects: int = DEFAULT_MAX_REDIRECTS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> httpx.AsyncClient:
        """Create the HTTP client used for image downloads."""
        return httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            max_redirects=max_redirects,
            headers=DEFAULT_HEADERS,
            transport=transport,
        )

    def _too_large(self) -> PayloadTooLarge:
        limit_mb = self.max_bytes // (1024 * 1024)
        return PayloadTooLarge(f"Image too large (max {limit_mb}MB)")

    async def fetch(self, url: str) -> bytes:
        """
        Download `url` and return the body.

        The timeout bounds the whole download, body included, not just
        each socket operation.

        Raises:
            FetchTimeout: deadline exceeded
            UpstreamHTTPError: origin returned a non-2xx status
            NetworkError: connection-level failure or too many redirects
            PayloadTooLarge: body larger than max_bytes
        """
        try:
            data = await asyncio.wait_for(self._download(url), timeout=self.timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.error(f"[Fetcher] Timeout after {self.timeout}s: {url[:80]}")
            raise FetchTimeout("Image fetch timeout")
        except httpx.TooManyRedirects:
            logger.error(f"[Fetcher] Too many redirects: {url[:80]}")
            raise NetworkError("Image fetch failed: too many redirects")
        except httpx.RequestError as e:
            logger.error(f"[Fetcher] Network error: {url[:80]} - {e}")
            raise NetworkError(f"Image fetch failed: {e}")

        logger.debug(f"[Fetcher] Fetched {len(data)} bytes: {url[:80]}")
        return data

    async def _download(self, url: str) -> bytes:
        async with self.client.stream("GET", url, timeout=self.timeout) as response:
            if not response.is_success:
                logger.warning(f"[Fetcher] HTTP {response.status_code}: {url[:80]}")
                raise UpstreamHTTPError(response.status_code)

            declared = response.headers.get("content-length")
            if declared and declared.isdigit() and int(declared) > self.max_bytes:
                logger.warning(f"[Fetcher] Declared size {declared} over limit: {url[:80]}")
                raise self._too_large()

            buffer = bytearray()
            async for chunk in response.aiter_bytes():
                buffer.extend(chunk)
                if len(buffer) > self.max_bytes:
                    logger.warning(f"[Fetcher] Body passed {self.max_bytes} bytes: {url[:80]}")
                    raise self._too_large()

        return bytes(buffer)
