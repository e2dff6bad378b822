"""
Image Proxy API Routes

GET /image/proxy?url=...&width=600&quality=50

Downloads a remote image, scales it to `width` and re-encodes it as JPEG.
Requests go through the admission queue, so at most a handful of
pipelines run at once and the rest wait their turn (or get a 429).
"""

import asyncio
import logging
from typing import Optional
from urllib.parse import urlparse

from fastapi import APIRouter, Query, Request
from fastapi.responses import Response

from gateway.errors import GatewayError, GatewayTimeout, InternalError, ValidationError

from .admission import AdmissionQueue, ImageJob
from .transcoder import DEFAULT_QUALITY, DEFAULT_WIDTH, OUTPUT_CONTENT_TYPE

logger = logging.getLogger(__name__)

# Browser cache 24h
CACHE_CONTROL = "public, max-age=86400"

router = APIRouter(prefix="/image", tags=["Image Proxy"])


def parse_positive_int(raw: Optional[str], default: int) -> int:
    """Lenient integer parsing: missing, non-numeric or < 1 falls back to `default`."""
    if raw is None:
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        return default
    return value if value >= 1 else default


def validate_source_url(url: Optional[str]) -> str:
    if not url:
        raise ValidationError("missing url parameter")

    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        raise ValidationError("Invalid URL: scheme must be http or https")
    if not parsed.netloc:
        raise ValidationError("Invalid URL: missing host")
    return url


@router.get("/proxy")
async def proxy_image(
    request: Request,
    url: Optional[str] = Query(None, description="URL of the image to proxy"),
    width: Optional[str] = Query(None, description="Target width in pixels (default 600)"),
    quality: Optional[str] = Query(None, description="JPEG quality 1-100 (default 50)"),
):
    """
    Proxy and transcode an external image.

    Example:
        GET /image/proxy?url=https://example.com/image.jpg&width=600&quality=50
    """
    source_url = validate_source_url(url)
    job = ImageJob(
        source_url=source_url,
        width=parse_positive_int(width, DEFAULT_WIDTH),
        quality=min(parse_positive_int(quality, DEFAULT_QUALITY), 100),
    )

    admission: AdmissionQueue = request.app.state.admission
    admission.submit(job)

    # Timing out cancels job.result, so a still-queued job is skipped at promotion
    deadline = request.app.state.settings.request_timeout_seconds
    try:
        image_data = await asyncio.wait_for(job.result, timeout=deadline)
    except asyncio.TimeoutError:
        logger.warning(f"[ImageProxy] Gave up after {deadline}s: {source_url[:60]}...")
        raise GatewayTimeout("request timeout")
    except GatewayError:
        raise
    except Exception as e:
        logger.exception(f"[ImageProxy] Unexpected failure: {source_url[:60]}...")
        raise InternalError(f"Image processing failed: {e}")

    return Response(
        content=image_data,
        media_type=OUTPUT_CONTENT_TYPE,
        headers={
            "Cache-Control": CACHE_CONTROL,
            "Access-Control-Allow-Origin": "*",
        },
    )
