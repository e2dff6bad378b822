"""
Image Transcoder

Decodes an image, scales it down to a target width keeping the aspect
ratio, and re-encodes it as a progressive, optimized JPEG.

Pillow work is CPU-bound; callers on the event loop should go through
`transcode_async`, which runs it in a worker thread.
"""

import asyncio
import logging
from io import BytesIO
from typing import Tuple

from PIL import Image, UnidentifiedImageError

from gateway.errors import InternalError, ResourceLimitError

logger = logging.getLogger(__name__)

# 16383 x 16383
MAX_INPUT_PIXELS = 268_402_689

# Let Pillow open anything up to our own ceiling; we enforce it ourselves.
Image.MAX_IMAGE_PIXELS = MAX_INPUT_PIXELS

DEFAULT_WIDTH = 600
DEFAULT_QUALITY = 50
OUTPUT_CONTENT_TYPE = "image/jpeg"


class TranscodeError(InternalError):
    """Base class for transcode failures."""


class DecodeError(TranscodeError):
    pass


class EncodeError(TranscodeError):
    pass


class ImageTooLarge(TranscodeError, ResourceLimitError):
    status_code = 413


def target_size(source: Tuple[int, int], width: int) -> Tuple[int, int]:
    """
    Output dimensions for a source of `source` (w, h) and a requested width.

    Never enlarges; height keeps the source ratio, rounded half-up.
    """
    src_w, src_h = source
    new_w = min(width, src_w)
    if new_w == src_w:
        return src_w, src_h
    new_h = max(1, int(src_h * new_w / src_w + 0.5))
    return new_w, new_h


def _flatten(img: Image.Image) -> Image.Image:
    """Convert to a mode JPEG can store, compositing transparency on white."""
    if img.mode in ("RGB", "L"):
        return img
    if img.mode in ("P", "PA"):
        img = img.convert("RGBA")
    if img.mode in ("RGBA", "LA"):
        background = Image.new("RGB", img.size, (255, 255, 255))
        rgba = img.convert("RGBA")
        background.paste(rgba, mask=rgba.split()[3])
        return background
    return img.convert("RGB")


def transcode(data: bytes, width: int = DEFAULT_WIDTH, quality: int = DEFAULT_QUALITY) -> bytes:
    """
    Re-encode `data` as JPEG no wider than `width` at `quality` (1-100).

    Raises:
        ImageTooLarge: decoded pixel count over MAX_INPUT_PIXELS
        DecodeError: input is not a readable image
        EncodeError: JPEG encoding failed
    """
    try:
        img = Image.open(BytesIO(data))
    except Image.DecompressionBombError:
        raise ImageTooLarge(f"Image exceeds {MAX_INPUT_PIXELS} pixels")
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise DecodeError(f"Image decode failed: {e}")

    src_w, src_h = img.size
    if src_w * src_h > MAX_INPUT_PIXELS:
        raise ImageTooLarge(f"Image exceeds {MAX_INPUT_PIXELS} pixels ({src_w}x{src_h})")

    try:
        img.load()
        img = _flatten(img)
        size = target_size(img.size, width)
        if size != img.size:
            img = img.resize(size, Image.Resampling.LANCZOS)
    except (OSError, ValueError) as e:
        raise DecodeError(f"Image decode failed: {e}")

    output = BytesIO()
    try:
        img.save(output, format="JPEG", quality=quality, optimize=True, progressive=True)
    except (OSError, ValueError) as e:
        raise EncodeError(f"Image encode failed: {e}")

    logger.debug(
        f"[Transcoder] {src_w}x{src_h} -> {size[0]}x{size[1]} "
        f"(q={quality}, {len(data)//1024}KB -> {output.tell()//1024}KB)"
    )
    return output.getvalue()


async def transcode_async(data: bytes, width: int = DEFAULT_WIDTH, quality: int = DEFAULT_QUALITY) -> bytes:
    """Run `transcode` off the event loop."""
    return await asyncio.to_thread(transcode, data, width, quality)
