"""
Image Proxy Module

Fetches remote images and re-encodes them as width-limited JPEGs.

Features:
- Bounded concurrent pipelines with a FIFO waiting queue
- Size, redirect and deadline limits on downloads
- Pixel-count ceiling on decoded images
"""

from .admission import AdmissionQueue, ImageJob, QueueFullError
from .fetcher import ImageFetcher
from .pipeline import build_pipeline
from .routes_fastapi import router as image_proxy_router

__all__ = [
    "AdmissionQueue",
    "ImageJob",
    "QueueFullError",
    "ImageFetcher",
    "build_pipeline",
    "image_proxy_router",
]
