"""Fetch -> transcode pipeline run for each admitted ImageJob."""

import logging
import time

from .admission import ImageJob, Pipeline
from .fetcher import ImageFetcher
from .transcoder import transcode_async

logger = logging.getLogger(__name__)


def build_pipeline(fetcher: ImageFetcher) -> Pipeline:
    async def run(job: ImageJob) -> bytes:
        started = time.perf_counter()
        data = await fetcher.fetch(job.source_url)
        output = await transcode_async(data, job.width, job.quality)
        logger.info(
            f"[ImageProxy] Proxied: {job.source_url[:60]}... "
            f"({len(data)//1024}KB -> {len(output)//1024}KB, {time.perf_counter() - started:.2f}s)"
        )
        return output

    return run
