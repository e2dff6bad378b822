"""
Gateway Application

Builds the FastAPI app:
- Shared httpx clients, admission queue and search cache on app.state
- Request-id and whole-request deadline middleware
- JSON error bodies for every failure path
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from cache import ResultCache, run_expiry_sweeper
from catalog import MangaDexClient, catalog_router
from image_proxy import AdmissionQueue, ImageFetcher, build_pipeline, image_proxy_router

from .config import Settings, load_settings
from .errors import GatewayError
from .logging_config import new_request_id, request_id_var

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def create_app(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Create the gateway app.

    Args:
        settings: Runtime settings (read from the environment when omitted)
        transport: Optional httpx transport for every outbound call
    """
    settings = settings or load_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        image_client = ImageFetcher.build_client(
            timeout=settings.image_fetch_timeout,
            max_redirects=settings.image_max_redirects,
            transport=transport,
        )
        catalog_client = MangaDexClient.build_client(
            api_url=settings.mangadex_api_url,
            timeout=settings.catalog_timeout,
            transport=transport,
        )

        fetcher = ImageFetcher(
            image_client,
            max_bytes=settings.image_max_bytes,
            timeout=settings.image_fetch_timeout,
        )
        app.state.admission = AdmissionQueue(
            build_pipeline(fetcher),
            max_active=settings.image_max_active,
            max_queued=settings.image_max_queued,
        )
        app.state.search_cache = ResultCache(
            max_entries=settings.search_cache_max_entries,
            ttl=settings.search_cache_ttl_seconds,
        )
        app.state.catalog = MangaDexClient(catalog_client, uploads_url=settings.mangadex_uploads_url)

        sweeper = asyncio.create_task(run_expiry_sweeper(app.state.search_cache))
        logger.info("[Gateway] Started")
        try:
            yield
        finally:
            sweeper.cancel()
            await asyncio.gather(sweeper, return_exceptions=True)
            await app.state.admission.drain()
            await image_client.aclose()
            await catalog_client.aclose()
            logger.info("[Gateway] Stopped")

    app = FastAPI(
        title="MangaDex Gateway",
        description="MangaDex search/detail/chapter API with an on-the-fly image transcoding proxy.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.include_router(image_proxy_router)
    app.include_router(catalog_router)
    _install_middleware(app, settings)
    _install_exception_handlers(app)

    @app.get("/", response_class=PlainTextResponse)
    async def index():
        return "MangaDex API service is running!"

    @app.get("/health")
    async def health(request: Request):
        return {
            "status": "healthy",
            "admission": request.app.state.admission.stats(),
            "search_cache": request.app.state.search_cache.stats(),
        }

    return app


def _install_middleware(app: FastAPI, settings: Settings) -> None:
    # Registered first so it runs inside the request-id middleware
    @app.middleware("http")
    async def request_deadline(request: Request, call_next):
        try:
            return await asyncio.wait_for(call_next(request), timeout=settings.request_timeout_seconds)
        except asyncio.TimeoutError:
            logger.error(f"[Gateway] Deadline exceeded: {request.method} {request.url.path}")
            return JSONResponse(status_code=504, content={"error": "request timeout"})

    @app.middleware("http")
    async def request_id(request: Request, call_next):
        rid = request.headers.get(REQUEST_ID_HEADER) or new_request_id()
        token = request_id_var.set(rid)
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)
        response.headers[REQUEST_ID_HEADER] = rid
        return response


def _install_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError):
        if exc.status_code >= 500:
            logger.error(f"[Gateway] {request.url.path} -> {exc.status_code}: {exc.message}")
        else:
            logger.info(f"[Gateway] {request.url.path} -> {exc.status_code}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return JSONResponse(status_code=404, content={"error": "route not found"})
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": "invalid request", "details": jsonable_encoder(exc.errors())})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"[Gateway] Unhandled error on {request.url.path}")
        return JSONResponse(status_code=500, content={"error": "internal server error"})
