"""
CurateHub API — entry point.

Startup sequence:
  1. Configure OTel tracing (OTLP export when an endpoint is set)
  2. Initialise each plugin (RSS → Redis, Marketplace → SQL DB + optional Redis)
  3. Mount plugin routers under /{plugin.prefix}
  4. Expose Prometheus /metrics endpoint

Run with:  uvicorn curatehub.main:app --port 1337
"""
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from curatehub import __version__
from curatehub.config import Settings, settings as default_settings
from curatehub.errors import CurateError, NotFoundError, StoreError, ValidationError
from curatehub.plugins import Plugin
from curatehub.plugins.marketplace import MarketplacePlugin
from curatehub.plugins.rss import RssPlugin
from curatehub.schemas import ErrorResponse
from curatehub.telemetry import instrument_app, setup_tracing

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: list[tuple[type[CurateError], int]] = [
    (NotFoundError, 404),
    (ValidationError, 422),
    (StoreError, 503),
]

ERROR_RESPONSES = {
    status_code: {"model": ErrorResponse} for _, status_code in _STATUS_BY_ERROR
}


def default_plugins(settings: Settings) -> list[Plugin]:
    return [RssPlugin(settings), MarketplacePlugin(settings)]


def create_app(
    settings: Optional[Settings] = None,
    plugins: Optional[list[Plugin]] = None,
) -> FastAPI:
    settings = settings or default_settings
    plugins = plugins if plugins is not None else default_plugins(settings)

    # Set up tracing before routes run so store clients are instrumented
    setup_tracing(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Initialise plugins in order, shut them down in reverse."""
        logger.info("Starting CurateHub (env=%s)", settings.environment)
        started: list[Plugin] = []
        try:
            for plugin in plugins:
                await plugin.initialize()
                started.append(plugin)
                logger.info("Plugin %s ready at /%s", plugin.id, plugin.prefix)
            app.state.plugins = {p.id: p for p in plugins}
            logger.info("All plugins initialised. API ready.")
            yield
        finally:
            logger.info("Shutting down...")
            for plugin in reversed(started):
                try:
                    await plugin.shutdown()
                except Exception as exc:
                    logger.warning("Plugin %s shutdown failed: %s", plugin.id, exc)

    app = FastAPI(
        title="CurateHub API",
        description=(
            "Content aggregation and curated marketplace backend: RSS/Atom feeds "
            "in Redis, products and collections in SQL, time-windowed trending."
        ),
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        t0 = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "%s %s → %d (%.1f ms)",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - t0) * 1000,
        )
        return response

    # ── Error translation ──────────────────────────────────────────────────
    def _make_handler(status_code: int):
        async def handler(request: Request, exc: CurateError) -> JSONResponse:
            return JSONResponse(status_code=status_code, content=exc.to_dict())
        return handler

    for error_cls, status_code in _STATUS_BY_ERROR:
        app.add_exception_handler(error_cls, _make_handler(status_code))

    # ── Routers ────────────────────────────────────────────────────────────
    for plugin in plugins:
        app.include_router(
            plugin.router,
            prefix=f"/{plugin.prefix}",
            tags=[plugin.id],
            responses=ERROR_RESPONSES,
        )

    # ── Prometheus metrics endpoint ────────────────────────────────────────
    app.mount("/metrics", make_asgi_app())

    # ── OTel FastAPI instrumentation ───────────────────────────────────────
    instrument_app(app, settings)

    @app.get("/health", tags=["Health"])
    async def health():
        return {
            "status": "ok",
            "service": settings.service_name,
            "plugins": [p.id for p in plugins],
        }

    return app


app = create_app()
