"""
FastAPI application entry point for the Autarco scraper.

The application factory wires the session manager, stats fetcher and stats
service together in the lifespan and stores the service on ``app.state``.
Settings are loaded at startup unless passed in explicitly. ScraperError
subclasses raised by route handlers are mapped to HTTP error responses here.

CHANGELOG:
- 2026-10-19: Initial creation
"""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from scraper.src.api.health import router as health_router
from scraper.src.api.stats import router as stats_router
from scraper.src.config import ScraperSettings
from scraper.src.errors import (
    AuthError,
    AuthRejected,
    ParseError,
    ScraperError,
    TransportError,
)
from scraper.src.fetcher import StatsFetcher
from scraper.src.service import StatsService
from scraper.src.session import SessionManager

logger = logging.getLogger(__name__)


def error_status(exc: ScraperError) -> int:
    """Map an upstream failure to the HTTP status returned to the client.

    Login problems and repeated rejections mean the portal is unavailable to
    us (503); a response we cannot use is a bad gateway (502), or a gateway
    timeout (504) when the portal did not answer in time.
    """
    if isinstance(exc, (AuthError, AuthRejected)):
        return 503
    if isinstance(exc, TransportError) and exc.timeout:
        return 504
    if isinstance(exc, (TransportError, ParseError)):
        return 502
    return 500


async def _scraper_error_handler(request: Request, exc: ScraperError) -> JSONResponse:
    status = error_status(exc)
    logger.warning(
        "%s %s failed with %s (HTTP %d): %s",
        request.method,
        request.url.path,
        exc.kind,
        status,
        exc,
    )
    return JSONResponse(
        status_code=status,
        content={"detail": str(exc), "error": exc.kind},
    )


def create_app(
    settings: ScraperSettings | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Configuration to use. Loaded from the environment at
            startup when omitted.
        transport: Optional httpx transport for all portal requests.

    Returns:
        FastAPI: The configured application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Build the stats pipeline on startup, stop the refresh loop on shutdown."""
        config = settings if settings is not None else ScraperSettings()
        app.state.settings = config

        session_manager = SessionManager(
            config.credentials(),
            base_url=config.base_url,
            timeout_s=config.request_timeout_s,
            transport=transport,
        )
        fetcher = StatsFetcher(session_manager, site_id=config.site_id)
        service = StatsService(
            fetcher,
            min_refresh_interval_s=config.min_refresh_interval_s,
        )
        app.state.stats_service = service

        shutdown_event = asyncio.Event()
        refresh_task: asyncio.Task[None] | None = None
        if config.background_refresh:
            refresh_task = asyncio.create_task(service.poll_loop(shutdown_event))

        logger.info("Autarco scraper API ready for site %s", config.site_id)
        yield
        shutdown_event.set()
        if refresh_task is not None:
            await refresh_task
        logger.info("Autarco scraper API shutting down")

    app = FastAPI(
        title="Autarco Scraper",
        description="Current My Autarco photovoltaic statistics as JSON.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_exception_handler(ScraperError, _scraper_error_handler)
    app.include_router(stats_router)
    app.include_router(health_router)
    return app


app = create_app()
