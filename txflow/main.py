"""
Reference tracking service.

Serves the durable records the tracker adapter writes to, so a UI can
recover a sequence after a reload.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import health, tracking
from .config import settings
from .logging_config import setup_logging
from .middleware.logging_middleware import RequestLoggingMiddleware
from .services.tracking_store import get_tracking_store

API_TITLE = "txflow Tracking API"
API_VERSION = "0.1.0"
API_DESCRIPTION = "Durable tracking records for on-chain transaction sequences"

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        f"{API_TITLE} {API_VERSION} starting (prepare backends: "
        f"lending={settings.prepare_url_for('lending')}, staking={settings.prepare_url_for('staking')})"
    )
    yield
    await get_tracking_store().close()
    logger.info(f"{API_TITLE} stopped")


def create_app() -> FastAPI:
    application = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=API_VERSION,
        lifespan=lifespan,
    )

    # Last added runs outermost, so request logging also sees CORS preflights
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    application.add_middleware(RequestLoggingMiddleware)

    application.include_router(health.router, tags=["Health"])
    application.include_router(tracking.router, tags=["Tracking"])

    @application.get("/")
    async def root():
        """Service info"""
        return {
            "name": API_TITLE,
            "version": API_VERSION,
            "description": API_DESCRIPTION,
            "docs": "/docs",
            "health": "/healthz",
        }

    return application


setup_logging()
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "txflow.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
