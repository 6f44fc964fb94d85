"""
PostSnap FastAPI application

The retrieval service is created at startup and torn down at shutdown by the
lifespan handler; routes reach it through ``app.state``.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from postsnap.api.routes import router
from postsnap.core.retrieval import RetrievalService
from postsnap.utils.config import APP_NAME, APP_VERSION, SERVICE_NAME
from postsnap.utils.logging import get_logger

logger = get_logger(__name__)


def create_app(service: Optional[RetrievalService] = None) -> FastAPI:
    """
    Build the application.

    Args:
        service: Pre-built retrieval service (default: one with the
            production strategies, created on startup)
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        retrieval_service = service or RetrievalService()
        await retrieval_service.start()
        app.state.retrieval_service = retrieval_service
        logger.info(f"{SERVICE_NAME} ready")
        try:
            yield
        finally:
            await retrieval_service.close()
            logger.info(f"{SERVICE_NAME} stopped")

    app = FastAPI(
        title=APP_NAME,
        description=SERVICE_NAME,
        version=APP_VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)
    return app
