import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from gateway.api.routers import notify as notify_router
from gateway.api.routers import uploads as uploads_router
from gateway.core.config import get_settings
from gateway.core.network import NoProxyRegistry
from gateway.services.storage import StorageCredentials

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    if not StorageCredentials.from_settings(settings).is_complete:
        logger.warning("MinIO config is incomplete; upload endpoints will answer 500")
    yield


def create_app() -> FastAPI:
    settings = get_settings()
    logging.getLogger("gateway").setLevel(settings.log_level.upper())

    app = FastAPI(
        debug=settings.debug,
        title="Video Upload Gateway",
        lifespan=lifespan,
    )
    app.state.no_proxy_registry = NoProxyRegistry.from_environ()

    app.include_router(uploads_router.router)
    app.include_router(notify_router.router)

    @app.get("/health")
    async def health_check():
        return {"status": "ok", "service": "video-upload-gateway"}

    return app


app = create_app()
