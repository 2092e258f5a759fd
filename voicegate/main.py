"""FastAPI application for voicegate."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .api.error_handling import setup_error_handlers
from .api.routes import audio, projects, static, uploads
from .config import Settings, get_settings
from .infrastructure.container import Container
from .observability.logging import setup_logging


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    container: Container = app.state.container
    logger.info("Starting voicegate API...")

    await container.init()

    yield

    logger.info("Shutting down voicegate API...")
    await container.close()


def create_app(
    settings: Optional[Settings] = None,
    container: Optional[Container] = None,
    configure_logging: bool = False,
) -> FastAPI:
    """Build the application and its dependency container.

    Args:
        settings: Loaded settings (read from the environment when omitted)
        container: Pre-built container, e.g. with test overrides
        configure_logging: Install the JSON/plain root log handler
    """
    settings = settings or (container.settings if container else get_settings())
    if configure_logging:
        setup_logging("voicegate-api", settings.log_level, settings.log_json)

    app = FastAPI(
        title="voicegate API",
        description="Text-to-speech and voice conversion gateway",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.container = container or Container(settings)

    setup_error_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(audio.router, prefix="/api", tags=["audio"])
    app.include_router(uploads.router, prefix="/api", tags=["uploads"])
    app.include_router(projects.router, prefix="/api", tags=["projects"])

    @app.get("/health")
    async def health():
        """Health check endpoint.

        Storage must be provisioned and writable; an unconfigured provider
        is reported but does not make the service unhealthy.
        """
        checks = await app.state.container.health_check()
        status = "healthy" if checks["storage"]["status"] == "healthy" else "unhealthy"
        return {"status": status, **checks}

    # Catch-all must be registered last
    app.include_router(static.router, tags=["static"])

    return app


def run() -> None:
    """Entry point for ``python -m voicegate.main``."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        create_app(settings, configure_logging=True),
        host=settings.api_host,
        port=settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    run()
