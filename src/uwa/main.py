"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from uwa.certification.router import router as certification_router
from uwa.config import get_settings
from uwa.database import close_db, create_tables, init_db
from uwa.health.router import router as health_router
from uwa.middleware import setup_middleware
from uwa.progress.router import router as progress_router


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await create_tables()

    yield

    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Underwater Archaeology Academy API",
        description="Certification and progress synchronization for the Junior Underwater Archaeologist program",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(certification_router)
    app.include_router(progress_router)

    return app


app = create_app()
