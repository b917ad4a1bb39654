"""
Dashboard Cache Worker
Main FastAPI application
"""
from fastapi import FastAPI
from contextlib import asynccontextmanager

from app.config import get_settings
from app.utils.logger import log
from app import __version__
from app.api import dashboard, health

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    log.info(f"Starting {settings.app_name} v{__version__}")
    log.info(f"Environment: {settings.environment}")

    from app.models.base import init_db
    init_db()
    log.info("Database initialized")

    if settings.enable_scheduler:
        from app.scheduler import start_scheduler
        start_scheduler()

    yield

    if settings.enable_scheduler:
        from app.scheduler import stop_scheduler
        stop_scheduler()
    log.info("Shutting down application")


app = FastAPI(
    title=settings.app_name,
    version=__version__,
    description="""
    Precomputed dashboard metrics per tenant segment.

    - Member and organization growth, activity volume and breakdowns
    - 7, 14 and 30 day windows compared against the previous period
    - Per-platform slices refreshed only when new activity arrives
    """,
    lifespan=lifespan
)

app.include_router(health.router)
app.include_router(dashboard.router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug
    )
