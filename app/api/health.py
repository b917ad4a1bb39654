"""
Health check and status endpoints
"""
from fastapi import APIRouter
from datetime import datetime
from app.config import get_settings
from app import __version__

settings = get_settings()

router = APIRouter()


@router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "version": __version__
    }


@router.get("/status")
async def get_status():
    """Get system status"""
    from app.scheduler import scheduler

    return {
        "app_name": settings.app_name,
        "version": __version__,
        "environment": settings.environment,
        "scheduler": {
            "enabled": settings.enable_scheduler,
            "running": scheduler.running,
            "refresh_interval_minutes": settings.dashboard_refresh_interval_minutes,
        },
        "query_backend": settings.cube_api_url,
        "timestamp": datetime.utcnow().isoformat()
    }
