"""
Scheduler for periodic dashboard cache refreshes

Uses APScheduler to refresh every root segment of every tenant. Each run only
recomputes slices whose platforms saw new activity since the last pass.
"""
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
import asyncio
import time
from typing import Optional

from app.config import get_settings
from app.connectors.base import QueryBackend
from app.models.base import SessionLocal
from app.services.activity_store import ActivityStore
from app.services.dashboard_refresh_service import RefreshRequest, build_refresh_service
from app.utils.logger import log

settings = get_settings()
scheduler = AsyncIOScheduler()


def refresh_all_segments(backend: Optional[QueryBackend] = None, session_factory=SessionLocal) -> dict:
    """
    Refresh every refresh target in turn.

    A failing segment is logged and counted; the remaining segments still run.
    """
    start = time.time()
    summary = {"refreshed": 0, "skipped": 0, "failed": 0}

    db = session_factory()
    try:
        targets = ActivityStore(db).list_refresh_targets()
    finally:
        db.close()

    for tenant_id, segment_id in targets:
        db = session_factory()
        try:
            service = build_refresh_service(db, backend=backend)
            result = service.run(RefreshRequest(tenant_id=tenant_id, segment_id=segment_id))
            if result.skipped:
                summary["skipped"] += 1
            else:
                summary["refreshed"] += 1
        except Exception as e:
            log.error(f"Dashboard refresh failed for tenant {tenant_id}, segment {segment_id}: {str(e)}")
            summary["failed"] += 1
        finally:
            db.close()

    log.info(
        f"Dashboard cache refresh finished in {time.time() - start:.1f}s: "
        f"{summary['refreshed']} refreshed, {summary['skipped']} skipped, {summary['failed']} failed"
    )
    return summary


async def refresh_dashboard_caches():
    """Scheduled job; the refresh itself blocks, so it runs in a worker thread"""
    log.info("Starting scheduled dashboard cache refresh...")
    await asyncio.to_thread(refresh_all_segments)


def setup_scheduler():
    """Register scheduled jobs"""
    scheduler.add_job(
        refresh_dashboard_caches,
        trigger=IntervalTrigger(minutes=settings.dashboard_refresh_interval_minutes),
        id='dashboard_cache_refresh',
        name='Dashboard Cache Refresh',
        replace_existing=True,
        max_instances=1
    )

    log.info(
        f"Scheduler configured: dashboard cache refresh every "
        f"{settings.dashboard_refresh_interval_minutes} min"
    )


def start_scheduler():
    """Start the scheduler"""
    setup_scheduler()
    scheduler.start()
    log.info("Scheduler started")


def stop_scheduler():
    """Stop the scheduler"""
    if scheduler.running:
        scheduler.shutdown()
        log.info("Scheduler stopped")
