"""
Dashboard cache endpoints

Reads serve precomputed slices; nothing here queries the analytical backend
except the explicit refresh trigger.
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from typing import List, Optional
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.config import get_settings
from app.exceptions import (
    MissingSegmentError,
    PartialPassFailure,
    QueryBackendError,
    UnsupportedTimeframeError,
)
from app.models.base import get_db
from app.services.cache_writer import CacheWriter, response_cache_prefix
from app.services.dashboard_refresh_service import RefreshRequest, build_refresh_service
from app.services.metric_aggregator import ALL_PLATFORMS
from app.services.timeframe import parse_timeframe
from app.utils.logger import log
from app.utils.response_cache import response_cache

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


class RefreshBody(BaseModel):
    tenant_id: str
    segment_id: Optional[str] = None
    leaf_segment_ids: List[str] = []


def get_refresh_service(db: Session = Depends(get_db)):
    return build_refresh_service(db)


@router.get("")
async def get_dashboard(
    tenant_id: str = Query(..., description="Tenant ID"),
    segment_id: str = Query(..., description="Segment ID"),
    timeframe: str = Query("7d", description="7d, 14d or 30d"),
    platform: str = Query(ALL_PLATFORMS, description="Platform name or 'all'"),
    db: Session = Depends(get_db),
):
    """Cached dashboard metrics for one slice."""
    try:
        timeframe = parse_timeframe(timeframe).value
    except UnsupportedTimeframeError as e:
        raise HTTPException(status_code=400, detail=str(e))

    cache_key = f"{response_cache_prefix(tenant_id, segment_id)}{timeframe}:{platform}"
    cached = response_cache.get(cache_key)
    if cached:
        return cached

    entry = CacheWriter(db).read(tenant_id, segment_id, timeframe, platform)
    if entry is None:
        raise HTTPException(
            status_code=404,
            detail=f"No cached dashboard for segment {segment_id} ({timeframe}, {platform})",
        )

    result = {
        "tenant_id": tenant_id,
        "segment_id": segment_id,
        "timeframe": timeframe,
        "platform": platform,
        "refreshed_at": entry["refreshed_at"],
        "data": entry["data"],
    }
    response_cache.set(cache_key, result, ttl=get_settings().dashboard_response_ttl_seconds)
    return result


@router.post("/refresh")
def refresh_dashboard(body: RefreshBody, service=Depends(get_refresh_service)):
    """
    Run a refresh pass now.

    Runs synchronously; a skipped pass (no new activity) returns immediately.
    """
    request = RefreshRequest(
        tenant_id=body.tenant_id,
        segment_id=body.segment_id,
        leaf_segment_ids=tuple(body.leaf_segment_ids),
    )
    try:
        result = service.run(request)
    except MissingSegmentError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except UnsupportedTimeframeError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (PartialPassFailure, QueryBackendError) as e:
        log.error(f"Dashboard refresh failed for tenant {body.tenant_id}: {e}")
        raise HTTPException(status_code=502, detail=str(e))

    return {"success": True, "result": result.to_dict()}
