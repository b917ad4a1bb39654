"""
Cache Writer

Persists computed dashboard slices and advances the refresh watermark.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.models.dashboard_cache import DashboardCacheEntry
from app.services.activity_store import ActivityStore, to_db_datetime
from app.services.metric_aggregator import DashboardData
from app.services.timeframe import DashboardTimeframe, parse_timeframe
from app.utils.response_cache import response_cache


@dataclass(frozen=True)
class SliceKey:
    tenant_id: str
    segment_id: str
    timeframe: DashboardTimeframe
    platform: str

    def __str__(self) -> str:
        return f"{self.segment_id}:{self.timeframe.value}:{self.platform}"


def response_cache_prefix(tenant_id: str, segment_id: str) -> str:
    return f"dashboard:{tenant_id}:{segment_id}:"


class CacheWriter:

    def __init__(self, db: Session, store: Optional[ActivityStore] = None):
        self.db = db
        self.store = store or ActivityStore(db)

    def write(self, key: SliceKey, data: DashboardData, refreshed_at: datetime) -> None:
        """
        Replace the cached entry for ``key``.

        Safe to retry: the same inputs always leave the same row behind.
        """
        payload = data.as_dict()
        entry = (
            self.db.query(DashboardCacheEntry)
            .filter(
                DashboardCacheEntry.tenant_id == key.tenant_id,
                DashboardCacheEntry.segment_id == key.segment_id,
                DashboardCacheEntry.timeframe == key.timeframe.value,
                DashboardCacheEntry.platform == key.platform,
            )
            .first()
        )

        if entry is None:
            entry = DashboardCacheEntry(
                tenant_id=key.tenant_id,
                segment_id=key.segment_id,
                timeframe=key.timeframe.value,
                platform=key.platform,
            )
            self.db.add(entry)

        entry.data = payload
        entry.refreshed_at = to_db_datetime(refreshed_at)

        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        response_cache.invalidate(response_cache_prefix(key.tenant_id, key.segment_id))

    def advance_watermark(self, segment_id: str, timestamp: datetime) -> bool:
        """Only called once a whole pass has been written."""
        return self.store.advance_watermark(segment_id, timestamp)

    def read(
        self,
        tenant_id: str,
        segment_id: str,
        timeframe,
        platform: str,
    ) -> Optional[Dict[str, Any]]:
        """Cached payload for a slice plus its refresh time, or None."""
        timeframe = parse_timeframe(timeframe)
        entry = (
            self.db.query(DashboardCacheEntry)
            .filter(
                DashboardCacheEntry.tenant_id == tenant_id,
                DashboardCacheEntry.segment_id == segment_id,
                DashboardCacheEntry.timeframe == timeframe.value,
                DashboardCacheEntry.platform == platform,
            )
            .first()
        )
        if entry is None:
            return None
        return {
            "data": entry.data,
            "refreshed_at": entry.refreshed_at.isoformat() if entry.refreshed_at else None,
        }
