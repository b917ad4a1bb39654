"""
Activity Store

Segment and activity lookups the refresh engine needs, plus persistence of the
per-segment refresh watermark.
"""
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Set, Tuple

from sqlalchemy.orm import Session

from app.models.activity import Activity
from app.models.segment import Segment
from app.utils.logger import log


def to_db_datetime(dt: datetime) -> datetime:
    """Timestamps are stored as naive UTC."""
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def from_db_datetime(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    return dt.replace(tzinfo=timezone.utc)


class ActivityStore:
    """SQLAlchemy-backed segment/activity contract."""

    def __init__(self, db: Session):
        self.db = db

    def get_default_segment(self, tenant_id: str) -> Optional[str]:
        """The tenant's earliest-created segment, or None when it has none."""
        segment = (
            self.db.query(Segment)
            .filter(Segment.tenant_id == tenant_id)
            .order_by(Segment.created_at.asc(), Segment.id.asc())
            .first()
        )
        return segment.id if segment else None

    def segment_exists(self, tenant_id: str, segment_id: str) -> bool:
        """True only when the segment exists and belongs to the tenant."""
        segment = self.db.get(Segment, segment_id)
        return segment is not None and segment.tenant_id == tenant_id

    def get_leaf_segment_ids(self, segment_id: str) -> List[str]:
        """
        Resolve the leaves under a segment.

        A segment without children is its own (sole) leaf.
        """
        leaves = []
        frontier = [segment_id]
        seen = set()

        while frontier:
            current = frontier.pop()
            if current in seen:
                continue
            seen.add(current)

            children = [
                row.id
                for row in self.db.query(Segment.id).filter(Segment.parent_id == current)
            ]
            if children:
                frontier.extend(children)
            else:
                leaves.append(current)

        return sorted(leaves)

    def get_dashboard_last_refreshed_at(self, segment_id: str) -> Optional[datetime]:
        segment = self.db.get(Segment, segment_id)
        if segment is None:
            return None
        return from_db_datetime(segment.dashboard_cache_last_refreshed_at)

    def get_active_platforms(self, leaf_segment_ids: Sequence[str]) -> Set[str]:
        """Every platform with at least one activity in the leaf segments."""
        if not leaf_segment_ids:
            return set()
        rows = (
            self.db.query(Activity.platform)
            .filter(
                Activity.segment_id.in_(list(leaf_segment_ids)),
                Activity.deleted_at.is_(None),
            )
            .distinct()
        )
        return {row.platform for row in rows if row.platform}

    def find_new_activity_platforms(
        self,
        since: datetime,
        leaf_segment_ids: Sequence[str],
    ) -> Set[str]:
        """
        Platforms with activities ingested strictly after ``since``.

        Returns an empty set (never None) when nothing new arrived.
        """
        if not leaf_segment_ids:
            return set()
        rows = (
            self.db.query(Activity.platform)
            .filter(
                Activity.segment_id.in_(list(leaf_segment_ids)),
                Activity.created_at > to_db_datetime(since),
                Activity.deleted_at.is_(None),
            )
            .distinct()
        )
        return {row.platform for row in rows if row.platform}

    def advance_watermark(self, segment_id: str, timestamp: datetime) -> bool:
        """
        Move the segment's watermark forward to ``timestamp``.

        Returns False (and changes nothing) when the stored watermark is already
        at or past ``timestamp``, so replays and slow concurrent runs can never
        move it backwards.
        """
        segment = self.db.get(Segment, segment_id)
        if segment is None:
            log.warning(f"Cannot advance watermark: segment {segment_id} not found")
            return False

        new_value = to_db_datetime(timestamp)
        current = segment.dashboard_cache_last_refreshed_at
        if current is not None and current >= new_value:
            return False

        segment.dashboard_cache_last_refreshed_at = new_value
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return True

    def list_refresh_targets(self) -> List[Tuple[str, str]]:
        """(tenant_id, segment_id) for every root segment."""
        rows = (
            self.db.query(Segment.tenant_id, Segment.id)
            .filter(Segment.parent_id.is_(None))
            .order_by(Segment.tenant_id, Segment.created_at, Segment.id)
        )
        return [(row.tenant_id, row.id) for row in rows]
