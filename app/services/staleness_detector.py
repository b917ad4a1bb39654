"""
Staleness Detector

Decides whether a segment's dashboard cache needs a refresh and which platform
slices to recompute.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import FrozenSet, Optional, Sequence, Tuple

from app.services.activity_store import ActivityStore
from app.services.metric_aggregator import ALL_PLATFORMS
from app.utils.logger import log


@dataclass(frozen=True)
class RefreshPlan:
    platforms: FrozenSet[str]
    skip: bool
    cold_start: bool = False

    def ordered_platforms(self) -> Tuple[str, ...]:
        """``"all"`` first, then the remaining platforms alphabetically."""
        rest = sorted(p for p in self.platforms if p != ALL_PLATFORMS)
        if ALL_PLATFORMS in self.platforms:
            return (ALL_PLATFORMS, *rest)
        return tuple(rest)


class StalenessDetector:

    def __init__(self, store: ActivityStore):
        self.store = store

    def plan_refresh(
        self,
        segment_id: str,
        watermark: Optional[datetime],
        leaf_segment_ids: Sequence[str],
    ) -> RefreshPlan:
        """
        Plan a refresh pass for one segment.

        Never refreshed: every active platform plus ``"all"``.
        Refreshed before: only platforms with activity after the watermark,
        plus ``"all"`` since it aggregates across them; nothing new means skip.
        """
        if watermark is None:
            platforms = set(self.store.get_active_platforms(leaf_segment_ids))
            platforms.add(ALL_PLATFORMS)
            log.info(
                f"Segment {segment_id} has never been refreshed, "
                f"planning {len(platforms)} platform slice(s)"
            )
            return RefreshPlan(platforms=frozenset(platforms), skip=False, cold_start=True)

        changed = set(self.store.find_new_activity_platforms(watermark, leaf_segment_ids))
        if not changed:
            log.info(f"No new activities for segment {segment_id} since {watermark.isoformat()}")
            return RefreshPlan(platforms=frozenset(), skip=True)

        changed.add(ALL_PLATFORMS)
        log.info(
            f"New activities for segment {segment_id} since {watermark.isoformat()} "
            f"on: {', '.join(sorted(changed - {ALL_PLATFORMS}))}"
        )
        return RefreshPlan(platforms=frozenset(changed), skip=False)
