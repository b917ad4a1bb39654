"""
Dashboard Refresh Service

Top-level refresh run for one tenant segment:

    resolve segment -> plan -> (skip) | (refresh slices -> advance watermark)

Slices are refreshed timeframe by timeframe, and within a timeframe platform by
platform (``"all"`` first). The watermark only moves once every planned slice
has been written, and it moves to the time the pass *started* so activity that
lands mid-pass is picked up by the next run.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from app.connectors.base import QueryBackend
from app.exceptions import MissingSegmentError, PartialPassFailure
from app.services.activity_store import ActivityStore
from app.services.cache_writer import CacheWriter, SliceKey
from app.services.metric_aggregator import (
    METRIC_FAMILIES,
    DashboardData,
    MetricAggregator,
    MetricFamily,
    SegmentScope,
)
from app.services.staleness_detector import RefreshPlan, StalenessDetector
from app.services.step_executor import RetryingStepExecutor, StepExecutor
from app.services.timeframe import (
    TIMEFRAMES,
    Clock,
    DashboardTimeframe,
    DateWindow,
    as_utc,
    compute_window,
    utc_now,
)
from app.utils.logger import log


@dataclass(frozen=True)
class RefreshRequest:
    tenant_id: str
    segment_id: Optional[str] = None
    leaf_segment_ids: Tuple[str, ...] = ()


@dataclass
class RefreshResult:
    """Outcome of one run; ``watermark`` is the value persisted after it."""

    tenant_id: str
    segment_id: str
    leaf_segment_ids: Tuple[str, ...]
    started_at: datetime
    previous_watermark: Optional[datetime]
    watermark: Optional[datetime]
    plan: RefreshPlan
    slices_written: List[SliceKey] = field(default_factory=list)

    @property
    def skipped(self) -> bool:
        return self.plan.skip

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tenant_id": self.tenant_id,
            "segment_id": self.segment_id,
            "leaf_segment_ids": list(self.leaf_segment_ids),
            "started_at": self.started_at.isoformat(),
            "previous_watermark": self.previous_watermark.isoformat() if self.previous_watermark else None,
            "watermark": self.watermark.isoformat() if self.watermark else None,
            "skipped": self.skipped,
            "cold_start": self.plan.cold_start,
            "platforms": list(self.plan.ordered_platforms()),
            "slices_written": [str(key) for key in self.slices_written],
        }


class DashboardRefreshService:
    """
    Refresh orchestrator.

    Every store, backend and cache call goes through ``executor`` under a
    stable step name, so a retrying executor can re-run any single step.
    """

    def __init__(
        self,
        store: ActivityStore,
        aggregator: MetricAggregator,
        writer: CacheWriter,
        executor: Optional[StepExecutor] = None,
        clock: Clock = utc_now,
        timeframes: Sequence[DashboardTimeframe] = TIMEFRAMES,
        families: Sequence[MetricFamily] = METRIC_FAMILIES,
    ):
        self.store = store
        self.aggregator = aggregator
        self.writer = writer
        self.detector = StalenessDetector(store)
        self.executor = executor or StepExecutor()
        self.clock = clock
        self.timeframes = tuple(timeframes)
        self.families = tuple(families)

    def run(self, request: RefreshRequest) -> RefreshResult:
        started_at = as_utc(self.clock())
        scope = self._resolve_segment(request)

        log.info(
            f"Refreshing dashboard cache for tenant {request.tenant_id}, "
            f"segment {scope.segment_id} ({len(scope.leaf_segment_ids)} leaf segment(s))"
        )

        watermark = self.executor.run(
            "get-last-refreshed-at",
            self.store.get_dashboard_last_refreshed_at,
            scope.segment_id,
        )
        plan = self.executor.run(
            "plan-refresh",
            self.detector.plan_refresh,
            scope.segment_id,
            watermark,
            scope.leaf_segment_ids,
        )

        result = RefreshResult(
            tenant_id=request.tenant_id,
            segment_id=scope.segment_id,
            leaf_segment_ids=scope.leaf_segment_ids,
            started_at=started_at,
            previous_watermark=watermark,
            watermark=watermark,
            plan=plan,
        )

        if plan.skip:
            log.info("No new activities found, not calculating cache again")
            return result

        failures = []
        for timeframe in self.timeframes:
            window = compute_window(timeframe, started_at)
            for platform in plan.ordered_platforms():
                key = SliceKey(request.tenant_id, scope.segment_id, timeframe, platform)
                try:
                    self._refresh_slice(key, scope, window, started_at)
                except Exception as e:
                    log.error(f"Refreshing slice {key} failed: {e}")
                    failures.append((key, e))
                    continue
                result.slices_written.append(key)

        if failures:
            raise PartialPassFailure(scope.segment_id, failures) from failures[0][1]

        advanced = self.executor.run(
            "advance-watermark",
            self.writer.advance_watermark,
            scope.segment_id,
            started_at,
        )
        if advanced:
            result.watermark = started_at
        else:
            # A newer pass already moved it
            result.watermark = self.executor.run(
                "reread-last-refreshed-at",
                self.store.get_dashboard_last_refreshed_at,
                scope.segment_id,
            )
            log.warning(
                f"Watermark for segment {scope.segment_id} not advanced to "
                f"{started_at.isoformat()}; stored value is {result.watermark}"
            )

        log.info(
            f"Done generating dashboard cache for tenant {request.tenant_id}, "
            f"segment {scope.segment_id}: {len(result.slices_written)} slice(s)"
        )
        return result

    def _resolve_segment(self, request: RefreshRequest) -> SegmentScope:
        if not request.segment_id:
            segment_id = self.executor.run(
                "get-default-segment",
                self.store.get_default_segment,
                request.tenant_id,
            )
            if not segment_id:
                raise MissingSegmentError(request.tenant_id)
            return SegmentScope(segment_id=segment_id, leaf_segment_ids=(segment_id,))

        exists = self.executor.run(
            "get-segment",
            self.store.segment_exists,
            request.tenant_id,
            request.segment_id,
        )
        if not exists:
            raise MissingSegmentError(request.tenant_id, request.segment_id)

        leaf_ids = tuple(request.leaf_segment_ids)
        if not leaf_ids:
            leaf_ids = tuple(self.executor.run(
                "get-leaf-segments",
                self.store.get_leaf_segment_ids,
                request.segment_id,
            ))
        return SegmentScope(segment_id=request.segment_id, leaf_segment_ids=leaf_ids)

    def _refresh_slice(
        self,
        key: SliceKey,
        scope: SegmentScope,
        window: DateWindow,
        refreshed_at: datetime,
    ) -> None:
        log.info(f"Refreshing cache for {key}")
        snapshots = {}
        for family in self.families:
            snapshots[family.name] = self.executor.run(
                f"compute:{family.name}:{key}",
                self.aggregator.compute_family,
                family,
                scope,
                window,
                key.platform,
            )
        self.executor.run(
            f"write:{key}",
            self.writer.write,
            key,
            DashboardData(snapshots=snapshots),
            refreshed_at,
        )


def build_refresh_service(
    db: Session,
    backend: Optional[QueryBackend] = None,
    executor: Optional[StepExecutor] = None,
    clock: Clock = utc_now,
) -> DashboardRefreshService:
    """Wire the service with the production backend and retry policy."""
    if backend is None:
        from app.connectors.cube import CubeQueryBackend
        backend = CubeQueryBackend()

    store = ActivityStore(db)
    return DashboardRefreshService(
        store=store,
        aggregator=MetricAggregator(backend),
        writer=CacheWriter(db, store),
        executor=executor or RetryingStepExecutor(),
        clock=clock,
    )
