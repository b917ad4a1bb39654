"""
Metric Aggregator

Builds one metric family's snapshot (current total, previous-period total,
daily timeseries and optional breakdowns) for a slice by querying the
analytical backend.

Backend errors are not caught here; the refresh orchestrator decides what a
failed slice means.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from app.connectors.base import QueryBackend, QueryFilter, QueryRequest, equals
from app.services.timeframe import DateWindow

ALL_PLATFORMS = "all"

# Cube members
MEMBERS_COUNT = "Members.count"
ORGANIZATIONS_COUNT = "Organizations.count"
ACTIVITIES_COUNT = "Activities.count"

MEMBER_JOINED_AT = "Members.joinedAt"
ORGANIZATION_JOINED_AT = "Organizations.earliestJoinedAt"
ACTIVITY_DATE = "Activities.date"

IS_TEAM_MEMBER = "Members.isTeamMember"
IS_BOT = "Members.isBot"
IS_ORGANIZATION = "Members.isOrganization"
ACTIVITY_PLATFORM = "Activities.platform"
ACTIVITY_TYPE = "Activities.type"
ACTIVITY_SENTIMENT_MOOD = "Activities.sentimentMood"
SEGMENTS_ID = "Segments.id"

DAY = "day"

# Team members, bots and organization-type members never count
EXCLUSION_FILTERS: Tuple[QueryFilter, ...] = (
    equals(IS_TEAM_MEMBER, ["false"]),
    equals(IS_BOT, ["false"]),
    equals(IS_ORGANIZATION, ["false"]),
)


@dataclass(frozen=True)
class MetricFamily:
    """
    Measure/dimension configuration of one dashboard metric.

    ``breakdowns`` maps a result key to the extra dimensions its rows are
    grouped by.
    """

    name: str
    measure: str
    time_dimension: str
    breakdowns: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)


NEW_MEMBERS = MetricFamily("newMembers", MEMBERS_COUNT, MEMBER_JOINED_AT)
ACTIVE_MEMBERS = MetricFamily("activeMembers", MEMBERS_COUNT, ACTIVITY_DATE)
NEW_ORGANIZATIONS = MetricFamily("newOrganizations", ORGANIZATIONS_COUNT, ORGANIZATION_JOINED_AT)
ACTIVE_ORGANIZATIONS = MetricFamily("activeOrganizations", ORGANIZATIONS_COUNT, ACTIVITY_DATE)
ACTIVITY = MetricFamily(
    "activity",
    ACTIVITIES_COUNT,
    ACTIVITY_DATE,
    breakdowns={
        "bySentimentMood": (ACTIVITY_SENTIMENT_MOOD,),
        "byTypeAndPlatform": (ACTIVITY_TYPE, ACTIVITY_PLATFORM),
    },
)

METRIC_FAMILIES: Tuple[MetricFamily, ...] = (
    NEW_MEMBERS,
    ACTIVE_MEMBERS,
    NEW_ORGANIZATIONS,
    ACTIVE_ORGANIZATIONS,
    ACTIVITY,
)


@dataclass(frozen=True)
class SegmentScope:
    segment_id: str
    leaf_segment_ids: Tuple[str, ...]


@dataclass(frozen=True)
class TimeseriesPoint:
    date: date
    value: int


@dataclass(frozen=True)
class MetricSnapshot:
    total: int
    previous_period_total: int
    timeseries: Tuple[TimeseriesPoint, ...] = ()
    breakdowns: Mapping[str, Tuple[Dict[str, Any], ...]] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "total": self.total,
            "previousPeriodTotal": self.previous_period_total,
            "timeseries": [
                {"date": point.date.isoformat(), "value": point.value}
                for point in self.timeseries
            ],
        }
        for name, rows in self.breakdowns.items():
            result[name] = [dict(row) for row in rows]
        return result


@dataclass(frozen=True)
class DashboardData:
    """All metric families of one slice, keyed by family name."""

    snapshots: Mapping[str, MetricSnapshot]

    def as_dict(self) -> Dict[str, Any]:
        return {name: snapshot.as_dict() for name, snapshot in self.snapshots.items()}


def _to_int(value: Any) -> int:
    if value is None or value == "":
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        # Decimal strings such as "4.0"
        return int(float(value))


def _to_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    # Cube returns "2024-03-09T00:00:00.000"
    return date.fromisoformat(str(value)[:10])


def _short_name(member: str) -> str:
    return member.split(".")[-1]


class MetricAggregator:
    """Issues the backend queries behind one ``MetricSnapshot``."""

    def __init__(self, backend: QueryBackend):
        self.backend = backend

    def compute_family(
        self,
        family: MetricFamily,
        scope: SegmentScope,
        window: DateWindow,
        platform: Optional[str] = None,
    ) -> MetricSnapshot:
        filters = self.build_filters(scope, platform)
        current = (window.current_start.date(), window.current_end.date())
        previous = (window.previous_start.date(), window.previous_end.date())
        full_span = (window.previous_start.date(), window.current_end.date())

        total = self._total(family, current, filters)
        previous_total = self._total(family, previous, filters)

        rows = self.backend.load(QueryRequest(
            measure=family.measure,
            time_dimension=family.time_dimension,
            date_range=full_span,
            filters=filters,
            granularity=DAY,
            order_by=family.time_dimension,
            raw_result=True,
        ))
        day_key = f"{family.time_dimension}.{DAY}"
        timeseries = tuple(
            TimeseriesPoint(date=_to_date(row[day_key]), value=_to_int(row.get(family.measure)))
            for row in rows
            if row.get(day_key) is not None
        )

        breakdowns = {
            name: self._breakdown(family, dimensions, current, filters)
            for name, dimensions in family.breakdowns.items()
        }

        return MetricSnapshot(
            total=total,
            previous_period_total=previous_total,
            timeseries=timeseries,
            breakdowns=breakdowns,
        )

    @staticmethod
    def build_filters(scope: SegmentScope, platform: Optional[str]) -> Tuple[QueryFilter, ...]:
        filters: List[QueryFilter] = list(EXCLUSION_FILTERS)
        if platform and platform != ALL_PLATFORMS:
            filters.append(equals(ACTIVITY_PLATFORM, [platform]))
        filters.append(equals(SEGMENTS_ID, scope.leaf_segment_ids))
        return tuple(filters)

    def _total(
        self,
        family: MetricFamily,
        date_range: Tuple[date, date],
        filters: Sequence[QueryFilter],
    ) -> int:
        rows = self.backend.load(QueryRequest(
            measure=family.measure,
            time_dimension=family.time_dimension,
            date_range=date_range,
            filters=tuple(filters),
            order_by=family.time_dimension,
        ))
        if not rows:
            return 0
        return _to_int(rows[0].get(family.measure))

    def _breakdown(
        self,
        family: MetricFamily,
        dimensions: Tuple[str, ...],
        date_range: Tuple[date, date],
        filters: Sequence[QueryFilter],
    ) -> Tuple[Dict[str, Any], ...]:
        rows = self.backend.load(QueryRequest(
            measure=family.measure,
            time_dimension=family.time_dimension,
            date_range=date_range,
            filters=tuple(filters),
            extra_dimensions=dimensions,
            raw_result=True,
        ))
        result = []
        for row in rows:
            entry = {_short_name(dim): row.get(dim) for dim in dimensions}
            entry["count"] = _to_int(row.get(family.measure))
            result.append(entry)
        return tuple(result)
