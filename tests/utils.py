from datetime import date, datetime, timedelta, timezone
from typing import Callable, List, Optional

from app.connectors.base import QueryBackend, QueryRequest
from app.exceptions import QueryBackendError
from app.services.metric_aggregator import ACTIVITY_PLATFORM, SEGMENTS_ID
from app.services.step_executor import StepExecutor

NOW = datetime(2024, 3, 15, 12, 0, 0, tzinfo=timezone.utc)


def platform_of(request: QueryRequest) -> Optional[str]:
    for f in request.filters:
        if f.member == ACTIVITY_PLATFORM:
            return f.values[0]
    return None


def segments_of(request: QueryRequest) -> tuple:
    for f in request.filters:
        if f.member == SEGMENTS_ID:
            return f.values
    return ()


def days_between(start: date, end: date) -> int:
    return (end - start).days + 1


class FakeQueryBackend(QueryBackend):
    """
    Deterministic backend: totals are ``total``, every day in a timeseries
    range has value 1, breakdowns return one row with count 2.
    """

    def __init__(self, total: int = 5, fail_when: Optional[Callable[[QueryRequest], bool]] = None):
        self.total = total
        self.fail_when = fail_when
        self.requests: List[QueryRequest] = []

    def load(self, request: QueryRequest):
        self.requests.append(request)
        if self.fail_when and self.fail_when(request):
            raise QueryBackendError("backend rejected query", status_code=400)

        if request.granularity:
            day_key = f"{request.time_dimension}.{request.granularity}"
            start, end = request.date_range
            rows = []
            current = start
            while current <= end:
                rows.append({day_key: f"{current.isoformat()}T00:00:00.000", request.measure: "1"})
                current += timedelta(days=1)
            return rows

        if request.extra_dimensions:
            row = {dim: dim.split(".")[-1] + "-value" for dim in request.extra_dimensions}
            row[request.measure] = "2"
            return [row]

        return [{request.measure: str(self.total)}]


class RecordingStepExecutor(StepExecutor):
    def __init__(self):
        self.steps: List[str] = []

    def run(self, name, fn, *args, **kwargs):
        self.steps.append(name)
        return fn(*args, **kwargs)
