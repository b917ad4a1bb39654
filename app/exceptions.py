"""
Errors raised by the dashboard cache refresh engine
"""
from typing import List, Optional, Tuple


class DashboardCacheError(Exception):
    """Base class for refresh engine errors"""


class UnsupportedTimeframeError(DashboardCacheError, ValueError):
    """A timeframe outside the fixed enumeration reached the calculator"""

    def __init__(self, timeframe):
        self.timeframe = timeframe
        super().__init__(f"Unsupported timeframe {timeframe!r}")


class QueryBackendError(DashboardCacheError):
    """Any failure answering an analytical query"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class MissingSegmentError(DashboardCacheError):
    """The requested segment does not exist for the tenant, or the tenant has none"""

    def __init__(self, tenant_id: str, segment_id: Optional[str] = None):
        self.tenant_id = tenant_id
        self.segment_id = segment_id
        if segment_id is None:
            message = f"No default segment found for tenant {tenant_id}"
        else:
            message = f"Segment {segment_id} not found for tenant {tenant_id}"
        super().__init__(message)


class PartialPassFailure(DashboardCacheError):
    """
    One or more slices failed during a refresh pass.

    ``failed_slices`` holds (slice_key, error) pairs. Slices written before or
    after the failures stay in the cache; the watermark is left untouched.
    """

    def __init__(self, segment_id: str, failed_slices: List[Tuple[object, Exception]]):
        self.segment_id = segment_id
        self.failed_slices = failed_slices
        keys = ", ".join(str(key) for key, _ in failed_slices)
        super().__init__(
            f"{len(failed_slices)} slice(s) failed for segment {segment_id}: {keys}"
        )
