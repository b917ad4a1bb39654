"""
Query Backend Contract

The refresh engine talks to the analytical backend only through this module:
a ``QueryRequest`` describes one measure over one time dimension, and a
``QueryBackend`` answers it with a list of row dicts.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Tuple


@dataclass(frozen=True)
class QueryFilter:
    member: str
    values: Tuple[str, ...]
    operator: str = "equals"

    def to_payload(self) -> Dict[str, Any]:
        return {
            "member": self.member,
            "operator": self.operator,
            "values": list(self.values),
        }


@dataclass(frozen=True)
class QueryRequest:
    """
    One analytical query.

    ``date_range`` is inclusive on both ends. With ``granularity`` or
    ``raw_result`` set the caller wants every returned row, otherwise only
    the single aggregate row matters.
    """

    measure: str
    time_dimension: str
    date_range: Tuple[date, date]
    filters: Tuple[QueryFilter, ...] = ()
    granularity: Optional[str] = None
    order_by: Optional[str] = None
    extra_dimensions: Tuple[str, ...] = ()
    raw_result: bool = False

    def to_payload(self) -> Dict[str, Any]:
        """Render as a Cube.js ``/load`` query body."""
        time_dimension: Dict[str, Any] = {
            "dimension": self.time_dimension,
            "dateRange": [d.isoformat() for d in self.date_range],
        }
        if self.granularity:
            time_dimension["granularity"] = self.granularity

        payload: Dict[str, Any] = {
            "measures": [self.measure],
            "timeDimensions": [time_dimension],
            "filters": [f.to_payload() for f in self.filters],
        }
        if self.extra_dimensions:
            payload["dimensions"] = list(self.extra_dimensions)
        if self.order_by:
            payload["order"] = {self.order_by: "asc"}
        return payload


class QueryBackend(ABC):
    """Answers ``QueryRequest``s. Failures raise ``QueryBackendError``."""

    @abstractmethod
    def load(self, request: QueryRequest) -> List[Dict[str, Any]]:
        """
        Run one query.

        Returns:
            Result rows in backend order (empty list when nothing matches)
        """
        pass


def equals(member: str, values: Sequence[str]) -> QueryFilter:
    """Shorthand for an ``equals`` filter."""
    return QueryFilter(member=member, values=tuple(values))
