"""
Read-only query facade over the metric store.

Queries never mutate the store and never take the ingestion locks; they
work on the immutable series snapshot the store hands out.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from monitor_core.errors import InvalidDefinitionError
from monitor_core.metrics.models import Aggregation, DataPoint, Metric, TimeRange
from monitor_core.metrics.store import MetricStore

logger = logging.getLogger(__name__)


def _rate(points: Sequence[DataPoint]) -> float:
    total = sum(p.value for p in points)
    span = points[-1].timestamp - points[0].timestamp if len(points) > 1 else 0.0
    return total / span if span > 0 else total


_REDUCERS: Dict[Aggregation, Callable[[Sequence[DataPoint]], float]] = {
    Aggregation.AVG: lambda pts: sum(p.value for p in pts) / len(pts),
    Aggregation.SUM: lambda pts: sum(p.value for p in pts),
    Aggregation.MIN: lambda pts: min(p.value for p in pts),
    Aggregation.MAX: lambda pts: max(p.value for p in pts),
    Aggregation.COUNT: lambda pts: float(len(pts)),
    Aggregation.RATE: _rate,
}


def aggregate(
    points: Sequence[DataPoint],
    method: Union[Aggregation, str, None],
) -> Optional[float]:
    """
    Reduce points to one value.

    Unknown or missing methods fall back to the most recent value. Returns
    None for an empty sequence.
    """
    if not points:
        return None
    if method is not None and not isinstance(method, Aggregation):
        try:
            method = Aggregation(method)
        except ValueError:
            method = None
    reducer = _REDUCERS.get(method) if method is not None else None
    if reducer is None:
        return points[-1].value
    return reducer(points)


def select_window(points: Sequence[DataPoint], start: float, end: float) -> List[DataPoint]:
    """Points with start <= timestamp <= end."""
    return [p for p in points if start <= p.timestamp <= end]


def matches_filters(point: DataPoint, filters: Mapping[str, str]) -> bool:
    """Exact tag equality on every filter key."""
    if not filters:
        return True
    if not point.tags:
        return False
    return all(point.tags.get(key) == value for key, value in filters.items())


class MetricQueryService:
    """
    Filter, bound and optionally group a metric's series.

    Usage:
        service = MetricQueryService(store)
        points = service.query(
            "system_cpu_usage",
            TimeRange.last(3600),
            aggregation="avg",
            group_by=["host"],
        )
    """

    def __init__(self, store: MetricStore, clock: Callable[[], float] = time.time):
        self._store = store
        self._clock = clock
        self._query_count = 0

    def _resolve_metric(self, metric: str) -> Optional[Metric]:
        return self._store.find_by_name(metric) or self._store.get(metric)

    def query(
        self,
        metric_name: str,
        time_range: Any,
        aggregation: Union[Aggregation, str] = Aggregation.AVG,
        group_by: Optional[Sequence[str]] = None,
        filters: Optional[Mapping[str, str]] = None,
    ) -> List[DataPoint]:
        """
        Query a metric.

        With an empty ``group_by`` the raw matching points are returned
        unmodified. Otherwise one synthetic point per group is returned,
        timestamped at query time, carrying the grouping keys as tags and
        ``original_count`` in its metadata.
        """
        self._query_count += 1
        now = self._clock()
        group_by = list(group_by or [])
        filters = dict(filters or {})

        metric = self._resolve_metric(metric_name)
        if metric is None:
            logger.debug(f"[Query] Unknown metric {metric_name}")
            return []

        window = TimeRange.resolve(time_range, now=now)
        points = [
            p for p in select_window(self._store.snapshot(metric.id), window.start, window.end)
            if matches_filters(p, filters)
        ]

        if not group_by:
            return points

        try:
            method = aggregation if isinstance(aggregation, Aggregation) else Aggregation(aggregation)
        except ValueError:
            raise InvalidDefinitionError(f"Unsupported query aggregation {aggregation!r}") from None

        groups: "OrderedDict[Tuple[str, ...], List[DataPoint]]" = OrderedDict()
        for point in points:
            key = tuple(point.tags.get(tag, "unknown") for tag in group_by)
            groups.setdefault(key, []).append(point)

        results = []
        for key, group_points in groups.items():
            results.append(DataPoint(
                timestamp=now,
                value=aggregate(group_points, method),
                tags=dict(zip(group_by, key)),
                metadata={
                    "aggregation": method.value,
                    "group_by": list(group_by),
                    "original_count": len(group_points),
                },
            ))
        return results

    def get_stats(self) -> Dict[str, Any]:
        return {"queries_total": self._query_count}
