"""
Retained metric series.

``MetricStore`` is the seam between the engine and whatever holds the
series. The alert, insight and query code only talk to this interface, so
an in-memory map and a real time-series backend are interchangeable.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from monitor_core.metrics.models import DataPoint, Metric

logger = logging.getLogger(__name__)


@dataclass
class MergeResult:
    """Outcome of merging a batch into a series."""
    metric_id: str
    added: int
    pruned: int
    total: int


class MetricStore(ABC):
    """Storage interface for metrics and their retained series."""

    @abstractmethod
    def add(self, metric: Metric) -> None:
        """Register a metric."""

    @abstractmethod
    def get(self, metric_id: str) -> Optional[Metric]:
        """Look up a metric by id."""

    @abstractmethod
    def find_by_name(self, name: str) -> Optional[Metric]:
        """Look up a metric by name (first registered wins)."""

    @abstractmethod
    def list(self) -> List[Metric]:
        """All metrics in registration order."""

    @abstractmethod
    def merge(self, metric_id: str, points: Iterable[DataPoint], now: float) -> MergeResult:
        """
        Add points to a series, sort ascending by timestamp and drop
        everything older than the metric's retention.
        """

    @abstractmethod
    def snapshot(self, metric_id: str) -> Tuple[DataPoint, ...]:
        """A consistent, immutable copy of a metric's series."""

    def prune(self, metric_id: str, now: float) -> MergeResult:
        """Apply retention without adding points."""
        return self.merge(metric_id, (), now)


class InMemoryMetricStore(MetricStore):
    """
    Process-memory store.

    Every write builds a new tuple and swaps it in, so readers holding the
    previous series never observe a half-updated one.
    """

    def __init__(self):
        self._metrics: Dict[str, Metric] = {}
        self._by_name: Dict[str, str] = {}

    def add(self, metric: Metric) -> None:
        self._metrics[metric.id] = metric
        self._by_name.setdefault(metric.name, metric.id)

    def get(self, metric_id: str) -> Optional[Metric]:
        return self._metrics.get(metric_id)

    def find_by_name(self, name: str) -> Optional[Metric]:
        metric_id = self._by_name.get(name)
        return self._metrics.get(metric_id) if metric_id else None

    def list(self) -> List[Metric]:
        return list(self._metrics.values())

    def merge(self, metric_id: str, points: Iterable[DataPoint], now: float) -> MergeResult:
        metric = self._metrics[metric_id]
        incoming = list(points)
        cutoff = now - metric.retention_seconds

        combined = list(metric.data_points) + incoming
        # sorted() is stable: equal timestamps keep arrival order
        combined.sort(key=lambda p: p.timestamp)
        retained = tuple(p for p in combined if p.timestamp >= cutoff)

        metric.data_points = retained
        if incoming:
            metric.last_updated = now

        return MergeResult(
            metric_id=metric_id,
            added=len(incoming),
            pruned=len(combined) - len(retained),
            total=len(retained),
        )

    def snapshot(self, metric_id: str) -> Tuple[DataPoint, ...]:
        metric = self._metrics.get(metric_id)
        return metric.data_points if metric else ()

    def __len__(self) -> int:
        return len(self._metrics)
