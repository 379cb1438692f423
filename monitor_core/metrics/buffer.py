"""
Per-metric ingestion buffer.

Producers append from any thread; the flush path drains. Each metric has
its own lock, held only for the list append or swap, so ``record`` never
waits on a flush, an insight pass or a health check.
"""

from __future__ import annotations

import threading
from typing import Any, Dict, List

from monitor_core.metrics.models import DataPoint


class MetricBuffer:
    """Unordered pending points, keyed by metric id."""

    def __init__(self):
        self._pending: Dict[str, List[DataPoint]] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        self._accepted = 0

    def register(self, metric_id: str) -> None:
        with self._registry_lock:
            if metric_id not in self._locks:
                self._locks[metric_id] = threading.Lock()
                self._pending[metric_id] = []

    def add(self, metric_id: str, point: DataPoint) -> int:
        """
        Append a point.

        Returns the metric's pending count after the append, or -1 when the
        metric was never registered.
        """
        lock = self._locks.get(metric_id)
        if lock is None:
            return -1
        with lock:
            pending = self._pending[metric_id]
            pending.append(point)
            self._accepted += 1
            return len(pending)

    def drain(self, metric_id: str) -> List[DataPoint]:
        """Take every pending point for a metric, leaving its buffer empty."""
        lock = self._locks.get(metric_id)
        if lock is None:
            return []
        with lock:
            points = self._pending[metric_id]
            self._pending[metric_id] = []
            return points

    def size(self, metric_id: str) -> int:
        return len(self._pending.get(metric_id, ()))

    def pending_metric_ids(self) -> List[str]:
        return [metric_id for metric_id, points in list(self._pending.items()) if points]

    def get_stats(self) -> Dict[str, Any]:
        sizes = {metric_id: len(points) for metric_id, points in list(self._pending.items())}
        return {
            "registered_metrics": len(self._locks),
            "pending_points": sum(sizes.values()),
            "accepted_total": self._accepted,
            "largest_buffer": max(sizes.values(), default=0),
        }
