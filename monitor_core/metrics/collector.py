"""
Metric ingestion and flushing.

``MetricCollector`` owns the path from ``record`` to the retained series:

    record() --append--> MetricBuffer --flush()--> MetricStore --> on_flush

``record`` is synchronous and may be called from any thread. Flushes run
on the engine's event loop, either from the periodic flush loop or
scheduled by ``record`` when a buffer fills up.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
import dataclasses
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

from monitor_core.config import StoreConfig
from monitor_core.errors import InvalidDefinitionError, MetricNotFoundError
from monitor_core.events import EventBus, EventType, InProcessEventBus
from monitor_core.metrics.buffer import MetricBuffer
from monitor_core.metrics.models import DataPoint, Metric, MetricDefinition
from monitor_core.metrics.store import InMemoryMetricStore, MergeResult, MetricStore
from monitor_core.utils.async_helpers import BackgroundTasks, gather_with_concurrency
from monitor_core.utils.logging_config import LogContext

logger = logging.getLogger(__name__)

POINT_SOURCE = "monitor-core"

FlushCallback = Callable[[Metric, float], Awaitable[None]]


class MetricCollector:
    """
    Metric registry, ingestion buffer and flush pipeline.

    Usage:
        collector = MetricCollector(store, config=StoreConfig())
        collector.bind_loop(asyncio.get_running_loop())
        metric_id = collector.register(MetricDefinition(name="queue_depth"))
        collector.record(metric_id, 42)
        await collector.flush(metric_id)
    """

    def __init__(
        self,
        store: Optional[MetricStore] = None,
        config: Optional[StoreConfig] = None,
        events: Optional[EventBus] = None,
        clock: Callable[[], float] = time.time,
        on_flush: Optional[FlushCallback] = None,
    ):
        self.store = store if store is not None else InMemoryMetricStore()
        self.config = config or StoreConfig()
        self.events = events or InProcessEventBus()
        self._clock = clock
        self._on_flush = on_flush

        self._buffer = MetricBuffer()
        self._flush_locks: Dict[str, asyncio.Lock] = {}
        self._scheduled: set = set()
        self._scheduled_lock = threading.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._tasks = BackgroundTasks("Flush")

        self._flush_count = 0
        self._points_flushed = 0
        self._points_pruned = 0

        for metric in self.store.list():
            self._buffer.register(metric.id)

    # =========================================================================
    # Registration
    # =========================================================================

    def set_flush_callback(self, callback: Optional[FlushCallback]) -> None:
        self._on_flush = callback

    def bind_loop(self, loop: Optional[asyncio.AbstractEventLoop]) -> None:
        """Event loop that size-triggered flushes are scheduled on."""
        self._loop = loop

    def register(
        self,
        definition: Union[MetricDefinition, Mapping[str, Any]],
        metric_id: Optional[str] = None,
    ) -> str:
        """Register a metric and return its id."""
        if not isinstance(definition, MetricDefinition):
            definition = MetricDefinition.from_dict(definition)
        if definition.retention_seconds is None:
            definition = dataclasses.replace(
                definition, retention_seconds=self.config.default_retention_seconds
            )

        if metric_id is None:
            metric_id = f"metric_{definition.name}"
            if self.store.get(metric_id) is not None:
                metric_id = f"{metric_id}_{uuid.uuid4().hex[:8]}"
        elif self.store.get(metric_id) is not None:
            raise InvalidDefinitionError(f"Metric id {metric_id} is already registered")

        metric = Metric.from_definition(metric_id, definition, now=self._clock())
        self.store.add(metric)
        self._buffer.register(metric_id)

        logger.info(f"[Metrics] Registered {definition.name} ({metric_id})")
        self.events.emit(
            EventType.METRIC_REGISTERED,
            metric_id=metric_id,
            name=metric.name,
            type=metric.type.value,
            category=metric.category.value,
        )
        return metric_id

    def get(self, metric_id: str) -> Metric:
        metric = self.store.get(metric_id)
        if metric is None:
            raise MetricNotFoundError(metric_id)
        return metric

    def set_enabled(self, metric_id: str, enabled: bool) -> Metric:
        metric = self.get(metric_id)
        metric.enabled = enabled
        logger.info(f"[Metrics] {'Enabled' if enabled else 'Disabled'} {metric.name}")
        return metric

    # =========================================================================
    # Ingestion
    # =========================================================================

    def record(
        self,
        metric_id: str,
        value: float,
        tags: Optional[Mapping[str, str]] = None,
    ) -> None:
        """
        Buffer one measurement.

        Unknown and disabled metrics and non-numeric values are ignored.
        Never blocks on a flush.
        """
        metric = self.store.get(metric_id)
        if metric is None or not metric.enabled:
            return

        try:
            number = float(value)
        except (TypeError, ValueError):
            logger.debug(f"[Metrics] Ignoring non-numeric value {value!r} for {metric.name}")
            return

        point = DataPoint(
            timestamp=self._clock(),
            value=number,
            tags=dict(tags) if tags else {},
            metadata={"source": POINT_SOURCE},
        )
        pending = self._buffer.add(metric_id, point)
        if pending < 0:
            return

        self.events.emit(
            EventType.METRIC_RECORDED,
            metric_id=metric_id,
            value=point.value,
            timestamp=point.timestamp,
            tags=dict(point.tags),
        )

        if pending >= self.config.flush_batch_size:
            self._schedule_flush(metric_id)

    def record_by_name(
        self,
        name: str,
        value: float,
        tags: Optional[Mapping[str, str]] = None,
    ) -> None:
        metric = self.store.find_by_name(name)
        if metric is not None:
            self.record(metric.id, value, tags)

    def pending(self, metric_id: str) -> int:
        return self._buffer.size(metric_id)

    def _schedule_flush(self, metric_id: str) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            # Periodic flush picks it up
            return

        with self._scheduled_lock:
            if metric_id in self._scheduled:
                return
            self._scheduled.add(metric_id)

        try:
            loop.call_soon_threadsafe(self._spawn_flush, metric_id)
        except RuntimeError:
            with self._scheduled_lock:
                self._scheduled.discard(metric_id)

    def _spawn_flush(self, metric_id: str) -> None:
        with self._scheduled_lock:
            self._scheduled.discard(metric_id)
        self._tasks.spawn(self.flush(metric_id))

    # =========================================================================
    # Flushing
    # =========================================================================

    def _lock_for(self, metric_id: str) -> asyncio.Lock:
        lock = self._flush_locks.get(metric_id)
        if lock is None:
            lock = self._flush_locks[metric_id] = asyncio.Lock()
        return lock

    async def flush(self, metric_id: str) -> MergeResult:
        """
        Merge a metric's buffer into its series and apply retention.

        Alert evaluation runs only when new points arrived.
        """
        metric = self.get(metric_id)

        async with self._lock_for(metric_id):
            with LogContext(metric_id=metric_id):
                points = self._buffer.drain(metric_id)
                now = self._clock()
                result = self.store.merge(metric_id, points, now)

                self._flush_count += 1
                self._points_flushed += result.added
                self._points_pruned += result.pruned

                if result.added or result.pruned:
                    logger.debug(
                        f"[Flush] {metric.name}: +{result.added} -{result.pruned} "
                        f"({result.total} retained)"
                    )

                if points and self._on_flush is not None:
                    await self._on_flush(metric, now)

        return result

    async def flush_all(self) -> List[MergeResult]:
        """
        Flush every registered metric.

        Metrics flush concurrently; a failure is logged and skipped.
        """
        metric_ids = [metric.id for metric in self.store.list()]
        results = await gather_with_concurrency(
            [self.flush(metric_id) for metric_id in metric_ids],
            max_concurrent=max(1, len(metric_ids)),
            return_exceptions=True,
        )

        merged = []
        for metric_id, result in zip(metric_ids, results):
            if isinstance(result, Exception):
                logger.error(f"[Flush] Failed to flush {metric_id}: {result}")
            else:
                merged.append(result)
        return merged

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for size-triggered flushes still in flight."""
        await self._tasks.drain(timeout=timeout)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "metrics": len(self.store.list()),
            "flushes": self._flush_count,
            "points_flushed": self._points_flushed,
            "points_pruned": self._points_pruned,
            "buffer": self._buffer.get_stats(),
            "scheduled_flushes": self._tasks.get_stats(),
        }
