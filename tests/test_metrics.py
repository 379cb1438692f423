"""
Tests for the metric catalog, buffer, store and collector.

Covers:
- Definition validation and id assignment
- Silent no-op recording for unknown and disabled metrics
- Flush ordering, retention and statistics
- Size-triggered flushes scheduled on the bound loop
- Flush callbacks only when new points arrive
"""

import asyncio
import threading
from unittest.mock import AsyncMock

import pytest

from conftest import make_points
from monitor_core.errors import InvalidDefinitionError, MetricNotFoundError
from monitor_core.events import EventType
from monitor_core.config import StoreConfig
from monitor_core.metrics import (
    Aggregation,
    DataPoint,
    InMemoryMetricStore,
    Metric,
    MetricBuffer,
    MetricCollector,
    MetricDefinition,
    MetricType,
    TimeRange,
)


@pytest.fixture
def collector(store, clock, bus):
    return MetricCollector(store=store, config=StoreConfig(flush_batch_size=100), events=bus, clock=clock)


# ============================================================================
# MODELS
# ============================================================================

class TestMetricDefinition:
    def test_enum_strings_are_parsed(self):
        definition = MetricDefinition(name="queue_depth", type="counter", aggregation="sum")
        assert definition.type == MetricType.COUNTER
        assert definition.aggregation == Aggregation.SUM

    def test_invalid_enum(self):
        with pytest.raises(InvalidDefinitionError):
            MetricDefinition(name="queue_depth", type="sparkline")

    def test_retention_must_be_positive(self):
        with pytest.raises(InvalidDefinitionError):
            MetricDefinition(name="queue_depth", retention_seconds=0)

    def test_name_required(self):
        with pytest.raises(InvalidDefinitionError):
            MetricDefinition(name="")

    def test_from_dict_retention_alias(self):
        definition = MetricDefinition.from_dict({"name": "x", "retention": 60, "color": "red"})
        assert definition.retention_seconds == 60


class TestTimeRange:
    def test_relative_string(self):
        window = TimeRange.resolve("1h", now=10_000.0)
        assert window.start == 10_000.0 - 3600
        assert window.end == 10_000.0

    def test_mapping(self):
        window = TimeRange.resolve({"from": "5m", "to": "now"}, now=1000.0)
        assert (window.start, window.end) == (700.0, 1000.0)

    def test_pair_of_numbers(self):
        assert TimeRange.resolve((1, 2)) == TimeRange(1.0, 2.0)

    def test_contains_is_inclusive(self):
        window = TimeRange(10.0, 20.0)
        assert window.contains(10.0)
        assert window.contains(20.0)
        assert not window.contains(20.1)

    def test_unrecognized(self):
        with pytest.raises(InvalidDefinitionError):
            TimeRange.resolve("yesterday-ish")


# ============================================================================
# BUFFER / STORE
# ============================================================================

class TestMetricBuffer:
    def test_unregistered_metric_rejected(self):
        buffer = MetricBuffer()
        assert buffer.add("missing", DataPoint(0.0, 1.0)) == -1

    def test_drain_empties(self):
        buffer = MetricBuffer()
        buffer.register("m")
        buffer.add("m", DataPoint(0.0, 1.0))
        buffer.add("m", DataPoint(1.0, 2.0))
        assert buffer.pending_metric_ids() == ["m"]
        assert len(buffer.drain("m")) == 2
        assert buffer.size("m") == 0

    def test_concurrent_producers(self):
        buffer = MetricBuffer()
        buffer.register("m")

        def produce():
            for i in range(500):
                buffer.add("m", DataPoint(float(i), 1.0))

        threads = [threading.Thread(target=produce) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert buffer.size("m") == 2000
        assert buffer.get_stats()["accepted_total"] == 2000


class TestInMemoryMetricStore:
    def _metric(self, retention=100):
        definition = MetricDefinition(name="latency", retention_seconds=retention)
        return Metric.from_definition("metric_latency", definition, now=0.0)

    def test_merge_sorts_by_timestamp(self):
        store = InMemoryMetricStore()
        store.add(self._metric())
        points = [DataPoint(3.0, 3.0), DataPoint(1.0, 1.0), DataPoint(2.0, 2.0)]

        result = store.merge("metric_latency", points, now=5.0)

        assert [p.timestamp for p in store.snapshot("metric_latency")] == [1.0, 2.0, 3.0]
        assert result.added == 3
        assert result.total == 3

    def test_retention_prunes_old_points(self):
        store = InMemoryMetricStore()
        store.add(self._metric(retention=10))
        store.merge("metric_latency", make_points(range(5), start=0.0, step=5.0), now=20.0)

        # cutoff 10.0: keep timestamps 10, 15, 20
        assert [p.timestamp for p in store.snapshot("metric_latency")] == [10.0, 15.0, 20.0]

        result = store.prune("metric_latency", now=30.0)
        assert result.pruned == 2
        assert [p.timestamp for p in store.snapshot("metric_latency")] == [20.0]

    def test_snapshot_is_stable_across_writes(self):
        store = InMemoryMetricStore()
        store.add(self._metric())
        store.merge("metric_latency", [DataPoint(1.0, 1.0)], now=1.0)
        before = store.snapshot("metric_latency")
        store.merge("metric_latency", [DataPoint(2.0, 2.0)], now=2.0)
        assert len(before) == 1
        assert len(store.snapshot("metric_latency")) == 2

    def test_find_by_name_first_wins(self):
        store = InMemoryMetricStore()
        first = self._metric()
        second = Metric.from_definition("metric_latency_2", MetricDefinition(name="latency"), now=0.0)
        store.add(first)
        store.add(second)
        assert store.find_by_name("latency") is first
        assert store.snapshot("unknown") == ()


# ============================================================================
# COLLECTOR
# ============================================================================

class TestRegistration:
    def test_register_assigns_id_and_emits(self, collector, bus):
        metric_id = collector.register({"name": "queue_depth", "type": "gauge"})

        assert metric_id == "metric_queue_depth"
        assert collector.get(metric_id).name == "queue_depth"
        events = bus.recent(EventType.METRIC_REGISTERED)
        assert events[-1].payload["metric_id"] == metric_id

    def test_duplicate_name_gets_unique_id(self, collector):
        first = collector.register(MetricDefinition(name="queue_depth"))
        second = collector.register(MetricDefinition(name="queue_depth"))
        assert first != second
        assert second.startswith("metric_queue_depth_")

    def test_explicit_duplicate_id_rejected(self, collector):
        collector.register(MetricDefinition(name="a"), metric_id="m1")
        with pytest.raises(InvalidDefinitionError):
            collector.register(MetricDefinition(name="b"), metric_id="m1")

    def test_unknown_metric_lookup_raises(self, collector):
        with pytest.raises(MetricNotFoundError):
            collector.get("nope")
        with pytest.raises(KeyError):
            collector.set_enabled("nope", False)

    def test_retention_defaults_from_store_config(self, store, clock, bus):
        collector = MetricCollector(
            store=store, config=StoreConfig(default_retention_seconds=120), events=bus, clock=clock
        )
        implicit = collector.register(MetricDefinition(name="queue_depth"))
        from_dict = collector.register({"name": "latency"})
        explicit = collector.register(MetricDefinition(name="errors", retention_seconds=30))

        assert store.get(implicit).retention_seconds == 120
        assert store.get(from_dict).retention_seconds == 120
        assert store.get(explicit).retention_seconds == 30

    def test_empty_store_is_used(self, clock, bus):
        store = InMemoryMetricStore()
        collector = MetricCollector(store=store, events=bus, clock=clock)
        metric_id = collector.register(MetricDefinition(name="queue_depth"))
        assert collector.store is store
        assert store.get(metric_id) is not None


class TestRecording:
    def test_unknown_metric_is_silent_noop(self, collector, bus):
        collector.record("does-not-exist", 1.0)
        collector.record_by_name("does-not-exist", 1.0)
        assert bus.recent(EventType.METRIC_RECORDED) == []

    def test_disabled_metric_is_silent_noop(self, collector):
        metric_id = collector.register(MetricDefinition(name="queue_depth"))
        collector.set_enabled(metric_id, False)
        collector.record(metric_id, 5.0)
        assert collector.pending(metric_id) == 0

    def test_non_numeric_value_is_ignored(self, collector, bus):
        metric_id = collector.register(MetricDefinition(name="queue_depth"))

        collector.record(metric_id, "not-a-number")
        collector.record(metric_id, None)
        collector.record(metric_id, "12.5")

        assert collector.pending(metric_id) == 1
        assert [e.payload["value"] for e in bus.recent(EventType.METRIC_RECORDED)] == [12.5]

    def test_record_buffers_with_clock_time(self, collector, clock, bus):
        metric_id = collector.register(MetricDefinition(name="queue_depth"))
        collector.record(metric_id, 5, {"queue": "jobs"})

        assert collector.pending(metric_id) == 1
        event = bus.recent(EventType.METRIC_RECORDED)[-1]
        assert event.payload == {
            "metric_id": metric_id,
            "value": 5.0,
            "timestamp": clock.now,
            "tags": {"queue": "jobs"},
        }

    @pytest.mark.asyncio
    async def test_points_not_visible_before_flush(self, collector):
        metric_id = collector.register(MetricDefinition(name="queue_depth"))
        collector.record(metric_id, 1.0)
        assert collector.store.snapshot(metric_id) == ()

        await collector.flush(metric_id)
        assert len(collector.store.snapshot(metric_id)) == 1


class TestFlushing:
    @pytest.mark.asyncio
    async def test_flush_orders_and_stamps_source(self, collector, clock):
        metric_id = collector.register(MetricDefinition(name="queue_depth"))
        for value in (1, 2, 3):
            collector.record(metric_id, value)
            clock.advance(1)

        result = await collector.flush(metric_id)

        points = collector.store.snapshot(metric_id)
        assert result.added == 3
        assert [p.value for p in points] == [1.0, 2.0, 3.0]
        assert all(p.metadata["source"] == "monitor-core" for p in points)

    @pytest.mark.asyncio
    async def test_retention_holds_after_each_flush(self, collector, clock):
        metric_id = collector.register(MetricDefinition(name="queue_depth", retention_seconds=60))
        collector.record(metric_id, 1.0)
        await collector.flush(metric_id)

        clock.advance(90)
        collector.record(metric_id, 2.0)
        await collector.flush(metric_id)

        points = collector.store.snapshot(metric_id)
        assert [p.value for p in points] == [2.0]
        assert all(p.timestamp >= clock.now - 60 for p in points)

    @pytest.mark.asyncio
    async def test_flush_all_prunes_idle_metrics(self, collector, clock):
        idle = collector.register(MetricDefinition(name="idle", retention_seconds=10))
        collector.record(idle, 1.0)
        await collector.flush_all()

        clock.advance(30)
        results = await collector.flush_all()

        assert collector.store.snapshot(idle) == ()
        assert any(r.metric_id == idle and r.pruned == 1 for r in results)

    @pytest.mark.asyncio
    async def test_concurrent_flushes_neither_lose_nor_duplicate(self, collector, clock):
        metric_id = collector.register(MetricDefinition(name="queue_depth"))
        for value in range(50):
            collector.record(metric_id, value)
            clock.advance(1)

        results = await asyncio.gather(*(collector.flush(metric_id) for _ in range(5)))

        points = collector.store.snapshot(metric_id)
        assert sum(r.added for r in results) == 50
        assert [p.value for p in points] == [float(v) for v in range(50)]
        assert collector.pending(metric_id) == 0

    @pytest.mark.asyncio
    async def test_callback_only_when_points_arrived(self, collector):
        callback = AsyncMock()
        collector.set_flush_callback(callback)
        metric_id = collector.register(MetricDefinition(name="queue_depth"))

        await collector.flush(metric_id)
        callback.assert_not_awaited()

        collector.record(metric_id, 1.0)
        await collector.flush(metric_id)
        callback.assert_awaited_once()
        assert callback.await_args.args[0].id == metric_id

    @pytest.mark.asyncio
    async def test_flush_all_isolates_failures(self, collector):
        good = collector.register(MetricDefinition(name="good"))
        bad = collector.register(MetricDefinition(name="bad"))
        collector.record(good, 1.0)
        collector.record(bad, 1.0)

        async def on_flush(metric, now):
            if metric.id == bad:
                raise RuntimeError("evaluation exploded")

        collector.set_flush_callback(on_flush)
        results = await collector.flush_all()

        assert [r.metric_id for r in results] == [good]
        assert len(collector.store.snapshot(good)) == 1

    @pytest.mark.asyncio
    async def test_batch_size_triggers_flush(self, store, clock, bus):
        collector = MetricCollector(store=store, config=StoreConfig(flush_batch_size=3), events=bus, clock=clock)
        collector.bind_loop(asyncio.get_running_loop())
        metric_id = collector.register(MetricDefinition(name="queue_depth"))

        for value in range(3):
            collector.record(metric_id, value)

        await asyncio.sleep(0)
        await collector.drain(timeout=1.0)

        assert len(store.snapshot(metric_id)) == 3
        assert collector.pending(metric_id) == 0

    @pytest.mark.asyncio
    async def test_record_from_other_thread_schedules_flush(self, store, clock, bus):
        collector = MetricCollector(store=store, config=StoreConfig(flush_batch_size=5), events=bus, clock=clock)
        collector.bind_loop(asyncio.get_running_loop())
        metric_id = collector.register(MetricDefinition(name="queue_depth"))

        def produce():
            for value in range(5):
                collector.record(metric_id, value)

        thread = threading.Thread(target=produce)
        thread.start()
        thread.join()

        for _ in range(3):
            await asyncio.sleep(0)
        await collector.drain(timeout=1.0)

        assert len(store.snapshot(metric_id)) == 5

    def test_without_loop_batch_waits_for_periodic_flush(self, store, clock, bus):
        collector = MetricCollector(store=store, config=StoreConfig(flush_batch_size=1), events=bus, clock=clock)
        metric_id = collector.register(MetricDefinition(name="queue_depth"))
        collector.record(metric_id, 1.0)
        assert collector.pending(metric_id) == 1

    def test_stats(self, collector):
        metric_id = collector.register(MetricDefinition(name="queue_depth"))
        collector.record(metric_id, 1.0)
        stats = collector.get_stats()
        assert stats["metrics"] == 1
        assert stats["buffer"]["pending_points"] == 1
