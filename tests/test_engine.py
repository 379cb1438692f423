"""
Tests for the monitoring engine.

Covers:
- Default catalog loading
- record -> flush -> alert evaluation end to end
- Start / stop lifecycle and the periodic loops
- Facade passthroughs for insights, health, channels and reports
"""

import asyncio

import pytest

from conftest import FixedProbe
from monitor_core.engine import MonitoringEngine, monitoring_engine
from monitor_core.errors import MetricNotFoundError
from monitor_core.events import EventType
from monitor_core.health import HealthStatus
from monitor_core.metrics import InMemoryMetricStore


# ============================================================================
# DEFAULTS
# ============================================================================

class TestDefaults:
    def test_default_catalog_loaded(self, default_engine):
        assert len(default_engine.list_metrics()) == 6
        assert {r.id for r in default_engine.list_alert_rules()} == {"high-cpu", "high-memory", "high-error-rate"}
        assert {d.id for d in default_engine.list_dashboards()} == {
            "system-overview", "app-performance", "business-metrics",
        }
        assert len(default_engine.get_system_health().components) == 3

    def test_default_channels_disabled_without_destination(self, default_engine):
        channels = default_engine.list_notification_channels()
        assert len(channels) == 3
        assert not any(c.enabled for c in channels)

    def test_components_share_one_store(self, default_engine):
        assert default_engine.collector.store is default_engine.store
        assert len(default_engine.store) == 6
        assert default_engine.get_metric_by_name("system_cpu_usage") is not None

    def test_injected_empty_store_is_used(self, config, clock, bus):
        store = InMemoryMetricStore()
        engine = MonitoringEngine(config, store=store, events=bus, clock=clock, default_probe=FixedProbe(100.0))
        metric_id = engine.register_metric({"name": "queue_depth"})
        assert engine.store is store
        assert engine.collector.store is store
        assert store.get(metric_id) is not None

    def test_default_metric_ids(self, default_engine):
        metric = default_engine.get_metric("metric_system_cpu_usage")
        assert metric.name == "system_cpu_usage"
        assert default_engine.get_metric_by_name("business_revenue").retention_seconds == 604800

    def test_default_usage_metrics_are_percentages(self, default_engine):
        for name in ("system_cpu_usage", "system_memory_usage"):
            assert default_engine.get_metric_by_name(name).unit == "%"

    def test_health_seeded(self, default_engine):
        health = default_engine.get_system_health()
        assert health.sla.latency.current == 150.0
        assert health.trends["30d"] == 99.2

    def test_no_defaults(self, engine):
        assert engine.list_metrics() == []
        assert engine.list_alert_rules() == []
        assert engine.list_notification_channels() == []


# ============================================================================
# INGESTION AND ALERTING
# ============================================================================

class TestPipeline:
    @pytest.mark.asyncio
    async def test_record_flush_fires_rule_once_per_slice(self, default_engine, clock, bus):
        for _ in range(3):
            default_engine.record_by_name("system_cpu_usage", 91.5, {"host": "web-1"})
        await default_engine.flush_metric("metric_system_cpu_usage")

        rule = default_engine.get_alert_rule("high-cpu")
        assert rule.trigger_count == 1

        clock.advance(30)
        default_engine.record_by_name("system_cpu_usage", 92.0)
        await default_engine.flush_metric("metric_system_cpu_usage")
        assert rule.trigger_count == 1

        clock.advance(30)
        default_engine.record_by_name("system_cpu_usage", 93.0)
        await default_engine.flush_metric("metric_system_cpu_usage")
        assert rule.trigger_count == 2

        triggered = bus.recent(EventType.ALERT_TRIGGERED)
        assert [e.payload["rule_id"] for e in triggered] == ["high-cpu", "high-cpu"]

    @pytest.mark.asyncio
    async def test_below_threshold_does_not_fire(self, default_engine):
        default_engine.record_by_name("system_cpu_usage", 40.0)
        await default_engine.flush_all()
        assert default_engine.get_alert_rule("high-cpu").trigger_count == 0
        assert len(default_engine.query("system_cpu_usage", "1h")) == 1

    @pytest.mark.asyncio
    async def test_muted_rule_does_not_fire(self, default_engine):
        default_engine.mute_alert_rule("high-cpu")
        default_engine.record_by_name("system_cpu_usage", 99.0)
        await default_engine.flush_all()
        assert default_engine.get_alert_rule("high-cpu").trigger_count == 0
        assert all(r.id != "high-cpu" for r in default_engine.get_active_alert_rules())

    @pytest.mark.asyncio
    async def test_disabled_metric_is_ignored(self, engine):
        metric_id = engine.register_metric({"name": "queue_depth"})
        engine.disable_metric(metric_id)
        engine.record(metric_id, 5)
        await engine.flush_all()
        assert engine.query("queue_depth", "1h") == []

        engine.enable_metric(metric_id)
        engine.record(metric_id, 5)
        await engine.flush_all()
        assert len(engine.query("queue_depth", "1h")) == 1

    def test_unknown_metric_toggle(self, engine):
        with pytest.raises(MetricNotFoundError):
            engine.enable_metric("missing")

    def test_duplicate_name_gets_suffixed_id(self, engine):
        first = engine.register_metric({"name": "queue_depth"})
        second = engine.register_metric({"name": "queue_depth"})
        assert first == "metric_queue_depth"
        assert second.startswith("metric_queue_depth_")


# ============================================================================
# LIFECYCLE
# ============================================================================

class TestLifecycle:
    @pytest.mark.asyncio
    async def test_stop_flushes_buffered_points(self, engine):
        metric_id = engine.register_metric({"name": "queue_depth"})

        async with engine:
            assert engine.running
            engine.record(metric_id, 1)
            engine.record(metric_id, 2)
            assert engine.query("queue_depth", "1h") == []

        assert not engine.running
        assert [p.value for p in engine.query("queue_depth", "1h")] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, engine):
        await engine.start()
        tasks = list(engine._loop_tasks)
        await engine.start()
        assert engine._loop_tasks == tasks
        await engine.stop()
        await engine.stop()
        assert engine._loop_tasks == []

    @pytest.mark.asyncio
    async def test_periodic_flush_loop(self, config, clock, bus):
        config.store.flush_interval_seconds = 0.01
        engine = MonitoringEngine(config, events=bus, clock=clock, default_probe=FixedProbe(100.0))
        metric_id = engine.register_metric({"name": "queue_depth"})

        async with engine:
            engine.record(metric_id, 7)
            for _ in range(50):
                await asyncio.sleep(0.01)
                if engine.query("queue_depth", "1h"):
                    break
            assert [p.value for p in engine.query("queue_depth", "1h")] == [7.0]

    @pytest.mark.asyncio
    async def test_batch_size_triggers_flush(self, config, clock, bus):
        config.store.flush_batch_size = 2
        engine = MonitoringEngine(config, events=bus, clock=clock, default_probe=FixedProbe(100.0))
        metric_id = engine.register_metric({"name": "queue_depth"})

        async with engine:
            engine.record(metric_id, 1)
            engine.record(metric_id, 2)
            for _ in range(50):
                await asyncio.sleep(0.01)
                if engine.query("queue_depth", "1h"):
                    break
            assert len(engine.query("queue_depth", "1h")) == 2

    @pytest.mark.asyncio
    async def test_health_loop_ticks(self, config, clock, bus):
        config.health.check_interval_seconds = 0.01
        probe = FixedProbe(60.0)
        async with monitoring_engine(config, events=bus, clock=clock, probes={"API": probe}) as engine:
            engine.health.add_component("API")
            for _ in range(50):
                await asyncio.sleep(0.01)
                if probe.calls:
                    break
            assert engine.get_system_health().overall == HealthStatus.CRITICAL
        assert probe.closed is True


# ============================================================================
# FACADE
# ============================================================================

class TestFacade:
    @pytest.mark.asyncio
    async def test_check_health_now(self, default_engine):
        health = await default_engine.check_health_now()
        assert health.overall == HealthStatus.HEALTHY
        assert health.score == 100.0

    @pytest.mark.asyncio
    async def test_insights_and_acknowledge(self, engine, bus, clock):
        metric_id = engine.register_metric({"name": "system_load"})
        for i in range(12):
            engine.record(metric_id, float(i))
            clock.advance(1)
        await engine.flush_all()

        created = engine.generate_insights_now()
        trend = engine.get_insights_by_type("trend")[0]
        assert trend in created

        acknowledged = engine.acknowledge_insight(trend.id, "alice")
        assert acknowledged.acknowledged_by == "alice"
        assert engine.get_insight(trend.id).acknowledged is True
        assert bus.recent(EventType.INSIGHT_ACKNOWLEDGED)

    def test_channel_events(self, engine, bus):
        engine.create_notification_channel("ops", {"type": "webhook", "config": {"url": "https://x"}})
        engine.update_notification_channel("ops", enabled=False)

        assert bus.recent(EventType.NOTIFICATION_CHANNEL_CREATED)[-1].payload["type"] == "webhook"
        assert bus.recent(EventType.NOTIFICATION_CHANNEL_UPDATED)[-1].payload["updates"] == ["enabled"]
        assert engine.get_notification_channel("ops").enabled is False

    @pytest.mark.asyncio
    async def test_report_for_default_dashboard(self, default_engine):
        default_engine.record_by_name("business_revenue", 120.0, {"currency": "usd"})
        await default_engine.flush_all()

        report = default_engine.generate_report("business-metrics", "24h")

        data = report["widgets"][0]["queries"][0]["data"]
        assert [p["value"] for p in data] == [120.0]

    def test_get_stats(self, default_engine):
        stats = default_engine.get_stats()
        assert stats["running"] is False
        assert stats["dashboards"] == 3
        assert stats["alerts"]["rules"] == 3
        assert stats["health"]["components"] == 3
