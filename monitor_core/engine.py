"""
Monitoring engine.

Composition root: wires the metric collector, alert rule engine,
notification dispatcher, insight generator, health tracker and dashboard
registry together, and owns the three background loops.

    record() -> buffer -> flush loop -> store -> alert rules -> notifications
                                           |
                                           +-> insight loop
                                           +-> query / reports
    health loop -> probes -> system health

Each loop waits on a shared stop event with its interval as timeout, so
``stop()`` lets a tick in progress finish.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Union

from monitor_core import catalog
from monitor_core.alerting.conditions import ConditionEvaluator
from monitor_core.alerting.engine import AlertRuleEngine
from monitor_core.alerting.models import AlertRule, ConditionType, NotificationChannel
from monitor_core.alerting.notifications import NotificationDispatcher
from monitor_core.config import MonitorConfig
from monitor_core.dashboards import Dashboard, DashboardRegistry, ReportGenerator
from monitor_core.events import EventBus, EventType, InProcessEventBus
from monitor_core.health.models import SystemHealth
from monitor_core.health.probes import HealthProbe
from monitor_core.health.tracker import SystemHealthTracker
from monitor_core.insights.analysis import AnomalyDetector, TrendDetector
from monitor_core.insights.generator import InsightGenerator
from monitor_core.insights.models import Insight, InsightType
from monitor_core.insights.recommendations import RecommendationRule
from monitor_core.metrics.collector import MetricCollector
from monitor_core.metrics.models import Aggregation, DataPoint, Metric, MetricDefinition
from monitor_core.metrics.query import MetricQueryService
from monitor_core.metrics.store import InMemoryMetricStore, MergeResult, MetricStore
from monitor_core.utils.logging_config import LogContext

logger = logging.getLogger(__name__)


class MonitoringEngine:
    """
    Metrics and alerting engine.

    Usage:
        engine = MonitoringEngine(load_config())
        async with engine:
            engine.record_by_name("system_cpu_usage", 91.5, {"host": "web-1"})
            ...
            health = engine.get_system_health()
    """

    def __init__(
        self,
        config: Optional[MonitorConfig] = None,
        store: Optional[MetricStore] = None,
        events: Optional[EventBus] = None,
        clock: Callable[[], float] = time.time,
        default_probe: Optional[HealthProbe] = None,
        probes: Optional[Mapping[str, HealthProbe]] = None,
        trend_detector: Optional[TrendDetector] = None,
        anomaly_detector: Optional[AnomalyDetector] = None,
        recommendation_rules: Optional[Sequence[RecommendationRule]] = None,
        evaluators: Optional[Mapping[ConditionType, ConditionEvaluator]] = None,
    ):
        self.config = config or MonitorConfig()
        self.events = events or InProcessEventBus()
        self._clock = clock

        self.store = store if store is not None else InMemoryMetricStore()
        self.collector = MetricCollector(
            store=self.store,
            config=self.config.store,
            events=self.events,
            clock=clock,
            on_flush=self._on_flush,
        )
        self.queries = MetricQueryService(self.store, clock=clock)
        self.dispatcher = NotificationDispatcher(self.config.alerting)
        self.alerts = AlertRuleEngine(
            dispatcher=self.dispatcher,
            events=self.events,
            config=self.config.alerting,
            clock=clock,
            evaluators=evaluators,
        )
        self.insights = InsightGenerator(
            self.store,
            config=self.config.insights,
            events=self.events,
            clock=clock,
            trend_detector=trend_detector,
            anomaly_detector=anomaly_detector,
            recommendation_rules=recommendation_rules,
        )
        self.health = SystemHealthTracker(
            config=self.config.health,
            events=self.events,
            clock=clock,
            default_probe=default_probe,
        )
        self.dashboards = DashboardRegistry(events=self.events, clock=clock)
        self.reports = ReportGenerator(self.dashboards, self.queries, clock=clock)

        self._stop_event: Optional[asyncio.Event] = None
        self._loop_tasks: List[asyncio.Task] = []
        self._running = False
        self._started_at: Optional[float] = None

        if self.config.load_defaults:
            self._load_defaults()
        for name, probe in (probes or {}).items():
            self.health.set_probe(name, probe)

    def _load_defaults(self) -> None:
        for definition in catalog.default_metrics():
            self.collector.register(definition, metric_id=f"metric_{definition.name}")
        for dashboard_id, definition in catalog.default_dashboards().items():
            self.dashboards.create(dashboard_id, definition)
        for rule_id, definition in catalog.default_alert_rules().items():
            self.alerts.create_rule(rule_id, definition)
        for channel_id, definition in catalog.default_notification_channels(self.config.alerting).items():
            self.create_notification_channel(channel_id, definition)
        for component in catalog.default_components():
            self.health.add_component(
                component["name"],
                dependencies=component["dependencies"],
                score=component["score"],
                metrics=component["metrics"],
            )
        self.health.seed(**catalog.default_health_seed())
        logger.info(
            f"[Engine] Loaded defaults: {len(self.store.list())} metrics, "
            f"{len(self.alerts.list_rules())} rules, {len(self.dashboards)} dashboards"
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the flush, insight and health loops."""
        if self._running:
            return

        self._running = True
        self._started_at = time.time()
        self._stop_event = asyncio.Event()
        self.collector.bind_loop(asyncio.get_running_loop())

        self._loop_tasks = [
            asyncio.create_task(self._run_periodic(
                "flush", self.config.store.flush_interval_seconds, self.collector.flush_all
            )),
            asyncio.create_task(self._run_periodic(
                "insights", self.config.insights.interval_seconds, self.generate_insights_async
            )),
            asyncio.create_task(self._run_periodic(
                "health", self.config.health.check_interval_seconds, self.health.check_once
            )),
        ]
        logger.info("[Engine] Started")

    async def stop(self) -> None:
        """
        Stop the loops, flush what is buffered, wait for in-flight
        notifications and release transports.
        """
        if not self._running:
            return

        self._stop_event.set()
        await asyncio.gather(*self._loop_tasks, return_exceptions=True)
        self._loop_tasks = []

        if self.config.store.flush_on_stop:
            await self.collector.flush_all()
        await self.collector.drain(timeout=self.config.alerting.notification_timeout_seconds)

        self.alerts.cancel_pending()
        await self.dispatcher.close()
        await self.health.close()

        self.collector.bind_loop(None)
        self._running = False
        logger.info("[Engine] Stopped")

    async def __aenter__(self) -> "MonitoringEngine":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    async def _run_periodic(
        self,
        name: str,
        interval: float,
        tick: Callable[[], Awaitable[Any]],
    ) -> None:
        with LogContext(loop=name):
            while not self._stop_event.is_set():
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
                    break
                except asyncio.TimeoutError:
                    pass

                try:
                    await tick()
                except Exception as e:
                    logger.error(f"[Engine] {name} loop error: {e}")

    async def _on_flush(self, metric: Metric, now: float) -> None:
        try:
            self.alerts.evaluate(metric, self.store.snapshot(metric.id), now)
        except Exception as e:
            logger.error(f"[Alerts] Evaluation failed for {metric.name}: {e}")

    # =========================================================================
    # Ingestion
    # =========================================================================

    def record(self, metric_id: str, value: float, tags: Optional[Mapping[str, str]] = None) -> None:
        self.collector.record(metric_id, value, tags)

    def record_by_name(self, name: str, value: float, tags: Optional[Mapping[str, str]] = None) -> None:
        self.collector.record_by_name(name, value, tags)

    async def flush_metric(self, metric_id: str) -> MergeResult:
        return await self.collector.flush(metric_id)

    async def flush_all(self) -> List[MergeResult]:
        return await self.collector.flush_all()

    # =========================================================================
    # Registration
    # =========================================================================

    def register_metric(self, definition: Union[MetricDefinition, Mapping[str, Any]]) -> str:
        return self.collector.register(definition)

    def enable_metric(self, metric_id: str) -> Metric:
        return self.collector.set_enabled(metric_id, True)

    def disable_metric(self, metric_id: str) -> Metric:
        return self.collector.set_enabled(metric_id, False)

    def create_alert_rule(self, rule_id: str, definition: Union[AlertRule, Mapping[str, Any]]) -> AlertRule:
        return self.alerts.create_rule(rule_id, definition)

    def update_alert_rule(self, rule_id: str, **changes: Any) -> AlertRule:
        return self.alerts.update_rule(rule_id, **changes)

    def create_notification_channel(
        self,
        channel_id: str,
        definition: Union[NotificationChannel, Mapping[str, Any]],
    ) -> NotificationChannel:
        channel = self.dispatcher.create_channel(channel_id, definition)
        self.events.emit(
            EventType.NOTIFICATION_CHANNEL_CREATED,
            channel_id=channel_id,
            type=channel.type.value,
        )
        return channel

    def update_notification_channel(self, channel_id: str, **changes: Any) -> NotificationChannel:
        channel = self.dispatcher.update_channel(channel_id, **changes)
        self.events.emit(
            EventType.NOTIFICATION_CHANNEL_UPDATED,
            channel_id=channel_id,
            updates=sorted(changes),
        )
        return channel

    def get_notification_channel(self, channel_id: str) -> NotificationChannel:
        return self.dispatcher.get_channel(channel_id)

    def list_notification_channels(self) -> List[NotificationChannel]:
        return self.dispatcher.list_channels()

    def create_dashboard(self, dashboard_id: str, definition: Union[Dashboard, Mapping[str, Any]]) -> Dashboard:
        return self.dashboards.create(dashboard_id, definition)

    def update_dashboard(self, dashboard_id: str, **changes: Any) -> Dashboard:
        return self.dashboards.update(dashboard_id, **changes)

    def delete_dashboard(self, dashboard_id: str) -> Dashboard:
        return self.dashboards.delete(dashboard_id)

    def get_dashboard(self, dashboard_id: str) -> Dashboard:
        return self.dashboards.get(dashboard_id)

    def list_dashboards(self) -> List[Dashboard]:
        return self.dashboards.list()

    # =========================================================================
    # Query
    # =========================================================================

    def query(
        self,
        metric_name: str,
        time_range: Any,
        aggregation: Union[Aggregation, str] = Aggregation.AVG,
        group_by: Optional[Sequence[str]] = None,
        filters: Optional[Mapping[str, str]] = None,
    ) -> List[DataPoint]:
        return self.queries.query(metric_name, time_range, aggregation, group_by, filters)

    def get_metric(self, metric_id: str) -> Optional[Metric]:
        return self.store.get(metric_id)

    def get_metric_by_name(self, name: str) -> Optional[Metric]:
        return self.store.find_by_name(name)

    def list_metrics(self) -> List[Metric]:
        return self.store.list()

    def generate_report(self, dashboard_id: str, time_range: Any, format: str = "json") -> Dict[str, Any]:
        return self.reports.generate(dashboard_id, time_range, format)

    # =========================================================================
    # Health
    # =========================================================================

    def get_system_health(self) -> SystemHealth:
        return self.health.get_system_health()

    async def check_health_now(self) -> SystemHealth:
        return await self.health.check_once()

    # =========================================================================
    # Insights
    # =========================================================================

    def get_all_insights(self) -> List[Insight]:
        return self.insights.get_all()

    def get_insights_by_type(self, insight_type: Union[InsightType, str]) -> List[Insight]:
        return self.insights.get_by_type(insight_type)

    def get_insight(self, insight_id: str) -> Insight:
        return self.insights.get(insight_id)

    def acknowledge_insight(self, insight_id: str, actor: str) -> Insight:
        return self.insights.acknowledge(insight_id, actor)

    def generate_insights_now(self) -> List[Insight]:
        return self.insights.generate()

    async def generate_insights_async(self) -> List[Insight]:
        return self.insights.generate()

    # =========================================================================
    # Alerts
    # =========================================================================

    def get_alert_rule(self, rule_id: str) -> AlertRule:
        return self.alerts.get_rule(rule_id)

    def list_alert_rules(self) -> List[AlertRule]:
        return self.alerts.list_rules()

    def get_active_alert_rules(self) -> List[AlertRule]:
        return self.alerts.active_rules()

    def mute_alert_rule(self, rule_id: str, duration_seconds: Optional[float] = None) -> AlertRule:
        return self.alerts.mute(rule_id, duration_seconds)

    def unmute_alert_rule(self, rule_id: str) -> AlertRule:
        return self.alerts.unmute(rule_id)

    # =========================================================================
    # Stats
    # =========================================================================

    def get_stats(self) -> Dict[str, Any]:
        uptime = time.time() - self._started_at if self._started_at else 0.0
        return {
            "running": self._running,
            "uptime_seconds": uptime,
            "metrics": self.collector.get_stats(),
            "queries": self.queries.get_stats(),
            "alerts": self.alerts.get_stats(),
            "notifications": self.dispatcher.get_stats(),
            "insights": self.insights.get_stats(),
            "health": self.health.get_stats(),
            "dashboards": len(self.dashboards),
            "events": self.events.get_stats() if hasattr(self.events, "get_stats") else {},
        }


@asynccontextmanager
async def monitoring_engine(config: Optional[MonitorConfig] = None, **kwargs: Any):
    """Context manager for engine lifecycle."""
    engine = MonitoringEngine(config, **kwargs)
    await engine.start()
    try:
        yield engine
    finally:
        await engine.stop()
