"""
Periodic insight generation.

Each pass takes a snapshot of every metric's series, then runs four
independent analyses over it: trends, anomalies, pairwise correlations
and rule-based recommendations. A failure while analysing one metric (or
pair) is logged and the pass moves on.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections import OrderedDict
from itertools import combinations
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from monitor_core.config import InsightConfig
from monitor_core.errors import InsightNotFoundError
from monitor_core.events import EventBus, EventType, InProcessEventBus
from monitor_core.insights.analysis import AnomalyDetector, TrendDetector, TrendResult, pearson
from monitor_core.insights.models import Impact, Insight, InsightSeverity, InsightType
from monitor_core.insights.recommendations import DEFAULT_RECOMMENDATION_RULES, RecommendationRule
from monitor_core.metrics.models import Metric, MetricCategory, parse_enum
from monitor_core.metrics.store import MetricStore
from monitor_core.utils.logging_config import LogContext, log_duration

logger = logging.getLogger(__name__)

ANOMALY_ACTIONS = [
    "Investigate recent changes or deployments",
    "Check for external factors affecting the system",
    "Review logs for error patterns",
]

CORRELATION_ACTIONS = [
    "Consider this correlation when making capacity planning decisions",
    "Monitor both metrics together for better insights",
    "Investigate the underlying relationship between these metrics",
]


def trend_recommendations(metric: Metric, trend: TrendResult) -> List[str]:
    if trend.direction == "increasing" and metric.category == MetricCategory.SYSTEM:
        return [
            "Consider scaling up resources",
            "Investigate potential performance bottlenecks",
        ]
    if trend.direction == "decreasing" and metric.category == MetricCategory.BUSINESS:
        return [
            "Review recent changes that might impact business metrics",
            "Consider promotional campaigns to boost performance",
        ]
    return []


def _insight_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class InsightGenerator:
    """
    Derives insights from retained metric series.

    Usage:
        generator = InsightGenerator(store, config=InsightConfig())
        new = generator.generate()
        generator.acknowledge(new[0].id, "oncall@example.com")
    """

    def __init__(
        self,
        store: MetricStore,
        config: Optional[InsightConfig] = None,
        events: Optional[EventBus] = None,
        clock: Callable[[], float] = time.time,
        trend_detector: Optional[TrendDetector] = None,
        anomaly_detector: Optional[AnomalyDetector] = None,
        recommendation_rules: Optional[Sequence[RecommendationRule]] = None,
    ):
        self.store = store
        self.config = config or InsightConfig()
        self.events = events or InProcessEventBus()
        self._clock = clock

        self.trend_detector = trend_detector or TrendDetector(
            min_points=self.config.trend_min_points,
            slope_threshold=self.config.trend_slope_threshold,
        )
        self.anomaly_detector = anomaly_detector or AnomalyDetector(
            min_points=self.config.anomaly_min_points,
            history_window=self.config.anomaly_history_window,
            recent_window=self.config.anomaly_recent_window,
            multiplier=self.config.anomaly_stddev_multiplier,
        )
        self.recommendation_rules = list(
            DEFAULT_RECOMMENDATION_RULES if recommendation_rules is None else recommendation_rules
        )

        self._insights: "OrderedDict[str, Insight]" = OrderedDict()
        self._passes = 0
        self._errors = 0

    # =========================================================================
    # Generation
    # =========================================================================

    @log_duration(logger, message="[Insights] Generation pass")
    def generate(self) -> List[Insight]:
        """Run all four analyses once. Returns the insights created."""
        self._passes += 1
        now = self._clock()
        series: List[Tuple[Metric, List[float]]] = [
            (metric, [p.value for p in self.store.snapshot(metric.id)])
            for metric in self.store.list()
        ]

        created: List[Insight] = []
        created.extend(self._trend_pass(series, now))
        created.extend(self._anomaly_pass(series, now))
        created.extend(self._correlation_pass(series, now))
        created.extend(self._recommendation_pass(series, now))

        if created:
            logger.info(f"[Insights] Generated {len(created)} insight(s)")
        return created

    def _record(self, insight: Insight) -> Insight:
        self._insights[insight.id] = insight
        self.events.emit(
            EventType.INSIGHT_GENERATED,
            insight_id=insight.id,
            type=insight.type.value,
            severity=insight.severity.value,
            metrics=list(insight.metrics),
        )
        return insight

    def _trend_pass(self, series: List[Tuple[Metric, List[float]]], now: float) -> List[Insight]:
        created = []
        for metric, values in series:
            with LogContext(metric_id=metric.id):
                try:
                    trend = self.trend_detector.detect(values)
                    if trend is None:
                        continue
                    strong = abs(trend.slope) > self.config.trend_warning_slope
                    created.append(self._record(Insight(
                        id=_insight_id(f"trend_{metric.id}"),
                        type=InsightType.TREND,
                        title=f"{metric.name} Trend Detected",
                        description=f"{metric.name} is {trend.direction} with a slope of {trend.slope:.2f}",
                        severity=InsightSeverity.WARNING if strong else InsightSeverity.INFO,
                        metrics=[metric.name],
                        confidence=trend.confidence,
                        impact=Impact.MEDIUM if strong else Impact.LOW,
                        recommendations=trend_recommendations(metric, trend),
                        data={"trend": trend.to_dict()},
                        time_range={"from": "1h", "to": "now"},
                        created=now,
                    )))
                except Exception as e:
                    self._errors += 1
                    logger.error(f"[Insights] Trend analysis failed for {metric.name}: {e}")
        return created

    def _anomaly_pass(self, series: List[Tuple[Metric, List[float]]], now: float) -> List[Insight]:
        created = []
        for metric, values in series:
            with LogContext(metric_id=metric.id):
                try:
                    result = self.anomaly_detector.detect(values)
                    if result is None:
                        continue
                    severe = result.count > self.config.anomaly_error_count
                    created.append(self._record(Insight(
                        id=_insight_id(f"anomaly_{metric.id}"),
                        type=InsightType.ANOMALY,
                        title=f"{metric.name} Anomaly Detected",
                        description=f"{result.count} anomalous values detected in {metric.name}",
                        severity=InsightSeverity.ERROR if severe else InsightSeverity.WARNING,
                        metrics=[metric.name],
                        confidence=min(result.count * 20.0, 100.0),
                        impact=Impact.HIGH if severe else Impact.MEDIUM,
                        recommendations=list(ANOMALY_ACTIONS),
                        data=result.to_dict(),
                        time_range={"from": "10m", "to": "now"},
                        created=now,
                    )))
                except Exception as e:
                    self._errors += 1
                    logger.error(f"[Insights] Anomaly analysis failed for {metric.name}: {e}")
        return created

    def _correlation_pass(self, series: List[Tuple[Metric, List[float]]], now: float) -> List[Insight]:
        created = []
        min_points = self.config.correlation_min_points
        eligible = [(m, v) for m, v in series if len(v) >= min_points]

        for (first, first_values), (second, second_values) in combinations(eligible, 2):
            try:
                r = pearson(first_values, second_values)
                if abs(r) <= self.config.correlation_threshold:
                    continue
                created.append(self._record(Insight(
                    id=_insight_id(f"correlation_{first.id}_{second.id}"),
                    type=InsightType.CORRELATION,
                    title=f"Correlation between {first.name} and {second.name}",
                    description=(
                        f"Strong {'positive' if r > 0 else 'negative'} correlation "
                        f"({r:.2f}) detected"
                    ),
                    severity=InsightSeverity.INFO,
                    metrics=[first.name, second.name],
                    confidence=abs(r) * 100.0,
                    impact=Impact.MEDIUM,
                    recommendations=list(CORRELATION_ACTIONS),
                    data={"correlation": r, "metric1": first.name, "metric2": second.name},
                    created=now,
                )))
            except Exception as e:
                self._errors += 1
                logger.error(f"[Insights] Correlation failed for {first.name}/{second.name}: {e}")
        return created

    def _recommendation_pass(self, series: List[Tuple[Metric, List[float]]], now: float) -> List[Insight]:
        created = []
        by_name: Dict[str, List[float]] = {}
        for metric, values in series:
            by_name.setdefault(metric.name, values)

        for rule in self.recommendation_rules:
            values = by_name.get(rule.metric)
            if not values:
                continue
            try:
                data = rule.evaluate(values)
                if data is None:
                    continue
                created.append(self._record(Insight(
                    id=_insight_id("recommendation"),
                    type=InsightType.RECOMMENDATION,
                    title=rule.title,
                    description=rule.description,
                    severity=rule.severity,
                    metrics=[rule.metric],
                    confidence=rule.confidence,
                    impact=rule.impact,
                    recommendations=list(rule.actions),
                    data=data,
                    created=now,
                )))
            except Exception as e:
                self._errors += 1
                logger.error(f"[Insights] Recommendation rule '{rule.title}' failed: {e}")
        return created

    # =========================================================================
    # Read / acknowledge
    # =========================================================================

    def get_all(self) -> List[Insight]:
        return list(self._insights.values())

    def get_by_type(self, insight_type: Union[InsightType, str]) -> List[Insight]:
        insight_type = parse_enum(InsightType, insight_type, "insight type")
        return [i for i in self._insights.values() if i.type == insight_type]

    def get(self, insight_id: str) -> Insight:
        insight = self._insights.get(insight_id)
        if insight is None:
            raise InsightNotFoundError(insight_id)
        return insight

    def acknowledge(self, insight_id: str, actor: str) -> Insight:
        """Acknowledge an insight. Repeated calls keep the first actor and time."""
        insight = self.get(insight_id)
        if insight.acknowledge(actor, self._clock()):
            logger.info(f"[Insights] {insight_id} acknowledged by {actor}")
            self.events.emit(
                EventType.INSIGHT_ACKNOWLEDGED,
                insight_id=insight_id,
                acknowledged_by=actor,
                acknowledged_at=insight.acknowledged_at,
            )
        return insight

    def get_stats(self) -> Dict[str, Any]:
        by_type: Dict[str, int] = {t.value: 0 for t in InsightType}
        unacknowledged = 0
        for insight in self._insights.values():
            by_type[insight.type.value] += 1
            if not insight.acknowledged:
                unacknowledged += 1
        return {
            "total": len(self._insights),
            "unacknowledged": unacknowledged,
            "by_type": by_type,
            "passes": self._passes,
            "errors": self._errors,
        }
