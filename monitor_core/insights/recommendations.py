"""
Declarative recommendation rules.

A rule reduces the tail of one metric's series to a number and, when its
predicate holds, produces a recommendation insight with fixed wording.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np

from monitor_core.insights.models import Impact, InsightSeverity


def mean(values: Sequence[float]) -> float:
    return float(np.mean(values))


@dataclass
class RecommendationRule:
    """
    Example:
        RecommendationRule(
            metric="queue_depth",
            predicate=lambda v: v > 1000,
            title="Queue Backlog Growing",
            description="Consumers are not keeping up",
            confidence=80,
            impact=Impact.HIGH,
            actions=["Add consumers"],
        )
    """
    metric: str
    predicate: Callable[[float], bool]
    title: str
    description: str
    confidence: float
    impact: Impact
    actions: List[str] = field(default_factory=list)
    window: int = 10
    reducer: Callable[[Sequence[float]], float] = mean
    value_key: str = "value"
    severity: InsightSeverity = InsightSeverity.INFO

    def evaluate(self, values: Sequence[float]) -> Optional[Dict[str, Any]]:
        """Reduced value as insight data when the rule applies, else None."""
        if not values:
            return None
        tail = list(values[-self.window:])
        reduced = self.reducer(tail)
        if not self.predicate(reduced):
            return None
        return {self.value_key: reduced, "window": len(tail)}


DEFAULT_RECOMMENDATION_RULES: List[RecommendationRule] = [
    RecommendationRule(
        metric="system_cpu_usage",
        predicate=lambda avg: avg > 80,
        title="High CPU Usage Detected",
        description="System is running at high CPU utilization",
        confidence=90,
        impact=Impact.HIGH,
        actions=[
            "Consider scaling up CPU resources",
            "Optimize application performance",
            "Review recent deployments for performance regressions",
        ],
        value_key="avg_cpu",
    ),
    RecommendationRule(
        metric="system_cpu_usage",
        predicate=lambda avg: avg < 20,
        title="Low CPU Usage Detected",
        description="System resources may be over-provisioned",
        confidence=75,
        impact=Impact.MEDIUM,
        actions=[
            "Consider scaling down CPU resources to reduce costs",
            "Evaluate if resources can be better utilized",
            "Review resource allocation strategy",
        ],
        value_key="avg_cpu",
    ),
]
