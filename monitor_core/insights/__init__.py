"""
Trend, anomaly, correlation and recommendation insights.
"""

from monitor_core.insights.models import Impact, Insight, InsightSeverity, InsightType
from monitor_core.insights.analysis import (
    AnomalyDetector,
    AnomalyResult,
    TrendDetector,
    TrendResult,
    linear_slope,
    pearson,
)
from monitor_core.insights.recommendations import (
    DEFAULT_RECOMMENDATION_RULES,
    RecommendationRule,
)
from monitor_core.insights.generator import InsightGenerator

__all__ = [
    "Impact",
    "Insight",
    "InsightSeverity",
    "InsightType",
    "AnomalyDetector",
    "AnomalyResult",
    "TrendDetector",
    "TrendResult",
    "linear_slope",
    "pearson",
    "DEFAULT_RECOMMENDATION_RULES",
    "RecommendationRule",
    "InsightGenerator",
]
