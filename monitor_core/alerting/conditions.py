"""
Alert condition evaluators.

Each condition type maps to an evaluator that reduces the window's points
to a single value; the rule's operator is then applied to that value.
Engines can install their own table to add or replace condition types.
"""

from __future__ import annotations

import logging
import statistics
from typing import Callable, Dict, Optional, Sequence

from monitor_core.alerting.models import AlertCondition, ConditionType, Operator
from monitor_core.metrics.models import DataPoint
from monitor_core.metrics.query import aggregate

logger = logging.getLogger(__name__)

ConditionEvaluator = Callable[[Sequence[DataPoint], AlertCondition], Optional[float]]


def evaluate_threshold(points: Sequence[DataPoint], condition: AlertCondition) -> Optional[float]:
    """Window reduced with the condition's aggregation, latest value by default."""
    return aggregate(points, condition.aggregation)


def evaluate_change(points: Sequence[DataPoint], condition: AlertCondition) -> Optional[float]:
    """Last value minus first value in the window."""
    if not points:
        return None
    return points[-1].value - points[0].value


def evaluate_anomaly(points: Sequence[DataPoint], condition: AlertCondition) -> Optional[float]:
    """Z-score of the latest value against the whole window."""
    if len(points) < 2:
        return 0.0 if points else None

    values = [p.value for p in points]
    mean = statistics.mean(values)
    stdev = statistics.pstdev(values)
    if stdev == 0:
        return 0.0
    return (values[-1] - mean) / stdev


def evaluate_forecast(points: Sequence[DataPoint], condition: AlertCondition) -> Optional[float]:
    """
    Least-squares line through the window, extrapolated
    ``duration_seconds`` past the latest point.
    """
    if not points:
        return None
    if len(points) == 1:
        return points[0].value

    xs = [p.timestamp for p in points]
    ys = [p.value for p in points]
    x_mean = statistics.mean(xs)
    y_mean = statistics.mean(ys)
    denominator = sum((x - x_mean) ** 2 for x in xs)
    if denominator == 0:
        return y_mean

    slope = sum((x - x_mean) * (y - y_mean) for x, y in zip(xs, ys)) / denominator
    intercept = y_mean - slope * x_mean
    return slope * (xs[-1] + condition.duration_seconds) + intercept


DEFAULT_EVALUATORS: Dict[ConditionType, ConditionEvaluator] = {
    ConditionType.THRESHOLD: evaluate_threshold,
    ConditionType.CHANGE: evaluate_change,
    ConditionType.ANOMALY: evaluate_anomaly,
    ConditionType.FORECAST: evaluate_forecast,
}


def apply_operator(value: float, condition: AlertCondition) -> bool:
    operator = condition.operator

    if operator == Operator.BETWEEN:
        low, high = condition.bounds
        return low <= value <= high
    if operator == Operator.OUTSIDE:
        low, high = condition.bounds
        return value < low or value > high

    target = condition.scalar
    if operator == Operator.GT:
        return value > target
    if operator == Operator.LT:
        return value < target
    if operator == Operator.GTE:
        return value >= target
    if operator == Operator.LTE:
        return value <= target
    if operator == Operator.EQ:
        return value == target
    return False


def evaluate_condition(
    points: Sequence[DataPoint],
    condition: AlertCondition,
    evaluators: Optional[Dict[ConditionType, ConditionEvaluator]] = None,
) -> Optional[float]:
    """
    Evaluate a condition over window points.

    Returns the observed value when the condition holds, None otherwise.
    """
    if not points:
        return None

    table = DEFAULT_EVALUATORS if evaluators is None else evaluators
    evaluator = table.get(condition.type, evaluate_threshold)
    observed = evaluator(points, condition)
    if observed is None:
        return None
    return observed if apply_operator(observed, condition) else None
