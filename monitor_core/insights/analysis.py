"""
Statistical building blocks for insight generation.

Least-squares slope over sample index, population deviation against a
trailing history window and Pearson correlation. Detectors are strategy
objects; a host can swap in something stronger without touching the
generator.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np


def linear_slope(values: Sequence[float]) -> float:
    """Ordinary least-squares slope of value against sample index."""
    if len(values) < 2:
        return 0.0
    y = np.asarray(values, dtype=float)
    x = np.arange(len(y), dtype=float)
    dx = x - x.mean()
    return float(np.dot(dx, y - y.mean()) / np.dot(dx, dx))


def pearson(first: Sequence[float], second: Sequence[float]) -> float:
    """
    Pearson correlation over the common tail of two series.

    Returns 0.0 when either tail has no variance.
    """
    n = min(len(first), len(second))
    if n == 0:
        return 0.0
    a = np.asarray(first[len(first) - n:], dtype=float)
    b = np.asarray(second[len(second) - n:], dtype=float)
    da = a - a.mean()
    db = b - b.mean()
    denominator = np.sqrt(np.dot(da, da) * np.dot(db, db))
    if denominator == 0:
        return 0.0
    return float(np.dot(da, db) / denominator)


@dataclass
class TrendResult:
    slope: float
    direction: str  # increasing, decreasing, stable
    confidence: float
    points: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "slope": self.slope,
            "direction": self.direction,
            "confidence": self.confidence,
            "points": self.points,
        }


class TrendDetector:
    """Flags a series whose index slope exceeds a threshold."""

    def __init__(self, min_points: int = 10, slope_threshold: float = 0.1):
        self.min_points = min_points
        self.slope_threshold = slope_threshold

    def detect(self, values: Sequence[float]) -> Optional[TrendResult]:
        if len(values) < self.min_points:
            return None

        slope = linear_slope(values)
        if abs(slope) <= self.slope_threshold:
            return None

        direction = "increasing" if slope > 0 else "decreasing" if slope < 0 else "stable"
        return TrendResult(
            slope=slope,
            direction=direction,
            confidence=min(abs(slope) * 100.0, 100.0),
            points=len(values),
        )


@dataclass
class AnomalyResult:
    mean: float
    stddev: float
    anomalies: List[Tuple[int, float]] = field(default_factory=list)  # (offset in recent, value)

    @property
    def count(self) -> int:
        return len(self.anomalies)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "historical_mean": self.mean,
            "historical_std": self.stddev,
            "anomalies": [{"offset": i, "value": v} for i, v in self.anomalies],
        }


class AnomalyDetector:
    """
    Compares the most recent points against a trailing history window.

    With the defaults the history is ``values[-50:-10]`` and the recent
    window is ``values[-10:]``; recent points further than
    ``multiplier`` population standard deviations from the history mean
    are anomalous.
    """

    def __init__(
        self,
        min_points: int = 20,
        history_window: int = 50,
        recent_window: int = 10,
        multiplier: float = 2.0,
    ):
        self.min_points = min_points
        self.history_window = history_window
        self.recent_window = recent_window
        self.multiplier = multiplier

    def detect(self, values: Sequence[float]) -> Optional[AnomalyResult]:
        if len(values) < self.min_points:
            return None

        data = np.asarray(values, dtype=float)
        recent = data[-self.recent_window:]
        historical = data[-self.history_window:-self.recent_window]
        if historical.size == 0:
            return None

        mean = float(historical.mean())
        stddev = float(historical.std())
        limit = self.multiplier * stddev

        flagged = [
            (i, float(v)) for i, v in enumerate(recent)
            if abs(v - mean) > limit
        ]
        if not flagged:
            return None
        return AnomalyResult(mean=mean, stddev=stddev, anomalies=flagged)
