"""
Insight data models.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class InsightType(Enum):
    TREND = "trend"
    ANOMALY = "anomaly"
    CORRELATION = "correlation"
    RECOMMENDATION = "recommendation"


class InsightSeverity(Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class Impact(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class Insight:
    """
    A derived observation about one or more metrics.

    Insights are never deleted. Acknowledgement only annotates, and the
    first acknowledgement wins.
    """
    id: str
    type: InsightType
    title: str
    description: str
    severity: InsightSeverity
    metrics: List[str]
    confidence: float
    impact: Impact
    actionable: bool = True
    recommendations: List[str] = field(default_factory=list)
    data: Dict[str, Any] = field(default_factory=dict)
    time_range: Dict[str, str] = field(default_factory=lambda: {"from": "1h", "to": "now"})
    created: float = field(default_factory=time.time)
    acknowledged: bool = False
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[float] = None

    def acknowledge(self, actor: str, now: float) -> bool:
        """Mark acknowledged. Returns False when already acknowledged."""
        if self.acknowledged:
            return False
        self.acknowledged = True
        self.acknowledged_by = actor
        self.acknowledged_at = now
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "title": self.title,
            "description": self.description,
            "severity": self.severity.value,
            "metrics": list(self.metrics),
            "confidence": self.confidence,
            "impact": self.impact.value,
            "actionable": self.actionable,
            "recommendations": list(self.recommendations),
            "data": self.data,
            "time_range": dict(self.time_range),
            "created": self.created,
            "created_at": datetime.fromtimestamp(self.created).isoformat(),
            "acknowledged": self.acknowledged,
            "acknowledged_by": self.acknowledged_by,
            "acknowledged_at": self.acknowledged_at,
        }
