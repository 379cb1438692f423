"""
System health data models.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class HealthStatus(Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    CRITICAL = "critical"
    UNKNOWN = "unknown"


class IncidentStatus(Enum):
    INVESTIGATING = "investigating"
    IDENTIFIED = "identified"
    MONITORING = "monitoring"
    RESOLVED = "resolved"


class UpdateType(Enum):
    UPDATE = "update"
    RESOLUTION = "resolution"
    ESCALATION = "escalation"


def _iso(timestamp: Optional[float]) -> Optional[str]:
    return datetime.fromtimestamp(timestamp).isoformat() if timestamp is not None else None


@dataclass
class ComponentMetrics:
    availability: float = 100.0  # percent
    latency: float = 0.0         # ms
    error_rate: float = 0.0      # percent
    throughput: float = 0.0      # requests/s
    extra: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "availability": self.availability,
            "latency": self.latency,
            "error_rate": self.error_rate,
            "throughput": self.throughput,
        }
        if self.extra:
            result["extra"] = dict(self.extra)
        return result


@dataclass
class ComponentHealth:
    """Health of one system component, recomputed each tick."""
    name: str
    status: HealthStatus = HealthStatus.HEALTHY
    score: float = 100.0
    metrics: ComponentMetrics = field(default_factory=ComponentMetrics)
    dependencies: List[str] = field(default_factory=list)
    last_checked: float = field(default_factory=time.time)
    incidents: int = 0
    last_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "score": round(self.score, 2),
            "metrics": self.metrics.to_dict(),
            "dependencies": list(self.dependencies),
            "last_checked": self.last_checked,
            "last_checked_at": _iso(self.last_checked),
            "incidents": self.incidents,
            "last_error": self.last_error,
        }


@dataclass
class IncidentUpdate:
    message: str
    timestamp: float
    type: UpdateType = UpdateType.UPDATE
    author: str = "monitor-core"
    id: str = field(default_factory=lambda: f"update_{uuid.uuid4().hex[:8]}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "message": self.message,
            "timestamp": self.timestamp,
            "author": self.author,
            "type": self.type.value,
        }


@dataclass
class HealthIncident:
    """A period during which a component was critical or unknown."""
    id: str
    title: str
    description: str
    severity: str
    components: List[str]
    start_time: float
    status: IncidentStatus = IncidentStatus.INVESTIGATING
    end_time: Optional[float] = None
    impact: str = ""
    root_cause: Optional[str] = None
    resolution: Optional[str] = None
    updates: List[IncidentUpdate] = field(default_factory=list)

    @property
    def is_open(self) -> bool:
        return self.status != IncidentStatus.RESOLVED

    @property
    def duration(self) -> Optional[float]:
        if self.end_time is None:
            return None
        return self.end_time - self.start_time

    def add_update(self, message: str, now: float, update_type: UpdateType = UpdateType.UPDATE) -> None:
        self.updates.append(IncidentUpdate(message=message, timestamp=now, type=update_type))

    def resolve(self, resolution: str, now: float) -> None:
        self.status = IncidentStatus.RESOLVED
        self.end_time = now
        self.resolution = resolution
        self.add_update(resolution, now, UpdateType.RESOLUTION)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "severity": self.severity,
            "status": self.status.value,
            "components": list(self.components),
            "start_time": self.start_time,
            "end_time": self.end_time,
            "duration": self.duration,
            "impact": self.impact,
            "root_cause": self.root_cause,
            "resolution": self.resolution,
            "updates": [u.to_dict() for u in self.updates],
        }


@dataclass
class AvailabilitySLA:
    target: float
    current: float = 100.0
    remaining: float = 0.0
    trend: str = "stable"


@dataclass
class LatencySLA:
    target: float
    current: float = 0.0
    p95: float = 0.0
    p99: float = 0.0
    trend: str = "stable"


@dataclass
class ErrorRateSLA:
    target: float
    current: float = 0.0
    trend: str = "stable"


@dataclass
class SLAStatus:
    availability: AvailabilitySLA
    latency: LatencySLA
    error_rate: ErrorRateSLA
    period: str = "monthly"
    last_updated: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "availability": vars(self.availability).copy(),
            "latency": vars(self.latency).copy(),
            "error_rate": vars(self.error_rate).copy(),
            "period": self.period,
            "last_updated": self.last_updated,
        }


TREND_KEYS = ("1h", "24h", "7d", "30d")


@dataclass
class SystemHealth:
    overall: HealthStatus
    score: float
    components: List[ComponentHealth]
    incidents: List[HealthIncident]
    sla: SLAStatus
    trends: Dict[str, float]
    last_checked: float

    def get_component(self, name: str) -> Optional[ComponentHealth]:
        for component in self.components:
            if component.name == name:
                return component
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall": self.overall.value,
            "score": round(self.score, 2),
            "components": [c.to_dict() for c in self.components],
            "incidents": [i.to_dict() for i in self.incidents],
            "sla": self.sla.to_dict(),
            "trends": dict(self.trends),
            "last_checked": self.last_checked,
            "last_checked_at": _iso(self.last_checked),
        }
