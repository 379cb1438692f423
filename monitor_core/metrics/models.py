"""
Metric catalog data models.
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from monitor_core.errors import InvalidDefinitionError

DEFAULT_RETENTION_SECONDS = 86400


class MetricType(Enum):
    """Metric data types."""
    COUNTER = "counter"
    GAUGE = "gauge"
    HISTOGRAM = "histogram"
    SUMMARY = "summary"
    RATE = "rate"


class MetricCategory(Enum):
    SYSTEM = "system"
    APPLICATION = "application"
    BUSINESS = "business"
    SECURITY = "security"
    NETWORK = "network"
    DATABASE = "database"


class Priority(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Aggregation(Enum):
    """Reductions applied to a set of data points."""
    SUM = "sum"
    AVG = "avg"
    MIN = "min"
    MAX = "max"
    COUNT = "count"
    RATE = "rate"


def parse_enum(enum_cls, value: Any, field_name: str):
    """Accept an enum member or its value; raise InvalidDefinitionError otherwise."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise InvalidDefinitionError(f"Invalid {field_name} {value!r}; expected one of: {allowed}") from None


@dataclass(frozen=True)
class DataPoint:
    """Single measurement. Immutable once stored."""
    timestamp: float
    value: float
    tags: Mapping[str, str] = field(default_factory=dict)
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        # Read-only views so a stored point cannot be changed through a query result
        object.__setattr__(self, "tags", MappingProxyType(dict(self.tags)))
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "datetime": datetime.fromtimestamp(self.timestamp).isoformat(),
            "value": self.value,
            "tags": dict(self.tags),
            "metadata": dict(self.metadata),
        }


@dataclass
class MetricDefinition:
    """Registration input for a metric."""
    name: str
    type: MetricType = MetricType.GAUGE
    unit: str = ""
    description: str = ""
    labels: List[str] = field(default_factory=list)
    aggregation: Aggregation = Aggregation.AVG
    retention_seconds: Optional[int] = None  # None: the store default
    source: str = "application"
    category: MetricCategory = MetricCategory.APPLICATION
    priority: Priority = Priority.MEDIUM
    enabled: bool = True

    def __post_init__(self):
        if not self.name:
            raise InvalidDefinitionError("Metric name is required")
        self.type = parse_enum(MetricType, self.type, "metric type")
        self.aggregation = parse_enum(Aggregation, self.aggregation, "aggregation")
        self.category = parse_enum(MetricCategory, self.category, "category")
        self.priority = parse_enum(Priority, self.priority, "priority")
        if self.retention_seconds is not None and self.retention_seconds <= 0:
            raise InvalidDefinitionError(
                f"Metric {self.name}: retention must be positive, got {self.retention_seconds}"
            )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MetricDefinition":
        known = cls.__dataclass_fields__
        # "retention" is the catalog spelling
        if "retention" in data and "retention_seconds" not in data:
            data = {**data, "retention_seconds": data["retention"]}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class Metric:
    """
    A registered metric and its retained series.

    ``data_points`` is replaced, never mutated in place, so a reference
    taken by a reader is always a consistent snapshot.
    """
    id: str
    name: str
    type: MetricType
    unit: str
    description: str
    labels: List[str]
    aggregation: Aggregation
    retention_seconds: int
    source: str
    category: MetricCategory
    priority: Priority
    enabled: bool = True
    data_points: Tuple[DataPoint, ...] = ()
    last_updated: float = field(default_factory=time.time)

    @classmethod
    def from_definition(cls, metric_id: str, definition: MetricDefinition, now: float) -> "Metric":
        return cls(
            id=metric_id,
            name=definition.name,
            type=definition.type,
            unit=definition.unit,
            description=definition.description,
            labels=list(definition.labels),
            aggregation=definition.aggregation,
            retention_seconds=(
                definition.retention_seconds
                if definition.retention_seconds is not None
                else DEFAULT_RETENTION_SECONDS
            ),
            source=definition.source,
            category=definition.category,
            priority=definition.priority,
            enabled=definition.enabled,
            last_updated=now,
        )

    def to_dict(self, include_points: bool = False) -> Dict[str, Any]:
        result = {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "unit": self.unit,
            "description": self.description,
            "labels": list(self.labels),
            "aggregation": self.aggregation.value,
            "retention_seconds": self.retention_seconds,
            "source": self.source,
            "category": self.category.value,
            "priority": self.priority.value,
            "enabled": self.enabled,
            "point_count": len(self.data_points),
            "last_updated": self.last_updated,
        }
        if include_points:
            result["data_points"] = [p.to_dict() for p in self.data_points]
        return result


_RELATIVE = re.compile(r"^(\d+(?:\.\d+)?)([smhdw])$")
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400, "w": 604800}

TimeBound = Union[float, int, str, datetime]


def _resolve_bound(value: TimeBound, now: float) -> float:
    if isinstance(value, datetime):
        return value.timestamp()
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().lower()
    if text == "now":
        return now
    match = _RELATIVE.match(text)
    if match:
        return now - float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
    try:
        return datetime.fromisoformat(str(value)).timestamp()
    except ValueError:
        raise InvalidDefinitionError(f"Unrecognized time bound {value!r}") from None


@dataclass(frozen=True)
class TimeRange:
    """Inclusive [start, end] window in epoch seconds."""
    start: float
    end: float

    @classmethod
    def resolve(cls, value: Any, now: Optional[float] = None) -> "TimeRange":
        """
        Build a TimeRange from a TimeRange, a (from, to) pair, a mapping with
        ``from``/``to`` keys, or a single relative string such as ``"1h"``.
        """
        now = time.time() if now is None else now
        if isinstance(value, TimeRange):
            return value
        if isinstance(value, Mapping):
            return cls(
                _resolve_bound(value.get("from", 0.0), now),
                _resolve_bound(value.get("to", "now"), now),
            )
        if isinstance(value, (tuple, list)) and len(value) == 2:
            return cls(_resolve_bound(value[0], now), _resolve_bound(value[1], now))
        if isinstance(value, str):
            return cls(_resolve_bound(value, now), now)
        raise InvalidDefinitionError(f"Unrecognized time range {value!r}")

    @classmethod
    def last(cls, seconds: float, now: Optional[float] = None) -> "TimeRange":
        now = time.time() if now is None else now
        return cls(now - seconds, now)

    def contains(self, timestamp: float) -> bool:
        return self.start <= timestamp <= self.end

    def to_dict(self) -> Dict[str, Any]:
        return {"from": self.start, "to": self.end}
