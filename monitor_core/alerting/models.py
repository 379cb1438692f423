"""
Alert rule, condition, channel and event models.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from monitor_core.errors import InvalidDefinitionError
from monitor_core.metrics.models import Aggregation, parse_enum


class Severity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ConditionType(Enum):
    THRESHOLD = "threshold"
    ANOMALY = "anomaly"
    CHANGE = "change"
    FORECAST = "forecast"


class Operator(Enum):
    GT = "gt"
    LT = "lt"
    EQ = "eq"
    GTE = "gte"
    LTE = "lte"
    BETWEEN = "between"
    OUTSIDE = "outside"


class ChannelType(Enum):
    EMAIL = "email"
    SLACK = "slack"
    WEBHOOK = "webhook"
    PAGER = "pager"
    SMS = "sms"


ConditionValue = Union[float, Tuple[float, float]]

_RANGE_OPERATORS = (Operator.BETWEEN, Operator.OUTSIDE)


@dataclass
class AlertCondition:
    """
    What a rule checks.

    ``value`` is a scalar for comparisons and a ``(min, max)`` pair for
    ``between``/``outside``. A scalar given to a range operator means
    ``(0, value)``.
    """
    type: ConditionType = ConditionType.THRESHOLD
    operator: Operator = Operator.GT
    value: ConditionValue = 0.0
    duration_seconds: float = 0.0
    time_window_seconds: float = 300.0
    aggregation: Optional[Aggregation] = None

    def __post_init__(self):
        self.type = parse_enum(ConditionType, self.type, "condition type")
        self.operator = parse_enum(Operator, self.operator, "operator")
        if self.aggregation is not None:
            self.aggregation = parse_enum(Aggregation, self.aggregation, "aggregation")

        if isinstance(self.value, (list, tuple)):
            if len(self.value) != 2:
                raise InvalidDefinitionError(
                    f"Condition value must be a scalar or a (min, max) pair, got {self.value!r}"
                )
            low, high = float(self.value[0]), float(self.value[1])
            if low > high:
                raise InvalidDefinitionError(f"Condition range min {low} is greater than max {high}")
            self.value = (low, high)
        else:
            self.value = float(self.value)

        if self.time_window_seconds <= 0:
            raise InvalidDefinitionError("Condition time window must be positive")

    @property
    def scalar(self) -> float:
        """Value used by scalar comparisons."""
        return self.value[0] if isinstance(self.value, tuple) else self.value

    @property
    def bounds(self) -> Tuple[float, float]:
        """Range used by between/outside."""
        return self.value if isinstance(self.value, tuple) else (0.0, self.value)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AlertCondition":
        aliases = {
            "duration": "duration_seconds",
            "time_window": "time_window_seconds",
            "timeWindow": "time_window_seconds",
        }
        normalized = {aliases.get(k, k): v for k, v in data.items()}
        known = cls.__dataclass_fields__
        return cls(**{k: v for k, v in normalized.items() if k in known})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "operator": self.operator.value,
            "value": list(self.value) if isinstance(self.value, tuple) else self.value,
            "duration_seconds": self.duration_seconds,
            "time_window_seconds": self.time_window_seconds,
            "aggregation": self.aggregation.value if self.aggregation else None,
        }


@dataclass
class AlertRule:
    """
    An alert rule bound to one metric.

    Never fires twice within ``frequency_seconds`` of its own last firing.
    """
    id: str
    name: str
    metric: str
    condition: AlertCondition
    description: str = ""
    severity: Severity = Severity.MEDIUM
    frequency_seconds: float = 60.0
    channels: List[str] = field(default_factory=list)
    enabled: bool = True
    muted: bool = False
    muted_until: Optional[float] = None
    last_triggered: Optional[float] = None
    trigger_count: int = 0
    created: float = field(default_factory=time.time)
    last_modified: float = field(default_factory=time.time)

    def __post_init__(self):
        if not self.name:
            raise InvalidDefinitionError("Alert rule name is required")
        if not self.metric:
            raise InvalidDefinitionError(f"Alert rule {self.name}: metric is required")
        if isinstance(self.condition, Mapping):
            self.condition = AlertCondition.from_dict(self.condition)
        self.severity = parse_enum(Severity, self.severity, "severity")
        if self.frequency_seconds < 0:
            raise InvalidDefinitionError("Alert rule frequency must not be negative")
        self.channels = list(self.channels)

    @classmethod
    def from_dict(cls, rule_id: str, data: Mapping[str, Any], now: Optional[float] = None) -> "AlertRule":
        now = time.time() if now is None else now
        aliases = {"frequency": "frequency_seconds"}
        normalized = {aliases.get(k, k): v for k, v in data.items()}
        known = cls.__dataclass_fields__
        fields = {k: v for k, v in normalized.items() if k in known and k != "id"}
        fields.setdefault("created", now)
        fields.setdefault("last_modified", now)
        if "condition" not in fields:
            raise InvalidDefinitionError(f"Alert rule {rule_id}: condition is required")
        return cls(id=rule_id, **fields)

    @property
    def active(self) -> bool:
        return self.enabled and not self.muted

    def targets(self, metric_id: str, metric_name: str) -> bool:
        return self.metric in (metric_id, metric_name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "metric": self.metric,
            "condition": self.condition.to_dict(),
            "severity": self.severity.value,
            "frequency_seconds": self.frequency_seconds,
            "channels": list(self.channels),
            "enabled": self.enabled,
            "muted": self.muted,
            "muted_until": self.muted_until,
            "last_triggered": self.last_triggered,
            "trigger_count": self.trigger_count,
            "created": self.created,
            "last_modified": self.last_modified,
        }


@dataclass
class NotificationChannel:
    """Where alert events are delivered. ``config`` is opaque to the engine."""
    id: str
    type: ChannelType
    name: str = ""
    config: Dict[str, Any] = field(default_factory=dict)
    enabled: bool = True

    def __post_init__(self):
        self.type = parse_enum(ChannelType, self.type, "channel type")
        self.config = dict(self.config)
        if not self.name:
            self.name = self.id

    @classmethod
    def from_dict(cls, channel_id: str, data: Mapping[str, Any]) -> "NotificationChannel":
        known = cls.__dataclass_fields__
        return cls(id=channel_id, **{k: v for k, v in data.items() if k in known and k != "id"})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "name": self.name,
            "config": {k: ("***" if "url" in k or "key" in k else v) for k, v in self.config.items()},
            "enabled": self.enabled,
        }


@dataclass
class AlertEvent:
    """One firing of an alert rule."""
    rule_id: str
    rule_name: str
    metric_id: str
    metric_name: str
    value: float
    severity: Severity
    timestamp: float
    message: str
    alert_id: str = field(default_factory=lambda: f"alert_{uuid.uuid4().hex[:12]}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alert_id": self.alert_id,
            "rule_id": self.rule_id,
            "rule_name": self.rule_name,
            "metric_id": self.metric_id,
            "metric_name": self.metric_name,
            "value": self.value,
            "severity": self.severity.value,
            "timestamp": self.timestamp,
            "datetime": datetime.fromtimestamp(self.timestamp).isoformat(),
            "message": self.message,
        }
