"""
monitor-core - Metrics and Alerting Engine

Provides:
- Metric catalog with buffered ingestion and retention
- Threshold, change, anomaly and forecast alert rules with Slack/webhook delivery
- Trend, anomaly, correlation and recommendation insights
- Component health probes, incidents and SLA status
- Dashboard queries and JSON/CSV reports
"""

__version__ = "0.1.0"

# Engine
from monitor_core.engine import MonitoringEngine, monitoring_engine

# Configuration
from monitor_core.config import (
    MonitorConfig,
    StoreConfig,
    AlertingConfig,
    InsightConfig,
    HealthConfig,
    load_config,
)

# Errors
from monitor_core.errors import (
    MonitorError,
    NotFoundError,
    MetricNotFoundError,
    AlertRuleNotFoundError,
    NotificationChannelNotFoundError,
    DashboardNotFoundError,
    InsightNotFoundError,
    InvalidDefinitionError,
    UnsupportedFormatError,
)

# Events
from monitor_core.events import (
    EventBus,
    EventType,
    InProcessEventBus,
    MonitorEvent,
)

# Metrics
from monitor_core.metrics import (
    Aggregation,
    DataPoint,
    InMemoryMetricStore,
    Metric,
    MetricCategory,
    MetricDefinition,
    MetricStore,
    MetricType,
    Priority,
    TimeRange,
)

# Alerting
from monitor_core.alerting import (
    AlertCondition,
    AlertEvent,
    AlertRule,
    BaseNotifier,
    NotificationChannel,
    Severity,
)

# Insights
from monitor_core.insights import (
    AnomalyDetector,
    Insight,
    InsightType,
    RecommendationRule,
    TrendDetector,
)

# Health
from monitor_core.health import (
    HealthProbe,
    HealthStatus,
    HostResourceProbe,
    HttpHealthProbe,
    RandomWalkProbe,
    SystemHealth,
)

# Dashboards
from monitor_core.dashboards import Dashboard, MetricQuery, Widget

__all__ = [
    "__version__",
    # Engine
    "MonitoringEngine",
    "monitoring_engine",
    # Configuration
    "MonitorConfig",
    "StoreConfig",
    "AlertingConfig",
    "InsightConfig",
    "HealthConfig",
    "load_config",
    # Errors
    "MonitorError",
    "NotFoundError",
    "MetricNotFoundError",
    "AlertRuleNotFoundError",
    "NotificationChannelNotFoundError",
    "DashboardNotFoundError",
    "InsightNotFoundError",
    "InvalidDefinitionError",
    "UnsupportedFormatError",
    # Events
    "EventBus",
    "EventType",
    "InProcessEventBus",
    "MonitorEvent",
    # Metrics
    "Aggregation",
    "DataPoint",
    "InMemoryMetricStore",
    "Metric",
    "MetricCategory",
    "MetricDefinition",
    "MetricStore",
    "MetricType",
    "Priority",
    "TimeRange",
    # Alerting
    "AlertCondition",
    "AlertEvent",
    "AlertRule",
    "BaseNotifier",
    "NotificationChannel",
    "Severity",
    # Insights
    "AnomalyDetector",
    "Insight",
    "InsightType",
    "RecommendationRule",
    "TrendDetector",
    # Health
    "HealthProbe",
    "HealthStatus",
    "HostResourceProbe",
    "HttpHealthProbe",
    "RandomWalkProbe",
    "SystemHealth",
    # Dashboards
    "Dashboard",
    "MetricQuery",
    "Widget",
]
