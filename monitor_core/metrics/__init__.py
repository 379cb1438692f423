"""
Metric catalog, ingestion buffer, retained store and query facade.
"""

from monitor_core.metrics.models import (
    Aggregation,
    DataPoint,
    Metric,
    MetricCategory,
    MetricDefinition,
    MetricType,
    Priority,
    TimeRange,
)
from monitor_core.metrics.buffer import MetricBuffer
from monitor_core.metrics.store import InMemoryMetricStore, MergeResult, MetricStore
from monitor_core.metrics.collector import MetricCollector
from monitor_core.metrics.query import MetricQueryService, aggregate

__all__ = [
    "Aggregation",
    "DataPoint",
    "Metric",
    "MetricCategory",
    "MetricDefinition",
    "MetricType",
    "Priority",
    "TimeRange",
    "MetricBuffer",
    "InMemoryMetricStore",
    "MergeResult",
    "MetricStore",
    "MetricCollector",
    "MetricQueryService",
    "aggregate",
]
