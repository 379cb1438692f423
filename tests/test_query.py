"""
Tests for the query facade and aggregation.

Covers:
- Raw query returns the bounded, filtered subset unmodified
- groupBy produces one synthetic point per group with original_count
- Aggregation methods including rate and fallbacks
"""

import pytest

from conftest import make_points
from monitor_core.errors import InvalidDefinitionError
from monitor_core.metrics import (
    Aggregation,
    DataPoint,
    InMemoryMetricStore,
    Metric,
    MetricDefinition,
    MetricQueryService,
    TimeRange,
    aggregate,
)
from monitor_core.metrics.query import select_window


@pytest.fixture
def populated(clock):
    store = InMemoryMetricStore()
    metric = Metric.from_definition("metric_http_requests_total", MetricDefinition(name="http_requests_total"), 0.0)
    store.add(metric)

    base = clock.now - 100
    points = [
        DataPoint(base + 0, 10.0, {"endpoint": "/a", "status": "2xx"}),
        DataPoint(base + 10, 20.0, {"endpoint": "/a", "status": "5xx"}),
        DataPoint(base + 20, 30.0, {"endpoint": "/b", "status": "2xx"}),
        DataPoint(base + 30, 40.0, {"status": "2xx"}),
        DataPoint(clock.now - 7200, 99.0, {"endpoint": "/a"}),
    ]
    store.merge(metric.id, points, now=clock.now)
    return MetricQueryService(store, clock=clock), points


# ============================================================================
# AGGREGATE
# ============================================================================

class TestAggregate:
    def test_basic_methods(self):
        points = make_points([1, 2, 3, 6])
        assert aggregate(points, Aggregation.AVG) == 3.0
        assert aggregate(points, "sum") == 12.0
        assert aggregate(points, "min") == 1.0
        assert aggregate(points, "max") == 6.0
        assert aggregate(points, "count") == 4.0

    def test_rate_is_sum_over_span(self):
        points = make_points([10, 10, 10], step=5.0)
        assert aggregate(points, "rate") == 3.0

    def test_rate_single_point_is_sum(self):
        assert aggregate(make_points([7]), "rate") == 7.0

    def test_unknown_method_falls_back_to_latest(self):
        points = make_points([1, 2, 9])
        assert aggregate(points, "p99") == 9.0
        assert aggregate(points, None) == 9.0

    def test_window_bounds_are_inclusive(self):
        points = make_points([1, 2, 3, 4], step=10.0)
        start, end = points[1].timestamp, points[2].timestamp
        assert select_window(points, start, end) == points[1:3]
        assert select_window(points, end + 1, end + 2) == []

    def test_empty(self):
        assert aggregate([], "avg") is None


# ============================================================================
# QUERY
# ============================================================================

class TestQuery:
    def test_raw_query_is_unmodified_subset(self, populated):
        service, points = populated
        result = service.query("http_requests_total", "1h")
        assert result == points[:4]

    def test_results_cannot_change_stored_points(self, populated):
        service, _ = populated
        result = service.query("http_requests_total", "1h")

        with pytest.raises(TypeError):
            result[0].tags["endpoint"] = "/changed"
        with pytest.raises(TypeError):
            result[0].metadata["note"] = "changed"

        stored = service.query("http_requests_total", "1h")[0]
        assert stored.tags == {"endpoint": "/a", "status": "2xx"}
        assert dict(stored.metadata) == {}

    def test_point_copies_caller_tags(self):
        tags = {"host": "web-1"}
        point = DataPoint(1.0, 2.0, tags)
        tags["host"] = "web-2"
        assert point.tags == {"host": "web-1"}

    def test_lookup_by_id(self, populated):
        service, points = populated
        assert len(service.query("metric_http_requests_total", "1h")) == 4

    def test_filters_exact_match(self, populated):
        service, _ = populated
        result = service.query("http_requests_total", "1h", filters={"status": "5xx"})
        assert [p.value for p in result] == [20.0]

    def test_unknown_metric_returns_empty(self, populated):
        service, _ = populated
        assert service.query("nope", "1h") == []

    def test_group_by_sum(self, populated, clock):
        service, _ = populated
        result = service.query("http_requests_total", "1h", aggregation="sum", group_by=["endpoint"])

        by_endpoint = {p.tags["endpoint"]: p for p in result}
        assert set(by_endpoint) == {"/a", "/b", "unknown"}
        assert by_endpoint["/a"].value == 30.0
        assert by_endpoint["/a"].metadata["original_count"] == 2
        assert by_endpoint["/a"].metadata["aggregation"] == "sum"
        assert by_endpoint["unknown"].value == 40.0
        assert all(p.timestamp == clock.now for p in result)

    def test_group_by_multiple_tags(self, populated):
        service, _ = populated
        result = service.query("http_requests_total", "1h", aggregation="count", group_by=["endpoint", "status"])
        assert len(result) == 4
        assert all(p.value == 1.0 for p in result)
        assert all(set(p.tags) == {"endpoint", "status"} for p in result)

    def test_group_by_invalid_aggregation(self, populated):
        service, _ = populated
        with pytest.raises(InvalidDefinitionError):
            service.query("http_requests_total", "1h", aggregation="median", group_by=["endpoint"])

    def test_explicit_time_range(self, populated, clock):
        service, points = populated
        window = TimeRange(points[1].timestamp, points[2].timestamp)
        assert service.query("http_requests_total", window) == points[1:3]

    def test_stats(self, populated):
        service, _ = populated
        service.query("http_requests_total", "1h")
        assert service.get_stats()["queries_total"] == 1
