"""
Default catalog.

Metrics, alert rules, notification channels, dashboards and health
components the engine registers at construction when
``MonitorConfig.load_defaults`` is set. Every function returns fresh
objects so callers may mutate the result.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from monitor_core.config import AlertingConfig
from monitor_core.health.models import ComponentMetrics
from monitor_core.metrics.models import MetricDefinition

SYSTEM_RETENTION = 86400
BUSINESS_RETENTION = 604800


def default_metrics() -> List[MetricDefinition]:
    return [
        MetricDefinition(
            name="system_cpu_usage",
            type="gauge",
            unit="%",
            description="CPU usage percentage",
            labels=["host", "cpu"],
            aggregation="avg",
            retention_seconds=SYSTEM_RETENTION,
            source="system",
            category="system",
            priority="high",
        ),
        MetricDefinition(
            name="system_memory_usage",
            type="gauge",
            unit="%",
            description="Memory usage percentage",
            labels=["host", "type"],
            aggregation="avg",
            retention_seconds=SYSTEM_RETENTION,
            source="system",
            category="system",
            priority="high",
        ),
        MetricDefinition(
            name="http_requests_total",
            type="counter",
            unit="requests",
            description="Total HTTP requests",
            labels=["method", "status", "endpoint"],
            aggregation="sum",
            retention_seconds=SYSTEM_RETENTION,
            source="application",
            category="application",
            priority="high",
        ),
        MetricDefinition(
            name="http_request_duration",
            type="histogram",
            unit="ms",
            description="HTTP request duration",
            labels=["method", "endpoint"],
            aggregation="avg",
            retention_seconds=SYSTEM_RETENTION,
            source="application",
            category="application",
            priority="high",
        ),
        MetricDefinition(
            name="database_connections",
            type="gauge",
            unit="connections",
            description="Active database connections",
            labels=["database", "pool"],
            aggregation="sum",
            retention_seconds=SYSTEM_RETENTION,
            source="database",
            category="database",
            priority="medium",
        ),
        MetricDefinition(
            name="business_revenue",
            type="counter",
            unit="usd",
            description="Total revenue generated",
            labels=["currency", "region"],
            aggregation="sum",
            retention_seconds=BUSINESS_RETENTION,
            source="business",
            category="business",
            priority="critical",
        ),
    ]


def default_alert_rules(channels: Optional[List[str]] = None) -> Dict[str, Dict[str, Any]]:
    """Rule definitions keyed by rule id. Rules target metrics by name."""
    channels = list(channels or [])
    return {
        "high-cpu": {
            "name": "High CPU Usage",
            "description": "CPU usage is above 80% for more than 5 minutes",
            "metric": "system_cpu_usage",
            "condition": {
                "type": "threshold",
                "operator": "gt",
                "value": 80,
                "duration_seconds": 300,
                "time_window_seconds": 300,
                "aggregation": "avg",
            },
            "severity": "high",
            "frequency_seconds": 60,
            "channels": list(channels),
        },
        "high-memory": {
            "name": "High Memory Usage",
            "description": "Memory usage is above 85% for more than 3 minutes",
            "metric": "system_memory_usage",
            "condition": {
                "type": "threshold",
                "operator": "gt",
                "value": 85,
                "duration_seconds": 180,
                "time_window_seconds": 180,
                "aggregation": "avg",
            },
            "severity": "high",
            "frequency_seconds": 60,
            "channels": list(channels),
        },
        "high-error-rate": {
            "name": "High Error Rate",
            "description": "Error rate is above 5% for more than 2 minutes",
            "metric": "http_requests_total",
            "condition": {
                "type": "threshold",
                "operator": "gt",
                "value": 5,
                "duration_seconds": 120,
                "time_window_seconds": 120,
                "aggregation": "avg",
            },
            "severity": "critical",
            "frequency_seconds": 30,
            "channels": list(channels),
        },
    }


def default_notification_channels(config: Optional[AlertingConfig] = None) -> Dict[str, Dict[str, Any]]:
    """
    Email, Slack and webhook channels. Credentials and URLs come from
    configuration; a channel without its destination starts disabled.
    """
    config = config or AlertingConfig()
    return {
        "email-alerts": {
            "type": "email",
            "config": {"to": list(config.email_recipients)},
            "enabled": bool(config.email_recipients),
        },
        "slack-alerts": {
            "type": "slack",
            "config": {
                "webhook_url": config.slack_webhook_url,
                "channel": config.slack_channel or "#alerts",
                "username": "monitor-core",
            },
            "enabled": bool(config.slack_webhook_url),
        },
        "webhook-alerts": {
            "type": "webhook",
            "config": {
                "url": config.webhook_url,
                "method": "POST",
                "headers": {"Content-Type": "application/json"},
            },
            "enabled": bool(config.webhook_url),
        },
    }


def _query(query_id: str, metric: str, aggregation: str, group_by=(), filters=None, time_range: str = "1h"):
    return {
        "id": query_id,
        "metric": metric,
        "filters": dict(filters or {}),
        "group_by": list(group_by),
        "aggregation": aggregation,
        "time_range": time_range,
    }


def default_dashboards() -> Dict[str, Dict[str, Any]]:
    return {
        "system-overview": {
            "name": "System Overview",
            "description": "High-level system metrics and health status",
            "category": "system",
            "tags": ["system", "overview", "default"],
            "time_range": "1h",
            "refresh_interval_seconds": 30,
            "widgets": [
                {
                    "id": "cpu-usage", "type": "chart", "title": "CPU Usage",
                    "queries": [_query("cpu-query", "system_cpu_usage", "avg", ["host"])],
                },
                {
                    "id": "memory-usage", "type": "chart", "title": "Memory Usage",
                    "queries": [_query("memory-query", "system_memory_usage", "avg", ["host", "type"])],
                },
                {
                    "id": "request-rate", "type": "stat", "title": "Request Rate",
                    "queries": [_query("request-rate-query", "http_requests_total", "rate", time_range="5m")],
                },
                {
                    "id": "error-rate", "type": "gauge", "title": "Error Rate",
                    "queries": [_query(
                        "error-rate-query", "http_requests_total", "rate",
                        filters={"status": "5xx"}, time_range="5m",
                    )],
                },
            ],
        },
        "app-performance": {
            "name": "Application Performance",
            "description": "Application-specific performance metrics",
            "category": "application",
            "tags": ["application", "performance"],
            "time_range": "1h",
            "refresh_interval_seconds": 30,
            "widgets": [
                {
                    "id": "response-time", "type": "chart", "title": "Response Time",
                    "queries": [_query("response-time-query", "http_request_duration", "avg", ["endpoint"])],
                },
                {
                    "id": "throughput", "type": "chart", "title": "Request Throughput",
                    "queries": [_query("throughput-query", "http_requests_total", "rate", ["endpoint"])],
                },
            ],
        },
        "business-metrics": {
            "name": "Business Metrics",
            "description": "Key business performance indicators",
            "category": "business",
            "tags": ["business", "revenue", "kpi"],
            "time_range": "24h",
            "refresh_interval_seconds": 300,
            "widgets": [
                {
                    "id": "revenue", "type": "stat", "title": "Total Revenue",
                    "queries": [_query("revenue-query", "business_revenue", "sum", time_range="24h")],
                },
            ],
        },
    }


def default_components() -> List[Dict[str, Any]]:
    return [
        {
            "name": "Web Application",
            "score": 100.0,
            "dependencies": ["Database", "Cache", "CDN"],
            "metrics": ComponentMetrics(availability=99.9, latency=120, error_rate=0.1, throughput=1500),
        },
        {
            "name": "Database",
            "score": 98.0,
            "dependencies": ["Storage"],
            "metrics": ComponentMetrics(availability=99.8, latency=25, error_rate=0.2, throughput=2000),
        },
        {
            "name": "Cache",
            "score": 99.0,
            "dependencies": [],
            "metrics": ComponentMetrics(availability=99.9, latency=5, error_rate=0.05, throughput=5000),
        },
    ]


def default_health_seed() -> Dict[str, Any]:
    """Initial SLA figures and trend ring shown before the first health tick."""
    return {
        "sla": {
            "availability": {"current": 99.95, "remaining": 0.05, "trend": "stable"},
            "latency": {"current": 150.0, "p95": 250.0, "p99": 500.0, "trend": "improving"},
            "error_rate": {"current": 0.2, "trend": "improving"},
        },
        "trends": {"1h": 100.0, "24h": 99.8, "7d": 99.5, "30d": 99.2},
    }
