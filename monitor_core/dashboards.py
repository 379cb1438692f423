"""
Dashboard definitions and report generation.

Dashboards are external configuration: the engine stores them so reports
have something to run and so create/update/delete can be announced on the
event bus. Rendering is out of scope.
"""

from __future__ import annotations

import csv
import io
import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from monitor_core.errors import DashboardNotFoundError, InvalidDefinitionError, UnsupportedFormatError
from monitor_core.events import EventBus, EventType, InProcessEventBus
from monitor_core.metrics.models import Aggregation, TimeRange, parse_enum
from monitor_core.metrics.query import MetricQueryService

logger = logging.getLogger(__name__)

REPORT_FORMATS = ("json", "csv")


@dataclass
class MetricQuery:
    id: str
    metric: str
    filters: Dict[str, str] = field(default_factory=dict)
    group_by: List[str] = field(default_factory=list)
    aggregation: Aggregation = Aggregation.AVG
    time_range: str = "1h"
    enabled: bool = True

    def __post_init__(self):
        self.aggregation = parse_enum(Aggregation, self.aggregation, "aggregation")
        self.filters = dict(self.filters)
        self.group_by = list(self.group_by)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MetricQuery":
        data = dict(data)
        if "groupBy" in data:
            data.setdefault("group_by", data.pop("groupBy"))
        time_range = data.get("time_range", data.pop("timeRange", None))
        if isinstance(time_range, Mapping):
            data["time_range"] = str(time_range.get("from", "1h"))
        known = cls.__dataclass_fields__
        return cls(**{k: v for k, v in data.items() if k in known})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "metric": self.metric,
            "filters": dict(self.filters),
            "group_by": list(self.group_by),
            "aggregation": self.aggregation.value,
            "time_range": self.time_range,
            "enabled": self.enabled,
        }


@dataclass
class Widget:
    id: str
    type: str
    title: str
    queries: List[MetricQuery] = field(default_factory=list)
    config: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Widget":
        return cls(
            id=data["id"],
            type=data.get("type", "chart"),
            title=data.get("title", data["id"]),
            queries=[
                q if isinstance(q, MetricQuery) else MetricQuery.from_dict(q)
                for q in data.get("queries", [])
            ],
            config=dict(data.get("config", {})),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "queries": [q.to_dict() for q in self.queries],
            "config": dict(self.config),
        }


@dataclass
class Dashboard:
    id: str
    name: str
    description: str = ""
    category: str = "custom"
    widgets: List[Widget] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    owner: str = "system"
    layout: Dict[str, Any] = field(default_factory=dict)
    time_range: str = "1h"
    refresh_interval_seconds: float = 30.0
    created: float = field(default_factory=time.time)
    last_modified: float = field(default_factory=time.time)

    @classmethod
    def from_dict(cls, dashboard_id: str, data: Mapping[str, Any], now: Optional[float] = None) -> "Dashboard":
        if not data.get("name"):
            raise InvalidDefinitionError(f"Dashboard {dashboard_id}: name is required")
        now = time.time() if now is None else now
        return cls(
            id=dashboard_id,
            name=data["name"],
            description=data.get("description", ""),
            category=data.get("category", "custom"),
            widgets=[
                w if isinstance(w, Widget) else Widget.from_dict(w)
                for w in data.get("widgets", [])
            ],
            tags=list(data.get("tags", [])),
            owner=data.get("owner", "system"),
            layout=dict(data.get("layout", {})),
            time_range=data.get("time_range", "1h"),
            refresh_interval_seconds=float(data.get("refresh_interval_seconds", 30.0)),
            created=data.get("created", now),
            last_modified=now,
        )

    def summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.summary(),
            "widgets": [w.to_dict() for w in self.widgets],
            "tags": list(self.tags),
            "owner": self.owner,
            "layout": dict(self.layout),
            "time_range": self.time_range,
            "refresh_interval_seconds": self.refresh_interval_seconds,
            "created": self.created,
            "last_modified": self.last_modified,
        }


class DashboardRegistry:
    """In-memory dashboard definitions."""

    def __init__(self, events: Optional[EventBus] = None, clock: Callable[[], float] = time.time):
        self.events = events or InProcessEventBus()
        self._clock = clock
        self._dashboards: Dict[str, Dashboard] = {}

    def create(self, dashboard_id: str, definition: Union[Dashboard, Mapping[str, Any]]) -> Dashboard:
        if isinstance(definition, Dashboard):
            dashboard = definition
            dashboard.id = dashboard_id
        else:
            dashboard = Dashboard.from_dict(dashboard_id, definition, now=self._clock())

        self._dashboards[dashboard_id] = dashboard
        logger.info(f"[Dashboards] Created {dashboard_id} ({len(dashboard.widgets)} widgets)")
        self.events.emit(
            EventType.DASHBOARD_CREATED,
            dashboard_id=dashboard_id,
            name=dashboard.name,
            category=dashboard.category,
            widget_count=len(dashboard.widgets),
        )
        return dashboard

    def update(self, dashboard_id: str, **changes: Any) -> Dashboard:
        current = self.get(dashboard_id)
        data = {
            "name": current.name,
            "description": current.description,
            "category": current.category,
            "widgets": current.widgets,
            "tags": current.tags,
            "owner": current.owner,
            "layout": current.layout,
            "time_range": current.time_range,
            "refresh_interval_seconds": current.refresh_interval_seconds,
            "created": current.created,
        }
        data.update(changes)
        dashboard = Dashboard.from_dict(dashboard_id, data, now=self._clock())

        self._dashboards[dashboard_id] = dashboard
        self.events.emit(EventType.DASHBOARD_UPDATED, dashboard_id=dashboard_id, updates=sorted(changes))
        return dashboard

    def delete(self, dashboard_id: str) -> Dashboard:
        dashboard = self.get(dashboard_id)
        del self._dashboards[dashboard_id]
        logger.info(f"[Dashboards] Deleted {dashboard_id}")
        self.events.emit(EventType.DASHBOARD_DELETED, dashboard_id=dashboard_id, name=dashboard.name)
        return dashboard

    def get(self, dashboard_id: str) -> Dashboard:
        dashboard = self._dashboards.get(dashboard_id)
        if dashboard is None:
            raise DashboardNotFoundError(dashboard_id)
        return dashboard

    def list(self) -> List[Dashboard]:
        return list(self._dashboards.values())

    def __len__(self) -> int:
        return len(self._dashboards)


class ReportGenerator:
    """
    Runs every enabled query of a dashboard over one time range.

    Usage:
        reports = ReportGenerator(registry, query_service)
        report = reports.generate("system-overview", "1h", format="csv")
        print(report["content"])
    """

    CSV_COLUMNS = ["widget_id", "query_id", "metric", "timestamp", "datetime", "value", "tags"]

    def __init__(
        self,
        registry: DashboardRegistry,
        query_service: MetricQueryService,
        clock: Callable[[], float] = time.time,
    ):
        self.registry = registry
        self.query_service = query_service
        self._clock = clock

    def generate(self, dashboard_id: str, time_range: Any, format: str = "json") -> Dict[str, Any]:
        if format not in REPORT_FORMATS:
            raise UnsupportedFormatError(
                f"Unsupported report format {format!r}; expected one of: {', '.join(REPORT_FORMATS)}"
            )
        dashboard = self.registry.get(dashboard_id)

        now = self._clock()
        window = TimeRange.resolve(time_range, now=now)

        widgets = []
        for widget in dashboard.widgets:
            queries = []
            for query in widget.queries:
                if not query.enabled:
                    continue
                points = self.query_service.query(
                    query.metric,
                    window,
                    aggregation=query.aggregation,
                    group_by=query.group_by,
                    filters=query.filters,
                )
                queries.append({
                    "id": query.id,
                    "metric": query.metric,
                    "data": [p.to_dict() for p in points],
                    "aggregation": query.aggregation.value,
                    "group_by": list(query.group_by),
                    "filters": dict(query.filters),
                })
            widgets.append({
                "id": widget.id,
                "title": widget.title,
                "type": widget.type,
                "queries": queries,
            })

        report = {
            "dashboard": dashboard.summary(),
            "format": format,
            "generated": now,
            "generated_at": datetime.fromtimestamp(now).isoformat(),
            "time_range": window.to_dict(),
            "widgets": widgets,
        }
        if format == "csv":
            report["content"] = self._to_csv(widgets)

        logger.info(f"[Reports] Generated {format} report for {dashboard_id}")
        return report

    def _to_csv(self, widgets: List[Dict[str, Any]]) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(self.CSV_COLUMNS)
        for widget in widgets:
            for query in widget["queries"]:
                for point in query["data"]:
                    writer.writerow([
                        widget["id"],
                        query["id"],
                        query["metric"],
                        point["timestamp"],
                        point["datetime"],
                        point["value"],
                        json.dumps(point["tags"], sort_keys=True),
                    ])
        return buffer.getvalue()
