"""
System health tracker.

Each tick probes every component, derives component status from the probe
score, opens or resolves incidents on status transitions, recomputes the
overall score, shifts the trend ring and refreshes SLA status.
"""

from __future__ import annotations

import copy
import logging
import time
import uuid
from collections import OrderedDict, deque
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional

from monitor_core.config import HealthConfig
from monitor_core.events import EventBus, EventType, InProcessEventBus
from monitor_core.health.models import (
    TREND_KEYS,
    AvailabilitySLA,
    ComponentHealth,
    ComponentMetrics,
    ErrorRateSLA,
    HealthIncident,
    HealthStatus,
    IncidentStatus,
    LatencySLA,
    SLAStatus,
    SystemHealth,
)
from monitor_core.health.probes import HealthProbe, RandomWalkProbe
from monitor_core.utils.async_helpers import gather_with_concurrency
from monitor_core.utils.logging_config import log_duration

logger = logging.getLogger(__name__)

CRITICAL_COMPONENT_SCORE = 70.0
DEGRADED_COMPONENT_SCORE = 85.0


def component_status(score: float) -> HealthStatus:
    if score < CRITICAL_COMPONENT_SCORE:
        return HealthStatus.CRITICAL
    if score < DEGRADED_COMPONENT_SCORE:
        return HealthStatus.DEGRADED
    return HealthStatus.HEALTHY


def _mean(values: List[float]) -> float:
    return sum(values) / len(values)


class SystemHealthTracker:
    """
    Aggregates component probes into system health.

    Usage:
        tracker = SystemHealthTracker(HealthConfig())
        tracker.add_component("Database", dependencies=["Storage"])
        tracker.add_component("API", probe=HttpHealthProbe("http://api/health"))
        await tracker.check_once()
        snapshot = tracker.get_system_health()
    """

    def __init__(
        self,
        config: Optional[HealthConfig] = None,
        events: Optional[EventBus] = None,
        clock: Callable[[], float] = time.time,
        default_probe: Optional[HealthProbe] = None,
        max_resolved_incidents: int = 500,
    ):
        self.config = config or HealthConfig()
        self.events = events or InProcessEventBus()
        self._clock = clock
        self.default_probe = default_probe or RandomWalkProbe()

        now = clock()
        self._components: "OrderedDict[str, ComponentHealth]" = OrderedDict()
        self._probes: Dict[str, HealthProbe] = {}
        self._open_incidents: Dict[str, HealthIncident] = {}
        self._resolved: Deque[HealthIncident] = deque(maxlen=max_resolved_incidents)

        self._health = SystemHealth(
            overall=HealthStatus.HEALTHY,
            score=100.0,
            components=[],
            incidents=[],
            sla=SLAStatus(
                availability=AvailabilitySLA(target=self.config.sla_availability_target),
                latency=LatencySLA(target=self.config.sla_latency_target_ms),
                error_rate=ErrorRateSLA(target=self.config.sla_error_rate_target),
                period=self.config.sla_period,
                last_updated=now,
            ),
            trends={key: 100.0 for key in TREND_KEYS},
            last_checked=now,
        )
        self._checks = 0
        self._probe_failures = 0

    # =========================================================================
    # Components
    # =========================================================================

    def add_component(
        self,
        name: str,
        dependencies: Iterable[str] = (),
        probe: Optional[HealthProbe] = None,
        score: float = 100.0,
        metrics: Optional[ComponentMetrics] = None,
    ) -> ComponentHealth:
        """Track a component. Re-adding a name replaces its probe and dependencies."""
        existing = self._components.get(name)
        if existing is not None:
            existing.dependencies = list(dependencies)
            component = existing
        else:
            component = ComponentHealth(
                name=name,
                status=component_status(score),
                score=score,
                metrics=metrics or ComponentMetrics(),
                dependencies=list(dependencies),
                last_checked=self._clock(),
            )
            self._components[name] = component
            self._health.components.append(component)

        if probe is not None:
            self._probes[name] = probe
        logger.info(f"[Health] Tracking component {name}")
        return component

    def set_probe(self, name: str, probe: HealthProbe) -> None:
        self._probes[name] = probe

    def seed(self, sla: Optional[Dict[str, Any]] = None, trends: Optional[Dict[str, float]] = None) -> None:
        """Set initial SLA figures and trend values before the first tick."""
        if trends:
            self._health.trends.update({k: float(v) for k, v in trends.items() if k in TREND_KEYS})
        if sla:
            for section, target in (
                ("availability", self._health.sla.availability),
                ("latency", self._health.sla.latency),
                ("error_rate", self._health.sla.error_rate),
            ):
                for key, value in sla.get(section, {}).items():
                    if hasattr(target, key):
                        setattr(target, key, value)
            if "period" in sla:
                self._health.sla.period = sla["period"]

    # =========================================================================
    # Checking
    # =========================================================================

    @log_duration(logger, message="[Health] Check pass")
    async def check_once(self) -> SystemHealth:
        """Probe every component and recompute system health."""
        self._checks += 1
        components = list(self._components.values())

        await gather_with_concurrency(
            [self._check_component(c) for c in components],
            max_concurrent=max(1, len(components)),
        )

        now = self._clock()
        health = self._health
        health.last_checked = now

        if components:
            health.score = _mean([c.score for c in components])
            if health.score >= self.config.healthy_score:
                health.overall = HealthStatus.HEALTHY
            elif health.score >= self.config.degraded_score:
                health.overall = HealthStatus.DEGRADED
            else:
                health.overall = HealthStatus.CRITICAL
            self._update_sla(components, now)
        else:
            health.score = 0.0
            health.overall = HealthStatus.CRITICAL

        trends = health.trends
        trends["30d"] = trends["7d"]
        trends["7d"] = trends["24h"]
        trends["24h"] = trends["1h"]
        trends["1h"] = health.score

        health.incidents = list(self._open_incidents.values())

        logger.debug(f"[Health] Overall {health.overall.value} ({health.score:.1f})")
        self.events.emit(
            EventType.SYSTEM_HEALTH_UPDATED,
            overall=health.overall.value,
            score=health.score,
            component_count=len(components),
            open_incidents=len(health.incidents),
        )
        return self.get_system_health()

    async def _check_component(self, component: ComponentHealth) -> None:
        probe = self._probes.get(component.name, self.default_probe)
        previous = component.status

        try:
            result = await probe.check(component)
        except Exception as e:
            self._probe_failures += 1
            logger.error(f"[Health] Probe failed for {component.name}: {e}")
            component.status = HealthStatus.UNKNOWN
            component.last_error = str(e)
        else:
            component.score = _clamp_score(result.score)
            component.metrics = result.metrics
            component.status = component_status(component.score)
            component.last_error = None

        now = self._clock()
        component.last_checked = now
        if component.status != previous:
            logger.info(f"[Health] {component.name}: {previous.value} -> {component.status.value}")
        self._track_incident(component, previous, now)

    # =========================================================================
    # Incidents
    # =========================================================================

    def _track_incident(self, component: ComponentHealth, previous: HealthStatus, now: float) -> None:
        status = component.status
        incident = self._open_incidents.get(component.name)

        if status in (HealthStatus.CRITICAL, HealthStatus.UNKNOWN):
            if incident is None:
                incident = HealthIncident(
                    id=f"incident_{uuid.uuid4().hex[:12]}",
                    title=f"{component.name} is {status.value}",
                    description=component.last_error or f"{component.name} health score {component.score:.1f}",
                    severity="critical" if status == HealthStatus.CRITICAL else "high",
                    components=[component.name],
                    start_time=now,
                    impact=f"Dependents: {', '.join(self._dependents(component.name)) or 'none'}",
                )
                incident.add_update(f"{component.name} entered {status.value}", now)
                self._open_incidents[component.name] = incident
                component.incidents += 1
                logger.warning(f"[Health] Incident opened: {incident.title}")
            elif status != previous:
                incident.status = IncidentStatus.INVESTIGATING
                incident.add_update(f"{component.name} is now {status.value}", now)

        elif status == HealthStatus.HEALTHY:
            if incident is not None:
                incident.resolve(f"{component.name} recovered (score {component.score:.1f})", now)
                del self._open_incidents[component.name]
                self._resolved.append(incident)
                logger.info(f"[Health] Incident resolved: {incident.title}")

        elif incident is not None and status != previous:
            # Degraded after critical/unknown: recovering but not yet healthy
            incident.status = IncidentStatus.MONITORING
            incident.add_update(f"{component.name} improved to {status.value}", now)

    def _dependents(self, name: str) -> List[str]:
        return [c.name for c in self._components.values() if name in c.dependencies]

    def get_incidents(self, include_resolved: bool = False) -> List[HealthIncident]:
        incidents = list(self._open_incidents.values())
        if include_resolved:
            incidents = list(self._resolved) + incidents
        return copy.deepcopy(incidents)

    # =========================================================================
    # SLA
    # =========================================================================

    def _update_sla(self, components: List[ComponentHealth], now: float) -> None:
        sla = self._health.sla

        availability = _mean([c.metrics.availability for c in components])
        sla.availability.current = availability
        sla.availability.remaining = max(0.0, sla.availability.target - availability)
        sla.availability.trend = (
            "improving" if availability > 99.5 else "degrading" if availability < 99.0 else "stable"
        )

        latency = _mean([c.metrics.latency for c in components])
        sla.latency.current = latency
        sla.latency.p95 = latency * 1.5
        sla.latency.p99 = latency * 2.5
        sla.latency.trend = "improving" if latency < 100 else "degrading" if latency > 300 else "stable"

        error_rate = _mean([c.metrics.error_rate for c in components])
        sla.error_rate.current = error_rate
        sla.error_rate.trend = (
            "improving" if error_rate < 0.5 else "degrading" if error_rate > 2.0 else "stable"
        )

        sla.last_updated = now

    # =========================================================================
    # Read API
    # =========================================================================

    def get_system_health(self) -> SystemHealth:
        """Deep copy of the current health; safe to hold across ticks."""
        return copy.deepcopy(self._health)

    async def close(self) -> None:
        probes = set(self._probes.values())
        probes.add(self.default_probe)
        for probe in probes:
            try:
                await probe.close()
            except Exception as e:
                logger.error(f"[Health] Error closing probe: {e}")

    def get_stats(self) -> Dict[str, Any]:
        return {
            "components": len(self._components),
            "checks": self._checks,
            "probe_failures": self._probe_failures,
            "open_incidents": len(self._open_incidents),
            "resolved_incidents": len(self._resolved),
            "overall": self._health.overall.value,
            "score": round(self._health.score, 2),
        }


def _clamp_score(score: float) -> float:
    return max(0.0, min(100.0, float(score)))
