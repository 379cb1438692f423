"""
Component probes, incidents and SLA tracking.
"""

from monitor_core.health.models import (
    ComponentHealth,
    ComponentMetrics,
    HealthIncident,
    HealthStatus,
    IncidentStatus,
    IncidentUpdate,
    SLAStatus,
    SystemHealth,
)
from monitor_core.health.probes import (
    HealthProbe,
    HostResourceProbe,
    HttpHealthProbe,
    ProbeResult,
    RandomWalkProbe,
)
from monitor_core.health.tracker import SystemHealthTracker, component_status

__all__ = [
    "ComponentHealth",
    "ComponentMetrics",
    "HealthIncident",
    "HealthStatus",
    "IncidentStatus",
    "IncidentUpdate",
    "SLAStatus",
    "SystemHealth",
    "HealthProbe",
    "HostResourceProbe",
    "HttpHealthProbe",
    "ProbeResult",
    "RandomWalkProbe",
    "SystemHealthTracker",
    "component_status",
]
