"""
Shared pytest fixtures for the monitor-core test suite.

Provides:
- A controllable clock
- Configs with and without the default catalog
- Engines, stores and buses wired to the fake clock
- Fixed-score health probes
"""

from typing import List, Optional

import pytest

from monitor_core.config import MonitorConfig
from monitor_core.engine import MonitoringEngine
from monitor_core.events import InProcessEventBus
from monitor_core.health.models import ComponentHealth, ComponentMetrics
from monitor_core.health.probes import HealthProbe, ProbeResult
from monitor_core.metrics.models import DataPoint
from monitor_core.metrics.store import InMemoryMetricStore

START_TIME = 1_700_000_000.0


# ============================================================================
# CLOCK
# ============================================================================

class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: float = START_TIME):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ============================================================================
# CONFIG / ENGINE FIXTURES
# ============================================================================

@pytest.fixture
def config() -> MonitorConfig:
    """Empty catalog, no delivery endpoints."""
    config = MonitorConfig()
    config.load_defaults = False
    config.alerting.slack_webhook_url = None
    config.alerting.webhook_url = None
    config.alerting.notification_timeout_seconds = 0.5
    return config


@pytest.fixture
def default_config(config) -> MonitorConfig:
    config.load_defaults = True
    return config


@pytest.fixture
def bus() -> InProcessEventBus:
    return InProcessEventBus()


@pytest.fixture
def store() -> InMemoryMetricStore:
    return InMemoryMetricStore()


@pytest.fixture
def engine(config, clock, bus) -> MonitoringEngine:
    return MonitoringEngine(config, events=bus, clock=clock, default_probe=FixedProbe(100.0))


@pytest.fixture
def default_engine(default_config, clock, bus) -> MonitoringEngine:
    return MonitoringEngine(default_config, events=bus, clock=clock, default_probe=FixedProbe(100.0))


# ============================================================================
# HEALTH PROBES
# ============================================================================

class FixedProbe(HealthProbe):
    """Returns a fixed score; ``scores`` overrides it tick by tick."""

    def __init__(self, score: float, scores: Optional[List[float]] = None):
        self.score = score
        self.scores = list(scores or [])
        self.calls = 0
        self.closed = False

    async def check(self, component: ComponentHealth) -> ProbeResult:
        self.calls += 1
        score = self.scores.pop(0) if self.scores else self.score
        return ProbeResult(
            score=score,
            metrics=ComponentMetrics(availability=99.9, latency=50.0, error_rate=0.1, throughput=100.0),
        )

    async def close(self) -> None:
        self.closed = True


class FailingProbe(HealthProbe):
    async def check(self, component: ComponentHealth) -> ProbeResult:
        raise ConnectionError("probe unreachable")


# ============================================================================
# HELPERS
# ============================================================================

def make_points(values, start: float = START_TIME, step: float = 1.0, tags=None) -> List[DataPoint]:
    return [
        DataPoint(timestamp=start + i * step, value=float(v), tags=dict(tags or {}))
        for i, v in enumerate(values)
    ]
