"""
Component health probes.

A probe measures one component and returns a score (0-100) plus the four
component metrics. Probes that cannot measure raise; the tracker marks
the component unknown.

Provides:
- RandomWalkProbe: synthetic scores for demos and tests
- HttpHealthProbe: HTTP health endpoint with rolling availability
- HostResourceProbe: local CPU and memory headroom via psutil
"""

from __future__ import annotations

import asyncio
import logging
import random
import statistics
import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, Optional

from monitor_core.health.models import ComponentHealth, ComponentMetrics

logger = logging.getLogger(__name__)


@dataclass
class ProbeResult:
    score: float
    metrics: ComponentMetrics
    message: str = ""


class HealthProbe(ABC):
    """Measures a component."""

    @abstractmethod
    async def check(self, component: ComponentHealth) -> ProbeResult:
        """Return the component's current score and metrics."""

    async def close(self) -> None:
        """Release resources."""


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


class RandomWalkProbe(HealthProbe):
    """
    Synthetic probe: score uniformly within 5 points of 95, metrics loosely
    derived from the score. Stands in for real checks in demos and tests.
    """

    def __init__(self, rng: Optional[random.Random] = None, base_score: float = 95.0, spread: float = 5.0):
        self._rng = rng or random.Random()
        self.base_score = base_score
        self.spread = spread

    async def check(self, component: ComponentHealth) -> ProbeResult:
        rng = self._rng
        score = _clamp(self.base_score + rng.uniform(-self.spread, self.spread))
        metrics = ComponentMetrics(
            availability=max(90.0, score + rng.random() * 5),
            latency=max(1.0, 50 + rng.random() * 100),
            error_rate=max(0.0, (100 - score) / 50 + rng.random() * 0.5),
            throughput=max(100.0, 1000 + rng.random() * 2000),
        )
        return ProbeResult(score=score, metrics=metrics)


class HttpHealthProbe(HealthProbe):
    """
    HTTP health endpoint probe.

    Availability and error rate are rolling over the last ``window``
    checks. Latency above ``degraded_latency_ms`` costs score. After
    ``failure_threshold`` consecutive failures the circuit opens and the
    endpoint is not called again until ``circuit_reset_seconds`` pass.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        degraded_latency_ms: float = 1000.0,
        window: int = 100,
        failure_threshold: int = 3,
        circuit_reset_seconds: float = 30.0,
    ):
        self.url = url
        self.timeout = timeout
        self.degraded_latency_ms = degraded_latency_ms
        self.failure_threshold = failure_threshold
        self.circuit_reset_seconds = circuit_reset_seconds

        self._outcomes: Deque[bool] = deque(maxlen=window)
        self._latencies: Deque[float] = deque(maxlen=window)
        self._consecutive_failures = 0
        self._circuit_opened_at: Optional[float] = None
        self._session = None

    async def _get_session(self):
        """Get or create aiohttp session."""
        if self._session is None:
            import aiohttp
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session

    @property
    def circuit_open(self) -> bool:
        if self._circuit_opened_at is None:
            return False
        if time.monotonic() - self._circuit_opened_at > self.circuit_reset_seconds:
            # Half-open: allow one attempt
            return False
        return True

    async def check(self, component: ComponentHealth) -> ProbeResult:
        if self.circuit_open:
            return self._result(0.0, "Circuit breaker open")

        start = time.monotonic()
        try:
            session = await self._get_session()
            async with session.get(self.url) as response:
                latency_ms = (time.monotonic() - start) * 1000
                ok = response.status == 200
                try:
                    data = await response.json() if ok else {}
                except Exception:
                    data = {}
        except asyncio.TimeoutError:
            latency_ms = self.timeout * 1000
            ok, data = False, {}
            logger.warning(f"[Health] {component.name}: timeout after {self.timeout}s")
        except Exception as e:
            latency_ms = (time.monotonic() - start) * 1000
            ok, data = False, {}
            logger.warning(f"[Health] {component.name}: {e}")

        self._outcomes.append(ok)
        self._latencies.append(latency_ms)

        if ok:
            self._consecutive_failures = 0
            self._circuit_opened_at = None
            penalty = max(0.0, latency_ms - self.degraded_latency_ms) / 100.0
            score = _clamp(self._availability() - penalty)
            return self._result(score, str(data.get("status", "OK")) if isinstance(data, dict) else "OK", data)

        self._consecutive_failures += 1
        if self._consecutive_failures >= self.failure_threshold:
            self._circuit_opened_at = time.monotonic()
        return self._result(0.0, "Health endpoint unavailable")

    def _availability(self) -> float:
        if not self._outcomes:
            return 100.0
        return 100.0 * sum(self._outcomes) / len(self._outcomes)

    def _result(self, score: float, message: str, data: Optional[Dict[str, Any]] = None) -> ProbeResult:
        availability = self._availability()
        throughput = 0.0
        if isinstance(data, dict) and isinstance(data.get("throughput"), (int, float)):
            throughput = float(data["throughput"])
        return ProbeResult(
            score=score,
            metrics=ComponentMetrics(
                availability=availability,
                latency=statistics.mean(self._latencies) if self._latencies else 0.0,
                error_rate=100.0 - availability,
                throughput=throughput,
            ),
            message=message,
        )

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None


class HostResourceProbe(HealthProbe):
    """
    Local host headroom.

    Score is 100 up to 50% utilisation of the busier of CPU and memory and
    drops linearly to 0 at full utilisation.
    """

    def __init__(self, healthy_utilisation: float = 50.0):
        self.healthy_utilisation = healthy_utilisation

    async def check(self, component: ComponentHealth) -> ProbeResult:
        import psutil

        cpu = psutil.cpu_percent(interval=None)
        memory = psutil.virtual_memory().percent
        busiest = max(cpu, memory)

        headroom = 100.0 - self.healthy_utilisation
        score = _clamp(100.0 - max(0.0, busiest - self.healthy_utilisation) * (100.0 / headroom))
        return ProbeResult(
            score=score,
            metrics=ComponentMetrics(
                availability=100.0,
                latency=0.0,
                error_rate=0.0,
                throughput=0.0,
                extra={"cpu_percent": cpu, "memory_percent": memory},
            ),
            message=f"cpu={cpu:.1f}% memory={memory:.1f}%",
        )
