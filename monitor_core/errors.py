"""
Exception hierarchy for the monitoring engine.

Caller errors (unknown ids on mutating calls, malformed definitions) raise
one of these. Telemetry ingestion never raises; background loops log and
continue.
"""

from __future__ import annotations

from typing import Any


class MonitorError(Exception):
    """Base exception for monitoring engine errors."""


class NotFoundError(MonitorError, KeyError):
    """A referenced object does not exist."""

    kind = "object"

    def __init__(self, identifier: Any):
        self.identifier = identifier
        super().__init__(f"{self.kind.capitalize()} {identifier} not found")

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message.
        return self.args[0]


class MetricNotFoundError(NotFoundError):
    kind = "metric"


class AlertRuleNotFoundError(NotFoundError):
    kind = "alert rule"


class NotificationChannelNotFoundError(NotFoundError):
    kind = "notification channel"


class DashboardNotFoundError(NotFoundError):
    kind = "dashboard"


class InsightNotFoundError(NotFoundError):
    kind = "insight"


class InvalidDefinitionError(MonitorError, ValueError):
    """Registration input is malformed."""


class UnsupportedFormatError(MonitorError, ValueError):
    """Requested report format is not supported."""
