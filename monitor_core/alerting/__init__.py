"""
Alert rules, condition evaluation and notification delivery.
"""

from monitor_core.alerting.models import (
    AlertCondition,
    AlertEvent,
    AlertRule,
    ChannelType,
    ConditionType,
    NotificationChannel,
    Operator,
    Severity,
)
from monitor_core.alerting.conditions import (
    DEFAULT_EVALUATORS,
    apply_operator,
    evaluate_condition,
)
from monitor_core.alerting.notifications import (
    BaseNotifier,
    LoggingNotifier,
    Notification,
    NotificationDispatcher,
    SlackNotifier,
    WebhookNotifier,
)
from monitor_core.alerting.engine import AlertRuleEngine

__all__ = [
    "AlertCondition",
    "AlertEvent",
    "AlertRule",
    "ChannelType",
    "ConditionType",
    "NotificationChannel",
    "Operator",
    "Severity",
    "DEFAULT_EVALUATORS",
    "apply_operator",
    "evaluate_condition",
    "BaseNotifier",
    "LoggingNotifier",
    "Notification",
    "NotificationDispatcher",
    "SlackNotifier",
    "WebhookNotifier",
    "AlertRuleEngine",
]
