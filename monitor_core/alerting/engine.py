"""
Alert rule engine.

Rules are evaluated against a metric's retained series every time that
metric is flushed. A rule fires when its condition holds over the
configured window and it has not fired within its own frequency.
Delivery is handed to the notification dispatcher without waiting.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional, Sequence, Union

from monitor_core.alerting.conditions import (
    DEFAULT_EVALUATORS,
    ConditionEvaluator,
    evaluate_condition,
)
from monitor_core.alerting.models import AlertEvent, AlertRule, ConditionType
from monitor_core.alerting.notifications import NotificationDispatcher
from monitor_core.config import AlertingConfig
from monitor_core.errors import AlertRuleNotFoundError
from monitor_core.events import EventBus, EventType, InProcessEventBus
from monitor_core.metrics.models import DataPoint, Metric

logger = logging.getLogger(__name__)


class AlertRuleEngine:
    """
    Holds alert rules and evaluates them on flush.

    Usage:
        engine = AlertRuleEngine(dispatcher)
        engine.create_rule("high-cpu", {
            "name": "High CPU Usage",
            "metric": "system_cpu_usage",
            "condition": {"type": "threshold", "operator": "gt", "value": 80,
                          "time_window_seconds": 300, "aggregation": "avg"},
            "severity": "high",
            "frequency_seconds": 60,
        })
        events = engine.evaluate(metric, store.snapshot(metric.id), now)
    """

    def __init__(
        self,
        dispatcher: Optional[NotificationDispatcher] = None,
        events: Optional[EventBus] = None,
        config: Optional[AlertingConfig] = None,
        clock: Callable[[], float] = time.time,
        evaluators: Optional[Mapping[ConditionType, ConditionEvaluator]] = None,
        history_size: int = 1000,
    ):
        self.config = config or AlertingConfig()
        self.dispatcher = dispatcher or NotificationDispatcher(self.config)
        self.events = events or InProcessEventBus()
        self._clock = clock
        self._evaluators: Dict[ConditionType, ConditionEvaluator] = dict(DEFAULT_EVALUATORS)
        if evaluators:
            self._evaluators.update(evaluators)

        self._rules: Dict[str, AlertRule] = {}
        self._unmute_handles: Dict[str, asyncio.TimerHandle] = {}
        self._history: Deque[AlertEvent] = deque(maxlen=history_size)
        self._evaluations = 0
        self._errors = 0

    def register_evaluator(self, condition_type: ConditionType, evaluator: ConditionEvaluator) -> None:
        """Install or replace the evaluator for a condition type."""
        self._evaluators[condition_type] = evaluator

    # =========================================================================
    # Rule registry
    # =========================================================================

    def create_rule(self, rule_id: str, definition: Union[AlertRule, Mapping[str, Any]]) -> AlertRule:
        now = self._clock()
        if isinstance(definition, AlertRule):
            rule = definition
            rule.id = rule_id
        else:
            data = dict(definition)
            data.setdefault("frequency_seconds", data.pop("frequency", self.config.default_frequency_seconds))
            rule = AlertRule.from_dict(rule_id, data, now=now)

        self._rules[rule_id] = rule
        logger.info(f"[Alerts] Created rule {rule_id} ({rule.name}) on {rule.metric}")
        self.events.emit(EventType.ALERT_RULE_CREATED, rule_id=rule_id, rule=rule.to_dict())
        return rule

    def update_rule(self, rule_id: str, **changes: Any) -> AlertRule:
        current = self.get_rule(rule_id)
        data = current.to_dict()
        data.update(changes)
        data["created"] = current.created
        data["last_modified"] = self._clock()

        rule = AlertRule.from_dict(rule_id, data)
        self._rules[rule_id] = rule
        logger.info(f"[Alerts] Updated rule {rule_id}: {', '.join(sorted(changes))}")
        self.events.emit(EventType.ALERT_RULE_UPDATED, rule_id=rule_id, changes=sorted(changes))
        return rule

    def get_rule(self, rule_id: str) -> AlertRule:
        rule = self._rules.get(rule_id)
        if rule is None:
            raise AlertRuleNotFoundError(rule_id)
        return rule

    def list_rules(self) -> List[AlertRule]:
        return list(self._rules.values())

    def active_rules(self) -> List[AlertRule]:
        """Enabled rules that are not muted."""
        now = self._clock()
        for rule in self._rules.values():
            self._expire_mute(rule, now)
        return [rule for rule in self._rules.values() if rule.active]

    # =========================================================================
    # Muting
    # =========================================================================

    def mute(self, rule_id: str, duration_seconds: Optional[float] = None) -> AlertRule:
        """
        Mute a rule. With a duration the rule unmutes itself once it
        elapses; without one it stays muted until ``unmute``.
        """
        rule = self.get_rule(rule_id)
        now = self._clock()
        self._cancel_unmute(rule_id)

        rule.muted = True
        rule.muted_until = now + duration_seconds if duration_seconds else None
        rule.last_modified = now

        if duration_seconds:
            try:
                loop = asyncio.get_running_loop()
                self._unmute_handles[rule_id] = loop.call_later(
                    duration_seconds, self._auto_unmute, rule_id
                )
            except RuntimeError:
                # No loop: muted_until is checked at evaluation time
                pass

        logger.info(
            f"[Alerts] Muted rule {rule_id}"
            + (f" for {duration_seconds}s" if duration_seconds else "")
        )
        self.events.emit(
            EventType.ALERT_RULE_MUTED,
            rule_id=rule_id,
            duration_seconds=duration_seconds,
            muted_until=rule.muted_until,
        )
        return rule

    def unmute(self, rule_id: str) -> AlertRule:
        rule = self.get_rule(rule_id)
        self._cancel_unmute(rule_id)
        was_muted = rule.muted

        rule.muted = False
        rule.muted_until = None
        rule.last_modified = self._clock()

        if was_muted:
            logger.info(f"[Alerts] Unmuted rule {rule_id}")
            self.events.emit(EventType.ALERT_RULE_UNMUTED, rule_id=rule_id)
        return rule

    def _auto_unmute(self, rule_id: str) -> None:
        self._unmute_handles.pop(rule_id, None)
        if rule_id in self._rules and self._rules[rule_id].muted:
            self.unmute(rule_id)

    def _cancel_unmute(self, rule_id: str) -> None:
        handle = self._unmute_handles.pop(rule_id, None)
        if handle is not None:
            handle.cancel()

    def _expire_mute(self, rule: AlertRule, now: float) -> None:
        if rule.muted and rule.muted_until is not None and now >= rule.muted_until:
            self.unmute(rule.id)

    def cancel_pending(self) -> None:
        """Cancel scheduled auto-unmutes (engine shutdown)."""
        for handle in self._unmute_handles.values():
            handle.cancel()
        self._unmute_handles.clear()

    # =========================================================================
    # Evaluation
    # =========================================================================

    def evaluate(
        self,
        metric: Metric,
        points: Sequence[DataPoint],
        now: Optional[float] = None,
    ) -> List[AlertEvent]:
        """
        Evaluate every active rule targeting ``metric``.

        Returns the events fired by this evaluation.
        """
        now = self._clock() if now is None else now
        fired = []

        for rule in list(self._rules.values()):
            if not rule.enabled or not rule.targets(metric.id, metric.name):
                continue
            self._expire_mute(rule, now)
            if rule.muted:
                continue

            self._evaluations += 1
            try:
                event = self._evaluate_rule(rule, metric, points, now)
            except Exception as e:
                self._errors += 1
                logger.error(f"[Alerts] Rule {rule.id} evaluation failed: {e}")
                continue
            if event is not None:
                fired.append(event)

        return fired

    def _evaluate_rule(
        self,
        rule: AlertRule,
        metric: Metric,
        points: Sequence[DataPoint],
        now: float,
    ) -> Optional[AlertEvent]:
        condition = rule.condition
        window_start = now - condition.time_window_seconds
        window = [p for p in points if window_start <= p.timestamp <= now]

        observed = evaluate_condition(window, condition, self._evaluators)
        if observed is None:
            return None

        if rule.last_triggered is not None and now - rule.last_triggered < rule.frequency_seconds:
            return None

        return self._fire(rule, metric, observed, now)

    def _fire(self, rule: AlertRule, metric: Metric, observed: float, now: float) -> AlertEvent:
        rule.trigger_count += 1
        rule.last_triggered = now

        target = rule.condition.value
        if isinstance(target, tuple):
            target = f"[{target[0]}, {target[1]}]"
        event = AlertEvent(
            rule_id=rule.id,
            rule_name=rule.name,
            metric_id=metric.id,
            metric_name=metric.name,
            value=observed,
            severity=rule.severity,
            timestamp=now,
            message=(
                f"{rule.name}: {metric.name} {rule.condition.type.value} value "
                f"{observed:.2f} is {rule.condition.operator.value} {target}"
            ),
        )
        self._history.append(event)

        logger.warning(f"[Alerts] {event.message} (severity={rule.severity.value})")
        self.events.emit(EventType.ALERT_TRIGGERED, **event.to_dict())
        self.dispatcher.dispatch_nowait(event, rule.channels)
        return event

    def recent_alerts(self, limit: int = 100) -> List[AlertEvent]:
        return list(self._history)[-limit:]

    def get_stats(self) -> Dict[str, Any]:
        return {
            "rules": len(self._rules),
            "active_rules": sum(1 for r in self._rules.values() if r.active),
            "evaluations": self._evaluations,
            "evaluation_errors": self._errors,
            "alerts_fired": sum(r.trigger_count for r in self._rules.values()),
            "pending_unmutes": len(self._unmute_handles),
        }
