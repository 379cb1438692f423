"""
Tests for notification delivery.

Covers:
- Channel registry (create, update, lookup, masking)
- Notifier selection per channel type and config fallbacks
- Per-channel failure and timeout isolation
- Fire-and-forget dispatch and shutdown
- Slack / webhook payloads with a mocked aiohttp session
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from monitor_core.alerting import (
    AlertEvent,
    BaseNotifier,
    LoggingNotifier,
    Notification,
    NotificationDispatcher,
    Severity,
    SlackNotifier,
    WebhookNotifier,
)
from monitor_core.alerting.models import ChannelType, NotificationChannel
from monitor_core.config import AlertingConfig
from monitor_core.errors import InvalidDefinitionError, NotificationChannelNotFoundError


def make_event(**overrides) -> AlertEvent:
    data = dict(
        rule_id="high-cpu",
        rule_name="High CPU Usage",
        metric_id="metric_system_cpu_usage",
        metric_name="system_cpu_usage",
        value=91.5,
        severity=Severity.HIGH,
        timestamp=1_700_000_000.0,
        message="High CPU Usage: system_cpu_usage threshold value 91.50 is gt 80.0",
    )
    data.update(overrides)
    return AlertEvent(**data)


def mock_session(status: int = 200) -> MagicMock:
    response = MagicMock()
    response.status = status
    session = MagicMock()
    session.post.return_value.__aenter__.return_value = response
    session.close = AsyncMock()
    return session


class RecordingNotifier(BaseNotifier):
    def __init__(self, result=True, delay=0.0, error=None):
        self.result = result
        self.delay = delay
        self.error = error
        self.sent = []
        self.closed = False

    async def send(self, notification):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        self.sent.append(notification)
        return self.result

    async def close(self):
        self.closed = True


@pytest.fixture
def alerting_config():
    return AlertingConfig(
        notification_timeout_seconds=0.2,
        slack_webhook_url=None,
        slack_channel=None,
        webhook_url=None,
    )


@pytest.fixture
def dispatcher(alerting_config):
    return NotificationDispatcher(alerting_config)


# ============================================================================
# CHANNEL REGISTRY
# ============================================================================

class TestChannelRegistry:
    def test_create_and_get(self, dispatcher):
        channel = dispatcher.create_channel("ops", {"type": "webhook", "config": {"url": "https://x"}})
        assert channel.type == ChannelType.WEBHOOK
        assert channel.name == "ops"
        assert dispatcher.get_channel("ops") is channel

    def test_invalid_type(self, dispatcher):
        with pytest.raises(InvalidDefinitionError):
            dispatcher.create_channel("ops", {"type": "carrier-pigeon"})

    def test_update_channel(self, dispatcher):
        dispatcher.create_channel("ops", {"type": "email", "config": {"to": ["a@example.com"]}})
        updated = dispatcher.update_channel("ops", enabled=False)
        assert updated.enabled is False
        assert updated.config == {"to": ["a@example.com"]}

    def test_unknown_channel(self, dispatcher):
        with pytest.raises(NotificationChannelNotFoundError):
            dispatcher.get_channel("missing")
        with pytest.raises(NotificationChannelNotFoundError):
            dispatcher.update_channel("missing", enabled=True)

    def test_to_dict_masks_secrets(self):
        channel = NotificationChannel("s", "slack", config={"webhook_url": "https://secret", "channel": "#ops"})
        assert channel.to_dict()["config"] == {"webhook_url": "***", "channel": "#ops"}


# ============================================================================
# NOTIFIER SELECTION
# ============================================================================

class TestNotifierSelection:
    def test_slack_with_url(self, dispatcher):
        channel = dispatcher.create_channel("s", {"type": "slack", "config": {"webhook_url": "https://hooks"}})
        notifier = dispatcher._notifier_for(channel)
        assert isinstance(notifier, SlackNotifier)
        assert notifier.webhook_url == "https://hooks"

    def test_slack_falls_back_to_config_url(self, alerting_config):
        alerting_config.slack_webhook_url = "https://from-config"
        alerting_config.slack_channel = "#alerts"
        dispatcher = NotificationDispatcher(alerting_config)
        channel = dispatcher.create_channel("s", {"type": "slack"})
        notifier = dispatcher._notifier_for(channel)
        assert notifier.webhook_url == "https://from-config"
        assert notifier.channel == "#alerts"

    def test_without_destination_logs_only(self, dispatcher):
        slack = dispatcher.create_channel("s", {"type": "slack"})
        hook = dispatcher.create_channel("w", {"type": "webhook"})
        email = dispatcher.create_channel("e", {"type": "email"})
        for channel in (slack, hook, email):
            assert isinstance(dispatcher._notifier_for(channel), LoggingNotifier)

    def test_notifier_cached_until_update(self, dispatcher):
        dispatcher.create_channel("w", {"type": "webhook", "config": {"url": "https://a"}})
        first = dispatcher._notifier_for(dispatcher.get_channel("w"))
        assert dispatcher._notifier_for(dispatcher.get_channel("w")) is first

        dispatcher.update_channel("w", config={"url": "https://b"})
        second = dispatcher._notifier_for(dispatcher.get_channel("w"))
        assert second is not first
        assert second.webhook_url == "https://b"

    @pytest.mark.asyncio
    async def test_register_notifier(self, dispatcher):
        notifier = RecordingNotifier()
        dispatcher.register_notifier("pager", lambda channel: notifier)
        dispatcher.create_channel("p", {"type": "pager"})

        results = await dispatcher.dispatch(make_event(), ["p"])

        assert results == {"p": True}
        assert len(notifier.sent) == 1


# ============================================================================
# DELIVERY
# ============================================================================

class TestDispatch:
    @pytest.mark.asyncio
    async def test_failure_isolated_per_channel(self, dispatcher):
        good, bad = RecordingNotifier(), RecordingNotifier(error=ConnectionError("down"))
        dispatcher.register_notifier("sms", lambda c: bad)
        dispatcher.register_notifier("pager", lambda c: good)
        dispatcher.create_channel("bad", {"type": "sms"})
        dispatcher.create_channel("good", {"type": "pager"})

        results = await dispatcher.dispatch(make_event(), ["bad", "good"])

        assert results == {"bad": False, "good": True}
        stats = dispatcher.get_stats()
        assert stats["sent"] == 1
        assert stats["failed"] == 1

    @pytest.mark.asyncio
    async def test_timeout_counts_as_failure(self, dispatcher):
        slow = RecordingNotifier(delay=5.0)
        dispatcher.register_notifier("pager", lambda c: slow)
        dispatcher.create_channel("slow", {"type": "pager"})

        results = await dispatcher.dispatch(make_event(), ["slow"])

        assert results == {"slow": False}

    @pytest.mark.asyncio
    async def test_unknown_and_disabled_skipped(self, dispatcher):
        notifier = RecordingNotifier()
        dispatcher.register_notifier("pager", lambda c: notifier)
        dispatcher.create_channel("off", {"type": "pager", "enabled": False})

        results = await dispatcher.dispatch(make_event(), ["off", "missing"])

        assert results == {}
        assert notifier.sent == []
        assert dispatcher.get_stats()["skipped"] == 2

    @pytest.mark.asyncio
    async def test_dispatch_nowait_and_close(self, dispatcher):
        notifier = RecordingNotifier(delay=0.01)
        dispatcher.register_notifier("pager", lambda c: notifier)
        dispatcher.create_channel("p", {"type": "pager"})

        task = dispatcher.dispatch_nowait(make_event(), ["p"])
        assert task is not None
        assert notifier.sent == []

        await dispatcher.close()

        assert len(notifier.sent) == 1
        assert notifier.closed is True

    def test_dispatch_nowait_without_loop(self, dispatcher):
        dispatcher.create_channel("e", {"type": "email"})
        assert dispatcher.dispatch_nowait(make_event(), ["e"]) is None

    def test_dispatch_nowait_without_channels(self, dispatcher):
        assert dispatcher.dispatch_nowait(make_event(), []) is None

    @pytest.mark.asyncio
    async def test_logging_notifier(self, dispatcher, caplog):
        dispatcher.create_channel("e", {"type": "email", "config": {"to": ["ops@example.com"]}})
        results = await dispatcher.dispatch(make_event(), ["e"])
        assert results == {"e": True}
        assert any("email:e" in r.getMessage() for r in caplog.records)


# ============================================================================
# HTTP NOTIFIERS
# ============================================================================

class TestHttpNotifiers:
    def test_notification_from_event(self):
        notification = Notification.from_event(make_event())
        assert notification.title == "High CPU Usage triggered"
        assert notification.details["Value"] == "91.50"

    @pytest.mark.asyncio
    async def test_slack_payload(self):
        notifier = SlackNotifier("https://hooks.example.com/T/B/X", channel="#ops")
        session = mock_session(200)
        notifier._session = session

        assert await notifier.send(Notification.from_event(make_event())) is True

        url = session.post.call_args.args[0]
        payload = session.post.call_args.kwargs["json"]
        assert url == "https://hooks.example.com/T/B/X"
        assert payload["channel"] == "#ops"
        assert payload["blocks"][0]["text"]["text"].startswith(":x:")

        await notifier.close()
        session.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_slack_non_200(self):
        notifier = SlackNotifier("https://hooks.example.com/x")
        notifier._session = mock_session(500)
        assert await notifier.send(Notification.from_event(make_event())) is False

    @pytest.mark.asyncio
    async def test_webhook_payload(self):
        notifier = WebhookNotifier("https://example.com/hook", headers={"X-Token": "t"})
        session = mock_session(202)
        notifier._session = session

        assert await notifier.send(Notification.from_event(make_event())) is True

        kwargs = session.post.call_args.kwargs
        assert kwargs["json"]["event"] == "alert_triggered"
        assert kwargs["json"]["notification"]["severity"] == "high"
        assert kwargs["headers"] == {"X-Token": "t"}
