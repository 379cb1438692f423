"""
Alert notification delivery.

Provides:
- Slack notifications (incoming webhook)
- Webhook notifications
- Logging notifications (email, pager, sms and anything without a transport)
- NotificationDispatcher: channel registry and fire-and-forget delivery
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from monitor_core.alerting.models import AlertEvent, ChannelType, NotificationChannel, Severity
from monitor_core.config import AlertingConfig
from monitor_core.errors import NotificationChannelNotFoundError
from monitor_core.utils.async_helpers import BackgroundTasks, run_with_timeout

logger = logging.getLogger(__name__)


@dataclass
class Notification:
    """A rendered alert message."""
    title: str
    message: str
    severity: Severity
    timestamp: datetime = field(default_factory=datetime.now)
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_event(cls, event: AlertEvent) -> "Notification":
        return cls(
            title=f"{event.rule_name} triggered",
            message=event.message,
            severity=event.severity,
            timestamp=datetime.fromtimestamp(event.timestamp),
            details={
                "Metric": event.metric_name,
                "Value": f"{event.value:.2f}",
                "Severity": event.severity.value,
                "Alert": event.alert_id,
            },
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "message": self.message,
            "severity": self.severity.value,
            "timestamp": self.timestamp.isoformat(),
            "details": self.details,
        }


class BaseNotifier(ABC):
    """Abstract base class for notifiers."""

    @abstractmethod
    async def send(self, notification: Notification) -> bool:
        """Send a notification. Returns True when delivered."""
        pass

    async def close(self) -> None:
        """Release transport resources."""


class _HttpNotifier(BaseNotifier):
    """Shared aiohttp session handling."""

    def __init__(self):
        self._session = None

    async def _get_session(self):
        """Get or create aiohttp session."""
        if self._session is None:
            import aiohttp
            self._session = aiohttp.ClientSession()
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None


class SlackNotifier(_HttpNotifier):
    """Slack webhook notifier."""

    EMOJI_MAP = {
        Severity.LOW: ":information_source:",
        Severity.MEDIUM: ":warning:",
        Severity.HIGH: ":x:",
        Severity.CRITICAL: ":rotating_light:",
    }

    def __init__(self, webhook_url: str, channel: Optional[str] = None):
        """
        Initialize Slack notifier.

        Args:
            webhook_url: Slack incoming webhook URL
            channel: Optional channel override
        """
        super().__init__()
        self.webhook_url = webhook_url
        self.channel = channel

    def _format_slack_message(self, notification: Notification) -> Dict[str, Any]:
        """Format notification as Slack message."""
        emoji = self.EMOJI_MAP.get(notification.severity, ":bell:")

        blocks = [
            {
                "type": "header",
                "text": {
                    "type": "plain_text",
                    "text": f"{emoji} {notification.title}",
                    "emoji": True,
                }
            },
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": notification.message,
                }
            },
        ]

        if notification.details:
            fields = [
                {"type": "mrkdwn", "text": f"*{key}:*\n{value}"}
                for key, value in notification.details.items()
            ]
            blocks.append({
                "type": "section",
                "fields": fields[:10],  # Slack limit
            })

        blocks.append({
            "type": "context",
            "elements": [
                {
                    "type": "mrkdwn",
                    "text": f"monitor-core | {notification.timestamp.strftime('%Y-%m-%d %H:%M:%S')}",
                }
            ]
        })

        message = {"blocks": blocks}
        if self.channel:
            message["channel"] = self.channel

        return message

    async def send(self, notification: Notification) -> bool:
        """Send a Slack notification."""
        session = await self._get_session()
        message = self._format_slack_message(notification)

        async with session.post(self.webhook_url, json=message) as response:
            if response.status == 200:
                logger.debug(f"[Notify] Slack notification sent: {notification.title}")
                return True
            logger.error(f"[Notify] Slack notification failed: {response.status}")
            return False


class WebhookNotifier(_HttpNotifier):
    """Generic webhook notifier."""

    def __init__(self, webhook_url: str, headers: Optional[Dict[str, str]] = None):
        """
        Initialize webhook notifier.

        Args:
            webhook_url: Webhook URL
            headers: Optional custom headers
        """
        super().__init__()
        self.webhook_url = webhook_url
        self.headers = headers or {}

    async def send(self, notification: Notification) -> bool:
        """Send a webhook notification."""
        session = await self._get_session()
        payload = {
            "event": "alert_triggered",
            "notification": notification.to_dict(),
        }

        async with session.post(self.webhook_url, json=payload, headers=self.headers) as response:
            if response.status in (200, 201, 202, 204):
                logger.debug(f"[Notify] Webhook notification sent: {notification.title}")
                return True
            logger.error(f"[Notify] Webhook notification failed: {response.status}")
            return False


class LoggingNotifier(BaseNotifier):
    """Writes the notification to the log. Used for channels without a transport."""

    def __init__(self, channel: NotificationChannel):
        self.channel = channel

    async def send(self, notification: Notification) -> bool:
        logger.warning(
            f"[Notify] {self.channel.type.value}:{self.channel.id} "
            f"[{notification.severity.value}] {notification.title}: {notification.message}"
        )
        return True


NotifierFactory = Callable[[NotificationChannel], BaseNotifier]


class NotificationDispatcher:
    """
    Routes alert events to notification channels.

    Delivery never blocks the caller: ``dispatch_nowait`` spawns a tracked
    background task, every send is bounded by the configured timeout, and
    a failing channel is logged without affecting the others.

    Usage:
        dispatcher = NotificationDispatcher(AlertingConfig())
        dispatcher.create_channel("ops-slack", {"type": "slack", "config": {...}})
        dispatcher.dispatch_nowait(event, ["ops-slack"])
        ...
        await dispatcher.close()
    """

    def __init__(self, config: Optional[AlertingConfig] = None):
        self.config = config or AlertingConfig()
        self._channels: Dict[str, NotificationChannel] = {}
        self._notifiers: Dict[str, BaseNotifier] = {}
        self._retired: List[BaseNotifier] = []
        self._factories: Dict[ChannelType, NotifierFactory] = {
            ChannelType.SLACK: self._build_slack,
            ChannelType.WEBHOOK: self._build_webhook,
        }
        self._tasks = BackgroundTasks("Notify")

        self._sent = 0
        self._failed = 0
        self._skipped = 0

    # =========================================================================
    # Notifier factories
    # =========================================================================

    def register_notifier(self, channel_type: Union[ChannelType, str], factory: NotifierFactory) -> None:
        """Install the notifier factory for a channel type."""
        channel_type = ChannelType(channel_type) if not isinstance(channel_type, ChannelType) else channel_type
        self._factories[channel_type] = factory
        for channel_id, channel in self._channels.items():
            if channel.type == channel_type:
                self._retire(channel_id)

    def _build_slack(self, channel: NotificationChannel) -> BaseNotifier:
        url = channel.config.get("webhook_url") or self.config.slack_webhook_url
        if not url:
            logger.warning(f"[Notify] Slack channel {channel.id} has no webhook URL; logging only")
            return LoggingNotifier(channel)
        return SlackNotifier(url, channel.config.get("channel") or self.config.slack_channel)

    def _build_webhook(self, channel: NotificationChannel) -> BaseNotifier:
        url = channel.config.get("url") or channel.config.get("webhook_url") or self.config.webhook_url
        if not url:
            logger.warning(f"[Notify] Webhook channel {channel.id} has no URL; logging only")
            return LoggingNotifier(channel)
        return WebhookNotifier(url, channel.config.get("headers"))

    def _notifier_for(self, channel: NotificationChannel) -> BaseNotifier:
        notifier = self._notifiers.get(channel.id)
        if notifier is None:
            factory = self._factories.get(channel.type, LoggingNotifier)
            notifier = self._notifiers[channel.id] = factory(channel)
        return notifier

    def _retire(self, channel_id: str) -> None:
        notifier = self._notifiers.pop(channel_id, None)
        if notifier is not None:
            self._retired.append(notifier)

    # =========================================================================
    # Channel registry
    # =========================================================================

    def create_channel(
        self,
        channel_id: str,
        definition: Union[NotificationChannel, Mapping[str, Any]],
    ) -> NotificationChannel:
        if isinstance(definition, NotificationChannel):
            channel = definition
            channel.id = channel_id
        else:
            channel = NotificationChannel.from_dict(channel_id, definition)

        self._retire(channel_id)
        self._channels[channel_id] = channel
        logger.info(f"[Notify] Registered {channel.type.value} channel {channel_id}")
        return channel

    def update_channel(self, channel_id: str, **changes: Any) -> NotificationChannel:
        current = self.get_channel(channel_id)
        data = {
            "type": current.type,
            "name": current.name,
            "config": dict(current.config),
            "enabled": current.enabled,
        }
        data.update(changes)
        channel = NotificationChannel.from_dict(channel_id, data)

        self._retire(channel_id)
        self._channels[channel_id] = channel
        return channel

    def get_channel(self, channel_id: str) -> NotificationChannel:
        channel = self._channels.get(channel_id)
        if channel is None:
            raise NotificationChannelNotFoundError(channel_id)
        return channel

    def list_channels(self) -> List[NotificationChannel]:
        return list(self._channels.values())

    # =========================================================================
    # Delivery
    # =========================================================================

    async def _send(self, channel: NotificationChannel, notification: Notification) -> bool:
        try:
            notifier = self._notifier_for(channel)
            delivered = await run_with_timeout(
                notifier.send(notification),
                timeout=self.config.notification_timeout_seconds,
                default=False,
            )
        except Exception as e:
            logger.error(f"[Notify] Channel {channel.id} error: {e}")
            delivered = False

        if delivered:
            self._sent += 1
        else:
            self._failed += 1
        return bool(delivered)

    async def dispatch(self, event: AlertEvent, channel_ids: Iterable[str]) -> Dict[str, bool]:
        """
        Deliver an event to each channel.

        Unknown and disabled channels are skipped. Returns delivery success
        per attempted channel.
        """
        notification = Notification.from_event(event)
        targets = []
        for channel_id in channel_ids:
            channel = self._channels.get(channel_id)
            if channel is None or not channel.enabled:
                self._skipped += 1
                logger.debug(f"[Notify] Skipping channel {channel_id} (unknown or disabled)")
                continue
            targets.append(channel)

        if not targets:
            return {}

        results = await asyncio.gather(*[self._send(c, notification) for c in targets])
        return {channel.id: ok for channel, ok in zip(targets, results)}

    def dispatch_nowait(self, event: AlertEvent, channel_ids: Iterable[str]) -> Optional[asyncio.Task]:
        """Schedule ``dispatch`` in the background. Requires a running loop."""
        channel_ids = list(channel_ids)
        if not channel_ids:
            return None
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"[Notify] No running event loop; dropped notification for {event.rule_name}")
            return None
        return self._tasks.spawn(self.dispatch(event, channel_ids))

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight deliveries."""
        await self._tasks.drain(timeout=timeout)

    async def close(self) -> None:
        """Drain deliveries and close every notifier."""
        await self.drain(timeout=self.config.notification_timeout_seconds)
        notifiers = list(self._notifiers.values()) + self._retired
        self._notifiers.clear()
        self._retired.clear()
        for notifier in notifiers:
            try:
                await notifier.close()
            except Exception as e:
                logger.error(f"[Notify] Error closing notifier: {e}")

    def get_stats(self) -> Dict[str, Any]:
        return {
            "channels": len(self._channels),
            "sent": self._sent,
            "failed": self._failed,
            "skipped": self._skipped,
            "in_flight": self._tasks.get_stats(),
        }
