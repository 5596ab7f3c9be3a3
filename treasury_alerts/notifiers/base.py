"""
Base notifier classes and channel dispatch.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from treasury_alerts.config import NotificationsConfig
from treasury_alerts.database.models import AlertRule, Channel
from .formatter import RenderedMessage

logger = logging.getLogger(__name__)


@dataclass
class NotificationResult:
    """Result of a notification attempt."""

    success: bool
    channel: str
    error: Optional[str] = None
    skipped: bool = False  # no destination configured


class Notifier(ABC):
    """Abstract base class for notifiers."""

    channel: Channel

    @abstractmethod
    def send(self, destination: str, message: RenderedMessage) -> NotificationResult:
        """
        Send a single notification.

        Args:
            destination: Chat id, webhook URL or email address
            message: Rendered title and body

        Returns:
            NotificationResult indicating success or failure
        """
        pass


class NotifierFactory:
    """Factory for creating notifier instances."""

    @staticmethod
    def create(
        channel: Channel, config: NotificationsConfig, timeout: float = 10
    ) -> Notifier:
        """
        Create a notifier for a channel from configuration.

        Raises:
            ValueError: If the channel is unknown
        """
        if channel is Channel.TELEGRAM:
            from .telegram import TelegramNotifier

            return TelegramNotifier(bot_token=config.telegram.bot_token, timeout=timeout)

        elif channel is Channel.SLACK:
            from .slack import SlackNotifier

            return SlackNotifier(
                username=config.slack.username,
                icon_emoji=config.slack.icon_emoji,
                timeout=timeout,
            )

        elif channel is Channel.EMAIL:
            from .email import EmailNotifier

            return EmailNotifier(
                smtp_host=config.email.smtp_host,
                smtp_port=config.email.smtp_port,
                smtp_user=config.email.smtp_user or "",
                smtp_password=config.email.smtp_password or "",
                from_address=config.email.from_address or "",
                timeout=timeout,
            )

        else:
            raise ValueError(f"Unknown notification channel: {channel}")


class NotificationDispatcher:
    """Routes rendered messages to the provider of each channel."""

    def __init__(
        self,
        config: NotificationsConfig,
        notifiers: Optional[dict[Channel, Notifier]] = None,
        timeout: float = 10,
    ):
        """
        Initialize dispatcher.

        Args:
            config: Provider settings and per-channel default destinations
            notifiers: Provider overrides keyed by channel
            timeout: Request timeout handed to created providers
        """
        self.config = config
        self.timeout = timeout
        self._notifiers: dict[Channel, Notifier] = dict(notifiers or {})

    def resolve_destination(self, rule: AlertRule) -> Optional[str]:
        """Per-rule destination, else the configured default for its channel."""
        overrides = {
            Channel.TELEGRAM: rule.telegram_chat_id,
            Channel.SLACK: rule.webhook_url,
            Channel.EMAIL: rule.email_address,
        }
        return overrides.get(rule.channel) or self.default_destination(rule.channel)

    def default_destination(self, channel: Channel) -> Optional[str]:
        """Process-wide fallback destination of a channel."""
        if channel is Channel.TELEGRAM:
            return self.config.telegram.default_chat_id
        if channel is Channel.SLACK:
            return self.config.slack.default_webhook_url
        if channel is Channel.EMAIL:
            return self.config.email.default_to_address
        return None

    def send(
        self,
        channel: Channel,
        destination: Optional[str],
        message: RenderedMessage,
    ) -> NotificationResult:
        """
        Deliver a message. Never raises.

        A missing destination is reported as skipped with no error text.
        """
        if not destination:
            logger.warning(f"No {channel.value} destination configured, skipping send")
            return NotificationResult(success=False, channel=channel.value, skipped=True)

        try:
            notifier = self._get_notifier(channel)
            result = notifier.send(destination, message)
        except Exception as e:
            logger.exception(f"Unexpected {channel.value} provider failure")
            return NotificationResult(success=False, channel=channel.value, error=str(e))

        if not result.success:
            logger.warning(f"{channel.value} delivery failed: {result.error}")
        return result

    def _get_notifier(self, channel: Channel) -> Notifier:
        if channel not in self._notifiers:
            self._notifiers[channel] = NotifierFactory.create(
                channel, self.config, timeout=self.timeout
            )
        return self._notifiers[channel]
