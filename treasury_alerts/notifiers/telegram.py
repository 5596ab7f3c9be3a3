"""
Telegram Bot API notifier.
"""

from typing import Any, Optional

import requests

from treasury_alerts.database.models import Channel
from .base import Notifier, NotificationResult
from .formatter import RenderedMessage


class TelegramNotifier(Notifier):
    """Sends notifications via a Telegram bot."""

    API_BASE = "https://api.telegram.org/bot"
    channel = Channel.TELEGRAM

    def __init__(
        self,
        bot_token: Optional[str],
        parse_mode: str = "HTML",
        disable_notification: bool = False,
        timeout: float = 10,
    ):
        """
        Initialize Telegram notifier.

        Args:
            bot_token: Bot token from @BotFather
            parse_mode: Telegram parse mode of message bodies
            disable_notification: Deliver silently
            timeout: Request timeout in seconds
        """
        self.bot_token = bot_token
        self.parse_mode = parse_mode
        self.disable_notification = disable_notification
        self.timeout = timeout

    def send(self, destination: str, message: RenderedMessage) -> NotificationResult:
        """Send message body to a chat."""
        if not self.bot_token:
            return NotificationResult(
                success=False,
                channel="telegram",
                error="Bot token not configured",
            )

        try:
            response = requests.post(
                f"{self.API_BASE}{self.bot_token}/sendMessage",
                json=self._create_payload(destination, message),
                timeout=self.timeout,
            )
            data = self._parse_response(response)

            if response.ok and data.get("ok"):
                return NotificationResult(success=True, channel="telegram")
            return NotificationResult(
                success=False,
                channel="telegram",
                error=data.get("description") or f"HTTP {response.status_code}",
            )

        except requests.exceptions.Timeout:
            return NotificationResult(
                success=False,
                channel="telegram",
                error=f"Timed out after {self.timeout}s",
            )
        except requests.exceptions.ConnectionError as e:
            return NotificationResult(
                success=False,
                channel="telegram",
                error=f"Connection error: {str(e)}",
            )
        except Exception as e:
            return NotificationResult(
                success=False,
                channel="telegram",
                error=str(e),
            )

    def _create_payload(self, chat_id: str, message: RenderedMessage) -> dict[str, Any]:
        return {
            "chat_id": chat_id,
            "text": message.body,
            "parse_mode": self.parse_mode,
            "disable_notification": self.disable_notification,
        }

    @staticmethod
    def _parse_response(response: requests.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
