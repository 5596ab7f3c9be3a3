"""
Slack incoming webhook notifier.
"""

import time
from typing import Any

import requests

from treasury_alerts.database.models import Channel
from .base import Notifier, NotificationResult
from .formatter import RenderedMessage


class SlackNotifier(Notifier):
    """Sends notifications via Slack incoming webhook."""

    channel = Channel.SLACK

    def __init__(
        self,
        username: str = "210k Terminal",
        icon_emoji: str = ":chart_with_upwards_trend:",
        timeout: float = 10,
    ):
        """
        Initialize Slack notifier.

        Args:
            username: Display name of the posting bot
            icon_emoji: Avatar emoji of the posting bot
            timeout: Request timeout in seconds
        """
        self.username = username
        self.icon_emoji = icon_emoji
        self.timeout = timeout

    def send(self, destination: str, message: RenderedMessage) -> NotificationResult:
        """Send message to a Slack webhook URL."""
        try:
            payload = self._create_payload(message)
            response = self._send_webhook(destination, payload)

            if response.ok:
                return NotificationResult(success=True, channel="slack")
            else:
                return NotificationResult(
                    success=False,
                    channel="slack",
                    error=f"HTTP {response.status_code}: {response.text}",
                )

        except requests.exceptions.Timeout:
            return NotificationResult(
                success=False,
                channel="slack",
                error=f"Timed out after {self.timeout}s",
            )
        except requests.exceptions.ConnectionError as e:
            return NotificationResult(
                success=False,
                channel="slack",
                error=f"Connection error: {str(e)}",
            )
        except Exception as e:
            return NotificationResult(
                success=False,
                channel="slack",
                error=str(e),
            )

    def _send_webhook(self, webhook_url: str, payload: dict[str, Any]) -> requests.Response:
        """Send webhook with rate limit handling."""
        response = requests.post(webhook_url, json=payload, timeout=self.timeout)

        # Handle rate limiting
        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After", "1")
            time.sleep(min(float(retry_after), self.timeout))
            response = requests.post(webhook_url, json=payload, timeout=self.timeout)

        return response

    def _create_payload(self, message: RenderedMessage) -> dict[str, Any]:
        """Create Slack webhook payload."""
        return {
            "text": message.title,
            "blocks": [
                {
                    "type": "section",
                    "text": {"type": "mrkdwn", "text": message.body},
                }
            ],
            "username": self.username,
            "icon_emoji": self.icon_emoji,
        }
