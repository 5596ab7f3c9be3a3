"""
Notification self-test - sends a status message to every default channel.
"""

from datetime import datetime, timezone

from treasury_alerts.database.connection import Database
from treasury_alerts.database.models import AlertStatus, Channel
from treasury_alerts.database.repository import AlertRepository, CompanyRepository
from treasury_alerts.notifiers.base import NotificationDispatcher, NotificationResult
from treasury_alerts.notifiers.formatter import SIGNATURE, RenderedMessage


def build_status_message(db: Database) -> RenderedMessage:
    """Summarize companies and alert rules into a test message."""
    companies = CompanyRepository(db).list_all()
    rules = AlertRepository(db).list_all()

    counts: dict[str, int] = {}
    for rule in rules:
        counts[rule.status.value] = counts.get(rule.status.value, 0) + 1
    status_line = ", ".join(
        f"{status.value}: {counts.get(status.value, 0)}" for status in AlertStatus
    )
    tickers = ", ".join(c.ticker for c in companies) or "None"
    now = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")

    lines = [
        "Treasury alerts health check",
        "System is running normally.",
        "",
        f"Companies: {tickers}",
        f"Alerts: {len(rules)} ({status_line})",
        f"Sent: {now}",
        "",
        SIGNATURE,
    ]
    return RenderedMessage(title="Treasury alerts health check", body="\n".join(lines))


def run_healthcheck(
    db: Database, dispatcher: NotificationDispatcher
) -> dict[str, NotificationResult]:
    """Send the status message through each channel's default destination.

    Args:
        db: Database instance (already initialized)
        dispatcher: Dispatcher built from the notifications config

    Returns:
        Delivery result per channel name
    """
    message = build_status_message(db)
    return {
        channel.value: dispatcher.send(
            channel, dispatcher.default_destination(channel), message
        )
        for channel in Channel
    }
