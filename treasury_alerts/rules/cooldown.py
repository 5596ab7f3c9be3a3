"""
Cooldown gating for alert rules.
"""

from datetime import datetime, timedelta
from typing import Optional

DIGEST_COOLDOWN_MINUTES = 1440


def is_suppressed(
    last_triggered_at: Optional[datetime],
    cooldown_minutes: Optional[float],
    now: datetime,
) -> bool:
    """
    Check whether a rule fired too recently to fire again.

    Args:
        last_triggered_at: When the rule last fired, if ever
        cooldown_minutes: Minimum minutes between firings; unset or 0 disables
        now: Current time

    Returns:
        True while now - last_triggered_at is strictly less than the cooldown
    """
    if last_triggered_at is None or not cooldown_minutes:
        return False
    return now - last_triggered_at < timedelta(minutes=float(cooldown_minutes))
