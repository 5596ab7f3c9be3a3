"""
Data models for the treasury alerts engine.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Any


class AlertKind(str, Enum):
    """Closed set of alert rule kinds."""

    # Company-specific
    PRICE_ABOVE = "price_above"
    PRICE_BELOW = "price_below"
    MNAV_ABOVE = "mnav_above"
    MNAV_BELOW = "mnav_below"
    BTC_HOLDINGS = "btc_holdings"
    PCT_CHANGE_UP = "pct_change_up"
    PCT_CHANGE_DOWN = "pct_change_down"
    # Global on-chain metrics
    FEAR_GREED_ABOVE = "fear_greed_above"
    FEAR_GREED_BELOW = "fear_greed_below"
    MVRV_ABOVE = "mvrv_above"
    MVRV_BELOW = "mvrv_below"
    NUPL_ABOVE = "nupl_above"
    NUPL_BELOW = "nupl_below"
    FUNDING_RATE_ABOVE = "funding_rate_above"
    FUNDING_RATE_BELOW = "funding_rate_below"
    # Scheduled broadcast
    ONCHAIN_DAILY_DIGEST = "onchain_daily_digest"

    @property
    def is_company(self) -> bool:
        return self in COMPANY_KINDS

    @property
    def is_global(self) -> bool:
        return not self.is_company

    @property
    def is_percentage(self) -> bool:
        return self in (AlertKind.PCT_CHANGE_UP, AlertKind.PCT_CHANGE_DOWN)

    @property
    def is_digest(self) -> bool:
        return self is AlertKind.ONCHAIN_DAILY_DIGEST

    @property
    def is_upward(self) -> bool:
        return self.value.endswith("_above") or self.value.endswith("_up")

    @property
    def label(self) -> str:
        """Human readable kind, e.g. "PRICE BELOW"."""
        return self.value.replace("_", " ").upper()


COMPANY_KINDS = frozenset(
    {
        AlertKind.PRICE_ABOVE,
        AlertKind.PRICE_BELOW,
        AlertKind.MNAV_ABOVE,
        AlertKind.MNAV_BELOW,
        AlertKind.BTC_HOLDINGS,
        AlertKind.PCT_CHANGE_UP,
        AlertKind.PCT_CHANGE_DOWN,
    }
)


class Channel(str, Enum):
    """Notification channel families."""

    TELEGRAM = "telegram"
    SLACK = "slack"
    EMAIL = "email"


class AlertStatus(str, Enum):
    """Alert rule lifecycle status."""

    ACTIVE = "active"
    PAUSED = "paused"
    TRIGGERED = "triggered"
    EXPIRED = "expired"


@dataclass
class Company:
    """Bitcoin treasury company."""

    ticker: str
    name: str
    trading_currency: str = "USD"
    yahoo_ticker: Optional[str] = None
    btc_holdings: float = 0.0
    shares_outstanding: float = 0.0
    market_cap_usd: float = 0.0
    cash_usd: float = 0.0
    debt_usd: float = 0.0
    preferreds_usd: float = 0.0
    is_tracked: bool = True
    id: Optional[int] = None
    updated_at: Optional[datetime] = None


@dataclass
class StockQuote:
    """Stock price in the company's trading currency."""

    company_id: int
    price: float
    price_at: datetime
    previous_close: Optional[float] = None
    id: Optional[int] = None

    @property
    def change_pct(self) -> Optional[float]:
        """Signed percentage move against the previous close."""
        if not self.previous_close:
            return None
        return ((self.price - self.previous_close) / self.previous_close) * 100


@dataclass
class BtcPrice:
    """Bitcoin spot price in USD."""

    price_usd: float
    price_at: datetime
    id: Optional[int] = None


@dataclass
class FxRate:
    """FX rate of a currency against USD.

    rate_to_usd: 1 USD = X currency
    rate_from_usd: 1 currency = X USD
    """

    currency: str
    rate_to_usd: float
    rate_from_usd: float
    rate_at: datetime
    id: Optional[int] = None


@dataclass
class HoldingsSnapshot:
    """Point-in-time BTC holdings of a company."""

    company_id: int
    btc_holdings: float
    snapshot_date: datetime
    source: Optional[str] = None
    id: Optional[int] = None


@dataclass
class HoldingsChange:
    """Latest holdings figure and the snapshot before it."""

    company_id: int
    current: float
    previous: Optional[float] = None
    source: Optional[str] = None

    @property
    def delta(self) -> Optional[float]:
        if self.previous is None:
            return None
        return self.current - self.previous


@dataclass
class AlertRule:
    """User's alert rule configuration and trigger state."""

    user_id: str
    kind: AlertKind
    channel: Channel
    company_id: Optional[int] = None  # None = global rule
    threshold: Optional[float] = None
    threshold_percent: Optional[float] = None
    telegram_chat_id: Optional[str] = None
    webhook_url: Optional[str] = None
    email_address: Optional[str] = None
    is_repeating: bool = False
    cooldown_minutes: Optional[float] = None
    status: AlertStatus = AlertStatus.ACTIVE
    last_triggered_at: Optional[datetime] = None
    trigger_count: int = 0
    name: Optional[str] = None
    description: Optional[str] = None
    expires_at: Optional[datetime] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def validate(self) -> None:
        """
        Check the threshold fields match the kind family.

        Raises:
            ValueError: If the thresholds don't fit the kind
        """
        if self.kind.is_digest:
            if self.threshold is not None or self.threshold_percent is not None:
                raise ValueError("Digest alerts take no threshold")
        elif self.kind.is_percentage:
            if self.threshold_percent is None:
                raise ValueError(f"{self.kind.value} requires threshold_percent")
            if self.threshold is not None:
                raise ValueError(f"{self.kind.value} does not use threshold")
        elif self.kind is AlertKind.BTC_HOLDINGS:
            if self.threshold_percent is not None:
                raise ValueError("btc_holdings does not use threshold_percent")
        else:
            if self.threshold is None:
                raise ValueError(f"{self.kind.value} requires threshold")
            if self.threshold_percent is not None:
                raise ValueError(f"{self.kind.value} does not use threshold_percent")

        if self.kind.is_company and self.company_id is None:
            raise ValueError(f"{self.kind.value} requires a company")


@dataclass
class FiringEvent:
    """Append-only record of one alert firing and its delivery outcome."""

    alert_id: int
    user_id: str
    alert_type: AlertKind
    channel: Channel
    triggered_at: datetime
    company_id: Optional[int] = None
    threshold: Optional[float] = None
    threshold_percent: Optional[float] = None
    actual_value: Optional[str] = None
    previous_value: Optional[str] = None
    notification_sent: bool = False
    notification_error: Optional[str] = None
    context: dict[str, Any] = field(default_factory=dict)
    message_title: Optional[str] = None
    message_body: Optional[str] = None
    id: Optional[int] = None
