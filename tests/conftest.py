"""
Pytest configuration and shared fixtures.
"""

from datetime import datetime, timezone

import pytest

from treasury_alerts.config import (
    EmailNotificationConfig,
    NotificationsConfig,
    SlackNotificationConfig,
    TelegramNotificationConfig,
)
from treasury_alerts.data.onchain import OnChainMetrics
from treasury_alerts.database.connection import Database
from treasury_alerts.database.models import Company
from treasury_alerts.database.repository import CompanyRepository


@pytest.fixture
def db():
    """In-memory database with schema."""
    db = Database(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def now():
    """Fixed wall clock for deterministic runs."""
    return datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def company(db):
    """A USD treasury company."""
    return CompanyRepository(db).create(
        Company(
            ticker="MSTR",
            name="Strategy",
            yahoo_ticker="MSTR",
            btc_holdings=500_000,
            shares_outstanding=250_000_000,
            market_cap_usd=80_000_000_000,
            debt_usd=8_000_000_000,
        )
    )


@pytest.fixture
def sample_onchain():
    """Sample on-chain snapshot."""
    return OnChainMetrics(
        fear_greed=72,
        mvrv_z_score=2.35,
        nupl=0.52,
        funding_rate=0.0105,
        btc_price=100_000,
        premium_200wma=85.0,
    )


@pytest.fixture
def notifications_config():
    """Notification config with a default destination for every channel."""
    return NotificationsConfig(
        telegram=TelegramNotificationConfig(bot_token="123:abc", default_chat_id="-1001"),
        slack=SlackNotificationConfig(
            default_webhook_url="https://hooks.slack.com/services/T000/B000/XXX"
        ),
        email=EmailNotificationConfig(
            smtp_user="test@gmail.com",
            smtp_password="test-app-password",
            from_address="alerts@example.com",
            default_to_address="recipient@example.com",
        ),
    )


@pytest.fixture
def sample_stock_info():
    """Sample Yahoo Finance stock info response."""
    return {
        "regularMarketPrice": 395.50,
        "previousClose": 380.25,
        "regularMarketPreviousClose": 380.25,
        "marketCap": 98_000_000_000,
        "shortName": "Strategy Inc",
        "currency": "USD",
    }
