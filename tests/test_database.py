"""
Database layer tests.
Tests for SQLite connection, schema creation, and CRUD operations.
"""

import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from treasury_alerts.database.connection import Database
from treasury_alerts.database.models import (
    AlertKind,
    AlertRule,
    AlertStatus,
    BtcPrice,
    Channel,
    Company,
    FiringEvent,
    FxRate,
    HoldingsSnapshot,
    StockQuote,
)
from treasury_alerts.database.repository import (
    AlertHistoryRepository,
    AlertRepository,
    CompanyRepository,
    MarketDataRepository,
)

T0 = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


class TestDatabaseConnection:
    """Test database connection and initialization."""

    def test_create_in_memory_database(self):
        """Should create an in-memory SQLite database."""
        db = Database(":memory:")
        assert db.connection is not None

    def test_create_file_database(self, tmp_path: Path):
        """Should create a file-based SQLite database and its directory."""
        db_path = tmp_path / "nested" / "test.db"
        db = Database(str(db_path))
        assert db_path.exists()
        db.close()

    def test_initialize_schema(self, db):
        """Should create all required tables on initialization."""
        cursor = db.connection.cursor()
        cursor.execute("SELECT name FROM sqlite_master WHERE type='table'")
        tables = {row[0] for row in cursor.fetchall()}

        expected_tables = {
            "companies",
            "stock_prices",
            "btc_prices",
            "fx_rates",
            "holdings_snapshots",
            "alerts",
            "alert_history",
        }
        assert expected_tables.issubset(tables)

    def test_initialize_is_idempotent(self, db):
        db.initialize()

    def test_rejects_unknown_alert_type(self, db):
        """Schema should only accept known alert kinds."""
        with pytest.raises(sqlite3.IntegrityError):
            db.connection.execute(
                """
                INSERT INTO alerts (user_id, type, channel, created_at, updated_at)
                VALUES ('u1', 'volume_spike', 'slack', 'x', 'x')
                """
            )

    def test_close_connection(self):
        """Should properly close database connection."""
        db = Database(":memory:")
        db.close()
        with pytest.raises(sqlite3.ProgrammingError):
            db.connection.execute("SELECT 1")


class TestCompanyRepository:
    """Test Company CRUD operations."""

    @pytest.fixture
    def repo(self, db):
        return CompanyRepository(db)

    def test_create_company(self, repo: CompanyRepository):
        """Should create a company with an ID."""
        created = repo.create(
            Company(ticker="3350.T", name="Metaplanet", trading_currency="JPY")
        )
        assert created.id is not None

        fetched = repo.get_by_ticker("3350.T")
        assert fetched.name == "Metaplanet"
        assert fetched.trading_currency == "JPY"
        assert fetched.is_tracked is True

    def test_duplicate_ticker(self, repo: CompanyRepository):
        repo.create(Company(ticker="MSTR", name="Strategy"))
        with pytest.raises(sqlite3.IntegrityError):
            repo.create(Company(ticker="MSTR", name="Again"))

    def test_get_missing_company(self, repo: CompanyRepository):
        assert repo.get_by_id(999) is None

    def test_list_tracked(self, repo: CompanyRepository):
        repo.create(Company(ticker="MSTR", name="Strategy"))
        repo.create(Company(ticker="OLD", name="Untracked", is_tracked=False))

        assert [c.ticker for c in repo.list_tracked()] == ["MSTR"]
        assert len(repo.list_all()) == 2

    def test_update_holdings(self, repo: CompanyRepository):
        company = repo.create(Company(ticker="MSTR", name="Strategy", btc_holdings=1))
        repo.update_holdings(company.id, 2.5)
        assert repo.get_by_id(company.id).btc_holdings == 2.5


class TestMarketDataRepository:
    """Test latest-value lookups."""

    @pytest.fixture
    def repo(self, db):
        return MarketDataRepository(db)

    def test_latest_btc_price(self, repo: MarketDataRepository):
        assert repo.get_latest_btc_price() is None

        repo.add_btc_price(BtcPrice(price_usd=99_000, price_at=T0))
        repo.add_btc_price(BtcPrice(price_usd=101_000, price_at=T0 + timedelta(minutes=5)))

        latest = repo.get_latest_btc_price()
        assert latest.price_usd == 101_000
        assert latest.price_at == T0 + timedelta(minutes=5)

    def test_latest_stock_quote_per_company(self, repo: MarketDataRepository, company):
        repo.add_stock_quote(StockQuote(company_id=company.id, price=390, price_at=T0))
        repo.add_stock_quote(
            StockQuote(
                company_id=company.id,
                price=395,
                previous_close=380,
                price_at=T0 + timedelta(minutes=1),
            )
        )

        quotes = repo.get_latest_stock_quotes()
        assert list(quotes) == [company.id]
        assert quotes[company.id].price == 395
        assert quotes[company.id].previous_close == 380

    def test_latest_fx_rate_per_currency(self, repo: MarketDataRepository):
        repo.add_fx_rate(FxRate("JPY", 150.0, 1 / 150.0, T0))
        repo.add_fx_rate(FxRate("JPY", 140.0, 1 / 140.0, T0 + timedelta(hours=1)))
        repo.add_fx_rate(FxRate("EUR", 0.9, 1 / 0.9, T0))

        rates = repo.get_latest_fx_rates()
        assert set(rates) == {"JPY", "EUR"}
        assert rates["JPY"].rate_to_usd == 140.0

    def test_holdings_changes(self, repo: MarketDataRepository, company):
        """Should pair the latest snapshot with the one before it."""
        for day, holdings in enumerate([400_000, 450_000, 500_000]):
            repo.add_holdings_snapshot(
                HoldingsSnapshot(
                    company_id=company.id,
                    btc_holdings=holdings,
                    snapshot_date=T0 + timedelta(days=day),
                )
            )

        change = repo.get_holdings_changes()[company.id]
        assert change.current == 500_000
        assert change.previous == 450_000

    def test_single_holdings_snapshot(self, repo: MarketDataRepository, company):
        repo.add_holdings_snapshot(
            HoldingsSnapshot(company_id=company.id, btc_holdings=10, snapshot_date=T0)
        )
        assert repo.get_holdings_changes()[company.id].previous is None


class TestAlertRepository:
    """Test alert rule CRUD and trigger bookkeeping."""

    @pytest.fixture
    def repo(self, db):
        return AlertRepository(db)

    @pytest.fixture
    def rule(self, repo: AlertRepository, company):
        return repo.create(
            AlertRule(
                user_id="user-1",
                kind=AlertKind.PRICE_BELOW,
                channel=Channel.TELEGRAM,
                company_id=company.id,
                threshold=100,
                cooldown_minutes=60,
            )
        )

    def test_create_rule(self, repo: AlertRepository, rule):
        """Should persist a rule with timestamps."""
        fetched = repo.get_by_id(rule.id)
        assert fetched.kind == AlertKind.PRICE_BELOW
        assert fetched.channel == Channel.TELEGRAM
        assert fetched.threshold == 100
        assert fetched.status == AlertStatus.ACTIVE
        assert fetched.created_at.tzinfo is not None

    def test_create_invalid_rule(self, repo: AlertRepository):
        with pytest.raises(ValueError):
            repo.create(
                AlertRule(user_id="u", kind=AlertKind.NUPL_ABOVE, channel=Channel.SLACK)
            )

    def test_list_active_excludes_paused(self, repo: AlertRepository, rule):
        repo.set_status(rule.id, AlertStatus.PAUSED)
        assert repo.list_active() == []
        assert repo.get_by_id(rule.id).status == AlertStatus.PAUSED

    def test_record_trigger_non_repeating(self, repo: AlertRepository, rule):
        """Non-repeating rules move to triggered."""
        repo.record_trigger(rule, T0)

        fetched = repo.get_by_id(rule.id)
        assert fetched.status == AlertStatus.TRIGGERED
        assert fetched.trigger_count == 1
        assert fetched.last_triggered_at == T0
        assert rule.status == AlertStatus.TRIGGERED

    def test_record_trigger_repeating(self, repo: AlertRepository, company):
        rule = repo.create(
            AlertRule(
                user_id="user-1",
                kind=AlertKind.PRICE_ABOVE,
                channel=Channel.SLACK,
                company_id=company.id,
                threshold=500,
                is_repeating=True,
            )
        )
        repo.record_trigger(rule, T0)
        repo.record_trigger(rule, T0 + timedelta(hours=1))

        fetched = repo.get_by_id(rule.id)
        assert fetched.status == AlertStatus.ACTIVE
        assert fetched.trigger_count == 2

    def test_get_user_rules(self, repo: AlertRepository, rule):
        assert [r.id for r in repo.get_user_rules("user-1")] == [rule.id]
        assert repo.get_user_rules("someone-else") == []

    def test_delete_cascades_history(self, db, repo: AlertRepository, rule):
        history = AlertHistoryRepository(db)
        history.create(
            FiringEvent(
                alert_id=rule.id,
                user_id=rule.user_id,
                alert_type=rule.kind,
                channel=rule.channel,
                triggered_at=T0,
            )
        )
        repo.delete(rule.id)

        assert repo.get_by_id(rule.id) is None
        assert history.count() == 0


class TestAlertHistoryRepository:
    """Test firing event storage."""

    @pytest.fixture
    def rule(self, db, company):
        return AlertRepository(db).create(
            AlertRule(
                user_id="user-1",
                kind=AlertKind.PRICE_BELOW,
                channel=Channel.SLACK,
                company_id=company.id,
                threshold=100,
            )
        )

    def test_create_event(self, db, rule):
        """Should round-trip context and delivery outcome."""
        repo = AlertHistoryRepository(db)
        event = repo.create(
            FiringEvent(
                alert_id=rule.id,
                user_id=rule.user_id,
                company_id=rule.company_id,
                alert_type=rule.kind,
                channel=rule.channel,
                triggered_at=T0,
                threshold=100,
                actual_value="95",
                notification_sent=False,
                notification_error="HTTP 500",
                context={"btcPrice": 100_000.0, "currency": "USD"},
                message_title="PRICE BELOW: MSTR",
            )
        )

        fetched = repo.get_by_id(event.id)
        assert fetched.actual_value == "95"
        assert fetched.notification_sent is False
        assert fetched.notification_error == "HTTP 500"
        assert fetched.context == {"btcPrice": 100_000.0, "currency": "USD"}
        assert fetched.triggered_at == T0

    def test_user_history_newest_first(self, db, rule):
        repo = AlertHistoryRepository(db)
        for minutes in (0, 10, 20):
            repo.create(
                FiringEvent(
                    alert_id=rule.id,
                    user_id="user-1",
                    alert_type=rule.kind,
                    channel=rule.channel,
                    triggered_at=T0 + timedelta(minutes=minutes),
                )
            )

        history = repo.get_user_history("user-1", limit=2)
        assert [e.triggered_at for e in history] == [
            T0 + timedelta(minutes=20),
            T0 + timedelta(minutes=10),
        ]
        assert len(repo.get_alert_history(rule.id)) == 3
