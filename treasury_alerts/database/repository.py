"""
Repository classes for CRUD operations.
"""

import json
from datetime import datetime, timezone
from typing import Optional

from .connection import Database
from .models import (
    AlertKind,
    AlertRule,
    AlertStatus,
    BtcPrice,
    Channel,
    Company,
    FiringEvent,
    FxRate,
    HoldingsChange,
    HoldingsSnapshot,
    StockQuote,
)


def _to_db_time(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _from_db_time(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class CompanyRepository:
    """CRUD operations for companies."""

    def __init__(self, db: Database):
        self.db = db

    def create(self, company: Company) -> Company:
        """Create a new company."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            INSERT INTO companies (
                ticker, name, yahoo_ticker, trading_currency, btc_holdings,
                shares_outstanding, market_cap_usd, cash_usd, debt_usd,
                preferreds_usd, is_tracked
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                company.ticker,
                company.name,
                company.yahoo_ticker,
                company.trading_currency,
                company.btc_holdings,
                company.shares_outstanding,
                company.market_cap_usd,
                company.cash_usd,
                company.debt_usd,
                company.preferreds_usd,
                1 if company.is_tracked else 0,
            ),
        )
        self.db.connection.commit()
        company.id = cursor.lastrowid
        return company

    def get_by_id(self, company_id: int) -> Optional[Company]:
        """Get company by ID."""
        cursor = self.db.connection.cursor()
        cursor.execute("SELECT * FROM companies WHERE id = ?", (company_id,))
        row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_company(row)

    def get_by_ticker(self, ticker: str) -> Optional[Company]:
        """Get company by ticker."""
        cursor = self.db.connection.cursor()
        cursor.execute("SELECT * FROM companies WHERE ticker = ?", (ticker,))
        row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_company(row)

    def list_all(self) -> list[Company]:
        """List all companies."""
        cursor = self.db.connection.cursor()
        cursor.execute("SELECT * FROM companies ORDER BY ticker")
        return [self._row_to_company(row) for row in cursor.fetchall()]

    def list_tracked(self) -> list[Company]:
        """List companies whose market data is synced."""
        cursor = self.db.connection.cursor()
        cursor.execute("SELECT * FROM companies WHERE is_tracked = 1 ORDER BY ticker")
        return [self._row_to_company(row) for row in cursor.fetchall()]

    def update_holdings(self, company_id: int, btc_holdings: float) -> None:
        """Update a company's current BTC holdings."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            UPDATE companies
            SET btc_holdings = ?, updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
            """,
            (btc_holdings, company_id),
        )
        self.db.connection.commit()

    def _row_to_company(self, row) -> Company:
        """Convert database row to Company."""
        return Company(
            id=row["id"],
            ticker=row["ticker"],
            name=row["name"],
            yahoo_ticker=row["yahoo_ticker"],
            trading_currency=row["trading_currency"],
            btc_holdings=row["btc_holdings"],
            shares_outstanding=row["shares_outstanding"],
            market_cap_usd=row["market_cap_usd"],
            cash_usd=row["cash_usd"],
            debt_usd=row["debt_usd"],
            preferreds_usd=row["preferreds_usd"],
            is_tracked=bool(row["is_tracked"]),
            updated_at=row["updated_at"],
        )


class MarketDataRepository:
    """Append and read latest market data rows."""

    def __init__(self, db: Database):
        self.db = db

    def add_stock_quote(self, quote: StockQuote) -> StockQuote:
        """Append a stock price row."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            INSERT INTO stock_prices (company_id, price, previous_close, price_at)
            VALUES (?, ?, ?, ?)
            """,
            (
                quote.company_id,
                quote.price,
                quote.previous_close,
                _to_db_time(quote.price_at),
            ),
        )
        self.db.connection.commit()
        quote.id = cursor.lastrowid
        return quote

    def add_btc_price(self, price: BtcPrice) -> BtcPrice:
        """Append a BTC price row."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            "INSERT INTO btc_prices (price_usd, price_at) VALUES (?, ?)",
            (price.price_usd, _to_db_time(price.price_at)),
        )
        self.db.connection.commit()
        price.id = cursor.lastrowid
        return price

    def add_fx_rate(self, rate: FxRate) -> FxRate:
        """Append an FX rate row."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            INSERT INTO fx_rates (currency, rate_to_usd, rate_from_usd, rate_at)
            VALUES (?, ?, ?, ?)
            """,
            (
                rate.currency,
                rate.rate_to_usd,
                rate.rate_from_usd,
                _to_db_time(rate.rate_at),
            ),
        )
        self.db.connection.commit()
        rate.id = cursor.lastrowid
        return rate

    def add_holdings_snapshot(self, snapshot: HoldingsSnapshot) -> HoldingsSnapshot:
        """Append a holdings snapshot."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            INSERT INTO holdings_snapshots (company_id, btc_holdings, snapshot_date, source)
            VALUES (?, ?, ?, ?)
            """,
            (
                snapshot.company_id,
                snapshot.btc_holdings,
                _to_db_time(snapshot.snapshot_date),
                snapshot.source,
            ),
        )
        self.db.connection.commit()
        snapshot.id = cursor.lastrowid
        return snapshot

    def get_latest_btc_price(self) -> Optional[BtcPrice]:
        """Get the most recent BTC price."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            "SELECT * FROM btc_prices ORDER BY price_at DESC, id DESC LIMIT 1"
        )
        row = cursor.fetchone()
        if row is None:
            return None
        return BtcPrice(
            id=row["id"],
            price_usd=row["price_usd"],
            price_at=_from_db_time(row["price_at"]),
        )

    def get_latest_stock_quotes(self) -> dict[int, StockQuote]:
        """Get the most recent quote per company."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            "SELECT * FROM stock_prices ORDER BY price_at DESC, id DESC"
        )
        latest: dict[int, StockQuote] = {}
        for row in cursor.fetchall():
            if row["company_id"] in latest:
                continue
            latest[row["company_id"]] = StockQuote(
                id=row["id"],
                company_id=row["company_id"],
                price=row["price"],
                previous_close=row["previous_close"],
                price_at=_from_db_time(row["price_at"]),
            )
        return latest

    def get_latest_fx_rates(self) -> dict[str, FxRate]:
        """Get the most recent rate per currency."""
        cursor = self.db.connection.cursor()
        cursor.execute("SELECT * FROM fx_rates ORDER BY rate_at DESC, id DESC")
        latest: dict[str, FxRate] = {}
        for row in cursor.fetchall():
            if row["currency"] in latest:
                continue
            latest[row["currency"]] = FxRate(
                id=row["id"],
                currency=row["currency"],
                rate_to_usd=row["rate_to_usd"],
                rate_from_usd=row["rate_from_usd"],
                rate_at=_from_db_time(row["rate_at"]),
            )
        return latest

    def get_holdings_changes(self) -> dict[int, HoldingsChange]:
        """Get the latest two holdings snapshots per company."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            SELECT * FROM holdings_snapshots
            ORDER BY company_id, snapshot_date DESC, id DESC
            """
        )
        changes: dict[int, HoldingsChange] = {}
        for row in cursor.fetchall():
            change = changes.get(row["company_id"])
            if change is None:
                changes[row["company_id"]] = HoldingsChange(
                    company_id=row["company_id"],
                    current=row["btc_holdings"],
                    source=row["source"],
                )
            elif change.previous is None:
                change.previous = row["btc_holdings"]
        return changes


class AlertRepository:
    """CRUD operations for alert rules."""

    def __init__(self, db: Database):
        self.db = db

    def create(self, rule: AlertRule) -> AlertRule:
        """
        Create a new alert rule.

        Raises:
            ValueError: If the thresholds don't fit the rule kind
        """
        rule.validate()
        now = datetime.now(timezone.utc)
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            INSERT INTO alerts (
                user_id, company_id, type, threshold, threshold_percent,
                channel, telegram_chat_id, webhook_url, email_address,
                is_repeating, cooldown_minutes, status, last_triggered_at,
                trigger_count, name, description, expires_at, created_at,
                updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                rule.user_id,
                rule.company_id,
                rule.kind.value,
                rule.threshold,
                rule.threshold_percent,
                rule.channel.value,
                rule.telegram_chat_id,
                rule.webhook_url,
                rule.email_address,
                1 if rule.is_repeating else 0,
                rule.cooldown_minutes,
                rule.status.value,
                _to_db_time(rule.last_triggered_at),
                rule.trigger_count,
                rule.name,
                rule.description,
                _to_db_time(rule.expires_at),
                now.isoformat(),
                now.isoformat(),
            ),
        )
        self.db.connection.commit()
        rule.id = cursor.lastrowid
        rule.created_at = now
        rule.updated_at = now
        return rule

    def get_by_id(self, rule_id: int) -> Optional[AlertRule]:
        """Get rule by ID."""
        cursor = self.db.connection.cursor()
        cursor.execute("SELECT * FROM alerts WHERE id = ?", (rule_id,))
        row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_rule(row)

    def get_user_rules(self, user_id: str) -> list[AlertRule]:
        """Get all rules for a user."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            "SELECT * FROM alerts WHERE user_id = ? ORDER BY id",
            (user_id,),
        )
        return [self._row_to_rule(row) for row in cursor.fetchall()]

    def list_all(self) -> list[AlertRule]:
        """List every rule."""
        cursor = self.db.connection.cursor()
        cursor.execute("SELECT * FROM alerts ORDER BY id")
        return [self._row_to_rule(row) for row in cursor.fetchall()]

    def list_active(self) -> list[AlertRule]:
        """Get only rules the engine should evaluate."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            "SELECT * FROM alerts WHERE status = ? ORDER BY id",
            (AlertStatus.ACTIVE.value,),
        )
        return [self._row_to_rule(row) for row in cursor.fetchall()]

    def set_status(self, rule_id: int, status: AlertStatus) -> None:
        """Change a rule's status (pause/resume/expire)."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            "UPDATE alerts SET status = ?, updated_at = ? WHERE id = ?",
            (status.value, datetime.now(timezone.utc).isoformat(), rule_id),
        )
        self.db.connection.commit()

    def record_trigger(self, rule: AlertRule, triggered_at: datetime) -> None:
        """
        Advance trigger statistics after a firing.

        Non-repeating rules move to triggered; repeating rules stay active.
        """
        status = AlertStatus.ACTIVE if rule.is_repeating else AlertStatus.TRIGGERED
        trigger_count = rule.trigger_count + 1
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            UPDATE alerts
            SET last_triggered_at = ?, trigger_count = ?, status = ?, updated_at = ?
            WHERE id = ?
            """,
            (
                triggered_at.isoformat(),
                trigger_count,
                status.value,
                triggered_at.isoformat(),
                rule.id,
            ),
        )
        self.db.connection.commit()
        rule.last_triggered_at = triggered_at
        rule.trigger_count = trigger_count
        rule.status = status

    def delete(self, rule_id: int) -> None:
        """Delete a rule."""
        cursor = self.db.connection.cursor()
        cursor.execute("DELETE FROM alerts WHERE id = ?", (rule_id,))
        self.db.connection.commit()

    def _row_to_rule(self, row) -> AlertRule:
        """Convert database row to AlertRule."""
        return AlertRule(
            id=row["id"],
            user_id=row["user_id"],
            company_id=row["company_id"],
            kind=AlertKind(row["type"]),
            threshold=row["threshold"],
            threshold_percent=row["threshold_percent"],
            channel=Channel(row["channel"]),
            telegram_chat_id=row["telegram_chat_id"],
            webhook_url=row["webhook_url"],
            email_address=row["email_address"],
            is_repeating=bool(row["is_repeating"]),
            cooldown_minutes=row["cooldown_minutes"],
            status=AlertStatus(row["status"]),
            last_triggered_at=_from_db_time(row["last_triggered_at"]),
            trigger_count=row["trigger_count"],
            name=row["name"],
            description=row["description"],
            expires_at=_from_db_time(row["expires_at"]),
            created_at=_from_db_time(row["created_at"]),
            updated_at=_from_db_time(row["updated_at"]),
        )


class AlertHistoryRepository:
    """Append-only store of firing events."""

    def __init__(self, db: Database):
        self.db = db

    def create(self, event: FiringEvent) -> FiringEvent:
        """Record a firing event."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            INSERT INTO alert_history (
                alert_id, user_id, company_id, alert_type, threshold,
                threshold_percent, actual_value, previous_value, channel,
                notification_sent, notification_error, context,
                message_title, message_body, triggered_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                event.alert_id,
                event.user_id,
                event.company_id,
                event.alert_type.value,
                event.threshold,
                event.threshold_percent,
                event.actual_value,
                event.previous_value,
                event.channel.value,
                1 if event.notification_sent else 0,
                event.notification_error,
                json.dumps(event.context, default=str),
                event.message_title,
                event.message_body,
                event.triggered_at.isoformat(),
            ),
        )
        self.db.connection.commit()
        event.id = cursor.lastrowid
        return event

    def get_by_id(self, event_id: int) -> Optional[FiringEvent]:
        """Get firing event by ID."""
        cursor = self.db.connection.cursor()
        cursor.execute("SELECT * FROM alert_history WHERE id = ?", (event_id,))
        row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_event(row)

    def get_alert_history(self, alert_id: int) -> list[FiringEvent]:
        """Get firing events of one rule, oldest first."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            SELECT * FROM alert_history
            WHERE alert_id = ?
            ORDER BY triggered_at, id
            """,
            (alert_id,),
        )
        return [self._row_to_event(row) for row in cursor.fetchall()]

    def get_user_history(self, user_id: str, limit: int = 50) -> list[FiringEvent]:
        """Get firing history for a user, newest first."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            SELECT * FROM alert_history
            WHERE user_id = ?
            ORDER BY triggered_at DESC, id DESC
            LIMIT ?
            """,
            (user_id, limit),
        )
        return [self._row_to_event(row) for row in cursor.fetchall()]

    def count(self) -> int:
        """Count all firing events."""
        cursor = self.db.connection.cursor()
        cursor.execute("SELECT COUNT(*) FROM alert_history")
        return cursor.fetchone()[0]

    def _row_to_event(self, row) -> FiringEvent:
        """Convert database row to FiringEvent."""
        return FiringEvent(
            id=row["id"],
            alert_id=row["alert_id"],
            user_id=row["user_id"],
            company_id=row["company_id"],
            alert_type=AlertKind(row["alert_type"]),
            threshold=row["threshold"],
            threshold_percent=row["threshold_percent"],
            actual_value=row["actual_value"],
            previous_value=row["previous_value"],
            channel=Channel(row["channel"]),
            notification_sent=bool(row["notification_sent"]),
            notification_error=row["notification_error"],
            context=json.loads(row["context"]) if row["context"] else {},
            message_title=row["message_title"],
            message_body=row["message_body"],
            triggered_at=datetime.fromisoformat(row["triggered_at"]),
        )
