"""
SQLite database connection and schema management.
"""

import sqlite3
from pathlib import Path
from typing import Optional

from .models import AlertKind, AlertStatus, Channel


def _sql_enum(enum_cls) -> str:
    return ", ".join(f"'{member.value}'" for member in enum_cls)


class Database:
    """SQLite database connection manager."""

    def __init__(self, db_path: str):
        """
        Initialize database connection.

        Args:
            db_path: Path to SQLite database file, or ":memory:" for in-memory DB.
        """
        self.db_path = db_path
        self._connection: Optional[sqlite3.Connection] = None
        self._connect()

    def _connect(self) -> None:
        """Establish database connection."""
        if self.db_path != ":memory:":
            # Ensure parent directory exists
            path = Path(self.db_path)
            path.parent.mkdir(parents=True, exist_ok=True)

        self._connection = sqlite3.connect(self.db_path)
        self._connection.row_factory = sqlite3.Row
        self._connection.execute("PRAGMA foreign_keys = ON")

    @property
    def connection(self) -> sqlite3.Connection:
        """Get the database connection."""
        if self._connection is None:
            raise sqlite3.ProgrammingError("Database connection is closed")
        return self._connection

    def initialize(self) -> None:
        """Create database schema if it doesn't exist."""
        cursor = self.connection.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS companies (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                ticker TEXT NOT NULL UNIQUE,
                name TEXT NOT NULL,
                yahoo_ticker TEXT,
                trading_currency TEXT NOT NULL DEFAULT 'USD',
                btc_holdings REAL NOT NULL DEFAULT 0,
                shares_outstanding REAL NOT NULL DEFAULT 0,
                market_cap_usd REAL NOT NULL DEFAULT 0,
                cash_usd REAL NOT NULL DEFAULT 0,
                debt_usd REAL NOT NULL DEFAULT 0,
                preferreds_usd REAL NOT NULL DEFAULT 0,
                is_tracked INTEGER NOT NULL DEFAULT 1,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS stock_prices (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                company_id INTEGER NOT NULL,
                price REAL NOT NULL,
                previous_close REAL,
                price_at TIMESTAMP NOT NULL,
                FOREIGN KEY (company_id) REFERENCES companies(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS btc_prices (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                price_usd REAL NOT NULL,
                price_at TIMESTAMP NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS fx_rates (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                currency TEXT NOT NULL,
                rate_to_usd REAL NOT NULL,
                rate_from_usd REAL NOT NULL,
                rate_at TIMESTAMP NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS holdings_snapshots (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                company_id INTEGER NOT NULL,
                btc_holdings REAL NOT NULL,
                snapshot_date TIMESTAMP NOT NULL,
                source TEXT,
                FOREIGN KEY (company_id) REFERENCES companies(id) ON DELETE CASCADE
            )
        """)

        # No FK on company_id: a dangling company is skipped by the engine
        cursor.execute(f"""
            CREATE TABLE IF NOT EXISTS alerts (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                company_id INTEGER,
                type TEXT NOT NULL CHECK (type IN ({_sql_enum(AlertKind)})),
                threshold REAL,
                threshold_percent REAL,
                channel TEXT NOT NULL CHECK (channel IN ({_sql_enum(Channel)})),
                telegram_chat_id TEXT,
                webhook_url TEXT,
                email_address TEXT,
                is_repeating INTEGER NOT NULL DEFAULT 0,
                cooldown_minutes REAL,
                status TEXT NOT NULL DEFAULT 'active'
                    CHECK (status IN ({_sql_enum(AlertStatus)})),
                last_triggered_at TIMESTAMP,
                trigger_count INTEGER NOT NULL DEFAULT 0,
                name TEXT,
                description TEXT,
                expires_at TIMESTAMP,
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP NOT NULL
            )
        """)

        cursor.execute(f"""
            CREATE TABLE IF NOT EXISTS alert_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                alert_id INTEGER NOT NULL,
                user_id TEXT NOT NULL,
                company_id INTEGER,
                alert_type TEXT NOT NULL CHECK (alert_type IN ({_sql_enum(AlertKind)})),
                threshold REAL,
                threshold_percent REAL,
                actual_value TEXT,
                previous_value TEXT,
                channel TEXT NOT NULL,
                notification_sent INTEGER NOT NULL DEFAULT 0,
                notification_error TEXT,
                context TEXT,
                message_title TEXT,
                message_body TEXT,
                triggered_at TIMESTAMP NOT NULL,
                FOREIGN KEY (alert_id) REFERENCES alerts(id) ON DELETE CASCADE
            )
        """)

        # Indexes for latest-value lookups
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_stock_prices_company_price_at
            ON stock_prices(company_id, price_at)
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_fx_rates_currency_rate_at
            ON fx_rates(currency, rate_at)
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_holdings_company_date
            ON holdings_snapshots(company_id, snapshot_date)
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_alerts_status ON alerts(status)
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_alert_history_alert
            ON alert_history(alert_id, triggered_at)
        """)

        self.connection.commit()

    def close(self) -> None:
        """Close the database connection."""
        if self._connection:
            self._connection.close()
            self._connection = None
