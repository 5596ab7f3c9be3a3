"""
CLI commands for treasury alerts administration.
"""

import argparse
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

from treasury_alerts.config import AppConfig, load_config
from treasury_alerts.database.connection import Database
from treasury_alerts.database.models import (
    AlertKind,
    AlertRule,
    AlertStatus,
    Channel,
    Company,
    HoldingsSnapshot,
)
from treasury_alerts.database.repository import (
    AlertHistoryRepository,
    AlertRepository,
    CompanyRepository,
    MarketDataRepository,
)
from treasury_alerts.data.fetcher import MarketDataSyncer
from treasury_alerts.rules.cooldown import DIGEST_COOLDOWN_MINUTES


def add_company(
    db: Database,
    ticker: str,
    name: str,
    trading_currency: str = "USD",
    yahoo_ticker: Optional[str] = None,
    btc_holdings: float = 0.0,
    shares_outstanding: float = 0.0,
    market_cap_usd: float = 0.0,
    cash_usd: float = 0.0,
    debt_usd: float = 0.0,
    preferreds_usd: float = 0.0,
) -> Company:
    """Add a treasury company."""
    repo = CompanyRepository(db)
    company = Company(
        ticker=ticker.upper(),
        name=name,
        trading_currency=trading_currency.upper(),
        yahoo_ticker=yahoo_ticker,
        btc_holdings=btc_holdings,
        shares_outstanding=shares_outstanding,
        market_cap_usd=market_cap_usd,
        cash_usd=cash_usd,
        debt_usd=debt_usd,
        preferreds_usd=preferreds_usd,
    )
    return repo.create(company)


def record_holdings(
    db: Database,
    ticker: str,
    btc_holdings: float,
    snapshot_date: Optional[datetime] = None,
    source: Optional[str] = None,
) -> HoldingsSnapshot:
    """
    Record a holdings snapshot and update the company's current holdings.

    Raises:
        ValueError: If the ticker is unknown
    """
    company = CompanyRepository(db).get_by_ticker(ticker.upper())
    if company is None:
        raise ValueError(f"Unknown company: {ticker}")

    snapshot = MarketDataRepository(db).add_holdings_snapshot(
        HoldingsSnapshot(
            company_id=company.id,
            btc_holdings=btc_holdings,
            snapshot_date=snapshot_date or datetime.now(timezone.utc),
            source=source,
        )
    )
    CompanyRepository(db).update_holdings(company.id, btc_holdings)
    return snapshot


def add_alert(
    db: Database,
    user_id: str,
    kind: AlertKind,
    channel: Channel,
    ticker: Optional[str] = None,
    threshold: Optional[float] = None,
    threshold_percent: Optional[float] = None,
    is_repeating: bool = False,
    cooldown_minutes: Optional[float] = None,
    telegram_chat_id: Optional[str] = None,
    webhook_url: Optional[str] = None,
    email_address: Optional[str] = None,
    name: Optional[str] = None,
) -> AlertRule:
    """
    Create an alert rule.

    Digest rules repeat daily unless told otherwise.

    Raises:
        ValueError: If the ticker is unknown or thresholds don't fit the kind
    """
    company_id = None
    if ticker:
        company = CompanyRepository(db).get_by_ticker(ticker.upper())
        if company is None:
            raise ValueError(f"Unknown company: {ticker}")
        company_id = company.id

    if kind.is_digest:
        is_repeating = True
        if cooldown_minutes is None:
            cooldown_minutes = DIGEST_COOLDOWN_MINUTES

    rule = AlertRule(
        user_id=user_id,
        kind=kind,
        channel=channel,
        company_id=company_id if kind.is_company else None,
        threshold=threshold,
        threshold_percent=threshold_percent,
        is_repeating=is_repeating,
        cooldown_minutes=cooldown_minutes,
        telegram_chat_id=telegram_chat_id,
        webhook_url=webhook_url,
        email_address=email_address,
        name=name,
    )
    return AlertRepository(db).create(rule)


def set_alert_status(db: Database, rule_id: int, status: AlertStatus) -> AlertRule:
    """
    Pause, resume or expire a rule.

    Raises:
        ValueError: If the rule doesn't exist
    """
    repo = AlertRepository(db)
    if repo.get_by_id(rule_id) is None:
        raise ValueError(f"Alert {rule_id} not found")
    repo.set_status(rule_id, status)
    return repo.get_by_id(rule_id)


def sync_market_data(db: Database) -> dict:
    """Fetch latest quotes, BTC price and FX rates."""
    return MarketDataSyncer(db).sync().to_dict()


def _load_app_config(path: str) -> AppConfig:
    if Path(path).exists():
        return load_config(path)
    return AppConfig()


def _format_rule(rule: AlertRule, tickers: dict[int, str]) -> str:
    target = tickers.get(rule.company_id, "-") if rule.company_id else "on-chain"
    if rule.threshold_percent is not None:
        threshold = f"{rule.threshold_percent}%"
    elif rule.threshold is not None:
        threshold = str(rule.threshold)
    else:
        threshold = "-"
    return (
        f"ID: {rule.id}, User: {rule.user_id}, {rule.kind.value} {target} "
        f"threshold={threshold} channel={rule.channel.value} "
        f"status={rule.status.value} triggered={rule.trigger_count}"
    )


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Treasury alerts CLI")
    parser.add_argument("--config", default="config.yaml", help="Path to config file")
    parser.add_argument("--db", help="Database path (overrides config)")

    subparsers = parser.add_subparsers(dest="command", help="Command")

    # Company commands
    company_parser = subparsers.add_parser("companies", help="Company management")
    company_subparsers = company_parser.add_subparsers(dest="action")

    add_company_parser = company_subparsers.add_parser("add", help="Add company")
    add_company_parser.add_argument("--ticker", required=True, help="Display ticker")
    add_company_parser.add_argument("--name", required=True, help="Company name")
    add_company_parser.add_argument("--currency", default="USD", help="Trading currency")
    add_company_parser.add_argument("--yahoo-ticker", help="Yahoo Finance symbol")
    add_company_parser.add_argument("--btc", type=float, default=0.0, help="BTC holdings")
    add_company_parser.add_argument("--shares", type=float, default=0.0, help="Shares outstanding")
    add_company_parser.add_argument("--market-cap", type=float, default=0.0, help="Market cap (USD)")
    add_company_parser.add_argument("--cash", type=float, default=0.0, help="Cash (USD)")
    add_company_parser.add_argument("--debt", type=float, default=0.0, help="Debt (USD)")
    add_company_parser.add_argument("--preferreds", type=float, default=0.0, help="Preferreds (USD)")

    company_subparsers.add_parser("list", help="List companies")

    # Holdings commands
    holdings_parser = subparsers.add_parser("holdings", help="Holdings snapshots")
    holdings_subparsers = holdings_parser.add_subparsers(dest="action")

    add_holdings_parser = holdings_subparsers.add_parser("add", help="Record snapshot")
    add_holdings_parser.add_argument("--ticker", required=True, help="Company ticker")
    add_holdings_parser.add_argument("--btc", type=float, required=True, help="BTC holdings")
    add_holdings_parser.add_argument("--date", help="Snapshot date (ISO 8601)")
    add_holdings_parser.add_argument("--source", help="Source of the figure")

    # Alert commands
    alerts_parser = subparsers.add_parser("alerts", help="Alert rule management")
    alerts_subparsers = alerts_parser.add_subparsers(dest="action")

    add_alert_parser = alerts_subparsers.add_parser("add", help="Add alert")
    add_alert_parser.add_argument("--user", required=True, help="Owner user ID")
    add_alert_parser.add_argument(
        "--type", required=True, choices=[k.value for k in AlertKind]
    )
    add_alert_parser.add_argument(
        "--channel", required=True, choices=[c.value for c in Channel]
    )
    add_alert_parser.add_argument("--ticker", help="Company ticker (company alerts)")
    add_alert_parser.add_argument("--threshold", type=float, help="Absolute threshold")
    add_alert_parser.add_argument(
        "--threshold-percent", type=float, help="Percentage threshold"
    )
    add_alert_parser.add_argument("--repeating", action="store_true", help="Re-arm after firing")
    add_alert_parser.add_argument("--cooldown", type=float, help="Cooldown in minutes")
    add_alert_parser.add_argument("--chat-id", help="Telegram chat ID override")
    add_alert_parser.add_argument("--webhook", help="Slack webhook URL override")
    add_alert_parser.add_argument("--email", help="Email address override")
    add_alert_parser.add_argument("--name", help="Alert name")

    list_alerts_parser = alerts_subparsers.add_parser("list", help="List alerts")
    list_alerts_parser.add_argument("--user", help="Filter by user ID")

    for action in ("pause", "resume", "delete"):
        action_parser = alerts_subparsers.add_parser(action, help=f"{action.title()} alert")
        action_parser.add_argument("id", type=int, help="Alert ID")

    # History command
    history_parser = subparsers.add_parser("history", help="Firing history")
    history_parser.add_argument("--user", help="User ID")
    history_parser.add_argument("--alert", type=int, help="Alert ID")
    history_parser.add_argument("--limit", type=int, default=50, help="Max events")

    # Market data commands
    market_parser = subparsers.add_parser("market", help="Market data")
    market_subparsers = market_parser.add_subparsers(dest="action")
    market_subparsers.add_parser("sync", help="Sync quotes, BTC price and FX rates")

    # Notification commands
    notify_parser = subparsers.add_parser("notify", help="Notifications")
    notify_subparsers = notify_parser.add_subparsers(dest="action")
    notify_subparsers.add_parser("test", help="Send a test message to default channels")

    # DB commands
    db_parser = subparsers.add_parser("db", help="Database management")
    db_subparsers = db_parser.add_subparsers(dest="action")
    db_subparsers.add_parser("init", help="Create schema")
    db_subparsers.add_parser("status", help="Show row counts")

    args = parser.parse_args()

    config = _load_app_config(args.config)

    # Initialize database
    db = Database(args.db or config.database.path)
    db.initialize()

    try:
        _dispatch(args, config, db)
    except ValueError as e:
        parser.exit(1, f"Error: {e}\n")
    finally:
        db.close()


def _dispatch(args: argparse.Namespace, config: AppConfig, db: Database) -> None:
    """Handle one parsed command."""
    if args.command == "companies":
        if args.action == "add":
            company = add_company(
                db,
                ticker=args.ticker,
                name=args.name,
                trading_currency=args.currency,
                yahoo_ticker=args.yahoo_ticker,
                btc_holdings=args.btc,
                shares_outstanding=args.shares,
                market_cap_usd=args.market_cap,
                cash_usd=args.cash,
                debt_usd=args.debt,
                preferreds_usd=args.preferreds,
            )
            print(f"Created company with ID: {company.id}")
        elif args.action == "list":
            for c in CompanyRepository(db).list_all():
                print(f"{c.ticker}: {c.name} ({c.trading_currency}) {c.btc_holdings:,.0f} BTC")

    elif args.command == "holdings":
        if args.action == "add":
            snapshot_date = datetime.fromisoformat(args.date) if args.date else None
            snapshot = record_holdings(
                db, args.ticker, args.btc, snapshot_date=snapshot_date, source=args.source
            )
            print(f"Recorded snapshot with ID: {snapshot.id}")

    elif args.command == "alerts":
        repo = AlertRepository(db)
        if args.action == "add":
            rule = add_alert(
                db,
                user_id=args.user,
                kind=AlertKind(args.type),
                channel=Channel(args.channel),
                ticker=args.ticker,
                threshold=args.threshold,
                threshold_percent=args.threshold_percent,
                is_repeating=args.repeating,
                cooldown_minutes=args.cooldown,
                telegram_chat_id=args.chat_id,
                webhook_url=args.webhook,
                email_address=args.email,
                name=args.name,
            )
            print(f"Created alert with ID: {rule.id}")
        elif args.action == "list":
            rules = repo.get_user_rules(args.user) if args.user else repo.list_all()
            tickers = {c.id: c.ticker for c in CompanyRepository(db).list_all()}
            for rule in rules:
                print(_format_rule(rule, tickers))
        elif args.action in ("pause", "resume"):
            status = AlertStatus.PAUSED if args.action == "pause" else AlertStatus.ACTIVE
            rule = set_alert_status(db, args.id, status)
            print(f"Alert {rule.id} is now {rule.status.value}")
        elif args.action == "delete":
            if repo.get_by_id(args.id) is None:
                raise ValueError(f"Alert {args.id} not found")
            repo.delete(args.id)
            print(f"Deleted alert {args.id}")

    elif args.command == "history":
        history_repo = AlertHistoryRepository(db)
        if args.alert:
            events = history_repo.get_alert_history(args.alert)
        elif args.user:
            events = history_repo.get_user_history(args.user, limit=args.limit)
        else:
            raise ValueError("history needs --user or --alert")
        for e in events:
            status = "sent" if e.notification_sent else f"failed ({e.notification_error})"
            print(
                f"{e.triggered_at:%Y-%m-%d %H:%M} alert={e.alert_id} "
                f"{e.alert_type.value} value={e.actual_value} {e.channel.value} {status}"
            )

    elif args.command == "market":
        if args.action == "sync":
            print(json.dumps(sync_market_data(db), indent=2))

    elif args.command == "notify":
        if args.action == "test":
            from treasury_alerts.healthcheck import run_healthcheck
            from treasury_alerts.main import build_dispatcher

            results = run_healthcheck(db, build_dispatcher(config))
            for channel, result in results.items():
                if result.success:
                    print(f"{channel}: sent")
                elif result.skipped:
                    print(f"{channel}: skipped (no destination)")
                else:
                    print(f"{channel}: failed ({result.error})")

    elif args.command == "db":
        if args.action == "init":
            print(f"Database initialized at {db.db_path}")
        elif args.action == "status":
            print(f"Companies: {len(CompanyRepository(db).list_all())}")
            print(f"Alerts: {len(AlertRepository(db).list_all())}")
            print(f"Firing events: {AlertHistoryRepository(db).count()}")


if __name__ == "__main__":
    main()
