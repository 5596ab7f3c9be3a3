"""
Integration tests.
Configuration loading, CLI administration, entry point and self-test.
"""

import json
import sys
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from treasury_alerts.cli import add_alert, add_company, record_holdings, set_alert_status
from treasury_alerts.config import ConfigValidationError, NotificationsConfig, load_config
from treasury_alerts.database.models import AlertKind, AlertStatus, Channel
from treasury_alerts.database.repository import CompanyRepository, MarketDataRepository
from treasury_alerts.healthcheck import build_status_message, run_healthcheck
from treasury_alerts.main import build_engine, main
from treasury_alerts.notifiers.base import (
    NotificationDispatcher,
    NotificationResult,
    Notifier,
)


def write_config(tmp_path: Path, text: str) -> str:
    path = tmp_path / "config.yaml"
    path.write_text(text)
    return str(path)


class TestConfig:
    """Test YAML configuration loading."""

    def test_load_with_env_substitution(self, tmp_path: Path, monkeypatch):
        """Should substitute ${VAR} from the environment."""
        monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "123:abc")
        monkeypatch.delenv("SLACK_WEBHOOK_URL", raising=False)
        path = write_config(
            tmp_path,
            f"""
database:
  path: {tmp_path / "treasury.db"}
notifications:
  telegram:
    bot_token: ${{TELEGRAM_BOT_TOKEN}}
    default_chat_id: "-1001"
  slack:
    default_webhook_url: ${{SLACK_WEBHOOK_URL}}
advanced:
  request_timeout_seconds: 5
""",
        )

        config = load_config(path)

        assert config.notifications.telegram.bot_token == "123:abc"
        assert config.notifications.telegram.default_chat_id == "-1001"
        # Unset variable means not configured
        assert config.notifications.slack.default_webhook_url is None
        assert config.advanced.request_timeout_seconds == 5
        assert config.market_data.onchain_lookback_days == 7

    def test_defaults(self, tmp_path: Path):
        config = load_config(write_config(tmp_path, "database:\n  path: ':memory:'\n"))

        assert config.notifications.slack.username == "210k Terminal"
        assert config.notifications.email.smtp_port == 587
        assert config.schedule.timezone == "UTC"

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "nope.yaml"))

    @pytest.mark.parametrize(
        "text",
        [
            "database:\n  path: ''\n",
            "advanced:\n  request_timeout_seconds: 0\n",
            "market_data:\n  onchain_lookback_days: 0\n",
            "notifications:\n  email:\n    smtp_port: 70000\n",
            "schedule:\n  timezone: ''\n",
        ],
    )
    def test_invalid_values(self, tmp_path: Path, text: str):
        with pytest.raises(ConfigValidationError):
            load_config(write_config(tmp_path, text))


class TestCliCommands:
    """Test administration helpers."""

    def test_add_company_normalizes(self, db):
        company = add_company(db, "mstr", "Strategy", trading_currency="usd")
        assert company.ticker == "MSTR"
        assert company.trading_currency == "USD"

    def test_record_holdings(self, db, company):
        snapshot = record_holdings(db, "MSTR", 510_000, source="8-K")

        assert snapshot.id is not None
        assert CompanyRepository(db).get_by_id(company.id).btc_holdings == 510_000
        change = MarketDataRepository(db).get_holdings_changes()[company.id]
        assert change.current == 510_000

    def test_record_holdings_unknown_ticker(self, db):
        with pytest.raises(ValueError, match="Unknown company"):
            record_holdings(db, "NOPE", 1)

    def test_add_company_alert(self, db, company):
        rule = add_alert(
            db,
            user_id="user-1",
            kind=AlertKind.PRICE_ABOVE,
            channel=Channel.SLACK,
            ticker="mstr",
            threshold=500,
        )
        assert rule.company_id == company.id
        assert rule.is_repeating is False
        assert rule.cooldown_minutes is None

    def test_digest_defaults(self, db):
        """Digests repeat daily by default."""
        rule = add_alert(
            db, user_id="user-1", kind=AlertKind.ONCHAIN_DAILY_DIGEST, channel=Channel.TELEGRAM
        )
        assert rule.is_repeating is True
        assert rule.cooldown_minutes == 1440

    def test_add_alert_validates_thresholds(self, db, company):
        with pytest.raises(ValueError):
            add_alert(
                db,
                user_id="user-1",
                kind=AlertKind.PCT_CHANGE_UP,
                channel=Channel.EMAIL,
                ticker="MSTR",
                threshold=5,
            )

    def test_pause_and_resume(self, db, company):
        rule = add_alert(
            db, "user-1", AlertKind.PRICE_BELOW, Channel.SLACK, ticker="MSTR", threshold=100
        )

        assert set_alert_status(db, rule.id, AlertStatus.PAUSED).status == AlertStatus.PAUSED
        assert set_alert_status(db, rule.id, AlertStatus.ACTIVE).status == AlertStatus.ACTIVE

    def test_set_status_unknown_alert(self, db):
        with pytest.raises(ValueError, match="not found"):
            set_alert_status(db, 42, AlertStatus.PAUSED)


class TestHealthcheck:
    """Test the notification self-test."""

    def test_status_message(self, db, company):
        add_alert(db, "user-1", AlertKind.PRICE_BELOW, Channel.SLACK, ticker="MSTR", threshold=1)

        message = build_status_message(db)

        assert "MSTR" in message.body
        assert "Alerts: 1 (active: 1" in message.body

    def test_sends_to_each_default(self, db):
        """Channels without a default destination are skipped."""
        config = NotificationsConfig()
        config.telegram.default_chat_id = "-1001"
        telegram = Mock(spec=Notifier)
        telegram.send.return_value = NotificationResult(success=True, channel="telegram")
        dispatcher = NotificationDispatcher(config, notifiers={Channel.TELEGRAM: telegram})

        results = run_healthcheck(db, dispatcher)

        assert results["telegram"].success is True
        assert results["slack"].skipped is True
        assert results["email"].skipped is True
        assert telegram.send.call_args[0][0] == "-1001"


class TestEntryPoint:
    """Test the scheduled entry point."""

    def test_build_engine(self, tmp_path: Path, db):
        config = load_config(
            write_config(
                tmp_path,
                """
database:
  path: ':memory:'
market_data:
  onchain_api_key: key
  onchain_lookback_days: 3
advanced:
  request_timeout_seconds: 4
""",
            )
        )

        engine = build_engine(config, db, dry_run=True)

        assert engine.dry_run is True
        assert engine.onchain_lookback_days == 3
        assert engine.dispatcher.timeout == 4
        assert engine.metric_source.onchain_client.api_key == "key"
        assert engine.metric_source.onchain_client.timeout == 4

    def test_main_prints_summary(self, tmp_path: Path, capsys):
        path = write_config(tmp_path, f"database:\n  path: {tmp_path / 'treasury.db'}\n")

        with patch.object(sys, "argv", ["treasury-alerts", "--config", path]):
            main()

        output = capsys.readouterr().out
        assert json.loads(output) == {"checked": 0, "triggered": 0, "errors": []}

    def test_main_exits_on_run_failure(self, tmp_path: Path):
        path = write_config(tmp_path, f"database:\n  path: {tmp_path / 'treasury.db'}\n")

        with patch.object(sys, "argv", ["treasury-alerts", "--config", path]), patch(
            "treasury_alerts.engine.AlertEngine.run", side_effect=RuntimeError("down")
        ):
            with pytest.raises(SystemExit) as exc_info:
                main()

        assert exc_info.value.code == 1
