"""
Configuration loading and validation.
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml


class ConfigValidationError(Exception):
    """Raised when configuration is invalid."""

    pass


@dataclass
class DatabaseConfig:
    """Database configuration."""

    path: str = "data/treasury.db"


@dataclass
class MarketDataConfig:
    """Market and on-chain data source configuration."""

    provider: str = "yahoo_finance"
    onchain_api_base: str = "https://api.bitcoinmagazinepro.com/metrics"
    onchain_api_key: Optional[str] = None
    onchain_lookback_days: int = 7


@dataclass
class ScheduleConfig:
    """Schedule configuration."""

    timezone: str = "UTC"
    alert_check_minutes: int = 5


@dataclass
class TelegramNotificationConfig:
    """Telegram bot settings."""

    bot_token: Optional[str] = None
    default_chat_id: Optional[str] = None


@dataclass
class SlackNotificationConfig:
    """Slack webhook settings."""

    default_webhook_url: Optional[str] = None
    username: str = "210k Terminal"
    icon_emoji: str = ":chart_with_upwards_trend:"


@dataclass
class EmailNotificationConfig:
    """Email notification settings."""

    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    from_address: Optional[str] = None
    default_to_address: Optional[str] = None


@dataclass
class NotificationsConfig:
    """Notifications configuration."""

    telegram: TelegramNotificationConfig = field(
        default_factory=TelegramNotificationConfig
    )
    slack: SlackNotificationConfig = field(default_factory=SlackNotificationConfig)
    email: EmailNotificationConfig = field(default_factory=EmailNotificationConfig)


@dataclass
class AdvancedConfig:
    """Advanced configuration."""

    log_level: str = "INFO"
    request_timeout_seconds: float = 10


@dataclass
class AppConfig:
    """Main application configuration."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    market_data: MarketDataConfig = field(default_factory=MarketDataConfig)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)
    advanced: AdvancedConfig = field(default_factory=AdvancedConfig)


def _substitute_env_vars(value: Any) -> Any:
    """Substitute environment variables in string values."""
    if isinstance(value, str):
        # Match ${VAR_NAME} pattern
        pattern = r"\$\{([^}]+)\}"
        matches = re.findall(pattern, value)
        for var_name in matches:
            env_value = os.environ.get(var_name, "")
            value = value.replace(f"${{{var_name}}}", env_value)
        return value
    elif isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_substitute_env_vars(item) for item in value]
    return value


def _blank_to_none(section: dict[str, Any]) -> dict[str, Any]:
    """Unset env vars substitute to "", treat those as not configured."""
    return {k: (None if v == "" else v) for k, v in section.items()}


def _validate_config(config_dict: dict[str, Any]) -> None:
    """Validate configuration values."""
    db_config = config_dict.get("database") or {}
    db_path = db_config.get("path")
    if not db_path:
        raise ConfigValidationError("Database path is required")

    if db_path != ":memory:":
        parent = Path(db_path).parent
        if parent.exists() and not os.access(parent, os.W_OK):
            raise ConfigValidationError(f"Database path not writable: {parent}")

    schedule = config_dict.get("schedule") or {}
    if not schedule.get("timezone", "UTC"):
        raise ConfigValidationError("Timezone cannot be empty")

    advanced = config_dict.get("advanced") or {}
    timeout = advanced.get("request_timeout_seconds", 10)
    if not isinstance(timeout, (int, float)) or timeout <= 0:
        raise ConfigValidationError("request_timeout_seconds must be positive")

    market_data = config_dict.get("market_data") or {}
    lookback = market_data.get("onchain_lookback_days", 7)
    if not isinstance(lookback, int) or lookback < 1:
        raise ConfigValidationError("onchain_lookback_days must be at least 1")

    email = (config_dict.get("notifications") or {}).get("email") or {}
    port = email.get("smtp_port", 587)
    if not isinstance(port, int) or not 1 <= port <= 65535:
        raise ConfigValidationError(f"Invalid smtp_port: {port}")


def load_config(config_path: str) -> AppConfig:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to configuration file

    Returns:
        AppConfig instance

    Raises:
        ConfigValidationError: If configuration is invalid
        FileNotFoundError: If config file doesn't exist
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(path) as f:
        raw_config = yaml.safe_load(f) or {}

    config_dict = _substitute_env_vars(raw_config)
    config_dict.setdefault("database", {"path": DatabaseConfig.path})

    _validate_config(config_dict)

    database = DatabaseConfig(**config_dict.get("database", {}))
    market_data = MarketDataConfig(
        **_blank_to_none(config_dict.get("market_data") or {})
    )
    schedule = ScheduleConfig(**(config_dict.get("schedule") or {}))

    notif_dict = config_dict.get("notifications") or {}
    notifications = NotificationsConfig(
        telegram=TelegramNotificationConfig(
            **_blank_to_none(notif_dict.get("telegram") or {})
        ),
        slack=SlackNotificationConfig(**_blank_to_none(notif_dict.get("slack") or {})),
        email=EmailNotificationConfig(**_blank_to_none(notif_dict.get("email") or {})),
    )

    advanced = AdvancedConfig(**(config_dict.get("advanced") or {}))

    return AppConfig(
        database=database,
        market_data=market_data,
        schedule=schedule,
        notifications=notifications,
        advanced=advanced,
    )
