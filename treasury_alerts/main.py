"""
Main application entry point.
"""

import json
import logging
import sys

from dotenv import load_dotenv

load_dotenv()

from treasury_alerts.config import AppConfig
from treasury_alerts.database.connection import Database
from treasury_alerts.data.onchain import OnChainClient
from treasury_alerts.data.source import MetricSource
from treasury_alerts.engine import AlertEngine
from treasury_alerts.notifiers.base import NotificationDispatcher

logger = logging.getLogger(__name__)


def build_dispatcher(config: AppConfig) -> NotificationDispatcher:
    """Create the channel dispatcher from configuration."""
    return NotificationDispatcher(
        config.notifications,
        timeout=config.advanced.request_timeout_seconds,
    )


def build_engine(config: AppConfig, db: Database, dry_run: bool = False) -> AlertEngine:
    """
    Wire an AlertEngine from configuration.

    Args:
        config: Loaded application config
        db: Initialized database
        dry_run: Evaluate without sending or recording
    """
    onchain_client = OnChainClient(
        api_key=config.market_data.onchain_api_key,
        api_base=config.market_data.onchain_api_base,
        timeout=config.advanced.request_timeout_seconds,
    )
    return AlertEngine(
        db=db,
        metric_source=MetricSource(db, onchain_client=onchain_client),
        dispatcher=build_dispatcher(config),
        onchain_lookback_days=config.market_data.onchain_lookback_days,
        dry_run=dry_run,
    )


def main():
    """CLI entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="Bitcoin Treasury Alert Engine")
    parser.add_argument(
        "--config", default="config.yaml", help="Path to config file"
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug mode")
    parser.add_argument(
        "--dry-run", action="store_true", help="Evaluate without sending notifications"
    )

    args = parser.parse_args()

    # Load config
    from treasury_alerts.config import load_config

    config = load_config(args.config)

    # Setup logging
    log_level = logging.DEBUG if args.debug else getattr(
        logging, config.advanced.log_level.upper(), logging.INFO
    )
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # Initialize database
    db = Database(config.database.path)
    db.initialize()

    if args.dry_run:
        logger.info("Dry run mode - no notifications will be sent")

    try:
        summary = build_engine(config, db, dry_run=args.dry_run).run()
    except Exception:
        logger.exception("Alert check failed")
        sys.exit(1)
    finally:
        db.close()

    print(json.dumps(summary.to_dict(), indent=2))


if __name__ == "__main__":
    main()
