"""
Read-only access to current metric values.
"""

from typing import Optional

from treasury_alerts.database.connection import Database
from treasury_alerts.database.models import FxRate, HoldingsChange, StockQuote
from treasury_alerts.database.repository import MarketDataRepository
from .onchain import OnChainClient, OnChainMetrics


class MetricSource:
    """Supplies latest prices, FX rates, holdings and on-chain metrics."""

    def __init__(self, db: Database, onchain_client: Optional[OnChainClient] = None):
        self.market_repo = MarketDataRepository(db)
        self.onchain_client = onchain_client

    def latest_btc_price_usd(self) -> float:
        """Latest stored BTC price, 0 if none recorded yet."""
        price = self.market_repo.get_latest_btc_price()
        return price.price_usd if price else 0.0

    def latest_stock_prices(self) -> dict[int, StockQuote]:
        return self.market_repo.get_latest_stock_quotes()

    def latest_fx_rates(self) -> dict[str, FxRate]:
        return self.market_repo.get_latest_fx_rates()

    def latest_holdings(self) -> dict[int, HoldingsChange]:
        return self.market_repo.get_holdings_changes()

    def latest_onchain_metrics(
        self, lookback_days: int = 7, fallback_btc_price: float = 0.0
    ) -> OnChainMetrics:
        """
        Latest on-chain metrics.

        Raises:
            RuntimeError: If no on-chain client was configured
        """
        if self.onchain_client is None:
            raise RuntimeError("On-chain client not configured")
        return self.onchain_client.latest_metrics(
            lookback_days=lookback_days,
            fallback_btc_price=fallback_btc_price,
        )
