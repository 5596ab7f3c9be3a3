"""
Yahoo Finance market data fetcher.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

import yfinance as yf

from treasury_alerts.database.connection import Database
from treasury_alerts.database.models import BtcPrice, Company, FxRate, StockQuote
from treasury_alerts.database.repository import CompanyRepository, MarketDataRepository

logger = logging.getLogger(__name__)

BTC_TICKER = "BTC-USD"


@dataclass
class Quote:
    """Current quote of one Yahoo symbol."""

    symbol: str
    price: float
    previous_close: Optional[float]
    timestamp: datetime


class MarketDataFetcher:
    """Fetches quotes, BTC price and FX rates from Yahoo Finance."""

    def get_quote(self, symbol: str) -> Quote:
        """
        Fetch current quote.

        Args:
            symbol: Yahoo symbol (e.g., "MSTR", "3350.T")

        Returns:
            Quote with current price and previous close

        Raises:
            ValueError: If symbol is invalid or data unavailable
        """
        info = yf.Ticker(symbol).info

        if not info or "regularMarketPrice" not in info and "previousClose" not in info:
            raise ValueError(f"Invalid symbol or no data available: {symbol}")

        # Use regularMarketPrice if available, otherwise fall back to previousClose
        price = info.get("regularMarketPrice")
        if price is None:
            price = info.get("previousClose")

        if price is None:
            raise ValueError(f"Invalid symbol or no data available: {symbol}")

        return Quote(
            symbol=symbol,
            price=float(price),
            previous_close=info.get("regularMarketPreviousClose", info.get("previousClose")),
            timestamp=datetime.now(timezone.utc),
        )

    def get_btc_price(self) -> float:
        """Fetch BTC spot price in USD."""
        return self.get_quote(BTC_TICKER).price

    def get_fx_rate(self, currency: str) -> float:
        """
        Fetch the USD value of one unit of currency.

        Raises:
            ValueError: If the pair is unavailable or the rate is not positive
        """
        if currency == "USD":
            return 1.0
        rate = self.get_quote(f"{currency}USD=X").price
        if rate <= 0:
            raise ValueError(f"Invalid FX rate for {currency}: {rate}")
        return rate


@dataclass
class SyncResult:
    """Counts of one market data sync."""

    quotes: int = 0
    fx_rates: int = 0
    btc_price: Optional[float] = None
    failed: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "quotes": self.quotes,
            "fx_rates": self.fx_rates,
            "btc_price": self.btc_price,
            "failed": list(self.failed),
        }


class MarketDataSyncer:
    """Appends the latest market data of tracked companies to the database."""

    def __init__(self, db: Database, fetcher: Optional[MarketDataFetcher] = None):
        self.company_repo = CompanyRepository(db)
        self.market_repo = MarketDataRepository(db)
        self.fetcher = fetcher or MarketDataFetcher()

    def sync(self) -> SyncResult:
        """
        Fetch and store BTC price, FX rates and stock quotes.

        Per-symbol failures are logged, counted and skipped.
        """
        result = SyncResult()
        now = datetime.now(timezone.utc)

        try:
            result.btc_price = self.fetcher.get_btc_price()
            self.market_repo.add_btc_price(BtcPrice(price_usd=result.btc_price, price_at=now))
        except Exception as e:
            logger.warning(f"Failed to fetch {BTC_TICKER}: {e}")
            result.failed.append(BTC_TICKER)

        companies = self.company_repo.list_tracked()

        for currency in sorted({c.trading_currency for c in companies} - {"USD"}):
            try:
                rate_from_usd = self.fetcher.get_fx_rate(currency)
                self.market_repo.add_fx_rate(
                    FxRate(
                        currency=currency,
                        rate_to_usd=1 / rate_from_usd,
                        rate_from_usd=rate_from_usd,
                        rate_at=now,
                    )
                )
                result.fx_rates += 1
            except Exception as e:
                logger.warning(f"Failed to fetch FX rate {currency}: {e}")
                result.failed.append(currency)

        for company in companies:
            symbol = self._symbol(company)
            try:
                quote = self.fetcher.get_quote(symbol)
                self.market_repo.add_stock_quote(
                    StockQuote(
                        company_id=company.id,
                        price=quote.price,
                        previous_close=quote.previous_close,
                        price_at=quote.timestamp,
                    )
                )
                result.quotes += 1
            except Exception as e:
                logger.warning(f"Failed to fetch quote {symbol}: {e}")
                result.failed.append(symbol)

        logger.info(
            f"Market sync: {result.quotes} quotes, {result.fx_rates} FX rates, "
            f"{len(result.failed)} failed"
        )
        return result

    @staticmethod
    def _symbol(company: Company) -> str:
        return company.yahoo_ticker or company.ticker
