"""
Data fetcher tests.
Tests for Yahoo Finance sync and the on-chain metrics client.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock, Mock, patch

import pytest
import requests

from treasury_alerts.data.fetcher import MarketDataFetcher, MarketDataSyncer, Quote
from treasury_alerts.data.onchain import OnChainClient, parse_csv
from treasury_alerts.data.source import MetricSource
from treasury_alerts.database.models import Company
from treasury_alerts.database.repository import CompanyRepository, MarketDataRepository


class TestMarketDataFetcher:
    """Test Yahoo Finance quote fetching."""

    @pytest.fixture
    def fetcher(self):
        return MarketDataFetcher()

    def test_get_quote(self, fetcher: MarketDataFetcher, sample_stock_info):
        """Should fetch current price and previous close."""
        with patch("yfinance.Ticker") as mock_ticker:
            mock_ticker.return_value.info = sample_stock_info

            quote = fetcher.get_quote("MSTR")

        assert quote.symbol == "MSTR"
        assert quote.price == 395.50
        assert quote.previous_close == 380.25
        assert quote.timestamp.tzinfo is not None

    def test_get_quote_falls_back_to_previous_close(self, fetcher: MarketDataFetcher):
        with patch("yfinance.Ticker") as mock_ticker:
            mock_ticker.return_value.info = {"previousClose": 12.5}

            quote = fetcher.get_quote("3350.T")

        assert quote.price == 12.5

    def test_invalid_symbol(self, fetcher: MarketDataFetcher):
        """Should raise ValueError for invalid symbol."""
        with patch("yfinance.Ticker") as mock_ticker:
            mock_ticker.return_value.info = {}

            with pytest.raises(ValueError, match="Invalid symbol"):
                fetcher.get_quote("INVALID")

    def test_fx_rate_symbol(self, fetcher: MarketDataFetcher):
        with patch("yfinance.Ticker") as mock_ticker:
            mock_ticker.return_value.info = {"regularMarketPrice": 0.0067}

            rate = fetcher.get_fx_rate("JPY")

        mock_ticker.assert_called_once_with("JPYUSD=X")
        assert rate == 0.0067

    def test_usd_needs_no_lookup(self, fetcher: MarketDataFetcher):
        with patch("yfinance.Ticker") as mock_ticker:
            assert fetcher.get_fx_rate("USD") == 1.0
        mock_ticker.assert_not_called()


class TestMarketDataSyncer:
    """Test appending synced market data."""

    def test_sync(self, db):
        companies = CompanyRepository(db)
        mstr = companies.create(Company(ticker="MSTR", name="Strategy"))
        meta = companies.create(
            Company(
                ticker="MTPLF",
                name="Metaplanet",
                trading_currency="JPY",
                yahoo_ticker="3350.T",
            )
        )

        def quote(symbol):
            if symbol == "3350.T":
                raise ValueError("no data")
            return Quote(
                symbol=symbol,
                price=395.0,
                previous_close=380.0,
                timestamp=datetime(2025, 6, 1, tzinfo=timezone.utc),
            )

        fetcher = Mock(spec=MarketDataFetcher)
        fetcher.get_btc_price.return_value = 100_000.0
        fetcher.get_fx_rate.return_value = 0.0068
        fetcher.get_quote.side_effect = quote

        result = MarketDataSyncer(db, fetcher=fetcher).sync()

        assert result.btc_price == 100_000.0
        assert result.quotes == 1
        assert result.fx_rates == 1
        assert result.failed == ["3350.T"]

        market = MarketDataRepository(db)
        assert market.get_latest_btc_price().price_usd == 100_000.0
        assert set(market.get_latest_stock_quotes()) == {mstr.id}
        jpy = market.get_latest_fx_rates()["JPY"]
        assert jpy.rate_from_usd == 0.0068
        assert jpy.rate_to_usd == pytest.approx(1 / 0.0068)
        assert meta.id not in market.get_latest_stock_quotes()


class TestParseCsv:
    """Test CSV payload parsing."""

    def test_parse_numeric_columns(self):
        rows = parse_csv(",Date,Price,value\n0,2025-05-30,105000.5,71\n1,2025-05-31,104000,68\n")
        assert len(rows) == 2
        assert rows[-1]["date"] == "2025-05-31"
        assert rows[-1]["value"] == 68.0
        assert rows[0]["Price"] == 105000.5

    def test_drops_rows_without_date(self):
        rows = parse_csv("Date,value\n,5\n2025-05-31,6\n")
        assert [r["value"] for r in rows] == [6.0]

    def test_empty_text(self):
        assert parse_csv("") == []


class TestOnChainClient:
    """Test on-chain API client."""

    @pytest.fixture
    def client(self):
        return OnChainClient(api_key="secret", timeout=5)

    def test_fetch_metric(self, client: OnChainClient):
        """Should request with bearer key and parse the JSON-wrapped CSV."""
        with patch("requests.get") as mock_get:
            mock_get.return_value.ok = True
            mock_get.return_value.json.return_value = "Date,ZScore\n2025-05-31,2.41\n"

            rows = client.fetch_metric("mvrv-zscore", days=7)

        assert rows[0]["ZScore"] == 2.41
        args, kwargs = mock_get.call_args
        assert args[0] == "https://api.bitcoinmagazinepro.com/metrics/mvrv-zscore"
        assert kwargs["headers"] == {"Authorization": "Bearer secret"}
        assert set(kwargs["params"]) == {"from_date", "to_date"}
        assert kwargs["timeout"] == 5

    def test_http_error_gives_empty_series(self, client: OnChainClient):
        with patch("requests.get") as mock_get:
            mock_get.return_value.ok = False
            mock_get.return_value.status_code = 500

            assert client.fetch_metric("nupl") == []

    def test_connection_error_gives_empty_series(self, client: OnChainClient):
        with patch("requests.get", side_effect=requests.exceptions.ConnectionError()):
            assert client.fetch_metric("nupl") == []

    def test_missing_key(self):
        with patch("requests.get") as mock_get:
            assert OnChainClient(api_key=None).fetch_metric("nupl") == []
        mock_get.assert_not_called()

    def test_latest_metrics(self, client: OnChainClient):
        """Should take the last point of each series."""
        payloads = {
            "fear-and-greed": "Date,value\n2025-05-30,40\n2025-05-31,72\n",
            "mvrv-zscore": "Date,ZScore\n2025-05-31,2.35\n",
            "nupl": "Date,NUPL\n2025-05-31,0.52\n",
            "fr-average": "Date,funding_rate_usd\n2025-05-31,0.0105\n",
            "200wma-heatmap": "Date,Price,200week_avg\n2025-05-31,100000,50000\n",
        }

        def fake_get(url, **kwargs):
            response = MagicMock(ok=True)
            response.json.return_value = payloads[url.rsplit("/", 1)[-1]]
            return response

        with patch("requests.get", side_effect=fake_get):
            metrics = client.latest_metrics(lookback_days=7)

        assert metrics.fear_greed == 72
        assert metrics.mvrv_z_score == 2.35
        assert metrics.nupl == 0.52
        assert metrics.funding_rate == 0.0105
        assert metrics.btc_price == 100_000
        assert metrics.premium_200wma == pytest.approx(100.0)

    def test_latest_metrics_defaults(self):
        """Without data: neutral fear/greed, zeros, stored BTC price."""
        metrics = OnChainClient(api_key=None).latest_metrics(fallback_btc_price=98_000)

        assert metrics.fear_greed == 50
        assert metrics.nupl == 0
        assert metrics.funding_rate == 0
        assert metrics.btc_price == 98_000
        assert metrics.premium_200wma == 0


class TestMetricSource:
    """Test the metric source facade."""

    def test_btc_price_defaults_to_zero(self, db):
        assert MetricSource(db).latest_btc_price_usd() == 0.0

    def test_onchain_requires_client(self, db):
        with pytest.raises(RuntimeError):
            MetricSource(db).latest_onchain_metrics()
