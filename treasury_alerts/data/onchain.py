"""
Bitcoin Magazine Pro on-chain metrics client.
"""

import csv
import io
import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://api.bitcoinmagazinepro.com/metrics"


class OnChainAPIError(Exception):
    """Raised when an on-chain series cannot be fetched."""

    pass


@dataclass
class OnChainMetrics:
    """Latest scalar of each on-chain series."""

    fear_greed: float
    mvrv_z_score: float
    nupl: float
    funding_rate: float  # decimal, 0.0001 = 0.01%
    btc_price: float
    premium_200wma: float  # percent above the 200 week moving average

    def to_dict(self) -> dict[str, float]:
        return asdict(self)


class OnChainClient:
    """Fetches on-chain metric series."""

    FEAR_AND_GREED = "fear-and-greed"
    MVRV_ZSCORE = "mvrv-zscore"
    NUPL = "nupl"
    FUNDING_RATES = "fr-average"
    HEATMAP_200WMA = "200wma-heatmap"

    def __init__(
        self,
        api_key: Optional[str],
        api_base: str = DEFAULT_API_BASE,
        timeout: float = 10,
    ):
        """
        Initialize on-chain client.

        Args:
            api_key: Bitcoin Magazine Pro API key
            api_base: Metrics endpoint base URL
            timeout: Request timeout in seconds
        """
        self.api_key = api_key
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout

    def fetch_metric(self, metric: str, days: int = 90) -> list[dict[str, Any]]:
        """
        Fetch one metric series, oldest point first.

        Returns an empty list when the key is missing or the API fails.
        """
        try:
            return parse_csv(self._request(metric, days))
        except OnChainAPIError as e:
            logger.error(f"Error fetching {metric}: {e}")
            return []

    def _request(self, metric: str, days: int) -> str:
        """
        Request one series as CSV text.

        Raises:
            OnChainAPIError: If the key is missing or the request fails
        """
        if not self.api_key:
            raise OnChainAPIError("API key not configured")

        to_date = datetime.now(timezone.utc).date()
        from_date = to_date - timedelta(days=days)

        try:
            response = requests.get(
                f"{self.api_base}/{metric}",
                params={
                    "from_date": from_date.isoformat(),
                    "to_date": to_date.isoformat(),
                },
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise OnChainAPIError(str(e)) from e

        if not response.ok:
            raise OnChainAPIError(f"HTTP {response.status_code}")

        # API returns a JSON string holding CSV text
        try:
            payload = response.json()
        except ValueError:
            payload = response.text
        if not isinstance(payload, str):
            raise OnChainAPIError(f"Unexpected payload: {type(payload).__name__}")
        return payload

    def latest_metrics(
        self, lookback_days: int = 7, fallback_btc_price: float = 0.0
    ) -> OnChainMetrics:
        """
        Fetch every series once and take the latest point of each.

        Args:
            lookback_days: Days of history to request per series
            fallback_btc_price: Price used when the 200WMA series is empty
        """
        fear_greed = self.fetch_metric(self.FEAR_AND_GREED, lookback_days)
        mvrv = self.fetch_metric(self.MVRV_ZSCORE, lookback_days)
        nupl = self.fetch_metric(self.NUPL, lookback_days)
        funding = self.fetch_metric(self.FUNDING_RATES, lookback_days)
        wma = self.fetch_metric(self.HEATMAP_200WMA, lookback_days)

        price = _latest(wma, "Price", fallback_btc_price) if wma else fallback_btc_price
        avg_200w = _latest(wma, "200week_avg", 0.0)
        premium = (price - avg_200w) / avg_200w * 100 if avg_200w > 0 else 0.0

        return OnChainMetrics(
            fear_greed=_latest(fear_greed, "value", 50.0),
            mvrv_z_score=_latest(mvrv, "ZScore", 0.0),
            nupl=_latest(nupl, "NUPL", 0.0),
            funding_rate=_latest(funding, "funding_rate_usd", 0.0),
            btc_price=price,
            premium_200wma=premium,
        )


def _latest(series: list[dict[str, Any]], column: str, default: float) -> float:
    if not series:
        return default
    value = series[-1].get(column)
    if isinstance(value, (int, float)):
        return float(value)
    return default


def parse_csv(text: str) -> list[dict[str, Any]]:
    """
    Parse CSV text into rows keyed by header.

    Numeric cells become floats; rows without a date are dropped.
    """
    rows = []
    reader = csv.reader(io.StringIO(text.strip()))
    headers = next(reader, None)
    if not headers:
        return rows
    headers = [h.strip() for h in headers]

    for values in reader:
        if len(values) != len(headers):
            continue
        row: dict[str, Any] = {"date": ""}
        for header, raw in zip(headers, values):
            raw = raw.strip()
            if header.lower() in ("date", "time"):
                row["date"] = raw
                continue
            try:
                row[header] = float(raw)
            except ValueError:
                row[header] = raw or None
        if row["date"]:
            rows.append(row)
    return rows
