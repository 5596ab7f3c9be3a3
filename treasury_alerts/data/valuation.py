"""
Treasury valuation metrics.

Core formulas:
- BTC NAV = holdings * BTC price
- EV = market cap + debt + preferreds - cash
- mNAV = EV / BTC NAV
- sats per share = holdings * 100,000,000 / shares outstanding
"""

from dataclasses import dataclass

SATS_PER_BTC = 100_000_000


@dataclass
class ValuationInputs:
    """Inputs for a company's valuation snapshot. Money values are USD."""

    btc_holdings: float
    btc_price: float
    stock_price: float
    shares_outstanding: float
    market_cap_usd: float
    cash_usd: float = 0.0
    debt_usd: float = 0.0
    preferreds_usd: float = 0.0
    trading_currency: str = "USD"
    fx_rate: float = 1.0  # local currency -> USD


@dataclass
class ValuationMetrics:
    """Derived valuation snapshot."""

    btc_nav: float
    enterprise_value: float
    mnav: float
    sats_per_share: float
    btc_per_share: float
    premium_discount: float
    market_cap_btc: float


def calculate_metrics(inputs: ValuationInputs) -> ValuationMetrics:
    """
    Calculate treasury metrics for a company.

    mNAV is 0 when holdings or the BTC price is zero; callers treat that
    as "unavailable".
    """
    btc_nav = inputs.btc_holdings * inputs.btc_price
    enterprise_value = (
        inputs.market_cap_usd
        + inputs.debt_usd
        + inputs.preferreds_usd
        - inputs.cash_usd
    )
    mnav = enterprise_value / btc_nav if btc_nav > 0 else 0.0

    if inputs.shares_outstanding > 0:
        sats_per_share = inputs.btc_holdings * SATS_PER_BTC / inputs.shares_outstanding
        btc_per_share = inputs.btc_holdings / inputs.shares_outstanding
    else:
        sats_per_share = 0.0
        btc_per_share = 0.0

    market_cap_btc = inputs.market_cap_usd / inputs.btc_price if inputs.btc_price > 0 else 0.0

    return ValuationMetrics(
        btc_nav=btc_nav,
        enterprise_value=enterprise_value,
        mnav=mnav,
        sats_per_share=sats_per_share,
        btc_per_share=btc_per_share,
        premium_discount=(mnav - 1) * 100,
        market_cap_btc=market_cap_btc,
    )
