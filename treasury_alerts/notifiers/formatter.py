"""
Channel-specific message rendering for fired alerts.

Telegram bodies use HTML, Slack bodies use mrkdwn, email bodies are plain
text. Every rendering is a pure function of its inputs.
"""

import html
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from treasury_alerts.data.onchain import OnChainMetrics
from treasury_alerts.database.models import AlertKind, AlertRule, Channel
from treasury_alerts.rules.evaluator import EvaluationResult

SIGNATURE = "210k Terminal"

METRIC_DESCRIPTIONS = {
    "MVRV Z-Score": "Market Value to Realized Value",
    "NUPL": "Net Unrealized Profit/Loss",
    "Funding Rate": "Perpetual Futures Funding",
    "Fear & Greed Index": "Market Sentiment Index",
}


@dataclass
class RenderedMessage:
    """Title and body as sent to a provider."""

    title: str
    body: str


def format_number(value: float) -> str:
    """Thousands separators, up to 8 decimals, no trailing zeros."""
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.8f}".rstrip("0").rstrip(".")


def _format_value(kind: AlertKind, value: float, currency: str) -> str:
    if kind in (AlertKind.PRICE_ABOVE, AlertKind.PRICE_BELOW):
        return f"{currency} {value:,.2f}"
    if kind in (AlertKind.MNAV_ABOVE, AlertKind.MNAV_BELOW):
        return f"{value:.2f}x"
    if kind in (AlertKind.FEAR_GREED_ABOVE, AlertKind.FEAR_GREED_BELOW):
        return f"{value:.0f}"
    if kind in (AlertKind.MVRV_ABOVE, AlertKind.MVRV_BELOW):
        return f"{value:.2f}"
    if kind in (AlertKind.NUPL_ABOVE, AlertKind.NUPL_BELOW):
        return f"{value * 100:.1f}%"
    if kind in (AlertKind.FUNDING_RATE_ABOVE, AlertKind.FUNDING_RATE_BELOW):
        return f"{value * 100:.4f}%"
    return format_number(value)


# Dialect helpers: (bold, italic, escape)
_DIALECTS: dict[Channel, tuple[Callable[[str], str], Callable[[str], str], Callable[[str], str]]] = {
    Channel.TELEGRAM: (lambda s: f"<b>{s}</b>", lambda s: f"<i>{s}</i>", html.escape),
    Channel.SLACK: (lambda s: f"*{s}*", lambda s: f"_{s}_", lambda s: s),
    Channel.EMAIL: (lambda s: s, lambda s: s, lambda s: s),
}


def format_alert(
    rule: AlertRule,
    result: EvaluationResult,
    channel: Channel,
    subject: str,
    currency: str = "USD",
) -> RenderedMessage:
    """
    Render a threshold or holdings alert.

    Args:
        rule: Rule that fired
        result: Evaluation that fired it
        channel: Target channel dialect
        subject: Company ticker, or the metric name for on-chain kinds
        currency: Trading currency for price kinds
    """
    kind = rule.kind
    if kind is AlertKind.BTC_HOLDINGS:
        return _format_holdings(rule, result, channel, subject)
    if kind.is_percentage:
        return _format_percentage(rule, result, channel, subject)

    bold, italic, esc = _DIALECTS[channel]
    direction = "above" if kind.is_upward else "below"
    emoji = "⬆️" if kind.is_upward else "⬇️"
    observed = _format_value(kind, result.observed_value, currency)
    threshold = _format_value(kind, result.threshold, currency)

    title = f"{kind.label}: {subject} {observed} (threshold {threshold})"
    heading = esc(subject)
    if kind.is_company:
        heading = f"{heading} {result.metric_label}"
    description = METRIC_DESCRIPTIONS.get(subject) if kind.is_global else None

    lines = [f"{emoji} {bold(heading)}"]
    if description:
        lines.append(italic(esc(description)))
    lines += [
        "",
        f"{bold('Alert Type:')} {kind.label}",
        f"Crossed {direction} {bold(esc(threshold))}",
        f"Current: {bold(esc(observed))}",
        "",
        italic(SIGNATURE),
    ]
    return RenderedMessage(title=title, body="\n".join(lines))


def _format_holdings(
    rule: AlertRule, result: EvaluationResult, channel: Channel, ticker: str
) -> RenderedMessage:
    bold, italic, esc = _DIALECTS[channel]
    current = result.observed_value
    previous = result.previous_value
    change = current - (previous or 0)
    sign = "+" if change >= 0 else ""
    emoji = "🟢" if change > 0 else "🔴"
    previous_text = format_number(previous) if previous is not None else "?"

    title = f"{rule.kind.label}: {ticker} {format_number(current)} BTC (previous {previous_text})"
    lines = [
        f"{emoji} {bold(esc(ticker) + ' BTC Holdings')}",
        "",
        f"{bold('Alert Type:')} {rule.kind.label}",
        f"Previous: {previous_text} BTC",
        f"Current: {bold(format_number(current))} BTC",
        f"Change: {sign}{format_number(change)} BTC",
        "",
        italic(SIGNATURE),
    ]
    return RenderedMessage(title=title, body="\n".join(lines))


def _format_percentage(
    rule: AlertRule, result: EvaluationResult, channel: Channel, ticker: str
) -> RenderedMessage:
    bold, italic, esc = _DIALECTS[channel]
    observed = f"{result.observed_value:+.2f}%"
    threshold = f"{result.threshold:.2f}%"
    emoji = "📈" if result.observed_value > 0 else "📉"

    title = f"{rule.kind.label}: {ticker} {observed} (threshold {threshold})"
    lines = [
        f"{emoji} {bold(esc(ticker))} {observed}",
        "",
        f"{bold('Alert Type:')} {rule.kind.label}",
        f"Threshold: {threshold}",
        "",
        italic(SIGNATURE),
    ]
    return RenderedMessage(title=title, body="\n".join(lines))


def fear_greed_label(value: float) -> str:
    if value <= 20:
        return "Extreme Fear"
    if value <= 40:
        return "Fear"
    if value <= 60:
        return "Neutral"
    if value <= 80:
        return "Greed"
    return "Extreme Greed"


def mvrv_label(value: float) -> str:
    if value >= 7:
        return "Overvalued"
    if value >= 5:
        return "High"
    if value >= 3:
        return "Fair+"
    if value >= 0:
        return "Fair"
    return "Undervalued"


def nupl_label(value: float) -> str:
    if value >= 0.75:
        return "Euphoria"
    if value >= 0.5:
        return "Belief"
    if value >= 0.25:
        return "Optimism"
    if value >= 0:
        return "Hope"
    return "Capitulation"


def funding_label(percent: float) -> str:
    if percent >= 0.05:
        return "Hot"
    if percent >= 0.01:
        return "Bullish"
    if percent >= 0:
        return "Neutral"
    if percent >= -0.01:
        return "Bearish"
    return "Negative"


def wma_label(premium: float) -> str:
    if premium >= 100:
        return "Extended"
    if premium >= 50:
        return "Healthy"
    if premium >= 0:
        return "Near Support"
    return "Below"


def format_digest(
    metrics: OnChainMetrics, channel: Channel, as_of: datetime
) -> RenderedMessage:
    """Render the daily on-chain summary."""
    bold, italic, esc = _DIALECTS[channel]
    funding_pct = metrics.funding_rate * 100
    premium_sign = "+" if metrics.premium_200wma >= 0 else ""

    rows = [
        ("F&G", f"{metrics.fear_greed:.0f}", fear_greed_label(metrics.fear_greed)),
        ("MVRV", f"{metrics.mvrv_z_score:.2f}", mvrv_label(metrics.mvrv_z_score)),
        ("NUPL", f"{metrics.nupl * 100:.0f}%", nupl_label(metrics.nupl)),
        ("FR", f"{funding_pct:.2f}%", funding_label(funding_pct)),
        ("200W", f"{premium_sign}{metrics.premium_200wma:.0f}%", wma_label(metrics.premium_200wma)),
    ]
    table = "\n".join(f"{name:<6} {value:>6}  ({label})" for name, value, label in rows)
    if channel is Channel.TELEGRAM:
        table = f"<code>{esc(table)}</code>"
    elif channel is Channel.SLACK:
        table = f"```{table}```"

    date_text = f"{as_of:%b} {as_of.day}"
    lines = [
        f"📊 {bold('On-Chain Brief')} • {date_text}",
        "",
        f"Alert Type: {AlertKind.ONCHAIN_DAILY_DIGEST.label}",
        bold(f"₿ ${metrics.btc_price:,.0f}"),
        "",
        table,
        "",
        italic(SIGNATURE),
    ]
    return RenderedMessage(
        title=f"{AlertKind.ONCHAIN_DAILY_DIGEST.label}: {date_text}",
        body="\n".join(lines),
    )


def render(
    rule: AlertRule,
    result: EvaluationResult,
    channel: Channel,
    subject: str,
    currency: str = "USD",
    onchain: Optional[OnChainMetrics] = None,
    as_of: Optional[datetime] = None,
) -> RenderedMessage:
    """Render any alert kind for a channel."""
    if rule.kind.is_digest:
        if onchain is None or as_of is None:
            raise ValueError("Digest rendering needs on-chain metrics and a date")
        return format_digest(onchain, channel, as_of)
    return format_alert(rule, result, channel, subject, currency)
