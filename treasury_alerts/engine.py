"""
Alert evaluation and notification engine.

One call to ``AlertEngine.run`` is one scheduled pass over every active
rule. Metric snapshots are loaded once per pass and shared by all rules.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from treasury_alerts.data.onchain import OnChainMetrics
from treasury_alerts.data.source import MetricSource
from treasury_alerts.data.valuation import ValuationInputs, calculate_metrics
from treasury_alerts.database.connection import Database
from treasury_alerts.database.models import (
    AlertRule,
    AlertStatus,
    Company,
    FiringEvent,
    FxRate,
    HoldingsChange,
    StockQuote,
)
from treasury_alerts.database.repository import (
    AlertHistoryRepository,
    AlertRepository,
    CompanyRepository,
)
from treasury_alerts.notifiers.base import NotificationDispatcher
from treasury_alerts.notifiers.formatter import render
from treasury_alerts.rules.cooldown import is_suppressed
from treasury_alerts.rules.evaluator import (
    CompanySnapshot,
    EvaluationResult,
    RuleEvaluator,
)

logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    """Outcome of one engine pass."""

    checked: int = 0
    triggered: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "checked": self.checked,
            "triggered": self.triggered,
            "errors": list(self.errors),
        }


@dataclass
class MarketSnapshot:
    """Run-scoped, read-only metric cache."""

    btc_price: float
    stock_prices: dict[int, StockQuote]
    fx_rates: dict[str, FxRate]
    holdings: dict[int, HoldingsChange]
    onchain: Optional[OnChainMetrics] = None


def to_decimal_text(value: Optional[float]) -> Optional[str]:
    """Shortest text form of a number: 95.0 -> "95", 0.0105 -> "0.0105"."""
    if value is None:
        return None
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


class AlertEngine:
    """Evaluates active alert rules and dispatches notifications."""

    def __init__(
        self,
        db: Database,
        metric_source: MetricSource,
        dispatcher: NotificationDispatcher,
        onchain_lookback_days: int = 7,
        clock: Optional[Callable[[], datetime]] = None,
        dry_run: bool = False,
    ):
        """
        Initialize engine.

        Args:
            db: Database instance
            metric_source: Supplier of current metric values
            dispatcher: Channel dispatcher holding default destinations
            onchain_lookback_days: History window for on-chain series
            clock: Returns "now"; UTC wall clock by default
            dry_run: Evaluate only, send and record nothing
        """
        self.db = db
        self.metric_source = metric_source
        self.dispatcher = dispatcher
        self.onchain_lookback_days = onchain_lookback_days
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.dry_run = dry_run

        self.alert_repo = AlertRepository(db)
        self.history_repo = AlertHistoryRepository(db)
        self.company_repo = CompanyRepository(db)
        self.evaluator = RuleEvaluator()

    def run(self) -> RunSummary:
        """
        Run one pass over all active rules.

        Per-rule failures are collected into the summary; failures while
        loading rules or snapshots propagate and abort the pass.
        """
        summary = RunSummary()
        company_rules, global_rules = self._load_rules()
        logger.info(
            f"Checking {len(company_rules)} company and {len(global_rules)} global alerts"
        )

        snapshot = self._load_snapshot(need_onchain=bool(global_rules))
        companies: dict[int, Optional[Company]] = {}

        for rule in company_rules:
            label = f"Alert {rule.id}"
            try:
                company = self._get_company(rule.company_id, companies)
                if company is None:
                    logger.debug(f"Alert {rule.id}: company {rule.company_id} not found")
                    continue
                label = company.ticker
                self._check_company_rule(rule, company, snapshot, summary)
            except Exception as e:
                logger.error(f"Error checking alert {rule.id}: {e}")
                summary.errors.append(f"{label}: {e}")

        for rule in global_rules:
            try:
                self._check_global_rule(rule, snapshot, summary)
            except Exception as e:
                logger.error(f"Error checking alert {rule.id}: {e}")
                summary.errors.append(f"On-chain {rule.kind.value}: {e}")

        logger.info(
            f"Alert check complete: checked={summary.checked} "
            f"triggered={summary.triggered} errors={len(summary.errors)}"
        )
        return summary

    def _load_rules(self) -> tuple[list[AlertRule], list[AlertRule]]:
        """Split active rules into company and global rules, once per id."""
        company_rules: list[AlertRule] = []
        global_rules: list[AlertRule] = []
        seen: set[int] = set()

        for rule in self.alert_repo.list_active():
            if rule.id in seen or rule.status is not AlertStatus.ACTIVE:
                continue
            seen.add(rule.id)
            if rule.kind.is_company:
                company_rules.append(rule)
            else:
                global_rules.append(rule)

        return company_rules, global_rules

    def _load_snapshot(self, need_onchain: bool) -> MarketSnapshot:
        btc_price = self.metric_source.latest_btc_price_usd()
        snapshot = MarketSnapshot(
            btc_price=btc_price,
            stock_prices=self.metric_source.latest_stock_prices(),
            fx_rates=self.metric_source.latest_fx_rates(),
            holdings=self.metric_source.latest_holdings(),
        )
        if need_onchain:
            snapshot.onchain = self.metric_source.latest_onchain_metrics(
                lookback_days=self.onchain_lookback_days,
                fallback_btc_price=btc_price,
            )
        return snapshot

    def _get_company(
        self, company_id: Optional[int], cache: dict[int, Optional[Company]]
    ) -> Optional[Company]:
        if company_id is None:
            return None
        if company_id not in cache:
            cache[company_id] = self.company_repo.get_by_id(company_id)
        return cache[company_id]

    def _check_company_rule(
        self,
        rule: AlertRule,
        company: Company,
        snapshot: MarketSnapshot,
        summary: RunSummary,
    ) -> None:
        quote = snapshot.stock_prices.get(company.id)
        if quote is None and not rule.kind.value.startswith("mnav"):
            logger.debug(f"{company.ticker}: no stock price, skipping alert {rule.id}")
            return

        company_snapshot = self._build_company_snapshot(company, quote, snapshot)
        summary.checked += 1

        result = self.evaluator.evaluate(rule, company=company_snapshot)
        if not result.should_fire:
            return

        context = {
            "btcPrice": snapshot.btc_price,
            "priceLocal": company_snapshot.price_local,
            "priceUsd": company_snapshot.price_usd,
            "currentMnav": company_snapshot.mnav,
            "changePct": company_snapshot.change_pct,
            "currency": company_snapshot.currency,
        }
        if self.fire(
            rule,
            result,
            subject=company.ticker,
            currency=company_snapshot.currency,
            context=context,
        ):
            summary.triggered += 1

    def _build_company_snapshot(
        self,
        company: Company,
        quote: Optional[StockQuote],
        snapshot: MarketSnapshot,
    ) -> CompanySnapshot:
        currency = company.trading_currency or "USD"
        fx_rate = snapshot.fx_rates.get(currency)
        fx_to_usd = fx_rate.rate_from_usd if fx_rate and currency != "USD" else 1.0

        if quote is not None:
            price_local = quote.price
            price_usd = price_local * fx_to_usd
            if company.shares_outstanding > 0:
                market_cap_usd = price_usd * company.shares_outstanding
            else:
                market_cap_usd = company.market_cap_usd
        else:
            # mNAV still evaluates from the stored market cap
            price_local = None
            price_usd = None
            market_cap_usd = company.market_cap_usd

        holdings = snapshot.holdings.get(company.id)
        btc_holdings = holdings.current if holdings else company.btc_holdings

        valuation = calculate_metrics(
            ValuationInputs(
                btc_holdings=btc_holdings,
                btc_price=snapshot.btc_price,
                stock_price=price_local or 0.0,
                shares_outstanding=company.shares_outstanding,
                market_cap_usd=market_cap_usd,
                cash_usd=company.cash_usd,
                debt_usd=company.debt_usd,
                preferreds_usd=company.preferreds_usd,
                trading_currency=currency,
                fx_rate=fx_to_usd,
            )
        )

        return CompanySnapshot(
            company_id=company.id,
            ticker=company.ticker,
            name=company.name,
            currency=currency,
            price_local=price_local,
            price_usd=price_usd,
            change_pct=quote.change_pct if quote else None,
            mnav=valuation.mnav,
            btc_holdings=btc_holdings,
            previous_holdings=holdings.previous if holdings else None,
        )

    def _check_global_rule(
        self, rule: AlertRule, snapshot: MarketSnapshot, summary: RunSummary
    ) -> None:
        summary.checked += 1
        result = self.evaluator.evaluate(rule, onchain=snapshot.onchain)

        if rule.kind.is_digest:
            if self.fire(
                rule,
                result,
                subject=result.metric_label,
                context=snapshot.onchain.to_dict(),
                onchain=snapshot.onchain,
            ):
                summary.triggered += 1
            return

        if not result.should_fire:
            return

        context = snapshot.onchain.to_dict() if snapshot.onchain else {}
        if self.fire(rule, result, subject=result.metric_label, context=context):
            summary.triggered += 1

    def fire(
        self,
        rule: AlertRule,
        result: EvaluationResult,
        subject: str,
        currency: str = "USD",
        context: Optional[dict[str, Any]] = None,
        onchain: Optional[OnChainMetrics] = None,
    ) -> bool:
        """
        Fire a rule whose condition holds.

        Checks cooldown, renders, dispatches, records the firing event and
        then advances the rule's trigger statistics.

        Returns:
            False if suppressed by cooldown, True once the firing is recorded
        """
        now = self.clock()
        if is_suppressed(rule.last_triggered_at, rule.cooldown_minutes, now):
            logger.debug(f"Alert {rule.id} in cooldown period")
            return False

        message = render(
            rule,
            result,
            rule.channel,
            subject=subject,
            currency=currency,
            onchain=onchain,
            as_of=now,
        )

        if self.dry_run:
            logger.info(f"[dry run] Alert {rule.id} would fire: {message.title}")
            return True

        destination = self.dispatcher.resolve_destination(rule)
        delivery = self.dispatcher.send(rule.channel, destination, message)

        # History first: a crash before the rule update leaves it eligible to re-fire
        self.history_repo.create(
            FiringEvent(
                alert_id=rule.id,
                user_id=rule.user_id,
                company_id=rule.company_id if rule.kind.is_company else None,
                alert_type=rule.kind,
                channel=rule.channel,
                triggered_at=now,
                threshold=rule.threshold,
                threshold_percent=rule.threshold_percent,
                actual_value=to_decimal_text(result.observed_value),
                previous_value=to_decimal_text(result.previous_value),
                notification_sent=delivery.success,
                notification_error=delivery.error,
                context=context or {},
                message_title=message.title,
                message_body=message.body,
            )
        )
        self.alert_repo.record_trigger(rule, now)

        logger.info(
            f"Alert {rule.id} ({rule.kind.value}) fired, "
            f"notification {'sent' if delivery.success else 'not sent'}"
        )
        return True
