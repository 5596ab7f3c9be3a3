"""
Rule evaluation.
"""

import operator
from dataclasses import dataclass
from typing import Callable, Optional

from treasury_alerts.data.onchain import OnChainMetrics
from treasury_alerts.database.models import AlertKind, AlertRule

__all__ = [
    "CompanySnapshot",
    "EvaluationResult",
    "RuleEvaluator",
    "UnhandledAlertKindError",
]


class UnhandledAlertKindError(Exception):
    """Raised when an alert kind has no comparison case."""

    pass


@dataclass
class CompanySnapshot:
    """Current figures for one company, resolved once per run."""

    company_id: int
    ticker: str
    name: str
    currency: str = "USD"
    price_local: Optional[float] = None
    price_usd: Optional[float] = None
    change_pct: Optional[float] = None
    mnav: Optional[float] = None
    btc_holdings: Optional[float] = None
    previous_holdings: Optional[float] = None


@dataclass
class EvaluationResult:
    """Outcome of evaluating one rule."""

    should_fire: bool
    observed_value: Optional[float]
    metric_label: str
    previous_value: Optional[float] = None
    threshold: Optional[float] = None  # value actually compared against

    @property
    def decided(self) -> bool:
        return self.observed_value is not None


@dataclass(frozen=True)
class _Comparison:
    label: str
    read: Callable[..., Optional[float]]
    compare: Callable[[float, float], bool]
    threshold_divisor: float = 1.0
    uses_percent: bool = False


def _company(attr: str) -> Callable[[CompanySnapshot], Optional[float]]:
    return lambda snapshot: getattr(snapshot, attr)


def _mnav(snapshot: CompanySnapshot) -> Optional[float]:
    # Zero means holdings or BTC price were unavailable
    return snapshot.mnav if snapshot.mnav else None


def _onchain(attr: str) -> Callable[[OnChainMetrics], Optional[float]]:
    return lambda metrics: getattr(metrics, attr)


_COMPANY_COMPARISONS: dict[AlertKind, _Comparison] = {
    AlertKind.PRICE_ABOVE: _Comparison("Price", _company("price_local"), operator.gt),
    AlertKind.PRICE_BELOW: _Comparison("Price", _company("price_local"), operator.lt),
    AlertKind.MNAV_ABOVE: _Comparison("mNAV", _mnav, operator.gt),
    AlertKind.MNAV_BELOW: _Comparison("mNAV", _mnav, operator.lt),
    AlertKind.PCT_CHANGE_UP: _Comparison(
        "Price Change", _company("change_pct"), operator.gt, uses_percent=True
    ),
    AlertKind.PCT_CHANGE_DOWN: _Comparison(
        "Price Change", _company("change_pct"), operator.lt, uses_percent=True
    ),
}

_ONCHAIN_COMPARISONS: dict[AlertKind, _Comparison] = {
    AlertKind.FEAR_GREED_ABOVE: _Comparison(
        "Fear & Greed Index", _onchain("fear_greed"), operator.gt
    ),
    AlertKind.FEAR_GREED_BELOW: _Comparison(
        "Fear & Greed Index", _onchain("fear_greed"), operator.lt
    ),
    AlertKind.MVRV_ABOVE: _Comparison("MVRV Z-Score", _onchain("mvrv_z_score"), operator.gt),
    AlertKind.MVRV_BELOW: _Comparison("MVRV Z-Score", _onchain("mvrv_z_score"), operator.lt),
    AlertKind.NUPL_ABOVE: _Comparison("NUPL", _onchain("nupl"), operator.gt),
    AlertKind.NUPL_BELOW: _Comparison("NUPL", _onchain("nupl"), operator.lt),
    # Funding thresholds are stored in percent, the metric is a decimal
    AlertKind.FUNDING_RATE_ABOVE: _Comparison(
        "Funding Rate", _onchain("funding_rate"), operator.gt, threshold_divisor=100
    ),
    AlertKind.FUNDING_RATE_BELOW: _Comparison(
        "Funding Rate", _onchain("funding_rate"), operator.lt, threshold_divisor=100
    ),
}

_SPECIAL_KINDS = frozenset({AlertKind.BTC_HOLDINGS, AlertKind.ONCHAIN_DAILY_DIGEST})

_unhandled = (
    set(AlertKind) - set(_COMPANY_COMPARISONS) - set(_ONCHAIN_COMPARISONS) - _SPECIAL_KINDS
)
if _unhandled:
    raise UnhandledAlertKindError(
        f"No comparison for alert kinds: {sorted(k.value for k in _unhandled)}"
    )


class RuleEvaluator:
    """Evaluates alert rules against current metric values."""

    def evaluate(
        self,
        rule: AlertRule,
        company: Optional[CompanySnapshot] = None,
        onchain: Optional[OnChainMetrics] = None,
    ) -> EvaluationResult:
        """
        Decide whether a rule's condition currently holds.

        Args:
            rule: Rule to evaluate
            company: Company figures, for company kinds
            onchain: Shared on-chain snapshot, for global kinds

        Returns:
            EvaluationResult; observed_value is None when the inputs
            needed for this kind are unavailable

        Raises:
            UnhandledAlertKindError: If the rule kind has no comparison case
        """
        kind = rule.kind

        if kind is AlertKind.ONCHAIN_DAILY_DIGEST:
            return EvaluationResult(
                should_fire=True, observed_value=None, metric_label="On-Chain Digest"
            )

        if kind is AlertKind.BTC_HOLDINGS:
            return self._evaluate_holdings(company)

        if kind in _COMPANY_COMPARISONS:
            return self._compare(rule, _COMPANY_COMPARISONS[kind], company)

        if kind in _ONCHAIN_COMPARISONS:
            return self._compare(rule, _ONCHAIN_COMPARISONS[kind], onchain)

        raise UnhandledAlertKindError(f"Unhandled alert kind: {kind}")

    def _compare(self, rule: AlertRule, comparison: _Comparison, metrics) -> EvaluationResult:
        raw_threshold = rule.threshold_percent if comparison.uses_percent else rule.threshold
        if metrics is None or raw_threshold is None:
            return self._no_decision(comparison.label)

        observed = comparison.read(metrics)
        if observed is None:
            return self._no_decision(comparison.label)

        threshold = raw_threshold / comparison.threshold_divisor
        return EvaluationResult(
            should_fire=comparison.compare(observed, threshold),
            observed_value=observed,
            metric_label=comparison.label,
            threshold=threshold,
        )

    def _evaluate_holdings(self, company: Optional[CompanySnapshot]) -> EvaluationResult:
        label = "BTC Holdings"
        if company is None or company.btc_holdings is None:
            return self._no_decision(label)
        if company.previous_holdings is None:
            return self._no_decision(label)

        return EvaluationResult(
            should_fire=company.btc_holdings != company.previous_holdings,
            observed_value=company.btc_holdings,
            metric_label=label,
            previous_value=company.previous_holdings,
        )

    @staticmethod
    def _no_decision(label: str) -> EvaluationResult:
        return EvaluationResult(should_fire=False, observed_value=None, metric_label=label)
