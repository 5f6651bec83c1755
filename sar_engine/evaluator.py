"""Case evaluation entry point.

``evaluate_case`` runs validation, currency normalization, metric computation,
every active rule and aggregation in one pass. It touches no store and no
network; persisting the assessment and drafting a narrative are the caller's
business.
"""
from __future__ import annotations

import datetime as dt
import logging
from dataclasses import replace
from decimal import Decimal
from typing import Callable, Optional

from .currency import CurrencyNormalizer
from .domain import Case, CustomerProfile, RiskAssessment, Transaction
from .errors import InsufficientData, InvalidCase
from .metrics import chronological, compute_metrics
from .risk_engine import aggregate
from .rules import build_rule_set

logger = logging.getLogger(__name__)


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def validate_case(case) -> None:
    if not isinstance(case, Case):
        raise InvalidCase(f"Expected a Case, got {type(case).__name__}")
    if not isinstance(case.customer, CustomerProfile):
        raise InvalidCase(f"Case {case.case_id} has no customer profile")
    if not isinstance(case.transactions, (list, tuple)):
        raise InvalidCase(f"Case {case.case_id} transactions must be a sequence")
    if not case.transactions:
        raise InsufficientData(f"Case {case.case_id} has no transactions")

    seen = set()
    aware = set()
    for txn in case.transactions:
        if not isinstance(txn, Transaction):
            raise InvalidCase(f"Case {case.case_id} contains a non-transaction entry: {txn!r}")
        if not txn.transaction_id:
            raise InvalidCase(f"Case {case.case_id} has a transaction without an id")
        if txn.transaction_id in seen:
            raise InvalidCase(f"Case {case.case_id} repeats transaction id {txn.transaction_id}")
        seen.add(txn.transaction_id)
        if not isinstance(txn.amount, Decimal) or not txn.amount.is_finite() or txn.amount < 0:
            raise InvalidCase(f"Transaction {txn.transaction_id} has an invalid amount: {txn.amount!r}")
        if not isinstance(txn.date, dt.datetime):
            raise InvalidCase(f"Transaction {txn.transaction_id} has no timestamp")
        aware.add(txn.date.tzinfo is not None)
    if len(aware) > 1:
        raise InvalidCase(f"Case {case.case_id} mixes timezone-aware and naive timestamps")


class CaseEvaluator:
    """Binds one engine configuration to its rule set and normalizer."""

    def __init__(self, config, clock: Optional[Callable[[], dt.datetime]] = None):
        self.config = config
        self.rules = build_rule_set(config)
        self.normalizer = CurrencyNormalizer(config.rate_table)
        self.clock = clock or _utcnow

    def _normalize(self, case: Case) -> Case:
        txns = tuple(
            replace(t, reporting_amount=self.normalizer.normalize(t.amount, t.currency, t.date))
            for t in chronological(case.transactions)
        )
        return replace(case, transactions=txns)

    def evaluate(self, case: Case) -> RiskAssessment:
        validate_case(case)
        normalized = self._normalize(case)
        metrics = compute_metrics(normalized.transactions, self.normalizer.reporting_currency)

        findings = []
        for rule in self.rules:
            finding = rule.evaluate(normalized, metrics)
            if finding is not None:
                findings.append(finding)
        result = aggregate(findings, self.config)

        logger.debug(
            "case %s scored %s (%s) with rules %s",
            case.case_id, result.score, result.band.label, [f.rule_id for f in findings],
        )
        return RiskAssessment(
            case_id=case.case_id,
            aggregated_risk_score=result.score,
            triggered_rules=tuple(f"{f.rule_id}: {f.description}" for f in findings),
            calculated_metrics=metrics,
            typology_tags=result.typology_tags,
            final_classification=result.band.label,
            requires_sar=result.band.requires_sar,
            findings=tuple(findings),
            execution_timestamp=self.clock(),
            rule_engine_version=self.config.version,
        )


def evaluate_case(case: Case, config, clock: Optional[Callable[[], dt.datetime]] = None) -> RiskAssessment:
    return CaseEvaluator(config, clock=clock).evaluate(case)
