"""Value types flowing through a single case evaluation.

Everything here is frozen: a Case is built once per evaluation request and the
engine only ever derives new values from it.
"""
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from decimal import ROUND_HALF_EVEN, Decimal
from typing import Dict, Optional, Tuple

CENT = Decimal("0.01")


def money(value: Decimal) -> float:
    return float(value.quantize(CENT, rounding=ROUND_HALF_EVEN))


@dataclass(frozen=True)
class Transaction:
    transaction_id: str
    amount: Decimal
    currency: str
    date: dt.datetime
    counterparty: str
    counterparty_country: str
    type: str
    description: str = ""
    # Set by the evaluator once the amount is converted to the reporting currency.
    reporting_amount: Optional[Decimal] = None

    @property
    def value(self) -> Decimal:
        """Amount in the reporting currency when normalized, else as booked."""
        if self.reporting_amount is not None:
            return self.reporting_amount
        return self.amount


@dataclass(frozen=True)
class CustomerProfile:
    customer_id: str
    name: str
    occupation: str
    annual_income: Decimal
    expected_monthly_volume: Decimal
    date_of_birth: Optional[str] = None
    national_id: Optional[str] = None
    address: Optional[str] = None


@dataclass(frozen=True)
class Case:
    case_id: str
    customer: Optional[CustomerProfile]
    transactions: Tuple[Transaction, ...]
    alert_date: dt.datetime


@dataclass(frozen=True)
class RuleFinding:
    rule_id: str
    description: str
    typology: str
    score: float
    transaction_ids: Tuple[str, ...]
    evidence: Dict[str, object] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        return {
            "rule_id": self.rule_id,
            "description": self.description,
            "typology": self.typology,
            "score": self.score,
            "transaction_ids": list(self.transaction_ids),
            "evidence": dict(self.evidence),
        }


@dataclass(frozen=True)
class CalculatedMetrics:
    reporting_currency: str
    total_transaction_value: Decimal
    transaction_count: int
    first_transaction_date: dt.datetime
    last_transaction_date: dt.datetime
    period_days: float
    average_transaction_size: Decimal
    largest_transaction_value: Decimal
    largest_transaction_id: str
    distinct_counterparties: int
    distinct_countries: int
    velocity_per_day: float
    top_counterparty: str
    top_counterparty_share: float

    def to_dict(self) -> Dict[str, object]:
        return {
            "reporting_currency": self.reporting_currency,
            "total_transaction_value": money(self.total_transaction_value),
            "transaction_count": self.transaction_count,
            "date_range": {
                "start": self.first_transaction_date.isoformat(),
                "end": self.last_transaction_date.isoformat(),
            },
            "period_days": self.period_days,
            "average_transaction_size": money(self.average_transaction_size),
            "largest_transaction_value": money(self.largest_transaction_value),
            "largest_transaction_id": self.largest_transaction_id,
            "distinct_counterparties": self.distinct_counterparties,
            "distinct_countries": self.distinct_countries,
            "velocity_per_day": self.velocity_per_day,
            "top_counterparty": self.top_counterparty,
            "top_counterparty_share": self.top_counterparty_share,
        }


@dataclass(frozen=True)
class RiskAssessment:
    case_id: str
    aggregated_risk_score: float
    triggered_rules: Tuple[str, ...]
    calculated_metrics: CalculatedMetrics
    typology_tags: Tuple[str, ...]
    final_classification: str
    requires_sar: bool
    findings: Tuple[RuleFinding, ...]
    execution_timestamp: dt.datetime
    rule_engine_version: str

    def to_dict(self) -> Dict[str, object]:
        return {
            "case_id": self.case_id,
            "aggregated_risk_score": self.aggregated_risk_score,
            "triggered_rules": list(self.triggered_rules),
            "calculated_metrics": self.calculated_metrics.to_dict(),
            "typology_tags": list(self.typology_tags),
            "final_classification": self.final_classification,
            "requires_sar": self.requires_sar,
            "suspicion_summary_json": [f.to_dict() for f in self.findings],
            "execution_timestamp": self.execution_timestamp.isoformat(),
            "rule_engine_version": self.rule_engine_version,
        }
