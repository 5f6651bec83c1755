"""Typology rules.

Each rule inspects the normalized case and its metrics and returns at most one
finding. Rules never look at each other's results; thresholds and weights come
from the engine configuration.
"""
from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Type

from .domain import CalculatedMetrics, Case, RuleFinding, Transaction, money
from .schema import (
    IncomeMismatchParams,
    LargeTransactionParams,
    RapidMovementParams,
    RoundAmountParams,
    RuleParams,
    StructuringParams,
    VelocitySpikeParams,
    validate_config,
)

RULE_REGISTRY: Dict[str, Type["Rule"]] = {}


def register_rule(cls):
    if cls.rule_id in RULE_REGISTRY:
        raise ValueError(f"Duplicate rule id: {cls.rule_id}")
    RULE_REGISTRY[cls.rule_id] = cls
    return cls


class Rule:
    rule_id = ""
    name = ""
    typology = ""
    default_weight = 0.0
    params_model: Type[RuleParams] = RuleParams

    def __init__(self, weight: float, params: Optional[Mapping[str, object]] = None):
        self.weight = float(weight)
        validated = validate_config(self.params_model, dict(params or {}), f"{self.rule_id}.params")
        self.params = validated.model_dump()

    @classmethod
    def from_config(cls, settings, config) -> "Rule":
        return cls(settings.weight, settings.params)

    def evaluate(self, case: Case, metrics: CalculatedMetrics) -> Optional[RuleFinding]:
        raise NotImplementedError

    def _finding(self, description: str, txns: Sequence[Transaction], evidence: Dict[str, object]) -> RuleFinding:
        return RuleFinding(
            rule_id=self.rule_id,
            description=description,
            typology=self.typology,
            score=self.weight,
            transaction_ids=tuple(t.transaction_id for t in txns),
            evidence=evidence,
        )


@register_rule
class StructuringRule(Rule):
    rule_id = "STR-001"
    name = "Structuring - Sub-Threshold Aggregation"
    typology = "STRUCTURING"
    default_weight = 35.0
    params_model = StructuringParams

    def evaluate(self, case, metrics):
        threshold = self.params["reporting_threshold"]
        window = dt.timedelta(days=self.params["window_days"])
        min_txns = self.params["min_transactions"]

        below = [t for t in case.transactions if t.value < threshold]
        best: Optional[Tuple[Decimal, int, int]] = None
        start = 0
        running = Decimal(0)
        for end, txn in enumerate(below):
            running += txn.value
            while txn.date - below[start].date > window:
                running -= below[start].value
                start += 1
            if end - start + 1 >= min_txns and running > threshold:
                if best is None or running > best[0]:
                    best = (running, start, end)

        if best is None:
            return None
        window_total, first, last = best
        window_txns = below[first:last + 1]
        return self._finding(
            f"{len(window_txns)} transactions individually below {money(threshold)} "
            f"totalling {money(window_total)} within {self.params['window_days']:g} days",
            window_txns,
            {
                "reporting_threshold": money(threshold),
                "window_days": self.params["window_days"],
                "window_total": money(window_total),
                "window_start": window_txns[0].date.isoformat(),
                "window_end": window_txns[-1].date.isoformat(),
                "transaction_count": len(window_txns),
            },
        )


@register_rule
class HighRiskGeographyRule(Rule):
    rule_id = "GEO-001"
    name = "High-Risk Corridor"
    typology = "HIGH_RISK_GEOGRAPHY"
    default_weight = 30.0
    params_model = RuleParams

    def __init__(self, weight, params=None, high_risk_countries=frozenset()):
        super().__init__(weight, params)
        self.high_risk_countries = frozenset(high_risk_countries)

    @classmethod
    def from_config(cls, settings, config):
        return cls(settings.weight, settings.params, config.high_risk_countries)

    def evaluate(self, case, metrics):
        risky = [t for t in case.transactions if t.counterparty_country in self.high_risk_countries]
        if not risky:
            return None
        countries = sorted({t.counterparty_country for t in risky})
        return self._finding(
            f"{len(risky)} transactions linked to high-risk jurisdictions ({', '.join(countries)})",
            risky,
            {
                "countries": countries,
                "flagged_value": money(sum((t.value for t in risky), Decimal(0))),
            },
        )


@register_rule
class IncomeMismatchRule(Rule):
    rule_id = "INC-001"
    name = "Activity Inconsistent With Declared Profile"
    typology = "INCOME_MISMATCH"
    default_weight = 30.0
    params_model = IncomeMismatchParams

    def evaluate(self, case, metrics):
        customer = case.customer
        total = metrics.total_transaction_value
        months = max(Decimal(str(metrics.period_days)) / Decimal(30), Decimal(1))
        monthly_average = total / months
        income_limit = customer.annual_income * self.params["income_multiple"]
        volume_limit = customer.expected_monthly_volume * self.params["monthly_volume_multiple"]

        breaches: List[str] = []
        if total > income_limit:
            breaches.append("annual_income")
        if monthly_average > volume_limit:
            breaches.append("expected_monthly_volume")
        if not breaches:
            return None

        return self._finding(
            f"Total activity of {money(total)} against declared annual income of "
            f"{money(customer.annual_income)} and expected monthly volume of "
            f"{money(customer.expected_monthly_volume)}",
            case.transactions,
            {
                "breaches": breaches,
                "total_transaction_value": money(total),
                "annual_income": money(customer.annual_income),
                "income_multiple": float(self.params["income_multiple"]),
                "monthly_average": money(monthly_average),
                "expected_monthly_volume": money(customer.expected_monthly_volume),
                "monthly_volume_multiple": float(self.params["monthly_volume_multiple"]),
            },
        )


@register_rule
class VelocitySpikeRule(Rule):
    rule_id = "VEL-001"
    name = "Transaction Velocity Spike"
    typology = "VELOCITY_SPIKE"
    default_weight = 15.0
    params_model = VelocitySpikeParams

    def evaluate(self, case, metrics):
        if metrics.transaction_count < self.params["min_transactions"]:
            return None
        if metrics.velocity_per_day <= self.params["max_per_day"]:
            return None
        return self._finding(
            f"{metrics.transaction_count} transactions over {metrics.period_days:g} days "
            f"({metrics.velocity_per_day:g}/day, limit {self.params['max_per_day']:g}/day)",
            case.transactions,
            {
                "velocity_per_day": metrics.velocity_per_day,
                "max_per_day": self.params["max_per_day"],
                "period_days": metrics.period_days,
            },
        )


@register_rule
class RoundAmountRule(Rule):
    rule_id = "RND-001"
    name = "Round-Amount Bias"
    typology = "ROUND_AMOUNTS"
    default_weight = 10.0
    params_model = RoundAmountParams

    def evaluate(self, case, metrics):
        unit = self.params["round_unit"]
        # Roundness is judged on the amount as booked, before conversion.
        round_txns = [t for t in case.transactions if t.amount > 0 and t.amount % unit == 0]
        share = len(round_txns) / metrics.transaction_count
        if len(round_txns) < self.params["min_transactions"] or share < self.params["min_share"]:
            return None
        return self._finding(
            f"{len(round_txns)} of {metrics.transaction_count} transactions are multiples of {money(unit)}",
            round_txns,
            {
                "round_unit": money(unit),
                "round_share": round(share, 4),
                "min_share": self.params["min_share"],
            },
        )


@register_rule
class RapidMovementRule(Rule):
    rule_id = "LAY-001"
    name = "Rapid Fund Movement"
    typology = "LAYERING"
    default_weight = 30.0
    params_model = RapidMovementParams

    def evaluate(self, case, metrics):
        window = dt.timedelta(hours=self.params["window_hours"])
        ratio = self.params["pass_through_ratio"]
        inbound_types = set(self.params["inbound_types"])
        outbound_types = set(self.params["outbound_types"])

        inbound = [t for t in case.transactions if t.type.lower() in inbound_types]
        outbound = [t for t in case.transactions if t.type.lower() in outbound_types]
        used = set()
        pairs = []
        for credit in inbound:
            for debit in outbound:
                if debit.transaction_id in used:
                    continue
                gap = debit.date - credit.date
                if gap < dt.timedelta(0) or gap > window:
                    continue
                if debit.value >= credit.value * ratio:
                    used.add(debit.transaction_id)
                    pairs.append((credit, debit, gap))
                    break

        if not pairs:
            return None
        cited = []
        for credit, debit, _ in pairs:
            cited.extend([credit, debit])
        return self._finding(
            f"{len(pairs)} inbound credits moved onward within {self.params['window_hours']:g} hours",
            cited,
            {
                "pairs": [
                    {
                        "inbound": credit.transaction_id,
                        "outbound": debit.transaction_id,
                        "hours": round(gap.total_seconds() / 3600.0, 2),
                    }
                    for credit, debit, gap in pairs
                ],
                "window_hours": self.params["window_hours"],
                "pass_through_ratio": float(ratio),
            },
        )


@register_rule
class LargeTransactionRule(Rule):
    rule_id = "LRG-001"
    name = "Single Large Transaction"
    typology = "LARGE_TRANSACTION"
    default_weight = 20.0
    params_model = LargeTransactionParams

    def evaluate(self, case, metrics):
        threshold = self.params["threshold"]
        large = [t for t in case.transactions if t.value >= threshold]
        if not large:
            return None
        return self._finding(
            f"{len(large)} transactions at or above {money(threshold)}; largest {money(metrics.largest_transaction_value)}",
            large,
            {
                "threshold": money(threshold),
                "largest_transaction_id": metrics.largest_transaction_id,
                "largest_transaction_value": money(metrics.largest_transaction_value),
            },
        )


def build_rule_set(config) -> Tuple[Rule, ...]:
    """Instantiate the enabled rules of ``config`` in configured order."""
    return tuple(
        RULE_REGISTRY[rule_id].from_config(settings, config)
        for rule_id, settings in config.rules.items()
        if settings.enabled
    )
