"""Aggregate statistics over a case's transactions.

The metrics are computed once per evaluation, handed to every rule, and copied
verbatim into the assessment.
"""
from __future__ import annotations

from collections import defaultdict
from decimal import Decimal
from typing import Iterable, List

from .domain import CalculatedMetrics, Transaction
from .errors import InsufficientData

SECONDS_PER_DAY = 86400.0
MIN_VELOCITY_SPAN_DAYS = 1.0


def chronological(transactions: Iterable[Transaction]) -> List[Transaction]:
    return sorted(transactions, key=lambda t: (t.date, t.transaction_id))


def _days_between(start_ts, end_ts) -> float:
    return (end_ts - start_ts).total_seconds() / SECONDS_PER_DAY


def compute_metrics(transactions: Iterable[Transaction], reporting_currency: str) -> CalculatedMetrics:
    txns = chronological(transactions)
    if not txns:
        raise InsufficientData("At least one transaction is required to compute metrics")

    total = Decimal(0)
    largest = txns[0]
    by_counterparty = defaultdict(Decimal)
    countries = set()
    for txn in txns:
        value = txn.value
        total += value
        if value > largest.value:
            largest = txn
        by_counterparty[txn.counterparty] += value
        countries.add(txn.counterparty_country)

    count = len(txns)
    period_days = _days_between(txns[0].date, txns[-1].date)
    velocity = count / max(period_days, MIN_VELOCITY_SPAN_DAYS)

    # Ties on value go to the alphabetically first counterparty.
    top_counterparty, top_value = min(by_counterparty.items(), key=lambda kv: (-kv[1], kv[0] or ""))
    top_share = float(top_value / total) if total > 0 else 0.0

    return CalculatedMetrics(
        reporting_currency=reporting_currency,
        total_transaction_value=total,
        transaction_count=count,
        first_transaction_date=txns[0].date,
        last_transaction_date=txns[-1].date,
        period_days=round(period_days, 4),
        average_transaction_size=total / count,
        largest_transaction_value=largest.value,
        largest_transaction_id=largest.transaction_id,
        distinct_counterparties=len(by_counterparty),
        distinct_countries=len(countries),
        velocity_per_day=round(velocity, 4),
        top_counterparty=top_counterparty,
        top_counterparty_share=round(top_share, 4),
    )
