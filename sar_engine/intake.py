"""Translation of uploaded customer records into engine cases.

Upload files are loosely shaped JSON. Everything is mapped to the strict
domain types here, with the business defaults applied, so the engine only
ever sees fully populated values.
"""
from __future__ import annotations

import datetime as dt
from decimal import Decimal, InvalidOperation

from .domain import Case, CustomerProfile, Transaction
from .errors import InvalidCase

DEFAULT_OCCUPATION = "Unknown"
DEFAULT_ANNUAL_INCOME = Decimal("1200000")
DEFAULT_EXPECTED_MONTHLY_VOLUME = Decimal("100000")
DEFAULT_CURRENCY = "INR"
DEFAULT_COUNTRY = "IN"


def parse_timestamp(value) -> dt.datetime:
    """Parse an ISO date or timestamp into a naive UTC datetime."""
    if isinstance(value, dt.datetime):
        ts = value
    elif isinstance(value, dt.date):
        ts = dt.datetime.combine(value, dt.time())
    elif isinstance(value, str) and value.strip():
        cleaned = value.strip().replace("Z", "+00:00")
        try:
            ts = dt.datetime.fromisoformat(cleaned)
        except ValueError as e:
            raise InvalidCase(f"Unparsable date: {value!r}") from e
    else:
        raise InvalidCase(f"Missing or invalid date: {value!r}")
    if ts.tzinfo is not None:
        ts = ts.astimezone(dt.timezone.utc).replace(tzinfo=None)
    return ts


def parse_amount(value, field="amount") -> Decimal:
    if isinstance(value, bool) or value is None:
        raise InvalidCase(f"Invalid {field}: {value!r}")
    try:
        amount = Decimal(str(value).strip().replace(",", ""))
    except InvalidOperation as e:
        raise InvalidCase(f"Invalid {field}: {value!r}") from e
    if not amount.is_finite() or amount < 0:
        raise InvalidCase(f"Invalid {field}: {value!r}")
    return amount


def customer_from_upload(data) -> CustomerProfile:
    return CustomerProfile(
        customer_id=str(data["customer_id"]),
        name=data.get("full_name") or data.get("name") or "",
        occupation=data.get("occupation") or DEFAULT_OCCUPATION,
        annual_income=parse_amount(data.get("annual_income") or DEFAULT_ANNUAL_INCOME, "annual_income"),
        expected_monthly_volume=parse_amount(
            data.get("expected_monthly_volume") or DEFAULT_EXPECTED_MONTHLY_VOLUME, "expected_monthly_volume"
        ),
        date_of_birth=data.get("date_of_birth"),
        national_id=data.get("pan") or data.get("national_id"),
        address=data.get("address"),
    )


def transaction_from_upload(data, position: int) -> Transaction:
    if not isinstance(data, dict):
        raise InvalidCase(f"Transaction #{position} is not an object")
    return Transaction(
        transaction_id=str(data.get("transaction_id") or f"TXN-{position:04d}"),
        amount=parse_amount(data.get("amount")),
        currency=str(data.get("currency") or DEFAULT_CURRENCY).strip().upper(),
        date=parse_timestamp(data.get("date") or data.get("timestamp")),
        counterparty=str(data.get("counterparty") or ""),
        counterparty_country=str(data.get("counterparty_country") or DEFAULT_COUNTRY).strip().upper(),
        type=str(data.get("type") or "").strip().lower(),
        description=data.get("description") or "",
    )


def case_from_upload(customer_data, case_id: str, alert_date: dt.datetime) -> Case:
    if not isinstance(customer_data, dict) or not customer_data.get("customer_id"):
        raise InvalidCase("Customer record is missing customer_id")
    raw_txns = customer_data.get("transactions")
    if not isinstance(raw_txns, list):
        raise InvalidCase(f"Customer {customer_data['customer_id']} has no transaction list")

    return Case(
        case_id=case_id,
        customer=customer_from_upload(customer_data),
        transactions=tuple(transaction_from_upload(t, i) for i, t in enumerate(raw_txns, start=1)),
        alert_date=alert_date,
    )
