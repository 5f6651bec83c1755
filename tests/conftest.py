"""Shared fixtures for engine, persistence and API tests."""

import datetime as dt
import os
import tempfile
from decimal import Decimal
from pathlib import Path

_DB_DIR = tempfile.mkdtemp(prefix="sar-engine-tests-")
os.environ["DB_URL"] = f"sqlite:///{Path(_DB_DIR, 'test.db').as_posix()}"
os.environ["USE_MOCK_LLM"] = "true"
os.environ.pop("RULE_CONFIG_PATH", None)

import pytest  # noqa: E402

from sar_engine.config import load_engine_config  # noqa: E402
from sar_engine.domain import Case, CustomerProfile, Transaction  # noqa: E402

FIXED_NOW = dt.datetime(2025, 3, 1, 12, 0, tzinfo=dt.timezone.utc)


@pytest.fixture
def engine_config():
    return load_engine_config()


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


@pytest.fixture
def customer():
    return CustomerProfile(
        customer_id="CUST-001",
        name="Ravi Kumar",
        occupation="Shopkeeper",
        annual_income=Decimal("1200000"),
        expected_monthly_volume=Decimal("100000"),
        date_of_birth="1980-04-12",
        national_id="ABCDE1234F",
        address="12 MG Road, Pune",
    )


@pytest.fixture
def make_txn():
    def _make(tid, amount, when, currency="INR", counterparty="Acme Traders",
              country="IN", type="transfer", description=""):
        return Transaction(
            transaction_id=tid,
            amount=Decimal(str(amount)),
            currency=currency,
            date=when,
            counterparty=counterparty,
            counterparty_country=country,
            type=type,
            description=description,
        )
    return _make


@pytest.fixture
def make_case(customer):
    def _make(transactions, case_id="CASE-001", profile=None):
        return Case(
            case_id=case_id,
            customer=profile or customer,
            transactions=tuple(transactions),
            alert_date=dt.datetime(2025, 2, 28, 9, 0),
        )
    return _make


@pytest.fixture
def structuring_transactions(make_txn):
    """Ten deposits of 9,500 to one counterparty within six days."""
    start = dt.datetime(2025, 1, 6, 10, 0)
    return [
        make_txn(f"TXN-{i:03d}", "9500", start + dt.timedelta(hours=14 * i),
                 counterparty="Sunrise Enterprises", type="deposit")
        for i in range(1, 11)
    ]


@pytest.fixture
def all_rules_transactions(make_txn):
    """One day of activity that trips every default rule."""
    day = dt.datetime(2025, 1, 10)
    deposits = [
        make_txn(f"DEP-{i}", "900000", day + dt.timedelta(hours=8 + i),
                 counterparty=f"Payer {i}", type="deposit")
        for i in range(1, 7)
    ]
    outbound = make_txn("WDL-1", "5000000", day + dt.timedelta(hours=16),
                        counterparty="Offshore Holdings", country="IR", type="withdrawal")
    return deposits + [outbound]


@pytest.fixture
def clean_transactions(make_txn):
    start = dt.datetime(2025, 1, 2, 11, 30)
    return [
        make_txn("TXN-101", "12345.67", start, counterparty="City Utilities", type="payment"),
        make_txn("TXN-102", "8210.40", start + dt.timedelta(days=12), counterparty="Grocer Mart", type="payment"),
        make_txn("TXN-103", "45678.15", start + dt.timedelta(days=29), counterparty="Employer Ltd", type="deposit"),
    ]


@pytest.fixture
def upload_customer():
    """Upload-shaped record that trips every default rule."""
    txns = [
        {
            "transaction_id": f"DEP-{i}",
            "amount": "900000",
            "date": f"2025-01-10T{8 + i:02d}:00:00Z",
            "counterparty": f"Payer {i}",
            "type": "deposit",
        }
        for i in range(1, 7)
    ]
    txns.append({
        "transaction_id": "WDL-1",
        "amount": 5000000,
        "currency": "INR",
        "date": "2025-01-10T16:00:00Z",
        "counterparty": "Offshore Holdings",
        "counterparty_country": "IR",
        "type": "withdrawal",
    })
    return {
        "customer_id": "CUST-900",
        "full_name": "Meera Shah",
        "occupation": "Consultant",
        "annual_income": 1500000,
        "expected_monthly_volume": 120000,
        "pan": "PQRSX9876Z",
        "transactions": txns,
    }


@pytest.fixture
def db_session():
    from sar_engine import models  # noqa: F401
    from sar_engine.db import Base, SessionLocal, engine, init_db

    Base.metadata.drop_all(bind=engine)
    init_db()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
