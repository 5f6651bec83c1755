import datetime as dt
from decimal import Decimal

PII_FIELDS = {
    "name", "full_name", "customer_name", "account_number", "customer_id", "address",
    "email", "phone", "dob", "date_of_birth", "pan", "national_id",
}


def _mask_value(value):
    if not value:
        return value
    s = str(value)
    if len(s) <= 4:
        return "****"
    return s[:2] + "****" + s[-2:]


def mask_pii(obj):
    if isinstance(obj, dict):
        out = {}
        for k, v in obj.items():
            if k in PII_FIELDS:
                out[k] = _mask_value(v)
            else:
                out[k] = mask_pii(v)
        return out
    if isinstance(obj, (list, tuple)):
        return [mask_pii(i) for i in obj]
    return obj


def build_narrative_dataset(customer, assessment):
    """Masked, JSON-ready view of a case handed to the narrative generator."""
    metrics = assessment.calculated_metrics.to_dict()
    summary = {
        "period_start": metrics["date_range"]["start"],
        "period_end": metrics["date_range"]["end"],
        "period_days": metrics["period_days"],
        "transaction_count": metrics["transaction_count"],
        "total_amount": metrics["total_transaction_value"],
        "reporting_currency": metrics["reporting_currency"],
        "unique_counterparties": metrics["distinct_counterparties"],
        "risk_score": assessment.aggregated_risk_score,
        "classification": assessment.final_classification,
        "typologies": list(assessment.typology_tags),
    }
    return {
        "summary": summary,
        "customer_profile": mask_pii(serialize_for_json(customer_as_dict(customer))),
        "findings": [f.to_dict() for f in assessment.findings],
        "rule_engine_version": assessment.rule_engine_version,
    }


def customer_as_dict(customer):
    return {
        "customer_id": customer.customer_id,
        "full_name": customer.name,
        "occupation": customer.occupation,
        "annual_income": customer.annual_income,
        "expected_monthly_volume": customer.expected_monthly_volume,
        "date_of_birth": customer.date_of_birth,
        "pan": customer.national_id,
        "address": customer.address,
    }


def transaction_as_dict(txn):
    return {
        "transaction_id": txn.transaction_id,
        "amount": txn.amount,
        "currency": txn.currency,
        "date": txn.date,
        "counterparty": txn.counterparty,
        "counterparty_country": txn.counterparty_country,
        "type": txn.type,
        "description": txn.description,
    }


def serialize_for_json(obj):
    if isinstance(obj, (dt.datetime, dt.date)):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return float(obj)
    if isinstance(obj, (list, tuple)):
        return [serialize_for_json(i) for i in obj]
    if isinstance(obj, dict):
        return {k: serialize_for_json(v) for k, v in obj.items()}
    return obj
