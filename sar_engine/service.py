"""Batch processing of uploaded customer files.

Each customer becomes one case. Cases that fail validation or evaluation are
skipped and reported; one bad record never aborts the batch.
"""
from __future__ import annotations

import datetime as dt
import logging
import random

from sqlalchemy.exc import SQLAlchemyError

from .audit import log_event
from .case_store import create_case, save_sar_draft
from .errors import InvalidCase, SAREngineError
from .evaluator import CaseEvaluator
from .intake import case_from_upload
from .llm import generate_sar_narrative
from .monitoring import monitoring, timed

logger = logging.getLogger(__name__)


def new_display_case_id(now=None, rng=random):
    now = now or dt.datetime.now(dt.timezone.utc)
    millis = str(int(now.timestamp() * 1000))[-6:]
    return f"SAR-{now.year}-{millis}-{rng.randrange(1000):03d}"


@timed
def _evaluate(evaluator, case):
    return evaluator.evaluate(case)


def _persist_case(session, case, assessment, display_case_id, customer_id, narrative, meta):
    """Write the case, its first draft and the audit entry in one transaction."""
    case_uuid = create_case(session, case, assessment, display_case_id=display_case_id, commit=False)
    save_sar_draft(session, case_uuid, narrative, version_number=1.0, source_event="AUTO_GENERATED", commit=False)
    log_event(session, case_uuid, "CASE_CREATED", "Case created from file upload", {
        "source": "file_upload",
        "customer_id": customer_id,
        "risk_score": assessment.aggregated_risk_score,
        "classification": assessment.final_classification,
        "rule_engine_version": assessment.rule_engine_version,
        "display_case_id": display_case_id,
        "narrative_model": meta.get("model"),
    }, commit=False)
    session.commit()
    return case_uuid


def process_upload(session, body, config, evaluator=None):
    if not isinstance(body, dict) or not isinstance(body.get("customers"), list):
        raise InvalidCase('Invalid format: "customers" array required')

    evaluator = evaluator or CaseEvaluator(config)
    customers = body["customers"]
    monitoring.increment("batch_requests")

    case_ids = []
    display_ids = []
    skipped = []
    failed = []
    for position, customer_data in enumerate(customers, start=1):
        customer_id = customer_data.get("customer_id") if isinstance(customer_data, dict) else None
        display_case_id = new_display_case_id()
        alert_date = dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)

        try:
            case = case_from_upload(customer_data, display_case_id, alert_date)
        except InvalidCase as e:
            logger.warning("skipping customer #%d (%s): %s", position, customer_id or "unknown", e)
            monitoring.increment("cases_skipped")
            skipped.append({"customer_id": customer_id, "reason": str(e)})
            continue

        try:
            assessment = _evaluate(evaluator, case)
        except SAREngineError as e:
            logger.warning("evaluation failed for customer %s: %s", customer_id, e)
            monitoring.increment("cases_failed")
            failed.append({"customer_id": customer_id, "reason": str(e)})
            continue
        monitoring.increment("cases_evaluated")

        if not assessment.requires_sar:
            continue

        narrative, meta = generate_sar_narrative(case.customer, case.transactions, assessment)
        if "error" in meta:
            monitoring.increment("narrative_fallbacks")
        try:
            case_uuid = _persist_case(session, case, assessment, display_case_id, customer_id, narrative, meta)
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("could not store case for customer %s: %s", customer_id, e)
            monitoring.increment("cases_failed")
            failed.append({"customer_id": customer_id, "reason": f"storage error: {e}"})
            continue
        monitoring.increment("sars_generated")
        case_ids.append(case_uuid)
        display_ids.append(display_case_id)

    return {
        "processed": len(customers),
        "sars_generated": len(case_ids),
        "first_case_id": case_ids[0] if case_ids else None,
        "case_ids": case_ids,
        "display_case_ids": display_ids,
        "skipped": skipped,
        "failed": failed,
    }
