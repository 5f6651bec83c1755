"""Persistence of evaluated cases.

Stores the records downstream review tooling reads: the case row, the
normalized case data, the rule engine output exactly as assessed, and the
versioned SAR drafts. The engine itself never imports this module.
"""
from __future__ import annotations

import logging
import uuid

from .evidence import customer_as_dict, serialize_for_json, transaction_as_dict
from .models import AuditTrailLog, CaseDataNormalized, CaseRecord, RuleEngineOutput, SarDraft

logger = logging.getLogger(__name__)

STATUS_DRAFT_READY = "DRAFT_READY"


def create_case(session, case, assessment, display_case_id=None, commit=True):
    """Persist an evaluated case and return its generated storage id.

    With ``commit=False`` the rows are only flushed, so the caller can write the
    draft and audit entry in the same transaction.
    """
    case_uuid = str(uuid.uuid4())
    output = assessment.to_dict()
    metrics = output["calculated_metrics"]
    severity = assessment.final_classification

    session.add(CaseRecord(
        case_id=case_uuid,
        display_case_id=display_case_id or case.case_id,
        status=STATUS_DRAFT_READY,
    ))

    customer_profile = serialize_for_json(customer_as_dict(case.customer))
    customer_profile["risk_rating"] = severity.title()
    session.add(CaseDataNormalized(
        case_id=case_uuid,
        alert_metadata={
            "alert_id": f"ALT-{case.case_id}",
            "alert_date": case.alert_date.isoformat(),
            "alert_type": "Transaction Monitoring",
            "severity": severity,
            "display_case_id": display_case_id or case.case_id,
        },
        customer_profile=customer_profile,
        transaction_summary={
            "total_amount": metrics["total_transaction_value"],
            "currency": metrics["reporting_currency"],
            "transaction_count": metrics["transaction_count"],
            "date_range": metrics["date_range"],
        },
        transaction_list=serialize_for_json([transaction_as_dict(t) for t in case.transactions]),
        risk_indicators=[
            {
                "indicator_type": f.rule_id,
                "typology": f.typology,
                "severity": severity,
                "description": f.description,
            }
            for f in assessment.findings
        ],
    ))

    session.add(RuleEngineOutput(
        case_id=case_uuid,
        execution_timestamp=output["execution_timestamp"],
        rule_engine_config_id=output["rule_engine_version"],
        triggered_rules=output["triggered_rules"],
        calculated_metrics=metrics,
        typology_tags=output["typology_tags"],
        aggregated_risk_score=output["aggregated_risk_score"],
        suspicion_summary_json=output["suspicion_summary_json"],
        final_classification=output["final_classification"],
    ))
    if commit:
        session.commit()
    else:
        session.flush()
    logger.info("stored case %s as %s (score %s)", case.case_id, case_uuid, assessment.aggregated_risk_score)
    return case_uuid


def save_sar_draft(session, case_id, narrative_text, version_number=1.0,
                   source_event="AUTO_GENERATED", user_id="system", is_final=False, commit=True):
    draft = SarDraft(
        case_id=case_id,
        version_number=float(version_number),
        narrative_text=narrative_text,
        source_event=source_event,
        is_final_submission=is_final,
        created_by_user_id=user_id,
    )
    session.add(draft)
    if commit:
        session.commit()
    else:
        session.flush()
    return draft


def case_exists(session, case_id):
    return session.query(CaseRecord).filter(CaseRecord.case_id == case_id).first() is not None


def list_cases(session):
    records = session.query(CaseRecord).order_by(CaseRecord.created_at.desc()).all()
    outputs = {
        o.case_id: o
        for o in session.query(RuleEngineOutput).filter(
            RuleEngineOutput.case_id.in_([r.case_id for r in records])
        )
    }
    result = []
    for r in records:
        output = outputs.get(r.case_id)
        result.append({
            "case_id": r.case_id,
            "display_case_id": r.display_case_id,
            "status": r.status,
            "created_at": r.created_at.isoformat() + "Z",
            "risk_score": output.aggregated_risk_score if output else None,
            "classification": output.final_classification if output else None,
        })
    return result


def get_case(session, case_id):
    record = session.query(CaseRecord).filter(CaseRecord.case_id == case_id).first()
    if record is None:
        return None
    data = session.query(CaseDataNormalized).filter(CaseDataNormalized.case_id == case_id).first()
    output = session.query(RuleEngineOutput).filter(RuleEngineOutput.case_id == case_id).first()
    drafts = (
        session.query(SarDraft)
        .filter(SarDraft.case_id == case_id)
        .order_by(SarDraft.version_number.asc(), SarDraft.id.asc())
        .all()
    )
    return {
        "case_id": record.case_id,
        "display_case_id": record.display_case_id,
        "status": record.status,
        "created_at": record.created_at.isoformat() + "Z",
        "case_data": {
            "alert_metadata": data.alert_metadata,
            "customer_profile": data.customer_profile,
            "transaction_summary": data.transaction_summary,
            "transaction_list": data.transaction_list,
            "risk_indicators": data.risk_indicators,
        } if data else None,
        "rule_engine_output": {
            "execution_timestamp": output.execution_timestamp,
            "rule_engine_version": output.rule_engine_config_id,
            "triggered_rules": output.triggered_rules,
            "calculated_metrics": output.calculated_metrics,
            "typology_tags": output.typology_tags,
            "aggregated_risk_score": output.aggregated_risk_score,
            "suspicion_summary_json": output.suspicion_summary_json,
            "final_classification": output.final_classification,
        } if output else None,
        "drafts": [
            {
                "version_number": d.version_number,
                "narrative_text": d.narrative_text,
                "source_event": d.source_event,
                "is_final_submission": d.is_final_submission,
                "created_by_user_id": d.created_by_user_id,
                "created_at": d.created_at.isoformat() + "Z",
            }
            for d in drafts
        ],
    }


# Dependents first, the cases table last.
CLEAR_ORDER = (AuditTrailLog, SarDraft, RuleEngineOutput, CaseDataNormalized, CaseRecord)


def clear_cases(session):
    """Delete every stored case with its drafts, outputs and audit trail.

    Returns the number of rows removed per table.
    """
    removed = {}
    for model in CLEAR_ORDER:
        removed[model.__tablename__] = session.query(model).delete(synchronize_session=False)
    session.commit()
    logger.warning("cleared %d cases and related data", removed[CaseRecord.__tablename__])
    return removed
