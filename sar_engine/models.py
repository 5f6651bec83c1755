import datetime as dt
from sqlalchemy import Boolean, Column, DateTime, Float, Integer, String, Text
from sqlalchemy.types import JSON

from .db import Base


def _utcnow():
    return dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)


class CaseRecord(Base):
    __tablename__ = "cases"

    case_id = Column(String, primary_key=True, index=True)
    display_case_id = Column(String, index=True)
    status = Column(String, default="DRAFT_READY")
    created_at = Column(DateTime, default=_utcnow)
    last_updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)


class CaseDataNormalized(Base):
    __tablename__ = "case_data_normalized"

    id = Column(Integer, primary_key=True, index=True)
    case_id = Column(String, index=True)
    alert_metadata = Column(JSON)
    customer_profile = Column(JSON)
    transaction_summary = Column(JSON)
    transaction_list = Column(JSON)
    risk_indicators = Column(JSON)


class RuleEngineOutput(Base):
    __tablename__ = "rule_engine_outputs"

    id = Column(Integer, primary_key=True, index=True)
    case_id = Column(String, index=True)
    execution_timestamp = Column(String)
    rule_engine_config_id = Column(String)
    triggered_rules = Column(JSON)
    calculated_metrics = Column(JSON)
    typology_tags = Column(JSON)
    aggregated_risk_score = Column(Float, default=0.0)
    suspicion_summary_json = Column(JSON)
    final_classification = Column(String)


class SarDraft(Base):
    __tablename__ = "sar_drafts"

    id = Column(Integer, primary_key=True, index=True)
    case_id = Column(String, index=True)
    version_number = Column(Float, default=1.0)
    narrative_text = Column(Text)
    source_event = Column(String, default="AUTO_GENERATED")
    is_final_submission = Column(Boolean, default=False)
    created_by_user_id = Column(String, default="system")
    created_at = Column(DateTime, default=_utcnow)


class AuditTrailLog(Base):
    __tablename__ = "audit_trail_logs"

    id = Column(Integer, primary_key=True, index=True)
    case_id = Column(String, index=True)
    timestamp = Column(DateTime, default=_utcnow)
    event_type = Column(String, index=True)
    description = Column(Text)
    detail_payload = Column(JSON)
    user_id = Column(String, default="system")
