from sar_engine.audit import get_audit_timeline, log_event
from sar_engine.case_store import case_exists, clear_cases, create_case, get_case, list_cases, save_sar_draft
from sar_engine.evaluator import evaluate_case


def test_create_case_stores_assessment_verbatim(db_session, engine_config, make_case, all_rules_transactions):
    case = make_case(all_rules_transactions)
    assessment = evaluate_case(case, engine_config)

    case_id = create_case(db_session, case, assessment, display_case_id="SAR-2025-000001-001")
    stored = get_case(db_session, case_id)

    assert case_exists(db_session, case_id)
    assert stored["status"] == "DRAFT_READY"
    assert stored["display_case_id"] == "SAR-2025-000001-001"

    output = stored["rule_engine_output"]
    expected = assessment.to_dict()
    assert output["aggregated_risk_score"] == expected["aggregated_risk_score"]
    assert output["triggered_rules"] == expected["triggered_rules"]
    assert output["typology_tags"] == expected["typology_tags"]
    assert output["calculated_metrics"] == expected["calculated_metrics"]
    assert output["suspicion_summary_json"] == expected["suspicion_summary_json"]
    assert output["final_classification"] == "CRITICAL"
    assert output["rule_engine_version"] == engine_config.version
    assert output["execution_timestamp"] == expected["execution_timestamp"]

    data = stored["case_data"]
    assert data["alert_metadata"]["severity"] == "CRITICAL"
    assert data["customer_profile"]["risk_rating"] == "Critical"
    assert data["transaction_summary"]["transaction_count"] == 7
    assert len(data["transaction_list"]) == 7
    assert [r["indicator_type"] for r in data["risk_indicators"]] == [f.rule_id for f in assessment.findings]


def test_drafts_are_versioned(db_session, engine_config, make_case, all_rules_transactions):
    case = make_case(all_rules_transactions)
    case_id = create_case(db_session, case, evaluate_case(case, engine_config))

    save_sar_draft(db_session, case_id, "Edited narrative", version_number=1.1,
                   source_event="MANUAL_EDIT", user_id="analyst")
    save_sar_draft(db_session, case_id, "Generated narrative")

    drafts = get_case(db_session, case_id)["drafts"]
    assert [d["version_number"] for d in drafts] == [1.0, 1.1]
    assert drafts[0]["source_event"] == "AUTO_GENERATED"
    assert drafts[1]["created_by_user_id"] == "analyst"
    assert not drafts[1]["is_final_submission"]


def test_audit_payloads_are_masked(db_session):
    log_event(db_session, "case-1", "CASE_CREATED", "Case created", {"customer_id": "CUST-900", "risk_score": 80})
    log_event(db_session, "case-1", "DRAFT_SAVED", "Draft saved", {"version_number": 1.1}, user_id="analyst")

    timeline = get_audit_timeline(db_session, "case-1")

    assert [e["event_type"] for e in timeline] == ["CASE_CREATED", "DRAFT_SAVED"]
    assert timeline[0]["payload"] == {"customer_id": "CU****00", "risk_score": 80}
    assert timeline[1]["user_id"] == "analyst"


def test_list_cases_and_unknown_case(db_session, engine_config, make_case, all_rules_transactions):
    case = make_case(all_rules_transactions)
    case_id = create_case(db_session, case, evaluate_case(case, engine_config))

    listed = list_cases(db_session)

    assert [c["case_id"] for c in listed] == [case_id]
    assert listed[0]["risk_score"] == 100.0
    assert get_case(db_session, "missing") is None
    assert not case_exists(db_session, "missing")


def test_clear_cases_removes_everything(db_session, engine_config, make_case, all_rules_transactions):
    case = make_case(all_rules_transactions)
    case_id = create_case(db_session, case, evaluate_case(case, engine_config))
    save_sar_draft(db_session, case_id, "Narrative")
    log_event(db_session, case_id, "CASE_CREATED", "Case created", {"risk_score": 100})

    removed = clear_cases(db_session)

    assert removed == {
        "audit_trail_logs": 1,
        "sar_drafts": 1,
        "rule_engine_outputs": 1,
        "case_data_normalized": 1,
        "cases": 1,
    }
    assert list_cases(db_session) == []
    assert get_audit_timeline(db_session, case_id) == []
