import datetime as dt
import json
import random
from dataclasses import replace

import pytest

from sar_engine.errors import InsufficientData, InvalidCase, UnsupportedCurrency
from sar_engine.evaluator import CaseEvaluator, evaluate_case
from sar_engine.risk_engine import classify

ALL_RULES = ["STR-001", "GEO-001", "INC-001", "VEL-001", "RND-001", "LAY-001", "LRG-001"]


def without_timestamp(assessment):
    data = assessment.to_dict()
    data.pop("execution_timestamp")
    return data


def test_income_mismatch_scenario(engine_config, make_case, make_txn, fixed_clock):
    case = make_case([make_txn("TXN-1", "5000000", dt.datetime(2025, 1, 15), type="deposit")])

    result = evaluate_case(case, engine_config, clock=fixed_clock)

    rule_ids = [f.rule_id for f in result.findings]
    assert "INC-001" in rule_ids
    assert result.aggregated_risk_score >= engine_config.rules["INC-001"].weight
    assert result.final_classification == classify(result.aggregated_risk_score, engine_config.bands).label
    # Income mismatch plus the single large transaction.
    assert rule_ids == ["INC-001", "LRG-001"]
    assert result.aggregated_risk_score == 50.0
    assert result.final_classification == "HIGH"
    assert result.requires_sar


def test_structuring_scenario(engine_config, make_case, structuring_transactions):
    config = engine_config.with_rule_overrides("STR-001", reporting_threshold=10000)

    result = evaluate_case(make_case(structuring_transactions), config)

    assert [f.rule_id for f in result.findings] == ["STR-001"]
    assert result.findings[0].transaction_ids == tuple(f"TXN-{i:03d}" for i in range(1, 11))
    assert result.typology_tags == ("STRUCTURING",)
    assert result.aggregated_risk_score == 35.0
    assert result.final_classification == "MEDIUM"
    assert not result.requires_sar


def test_unremarkable_case_has_no_findings(engine_config, make_case, clean_transactions):
    result = evaluate_case(make_case(clean_transactions), engine_config)

    assert result.findings == ()
    assert result.triggered_rules == ()
    assert result.aggregated_risk_score == 0.0
    assert result.final_classification == "NONE"
    assert not result.requires_sar


def test_every_rule_firing_stays_within_bounds(engine_config, make_case, all_rules_transactions):
    result = evaluate_case(make_case(all_rules_transactions), engine_config)

    assert [f.rule_id for f in result.findings] == ALL_RULES
    assert result.aggregated_risk_score == 100.0
    assert result.final_classification == "CRITICAL"
    assert len(result.typology_tags) == 7


@pytest.mark.parametrize("disabled", ALL_RULES)
def test_disabling_a_rule_leaves_the_others_untouched(engine_config, make_case, all_rules_transactions, disabled):
    case = make_case(all_rules_transactions)
    baseline = {f.rule_id: f for f in evaluate_case(case, engine_config).findings}

    reduced = evaluate_case(case, engine_config.with_rule_overrides(disabled, enabled=False))

    assert {f.rule_id: f for f in reduced.findings} == {k: v for k, v in baseline.items() if k != disabled}


def test_repeated_evaluation_is_identical(engine_config, make_case, all_rules_transactions):
    case = make_case(all_rules_transactions)
    first = evaluate_case(case, engine_config, clock=lambda: dt.datetime(2025, 1, 1, tzinfo=dt.timezone.utc))
    second = evaluate_case(case, engine_config)

    assert json.dumps(without_timestamp(first), sort_keys=True) == json.dumps(without_timestamp(second), sort_keys=True)


def test_input_order_does_not_matter(engine_config, make_case, all_rules_transactions, fixed_clock):
    shuffled = list(all_rules_transactions)
    random.Random(7).shuffle(shuffled)

    ordered = evaluate_case(make_case(all_rules_transactions), engine_config, clock=fixed_clock)
    unordered = evaluate_case(make_case(shuffled), engine_config, clock=fixed_clock)

    assert ordered.to_dict() == unordered.to_dict()


def test_assessment_is_stamped(engine_config, make_case, clean_transactions, fixed_clock):
    result = evaluate_case(make_case(clean_transactions), engine_config, clock=fixed_clock)
    data = result.to_dict()

    assert data["execution_timestamp"] == "2025-03-01T12:00:00+00:00"
    assert data["rule_engine_version"] == "sar-rules-2025.1"
    assert data["case_id"] == "CASE-001"
    assert data["calculated_metrics"]["transaction_count"] == 3


def test_foreign_currency_is_normalized(engine_config, make_case, make_txn):
    case = make_case([make_txn("USD-1", "20000", dt.datetime(2025, 2, 1), currency="USD", type="deposit")])

    result = evaluate_case(case, engine_config)

    assert result.calculated_metrics.to_dict()["total_transaction_value"] == 1712000.0
    assert "LRG-001" in [f.rule_id for f in result.findings]


def test_unknown_currency_fails_the_case(engine_config, make_case, make_txn):
    case = make_case([make_txn("X-1", "100", dt.datetime(2025, 2, 1), currency="XYZ")])
    with pytest.raises(UnsupportedCurrency):
        evaluate_case(case, engine_config)


def test_empty_case_is_rejected(engine_config, make_case):
    with pytest.raises(InsufficientData) as excinfo:
        evaluate_case(make_case([]), engine_config)
    assert isinstance(excinfo.value, InvalidCase)


def test_case_without_customer_is_rejected(engine_config, make_case, clean_transactions):
    case = replace(make_case(clean_transactions), customer=None)
    with pytest.raises(InvalidCase):
        evaluate_case(case, engine_config)


@pytest.mark.parametrize("bad_txn", [
    lambda t: replace(t, transaction_id="TXN-101"),
    lambda t: replace(t, amount=-5),
    lambda t: replace(t, date="2025-01-01"),
    lambda t: replace(t, date=t.date.replace(tzinfo=dt.timezone.utc)),
])
def test_malformed_transactions_are_rejected(engine_config, make_case, clean_transactions, bad_txn):
    txns = list(clean_transactions)
    txns[-1] = bad_txn(txns[-1])
    with pytest.raises(InvalidCase):
        evaluate_case(make_case(txns), engine_config)


def test_evaluator_reuses_its_rule_set(engine_config, make_case, clean_transactions, structuring_transactions):
    evaluator = CaseEvaluator(engine_config)
    assert len(evaluator.rules) == 7
    assert evaluator.evaluate(make_case(clean_transactions)).aggregated_risk_score == 0.0
    assert evaluator.evaluate(make_case(structuring_transactions)).aggregated_risk_score == 0.0
