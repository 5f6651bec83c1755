from dataclasses import replace

import pytest

from sar_engine.domain import RuleFinding
from sar_engine.errors import ConfigurationError
from sar_engine.risk_engine import Band, aggregate, classify, severity_rank, validate_bands


def finding(rule_id, typology, score):
    return RuleFinding(rule_id=rule_id, description=rule_id, typology=typology, score=score, transaction_ids=())


def test_no_findings_scores_zero(engine_config):
    result = aggregate([], engine_config)
    assert result.score == 0.0
    assert result.typology_tags == ()
    assert result.band.label == "NONE"
    assert not result.band.requires_sar


def test_scores_are_summed(engine_config):
    result = aggregate([finding("A", "STRUCTURING", 35), finding("B", "LAYERING", 30)], engine_config)
    assert result.score == 65.0
    assert result.typology_tags == ("LAYERING", "STRUCTURING")
    assert result.band.label == "HIGH"
    assert result.band.requires_sar


def test_score_is_capped_at_maximum(engine_config):
    findings = [finding(f"R{i}", f"T{i}", 30) for i in range(10)]
    result = aggregate(findings, engine_config)
    assert result.score == 100.0
    assert result.band.label == "CRITICAL"


def test_tags_are_deduplicated(engine_config):
    result = aggregate([finding("A", "GEO", 10), finding("B", "GEO", 10)], engine_config)
    assert result.typology_tags == ("GEO",)
    assert result.score == 20.0


def test_per_typology_cap_counts_strongest_finding(engine_config):
    config = replace(engine_config, cap_per_typology=True)
    result = aggregate([finding("A", "GEO", 30), finding("B", "GEO", 20), finding("C", "VEL", 15)], config)
    assert result.score == 45.0


@pytest.mark.parametrize("score, label", [
    (0, "NONE"), (24.99, "NONE"), (25, "MEDIUM"), (49.99, "MEDIUM"),
    (50, "HIGH"), (79.99, "HIGH"), (80, "CRITICAL"), (100, "CRITICAL"),
])
def test_band_boundaries(engine_config, score, label):
    assert classify(score, engine_config.bands).label == label


def test_classification_is_monotonic(engine_config):
    bands = engine_config.bands
    ranks = [severity_rank(classify(s / 2, bands).label, bands) for s in range(0, 201)]
    assert ranks == sorted(ranks)


@pytest.mark.parametrize("bands", [
    [],
    [Band("LOW", 10)],
    [Band("LOW", 0), Band("HIGH", 50), Band("MID", 40)],
    [Band("LOW", 0), Band("LOW", 50)],
    [Band("LOW", 0), Band("HIGH", 150)],
])
def test_invalid_band_tables(bands):
    with pytest.raises(ConfigurationError):
        validate_bands(bands, 100)
