"""Score aggregation and classification.

The aggregated score is the sum of the triggered findings' contributions,
clamped to ``[0, max_score]``. Classification is a step function over a band
table that must start at zero and rise strictly, so every score maps to
exactly one band and a higher score never maps to a less severe band.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Sequence, Tuple

from .domain import RuleFinding
from .errors import ConfigurationError


@dataclass(frozen=True)
class Band:
    label: str
    min_score: float
    requires_sar: bool = False


@dataclass(frozen=True)
class AggregateResult:
    score: float
    typology_tags: Tuple[str, ...]
    band: Band


def validate_bands(bands: Sequence[Band], max_score: float) -> Tuple[Band, ...]:
    if not bands:
        raise ConfigurationError("At least one classification band is required")
    if bands[0].min_score != 0:
        raise ConfigurationError("The first classification band must start at 0")
    labels = [b.label for b in bands]
    if len(set(labels)) != len(labels):
        raise ConfigurationError(f"Duplicate band labels: {labels}")
    for lower, upper in zip(bands, bands[1:]):
        if upper.min_score <= lower.min_score:
            raise ConfigurationError(
                f"Band {upper.label} must start above {lower.label} ({upper.min_score} <= {lower.min_score})"
            )
    if bands[-1].min_score > max_score:
        raise ConfigurationError(f"Band {bands[-1].label} starts above the maximum score {max_score}")
    return tuple(bands)


def _normalize_score(score: float, max_score: float) -> float:
    return max(0.0, min(float(max_score), score))


def classify(score: float, bands: Sequence[Band]) -> Band:
    selected = bands[0]
    for band in bands:
        if score >= band.min_score:
            selected = band
    return selected


def severity_rank(label: str, bands: Sequence[Band]) -> int:
    for rank, band in enumerate(bands):
        if band.label == label:
            return rank
    raise KeyError(label)


def _contributions(findings: Iterable[RuleFinding], cap_per_typology: bool):
    if not cap_per_typology:
        return [f.score for f in findings]
    best: Dict[str, float] = {}
    for f in findings:
        best[f.typology] = max(best.get(f.typology, 0.0), f.score)
    return list(best.values())


def aggregate(findings: Sequence[RuleFinding], config) -> AggregateResult:
    raw = sum(_contributions(findings, config.cap_per_typology))
    score = round(_normalize_score(raw, config.max_score), 2)
    tags = tuple(sorted({f.typology for f in findings}))
    return AggregateResult(score=score, typology_tags=tags, band=classify(score, config.bands))
