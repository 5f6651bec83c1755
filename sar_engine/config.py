import json
import os
from dataclasses import dataclass, replace
from pathlib import Path
from types import MappingProxyType
from typing import FrozenSet, Mapping, Tuple

from .currency import RateTable
from .errors import ConfigurationError
from .risk_engine import Band, validate_bands
from .rules import RULE_REGISTRY
from .schema import EngineConfigSchema, RuleSettingsSchema, validate_config

BASE_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = BASE_DIR / "data"

DB_URL = os.getenv("DB_URL", f"sqlite:///{(BASE_DIR / 'sar.db').as_posix()}")

OLLAMA_URL = os.getenv("OLLAMA_URL", "http://localhost:11434/api/generate")
OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", "llama3.1")
USE_MOCK_LLM = os.getenv("USE_MOCK_LLM", "false").lower() == "true"

RULE_CONFIG_PATH = os.getenv("RULE_CONFIG_PATH", "")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Placeholder calibration; production values come from the compliance policy file.
DEFAULT_ENGINE_CONFIG = {
    "version": "sar-rules-2025.1",
    "max_score": 100,
    "cap_per_typology": False,
    "rate_table": {
        "version": "fx-2025-01",
        "reporting_currency": "INR",
        "rates": {
            "USD": [
                {"effective_from": "2024-01-01", "rate": "83.12"},
                {"effective_from": "2025-01-01", "rate": "85.60"},
            ],
            "EUR": [
                {"effective_from": "2024-01-01", "rate": "90.05"},
                {"effective_from": "2025-01-01", "rate": "89.20"},
            ],
            "GBP": [
                {"effective_from": "2024-01-01", "rate": "105.40"},
                {"effective_from": "2025-01-01", "rate": "107.10"},
            ],
            "AED": [{"effective_from": "2024-01-01", "rate": "22.63"}],
            "SGD": [{"effective_from": "2024-01-01", "rate": "62.15"}],
        },
    },
    "high_risk_countries": ["IR", "KP", "SY", "RU", "MM", "AF"],
    "rules": {
        "STR-001": {"weight": 35},
        "GEO-001": {"weight": 30},
        "INC-001": {"weight": 30},
        "VEL-001": {"weight": 15},
        "RND-001": {"weight": 10},
        "LAY-001": {"weight": 30},
        "LRG-001": {"weight": 20},
    },
    "bands": [
        {"label": "NONE", "min_score": 0},
        {"label": "MEDIUM", "min_score": 25},
        {"label": "HIGH", "min_score": 50, "requires_sar": True},
        {"label": "CRITICAL", "min_score": 80, "requires_sar": True},
    ],
}


@dataclass(frozen=True)
class RuleSettings:
    enabled: bool
    weight: float
    params: Mapping[str, object]

    @classmethod
    def from_dict(cls, rule_id, data) -> "RuleSettings":
        return cls.from_schema(rule_id, validate_config(RuleSettingsSchema, data or {}, rule_id))

    @classmethod
    def from_schema(cls, rule_id, schema: RuleSettingsSchema) -> "RuleSettings":
        rule_cls = RULE_REGISTRY.get(rule_id)
        if rule_cls is None:
            raise ConfigurationError(f"Unknown rule id: {rule_id}")
        params = validate_config(rule_cls.params_model, schema.params, f"{rule_id}.params")
        return cls(
            enabled=schema.enabled,
            weight=rule_cls.default_weight if schema.weight is None else schema.weight,
            params=MappingProxyType(params.model_dump()),
        )


@dataclass(frozen=True)
class EngineConfig:
    """Everything a case evaluation depends on besides the case itself.

    Built once at process start and passed explicitly to the evaluator, so two
    configurations (e.g. during a rollout) can be evaluated side by side.
    """

    version: str
    max_score: float
    cap_per_typology: bool
    rate_table: RateTable
    high_risk_countries: FrozenSet[str]
    rules: Mapping[str, RuleSettings]
    bands: Tuple[Band, ...]

    @classmethod
    def from_dict(cls, data) -> "EngineConfig":
        schema = validate_config(EngineConfigSchema, data, "engine configuration")
        rules = {rule_id: RuleSettings.from_schema(rule_id, settings) for rule_id, settings in schema.rules.items()}
        bands = [Band(label=b.label, min_score=b.min_score, requires_sar=b.requires_sar) for b in schema.bands]
        return cls(
            version=schema.version,
            max_score=schema.max_score,
            cap_per_typology=schema.cap_per_typology,
            rate_table=RateTable.from_schema(schema.rate_table),
            high_risk_countries=frozenset(schema.high_risk_countries),
            rules=MappingProxyType(rules),
            bands=validate_bands(bands, schema.max_score),
        )

    def with_rule_overrides(self, rule_id, enabled=None, weight=None, **params) -> "EngineConfig":
        """Return a copy with one rule's settings changed, validated like a loaded file."""
        current = self.rules.get(rule_id)
        if current is None:
            raise ConfigurationError(f"Rule {rule_id} is not part of configuration {self.version}")
        updated = RuleSettings.from_dict(rule_id, {
            "enabled": current.enabled if enabled is None else enabled,
            "weight": current.weight if weight is None else weight,
            "params": {**current.params, **params},
        })
        rules = dict(self.rules)
        rules[rule_id] = updated
        return replace(self, rules=MappingProxyType(rules))


def load_engine_config(path=None) -> EngineConfig:
    path = path or RULE_CONFIG_PATH
    if not path:
        return EngineConfig.from_dict(DEFAULT_ENGINE_CONFIG)
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigurationError(f"Cannot read engine configuration {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Engine configuration {path} is not valid JSON: {e}") from e
    return EngineConfig.from_dict(data)
