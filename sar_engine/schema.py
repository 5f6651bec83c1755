"""
Engine configuration schemas

Pydantic models for validating the JSON rule-configuration file. They map to
the immutable runtime objects in ``config``, ``currency`` and ``risk_engine``;
anything that fails here fails at process start, never while a case is being
evaluated.
"""
from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, Field, StrictBool, ValidationError, field_validator, model_validator

from .errors import ConfigurationError

PositiveDecimal = Annotated[Decimal, Field(gt=0, allow_inf_nan=False)]
Ratio = Annotated[float, Field(gt=0, le=1)]


# =============================================================================
# Rate table
# =============================================================================

class RateEntrySchema(BaseModel):
    """One rate, quoted as reporting-currency units per foreign unit."""
    effective_from: date
    rate: PositiveDecimal

    model_config = {"extra": "forbid", "frozen": True}


RateQuote = Union[
    PositiveDecimal,
    RateEntrySchema,
    Annotated[List[RateEntrySchema], Field(min_length=1)],
]


class RateTableSchema(BaseModel):
    version: str = Field(..., min_length=1)
    reporting_currency: str = Field(..., min_length=1)
    rates: Dict[str, RateQuote] = Field(default_factory=dict)

    model_config = {"extra": "forbid", "frozen": True, "str_strip_whitespace": True}

    @model_validator(mode="after")
    def validate_rates(self) -> "RateTableSchema":
        if self.reporting_currency in self.rates:
            raise ValueError(f"Reporting currency {self.reporting_currency} must not carry a rate")
        for currency, quote in self.rates.items():
            if isinstance(quote, list):
                dates = [entry.effective_from for entry in quote]
                if len(set(dates)) != len(dates):
                    raise ValueError(f"Duplicate effective dates for {currency}")
        return self


# =============================================================================
# Rule parameters
# =============================================================================

class RuleParams(BaseModel):
    """Base for per-rule parameters; unknown keys are rejected."""

    model_config = {"extra": "forbid", "frozen": True}


class StructuringParams(RuleParams):
    reporting_threshold: PositiveDecimal = Decimal("1000000")
    window_days: float = Field(7.0, gt=0)
    min_transactions: int = Field(3, ge=1)


class IncomeMismatchParams(RuleParams):
    income_multiple: PositiveDecimal = Decimal("2")
    monthly_volume_multiple: PositiveDecimal = Decimal("3")


class VelocitySpikeParams(RuleParams):
    max_per_day: float = Field(5.0, gt=0)
    min_transactions: int = Field(5, ge=1)


class RoundAmountParams(RuleParams):
    round_unit: PositiveDecimal = Decimal("1000")
    min_share: Ratio = 0.5
    min_transactions: int = Field(3, ge=1)


class RapidMovementParams(RuleParams):
    window_hours: float = Field(48.0, gt=0)
    pass_through_ratio: Annotated[Decimal, Field(gt=0, le=1, allow_inf_nan=False)] = Decimal("0.8")
    inbound_types: Tuple[str, ...] = Field(
        ("deposit", "credit", "transfer_in", "incoming_transfer"), min_length=1
    )
    outbound_types: Tuple[str, ...] = Field(
        ("withdrawal", "debit", "transfer_out", "outgoing_transfer", "transfer", "payment"), min_length=1
    )

    @field_validator("inbound_types", "outbound_types")
    @classmethod
    def lower_types(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        return tuple(t.strip().lower() for t in v)


class LargeTransactionParams(RuleParams):
    threshold: PositiveDecimal = Decimal("1000000")


# =============================================================================
# Engine configuration
# =============================================================================

class RuleSettingsSchema(BaseModel):
    enabled: StrictBool = True
    weight: Optional[float] = Field(None, ge=0)
    # Checked against the rule's own parameter schema once the rule id is resolved.
    params: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"extra": "forbid", "frozen": True}


class BandSchema(BaseModel):
    label: str = Field(..., min_length=1)
    min_score: float = Field(..., ge=0)
    requires_sar: StrictBool = False

    model_config = {"extra": "forbid", "frozen": True, "str_strip_whitespace": True}


class EngineConfigSchema(BaseModel):
    version: str = Field(..., min_length=1)
    max_score: float = Field(100.0, gt=0)
    cap_per_typology: StrictBool = False
    rate_table: RateTableSchema
    high_risk_countries: Tuple[str, ...] = ()
    rules: Dict[str, RuleSettingsSchema] = Field(..., min_length=1)
    bands: List[BandSchema] = Field(..., min_length=1)

    model_config = {"extra": "forbid", "frozen": True, "str_strip_whitespace": True}

    @field_validator("high_risk_countries")
    @classmethod
    def upper_country_codes(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        return tuple(c.strip().upper() for c in v)


def validate_config(model, data, where: str):
    """Validate ``data`` against ``model``, raising ``ConfigurationError`` on failure."""
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid {where}: {e.error_count()} errors\n{e}") from e
