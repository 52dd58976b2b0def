from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from studioflow.models.enums import PriceSourceKind, PricingSource
from studioflow.schemas.common import ApiModel, FeePair, ValidityWindow, normalize_currency


class ResolvedPrice(BaseModel):
    """Outcome of a price query, tagged with the rule that produced it."""

    model_config = ConfigDict(frozen=True)

    entry_fee_brutto: int = Field(ge=0)
    trainer_fee_brutto: int = Field(ge=0)
    currency: str
    source: PriceSourceKind
    source_id: int | None = None
    price_code: str | None = None


class PricingDefaultCreate(FeePair, ValidityWindow):
    class_template_id: int
    name: str | None = Field(default=None, max_length=100)
    currency: str | None = Field(default=None, validate_default=True)
    is_active: bool = True

    @field_validator("currency", mode="after")
    @classmethod
    def _currency(cls, v: str | None) -> str:
        return normalize_currency(v)


class ClientPricingCreate(FeePair, ValidityWindow):
    client_id: int
    class_template_id: int | None = None
    class_occurrence_id: int | None = None
    currency: str | None = Field(default=None, validate_default=True)
    source: PricingSource = PricingSource.MANUAL

    @field_validator("currency", mode="after")
    @classmethod
    def _currency(cls, v: str | None) -> str:
        return normalize_currency(v)

    @model_validator(mode="after")
    def _single_target(self):
        if (self.class_template_id is None) == (self.class_occurrence_id is None):
            raise ValueError("exactly one of class_template_id / class_occurrence_id is required")
        return self


class ServiceTypeCreate(ApiModel):
    code: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    default_entry_fee_brutto: int = Field(default=0, ge=0)
    default_trainer_fee_brutto: int = Field(default=0, ge=0)
    is_active: bool = True

    @field_validator("code", mode="after")
    @classmethod
    def _upper_code(cls, v: str) -> str:
        return v.strip().upper()
