from __future__ import annotations

import datetime as dt

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from studioflow.core.config import settings


class ApiModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class FeePair(ApiModel):
    """Gross fees in minor currency units."""

    entry_fee_brutto: int = Field(ge=0)
    trainer_fee_brutto: int = Field(ge=0)


class ValidityWindow(ApiModel):
    valid_from: dt.datetime
    valid_until: dt.datetime | None = None

    @field_validator("valid_from", "valid_until")
    @classmethod
    def _require_aware(cls, v: dt.datetime | None) -> dt.datetime | None:
        if v is not None and (v.tzinfo is None or v.utcoffset() is None):
            raise ValueError("timestamp must be timezone-aware")
        return v

    @model_validator(mode="after")
    def _check_window(self):
        if self.valid_until is not None and self.valid_until < self.valid_from:
            raise ValueError("valid_until must not be before valid_from")
        return self


def normalize_currency(v: str | None) -> str:
    code = (v or settings.default_currency).strip().upper()
    if code not in settings.allowed_currencies:
        raise ValueError(f"unsupported currency: {code}")
    return code
