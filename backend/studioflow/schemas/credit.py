from __future__ import annotations

import datetime as dt

from pydantic import Field, model_validator

from studioflow.schemas.common import ApiModel


class PassCreate(ApiModel):
    client_id: int
    total_credits: int = Field(ge=1)
    credits_left: int | None = Field(default=None, ge=0)
    valid_from: dt.date
    valid_until: dt.date | None = None
    pass_type: str = "standard"
    source: str = "manual"
    external_reference: str | None = None

    @model_validator(mode="after")
    def _check(self):
        if self.credits_left is None:
            self.credits_left = self.total_credits
        if self.credits_left > self.total_credits:
            raise ValueError("credits_left cannot exceed total_credits")
        if self.valid_until is not None and self.valid_until < self.valid_from:
            raise ValueError("valid_until must not be before valid_from")
        return self
