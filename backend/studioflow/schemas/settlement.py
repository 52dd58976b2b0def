from __future__ import annotations

import datetime as dt

from pydantic import Field

from studioflow.models.enums import PriceSourceKind, RegistrationStatus, SettlementStatus
from studioflow.schemas.common import ApiModel


class SettlementLine(ApiModel):
    class_occurrence_id: int
    client_id: int
    registration_id: int
    entry_fee_brutto: int
    trainer_fee_brutto: int
    currency: str
    status: RegistrationStatus
    price_source: PriceSourceKind
    price_source_id: int | None = None
    client_name: str
    class_name: str
    class_date: dt.datetime


class SkippedRegistration(ApiModel):
    occurrence_id: int
    client_id: int
    registration_id: int | None = None
    reason: str
    details: dict = Field(default_factory=dict)


class SettlementPreview(ApiModel):
    trainer_id: int
    period_start: dt.date
    period_end: dt.date
    status: SettlementStatus = SettlementStatus.DRAFT
    currency: str
    total_trainer_fee: int = 0
    total_entry_fee: int = 0
    items: list[SettlementLine] = Field(default_factory=list)
    skipped: list[SkippedRegistration] = Field(default_factory=list)
