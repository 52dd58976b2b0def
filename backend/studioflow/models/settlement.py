from __future__ import annotations

import datetime as dt

from sqlalchemy import JSON, Date, DateTime, Enum, ForeignKey, Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studioflow.db.session import Base
from studioflow.db.types import UTCDateTime
from studioflow.models.enums import PriceSourceKind, RegistrationStatus, SettlementStatus


class Settlement(Base):
    """
    A trainer's earnings statement for an inclusive date period.

    Status only moves forward: draft -> finalized -> paid.
    """

    __tablename__ = "settlements"
    __table_args__ = (
        UniqueConstraint("trainer_id", "period_start", "period_end", name="uq_settlement_trainer_period"),
        Index("idx_status_period", "status", "period_start"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    trainer_id: Mapped[int] = mapped_column(ForeignKey("trainers.id", ondelete="RESTRICT"), index=True)

    period_start: Mapped[dt.date] = mapped_column(Date, index=True)
    period_end: Mapped[dt.date] = mapped_column(Date, index=True)

    total_trainer_fee: Mapped[int] = mapped_column(Integer, default=0)
    total_entry_fee: Mapped[int] = mapped_column(Integer, default=0)
    currency: Mapped[str] = mapped_column(String(3), default="HUF")
    status: Mapped[SettlementStatus] = mapped_column(Enum(SettlementStatus), default=SettlementStatus.DRAFT, index=True)

    # Registrations that could not be priced when the settlement was generated.
    skipped: Mapped[list] = mapped_column(JSON, default=list)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    trainer = relationship("Trainer", back_populates="settlements")
    items = relationship(
        "SettlementItem",
        back_populates="settlement",
        cascade="all, delete-orphan",
        order_by="SettlementItem.id",
    )


class SettlementItem(Base):
    """
    One priced registration.

    client_name / class_name / class_date are copied at generation time so the statement
    stays stable when clients or classes are renamed later.
    """

    __tablename__ = "settlement_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    settlement_id: Mapped[int] = mapped_column(ForeignKey("settlements.id", ondelete="CASCADE"), index=True)
    class_occurrence_id: Mapped[int] = mapped_column(ForeignKey("class_occurrences.id", ondelete="RESTRICT"), index=True)
    client_id: Mapped[int] = mapped_column(ForeignKey("clients.id", ondelete="RESTRICT"), index=True)
    registration_id: Mapped[int] = mapped_column(ForeignKey("class_registrations.id", ondelete="RESTRICT"), index=True)

    entry_fee_brutto: Mapped[int] = mapped_column(Integer)
    trainer_fee_brutto: Mapped[int] = mapped_column(Integer)
    currency: Mapped[str] = mapped_column(String(3), default="HUF")
    status: Mapped[RegistrationStatus] = mapped_column(Enum(RegistrationStatus))

    price_source: Mapped[PriceSourceKind] = mapped_column(Enum(PriceSourceKind))
    price_source_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    client_name: Mapped[str] = mapped_column(String(200))
    class_name: Mapped[str] = mapped_column(String(200))
    class_date: Mapped[dt.datetime] = mapped_column(UTCDateTime)

    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    settlement = relationship("Settlement", back_populates="items")
