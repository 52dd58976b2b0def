from __future__ import annotations

import datetime as dt

from sqlalchemy import Boolean, CheckConstraint, DateTime, Enum, ForeignKey, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studioflow.db.session import Base
from studioflow.db.types import UTCDateTime
from studioflow.models.enums import PricingSource


class ClassPricingDefault(Base):
    """
    Template-wide price, applies to every client booking an occurrence of the template.

    Rules are never edited in place: a newer rule with a later valid_from supersedes,
    and retired rules are switched off via is_active so settlement history keeps its source.
    """

    __tablename__ = "class_pricing_defaults"
    __table_args__ = (
        CheckConstraint("entry_fee_brutto >= 0", name="ck_pricing_default_entry_fee"),
        CheckConstraint("trainer_fee_brutto >= 0", name="ck_pricing_default_trainer_fee"),
        Index("idx_template_validity", "class_template_id", "valid_from", "valid_until"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    class_template_id: Mapped[int] = mapped_column(ForeignKey("class_templates.id", ondelete="RESTRICT"), index=True)

    entry_fee_brutto: Mapped[int] = mapped_column(Integer)  # minor units
    trainer_fee_brutto: Mapped[int] = mapped_column(Integer)
    currency: Mapped[str] = mapped_column(String(3), default="HUF")

    valid_from: Mapped[dt.datetime] = mapped_column(UTCDateTime, index=True)
    valid_until: Mapped[dt.datetime | None] = mapped_column(UTCDateTime, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    created_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    class_template = relationship("ClassTemplate")


class ClientClassPricing(Base):
    """
    Client-specific override.

    With class_occurrence_id set it prices one concrete session; with class_template_id set
    it prices every occurrence of that template. Exactly one of the two is present.
    """

    __tablename__ = "client_class_pricing"
    __table_args__ = (
        CheckConstraint("entry_fee_brutto >= 0", name="ck_client_pricing_entry_fee"),
        CheckConstraint("trainer_fee_brutto >= 0", name="ck_client_pricing_trainer_fee"),
        CheckConstraint(
            "(class_template_id IS NULL) <> (class_occurrence_id IS NULL)",
            name="ck_client_pricing_single_target",
        ),
        Index("idx_client_occurrence", "client_id", "class_occurrence_id"),
        Index("idx_client_template", "client_id", "class_template_id", "valid_from"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    client_id: Mapped[int] = mapped_column(ForeignKey("clients.id", ondelete="CASCADE"), index=True)
    class_template_id: Mapped[int | None] = mapped_column(
        ForeignKey("class_templates.id", ondelete="CASCADE"), nullable=True
    )
    class_occurrence_id: Mapped[int | None] = mapped_column(
        ForeignKey("class_occurrences.id", ondelete="CASCADE"), nullable=True
    )

    entry_fee_brutto: Mapped[int] = mapped_column(Integer)
    trainer_fee_brutto: Mapped[int] = mapped_column(Integer)
    currency: Mapped[str] = mapped_column(String(3), default="HUF")

    valid_from: Mapped[dt.datetime] = mapped_column(UTCDateTime)
    valid_until: Mapped[dt.datetime | None] = mapped_column(UTCDateTime, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    source: Mapped[PricingSource] = mapped_column(Enum(PricingSource), default=PricingSource.MANUAL, index=True)

    created_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    client = relationship("Client")
    class_template = relationship("ClassTemplate")
    class_occurrence = relationship("ClassOccurrence")
