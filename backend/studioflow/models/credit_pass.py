from __future__ import annotations

import datetime as dt

from sqlalchemy import CheckConstraint, Date, DateTime, Enum, ForeignKey, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studioflow.db.session import Base
from studioflow.models.enums import PassStatus


class Pass(Base):
    """
    Prepaid credit bundle.

    credits_left only moves through the credit ledger service (locked deduct / refund);
    status follows it: active -> depleted at zero, depleted -> active on refund.
    """

    __tablename__ = "passes"
    __table_args__ = (
        CheckConstraint("credits_left >= 0", name="ck_pass_credits_non_negative"),
        CheckConstraint("credits_left <= total_credits", name="ck_pass_credits_within_total"),
        Index("idx_pass_client_status", "client_id", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    client_id: Mapped[int] = mapped_column(ForeignKey("clients.id", ondelete="CASCADE"), index=True)

    pass_type: Mapped[str] = mapped_column(String(64), default="standard")
    total_credits: Mapped[int] = mapped_column(Integer)
    credits_left: Mapped[int] = mapped_column(Integer)

    # Day validity, both ends inclusive; valid_until None = never expires.
    valid_from: Mapped[dt.date] = mapped_column(Date)
    valid_until: Mapped[dt.date | None] = mapped_column(Date, nullable=True, index=True)

    status: Mapped[PassStatus] = mapped_column(Enum(PassStatus), default=PassStatus.ACTIVE, index=True)
    source: Mapped[str] = mapped_column(String(32), default="manual")  # manual | woocommerce | stripe
    external_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    client = relationship("Client", back_populates="passes")
