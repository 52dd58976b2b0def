from __future__ import annotations

import datetime as dt

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studioflow.db.session import Base
from studioflow.db.types import UTCDateTime


class ServiceType(Base):
    """Bookable individual service (personal training, massage, ...) with house prices."""

    __tablename__ = "service_types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(64), unique=True, index=True)  # e.g. PT, MASSZAZS
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    default_entry_fee_brutto: Mapped[int] = mapped_column(Integer, default=0)
    default_trainer_fee_brutto: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    price_codes = relationship("ClientPriceCode", back_populates="service_type")


class ClientPriceCode(Base):
    __tablename__ = "client_price_codes"
    __table_args__ = (
        CheckConstraint("entry_fee_brutto >= 0", name="ck_price_code_entry_fee"),
        CheckConstraint("trainer_fee_brutto >= 0", name="ck_price_code_trainer_fee"),
        Index("idx_client_price_codes_lookup", "client_email", "service_type_id", "is_active"),
        Index("idx_client_price_codes_client", "client_id", "service_type_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    client_id: Mapped[int] = mapped_column(ForeignKey("clients.id", ondelete="CASCADE"), index=True)
    client_email: Mapped[str] = mapped_column(String(255))  # denormalised for indexed lookup
    service_type_id: Mapped[int] = mapped_column(ForeignKey("service_types.id", ondelete="RESTRICT"), index=True)
    price_code: Mapped[str | None] = mapped_column(String(64), nullable=True)

    entry_fee_brutto: Mapped[int] = mapped_column(Integer)
    trainer_fee_brutto: Mapped[int] = mapped_column(Integer)
    currency: Mapped[str] = mapped_column(String(3), default="HUF")

    valid_from: Mapped[dt.datetime] = mapped_column(UTCDateTime)
    valid_until: Mapped[dt.datetime | None] = mapped_column(UTCDateTime, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    client = relationship("Client", back_populates="price_codes")
    service_type = relationship("ServiceType", back_populates="price_codes")
