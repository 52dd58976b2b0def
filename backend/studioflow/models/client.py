from __future__ import annotations

import datetime as dt

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studioflow.db.session import Base


class Client(Base):
    __tablename__ = "clients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    full_name: Mapped[str] = mapped_column(String(200))
    # Clients without an account (walk-ins, the technical guest) have no email.
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True, index=True)

    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    registrations = relationship("ClassRegistration", back_populates="client")
    passes = relationship("Pass", back_populates="client", cascade="all, delete-orphan")
    price_codes = relationship("ClientPriceCode", back_populates="client", cascade="all, delete-orphan")
