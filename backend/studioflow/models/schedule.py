from __future__ import annotations

import datetime as dt

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studioflow.db.session import Base
from studioflow.db.types import UTCDateTime
from studioflow.models.enums import ClassTemplateStatus, OccurrenceStatus, RegistrationStatus


class ClassTemplate(Base):
    """Recurring class definition; occurrences are its concrete sessions."""

    __tablename__ = "class_templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(200), index=True)
    trainer_id: Mapped[int | None] = mapped_column(ForeignKey("trainers.id", ondelete="SET NULL"), nullable=True, index=True)
    status: Mapped[ClassTemplateStatus] = mapped_column(
        Enum(ClassTemplateStatus), default=ClassTemplateStatus.ACTIVE, index=True
    )

    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    occurrences = relationship("ClassOccurrence", back_populates="template")


class ClassOccurrence(Base):
    __tablename__ = "class_occurrences"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    template_id: Mapped[int | None] = mapped_column(
        ForeignKey("class_templates.id", ondelete="SET NULL"), nullable=True, index=True
    )
    trainer_id: Mapped[int] = mapped_column(ForeignKey("trainers.id", ondelete="RESTRICT"), index=True)

    starts_at: Mapped[dt.datetime] = mapped_column(UTCDateTime, index=True)
    ends_at: Mapped[dt.datetime] = mapped_column(UTCDateTime)
    status: Mapped[OccurrenceStatus] = mapped_column(Enum(OccurrenceStatus), default=OccurrenceStatus.SCHEDULED, index=True)

    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    template = relationship("ClassTemplate", back_populates="occurrences")
    trainer = relationship("Trainer", back_populates="occurrences")
    registrations = relationship(
        "ClassRegistration",
        back_populates="occurrence",
        cascade="all, delete-orphan",
        order_by="ClassRegistration.id",
    )


class ClassRegistration(Base):
    __tablename__ = "class_registrations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    occurrence_id: Mapped[int] = mapped_column(ForeignKey("class_occurrences.id", ondelete="CASCADE"), index=True)
    client_id: Mapped[int] = mapped_column(ForeignKey("clients.id", ondelete="RESTRICT"), index=True)

    status: Mapped[RegistrationStatus] = mapped_column(
        Enum(RegistrationStatus), default=RegistrationStatus.BOOKED, index=True
    )
    booked_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    occurrence = relationship("ClassOccurrence", back_populates="registrations")
    client = relationship("Client", back_populates="registrations")
