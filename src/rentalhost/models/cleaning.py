"""Cleaning jobs and the log of emails sent to cleaners."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rentalhost.database import Base, utcnow

STATUSES = ("scheduled", "in_progress", "completed", "cancelled")


class Cleaning(Base):
    __tablename__ = "cleanings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    property_id: Mapped[int] = mapped_column(ForeignKey("properties.id"), nullable=False)
    booking_id: Mapped[int | None] = mapped_column(ForeignKey("bookings.id"), nullable=True)
    cleaner_id: Mapped[str | None] = mapped_column(ForeignKey("user_profiles.id"), nullable=True)
    cleaning_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="scheduled")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    cleaner_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    cleaner_contact: Mapped[str | None] = mapped_column(String(200), nullable=True)
    cost: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    booking: Mapped["Booking | None"] = relationship(back_populates="cleanings")  # noqa: F821

    def __repr__(self) -> str:
        return f"<Cleaning id={self.id} date={self.cleaning_date} status={self.status!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "property_id": self.property_id,
            "booking_id": self.booking_id,
            "cleaner_id": self.cleaner_id,
            "cleaning_date": self.cleaning_date.isoformat(),
            "status": self.status,
            "notes": self.notes,
            "cleaner_name": self.cleaner_name,
            "cleaner_contact": self.cleaner_contact,
            "cost": self.cost,
        }


class CleaningEmailLog(Base):
    __tablename__ = "cleaning_email_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cleaner_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    cleaner_email: Mapped[str] = mapped_column(String(200), nullable=False)
    cleaner_name: Mapped[str] = mapped_column(String(200), default="Cleaner")
    subject: Mapped[str] = mapped_column(String(300), nullable=False)
    email_content: Mapped[str] = mapped_column(Text, nullable=False)
    cleaning_ids: Mapped[list] = mapped_column(JSON, default=list)
    status: Mapped[str] = mapped_column(String(20), nullable=False)  # sent, failed
    provider_message_id: Mapped[str | None] = mapped_column(String(300), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    sent_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
