"""Booking model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rentalhost.database import Base, utcnow

STATUSES = ("confirmed", "pending", "cancelled", "checked_in", "checked_out")
PLATFORMS = ("airbnb", "vrbo", "booking", "manual", "other")


class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    property_id: Mapped[int] = mapped_column(ForeignKey("properties.id"), nullable=False)
    guest_name: Mapped[str] = mapped_column(String(200), nullable=False)
    contact_email: Mapped[str | None] = mapped_column(String(200), nullable=True)
    contact_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    guest_first_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    guest_last_initial: Mapped[str | None] = mapped_column(String(5), nullable=True)
    check_in: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    check_out: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    passport_image_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    # "{platform}:{property_id}:{feed uid}" for calendar-imported bookings
    event_uid: Mapped[str | None] = mapped_column(String(700), unique=True, nullable=True)
    booking_platform: Mapped[str] = mapped_column(String(30), default="manual")
    reservation_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    guest_phone_last4: Mapped[str | None] = mapped_column(String(4), nullable=True)
    listing_name: Mapped[str | None] = mapped_column(String(300), nullable=True)
    external_reservation_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    total_amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    status: Mapped[str] = mapped_column(String(20), default="confirmed")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    prop: Mapped["Property"] = relationship(back_populates="bookings")  # noqa: F821
    cleanings: Mapped[list["Cleaning"]] = relationship(back_populates="booking")  # noqa: F821
    scheduled_emails: Mapped[list["ScheduledEmail"]] = relationship(  # noqa: F821
        back_populates="booking", cascade="all, delete-orphan"
    )
    checkin_token: Mapped["GuestCheckinToken | None"] = relationship(  # noqa: F821
        back_populates="booking", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return (
            f"<Booking id={self.id} property_id={self.property_id} "
            f"guest={self.guest_name!r} {self.check_in:%Y-%m-%d}..{self.check_out:%Y-%m-%d}>"
        )

    @property
    def nights(self) -> int:
        return (self.check_out.date() - self.check_in.date()).days

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "property_id": self.property_id,
            "guest_name": self.guest_name,
            "contact_email": self.contact_email,
            "contact_phone": self.contact_phone,
            "guest_first_name": self.guest_first_name,
            "guest_last_initial": self.guest_last_initial,
            "check_in": self.check_in.isoformat(),
            "check_out": self.check_out.isoformat(),
            "nights": self.nights,
            "notes": self.notes,
            "passport_image_url": self.passport_image_url,
            "event_uid": self.event_uid,
            "booking_platform": self.booking_platform,
            "reservation_url": self.reservation_url,
            "guest_phone_last4": self.guest_phone_last4,
            "listing_name": self.listing_name,
            "external_reservation_id": self.external_reservation_id,
            "total_amount": self.total_amount,
            "currency": self.currency,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
