"""Property, calendar source, cleaner assignment, and guest-facing property info models."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rentalhost.database import Base, utcnow


class Property(Base):
    __tablename__ = "properties"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    host_id: Mapped[str | None] = mapped_column(ForeignKey("user_profiles.id"), nullable=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    timezone: Mapped[str] = mapped_column(String(64), default="UTC")
    checkin_time: Mapped[str] = mapped_column(String(10), default="15:00")
    checkout_time: Mapped[str] = mapped_column(String(10), default="11:00")
    default_cleaning_cost: Mapped[float | None] = mapped_column(Float, nullable=True)
    booking_com_hotel_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    bookings: Mapped[list["Booking"]] = relationship(  # noqa: F821
        back_populates="prop", cascade="all, delete-orphan"
    )
    calendar_sources: Mapped[list["CalendarSource"]] = relationship(
        back_populates="prop", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Property id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "host_id": self.host_id,
            "name": self.name,
            "address": self.address,
            "notes": self.notes,
            "timezone": self.timezone,
            "checkin_time": self.checkin_time,
            "checkout_time": self.checkout_time,
            "default_cleaning_cost": self.default_cleaning_cost,
            "booking_com_hotel_id": self.booking_com_hotel_id,
        }


class CalendarSource(Base):
    __tablename__ = "calendar_sources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    property_id: Mapped[int] = mapped_column(ForeignKey("properties.id"), nullable=False)
    platform: Mapped[str] = mapped_column(String(30), nullable=False)  # airbnb, vrbo, booking, other
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    ics_url: Mapped[str] = mapped_column(String(1000), nullable=False)
    sync_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    last_sync: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    sync_status: Mapped[str] = mapped_column(String(20), default="pending")  # pending, success, error
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    prop: Mapped["Property"] = relationship(back_populates="calendar_sources")

    def __repr__(self) -> str:
        return f"<CalendarSource id={self.id} platform={self.platform!r} status={self.sync_status!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "property_id": self.property_id,
            "platform": self.platform,
            "name": self.name,
            "ics_url": self.ics_url,
            "sync_enabled": self.sync_enabled,
            "last_sync": self.last_sync.isoformat() if self.last_sync else None,
            "sync_status": self.sync_status,
            "error_message": self.error_message,
        }


class PropertyCleaner(Base):
    __tablename__ = "property_cleaners"
    __table_args__ = (UniqueConstraint("property_id", "cleaner_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    property_id: Mapped[int] = mapped_column(ForeignKey("properties.id"), nullable=False)
    cleaner_id: Mapped[str] = mapped_column(ForeignKey("user_profiles.id"), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class PropertyInformation(Base):
    """What a guest sees on the check-in page."""

    __tablename__ = "property_information"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    property_id: Mapped[int] = mapped_column(ForeignKey("properties.id"), unique=True, nullable=False)
    checkin_instructions: Mapped[str | None] = mapped_column(Text, nullable=True)
    checkout_instructions: Mapped[str | None] = mapped_column(Text, nullable=True)
    entry_method: Mapped[str | None] = mapped_column(String(100), nullable=True)
    access_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    wifi_network: Mapped[str | None] = mapped_column(String(200), nullable=True)
    wifi_password: Mapped[str | None] = mapped_column(String(200), nullable=True)
    house_rules: Mapped[list | None] = mapped_column(JSON, nullable=True)
    amenities: Mapped[list | None] = mapped_column(JSON, nullable=True)
    parking_info: Mapped[str | None] = mapped_column(Text, nullable=True)
    trash_day: Mapped[str | None] = mapped_column(String(50), nullable=True)
    special_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    emergency_contacts: Mapped[list | None] = mapped_column(JSON, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    EDITABLE_FIELDS = (
        "checkin_instructions",
        "checkout_instructions",
        "entry_method",
        "access_code",
        "wifi_network",
        "wifi_password",
        "house_rules",
        "amenities",
        "parking_info",
        "trash_day",
        "special_notes",
        "emergency_contacts",
    )

    def to_dict(self) -> dict:
        data = {field: getattr(self, field) for field in self.EDITABLE_FIELDS}
        data["property_id"] = self.property_id
        return data
