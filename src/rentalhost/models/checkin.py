"""Guest check-in tokens and access logs."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rentalhost.database import Base, utcnow


class GuestCheckinToken(Base):
    __tablename__ = "guest_checkin_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    booking_id: Mapped[int] = mapped_column(ForeignKey("bookings.id"), unique=True, nullable=False)
    token: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    guest_name: Mapped[str] = mapped_column(String(200), nullable=False)
    guest_email: Mapped[str] = mapped_column(String(200), nullable=False)
    property_id: Mapped[int] = mapped_column(ForeignKey("properties.id"), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    accessed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    access_count: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    revoked_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    revoke_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    ip_addresses: Mapped[list] = mapped_column(JSON, default=list)
    user_agents: Mapped[list] = mapped_column(JSON, default=list)
    last_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)
    last_user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    booking: Mapped["Booking"] = relationship(back_populates="checkin_token")  # noqa: F821
    access_logs: Mapped[list["GuestAccessLog"]] = relationship(cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<GuestCheckinToken id={self.id} booking_id={self.booking_id} active={self.is_active}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "booking_id": self.booking_id,
            "token": self.token,
            "guest_name": self.guest_name,
            "guest_email": self.guest_email,
            "property_id": self.property_id,
            "expires_at": self.expires_at.isoformat(),
            "accessed_at": self.accessed_at.isoformat() if self.accessed_at else None,
            "access_count": self.access_count,
            "is_active": self.is_active,
            "revoked_at": self.revoked_at.isoformat() if self.revoked_at else None,
            "revoke_reason": self.revoke_reason,
        }


class GuestAccessLog(Base):
    __tablename__ = "guest_access_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    token_id: Mapped[int] = mapped_column(ForeignKey("guest_checkin_tokens.id"), nullable=False)
    booking_id: Mapped[int] = mapped_column(Integer, nullable=False)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    pages_viewed: Mapped[list] = mapped_column(JSON, default=list)
    time_spent_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    actions_performed: Mapped[list] = mapped_column(JSON, default=list)
    accessed_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
