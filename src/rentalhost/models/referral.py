"""Stored credentials and settings for booking-platform extranets."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from rentalhost.database import Base, utcnow


class ReferralSiteConfig(Base):
    __tablename__ = "referral_site_configs"
    __table_args__ = (UniqueConstraint("property_id", "platform"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    property_id: Mapped[int] = mapped_column(ForeignKey("properties.id"), nullable=False)
    platform: Mapped[str] = mapped_column(String(30), nullable=False)
    hotel_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    account_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    username: Mapped[str | None] = mapped_column(String(200), nullable=True)
    password_encrypted: Mapped[str | None] = mapped_column(Text, nullable=True)
    extranet_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    config_data: Mapped[dict] = mapped_column(JSON, default=dict)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    currency_code: Mapped[str | None] = mapped_column(String(3), nullable=True)
    currency_symbol: Mapped[str | None] = mapped_column(String(5), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<ReferralSiteConfig id={self.id} property_id={self.property_id} platform={self.platform!r}>"

    def to_dict(self, password: str | None = None) -> dict:
        return {
            "id": self.id,
            "property_id": self.property_id,
            "platform": self.platform,
            "hotel_id": self.hotel_id,
            "account_number": self.account_number,
            "username": self.username,
            "password": password,
            "has_password": bool(self.password_encrypted),
            "extranet_url": self.extranet_url,
            "config_data": self.config_data or {},
            "is_active": self.is_active,
            "notes": self.notes,
            "currency_code": self.currency_code,
            "currency_symbol": self.currency_symbol,
        }
