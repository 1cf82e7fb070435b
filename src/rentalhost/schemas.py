"""Request bodies for the JSON API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class PropertyCreate(BaseModel):
    name: str
    address: str | None = None
    notes: str | None = None
    timezone: str | None = None
    checkin_time: str | None = None
    checkout_time: str | None = None
    default_cleaning_cost: float | None = None
    booking_com_hotel_id: str | None = None


class PropertyUpdate(BaseModel):
    """All optional; only provided fields are updated."""
    name: str | None = None
    address: str | None = None
    notes: str | None = None
    timezone: str | None = None
    checkin_time: str | None = None
    checkout_time: str | None = None
    default_cleaning_cost: float | None = None
    booking_com_hotel_id: str | None = None


class CalendarSourceCreate(BaseModel):
    platform: str
    name: str
    ics_url: str
    sync_enabled: bool = True


class CalendarSourceUpdate(BaseModel):
    platform: str | None = None
    name: str | None = None
    ics_url: str | None = None
    sync_enabled: bool | None = None


class CleanerAssign(BaseModel):
    cleaner_id: str
    notes: str | None = None


class CleanerCreate(BaseModel):
    email: str | None = None
    full_name: str | None = None
    phone: str | None = None
    hourly_rate: float | None = None


class BookingCreate(BaseModel):
    property_id: int
    guest_name: str
    check_in: datetime
    check_out: datetime
    contact_email: str | None = None
    contact_phone: str | None = None
    booking_platform: str | None = None
    # Accepts "$1,250.00" style strings
    total_amount: float | str | None = None
    currency: str | None = None
    status: str | None = None
    notes: str | None = None
    passport_image_url: str | None = None
    external_reservation_id: str | None = None


class BookingUpdate(BaseModel):
    guest_name: str | None = None
    check_in: datetime | None = None
    check_out: datetime | None = None
    contact_email: str | None = None
    contact_phone: str | None = None
    booking_platform: str | None = None
    total_amount: float | str | None = None
    currency: str | None = None
    status: str | None = None
    notes: str | None = None
    passport_image_url: str | None = None
    external_reservation_id: str | None = None


class CleaningCreate(BaseModel):
    property_id: int
    cleaning_date: datetime
    booking_id: int | None = None
    cleaner_id: str | None = None
    status: str | None = None
    notes: str | None = None
    cleaner_name: str | None = None
    cleaner_contact: str | None = None
    cost: float | None = None


class CleaningUpdate(BaseModel):
    cleaning_date: datetime | None = None
    cleaner_id: str | None = None
    status: str | None = None
    notes: str | None = None
    cleaner_name: str | None = None
    cleaner_contact: str | None = None
    cost: float | None = None


class SyncSource(BaseModel):
    platform: str
    url: str
    name: str | None = None


class SyncRequest(BaseModel):
    property_id: int | None = None
    sources: list[SyncSource] | None = None
    reconcile: bool = False
    platform: str | None = None


class TokenGenerateRequest(BaseModel):
    booking_id: int | None = None
    expires_days: int = 30


class GuestInteraction(BaseModel):
    token: str | None = None
    action: str | None = None
    page: str | None = None
    time_spent: int | None = None


class TokenRevokeRequest(BaseModel):
    token: str | None = None
    reason: str = "Manual revocation by host"


class ReferralSiteSave(BaseModel):
    id: int | None = None
    property_id: int
    platform: str | None = None
    hotel_id: str | None = None
    account_number: str | None = None
    username: str | None = None
    password: str | None = None
    extranet_url: str | None = None
    config_data: dict | None = None
    is_active: bool | None = None
    notes: str | None = None
    currency_code: str | None = None
    currency_symbol: str | None = None


class CurrencyConvertRequest(BaseModel):
    amounts_by_currency: dict[str, float] | None = Field(default=None, alias="amountsByCurrency")
    target_currency: str | None = Field(default=None, alias="targetCurrency")

    model_config = {"populate_by_name": True}


class ProcessEmailsRequest(BaseModel):
    action: str | None = None
    booking_id: int | None = None
    email_type: str | None = None


class SendNowRequest(BaseModel):
    booking_id: int | None = None
    email_type: str | None = None


class SendEmailRequest(BaseModel):
    to: str | None = None
    subject: str | None = None
    message: str | None = None
    html: str | None = None


class CleaningJob(BaseModel):
    property_name: str | None = None
    property_address: str | None = None
    cleaning_date: datetime
    notes: str | None = None
    cost: float | None = None


class SendCleaningJobsRequest(BaseModel):
    cleaner_email: str | None = None
    cleaner_id: str | None = None
    jobs: list[CleaningJob] = []
    cleaning_ids: list[int] = []


class SendBookingToCleanerRequest(BaseModel):
    booking_id: int | None = None
    cleaner_email: str | None = None
    cleaner_id: str | None = None
    host_note: str | None = None
