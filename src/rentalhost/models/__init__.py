"""Database models."""

from rentalhost.models.booking import Booking
from rentalhost.models.checkin import GuestAccessLog, GuestCheckinToken
from rentalhost.models.cleaning import Cleaning, CleaningEmailLog
from rentalhost.models.email import EmailTemplate, ScheduledEmail
from rentalhost.models.property import (
    CalendarSource,
    Property,
    PropertyCleaner,
    PropertyInformation,
)
from rentalhost.models.referral import ReferralSiteConfig
from rentalhost.models.user import UserProfile

__all__ = [
    "Booking",
    "CalendarSource",
    "Cleaning",
    "CleaningEmailLog",
    "EmailTemplate",
    "GuestAccessLog",
    "GuestCheckinToken",
    "Property",
    "PropertyCleaner",
    "PropertyInformation",
    "ReferralSiteConfig",
    "ScheduledEmail",
    "UserProfile",
]
