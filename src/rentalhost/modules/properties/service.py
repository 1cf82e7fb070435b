"""Property, calendar source and cleaner-assignment management."""

from __future__ import annotations

import logging
import uuid
from typing import Any

from rentalhost.database import get_session
from rentalhost.exceptions import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from rentalhost.models.cleaning import Cleaning
from rentalhost.models.email import EmailTemplate
from rentalhost.models.property import CalendarSource, Property, PropertyCleaner, PropertyInformation
from rentalhost.models.referral import ReferralSiteConfig
from rentalhost.models.user import UserProfile
from rentalhost.modules.calendar_sync.platforms import validate_ics_url

logger = logging.getLogger(__name__)

PROPERTY_FIELDS = (
    "name",
    "address",
    "notes",
    "timezone",
    "checkin_time",
    "checkout_time",
    "default_cleaning_cost",
    "booking_com_hotel_id",
)
SOURCE_PLATFORMS = ("airbnb", "vrbo", "booking", "other")


class PropertyService:
    """Host-owned properties and what hangs off them."""

    # --- Properties ---

    def list_properties(self, host_id: str | None = None) -> list[Property]:
        session = get_session()
        try:
            query = session.query(Property).order_by(Property.created_at.desc(), Property.id.desc())
            if host_id is not None:
                query = query.filter(Property.host_id == host_id)
            return query.all()
        finally:
            session.close()

    def property_ids_for_host(self, host_id: str) -> list[int]:
        session = get_session()
        try:
            return [row.id for row in session.query(Property.id).filter(Property.host_id == host_id)]
        finally:
            session.close()

    def get_property(self, property_id: int, host_id: str | None = None) -> Property:
        """Fetch a property; with ``host_id`` the caller must own it."""
        session = get_session()
        try:
            prop = session.get(Property, property_id)
            if prop is None:
                raise NotFoundError(f"Property {property_id} not found")
            if host_id is not None and prop.host_id != host_id:
                raise PermissionDeniedError("Property not found or access denied")
            return prop
        finally:
            session.close()

    def create_property(self, host_id: str, data: dict[str, Any]) -> Property:
        if not data.get("name"):
            raise ValidationError("Property name is required")
        session = get_session()
        try:
            prop = Property(host_id=host_id, **{k: data[k] for k in PROPERTY_FIELDS if data.get(k) is not None})
            session.add(prop)
            session.commit()
            logger.info("Created property %s (%s)", prop.id, prop.name)
            return prop
        finally:
            session.close()

    def update_property(self, property_id: int, changes: dict[str, Any]) -> Property:
        if "name" in changes and not changes["name"]:
            raise ValidationError("Property name cannot be empty")
        session = get_session()
        try:
            prop = session.get(Property, property_id)
            if prop is None:
                raise NotFoundError(f"Property {property_id} not found")
            for name in PROPERTY_FIELDS:
                if name in changes:
                    setattr(prop, name, changes[name])
            session.commit()
            return prop
        finally:
            session.close()

    def delete_property(self, property_id: int) -> None:
        """Delete a property with its bookings, sources, cleanings and settings."""
        session = get_session()
        try:
            prop = session.get(Property, property_id)
            if prop is None:
                raise NotFoundError(f"Property {property_id} not found")
            for cleaning in session.query(Cleaning).filter(Cleaning.property_id == property_id):
                session.delete(cleaning)
            for model in (PropertyCleaner, PropertyInformation, ReferralSiteConfig, EmailTemplate):
                session.query(model).filter(model.property_id == property_id).delete(synchronize_session=False)
            session.delete(prop)
            session.commit()
            logger.info("Deleted property %s", property_id)
        finally:
            session.close()

    def properties_with_calendars(self, host_id: str | None = None) -> list[dict[str, Any]]:
        """Properties that have at least one enabled calendar source."""
        session = get_session()
        try:
            query = session.query(Property)
            if host_id is not None:
                query = query.filter(Property.host_id == host_id)
            results = []
            for prop in query.all():
                sources = prop.calendar_sources
                if any(s.sync_enabled for s in sources):
                    results.append({
                        "id": prop.id,
                        "name": prop.name,
                        "address": prop.address,
                        "calendar_sources": [s.to_dict() for s in sources],
                    })
            return results
        finally:
            session.close()

    # --- Calendar sources ---

    def list_calendar_sources(self, property_id: int) -> list[CalendarSource]:
        session = get_session()
        try:
            return (
                session.query(CalendarSource)
                .filter(CalendarSource.property_id == property_id)
                .order_by(CalendarSource.created_at.desc(), CalendarSource.id.desc())
                .all()
            )
        finally:
            session.close()

    def get_calendar_source(self, source_id: int) -> CalendarSource:
        session = get_session()
        try:
            source = session.get(CalendarSource, source_id)
            if source is None:
                raise NotFoundError(f"Calendar source {source_id} not found")
            return source
        finally:
            session.close()

    def create_calendar_source(self, property_id: int, data: dict[str, Any]) -> CalendarSource:
        platform = data.get("platform")
        if platform not in SOURCE_PLATFORMS:
            raise ValidationError(f"Invalid platform: {platform}")
        if not data.get("name"):
            raise ValidationError("Calendar name is required")
        _check_ics_url(data.get("ics_url") or "")

        session = get_session()
        try:
            if session.get(Property, property_id) is None:
                raise NotFoundError(f"Property {property_id} not found")
            source = CalendarSource(
                property_id=property_id,
                platform=platform,
                name=data["name"],
                ics_url=data["ics_url"],
                sync_enabled=data.get("sync_enabled", True),
            )
            session.add(source)
            session.commit()
            logger.info("Added %s calendar %s to property %s", platform, source.id, property_id)
            return source
        finally:
            session.close()

    def update_calendar_source(self, source_id: int, changes: dict[str, Any]) -> CalendarSource:
        if changes.get("platform") is not None and changes["platform"] not in SOURCE_PLATFORMS:
            raise ValidationError(f"Invalid platform: {changes['platform']}")
        if changes.get("ics_url") is not None:
            _check_ics_url(changes["ics_url"])
        session = get_session()
        try:
            source = session.get(CalendarSource, source_id)
            if source is None:
                raise NotFoundError(f"Calendar source {source_id} not found")
            for name in ("platform", "name", "ics_url", "sync_enabled"):
                if changes.get(name) is not None:
                    setattr(source, name, changes[name])
            session.commit()
            return source
        finally:
            session.close()

    def delete_calendar_source(self, source_id: int) -> None:
        session = get_session()
        try:
            source = session.get(CalendarSource, source_id)
            if source is None:
                raise NotFoundError(f"Calendar source {source_id} not found")
            session.delete(source)
            session.commit()
        finally:
            session.close()

    # --- Cleaners ---

    def get_property_cleaners(self, property_id: int) -> list[dict[str, Any]]:
        session = get_session()
        try:
            rows = (
                session.query(PropertyCleaner, UserProfile)
                .join(UserProfile, UserProfile.id == PropertyCleaner.cleaner_id)
                .filter(PropertyCleaner.property_id == property_id)
                .order_by(UserProfile.full_name)
                .all()
            )
            return [{**profile.to_dict(), "assignment_notes": link.notes} for link, profile in rows]
        finally:
            session.close()

    def assign_cleaner(self, property_id: int, cleaner_id: str, notes: str | None = None) -> PropertyCleaner:
        session = get_session()
        try:
            if session.get(Property, property_id) is None:
                raise NotFoundError(f"Property {property_id} not found")
            cleaner = session.get(UserProfile, cleaner_id)
            if cleaner is None or cleaner.role != "cleaner":
                raise ValidationError("Cleaner not found")
            existing = (
                session.query(PropertyCleaner)
                .filter(PropertyCleaner.property_id == property_id, PropertyCleaner.cleaner_id == cleaner_id)
                .first()
            )
            if existing:
                raise ConflictError("Cleaner is already assigned to this property")
            link = PropertyCleaner(property_id=property_id, cleaner_id=cleaner_id, notes=notes)
            session.add(link)
            session.commit()
            return link
        finally:
            session.close()

    def remove_cleaner(self, property_id: int, cleaner_id: str) -> None:
        session = get_session()
        try:
            link = (
                session.query(PropertyCleaner)
                .filter(PropertyCleaner.property_id == property_id, PropertyCleaner.cleaner_id == cleaner_id)
                .first()
            )
            if link is None:
                raise NotFoundError("Cleaner is not assigned to this property")
            session.delete(link)
            session.commit()
        finally:
            session.close()

    def create_cleaner(self, data: dict[str, Any]) -> tuple[UserProfile, bool]:
        """Create a cleaner profile, or refresh the one already using that email.

        Returns the profile and whether it was newly created.
        """
        if not data.get("email") or not data.get("full_name"):
            raise ValidationError("Email and full name are required")
        session = get_session()
        try:
            profile = session.query(UserProfile).filter(UserProfile.email == data["email"]).first()
            created = profile is None
            if created:
                profile = UserProfile(id=str(uuid.uuid4()), email=data["email"])
                session.add(profile)
            profile.full_name = data["full_name"]
            profile.role = "cleaner"
            profile.phone = data.get("phone") or None
            profile.hourly_rate = data.get("hourly_rate") or None
            session.commit()
            logger.info("%s cleaner profile %s", "Created" if created else "Updated", profile.id)
            return profile, created
        finally:
            session.close()


def _check_ics_url(url: str) -> None:
    valid, error = validate_ics_url(url)
    if not valid:
        raise ValidationError(error or "Invalid URL format")
