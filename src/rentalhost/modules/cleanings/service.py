"""Cleaning job scheduling, CRUD and stats."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.orm import Session

from rentalhost.config import section
from rentalhost.database import get_session, to_utc_naive, utcnow
from rentalhost.events import Event, EventType, event_bus
from rentalhost.exceptions import NotFoundError, ValidationError
from rentalhost.models.booking import Booking
from rentalhost.models.cleaning import STATUSES, Cleaning
from rentalhost.models.property import Property

logger = logging.getLogger(__name__)

_cfg = section("cleanings")

UPDATABLE_FIELDS = ("cleaner_id", "cleaning_date", "status", "notes", "cleaner_name", "cleaner_contact", "cost")


class CleaningService:
    """Cleaning jobs: post-checkout scheduling, CRUD and reporting."""

    def setup_event_handlers(self) -> None:
        """Schedule cleanings for confirmed bookings that arrive from calendar feeds."""
        event_bus.subscribe(EventType.BOOKING_NEW, self._on_new_booking)

    def _on_new_booking(self, event: Event) -> None:
        # Manual bookings schedule their own cleaning
        if not event.booking_id or not event.from_feed:
            return
        if event.data.get("status", "confirmed") != "confirmed":
            return
        session = get_session()
        try:
            booking = session.get(Booking, event.booking_id)
            if booking:
                self.schedule_post_checkout(session, booking)
        finally:
            session.close()

    # --- Booking-driven scheduling ---

    def schedule_post_checkout(self, session: Session, booking: Booking) -> Cleaning | None:
        """Create the turnover cleaning a few hours after checkout.

        Skipped when the property already has a cleaning within the duplicate
        window around that time.
        """
        cleaning_date = booking.check_out + timedelta(hours=_cfg.get("hours_after_checkout", 3))
        window = timedelta(hours=_cfg.get("duplicate_window_hours", 2))
        existing = (
            session.query(Cleaning)
            .filter(
                Cleaning.property_id == booking.property_id,
                Cleaning.cleaning_date >= cleaning_date - window,
                Cleaning.cleaning_date <= cleaning_date + window,
            )
            .first()
        )
        if existing:
            logger.debug("Cleaning already scheduled near %s for property %s", cleaning_date, booking.property_id)
            return None

        prop = session.get(Property, booking.property_id)
        cost = prop.default_cleaning_cost if prop and prop.default_cleaning_cost is not None else None
        cleaning = Cleaning(
            property_id=booking.property_id,
            booking_id=booking.id,
            cleaning_date=cleaning_date,
            status="scheduled",
            cost=cost if cost is not None else _cfg.get("default_cost", 80.0),
            notes=f"Post-checkout cleaning for booking {booking.id}",
        )
        session.add(cleaning)
        session.commit()
        logger.info("Post-checkout cleaning %s scheduled for %s", cleaning.id, cleaning_date)
        event_bus.emit(
            EventType.CLEANING_SCHEDULED,
            {"cleaning_id": cleaning.id, "property_id": booking.property_id, "booking_id": booking.id},
        )
        return cleaning

    def _after_checkout_query(self, session: Session, booking: Booking):
        window_end = booking.check_out + timedelta(hours=_cfg.get("cancel_window_hours", 24))
        return session.query(Cleaning).filter(
            Cleaning.property_id == booking.property_id,
            Cleaning.cleaning_date >= booking.check_out,
            Cleaning.cleaning_date <= window_end,
        )

    def cancel_for_booking(self, session: Session, booking: Booking) -> int:
        """Cancel scheduled cleanings in the day after a cancelled booking's checkout."""
        cleanings = self._after_checkout_query(session, booking).filter(Cleaning.status == "scheduled").all()
        for cleaning in cleanings:
            cleaning.status = "cancelled"
            cleaning.notes = f"Cancelled due to booking {booking.id} cancellation"
        session.commit()
        if cleanings:
            logger.info("Cancelled %d cleanings for booking %s", len(cleanings), booking.id)
        return len(cleanings)

    def delete_for_booking(self, session: Session, booking: Booking) -> int:
        cleanings = self._after_checkout_query(session, booking).all()
        for cleaning in cleanings:
            session.delete(cleaning)
        return len(cleanings)

    # --- CRUD ---

    def list_cleanings(
        self,
        *,
        property_id: int | None = None,
        status: str | None = None,
        cleaner_id: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        limit: int | None = None,
        offset: int | None = None,
        property_ids: list[int] | None = None,
    ) -> list[Cleaning]:
        session = get_session()
        try:
            query = session.query(Cleaning).order_by(Cleaning.cleaning_date)
            if property_id:
                query = query.filter(Cleaning.property_id == property_id)
            if property_ids is not None:
                query = query.filter(Cleaning.property_id.in_(property_ids))
            if status:
                query = query.filter(Cleaning.status == status)
            if cleaner_id:
                query = query.filter(Cleaning.cleaner_id == cleaner_id)
            if date_from:
                query = query.filter(Cleaning.cleaning_date >= date_from)
            if date_to:
                query = query.filter(Cleaning.cleaning_date <= date_to)
            if offset:
                query = query.offset(offset).limit(limit or 10)
            elif limit:
                query = query.limit(limit)
            return query.all()
        finally:
            session.close()

    def get_upcoming_cleanings(self, cleaner_id: str | None = None) -> list[Cleaning]:
        now = utcnow()
        return self.list_cleanings(cleaner_id=cleaner_id, date_from=now, date_to=now + timedelta(days=7), limit=50)

    def get_todays_cleanings(self, cleaner_id: str | None = None) -> list[Cleaning]:
        now = utcnow()
        return self.list_cleanings(cleaner_id=cleaner_id, date_from=now, date_to=now + timedelta(hours=24), limit=20)

    def get_cleaning(self, cleaning_id: int) -> Cleaning:
        session = get_session()
        try:
            cleaning = session.get(Cleaning, cleaning_id)
            if cleaning is None:
                raise NotFoundError(f"Cleaning {cleaning_id} not found")
            return cleaning
        finally:
            session.close()

    def create_cleaning(self, data: dict[str, Any]) -> Cleaning:
        if not data.get("property_id") or not data.get("cleaning_date"):
            raise ValidationError("Missing required fields: property_id, cleaning_date")
        status = data.get("status") or "scheduled"
        data = {**data, "cleaning_date": to_utc_naive(data["cleaning_date"])}
        _check_status(status)

        session = get_session()
        try:
            if session.get(Property, data["property_id"]) is None:
                raise NotFoundError(f"Property {data['property_id']} not found")
            cleaning = Cleaning(
                property_id=data["property_id"],
                booking_id=data.get("booking_id"),
                **{name: data.get(name) for name in UPDATABLE_FIELDS if name != "status"},
                status=status,
            )
            session.add(cleaning)
            session.commit()
            logger.info("Created cleaning %s for property %s", cleaning.id, cleaning.property_id)
            return cleaning
        finally:
            session.close()

    def update_cleaning(self, cleaning_id: int, changes: dict[str, Any]) -> Cleaning:
        if "status" in changes:
            _check_status(changes["status"])
        if changes.get("cleaning_date"):
            changes = {**changes, "cleaning_date": to_utc_naive(changes["cleaning_date"])}
        session = get_session()
        try:
            cleaning = session.get(Cleaning, cleaning_id)
            if cleaning is None:
                raise NotFoundError(f"Cleaning {cleaning_id} not found")
            for name in UPDATABLE_FIELDS:
                if name in changes:
                    setattr(cleaning, name, changes[name])
            session.commit()
            return cleaning
        finally:
            session.close()

    def update_status(self, cleaning_id: int, status: str, notes: str | None = None) -> Cleaning:
        changes: dict[str, Any] = {"status": status}
        if notes:
            changes["notes"] = notes
        return self.update_cleaning(cleaning_id, changes)

    def start_cleaning(self, cleaning_id: int) -> Cleaning:
        return self.update_status(cleaning_id, "in_progress", "Cleaning started")

    def complete_cleaning(self, cleaning_id: int, notes: str | None = None) -> Cleaning:
        return self.update_status(cleaning_id, "completed", notes or "Cleaning completed")

    def delete_cleaning(self, cleaning_id: int) -> None:
        session = get_session()
        try:
            cleaning = session.get(Cleaning, cleaning_id)
            if cleaning is None:
                raise NotFoundError(f"Cleaning {cleaning_id} not found")
            session.delete(cleaning)
            session.commit()
        finally:
            session.close()

    def get_cleaning_stats(
        self,
        property_id: int | None = None,
        cleaner_id: str | None = None,
        property_ids: list[int] | None = None,
    ) -> dict[str, Any]:
        session = get_session()
        try:
            query = session.query(Cleaning)
            if property_id:
                query = query.filter(Cleaning.property_id == property_id)
            if property_ids is not None:
                query = query.filter(Cleaning.property_id.in_(property_ids))
            if cleaner_id:
                query = query.filter(Cleaning.cleaner_id == cleaner_id)
            cleanings = query.all()
        finally:
            session.close()

        costs = [c.cost for c in cleanings if c.cost]
        stats: dict[str, Any] = {"total": len(cleanings)}
        for status in STATUSES:
            stats[status] = sum(1 for c in cleanings if c.status == status)
        stats["total_cost"] = round(sum(costs), 2)
        stats["average_cost"] = round(sum(costs) / len(costs), 2) if costs else 0
        return stats


def _check_status(status: str) -> None:
    if status not in STATUSES:
        raise ValidationError(f"Invalid cleaning status: {status}")
