"""Booking CRUD with overlap protection and the cleaning/email side effects of status changes."""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from rentalhost.database import get_session, to_utc_naive
from rentalhost.events import EventType, event_bus
from rentalhost.exceptions import ConflictError, NotFoundError, RentalHostError, ValidationError
from rentalhost.models.booking import STATUSES, Booking
from rentalhost.models.property import Property
from rentalhost.modules.cleanings.service import CleaningService
from rentalhost.modules.guest_comms.email_scheduler import EmailScheduler

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "guest_name",
    "contact_email",
    "contact_phone",
    "booking_platform",
    "total_amount",
    "currency",
    "status",
    "notes",
    "passport_image_url",
    "external_reservation_id",
)


def parse_amount(value: Any) -> float | None:
    """Lenient money parsing: ``"$1,250.50"`` -> 1250.5, blanks and junk -> None."""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = re.sub(r"[^0-9.,-]", "", str(value).strip()).replace(",", "")
    try:
        return float(cleaned)
    except ValueError:
        return None


def find_overlap(
    session: Session,
    property_id: int,
    check_in: datetime,
    check_out: datetime,
    exclude_id: int | None = None,
) -> Booking | None:
    """First non-cancelled booking that overlaps the range. Back-to-back stays do not overlap."""
    query = session.query(Booking).filter(
        Booking.property_id == property_id,
        Booking.status != "cancelled",
        or_(
            and_(Booking.check_in <= check_in, Booking.check_out > check_in),
            and_(Booking.check_in < check_out, Booking.check_out >= check_out),
            and_(Booking.check_in >= check_in, Booking.check_out <= check_out),
        ),
    )
    if exclude_id is not None:
        query = query.filter(Booking.id != exclude_id)
    return query.first()


class BookingService:
    """Bookings entered by hosts (calendar imports go through CalendarSyncer)."""

    def __init__(
        self,
        cleanings: CleaningService | None = None,
        email_scheduler: EmailScheduler | None = None,
    ) -> None:
        self._cleanings = cleanings or CleaningService()
        self._emails = email_scheduler or EmailScheduler()

    def list_bookings(
        self,
        *,
        property_id: int | None = None,
        status: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        limit: int | None = None,
        offset: int | None = None,
        property_ids: list[int] | None = None,
    ) -> tuple[list[Booking], int]:
        """Bookings ordered by check-in plus the total count before paging.

        With both dates the filter selects stays overlapping the window.
        """
        session = get_session()
        try:
            query = session.query(Booking)
            if property_id:
                query = query.filter(Booking.property_id == property_id)
            if property_ids is not None:
                query = query.filter(Booking.property_id.in_(property_ids))
            if status:
                query = query.filter(Booking.status == status)
            if date_from and date_to:
                query = query.filter(Booking.check_in <= to_utc_naive(date_to), Booking.check_out >= to_utc_naive(date_from))
            elif date_from:
                query = query.filter(Booking.check_out >= to_utc_naive(date_from))
            elif date_to:
                query = query.filter(Booking.check_in <= to_utc_naive(date_to))

            count = query.count()
            query = query.order_by(Booking.check_in)
            if offset:
                query = query.offset(offset)
            if limit:
                query = query.limit(limit)
            return query.all(), count
        finally:
            session.close()

    def get_booking(self, booking_id: int) -> Booking:
        session = get_session()
        try:
            booking = session.get(Booking, booking_id)
            if booking is None:
                raise NotFoundError("Booking not found")
            return booking
        finally:
            session.close()

    def create_booking(self, data: dict[str, Any]) -> Booking:
        missing = [f for f in ("property_id", "guest_name", "check_in", "check_out") if not data.get(f)]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")
        check_in = to_utc_naive(data["check_in"])
        check_out = to_utc_naive(data["check_out"])
        if check_in >= check_out:
            raise ValidationError("Check-out date must be after check-in date")
        status = data.get("status") or "confirmed"
        _check_status(status)

        session = get_session()
        try:
            if session.get(Property, data["property_id"]) is None:
                raise NotFoundError(f"Property {data['property_id']} not found")
            conflict = find_overlap(session, data["property_id"], check_in, check_out)
            if conflict:
                raise ConflictError(f"Booking overlaps with existing reservation: {conflict.guest_name}")

            booking = Booking(
                property_id=data["property_id"],
                guest_name=data["guest_name"],
                contact_email=data.get("contact_email"),
                contact_phone=data.get("contact_phone"),
                check_in=check_in,
                check_out=check_out,
                booking_platform=data.get("booking_platform") or "manual",
                total_amount=parse_amount(data.get("total_amount")),
                currency=data.get("currency") or "USD",
                status=status,
                notes=data.get("notes"),
                passport_image_url=data.get("passport_image_url"),
                external_reservation_id=data.get("external_reservation_id"),
            )
            session.add(booking)
            session.commit()
            logger.info("Created booking %s for property %s", booking.id, booking.property_id)

            if booking.status == "confirmed":
                self._cleanings.schedule_post_checkout(session, booking)
                if booking.contact_email:
                    self._schedule_emails(session, booking)

            event_bus.emit(
                EventType.BOOKING_NEW,
                {
                    "booking_id": booking.id,
                    "property_id": booking.property_id,
                    "status": booking.status,
                    "source": "manual",
                },
            )
            return booking
        finally:
            session.close()

    def _schedule_emails(self, session: Session, booking: Booking) -> None:
        # Email scheduling never blocks the booking itself
        try:
            self._emails.schedule_booking_emails(session, booking)
        except RentalHostError as exc:
            logger.warning("Could not schedule emails for booking %s: %s", booking.id, exc.message)

    def update_booking(self, booking_id: int, changes: dict[str, Any]) -> Booking:
        """Partial update. Date changes must supply both dates and stay overlap-free."""
        if "status" in changes and changes["status"] is not None:
            _check_status(changes["status"])
        if "total_amount" in changes:
            changes = {**changes, "total_amount": parse_amount(changes["total_amount"])}

        session = get_session()
        try:
            booking = session.get(Booking, booking_id)
            if booking is None:
                raise NotFoundError("Booking not found")
            previous_status = booking.status

            if changes.get("check_in") or changes.get("check_out"):
                if not changes.get("check_in") or not changes.get("check_out"):
                    raise ValidationError("Both check-in and check-out dates are required")
                check_in = to_utc_naive(changes["check_in"])
                check_out = to_utc_naive(changes["check_out"])
                if check_in >= check_out:
                    raise ValidationError("Check-out date must be after check-in date")
                conflict = find_overlap(session, booking.property_id, check_in, check_out, exclude_id=booking.id)
                if conflict:
                    raise ConflictError(f"Updated dates overlap with existing reservation: {conflict.guest_name}")
                booking.check_in = check_in
                booking.check_out = check_out

            columns = Booking.__table__.columns
            for name in UPDATABLE_FIELDS:
                if name not in changes:
                    continue
                # null only clears nullable columns
                if changes[name] is None and not columns[name].nullable:
                    continue
                setattr(booking, name, changes[name])
            session.commit()

            if changes.get("status") and changes["status"] != previous_status:
                self._on_status_change(session, booking, previous_status)
            return booking
        finally:
            session.close()

    def _on_status_change(self, session: Session, booking: Booking, previous_status: str) -> None:
        if booking.status == "confirmed":
            self._cleanings.schedule_post_checkout(session, booking)
        elif booking.status == "cancelled":
            self._cleanings.cancel_for_booking(session, booking)
            self._emails.cancel_booking_emails(session, booking.id)
            event_bus.emit(
                EventType.BOOKING_CANCELLED,
                {"booking_id": booking.id, "property_id": booking.property_id},
            )
        logger.info("Booking %s status %s -> %s", booking.id, previous_status, booking.status)

    def delete_booking(self, booking_id: int) -> None:
        """Delete a booking and the cleanings scheduled in the day after its checkout."""
        session = get_session()
        try:
            booking = session.get(Booking, booking_id)
            if booking is None:
                raise NotFoundError("Booking not found")
            removed = self._cleanings.delete_for_booking(session, booking)
            property_id = booking.property_id
            session.delete(booking)
            session.commit()
            logger.info("Deleted booking %s and %d cleanings", booking_id, removed)
            event_bus.emit(
                EventType.BOOKING_DELETED,
                {"booking_id": booking_id, "property_id": property_id},
            )
        finally:
            session.close()

    def delete_bookings_by_platform(self, platform: str, property_id: int | None = None) -> int:
        session = get_session()
        try:
            query = session.query(Booking).filter(Booking.booking_platform == platform)
            if property_id:
                query = query.filter(Booking.property_id == property_id)
            bookings = query.all()
            for booking in bookings:
                session.delete(booking)
            session.commit()
            logger.info("Deleted %d %s bookings", len(bookings), platform)
            return len(bookings)
        finally:
            session.close()

    def get_booking_stats(
        self, property_id: int | None = None, property_ids: list[int] | None = None
    ) -> dict[str, Any]:
        session = get_session()
        try:
            query = session.query(Booking)
            if property_id:
                query = query.filter(Booking.property_id == property_id)
            if property_ids is not None:
                query = query.filter(Booking.property_id.in_(property_ids))
            bookings = query.all()
        finally:
            session.close()

        total = len(bookings)
        return {
            "total": total,
            "confirmed": sum(1 for b in bookings if b.status == "confirmed"),
            "pending": sum(1 for b in bookings if b.status == "pending"),
            "cancelled": sum(1 for b in bookings if b.status == "cancelled"),
            "checked_in": sum(1 for b in bookings if b.status == "checked_in"),
            "checked_out": sum(1 for b in bookings if b.status == "checked_out"),
            "total_revenue": round(sum(b.total_amount or 0 for b in bookings), 2),
            "average_nights": round(sum(b.nights for b in bookings) / total, 2) if total else 0,
        }


def _check_status(status: str) -> None:
    if status not in STATUSES:
        raise ValidationError(f"Invalid booking status: {status}")
