"""Scheduling of the automated guest emails and the pending-email worker."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from sqlalchemy.orm import Session

from rentalhost.config import section
from rentalhost.database import get_session, utcnow
from rentalhost.events import EventType, event_bus
from rentalhost.exceptions import NotFoundError, ValidationError
from rentalhost.models.booking import Booking
from rentalhost.models.email import EMAIL_TYPES, ScheduledEmail
from rentalhost.models.property import Property
from rentalhost.modules.guest_checkin.service import GuestCheckinService
from rentalhost.modules.guest_comms.emailer import EmailResult, EmailService

logger = logging.getLogger(__name__)

EMAIL_STATUSES = ("pending", "sent", "failed", "cancelled")


class EmailScheduler:
    """Queues check-in, checkout and thank-you emails per booking and sends them when due."""

    def __init__(
        self,
        email_service: EmailService | None = None,
        checkin_service: GuestCheckinService | None = None,
    ) -> None:
        self._email = email_service or EmailService()
        self._checkin = checkin_service or GuestCheckinService()
        self._config = section("emails")

    def schedule_booking_emails(self, session: Session, booking: Booking) -> list[ScheduledEmail]:
        """Queue the three guest emails. Emails whose send time already passed are skipped,
        except the thank-you which is always queued."""
        if not booking.contact_email:
            raise ValidationError("No guest email provided")

        now = utcnow()
        check_in_at = booking.check_in - timedelta(days=self._config.get("check_in_days_before", 2))
        reminder_at = booking.check_out - timedelta(days=self._config.get("checkout_reminder_days_before", 1))
        thank_you_at = booking.check_out + timedelta(days=self._config.get("thank_you_days_after", 2))

        plan = []
        if check_in_at > now:
            plan.append(("check_in_instructions", check_in_at))
        if reminder_at > now:
            plan.append(("checkout_reminder", reminder_at))
        plan.append(("thank_you_review", thank_you_at))

        emails = [
            ScheduledEmail(
                booking_id=booking.id,
                email_type=email_type,
                recipient_email=booking.contact_email,
                recipient_name=booking.guest_name,
                scheduled_for=when,
                status="pending",
                retry_count=0,
            )
            for email_type, when in plan
        ]
        session.add_all(emails)
        session.commit()
        logger.info("Scheduled %d emails for booking %s", len(emails), booking.id)
        return emails

    def cancel_booking_emails(self, session: Session, booking_id: int) -> int:
        pending = (
            session.query(ScheduledEmail)
            .filter(ScheduledEmail.booking_id == booking_id, ScheduledEmail.status == "pending")
            .all()
        )
        for email in pending:
            email.status = "cancelled"
        session.commit()
        return len(pending)

    def process_pending_emails(self) -> dict[str, int]:
        """Send due pending emails in one batch.

        A failed send is retried a day later up to the retry limit, then marked
        failed. Unexpected errors mark the email failed straight away.
        """
        session = get_session()
        try:
            due = (
                session.query(ScheduledEmail)
                .filter(ScheduledEmail.status == "pending", ScheduledEmail.scheduled_for <= utcnow())
                .order_by(ScheduledEmail.scheduled_for)
                .limit(self._config.get("batch_size", 50))
                .all()
            )
            sent = failed = 0
            for email in due:
                try:
                    result = self._deliver(session, email)
                except Exception as exc:
                    logger.exception("Error sending scheduled email %s", email.id)
                    session.rollback()
                    email.status = "failed"
                    email.error_message = str(exc)
                    session.commit()
                    failed += 1
                    continue

                if result.success:
                    email.status = "sent"
                    email.sent_at = utcnow()
                    email.error_message = None
                    sent += 1
                    event_bus.emit(
                        EventType.GUEST_EMAIL_SENT,
                        {"scheduled_email_id": email.id, "booking_id": email.booking_id},
                    )
                else:
                    email.retry_count = (email.retry_count or 0) + 1
                    email.error_message = result.error
                    if email.retry_count <= self._config.get("max_retries", 3):
                        email.scheduled_for = utcnow() + timedelta(
                            hours=self._config.get("retry_delay_hours", 24)
                        )
                    else:
                        email.status = "failed"
                    failed += 1
                session.commit()

            if due:
                logger.info("Processed %d scheduled emails: %d sent, %d failed", len(due), sent, failed)
            return {"processed": len(due), "sent": sent, "failed": failed}
        finally:
            session.close()

    def _deliver(self, session: Session, email: ScheduledEmail) -> EmailResult:
        if email.email_type not in EMAIL_TYPES:
            raise ValueError(f"Unknown email type: {email.email_type}")
        booking = session.get(Booking, email.booking_id)
        if booking is None:
            raise NotFoundError(f"Booking {email.booking_id} not found")
        prop = session.get(Property, booking.property_id)

        extra = self._extra_context(session, email.email_type, booking)
        return self._email.send_guest_email(
            session, email.email_type, booking, prop, to_email=email.recipient_email, **extra
        )

    def _extra_context(self, session: Session, email_type: str, booking: Booking) -> dict[str, Any]:
        extra: dict[str, Any] = {"notes": booking.notes or ""}
        if email_type == "check_in_instructions":
            url, expires = self._checkin.token_for_email(session, booking)
            extra["guest_checkin_url"] = url
            extra["link_expires"] = expires.strftime("%B %d, %Y") if expires else None
        return extra

    def get_booking_emails(self, booking_id: int) -> list[ScheduledEmail]:
        session = get_session()
        try:
            return (
                session.query(ScheduledEmail)
                .filter(ScheduledEmail.booking_id == booking_id)
                .order_by(ScheduledEmail.scheduled_for)
                .all()
            )
        finally:
            session.close()

    def send_email_now(self, email_type: str, booking_id: int) -> EmailResult:
        """Send one of the guest emails immediately, outside the schedule."""
        if email_type not in EMAIL_TYPES:
            raise ValidationError(f"Unknown email type: {email_type}")
        session = get_session()
        try:
            booking = session.get(Booking, booking_id)
            if booking is None:
                raise NotFoundError(f"Booking {booking_id} not found")
            if not booking.contact_email:
                raise ValidationError("No guest email provided")
            prop = session.get(Property, booking.property_id)
            extra = self._extra_context(session, email_type, booking)
            return self._email.send_guest_email(session, email_type, booking, prop, **extra)
        finally:
            session.close()

    def get_email_stats(self, booking_id: int | None = None) -> dict[str, int]:
        session = get_session()
        try:
            query = session.query(ScheduledEmail.status)
            if booking_id:
                query = query.filter(ScheduledEmail.booking_id == booking_id)
            statuses = [row[0] for row in query.all()]
        finally:
            session.close()
        stats = {"total": len(statuses)}
        for status in EMAIL_STATUSES:
            stats[status] = statuses.count(status)
        return stats
