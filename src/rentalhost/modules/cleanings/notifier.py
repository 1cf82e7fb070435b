"""Cleaner notifications: job assignment emails (logged) and SMS morning reminders."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.orm import Session

from rentalhost.config import get_env
from rentalhost.database import get_session, to_utc_naive, utcnow
from rentalhost.exceptions import EmailDeliveryError, NotFoundError, ValidationError
from rentalhost.models.booking import Booking
from rentalhost.models.cleaning import Cleaning, CleaningEmailLog
from rentalhost.models.property import Property
from rentalhost.models.user import UserProfile
from rentalhost.modules.guest_comms.emailer import EmailService

logger = logging.getLogger(__name__)


def _as_datetime(value: Any) -> datetime:
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return to_utc_naive(value)


class CleanerNotifier:
    """Emails cleaners their jobs and texts them on cleaning days."""

    def __init__(self, email_service: EmailService | None = None) -> None:
        self._email = email_service or EmailService()
        self._twilio_client = None

    def _cleaner_name(self, session: Session, cleaner_id: str | None) -> str:
        if cleaner_id:
            profile = session.get(UserProfile, cleaner_id)
            if profile and profile.full_name and profile.full_name.strip():
                return profile.full_name.strip()
        return "Cleaner"

    def _send_and_log(
        self,
        session: Session,
        *,
        cleaner_id: str | None,
        cleaner_email: str,
        cleaner_name: str,
        subject: str,
        body: str,
        cleaning_ids: list[int],
    ) -> dict[str, Any]:
        result = self._email.send_email(cleaner_email, subject, body, to_name=cleaner_name)
        session.add(CleaningEmailLog(
            cleaner_id=cleaner_id,
            cleaner_email=cleaner_email,
            cleaner_name=cleaner_name,
            subject=subject,
            email_content=body,
            cleaning_ids=cleaning_ids,
            status="sent" if result.success else "failed",
            provider_message_id=result.message_id,
            error_message=None if result.success else (result.error or "Unknown error"),
        ))
        session.commit()

        if not result.success:
            raise EmailDeliveryError(result.error or "Failed to send email")
        return {
            "success": True,
            "message": f"Email sent to {cleaner_email}",
            "email_id": result.message_id,
            "logged": True,
        }

    def send_cleaning_jobs(
        self,
        cleaner_email: str,
        jobs: list[dict[str, Any]],
        *,
        cleaner_id: str | None = None,
        cleaning_ids: list[int] | None = None,
    ) -> dict[str, Any]:
        """Email a cleaner a digest of newly assigned jobs and log the attempt."""
        if not cleaner_email or not jobs:
            raise ValidationError("Missing required fields: cleaner_email, jobs")

        rendered_jobs = []
        for job in jobs:
            when = _as_datetime(job["cleaning_date"])
            rendered_jobs.append({**job, "cleaning_date_display": when.strftime("%A, %B %d, %Y at %I:%M %p")})

        plural = "s" if len(jobs) > 1 else ""
        subject = f"New Cleaning Job{plural} Assigned ({len(jobs)})"

        session = get_session()
        try:
            cleaner_name = self._cleaner_name(session, cleaner_id)
            body = self._email.render_file("cleaning_jobs", {"jobs": rendered_jobs, "cleaner_name": cleaner_name})
            return self._send_and_log(
                session,
                cleaner_id=cleaner_id,
                cleaner_email=cleaner_email,
                cleaner_name=cleaner_name,
                subject=subject,
                body=body,
                cleaning_ids=cleaning_ids or [],
            )
        finally:
            session.close()

    def send_booking_to_cleaner(
        self,
        booking_id: int,
        cleaner_email: str,
        *,
        cleaner_id: str | None = None,
        host_note: str | None = None,
    ) -> dict[str, Any]:
        if not booking_id or not cleaner_email:
            raise ValidationError("Missing required fields: booking_id, cleaner_email")

        session = get_session()
        try:
            booking = session.get(Booking, booking_id)
            if booking is None:
                raise NotFoundError(f"Booking not found: {booking_id}")
            prop = session.get(Property, booking.property_id)
            cleaner_name = self._cleaner_name(session, cleaner_id)
            body = self._email.render_file("booking_to_cleaner", {
                "cleaner_name": cleaner_name,
                "property_name": prop.name,
                "property_address": prop.address,
                "guest_name": booking.guest_name,
                "check_in_date": booking.check_in.strftime("%A, %B %d, %Y"),
                "check_out_date": booking.check_out.strftime("%A, %B %d, %Y"),
                "check_out_time": prop.checkout_time,
                "nights": booking.nights,
                "host_note": (host_note or "").strip(),
            })
            cleaning_ids = [
                c.id for c in session.query(Cleaning.id).filter(Cleaning.booking_id == booking.id).all()
            ]
            return self._send_and_log(
                session,
                cleaner_id=cleaner_id,
                cleaner_email=cleaner_email.strip(),
                cleaner_name=cleaner_name,
                subject=f"Cleaning Request - {prop.name}",
                body=body,
                cleaning_ids=cleaning_ids,
            )
        finally:
            session.close()

    def send_morning_reminders(self) -> int:
        """Text each assigned cleaner about today's scheduled cleanings."""
        session = get_session()
        try:
            start = utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
            cleanings = (
                session.query(Cleaning)
                .filter(
                    Cleaning.cleaning_date >= start,
                    Cleaning.cleaning_date < start + timedelta(days=1),
                    Cleaning.status == "scheduled",
                    Cleaning.cleaner_id.isnot(None),
                )
                .all()
            )
            sent = 0
            for cleaning in cleanings:
                cleaner = session.get(UserProfile, cleaning.cleaner_id)
                prop = session.get(Property, cleaning.property_id)
                if not cleaner or not cleaner.phone or not prop:
                    continue
                message = (
                    f"Reminder: Cleaning today at {prop.name}, {prop.address or ''} "
                    f"at {cleaning.cleaning_date:%H:%M}. Checkout time: {prop.checkout_time}."
                )
                if self._send_sms(cleaner.phone, message):
                    sent += 1
            return sent
        finally:
            session.close()

    def _send_sms(self, to_number: str, message: str) -> bool:
        """Send SMS via Twilio."""
        account_sid = get_env("TWILIO_ACCOUNT_SID")
        auth_token = get_env("TWILIO_AUTH_TOKEN")
        from_number = get_env("TWILIO_FROM_NUMBER")

        if not all([account_sid, auth_token, from_number]):
            logger.warning("Twilio not configured, SMS not sent")
            return False

        try:
            if self._twilio_client is None:
                from twilio.rest import Client

                self._twilio_client = Client(account_sid, auth_token)

            self._twilio_client.messages.create(body=message, from_=from_number, to=to_number)
            logger.info("SMS sent to %s", to_number)
            return True
        except Exception:
            logger.exception("Failed to send SMS to %s", to_number)
            return False
