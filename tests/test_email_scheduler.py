"""Tests for guest email scheduling and the pending-email worker."""

from datetime import datetime, timedelta
from unittest.mock import patch

import pytest
from sqlalchemy.orm import Session

from rentalhost.database import utcnow
from rentalhost.events import EventType
from rentalhost.exceptions import NotFoundError, ValidationError
from rentalhost.models.booking import Booking
from rentalhost.models.checkin import GuestCheckinToken
from rentalhost.models.email import ScheduledEmail
from rentalhost.models.property import Property
from rentalhost.modules.guest_comms import EmailResult, EmailScheduler, EmailService


@pytest.fixture
def email_service():
    return EmailService()


def _due_email(db: Session, booking: Booking, email_type: str = "thank_you_review", **kwargs) -> ScheduledEmail:
    email = ScheduledEmail(
        booking_id=booking.id,
        email_type=email_type,
        recipient_email=booking.contact_email,
        recipient_name=booking.guest_name,
        scheduled_for=utcnow() - timedelta(minutes=5),
        **kwargs,
    )
    db.add(email)
    db.commit()
    return email


def test_schedule_booking_emails(db: Session, sample_booking: Booking):
    emails = EmailScheduler().schedule_booking_emails(db, sample_booking)
    when = {e.email_type: e.scheduled_for for e in emails}
    assert when == {
        "check_in_instructions": datetime(2030, 1, 30),
        "checkout_reminder": datetime(2030, 2, 4),
        "thank_you_review": datetime(2030, 2, 7),
    }
    assert all(e.status == "pending" and e.recipient_email == "john@example.com" for e in emails)


def test_schedule_skips_times_already_passed(db: Session, sample_property: Property):
    now = utcnow()
    booking = Booking(
        property_id=sample_property.id,
        guest_name="Soon Guest",
        contact_email="soon@example.com",
        check_in=now + timedelta(days=1),
        check_out=now + timedelta(days=5),
    )
    db.add(booking)
    db.commit()

    emails = EmailScheduler().schedule_booking_emails(db, booking)
    assert [e.email_type for e in emails] == ["checkout_reminder", "thank_you_review"]


def test_schedule_requires_guest_email(db: Session, sample_booking: Booking):
    sample_booking.contact_email = None
    with pytest.raises(ValidationError, match="No guest email provided"):
        EmailScheduler().schedule_booking_emails(db, sample_booking)


def test_cancel_booking_emails(db: Session, sample_booking: Booking):
    scheduler = EmailScheduler()
    scheduler.schedule_booking_emails(db, sample_booking)
    assert scheduler.cancel_booking_emails(db, sample_booking.id) == 3
    assert {e.status for e in db.query(ScheduledEmail)} == {"cancelled"}


def test_process_sends_due_emails(db: Session, sample_booking: Booking, email_service, isolated_event_bus):
    sent_events = []
    isolated_event_bus.subscribe(EventType.GUEST_EMAIL_SENT, sent_events.append)
    due = _due_email(db, sample_booking)
    _due_email(db, sample_booking, "checkout_reminder", status="sent")
    future = _due_email(db, sample_booking, "checkout_reminder")
    future.scheduled_for = utcnow() + timedelta(days=1)
    db.commit()

    with patch.object(email_service, "send_guest_email", return_value=EmailResult(success=True, message_id="<1>")):
        stats = EmailScheduler(email_service).process_pending_emails()

    assert stats == {"processed": 1, "sent": 1, "failed": 0}
    assert due.status == "sent"
    assert due.sent_at is not None
    assert future.status == "pending"
    assert sent_events[0].data["scheduled_email_id"] == due.id


def test_check_in_email_carries_checkin_link(db: Session, sample_booking: Booking, email_service):
    _due_email(db, sample_booking, "check_in_instructions")

    with patch.object(email_service, "send_guest_email", return_value=EmailResult(success=True)) as send:
        EmailScheduler(email_service).process_pending_emails()

    token = db.query(GuestCheckinToken).one()
    kwargs = send.call_args.kwargs
    assert kwargs["guest_checkin_url"].endswith(f"/guest-checkin/{token.token}")
    assert kwargs["link_expires"] == token.expires_at.strftime("%B %d, %Y")
    assert kwargs["to_email"] == "john@example.com"


def test_failed_send_is_retried_later(db: Session, sample_booking: Booking, email_service):
    email = _due_email(db, sample_booking)

    with patch.object(email_service, "send_guest_email", return_value=EmailResult(success=False, error="SMTP down")):
        stats = EmailScheduler(email_service).process_pending_emails()

    assert stats["failed"] == 1
    assert email.status == "pending"
    assert email.retry_count == 1
    assert email.error_message == "SMTP down"
    assert email.scheduled_for > utcnow() + timedelta(hours=23)


def test_failed_send_gives_up_after_max_retries(db: Session, sample_booking: Booking, email_service):
    email = _due_email(db, sample_booking, retry_count=3)

    with patch.object(email_service, "send_guest_email", return_value=EmailResult(success=False, error="SMTP down")):
        EmailScheduler(email_service).process_pending_emails()

    assert email.status == "failed"
    assert email.retry_count == 4


def test_unknown_email_type_fails_immediately(db: Session, sample_booking: Booking, email_service):
    email = _due_email(db, sample_booking, "birthday_card")

    with patch.object(email_service, "send_guest_email") as send:
        stats = EmailScheduler(email_service).process_pending_emails()

    send.assert_not_called()
    assert stats["failed"] == 1
    assert email.status == "failed"
    assert "Unknown email type" in email.error_message


def test_send_email_now(db: Session, sample_booking: Booking, email_service):
    scheduler = EmailScheduler(email_service)
    with patch.object(email_service, "send_guest_email", return_value=EmailResult(success=True)) as send:
        assert scheduler.send_email_now("thank_you_review", sample_booking.id).success is True
    assert send.call_args.args[1] == "thank_you_review"

    with pytest.raises(ValidationError):
        scheduler.send_email_now("birthday_card", sample_booking.id)
    with pytest.raises(NotFoundError):
        scheduler.send_email_now("thank_you_review", 999)


def test_booking_emails_and_stats(db: Session, sample_booking: Booking):
    scheduler = EmailScheduler()
    scheduler.schedule_booking_emails(db, sample_booking)

    emails = scheduler.get_booking_emails(sample_booking.id)
    assert [e.email_type for e in emails] == ["check_in_instructions", "checkout_reminder", "thank_you_review"]

    stats = scheduler.get_email_stats(sample_booking.id)
    assert stats["total"] == 3
    assert stats["pending"] == 3
    assert stats["sent"] == 0
