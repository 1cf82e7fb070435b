"""Tests for cleaner job emails and SMS reminders."""

from datetime import datetime
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.orm import Session

from rentalhost.database import utcnow
from rentalhost.exceptions import EmailDeliveryError, NotFoundError, ValidationError
from rentalhost.models.booking import Booking
from rentalhost.models.cleaning import Cleaning, CleaningEmailLog
from rentalhost.models.property import Property
from rentalhost.models.user import UserProfile
from rentalhost.modules.cleanings import CleanerNotifier
from rentalhost.modules.guest_comms import EmailResult, EmailService

JOBS = [
    {
        "property_name": "Test Loft",
        "property_address": "123 Test St",
        "cleaning_date": "2030-02-05T14:00:00Z",
        "notes": "Bring extra towels",
        "cost": 95,
    },
    {
        "property_name": "Beach House",
        "property_address": None,
        "cleaning_date": "2030-02-06T10:00:00",
        "notes": None,
        "cost": None,
    },
]


@pytest.fixture
def email_service():
    service = EmailService()
    with patch.object(service, "send_email", return_value=EmailResult(success=True, message_id="<m1@test>")):
        yield service


def test_send_cleaning_jobs_renders_and_logs(db: Session, cleaner: UserProfile, email_service):
    result = CleanerNotifier(email_service).send_cleaning_jobs(
        cleaner.email, JOBS, cleaner_id=cleaner.id, cleaning_ids=[1, 2]
    )
    assert result["success"] is True
    assert result["email_id"] == "<m1@test>"

    to_email, subject, body = email_service.send_email.call_args.args
    assert to_email == "cleaner@example.com"
    assert subject == "New Cleaning Jobs Assigned (2)"
    assert "Hi Carl Cleaner" in body
    assert "Tuesday, February 05, 2030 at 02:00 PM" in body
    assert "Cost: $95.00" in body
    assert "Address: N/A" in body

    log = db.query(CleaningEmailLog).one()
    assert log.status == "sent"
    assert log.cleaning_ids == [1, 2]
    assert log.cleaner_name == "Carl Cleaner"


def test_send_cleaning_jobs_unknown_cleaner_named_generically(db: Session, email_service):
    CleanerNotifier(email_service).send_cleaning_jobs("someone@example.com", JOBS[:1])
    _, subject, body = email_service.send_email.call_args.args
    assert subject == "New Cleaning Job Assigned (1)"
    assert "Hi Cleaner" in body


def test_send_cleaning_jobs_requires_jobs(db: Session, email_service):
    with pytest.raises(ValidationError):
        CleanerNotifier(email_service).send_cleaning_jobs("someone@example.com", [])


def test_failed_delivery_is_logged_then_raised(db: Session):
    service = EmailService()
    with patch.object(service, "send_email", return_value=EmailResult(success=False, error="SMTP down")):
        with pytest.raises(EmailDeliveryError, match="SMTP down"):
            CleanerNotifier(service).send_cleaning_jobs("someone@example.com", JOBS[:1])

    log = db.query(CleaningEmailLog).one()
    assert log.status == "failed"
    assert log.error_message == "SMTP down"


def test_send_booking_to_cleaner(db: Session, sample_booking: Booking, cleaner: UserProfile, email_service):
    db.add(Cleaning(
        property_id=sample_booking.property_id, booking_id=sample_booking.id, cleaning_date=datetime(2030, 2, 5, 3)
    ))
    db.commit()

    CleanerNotifier(email_service).send_booking_to_cleaner(
        sample_booking.id, " cleaner@example.com ", cleaner_id=cleaner.id, host_note="  Code is 1234 "
    )

    to_email, subject, body = email_service.send_email.call_args.args
    assert to_email == "cleaner@example.com"
    assert subject == "Cleaning Request - Test Loft"
    assert "Guest: John Doe" in body
    assert "Nights: 4" in body
    assert "Code is 1234" in body
    assert db.query(CleaningEmailLog).one().cleaning_ids == [1]


def test_send_booking_to_cleaner_errors(db: Session, email_service):
    notifier = CleanerNotifier(email_service)
    with pytest.raises(ValidationError):
        notifier.send_booking_to_cleaner(1, "")
    with pytest.raises(NotFoundError):
        notifier.send_booking_to_cleaner(999, "cleaner@example.com")


def test_morning_reminders(db: Session, sample_property: Property, cleaner: UserProfile):
    today_noon = utcnow().replace(hour=12, minute=0, second=0, microsecond=0)
    db.add_all([
        Cleaning(property_id=sample_property.id, cleaner_id=cleaner.id, cleaning_date=today_noon),
        Cleaning(property_id=sample_property.id, cleaning_date=today_noon),
        Cleaning(property_id=sample_property.id, cleaner_id=cleaner.id, cleaning_date=datetime(2030, 1, 1)),
    ])
    db.commit()

    notifier = CleanerNotifier(EmailService())
    with patch.object(notifier, "_send_sms", return_value=True) as send_sms:
        assert notifier.send_morning_reminders() == 1

    number, message = send_sms.call_args.args
    assert number == "+15551234567"
    assert "Test Loft" in message
    assert "Checkout time: 11:00" in message


def test_send_sms_without_twilio_config(monkeypatch):
    for key in ("TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_FROM_NUMBER"):
        monkeypatch.delenv(key, raising=False)
    assert CleanerNotifier(EmailService())._send_sms("+15550000000", "hi") is False


def test_send_sms_with_twilio(monkeypatch):
    monkeypatch.setenv("TWILIO_ACCOUNT_SID", "AC123")
    monkeypatch.setenv("TWILIO_AUTH_TOKEN", "token")
    monkeypatch.setenv("TWILIO_FROM_NUMBER", "+15559999999")
    notifier = CleanerNotifier(EmailService())
    notifier._twilio_client = MagicMock()

    assert notifier._send_sms("+15550000000", "hi") is True
    notifier._twilio_client.messages.create.assert_called_once_with(
        body="hi", from_="+15559999999", to="+15550000000"
    )
