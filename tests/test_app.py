"""API tests for the FastAPI app routes."""

import inspect
from contextlib import ExitStack
from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from rentalhost.auth import create_access_token
from rentalhost.database import Base, utcnow
from rentalhost.models.booking import Booking
from rentalhost.models.checkin import GuestCheckinToken
from rentalhost.models.cleaning import Cleaning
from rentalhost.models.property import Property
from rentalhost.models.user import UserProfile
from rentalhost.modules.guest_comms import EmailResult

from conftest import SESSION_MODULES


@pytest.fixture
def test_sessions(tmp_path):
    """Sessions on a temp SQLite file, shared by the test and the app's worker thread."""
    engine = create_engine(f"sqlite:///{tmp_path / 'test.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, expire_on_commit=False)

    session = factory()
    session.add_all([
        UserProfile(id="host-1", email="host@example.com", full_name="Hannah Host", role="host"),
        UserProfile(id="host-2", email="other@example.com", full_name="Olive Other", role="host"),
        UserProfile(id="cleaner-1", email="cleaner@example.com", full_name="Carl Cleaner", role="cleaner"),
    ])
    session.add_all([
        Property(id=1, host_id="host-1", name="Test Loft", address="123 Test St", default_cleaning_cost=95.0),
        Property(id=2, host_id="host-2", name="Other Place"),
    ])
    session.commit()
    session.close()

    yield factory
    engine.dispose()


@pytest.fixture
def app_client(test_sessions):
    """Test client with every service on the temp database and no scheduler."""
    mock_scheduler = MagicMock()
    with ExitStack() as stack:
        for module in SESSION_MODULES:
            stack.enter_context(patch(f"{module}.get_session", side_effect=lambda: test_sessions()))
        stack.enter_context(patch("rentalhost.app.create_scheduler", return_value=mock_scheduler))
        stack.enter_context(patch("rentalhost.app.init_db"))

        from rentalhost.app import app

        with TestClient(app) as client:
            yield client

    mock_scheduler.start.assert_called_once()
    mock_scheduler.shutdown.assert_called_once()


def _auth(user_id="host-1"):
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


def _create_booking(client, **overrides):
    body = {
        "property_id": 1,
        "guest_name": "Maria Lopez",
        "contact_email": "maria@example.com",
        "check_in": "2030-03-01T00:00:00",
        "check_out": "2030-03-04T00:00:00",
        "total_amount": "$1,250.50",
    }
    body.update(overrides)
    return client.post("/api/bookings", json=body, headers=_auth())


def test_health(app_client):
    assert app_client.get("/api/health").json() == {"status": "ok"}


# --- Auth ---

def test_requires_authentication(app_client):
    response = app_client.get("/api/properties")
    assert response.status_code == 401
    assert response.json() == {"error": "Authentication required"}


def test_rejects_bad_token(app_client):
    response = app_client.get("/api/properties", headers={"Authorization": "Bearer nonsense"})
    assert response.status_code == 401
    assert response.json()["error"] == "Invalid or expired token"


def test_cleaner_cannot_use_host_routes(app_client):
    response = app_client.get("/api/properties", headers=_auth("cleaner-1"))
    assert response.status_code == 403


# --- Properties ---

def test_properties_scoped_to_host(app_client):
    response = app_client.get("/api/properties", headers=_auth())
    assert [p["name"] for p in response.json()] == ["Test Loft"]

    assert app_client.get("/api/properties/2", headers=_auth()).status_code == 403
    assert app_client.get("/api/properties/99", headers=_auth()).status_code == 404


def test_create_property_and_calendar_source(app_client):
    response = app_client.post("/api/properties", json={"name": "Cabin"}, headers=_auth())
    assert response.status_code == 201
    prop_id = response.json()["id"]

    response = app_client.post(
        f"/api/properties/{prop_id}/calendar-sources",
        json={"platform": "airbnb", "name": "Airbnb", "ics_url": "http://insecure.example.com/a.ics"},
        headers=_auth(),
    )
    assert response.status_code == 400
    assert response.json()["error"] == "URL must use HTTPS"

    response = app_client.post(
        f"/api/properties/{prop_id}/calendar-sources",
        json={"platform": "airbnb", "name": "Airbnb", "ics_url": "https://www.airbnb.com/calendar/ical/1.ics"},
        headers=_auth(),
    )
    assert response.status_code == 201

    listed = app_client.get("/api/properties-with-calendars", headers=_auth()).json()
    assert [p["id"] for p in listed] == [prop_id]


# --- Bookings ---

def test_create_and_list_bookings(app_client):
    response = _create_booking(app_client)
    assert response.status_code == 201
    booking = response.json()["data"]
    assert booking["total_amount"] == 1250.5
    assert booking["nights"] == 3

    listed = app_client.get("/api/bookings", params={"property_id": 1}, headers=_auth()).json()
    assert listed["count"] == 1

    stats = app_client.get("/api/bookings/stats", headers=_auth()).json()
    assert stats["total"] == 1
    assert stats["total_revenue"] == 1250.5


def test_overlapping_booking_is_409(app_client):
    _create_booking(app_client)
    response = _create_booking(app_client, check_in="2030-03-02T00:00:00", check_out="2030-03-06T00:00:00")
    assert response.status_code == 409
    assert response.json()["error"] == "Booking overlaps with existing reservation: Maria Lopez"


def test_booking_on_foreign_property_denied(app_client):
    response = _create_booking(app_client, property_id=2)
    assert response.status_code == 403


def test_cancel_booking_cancels_cleaning(app_client, test_sessions):
    booking_id = _create_booking(app_client).json()["data"]["id"]

    response = app_client.put(f"/api/bookings/{booking_id}", json={"status": "cancelled"}, headers=_auth())
    assert response.status_code == 200

    session = test_sessions()
    cleaning = session.query(Cleaning).filter(Cleaning.booking_id == booking_id).one()
    assert cleaning.status == "cancelled"
    session.close()


def test_delete_booking(app_client):
    booking_id = _create_booking(app_client).json()["data"]["id"]
    assert app_client.delete(f"/api/bookings/{booking_id}", headers=_auth()).json() == {"success": True}
    assert app_client.get(f"/api/bookings/{booking_id}", headers=_auth()).status_code == 404


def test_update_booking_ignores_null_for_required_fields(app_client):
    booking_id = _create_booking(app_client).json()["data"]["id"]
    response = app_client.put(
        f"/api/bookings/{booking_id}",
        json={"currency": None, "booking_platform": None, "notes": "Early check-in"},
        headers=_auth(),
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["currency"] == "USD"
    assert data["booking_platform"] == "manual"
    assert data["notes"] == "Early check-in"


# --- Cleanings ---

def test_cleaner_sees_and_updates_only_own_jobs(app_client, test_sessions):
    session = test_sessions()
    mine = Cleaning(property_id=1, cleaner_id="cleaner-1", cleaning_date=datetime(2030, 6, 1), cost=80)
    other = Cleaning(property_id=1, cleaning_date=datetime(2030, 6, 2))
    session.add_all([mine, other])
    session.commit()
    session.close()

    listed = app_client.get("/api/cleanings", headers=_auth("cleaner-1")).json()["data"]
    assert [c["id"] for c in listed] == [mine.id]

    response = app_client.put(
        f"/api/cleanings/{mine.id}", json={"status": "completed", "cost": 1.0}, headers=_auth("cleaner-1")
    )
    assert response.json()["data"]["status"] == "completed"
    assert response.json()["data"]["cost"] == 80

    assert app_client.get(f"/api/cleanings/{other.id}", headers=_auth("cleaner-1")).status_code == 403


def test_cleaning_stats_only_cover_own_properties(app_client, test_sessions):
    session = test_sessions()
    session.add_all([
        Cleaning(property_id=1, cleaning_date=datetime(2030, 6, 1), cost=80),
        Cleaning(property_id=2, cleaning_date=datetime(2030, 6, 2), cost=500),
    ])
    session.commit()
    session.close()

    stats = app_client.get("/api/cleanings/stats", headers=_auth()).json()
    assert stats["total"] == 1
    assert stats["total_cost"] == 80

    assert app_client.get("/api/cleanings/stats", headers=_auth("host-2")).json()["total_cost"] == 500


# --- Calendar sync ---

def test_sync_ics(app_client, sample_ics):
    from rentalhost.app import syncer

    body = {"property_id": 1, "sources": [{"platform": "airbnb", "url": "https://example.com/a.ics"}]}
    with patch.object(syncer, "fetch_ics", return_value=sample_ics):
        response = app_client.post("/api/sync-ics", json=body, headers=_auth())

    assert response.status_code == 200
    assert response.json()["total_processed"] == 3


def test_sync_ics_partial_failure_is_207(app_client, sample_ics):
    from rentalhost.app import syncer
    from rentalhost.exceptions import CalendarFetchError

    def fake_fetch(url):
        if "vrbo" in url:
            raise CalendarFetchError("HTTP 503: Service Unavailable")
        return sample_ics

    body = {
        "property_id": 1,
        "sources": [
            {"platform": "airbnb", "url": "https://example.com/airbnb.ics"},
            {"platform": "vrbo", "url": "https://example.com/vrbo.ics"},
        ],
    }
    with patch.object(syncer, "fetch_ics", side_effect=fake_fetch):
        response = app_client.post("/api/sync-ics", json=body, headers=_auth())

    assert response.status_code == 207
    assert response.json()["success"] is False


def test_sync_ics_requires_property(app_client):
    response = app_client.post("/api/sync-ics", json={}, headers=_auth())
    assert response.status_code == 400
    assert response.json()["error"] == "Missing required parameter: property_id"


def test_sync_ics_health(app_client):
    body = app_client.get("/api/sync-ics", params={"health": "true"}).json()
    assert body["status"] == "healthy"
    assert body["environment"]["hasDatabaseUrl"] is True
    assert app_client.get("/api/sync-ics").json()["message"] == "ICS Sync API"


# --- Guest check-in ---

def test_guest_checkin_flow(app_client):
    booking_id = _create_booking(app_client).json()["data"]["id"]

    generated = app_client.post(
        "/api/guest-checkin/generate", json={"booking_id": booking_id}, headers=_auth()
    ).json()["data"]
    token = generated["token"]

    fetched = app_client.get("/api/guest-checkin/generate", params={"booking_id": booking_id}, headers=_auth())
    assert fetched.json()["data"]["is_expired"] is False

    validated = app_client.get("/api/guest-checkin/validate", params={"token": token})
    assert validated.status_code == 200
    assert validated.json()["data"]["property"]["name"] == "Test Loft"

    logged = app_client.post("/api/guest-checkin/validate", json={"token": token, "action": "view_wifi"})
    assert logged.json() == {"success": True}

    revoked = app_client.post("/api/guest-checkin/revoke", json={"token": token}, headers=_auth())
    assert revoked.json()["message"] == "Token revoked successfully"

    again = app_client.post("/api/guest-checkin/revoke", json={"token": token}, headers=_auth())
    assert again.status_code == 400
    assert again.json()["error"] == "Token is already revoked"

    denied = app_client.get("/api/guest-checkin/validate", params={"token": token})
    assert denied.status_code == 403
    assert denied.json() == {"success": False, "error": "Token has been revoked", "expired": False}


def test_guest_checkin_expired_token(app_client, test_sessions):
    booking_id = _create_booking(app_client).json()["data"]["id"]
    token = app_client.post(
        "/api/guest-checkin/generate", json={"booking_id": booking_id}, headers=_auth()
    ).json()["data"]["token"]

    session = test_sessions()
    record = session.query(GuestCheckinToken).filter(GuestCheckinToken.token == token).one()
    record.expires_at = utcnow() - timedelta(days=1)
    session.commit()
    session.close()

    response = app_client.get("/api/guest-checkin/validate", params={"token": token})
    assert response.status_code == 403
    assert response.json()["expired"] is True


def test_revoke_other_hosts_token_denied(app_client, test_sessions):
    session = test_sessions()
    booking = Booking(
        property_id=2, guest_name="Foreign", contact_email="f@example.com",
        check_in=datetime(2030, 7, 1), check_out=datetime(2030, 7, 3),
    )
    session.add(booking)
    session.commit()
    session.add(GuestCheckinToken(
        booking_id=booking.id, token="foreign-token", guest_name="Foreign", guest_email="f@example.com",
        property_id=2, expires_at=datetime(2030, 7, 10),
    ))
    session.commit()
    session.close()

    response = app_client.post("/api/guest-checkin/revoke", json={"token": "foreign-token"}, headers=_auth())
    assert response.status_code == 403
    assert response.json()["error"] == "You can only revoke tokens for your own bookings"


# --- Referral sites ---

def test_referral_site_password_round_trip(app_client, monkeypatch):
    monkeypatch.setenv("ENCRYPTION_KEY", "ab" * 32)
    saved = app_client.post(
        "/api/referral-sites",
        json={"property_id": 1, "platform": "booking", "hotel_id": "42", "password": "pw"},
        headers=_auth(),
    ).json()["data"]
    assert saved["has_password"] is True
    assert saved["password"] is None

    # Saving without a password keeps it
    app_client.post(
        "/api/referral-sites", json={"property_id": 1, "platform": "booking", "hotel_id": "43"}, headers=_auth()
    )
    listed = app_client.get(
        "/api/referral-sites", params={"property_id": 1, "decrypt": "true"}, headers=_auth()
    ).json()["data"]
    assert listed[0]["hotel_id"] == "43"
    assert listed[0]["password"] == "pw"

    deleted = app_client.delete(
        "/api/referral-sites", params={"property_id": 1, "id": saved["id"]}, headers=_auth()
    )
    assert deleted.json() == {"success": True}


# --- Currency ---

def test_currency_convert(app_client):
    from rentalhost.app import converter

    with patch.object(converter, "get_rates", return_value={"USD": 1.0, "EUR": 0.5}):
        response = app_client.post(
            "/api/currency/convert",
            json={"amountsByCurrency": {"EUR": 10, "USD": 5}, "targetCurrency": "USD"},
            headers=_auth(),
        )
    assert response.json() == {"success": True, "convertedAmount": 25.0, "targetCurrency": "USD"}

    missing = app_client.post("/api/currency/convert", json={}, headers=_auth())
    assert missing.status_code == 400


# --- Emails ---

def test_process_emails_cron_secret(app_client, monkeypatch):
    monkeypatch.setenv("CRON_SECRET", "cron")
    assert app_client.get("/api/process-emails").status_code == 401

    response = app_client.get("/api/process-emails", headers={"Authorization": "Bearer cron"})
    assert response.json()["stats"] == {"processed": 0, "sent": 0, "failed": 0}


def test_send_now_failure_is_500(app_client):
    from rentalhost.app import email_service

    booking_id = _create_booking(app_client).json()["data"]["id"]
    with patch.object(email_service, "send_email", return_value=EmailResult(success=False, error="SMTP down")):
        response = app_client.post(
            "/api/emails/send-now",
            json={"booking_id": booking_id, "email_type": "thank_you_review"},
            headers=_auth(),
        )
    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "SMTP down"}


def test_send_cleaning_jobs(app_client):
    from rentalhost.app import email_service

    with patch.object(email_service, "send_email", return_value=EmailResult(success=True, message_id="<x>")):
        response = app_client.post(
            "/api/send-cleaning-jobs",
            json={
                "cleaner_email": "cleaner@example.com",
                "cleaner_id": "cleaner-1",
                "jobs": [{"property_name": "Test Loft", "cleaning_date": "2030-06-01T10:00:00Z"}],
            },
            headers=_auth(),
        )
    assert response.json()["success"] is True
    assert response.json()["logged"] is True


@pytest.mark.parametrize("path", [
    "/api/sync-ics",
    "/api/process-emails",
    "/api/emails/send-now",
    "/api/send-email",
    "/api/send-cleaning-jobs",
    "/api/send-booking-to-cleaner",
    "/api/currency/convert",
])
def test_network_bound_routes_are_sync_handlers(path):
    """Routes that fetch feeds or talk to SMTP/Twilio/currency APIs run in the threadpool."""
    from fastapi.routing import APIRoute

    from rentalhost.app import app

    routes = [r for r in app.routes if isinstance(r, APIRoute) and r.path == path and "POST" in r.methods]
    assert routes
    assert not any(inspect.iscoroutinefunction(r.endpoint) for r in routes)
