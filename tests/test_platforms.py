"""Tests for platform names, links and feed URL checks."""

from types import SimpleNamespace

from rentalhost.modules.calendar_sync.platforms import (
    format_platform_name,
    format_sync_results,
    generate_booking_com_link,
    get_booking_platform_link,
    get_platform_instructions,
    is_fetchable_url,
    validate_ics_url,
)


def _booking(**kwargs):
    defaults = {"booking_platform": "airbnb", "reservation_url": None, "external_reservation_id": None}
    return SimpleNamespace(**{**defaults, **kwargs})


def test_format_platform_name():
    assert format_platform_name("airbnb") == "Airbnb"
    assert format_platform_name("VRBO") == "VRBO"
    assert format_platform_name("booking") == "Booking.com"
    assert format_platform_name("booking.com") == "Booking.com"
    assert format_platform_name(None) == "Manual"
    assert format_platform_name("home-away") == "Home Away"


def test_generate_booking_com_link():
    link = generate_booking_com_link("123", "456")
    assert link.endswith("?lang=en&hotel_id=123&res_id=456")
    assert generate_booking_com_link(None, "456") == ""


def test_platform_link_for_airbnb():
    link = get_booking_platform_link(_booking(reservation_url="https://www.airbnb.com/r/1"))
    assert link == {"url": "https://www.airbnb.com/r/1", "label": "View on Airbnb", "platform": "airbnb"}


def test_platform_link_for_booking_com_uses_referral_hotel_id():
    booking = _booking(booking_platform="booking", external_reservation_id="999")
    link = get_booking_platform_link(booking, SimpleNamespace(hotel_id="42"))
    assert "hotel_id=42&res_id=999" in link["url"]
    assert link["platform"] == "booking.com"


def test_platform_link_for_booking_com_from_reservation_url():
    booking = _booking(booking_platform="booking", reservation_url="https://x.test/?hotel_id=7&res_id=8")
    link = get_booking_platform_link(booking)
    assert "hotel_id=7&res_id=8" in link["url"]


def test_platform_link_missing():
    assert get_booking_platform_link(_booking()) is None
    assert get_booking_platform_link(_booking(booking_platform=None)) is None


def test_validate_ics_url():
    assert validate_ics_url("https://www.airbnb.com/calendar/ical/1.ics") == (True, None)
    assert validate_ics_url("http://example.com/cal.ics") == (False, "URL must use HTTPS")
    assert validate_ics_url("https://example.com/cal") == (False, "URL should end with .ics")
    assert validate_ics_url("not a url") == (False, "Invalid URL format")


def test_is_fetchable_url():
    assert is_fetchable_url("http://example.com/feed")
    assert not is_fetchable_url("ftp://example.com/feed.ics")
    assert not is_fetchable_url("")
    assert not is_fetchable_url(None)


def test_platform_instructions():
    assert "Export" in get_platform_instructions("airbnb")
    assert "documentation" in get_platform_instructions("other")


def test_format_sync_results():
    text = format_sync_results({
        "success": True,
        "total_processed": 3,
        "total_errors": 1,
        "processing_time_ms": 12,
        "sources": [{"name": "Airbnb", "bookings_processed": 3, "errors": ["boom"]}],
    })
    assert text.startswith("Processed 3 bookings with 1 errors in 12ms")
    assert "• Airbnb: 3 bookings (1 errors)" in text

    assert format_sync_results({"success": False, "error": "down"}) == "Sync failed: down"
