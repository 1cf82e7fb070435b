"""Display names, extranet links and feed URL checks for booking platforms."""

from __future__ import annotations

import re
from typing import Any
from urllib.parse import urlparse

BOOKING_COM_EXTRANET_URL = "https://admin.booking.com/hotel/hoteladmin/extranet_ng/manage/booking.html"

PLATFORM_INSTRUCTIONS = {
    "airbnb": "Go to Your Account → Calendar → Export Calendar → Copy ICS URL",
    "vrbo": "Property Dashboard → Calendar → Calendar Sync → Export Calendar URL",
    "booking": "Extranet → Property → Calendar → Sync Calendars → Export URL",
}


def _is_booking_com(platform: str) -> bool:
    return "booking" in platform


def format_platform_name(platform: str | None) -> str:
    """Human-readable platform name, e.g. ``booking`` -> ``Booking.com``."""
    if not platform:
        return "Manual"
    normalized = platform.lower().strip()
    if _is_booking_com(normalized):
        return "Booking.com"
    fixed = {"airbnb": "Airbnb", "vrbo": "VRBO", "manual": "Manual", "other": "Other"}
    if normalized in fixed:
        return fixed[normalized]
    return " ".join(word.capitalize() for word in re.split(r"[\s-]+", platform) if word)


def generate_booking_com_link(hotel_id: str | None, reservation_id: str | None, lang: str = "en") -> str:
    # Session tokens expire, so the link relies on the host being logged in
    if not hotel_id or not reservation_id:
        return ""
    return f"{BOOKING_COM_EXTRANET_URL}?lang={lang}&hotel_id={hotel_id}&res_id={reservation_id}"


def get_booking_platform_link(booking: Any, referral_config: Any | None = None) -> dict[str, str] | None:
    """Best link back to the reservation on its platform, or None.

    ``booking`` needs ``booking_platform``, ``reservation_url`` and
    ``external_reservation_id``; ``referral_config`` may supply the
    Booking.com ``hotel_id``.
    """
    if not booking.booking_platform:
        return None
    platform = booking.booking_platform.lower()

    if _is_booking_com(platform):
        hotel_id = getattr(referral_config, "hotel_id", None) if referral_config else None
        hotel_id = hotel_id or getattr(booking, "external_hotel_id", None)
        if hotel_id and booking.external_reservation_id:
            return {
                "url": generate_booking_com_link(hotel_id, booking.external_reservation_id),
                "label": "View on Booking.com",
                "platform": "booking.com",
            }
        if booking.reservation_url:
            match = re.search(r"hotel_id=(\d+)&res_id=(\d+)", booking.reservation_url)
            if match:
                return {
                    "url": generate_booking_com_link(match.group(1), match.group(2)),
                    "label": "View on Booking.com",
                    "platform": "booking.com",
                }

    if not booking.reservation_url:
        return None
    if platform in ("airbnb", "vrbo"):
        return {
            "url": booking.reservation_url,
            "label": f"View on {format_platform_name(platform)}",
            "platform": platform,
        }
    return {
        "url": booking.reservation_url,
        "label": f"View on {booking.booking_platform}",
        "platform": booking.booking_platform,
    }


def validate_ics_url(url: str) -> tuple[bool, str | None]:
    """Strict check used when a host registers a new feed."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False, "Invalid URL format"
    if not parsed.scheme or not parsed.netloc:
        return False, "Invalid URL format"
    if parsed.scheme != "https":
        return False, "URL must use HTTPS"
    if not parsed.path.endswith(".ics"):
        return False, "URL should end with .ics"
    return True, None


def is_fetchable_url(url: str | None) -> bool:
    """Loose check applied to feeds right before fetching them."""
    if not url:
        return False
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def get_platform_instructions(platform: str) -> str:
    return PLATFORM_INSTRUCTIONS.get(platform, "Refer to your platform's calendar export documentation")


def format_sync_results(result: dict[str, Any]) -> str:
    """One-paragraph summary of a sync run for notifications and logs."""
    if not result.get("success") and result.get("error"):
        return f"Sync failed: {result['error']}"

    message = f"Processed {result.get('total_processed', 0)} bookings"
    if result.get("total_errors"):
        message += f" with {result['total_errors']} errors"
    message += f" in {result.get('processing_time_ms', 0)}ms"

    sources = result.get("sources") or []
    if sources:
        message += "\n\nSources:"
        for source in sources:
            message += f"\n• {source['name']}: {source['bookings_processed']} bookings"
            if source.get("errors"):
                message += f" ({len(source['errors'])} errors)"
    return message
