"""Per-platform heuristics that turn a calendar event into booking fields.

Each parser receives an event dict (``summary``, ``description``, ``location``,
``url``) and returns a partial booking dict, or ``None`` when the event should
not be imported. Vendors put guest names in different places and mark blocked
dates differently, so the rules are kept separate per platform.
"""

from __future__ import annotations

import re
from typing import Any

BLOCKED_GUEST_NAME = "Blocked - Not Available"

_NAME_RE = re.compile(r"[a-zA-Z]{2,}\s+[a-zA-Z]{2,}")
_FIRST_LAST_INITIAL_RE = re.compile(r"^([A-Za-z]+)\s+([A-Za-z])[A-Za-z]*\.?$")
_RESERVATION_KEYWORD_RE = re.compile(r"\b(reserved|reservation|booking)\b")

_AIRBNB_DESC_NAME_PATTERNS = [
    re.compile(r"guest\s*[:\-]\s*(.+)", re.I),
    re.compile(r"name\s*[:\-]\s*(.+)", re.I),
    re.compile(r"reserved\s*for\s*(.+)", re.I),
    re.compile(r"reservation\s*for\s*(.+)", re.I),
]
_AIRBNB_SUMMARY_PATTERNS = [
    re.compile(r"^(.+?)\s*-\s*airbnb", re.I),
    re.compile(r"airbnb\s*[:\-]\s*(.+)", re.I),
    re.compile(r"reserved\s*[:\-]\s*(.+)", re.I),
    re.compile(r"^(.+?)\s*\(airbnb\)", re.I),
    re.compile(r"^([^\-\(\)]+?)(?:\s*-|\s*\(|$)"),
]
_VRBO_SUMMARY_PATTERNS = [
    re.compile(r"(?:reserved)\s*-\s*(.+)", re.I),
    re.compile(r"^(.+?)\s*-\s*vrbo", re.I),
    re.compile(r"vrbo:\s*(.+)", re.I),
    re.compile(r"^(.+?)\s*\(vrbo\)", re.I),
    re.compile(r"^([^\-\(\)]+?)(?:\s*-|\s*\(|$)"),
]
_VRBO_DESC_PATTERNS = [
    re.compile(r"guest\s*[:\-]\s*(.+)", re.I),
    re.compile(r"name\s*[:\-]\s*(.+)", re.I),
    re.compile(r"renter\s*[:\-]\s*(.+)", re.I),
    re.compile(r"traveler\s*[:\-]\s*(.+)", re.I),
]
_BOOKING_SUMMARY_PATTERNS = [
    re.compile(r"^(.+?)\s*-\s*booking\.com", re.I),
    re.compile(r"^(.+?)\s*\(booking\.com\)", re.I),
    re.compile(r"^(.+?)\s*-\s*reservation", re.I),
    re.compile(r"booking\.com:\s*(.+)", re.I),
    re.compile(r"reserved\s+for\s+(.+)", re.I),
    re.compile(r"^([^\-\(\)]+)(?:\s*-|\s*\(|$)"),
]
_BOOKING_DESC_PATTERNS = [
    re.compile(r"guest\s*[:\-]\s*(.+)", re.I),
    re.compile(r"name\s*[:\-]\s*(.+)", re.I),
    re.compile(r"reserved\s+for\s+(.+)", re.I),
]


def _lines(text: str) -> list[str]:
    return [line.strip() for line in re.split(r"\r?\n", text) if line.strip()]


def _status_from_text(summary: str, description: str, *, allow_pending: bool = True) -> str:
    lsum, ldesc = summary.lower(), description.lower()
    status = "confirmed"
    if allow_pending and ("pending" in lsum or "pending" in ldesc):
        status = "pending"
    if "cancelled" in lsum or "cancelled" in ldesc:
        status = "cancelled"
    return status


def _first_match(patterns: list[re.Pattern], text: str, reject: str | None = None) -> str | None:
    for pattern in patterns:
        match = pattern.search(text)
        if match and match.group(1):
            candidate = match.group(1).strip().split("\n")[0].strip()
            if candidate and not (reject and reject in candidate.lower()):
                return candidate
    return None


def _blocked(platform: str, summary: str, fallback_note: str) -> dict[str, Any]:
    return {
        "guest_name": BLOCKED_GUEST_NAME,
        "booking_platform": platform,
        "status": "cancelled",
        "notes": summary or fallback_note,
    }


def extract_airbnb_details(
    description: str | None, location: str | None = None, event_url: str | None = None
) -> dict[str, str | None]:
    """Pull reservation link, phone last 4 and listing name out of an Airbnb description."""
    reservation_url = None
    phone_last4 = None
    listing_name = None

    for line in _lines(description or ""):
        url_match = re.search(r"https?://(?:www\.)?airbnb\.com\S+", line, re.I)
        if url_match:
            reservation_url = url_match.group(0)

        if not phone_last4 and re.search(r"phone|tel|telephone|contact", line, re.I):
            phone_match = re.search(r"(\d{3}[-\s]?)?\d{3}[-\s]?(\d{4})\b", line)
            if phone_match:
                phone_last4 = phone_match.group(2)
            else:
                last4_match = re.search(r"\*{0,4}(\d{4})\b", line)
                if last4_match:
                    phone_last4 = last4_match.group(1)

        listing_match = re.search(r"listing\s*[:\-]\s*(.+)", line, re.I)
        if not listing_name and listing_match:
            listing_name = listing_match.group(1).strip()

    if not reservation_url and event_url:
        reservation_url = event_url
    if not listing_name and location:
        trimmed = location.strip()
        if trimmed and trimmed.lower() != "unknown":
            listing_name = trimmed

    return {
        "reservation_url": reservation_url,
        "guest_phone_last4": phone_last4,
        "listing_name": listing_name,
    }


def parse_airbnb_event(event: dict[str, Any]) -> dict[str, Any] | None:
    summary = event.get("summary") or ""
    description = event.get("description") or ""
    lsum = summary.lower()

    # Blocked dates are kept so the calendar shows them as unavailable
    if any(word in lsum for word in ("not available", "blocked", "unavailable", "closed")):
        return _blocked("airbnb", summary, "Property blocked on Airbnb")

    candidate = ""
    for line in _lines(description):
        found = _first_match(_AIRBNB_DESC_NAME_PATTERNS, line)
        if found:
            candidate = found
            break
    if not candidate and summary:
        candidate = _first_match(_AIRBNB_SUMMARY_PATTERNS, summary.strip()) or summary.strip()

    normalized = re.sub(r"\b(reserved|not available|blocked)\b", "", candidate, flags=re.I).strip()

    has_keyword = bool(
        re.search(r"\b(reserved|reservation)\b", lsum)
        or re.search(r"\b(reserved|reservation)\b", description.lower())
    )
    if not has_keyword and not _NAME_RE.search(normalized):
        return None

    details = extract_airbnb_details(description, event.get("location"), event.get("url"))
    first_name = last_initial = None
    name_match = _FIRST_LAST_INITIAL_RE.match(normalized)
    if name_match:
        first_name = name_match.group(1)
        last_initial = name_match.group(2).upper()

    return {
        "guest_name": normalized or summary.strip() or "Reserved",
        "booking_platform": "airbnb",
        "status": _status_from_text(summary, description),
        "notes": description or None,
        "guest_first_name": first_name,
        "guest_last_initial": last_initial,
        **details,
    }


def parse_vrbo_event(event: dict[str, Any]) -> dict[str, Any] | None:
    summary = event.get("summary") or ""
    description = event.get("description") or ""
    lsum = summary.lower()

    if any(word in lsum for word in ("blocked", "closed", "not available", "unavailable", "maintenance")):
        return None
    if not (_RESERVATION_KEYWORD_RE.search(lsum) or _RESERVATION_KEYWORD_RE.search(description.lower())):
        return None

    name = _first_match(_VRBO_SUMMARY_PATTERNS, summary)
    if not name and description:
        name = _first_match(_VRBO_DESC_PATTERNS, description)

    normalized = re.sub(
        r"\b(reserved|not available|blocked|vrbo)\b", "", name or summary, flags=re.I
    ).strip()

    return {
        "guest_name": normalized or "VRBO Guest",
        "booking_platform": "vrbo",
        "status": _status_from_text(summary, description),
        "notes": description or None,
    }


def parse_booking_com_event(event: dict[str, Any]) -> dict[str, Any] | None:
    summary = event.get("summary") or ""
    description = event.get("description") or ""
    lsum = summary.lower()

    if any(word in lsum for word in ("blocked", "closed", "not available", "unavailable")):
        return _blocked("booking", summary, "Property blocked on Booking.com")
    if "maintenance" in lsum:
        return None
    if not (_RESERVATION_KEYWORD_RE.search(lsum) or _RESERVATION_KEYWORD_RE.search(description.lower())):
        return None

    name = _first_match(_BOOKING_SUMMARY_PATTERNS, summary, reject="booking.com")
    if not name and description:
        name = _first_match(_BOOKING_DESC_PATTERNS, description)

    normalized = re.sub(
        r"\b(reserved|not available|blocked|booking\.com)\b", "", name or summary, flags=re.I
    ).strip()

    return {
        "guest_name": normalized or "Booking.com Guest",
        "booking_platform": "booking",
        # Booking.com feeds never carry a pending state
        "status": _status_from_text(summary, description, allow_pending=False),
        "notes": description or None,
    }


def parse_generic_event(event: dict[str, Any]) -> dict[str, Any] | None:
    summary = event.get("summary") or ""
    description = event.get("description") or ""
    lsum = summary.lower()

    if any(word in lsum for word in ("blocked", "closed", "not available")):
        return None
    if not (re.search(r"reserved|reservation|booking", lsum) or re.search(r"reserved|reservation|booking", description.lower())):
        return None

    return {
        "guest_name": summary.strip() or "Guest",
        "booking_platform": "other",
        "status": _status_from_text(summary, description),
        "notes": description or None,
    }


_PARSERS = {
    "airbnb": parse_airbnb_event,
    "vrbo": parse_vrbo_event,
    "booking": parse_booking_com_event,
}


def parse_event_by_platform(event: dict[str, Any], platform: str) -> dict[str, Any] | None:
    """Dispatch to the platform's parser; unknown platforms use the generic rules."""
    return _PARSERS.get(platform, parse_generic_event)(event)
