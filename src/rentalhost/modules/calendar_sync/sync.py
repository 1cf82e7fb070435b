"""ICS feed fetching, parsing, upsert and reconciliation against stored bookings."""

from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any

import httpx
from icalendar import Calendar
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from rentalhost.config import get_env, section
from rentalhost.database import get_session, to_utc_naive, utcnow
from rentalhost.events import EventType, event_bus
from rentalhost.exceptions import CalendarFetchError, NotFoundError, ValidationError
from rentalhost.models.booking import Booking
from rentalhost.models.property import CalendarSource, Property
from rentalhost.modules.calendar_sync.parsers import parse_event_by_platform
from rentalhost.modules.calendar_sync.platforms import is_fetchable_url

logger = logging.getLogger(__name__)

_sync_config = section("calendar_sync")

ENV_SOURCES = [
    ("Airbnb", "airbnb", "AIRBNB_ICS_URL"),
    ("VRBO", "vrbo", "VRBO_ICS_URL"),
    ("Booking.com", "booking", "BOOKING_COM_ICS_URL"),
]

DEFAULT_CURRENCIES = {"airbnb": "AUD", "vrbo": "EUR", "booking": "EUR", "booking.com": "EUR"}

# Fields the host may edit after import; the feed only fills them on insert
HOST_FIELDS = ("guest_name", "contact_email", "contact_phone", "total_amount", "notes")
# Feed metadata: new value wins, otherwise the stored one is kept
META_FIELDS = (
    "reservation_url",
    "guest_phone_last4",
    "listing_name",
    "guest_first_name",
    "guest_last_initial",
)


def _parse_ical_datetime(dt_value) -> datetime:
    """Convert an icalendar date/datetime property to a naive UTC datetime."""
    value = getattr(dt_value, "dt", dt_value)
    if isinstance(value, (datetime, date)):
        return to_utc_naive(value)
    raise ValueError(f"Unsupported iCal date value: {value!r}")


def storage_uid(platform: str, property_id: int, event_uid: str) -> str:
    """Key under which a feed event is stored, unique across platforms and properties."""
    return f"{platform}:{property_id}:{event_uid}"


def platform_currency(platform: str | None) -> str:
    currencies = {**DEFAULT_CURRENCIES, **_sync_config.get("default_currency", {})}
    return currencies.get((platform or "").lower(), currencies.get("other", "USD"))


@dataclass
class SourceResult:
    name: str
    platform: str
    url: str
    source_id: int | None = None
    bookings_processed: int = 0
    errors: list[str] = field(default_factory=list)
    success: bool = True


class CalendarSyncer:
    """Fetches ICS feeds and reconciles them with the bookings table."""

    def __init__(self, client: httpx.Client | None = None) -> None:
        self._client = client or httpx.Client(
            timeout=_sync_config.get("timeout_seconds", 20),
            follow_redirects=True,
            headers={"User-Agent": _sync_config.get("user_agent", "Rental-Host-App/1.0")},
        )

    def sync_all(self) -> list[dict[str, Any]]:
        """Sync every property that has at least one enabled calendar source."""
        session = get_session()
        try:
            property_ids = [
                row[0]
                for row in session.query(CalendarSource.property_id)
                .filter(CalendarSource.sync_enabled.is_(True))
                .distinct()
                .all()
            ]
        finally:
            session.close()

        results = []
        for property_id in property_ids:
            try:
                results.append(self.sync_property(property_id))
            except Exception:
                logger.exception("Failed to sync calendars for property %s", property_id)
        return results

    def sync_property(
        self,
        property_id: int,
        *,
        sources: list[dict[str, Any]] | None = None,
        reconcile: bool = False,
        platform: str | None = None,
    ) -> dict[str, Any]:
        """Fetch each source for a property and upsert its bookings.

        A failing source is recorded in its own result and the run moves on;
        ``success`` is False when any source failed.
        """
        if not property_id:
            raise ValidationError("Missing required parameter: property_id")

        started = time.monotonic()
        session = get_session()
        try:
            if session.get(Property, property_id) is None:
                raise NotFoundError(f"Property {property_id} not found")

            candidates = sources or self._configured_sources(session, property_id)
            if platform:
                candidates = [s for s in candidates if s.get("platform") == platform]
            candidates = [s for s in candidates if is_fetchable_url(s.get("url"))]

            results: list[SourceResult] = []
            feeds: dict[str, list[dict[str, Any]]] = {}
            failed_platforms: set[str] = set()
            for source in candidates:
                result, bookings = self._sync_source(session, property_id, source)
                results.append(result)
                feeds.setdefault(source["platform"], []).extend(bookings)
                if not result.success:
                    failed_platforms.add(source["platform"])

            if reconcile:
                # One platform may have several feeds; a booking stays while any of them lists it
                for feed_platform, bookings in feeds.items():
                    if feed_platform in failed_platforms:
                        logger.warning("Skipping reconcile for %s: a feed failed", feed_platform)
                        continue
                    self._reconcile(session, property_id, feed_platform, bookings)

            self._record_source_status(session, property_id, results)

            total_errors = sum(len(r.errors) for r in results)
            summary = {
                "success": all(r.success for r in results),
                "total_processed": sum(r.bookings_processed for r in results),
                "total_errors": total_errors,
                "sources": [asdict(r) for r in results],
                "processing_time_ms": int((time.monotonic() - started) * 1000),
                "platform": platform or "all",
            }
            logger.info(
                "Calendar sync for property %s: %d processed, %d errors",
                property_id, summary["total_processed"], total_errors,
            )
            event_bus.emit(
                EventType.CALENDAR_SYNCED,
                {"property_id": property_id, "success": summary["success"]},
            )
            return summary
        finally:
            session.close()

    def _configured_sources(self, session: Session, property_id: int) -> list[dict[str, Any]]:
        """Enabled calendar_sources rows, or the env-configured feeds when there are none."""
        rows = (
            session.query(CalendarSource)
            .filter(
                CalendarSource.property_id == property_id,
                CalendarSource.sync_enabled.is_(True),
            )
            .all()
        )
        if rows:
            return [
                {"id": row.id, "name": row.name, "platform": row.platform, "url": row.ics_url}
                for row in rows
                if row.ics_url
            ]
        return [
            {"name": name, "platform": plat, "url": get_env(env_key)}
            for name, plat, env_key in ENV_SOURCES
        ]

    def _sync_source(
        self, session: Session, property_id: int, source: dict[str, Any]
    ) -> tuple[SourceResult, list[dict[str, Any]]]:
        result = SourceResult(
            name=source.get("name") or source["platform"],
            platform=source["platform"],
            url=source["url"],
            source_id=source.get("id"),
        )
        bookings: list[dict[str, Any]] = []
        try:
            ics_text = self.fetch_ics(source["url"])
            bookings = self.parse_feed(ics_text, source["platform"])

            for data in bookings:
                try:
                    booking, created = self.upsert_booking(session, data, property_id)
                except SQLAlchemyError as exc:
                    session.rollback()
                    logger.exception("Failed to upsert booking %s", data["event_uid"])
                    result.errors.append(f"Failed to upsert booking {data['event_uid']}: {exc}")
                    continue
                result.bookings_processed += 1
                event_bus.emit(
                    EventType.BOOKING_NEW if created else EventType.BOOKING_MODIFIED,
                    {
                        "booking_id": booking.id,
                        "property_id": property_id,
                        "status": booking.status,
                        "source": "calendar_sync",
                    },
                )
        except Exception as exc:
            logger.exception("Sync failed for %s feed %s", source["platform"], source["url"])
            session.rollback()
            result.success = False
            result.errors.append(str(exc))
        return result, bookings

    def fetch_ics(self, url: str) -> str:
        """Download a feed; raises CalendarFetchError on transport or HTTP errors."""
        logger.info("Fetching ICS feed: %s", url)
        try:
            resp = self._client.get(url)
        except httpx.HTTPError as exc:
            raise CalendarFetchError(f"Failed to fetch {url}: {exc}") from exc
        if resp.is_error:
            raise CalendarFetchError(f"HTTP {resp.status_code}: {resp.reason_phrase}")
        return resp.text

    def parse_feed(self, ics_text: str, platform: str) -> list[dict[str, Any]]:
        """Parse ICS text into booking dicts for one platform."""
        cal = Calendar.from_ical(ics_text)
        bookings = []
        for component in cal.walk("VEVENT"):
            dtstart = component.get("dtstart")
            dtend = component.get("dtend")
            if not dtstart or not dtend:
                continue

            event = {
                "summary": str(component.get("summary", "")),
                "description": str(component.get("description", "")),
                "location": str(component.get("location", "")) or None,
                "url": str(component.get("url", "")) or None,
            }
            parsed = parse_event_by_platform(event, platform)
            if not parsed:
                continue

            check_in = _parse_ical_datetime(dtstart)
            check_out = _parse_ical_datetime(dtend)
            uid = str(component.get("uid", "")) or _synthetic_uid(check_in, check_out, event["summary"])
            bookings.append({"event_uid": uid, "check_in": check_in, "check_out": check_out, **parsed})

        logger.info("Parsed %d bookings from %s feed", len(bookings), platform)
        return bookings

    def upsert_booking(
        self, session: Session, data: dict[str, Any], property_id: int
    ) -> tuple[Booking, bool]:
        """Insert or update the booking for a feed event. Returns (booking, created)."""
        platform = data.get("booking_platform") or "other"
        uid = storage_uid(platform, property_id, data["event_uid"])
        booking = (
            session.query(Booking)
            .filter(Booking.event_uid == uid, Booking.property_id == property_id)
            .one_or_none()
        )
        created = booking is None
        if created:
            booking = Booking(
                property_id=property_id,
                event_uid=uid,
                currency=platform_currency(platform),
                **{name: data.get(name) for name in HOST_FIELDS},
            )
            session.add(booking)
        elif not booking.currency:
            booking.currency = platform_currency(platform)

        booking.check_in = data["check_in"]
        booking.check_out = data["check_out"]
        booking.booking_platform = platform
        booking.status = data.get("status", "confirmed")
        for name in META_FIELDS:
            if data.get(name) is not None:
                setattr(booking, name, data[name])
        booking.updated_at = utcnow()

        session.commit()
        return booking, created

    def _reconcile(
        self, session: Session, property_id: int, source_platform: str, bookings: list[dict[str, Any]]
    ) -> int:
        """Delete stored bookings for this feed's platform that the feed no longer lists."""
        feed_uids = {
            storage_uid(b.get("booking_platform") or "other", property_id, b["event_uid"])
            for b in bookings
        }
        stored_platform = source_platform if source_platform in ("airbnb", "vrbo", "booking") else "other"
        stale = (
            session.query(Booking)
            .filter(
                Booking.property_id == property_id,
                Booking.booking_platform == stored_platform,
                Booking.event_uid.isnot(None),
            )
            .all()
        )
        removed = [b for b in stale if b.event_uid not in feed_uids]
        for booking in removed:
            session.delete(booking)
        session.commit()

        for booking in removed:
            logger.info("Booking removed from feed: %s", booking)
            event_bus.emit(
                EventType.BOOKING_DELETED,
                {"booking_id": booking.id, "property_id": property_id},
            )
        return len(removed)

    def _record_source_status(
        self, session: Session, property_id: int, results: list[SourceResult]
    ) -> None:
        """Write each feed's outcome to its own calendar_sources row.

        Rows are matched by id, or by platform and URL for sources passed in
        explicitly; feeds without a stored row are skipped.
        """
        now = utcnow()
        for result in results:
            query = session.query(CalendarSource).filter(CalendarSource.property_id == property_id)
            if result.source_id is not None:
                query = query.filter(CalendarSource.id == result.source_id)
            else:
                query = query.filter(
                    CalendarSource.platform == result.platform,
                    CalendarSource.ics_url == result.url,
                )
            for row in query.all():
                row.last_sync = now
                row.sync_status = "success" if result.success else "error"
                row.error_message = "; ".join(result.errors) if result.errors else None
        session.commit()


def _synthetic_uid(check_in: datetime, check_out: datetime, summary: str) -> str:
    digest = hashlib.sha1(f"{check_in.isoformat()}|{check_out.isoformat()}|{summary}".encode()).hexdigest()
    return f"generated-{digest[:16]}"
