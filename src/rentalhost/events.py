"""In-process booking events.

Calendar sync and the booking service announce booking changes here; the
cleaning service listens for new bookings so feed imports get a cleaning
without the syncer knowing about cleanings.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    # data: booking_id, property_id, status, source ("manual" or "calendar_sync")
    BOOKING_NEW = "booking_new"
    BOOKING_MODIFIED = "booking_modified"
    # data: booking_id, property_id
    BOOKING_CANCELLED = "booking_cancelled"
    BOOKING_DELETED = "booking_deleted"
    # data: cleaning_id, booking_id, property_id
    CLEANING_SCHEDULED = "cleaning_scheduled"
    # data: property_id, success
    CALENDAR_SYNCED = "calendar_synced"
    # data: scheduled_email_id, booking_id
    GUEST_EMAIL_SENT = "guest_email_sent"


@dataclass
class Event:
    event_type: EventType
    data: dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def booking_id(self) -> int | None:
        return self.data.get("booking_id")

    @property
    def from_feed(self) -> bool:
        """True for bookings imported from a calendar feed rather than entered by the host."""
        return self.data.get("source", "calendar_sync") != "manual"


Subscriber = Callable[[Event], None]


class EventBus:
    """Synchronous dispatch. Handlers run in subscription order inside the publisher's
    call, so they see the publisher's committed rows; a failing handler is logged
    and the rest still run."""

    def __init__(self) -> None:
        self._subscribers: dict[EventType, list[Subscriber]] = defaultdict(list)

    def subscribe(self, event_type: EventType, callback: Subscriber) -> None:
        if callback in self._subscribers[event_type]:
            return
        self._subscribers[event_type].append(callback)
        logger.debug("Subscribed %s to %s", _name(callback), event_type.value)

    def unsubscribe(self, event_type: EventType, callback: Subscriber) -> None:
        if callback in self._subscribers.get(event_type, []):
            self._subscribers[event_type].remove(callback)

    def publish(self, event: Event) -> int:
        """Deliver ``event``; returns how many handlers raised."""
        logger.info("Publishing %s %s", event.event_type.value, event.data)
        failures = 0
        for callback in list(self._subscribers.get(event.event_type, [])):
            try:
                callback(event)
            except Exception:
                failures += 1
                logger.exception("Handler %s failed for %s", _name(callback), event.event_type.value)
        return failures

    def emit(self, event_type: EventType, data: dict[str, Any]) -> Event:
        event = Event(event_type=event_type, data=data)
        self.publish(event)
        return event


def _name(callback: Subscriber) -> str:
    return getattr(callback, "__qualname__", None) or repr(callback)


event_bus = EventBus()
