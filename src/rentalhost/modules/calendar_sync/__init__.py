from rentalhost.modules.calendar_sync.parsers import parse_event_by_platform
from rentalhost.modules.calendar_sync.sync import CalendarSyncer

__all__ = ["CalendarSyncer", "parse_event_by_platform"]
