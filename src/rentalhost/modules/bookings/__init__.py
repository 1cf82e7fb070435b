from rentalhost.modules.bookings.service import BookingService, find_overlap, parse_amount

__all__ = ["BookingService", "find_overlap", "parse_amount"]
