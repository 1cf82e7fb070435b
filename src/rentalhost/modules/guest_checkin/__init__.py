from rentalhost.modules.guest_checkin.service import GuestCheckinService, GuestTokenError, checkin_url

__all__ = ["GuestCheckinService", "GuestTokenError", "checkin_url"]
