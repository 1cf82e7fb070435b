"""Guest check-in links: token issue, validation, revocation and the guest page payload."""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.orm import Session

from rentalhost.config import get_base_url, section
from rentalhost.database import get_session, utcnow
from rentalhost.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from rentalhost.models.booking import Booking
from rentalhost.models.checkin import GuestAccessLog, GuestCheckinToken
from rentalhost.models.property import Property, PropertyInformation

logger = logging.getLogger(__name__)

_cfg = section("guest_checkin")


class GuestTokenError(PermissionDeniedError):
    """Token is unknown, revoked or expired."""

    def __init__(self, message: str) -> None:
        super().__init__(message, {"expired": "expired" in message})
        self.expired = "expired" in message


@dataclass
class TokenValidation:
    is_valid: bool
    token_id: int | None = None
    booking_id: int | None = None
    property_id: int | None = None
    guest_name: str | None = None
    expires_at: datetime | None = None
    error_message: str | None = None


def checkin_url(token: str) -> str:
    return f"{get_base_url()}/guest-checkin/{token}"


def _new_token(session: Session) -> str:
    while True:
        token = secrets.token_urlsafe(32)
        if session.query(GuestCheckinToken.id).filter(GuestCheckinToken.token == token).first() is None:
            return token


class GuestCheckinService:
    """Issues and checks the per-booking links guests use to open their check-in page."""

    def generate_token(self, booking_id: int, expires_days: int | None = None) -> dict[str, Any]:
        """Issue (or re-issue) the booking's token.

        Expiry is the later of ``expires_days`` from now and a few days past
        checkout. Re-issuing replaces the token and reactivates the row.
        """
        expires_days = expires_days or _cfg.get("expires_days", 30)
        session = get_session()
        try:
            booking = session.get(Booking, booking_id)
            if booking is None:
                raise NotFoundError(f"Booking not found: {booking_id}")
            record = self._issue(session, booking, expires_days)
            return self._token_payload(session, record, booking)
        finally:
            session.close()

    def _issue(self, session: Session, booking: Booking, expires_days: int) -> GuestCheckinToken:
        if not booking.contact_email:
            raise ValidationError("Booking must have guest email for check-in token")

        token = _new_token(session)
        now = utcnow()
        grace = timedelta(days=_cfg.get("grace_days_after_checkout", 3))
        expires_at = max(now + timedelta(days=expires_days), booking.check_out + grace)

        record = (
            session.query(GuestCheckinToken)
            .filter(GuestCheckinToken.booking_id == booking.id)
            .one_or_none()
        )
        if record is None:
            record = GuestCheckinToken(booking_id=booking.id)
            session.add(record)
        record.token = token
        record.guest_name = booking.guest_name
        record.guest_email = booking.contact_email
        record.property_id = booking.property_id
        record.expires_at = expires_at
        record.is_active = True
        record.revoked_at = None
        record.revoked_by = None
        record.revoke_reason = None
        record.created_at = now
        session.commit()
        logger.info("Issued check-in token for booking %s (expires %s)", booking.id, expires_at)
        return record

    def _token_payload(
        self, session: Session, record: GuestCheckinToken, booking: Booking
    ) -> dict[str, Any]:
        prop = session.get(Property, booking.property_id)
        return {
            "token": record.token,
            "checkin_url": checkin_url(record.token),
            "expires_at": record.expires_at.isoformat(),
            "is_active": record.is_active,
            "access_count": record.access_count,
            "accessed_at": record.accessed_at.isoformat() if record.accessed_at else None,
            "booking": {
                "id": booking.id,
                "guest_name": booking.guest_name,
                "guest_email": booking.contact_email,
                "property_name": prop.name if prop else None,
                "check_in": booking.check_in.isoformat(),
                "check_out": booking.check_out.isoformat(),
            },
        }

    def get_token_for_booking(self, booking_id: int) -> tuple[dict[str, Any] | None, str | None]:
        """Existing token for a booking plus an error when it is expired or revoked."""
        session = get_session()
        try:
            record = (
                session.query(GuestCheckinToken)
                .filter(GuestCheckinToken.booking_id == booking_id)
                .one_or_none()
            )
            booking = session.get(Booking, booking_id)
            if record is None or booking is None:
                return None, "No check-in token found for this booking"

            payload = self._token_payload(session, record, booking)
            error = None
            if record.expires_at < utcnow():
                error = "Token has expired"
            elif not record.is_active:
                error = "Token has been revoked"
            return payload, error
        finally:
            session.close()

    def token_for_email(self, session: Session, booking: Booking) -> tuple[str | None, datetime | None]:
        """Check-in URL and expiry for an outgoing email, reusing a still-valid token."""
        record = (
            session.query(GuestCheckinToken)
            .filter(GuestCheckinToken.booking_id == booking.id)
            .one_or_none()
        )
        if record is None or not record.is_active or record.expires_at < utcnow():
            try:
                record = self._issue(session, booking, _cfg.get("expires_days", 30))
            except ValidationError:
                logger.warning("Cannot issue check-in token for booking %s", booking.id)
                return None, None
        return checkin_url(record.token), record.expires_at

    def validate_token(
        self, token: str, ip_address: str | None = None, user_agent: str | None = None
    ) -> TokenValidation:
        session = get_session()
        try:
            return self._validate(session, token, ip_address, user_agent)
        finally:
            session.close()

    def _validate(
        self, session: Session, token: str, ip_address: str | None, user_agent: str | None
    ) -> TokenValidation:
        record = session.query(GuestCheckinToken).filter(GuestCheckinToken.token == token).one_or_none()
        if record is None:
            return TokenValidation(is_valid=False, error_message="Invalid token")

        result = TokenValidation(
            is_valid=False,
            token_id=record.id,
            booking_id=record.booking_id,
            property_id=record.property_id,
            guest_name=record.guest_name,
            expires_at=record.expires_at,
        )
        if not record.is_active or record.revoked_at is not None:
            result.error_message = "Token has been revoked"
            return result
        if record.expires_at < utcnow():
            result.error_message = "Token has expired"
            return result

        record.accessed_at = utcnow()
        record.access_count = (record.access_count or 0) + 1
        if ip_address:
            if ip_address not in (record.ip_addresses or []):
                record.ip_addresses = [*(record.ip_addresses or []), ip_address]
            record.last_ip = ip_address
        if user_agent:
            if user_agent not in (record.user_agents or []):
                record.user_agents = [*(record.user_agents or []), user_agent]
            record.last_user_agent = user_agent
        session.add(GuestAccessLog(
            token_id=record.id,
            booking_id=record.booking_id,
            ip_address=ip_address,
            user_agent=user_agent,
        ))
        session.commit()

        result.is_valid = True
        return result

    def get_checkin_info(
        self, token: str, ip_address: str | None = None, user_agent: str | None = None
    ) -> dict[str, Any]:
        """Everything the guest page shows. Raises GuestTokenError for bad tokens."""
        session = get_session()
        try:
            validation = self._validate(session, token, ip_address, user_agent)
            if not validation.is_valid:
                raise GuestTokenError(validation.error_message)

            booking = session.get(Booking, validation.booking_id)
            prop = session.get(Property, validation.property_id)
            info = (
                session.query(PropertyInformation)
                .filter(PropertyInformation.property_id == validation.property_id)
                .one_or_none()
            )
            return {
                "valid_until": validation.expires_at.isoformat(),
                "booking": {
                    "id": booking.id,
                    "guest_name": booking.guest_name,
                    "contact_email": booking.contact_email,
                    "contact_phone": booking.contact_phone,
                    "check_in": booking.check_in.isoformat(),
                    "check_out": booking.check_out.isoformat(),
                    "nights": booking.nights,
                    "booking_platform": booking.booking_platform,
                    "notes": booking.notes,
                    "status": booking.status,
                },
                "property": {
                    "id": prop.id,
                    "name": prop.name,
                    "address": prop.address,
                    "notes": prop.notes,
                    "checkin_time": prop.checkin_time,
                    "checkout_time": prop.checkout_time,
                },
                "checkin": info.to_dict() if info else None,
            }
        finally:
            session.close()

    def log_interaction(
        self,
        token: str,
        *,
        action: str | None = None,
        page: str | None = None,
        time_spent: int | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        session = get_session()
        try:
            record = session.query(GuestCheckinToken).filter(GuestCheckinToken.token == token).one_or_none()
            if record is None:
                raise GuestTokenError("Invalid token")
            if not record.is_active or record.expires_at < utcnow():
                raise GuestTokenError("Token expired or revoked")

            session.add(GuestAccessLog(
                token_id=record.id,
                booking_id=record.booking_id,
                ip_address=ip_address,
                user_agent=user_agent,
                pages_viewed=[page] if page else [],
                time_spent_seconds=time_spent or 0,
                actions_performed=[{"action": action or "page_view", "timestamp": utcnow().isoformat()}],
            ))
            session.commit()
        finally:
            session.close()

    def revoke_token(self, token: str, revoked_by: str | None = None, reason: str | None = None) -> bool:
        """Deactivate an active token. Returns False when it is unknown or already revoked."""
        session = get_session()
        try:
            record = (
                session.query(GuestCheckinToken)
                .filter(GuestCheckinToken.token == token, GuestCheckinToken.is_active.is_(True))
                .one_or_none()
            )
            if record is None:
                return False
            record.is_active = False
            record.revoked_at = utcnow()
            record.revoked_by = revoked_by
            record.revoke_reason = reason or "Manual revocation"
            session.commit()
            logger.info("Revoked check-in token for booking %s", record.booking_id)
            return True
        finally:
            session.close()

    def find_token(self, token: str) -> GuestCheckinToken | None:
        session = get_session()
        try:
            return session.query(GuestCheckinToken).filter(GuestCheckinToken.token == token).one_or_none()
        finally:
            session.close()

    def cleanup_expired_tokens(self) -> int:
        session = get_session()
        try:
            now = utcnow()
            expired = (
                session.query(GuestCheckinToken)
                .filter(GuestCheckinToken.expires_at < now, GuestCheckinToken.is_active.is_(True))
                .all()
            )
            for record in expired:
                record.is_active = False
                record.revoked_at = now
                record.revoke_reason = "Automatic expiration"
            session.commit()
            logger.info("Deactivated %d expired check-in tokens", len(expired))
            return len(expired)
        finally:
            session.close()

    # --- Property information and logs ---

    def get_property_information(self, property_id: int) -> dict[str, Any] | None:
        session = get_session()
        try:
            info = (
                session.query(PropertyInformation)
                .filter(PropertyInformation.property_id == property_id)
                .one_or_none()
            )
            return info.to_dict() if info else None
        finally:
            session.close()

    def update_property_information(self, property_id: int, updates: dict[str, Any]) -> dict[str, Any]:
        session = get_session()
        try:
            if session.get(Property, property_id) is None:
                raise NotFoundError(f"Property {property_id} not found")
            info = (
                session.query(PropertyInformation)
                .filter(PropertyInformation.property_id == property_id)
                .one_or_none()
            )
            if info is None:
                info = PropertyInformation(property_id=property_id)
                session.add(info)
            for name in PropertyInformation.EDITABLE_FIELDS:
                if name in updates:
                    setattr(info, name, updates[name])
            session.commit()
            return info.to_dict()
        finally:
            session.close()

    def get_access_logs(self, booking_id: int) -> list[dict[str, Any]]:
        session = get_session()
        try:
            logs = (
                session.query(GuestAccessLog)
                .filter(GuestAccessLog.booking_id == booking_id)
                .order_by(GuestAccessLog.accessed_at.desc())
                .all()
            )
            return [
                {
                    "id": log.id,
                    "ip_address": log.ip_address,
                    "user_agent": log.user_agent,
                    "pages_viewed": log.pages_viewed,
                    "time_spent_seconds": log.time_spent_seconds,
                    "actions_performed": log.actions_performed,
                    "accessed_at": log.accessed_at.isoformat(),
                }
                for log in logs
            ]
        finally:
            session.close()
