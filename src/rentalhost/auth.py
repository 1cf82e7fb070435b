"""Bearer-token authentication and role checks for the API."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from rentalhost.config import get_env, get_env_required
from rentalhost.database import get_session
from rentalhost.exceptions import AuthenticationError, NotFoundError, PermissionDeniedError
from rentalhost.models.booking import Booking
from rentalhost.models.property import Property
from rentalhost.models.user import UserProfile

ALGORITHM = "HS256"

security = HTTPBearer(auto_error=False)


def _secret() -> str:
    return get_env_required("AUTH_JWT_SECRET")


def create_access_token(user_id: str, expires_minutes: int = 60) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    return jwt.encode({"sub": user_id, "exp": expire}, _secret(), algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token.strip(), _secret(), algorithms=[ALGORITHM])
    except jwt.PyJWTError as exc:
        raise AuthenticationError("Invalid or expired token") from exc


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> UserProfile:
    if not credentials or not credentials.credentials:
        raise AuthenticationError("Authentication required")
    payload = decode_token(credentials.credentials)
    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError("Invalid token")
    session = get_session()
    try:
        user = session.get(UserProfile, str(user_id))
    finally:
        session.close()
    if user is None:
        raise AuthenticationError("User not found")
    return user


def require_host(current_user: UserProfile = Depends(get_current_user)) -> UserProfile:
    if current_user.role not in ("host", "admin"):
        raise PermissionDeniedError("Host role required")
    return current_user


def ensure_property_access(user: UserProfile, property_id: int) -> Property:
    """The property, if the user owns it (admins see everything)."""
    session = get_session()
    try:
        prop = session.get(Property, property_id)
    finally:
        session.close()
    if prop is None:
        raise NotFoundError(f"Property {property_id} not found")
    if user.role != "admin" and prop.host_id != user.id:
        raise PermissionDeniedError("Property not found or access denied")
    return prop


def ensure_booking_access(user: UserProfile, booking_id: int) -> Booking:
    session = get_session()
    try:
        booking = session.get(Booking, booking_id)
    finally:
        session.close()
    if booking is None:
        raise NotFoundError("Booking not found")
    ensure_property_access(user, booking.property_id)
    return booking


def verify_cron_secret(request: Request) -> None:
    """Cron endpoints require ``Authorization: Bearer $CRON_SECRET`` when the secret is set."""
    secret = get_env("CRON_SECRET")
    if secret and request.headers.get("authorization") != f"Bearer {secret}":
        raise AuthenticationError("Unauthorized")
