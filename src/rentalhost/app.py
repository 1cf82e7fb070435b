"""FastAPI application with the JSON API routes."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse

from rentalhost.auth import (
    ensure_booking_access,
    ensure_property_access,
    get_current_user,
    require_host,
    verify_cron_secret,
)
from rentalhost.config import get_env
from rentalhost.database import init_db
from rentalhost.exceptions import NotFoundError, PermissionDeniedError, RentalHostError, ValidationError
from rentalhost.models.checkin import GuestCheckinToken
from rentalhost.models.user import UserProfile
from rentalhost.modules.bookings import BookingService
from rentalhost.modules.calendar_sync import CalendarSyncer
from rentalhost.modules.cleanings import CleanerNotifier, CleaningService
from rentalhost.modules.currency import CurrencyConverter
from rentalhost.modules.guest_checkin import GuestCheckinService, GuestTokenError
from rentalhost.modules.guest_comms import EmailScheduler, EmailService
from rentalhost.modules.properties import PropertyService
from rentalhost.modules.referral_sites import KEEP, ReferralSiteService
from rentalhost.scheduler import create_scheduler
from rentalhost.schemas import (
    BookingCreate,
    BookingUpdate,
    CalendarSourceCreate,
    CalendarSourceUpdate,
    CleanerAssign,
    CleanerCreate,
    CleaningCreate,
    CleaningUpdate,
    CurrencyConvertRequest,
    GuestInteraction,
    ProcessEmailsRequest,
    PropertyCreate,
    PropertyUpdate,
    ReferralSiteSave,
    SendBookingToCleanerRequest,
    SendCleaningJobsRequest,
    SendEmailRequest,
    SendNowRequest,
    SyncRequest,
    TokenGenerateRequest,
    TokenRevokeRequest,
)

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    logger.info("Starting RentalHost...")
    init_db()

    scheduler = create_scheduler()
    scheduler.start()
    logger.info("Scheduler started.")

    yield

    scheduler.shutdown()
    logger.info("RentalHost shut down.")


app = FastAPI(title="RentalHost", lifespan=lifespan)

properties = PropertyService()
bookings = BookingService()
cleanings = CleaningService()
email_service = EmailService()
notifier = CleanerNotifier(email_service)
email_scheduler = EmailScheduler(email_service=email_service)
checkin = GuestCheckinService()
syncer = CalendarSyncer()
referral_sites = ReferralSiteService()
converter = CurrencyConverter()


@app.exception_handler(RentalHostError)
async def handle_domain_error(request: Request, exc: RentalHostError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message, **exc.details})


def _client_info(request: Request) -> tuple[str, str]:
    ip = (
        request.headers.get("x-forwarded-for")
        or request.headers.get("x-real-ip")
        or (request.client.host if request.client else "127.0.0.1")
    )
    return ip, request.headers.get("user-agent") or "Unknown"


def _scope(user: UserProfile) -> list[int] | None:
    """Property ids the user may see; None means no restriction."""
    if user.role == "admin":
        return None
    return properties.property_ids_for_host(user.id)


@app.get("/api/health")
async def health():
    return {"status": "ok"}


# --- Properties ---

@app.get("/api/properties")
async def list_properties(user: UserProfile = Depends(require_host)):
    host_id = None if user.role == "admin" else user.id
    return [p.to_dict() for p in properties.list_properties(host_id=host_id)]


@app.post("/api/properties", status_code=201)
async def create_property(body: PropertyCreate, user: UserProfile = Depends(require_host)):
    return properties.create_property(user.id, body.model_dump(exclude_unset=True)).to_dict()


@app.get("/api/properties/{property_id}")
async def get_property(property_id: int, user: UserProfile = Depends(require_host)):
    return ensure_property_access(user, property_id).to_dict()


@app.put("/api/properties/{property_id}")
async def update_property(property_id: int, body: PropertyUpdate, user: UserProfile = Depends(require_host)):
    ensure_property_access(user, property_id)
    return properties.update_property(property_id, body.model_dump(exclude_unset=True)).to_dict()


@app.delete("/api/properties/{property_id}")
async def delete_property(property_id: int, user: UserProfile = Depends(require_host)):
    ensure_property_access(user, property_id)
    properties.delete_property(property_id)
    return {"success": True}


@app.get("/api/properties/{property_id}/calendar-sources")
async def list_calendar_sources(property_id: int, user: UserProfile = Depends(require_host)):
    ensure_property_access(user, property_id)
    return [s.to_dict() for s in properties.list_calendar_sources(property_id)]


@app.post("/api/properties/{property_id}/calendar-sources", status_code=201)
async def create_calendar_source(
    property_id: int, body: CalendarSourceCreate, user: UserProfile = Depends(require_host)
):
    ensure_property_access(user, property_id)
    return properties.create_calendar_source(property_id, body.model_dump()).to_dict()


@app.put("/api/calendar-sources/{source_id}")
async def update_calendar_source(
    source_id: int, body: CalendarSourceUpdate, user: UserProfile = Depends(require_host)
):
    ensure_property_access(user, properties.get_calendar_source(source_id).property_id)
    return properties.update_calendar_source(source_id, body.model_dump(exclude_unset=True)).to_dict()


@app.delete("/api/calendar-sources/{source_id}")
async def delete_calendar_source(source_id: int, user: UserProfile = Depends(require_host)):
    ensure_property_access(user, properties.get_calendar_source(source_id).property_id)
    properties.delete_calendar_source(source_id)
    return {"success": True}


@app.get("/api/properties-with-calendars")
async def properties_with_calendars(user: UserProfile = Depends(require_host)):
    return properties.properties_with_calendars(host_id=None if user.role == "admin" else user.id)


@app.get("/api/properties/{property_id}/cleaners")
async def list_property_cleaners(property_id: int, user: UserProfile = Depends(require_host)):
    ensure_property_access(user, property_id)
    return properties.get_property_cleaners(property_id)


@app.post("/api/properties/{property_id}/cleaners", status_code=201)
async def assign_cleaner(property_id: int, body: CleanerAssign, user: UserProfile = Depends(require_host)):
    ensure_property_access(user, property_id)
    link = properties.assign_cleaner(property_id, body.cleaner_id, body.notes)
    return {"success": True, "id": link.id}


@app.delete("/api/properties/{property_id}/cleaners/{cleaner_id}")
async def remove_cleaner(property_id: int, cleaner_id: str, user: UserProfile = Depends(require_host)):
    ensure_property_access(user, property_id)
    properties.remove_cleaner(property_id, cleaner_id)
    return {"success": True}


@app.post("/api/create-cleaner")
async def create_cleaner(body: CleanerCreate, user: UserProfile = Depends(require_host)):
    profile, created = properties.create_cleaner(body.model_dump())
    return {
        "success": True,
        "id": profile.id,
        "message": "Cleaner created successfully" if created else "Cleaner profile updated successfully",
    }


# --- Bookings ---

@app.get("/api/bookings")
async def list_bookings(
    property_id: int | None = None,
    status: str | None = None,
    date_from: datetime | None = Query(default=None, alias="from"),
    date_to: datetime | None = Query(default=None, alias="to"),
    limit: int | None = None,
    offset: int | None = None,
    user: UserProfile = Depends(require_host),
):
    if property_id:
        ensure_property_access(user, property_id)
    rows, count = bookings.list_bookings(
        property_id=property_id,
        status=status,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset,
        property_ids=_scope(user),
    )
    return {"data": [b.to_dict() for b in rows], "count": count}


@app.post("/api/bookings", status_code=201)
async def create_booking(body: BookingCreate, user: UserProfile = Depends(require_host)):
    ensure_property_access(user, body.property_id)
    return {"data": bookings.create_booking(body.model_dump()).to_dict()}


@app.get("/api/bookings/stats")
async def booking_stats(property_id: int | None = None, user: UserProfile = Depends(require_host)):
    if property_id:
        ensure_property_access(user, property_id)
    return bookings.get_booking_stats(property_id=property_id, property_ids=_scope(user))


@app.get("/api/bookings/{booking_id}")
async def get_booking(booking_id: int, user: UserProfile = Depends(require_host)):
    return {"data": ensure_booking_access(user, booking_id).to_dict()}


@app.put("/api/bookings/{booking_id}")
async def update_booking(booking_id: int, body: BookingUpdate, user: UserProfile = Depends(require_host)):
    ensure_booking_access(user, booking_id)
    return {"data": bookings.update_booking(booking_id, body.model_dump(exclude_unset=True)).to_dict()}


@app.delete("/api/bookings/{booking_id}")
async def delete_booking(booking_id: int, user: UserProfile = Depends(require_host)):
    ensure_booking_access(user, booking_id)
    bookings.delete_booking(booking_id)
    return {"success": True}


# --- Cleanings ---

@app.get("/api/cleanings")
async def list_cleanings(
    property_id: int | None = None,
    status: str | None = None,
    date_from: datetime | None = Query(default=None, alias="from"),
    date_to: datetime | None = Query(default=None, alias="to"),
    limit: int | None = None,
    offset: int | None = None,
    user: UserProfile = Depends(get_current_user),
):
    if user.role == "cleaner":
        rows = cleanings.list_cleanings(
            cleaner_id=user.id, status=status, date_from=date_from, date_to=date_to, limit=limit, offset=offset
        )
    else:
        if property_id:
            ensure_property_access(user, property_id)
        rows = cleanings.list_cleanings(
            property_id=property_id,
            status=status,
            date_from=date_from,
            date_to=date_to,
            limit=limit,
            offset=offset,
            property_ids=_scope(user),
        )
    return {"data": [c.to_dict() for c in rows]}


@app.post("/api/cleanings", status_code=201)
async def create_cleaning(body: CleaningCreate, user: UserProfile = Depends(require_host)):
    ensure_property_access(user, body.property_id)
    return {"data": cleanings.create_cleaning(body.model_dump(exclude_unset=True)).to_dict()}


@app.get("/api/cleanings/stats")
async def cleaning_stats(property_id: int | None = None, user: UserProfile = Depends(get_current_user)):
    if user.role == "cleaner":
        return cleanings.get_cleaning_stats(cleaner_id=user.id)
    if property_id:
        ensure_property_access(user, property_id)
    return cleanings.get_cleaning_stats(property_id=property_id, property_ids=_scope(user))


def _cleaning_for(user: UserProfile, cleaning_id: int):
    cleaning = cleanings.get_cleaning(cleaning_id)
    if user.role == "cleaner":
        if cleaning.cleaner_id != user.id:
            raise PermissionDeniedError("Cleaning is not assigned to you")
    else:
        ensure_property_access(user, cleaning.property_id)
    return cleaning


@app.get("/api/cleanings/{cleaning_id}")
async def get_cleaning(cleaning_id: int, user: UserProfile = Depends(get_current_user)):
    return {"data": _cleaning_for(user, cleaning_id).to_dict()}


@app.put("/api/cleanings/{cleaning_id}")
async def update_cleaning(cleaning_id: int, body: CleaningUpdate, user: UserProfile = Depends(get_current_user)):
    _cleaning_for(user, cleaning_id)
    changes = body.model_dump(exclude_unset=True)
    if user.role == "cleaner":
        # Cleaners only move their jobs along
        changes = {k: v for k, v in changes.items() if k in ("status", "notes")}
    return {"data": cleanings.update_cleaning(cleaning_id, changes).to_dict()}


@app.delete("/api/cleanings/{cleaning_id}")
async def delete_cleaning(cleaning_id: int, user: UserProfile = Depends(require_host)):
    _cleaning_for(user, cleaning_id)
    cleanings.delete_cleaning(cleaning_id)
    return {"success": True}


# --- Calendar sync ---

@app.post("/api/sync-ics")
def sync_ics(body: SyncRequest, user: UserProfile = Depends(require_host)):
    if not body.property_id:
        raise ValidationError("Missing required parameter: property_id")
    ensure_property_access(user, body.property_id)
    sources = [s.model_dump() for s in body.sources] if body.sources else None
    result = syncer.sync_property(
        body.property_id, sources=sources, reconcile=body.reconcile, platform=body.platform
    )
    # 207 = partial success
    return JSONResponse(status_code=200 if result["success"] else 207, content=result)


@app.get("/api/sync-ics")
async def sync_ics_info(health: str | None = None):
    if health:
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "environment": {
                "hasAirbnbUrl": bool(get_env("AIRBNB_ICS_URL")),
                "hasVrboUrl": bool(get_env("VRBO_ICS_URL")),
                "hasBookingUrl": bool(get_env("BOOKING_COM_ICS_URL")),
                "hasDatabaseUrl": bool(get_env("DATABASE_URL")),
            },
        }
    return {
        "message": "ICS Sync API",
        "methods": ["POST", "GET"],
        "usage": {
            "POST": "Sync calendar data for a property",
            "GET": "Health check (add ?health=true parameter)",
        },
    }


# --- Guest check-in ---

@app.post("/api/guest-checkin/generate")
async def generate_checkin_token(body: TokenGenerateRequest, user: UserProfile = Depends(require_host)):
    if not body.booking_id:
        raise ValidationError("booking_id is required")
    ensure_booking_access(user, body.booking_id)
    return {"success": True, "data": checkin.generate_token(body.booking_id, body.expires_days)}


@app.get("/api/guest-checkin/generate")
async def get_checkin_token(booking_id: int | None = None, user: UserProfile = Depends(require_host)):
    if not booking_id:
        raise ValidationError("booking_id is required")
    ensure_booking_access(user, booking_id)
    payload, error = checkin.get_token_for_booking(booking_id)
    if payload is None:
        raise NotFoundError(error)
    payload["is_expired"] = error == "Token has expired"
    payload["is_active"] = payload["is_active"] and not payload["is_expired"]
    return {"success": True, "data": payload}


@app.get("/api/guest-checkin/validate")
async def validate_checkin_token(request: Request, token: str | None = None):
    if not token:
        raise ValidationError("Token parameter is required")
    ip, user_agent = _client_info(request)
    try:
        info = checkin.get_checkin_info(token, ip, user_agent)
    except GuestTokenError as exc:
        return JSONResponse(
            status_code=403, content={"success": False, "error": exc.message, "expired": exc.expired}
        )
    return {"success": True, "data": info}


@app.post("/api/guest-checkin/validate")
async def log_guest_interaction(body: GuestInteraction, request: Request):
    if not body.token:
        raise ValidationError("Token is required")
    ip, user_agent = _client_info(request)
    checkin.log_interaction(
        body.token,
        action=body.action,
        page=body.page,
        time_spent=body.time_spent,
        ip_address=ip,
        user_agent=user_agent,
    )
    return {"success": True}


@app.post("/api/guest-checkin/revoke")
async def revoke_checkin_token(body: TokenRevokeRequest, user: UserProfile = Depends(require_host)):
    if not body.token:
        raise ValidationError("Token is required")
    record: GuestCheckinToken | None = checkin.find_token(body.token)
    if record is None:
        raise NotFoundError("Token not found")
    try:
        ensure_booking_access(user, record.booking_id)
    except PermissionDeniedError as exc:
        raise PermissionDeniedError("You can only revoke tokens for your own bookings") from exc
    if not record.is_active:
        raise ValidationError("Token is already revoked")
    if not checkin.revoke_token(body.token, revoked_by=user.id, reason=body.reason):
        raise NotFoundError("Token not found or already revoked")
    return {"success": True, "message": "Token revoked successfully"}


# --- Referral sites ---

@app.get("/api/referral-sites")
async def list_referral_sites(
    property_id: int, decrypt: bool = False, user: UserProfile = Depends(require_host)
):
    ensure_property_access(user, property_id)
    return {"data": referral_sites.list_configs(property_id, decrypt_passwords=decrypt)}


@app.post("/api/referral-sites")
async def save_referral_site(body: ReferralSiteSave, user: UserProfile = Depends(require_host)):
    ensure_property_access(user, body.property_id)
    fields = body.model_dump(exclude={"password"})
    password = body.password if "password" in body.model_fields_set else KEEP
    config = referral_sites.save_config(fields, password=password)
    return {"data": config.to_dict(), "error": None}


@app.delete("/api/referral-sites")
async def delete_referral_site(
    property_id: int, config_id: int = Query(alias="id"), user: UserProfile = Depends(require_host)
):
    ensure_property_access(user, property_id)
    referral_sites.delete_config(config_id, property_id=property_id)
    return {"success": True}


# --- Currency ---

@app.post("/api/currency/convert")
def convert_currency(body: CurrencyConvertRequest, user: UserProfile = Depends(get_current_user)):
    if not body.amounts_by_currency or not body.target_currency:
        raise ValidationError("Missing required parameters: amountsByCurrency and targetCurrency")
    total = converter.convert_multiple(body.amounts_by_currency, body.target_currency, strict=True)
    return {"success": True, "convertedAmount": total, "targetCurrency": body.target_currency}


# --- Emails ---

@app.get("/api/process-emails", dependencies=[Depends(verify_cron_secret)])
def process_emails_cron():
    stats = email_scheduler.process_pending_emails()
    return {"success": True, "message": "Email processing completed", "stats": stats}


@app.post("/api/process-emails")
def process_emails(body: ProcessEmailsRequest, user: UserProfile = Depends(require_host)):
    if body.action == "process_pending":
        stats = email_scheduler.process_pending_emails()
        return {"success": True, "message": "Email processing completed", "stats": stats}
    if body.action == "send_now" and body.booking_id and body.email_type:
        ensure_booking_access(user, body.booking_id)
        result = email_scheduler.send_email_now(body.email_type, body.booking_id)
        return {"success": result.success, "error": result.error}
    raise ValidationError("Invalid action")


@app.post("/api/emails/send-now")
def send_email_now(body: SendNowRequest, user: UserProfile = Depends(require_host)):
    if not body.booking_id or not body.email_type:
        raise ValidationError("Missing booking_id or email_type")
    ensure_booking_access(user, body.booking_id)
    result = email_scheduler.send_email_now(body.email_type, body.booking_id)
    if not result.success:
        return JSONResponse(status_code=500, content={"success": False, "error": result.error or "Failed to send"})
    return {"success": True}


@app.post("/api/send-email")
def send_email(body: SendEmailRequest, user: UserProfile = Depends(require_host)):
    if not body.to or not body.subject or not (body.message or body.html):
        raise ValidationError("Missing required fields: to, subject, message or html")
    result = email_service.send_email(
        body.to, body.subject, body.message or "", to_name=body.to.split("@")[0], html=body.html
    )
    if not result.success:
        return JSONResponse(
            status_code=500, content={"success": False, "error": result.error or "Failed to send email"}
        )
    return {"success": True, "message": f"Email sent to {body.to}", "email_id": result.message_id}


@app.post("/api/send-cleaning-jobs")
def send_cleaning_jobs(body: SendCleaningJobsRequest, user: UserProfile = Depends(require_host)):
    return notifier.send_cleaning_jobs(
        body.cleaner_email,
        [job.model_dump() for job in body.jobs],
        cleaner_id=body.cleaner_id,
        cleaning_ids=body.cleaning_ids,
    )


@app.post("/api/send-booking-to-cleaner")
def send_booking_to_cleaner(body: SendBookingToCleanerRequest, user: UserProfile = Depends(require_host)):
    if body.booking_id:
        ensure_booking_access(user, body.booking_id)
    return notifier.send_booking_to_cleaner(
        body.booking_id,
        body.cleaner_email,
        cleaner_id=body.cleaner_id,
        host_note=body.host_note,
    )


def main() -> None:
    """Entry point for running the app."""
    import uvicorn

    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    init_db()
    logger.info("Database initialized.")

    uvicorn.run(
        "rentalhost.app:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )


if __name__ == "__main__":
    main()
