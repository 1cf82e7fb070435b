"""Email rendering (Jinja2 templates with per-property overrides) and SMTP delivery."""

from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, make_msgid
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, Template, TemplateNotFound, select_autoescape
from sqlalchemy import or_
from sqlalchemy.orm import Session

from rentalhost.config import get_env, section
from rentalhost.models.booking import Booking
from rentalhost.models.email import EmailTemplate
from rentalhost.models.property import Property
from rentalhost.modules.calendar_sync.platforms import format_platform_name

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent.parent / "templates"

DEFAULT_SUBJECTS = {
    "check_in_instructions": "Check-in Instructions for {{ property_name }} - {{ check_in_date }}",
    "checkout_reminder": "Checkout Reminder - {{ property_name }} Tomorrow",
    "thank_you_review": "Thank you for staying at {{ property_name }}!",
}


@dataclass
class EmailResult:
    success: bool
    message_id: str | None = None
    error: str | None = None


def _format_date(value) -> str:
    return value.strftime("%A, %B %d, %Y")


class EmailService:
    """Renders guest and cleaner emails and sends them over SMTP."""

    def __init__(self) -> None:
        self._jinja_env = Environment(
            loader=FileSystemLoader(str(TEMPLATE_DIR)),
            autoescape=select_autoescape(default=False),
        )
        self._config = section("emails")

    @property
    def is_configured(self) -> bool:
        return all([get_env("SMTP_HOST"), get_env("SMTP_USER"), get_env("SMTP_PASSWORD")])

    def send_email(
        self,
        to_email: str,
        subject: str,
        body: str,
        *,
        to_name: str | None = None,
        html: str | None = None,
    ) -> EmailResult:
        """Send one message. Delivery problems come back as a failed result."""
        if not self.is_configured:
            logger.warning("SMTP not configured, email to %s not sent", to_email)
            return EmailResult(success=False, error="Email service not configured")

        smtp_host = get_env("SMTP_HOST")
        smtp_port = int(get_env("SMTP_PORT", "587"))
        smtp_user = get_env("SMTP_USER")
        from_address = get_env("SMTP_FROM", smtp_user)

        if html:
            msg = MIMEMultipart("alternative")
            msg.attach(MIMEText(body, "plain"))
            msg.attach(MIMEText(html, "html"))
        else:
            msg = MIMEText(body)
        message_id = make_msgid(domain=from_address.split("@")[-1])
        msg["Subject"] = subject
        msg["From"] = formataddr((self._config.get("from_name", ""), from_address))
        msg["To"] = formataddr((to_name or "", to_email))
        msg["Message-ID"] = message_id

        try:
            with smtplib.SMTP(smtp_host, smtp_port) as server:
                server.starttls()
                server.login(smtp_user, get_env("SMTP_PASSWORD"))
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.exception("Failed to send email to %s", to_email)
            return EmailResult(success=False, error=str(exc))

        logger.info("Email sent to %s: %s", to_email, subject)
        return EmailResult(success=True, message_id=message_id)

    # --- Rendering ---

    def render_file(self, template_name: str, context: dict[str, Any]) -> str:
        return self._jinja_env.get_template(f"{template_name}.txt").render(**context)

    def render(
        self,
        session: Session,
        template_type: str,
        context: dict[str, Any],
        property_id: int | None = None,
    ) -> tuple[str, str]:
        """Render (subject, body), preferring an active host override from the database."""
        override = self._find_override(session, template_type, property_id)
        if override:
            return (
                Template(override.subject).render(**context),
                Template(override.body).render(**context),
            )

        try:
            body = self.render_file(template_type, context)
        except TemplateNotFound:
            logger.error("No template found for %s", template_type)
            raise
        subject = Template(DEFAULT_SUBJECTS.get(template_type, template_type.replace("_", " ").title()))
        return subject.render(**context), body

    def _find_override(
        self, session: Session, template_type: str, property_id: int | None
    ) -> EmailTemplate | None:
        candidates = (
            session.query(EmailTemplate)
            .filter(
                EmailTemplate.template_type == template_type,
                EmailTemplate.is_active.is_(True),
                or_(EmailTemplate.property_id == property_id, EmailTemplate.property_id.is_(None)),
            )
            .all()
        )
        # Property-specific override beats the global one
        candidates.sort(key=lambda t: t.property_id is None)
        return candidates[0] if candidates else None

    def guest_context(self, booking: Booking, prop: Property, **extra: Any) -> dict[str, Any]:
        context = {
            "guest_name": booking.guest_first_name or booking.guest_name or "Guest",
            "property_name": prop.name,
            "property_address": prop.address or "",
            "check_in_date": _format_date(booking.check_in),
            "check_in_time": prop.checkin_time,
            "check_out_date": _format_date(booking.check_out),
            "check_out_time": prop.checkout_time,
            "nights": booking.nights,
            "platform_name": format_platform_name(booking.booking_platform),
            "notes": "",
            "host_name": self._config.get("from_name", "Your Host"),
            "guest_checkin_url": None,
            "link_expires": None,
        }
        context.update(extra)
        return context

    def send_guest_email(
        self,
        session: Session,
        email_type: str,
        booking: Booking,
        prop: Property,
        *,
        to_email: str | None = None,
        **extra: Any,
    ) -> EmailResult:
        """Render one of the guest email kinds for a booking and send it."""
        recipient = to_email or booking.contact_email
        if not recipient:
            return EmailResult(success=False, error="Booking has no contact email")
        context = self.guest_context(booking, prop, **extra)
        subject, body = self.render(session, email_type, context, property_id=prop.id)
        return self.send_email(recipient, subject, body, to_name=booking.guest_name)
