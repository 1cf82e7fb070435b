from rentalhost.modules.guest_comms.email_scheduler import EmailScheduler
from rentalhost.modules.guest_comms.emailer import EmailResult, EmailService

__all__ = ["EmailResult", "EmailScheduler", "EmailService"]
