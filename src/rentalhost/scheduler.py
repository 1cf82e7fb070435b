"""APScheduler setup for periodic tasks."""

from __future__ import annotations

import logging

from apscheduler.schedulers.background import BackgroundScheduler

from rentalhost.config import section

logger = logging.getLogger(__name__)


def create_scheduler() -> BackgroundScheduler:
    """Create and configure the background scheduler."""
    from rentalhost.modules.calendar_sync import CalendarSyncer
    from rentalhost.modules.cleanings import CleanerNotifier, CleaningService
    from rentalhost.modules.guest_checkin import GuestCheckinService
    from rentalhost.modules.guest_comms import EmailScheduler

    scheduler = BackgroundScheduler()
    sched_config = section("scheduler")

    cal_syncer = CalendarSyncer()
    cleanings = CleaningService()
    notifier = CleanerNotifier()
    email_scheduler = EmailScheduler()
    checkin = GuestCheckinService()

    # Wire up event handlers
    cleanings.setup_event_handlers()

    # Calendar sync (every 30 min by default)
    scheduler.add_job(
        cal_syncer.sync_all,
        "interval",
        minutes=sched_config.get("calendar_sync_interval", 30),
        id="calendar_sync",
        name="Calendar Sync",
    )

    # Due guest emails
    scheduler.add_job(
        email_scheduler.process_pending_emails,
        "interval",
        minutes=sched_config.get("email_process_interval", 15),
        id="process_emails",
        name="Process Guest Emails",
    )

    # Expired check-in links (daily)
    scheduler.add_job(
        checkin.cleanup_expired_tokens,
        "cron",
        hour=sched_config.get("token_cleanup_hour", 3),
        minute=0,
        id="token_cleanup",
        name="Check-in Token Cleanup",
    )

    # Morning reminders
    scheduler.add_job(
        notifier.send_morning_reminders,
        "cron",
        hour=sched_config.get("cleaner_reminder_hour", 7),
        minute=0,
        id="morning_reminders",
        name="Morning Reminders",
    )

    logger.info("Scheduler configured with %d jobs", len(scheduler.get_jobs()))
    return scheduler
