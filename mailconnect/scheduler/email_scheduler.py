# mailconnect/scheduler/email_scheduler.py

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from mailconnect.core.errors import EmailAlreadyClaimed
from mailconnect.models.base import utcnow
from mailconnect.models.email import Email, EmailStatus
from mailconnect.services.email import Dispatcher, parse_scheduled_for
from mailconnect.services.storage import Storage

logger = logging.getLogger(__name__)

JOB_ID = "scheduled-email-dispatch"


@dataclass
class TickReport:
    now: datetime
    due: List[str] = field(default_factory=list)
    sent: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


def select_due(emails: List[Email], now: datetime) -> List[Email]:
    due = []
    for email in emails:
        if email.scheduled_for is None:
            logger.warning(f"⚠️ Email {email.id} has no scheduled date.")
            continue
        when = parse_scheduled_for(email.scheduled_for)
        if when is None:
            logger.error(f"❌ Invalid date format for email {email.id}: {email.scheduled_for!r}")
            continue
        if when <= now:
            due.append(email)
    return due


async def process_due_emails(storage: Storage, dispatcher: Dispatcher, now: Optional[datetime] = None) -> TickReport:
    """
    One scheduler tick: scan every SCHEDULED email, dispatch the ones due at
    `now` (a single snapshot for the whole tick). A failure on one email is
    logged and does not stop the others.
    """
    report = TickReport(now=now or utcnow())
    logger.info("⏱️ Running email scheduler...")

    scheduled = await storage.get_emails_by_status(EmailStatus.SCHEDULED)
    due = select_due(scheduled, report.now)
    report.due = [e.id for e in due]
    logger.info(f"✅ Found {len(due)} emails to send.")

    for email in due:
        try:
            await dispatcher.send(email)
            report.sent.append(email.id)
            logger.info(f"📧 Successfully sent email ID: {email.id}")
        except EmailAlreadyClaimed:
            report.skipped.append(email.id)
            logger.info(f"⏭️ Email {email.id} was claimed by another sender")
        except Exception:
            report.failed.append(email.id)
            logger.exception(f"❌ Failed to send email ID: {email.id}")

    return report


class EmailScheduler:
    """Process-lifetime interval job around process_due_emails."""

    def __init__(self, storage: Storage, dispatcher: Dispatcher, interval_seconds: int = 60, max_instances: int = 3):
        self.storage = storage
        self.dispatcher = dispatcher
        self.interval_seconds = interval_seconds
        self.max_instances = max_instances
        self.scheduler = AsyncIOScheduler(timezone="UTC")

    async def tick(self) -> None:
        try:
            await process_due_emails(self.storage, self.dispatcher)
        except Exception:
            logger.exception("❌ Scheduler failed to run")

    def start(self) -> None:
        # Overlapping ticks are allowed; the claim step keeps them from double-sending
        self.scheduler.add_job(
            self.tick,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=JOB_ID,
            max_instances=self.max_instances,
            coalesce=False,
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info(f"✅ Email scheduler started (every {self.interval_seconds}s)")

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("🛑 Email scheduler stopped.")
