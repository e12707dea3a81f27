# mailconnect/services/email.py

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from mailconnect.core.errors import (
    AccountNotLinked,
    EmailAlreadyClaimed,
    NoRecipients,
    NotFoundError,
    StoreError,
    ValidationError,
)
from mailconnect.models.base import as_utc, utcnow
from mailconnect.models.email import Email, EmailStatus
from mailconnect.models.email_activity import ACTIVITY_SENT
from mailconnect.models.user import User
from mailconnect.schemas.email import DispatchResult, RecipientResult
from mailconnect.services.gmail import GmailOAuth, GmailTransport, OutgoingMessage
from mailconnect.services.storage import Storage
from mailconnect.utils.encryption import TokenCipher
from mailconnect.utils.templating import MessageTemplate

logger = logging.getLogger(__name__)


@dataclass
class Target:
    email: str
    name: Optional[str] = None


class Dispatcher:
    """
    Runs the send pipeline for one Email:
    claim -> resolve credential -> resolve recipients -> send each ->
    record activity -> update status.

    Per-recipient failures are only reported in the result, and the email
    ends up SENT once every recipient has been attempted. Anything else that
    escapes after the claim, cancellation included, marks the email FAILED
    and is re-raised.
    """

    def __init__(self, storage: Storage, oauth: GmailOAuth, transport: GmailTransport, cipher: TokenCipher):
        self.storage = storage
        self.oauth = oauth
        self.transport = transport
        self.cipher = cipher

    async def send(self, email: Email) -> DispatchResult:
        claimed = await self.storage.claim_email(email.id)
        if claimed is None:
            logger.warning(f"⚠️ Email {email.id} is not in a sendable state, skipping")
            raise EmailAlreadyClaimed()

        try:
            return await self._dispatch(claimed)
        except BaseException as e:
            logger.error(f"❌ Send email {claimed.id} failed: {e!r}")
            await self._mark_failed(claimed.id)
            raise

    async def _mark_failed(self, email_id: str) -> None:
        try:
            await self.storage.update_email_status(email_id, EmailStatus.FAILED)
        except StoreError as log_error:
            logger.critical(f"⚠️ Failed to mark email {email_id} as failed: {log_error}")

    async def _dispatch(self, claimed: Email) -> DispatchResult:
        user = await self.storage.get_user(claimed.owner_id)
        if not user:
            raise NotFoundError("User not found")
        credential = self._credential_for(user)
        targets = await self.resolve_recipients(claimed)
        template = MessageTemplate(claimed.subject, claimed.body)
        access_token = await self.oauth.refresh(credential)

        results: List[RecipientResult] = []
        for target in targets:
            results.append(await self._send_one(claimed, access_token, template, target))

        await self.storage.update_email_status(claimed.id, EmailStatus.SENT, sent_at=utcnow())

        sent = sum(1 for r in results if r.success)
        logger.info(f"📧 Email {claimed.id}: {sent}/{len(results)} recipients sent")
        return DispatchResult(
            email_id=claimed.id,
            success=sent == len(results),
            total=len(results),
            sent=sent,
            failed=len(results) - sent,
            results=results,
        )

    def _credential_for(self, user: User) -> str:
        if not user.gmail_connected or not user.gmail_refresh_token:
            raise AccountNotLinked()
        credential = self.cipher.decrypt(user.gmail_refresh_token, user.id)
        if not credential:
            raise AccountNotLinked("Stored Gmail credential is unreadable, reconnect Gmail")
        return credential

    async def resolve_recipients(self, email: Email) -> List[Target]:
        if email.to:
            return [Target(email=email.to)]
        if email.list_id:
            recipients = await self.storage.get_recipients(email.owner_id, email.list_id)
            if not recipients:
                raise NoRecipients("No recipients found")
            return [Target(email=r.email, name=r.name) for r in recipients]
        raise NoRecipients()

    async def _send_one(self, email: Email, access_token: str, template: MessageTemplate,
                        target: Target) -> RecipientResult:
        try:
            subject, body = template.render(target.email, target.name)
            message_id = await self.transport.submit(
                access_token, OutgoingMessage(to=target.email, subject=subject, html_body=body)
            )
        except Exception as e:
            logger.error(f"❌ Failed to send to {target.email}: {e}")
            return RecipientResult(email=target.email, success=False, error=str(e))

        try:
            await self.storage.create_email_activity(email.id, ACTIVITY_SENT, target.email)
        except StoreError:
            logger.exception(f"⚠️ Sent to {target.email} but failed to record activity")
        return RecipientResult(email=target.email, success=True, message_id=message_id)


# === Scheduling helpers
def parse_scheduled_for(value) -> Optional[datetime]:
    """
    Returns the scheduled time as an aware UTC datetime, or None when it is
    missing or cannot be parsed.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, str):
        try:
            return as_utc(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))
        except ValueError:
            return None
    return None


async def schedule_email(storage: Storage, email: Email) -> Email:
    """
    Confirms an email is queued for the scheduler. An email that is not
    SCHEDULED or carries no usable time is marked FAILED.
    """
    if email.status != EmailStatus.SCHEDULED or parse_scheduled_for(email.scheduled_for) is None:
        logger.error(f"❌ Email {email.id} is not scheduled or missing scheduled_for date")
        await storage.update_email_status(email.id, EmailStatus.FAILED)
        raise ValidationError("Email is not scheduled or missing scheduled_for date")
    logger.info(f"🗓️ Email {email.id} scheduled for {email.scheduled_for}")
    return email


async def get_scheduled_emails(storage: Storage, owner_id: str) -> List[Email]:
    emails = await storage.get_emails(owner_id, EmailStatus.SCHEDULED)

    def sort_key(email: Email):
        when = parse_scheduled_for(email.scheduled_for)
        return (when is None, when or utcnow())

    return sorted(emails, key=sort_key)
