import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from mailconnect.core.errors import ConflictError
from mailconnect.dependencies.auth import get_current_user, require_owner
from mailconnect.dependencies.services import get_dispatcher, get_storage
from mailconnect.models.base import as_utc
from mailconnect.models.email import EmailStatus
from mailconnect.schemas.email import (
    DispatchResult,
    EmailActivityOut,
    EmailOut,
    ScheduleEmailRequest,
    SendEmailRequest,
    SendEmailResponse,
)
from mailconnect.schemas.user import SessionUser
from mailconnect.services.email import Dispatcher, get_scheduled_emails, schedule_email
from mailconnect.services.storage import Storage

logger = logging.getLogger("emails")

router = APIRouter()


# -----------------------------
# 📤 Create + send now / schedule
# -----------------------------
@router.post("/emails", response_model=SendEmailResponse)
async def create_email(
    payload: SendEmailRequest,
    user: SessionUser = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
    dispatcher: Dispatcher = Depends(get_dispatcher),
):
    if payload.list_id:
        require_owner(await storage.get_recipient_list(payload.list_id), user, "Recipient list")

    scheduled_for = as_utc(payload.scheduled_for) if payload.scheduled_for else None
    email = await storage.create_email(
        owner_id=user.id,
        subject=payload.subject,
        body=payload.body,
        to=payload.to,
        list_id=payload.list_id,
        status=EmailStatus.SCHEDULED if scheduled_for else EmailStatus.DRAFT,
        scheduled_for=scheduled_for,
    )

    if scheduled_for:
        email = await schedule_email(storage, email)
        return SendEmailResponse(message="Email scheduled successfully", email=EmailOut.from_model(email))

    result = await dispatcher.send(email)
    sent = await storage.get_email(email.id) or email
    return SendEmailResponse(message="Email sent successfully", email=EmailOut.from_model(sent), result=result)


# -----------------------------
# 📥 Listing
# -----------------------------
@router.get("/emails", response_model=List[EmailOut])
async def get_emails(
    status: Optional[EmailStatus] = Query(None),
    user: SessionUser = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    emails = await storage.get_emails(user.id, status)
    return [EmailOut.from_model(e) for e in emails]


@router.get("/emails/scheduled", response_model=List[EmailOut])
async def get_scheduled(
    user: SessionUser = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    emails = await get_scheduled_emails(storage, user.id)
    return [EmailOut.from_model(e) for e in emails]


@router.get("/emails/{email_id}", response_model=EmailOut)
async def get_email(
    email_id: str,
    user: SessionUser = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    email = require_owner(await storage.get_email(email_id), user, "Email")
    return EmailOut.from_model(email)


@router.get("/emails/{email_id}/activities", response_model=List[EmailActivityOut])
async def get_email_activities(
    email_id: str,
    user: SessionUser = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    require_owner(await storage.get_email(email_id), user, "Email")
    activities = await storage.get_email_activities(email_id)
    return [EmailActivityOut.from_model(a) for a in activities]


# -----------------------------
# 🔁 Manual send / reschedule
# -----------------------------
@router.post("/emails/{email_id}/send", response_model=DispatchResult)
async def send_email_now(
    email_id: str,
    user: SessionUser = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
    dispatcher: Dispatcher = Depends(get_dispatcher),
):
    email = require_owner(await storage.get_email(email_id), user, "Email")
    return await dispatcher.send(email)


@router.post("/emails/{email_id}/schedule", response_model=EmailOut)
async def reschedule_email(
    email_id: str,
    payload: ScheduleEmailRequest,
    user: SessionUser = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    require_owner(await storage.get_email(email_id), user, "Email")
    email = await storage.update_email_schedule(email_id, as_utc(payload.scheduled_for))
    if email is None:
        raise ConflictError("Email is being sent and cannot be rescheduled")
    logger.info(f"🗓️ Email {email_id} rescheduled for {email.scheduled_for}")
    return EmailOut.from_model(email)


# -----------------------------
# 🗑️ Delete
# -----------------------------
@router.delete("/emails/{email_id}")
async def delete_email(
    email_id: str,
    user: SessionUser = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    require_owner(await storage.get_email(email_id), user, "Email")
    await storage.delete_email(email_id)
    return {"detail": "Email deleted successfully"}
