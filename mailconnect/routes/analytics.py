from fastapi import APIRouter, Depends

from mailconnect.dependencies.auth import get_current_user
from mailconnect.dependencies.services import get_storage
from mailconnect.models.email import EmailStatus
from mailconnect.schemas.user import SessionUser
from mailconnect.services.storage import Storage

router = APIRouter()


@router.get("/analytics/overview")
async def analytics_overview(
    user: SessionUser = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    sent_emails = await storage.get_emails(user.id, EmailStatus.SENT)
    delivered = await storage.count_email_activities([e.id for e in sent_emails])

    return {
        "total_sent": len(sent_emails),
        "scheduled": await storage.count_emails(user.id, EmailStatus.SCHEDULED),
        "failed": await storage.count_emails(user.id, EmailStatus.FAILED),
        "drafts": await storage.count_emails(user.id, EmailStatus.DRAFT),
        "recipients_reached": delivered,
    }
