import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from mailconnect.dependencies.auth import get_current_user, require_owner
from mailconnect.dependencies.services import get_storage
from mailconnect.schemas.recipient import RecipientCreate, RecipientOut
from mailconnect.schemas.user import SessionUser
from mailconnect.services.storage import Storage

# === Logger
logger = logging.getLogger("recipients")

# === FastAPI router
router = APIRouter()


@router.post("/recipients", response_model=RecipientOut, status_code=201)
async def create_recipient(
    payload: RecipientCreate,
    user: SessionUser = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    if payload.list_id:
        require_owner(await storage.get_recipient_list(payload.list_id), user, "Recipient list")

    recipient = await storage.create_recipient(
        owner_id=user.id,
        email=payload.email,
        name=payload.name,
        list_id=payload.list_id,
    )
    return RecipientOut(**recipient.model_dump())


@router.get("/recipients", response_model=List[RecipientOut])
async def get_recipients(
    list_id: Optional[str] = Query(None),
    user: SessionUser = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    recipients = await storage.get_recipients(user.id, list_id)
    return [RecipientOut(**r.model_dump()) for r in recipients]


@router.delete("/recipients/{recipient_id}")
async def delete_recipient(
    recipient_id: str,
    user: SessionUser = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    require_owner(await storage.get_recipient(recipient_id), user, "Recipient")
    await storage.delete_recipient(recipient_id)
    return {"detail": "Recipient deleted successfully"}
