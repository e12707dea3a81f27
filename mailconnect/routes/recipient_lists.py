import logging
from typing import List

from fastapi import APIRouter, Depends

from mailconnect.dependencies.auth import get_current_user, require_owner
from mailconnect.dependencies.services import get_storage
from mailconnect.schemas.recipient import RecipientListCreate, RecipientListOut, RecipientOut
from mailconnect.schemas.user import SessionUser
from mailconnect.services.storage import Storage

logger = logging.getLogger("recipient_lists")

router = APIRouter()


@router.post("/recipient-lists", response_model=RecipientListOut, status_code=201)
async def create_recipient_list(
    payload: RecipientListCreate,
    user: SessionUser = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    recipient_list = await storage.create_recipient_list(user.id, payload.name, payload.description)
    return RecipientListOut(**recipient_list.model_dump())


@router.get("/recipient-lists", response_model=List[RecipientListOut])
async def get_recipient_lists(
    user: SessionUser = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    lists = await storage.get_recipient_lists(user.id)
    return [RecipientListOut(**rl.model_dump()) for rl in lists]


@router.get("/recipient-lists/{list_id}", response_model=RecipientListOut)
async def get_recipient_list(
    list_id: str,
    user: SessionUser = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    recipient_list = require_owner(await storage.get_recipient_list(list_id), user, "Recipient list")
    return RecipientListOut(**recipient_list.model_dump())


@router.get("/recipient-lists/{list_id}/recipients", response_model=List[RecipientOut])
async def get_list_members(
    list_id: str,
    user: SessionUser = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    require_owner(await storage.get_recipient_list(list_id), user, "Recipient list")
    recipients = await storage.get_recipients(user.id, list_id)
    return [RecipientOut(**r.model_dump()) for r in recipients]


@router.delete("/recipient-lists/{list_id}")
async def delete_recipient_list(
    list_id: str,
    user: SessionUser = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    require_owner(await storage.get_recipient_list(list_id), user, "Recipient list")
    await storage.delete_recipient_list(list_id)
    logger.info(f"🗑️ Recipient list {list_id} deleted by {user.username}")
    return {"detail": "Recipient list deleted successfully"}
