import logging
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Header
from fastapi.responses import RedirectResponse

from mailconnect.core.config import Settings
from mailconnect.core.errors import MailConnectError
from mailconnect.dependencies.auth import get_current_user, get_optional_user
from mailconnect.dependencies.services import Services, get_services, get_settings, get_storage
from mailconnect.schemas.user import GmailStatus, SessionUser
from mailconnect.services.security import create_gmail_state, read_gmail_state
from mailconnect.services.storage import Storage

logger = logging.getLogger("gmail")

router = APIRouter()


def _dashboard_redirect(services: Services, query: str) -> RedirectResponse:
    return RedirectResponse(f"{services.settings.frontend_url}/dashboard?{query}", status_code=302)


# -----------------------------
# Consent URL
# -----------------------------
@router.get("/gmail/auth")
async def gmail_auth_url(
    user: SessionUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    state = create_gmail_state(user.id, services.settings)
    return {"auth_url": services.oauth.build_authorization_url(state=state)}


# -----------------------------
# OAuth callback (browser redirect from Google)
# -----------------------------
@router.get("/gmail/callback")
async def gmail_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    services: Services = Depends(get_services),
):
    if error:
        logger.error(f"❌ Google OAuth error: {error}")
        return _dashboard_redirect(services, f"gmailError={quote(error)}")

    if not code:
        logger.error("❌ Invalid code received in callback")
        return _dashboard_redirect(services, "gmailError=invalid_code")

    try:
        user_id = read_gmail_state(state, services.settings)
    except MailConnectError:
        logger.error("❌ OAuth state missing or invalid")
        return RedirectResponse(f"{services.settings.frontend_url}/login?error=auth_required", status_code=302)

    try:
        connection = await services.oauth.exchange_code(code)
    except MailConnectError as e:
        logger.error(f"❌ Gmail callback error for user {user_id}: {e.detail}")
        return _dashboard_redirect(services, "gmailError=connection_failed")

    try:
        encrypted = services.cipher.encrypt(connection.refresh_token, user_id)
        updated = await services.storage.update_gmail_connection(user_id, encrypted, connection.email)
    except MailConnectError:
        logger.exception(f"❌ Error updating user {user_id} with Gmail connection")
        return _dashboard_redirect(services, "gmailError=db_update_failed")

    if not updated:
        logger.error(f"❌ No user {user_id} found to update with Gmail connection")
        return _dashboard_redirect(services, "gmailError=user_not_found")

    logger.info(f"✅ Gmail connected for user {user_id} as {connection.email}")
    return _dashboard_redirect(services, "gmailConnected=success")


# -----------------------------
# Connection status
# -----------------------------
@router.get("/gmail/status", response_model=GmailStatus)
async def gmail_status(
    authorization: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
    storage: Storage = Depends(get_storage),
):
    # Always answers: a bad token or a store failure reads as not connected
    try:
        user = await get_optional_user(authorization, settings, storage)
        record = await storage.get_user(user.id) if user else None
    except MailConnectError as e:
        logger.warning(f"⚠️ Gmail status unavailable: {e.detail}")
        return GmailStatus(connected=False)

    if not record:
        return GmailStatus(connected=False)
    return GmailStatus(connected=record.gmail_connected, email=record.gmail_email)
