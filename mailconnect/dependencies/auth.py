import logging
from typing import Optional

from fastapi import Depends, Header

from mailconnect.core.config import Settings
from mailconnect.core.errors import AuthenticationError, AuthorizationError, NotFoundError
from mailconnect.dependencies.services import get_settings, get_storage
from mailconnect.schemas.user import SessionUser
from mailconnect.services.security import decode_token
from mailconnect.services.storage import Storage

# === Setup logging
logger = logging.getLogger(__name__)


# === Auth Dependency
async def get_optional_user(
    authorization: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
    storage: Storage = Depends(get_storage),
) -> Optional[SessionUser]:
    if not authorization:
        return None

    if not authorization.startswith("Bearer "):
        logger.warning("⚠️ Missing 'Bearer' in token header.")
        raise AuthenticationError("Invalid token format")

    payload = decode_token(authorization.split(" ", 1)[1], settings)
    user_id = payload.get("sub")
    if not user_id or payload.get("action"):
        logger.warning("⚠️ Token is not an access token.")
        raise AuthenticationError("Invalid token")

    user = await storage.get_user(user_id)
    if not user:
        logger.warning(f"❌ User not found for ID: {user_id}")
        raise AuthenticationError("User no longer exists")

    return SessionUser.from_user(user)


async def get_current_user(user: Optional[SessionUser] = Depends(get_optional_user)) -> SessionUser:
    if user is None:
        raise AuthenticationError("Unauthorized")
    return user


def require_owner(entity, user: SessionUser, label: str):
    """404 when the entity is missing, 403 when it belongs to someone else."""
    if entity is None:
        raise NotFoundError(f"{label} not found")
    if entity.owner_id != user.id:
        raise AuthorizationError(f"Unauthorized to access this {label.lower()}")
    return entity
