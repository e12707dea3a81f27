import logging

from fastapi import APIRouter, Depends

from mailconnect.core.config import Settings
from mailconnect.core.errors import AuthenticationError, ConflictError
from mailconnect.dependencies.auth import get_current_user
from mailconnect.dependencies.services import get_settings, get_storage
from mailconnect.schemas.user import SessionUser, TokenResponse, UserLogin, UserRegister
from mailconnect.services.security import create_access_token, get_password_hash, verify_password
from mailconnect.services.storage import Storage

logger = logging.getLogger(__name__)

router = APIRouter()


def issue_token(user: SessionUser, settings: Settings) -> TokenResponse:
    return TokenResponse(access_token=create_access_token(user.id, settings), user=user)


# === Register ===
@router.post("/auth/register", response_model=TokenResponse, status_code=201)
async def register(
    payload: UserRegister,
    settings: Settings = Depends(get_settings),
    storage: Storage = Depends(get_storage),
):
    username = payload.username.strip()
    if await storage.get_user_by_username(username):
        raise ConflictError("Username already registered")

    user = await storage.create_user(
        username=username,
        password_hash=get_password_hash(payload.password),
        email=payload.email,
        name=payload.name,
    )
    logger.info(f"✨ Registered user {user.username} ({user.id})")
    return issue_token(SessionUser.from_user(user), settings)


# === Login ===
@router.post("/auth/login", response_model=TokenResponse)
async def login(
    payload: UserLogin,
    settings: Settings = Depends(get_settings),
    storage: Storage = Depends(get_storage),
):
    user = await storage.get_user_by_username(payload.username.strip())
    if not user or not verify_password(payload.password, user.password_hash):
        raise AuthenticationError("Invalid username or password")
    return issue_token(SessionUser.from_user(user), settings)


# === Logout ===
@router.post("/auth/logout")
async def logout(user: SessionUser = Depends(get_current_user)):
    # Tokens are stateless; the client discards its copy
    logger.info(f"👋 User {user.username} logged out")
    return {"detail": "Logged out successfully"}


# === /auth/me ===
@router.get("/auth/me", response_model=SessionUser)
async def get_me(user: SessionUser = Depends(get_current_user)):
    return user
