# mailconnect/services/security.py

from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
from jose import JWTError, jwt

from mailconnect.core.config import Settings
from mailconnect.core.errors import AuthenticationError

GMAIL_LINK_ACTION = "gmail_link"
GMAIL_LINK_EXPIRE_MINUTES = 15


# === Hashing Utilities ===
def get_password_hash(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(plain.encode(), hashed.encode())
    except ValueError:
        return False


# === Token Utilities ===
def create_jwt_token(data: dict, settings: Settings, expires_in_minutes: int) -> str:
    now = datetime.now(timezone.utc)
    payload = data.copy()
    payload["exp"] = now + timedelta(minutes=expires_in_minutes)
    payload["iat"] = now
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: Settings) -> dict:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise AuthenticationError("Invalid or expired token")


def create_access_token(user_id: str, settings: Settings) -> str:
    return create_jwt_token({"sub": user_id}, settings, settings.access_token_expire_minutes)


def create_gmail_state(user_id: str, settings: Settings) -> str:
    """OAuth `state` that carries the user through Google's redirect."""
    return create_jwt_token({"sub": user_id, "action": GMAIL_LINK_ACTION}, settings, GMAIL_LINK_EXPIRE_MINUTES)


def read_gmail_state(state: Optional[str], settings: Settings) -> str:
    if not state:
        raise AuthenticationError("Missing OAuth state")
    payload = decode_token(state, settings)
    if payload.get("action") != GMAIL_LINK_ACTION or not payload.get("sub"):
        raise AuthenticationError("Invalid OAuth state")
    return payload["sub"]
