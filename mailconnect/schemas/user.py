from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from mailconnect.models.user import User


class UserRegister(BaseModel):
    username: str = Field(..., min_length=3, max_length=64)
    password: str = Field(..., min_length=8, max_length=72, description="Password must be 8-72 characters")
    email: Optional[EmailStr] = None
    name: Optional[str] = None


class UserLogin(BaseModel):
    username: str
    password: str


class SessionUser(BaseModel):
    """The authenticated caller, resolved once per request from the bearer token."""

    id: str
    username: str
    gmail_connected: bool = False

    @classmethod
    def from_user(cls, user: User) -> "SessionUser":
        return cls(id=user.id, username=user.username, gmail_connected=user.gmail_connected)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: SessionUser


class GmailStatus(BaseModel):
    connected: bool
    email: Optional[str] = None
