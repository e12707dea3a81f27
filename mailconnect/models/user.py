# mailconnect/models/user.py

from datetime import datetime
from typing import Optional

from mailconnect.models.base import Document


class User(Document):
    username: str
    password_hash: str

    email: Optional[str] = None
    name: Optional[str] = None

    # Written only by the Gmail connect flow
    gmail_connected: bool = False
    gmail_refresh_token: Optional[str] = None  # Fernet ciphertext
    gmail_email: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __repr__(self):
        return f"<User id={self.id} username={self.username} gmail_connected={self.gmail_connected}>"
