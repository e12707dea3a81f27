# mailconnect/models/recipient.py

from datetime import datetime
from typing import Optional

from mailconnect.models.base import Document


class Recipient(Document):
    owner_id: str
    email: str
    name: Optional[str] = None
    list_id: Optional[str] = None
    created_at: Optional[datetime] = None
