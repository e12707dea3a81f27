# mailconnect/models/recipient_list.py

from datetime import datetime
from typing import Optional

from mailconnect.models.base import Document


class RecipientList(Document):
    owner_id: str
    name: str
    description: Optional[str] = None
    created_at: Optional[datetime] = None
