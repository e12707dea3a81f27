# mailconnect/models/email.py

from datetime import datetime
from enum import Enum
from typing import Optional, Union

from mailconnect.models.base import Document


class EmailStatus(str, Enum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    SENDING = "sending"
    SENT = "sent"
    FAILED = "failed"


CLAIMABLE_STATUSES = (EmailStatus.DRAFT, EmailStatus.SCHEDULED)


class Email(Document):
    owner_id: str
    subject: str
    body: str

    # Exactly one of these is expected; `to` wins when both are present
    to: Optional[str] = None
    list_id: Optional[str] = None

    status: EmailStatus = EmailStatus.DRAFT
    # Kept as stored: older rows may carry a string, possibly unparseable
    scheduled_for: Optional[Union[datetime, str]] = None
    sent_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
