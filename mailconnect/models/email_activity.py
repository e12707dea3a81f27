# mailconnect/models/email_activity.py

from datetime import datetime

from mailconnect.models.base import Document

ACTIVITY_SENT = "sent"


class EmailActivity(Document):
    email_id: str
    type: str
    recipient_email: str
    timestamp: datetime
