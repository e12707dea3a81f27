from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, model_validator

from mailconnect.models.email import Email, EmailStatus
from mailconnect.models.email_activity import EmailActivity


class SendEmailRequest(BaseModel):
    subject: str = Field(..., min_length=1)
    body: str = Field(
        ..., min_length=1,
        description="HTML body. {{ name }} and {{ email }} are filled in per recipient; other text is sent as written",
    )
    to: Optional[EmailStr] = None
    list_id: Optional[str] = None
    scheduled_for: Optional[datetime] = Field(None, description="When set, the email is queued for the scheduler instead of sent now")

    @model_validator(mode="after")
    def needs_recipients(self):
        if not self.to and not self.list_id:
            raise ValueError("Either 'to' or 'list_id' is required")
        return self


class ScheduleEmailRequest(BaseModel):
    scheduled_for: datetime


class EmailOut(BaseModel):
    id: str
    owner_id: str
    subject: str
    body: str
    to: Optional[str] = None
    list_id: Optional[str] = None
    status: EmailStatus
    scheduled_for: Optional[datetime | str] = None
    sent_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, email: Email) -> "EmailOut":
        return cls(**email.model_dump())


class EmailActivityOut(BaseModel):
    id: str
    email_id: str
    type: str
    recipient_email: str
    timestamp: datetime

    @classmethod
    def from_model(cls, activity: EmailActivity) -> "EmailActivityOut":
        return cls(**activity.model_dump())


class RecipientResult(BaseModel):
    email: str
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class DispatchResult(BaseModel):
    email_id: str
    success: bool
    total: int
    sent: int
    failed: int
    results: List[RecipientResult]


class SendEmailResponse(BaseModel):
    message: str
    email: EmailOut
    result: Optional[DispatchResult] = None
