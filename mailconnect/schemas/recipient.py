from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class RecipientCreate(BaseModel):
    email: EmailStr
    name: Optional[str] = None
    list_id: Optional[str] = None


class RecipientOut(BaseModel):
    id: str
    owner_id: str
    email: str
    name: Optional[str] = None
    list_id: Optional[str] = None
    created_at: Optional[datetime] = None


class RecipientListCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None


class RecipientListOut(BaseModel):
    id: str
    owner_id: str
    name: str
    description: Optional[str] = None
    created_at: Optional[datetime] = None
