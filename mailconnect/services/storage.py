# mailconnect/services/storage.py

import functools
import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from mailconnect.core.db import (
    EMAIL_ACTIVITIES,
    EMAILS,
    RECIPIENT_LISTS,
    RECIPIENTS,
    USERS,
    MongoStore,
)
from mailconnect.core.errors import ConflictError, StoreError
from mailconnect.models.base import utcnow
from mailconnect.models.email import CLAIMABLE_STATUSES, Email, EmailStatus
from mailconnect.models.email_activity import EmailActivity
from mailconnect.models.recipient import Recipient
from mailconnect.models.recipient_list import RecipientList
from mailconnect.models.user import User

logger = logging.getLogger(__name__)

# A SENDING claim older than this is treated as abandoned (crashed worker)
STALE_CLAIM_AFTER = timedelta(minutes=15)


def _object_id(value: str) -> Optional[ObjectId]:
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        logger.warning(f"⚠️ Invalid ObjectId format: {value}")
        return None


def _status_value(status) -> str:
    return status.value if isinstance(status, EmailStatus) else str(status)


def store_operation(func):
    """Logs driver failures and re-raises them as StoreError."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except PyMongoError as e:
            logger.exception(f"❌ MongoDB error in {func.__name__}")
            raise StoreError() from e

    return wrapper


class Storage:
    """
    Per-entity CRUD against the named collections.

    Multi-step operations are independent writes: there are no transactions
    across collections and nothing is rolled back.
    """

    def __init__(self, store: MongoStore):
        self._store = store

    def _collection(self, name: str):
        return self._store.db[name]

    # -----------------------------
    # Users
    # -----------------------------
    @store_operation
    async def create_user(self, username: str, password_hash: str, email: Optional[str] = None,
                          name: Optional[str] = None) -> User:
        doc = {
            "username": username,
            "password_hash": password_hash,
            "email": email,
            "name": name,
            "gmail_connected": False,
            "gmail_refresh_token": None,
            "gmail_email": None,
            "created_at": utcnow(),
        }
        try:
            result = await self._collection(USERS).insert_one(doc)
        except DuplicateKeyError:
            raise ConflictError("Username already registered")
        doc["_id"] = result.inserted_id
        return User.from_document(doc)

    @store_operation
    async def get_user(self, user_id: str) -> Optional[User]:
        oid = _object_id(user_id)
        if oid is None:
            return None
        doc = await self._collection(USERS).find_one({"_id": oid})
        return User.from_document(doc) if doc else None

    @store_operation
    async def get_user_by_username(self, username: str) -> Optional[User]:
        doc = await self._collection(USERS).find_one({"username": username})
        return User.from_document(doc) if doc else None

    @store_operation
    async def update_gmail_connection(self, user_id: str, refresh_token: str, gmail_email: str) -> Optional[User]:
        oid = _object_id(user_id)
        if oid is None:
            return None
        doc = await self._collection(USERS).find_one_and_update(
            {"_id": oid},
            {"$set": {
                "gmail_connected": True,
                "gmail_refresh_token": refresh_token,
                "gmail_email": gmail_email,
                "updated_at": utcnow(),
            }},
            return_document=ReturnDocument.AFTER,
        )
        return User.from_document(doc) if doc else None

    # -----------------------------
    # Recipient lists
    # -----------------------------
    @store_operation
    async def create_recipient_list(self, owner_id: str, name: str, description: Optional[str] = None) -> RecipientList:
        doc = {
            "owner_id": owner_id,
            "name": name,
            "description": description,
            "created_at": utcnow(),
        }
        result = await self._collection(RECIPIENT_LISTS).insert_one(doc)
        doc["_id"] = result.inserted_id
        return RecipientList.from_document(doc)

    @store_operation
    async def get_recipient_lists(self, owner_id: str) -> List[RecipientList]:
        docs = await self._collection(RECIPIENT_LISTS).find({"owner_id": owner_id}).to_list(length=None)
        return [RecipientList.from_document(d) for d in docs]

    @store_operation
    async def get_recipient_list(self, list_id: str) -> Optional[RecipientList]:
        oid = _object_id(list_id)
        if oid is None:
            return None
        doc = await self._collection(RECIPIENT_LISTS).find_one({"_id": oid})
        return RecipientList.from_document(doc) if doc else None

    @store_operation
    async def delete_recipient_list(self, list_id: str) -> bool:
        oid = _object_id(list_id)
        if oid is None:
            return False
        result = await self._collection(RECIPIENT_LISTS).delete_one({"_id": oid})
        if result.deleted_count == 0:
            return False
        # Second, independent write: members stay as plain recipients
        await self._collection(RECIPIENTS).update_many({"list_id": list_id}, {"$set": {"list_id": None}})
        return True

    # -----------------------------
    # Recipients
    # -----------------------------
    @store_operation
    async def create_recipient(self, owner_id: str, email: str, name: Optional[str] = None,
                               list_id: Optional[str] = None) -> Recipient:
        doc = {
            "owner_id": owner_id,
            "email": email,
            "name": name,
            "list_id": list_id,
            "created_at": utcnow(),
        }
        result = await self._collection(RECIPIENTS).insert_one(doc)
        doc["_id"] = result.inserted_id
        return Recipient.from_document(doc)

    @store_operation
    async def get_recipients(self, owner_id: str, list_id: Optional[str] = None) -> List[Recipient]:
        query = {"owner_id": owner_id}
        if list_id:
            query["list_id"] = list_id
        docs = await self._collection(RECIPIENTS).find(query).to_list(length=None)
        return [Recipient.from_document(d) for d in docs]

    @store_operation
    async def get_recipient(self, recipient_id: str) -> Optional[Recipient]:
        oid = _object_id(recipient_id)
        if oid is None:
            return None
        doc = await self._collection(RECIPIENTS).find_one({"_id": oid})
        return Recipient.from_document(doc) if doc else None

    @store_operation
    async def delete_recipient(self, recipient_id: str) -> bool:
        oid = _object_id(recipient_id)
        if oid is None:
            return False
        result = await self._collection(RECIPIENTS).delete_one({"_id": oid})
        return result.deleted_count > 0

    # -----------------------------
    # Emails
    # -----------------------------
    @store_operation
    async def create_email(self, owner_id: str, subject: str, body: str, to: Optional[str] = None,
                           list_id: Optional[str] = None, status: EmailStatus = EmailStatus.DRAFT,
                           scheduled_for: Optional[datetime] = None) -> Email:
        doc = {
            "owner_id": owner_id,
            "subject": subject,
            "body": body,
            "to": to,
            "list_id": list_id,
            "status": _status_value(status),
            "scheduled_for": scheduled_for,
            "sent_at": None,
            "created_at": utcnow(),
        }
        result = await self._collection(EMAILS).insert_one(doc)
        doc["_id"] = result.inserted_id
        return Email.from_document(doc)

    @store_operation
    async def get_emails(self, owner_id: str, status: Optional[EmailStatus] = None) -> List[Email]:
        query = {"owner_id": owner_id}
        if status:
            query["status"] = _status_value(status)
        docs = await self._collection(EMAILS).find(query).to_list(length=None)
        return [Email.from_document(d) for d in docs]

    @store_operation
    async def get_emails_by_status(self, status: EmailStatus) -> List[Email]:
        """Global scan across all owners, used by the scheduler."""
        docs = await self._collection(EMAILS).find({"status": _status_value(status)}).to_list(length=None)
        return [Email.from_document(d) for d in docs]

    @store_operation
    async def count_emails(self, owner_id: str, status: EmailStatus) -> int:
        return await self._collection(EMAILS).count_documents(
            {"owner_id": owner_id, "status": _status_value(status)}
        )

    @store_operation
    async def get_email(self, email_id: str) -> Optional[Email]:
        oid = _object_id(email_id)
        if oid is None:
            return None
        doc = await self._collection(EMAILS).find_one({"_id": oid})
        return Email.from_document(doc) if doc else None

    @store_operation
    async def claim_email(self, email_id: str,
                          from_statuses: Iterable[EmailStatus] = CLAIMABLE_STATUSES) -> Optional[Email]:
        """
        Atomically moves an email into SENDING if it is currently in one of
        `from_statuses`. Returns the claimed email, or None if another caller
        got there first (or the email is gone).
        """
        oid = _object_id(email_id)
        if oid is None:
            return None
        doc = await self._collection(EMAILS).find_one_and_update(
            {"_id": oid, "status": {"$in": [_status_value(s) for s in from_statuses]}},
            {"$set": {"status": EmailStatus.SENDING.value, "claimed_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        return Email.from_document(doc) if doc else None

    @store_operation
    async def update_email_status(self, email_id: str, status: EmailStatus,
                                  sent_at: Optional[datetime] = None) -> Optional[Email]:
        oid = _object_id(email_id)
        if oid is None:
            return None
        update = {"status": _status_value(status)}
        if sent_at:
            update["sent_at"] = sent_at
        doc = await self._collection(EMAILS).find_one_and_update(
            {"_id": oid},
            {"$set": update},
            return_document=ReturnDocument.AFTER,
        )
        return Email.from_document(doc) if doc else None

    @store_operation
    async def update_email_schedule(self, email_id: str, scheduled_for: datetime,
                                    stale_after: timedelta = STALE_CLAIM_AFTER) -> Optional[Email]:
        """
        Moves an email back to SCHEDULED. Returns None while it is in flight,
        unless its SENDING claim is older than `stale_after`.
        """
        oid = _object_id(email_id)
        if oid is None:
            return None
        doc = await self._collection(EMAILS).find_one_and_update(
            {"_id": oid, "$or": [
                {"status": {"$ne": EmailStatus.SENDING.value}},
                {"claimed_at": {"$lt": utcnow() - stale_after}},
            ]},
            {"$set": {"status": EmailStatus.SCHEDULED.value, "scheduled_for": scheduled_for}},
            return_document=ReturnDocument.AFTER,
        )
        return Email.from_document(doc) if doc else None

    @store_operation
    async def delete_email(self, email_id: str) -> bool:
        oid = _object_id(email_id)
        if oid is None:
            return False
        result = await self._collection(EMAILS).delete_one({"_id": oid})
        return result.deleted_count > 0

    # -----------------------------
    # Email activity
    # -----------------------------
    @store_operation
    async def create_email_activity(self, email_id: str, type: str, recipient_email: str) -> EmailActivity:
        doc = {
            "email_id": email_id,
            "type": type,
            "recipient_email": recipient_email,
            "timestamp": utcnow(),
        }
        result = await self._collection(EMAIL_ACTIVITIES).insert_one(doc)
        doc["_id"] = result.inserted_id
        return EmailActivity.from_document(doc)

    @store_operation
    async def get_email_activities(self, email_id: str) -> List[EmailActivity]:
        docs = await self._collection(EMAIL_ACTIVITIES).find({"email_id": email_id}).to_list(length=None)
        return [EmailActivity.from_document(d) for d in docs]

    @store_operation
    async def count_email_activities(self, email_ids: List[str]) -> int:
        if not email_ids:
            return 0
        return await self._collection(EMAIL_ACTIVITIES).count_documents({"email_id": {"$in": email_ids}})
