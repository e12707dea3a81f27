# mailconnect/core/db.py

import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING

logger = logging.getLogger(__name__)

USERS = "users"
RECIPIENTS = "recipients"
RECIPIENT_LISTS = "recipient_lists"
EMAILS = "emails"
EMAIL_ACTIVITIES = "email_activities"


class MongoStore:
    """
    Process-scoped handle to the document store.

    The motor client is created lazily by connect() and released by close().
    A client passed in by the caller stays owned by the caller. Every component
    reaches Mongo through this one handle.
    """

    def __init__(self, uri: str, db_name: str, client: Optional[AsyncIOMotorClient] = None):
        self._uri = uri
        self._db_name = db_name
        self._client = client
        self._owns_client = client is None

    @property
    def db(self) -> AsyncIOMotorDatabase:
        if self._client is None:
            raise RuntimeError("MongoDB client not initialized. Call connect() first.")
        return self._client[self._db_name]

    async def connect(self) -> None:
        if self._client is None:
            self._client = AsyncIOMotorClient(self._uri, tz_aware=True)
        await self.ensure_indexes()
        logger.info(f"✅ MongoDB database '{self._db_name}' is available")

    async def ensure_indexes(self) -> None:
        db = self.db
        await db[USERS].create_index([("username", ASCENDING)], unique=True)
        await db[RECIPIENTS].create_index([("owner_id", ASCENDING), ("list_id", ASCENDING)])
        await db[RECIPIENT_LISTS].create_index([("owner_id", ASCENDING)])
        await db[EMAILS].create_index([("status", ASCENDING)])
        await db[EMAILS].create_index([("owner_id", ASCENDING), ("status", ASCENDING)])
        await db[EMAIL_ACTIVITIES].create_index([("email_id", ASCENDING)])

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None
            logger.info("🛑 MongoDB connection closed.")
