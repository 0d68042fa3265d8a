import logging
from typing import Any, Awaitable, Callable, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorClientSession, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from vouchervault.core.config import Settings

logger = logging.getLogger(__name__)


class MongoDatabase:
    """MongoDB connection manager.

    One instance per process, created and closed by the application lifespan
    and handed to repositories and services explicitly.
    """

    def __init__(self, url: str, database_name: str):
        self.url = url
        self.database_name = database_name
        self.client: Optional[AsyncIOMotorClient] = None
        self.db: Optional[AsyncIOMotorDatabase] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "MongoDatabase":
        return cls(settings.MONGODB_URL, settings.DATABASE_NAME)

    async def connect(self) -> AsyncIOMotorDatabase:
        """Connect to MongoDB and make sure indexes exist."""
        self.client = AsyncIOMotorClient(self.url, tz_aware=True)
        self.db = self.client[self.database_name]
        await create_indexes(self.db)
        logger.info("Connected to MongoDB: %s", self.database_name)
        return self.db

    async def close(self) -> None:
        """Disconnect from MongoDB."""
        if self.client is not None:
            self.client.close()
            logger.info("Disconnected from MongoDB")
        self.client = None
        self.db = None


async def create_indexes(db: AsyncIOMotorDatabase) -> None:
    """Create database indexes."""
    # User email unique index
    await db["users"].create_index("email", unique=True)

    # Voucher indexes
    await db["vouchers"].create_index([("owner_id", ASCENDING), ("created_at", DESCENDING)])
    await db["vouchers"].create_index("family_id")

    # Family indexes
    await db["families"].create_index("owner_id")
    await db["families"].create_index("members.email")

    # At most one pending invite per (family, email)
    await db["family_invites"].create_index(
        [("family_id", ASCENDING), ("invitee_email", ASCENDING)],
        unique=True,
        partialFilterExpression={"status": "pending"},
        name="one_pending_invite_per_email",
    )
    await db["family_invites"].create_index([("invitee_email", ASCENDING), ("status", ASCENDING)])

    # Notification and reminder indexes
    await db["notifications"].create_index([("user_id", ASCENDING), ("timestamp", DESCENDING)])
    await db["reminders"].create_index("voucher_id")
    await db["reminders"].create_index([("sent", ASCENDING), ("fire_at", ASCENDING)])


async def run_in_transaction(
    db: AsyncIOMotorDatabase,
    callback: Callable[[AsyncIOMotorClientSession], Awaitable[Any]],
) -> Any:
    """
    Run ``callback(session)`` inside one multi-document transaction.

    The driver re-runs the callback on transient write conflicts, so the
    callback must re-read whatever state it decides on. Any exception raised
    by the callback aborts the transaction and propagates.
    """
    async with await db.client.start_session() as session:
        return await session.with_transaction(callback)
