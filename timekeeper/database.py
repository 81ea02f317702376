"""MongoDB database connection using Motor (async driver)."""
import logging
from contextlib import asynccontextmanager

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING
from pymongo.errors import PyMongoError

from timekeeper.config import settings
from timekeeper.exceptions import PersistenceError

logger = logging.getLogger(__name__)


class Database:
    """MongoDB database connection manager."""

    client: AsyncIOMotorClient | None = None
    db: AsyncIOMotorDatabase | None = None

    async def connect(self) -> None:
        """Connect to MongoDB and make sure the indexes exist."""
        self.client = AsyncIOMotorClient(settings.mongodb_url)
        self.db = self.client[settings.mongodb_db_name]
        await ensure_indexes(self.db)
        logger.info("Connected to MongoDB: %s", settings.mongodb_db_name)

    async def disconnect(self) -> None:
        """Disconnect from MongoDB."""
        if self.client:
            self.client.close()
            logger.info("Disconnected from MongoDB")

    def get_collection(self, name: str):
        """Get a MongoDB collection."""
        if self.db is None:
            raise RuntimeError("Database not connected")
        return self.db[name]


# Global database instance
database = Database()


async def get_database() -> AsyncIOMotorDatabase:
    """Dependency to get database instance."""
    if database.db is None:
        raise RuntimeError("Database not connected")
    return database.db


@asynccontextmanager
async def transaction(db):
    """
    Run a block of writes as one multi-document transaction.

    Yields the client session, which must be passed as ``session=`` to every
    collection call inside the block. Any exception aborts the transaction;
    driver errors surface as PersistenceError.
    """
    try:
        async with await db.client.start_session() as session:
            async with session.start_transaction():
                yield session
    except PyMongoError as e:
        logger.warning("Transaction aborted: %s", e)
        raise PersistenceError(str(e)) from e


async def ensure_indexes(db) -> None:
    """Create the indexes the engine relies on."""
    # Server-side backstop for the single active timer rule
    await db["timer_sessions"].create_index(
        "active",
        name="one_active_session",
        unique=True,
        partialFilterExpression={"active": True},
    )
    await db["timer_sessions"].create_index("project_id")
    await db["tasks"].create_index([("deliverable_id", ASCENDING), ("created_at", ASCENDING)])
    await db["deliverables"].create_index("project_id")
    await db["phases"].create_index("project_id")
    await db["manual_time_adjustments"].create_index(
        [("target_kind", ASCENDING), ("target_id", ASCENDING)]
    )
