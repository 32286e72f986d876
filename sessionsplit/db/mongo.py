import logging
from contextlib import asynccontextmanager

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from sessionsplit.core.config import settings

logger = logging.getLogger(__name__)


class MongoDatabase:
    """MongoDB connection manager."""

    client: AsyncIOMotorClient = None
    db: AsyncIOMotorDatabase = None

mongodb = MongoDatabase()

async def connect_to_mongo():
    """Connect to MongoDB."""
    mongodb.client = AsyncIOMotorClient(settings.MONGODB_URL)
    mongodb.db = mongodb.client[settings.DATABASE_NAME]

    await create_indexes(mongodb.db)
    logger.info("Connected to MongoDB: %s", settings.DATABASE_NAME)

async def close_mongo_connection():
    """Disconnect from MongoDB."""
    if mongodb.client is not None:
        mongodb.client.close()
        mongodb.client = None
        mongodb.db = None
    logger.info("Disconnected from MongoDB")

async def create_indexes(db: AsyncIOMotorDatabase):
    """Create database indexes."""
    # User email unique index
    await db["users"].create_index("email", unique=True)

    # Players are matched by email when added to a session
    await db["players"].create_index("email")
    await db["players"].create_index("user_id")

    # Session indexes
    await db["sessions"].create_index([("host_id", ASCENDING), ("created_at", DESCENDING)])
    await db["sessions"].create_index("participants.player_id")

    # One obligation per (session, payer): closes the check-then-insert race
    await db["obligations"].create_index("idempotency_key", unique=True)
    await db["obligations"].create_index("session_id")
    await db["obligations"].create_index([("payer_id", ASCENDING), ("status", ASCENDING)])

    # Payment indexes
    await db["payments"].create_index([("obligation_id", ASCENDING), ("created_at", DESCENDING)])

def get_db() -> AsyncIOMotorDatabase:
    """Get database instance."""
    return mongodb.db

@asynccontextmanager
async def transaction(db: AsyncIOMotorDatabase):
    """
    Yield a motor ClientSession inside a transaction, or None when
    transactions are disabled (standalone servers, tests). Repository
    methods accept either.
    """
    if not settings.USE_TRANSACTIONS:
        yield None
        return

    async with await db.client.start_session() as db_session:
        async with db_session.start_transaction():
            yield db_session
