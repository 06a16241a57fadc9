import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from bursar.core.config import settings
from bursar.db.codecs import codec_options

logger = logging.getLogger(__name__)


class MongoDatabase:
    """MongoDB connection manager."""

    client: AsyncIOMotorClient = None
    db: AsyncIOMotorDatabase = None

mongodb = MongoDatabase()

async def connect_to_mongo():
    """Connect to MongoDB."""
    mongodb.client = AsyncIOMotorClient(settings.MONGODB_URL)
    mongodb.db = mongodb.client.get_database(
        settings.DATABASE_NAME,
        codec_options=codec_options()
    )

    # Create indexes
    await create_indexes(mongodb.db)
    logger.info("Connected to MongoDB: %s", settings.DATABASE_NAME)

async def close_mongo_connection():
    """Disconnect from MongoDB."""
    if mongodb.client is not None:
        mongodb.client.close()
    logger.info("Disconnected from MongoDB")

async def create_indexes(db: AsyncIOMotorDatabase):
    """Create database indexes."""
    # Obligation indexes
    await db["obligations"].create_index([("kind", 1), ("status", 1)])
    await db["obligations"].create_index([("kind", 1), ("category", 1)])
    await db["obligations"].create_index("counterparty_ref")
    await db["obligations"].create_index("receipt_number", unique=True, sparse=True)

    # Ledger indexes
    await db["transactions"].create_index([("obligation.kind", 1), ("obligation.id", 1)])
    await db["transactions"].create_index([("date", 1), ("type", 1)])

    # Enrollment indexes
    await db["users"].create_index("username", unique=True)
    await db["fee_schedules"].create_index("grade", unique=True)
    await db["classes"].create_index([("grade", 1), ("section", 1)])
    await db["enrollment_sagas"].create_index("admission_id")

def get_db() -> AsyncIOMotorDatabase:
    """Get database instance."""
    return mongodb.db
