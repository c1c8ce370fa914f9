"""
MongoDB connection management and collection accessors.

Change streams, which drive live aggregate updates, require the server to run
as a replica set (a single-node replica set is enough).
"""

from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, IndexModel
from pymongo.errors import PyMongoError

from app.core.config import config
from app.core.errors import StoreError
from app.core.logger import logger

TOOLS_COLLECTION = "tools"
REVIEWS_COLLECTION = "reviews"
DOWNLOADS_LOG_COLLECTION = "downloads_log"
PROFILES_COLLECTION = "profiles"


class Database:
    """Database connection manager"""

    client: Optional[AsyncIOMotorClient] = None
    database: Optional[AsyncIOMotorDatabase] = None


db = Database()


async def connect_to_mongo():
    """Create database connection and make sure indexes exist"""
    logger.info(
        "Connecting to MongoDB...",
        metadata={
            "event": "mongodb_connect_attempt",
            "host": config.mongodb_host,
            "port": config.mongodb_port,
            "database": config.mongodb_database,
        }
    )

    try:
        db.client = AsyncIOMotorClient(config.mongodb_url)
        db.database = db.client[config.mongodb_database]

        await db.client.admin.command("ping")
        await ensure_indexes(db.database)

        logger.info(
            f"Successfully connected to MongoDB database '{config.mongodb_database}'",
            metadata={"event": "mongodb_connected", "database": config.mongodb_database}
        )
    except PyMongoError as e:
        logger.error(
            f"Could not connect to MongoDB: {e}",
            metadata={"event": "mongodb_connection_error", "error": str(e)}
        )
        raise StoreError(f"Could not connect to MongoDB: {e}")


async def ensure_indexes(database: AsyncIOMotorDatabase):
    """Create the indexes the catalog queries rely on"""
    await database[TOOLS_COLLECTION].create_indexes([
        IndexModel([("slug", ASCENDING)], unique=True, name="slug_unique"),
        IndexModel([("visible", ASCENDING), ("created_at", DESCENDING)], name="visible_created_idx"),
    ])
    await database[REVIEWS_COLLECTION].create_indexes([
        IndexModel([("tool_id", ASCENDING), ("created_at", DESCENDING)], name="tool_created_idx"),
    ])
    await database[DOWNLOADS_LOG_COLLECTION].create_indexes([
        IndexModel([("tool_id", ASCENDING), ("created_at", DESCENDING)], name="tool_created_idx"),
    ])


async def close_mongo_connection():
    """Close database connection"""
    logger.info("Closing connection to MongoDB...", metadata={"event": "mongodb_close"})
    if db.client is not None:
        db.client.close()
        db.client = None
        db.database = None


async def get_database() -> AsyncIOMotorDatabase:
    """Get database instance"""
    if db.database is None:
        await connect_to_mongo()
    return db.database


async def get_tools_collection():
    database = await get_database()
    return database[TOOLS_COLLECTION]


async def get_reviews_collection():
    database = await get_database()
    return database[REVIEWS_COLLECTION]


async def get_downloads_log_collection():
    database = await get_database()
    return database[DOWNLOADS_LOG_COLLECTION]
