"""
MongoDB Connection Utility

MongoDB stores:
- Notifications (one document per recipient, TTL-expired)
- Drive chat groups (members embedded in the group document)

WHY MongoDB for these?
- Fan-out writes: one insert_many for thousands of recipients
- Embedded arrays: group membership is updated in place, atomically
- TTL indexes: expired notifications disappear without a sweep job
"""
import logging

from pymongo import MongoClient, ASCENDING, DESCENDING
from pymongo.database import Database
from pymongo.collection import Collection
from app.core.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

# Global client (connection pooling handled internally by pymongo)
_client: MongoClient = None
_db: Database = None


def get_mongo_client() -> MongoClient:
    """Get or create MongoDB client (singleton pattern)"""
    global _client
    if _client is None:
        _client = MongoClient(settings.mongodb_uri)
    return _client


def get_mongo_db() -> Database:
    """Get the placement_docs database"""
    global _db
    if _db is None:
        client = get_mongo_client()
        _db = client[settings.mongodb_db]
    return _db


def set_mongo_client(client: MongoClient):
    """Swap the global client (used by tests and scripts)."""
    global _client, _db
    _client = client
    _db = None


def get_collection(name: str) -> Collection:
    """
    Get a specific collection.
    Collections we'll use:
    - notifications: per-user notification records
    - chat_groups: one group per (drive, department)
    """
    db = get_mongo_db()
    return db[name]


def test_mongo_connection() -> bool:
    """
    Test if MongoDB is reachable.
    Returns True if connection successful, False otherwise.
    """
    try:
        client = get_mongo_client()
        # ping command checks connection
        client.admin.command('ping')
        return True
    except Exception as e:
        logger.error("MongoDB connection failed: %s", e)
        return False


# Collection name constants (avoid typos)
COLLECTIONS = {
    "notifications": "notifications",
    "chat_groups": "chat_groups",
}


def init_mongo_indexes():
    """
    Create indexes for better query performance.
    Call this once during app startup.
    """
    db = get_mongo_db()

    notifications = db[COLLECTIONS["notifications"]]
    notifications.create_index([("user", ASCENDING), ("read", ASCENDING)])
    notifications.create_index([("user", ASCENDING), ("created_at", DESCENDING)])
    # TTL: Mongo removes a notification once expires_at has passed
    notifications.create_index("expires_at", expireAfterSeconds=0)

    chat_groups = db[COLLECTIONS["chat_groups"]]
    chat_groups.create_index([
        ("drive_id", ASCENDING),
        ("department", ASCENDING)
    ], unique=True)
    chat_groups.create_index("members.user")

    logger.info("MongoDB indexes created successfully")
