# reward_engine/database/mongo.py
from pymongo import MongoClient
from pymongo.errors import PyMongoError
import logging
from reward_engine.database.store import (
    MemoryStore, MongoStore, RATE_LIMITS, DEVICE_FINGERPRINTS
)

logger = logging.getLogger(__name__)

# Global MongoDB connection
client = None
db = None


def initialize_mongodb(config):
    global client, db
    try:
        client = MongoClient(config.MONGO_URI)
        db = client[config.MONGO_DB_NAME]

        # Create indexes
        db.users.create_index("user_id", unique=True)
        db[RATE_LIMITS].create_index("window_reset_at")
        db[DEVICE_FINGERPRINTS].create_index("last_seen")

        logger.info("✅ MongoDB initialized successfully")
        return db
    except PyMongoError as e:
        logger.error(f"❌ MongoDB initialization failed: {str(e)}")
        return None


def get_db():
    return db


def create_store(config):
    """MongoDB-backed store when configured, in-memory otherwise"""
    if config.MONGO_URI:
        database = initialize_mongodb(config)
        if database is not None:
            return MongoStore(database)
        logger.warning("Falling back to in-memory store")
    return MemoryStore()


def build_profile_update(patch):
    """Translate a decision's profile patch into a MongoDB update document"""
    fields = dict(patch)
    credits_delta = fields.pop('creditsDelta', 0)
    update = {"$set": fields}
    if credits_delta:
        update["$inc"] = {"credits": credits_delta}
    return update


def apply_profile_patch(database, user_id, patch):
    """Write a claim's profile patch to the users collection"""
    try:
        result = database.users.update_one(
            {"user_id": user_id},
            build_profile_update(patch),
            upsert=True
        )
        return result.acknowledged
    except PyMongoError as e:
        logger.error(f"Error applying profile patch: {str(e)}")
        return False
