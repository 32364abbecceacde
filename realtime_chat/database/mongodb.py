"""
MongoDB connection and Beanie ODM initialisation
"""

import logging
from motor.motor_asyncio import AsyncIOMotorClient
from beanie import init_beanie

from realtime_chat.core.config import Settings
from realtime_chat.models import DOCUMENT_MODELS

logger = logging.getLogger(__name__)


def create_mongo_client(config: Settings) -> AsyncIOMotorClient:
    """Create a client that fails fast when the server is unreachable."""
    return AsyncIOMotorClient(
        config.mongo_url,
        maxPoolSize=10,
        minPoolSize=0,
        maxIdleTimeMS=30000,
        serverSelectionTimeoutMS=config.mongo_timeout_ms,
        connectTimeoutMS=config.mongo_timeout_ms,
    )


async def init_mongodb(client: AsyncIOMotorClient, db_name: str):
    """Ping the server, then bind the document models to the database."""
    await client.admin.command('ping')
    await init_beanie(database=client[db_name], document_models=DOCUMENT_MODELS)
    logger.info(f"MongoDB initialized with Beanie: {db_name}")


def close_mongo_client(client: AsyncIOMotorClient):
    client.close()
    logger.info("MongoDB connection closed")
