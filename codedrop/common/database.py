"""MongoDB connection handle.

Constructed and connected in the app lifespan, closed on shutdown, and passed
explicitly to whatever needs a collection. There is no module-level client.
"""

import asyncio
import logging
from typing import Optional

from fastapi import Request
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)


class MongoConnection:
    def __init__(
        self,
        url: str,
        db_name: str,
        max_retries: int = 10,
        retry_delay: float = 3.0,
        server_selection_timeout_ms: int = 5000,
    ):
        self.url = url
        self.db_name = db_name
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.server_selection_timeout_ms = server_selection_timeout_ms
        self.client: Optional[AsyncIOMotorClient] = None

    async def connect(self) -> AsyncIOMotorDatabase:
        """Open the client and ping the server, retrying on failure."""
        for attempt in range(1, self.max_retries + 1):
            client = AsyncIOMotorClient(
                self.url,
                serverSelectionTimeoutMS=self.server_selection_timeout_ms,
                tz_aware=True,
            )
            try:
                await client.admin.command("ping")
            except PyMongoError as exc:
                client.close()
                if attempt == self.max_retries:
                    logger.error(f"Failed to connect to MongoDB after {self.max_retries} attempts")
                    raise
                logger.warning(
                    f"MongoDB connection attempt {attempt}/{self.max_retries} failed: {exc}. "
                    f"Retrying in {self.retry_delay}s..."
                )
                await asyncio.sleep(self.retry_delay)
                continue
            self.client = client
            logger.info(f"✅ Connected to MongoDB ({self.db_name})")
            return client[self.db_name]

    @property
    def db(self) -> AsyncIOMotorDatabase:
        if self.client is None:
            raise RuntimeError("MongoConnection not connected. Call connect() first.")
        return self.client[self.db_name]

    def close(self) -> None:
        if self.client is not None:
            self.client.close()
            self.client = None
            logger.info("MongoDB connection closed")


async def get_mongo_db(request: Request):
    """FastAPI dependency that returns the MongoDB database, if one is configured."""
    connection: Optional[MongoConnection] = getattr(request.app.state, "mongo", None)
    return connection.db if connection else None
