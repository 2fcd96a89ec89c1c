"""MongoDB connection handling and persistence for the current user record."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from motor.motor_asyncio import AsyncIOMotorClient

from .config import Settings
from .models import User, seed_document

logger = logging.getLogger("userservice.database")

ClientFactory = Callable[..., Any]
SleepFunction = Callable[[float], Awaitable[Any]]


class ConnectionState(str, Enum):
    """Lifecycle state of the database connection."""

    INITIALIZING = "initializing"
    CONNECTING = "connecting"
    RETRY_WAIT = "retry-wait"
    CONNECTED = "connected"
    CLOSED = "closed"


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


class MongoConnector:
    """Own the single MongoDB client shared by every request handler.

    The connector establishes the client, seeds the default user when the
    collection is empty and retries the whole procedure after a fixed delay
    until it succeeds. Cancelling the task running :meth:`start` stops the
    retry loop.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        client_factory: ClientFactory | None = None,
        sleep: SleepFunction | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._client_factory = client_factory or AsyncIOMotorClient
        self._sleep = sleep or asyncio.sleep
        self._client: Any = None
        self._state = ConnectionState.INITIALIZING
        self._attempts = 0

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def attempts(self) -> int:
        """Number of connection attempts made so far."""
        return self._attempts

    @property
    def client(self) -> Any:
        return self._client

    @property
    def is_connected(self) -> bool:
        """Report the last-known topology state without querying the server."""

        if self._state is not ConnectionState.CONNECTED or self._client is None:
            return False
        return bool(self._client.nodes)

    @property
    def collection(self) -> Any:
        if self._client is None or self._state is not ConnectionState.CONNECTED:
            raise RuntimeError("Database connection has not been established")
        return self._client[self._settings.database_name][self._settings.collection_name]

    async def connect_once(self) -> None:
        """Open the client, verify the server is reachable and seed if needed."""

        self._state = ConnectionState.CONNECTING
        self._attempts += 1

        client = None
        try:
            client = self._client_factory(
                self._settings.mongo_uri,
                serverSelectionTimeoutMS=self._settings.server_selection_timeout_ms,
            )
            await client.admin.command("ping")
            logger.info("Connected to MongoDB successfully")

            collection = client[self._settings.database_name][self._settings.collection_name]
            if await collection.count_documents({}) == 0:
                document = seed_document(_current_timestamp())
                await collection.insert_one(document)
                logger.info('Default user "%s" created', document["name"])
        except (Exception, asyncio.CancelledError):
            if client is not None:
                client.close()
            raise

        self._client = client
        self._state = ConnectionState.CONNECTED

    async def start(self) -> None:
        """Connect, retrying after ``retry_delay`` seconds until successful."""

        if self._state is ConnectionState.CONNECTED:
            return

        while True:
            try:
                await self.connect_once()
                return
            except Exception as exc:
                self._state = ConnectionState.RETRY_WAIT
                logger.error(
                    "MongoDB connection failed (attempt %s): %s; retrying in %.1fs",
                    self._attempts,
                    exc,
                    self._settings.retry_delay,
                )
            await self._sleep(self._settings.retry_delay)

    async def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
            logger.info("MongoDB connection closed")
        self._state = ConnectionState.CLOSED


class UserStore:
    """Read and update the single current user record."""

    def __init__(self, connector: MongoConnector) -> None:
        self._connector = connector

    async def get_current(self) -> Optional[User]:
        document = await self._connector.collection.find_one({})
        if document is None:
            return None
        return User.from_document(document)

    async def rename(self, name: str) -> bool:
        """Set ``name`` on any one document; return ``False`` when none matched."""

        result = await self._connector.collection.update_one({}, {"$set": {"name": name}})
        return result.matched_count > 0


__all__ = ["ConnectionState", "MongoConnector", "UserStore"]
