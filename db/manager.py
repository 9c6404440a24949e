"""
MongoDB connection handling.

One ``DatabaseManager`` per process owns the Motor client. The client is
bound to the event loop that first used it and is rebuilt when a different
loop (a new test, a restarted worker) asks for the database.
"""

from __future__ import annotations

import asyncio
import logging
import os
import threading
from typing import Any, Final, Self

import certifi
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)

DEFAULT_MONGO_URI: Final[str] = "mongodb://localhost:27017"
DEFAULT_DATABASE_NAME: Final[str] = "tractage"


def _get_mongo_uri() -> str:
    return os.getenv("MONGODB_URI", "").strip() or DEFAULT_MONGO_URI


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r, using %d", name, raw, default)
        return default


class DatabaseManager:
    """
    Process-wide owner of the MongoDB client.

    Environment Variables:
        MONGODB_URI: connection string (default: local server)
        MONGODB_DATABASE: database name (default: tractage)
        MONGODB_MAX_POOL_SIZE: pool size (default: 10)
        MONGODB_SERVER_SELECTION_TIMEOUT_MS: server selection timeout (default: 5000)
    """

    _instance: DatabaseManager | None = None
    _lock = threading.Lock()

    def __new__(cls) -> Self:
        with cls._lock:
            if cls._instance is None:
                instance = super().__new__(cls)
                instance._client = None
                instance._db = None
                instance._loop = None
                instance._beanie_ready = False
                cls._instance = instance
        return cls._instance

    @property
    def database_name(self) -> str:
        return os.getenv("MONGODB_DATABASE", "").strip() or DEFAULT_DATABASE_NAME

    def _client_options(self, uri: str) -> dict[str, Any]:
        options: dict[str, Any] = {
            "tz_aware": True,
            "appname": "Tractage",
            "maxPoolSize": _env_int("MONGODB_MAX_POOL_SIZE", 10),
            "serverSelectionTimeoutMS": _env_int(
                "MONGODB_SERVER_SELECTION_TIMEOUT_MS",
                5000,
            ),
        }
        # Atlas clusters need the certifi bundle on slim images.
        if uri.startswith("mongodb+srv://"):
            options.update(tls=True, tlsCAFile=certifi.where())
        return options

    def _connect(self) -> None:
        uri = _get_mongo_uri()
        self._client = AsyncIOMotorClient(uri, **self._client_options(uri))
        self._db = self._client[self.database_name]
        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError:
            self._loop = None
        logger.info("Connected MongoDB client to database %s", self.database_name)

    def _disconnect(self) -> None:
        if self._client is not None:
            self._client.close()
        self._client = None
        self._db = None
        self._loop = None
        self._beanie_ready = False

    def _loop_changed(self) -> bool:
        if self._client is None or self._loop is None:
            return False
        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None
        if self._loop.is_closed():
            return True
        return current is not None and current is not self._loop

    @property
    def db(self) -> AsyncIOMotorDatabase:
        if self._loop_changed():
            logger.info("Event loop changed, rebuilding the MongoDB client")
            self._disconnect()
        if self._db is None:
            self._connect()
        return self._db

    async def init_beanie(self) -> None:
        """Register the document models (and build their indexes) once per client."""
        database = self.db
        if self._beanie_ready:
            return

        from beanie import init_beanie

        from db.models import ALL_DOCUMENT_MODELS

        await init_beanie(database=database, document_models=ALL_DOCUMENT_MODELS)
        self._beanie_ready = True
        logger.info("Beanie ready with %d document models", len(ALL_DOCUMENT_MODELS))

    async def ping(self) -> bool:
        try:
            await self.db.command("ping")
        except PyMongoError as exc:
            logger.warning("MongoDB ping failed: %s", exc)
            return False
        return True

    async def cleanup_connections(self) -> None:
        if self._client is not None:
            logger.info("Closing MongoDB client")
        self._disconnect()


db_manager = DatabaseManager()
