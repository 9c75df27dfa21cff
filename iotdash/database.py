import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorClient

from iotdash.config import Settings, get_settings

logger = logging.getLogger(__name__)

USERS_KEY = "iotdash_users"
CHANNELS_KEY = "iotdash_channels"
DATA_KEY = "iotdash_data"
CURRENT_USER_KEY = "iotdash_current_user"

LIST_KEYS = (USERS_KEY, CHANNELS_KEY, DATA_KEY)


class MemoryStorage:
    """Key-value store kept in a dict. Values are JSON strings, like the others."""

    def __init__(self):
        self._items: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self._items.get(key)

    async def set(self, key: str, value: str) -> None:
        self._items[key] = value

    async def remove(self, key: str) -> None:
        self._items.pop(key, None)

    async def close(self) -> None:
        pass


class FileStorage:
    """One ``<key>.json`` file per key inside ``directory``."""

    def __init__(self, directory: str):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    async def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    async def set(self, key: str, value: str) -> None:
        # write-then-rename so a crash never leaves a half-written collection
        path = self._path(key)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(value, encoding="utf-8")
        tmp.replace(path)

    async def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    async def close(self) -> None:
        pass


class MongoStorage:
    """Stores each key as ``{_id: key, value: <json>}`` in a MongoDB collection."""

    client: AsyncIOMotorClient = None

    def __init__(self, mongo_uri: str, collection: str = "storage"):
        self.mongo_uri = mongo_uri
        self.collection_name = collection
        self.collection = None

    async def connect(self) -> None:
        logger.info("Connecting to MongoDB")
        self.client = AsyncIOMotorClient(self.mongo_uri)
        # database name comes from the URI (e.g. mongodb://host/iotdash)
        mongo_db = self.client.get_default_database()
        self.collection = mongo_db[self.collection_name]
        await mongo_db.command("ping")
        logger.info("MongoDB connected successfully")

    async def get(self, key: str) -> Optional[str]:
        doc = await self.collection.find_one({"_id": key})
        return doc["value"] if doc else None

    async def set(self, key: str, value: str) -> None:
        await self.collection.replace_one({"_id": key}, {"_id": key, "value": value}, upsert=True)

    async def remove(self, key: str) -> None:
        await self.collection.delete_one({"_id": key})

    async def close(self) -> None:
        if self.client:
            logger.info("Closing MongoDB connection")
            self.client.close()


class Database:
    """
    JSON collections on top of a key-value storage backend.

    Every write replaces a whole collection, so callers that load, modify and
    save a collection must hold ``lock`` across all three steps.
    """

    def __init__(self, storage=None, simulate_latency: bool = False):
        self.storage = storage
        self.simulate_latency = simulate_latency
        self.lock = asyncio.Lock()

    async def connect(self, settings: Settings = None) -> None:
        settings = settings or get_settings()
        backend = settings.storage_backend
        if backend == "memory":
            storage = MemoryStorage()
        elif backend == "file":
            storage = FileStorage(settings.data_dir)
        elif backend == "mongo":
            if not settings.mongo_uri:
                raise ValueError("MONGO_URI environment variable not set.")
            storage = MongoStorage(settings.mongo_uri, settings.mongo_collection)
            await storage.connect()
        else:
            raise ValueError(f"Unknown storage backend: {backend!r}")

        self.storage = storage
        self.simulate_latency = settings.simulate_latency
        logger.info("Using %s storage (simulated latency: %s)", backend, settings.simulate_latency)
        await self.initialize()

    async def close(self) -> None:
        if self.storage is not None:
            await self.storage.close()

    async def delay(self, seconds: float) -> None:
        if self.simulate_latency:
            await asyncio.sleep(seconds)

    async def initialize(self) -> None:
        """Create any of the list collections that don't exist yet."""
        async with self.lock:
            for key in LIST_KEYS:
                if await self.storage.get(key) is None:
                    await self.storage.set(key, json.dumps([]))

    async def get_collection(self, key: str) -> List[Dict[str, Any]]:
        raw = await self.storage.get(key)
        return json.loads(raw) if raw else []

    async def save_collection(self, key: str, items: List[Dict[str, Any]]) -> None:
        await self.storage.set(key, json.dumps(items))

    async def get_item(self, key: str) -> Optional[Dict[str, Any]]:
        raw = await self.storage.get(key)
        return json.loads(raw) if raw else None

    async def set_item(self, key: str, value: Dict[str, Any]) -> None:
        await self.storage.set(key, json.dumps(value))

    async def remove_item(self, key: str) -> None:
        await self.storage.remove(key)


db = Database()
