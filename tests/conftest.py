"""Pytest configuration and shared fixtures"""
import asyncio
import datetime

import pytest

from iotdash.database import DATA_KEY, Database, MemoryStorage
from iotdash.models import ChannelCreate, Field
from iotdash.services.auth_service import AuthService
from iotdash.services.channel_service import ChannelService
from iotdash.services.data_service import DataService


def run(coro):
    """Drive a service coroutine to completion"""
    return asyncio.run(coro)


class YieldingStorage(MemoryStorage):
    """In-memory store that gives up control on every call, as a network backend does"""

    async def get(self, key):
        await asyncio.sleep(0)
        return await super().get(key)

    async def set(self, key, value):
        await asyncio.sleep(0)
        await super().set(key, value)


@pytest.fixture
def database():
    """Database on a fresh in-memory store, latency off"""
    database = Database(MemoryStorage(), simulate_latency=False)
    run(database.initialize())
    return database


@pytest.fixture
def yielding(database):
    """Switch ``database`` to a yielding store, keeping what it holds"""
    storage = YieldingStorage()
    storage._items = database.storage._items
    database.storage = storage
    return database


@pytest.fixture
def auth(database):
    return AuthService(database)


@pytest.fixture
def channels(database, auth):
    return ChannelService(database, auth)


@pytest.fixture
def data(database, auth):
    return DataService(database, auth)


@pytest.fixture
def owner(auth):
    """Registered user, left signed in"""
    return run(auth.register("alice", "alice@example.com", "secret"))


@pytest.fixture
def weather_channel(channels, owner):
    """Private channel with temperature (1) and humidity (2), owned by ``owner``"""
    return run(channels.create_channel(ChannelCreate(
        name="Weather Station",
        description="Backyard temperature and humidity",
        fields=[
            Field(name="Temperature", field_number=1),
            Field(name="Humidity", field_number=2),
        ],
        is_public=False,
        tags=["weather", "outdoor"],
    )))


@pytest.fixture
def public_channel(channels, owner):
    """Public single-field channel owned by ``owner``"""
    return run(channels.create_channel(ChannelCreate(
        name="Tank Level",
        description="Water tank fill level",
        fields=[Field(name="Level", field_number=1)],
        is_public=True,
        tags=["water"],
    )))


@pytest.fixture
def stranger(auth, owner):
    """A second user; registering signs them in instead of ``owner``"""
    return run(auth.register("bob", "bob@example.com", "hunter2"))


def insert_point(database, channel_id, created_at, values, point_id=None):
    """Store a data point with an explicit timestamp, bypassing the service"""
    async def _insert():
        points = await database.get_collection(DATA_KEY)
        points.append({
            "id": point_id or f"p-{len(points)}",
            "channelId": channel_id,
            "createdAt": created_at.isoformat(),
            "fieldValues": {str(k): v for k, v in values.items()},
        })
        await database.save_collection(DATA_KEY, points)
    run(_insert())


def hours_ago(hours):
    return datetime.datetime.now(datetime.timezone.utc) - datetime.timedelta(hours=hours)
