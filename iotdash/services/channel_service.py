import logging
from typing import List, Optional, Tuple

from iotdash.database import CHANNELS_KEY, DATA_KEY, Database
from iotdash.errors import AccessDenied, NotFound
from iotdash.models import ApiKeys, Channel, ChannelCreate, ChannelUpdate, Field
from iotdash.services.auth_service import AuthService
from iotdash.utils import generate_api_key, new_id, utcnow

logger = logging.getLogger(__name__)


def matches_search(channel: Channel, term: str) -> bool:
    """Case-insensitive substring match on name, description or any tag."""
    term = term.lower()
    return (
        term in channel.name.lower()
        or term in channel.description.lower()
        or any(term in tag.lower() for tag in channel.tags)
    )


class ChannelService:
    """
    CRUD over channel records.

    Reads are allowed for the owner or when the channel is public; updates
    and deletes are owner only.
    """

    def __init__(self, database: Database, auth: AuthService):
        self.db = database
        self.auth = auth

    async def _load(self) -> List[Channel]:
        return [Channel(**c) for c in await self.db.get_collection(CHANNELS_KEY)]

    async def _save(self, channels: List[Channel]) -> None:
        await self.db.save_collection(CHANNELS_KEY, [c.to_record() for c in channels])

    async def _find_owned(self, channel_id: str) -> Tuple[List[Channel], int]:
        """Load all channels and locate one the current user owns."""
        user = await self.auth.require_user()
        channels = await self._load()
        index = next((i for i, c in enumerate(channels) if c.id == channel_id), None)
        if index is None:
            raise NotFound("Channel not found")
        if channels[index].user_id != user.id:
            raise AccessDenied()
        return channels, index

    async def get_channels(self, search: Optional[str] = None) -> List[Channel]:
        await self.db.initialize()
        await self.db.delay(0.3)

        user = await self.auth.require_user()
        channels = [c for c in await self._load() if c.user_id == user.id or c.is_public]
        if search and search.strip():
            channels = [c for c in channels if matches_search(c, search)]
        return channels

    async def get_channel(self, channel_id: str) -> Channel:
        await self.db.initialize()
        await self.db.delay(0.3)

        user = await self.auth.get_current_user()
        channel = next((c for c in await self._load() if c.id == channel_id), None)
        if channel is None:
            raise NotFound("Channel not found")
        if not channel.is_public and (user is None or channel.user_id != user.id):
            raise AccessDenied()
        return channel

    async def create_channel(self, data: ChannelCreate) -> Channel:
        await self.db.initialize()
        await self.db.delay(0.5)

        user = await self.auth.require_user()
        channel = Channel(
            **data.model_dump(),
            id=new_id(),
            created_at=utcnow(),
            last_entry=None,
            user_id=user.id,
            api_keys=ApiKeys(read_key=generate_api_key(), write_key=generate_api_key()),
        )
        async with self.db.lock:
            channels = await self._load()
            channels.append(channel)
            await self._save(channels)
        logger.info("Created channel %s (%s) for user %s", channel.id, channel.name, user.id)
        return channel

    async def update_channel(self, channel_id: str, data: ChannelUpdate) -> Channel:
        await self.db.initialize()
        await self.db.delay(0.5)

        changes = {
            name: getattr(data, name)
            for name in data.model_fields_set
            if getattr(data, name) is not None
        }
        async with self.db.lock:
            channels, index = await self._find_owned(channel_id)
            channels[index] = channels[index].model_copy(update=changes)
            await self._save(channels)
        return channels[index]

    async def delete_channel(self, channel_id: str) -> None:
        await self.db.initialize()
        await self.db.delay(0.5)

        async with self.db.lock:
            channels, index = await self._find_owned(channel_id)
            del channels[index]
            await self._save(channels)

            data = await self.db.get_collection(DATA_KEY)
            await self.db.save_collection(DATA_KEY, [d for d in data if d["channelId"] != channel_id])
        logger.info("Deleted channel %s and its data", channel_id)

    async def add_field(self, channel_id: str, name: str) -> Channel:
        await self.db.initialize()
        await self.db.delay(0.3)

        async with self.db.lock:
            channels, index = await self._find_owned(channel_id)
            channel = channels[index]
            next_number = max(channel.field_numbers(), default=0) + 1
            channel.fields.append(Field(name=name, field_number=next_number))
            await self._save(channels)
        return channel

    async def remove_field(self, channel_id: str, field_id: str) -> Channel:
        await self.db.initialize()
        await self.db.delay(0.3)

        async with self.db.lock:
            channels, index = await self._find_owned(channel_id)
            channel = channels[index]
            remaining = [f for f in channel.fields if f.id != field_id]
            if len(remaining) == len(channel.fields):
                raise NotFound("Field not found")
            channel.fields = remaining
            await self._save(channels)
        return channel
