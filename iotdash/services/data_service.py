import datetime
import logging
import math
import re
from typing import Any, Dict, List, Mapping, Optional

from iotdash.database import CHANNELS_KEY, DATA_KEY, Database
from iotdash.errors import InvalidApiKey, NotFound, ValidationFailed
from iotdash.models import Channel, DataPoint, FieldReading
from iotdash.services.auth_service import AuthService
from iotdash.utils import new_id, utcnow

logger = logging.getLogger(__name__)

_FIELD_KEY = re.compile(r"^(?:field)?(\d+)$")


def parse_field_values(params: Mapping[str, Any]) -> Dict[int, float]:
    """
    Turn loosely keyed readings (``{"field1": "20.5", "2": 3}``) into a
    field number -> float mapping. ``api_key`` and keys that don't name a
    field number are skipped.
    """
    if not isinstance(params, Mapping):
        raise ValidationFailed("Field values must be an object")
    values: Dict[int, float] = {}
    for key, value in params.items():
        if key == "api_key":
            continue
        match = _FIELD_KEY.match(str(key))
        if not match:
            logger.warning("Ignoring parameter '%s': not a field number", key)
            continue
        number = int(match.group(1))
        try:
            values[number] = float(value)
        except (ValueError, TypeError):
            raise ValidationFailed(f"Invalid value for field {number}: {value!r}")
        if not math.isfinite(values[number]):
            raise ValidationFailed(f"Invalid value for field {number}: {value!r}")
    return values


def _as_utc(moment: datetime.datetime) -> datetime.datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=datetime.timezone.utc)
    return moment


class DataService:
    """
    Writes and reads data points.

    Writes need the channel owner or the channel's write key. Reads need the
    owner, a public channel, or the read key. Keys are compared for plain
    equality.
    """

    def __init__(self, database: Database, auth: AuthService):
        self.db = database
        self.auth = auth

    async def _find_channel(self, channel_id: str) -> Channel:
        record = next((c for c in await self.db.get_collection(CHANNELS_KEY) if c["id"] == channel_id), None)
        if record is None:
            raise NotFound("Channel not found")
        return Channel(**record)

    async def _is_owner(self, channel: Channel) -> bool:
        user = await self.auth.get_current_user()
        return user is not None and channel.user_id == user.id

    async def _check_read(self, channel: Channel, api_key: Optional[str]) -> None:
        if await self._is_owner(channel) or channel.is_public:
            return
        if not api_key or api_key != channel.api_keys.read_key:
            raise InvalidApiKey()

    async def get_readable_channel(self, channel_id: str, api_key: Optional[str] = None) -> Channel:
        """The channel itself, subject to the same check as reading its data."""
        await self.db.initialize()
        channel = await self._find_channel(channel_id)
        await self._check_read(channel, api_key)
        return channel

    async def _points_for(self, channel_id: str) -> List[DataPoint]:
        """Points of one channel, newest first."""
        points = [DataPoint(**d) for d in await self.db.get_collection(DATA_KEY) if d["channelId"] == channel_id]
        points.sort(key=lambda p: p.created_at, reverse=True)
        return points

    async def add_data_point(
        self,
        channel_id: str,
        field_values: Mapping[int, float],
        api_key: Optional[str] = None,
    ) -> DataPoint:
        await self.db.initialize()
        await self.db.delay(0.3)

        channel = await self._find_channel(channel_id)

        if not await self._is_owner(channel) and (not api_key or api_key != channel.api_keys.write_key):
            logger.warning("Rejected write to channel %s: invalid API key", channel_id)
            raise InvalidApiKey()

        try:
            numbers = {int(key) for key in field_values}
        except (TypeError, ValueError):
            raise ValidationFailed("Invalid field numbers")
        if not numbers <= set(channel.field_numbers()):
            raise ValidationFailed("Invalid field numbers")

        for key, value in field_values.items():
            if not math.isfinite(value):
                raise ValidationFailed(f"Invalid value for field {int(key)}: {value!r}")

        point = DataPoint(
            id=new_id(),
            channel_id=channel_id,
            created_at=utcnow(),
            field_values={int(k): v for k, v in field_values.items()},
        )
        async with self.db.lock:
            data = await self.db.get_collection(DATA_KEY)
            data.append(point.to_record())
            await self.db.save_collection(DATA_KEY, data)

            channels = await self.db.get_collection(CHANNELS_KEY)
            for record in channels:
                if record["id"] == channel_id:
                    record["lastEntry"] = point.to_record()["createdAt"]
            await self.db.save_collection(CHANNELS_KEY, channels)

        logger.debug("Stored data point %s for channel %s", point.id, channel_id)
        return point

    async def get_channel_data(
        self,
        channel_id: str,
        days: Optional[float] = None,
        api_key: Optional[str] = None,
        start: Optional[datetime.datetime] = None,
        end: Optional[datetime.datetime] = None,
        limit: Optional[int] = None,
    ) -> List[DataPoint]:
        await self.db.initialize()
        await self.db.delay(0.5)

        channel = await self._find_channel(channel_id)
        await self._check_read(channel, api_key)

        points = await self._points_for(channel_id)
        if days:
            cutoff = utcnow() - datetime.timedelta(days=days)
            points = [p for p in points if p.created_at >= cutoff]
        if start is not None:
            points = [p for p in points if p.created_at >= _as_utc(start)]
        if end is not None:
            points = [p for p in points if p.created_at <= _as_utc(end)]
        if limit is not None:
            points = points[:limit]
        return points

    async def get_latest(self, channel_id: str, api_key: Optional[str] = None) -> DataPoint:
        await self.db.initialize()
        await self.db.delay(0.3)

        channel = await self._find_channel(channel_id)
        await self._check_read(channel, api_key)

        points = await self._points_for(channel_id)
        if not points:
            raise NotFound("No data found for this channel")
        return points[0]

    async def get_field_value(
        self,
        channel_id: str,
        field_number: int,
        api_key: Optional[str] = None,
    ) -> FieldReading:
        await self.db.initialize()
        await self.db.delay(0.3)

        channel = await self._find_channel(channel_id)
        await self._check_read(channel, api_key)

        field = next((f for f in channel.fields if f.field_number == field_number), None)
        if field is None:
            raise ValidationFailed(f"Field {field_number} is not defined for this channel")

        for point in await self._points_for(channel_id):
            if field_number in point.field_values:
                return FieldReading(
                    channel_id=channel_id,
                    field_number=field_number,
                    field_name=field.name,
                    value=point.field_values[field_number],
                    created_at=point.created_at,
                )
        raise NotFound(f"No data found for field {field_number}")
