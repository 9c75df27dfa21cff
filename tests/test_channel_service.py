"""Unit tests for the channel service

Tests channel CRUD and its visibility rules:
- Owner-or-public listing and search
- Single channel reads
- Creation defaults and API keys
- Owner-only updates and deletes
- Field management
"""
import asyncio

import pytest

from conftest import hours_ago, insert_point, run
from iotdash.database import CHANNELS_KEY, DATA_KEY
from iotdash.errors import AccessDenied, NotAuthenticated, NotFound
from iotdash.models import ChannelCreate, ChannelUpdate, Field


class TestListChannels:
    """Test listing visible channels"""

    def test_requires_sign_in(self, channels, auth):
        with pytest.raises(NotAuthenticated) as exc:
            run(channels.get_channels())
        assert exc.value.message == "Not authenticated"

    def test_owner_sees_own_channels(self, channels, weather_channel, public_channel):
        listed = run(channels.get_channels())
        assert [c.id for c in listed] == [weather_channel.id, public_channel.id]

    def test_others_see_only_public(self, channels, weather_channel, public_channel, stranger):
        listed = run(channels.get_channels())
        assert [c.id for c in listed] == [public_channel.id]

    def test_search_matches_name_description_and_tags(self, channels, weather_channel, public_channel):
        assert [c.id for c in run(channels.get_channels(search="weather"))] == [weather_channel.id]
        assert [c.id for c in run(channels.get_channels(search="TANK"))] == [public_channel.id]
        assert [c.id for c in run(channels.get_channels(search="backyard"))] == [weather_channel.id]
        assert [c.id for c in run(channels.get_channels(search="outdoor"))] == [weather_channel.id]

    def test_search_without_match(self, channels, weather_channel):
        assert run(channels.get_channels(search="pressure")) == []

    def test_blank_search_ignored(self, channels, weather_channel, public_channel):
        assert len(run(channels.get_channels(search="   "))) == 2

    def test_search_term_not_trimmed(self, channels, weather_channel, public_channel):
        assert [c.id for c in run(channels.get_channels(search=" station"))] == [weather_channel.id]
        assert run(channels.get_channels(search="station ")) == []


class TestGetChannel:
    """Test reading a single channel"""

    def test_owner_reads_private_channel(self, channels, weather_channel):
        assert run(channels.get_channel(weather_channel.id)).to_record() == weather_channel.to_record()

    def test_private_channel_denied_to_others(self, channels, weather_channel, stranger):
        with pytest.raises(AccessDenied) as exc:
            run(channels.get_channel(weather_channel.id))
        assert exc.value.message == "Access denied"

    def test_private_channel_denied_when_signed_out(self, channels, auth, weather_channel):
        run(auth.logout())
        with pytest.raises(AccessDenied):
            run(channels.get_channel(weather_channel.id))

    def test_public_channel_readable_when_signed_out(self, channels, auth, public_channel):
        run(auth.logout())
        assert run(channels.get_channel(public_channel.id)).name == "Tank Level"

    def test_unknown_channel(self, channels, owner):
        with pytest.raises(NotFound) as exc:
            run(channels.get_channel("missing"))
        assert exc.value.message == "Channel not found"


class TestCreateChannel:
    """Test channel creation"""

    def test_server_assigned_attributes(self, weather_channel, owner):
        assert weather_channel.id
        assert weather_channel.user_id == owner.id
        assert weather_channel.last_entry is None
        assert weather_channel.created_at is not None
        assert [f.field_number for f in weather_channel.fields] == [1, 2]
        assert weather_channel.tags == ["weather", "outdoor"]

    def test_api_keys_generated(self, weather_channel):
        keys = weather_channel.api_keys
        assert len(keys.read_key) == 16
        assert len(keys.write_key) == 16
        assert keys.read_key != keys.write_key

    def test_channel_persisted_with_camel_case_keys(self, channels, database, weather_channel):
        records = run(database.get_collection(CHANNELS_KEY))
        assert records[0]["isPublic"] is False
        assert records[0]["apiKeys"]["writeKey"] == weather_channel.api_keys.write_key
        assert records[0]["fields"][0]["fieldNumber"] == 1
        assert records[0]["lastEntry"] is None

    def test_requires_sign_in(self, channels):
        with pytest.raises(NotAuthenticated):
            run(channels.create_channel(ChannelCreate(name="x")))

    def test_parallel_creates_all_kept(self, channels, yielding, owner):
        async def create_many():
            return await asyncio.gather(*(
                channels.create_channel(ChannelCreate(name=f"Sensor {n}")) for n in range(5)
            ))

        created = run(create_many())

        stored = run(yielding.get_collection(CHANNELS_KEY))
        assert sorted(c["id"] for c in stored) == sorted(c.id for c in created)


class TestUpdateChannel:
    """Test owner-only updates"""

    def test_merges_provided_attributes(self, channels, weather_channel):
        updated = run(channels.update_channel(
            weather_channel.id, ChannelUpdate(name="Garden", is_public=True),
        ))

        assert updated.name == "Garden"
        assert updated.is_public is True
        assert updated.description == weather_channel.description
        assert updated.api_keys == weather_channel.api_keys
        assert run(channels.get_channel(weather_channel.id)).name == "Garden"

    def test_replaces_fields(self, channels, weather_channel):
        updated = run(channels.update_channel(
            weather_channel.id, ChannelUpdate(fields=[Field(name="Pressure", field_number=3)]),
        ))
        assert [f.name for f in updated.fields] == ["Pressure"]

    def test_null_values_ignored(self, channels, weather_channel):
        updated = run(channels.update_channel(weather_channel.id, ChannelUpdate(name=None)))
        assert updated.name == "Weather Station"

    def test_non_owner_denied(self, channels, public_channel, stranger):
        with pytest.raises(AccessDenied):
            run(channels.update_channel(public_channel.id, ChannelUpdate(name="mine")))

    def test_unknown_channel(self, channels, owner):
        with pytest.raises(NotFound):
            run(channels.update_channel("missing", ChannelUpdate(name="x")))

    def test_requires_sign_in(self, channels, auth, weather_channel):
        run(auth.logout())
        with pytest.raises(NotAuthenticated):
            run(channels.update_channel(weather_channel.id, ChannelUpdate(name="x")))


class TestDeleteChannel:
    """Test owner-only deletes"""

    def test_removes_channel_and_its_data(self, channels, database, weather_channel, public_channel):
        insert_point(database, weather_channel.id, hours_ago(1), {1: 20.0})
        insert_point(database, public_channel.id, hours_ago(1), {1: 80.0})

        run(channels.delete_channel(weather_channel.id))

        assert [c.id for c in run(channels.get_channels())] == [public_channel.id]
        remaining = run(database.get_collection(DATA_KEY))
        assert [p["channelId"] for p in remaining] == [public_channel.id]

    def test_non_owner_denied(self, channels, public_channel, stranger):
        with pytest.raises(AccessDenied):
            run(channels.delete_channel(public_channel.id))

    def test_unknown_channel(self, channels, owner):
        with pytest.raises(NotFound):
            run(channels.delete_channel("missing"))


class TestFields:
    """Test adding and removing fields"""

    def test_add_field_takes_next_number(self, channels, weather_channel):
        updated = run(channels.add_field(weather_channel.id, "Pressure"))

        assert [(f.name, f.field_number) for f in updated.fields] == [
            ("Temperature", 1), ("Humidity", 2), ("Pressure", 3),
        ]

    def test_first_field_is_number_one(self, channels, owner):
        channel = run(channels.create_channel(ChannelCreate(name="Empty")))
        updated = run(channels.add_field(channel.id, "Voltage"))
        assert updated.fields[0].field_number == 1

    def test_numbers_follow_highest_not_count(self, channels, weather_channel):
        humidity = weather_channel.fields[1]
        run(channels.remove_field(weather_channel.id, weather_channel.fields[0].id))
        updated = run(channels.add_field(weather_channel.id, "Wind"))

        assert [f.field_number for f in updated.fields] == [humidity.field_number, 3]

    def test_remove_field(self, channels, weather_channel):
        updated = run(channels.remove_field(weather_channel.id, weather_channel.fields[0].id))
        assert [f.name for f in updated.fields] == ["Humidity"]

    def test_remove_unknown_field(self, channels, weather_channel):
        with pytest.raises(NotFound) as exc:
            run(channels.remove_field(weather_channel.id, "nope"))
        assert exc.value.message == "Field not found"

    def test_add_field_non_owner_denied(self, channels, public_channel, stranger):
        with pytest.raises(AccessDenied):
            run(channels.add_field(public_channel.id, "Mine"))
