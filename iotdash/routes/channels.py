import datetime
from typing import Optional

from fastapi import APIRouter, Body, Query, Request, status

from iotdash.dependencies import channel_service, data_service
from iotdash.models import ChannelCreate, ChannelUpdate, ChartResponse, DataWrite, FieldCreate
from iotdash.services.chart_service import (
    DEFAULT_TIMEFRAME,
    build_chart_data,
    build_chart_options,
)
from iotdash.services.data_service import parse_field_values
from iotdash.utils import ok

router = APIRouter(tags=["channels"])


@router.get("/", summary="List visible channels")
async def list_channels(
    search: Optional[str] = Query(None, description="Match against name, description and tags"),
):
    """Channels owned by the current user plus every public channel."""
    return ok(await channel_service.get_channels(search=search))


@router.post("/", status_code=status.HTTP_201_CREATED, summary="Create a new channel")
async def create_channel(channel: ChannelCreate):
    """
    Creates a channel owned by the current user. The response carries the
    generated read and write API keys.
    """
    return ok(await channel_service.create_channel(channel))


@router.get("/{channel_id}", summary="Get channel details")
async def get_channel(channel_id: str):
    """Public channels are readable by anyone, private ones only by their owner."""
    return ok(await channel_service.get_channel(channel_id))


@router.patch("/{channel_id}", summary="Update a channel")
async def update_channel(channel_id: str, update: ChannelUpdate = Body(...)):
    return ok(await channel_service.update_channel(channel_id, update))


@router.delete("/{channel_id}", summary="Delete channel and all its data")
async def delete_channel(channel_id: str):
    await channel_service.delete_channel(channel_id)
    return ok()


@router.post("/{channel_id}/fields", status_code=status.HTTP_201_CREATED, summary="Add a field to a channel")
async def add_field(channel_id: str, field: FieldCreate):
    """The new field gets the next free field number."""
    return ok(await channel_service.add_field(channel_id, field.name))


@router.delete("/{channel_id}/fields/{field_id}", summary="Remove a field from a channel")
async def remove_field(channel_id: str, field_id: str):
    """Removes the field definition. Stored data points are left untouched."""
    return ok(await channel_service.remove_field(channel_id, field_id))


@router.post("/{channel_id}/feeds", status_code=status.HTTP_201_CREATED, summary="Write data to a channel (JSON Body)")
async def write_data(
    channel_id: str,
    payload: DataWrite,
    api_key: Optional[str] = Query(None, description="Write API key; not needed for the channel owner"),
):
    """
    Stores one data point. Every key of ``fieldValues`` must be a field
    number declared on the channel.
    """
    point = await data_service.add_data_point(channel_id, payload.field_values, api_key or payload.api_key)
    return ok(point)


@router.get("/{channel_id}/update", summary="Write data to a channel (URL Query Params)")
async def write_data_by_query_params(channel_id: str, request: Request):
    """
    Stores one data point from query parameters, for devices that can only
    issue GET requests.
    Example: GET /api/channels/<id>/update?api_key=XYZ&field1=25.5&field2=60
    """
    params = dict(request.query_params)
    field_values = parse_field_values(params)
    point = await data_service.add_data_point(channel_id, field_values, params.get("api_key"))
    return ok(point)


@router.get("/{channel_id}/feeds", summary="Get historical data for a channel")
async def get_channel_data(
    channel_id: str,
    api_key: Optional[str] = Query(None, description="Read API key; not needed for public channels or the owner"),
    days: Optional[float] = Query(None, description="Only points from the last N days", gt=0),
    start: Optional[datetime.datetime] = Query(None, description="Start timestamp (ISO 8601)"),
    end: Optional[datetime.datetime] = Query(None, description="End timestamp (ISO 8601)"),
    limit: Optional[int] = Query(None, description="Maximum number of points (newest kept)", ge=1, le=8000),
):
    """Data points of a channel, newest first."""
    points = await data_service.get_channel_data(
        channel_id, days=days, api_key=api_key, start=start, end=end, limit=limit,
    )
    return ok(points)


@router.get("/{channel_id}/chart", summary="Get chart.js data for a channel")
async def get_chart(
    channel_id: str,
    timeframe: str = Query(DEFAULT_TIMEFRAME, description="One of 1h, 6h, 24h, 7d, 30d, all"),
    api_key: Optional[str] = Query(None, description="Read API key"),
):
    channel = await data_service.get_readable_channel(channel_id, api_key)
    points = await data_service.get_channel_data(channel_id, api_key=api_key)
    return ok(ChartResponse(
        channel_id=channel_id,
        timeframe=timeframe,
        data=build_chart_data(channel, points, timeframe),
        options=build_chart_options(channel),
    ))
