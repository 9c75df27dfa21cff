from typing import Optional

from fastapi import APIRouter, Query

from iotdash.dependencies import data_service
from iotdash.utils import ok

router = APIRouter(tags=["data"])


@router.get("/{channel_id}/latest", summary="Get latest data for a channel")
async def get_latest_data(
    channel_id: str,
    api_key: Optional[str] = Query(None, description="Read API key"),
):
    """
    Retrieves the most recent data point of a channel.
    """
    return ok(await data_service.get_latest(channel_id, api_key))


@router.get("/{channel_id}/latest/{field_number}", summary="Get specific field value from latest data")
async def get_field_value(
    channel_id: str,
    field_number: int,
    api_key: Optional[str] = Query(None, description="Read API key"),
):
    """
    Retrieves the newest reading of one field, skipping points that did
    not carry it.
    """
    return ok(await data_service.get_field_value(channel_id, field_number, api_key))
