# coap_simulation_client.py
import asyncio
import json
import logging
import os
from urllib.parse import urlencode

import aiocoap

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger("CoAPClientSimulator")

COAP_SERVER_HOST = os.getenv("COAP_SERVER_HOST", "localhost")
COAP_SERVER_PORT = int(os.getenv("COAP_SERVER_PORT", 5683))


def channel_uri(channel_id: str, *path: str, api_key: str) -> str:
    segments = "/".join(("channels", channel_id) + path)
    return f"coap://{COAP_SERVER_HOST}:{COAP_SERVER_PORT}/{segments}?{urlencode({'api_key': api_key})}"


async def send_coap_put(channel_id: str, api_key: str, field_values: dict):
    """Stores one data point through the CoAP data resource."""
    protocol = await aiocoap.Context.create_client_context()
    uri = channel_uri(channel_id, "data", api_key=api_key)

    request = aiocoap.Message(
        code=aiocoap.Code.PUT,
        uri=uri,
        content_format=aiocoap.ContentFormat.JSON,
        payload=json.dumps({"fieldValues": field_values}).encode('utf-8'),
    )

    logger.info(f"Sending CoAP PUT request to: {uri}")
    logger.info(f"Payload: {field_values}")

    try:
        response = await protocol.request(request).response
        logger.info(f"CoAP PUT Response Code: {response.code}")
        logger.info(f"CoAP PUT Response Payload: {response.payload.decode('utf-8')}")
    except Exception as e:
        logger.error(f"Failed to send CoAP PUT request: {e}")
    finally:
        await protocol.shutdown()


async def send_coap_get_latest(channel_id: str, api_key: str, field_number: int = None):
    """Reads the newest data point, or one field's newest value."""
    protocol = await aiocoap.Context.create_client_context()
    path = ("latest",) if field_number is None else ("latest", str(field_number))
    uri = channel_uri(channel_id, *path, api_key=api_key)

    request = aiocoap.Message(code=aiocoap.Code.GET, uri=uri)
    logger.info(f"Sending CoAP GET request to: {uri}")

    try:
        response = await protocol.request(request).response
        logger.info(f"CoAP GET Response Code: {response.code}")
        logger.info(f"CoAP GET Response Payload: {response.payload.decode('utf-8')}")
    except Exception as e:
        logger.error(f"Failed to send CoAP GET request: {e}")
    finally:
        await protocol.shutdown()


async def main():
    channel_id = os.getenv("SIM_CHANNEL_ID")
    write_key = os.getenv("SIM_WRITE_API_KEY")
    read_key = os.getenv("SIM_READ_API_KEY", write_key)

    if not channel_id or not write_key:
        logger.warning("Set SIM_CHANNEL_ID and SIM_WRITE_API_KEY to an existing channel's id and write key.")
        logger.warning("Create a channel first via http://localhost:8000/docs to get these values.")
        return

    logger.info(f"Starting CoAP client simulation for channel '{channel_id}'...")

    logger.info("--- Sending first PUT request (fields 1, 2, 3) ---")
    await send_coap_put(channel_id, write_key, {"1": 22.5, "2": 58.0, "3": 75.2})
    await asyncio.sleep(3)

    logger.info("--- Sending second PUT request (field 3 only) ---")
    await send_coap_put(channel_id, write_key, {"3": 76.8})
    await asyncio.sleep(3)

    logger.info("--- Reading back the latest data point and field 3 ---")
    await send_coap_get_latest(channel_id, read_key)
    await send_coap_get_latest(channel_id, read_key, field_number=3)

    logger.info("CoAP client simulation completed for this run.")


if __name__ == "__main__":
    asyncio.run(main())
