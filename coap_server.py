# coap_server.py
import asyncio
import json
import logging

from aiocoap import Code, Context, Message
from aiocoap.numbers import ContentFormat
from aiocoap.resource import PathCapable, Resource, Site

from iotdash.config import get_settings
from iotdash.dependencies import data_service
from iotdash.errors import AccessDenied, InvalidApiKey, NotAuthenticated, NotFound, ServiceError
from iotdash.services.data_service import DataService, parse_field_values
from iotdash.utils import to_jsonable

logger = logging.getLogger(__name__)


def query_params(request) -> dict:
    params = {}
    for param in request.opt.uri_query:
        if '=' in param:
            k, v = param.split('=', 1)
            params[k] = v
        else:
            params[param] = ""  # Handle params without values
    return params


def json_response(code, body) -> Message:
    return Message(
        code=code,
        payload=json.dumps(to_jsonable(body)).encode('utf-8'),
        content_format=ContentFormat.JSON,
    )


def error_response(error: ServiceError) -> Message:
    if isinstance(error, NotFound):
        code = Code.NOT_FOUND
    elif isinstance(error, (InvalidApiKey, AccessDenied, NotAuthenticated)):
        code = Code.UNAUTHORIZED
    else:
        code = Code.BAD_REQUEST
    return Message(code=code, payload=error.message.encode('utf-8'))


class ChannelsResource(Resource, PathCapable):
    """
    CoAP counterpart of the channel data API, mounted at /channels.

    PUT /channels/{id}/data?api_key=KEY      payload {"fieldValues": {"1": 25.5}} or {"field1": 25.5}
    GET /channels/{id}/latest?api_key=KEY
    GET /channels/{id}/latest/{n}?api_key=KEY

    The site strips the /channels prefix, so uri_path holds only what follows it.
    """

    def __init__(self, service: DataService):
        super().__init__()
        self.service = service

    async def render_put(self, request):
        path = request.opt.uri_path
        if len(path) != 2 or path[1] != "data":
            return Message(code=Code.NOT_FOUND, payload=b"Unknown resource.")
        channel_id = path[0]
        api_key = query_params(request).get("api_key")

        if not request.payload:
            return Message(code=Code.BAD_REQUEST, payload=b"Empty payload.")
        try:
            payload = json.loads(request.payload.decode('utf-8'))
        except json.JSONDecodeError:
            return Message(code=Code.BAD_REQUEST, payload=b"Invalid JSON payload.")
        except UnicodeDecodeError:
            return Message(code=Code.BAD_REQUEST, payload=b"Invalid payload encoding.")
        if not isinstance(payload, dict):
            return Message(code=Code.BAD_REQUEST, payload=b"Payload must be a JSON object.")

        try:
            values = parse_field_values(payload.get("fieldValues", payload))
            point = await self.service.add_data_point(channel_id, values, api_key or payload.get("api_key"))
        except ServiceError as e:
            logger.warning("CoAP write to channel %s rejected: %s", channel_id, e.message)
            return error_response(e)

        logger.info("CoAP data saved for channel %s", channel_id)
        return json_response(Code.CREATED, point)

    async def render_get(self, request):
        path = request.opt.uri_path
        if len(path) not in (2, 3) or path[1] != "latest":
            return Message(code=Code.NOT_FOUND, payload=b"Unknown resource.")
        channel_id = path[0]
        api_key = query_params(request).get("api_key")

        try:
            if len(path) == 2:
                body = await self.service.get_latest(channel_id, api_key)
            else:
                try:
                    field_number = int(path[2])
                except ValueError:
                    return Message(code=Code.BAD_REQUEST, payload=b"Field number must be an integer.")
                body = await self.service.get_field_value(channel_id, field_number, api_key)
        except ServiceError as e:
            return error_response(e)

        return json_response(Code.CONTENT, body)


def build_site(service: DataService = data_service) -> Site:
    root_resource = Site()
    root_resource.add_resource(('channels',), ChannelsResource(service))
    return root_resource


async def coap_main():
    """
    Run the CoAP server until cancelled.
    """
    settings = get_settings()
    context = await Context.create_server_context(build_site(), bind=(settings.coap_host, settings.coap_port))

    logger.info("CoAP server started on UDP port %s", settings.coap_port)
    try:
        await asyncio.get_running_loop().create_future()
    except asyncio.CancelledError:
        logger.info("CoAP server shutting down")
    finally:
        await context.shutdown()


if __name__ == "__main__":
    from iotdash.database import db
    from iotdash.logging_config import setup_logging

    async def run_standalone_server():
        await db.connect()
        try:
            await coap_main()
        finally:
            await db.close()

    settings = get_settings()
    setup_logging(settings.log_level, settings.log_file)
    try:
        asyncio.run(run_standalone_server())
    except KeyboardInterrupt:
        logger.info("CoAP server stopped by user")
