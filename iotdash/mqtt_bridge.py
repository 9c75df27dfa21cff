import asyncio
import json
import logging
from typing import Any, Dict, Optional

import paho.mqtt.client as mqtt

from iotdash.config import Settings
from iotdash.errors import ServiceError
from iotdash.services.data_service import DataService, parse_field_values

logger = logging.getLogger(__name__)


def channel_id_from_topic(topic: str) -> Optional[str]:
    """``channels/<id>/data`` -> ``<id>``."""
    parts = topic.split('/')
    if len(parts) >= 2 and parts[1]:
        return parts[1]
    return None


class MqttBridge:
    """
    Subscribes to device topics and stores every message as a data point.

    paho runs its network loop in a background thread, so messages are
    handed to the server's event loop with ``run_coroutine_threadsafe``.

    Payload: ``{"api_key": "...", "fieldValues": {"1": 20.5}}`` or the flat
    form ``{"api_key": "...", "field1": 20.5}``.
    """

    def __init__(self, settings: Settings, data_service: DataService):
        self.settings = settings
        self.data_service = data_service
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self.client: Optional[mqtt.Client] = None

    def on_connect(self, client, userdata, flags, reason_code, properties):
        if reason_code == 0:
            client.subscribe(self.settings.mqtt_topic)
            logger.info("Connected to MQTT broker, subscribed to %s", self.settings.mqtt_topic)
        else:
            logger.error("Failed to connect to MQTT broker: %s", reason_code)

    def on_message(self, client, userdata, msg):
        channel_id = channel_id_from_topic(msg.topic)
        if channel_id is None:
            logger.warning("Invalid MQTT topic format received: %s", msg.topic)
            return
        try:
            payload = json.loads(msg.payload.decode())
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning("Invalid JSON payload on topic '%s'", msg.topic)
            return
        if not isinstance(payload, dict):
            logger.warning("Expected a JSON object on topic '%s'", msg.topic)
            return

        if self.loop and self.loop.is_running():
            asyncio.run_coroutine_threadsafe(self.handle_payload(channel_id, payload), self.loop)
        else:
            logger.error("Event loop not running; dropping MQTT message for channel %s", channel_id)

    async def handle_payload(self, channel_id: str, payload: Dict[str, Any]) -> bool:
        """Store one message. Returns False when the write was rejected."""
        api_key = payload.get("api_key")
        try:
            values = parse_field_values(payload.get("fieldValues", payload))
            point = await self.data_service.add_data_point(channel_id, values, api_key)
        except ServiceError as e:
            logger.warning("Dropped MQTT data for channel %s: %s", channel_id, e.message)
            return False
        logger.info("MQTT data saved for channel %s: %s", channel_id, point.field_values)
        return True

    def start(self, loop: asyncio.AbstractEventLoop) -> None:
        self.loop = loop
        self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2)
        self.client.on_connect = self.on_connect
        self.client.on_message = self.on_message

        if self.settings.mqtt_username and self.settings.mqtt_password:
            self.client.username_pw_set(self.settings.mqtt_username, self.settings.mqtt_password)

        host, port = self.settings.mqtt_broker_host, self.settings.mqtt_broker_port
        try:
            logger.info("Connecting to MQTT broker at %s:%s", host, port)
            self.client.connect(host, port, 60)
            self.client.loop_start()
        except OSError as e:
            logger.error("Failed to connect to MQTT broker: %s", e)

    def stop(self) -> None:
        if self.client:
            logger.info("Stopping MQTT client")
            self.client.loop_stop()
            self.client.disconnect()
