import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


@dataclass
class Settings:
    """Application settings read from the environment (and a .env file)."""

    app_name: str = "IoT Dashboard"
    version: str = "1.0.0"
    log_level: str = "INFO"
    log_file: Optional[str] = None

    # memory | file | mongo
    storage_backend: str = "file"
    data_dir: str = "./data"
    mongo_uri: Optional[str] = None
    mongo_collection: str = "storage"
    simulate_latency: bool = False

    mqtt_enabled: bool = True
    mqtt_broker_host: str = "localhost"
    mqtt_broker_port: int = 1883
    mqtt_username: Optional[str] = None
    mqtt_password: Optional[str] = None
    mqtt_topic: str = "channels/+/data"

    coap_enabled: bool = True
    coap_host: str = "0.0.0.0"
    coap_port: int = 5683

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            app_name=os.getenv("APP_NAME", "IoT Dashboard"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_file=os.getenv("LOG_FILE") or None,
            storage_backend=os.getenv("STORAGE_BACKEND", "file").lower(),
            data_dir=os.getenv("DATA_DIR", "./data"),
            mongo_uri=os.getenv("MONGO_URI") or None,
            mongo_collection=os.getenv("MONGO_COLLECTION", "storage"),
            simulate_latency=_env_bool("SIMULATE_LATENCY", "false"),
            mqtt_enabled=_env_bool("MQTT_ENABLED", "true"),
            mqtt_broker_host=os.getenv("MQTT_BROKER_HOST", "localhost"),
            mqtt_broker_port=int(os.getenv("MQTT_BROKER_PORT", 1883)),
            mqtt_username=os.getenv("MQTT_USERNAME") or None,
            mqtt_password=os.getenv("MQTT_PASSWORD") or None,
            mqtt_topic=os.getenv("MQTT_TOPIC", "channels/+/data"),
            coap_enabled=_env_bool("COAP_ENABLED", "true"),
            coap_host=os.getenv("COAP_HOST", "0.0.0.0"),
            coap_port=int(os.getenv("COAP_PORT", 5683)),
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Return the process-wide settings, reading the environment on first use."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings
