import logging
import os
import random
from typing import Dict, Optional

import requests
from apscheduler.schedulers.blocking import BlockingScheduler

from iotdash.logging_config import setup_logging

logger = logging.getLogger("simulator")

# --- Configuration ---
# Base URL of the running API; the channel id and write key come from
# the channel's detail response.
API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:8000/api")
CHANNEL_ID = os.getenv("SIM_CHANNEL_ID", "")
WRITE_API_KEY = os.getenv("SIM_WRITE_API_KEY", "")

# Baseline reading per field number
STANDARD_VALUES: Dict[int, float] = {
    1: 25.0,    # temperature, degrees Celsius
    2: 60.0,    # humidity, percentage
    3: 100.0,   # level
    4: 7.0,     # pH
    5: 1010.0,  # pressure, hPa
}

# Readings deviate from the baseline by at most this much
DEVIATION_RANGE = 10.0

SEND_INTERVAL_MINUTES = float(os.getenv("SIM_INTERVAL_MINUTES", 1))

# Fields whose readings can't go below zero / outside a fixed range
CLAMPED_FIELDS = {
    3: (0.0, None),
    4: (0.0, 14.0),
}


def generate_random_value(field_number: int) -> Optional[float]:
    """
    A reading within +/- DEVIATION_RANGE of the field's baseline,
    clamped for fields with a physical range.
    """
    standard_val = STANDARD_VALUES.get(field_number)
    if standard_val is None:
        logger.warning("No standard value defined for field %s. Skipping.", field_number)
        return None

    min_val = standard_val - DEVIATION_RANGE
    max_val = standard_val + DEVIATION_RANGE

    low, high = CLAMPED_FIELDS.get(field_number, (None, None))
    if low is not None:
        min_val = max(low, min_val)
    if high is not None:
        max_val = min(high, max_val)
    return round(random.uniform(min_val, max_val), 2)


def build_update_params(api_key: str, readings: Dict[int, float]) -> Dict[str, str]:
    params = {"api_key": api_key}
    for field_number, value in readings.items():
        params[f"field{field_number}"] = str(value)
    return params


def send_data_to_channel(
    channel_id: str = CHANNEL_ID,
    api_key: str = WRITE_API_KEY,
    base_url: str = API_BASE_URL,
) -> bool:
    """
    Generates a reading for every baseline field and sends it with a GET
    request to the channel's update endpoint.
    """
    readings = {}
    for field_number in STANDARD_VALUES:
        value = generate_random_value(field_number)
        if value is not None:
            readings[field_number] = value

    url = f"{base_url}/channels/{requests.utils.quote(channel_id)}/update"
    logger.info("Sending %s to channel '%s'", readings, channel_id)
    try:
        response = requests.get(url, params=build_update_params(api_key, readings), timeout=10)
        response.raise_for_status()
    except requests.exceptions.RequestException as e:
        logger.error("Error sending data: %s", e)
        if e.response is not None:
            logger.error("Server response content: %s", e.response.text)
        return False

    logger.info("Data sent successfully! Response: %s", response.json())
    return True


def main():
    setup_logging(os.getenv("LOG_LEVEL", "INFO"))
    if not CHANNEL_ID or not WRITE_API_KEY:
        logger.error("Set SIM_CHANNEL_ID and SIM_WRITE_API_KEY to a channel's id and write key.")
        return

    scheduler = BlockingScheduler()
    scheduler.add_job(send_data_to_channel, 'interval', minutes=SEND_INTERVAL_MINUTES)

    logger.info("IoT data simulator started for channel '%s'", CHANNEL_ID)
    logger.info("Data will be sent every %s minutes to %s", SEND_INTERVAL_MINUTES, API_BASE_URL)
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Simulator stopped.")


if __name__ == "__main__":
    main()
