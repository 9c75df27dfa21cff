import datetime
import random
import string
import uuid
from typing import Any, Dict

from pydantic import BaseModel


def generate_api_key(length: int = 16) -> str:
    characters = string.ascii_uppercase + string.digits  # A-Z, 0-9
    return ''.join(random.choices(characters, k=length))


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def to_jsonable(value: Any) -> Any:
    """Dump models (or lists of them) with their camelCase aliases."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, list):
        return [to_jsonable(v) for v in value]
    return value


def ok(data: Any = None) -> Dict[str, Any]:
    return {"success": True, "data": to_jsonable(data)}
