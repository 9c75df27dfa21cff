import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field as PydanticField, FiniteFloat
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model persisted and served with camelCase keys (createdAt, isPublic, ...)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class User(CamelModel):
    id: str
    username: str
    email: str
    created_at: datetime


class StoredUser(User):
    """User as kept in storage. Never handed out: see ``public()``."""

    password: str

    def public(self) -> User:
        return User(**self.model_dump(exclude={"password"}))


class Field(CamelModel):
    """A named numeric slot in a channel, addressed by its field number."""

    id: str = PydanticField(default_factory=lambda: uuid.uuid4().hex)
    name: str
    field_number: int


class ApiKeys(CamelModel):
    read_key: str
    write_key: str


class Channel(CamelModel):
    id: str
    name: str
    description: str = ""
    fields: List[Field] = []
    is_public: bool = False
    created_at: datetime
    last_entry: Optional[datetime] = None
    user_id: str
    tags: List[str] = []
    api_keys: ApiKeys

    def field_numbers(self) -> List[int]:
        return [f.field_number for f in self.fields]


class ChannelCreate(CamelModel):
    """
    Attributes supplied when creating a channel. Identity, ownership,
    timestamps and API keys are assigned by the server.
    """
    name: str
    description: str = ""
    fields: List[Field] = []
    is_public: bool = False
    tags: List[str] = []


class ChannelUpdate(CamelModel):
    """Partial update; only attributes that are set get merged."""
    name: Optional[str] = None
    description: Optional[str] = None
    fields: Optional[List[Field]] = None
    is_public: Optional[bool] = None
    tags: Optional[List[str]] = None


class FieldCreate(CamelModel):
    name: str


class DataPoint(CamelModel):
    id: str
    channel_id: str
    created_at: datetime
    field_values: Dict[int, FiniteFloat] = {}


class DataWrite(CamelModel):
    """Body of a data write: field number -> reading."""
    field_values: Dict[int, float]
    api_key: Optional[str] = None


class FieldReading(CamelModel):
    channel_id: str
    field_number: int
    field_name: str
    value: float
    created_at: datetime


class RegisterRequest(CamelModel):
    username: str
    email: str
    password: str


class LoginRequest(CamelModel):
    email: str
    password: str


class ProfileSummary(CamelModel):
    user: User
    total_channels: int
    public_channels: int
    private_channels: int


# chart.js shapes

class ChartDataset(CamelModel):
    label: str
    data: List[float]
    border_color: str
    background_color: str
    fill: bool = False
    tension: float = 0.4


class ChartData(CamelModel):
    labels: List[str]
    datasets: List[ChartDataset]


class LegendOptions(CamelModel):
    position: str = "top"


class TitleOptions(CamelModel):
    display: bool = True
    text: str


class PluginOptions(CamelModel):
    legend: LegendOptions = LegendOptions()
    title: TitleOptions


class AxisOptions(CamelModel):
    begin_at_zero: bool = True


class ScaleOptions(CamelModel):
    y: AxisOptions = AxisOptions()


class ChartOptions(CamelModel):
    responsive: bool = True
    plugins: PluginOptions
    scales: ScaleOptions = ScaleOptions()


class ChartResponse(CamelModel):
    channel_id: str
    timeframe: str
    data: ChartData
    options: ChartOptions
