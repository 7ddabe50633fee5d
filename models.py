"""
models.py — Pydantic schemas for every persisted garden entity.

Single source of truth for the stored data shapes. The schemas are used for:
- Validating records read back from either storage backend
- Re-validating entities on the write path
- Producing the camelCase JSON records that both backends persist

Python attributes are snake_case; the stored JSON keys are camelCase
(e.g. ``days_to_harvest`` <-> ``daysToHarvest``).
"""

import re
from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union
from urllib.parse import urlparse

from pydantic import (
    AwareDatetime,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


# ========================================
# Shared types
# ========================================

SunRequirement = Literal['full', 'partial', 'shade']
SeedlingStatus = Literal['germinating', 'growing', 'hardening', 'ready']
GardenEventType = Literal[
    'planted', 'watered', 'composted', 'weeded', 'harvested', 'sown', 'sprouted'
]
# Where a plant record originated; controls overwrite behaviour on library sync.
PlantSource = Literal['bundled', 'synced', 'custom']

Month = Annotated[StrictInt, Field(ge=1, le=12)]
GridSize = Annotated[StrictInt, Field(ge=1, le=20)]

ISO_DATETIME_RE = re.compile(r'^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}')


def _require_iso_datetime(value):
    """Stored dates are ISO-8601 strings; numbers are not read as Unix timestamps."""
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not ISO_DATETIME_RE.match(value):
        raise ValueError("expected an ISO-8601 date-time string with an offset")
    return value


Timestamp = Annotated[AwareDatetime, BeforeValidator(_require_iso_datetime)]


class Record(BaseModel):
    """Base for all stored shapes: camelCase on disk, snake_case in Python."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ========================================
# Plant catalogue
# ========================================

class Plant(Record):
    """A species/variety in the plant catalogue."""
    id: str
    name: str = Field(min_length=1)
    color: str
    icon: str
    description: Optional[str] = None
    variety: Optional[str] = None
    days_to_harvest: Optional[Annotated[StrictInt, Field(gt=0)]] = None
    is_seed: StrictBool = False
    # Current stock count (seeds)
    amount: Optional[Annotated[StrictInt, Field(ge=0)]] = None
    spacing_cm: Optional[Annotated[StrictFloat, Field(gt=0)]] = None
    # None means "not specified", which is not the same as False
    frost_hardy: Optional[StrictBool] = None
    companions: List[str] = Field(default_factory=list)
    antagonists: List[str] = Field(default_factory=list)
    sow_indoor_months: List[Month] = Field(default_factory=list)
    sow_direct_months: List[Month] = Field(default_factory=list)
    harvest_months: List[Month] = Field(default_factory=list)
    sun_requirement: Optional[SunRequirement] = None
    source: PlantSource = 'bundled'


# ========================================
# Planter grid
# ========================================

class PestEvent(Record):
    """A logged pest sighting or treatment on a plant instance."""
    id: str
    date: Timestamp
    type: Literal['pest', 'treatment']
    description: str


class PlantInstance(Record):
    """A specific plant placed in a planter square."""
    instance_id: str
    plant: Plant
    planting_date: Optional[Timestamp] = None
    harvest_date: Optional[Timestamp] = None
    variety: Optional[str] = None
    pest_events: List[PestEvent] = Field(default_factory=list)


class PlanterSquare(Record):
    """One cell of a planter grid. The key is required, the value may be null."""
    plant_instance: Optional[PlantInstance]


class VirtualSection(Record):
    """A named band of rows or columns within a planter."""
    id: str
    name: str = Field(min_length=1)
    type: Literal['rows', 'columns']
    start: Annotated[StrictInt, Field(ge=0)]
    end: Annotated[StrictInt, Field(ge=0)]
    color: Optional[str] = None


class Planter(Record):
    """A raised bed, container or row within an area."""
    id: str
    name: str = Field(min_length=1)
    rows: GridSize
    cols: GridSize
    # squares[row][col]; empty squares hold plant_instance=None
    squares: Optional[List[List[PlanterSquare]]] = None
    virtual_sections: List[VirtualSection] = Field(default_factory=list)
    background_color: Optional[str] = None
    tagline: Optional[str] = None

    @model_validator(mode='after')
    def check_grid_dimensions(self):
        if self.squares is None:
            return self
        if len(self.squares) != self.rows:
            raise ValueError(
                f"squares has {len(self.squares)} rows, expected {self.rows}"
            )
        for index, row in enumerate(self.squares):
            if len(row) != self.cols:
                raise ValueError(
                    f"squares row {index} has {len(row)} columns, expected {self.cols}"
                )
        return self


class Area(Record):
    """A named garden zone containing planters."""
    id: str
    name: str = Field(min_length=1)
    tagline: Optional[str] = None
    background_color: Optional[str] = None
    planters: List[Planter] = Field(default_factory=list)
    profile_id: str = 'default'


# ========================================
# Seedlings and events
# ========================================

class Seedling(Record):
    """A batch of seeds being germinated or started indoors."""
    id: str
    plant: Plant
    planted_date: Timestamp
    seed_count: Annotated[StrictInt, Field(gt=0)]
    location: str
    method: Optional[Literal['indoor', 'direct-sow']] = None
    status: SeedlingStatus


class GardenEvent(Record):
    """A logged action in the garden."""
    id: str
    type: GardenEventType
    plant: Optional[Plant] = None
    date: Timestamp
    # Planter this event relates to, if any
    garden_id: Optional[str] = None
    note: Optional[str] = None
    profile_id: str = 'default'


# ========================================
# Settings
# ========================================

class NoAiProvider(Record):
    kind: Literal['none'] = 'none'


class ByokAiProvider(Record):
    """User-supplied API key."""
    kind: Literal['byok'] = 'byok'
    key: str = Field(min_length=1)


class ProxyAiProvider(Record):
    kind: Literal['proxy'] = 'proxy'
    proxy_url: str
    token: Optional[str] = None

    @field_validator('proxy_url')
    @classmethod
    def check_proxy_url(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme not in ('http', 'https') or not parsed.netloc:
            raise ValueError("proxyUrl must be an absolute http(s) URL")
        return value


AiProvider = Annotated[
    Union[NoAiProvider, ByokAiProvider, ProxyAiProvider],
    Field(discriminator='kind'),
]


class Settings(Record):
    """User preferences. Every field has a default so Settings() is always valid."""
    location: str = ''
    growth_zone: str = '6b'
    weather_provider: str = 'open-meteo'
    ai_provider: AiProvider = Field(default_factory=NoAiProvider)
    # BCP 47 locale tag, e.g. 'en', 'nl'
    locale: str = 'en'
    lat: Optional[StrictFloat] = None
    lng: Optional[StrictFloat] = None
    profile_id: str = 'default'


def describe_ai_provider(provider) -> str:
    """Log-safe description of an AI provider; never includes key or token."""
    if isinstance(provider, NoAiProvider):
        return 'none'
    if isinstance(provider, ByokAiProvider):
        return 'byok'
    if isinstance(provider, ProxyAiProvider):
        host = urlparse(provider.proxy_url).netloc
        return f"proxy({host}, token={'set' if provider.token else 'unset'})"
    raise TypeError(f"Unknown AI provider variant: {type(provider).__name__}")


def to_record(entity: BaseModel) -> dict:
    """JSON-ready camelCase dict, the form persisted by every backend."""
    return entity.model_dump(mode='json', by_alias=True)
