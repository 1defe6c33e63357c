"""Per-table payload schemas for entity create and update.

Create schemas fill defaults; update schemas are partial and only the fields
a client actually sent are applied. Unknown keys (id, reptileId, userId,
timestamps) are ignored here; services set those themselves.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from ..errors import ValidationError
from ..models import SyncTable


class _Schema(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        str_strip_whitespace=True,
    )


def _not_future(value):
    if value is None:
        return value
    now = datetime.now(timezone.utc)
    if isinstance(value, datetime):
        compare = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        if compare > now:
            raise ValueError("cannot be in the future")
    elif isinstance(value, date) and value > now.date():
        raise ValueError("cannot be in the future")
    return value


# =============================================================================
# Reptiles
# =============================================================================


class Sex(str, Enum):
    MALE = "MALE"
    FEMALE = "FEMALE"
    UNKNOWN = "UNKNOWN"


class ReptileCreate(_Schema):
    name: str = Field(..., min_length=1, max_length=100)
    species: str = Field(..., min_length=1)
    morph: str | None = Field(default=None, max_length=200)
    sex: Sex = Sex.UNKNOWN
    birth_date: date | None = None
    acquisition_date: date
    current_weight: float | None = Field(default=None, gt=0)
    notes: str | None = Field(default=None, max_length=2000)
    is_public: bool = False

    @field_validator("birth_date", "acquisition_date")
    @classmethod
    def check_not_future(cls, value):
        return _not_future(value)

    @model_validator(mode="after")
    def check_acquired_after_birth(self):
        if self.birth_date and self.acquisition_date < self.birth_date:
            raise ValueError("Acquisition date cannot be before birth date")
        return self


class ReptileUpdate(_Schema):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    species: str | None = Field(default=None, min_length=1)
    morph: str | None = Field(default=None, max_length=200)
    sex: Sex | None = None
    birth_date: date | None = None
    acquisition_date: date | None = None
    current_weight: float | None = Field(default=None, gt=0)
    notes: str | None = Field(default=None, max_length=2000)
    is_public: bool | None = None

    @field_validator("birth_date", "acquisition_date")
    @classmethod
    def check_not_future(cls, value):
        return _not_future(value)


# =============================================================================
# Feedings
# =============================================================================


class PreySource(str, Enum):
    LIVE = "LIVE"
    FROZEN_THAWED = "FROZEN_THAWED"
    PRE_KILLED = "PRE_KILLED"


class FeedingCreate(_Schema):
    date: datetime
    prey_type: str = Field(..., min_length=1, max_length=100)
    prey_size: str = Field(..., min_length=1, max_length=50)
    prey_source: PreySource
    accepted: bool
    refused: bool = False
    regurgitated: bool = False
    notes: str | None = Field(default=None, max_length=2000)


class FeedingUpdate(_Schema):
    date: datetime | None = None
    prey_type: str | None = Field(default=None, min_length=1, max_length=100)
    prey_size: str | None = Field(default=None, min_length=1, max_length=50)
    prey_source: PreySource | None = None
    accepted: bool | None = None
    refused: bool | None = None
    regurgitated: bool | None = None
    notes: str | None = Field(default=None, max_length=2000)


# =============================================================================
# Sheds
# =============================================================================


class ShedQuality(str, Enum):
    COMPLETE = "COMPLETE"
    PARTIAL = "PARTIAL"
    PROBLEMATIC = "PROBLEMATIC"


class ShedCreate(_Schema):
    start_date: datetime | None = None
    completed_date: datetime
    quality: ShedQuality
    is_complete: bool = True
    issues: str | None = Field(default=None, max_length=500)
    notes: str | None = Field(default=None, max_length=2000)

    @field_validator("start_date", "completed_date")
    @classmethod
    def check_not_future(cls, value):
        return _not_future(value)

    @model_validator(mode="after")
    def check_completed_after_start(self):
        if self.start_date and _aware(self.completed_date) < _aware(self.start_date):
            raise ValueError("Completed date cannot be before start date")
        return self


class ShedUpdate(_Schema):
    start_date: datetime | None = None
    completed_date: datetime | None = None
    quality: ShedQuality | None = None
    is_complete: bool | None = None
    issues: str | None = Field(default=None, max_length=500)
    notes: str | None = Field(default=None, max_length=2000)

    @field_validator("start_date", "completed_date")
    @classmethod
    def check_not_future(cls, value):
        return _not_future(value)


# =============================================================================
# Measurements
# =============================================================================


class MeasurementType(str, Enum):
    WEIGHT = "WEIGHT"
    LENGTH = "LENGTH"
    SHELL_LENGTH = "SHELL_LENGTH"
    SHELL_WIDTH = "SHELL_WIDTH"
    SNOUT_TO_VENT = "SNOUT_TO_VENT"
    TAIL_LENGTH = "TAIL_LENGTH"


class MeasurementCreate(_Schema):
    type: MeasurementType
    value: float = Field(..., gt=0)
    unit: str = Field(..., min_length=1, max_length=10)
    date: datetime
    notes: str | None = Field(default=None, max_length=2000)


class MeasurementUpdate(_Schema):
    type: MeasurementType | None = None
    value: float | None = Field(default=None, gt=0)
    unit: str | None = Field(default=None, min_length=1, max_length=10)
    date: datetime | None = None
    notes: str | None = Field(default=None, max_length=2000)


# =============================================================================
# Environment logs (append-only)
# =============================================================================


class EnvironmentLogCreate(_Schema):
    date: datetime
    temperature: float | None = Field(default=None, ge=0, le=150)
    humidity: float | None = Field(default=None, ge=0, le=100)
    location: str | None = Field(default=None, max_length=50)
    notes: str | None = Field(default=None, max_length=500)


class EnvironmentLogUpdate(_Schema):
    date: datetime | None = None
    temperature: float | None = Field(default=None, ge=0, le=150)
    humidity: float | None = Field(default=None, ge=0, le=100)
    location: str | None = Field(default=None, max_length=50)
    notes: str | None = Field(default=None, max_length=500)


# =============================================================================
# Photos (append-only metadata; binaries live in object storage)
# =============================================================================


class PhotoCategory(str, Enum):
    GENERAL = "GENERAL"
    MORPH = "MORPH"
    SHED = "SHED"
    VET = "VET"
    ENCLOSURE = "ENCLOSURE"


class PhotoCreate(_Schema):
    storage_path: str | None = Field(default=None, max_length=500)
    thumbnail_path: str | None = Field(default=None, max_length=500)
    caption: str | None = Field(default=None, max_length=500)
    taken_at: datetime | None = None
    category: PhotoCategory = PhotoCategory.GENERAL
    is_primary: bool = False
    shed_id: str | None = None

    @model_validator(mode="after")
    def check_storage_path(self):
        if not self.storage_path:
            raise ValueError("storagePath is required")
        return self


class PhotoUpdate(_Schema):
    caption: str | None = Field(default=None, max_length=500)
    category: PhotoCategory | None = None
    is_primary: bool | None = None
    shed_id: str | None = None


# =============================================================================
# Dispatch
# =============================================================================

SCHEMAS: dict[SyncTable, tuple[type[_Schema], type[_Schema]]] = {
    SyncTable.REPTILES: (ReptileCreate, ReptileUpdate),
    SyncTable.FEEDINGS: (FeedingCreate, FeedingUpdate),
    SyncTable.SHEDS: (ShedCreate, ShedUpdate),
    SyncTable.MEASUREMENTS: (MeasurementCreate, MeasurementUpdate),
    SyncTable.ENVIRONMENT_LOGS: (EnvironmentLogCreate, EnvironmentLogUpdate),
    SyncTable.PHOTOS: (PhotoCreate, PhotoUpdate),
}


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def validate_payload(table: SyncTable, payload: dict[str, Any] | None, partial: bool) -> dict[str, Any]:
    """Validate a client payload and return camelCase, JSON-ready fields.

    Raises ValidationError (kind VALIDATION_ERROR) with per-field messages.
    """
    create_schema, update_schema = SCHEMAS[table]
    schema = update_schema if partial else create_schema
    try:
        model = schema.model_validate(payload or {})
    except pydantic.ValidationError as e:
        field_errors: dict[str, list[str]] = {}
        for err in e.errors():
            key = ".".join(str(part) for part in err["loc"]) or "_"
            field_errors.setdefault(key, []).append(err["msg"])
        first = next(iter(field_errors.items()))
        raise ValidationError(
            f"Invalid {table.value} payload: {first[0]}: {first[1][0]}",
            field_errors=field_errors,
        ) from None

    return model.model_dump(by_alias=True, exclude_unset=partial, mode="json")
