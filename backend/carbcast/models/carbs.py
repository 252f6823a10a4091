import uuid
from datetime import datetime, timedelta
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator

from carbcast.models.enums import AbsorptionTier, GlucoseUnit
from carbcast.utils.timezone import ensure_aware

VELOCITY_SAMPLE_INTERVAL = timedelta(minutes=5)

_DATETIME = TypeAdapter(datetime)


class CarbEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        validation_alias=AliasChoices("id", "uuid", "syncIdentifier"),
    )
    start_date: datetime = Field(
        ...,
        validation_alias=AliasChoices("start_date", "startDate"),
        description="Moment the carbohydrates were eaten",
    )
    quantity: float = Field(..., ge=0, description="Carbohydrates (g)")
    absorption_time: Optional[timedelta] = Field(
        None,
        validation_alias=AliasChoices("absorption_time", "absorptionTime"),
        description="Explicit absorption duration. None = resolve by tier.",
    )
    absorption_tier: Optional[AbsorptionTier] = Field(
        None,
        validation_alias=AliasChoices("absorption_tier", "carb_profile"),
        description="Explicit tier ('fast', 'medium', 'slow') used when no absorption_time is set",
    )

    @field_validator("start_date")
    def _aware_start(cls, v: datetime) -> datetime:
        return ensure_aware(v)

    @field_validator("absorption_time")
    def _positive_absorption(cls, v: Optional[timedelta]) -> Optional[timedelta]:
        if v is not None and v <= timedelta(0):
            raise ValueError("absorption_time must be positive")
        return v


class GlucoseEffect(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: datetime
    quantity: float = Field(..., description="Cumulative glucose effect")
    unit: GlucoseUnit = GlucoseUnit.MGDL

    @field_validator("date")
    def _aware_date(cls, v: datetime) -> datetime:
        return ensure_aware(v)


class GlucoseEffectVelocity(BaseModel):
    """
    Carb-attributed glucose change over `[start_date, end_date)`.

    A point sample (`{date, velocity}`) covers one sample interval from its date.
    """

    model_config = ConfigDict(frozen=True)

    start_date: datetime = Field(..., validation_alias=AliasChoices("start_date", "startDate", "date"))
    end_date: datetime = Field(..., validation_alias=AliasChoices("end_date", "endDate"))
    velocity: float = Field(..., description="Glucose change attributed to carbs (mg/dL per minute)")

    @model_validator(mode="before")
    @classmethod
    def _point_sample(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "end_date" in data or "endDate" in data:
            return data
        start = next((data[key] for key in ("start_date", "startDate", "date") if key in data), None)
        if start is None:
            return data
        return {**data, "end_date": _DATETIME.validate_python(start) + VELOCITY_SAMPLE_INTERVAL}

    @field_validator("start_date", "end_date")
    def _aware_dates(cls, v: datetime) -> datetime:
        return ensure_aware(v)

    @model_validator(mode="after")
    def _ordered(self) -> "GlucoseEffectVelocity":
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self

    @property
    def date(self) -> datetime:
        return self.start_date

    @property
    def duration(self) -> timedelta:
        return self.end_date - self.start_date


class CarbValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    start_date: datetime
    end_date: datetime
    quantity: float = Field(..., description="Carbohydrates (g)")
