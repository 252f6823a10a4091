from __future__ import annotations

import re
from datetime import timedelta
from typing import Literal, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from carbcast.models.enums import AbsorptionTier, GlucoseUnit

_HHMM = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def _default_absorption_times() -> dict[AbsorptionTier, timedelta]:
    return {
        AbsorptionTier.FAST: timedelta(minutes=30),
        AbsorptionTier.MEDIUM: timedelta(hours=3),
        AbsorptionTier.SLOW: timedelta(hours=5),
    }


class AbsorptionConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    default_absorption_times: dict[AbsorptionTier, timedelta] = Field(
        default_factory=_default_absorption_times,
        description="Absorption duration per tier",
    )
    fast_below_grams: Optional[float] = Field(
        default=None, ge=0, description="Entries under this amount use the fast tier"
    )
    slow_above_grams: Optional[float] = Field(
        default=None, ge=0, description="Entries over this amount use the slow tier"
    )
    curve: Literal["linear", "triangle", "parabolic"] = "linear"

    @field_validator("default_absorption_times")
    def _complete_table(cls, v: dict[AbsorptionTier, timedelta]) -> dict[AbsorptionTier, timedelta]:
        missing = [tier.value for tier in AbsorptionTier if tier not in v]
        if missing:
            raise ValueError(f"missing absorption times for tiers: {', '.join(missing)}")
        if any(duration <= timedelta(0) for duration in v.values()):
            raise ValueError("absorption times must be positive")
        if not (v[AbsorptionTier.FAST] <= v[AbsorptionTier.MEDIUM] <= v[AbsorptionTier.SLOW]):
            raise ValueError("absorption times must satisfy fast <= medium <= slow")
        return v

    @model_validator(mode="after")
    def _ordered_thresholds(self) -> "AbsorptionConfig":
        if (
            self.fast_below_grams is not None
            and self.slow_above_grams is not None
            and self.fast_below_grams > self.slow_above_grams
        ):
            raise ValueError("fast_below_grams cannot exceed slow_above_grams")
        return self


class ScheduleItemConfig(BaseModel):
    start_time: str = Field(default="00:00", description="Local start time HH:MM")
    value: float = Field(..., gt=0)

    @field_validator("start_time")
    def _validate_hhmm(cls, v: str) -> str:
        if not _HHMM.match(v):
            raise ValueError(f"start_time must be HH:MM, got {v!r}")
        return v

    @property
    def start_seconds(self) -> int:
        hours, minutes = self.start_time.split(":")
        return int(hours) * 3600 + int(minutes) * 60


class TherapySettings(BaseModel):
    # Empty lists mean "not configured"; never substitute a default ratio.
    carb_ratio: list[ScheduleItemConfig] = Field(default_factory=list, description="Ratio CR (g/U)")
    insulin_sensitivity: list[ScheduleItemConfig] = Field(default_factory=list, description="ISF per unit")
    insulin_sensitivity_unit: GlucoseUnit = GlucoseUnit.MGDL
    utc_offset_minutes: int = Field(default=0, ge=-14 * 60, le=14 * 60)
    time_zone: Optional[str] = Field(default=None, description="IANA zone; its current offset overrides utc_offset_minutes")

    @field_validator("time_zone")
    def _known_zone(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown time zone {v!r}") from exc
        return v
