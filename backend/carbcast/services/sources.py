from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Protocol, Sequence

from carbcast.core.errors import InvalidRangeError
from carbcast.models.carbs import CarbEntry
from carbcast.models.settings import ScheduleItemConfig, TherapySettings
from carbcast.services.schedule import (
    CarbRatioSchedule,
    InsulinSensitivitySchedule,
    RepeatingScheduleValue,
)
from carbcast.utils.timezone import ensure_aware, fixed_offset, fixed_offset_for_zone


class CarbEntrySource(Protocol):
    def entries_in_range(self, start: datetime, end: datetime) -> list[CarbEntry]:
        ...


class ScheduleProvider(Protocol):
    @property
    def carb_ratio_schedule(self) -> Optional[CarbRatioSchedule]:
        ...

    @property
    def insulin_sensitivity_schedule(self) -> Optional[InsulinSensitivitySchedule]:
        ...


def filter_date_range(entries: Sequence[CarbEntry], start: datetime, end: datetime) -> list[CarbEntry]:
    start = ensure_aware(start)
    end = ensure_aware(end)
    if end < start:
        raise InvalidRangeError(f"Range end {end.isoformat()} precedes start {start.isoformat()}")
    return sorted(
        (e for e in entries if start <= e.start_date <= end),
        key=lambda e: e.start_date,
    )


@dataclass
class InMemoryCarbEntrySource:
    entries: list[CarbEntry] = field(default_factory=list)

    def entries_in_range(self, start: datetime, end: datetime) -> list[CarbEntry]:
        return filter_date_range(self.entries, start, end)


@dataclass
class StaticScheduleProvider:
    carb_ratio_schedule: Optional[CarbRatioSchedule] = None
    insulin_sensitivity_schedule: Optional[InsulinSensitivitySchedule] = None


def _items(config: list[ScheduleItemConfig]) -> list[RepeatingScheduleValue[float]]:
    return [RepeatingScheduleValue(start_time=float(item.start_seconds), value=item.value) for item in config]


class SettingsScheduleProvider:
    """
    Schedules built from therapy settings; an empty list means not configured.

    A named `time_zone` is reduced to the UTC offset it has at `reference`
    (default: construction time). Pass a fixed `reference` to get the same
    schedules on both sides of a daylight-saving change.
    """

    def __init__(self, therapy: TherapySettings, reference: Optional[datetime] = None):
        self.therapy = therapy
        if therapy.time_zone:
            self._time_zone = fixed_offset_for_zone(therapy.time_zone, reference)
        else:
            self._time_zone = fixed_offset(therapy.utc_offset_minutes)

    @property
    def time_zone(self) -> timezone:
        return self._time_zone

    @property
    def carb_ratio_schedule(self) -> Optional[CarbRatioSchedule]:
        if not self.therapy.carb_ratio:
            return None
        return CarbRatioSchedule(_items(self.therapy.carb_ratio), time_zone=self._time_zone)

    @property
    def insulin_sensitivity_schedule(self) -> Optional[InsulinSensitivitySchedule]:
        if not self.therapy.insulin_sensitivity:
            return None
        return InsulinSensitivitySchedule(
            _items(self.therapy.insulin_sensitivity),
            time_zone=self._time_zone,
            unit=self.therapy.insulin_sensitivity_unit,
        )
