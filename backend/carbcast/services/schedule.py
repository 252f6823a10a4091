from __future__ import annotations

import bisect
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Generic, Sequence, TypeVar

from carbcast.core.errors import InvalidRangeError, ScheduleCoverageError
from carbcast.models.enums import GlucoseUnit
from carbcast.utils.timezone import ONE_DAY, SECONDS_PER_DAY, ensure_aware, start_of_day, time_of_day

logger = logging.getLogger(__name__)

T = TypeVar("T")

MGDL_PER_MMOLL = 18.01559


@dataclass(frozen=True)
class RepeatingScheduleValue(Generic[T]):
    start_time: float  # seconds after midnight
    value: T


@dataclass(frozen=True)
class ScheduleValue(Generic[T]):
    start_date: datetime
    end_date: datetime
    value: T

    def contains(self, date: datetime) -> bool:
        return self.start_date <= date < self.end_date


class DailyValueSchedule(Generic[T]):
    """
    Values keyed by time of day, repeating every day.

    Offsets are read in a fixed reference UTC offset, so the same wall-clock
    time resolves to the same value on every calendar day. An instant earlier
    than the first item's offset takes the last item's value (yesterday's).
    """

    def __init__(
        self,
        daily_items: Sequence[RepeatingScheduleValue[T]],
        time_zone: timezone = timezone.utc,
        unit: str = "",
    ):
        if not daily_items:
            raise ValueError("A schedule needs at least one item")
        items = sorted(daily_items, key=lambda item: item.start_time)
        starts = [item.start_time for item in items]
        if any(s < 0 or s >= SECONDS_PER_DAY for s in starts):
            raise ValueError("Schedule offsets must be within [0, 86400)")
        if len(set(starts)) != len(starts):
            raise ValueError("Schedule offsets must be unique")

        self.items: tuple[RepeatingScheduleValue[T], ...] = tuple(items)
        self.time_zone = time_zone
        self.unit = unit
        self._starts = starts

    def __repr__(self) -> str:
        items = ", ".join(f"{int(i.start_time)}s={i.value!r}" for i in self.items)
        return f"{type(self).__name__}([{items}], tz={self.time_zone}, unit={self.unit!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DailyValueSchedule):
            return NotImplemented
        return (self.items, self.time_zone, self.unit) == (other.items, other.time_zone, other.unit)

    def _index_at(self, offset_seconds: float) -> int:
        # -1 wraps to the last item of the previous day
        return bisect.bisect_right(self._starts, offset_seconds) - 1

    def value_at(self, date: datetime) -> T:
        offset = time_of_day(date, self.time_zone).total_seconds()
        return self.items[self._index_at(offset)].value

    def values_between(self, start: datetime, end: datetime) -> list[ScheduleValue[T]]:
        """
        Piecewise-constant segments covering [start, end].

        The first segment holds the value in effect at `start`, every following
        one begins at a crossed boundary, and the last one ends after `end`.
        """
        start = ensure_aware(start)
        end = ensure_aware(end)
        if end < start:
            raise InvalidRangeError(f"Range end {end.isoformat()} precedes start {start.isoformat()}")

        count = len(self.items)
        day_start = start_of_day(start, self.time_zone)
        idx = self._index_at(time_of_day(start, self.time_zone).total_seconds())
        if idx < 0:
            idx = count - 1
            day_start -= ONE_DAY

        segments: list[ScheduleValue[T]] = []
        seg_start = day_start + timedelta(seconds=self._starts[idx])
        while True:
            next_idx = idx + 1
            next_day_start = day_start
            if next_idx == count:
                next_idx = 0
                next_day_start = day_start + ONE_DAY
            seg_end = next_day_start + timedelta(seconds=self._starts[next_idx])
            segments.append(ScheduleValue(seg_start, seg_end, self.items[idx].value))
            if seg_end > end:
                break
            idx, day_start, seg_start = next_idx, next_day_start, seg_end

        logger.debug(
            "Schedule segments resolved",
            extra={"unit": self.unit, "segments": len(segments), "start": start.isoformat()},
        )
        return segments


class CarbRatioSchedule(DailyValueSchedule[float]):
    def __init__(self, daily_items: Sequence[RepeatingScheduleValue[float]], time_zone: timezone = timezone.utc):
        if any(item.value <= 0 for item in daily_items):
            raise ValueError("Carb ratios must be positive")
        super().__init__(daily_items, time_zone=time_zone, unit="g/U")


class InsulinSensitivitySchedule(DailyValueSchedule[float]):
    def __init__(
        self,
        daily_items: Sequence[RepeatingScheduleValue[float]],
        time_zone: timezone = timezone.utc,
        unit: GlucoseUnit = GlucoseUnit.MGDL,
    ):
        if any(item.value <= 0 for item in daily_items):
            raise ValueError("Insulin sensitivities must be positive")
        self.glucose_unit = GlucoseUnit(unit)
        super().__init__(daily_items, time_zone=time_zone, unit=f"{self.glucose_unit.value}/U")

    def _to(self, value: float, unit: GlucoseUnit) -> float:
        if self.glucose_unit == unit:
            return value
        if unit == GlucoseUnit.MGDL:
            return value * MGDL_PER_MMOLL
        return value / MGDL_PER_MMOLL

    def quantity_at(self, date: datetime, unit: GlucoseUnit = GlucoseUnit.MGDL) -> float:
        return self._to(self.value_at(date), unit)

    def quantities_between(
        self, start: datetime, end: datetime, unit: GlucoseUnit = GlucoseUnit.MGDL
    ) -> list[ScheduleValue[float]]:
        return [
            ScheduleValue(seg.start_date, seg.end_date, self._to(seg.value, unit))
            for seg in self.values_between(start, end)
        ]


def value_in(segments: Sequence[ScheduleValue[T]], date: datetime) -> T:
    """Value of the segment covering `date`, from pre-fetched segments."""
    date = ensure_aware(date)
    idx = bisect.bisect_right([seg.start_date for seg in segments], date) - 1
    if idx >= 0 and segments[idx].contains(date):
        return segments[idx].value
    raise ScheduleCoverageError(f"No schedule value covers {date.isoformat()}")


def items_from_pairs(pairs: Sequence[tuple[float, T]]) -> list[RepeatingScheduleValue[T]]:
    return [RepeatingScheduleValue(start_time=float(start), value=value) for start, value in pairs]
