from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Optional, Sequence

from carbcast.core.errors import InvalidRangeError, NotConfiguredError
from carbcast.models.carbs import CarbEntry, CarbValue, GlucoseEffectVelocity
from carbcast.models.settings import AbsorptionConfig
from carbcast.services.absorption import AbsorptionModel
from carbcast.services.carb_effects import (
    DEFAULT_DELTA,
    CarbEffectProjector,
    CarbEffectsResult,
    sampling_range,
)
from carbcast.services.carb_status import CarbStatus, carbs_on_board
from carbcast.services.schedule import CarbRatioSchedule, InsulinSensitivitySchedule
from carbcast.services.sources import CarbEntrySource, ScheduleProvider, SettingsScheduleProvider
from carbcast.services.store import DataStore, JsonCarbEntrySource
from carbcast.utils.timezone import ensure_aware

if TYPE_CHECKING:
    from carbcast.core.settings import Settings

logger = logging.getLogger(__name__)

_DISTANT_FUTURE = datetime.max.replace(tzinfo=timezone.utc)


class CarbStore:
    """
    Entry point tying an entry source and a schedule provider to the projector.

    Every call reads one snapshot of entries and schedules and either returns
    a complete result or raises; nothing is cached between calls.
    """

    def __init__(
        self,
        entry_source: Optional[CarbEntrySource] = None,
        schedule_provider: Optional[ScheduleProvider] = None,
        absorption: Optional[AbsorptionConfig] = None,
        delta: timedelta = DEFAULT_DELTA,
    ):
        self.entry_source = entry_source
        self.schedule_provider = schedule_provider
        self.model = AbsorptionModel(absorption)
        self.projector = CarbEffectProjector(self.model, delta=delta)

    @classmethod
    def from_settings(cls, settings: "Settings", reference: Optional[datetime] = None) -> "CarbStore":
        return cls(
            entry_source=JsonCarbEntrySource(DataStore(settings.data.data_dir)),
            schedule_provider=SettingsScheduleProvider(settings.therapy, reference=reference),
            absorption=settings.absorption,
            delta=timedelta(minutes=settings.projection.delta_minutes),
        )

    @property
    def delta(self) -> timedelta:
        return self.projector.delta

    @property
    def maximum_absorption_time(self) -> timedelta:
        return self.model.max_absorption_duration()

    def _source(self) -> CarbEntrySource:
        if self.entry_source is None:
            raise NotConfiguredError("No carb entry source configured")
        return self.entry_source

    def _schedules(self) -> tuple[CarbRatioSchedule, InsulinSensitivitySchedule]:
        if self.schedule_provider is None:
            raise NotConfiguredError("No schedule provider configured")
        carb_ratio = self.schedule_provider.carb_ratio_schedule
        sensitivity = self.schedule_provider.insulin_sensitivity_schedule
        if carb_ratio is None or sensitivity is None:
            missing = "carb ratio" if carb_ratio is None else "insulin sensitivity"
            logger.warning("Schedule not configured", extra={"schedule": missing})
            raise NotConfiguredError(f"The {missing} schedule is not configured")
        return carb_ratio, sensitivity

    def _window(self, start: datetime, end: Optional[datetime]) -> tuple[datetime, datetime]:
        start = ensure_aware(start)
        end = ensure_aware(end) if end is not None else start + self.maximum_absorption_time
        if end < start:
            raise InvalidRangeError(f"Range end {end.isoformat()} precedes start {start.isoformat()}")
        return start, end

    def _entries(self, start: datetime, end: datetime) -> list[CarbEntry]:
        return self._source().entries_in_range(self.projector.food_start(start), end)

    def get_glucose_effects(
        self,
        start: datetime,
        end: Optional[datetime] = None,
        velocities: Optional[Sequence[GlucoseEffectVelocity]] = None,
    ) -> CarbEffectsResult:
        start, end = self._window(start, end)
        carb_ratio, sensitivity = self._schedules()
        entries = self._entries(start, end)
        return self.projector.project_with_statuses(
            entries, start, end, carb_ratio, sensitivity, velocities
        )

    def get_carb_status(
        self,
        start: datetime,
        end: Optional[datetime] = None,
        velocities: Optional[Sequence[GlucoseEffectVelocity]] = None,
    ) -> list[CarbStatus]:
        start, end = self._window(start, end)
        entries = self._entries(start, end)
        if not velocities:
            return self.projector.resolver.resolve(entries, start, end)

        # Observed absorption needs carb sensitivity over every velocity interval
        carb_ratio, sensitivity = self._schedules()
        range_start, range_end = sampling_range(entries, start, end, velocities)
        return self.projector.resolver.resolve(
            entries,
            start,
            end,
            velocities=velocities,
            carb_ratios=carb_ratio.values_between(range_start, range_end),
            insulin_sensitivities=sensitivity.quantities_between(range_start, range_end),
        )

    def get_carbs_on_board_values(
        self,
        start: datetime,
        end: Optional[datetime] = None,
        velocities: Optional[Sequence[GlucoseEffectVelocity]] = None,
    ) -> list[CarbValue]:
        start, end = self._window(start, end)
        statuses = self.get_carb_status(start, end, velocities)
        values: list[CarbValue] = []
        steps = (end - start) // self.delta
        for k in range(steps + 1):
            date = start + self.delta * k
            values.append(CarbValue(start_date=date, end_date=date, quantity=carbs_on_board(statuses, date)))
        return values

    def carbs_on_board(
        self,
        at: datetime,
        velocities: Optional[Sequence[GlucoseEffectVelocity]] = None,
    ) -> CarbValue:
        at = ensure_aware(at)
        statuses = self.get_carb_status(at, at, velocities)
        return CarbValue(start_date=at, end_date=at, quantity=carbs_on_board(statuses, at))

    def get_total_carbs(self, since: datetime, until: Optional[datetime] = None) -> CarbValue:
        since = ensure_aware(since)
        until = ensure_aware(until) if until is not None else _DISTANT_FUTURE
        entries = self._source().entries_in_range(since, until)
        total = sum(e.quantity for e in entries)
        start_date = entries[0].start_date if entries else since
        end_date = entries[-1].start_date if entries else since
        return CarbValue(start_date=start_date, end_date=end_date, quantity=total)

    def generate_diagnostic_report(self) -> str:
        lines = [
            "## CarbStore",
            "",
            f"* entrySource: {type(self.entry_source).__name__ if self.entry_source else None}",
            f"* delta: {self.delta}",
        ]
        lines.extend(f"* {key}: {value}" for key, value in self.model.describe().items())
        if self.schedule_provider is None:
            lines.append("* scheduleProvider: None")
        else:
            lines.append(f"* carbRatioSchedule: {self.schedule_provider.carb_ratio_schedule!r}")
            lines.append(f"* insulinSensitivitySchedule: {self.schedule_provider.insulin_sensitivity_schedule!r}")
        return "\n".join(lines)
