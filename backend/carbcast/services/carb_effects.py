from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from carbcast.core.errors import InvalidRangeError, ScheduleCoverageError
from carbcast.models.carbs import CarbEntry, GlucoseEffect, GlucoseEffectVelocity
from carbcast.models.enums import GlucoseUnit
from carbcast.services.absorption import AbsorptionModel
from carbcast.services.carb_status import CarbStatus, CarbStatusResolver
from carbcast.services.schedule import (
    CarbRatioSchedule,
    InsulinSensitivitySchedule,
    ScheduleValue,
    value_in,
)
from carbcast.utils.timezone import ensure_aware

logger = logging.getLogger(__name__)

DEFAULT_DELTA = timedelta(minutes=5)


def sampling_range(
    entries: Sequence[CarbEntry],
    start: datetime,
    end: datetime,
    velocities: Optional[Sequence[GlucoseEffectVelocity]] = None,
) -> tuple[datetime, datetime]:
    """Span the schedules must cover: every entry, every step and every velocity."""
    lows = [start] + [e.start_date for e in entries]
    highs = [end] + [e.start_date for e in entries]
    if velocities:
        lows.extend(v.start_date for v in velocities)
        highs.extend(v.end_date for v in velocities)
    return min(lows), max(highs)


@dataclass(frozen=True)
class CarbEffectsResult:
    entries: List[CarbEntry] = field(default_factory=list)
    statuses: List[CarbStatus] = field(default_factory=list)
    effects: List[GlucoseEffect] = field(default_factory=list)


class CarbEffectProjector:
    """
    Projects carb entries into a cumulative glucose effect series.

    Each step adds the modeled grams every entry absorbed during that step,
    converted to mg/dL with the carb sensitivity factor (ISF / CR) sampled at
    the step midpoint, plus the observed effect recorded by the velocities
    over the same span. The series starts from whatever was already absorbed
    at `start`.
    """

    def __init__(self, model: Optional[AbsorptionModel] = None, delta: timedelta = DEFAULT_DELTA):
        if delta <= timedelta(0):
            raise ValueError("delta must be positive")
        self.model = model or AbsorptionModel()
        self.delta = delta
        self.resolver = CarbStatusResolver(self.model)

    def food_start(self, start: datetime) -> datetime:
        return ensure_aware(start) - self.model.max_absorption_duration()

    def samples_in_window(self, entries: Sequence[CarbEntry], start: datetime, end: datetime) -> list[CarbEntry]:
        food_start = self.food_start(start)
        samples = [e for e in entries if food_start <= e.start_date <= end]
        return sorted(samples, key=lambda e: e.start_date)

    def project(
        self,
        entries: Sequence[CarbEntry],
        start: datetime,
        end: datetime,
        carb_ratio_schedule: Optional[CarbRatioSchedule],
        insulin_sensitivity_schedule: Optional[InsulinSensitivitySchedule],
        velocities: Optional[Sequence[GlucoseEffectVelocity]] = None,
    ) -> list[GlucoseEffect]:
        return self.project_with_statuses(
            entries, start, end, carb_ratio_schedule, insulin_sensitivity_schedule, velocities
        ).effects

    def project_with_statuses(
        self,
        entries: Sequence[CarbEntry],
        start: datetime,
        end: datetime,
        carb_ratio_schedule: Optional[CarbRatioSchedule],
        insulin_sensitivity_schedule: Optional[InsulinSensitivitySchedule],
        velocities: Optional[Sequence[GlucoseEffectVelocity]] = None,
    ) -> CarbEffectsResult:
        start = ensure_aware(start)
        end = ensure_aware(end)
        if end < start:
            raise InvalidRangeError(f"Range end {end.isoformat()} precedes start {start.isoformat()}")
        if carb_ratio_schedule is None:
            raise ScheduleCoverageError("No carb ratio schedule covers the requested range")
        if insulin_sensitivity_schedule is None:
            raise ScheduleCoverageError("No insulin sensitivity schedule covers the requested range")

        samples = self.samples_in_window(entries, start, end)

        range_start, range_end = sampling_range(samples, start, end, velocities)
        carb_ratios = carb_ratio_schedule.values_between(range_start, range_end)
        sensitivities = insulin_sensitivity_schedule.quantities_between(
            range_start, range_end, unit=GlucoseUnit.MGDL
        )

        statuses = self.resolver.resolve(
            samples,
            start,
            end,
            velocities=velocities,
            carb_ratios=carb_ratios,
            insulin_sensitivities=sensitivities,
        )
        effects = self._integrate(statuses, start, end, carb_ratios, sensitivities)

        logger.info(
            "Carb effects projected",
            extra={"entries": len(samples), "effects": len(effects), "window_start": start.isoformat()},
        )
        return CarbEffectsResult(entries=samples, statuses=statuses, effects=effects)

    def _integrate(
        self,
        statuses: Sequence[CarbStatus],
        start: datetime,
        end: datetime,
        carb_ratios: Sequence[ScheduleValue[float]],
        sensitivities: Sequence[ScheduleValue[float]],
    ) -> list[GlucoseEffect]:
        def csf(date: datetime) -> float:
            return value_in(sensitivities, date) / value_in(carb_ratios, date)

        def modeled(date: datetime) -> float:
            return sum(status.modeled_carbs(date) for status in statuses)

        def observed(date: datetime) -> float:
            return sum(status.observed_effect(date) for status in statuses)

        steps = (end - start) // self.delta
        previous_date = start
        previous_modeled = modeled(start)
        previous_observed = observed(start)
        total = previous_observed
        if previous_modeled:
            total += previous_modeled * csf(start)
        effects = [GlucoseEffect(date=start, quantity=total)]

        for k in range(1, steps + 1):
            date = start + self.delta * k
            now_modeled = modeled(date)
            now_observed = observed(date)
            grams = now_modeled - previous_modeled
            if grams:
                total += grams * csf(previous_date + self.delta / 2)
            # Observed grams already carry the CSF they were recorded with
            total += now_observed - previous_observed
            effects.append(GlucoseEffect(date=date, quantity=total))
            previous_date, previous_modeled, previous_observed = date, now_modeled, now_observed
        return effects


def project_glucose_effects(
    entries: Sequence[CarbEntry],
    start: datetime,
    end: datetime,
    carb_ratio_schedule: Optional[CarbRatioSchedule],
    insulin_sensitivity_schedule: Optional[InsulinSensitivitySchedule],
    velocities: Optional[Sequence[GlucoseEffectVelocity]] = None,
    model: Optional[AbsorptionModel] = None,
    delta: timedelta = DEFAULT_DELTA,
) -> list[GlucoseEffect]:
    projector = CarbEffectProjector(model=model, delta=delta)
    return projector.project(
        entries, start, end, carb_ratio_schedule, insulin_sensitivity_schedule, velocities
    )
