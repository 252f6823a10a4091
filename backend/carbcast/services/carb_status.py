from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Optional, Sequence

from carbcast.core.errors import IncompleteScheduleError, InvalidRangeError, ScheduleCoverageError
from carbcast.models.carbs import CarbEntry, GlucoseEffectVelocity
from carbcast.models.enums import AbsorptionSource
from carbcast.services.absorption import AbsorptionModel
from carbcast.services.schedule import ScheduleValue, value_in
from carbcast.utils.timezone import ensure_aware, minutes_between

logger = logging.getLogger(__name__)

EPSILON = 1e-9


@dataclass(frozen=True)
class ObservedSegment:
    start_date: datetime
    end_date: datetime
    grams: float
    csf: float  # mg/dL per gram over the whole segment

    def absorbed_until(self, date: datetime) -> float:
        if date <= self.start_date:
            return 0.0
        if date >= self.end_date:
            return self.grams
        return self.grams * (date - self.start_date) / (self.end_date - self.start_date)

    def effect_until(self, date: datetime) -> float:
        return self.absorbed_until(date) * self.csf


@dataclass(frozen=True)
class ObservedAbsorption:
    segments: tuple[ObservedSegment, ...]

    @property
    def start_date(self) -> datetime:
        return self.segments[0].start_date

    @property
    def end_date(self) -> datetime:
        return self.segments[-1].end_date

    @property
    def total(self) -> float:
        return sum(seg.grams for seg in self.segments)

    def absorbed_until(self, date: datetime) -> float:
        return sum(seg.absorbed_until(date) for seg in self.segments)

    def effect_until(self, date: datetime) -> float:
        return sum(seg.effect_until(date) for seg in self.segments)


@dataclass(frozen=True)
class CarbStatus:
    entry: CarbEntry
    model: AbsorptionModel = field(repr=False, compare=False)
    observed: Optional[ObservedAbsorption] = None
    is_complete: bool = False

    @property
    def absorption(self) -> AbsorptionSource:
        return AbsorptionSource.OBSERVED if self.observed else AbsorptionSource.MODELED

    @property
    def absorption_time(self) -> timedelta:
        return self.model.absorption_time(self.entry)

    def _modeled(self, date: datetime) -> float:
        return self.model.absorbed_carbs(self.entry, date - self.entry.start_date)

    def modeled_carbs(self, date: datetime) -> float:
        """Grams absorbed by `date` that follow the absorption model rather than an observation."""
        date = ensure_aware(date)
        quantity = self.entry.quantity
        if quantity <= 0 or date <= self.entry.start_date:
            return 0.0

        obs = self.observed
        if obs is None or date <= obs.start_date:
            return self._modeled(date)

        # Observation replaces the model inside the observed span
        pre = min(self._modeled(obs.start_date), quantity - obs.total)
        remaining = quantity - pre - obs.total
        if date <= obs.end_date or remaining <= EPSILON:
            return pre

        start = self.entry.start_date
        f_end = self.model.absorbed_fraction(self.entry, obs.end_date - start)
        if f_end < 1.0:
            f_now = self.model.absorbed_fraction(self.entry, date - start)
            return pre + remaining * (f_now - f_end) / (1.0 - f_end)

        # Model already finished: keep absorbing at the entry's average modeled rate
        minutes = self.absorption_time.total_seconds() / 60.0
        rate = quantity / minutes
        return pre + min(remaining, rate * minutes_between(obs.end_date, date))

    def observed_carbs(self, date: datetime) -> float:
        if self.observed is None:
            return 0.0
        return self.observed.absorbed_until(ensure_aware(date))

    def observed_effect(self, date: datetime) -> float:
        """Glucose effect (mg/dL) of the observed grams, converted at the CSF they were observed with."""
        if self.observed is None:
            return 0.0
        return self.observed.effect_until(ensure_aware(date))

    def absorbed_carbs(self, date: datetime) -> float:
        """Grams absorbed between the entry start and `date`."""
        return self.modeled_carbs(date) + self.observed_carbs(date)

    def carbs_on_board(self, date: datetime) -> float:
        if ensure_aware(date) < self.entry.start_date:
            return 0.0
        return max(0.0, self.entry.quantity - self.absorbed_carbs(date))


class CarbStatusResolver:
    """Builds per-entry absorption status for a window, optionally from observed velocities."""

    def __init__(self, model: AbsorptionModel):
        self.model = model

    def active_entries(self, entries: Sequence[CarbEntry], start: datetime, end: datetime) -> list[CarbEntry]:
        max_duration = self.model.max_absorption_duration()
        active = [
            e for e in entries
            if e.start_date <= end and e.start_date + max_duration >= start
        ]
        return sorted(active, key=lambda e: e.start_date)

    def resolve(
        self,
        entries: Sequence[CarbEntry],
        start: datetime,
        end: datetime,
        velocities: Optional[Sequence[GlucoseEffectVelocity]] = None,
        carb_ratios: Optional[Sequence[ScheduleValue[float]]] = None,
        insulin_sensitivities: Optional[Sequence[ScheduleValue[float]]] = None,
    ) -> list[CarbStatus]:
        start = ensure_aware(start)
        end = ensure_aware(end)
        if end < start:
            raise InvalidRangeError(f"Range end {end.isoformat()} precedes start {start.isoformat()}")

        active = self.active_entries(entries, start, end)
        observed: list[Optional[ObservedAbsorption]] = [None] * len(active)
        if velocities and active:
            observed = self._observe(
                active,
                sorted(velocities, key=lambda v: v.start_date),
                carb_ratios,
                insulin_sensitivities,
            )

        statuses: list[CarbStatus] = []
        for entry, obs in zip(active, observed):
            status = CarbStatus(entry=entry, model=self.model, observed=obs)
            complete = status.absorbed_carbs(end) >= entry.quantity - EPSILON
            statuses.append(replace(status, is_complete=complete))

        logger.debug(
            "Carb statuses resolved",
            extra={
                "entries": len(statuses),
                "observed": sum(1 for s in statuses if s.observed),
            },
        )
        return statuses

    def _carb_sensitivity(
        self,
        date: datetime,
        carb_ratios: Optional[Sequence[ScheduleValue[float]]],
        insulin_sensitivities: Optional[Sequence[ScheduleValue[float]]],
    ) -> float:
        if not carb_ratios or not insulin_sensitivities:
            raise IncompleteScheduleError("Observed velocities need carb ratio and insulin sensitivity coverage")
        try:
            return value_in(insulin_sensitivities, date) / value_in(carb_ratios, date)
        except ScheduleCoverageError as exc:
            raise IncompleteScheduleError(f"Schedule coverage missing at {date.isoformat()}") from exc

    def _observe(
        self,
        active: list[CarbEntry],
        velocities: list[GlucoseEffectVelocity],
        carb_ratios: Optional[Sequence[ScheduleValue[float]]],
        insulin_sensitivities: Optional[Sequence[ScheduleValue[float]]],
    ) -> list[Optional[ObservedAbsorption]]:
        """
        Attributes observed velocities to the entries absorbing while they were recorded.

        Each velocity is cut at entry window edges and schedule boundaries, so
        every piece has one set of absorbing entries and one CSF. Only the time
        an entry was actually absorbing is credited to it.
        """
        max_duration = self.model.max_absorption_duration()
        windows = [(e.start_date, e.start_date + max_duration) for e in active]
        edges = sorted(
            {edge for window in windows for edge in window}
            | {seg.start_date for seg in carb_ratios or ()}
            | {seg.start_date for seg in insulin_sensitivities or ()}
        )
        prefix: list[Optional[float]] = [None] * len(active)
        allocated = [0.0] * len(active)
        segments: list[list[ObservedSegment]] = [[] for _ in active]

        for velocity in velocities:
            lo, hi = velocity.start_date, velocity.end_date
            cuts = [lo] + [edge for edge in edges if lo < edge < hi] + [hi]
            for a, b in zip(cuts, cuts[1:]):
                overlaps = [i for i, (w_start, w_end) in enumerate(windows) if w_start <= a and b <= w_end]
                if not overlaps:
                    continue

                csf = self._carb_sensitivity(a, carb_ratios, insulin_sensitivities)
                # Negative velocities are not carb absorption
                grams = max(velocity.velocity, 0.0) * minutes_between(a, b) / csf

                weights: list[float] = []
                remaining: list[float] = []
                for i in overlaps:
                    entry = active[i]
                    if prefix[i] is None:
                        prefix[i] = self.model.absorbed_carbs(entry, a - entry.start_date)
                    remaining.append(max(0.0, entry.quantity - prefix[i] - allocated[i]))
                    weights.append(
                        self.model.absorbed_carbs(entry, b - entry.start_date)
                        - self.model.absorbed_carbs(entry, a - entry.start_date)
                    )
                if sum(weights) <= EPSILON:
                    weights = [1.0 if r > EPSILON else 0.0 for r in remaining]
                total_weight = sum(weights)

                for i, weight, left in zip(overlaps, weights, remaining):
                    share = grams * weight / total_weight if total_weight > 0 else 0.0
                    share = min(share, left)
                    allocated[i] += share
                    segments[i].append(ObservedSegment(a, b, share, csf))

        return [ObservedAbsorption(tuple(segs)) if segs else None for segs in segments]


def carbs_on_board(statuses: Sequence[CarbStatus], date: datetime) -> float:
    return sum(status.carbs_on_board(date) for status in statuses)
