from __future__ import annotations

from datetime import timedelta
from typing import Optional

from carbcast.models.carbs import CarbEntry
from carbcast.models.enums import AbsorptionTier
from carbcast.models.settings import AbsorptionConfig
from carbcast.services.math.curves import CarbCurves


def _minutes(delta: timedelta) -> float:
    return delta.total_seconds() / 60.0


class AbsorptionModel:
    """Absorbed fraction of an entry as a function of elapsed time."""

    def __init__(self, config: Optional[AbsorptionConfig] = None):
        self.config = config or AbsorptionConfig()

    @property
    def curve(self) -> str:
        return self.config.curve

    def default_absorption_time(self, tier: AbsorptionTier) -> timedelta:
        return self.config.default_absorption_times[tier]

    def max_absorption_duration(self) -> timedelta:
        # Upper bound for how long an entry can still be absorbing
        return self.default_absorption_time(AbsorptionTier.SLOW) * 2

    def tier_for(self, entry: CarbEntry) -> AbsorptionTier:
        if entry.absorption_tier is not None:
            return entry.absorption_tier
        cfg = self.config
        if cfg.fast_below_grams is not None and entry.quantity < cfg.fast_below_grams:
            return AbsorptionTier.FAST
        if cfg.slow_above_grams is not None and entry.quantity > cfg.slow_above_grams:
            return AbsorptionTier.SLOW
        return AbsorptionTier.MEDIUM

    def absorption_time(self, entry: CarbEntry) -> timedelta:
        if entry.absorption_time is not None:
            return entry.absorption_time
        return self.default_absorption_time(self.tier_for(entry))

    def absorbed_fraction(self, entry: CarbEntry, elapsed: timedelta) -> float:
        if entry.quantity <= 0:
            return 0.0
        fraction = CarbCurves.get_absorbed(
            _minutes(elapsed), _minutes(self.absorption_time(entry)), self.curve
        )
        return min(1.0, max(0.0, fraction))

    def absorption_rate(self, entry: CarbEntry, elapsed: timedelta) -> float:
        """Fraction of the entry absorbed per minute at `elapsed`."""
        if entry.quantity <= 0:
            return 0.0
        return CarbCurves.get_rate(_minutes(elapsed), _minutes(self.absorption_time(entry)), self.curve)

    def absorbed_carbs(self, entry: CarbEntry, elapsed: timedelta) -> float:
        return entry.quantity * self.absorbed_fraction(entry, elapsed)

    def describe(self) -> dict[str, str]:
        times = {tier.value: str(self.default_absorption_time(tier)) for tier in AbsorptionTier}
        return {
            "curve": self.curve,
            **{f"absorption_{k}": v for k, v in times.items()},
            "max_absorption": str(self.max_absorption_duration()),
        }
