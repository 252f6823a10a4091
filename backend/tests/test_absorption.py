from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from carbcast.models.carbs import CarbEntry
from carbcast.models.enums import AbsorptionTier
from carbcast.models.settings import AbsorptionConfig
from carbcast.services.absorption import AbsorptionModel

NOW = datetime(2020, 8, 11, 12, 0, tzinfo=timezone.utc)


def _entry(grams: float, **kwargs) -> CarbEntry:
    return CarbEntry(start_date=NOW, quantity=grams, **kwargs)


def test_default_tiers_and_max_duration():
    model = AbsorptionModel()
    assert model.default_absorption_time(AbsorptionTier.FAST) == timedelta(minutes=30)
    assert model.default_absorption_time(AbsorptionTier.MEDIUM) == timedelta(hours=3)
    assert model.default_absorption_time(AbsorptionTier.SLOW) == timedelta(hours=5)
    assert model.max_absorption_duration() == timedelta(hours=10)


def test_max_duration_follows_slow_tier():
    config = AbsorptionConfig(
        default_absorption_times={
            AbsorptionTier.FAST: timedelta(hours=1),
            AbsorptionTier.MEDIUM: timedelta(hours=2),
            AbsorptionTier.SLOW: timedelta(hours=4),
        }
    )
    assert AbsorptionModel(config).max_absorption_duration() == timedelta(hours=8)


def test_missing_absorption_time_defaults_to_medium():
    model = AbsorptionModel()
    assert model.tier_for(_entry(5)) == AbsorptionTier.MEDIUM
    assert model.absorption_time(_entry(120)) == timedelta(hours=3)


def test_quantity_thresholds_pick_tier():
    model = AbsorptionModel(AbsorptionConfig(fast_below_grams=10, slow_above_grams=60))
    assert model.tier_for(_entry(5)) == AbsorptionTier.FAST
    assert model.tier_for(_entry(10)) == AbsorptionTier.MEDIUM
    assert model.tier_for(_entry(60)) == AbsorptionTier.MEDIUM
    assert model.tier_for(_entry(75)) == AbsorptionTier.SLOW
    assert model.absorption_time(_entry(75)) == timedelta(hours=5)


def test_explicit_time_and_tier_take_precedence():
    model = AbsorptionModel(AbsorptionConfig(fast_below_grams=10))
    assert model.absorption_time(_entry(5, absorption_time=timedelta(hours=2))) == timedelta(hours=2)
    assert model.tier_for(_entry(5, absorption_tier="slow")) == AbsorptionTier.SLOW


def test_fraction_is_zero_at_start_and_one_at_absorption_time():
    model = AbsorptionModel()
    entry = _entry(40, absorption_time=timedelta(hours=2))
    assert model.absorbed_fraction(entry, timedelta(0)) == 0.0
    assert model.absorbed_fraction(entry, timedelta(minutes=-5)) == 0.0
    assert model.absorbed_fraction(entry, timedelta(hours=1)) == pytest.approx(0.5)
    assert model.absorbed_fraction(entry, timedelta(hours=2)) == 1.0
    assert model.absorbed_fraction(entry, timedelta(hours=9)) == 1.0
    assert model.absorbed_carbs(entry, timedelta(hours=1)) == pytest.approx(20.0)


@pytest.mark.parametrize("curve", ["linear", "triangle", "parabolic"])
def test_fraction_monotonic_for_every_curve(curve):
    model = AbsorptionModel(AbsorptionConfig(curve=curve))
    entry = _entry(30)
    fractions = [model.absorbed_fraction(entry, timedelta(minutes=m)) for m in range(0, 200, 5)]
    assert fractions == sorted(fractions)
    assert fractions[-1] == 1.0


def test_zero_quantity_never_absorbs():
    model = AbsorptionModel()
    entry = _entry(0)
    for minutes in (0, 30, 90, 180, 600):
        assert model.absorbed_fraction(entry, timedelta(minutes=minutes)) == 0.0
        assert model.absorption_rate(entry, timedelta(minutes=minutes)) == 0.0


def test_rate_is_per_minute():
    model = AbsorptionModel()
    entry = _entry(18, absorption_time=timedelta(hours=3))
    assert model.absorption_rate(entry, timedelta(minutes=30)) == pytest.approx(1 / 180)
    assert model.absorption_rate(entry, timedelta(hours=4)) == 0.0


def test_config_accepts_seconds_from_json():
    config = AbsorptionConfig.model_validate(
        {"default_absorption_times": {"fast": 1800, "medium": 7200, "slow": 14400}}
    )
    assert config.default_absorption_times[AbsorptionTier.MEDIUM] == timedelta(hours=2)


def test_config_validation():
    with pytest.raises(ValidationError):
        AbsorptionConfig(default_absorption_times={AbsorptionTier.FAST: timedelta(minutes=30)})
    with pytest.raises(ValidationError):
        AbsorptionConfig(
            default_absorption_times={
                AbsorptionTier.FAST: timedelta(hours=4),
                AbsorptionTier.MEDIUM: timedelta(hours=3),
                AbsorptionTier.SLOW: timedelta(hours=5),
            }
        )
    with pytest.raises(ValidationError):
        AbsorptionConfig(fast_below_grams=50, slow_above_grams=20)
    with pytest.raises(ValidationError):
        AbsorptionConfig(curve="exponential")


def test_entry_validation():
    with pytest.raises(ValidationError):
        _entry(-1)
    with pytest.raises(ValidationError):
        _entry(10, absorption_time=timedelta(0))
    naive = CarbEntry(start_date=datetime(2020, 1, 1, 8), quantity=10)
    assert naive.start_date.tzinfo == timezone.utc
