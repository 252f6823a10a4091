import pytest

from carbcast.services.math.curves import CarbCurves

MODELS = ["linear", "triangle", "parabolic"]


@pytest.mark.parametrize("model", MODELS)
def test_absorbed_fraction_bounds(model):
    duration = 180
    assert CarbCurves.get_absorbed(0, duration, model) == 0.0
    assert CarbCurves.get_absorbed(-10, duration, model) == 0.0
    assert CarbCurves.get_absorbed(duration, duration, model) == 1.0
    assert CarbCurves.get_absorbed(duration * 3, duration, model) == 1.0


@pytest.mark.parametrize("model", MODELS)
def test_absorbed_fraction_monotonic(model):
    duration = 240
    fractions = [CarbCurves.get_absorbed(t, duration, model) for t in range(0, duration + 1, 5)]
    assert fractions == sorted(fractions)
    assert all(0.0 <= f <= 1.0 for f in fractions)


@pytest.mark.parametrize("model", MODELS)
def test_rate_integrates_to_one(model):
    duration = 180
    total_area = sum(CarbCurves.get_rate(t + 0.5, duration, model) for t in range(0, duration))
    assert total_area == pytest.approx(1.0, abs=1e-3)


@pytest.mark.parametrize("model", MODELS)
def test_rate_matches_fraction_slope(model):
    duration = 200
    for t in (20, 70, 130, 185):
        slope = CarbCurves.get_absorbed(t + 0.5, duration, model) - CarbCurves.get_absorbed(t - 0.5, duration, model)
        assert CarbCurves.get_rate(t, duration, model) == pytest.approx(slope, rel=1e-2, abs=1e-6)


def test_symmetric_curves_are_half_absorbed_at_midpoint():
    assert CarbCurves.get_absorbed(90, 180, "triangle") == pytest.approx(0.5)
    assert CarbCurves.get_absorbed(90, 180, "parabolic") == pytest.approx(0.5)
    assert CarbCurves.get_absorbed(90, 180, "linear") == pytest.approx(0.5)


def test_unknown_model_falls_back_to_linear():
    assert CarbCurves.get_absorbed(60, 180, "mystery") == pytest.approx(1 / 3)
    assert CarbCurves.get_rate(60, 180, "mystery") == pytest.approx(1 / 180)


def test_variable_absorption_with_early_peak():
    rates = [CarbCurves.variable_absorption(t, 120, peak_min=30) for t in (0, 15, 30, 75, 120)]
    assert rates[0] == 0.0
    assert rates[2] == pytest.approx(2.0 / 120)
    assert rates[1] < rates[2] and rates[3] < rates[2]
    assert rates[4] == 0.0
    assert CarbCurves.variable_absorbed(30, 120, peak_min=30) == pytest.approx(0.25)
