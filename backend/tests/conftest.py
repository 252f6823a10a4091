import json
import os
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
str_path = str(ROOT)
if str_path not in sys.path:
    sys.path.insert(0, str_path)

from carbcast.models.carbs import GlucoseEffect  # noqa: E402
from carbcast.services.schedule import (  # noqa: E402
    CarbRatioSchedule,
    InsulinSensitivitySchedule,
    RepeatingScheduleValue,
)

FIXTURES = Path(__file__).resolve().parent / "fixtures"


def load_fixture(name: str):
    with (FIXTURES / f"{name}.json").open("r", encoding="utf-8") as fh:
        return json.load(fh)


def load_effect_fixture(name: str) -> list[GlucoseEffect]:
    effects = []
    for row in load_fixture(name):
        date = datetime.fromisoformat(row["date"])
        if date.tzinfo is None:
            date = date.replace(tzinfo=timezone.utc)
        assert row["unit"] == "mg/dL"
        effects.append(GlucoseEffect(date=date, quantity=row["amount"]))
    return effects


@pytest.fixture
def t0() -> datetime:
    return datetime(2020, 8, 11, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def constant_carb_ratio() -> CarbRatioSchedule:
    return CarbRatioSchedule([RepeatingScheduleValue(0.0, 10.0)])


@pytest.fixture
def constant_sensitivity() -> InsulinSensitivitySchedule:
    return InsulinSensitivitySchedule([RepeatingScheduleValue(0.0, 50.0)])


@pytest.fixture
def loop_carb_ratio() -> CarbRatioSchedule:
    return CarbRatioSchedule(
        [RepeatingScheduleValue(0.0, 10.0), RepeatingScheduleValue(32400.0, 12.0)]
    )


@pytest.fixture
def loop_sensitivity() -> InsulinSensitivitySchedule:
    return InsulinSensitivitySchedule(
        [RepeatingScheduleValue(0.0, 45.0), RepeatingScheduleValue(32400.0, 55.0)]
    )


@pytest.fixture
def clean_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith("CARBCAST_") or key == "LOG_LEVEL":
            monkeypatch.delenv(key, raising=False)
    return monkeypatch


def write_config(path: Path, data_dir: Path, **therapy) -> Path:
    config = {
        "data": {"data_dir": str(data_dir)},
        "therapy": {
            "carb_ratio": [{"start_time": "00:00", "value": 10}, {"start_time": "09:00", "value": 12}],
            "insulin_sensitivity": [{"start_time": "00:00", "value": 45}, {"start_time": "09:00", "value": 55}],
            **therapy,
        },
    }
    path.write_text(json.dumps(config), encoding="utf-8")
    return path
