import json
from datetime import datetime, timezone

import pytest

from carbcast.core.errors import InvalidRangeError
from carbcast.models.carbs import VELOCITY_SAMPLE_INTERVAL, GlucoseEffectVelocity
from carbcast.services.store import DataStore, JsonCarbEntrySource, SimpleFileLock, load_velocities

from conftest import FIXTURES


def test_missing_document_returns_copy_of_default(tmp_path):
    store = DataStore(tmp_path)
    default = {"entries": []}
    loaded = store.read_json("absent.json", default)
    assert loaded == default
    loaded["entries"].append(1)
    assert default == {"entries": []}


def test_invalid_json_raises(tmp_path):
    (tmp_path / "carb_entries.json").write_text("[{", encoding="utf-8")
    with pytest.raises(RuntimeError):
        JsonCarbEntrySource(DataStore(tmp_path)).load_entries()
    assert not (tmp_path / "carb_entries.json.lock").exists()


def test_entries_parse_camel_case_records():
    entries = JsonCarbEntrySource(DataStore(FIXTURES)).load_entries()
    assert [e.quantity for e in entries] == [30, 15, 0]
    assert entries[0].id == "6A2E9C57-0A4E-4A3B-9D0B-6F0E5D1B2C01"
    assert entries[0].absorption_time.total_seconds() == 10800
    assert entries[2].absorption_time is None


def test_entries_in_range_is_inclusive_and_sorted(tmp_path):
    records = [
        {"id": "late", "start_date": "2020-08-11T14:00:00Z", "quantity": 5},
        {"id": "early", "start_date": "2020-08-11T12:00:00Z", "quantity": 10},
        {"id": "outside", "start_date": "2020-08-11T15:00:01Z", "quantity": 7},
    ]
    (tmp_path / "meals.json").write_text(json.dumps(records), encoding="utf-8")
    source = JsonCarbEntrySource(DataStore(tmp_path), filename="meals.json")

    start = datetime(2020, 8, 11, 12, 0, tzinfo=timezone.utc)
    end = datetime(2020, 8, 11, 15, 0, tzinfo=timezone.utc)
    assert [e.id for e in source.entries_in_range(start, end)] == ["early", "late"]
    with pytest.raises(InvalidRangeError):
        source.entries_in_range(end, start)


@pytest.mark.parametrize(
    "payload",
    [
        {"startDate": "2020-08-11T12:00:00Z", "quantity": 10},
        [{"startDate": "2020-08-11T12:00:00Z", "quantity": -3}],
        [{"quantity": 10}],
    ],
)
def test_invalid_records_raise(tmp_path, payload):
    (tmp_path / "carb_entries.json").write_text(json.dumps(payload), encoding="utf-8")
    with pytest.raises(RuntimeError):
        JsonCarbEntrySource(DataStore(tmp_path)).load_entries()


def test_velocities_are_sorted_by_start():
    velocities = load_velocities(DataStore(FIXTURES))
    assert [v.velocity for v in velocities] == [0.4, 0.5]
    assert velocities[0].duration.total_seconds() == 300


def test_velocity_must_end_after_start(tmp_path):
    payload = [{"startDate": "2020-08-11T12:05:00Z", "endDate": "2020-08-11T12:00:00Z", "velocity": 1}]
    (tmp_path / "carb_effect_velocities.json").write_text(json.dumps(payload), encoding="utf-8")
    with pytest.raises(RuntimeError):
        load_velocities(DataStore(tmp_path))


def test_file_lock_times_out_while_held(tmp_path):
    target = tmp_path / "doc.json"
    with SimpleFileLock(target):
        with pytest.raises(TimeoutError):
            SimpleFileLock(target, timeout=0.1).acquire()
    assert not (tmp_path / "doc.json.lock").exists()


def test_point_sample_velocities_cover_one_interval(tmp_path):
    payload = [
        {"date": "2020-08-11T12:05:00Z", "velocity": 0.3},
        {"startDate": "2020-08-11T12:00:00", "velocity": 0.2},
    ]
    (tmp_path / "carb_effect_velocities.json").write_text(json.dumps(payload), encoding="utf-8")
    velocities = load_velocities(DataStore(tmp_path))

    assert [v.velocity for v in velocities] == [0.2, 0.3]
    assert velocities[0].end_date == datetime(2020, 8, 11, 12, 5, tzinfo=timezone.utc)
    assert velocities[1].end_date == datetime(2020, 8, 11, 12, 10, tzinfo=timezone.utc)
    assert all(v.duration == VELOCITY_SAMPLE_INTERVAL for v in velocities)

    sample = GlucoseEffectVelocity(date=datetime(2020, 8, 11, 13, 0, tzinfo=timezone.utc), velocity=1.0)
    assert sample.date == datetime(2020, 8, 11, 13, 0, tzinfo=timezone.utc)
    assert sample.end_date == datetime(2020, 8, 11, 13, 5, tzinfo=timezone.utc)
