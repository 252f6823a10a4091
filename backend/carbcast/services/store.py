from __future__ import annotations

import json
import logging
import os
import time
from contextlib import contextmanager
from copy import deepcopy
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from carbcast.models.carbs import CarbEntry, GlucoseEffectVelocity
from carbcast.services.sources import filter_date_range

logger = logging.getLogger(__name__)


class SimpleFileLock:
    def __init__(self, path: Path, timeout: float = 5.0):
        self.lock_path = str(path) + ".lock"
        self.timeout = timeout
        self._fd: int | None = None

    def acquire(self) -> None:
        start = time.time()
        while True:
            try:
                self._fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_RDWR)
                return
            except FileExistsError:
                if time.time() - start > self.timeout:
                    raise TimeoutError(f"Timeout waiting for lock {self.lock_path}")
                time.sleep(0.05)

    def release(self) -> None:
        if self._fd is not None:
            os.close(self._fd)
            self._fd = None
        try:
            os.unlink(self.lock_path)
        except FileNotFoundError:
            pass

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()


@contextmanager
def _json_lock(path: Path):
    with SimpleFileLock(path):
        yield


@dataclass
class DataStore:
    """Read-only access to the JSON documents of a data directory."""

    data_dir: Path

    def _path(self, filename: str) -> Path:
        return self.data_dir / filename

    def read_json(self, filename: str, default: Any) -> Any:
        path = self._path(filename)
        if not path.exists():
            return deepcopy(default)
        with _json_lock(path):
            try:
                with path.open("r", encoding="utf-8") as fh:
                    return json.load(fh)
            except json.JSONDecodeError as exc:
                raise RuntimeError(f"Invalid JSON document at {path}") from exc


def _parse_records(records: Any, model: type, path_hint: str) -> list:
    if not isinstance(records, list):
        raise RuntimeError(f"Expected a JSON list in {path_hint}")
    try:
        return [model.model_validate(raw) for raw in records]
    except ValidationError as exc:
        raise RuntimeError(f"Invalid record in {path_hint}: {exc}") from exc


class JsonCarbEntrySource:
    """Carb entries read from `<data_dir>/carb_entries.json`; a snapshot is taken per call."""

    def __init__(self, store: DataStore, filename: str = "carb_entries.json"):
        self.store = store
        self.filename = filename

    def load_entries(self) -> list[CarbEntry]:
        raw = self.store.read_json(self.filename, [])
        return _parse_records(raw, CarbEntry, self.filename)

    def entries_in_range(self, start: datetime, end: datetime) -> list[CarbEntry]:
        entries = filter_date_range(self.load_entries(), start, end)
        logger.debug("Carb entries loaded", extra={"file": self.filename, "count": len(entries)})
        return entries


def load_velocities(store: DataStore, filename: str = "carb_effect_velocities.json") -> list[GlucoseEffectVelocity]:
    raw = store.read_json(filename, [])
    velocities = _parse_records(raw, GlucoseEffectVelocity, filename)
    return sorted(velocities, key=lambda v: v.start_date)
