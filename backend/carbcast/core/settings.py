import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from carbcast.models.settings import AbsorptionConfig, TherapySettings


class ProjectionConfig(BaseModel):
    delta_minutes: int = Field(default=5, ge=1, le=60)


class DataConfig(BaseModel):
    data_dir: Path = Field(default=Path("backend/data"))

    @field_validator("data_dir", mode="before")
    def _expand_path(cls, v: str | Path) -> Path:
        return Path(v).expanduser()


class Settings(BaseModel):
    absorption: AbsorptionConfig = Field(default_factory=AbsorptionConfig)
    projection: ProjectionConfig = Field(default_factory=ProjectionConfig)
    therapy: TherapySettings = Field(default_factory=TherapySettings)
    data: DataConfig = Field(default_factory=DataConfig)

    model_config = ConfigDict(arbitrary_types_allowed=True)


DEFAULT_CONFIG_PATH = Path(os.environ.get("CARBCAST_CONFIG_PATH", "config/config.json"))


def _load_file_config(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with path.open("r", encoding="utf-8") as fh:
            return json.load(fh)
    except json.JSONDecodeError as exc:
        raise RuntimeError(f"Invalid JSON configuration at {path}") from exc


def _load_env() -> dict[str, Any]:
    env_config: dict[str, Any] = {}

    delta = os.environ.get("CARBCAST_DELTA_MINUTES")
    if delta:
        env_config.setdefault("projection", {})["delta_minutes"] = int(delta)

    curve = os.environ.get("CARBCAST_ABSORPTION_CURVE")
    if curve:
        env_config.setdefault("absorption", {})["curve"] = curve.strip().lower()

    fast_below = os.environ.get("CARBCAST_FAST_BELOW_GRAMS")
    if fast_below:
        env_config.setdefault("absorption", {})["fast_below_grams"] = float(fast_below)

    slow_above = os.environ.get("CARBCAST_SLOW_ABOVE_GRAMS")
    if slow_above:
        env_config.setdefault("absorption", {})["slow_above_grams"] = float(slow_above)

    utc_offset = os.environ.get("CARBCAST_UTC_OFFSET_MINUTES")
    if utc_offset:
        env_config.setdefault("therapy", {})["utc_offset_minutes"] = int(utc_offset)

    time_zone = os.environ.get("CARBCAST_TIME_ZONE")
    if time_zone:
        env_config.setdefault("therapy", {})["time_zone"] = time_zone

    isf_unit = os.environ.get("CARBCAST_ISF_UNIT")
    if isf_unit:
        env_config.setdefault("therapy", {})["insulin_sensitivity_unit"] = isf_unit

    data_dir = os.environ.get("CARBCAST_DATA_DIR")
    if data_dir:
        env_config.setdefault("data", {})["data_dir"] = data_dir

    return env_config


def merge_settings(env_config: dict[str, Any], file_config: dict[str, Any]) -> dict[str, Any]:
    merged: dict[str, Any] = {}
    for section in ("absorption", "projection", "therapy", "data"):
        merged[section] = {**file_config.get(section, {}), **env_config.get(section, {})}
    return merged


def load_settings(config_path: Optional[Path] = None) -> Settings:
    env_config = _load_env()
    file_config = _load_file_config(config_path or DEFAULT_CONFIG_PATH)
    merged = merge_settings(env_config=env_config, file_config=file_config)
    try:
        return Settings.model_validate(merged)
    except ValidationError as exc:
        raise RuntimeError(f"Configuration error: {exc}") from exc


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


__all__ = ["Settings", "get_settings", "load_settings"]
