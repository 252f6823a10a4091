import argparse
import logging
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

backend_dir = Path(__file__).resolve().parent.parent
if str(backend_dir) not in sys.path:
    sys.path.append(str(backend_dir))

from carbcast.core.errors import CarbStoreError  # noqa: E402
from carbcast.core.logging import configure_logging  # noqa: E402
from carbcast.core.settings import get_settings  # noqa: E402
from carbcast.services.carb_store import CarbStore  # noqa: E402
from carbcast.services.sources import SettingsScheduleProvider  # noqa: E402
from carbcast.services.store import DataStore, load_velocities  # noqa: E402
from carbcast.utils.timezone import format_time  # noqa: E402

logger = logging.getLogger("project_carb_effects")


def _parse_when(raw: str) -> datetime:
    dt = datetime.fromisoformat(raw)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def main() -> int:
    parser = argparse.ArgumentParser(description="Print the projected carb glucose effect for a window.")
    parser.add_argument("--start", type=_parse_when, help="ISO start (default: now, UTC)")
    parser.add_argument("--hours", type=float, default=6.0, help="Window length in hours")
    parser.add_argument("--velocities", action="store_true", help="Use carb_effect_velocities.json from the data dir")
    args = parser.parse_args()

    configure_logging()
    settings = get_settings()
    start = args.start or datetime.now(timezone.utc)
    store = CarbStore.from_settings(settings, reference=start)
    end = start + timedelta(hours=args.hours)
    velocities = load_velocities(DataStore(settings.data.data_dir)) if args.velocities else None

    try:
        result = store.get_glucose_effects(start, end, velocities=velocities)
    except CarbStoreError as exc:
        logger.error("Projection failed: %s", exc)
        return 1

    for status in result.statuses:
        print(
            f"{status.entry.start_date.isoformat()}  {status.entry.quantity:6.1f} g  "
            f"{status.absorption.value:8}  complete={status.is_complete}"
        )
    local_tz = SettingsScheduleProvider(settings.therapy, reference=start).time_zone
    for effect in result.effects:
        print(f"{effect.date.isoformat()}  {format_time(effect.date, local_tz)}  {effect.quantity:8.2f} {effect.unit.value}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
