import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

DATA_DIR = Path(os.environ.get("CLIPTRAIL_DATA_DIR", Path.home() / ".local" / "share" / "cliptrail"))
DB_PATH = DATA_DIR / "cliptrail.db"
IMAGE_DIR = DATA_DIR / "images"
LOG_PATH = DATA_DIR / "cliptrail.log"
SETTINGS_PATH = DATA_DIR / "settings.json"

POLL_INTERVAL = 0.25  # seconds between timer ticks
SELF_WRITE_SUPPRESSION = 1.0  # seconds a self-write keeps absorbing changes
SELF_WRITE_TIMEOUT = 5.0  # seconds before an unconsumed self-write guard is dropped
DEDUP_WINDOW = 10  # most recent entries checked for duplicates
MULTI_TEXT_SEPARATOR = "\n\n"
MAX_TEXT_SIZE = 1_000_000  # 1MB text limit
MAX_IMAGE_SIZE = 10_000_000  # 10MB image limit
PREVIEW_LENGTH = 60  # characters shown in menu item
MENU_DISPLAY_COUNT = 15

DEFAULT_MONITOR_INTERVAL = 0.5
DEFAULT_MAX_ENTRIES = 500


@dataclass(frozen=True)
class Settings:
    """User-tunable values, re-read by the engine at the start of every tick."""

    monitoring_interval_seconds: float = DEFAULT_MONITOR_INTERVAL
    excluded_application_identifiers: frozenset[str] = field(default_factory=frozenset)
    max_history_size: int = DEFAULT_MAX_ENTRIES
    ignore_size_limit_mb: float = 0.0  # 0 disables the limit
    ignore_concealed: bool = True
    ignore_transient: bool = True
    ignore_auto_generated: bool = False
    ignore_remote: bool = False

    @property
    def ignore_size_limit_bytes(self) -> int:
        return int(self.ignore_size_limit_mb * 1024 * 1024)


def _clamp(value, low, high):
    return max(low, min(high, value))


def _parse_float(raw, default: float, low: float, high: float) -> float:
    if raw is None:
        return default
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return default
    return _clamp(value, low, high)


def _parse_int(raw, default: int, low: int, high: int) -> int:
    if raw is None:
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    return _clamp(value, low, high)


def _parse_app_list(raw) -> frozenset[str]:
    if raw is None:
        return frozenset()
    if isinstance(raw, str):
        raw = raw.split(",")
    try:
        return frozenset(str(item).strip() for item in raw if str(item).strip())
    except TypeError:
        return frozenset()


def _read_settings_file(path: Path) -> dict:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text())
    except (OSError, ValueError):
        logger.warning("Ignoring unreadable settings file %s", path)
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring settings file %s: expected a JSON object", path)
        return {}
    return data


def load_settings(path: Path | None = None) -> Settings:
    """Build Settings from settings.json, then environment overrides.

    Malformed values fall back to defaults and out-of-range numbers are
    clamped, so this never raises.
    """
    data = _read_settings_file(path if path is not None else SETTINGS_PATH)
    env = os.environ

    interval = _parse_float(
        env.get("CLIPTRAIL_MONITOR_INTERVAL", data.get("monitoring_interval_seconds")),
        DEFAULT_MONITOR_INTERVAL,
        0.1,
        10.0,
    )
    max_entries = _parse_int(
        env.get("CLIPTRAIL_MAX_ENTRIES", data.get("max_history_size")),
        DEFAULT_MAX_ENTRIES,
        1,
        100_000,
    )
    excluded = _parse_app_list(env.get("CLIPTRAIL_EXCLUDED_APPS", data.get("excluded_application_identifiers")))
    size_limit = _parse_float(data.get("ignore_size_limit_mb"), 0.0, 0.0, 10_000.0)

    return Settings(
        monitoring_interval_seconds=interval,
        excluded_application_identifiers=excluded,
        max_history_size=max_entries,
        ignore_size_limit_mb=size_limit,
        ignore_concealed=bool(data.get("ignore_concealed", True)),
        ignore_transient=bool(data.get("ignore_transient", True)),
        ignore_auto_generated=bool(data.get("ignore_auto_generated", False)),
        ignore_remote=bool(data.get("ignore_remote", False)),
    )
