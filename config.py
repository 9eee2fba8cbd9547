"""Loading and saving of the application config file."""
from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import pytz
from tzlocal import get_localzone_name

from clock import ParseError, parse_hhmm
from prayer_times import LocationInfo

LOGGER = logging.getLogger(__name__)

DEFAULT_BACKEND_URL = "http://localhost:3000"
DEFAULT_REFRESH_TIME = "00:05"
DEFAULT_LOCATION = LocationInfo(
    city="Makkah",
    country="Saudi Arabia",
    latitude=21.4225,
    longitude=39.8262,
    timezone="Asia/Riyadh",
)


@dataclass
class AppConfig:
    backend_url: str = DEFAULT_BACKEND_URL
    location: LocationInfo = field(default_factory=lambda: LocationInfo(**asdict(DEFAULT_LOCATION)))
    calculation_method: str = "MWL"
    azan_enabled: bool = True
    notification_permission: str = "undetermined"
    timezone: str = "UTC"
    refresh_time: str = DEFAULT_REFRESH_TIME
    log_level: str = "DEBUG"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def load_config(path: Path) -> AppConfig:
    raw = _load_json(path, default={})
    LOGGER.debug("Loaded config keys: %s", list(raw.keys()))

    config = AppConfig(
        backend_url=str(raw.get("backend_url") or DEFAULT_BACKEND_URL),
        calculation_method=str(raw.get("calculation_method", "MWL")),
        azan_enabled=bool(raw.get("azan_enabled", True)),
        notification_permission=str(raw.get("notification_permission", "undetermined")),
        log_level=str(raw.get("log_level", "DEBUG")).upper(),
    )

    location = build_location_from_config(raw)
    if location is not None:
        config.location = location

    config.timezone = _resolve_timezone(raw.get("timezone") or config.location.timezone)

    refresh_time = str(raw.get("refresh_time", DEFAULT_REFRESH_TIME))
    try:
        parse_hhmm(refresh_time)
    except ParseError:
        LOGGER.warning("Invalid refresh_time %r; using %s", refresh_time, DEFAULT_REFRESH_TIME)
        refresh_time = DEFAULT_REFRESH_TIME
    config.refresh_time = refresh_time
    return config


def save_config(path: Path, config: AppConfig) -> None:
    _save_json(path, config.to_dict())


def build_location_from_config(config: Dict[str, object]) -> Optional[LocationInfo]:
    """Create a LocationInfo instance if the config contains the required data."""
    location_cfg = config.get("location") if isinstance(config, dict) else None
    if not isinstance(location_cfg, dict):
        return None

    try:
        return LocationInfo(
            city=str(location_cfg.get("city", "")),
            country=str(location_cfg.get("country", "")),
            latitude=float(location_cfg["latitude"]),
            longitude=float(location_cfg["longitude"]),
            timezone=str(location_cfg.get("timezone")) if location_cfg.get("timezone") else None,
        )
    except (KeyError, TypeError, ValueError):
        LOGGER.exception("Invalid location config: %s", location_cfg)
        return None


def _resolve_timezone(candidate: Optional[object]) -> str:
    if not candidate:
        try:
            candidate = get_localzone_name() or "UTC"
        except Exception:  # pragma: no cover - platform dependent
            LOGGER.warning("Could not detect the local timezone", exc_info=True)
            candidate = "UTC"
    try:
        pytz.timezone(str(candidate))
    except pytz.UnknownTimeZoneError:
        LOGGER.warning("Unknown timezone '%s'; falling back to UTC", candidate)
        return "UTC"
    return str(candidate)


def _load_json(path: Path, default: Dict[str, Any]) -> Dict[str, Any]:
    if not path.exists():
        return default
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def _save_json(path: Path, payload: Dict[str, Any]) -> None:
    with path.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=2, ensure_ascii=False)
