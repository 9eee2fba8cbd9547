"""Data model and backend client for a day's prayer times."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Optional

import requests

from clock import ParseError, clean_time_string, minute_of_day, to_minutes

LOGGER = logging.getLogger(__name__)

PRAYER_TIMES_PATH = "/api/prayer-times"
SUNRISE = "Sunrise"
PRAYER_ORDER = ["Fajr", "Sunrise", "Dhuhr", "Asr", "Maghrib", "Isha"]
ARABIC_NAMES = {
    "Fajr": "الفجر",
    "Sunrise": "الشروق",
    "Dhuhr": "الظهر",
    "Asr": "العصر",
    "Maghrib": "المغرب",
    "Isha": "العشاء",
}
CALCULATION_METHODS = ("MWL", "ISNA", "Egypt", "Makkah", "Karachi", "Tehran", "Jafari")


@dataclass
class LocationInfo:
    city: str
    country: str
    latitude: float
    longitude: float
    timezone: Optional[str] = None


@dataclass(frozen=True)
class PrayerSlot:
    name: str
    time: str
    arabic_name: str = ""

    @property
    def is_informational(self) -> bool:
        """Sunrise is shown alongside the prayers but never announced."""
        return self.name == SUNRISE


@dataclass
class PrayerDay:
    location: LocationInfo
    gregorian_date: date
    hijri_date: str
    slots: List[PrayerSlot] = field(default_factory=list)

    def azan_slots(self) -> List[PrayerSlot]:
        return [slot for slot in self.slots if not slot.is_informational]

    def next_prayer(self, now: datetime) -> Optional[PrayerSlot]:
        """Return the next upcoming prayer relative to *now*, if any remain today."""
        current = minute_of_day(now)
        for slot in self.azan_slots():
            try:
                if to_minutes(slot.time) > current:
                    return slot
            except ParseError:
                LOGGER.warning("Ignoring malformed time %r for %s", slot.time, slot.name)
        return None


class PrayerTimesService:
    """Fetches prayer times through the backend proxy."""

    def __init__(self, base_url: str, method: str = "MWL", timeout: int = 10) -> None:
        self.base_url = base_url.rstrip("/")
        if method not in CALCULATION_METHODS:
            LOGGER.warning("Unknown calculation method %s; falling back to MWL", method)
            method = "MWL"
        self.method = method
        self.timeout = timeout

    @property
    def url(self) -> str:
        return f"{self.base_url}{PRAYER_TIMES_PATH}"

    def fetch_prayer_times(self, location: LocationInfo, target_date: Optional[date] = None) -> PrayerDay:
        target_date = target_date or date.today()
        params = {
            "latitude": location.latitude,
            "longitude": location.longitude,
            "date": target_date.isoformat(),
            "method": self.method,
        }
        LOGGER.debug(
            "Fetching prayer times for %s, %s with params=%s",
            location.city,
            location.country,
            params,
        )
        response = requests.get(self.url, params=params, timeout=self.timeout)
        LOGGER.debug("Prayer times response status: %s", response.status_code)
        response.raise_for_status()

        payload: Dict[str, str] = response.json() or {}
        LOGGER.debug("Prayer times response keys: %s", list(payload.keys()))

        slots = [
            PrayerSlot(
                name=name,
                time=clean_time_string(str(payload.get(name.lower(), ""))),
                arabic_name=ARABIC_NAMES[name],
            )
            for name in PRAYER_ORDER
        ]

        gregorian_date_str = payload.get("date")
        try:
            gregorian_date = datetime.strptime(gregorian_date_str, "%d-%m-%Y").date() if gregorian_date_str else target_date
        except (TypeError, ValueError):
            gregorian_date = target_date

        return PrayerDay(
            location=location,
            gregorian_date=gregorian_date,
            hijri_date=str(payload.get("hijriDate", "")),
            slots=slots,
        )
