"""Scheduling of per-prayer Azan alerts for today and tomorrow."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Iterable, Optional

from clock import ParseError, seconds_until
from notifications import NotificationGateway, azan_tag
from prayer_times import PrayerSlot

LOGGER = logging.getLogger(__name__)

TODAY = 0
TOMORROW = 1


def alert_title(slot: PrayerSlot) -> str:
    return f"{slot.name} Prayer Time"


def alert_body(slot: PrayerSlot) -> str:
    if slot.arabic_name:
        return f"It's time for {slot.name} prayer ({slot.arabic_name})"
    return f"It's time for {slot.name} prayer"


class PrayerScheduler:
    """Recompute the pending Azan alerts from a fresh list of prayer slots.

    Every cycle starts by cancelling all pending alerts, then schedules one alert
    per prayer still ahead today plus one per prayer tomorrow. Running the same
    cycle twice therefore leaves the same set of alerts, never a duplicate.
    """

    def __init__(
        self,
        gateway: NotificationGateway,
        now: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._gateway = gateway
        self._now = now or gateway.now

    async def schedule_prayers(self, prayers: Iterable[PrayerSlot]) -> int:
        """Replace all pending alerts; return how many were scheduled."""
        slots = list(prayers)
        LOGGER.info("Scheduling prayer notifications for %d slots", len(slots))

        await self._gateway.cancel_all()

        now = self._now()
        scheduled = 0
        for day_offset in (TODAY, TOMORROW):
            for slot in slots:
                if slot.is_informational:
                    LOGGER.debug("Skipping %s (not a prayer time)", slot.name)
                    continue
                if await self._schedule_slot(slot, now, day_offset):
                    scheduled += 1

        LOGGER.info("Scheduled %d prayer notifications", scheduled)
        return scheduled

    async def cancel_all(self) -> None:
        await self._gateway.cancel_all()

    async def _schedule_slot(self, slot: PrayerSlot, now: datetime, day_offset: int) -> bool:
        label = "tomorrow" if day_offset == TOMORROW else "today"
        try:
            delay = seconds_until(slot.time, now, day_offset)
        except ParseError:
            LOGGER.warning("Skipping %s %s: invalid time %r", slot.name, label, slot.time)
            return False

        if delay <= 0:
            LOGGER.debug("Skipping %s %s at %s (already passed)", slot.name, label, slot.time)
            return False

        try:
            alert = await self._gateway.schedule_one_shot(
                alert_title(slot),
                alert_body(slot),
                delay,
                tag=azan_tag(slot.name),
            )
        except Exception:
            LOGGER.exception("Failed to schedule %s %s at %s", slot.name, label, slot.time)
            return False

        if alert is None:
            return False
        LOGGER.debug("Scheduled %s %s at %s (in %d minutes)", slot.name, label, slot.time, delay // 60)
        return True
