import asyncio
from datetime import datetime, timedelta

import pytz

from notifications import NotificationGateway, PermissionStatus
from prayer_times import PrayerSlot
from scheduler import PrayerScheduler

TZ = pytz.timezone("Asia/Riyadh")
NOW = TZ.localize(datetime(2025, 11, 9, 14, 0))

PRAYERS = [
    PrayerSlot("Fajr", "05:30", "الفجر"),
    PrayerSlot("Sunrise", "06:45", "الشروق"),
    PrayerSlot("Dhuhr", "12:30", "الظهر"),
    PrayerSlot("Asr", "15:45", "العصر"),
    PrayerSlot("Maghrib", "18:15", "المغرب"),
    PrayerSlot("Isha", "19:30", "العشاء"),
]


class _FakeGateway:
    def __init__(self, fail_for: tuple[str, ...] = ()) -> None:
        self.fail_for = fail_for
        self.events: list[str] = []
        self.calls: list[dict] = []
        self.pending: list[dict] = []

    async def cancel_all(self) -> None:
        await asyncio.sleep(0)
        self.events.append("cancel_all")
        self.pending.clear()

    async def schedule_one_shot(self, title, body, fire_in_seconds, tag=None, sound=True):
        await asyncio.sleep(0)
        self.events.append("schedule")
        call = {"title": title, "body": body, "seconds": fire_in_seconds, "tag": tag}
        self.calls.append(call)
        if tag and tag.get("prayer_name") in self.fail_for:
            raise RuntimeError("notification registry unavailable")
        self.pending.append(call)
        return call


class _RecordingPresenter:
    def show(self, title, body, sound, tag) -> None:
        return None

    def on_tap(self, handler) -> None:
        return None


class _StaticPermissions:
    async def get_status(self) -> PermissionStatus:
        return PermissionStatus.GRANTED

    async def request(self) -> PermissionStatus:
        return PermissionStatus.GRANTED


def test_schedules_remaining_today_and_all_of_tomorrow():
    gateway = _FakeGateway()
    scheduler = PrayerScheduler(gateway, now=lambda: NOW)

    count = asyncio.run(scheduler.schedule_prayers(PRAYERS))

    assert count == 9
    assert len(gateway.calls) == 9
    names = [call["tag"]["prayer_name"] for call in gateway.calls]
    assert names[:3] == ["Asr", "Maghrib", "Isha"]
    assert names[3:] == ["Fajr", "Dhuhr", "Asr", "Maghrib", "Isha"]
    assert "Sunrise" not in names
    assert all(call["tag"]["is_azan_alert"] for call in gateway.calls)


def test_alert_delays_and_text():
    gateway = _FakeGateway()
    asyncio.run(PrayerScheduler(gateway, now=lambda: NOW).schedule_prayers(PRAYERS))

    asr_today = gateway.calls[0]
    assert asr_today["seconds"] == int(timedelta(hours=1, minutes=45).total_seconds())
    assert asr_today["title"] == "Asr Prayer Time"
    assert asr_today["body"] == "It's time for Asr prayer (العصر)"

    fajr_tomorrow = gateway.calls[3]
    assert fajr_tomorrow["seconds"] == int(timedelta(hours=15, minutes=30).total_seconds())


def test_cancel_all_precedes_scheduling():
    gateway = _FakeGateway()
    asyncio.run(PrayerScheduler(gateway, now=lambda: NOW).schedule_prayers(PRAYERS))

    assert gateway.events[0] == "cancel_all"
    assert gateway.events.count("cancel_all") == 1


def test_empty_prayer_list_schedules_nothing():
    gateway = _FakeGateway()

    assert asyncio.run(PrayerScheduler(gateway, now=lambda: NOW).schedule_prayers([])) == 0
    assert gateway.events == ["cancel_all"]


def test_one_failing_slot_does_not_abort_the_cycle():
    gateway = _FakeGateway(fail_for=("Maghrib",))

    count = asyncio.run(PrayerScheduler(gateway, now=lambda: NOW).schedule_prayers(PRAYERS))

    assert count == 7
    assert len(gateway.calls) == 9


def test_malformed_time_skips_only_that_slot():
    gateway = _FakeGateway()
    prayers = PRAYERS[:3] + [PrayerSlot("Asr", "25:99", "العصر")] + PRAYERS[4:]

    count = asyncio.run(PrayerScheduler(gateway, now=lambda: NOW).schedule_prayers(prayers))

    assert count == 7
    assert "Asr" not in [call["tag"]["prayer_name"] for call in gateway.calls]


def test_rescheduling_twice_does_not_duplicate_alerts():
    gateway = NotificationGateway(_RecordingPresenter(), _StaticPermissions(), timezone="Asia/Riyadh")
    scheduler = PrayerScheduler(gateway, now=lambda: datetime.now(TZ).replace(hour=14, minute=0))

    async def scenario():
        first = await scheduler.schedule_prayers(PRAYERS)
        once = len(gateway.pending())
        await scheduler.schedule_prayers(PRAYERS)
        twice = len(gateway.pending())
        gateway.shutdown()
        return first, once, twice

    first, once, twice = asyncio.run(scenario())

    assert first == 9
    assert once == twice == 9


def test_blank_provider_time_is_skipped_not_booked_at_midnight():
    gateway = _FakeGateway()
    prayers = PRAYERS[:5] + [PrayerSlot("Isha", "", "العشاء")]

    count = asyncio.run(PrayerScheduler(gateway, now=lambda: NOW).schedule_prayers(prayers))

    assert count == 6
    assert "Isha" not in [call["tag"]["prayer_name"] for call in gateway.calls]
