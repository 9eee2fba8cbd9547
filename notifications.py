"""Local alert scheduling, delivery and permission handling."""
from __future__ import annotations

import enum
import itertools
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol

import pytz
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

LOGGER = logging.getLogger(__name__)

ALERT_JOBSTORE = "alerts"
MISFIRE_GRACE_SECONDS = 300

AlertPayload = Mapping[str, Any]
AlertHandler = Callable[[AlertPayload], None]


class AlertEvent(enum.Enum):
    FIRED = "fired"
    TAPPED = "tapped"


class PermissionStatus(enum.Enum):
    GRANTED = "granted"
    DENIED = "denied"
    UNDETERMINED = "undetermined"

    @classmethod
    def parse(cls, value: object) -> "PermissionStatus":
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.UNDETERMINED


class PermissionProvider(Protocol):
    async def get_status(self) -> PermissionStatus: ...

    async def request(self) -> PermissionStatus: ...


class AlertPresenter(Protocol):
    def show(self, title: str, body: str, sound: bool, tag: AlertPayload) -> None: ...

    def on_tap(self, handler: AlertHandler) -> None: ...


class ConfigPermissionProvider:
    """Remember the user's notification answer in the config file."""

    def __init__(self, config: Any, prompt: Callable[[], bool], save: Callable[[], None]) -> None:
        self._config = config
        self._prompt = prompt
        self._save = save

    async def get_status(self) -> PermissionStatus:
        return PermissionStatus.parse(self._config.notification_permission)

    async def request(self) -> PermissionStatus:
        status = await self.get_status()
        if status is not PermissionStatus.UNDETERMINED:
            return status
        status = PermissionStatus.GRANTED if self._prompt() else PermissionStatus.DENIED
        self._config.notification_permission = status.value
        self._save()
        return status


class LoggingPresenter:
    """Presenter used when the host has no way to show alerts."""

    def show(self, title: str, body: str, sound: bool, tag: AlertPayload) -> None:
        LOGGER.info("Alert: %s - %s (sound=%s)", title, body, sound)

    def on_tap(self, handler: AlertHandler) -> None:
        return None


def azan_tag(prayer_name: str) -> Dict[str, Any]:
    return {"prayer_name": prayer_name, "is_azan_alert": True}


@dataclass(frozen=True)
class ScheduledAlert:
    alert_id: str
    title: str
    body: str
    fire_at: datetime
    tag: Mapping[str, Any] = field(default_factory=dict)
    sound: bool = True

    @property
    def prayer_name(self) -> Optional[str]:
        return self.tag.get("prayer_name")


@dataclass(frozen=True)
class SubscriptionToken:
    event: AlertEvent
    key: int


class NotificationGateway:
    """Wrap APScheduler so the rest of the app sees one-shot local alerts."""

    def __init__(
        self,
        presenter: AlertPresenter,
        permissions: PermissionProvider,
        timezone: str = "UTC",
        scheduler: Optional[AsyncIOScheduler] = None,
    ) -> None:
        self._presenter = presenter
        self._permissions = permissions
        self._timezone = pytz.timezone(timezone)
        self._scheduler = scheduler or AsyncIOScheduler(timezone=self._timezone)
        self._scheduler.add_jobstore(MemoryJobStore(), alias=ALERT_JOBSTORE)
        self._handlers: Dict[AlertEvent, Dict[int, AlertHandler]] = {event: {} for event in AlertEvent}
        self._keys = itertools.count(1)
        self._permission_granted: Optional[bool] = None
        self._presenter.on_tap(self.notify_tapped)

    @property
    def timezone(self) -> pytz.BaseTzInfo:
        return self._timezone

    def now(self) -> datetime:
        return datetime.now(self._timezone)

    def start(self) -> None:
        if not self._scheduler.running:
            LOGGER.info("Starting alert scheduler")
            self._scheduler.start()

    def shutdown(self) -> None:
        if self._scheduler.running:
            LOGGER.info("Stopping alert scheduler")
            self._scheduler.shutdown(wait=False)

    # -- permissions -------------------------------------------------------
    async def request_permission(self) -> bool:
        try:
            status = await self._permissions.get_status()
            if status is not PermissionStatus.GRANTED:
                LOGGER.debug("Notification permission is %s; asking the user", status.value)
                status = await self._permissions.request()
        except Exception:
            LOGGER.exception("Failed to request notification permission")
            return False

        granted = status is PermissionStatus.GRANTED
        self._permission_granted = granted
        if granted:
            LOGGER.info("Notification permission granted")
        else:
            LOGGER.warning("Notification permission denied")
        return granted

    # -- scheduling --------------------------------------------------------
    async def schedule_one_shot(
        self,
        title: str,
        body: str,
        fire_in_seconds: int,
        tag: Optional[Mapping[str, Any]] = None,
        sound: bool = True,
    ) -> Optional[ScheduledAlert]:
        if fire_in_seconds <= 0:
            LOGGER.warning("Refusing to schedule %r with non-positive delay %s", title, fire_in_seconds)
            return None

        self.start()
        fire_at = self.now() + timedelta(seconds=fire_in_seconds)
        alert = ScheduledAlert(
            alert_id=uuid.uuid4().hex,
            title=title,
            body=body,
            fire_at=fire_at,
            tag=dict(tag or {}),
            sound=sound,
        )
        self._scheduler.add_job(
            self._fire,
            trigger=DateTrigger(run_date=fire_at, timezone=self._timezone),
            args=[alert],
            id=alert.alert_id,
            jobstore=ALERT_JOBSTORE,
            misfire_grace_time=MISFIRE_GRACE_SECONDS,
        )
        LOGGER.debug("Scheduled alert %s (%s) at %s", alert.alert_id, title, fire_at)
        return alert

    async def cancel_all(self) -> None:
        pending = len(self._scheduler.get_jobs(jobstore=ALERT_JOBSTORE))
        self._scheduler.remove_all_jobs(jobstore=ALERT_JOBSTORE)
        LOGGER.debug("Cancelled %d pending alerts", pending)

    def pending(self) -> List[ScheduledAlert]:
        return [job.args[0] for job in self._scheduler.get_jobs(jobstore=ALERT_JOBSTORE) if job.args]

    async def present_now(self, title: str, body: str, sound: bool = True) -> None:
        if self._permission_granted is False:
            LOGGER.info("Notification permission denied; suppressing %r", title)
            return
        self._presenter.show(title, body, sound, {})

    # -- delivery ----------------------------------------------------------
    def subscribe(self, event: AlertEvent, handler: AlertHandler) -> SubscriptionToken:
        key = next(self._keys)
        self._handlers[event][key] = handler
        return SubscriptionToken(event=event, key=key)

    def unsubscribe(self, token: SubscriptionToken) -> bool:
        return self._handlers[token.event].pop(token.key, None) is not None

    def on_fired(self, handler: AlertHandler) -> SubscriptionToken:
        return self.subscribe(AlertEvent.FIRED, handler)

    def on_tapped(self, handler: AlertHandler) -> SubscriptionToken:
        return self.subscribe(AlertEvent.TAPPED, handler)

    def notify_tapped(self, payload: Optional[AlertPayload]) -> None:
        LOGGER.debug("Alert tapped with payload %s", payload)
        self._emit(AlertEvent.TAPPED, payload or {})

    async def _fire(self, alert: ScheduledAlert) -> None:
        if self._permission_granted is False:
            LOGGER.info("Notification permission denied; suppressing alert %s", alert.title)
            return

        LOGGER.info("Alert fired: %s", alert.title)
        try:
            self._presenter.show(alert.title, alert.body, alert.sound, alert.tag)
        except Exception:
            LOGGER.exception("Failed to present alert %s", alert.title)
        self._emit(AlertEvent.FIRED, alert.tag)

    def _emit(self, event: AlertEvent, payload: AlertPayload) -> None:
        for handler in list(self._handlers[event].values()):
            try:
                handler(payload)
            except Exception:
                LOGGER.exception("Alert %s handler %r failed", event.value, handler)
