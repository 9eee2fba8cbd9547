"""Entry points used by the host to drive Azan alerts and playback."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Iterable, Optional, Set

from adhan_player import AdhanPlayer
from audio_source import AudioSourceResolver, AzanAudioInfo
from dispatch import AlertDispatchListener
from notifications import AlertPayload, NotificationGateway
from prayer_times import PrayerSlot
from scheduler import PrayerScheduler

LOGGER = logging.getLogger(__name__)

PRAYER_ALERT_TITLE = "Prayer Time"
PRAYER_ALERT_BODY = "It's time for prayer - Allahu Akbar"


class AzanService:
    """Coordinate the scheduler, gateway, resolver and player.

    None of the public coroutines raise when a collaborator fails; failures are
    logged and the system alert sound stands in for missing audio.
    """

    def __init__(
        self,
        gateway: NotificationGateway,
        player: AdhanPlayer,
        resolver: AudioSourceResolver,
        scheduler: Optional[PrayerScheduler] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self.gateway = gateway
        self.player = player
        self.resolver = resolver
        self.scheduler = scheduler or PrayerScheduler(gateway)
        self._loop = loop
        self._listener = AlertDispatchListener(gateway, self._on_azan_alert)
        self._tasks: Set[asyncio.Task] = set()

    # -- scheduling --------------------------------------------------------
    async def schedule_prayer_notifications(self, prayers: Iterable[PrayerSlot]) -> int:
        try:
            return await self.scheduler.schedule_prayers(prayers)
        except Exception:
            LOGGER.exception("Failed to schedule prayer notifications")
            return 0

    async def cancel_all_prayer_notifications(self) -> None:
        LOGGER.info("Cancelling all prayer notifications")
        try:
            await self.scheduler.cancel_all()
        except Exception:
            LOGGER.exception("Failed to cancel notifications")

    async def set_azan_enabled(self, enabled: bool, prayers: Iterable[PrayerSlot] = ()) -> int:
        if not enabled:
            await self.cancel_all_prayer_notifications()
            return 0
        return await self.schedule_prayer_notifications(prayers)

    async def request_notification_permissions(self) -> bool:
        return await self.gateway.request_permission()

    def setup_notification_listener(self) -> None:
        self._listener.install()

    # -- playback ----------------------------------------------------------
    async def play_azan(self) -> None:
        LOGGER.info("Playing Azan audio")
        started = False
        try:
            info = await self.resolver.resolve()
            if info.has_custom_audio:
                started = await self.player.play(info.url)
            else:
                LOGGER.info("No Azan audio URL found, using notification sound")
                await self.player.stop()
        except Exception:
            LOGGER.exception("Failed to play Azan")

        try:
            # custom audio replaces the alert sound; otherwise fall back to it
            await self.gateway.present_now(PRAYER_ALERT_TITLE, PRAYER_ALERT_BODY, sound=not started)
        except Exception:
            LOGGER.exception("Fallback notification also failed")

    async def stop_azan(self) -> None:
        try:
            await self.player.stop()
        except Exception:
            LOGGER.exception("Failed to stop Azan")

    # -- audio source ------------------------------------------------------
    async def refresh_azan_audio_url(self) -> None:
        LOGGER.info("Refreshing Azan audio URL")
        info = await self.resolver.refresh()
        LOGGER.info("Azan audio URL refreshed: %s", info.url or "<none>")

    async def get_azan_audio_info(self) -> Optional[AzanAudioInfo]:
        return await self.resolver.lookup()

    # -- lifecycle ---------------------------------------------------------
    def spawn(self, coro: Awaitable[None]) -> asyncio.Task:
        """Run *coro* as a tracked background task on the service loop."""
        loop = self._loop or asyncio.get_running_loop()
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self.player.drain()

    async def shutdown(self) -> None:
        self._listener.uninstall()
        await self.drain()
        await self.player.close()
        self.gateway.shutdown()

    def _on_azan_alert(self, payload: AlertPayload) -> None:
        self.spawn(self.play_azan())

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            LOGGER.error("Background Azan task failed", exc_info=task.exception())
