"""Entry point for the Azan notifier tray application."""
from __future__ import annotations

import asyncio
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Awaitable, Optional

try:  # Prefer PyQt5, fall back to Qt for Python if available
    from PyQt5 import QtCore, QtGui, QtWidgets  # type: ignore
except Exception:  # pragma: no cover - fallback only used when PyQt5 missing
    try:
        from PySide2 import QtCore, QtGui, QtWidgets  # type: ignore
    except Exception:
        from PySide6 import QtCore, QtGui, QtWidgets  # type: ignore

from adhan_player import AdhanPlayer
from audio_source import AudioSourceResolver, AzanAudioClient
from azan_service import AzanService
from clock import seconds_until
from config import AppConfig, load_config, save_config
from notifications import AlertPresenter, ConfigPermissionProvider, LoggingPresenter, NotificationGateway
from prayer_times import LocationInfo, PrayerDay, PrayerTimesService
from qt_host import EventLoopPump, QtPlaybackBackend, TrayAlertPresenter

APP_ROOT = Path(__file__).parent
CONFIG_PATH = APP_ROOT / "config.json"

LOGGER = logging.getLogger(__name__)


class AzanApp(QtWidgets.QApplication):
    """Coordinates the tray icon, the asyncio loop and the Azan service."""

    def __init__(self, argv: list[str], config: AppConfig) -> None:
        super().__init__(argv)
        self.setApplicationName("Azan Notifier")
        self.setQuitOnLastWindowClosed(False)

        self._config = config
        self.current_prayer_day: Optional[PrayerDay] = None
        self._refresh_handle: Optional[asyncio.TimerHandle] = None

        self.loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self.loop)
        self._pump = EventLoopPump(self.loop, parent=self)

        self.tray_icon: Optional[QtWidgets.QSystemTrayIcon] = None
        self.tray_azan_action: Optional[QtWidgets.QAction] = None
        presenter = self._setup_tray_icon()

        permissions = ConfigPermissionProvider(self._config, self._prompt_notification_permission, self._save_config)
        gateway = NotificationGateway(presenter, permissions, timezone=self._config.timezone)
        player = AdhanPlayer(QtPlaybackBackend(parent=self))
        resolver = AudioSourceResolver(AzanAudioClient(self._config.backend_url))
        self.azan = AzanService(gateway, player, resolver, loop=self.loop)
        self.prayer_service = PrayerTimesService(self._config.backend_url, method=self._config.calculation_method)

        self.aboutToQuit.connect(self._cleanup)  # type: ignore

        self._pump.start()
        QtCore.QTimer.singleShot(100, lambda: self._spawn(self._startup()))

    # ------------------------------------------------------------------
    async def _startup(self) -> None:
        LOGGER.debug("Setting up Azan service")
        self.azan.setup_notification_listener()
        granted = await self.azan.request_notification_permissions()
        LOGGER.debug("Notification permissions granted=%s", granted)
        await self.refresh_prayer_times()

    async def refresh_prayer_times(self) -> None:
        location = self._config.location
        LOGGER.debug("Refreshing prayer times for %s, %s", location.city, location.country)
        try:
            prayer_day = await self.loop.run_in_executor(
                None, self.prayer_service.fetch_prayer_times, location, self.azan.gateway.now().date()
            )
        except Exception:
            LOGGER.error("Failed to refresh prayer times", exc_info=True)
            self._set_tooltip("Unable to fetch prayer times")
        else:
            self.current_prayer_day = prayer_day
            LOGGER.info("Prayer times refreshed for %s, %s", location.city, location.country)
            self._update_tooltip()
            if self._config.azan_enabled:
                await self.azan.schedule_prayer_notifications(prayer_day.slots)
        finally:
            self._schedule_next_refresh()

    async def set_azan_enabled(self, enabled: bool) -> None:
        self._config.azan_enabled = enabled
        self._save_config()
        slots = self.current_prayer_day.slots if self.current_prayer_day else []
        await self.azan.set_azan_enabled(enabled, slots)

    async def set_location(self, location: LocationInfo) -> None:
        """Switch to *location*, persist it and reschedule from its prayer times."""
        LOGGER.info("Location changed to %s, %s", location.city, location.country)
        self._config.location = location
        self._save_config()
        self.current_prayer_day = None
        await self.refresh_prayer_times()

    async def reload_config(self) -> None:
        """Pick up a location edited in the config file while the app is running."""
        fresh = load_config(CONFIG_PATH)
        if fresh.location != self._config.location:
            await self.set_location(fresh.location)
        else:
            LOGGER.debug("Location unchanged after config reload")

    def _schedule_next_refresh(self) -> None:
        if self._refresh_handle is not None:
            self._refresh_handle.cancel()
        delay = seconds_until(self._config.refresh_time, self.azan.gateway.now(), day_offset=1)
        LOGGER.debug("Next prayer time refresh in %d seconds", delay)
        self._refresh_handle = self.loop.call_later(delay, lambda: self._spawn(self.refresh_prayer_times()))

    def _spawn(self, coro: Awaitable[Any]) -> None:
        self.azan.spawn(coro)

    # -- System tray -----------------------------------------------------
    def _setup_tray_icon(self) -> AlertPresenter:
        if not QtWidgets.QSystemTrayIcon.isSystemTrayAvailable():
            LOGGER.warning("System tray not available on this system")
            return LoggingPresenter()

        icon_path = APP_ROOT / "assets" / "app_icon.ico"
        icon = QtGui.QIcon(str(icon_path)) if icon_path.exists() else self.style().standardIcon(QtWidgets.QStyle.SP_ComputerIcon)

        tray = QtWidgets.QSystemTrayIcon(icon, self)
        menu = QtWidgets.QMenu()

        play_action = menu.addAction("Play Azan")
        play_action.triggered.connect(lambda: self._spawn(self.azan.play_azan()))  # type: ignore

        stop_action = menu.addAction("Stop Azan")
        stop_action.triggered.connect(lambda: self._spawn(self.azan.stop_azan()))  # type: ignore

        menu.addSeparator()
        refresh_action = menu.addAction("Refresh Prayer Times")
        refresh_action.triggered.connect(lambda: self._spawn(self.refresh_prayer_times()))  # type: ignore

        reload_audio_action = menu.addAction("Reload Azan Audio")
        reload_audio_action.triggered.connect(lambda: self._spawn(self.azan.refresh_azan_audio_url()))  # type: ignore

        reload_settings_action = menu.addAction("Reload Settings")
        reload_settings_action.triggered.connect(lambda: self._spawn(self.reload_config()))  # type: ignore

        self.tray_azan_action = menu.addAction("Azan Alerts")
        self.tray_azan_action.setCheckable(True)
        self.tray_azan_action.setChecked(self._config.azan_enabled)
        self.tray_azan_action.toggled.connect(lambda checked: self._spawn(self.set_azan_enabled(checked)))  # type: ignore

        menu.addSeparator()
        quit_action = menu.addAction("Quit")
        quit_action.triggered.connect(self.quit)  # type: ignore

        tray.setContextMenu(menu)
        tray.setToolTip("Azan Notifier")
        tray.show()

        self.tray_icon = tray
        self.tray_menu = menu
        return TrayAlertPresenter(tray, parent=self)

    def _update_tooltip(self) -> None:
        prayer_day = self.current_prayer_day
        if prayer_day is None:
            return
        next_slot = prayer_day.next_prayer(datetime.now(self.azan.gateway.timezone))
        if next_slot is None:
            self._set_tooltip(f"{prayer_day.location.city}: no prayers left today")
        else:
            self._set_tooltip(f"{prayer_day.location.city}: next {next_slot.name} at {next_slot.time}")

    def _set_tooltip(self, text: str) -> None:
        if self.tray_icon:
            self.tray_icon.setToolTip(text)

    def _prompt_notification_permission(self) -> bool:
        answer = QtWidgets.QMessageBox.question(
            None,
            "Azan Notifier",
            "Allow prayer time notifications?",
            QtWidgets.QMessageBox.Yes | QtWidgets.QMessageBox.No,
        )
        return answer == QtWidgets.QMessageBox.Yes

    def _save_config(self) -> None:
        save_config(CONFIG_PATH, self._config)

    def _cleanup(self) -> None:
        if self._refresh_handle is not None:
            self._refresh_handle.cancel()
        self._pump.stop()
        self.loop.run_until_complete(self.azan.shutdown())
        self.loop.close()
        if self.tray_icon:
            self.tray_icon.hide()


def main() -> int:
    config = load_config(CONFIG_PATH)
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.DEBUG),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    app = AzanApp(sys.argv, config)
    return app.exec()


if __name__ == "__main__":
    sys.exit(main())
