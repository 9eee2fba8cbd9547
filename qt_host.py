"""Qt adapters: media playback, tray alerts and the asyncio loop pump."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, Optional

try:  # Prefer PyQt5 bindings, fall back to Qt for Python variants
    from PyQt5 import QtCore, QtMultimedia, QtWidgets  # type: ignore
except Exception:  # pragma: no cover - fallback path
    try:
        from PySide2 import QtCore, QtMultimedia, QtWidgets  # type: ignore
    except Exception:
        from PySide6 import QtCore, QtMultimedia, QtWidgets  # type: ignore

from notifications import AlertHandler, AlertPayload

LOGGER = logging.getLogger(__name__)

try:  # Compatibility aliases for signals/slots
    Signal = QtCore.pyqtSignal  # type: ignore[attr-defined]
    Slot = QtCore.pyqtSlot  # type: ignore[attr-defined]
except AttributeError:  # pragma: no cover - PySide compatibility
    Signal = QtCore.Signal  # type: ignore[attr-defined]
    Slot = QtCore.Slot  # type: ignore[attr-defined]

ALERT_DISPLAY_MS = 10_000
PLAYBACK_START_TIMEOUT = 10.0


class PlaybackError(RuntimeError):
    """The media backend could not start the requested clip."""


def _to_qurl(source: str) -> "QtCore.QUrl":
    url = QtCore.QUrl(source)
    if url.scheme() in ("", "file") and not source.startswith("file:"):
        return QtCore.QUrl.fromLocalFile(source)
    return url


def _media_status(name: str) -> Any:
    player_cls = QtMultimedia.QMediaPlayer
    status_enum = getattr(player_cls, "MediaStatus", None)
    return getattr(player_cls, name, None) or getattr(status_enum, name, None)


class QtPlaybackHandle(QtCore.QObject):
    """One loaded Adhan clip backed by its own QMediaPlayer."""

    def __init__(
        self,
        player: Any,
        on_finished: Callable[["QtPlaybackHandle"], None],
        parent: Optional[QtCore.QObject] = None,
    ) -> None:
        super().__init__(parent)
        self._player = player
        self._on_finished = on_finished
        self._audio_output = None
        self._was_playing = False
        self._released = False
        self._started: Optional[asyncio.Future] = None

        state_signal = getattr(player, "playbackStateChanged", None) or player.stateChanged
        state_signal.connect(self._on_state_changed)  # type: ignore
        if hasattr(player, "mediaStatusChanged"):
            player.mediaStatusChanged.connect(self._on_media_status)  # type: ignore
        if hasattr(player, "errorOccurred"):
            player.errorOccurred.connect(self._on_error)  # type: ignore
        elif hasattr(player, "error"):
            player.error.connect(self._on_error)  # type: ignore

    def start(self, source: str, volume: float) -> asyncio.Future:
        """Begin playback; the returned future resolves once the backend confirms it."""
        self._started = asyncio.get_running_loop().create_future()
        url = _to_qurl(source)
        if hasattr(self._player, "setSource"):
            # Qt6-style API
            if hasattr(QtMultimedia, "QAudioOutput") and hasattr(self._player, "setAudioOutput"):
                self._audio_output = QtMultimedia.QAudioOutput(self)
                self._audio_output.setVolume(volume)
                self._player.setAudioOutput(self._audio_output)
            elif hasattr(self._player, "setVolume"):
                self._player.setVolume(int(volume * 100))
            self._player.setSource(url)
        else:
            # Qt5 API using QMediaContent
            self._player.setMedia(QtMultimedia.QMediaContent(url))  # type: ignore[attr-defined]
            self._player.setVolume(int(volume * 100))

        LOGGER.debug("Playing Adhan audio via Qt multimedia: %s", url.toString())
        self._player.play()
        return self._started

    async def pause(self) -> None:
        if not self._released:
            self._player.pause()

    async def unload(self) -> None:
        if self._released:
            return
        self._released = True
        self._player.stop()
        if hasattr(self._player, "setSource"):
            self._player.setSource(QtCore.QUrl())
        elif hasattr(self._player, "setMedia"):
            self._player.setMedia(QtMultimedia.QMediaContent())  # type: ignore[attr-defined]
        if hasattr(self._player, "deleteLater"):
            self._player.deleteLater()
        self.deleteLater()

    def _confirm(self) -> None:
        if self._started is not None and not self._started.done():
            self._started.set_result(None)

    def _fail(self, reason: str) -> bool:
        """Fail a pending start; return ``False`` when playback was already confirmed."""
        if self._started is None or self._started.done():
            return False
        self._started.set_exception(PlaybackError(reason))
        return True

    def _on_state_changed(self, state: int) -> None:
        playing_state = QtMultimedia.QMediaPlayer.PlayingState
        stopped_state = QtMultimedia.QMediaPlayer.StoppedState

        if state == playing_state:
            self._was_playing = True
            self._confirm()
        elif state == stopped_state and self._was_playing and not self._released:
            self._was_playing = False
            self._on_finished(self)

    def _on_media_status(self, status: int) -> None:
        if status in (_media_status("LoadedMedia"), _media_status("BufferedMedia")):
            self._confirm()
        elif status == _media_status("InvalidMedia"):
            LOGGER.error("Adhan audio could not be decoded")
            self._fail("invalid media")

    def _on_error(self, *error: object) -> None:
        if error and hasattr(QtMultimedia.QMediaPlayer, "NoError") and error[0] == QtMultimedia.QMediaPlayer.NoError:
            return
        reason = getattr(self._player, "errorString", lambda: "")() or (str(error[-1]) if error else "unknown")
        LOGGER.error("Adhan playback error: %s", reason)
        if self._fail(reason):
            return
        if not self._released:
            self._on_finished(self)


class QtPlaybackBackend:
    """Create a fresh QMediaPlayer for every Adhan playback."""

    def __init__(
        self,
        parent: Optional[QtCore.QObject] = None,
        player_factory: Optional[Callable[[], Any]] = None,
        start_timeout: float = PLAYBACK_START_TIMEOUT,
    ) -> None:
        self._parent = parent
        self._player_factory = player_factory or (lambda: QtMultimedia.QMediaPlayer(self._parent))
        self._start_timeout = start_timeout

    async def load(
        self,
        url: str,
        volume: float,
        on_finished: Callable[[QtPlaybackHandle], None],
    ) -> QtPlaybackHandle:
        """Start *url* and return its handle once Qt reports playback.

        Raises :class:`PlaybackError` when the player reports an error or invalid
        media, or stays silent for longer than the start timeout.
        """
        handle = QtPlaybackHandle(self._player_factory(), on_finished, self._parent)
        started = handle.start(url, volume)
        try:
            await asyncio.wait_for(started, self._start_timeout)
        except asyncio.TimeoutError:
            await handle.unload()
            raise PlaybackError(f"playback did not start within {self._start_timeout:g}s") from None
        except PlaybackError:
            await handle.unload()
            raise
        return handle


class TrayAlertPresenter(QtCore.QObject):
    """Show alerts as tray balloon messages and report clicks back."""

    def __init__(self, tray: Any, parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self._tray = tray
        self._tap_handler: Optional[AlertHandler] = None
        self._last_tag: Dict[str, Any] = {}
        tray.messageClicked.connect(self._on_message_clicked)  # type: ignore

    def show(self, title: str, body: str, sound: bool, tag: AlertPayload) -> None:
        if tag:
            # an untagged follow-up keeps the previous alert's payload for clicks
            self._last_tag = dict(tag)
        self._tray.showMessage(title, body, QtWidgets.QSystemTrayIcon.Information, ALERT_DISPLAY_MS)
        if sound:
            QtWidgets.QApplication.beep()

    def on_tap(self, handler: AlertHandler) -> None:
        self._tap_handler = handler

    def _on_message_clicked(self) -> None:
        LOGGER.debug("Tray alert clicked")
        if self._tap_handler is not None:
            self._tap_handler(dict(self._last_tag))


class EventLoopPump(QtCore.QObject):
    """Step an asyncio loop from a Qt timer so both share the GUI thread."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        interval_ms: int = 20,
        parent: Optional[QtCore.QObject] = None,
    ) -> None:
        super().__init__(parent)
        self._loop = loop
        self._timer = QtCore.QTimer(self)
        self._timer.setInterval(interval_ms)
        self._timer.timeout.connect(self.step)  # type: ignore

    def start(self) -> None:
        self._timer.start()

    def stop(self) -> None:
        self._timer.stop()

    @Slot()
    def step(self) -> None:
        if self._loop.is_running() or self._loop.is_closed():
            # re-entered from a nested Qt event loop such as a modal dialog
            return
        self._loop.call_soon(self._loop.stop)
        self._loop.run_forever()
