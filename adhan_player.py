"""Audio playback for the Adhan with at most one live handle."""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional, Protocol, Set

LOGGER = logging.getLogger(__name__)


class PlaybackHandle(Protocol):
    async def pause(self) -> None: ...

    async def unload(self) -> None: ...


class PlaybackBackend(Protocol):
    async def load(
        self,
        url: str,
        volume: float,
        on_finished: Callable[[PlaybackHandle], None],
    ) -> PlaybackHandle:
        """Load *url* and start playing it; call *on_finished* when it ends naturally."""
        ...


class AdhanPlayer:
    """Own the single Adhan playback handle and guarantee it gets cleaned up."""

    def __init__(self, backend: PlaybackBackend, volume: float = 1.0) -> None:
        self._backend = backend
        self._volume = volume
        self._handle: Optional[PlaybackHandle] = None
        self._lock = asyncio.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._cleanup_tasks: Set[asyncio.Task] = set()

    @property
    def is_playing(self) -> bool:
        return self._handle is not None

    async def play(self, source_url: Optional[str]) -> bool:
        """Start playing *source_url*; return ``True`` once playback has started.

        Returns ``False`` without touching the backend when there is no source, and
        when loading fails. Either way the caller should fall back to the system
        alert sound.
        """
        self._loop = asyncio.get_running_loop()
        async with self._lock:
            await self._release()

            if not source_url or not source_url.strip():
                LOGGER.info("No Adhan audio source available; skipping playback")
                return False

            try:
                handle = await self._backend.load(source_url, self._volume, self._on_finished)
            except Exception:
                LOGGER.exception("Failed to load Adhan audio from %s", source_url)
                return False

            self._handle = handle
            LOGGER.info("Adhan playback started from %s", source_url)
            return True

    async def stop(self) -> None:
        """Stop Adhan playback if it is currently running."""
        async with self._lock:
            if self._handle is None:
                return
            LOGGER.debug("Stopping active Adhan playback")
            await self._release()

    async def drain(self) -> None:
        """Wait for unloads triggered by natural playback completion."""
        while self._cleanup_tasks:
            await asyncio.gather(*list(self._cleanup_tasks), return_exceptions=True)

    async def close(self) -> None:
        await self.stop()
        await self.drain()

    async def _release(self) -> None:
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            await handle.pause()
            await handle.unload()
        except Exception:
            LOGGER.warning("Error while stopping previous Adhan playback", exc_info=True)

    def _on_finished(self, handle: PlaybackHandle) -> None:
        if handle is not self._handle:
            # already released by stop() or a newer play()
            return
        LOGGER.info("Adhan playback finished")
        self._handle = None

        loop = self._loop or asyncio.get_running_loop()
        task = loop.create_task(self._unload(handle))
        self._cleanup_tasks.add(task)
        task.add_done_callback(self._cleanup_tasks.discard)

    @staticmethod
    async def _unload(handle: PlaybackHandle) -> None:
        try:
            await handle.unload()
        except Exception:
            LOGGER.warning("Error while unloading finished Adhan playback", exc_info=True)
