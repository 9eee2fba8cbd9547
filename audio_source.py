"""Lookup and caching of the uploaded Azan audio file."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

import requests

LOGGER = logging.getLogger(__name__)

AZAN_AUDIO_PATH = "/api/azan-audio"


@dataclass(frozen=True)
class AzanAudioInfo:
    url: Optional[str]
    filename: Optional[str] = None
    uploaded_at: Optional[datetime] = None

    @property
    def has_custom_audio(self) -> bool:
        return bool(self.url and self.url.strip())

    @classmethod
    def empty(cls) -> "AzanAudioInfo":
        return cls(url=None)


class AzanAudioClient:
    """Reads the current Azan audio metadata from the backend."""

    def __init__(self, base_url: str, timeout: int = 10) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    @property
    def url(self) -> str:
        return f"{self.base_url}{AZAN_AUDIO_PATH}"

    def fetch_azan_audio(self) -> Optional[AzanAudioInfo]:
        LOGGER.debug("Requesting Azan audio metadata from %s", self.url)
        response = requests.get(self.url, timeout=self.timeout)
        LOGGER.debug("Azan audio response status: %s", response.status_code)
        response.raise_for_status()

        payload = response.json()
        if not payload:
            return None
        return _parse_audio_payload(payload)


class AudioSourceResolver:
    """Cache the Azan audio metadata for the lifetime of the process.

    The cache is filled on first use and only cleared through :meth:`invalidate`
    (or :meth:`refresh`), which must follow every successful upload so that the
    next playback uses the new file.
    """

    def __init__(self, client: AzanAudioClient) -> None:
        self._client = client
        self._cache: Optional[AzanAudioInfo] = None

    @property
    def cached(self) -> Optional[AzanAudioInfo]:
        return self._cache

    async def lookup(self) -> Optional[AzanAudioInfo]:
        """Return the cached metadata, fetching it if needed; ``None`` on failure."""
        if self._cache is not None:
            return self._cache

        loop = asyncio.get_running_loop()
        try:
            fetched = await loop.run_in_executor(None, self._client.fetch_azan_audio)
        except Exception:
            LOGGER.warning("Failed to fetch Azan audio metadata", exc_info=True)
            return None

        self._cache = fetched or AzanAudioInfo.empty()
        LOGGER.info("Azan audio source resolved: %s", self._cache.url or "<none>")
        return self._cache

    async def resolve(self) -> AzanAudioInfo:
        info = await self.lookup()
        return info if info is not None else AzanAudioInfo.empty()

    def invalidate(self) -> None:
        LOGGER.debug("Invalidating cached Azan audio metadata")
        self._cache = None

    async def refresh(self) -> AzanAudioInfo:
        self.invalidate()
        return await self.resolve()


def _parse_audio_payload(payload: Dict[str, Any]) -> AzanAudioInfo:
    uploaded_raw = payload.get("uploadedAt")
    uploaded_at: Optional[datetime] = None
    if uploaded_raw:
        try:
            uploaded_at = datetime.fromisoformat(str(uploaded_raw).replace("Z", "+00:00"))
        except ValueError:
            LOGGER.warning("Unparseable uploadedAt value: %s", uploaded_raw)

    return AzanAudioInfo(
        url=payload.get("url") or None,
        filename=payload.get("filename"),
        uploaded_at=uploaded_at,
    )
