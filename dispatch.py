"""Start Adhan playback when an Azan alert fires or is tapped."""
from __future__ import annotations

import logging
from typing import Callable, List

from notifications import AlertEvent, AlertPayload, NotificationGateway, SubscriptionToken

LOGGER = logging.getLogger(__name__)


class AlertDispatchListener:
    """Subscribe to the gateway once and forward Azan alerts to *on_azan*.

    Installing twice would play the Adhan twice for one alert, so the listener
    keeps its subscription tokens and refuses a second install.
    """

    def __init__(self, gateway: NotificationGateway, on_azan: Callable[[AlertPayload], None]) -> None:
        self._gateway = gateway
        self._on_azan = on_azan
        self._tokens: List[SubscriptionToken] = []

    @property
    def installed(self) -> bool:
        return bool(self._tokens)

    def install(self) -> bool:
        if self._tokens:
            LOGGER.debug("Alert dispatch listener already installed")
            return False
        LOGGER.info("Setting up notification listener")
        self._tokens = [
            self._gateway.subscribe(AlertEvent.FIRED, self._handle_fired),
            self._gateway.subscribe(AlertEvent.TAPPED, self._handle_tapped),
        ]
        return True

    def uninstall(self) -> None:
        for token in self._tokens:
            self._gateway.unsubscribe(token)
        self._tokens = []

    def _handle_fired(self, payload: AlertPayload) -> None:
        LOGGER.debug("Alert received: %s", payload)
        self._dispatch(payload)

    def _handle_tapped(self, payload: AlertPayload) -> None:
        LOGGER.debug("Alert tapped: %s", payload)
        self._dispatch(payload)

    def _dispatch(self, payload: AlertPayload) -> None:
        if not payload or not payload.get("is_azan_alert"):
            return
        LOGGER.info("Playing Adhan for prayer: %s", payload.get("prayer_name"))
        self._on_azan(payload)
