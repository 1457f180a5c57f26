from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import pywemo
from pywemo.subscribe import EVENT_TYPE_BINARY_STATE

logger = logging.getLogger(__name__)


class WemoSwitch:
    """Actuator driver for a Belkin Wemo switch, controlled through pywemo.

    pywemo talks UPnP/SOAP synchronously, so every device call is pushed to
    the default executor to keep the event loop free.
    """

    def __init__(self, device: Any) -> None:
        self._device = device
        self._last_known_state: bool = False
        self._registry: Optional[pywemo.SubscriptionRegistry] = None
        self._owns_registry = False

    @property
    def actuator_id(self) -> str:
        return str(self._device.serial_number)

    @property
    def name(self) -> str:
        return str(self._device.name)

    async def get_state(self) -> bool:
        loop = asyncio.get_running_loop()
        try:
            value = await loop.run_in_executor(None, self._device.get_state)
            self._last_known_state = bool(value)
        except Exception:
            logger.warning(
                "Wemo get_state failed, returning last known state: %s",
                self._last_known_state,
                exc_info=True,
            )
        return self._last_known_state

    async def set_state(self, on: bool, reason: str) -> None:
        switch_val = "on" if on else "off"
        loop = asyncio.get_running_loop()
        call = self._device.on if on else self._device.off
        try:
            await loop.run_in_executor(None, call)
            self._last_known_state = on
            logger.info("Wemo %s set_state=%s reason=%s", self.name, switch_val, reason)
        except Exception:
            logger.warning(
                "Wemo %s set_state(%s) failed, reason=%s",
                self.name,
                switch_val,
                reason,
                exc_info=True,
            )

    def watch_state_changes(self, registry: Optional[pywemo.SubscriptionRegistry] = None) -> None:
        """Log every binary state change the device pushes to us."""
        if registry is None:
            registry = pywemo.SubscriptionRegistry()
            registry.start()
            self._owns_registry = True
        registry.register(self._device)
        registry.on(self._device, None, self._on_event)
        self._registry = registry

    def stop_watching(self) -> None:
        if self._registry is not None:
            self._registry.unregister(self._device)
            if self._owns_registry:
                self._registry.stop()
            self._registry = None

    def _on_event(self, device: Any, event_type: str, value: Any) -> None:
        if event_type != EVENT_TYPE_BINARY_STATE:
            return
        state = "off" if str(value) == "0" else "on"
        logger.info("Switch %s is %s", device.name, state)
