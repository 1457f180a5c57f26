from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

import pywemo

from ..domain.interfaces import Switch
from ..drivers.switch_wemo import WemoSwitch

logger = logging.getLogger(__name__)


class DiscoveryError(RuntimeError):
    """The heater switch could not be found on the network."""


async def discover_switch(serial: Optional[str], timeout: float = 10.0) -> WemoSwitch:
    """Broadcast for Wemo devices and return the one matching ``serial``.

    Raises DiscoveryError when discovery fails or no device matches. There is
    no retry.
    """
    if not serial:
        raise DiscoveryError("No heater serial number configured")

    loop = asyncio.get_running_loop()
    try:
        devices: list[Any] = await asyncio.wait_for(
            loop.run_in_executor(None, pywemo.discover_devices),
            timeout=timeout,
        )
    except asyncio.TimeoutError as e:
        raise DiscoveryError(f"Wemo discovery timed out after {timeout}s") from e
    except Exception as e:
        raise DiscoveryError(f"Wemo discovery failed: {e}") from e

    logger.info("Wemo discovery found %d device(s)", len(devices))
    for device in devices:
        if str(getattr(device, "serial_number", "")) == serial:
            logger.info("Found the %s switch.", device.name)
            return WemoSwitch(device)

    raise DiscoveryError(f"Can't find the Wemo switch with serial {serial}")


class SwitchResolver:
    """One-time asynchronous resolution of the heater switch.

    ``get()`` can be awaited before discovery has finished; callers simply
    wait. After a failed discovery every ``get()`` raises DiscoveryError.
    """

    def __init__(self, discover: Callable[[], Awaitable[Switch]]) -> None:
        self._discover = discover
        self._future: Optional[asyncio.Future] = None
        self._task: Optional[asyncio.Task] = None

    def _ensure_future(self) -> asyncio.Future:
        if self._future is None:
            self._future = asyncio.get_running_loop().create_future()
        return self._future

    @property
    def resolved(self) -> bool:
        return self._future is not None and self._future.done() and self._future.exception() is None

    async def start(self) -> None:
        self._ensure_future()
        self._task = asyncio.create_task(self._run(), name="switch_discovery")

    async def stop(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None

    async def _run(self) -> None:
        future = self._ensure_future()
        try:
            switch = await self._discover()
        except asyncio.CancelledError:
            if not future.done():
                future.set_exception(DiscoveryError("Discovery cancelled"))
                future.exception()  # mark retrieved
            raise
        except Exception as e:
            logger.error("FAILURE FINDING HEATER SWITCH: %s", e)
            err = e if isinstance(e, DiscoveryError) else DiscoveryError(str(e))
            future.set_exception(err)
            future.exception()  # mark retrieved, consumers re-raise on get()
            return
        future.set_result(switch)

    async def get(self) -> Switch:
        # shield so a cancelled consumer does not cancel the shared future
        return await asyncio.shield(self._ensure_future())
