from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

import httpx
import socketio
from socketio.exceptions import ConnectionError as SocketIOConnectionError

from ..core.timeutil import from_epoch_ms, now_utc
from ..domain.models import Reading

logger = logging.getLogger(__name__)

ReadingHandler = Callable[[Reading], Awaitable[Any]]


def reading_from_record(record: dict[str, Any], source: str) -> Optional[Reading]:
    """Build a Reading from an Ambient Weather record, using the indoor temperature.

    Returns None when the record carries no ``tempinf`` (station without an
    indoor sensor).
    """
    temp = record.get("tempinf")
    if temp is None:
        return None
    observed_at = record.get("date")
    if observed_at is None and record.get("dateutc") is not None:
        observed_at = from_epoch_ms(record["dateutc"]).isoformat()
    return Reading(
        source=source,
        observed_at=str(observed_at),
        temperature=float(temp),
        received_utc=now_utc(),
    )


def _device_names(data: dict[str, Any]) -> str:
    return ", ".join(d.get("info", {}).get("name", "?") for d in data.get("devices", []))


class AmbientWeatherClient:
    def __init__(
        self,
        api_key: str,
        application_key: str,
        base_url: str = "https://rt.ambientweather.net/v1",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_key = api_key
        self._application_key = application_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def device_data(self, mac_address: str, limit: int = 1) -> list[dict[str, Any]]:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            resp = await client.get(
                f"{self._base_url}/devices/{mac_address}",
                params={
                    "apiKey": self._api_key,
                    "applicationKey": self._application_key,
                    "limit": limit,
                },
            )
            resp.raise_for_status()
            return resp.json()

    async def latest_reading(self, mac_address: str) -> Optional[Reading]:
        records = await self.device_data(mac_address, limit=1)
        if not records:
            return None
        return reading_from_record(records[0], source="poll")


class AmbientWeatherPoller:
    name = "ambient_poll"

    def __init__(
        self,
        client: AmbientWeatherClient,
        mac_address: str,
        on_reading: ReadingHandler,
        interval_seconds: float = 300,
    ) -> None:
        self._client = client
        self._mac_address = mac_address
        self._on_reading = on_reading
        self._interval = interval_seconds

        self._task: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()

    async def start(self) -> None:
        self._stop.clear()
        self._task = asyncio.create_task(self._run(), name="ambient_poll_loop")

    async def stop(self) -> None:
        self._stop.set()
        if self._task:
            await self._task
            self._task = None

    async def poll_once(self) -> Optional[Reading]:
        logger.info("Fetching data...")
        try:
            reading = await self._client.latest_reading(self._mac_address)
        except httpx.HTTPError as e:
            logger.error("Ambient Weather fetch failed: %s", e)
            return None
        if reading is None:
            logger.warning("Ambient Weather returned no indoor reading for %s", self._mac_address)
            return None
        await self._on_reading(reading)
        return reading

    async def _run(self) -> None:
        logger.info("Poll loop started (interval=%ss)", self._interval)

        while not self._stop.is_set():
            try:
                await self.poll_once()
            except Exception as e:
                logger.exception("Poll loop error: %s", e)

            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass

        logger.info("Poll loop stopped")


class AmbientWeatherRealtime:
    """Socket.IO subscription to the Ambient Weather realtime API."""

    name = "ambient_realtime"

    def __init__(
        self,
        api_key: str,
        application_key: str,
        on_reading: ReadingHandler,
        url: str = "https://rt2.ambientweather.net",
        sio: Optional[socketio.AsyncClient] = None,
    ) -> None:
        self._api_key = api_key
        self._application_key = application_key
        self._on_reading = on_reading
        self._url = url.rstrip("/")
        self.sio = sio or socketio.AsyncClient(reconnection=True)
        self._connect_task: Optional[asyncio.Task] = None

        self.sio.on("connect", self._on_connect)
        self.sio.on("disconnect", self._on_disconnect)
        self.sio.on("subscribed", self._on_subscribed)
        self.sio.on("unsubscribed", self._on_unsubscribed)
        self.sio.on("data", self._on_data)

    async def start(self) -> None:
        # connect with retry only returns once connected, so it runs as a task
        self._connect_task = asyncio.create_task(self._connect(), name="ambient_realtime_connect")

    async def stop(self) -> None:
        if self._connect_task and not self._connect_task.done():
            self._connect_task.cancel()
            try:
                await self._connect_task
            except asyncio.CancelledError:
                pass
        self._connect_task = None
        if self.sio.connected:
            await self.sio.disconnect()

    async def _connect(self) -> None:
        try:
            await self.sio.connect(
                f"{self._url}/?api=1&applicationKey={self._application_key}",
                transports=["websocket"],
                retry=True,
            )
        except SocketIOConnectionError as e:
            logger.error("Could not connect to Ambient Weather Realtime API: %s", e)

    async def _on_connect(self) -> None:
        logger.info("Connected to Ambient Weather Realtime API!")
        await self.sio.emit("subscribe", {"apiKeys": [self._api_key]})

    async def _on_disconnect(self, *args: Any) -> None:
        logger.warning("Disconnected from Ambient Weather Realtime API")

    async def _on_subscribed(self, data: dict[str, Any]) -> None:
        logger.info(
            "Subscribed to %d device(s): %s",
            len(data.get("devices", [])),
            _device_names(data),
        )
        logger.info("Listening for temperature updates...")

    async def _on_unsubscribed(self, data: dict[str, Any]) -> None:
        logger.info(
            "Unsubscribed from %d device(s): %s",
            len(data.get("devices", [])),
            _device_names(data),
        )

    async def _on_data(self, data: dict[str, Any]) -> None:
        reading = reading_from_record(data, source="realtime")
        if reading is None:
            logger.warning("Realtime update without indoor temperature: %s", data.get("date"))
            return
        logger.info(
            "Received data: %s - current indoor temperature is: %s°F",
            reading.observed_at,
            reading.temperature,
        )
        await self._on_reading(reading)
