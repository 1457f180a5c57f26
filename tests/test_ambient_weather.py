from __future__ import annotations

import asyncio
from typing import Any

import httpx
from socketio.exceptions import ConnectionError as SocketIOConnectionError

from heater_bridge.domain.models import Reading
from heater_bridge.services.ambient_weather import (
    AmbientWeatherClient,
    AmbientWeatherPoller,
    AmbientWeatherRealtime,
    reading_from_record,
)

MAC = "00:0E:C6:20:0F:7B"
RECORD = {
    "dateutc": 1704436200000,
    "tempinf": 66.9,
    "tempf": 31.1,
    "date": "2024-01-05T06:30:00.000Z",
}


def make_client(handler) -> AmbientWeatherClient:
    return AmbientWeatherClient(
        api_key="api-key",
        application_key="app-key",
        transport=httpx.MockTransport(handler),
    )


class DummySio:
    """Socket.IO stand-in; the first ``fail_attempts`` connection attempts fail."""

    def __init__(self, fail_attempts: int = 0, hang: bool = False) -> None:
        self.handlers: dict[str, Any] = {}
        self.emitted: list[tuple[str, Any]] = []
        self.connected = False
        self.url: str | None = None
        self.fail_attempts = fail_attempts
        self.hang = hang
        self.attempts = 0

    def on(self, event: str, handler) -> None:
        self.handlers[event] = handler

    async def connect(self, url: str, transports=None, retry: bool = False) -> None:
        self.url = url
        if self.hang:
            await asyncio.Event().wait()
        while True:
            self.attempts += 1
            if self.attempts > self.fail_attempts:
                break
            if not retry:
                raise SocketIOConnectionError("Connection refused by the server")
            await asyncio.sleep(0)
        self.connected = True

    async def disconnect(self) -> None:
        self.connected = False

    async def emit(self, event: str, data: Any) -> None:
        self.emitted.append((event, data))


def test_reading_from_record_uses_indoor_temperature() -> None:
    reading = reading_from_record(RECORD, source="poll")

    assert reading is not None
    assert reading.temperature == 66.9
    assert reading.observed_at == "2024-01-05T06:30:00.000Z"


def test_reading_from_record_falls_back_to_dateutc() -> None:
    reading = reading_from_record({"dateutc": 1704436200000, "tempinf": 70}, source="realtime")

    assert reading is not None
    assert reading.observed_at.startswith("2024-01-05T06:30:00")


def test_reading_from_record_without_indoor_sensor() -> None:
    assert reading_from_record({"tempf": 31.1, "date": "x"}, source="poll") is None


def test_latest_reading_requests_one_record() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[RECORD])

    reading = asyncio.run(make_client(handler).latest_reading(MAC))

    assert reading is not None
    assert reading.source == "poll"
    assert reading.temperature == 66.9
    assert seen[0].url.path == f"/v1/devices/{MAC}"
    assert seen[0].url.params["limit"] == "1"
    assert seen[0].url.params["apiKey"] == "api-key"
    assert seen[0].url.params["applicationKey"] == "app-key"


def test_latest_reading_with_no_data() -> None:
    reading = asyncio.run(make_client(lambda request: httpx.Response(200, json=[])).latest_reading(MAC))

    assert reading is None


def test_poll_error_is_logged_and_skipped() -> None:
    received: list[Reading] = []

    async def on_reading(reading: Reading) -> None:
        received.append(reading)

    poller = AmbientWeatherPoller(
        make_client(lambda request: httpx.Response(429, json={"error": "above-user-rate-limit"})),
        MAC,
        on_reading,
    )

    result = asyncio.run(poller.poll_once())

    assert result is None
    assert received == []


def test_poller_fetches_immediately_and_stops() -> None:
    received: list[Reading] = []

    async def scenario() -> None:
        got_one = asyncio.Event()

        async def on_reading(reading: Reading) -> None:
            received.append(reading)
            got_one.set()

        poller = AmbientWeatherPoller(
            make_client(lambda request: httpx.Response(200, json=[RECORD])),
            MAC,
            on_reading,
            interval_seconds=300,
        )
        await poller.start()
        await asyncio.wait_for(got_one.wait(), timeout=5)
        await poller.stop()

    asyncio.run(scenario())

    assert [r.temperature for r in received] == [66.9]


def test_realtime_subscribes_and_forwards_data() -> None:
    sio = DummySio()
    received: list[Reading] = []

    async def on_reading(reading: Reading) -> None:
        received.append(reading)

    realtime = AmbientWeatherRealtime("api-key", "app-key", on_reading, sio=sio)

    async def scenario() -> None:
        await realtime.start()
        await asyncio.sleep(0.01)
        await sio.handlers["connect"]()
        await sio.handlers["subscribed"]({"devices": [{"macAddress": MAC, "info": {"name": "Home"}}]})
        await sio.handlers["data"](RECORD)
        await sio.handlers["data"]({"date": "2024-01-05T06:31:00.000Z", "tempf": 30.0})
        await sio.handlers["unsubscribed"]({"devices": []})
        await realtime.stop()

    asyncio.run(scenario())

    assert sio.url == "https://rt2.ambientweather.net/?api=1&applicationKey=app-key"
    assert sio.emitted == [("subscribe", {"apiKeys": ["api-key"]})]
    assert [(r.source, r.temperature) for r in received] == [("realtime", 66.9)]
    assert sio.connected is False


def test_realtime_keeps_retrying_a_failed_first_connect() -> None:
    sio = DummySio(fail_attempts=2)

    async def on_reading(reading: Reading) -> None:
        pass

    realtime = AmbientWeatherRealtime("api-key", "app-key", on_reading, sio=sio)

    async def scenario() -> bool:
        await realtime.start()
        for _ in range(50):
            if sio.connected:
                break
            await asyncio.sleep(0.01)
        connected = sio.connected
        await realtime.stop()
        return connected

    connected = asyncio.run(scenario())

    assert connected is True
    assert sio.attempts == 3


def test_realtime_start_does_not_wait_for_connection() -> None:
    sio = DummySio(hang=True)

    async def on_reading(reading: Reading) -> None:
        pass

    realtime = AmbientWeatherRealtime("api-key", "app-key", on_reading, sio=sio)

    async def scenario() -> None:
        await asyncio.wait_for(realtime.start(), timeout=1)
        await asyncio.sleep(0.01)
        assert sio.connected is False
        await asyncio.wait_for(realtime.stop(), timeout=1)

    asyncio.run(scenario())
