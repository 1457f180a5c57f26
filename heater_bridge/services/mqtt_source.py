from __future__ import annotations

import asyncio
import json
import logging
import math
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import urlsplit

import paho.mqtt.client as mqtt

from ..core.timeutil import now_utc
from ..domain.models import Reading

logger = logging.getLogger(__name__)

ReadingHandler = Callable[[Reading], Awaitable[Any]]


class PayloadError(ValueError):
    """MQTT message is not a usable temperature reading."""


@dataclass(frozen=True)
class BrokerAddress:
    host: str
    port: int
    tls: bool = False
    transport: str = "tcp"


_SCHEMES = {
    "mqtt": (1883, False, "tcp"),
    "tcp": (1883, False, "tcp"),
    "mqtts": (8883, True, "tcp"),
    "ssl": (8883, True, "tcp"),
    "ws": (80, False, "websockets"),
    "wss": (443, True, "websockets"),
}


def parse_broker_address(raw: str) -> BrokerAddress:
    """Accept ``mqtt://host:port`` style URLs or a bare ``host[:port]``."""
    if "://" not in raw:
        raw = f"mqtt://{raw}"
    parts = urlsplit(raw)
    scheme = parts.scheme.lower()
    if scheme not in _SCHEMES:
        raise ValueError(f"Unsupported MQTT scheme: {scheme}")
    default_port, tls, transport = _SCHEMES[scheme]
    if not parts.hostname:
        raise ValueError(f"No host in MQTT address: {raw}")
    return BrokerAddress(
        host=parts.hostname,
        port=parts.port or default_port,
        tls=tls,
        transport=transport,
    )


def parse_payload(payload: bytes) -> Reading:
    """Parse ``{"time": ..., "temperature_F": ...}`` into a Reading."""
    try:
        data = json.loads(payload)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise PayloadError(f"Invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise PayloadError("Payload is not a JSON object")
    if "time" not in data or "temperature_F" not in data:
        raise PayloadError("Payload must contain 'time' and 'temperature_F'")

    raw = data["temperature_F"]
    if isinstance(raw, bool):
        raise PayloadError(f"Non-numeric temperature_F: {raw!r}")
    try:
        temperature = float(raw)
    except (TypeError, ValueError) as e:
        raise PayloadError(f"Non-numeric temperature_F: {raw!r}") from e
    if not math.isfinite(temperature):
        raise PayloadError(f"Non-finite temperature_F: {raw!r}")

    return Reading(
        source="mqtt",
        observed_at=str(data["time"]),
        temperature=temperature,
        received_utc=now_utc(),
    )


class MqttReadingSource:
    """Subscribes to a topic and feeds readings into the asyncio loop.

    paho runs its network loop on its own thread; callbacks hand readings
    back to the event loop with call_soon_threadsafe.
    """

    name = "mqtt"

    def __init__(
        self,
        broker: BrokerAddress,
        topic: str,
        on_reading: ReadingHandler,
        username: Optional[str] = None,
        password: Optional[str] = None,
        client: Optional[mqtt.Client] = None,
    ) -> None:
        self._broker = broker
        self._topic = topic
        self._on_reading = on_reading
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._pending: set[asyncio.Task] = set()

        self.client = client or mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            transport=broker.transport,
        )
        if username:
            self.client.username_pw_set(username, password)
        if broker.tls:
            self.client.tls_set()

        self.client.on_connect = self.on_connect
        self.client.on_connect_fail = self.on_connect_fail
        self.client.on_disconnect = self.on_disconnect
        self.client.on_message = self.on_message

    async def start(self) -> None:
        self._loop = asyncio.get_running_loop()
        self.client.connect_async(self._broker.host, self._broker.port, keepalive=60)
        self.client.loop_start()

    async def stop(self) -> None:
        self.client.disconnect()
        self.client.loop_stop()
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    # --- paho callbacks (network thread) ---

    def on_connect(self, client: mqtt.Client, userdata, flags, reason_code, properties=None):
        if reason_code.is_failure:
            logger.error("Error connecting to the MQTT service: %s", reason_code)
            return
        client.subscribe(self._topic)
        logger.info(
            "Successfully connected to MQTT host: %s and subscribed to topic %s",
            self._broker.host,
            self._topic,
        )

    def on_connect_fail(self, client: mqtt.Client, userdata):
        logger.error("Error connecting to the MQTT service, will retry.")

    def on_disconnect(self, client: mqtt.Client, userdata, flags, reason_code, properties=None):
        if reason_code.is_failure:
            logger.warning("MQTT service was disconnected (%s), attempting to reconnect.", reason_code)
        else:
            logger.info("MQTT service connection was closed.")

    def on_message(self, client: mqtt.Client, userdata, msg: mqtt.MQTTMessage):
        logger.info("Received message from MQTT: %s", msg.payload.decode(errors="replace"))
        try:
            reading = parse_payload(msg.payload)
        except PayloadError as e:
            logger.warning("Dropping malformed MQTT message on %s: %s", msg.topic, e)
            return
        if self._loop is None:
            logger.warning("MQTT message arrived before the source was started, dropping")
            return
        self._loop.call_soon_threadsafe(self._dispatch, reading)

    # --- event loop side ---

    def _dispatch(self, reading: Reading) -> None:
        task = asyncio.ensure_future(self._on_reading(reading))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
