from __future__ import annotations

import asyncio
import logging
import signal
from contextlib import AsyncExitStack, asynccontextmanager
from typing import AsyncIterator

import uvicorn
from fastapi import FastAPI

from .core.config import Settings, settings
from .core.log import configure_logging

from .api.routes import router as metrics_router
import heater_bridge.api.routes as routes_module

from .domain.controller import HeaterController
from .domain.interfaces import ReadingSource, Switch
from .drivers.switch_sim import SimulatedSwitch
from .drivers.switch_wemo import WemoSwitch
from .services.ambient_weather import AmbientWeatherClient, AmbientWeatherPoller, AmbientWeatherRealtime
from .services.bridge import HeaterBridge
from .services.discovery import SwitchResolver, discover_switch
from .services.metrics import HeaterMetrics
from .services.mqtt_source import MqttReadingSource, parse_broker_address


logger = logging.getLogger(__name__)


def build_resolver(cfg: Settings) -> SwitchResolver:
    if cfg.actuator_mode.lower() == "sim":
        async def _sim() -> Switch:
            return SimulatedSwitch()
        return SwitchResolver(_sim)

    async def _wemo() -> Switch:
        switch = await discover_switch(cfg.heater_serial, timeout=cfg.discovery_timeout_seconds)
        try:
            switch.watch_state_changes()
        except Exception:
            logger.warning("Could not subscribe to %s state events", switch.name, exc_info=True)
        return switch

    return SwitchResolver(_wemo)


def build_sources(cfg: Settings, bridge: HeaterBridge) -> list[ReadingSource]:
    """Every reading source that is enabled and has the settings it needs."""
    sources: list[ReadingSource] = []
    have_ambient_keys = bool(cfg.ambient_weather_api_key and cfg.ambient_weather_application_key)

    if cfg.poll_enabled:
        if have_ambient_keys and cfg.ambient_weather_mac_address:
            client = AmbientWeatherClient(
                api_key=cfg.ambient_weather_api_key,
                application_key=cfg.ambient_weather_application_key,
                base_url=cfg.ambient_weather_base_url,
                timeout=cfg.ambient_weather_timeout_seconds,
            )
            sources.append(AmbientWeatherPoller(
                client,
                cfg.ambient_weather_mac_address,
                bridge.handle_reading,
                interval_seconds=cfg.poll_seconds,
            ))
        else:
            logger.warning("Ambient Weather polling enabled but keys or MAC address missing, skipping")

    if cfg.realtime_enabled:
        if have_ambient_keys:
            sources.append(AmbientWeatherRealtime(
                api_key=cfg.ambient_weather_api_key,
                application_key=cfg.ambient_weather_application_key,
                on_reading=bridge.handle_reading,
                url=cfg.ambient_weather_realtime_url,
            ))
        else:
            logger.warning("Ambient Weather realtime enabled but keys missing, skipping")

    if cfg.mqtt_enabled:
        if cfg.mqtt_host and cfg.mqtt_topic:
            sources.append(MqttReadingSource(
                broker=parse_broker_address(cfg.mqtt_host),
                topic=cfg.mqtt_topic,
                on_reading=bridge.handle_reading,
                username=cfg.mqtt_username,
                password=cfg.mqtt_password,
            ))
        else:
            logger.warning("MQTT enabled but host or topic missing, skipping")

    return sources


def build_bridge(cfg: Settings, metrics: HeaterMetrics | None = None) -> HeaterBridge:
    if cfg.metrics_enabled and metrics is None:
        metrics = HeaterMetrics(cfg.desired_temp)
    return HeaterBridge(
        controller=HeaterController(cfg.desired_temp),
        resolver=build_resolver(cfg),
        metrics=metrics if cfg.metrics_enabled else None,
    )


# --- Singletons ---
metrics = HeaterMetrics(settings.desired_temp)
bridge = build_bridge(settings, metrics)


def get_metrics() -> HeaterMetrics:
    return metrics


@asynccontextmanager
async def bridge_lifecycle(
    cfg: Settings | None = None,
    sources: list[ReadingSource] | None = None,
) -> AsyncIterator[HeaterBridge]:
    """Run discovery and the reading sources; yields the bridge they feed.

    Without ``cfg`` the process-wide singletons are used, otherwise a fresh
    bridge is built from ``cfg``.
    """
    active = bridge if cfg is None else build_bridge(cfg)
    cfg = cfg or settings
    logger.info("Starting %s (setpoint=%.1f°F actuator=%s)", cfg.app_name, cfg.desired_temp, cfg.actuator_mode)

    if sources is None:
        sources = build_sources(cfg, active)

    async with AsyncExitStack() as stack:
        await active.resolver.start()
        stack.push_async_callback(_release_switch, active.resolver)

        for source in sources:
            await source.start()
            stack.push_async_callback(source.stop)
            logger.info("Started reading source %s", source.name)

        yield active
        logger.info("Stopping %d reading source(s)", len(sources))

    logger.info("Shutdown complete")


async def _release_switch(resolver: SwitchResolver) -> None:
    await resolver.stop()
    if resolver.resolved:
        switch = await resolver.get()
        if isinstance(switch, WemoSwitch):
            switch.stop_watching()


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    async with bridge_lifecycle():
        yield


# /metrics is the only route served
app = FastAPI(
    title=settings.app_name,
    lifespan=lifespan,
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
)

# Make the dependency functions in routes resolve to the real ones
app.dependency_overrides[routes_module.get_metrics] = get_metrics

if settings.metrics_enabled:
    app.include_router(metrics_router)


async def run_headless() -> None:
    configure_logging()
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    async with bridge_lifecycle():
        await stop.wait()


def run() -> None:
    if settings.metrics_enabled:
        uvicorn.run(app, host=settings.metrics_host, port=settings.metrics_port, log_config=None)
    else:
        asyncio.run(run_headless())


if __name__ == "__main__":
    run()
