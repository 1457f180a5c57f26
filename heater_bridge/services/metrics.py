from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Gauge, generate_latest

from ..domain.models import ControlDecision


class HeaterMetrics:
    """Latest temperature, set-point and commanded switch state as gauges.

    Values are overwritten on every decision. The switch gauge is 1 for an
    ON command and 0 for OFF.
    """

    def __init__(self, setpoint: float, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or CollectorRegistry()
        self.temperature = Gauge(
            "heater_bridge_temperature_fahrenheit",
            "Most recently processed indoor temperature (°F)",
            registry=self.registry,
        )
        self.setpoint = Gauge(
            "heater_bridge_setpoint_fahrenheit",
            "Desired temperature (°F)",
            registry=self.registry,
        )
        self.switch_state = Gauge(
            "heater_bridge_switch_state",
            "Last command sent to the heater switch (1=on, 0=off)",
            registry=self.registry,
        )
        self.setpoint.set(setpoint)

    def record(self, decision: ControlDecision) -> None:
        self.temperature.set(decision.temperature)
        self.setpoint.set(decision.setpoint)
        self.switch_state.set(1 if decision.heater_on else 0)

    def render(self) -> tuple[bytes, str]:
        return generate_latest(self.registry), CONTENT_TYPE_LATEST
