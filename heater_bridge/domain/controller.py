from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Optional
from .models import ControlDecision, Reading

logger = logging.getLogger(__name__)


@dataclass
class ControllerState:
    last_reading: Optional[Reading] = None
    last_decision: Optional[ControlDecision] = None


class HeaterController:
    """Threshold rule: heater off at or above the set-point, on below it.

    Every reading yields a decision; there is no hysteresis or minimum
    switch interval, so the caller re-issues the command each time.
    """

    def __init__(self, setpoint: float) -> None:
        self.setpoint = float(setpoint)
        self.state = ControllerState()

    def decide(self, reading: Reading) -> ControlDecision:
        t = reading.temperature
        if t >= self.setpoint:
            decision = ControlDecision(
                "OFF",
                f"The temperature ({t}°F) is at or above the desired temperature "
                f"({self.setpoint}°F). Weather station timestamp: [{reading.observed_at}].",
                t,
                self.setpoint,
                reading.observed_at,
            )
        else:
            decision = ControlDecision(
                "ON",
                f"The temperature ({t}°F) is below the desired temperature "
                f"({self.setpoint}°F). Weather station timestamp: [{reading.observed_at}].",
                t,
                self.setpoint,
                reading.observed_at,
            )

        self.state.last_reading = reading
        self.state.last_decision = decision
        logger.info("decision: %s (source=%s) - %s", decision.action, reading.source, decision.reason)
        return decision
