from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class Reading:
    source: str  # "poll" | "realtime" | "mqtt"
    observed_at: str  # timestamp as reported by the source
    temperature: float  # °F
    received_utc: Optional[datetime] = None


@dataclass(frozen=True)
class ControlDecision:
    action: str  # "ON" | "OFF"
    reason: str
    temperature: float
    setpoint: float
    observed_at: str

    @property
    def heater_on(self) -> bool:
        return self.action == "ON"
