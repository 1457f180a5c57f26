from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Optional

from ..core.timeutil import now_utc
from ..domain.controller import HeaterController
from ..domain.models import ControlDecision, Reading
from .discovery import DiscoveryError, SwitchResolver
from .metrics import HeaterMetrics

logger = logging.getLogger(__name__)


@dataclass
class LiveState:
    last_reading: Optional[Reading] = None
    last_decision: Optional[str] = None
    last_reason: Optional[str] = None
    commands_sent: int = 0


class HeaterBridge:
    """Routes every reading, whatever its source, to the heater switch."""

    def __init__(
        self,
        controller: HeaterController,
        resolver: SwitchResolver,
        metrics: Optional[HeaterMetrics] = None,
    ) -> None:
        self._controller = controller
        self._resolver = resolver
        self._metrics = metrics
        self.live = LiveState()

    @property
    def controller(self) -> HeaterController:
        return self._controller

    @property
    def resolver(self) -> SwitchResolver:
        return self._resolver

    @property
    def metrics(self) -> Optional[HeaterMetrics]:
        return self._metrics

    async def handle_reading(self, reading: Reading) -> Optional[ControlDecision]:
        try:
            if reading.received_utc is None:
                reading = Reading(
                    source=reading.source,
                    observed_at=reading.observed_at,
                    temperature=reading.temperature,
                    received_utc=now_utc(),
                )
            self.live.last_reading = reading

            decision = self._controller.decide(reading)
            self.live.last_decision = decision.action
            self.live.last_reason = decision.reason

            if self._metrics is not None:
                self._metrics.record(decision)

            # Waits here while discovery is still pending
            try:
                switch = await self._resolver.get()
            except DiscoveryError as e:
                logger.warning("No heater switch available, skipping %s command: %s", decision.action, e)
                return decision

            await switch.set_state(decision.heater_on, decision.reason)
            self.live.commands_sent += 1
            return decision

        except Exception as e:
            logger.exception("Failed to handle reading from %s: %s", reading.source, e)
            return None
