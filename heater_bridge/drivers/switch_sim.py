from __future__ import annotations
import logging

logger = logging.getLogger(__name__)


class SimulatedSwitch:
    actuator_id = "heater_sim_01"

    def __init__(self) -> None:
        self._state = False
        self.commands: list[bool] = []

    async def get_state(self) -> bool:
        return self._state

    async def set_state(self, on: bool, reason: str) -> None:
        self._state = bool(on)
        self.commands.append(self._state)
        logger.info("HEATER set_state=%s reason=%s", self._state, reason)
