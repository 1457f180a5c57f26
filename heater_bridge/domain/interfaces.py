from __future__ import annotations
from typing import Protocol, runtime_checkable


@runtime_checkable
class Switch(Protocol):
    actuator_id: str

    async def get_state(self) -> bool:
        ...

    async def set_state(self, on: bool, reason: str) -> None:
        ...


@runtime_checkable
class ReadingSource(Protocol):
    name: str

    async def start(self) -> None:
        ...

    async def stop(self) -> None:
        ...
