from __future__ import annotations

from heater_bridge.domain.controller import HeaterController
from heater_bridge.domain.models import Reading


def make_reading(temperature: float, source: str = "mqtt") -> Reading:
    return Reading(source=source, observed_at="2024-01-05 06:30:00", temperature=temperature)


def test_at_setpoint_turns_heater_off() -> None:
    controller = HeaterController(68)

    decision = controller.decide(make_reading(68.0))

    assert decision.action == "OFF"
    assert not decision.heater_on
    assert "at or above" in decision.reason


def test_just_below_setpoint_turns_heater_on() -> None:
    controller = HeaterController(68)

    decision = controller.decide(make_reading(67.9))

    assert decision.action == "ON"
    assert decision.heater_on
    assert "below" in decision.reason


def test_every_reading_produces_a_decision() -> None:
    controller = HeaterController(70.5)

    actions = [controller.decide(make_reading(t)).action for t in (69.0, 69.0, 71.2, 70.5, 60.0)]

    assert actions == ["ON", "ON", "OFF", "OFF", "ON"]


def test_controller_remembers_last_decision() -> None:
    controller = HeaterController(68)
    reading = make_reading(72.3, source="poll")

    decision = controller.decide(reading)

    assert controller.state.last_reading is reading
    assert controller.state.last_decision is decision
    assert decision.setpoint == 68.0
    assert decision.observed_at == "2024-01-05 06:30:00"
