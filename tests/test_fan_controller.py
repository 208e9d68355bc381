from __future__ import annotations

from dataclasses import replace
from typing import List

import pytest

from hardware.mock_board import MockPwm
from models.errors import ActuatorError
from models.records import FanBand, TemperatureReading
from services.fan_controller import FanController
from settings import BandThresholds


def _reading(celsius: float, clock=None) -> TemperatureReading:
    timestamp = clock() if clock else None
    return TemperatureReading(probe_id="28-test", celsius=celsius, timestamp=timestamp)


def _drive(controller: FanController, temperatures: List[float]) -> List[tuple[FanBand, int]]:
    history = []
    for celsius in temperatures:
        state = controller.update(_reading(celsius))
        history.append((state.band, state.duty_cycle))
    return history


def test_starts_cold_without_writing(control_settings, clock) -> None:
    pwm = MockPwm()
    controller = FanController(control_settings, pwm, clock=clock)

    assert controller.state.band is FanBand.cold
    assert controller.state.duty_cycle is None
    assert pwm.writes == []


def test_rising_temperature_walks_cold_normal_hot(control_settings) -> None:
    pwm = MockPwm()
    controller = FanController(control_settings, pwm)

    history = _drive(controller, [5.0, 8.0, 12.0, 18.0, 26.0, 31.0, 34.0])

    bands = [band for band, _ in history]
    assert bands == [
        FanBand.cold,
        FanBand.cold,
        FanBand.normal,
        FanBand.normal,
        FanBand.hot,
        FanBand.hot,
        FanBand.hot,
    ]
    assert pwm.writes == [0, 40, 75]


def test_oscillation_inside_normal_band_never_transitions(control_settings) -> None:
    settings = replace(control_settings, hot=BandThresholds(entry=35.0, exit=20.0), critical=BandThresholds(entry=45.0, exit=40.0))
    pwm = MockPwm()
    controller = FanController(settings, pwm)
    controller.update(_reading(12.0))
    assert controller.state.band is FanBand.normal

    history = _drive(controller, [24.0, 26.0] * 20)

    assert {band for band, _ in history} == {FanBand.normal}
    assert pwm.writes == [40]


@pytest.mark.parametrize(
    ("band", "warmup", "low", "high"),
    [
        (FanBand.normal, [12.0], 5.0, 10.0),
        (FanBand.hot, [26.0], 20.0, 25.0),
        (FanBand.critical, [36.0], 30.0, 35.0),
    ],
)
def test_readings_between_exit_and_entry_hold_the_band(control_settings, band, warmup, low, high) -> None:
    controller = FanController(control_settings, MockPwm())
    _drive(controller, warmup)
    assert controller.state.band is band

    span = high - low
    readings = [low + span * fraction for fraction in (0.01, 0.5, 0.99, 0.25, 0.75, 0.02)]
    history = _drive(controller, readings)

    assert {state for state, _ in history} == {band}


def test_band_below_holds_until_entry_threshold(control_settings) -> None:
    controller = FanController(control_settings, MockPwm())
    _drive(controller, [12.0, 26.0, 19.0])
    assert controller.state.band is FanBand.normal

    _drive(controller, [20.0, 24.9, 21.0])

    assert controller.state.band is FanBand.normal


@pytest.mark.parametrize("start", [[], [12.0], [26.0]])
def test_critical_reading_forces_full_duty_from_any_band(control_settings, start) -> None:
    pwm = MockPwm()
    controller = FanController(control_settings, pwm)
    _drive(controller, start)

    state = controller.update(_reading(35.0))

    assert state.band is FanBand.critical
    assert state.duty_cycle == 100
    assert pwm.duty_cycle == 100


def test_large_drop_retreats_to_lowest_unbreached_band(control_settings) -> None:
    controller = FanController(control_settings, MockPwm())
    _drive(controller, [40.0])

    assert controller.update(_reading(22.0)).band is FanBand.hot
    assert controller.update(_reading(7.0)).band is FanBand.normal
    assert controller.update(_reading(-3.0)).band is FanBand.cold

    _drive(controller, [40.0])
    assert controller.update(_reading(4.0)).band is FanBand.cold


def test_first_reading_rederives_band_from_cold(control_settings) -> None:
    pwm = MockPwm()
    controller = FanController(control_settings, pwm)

    state = controller.update(_reading(28.0))

    assert state.band is FanBand.hot
    assert pwm.writes == [75]


def test_repeated_target_duty_does_not_rewrite_hardware(control_settings) -> None:
    pwm = MockPwm()
    controller = FanController(control_settings, pwm)

    _drive(controller, [12.0, 13.0, 14.0, 12.5])

    assert pwm.writes == [40]


def test_transition_timestamp_only_moves_on_band_change(control_settings, clock) -> None:
    controller = FanController(control_settings, MockPwm(), clock=clock)
    clock.advance(10)
    controller.update(_reading(12.0))
    entered_normal = controller.state.last_transition_at

    clock.advance(10)
    controller.update(_reading(13.0))

    assert entered_normal == clock.now.replace(second=10)
    assert controller.state.last_transition_at == entered_normal


def test_fail_safe_enters_critical(control_settings) -> None:
    pwm = MockPwm()
    controller = FanController(control_settings, pwm)
    controller.update(_reading(12.0))

    state = controller.fail_safe("probe unavailable")

    assert state.band is FanBand.critical
    assert state.duty_cycle == 100
    assert pwm.writes == [40, 100]


def test_actuator_failure_propagates_and_keeps_state(control_settings) -> None:
    pwm = MockPwm()
    controller = FanController(control_settings, pwm)
    controller.update(_reading(12.0))
    pwm.fail_with = "PWM write on GPIO 18 failed"

    with pytest.raises(ActuatorError):
        controller.update(_reading(30.0))

    assert controller.state.band is FanBand.normal
    assert controller.state.duty_cycle == 40


def test_invalid_reading_is_rejected(control_settings) -> None:
    controller = FanController(control_settings, MockPwm())
    reading = TemperatureReading(probe_id="28-test", celsius=20.0, timestamp=None, valid=False)

    with pytest.raises(ValueError):
        controller.update(reading)


@pytest.mark.parametrize(
    "changes",
    [
        {"normal": BandThresholds(entry=10.0, exit=10.0)},
        {"hot": BandThresholds(entry=9.0, exit=4.0)},
        {"critical": BandThresholds(entry=35.0, exit=19.0)},
        {"hot_duty": 120},
    ],
)
def test_inconsistent_settings_are_rejected(control_settings, changes) -> None:
    with pytest.raises(ValueError):
        FanController(replace(control_settings, **changes), MockPwm())
