"""Capability interfaces for the probe bus, thermal zone, PWM channel and tach input."""

from __future__ import annotations

from typing import Callable, Protocol

EdgeCallback = Callable[[int], None]


class ProbeBus(Protocol):
    """A single-wire temperature probe that yields its raw w1_slave text."""

    @property
    def device_id(self) -> str: ...

    def read_raw(self) -> str: ...


class ThermalZone(Protocol):
    def read_millidegrees(self) -> int: ...


class PwmChannel(Protocol):
    def set_duty_cycle(self, percent: int) -> None: ...


class EdgeSource(Protocol):
    """Falling-edge interrupt source; callbacks receive a microsecond tick."""

    def register(self, callback: EdgeCallback) -> None: ...


class Board(Protocol):
    @property
    def pwm(self) -> PwmChannel: ...

    @property
    def tachometer(self) -> EdgeSource: ...

    def close(self) -> None: ...
