"""Deterministic in-memory stand-ins for the board capabilities."""

from __future__ import annotations

from collections import deque
from threading import Lock
from typing import Deque, List, Optional, Union

from hardware.base import EdgeCallback
from models.errors import ActuatorError, SensorError, SensorErrorKind


def format_w1_payload(celsius: float, crc_ok: bool = True) -> str:
    """Render the two-line w1_slave text a DS18B20 would produce."""
    millidegrees = int(round(celsius * 1000))
    verdict = "YES" if crc_ok else "NO"
    return (
        f"50 05 4b 46 7f ff 0c 10 1c : crc=1c {verdict}\n"
        f"50 05 4b 46 7f ff 0c 10 1c t={millidegrees}\n"
    )


ScriptedRead = Union[str, float, Exception]


class MockProbeBus:
    """Replays scripted reads; the last entry repeats once the script runs out."""

    def __init__(self, device_id: str = "28-00000mock01", script: Optional[List[ScriptedRead]] = None) -> None:
        self._device_id = device_id
        self._script: Deque[ScriptedRead] = deque(script or [])
        self._last: Optional[ScriptedRead] = None
        self._lock = Lock()
        self.reads = 0

    @property
    def device_id(self) -> str:
        return self._device_id

    def push(self, *entries: ScriptedRead) -> None:
        with self._lock:
            self._script.extend(entries)

    def read_raw(self) -> str:
        with self._lock:
            self.reads += 1
            if self._script:
                self._last = self._script.popleft()
            entry = self._last
        if entry is None:
            raise SensorError(SensorErrorKind.not_found, "mock probe has no scripted reads")
        if isinstance(entry, Exception):
            raise entry
        if isinstance(entry, str):
            return entry
        return format_w1_payload(entry)


class MockThermalZone:

    def __init__(self, celsius: Optional[float] = 45.0) -> None:
        self.celsius = celsius

    def read_millidegrees(self) -> int:
        if self.celsius is None:
            raise SensorError(SensorErrorKind.io, "mock thermal zone unavailable")
        return int(round(self.celsius * 1000))


class MockPwm:
    """Records every duty cycle written; can be told to fail."""

    def __init__(self) -> None:
        self.writes: List[int] = []
        self.fail_with: Optional[str] = None

    @property
    def duty_cycle(self) -> Optional[int]:
        return self.writes[-1] if self.writes else None

    def set_duty_cycle(self, percent: int) -> None:
        if self.fail_with is not None:
            raise ActuatorError(self.fail_with)
        self.writes.append(percent)


class MockEdgeSource:

    def __init__(self) -> None:
        self._callbacks: List[EdgeCallback] = []

    def register(self, callback: EdgeCallback) -> None:
        self._callbacks.append(callback)

    def emit(self, *ticks: int) -> None:
        for tick in ticks:
            for callback in self._callbacks:
                callback(tick)


class MockBoard:

    def __init__(self) -> None:
        self._pwm = MockPwm()
        self._tachometer = MockEdgeSource()
        self.closed = False

    @property
    def pwm(self) -> MockPwm:
        return self._pwm

    @property
    def tachometer(self) -> MockEdgeSource:
        return self._tachometer

    def close(self) -> None:
        self.closed = True
