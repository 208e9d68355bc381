"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Optional

METRIC_CPU_TEMP = "fan_controller_cpu_temp"
METRIC_PROBE_TEMP = "fan_controller_temp"
METRIC_RPM = "fan_controller_rpm"
METRIC_NAMES = frozenset({METRIC_CPU_TEMP, METRIC_PROBE_TEMP, METRIC_RPM})

MIN_PROBE_CELSIUS = -55.0
MAX_PROBE_CELSIUS = 125.0


class FanBand(str, Enum):
    """Control bands, ordered by increasing target duty cycle."""

    cold = "cold"
    normal = "normal"
    hot = "hot"
    critical = "critical"

    @property
    def rank(self) -> int:
        return _BAND_ORDER.index(self)


_BAND_ORDER = (FanBand.cold, FanBand.normal, FanBand.hot, FanBand.critical)


@dataclass(frozen=True, slots=True)
class TemperatureReading:
    """A single probe reading."""

    probe_id: str
    celsius: float
    timestamp: datetime
    valid: bool = True


@dataclass(frozen=True, slots=True)
class FanState:
    """Snapshot of the controller's band and the last duty cycle written."""

    band: FanBand
    duty_cycle: Optional[int]
    last_transition_at: datetime


@dataclass(frozen=True, slots=True)
class RpmSample:
    pulses: int
    window_seconds: float
    rpm: float
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class MetricSample:
    """One telemetry point awaiting delivery."""

    name: str
    value: float
    timestamp: datetime
    tags: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.name not in METRIC_NAMES:
            raise ValueError(f"Unknown metric name {self.name!r}.")
