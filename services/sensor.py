"""Probe and board temperature readers."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import datetime, timezone
from typing import Callable, Optional

from hardware.base import ProbeBus, ThermalZone
from models.errors import SensorError, SensorErrorKind
from models.records import MAX_PROBE_CELSIUS, MIN_PROBE_CELSIUS, TemperatureReading

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_w1_payload(raw: str) -> float:
    """Return degrees Celsius from w1_slave text, validating the CRC verdict."""
    lines = [line.strip() for line in raw.strip().splitlines() if line.strip()]
    if len(lines) < 2:
        raise SensorError(SensorErrorKind.parse, "unexpected data format")
    if not lines[0].endswith("YES"):
        raise SensorError(SensorErrorKind.checksum, "probe reported a CRC mismatch")

    _, marker, value = lines[1].rpartition("t=")
    if not marker:
        raise SensorError(SensorErrorKind.parse, "temperature value not found")
    try:
        millidegrees = int(value)
    except ValueError as exc:
        raise SensorError(
            SensorErrorKind.parse, f"failed to parse temperature {value!r}"
        ) from exc
    return millidegrees / 1000.0


class TemperatureSensor:
    """Reads and validates the enclosure probe, bounding each bus read by a timeout."""

    def __init__(self, bus: ProbeBus, timeout: float, clock: Clock = _utcnow) -> None:
        self.bus = bus
        self.timeout = timeout
        self._clock = clock
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="probe")
        self._pending: Optional[Future[str]] = None

    def read(self) -> TemperatureReading:
        raw = self._read_raw()
        celsius = parse_w1_payload(raw)
        if not MIN_PROBE_CELSIUS <= celsius <= MAX_PROBE_CELSIUS:
            raise SensorError(
                SensorErrorKind.out_of_range, f"{celsius:.3f}°C outside probe range"
            )
        return TemperatureReading(
            probe_id=self.bus.device_id,
            celsius=celsius,
            timestamp=self._clock(),
            valid=True,
        )

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    def _read_raw(self) -> str:
        if self._pending is not None and not self._pending.done():
            # A previous read is still stuck on the bus; do not queue behind it.
            raise SensorError(SensorErrorKind.timeout, "previous bus read still pending")

        future = self._executor.submit(self.bus.read_raw)
        self._pending = future
        try:
            return future.result(timeout=self.timeout)
        except FutureTimeoutError as exc:
            raise SensorError(
                SensorErrorKind.timeout, f"bus read exceeded {self.timeout:.1f}s"
            ) from exc
        except OSError as exc:
            raise SensorError(SensorErrorKind.io, str(exc)) from exc
        except SensorError:
            raise
        except Exception as exc:
            raise SensorError(SensorErrorKind.io, f"{type(exc).__name__}: {exc}") from exc


class CpuTemperatureSensor:

    def __init__(self, zone: ThermalZone) -> None:
        self.zone = zone

    def read(self) -> float:
        return self.zone.read_millidegrees() / 1000.0
