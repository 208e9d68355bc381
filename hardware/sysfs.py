from __future__ import annotations

from pathlib import Path
from typing import Optional

from models.errors import SensorError, SensorErrorKind

W1_THERMOMETER_FAMILY = "28-"


class W1ProbeBus:
    """DS18B20-style probe exposed by the w1-gpio kernel driver."""

    def __init__(self, devices_path: Path) -> None:
        self.devices_path = devices_path
        self._device_dir: Optional[Path] = None

    @property
    def device_id(self) -> str:
        device_dir = self._device_dir
        return device_dir.name if device_dir is not None else "unknown"

    def read_raw(self) -> str:
        device_dir = self._locate_device()
        try:
            return (device_dir / "w1_slave").read_text(encoding="ascii")
        except UnicodeDecodeError as exc:
            raise SensorError(
                SensorErrorKind.parse, f"{device_dir.name}: undecodable w1_slave payload"
            ) from exc
        except OSError as exc:
            # The probe may have been re-enumerated; look it up again next time.
            self._device_dir = None
            raise SensorError(SensorErrorKind.io, f"{device_dir.name}: {exc}") from exc

    def _locate_device(self) -> Path:
        if self._device_dir is not None:
            return self._device_dir
        try:
            candidates = sorted(
                path
                for path in self.devices_path.iterdir()
                if path.name.startswith(W1_THERMOMETER_FAMILY)
            )
        except OSError as exc:
            raise SensorError(SensorErrorKind.io, str(exc)) from exc
        if not candidates:
            raise SensorError(
                SensorErrorKind.not_found,
                f"no temperature probe under {self.devices_path}",
            )
        self._device_dir = candidates[0]
        return self._device_dir


class SysfsThermalZone:

    def __init__(self, path: Path) -> None:
        self.path = path

    def read_millidegrees(self) -> int:
        try:
            raw = self.path.read_text(encoding="ascii").strip()
        except UnicodeDecodeError as exc:
            raise SensorError(SensorErrorKind.parse, f"undecodable value in {self.path}") from exc
        except OSError as exc:
            raise SensorError(SensorErrorKind.io, str(exc)) from exc
        try:
            return int(raw)
        except ValueError as exc:
            raise SensorError(
                SensorErrorKind.parse, f"unexpected thermal zone value {raw!r}"
            ) from exc
