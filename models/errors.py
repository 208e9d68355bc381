"""Failure taxonomy for the control and telemetry paths."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class SensorErrorKind(str, Enum):
    timeout = "timeout"
    not_found = "not_found"
    checksum = "checksum"
    parse = "parse"
    out_of_range = "out_of_range"
    io = "io"


class SensorError(Exception):
    """A probe or thermal-zone read that produced no usable value."""

    def __init__(self, kind: SensorErrorKind, detail: str) -> None:
        super().__init__(f"{kind.value}: {detail}")
        self.kind = kind
        self.detail = detail


class ActuatorError(Exception):
    """The PWM channel rejected a write; safe cooling can no longer be guaranteed."""


class NetworkError(Exception):
    """A metrics push failed in transport or was refused by the endpoint."""

    def __init__(self, detail: str, status_code: Optional[int] = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code
