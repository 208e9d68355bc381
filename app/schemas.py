"""Pydantic schemas for the status API."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from models.records import FanBand


class HealthResponse(BaseModel):
    status: str = Field(..., description="'ok' while the fan is under control, 'fault' after a fail-stop.")
    detail: Optional[str] = None


class FanStatus(BaseModel):
    band: FanBand
    duty_cycle: Optional[int] = Field(default=None, ge=0, le=100)
    last_transition_at: datetime


class ProbeStatus(BaseModel):
    probe_id: str
    celsius: float
    timestamp: datetime


class TachometerStatus(BaseModel):
    rpm: float = Field(..., ge=0)
    pulses: int = Field(..., ge=0)
    window_seconds: float
    timestamp: datetime


class TelemetryStatus(BaseModel):
    queue_depth: int = Field(..., ge=0)
    enqueued: int = Field(..., ge=0)
    dropped: int = Field(..., ge=0)
    consecutive_failures: int = Field(..., ge=0)


class StatusResponse(BaseModel):
    """Everything an operator needs to judge the controller at a glance."""

    running: bool
    fan: FanStatus
    probe: Optional[ProbeStatus] = None
    tachometer: Optional[TachometerStatus] = None
    telemetry: TelemetryStatus
    fatal_error: Optional[str] = None
