"""HTTP route definitions for the status API."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status

from app.schemas import (
    FanStatus,
    HealthResponse,
    ProbeStatus,
    StatusResponse,
    TachometerStatus,
    TelemetryStatus,
)
from services.orchestrator import Orchestrator

router = APIRouter()


def get_orchestrator(request: Request) -> Orchestrator:
    return request.app.state.orchestrator


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck(orchestrator: Orchestrator = Depends(get_orchestrator)) -> HealthResponse:
    fatal = orchestrator.fatal_error
    if fatal is not None:
        return HealthResponse(status="fault", detail=str(fatal))
    return HealthResponse(status="ok")


@router.get(
    "/status",
    response_model=StatusResponse,
    summary="Current fan band, latest readings and telemetry backlog.",
)
async def get_status(orchestrator: Orchestrator = Depends(get_orchestrator)) -> StatusResponse:
    snapshot = orchestrator.snapshot()
    reading = snapshot.last_reading
    rpm = snapshot.last_rpm
    return StatusResponse(
        running=snapshot.running,
        fan=FanStatus(
            band=snapshot.fan.band,
            duty_cycle=snapshot.fan.duty_cycle,
            last_transition_at=snapshot.fan.last_transition_at,
        ),
        probe=(
            ProbeStatus(probe_id=reading.probe_id, celsius=reading.celsius, timestamp=reading.timestamp)
            if reading is not None
            else None
        ),
        tachometer=(
            TachometerStatus(
                rpm=rpm.rpm,
                pulses=rpm.pulses,
                window_seconds=rpm.window_seconds,
                timestamp=rpm.timestamp,
            )
            if rpm is not None
            else None
        ),
        telemetry=TelemetryStatus(
            queue_depth=snapshot.queue.depth,
            enqueued=snapshot.queue.enqueued,
            dropped=snapshot.queue.dropped,
            consecutive_failures=snapshot.consecutive_flush_failures,
        ),
        fatal_error=snapshot.fatal_error,
    )
