"""Wiring and scheduling of the control, sampling and reporting loops."""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from threading import Event
from typing import Callable, List, Optional, Tuple

import httpx

from hardware.base import Board
from hardware.pigpio_board import PigpioBoard
from hardware.sysfs import SysfsThermalZone, W1ProbeBus
from models.errors import ActuatorError, SensorError
from models.records import (
    METRIC_CPU_TEMP,
    METRIC_PROBE_TEMP,
    METRIC_RPM,
    FanState,
    MetricSample,
    RpmSample,
    TemperatureReading,
)
from services.fan_controller import FanController
from services.metrics_queue import MetricsQueue, QueueStats
from services.reporter import MetricsReporter
from services.sensor import CpuTemperatureSensor, TemperatureSensor
from services.tachometer import TachometerCounter
from settings import Settings

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Snapshot:
    fan: FanState
    last_reading: Optional[TemperatureReading]
    last_rpm: Optional[RpmSample]
    queue: QueueStats
    consecutive_flush_failures: int
    running: bool
    fatal_error: Optional[str]


class Orchestrator:
    """Runs the three periodic activities and owns their shared collaborators."""

    def __init__(
        self,
        settings: Settings,
        board: Board,
        sensor: TemperatureSensor,
        cpu_sensor: CpuTemperatureSensor,
        controller: FanController,
        tachometer: TachometerCounter,
        reporter: MetricsReporter,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.settings = settings
        self.board = board
        self.sensor = sensor
        self.cpu_sensor = cpu_sensor
        self.controller = controller
        self.tachometer = tachometer
        self.reporter = reporter
        self._clock = clock
        self._stop_event = Event()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._futures: List[Future[None]] = []
        self._reporter_future: Optional[Future[None]] = None
        self._last_good: Optional[TemperatureReading] = None
        self._last_rpm: Optional[RpmSample] = None
        self._fatal_error: Optional[ActuatorError] = None
        self._stopped = False
        self._tags = {"location": settings.metrics.location}

    @property
    def fatal_error(self) -> Optional[ActuatorError]:
        return self._fatal_error

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    def start(self) -> None:
        if self._executor is not None:
            raise RuntimeError("Orchestrator already started.")
        self.tachometer.attach(self.board.tachometer)
        self._executor = ThreadPoolExecutor(max_workers=3, thread_name_prefix="fanctl")
        loops = (
            ("control", self.poll_temperature_once, lambda: self.settings.control.poll_interval),
            ("tachometer", self.sample_tachometer_once, lambda: self.settings.tachometer.window),
            ("reporter", self._drain_until_stopped, self.reporter.next_delay),
        )
        for name, step, interval in loops:
            self._futures.append(self._executor.submit(self._run_periodic, name, step, interval))
        self._reporter_future = self._futures[-1]
        logger.info("Fan controller started", extra={"component": "orchestrator"})

    def request_stop(self) -> None:
        self._stop_event.set()

    def wait(self, poll: float = 0.5) -> None:
        """Block until a stop has been requested."""
        while not self._stop_event.wait(poll):
            pass

    def stop(self, timeout: Optional[float] = None) -> None:
        """Let each loop finish its iteration, flush what is pending and release hardware."""
        if self._stopped:
            return
        self._stopped = True
        self._stop_event.set()

        push_in_flight = False
        if self._executor is not None:
            _, not_done = wait(self._futures, timeout=timeout)
            if not_done:
                logger.warning(
                    "%d loop(s) still busy at shutdown",
                    len(not_done),
                    extra={"component": "orchestrator"},
                )
            push_in_flight = self._reporter_future in not_done
            self._executor.shutdown(wait=False)

        if push_in_flight:
            # The blocked push still owns the client; it requeues its batch if it fails.
            logger.warning(
                "Metrics push still in flight, skipping final flush",
                extra={"component": "orchestrator", "queue_depth": len(self.reporter.queue)},
            )
        else:
            self._final_flush()

        self.sensor.close()
        self.board.close()
        logger.info("Fan controller stopped", extra={"component": "orchestrator"})

    def poll_temperature_once(self) -> FanState:
        """Read the probe, drive the fan from it and queue the temperature metrics."""
        reading, fresh = self._read_probe()
        if reading is None:
            state = self.controller.fail_safe("probe unavailable")
        else:
            state = self.controller.update(reading)

        if reading is not None and fresh:
            self.reporter.enqueue(
                MetricSample(
                    name=METRIC_PROBE_TEMP,
                    value=reading.celsius,
                    timestamp=reading.timestamp,
                    tags={**self._tags, "probe": "probe1"},
                )
            )

        try:
            cpu_celsius = self.cpu_sensor.read()
        except SensorError as exc:
            logger.warning(
                "Could not read CPU temperature: %s",
                exc.detail,
                extra={"component": "cpu_sensor", "error_kind": exc.kind.value},
            )
        else:
            self.reporter.enqueue(
                MetricSample(
                    name=METRIC_CPU_TEMP,
                    value=cpu_celsius,
                    timestamp=self._clock(),
                    tags={**self._tags, "probe": "cpu"},
                )
            )
        return state

    def sample_tachometer_once(self) -> RpmSample:
        sample = self.tachometer.sample_window()
        self._last_rpm = sample
        fan = self.controller.state
        tags = {**self._tags, "fan": "fan1", "band": fan.band.value}
        if fan.duty_cycle is not None:
            tags["duty_cycle"] = str(fan.duty_cycle)
        self.reporter.enqueue(
            MetricSample(name=METRIC_RPM, value=sample.rpm, timestamp=sample.timestamp, tags=tags)
        )
        return sample

    def snapshot(self) -> Snapshot:
        return Snapshot(
            fan=self.controller.state,
            last_reading=self._last_good,
            last_rpm=self._last_rpm,
            queue=self.reporter.queue.stats(),
            consecutive_flush_failures=self.reporter.consecutive_failures,
            running=self._executor is not None and not self._stop_event.is_set(),
            fatal_error=str(self._fatal_error) if self._fatal_error else None,
        )

    def _read_probe(self) -> Tuple[Optional[TemperatureReading], bool]:
        retries = self.settings.sensor.retries
        last_value = self._last_good.celsius if self._last_good else None
        for attempt in range(1, retries + 1):
            try:
                reading = self.sensor.read()
            except SensorError as exc:
                logger.warning(
                    "Probe read failed: %s",
                    exc.detail,
                    extra={
                        "component": "sensor",
                        "error_kind": exc.kind.value,
                        "attempt": attempt,
                        "last_value": last_value,
                    },
                )
                if attempt < retries and self._stop_event.wait(self.settings.sensor.retry_delay):
                    break
                continue
            self._last_good = reading
            return reading, True

        if self._last_good is not None:
            age = (self._clock() - self._last_good.timestamp).total_seconds()
            if age <= self.settings.sensor.stale_after:
                logger.warning(
                    "Reusing last good probe reading",
                    extra={
                        "component": "sensor",
                        "age_s": round(age, 1),
                        "last_value": self._last_good.celsius,
                    },
                )
                return self._last_good, False
        return None, False

    def _run_periodic(self, name: str, step: Callable[[], object], interval: Callable[[], float]) -> None:
        logger.debug("Starting %s loop", name, extra={"component": name})
        while not self._stop_event.is_set():
            started = time.monotonic()
            try:
                step()
            except ActuatorError as exc:
                self._fail_stop(exc)
                return
            except Exception:
                logger.exception("Unexpected error in %s loop", name, extra={"component": name})
            elapsed = time.monotonic() - started
            self._stop_event.wait(max(0.0, interval() - elapsed))
        logger.debug("Stopped %s loop", name, extra={"component": name})

    def _drain_until_stopped(self) -> bool:
        return self.reporter.drain(should_continue=lambda: not self._stop_event.is_set())

    def _final_flush(self) -> None:
        try:
            delivered = self.reporter.drain()
        except Exception:
            logger.exception("Final metrics flush failed", extra={"component": "orchestrator"})
            delivered = False
        if not delivered:
            logger.warning(
                "Exiting with undelivered metrics",
                extra={"component": "orchestrator", "queue_depth": len(self.reporter.queue)},
            )
        self.reporter.close()

    def _fail_stop(self, exc: ActuatorError) -> None:
        logger.critical(
            "Fan actuator failed, cooling can no longer be guaranteed: %s",
            exc,
            extra={"component": "fan_controller", "duty_cycle": self.controller.state.duty_cycle},
        )
        self._fatal_error = exc
        self._stop_event.set()


def build_orchestrator(
    settings: Settings,
    board: Optional[Board] = None,
    sensor: Optional[TemperatureSensor] = None,
    cpu_sensor: Optional[CpuTemperatureSensor] = None,
    client: Optional[httpx.Client] = None,
) -> Orchestrator:
    """Factory that wires the orchestrator with the Raspberry Pi hardware by default."""
    hardware = settings.hardware
    if board is None:
        board = PigpioBoard(
            pwm_gpio=hardware.pwm_gpio,
            tach_gpio=hardware.tach_gpio,
            pwm_frequency=hardware.pwm_frequency,
        )
    try:
        return _wire(settings, board, sensor, cpu_sensor, client)
    except Exception:
        board.close()
        raise


def _wire(
    settings: Settings,
    board: Board,
    sensor: Optional[TemperatureSensor],
    cpu_sensor: Optional[CpuTemperatureSensor],
    client: Optional[httpx.Client],
) -> Orchestrator:
    if sensor is None:
        sensor = TemperatureSensor(
            W1ProbeBus(Path(settings.sensor.w1_devices_path)),
            timeout=settings.sensor.timeout,
        )
    if cpu_sensor is None:
        cpu_sensor = CpuTemperatureSensor(SysfsThermalZone(Path(settings.sensor.cpu_temp_path)))

    controller = FanController(settings.control, board.pwm)
    tachometer = TachometerCounter(
        pulses_per_revolution=settings.tachometer.pulses_per_revolution,
        debounce_us=settings.tachometer.debounce_us,
    )
    reporter = MetricsReporter(
        settings.metrics,
        queue=MetricsQueue(settings.metrics.queue_capacity),
        client=client,
    )
    return Orchestrator(
        settings=settings,
        board=board,
        sensor=sensor,
        cpu_sensor=cpu_sensor,
        controller=controller,
        tachometer=tachometer,
        reporter=reporter,
        clock=_utcnow,
    )
