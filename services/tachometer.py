"""Pulse counting for the fan tachometer line."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from threading import Lock
from typing import Callable, Optional

from hardware.base import EdgeSource
from models.records import RpmSample

logger = logging.getLogger(__name__)

_TICK_WRAP = 1 << 32


class TachometerCounter:
    """Counts debounced falling edges and converts each window into RPM.

    ``on_edge`` runs on the interrupt callback thread while ``sample_window``
    runs on the sampler; both touch the pulse count only under ``_lock``.
    """

    def __init__(
        self,
        pulses_per_revolution: int,
        debounce_us: int = 0,
        monotonic: Callable[[], float] = time.monotonic,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        if pulses_per_revolution <= 0:
            raise ValueError("pulses_per_revolution must be positive.")
        self.pulses_per_revolution = pulses_per_revolution
        self.debounce_us = debounce_us
        self._monotonic = monotonic
        self._clock = clock
        self._lock = Lock()
        self._pulses = 0
        self._rejected = 0
        self._last_tick: Optional[int] = None
        self._window_started = monotonic()

    def attach(self, source: EdgeSource) -> None:
        source.register(self.on_edge)

    def on_edge(self, tick_us: int) -> None:
        with self._lock:
            if self._last_tick is not None:
                gap = (tick_us - self._last_tick) % _TICK_WRAP
                if gap < self.debounce_us:
                    self._rejected += 1
                    return
            self._last_tick = tick_us
            self._pulses += 1

    def sample_window(self) -> RpmSample:
        """Read and reset the pulse count for the window that just elapsed."""
        with self._lock:
            pulses = self._pulses
            rejected = self._rejected
            self._pulses = 0
            self._rejected = 0
            now = self._monotonic()
            window = now - self._window_started
            self._window_started = now

        rpm = self.compute_rpm(pulses, window)
        logger.debug(
            "Sampled tachometer window: %d pulses (%d rejected) over %.3fs",
            pulses,
            rejected,
            window,
            extra={"component": "tachometer", "rpm": round(rpm, 1)},
        )
        return RpmSample(pulses=pulses, window_seconds=window, rpm=rpm, timestamp=self._clock())

    def compute_rpm(self, pulses: int, window_seconds: float) -> float:
        if pulses <= 0 or window_seconds <= 0:
            return 0.0
        return pulses / self.pulses_per_revolution / window_seconds * 60.0
