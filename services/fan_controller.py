"""Hysteresis control of the cabinet fan."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Dict

from hardware.base import PwmChannel
from models.records import FanBand, FanState, TemperatureReading
from settings import BandThresholds, ControlSettings

logger = logging.getLogger(__name__)

CRITICAL_DUTY = 100

_BANDS = (FanBand.cold, FanBand.normal, FanBand.hot, FanBand.critical)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FanController:
    """Maps probe temperature onto a control band and drives the PWM channel.

    Every band above ``cold`` is entered once the temperature reaches its entry
    threshold and left only once it falls below its lower exit threshold, so a
    temperature wandering inside that gap never changes the band.
    """

    def __init__(
        self,
        settings: ControlSettings,
        pwm: PwmChannel,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._thresholds: Dict[FanBand, BandThresholds] = {
            FanBand.normal: settings.normal,
            FanBand.hot: settings.hot,
            FanBand.critical: settings.critical,
        }
        self._duties: Dict[FanBand, int] = {
            FanBand.cold: settings.cold_duty,
            FanBand.normal: settings.normal_duty,
            FanBand.hot: settings.hot_duty,
            FanBand.critical: CRITICAL_DUTY,
        }
        self._validate()
        self._pwm = pwm
        self._clock = clock
        self._state = FanState(band=FanBand.cold, duty_cycle=None, last_transition_at=clock())

    @property
    def state(self) -> FanState:
        return self._state

    def duty_for(self, band: FanBand) -> int:
        return self._duties[band]

    def update(self, reading: TemperatureReading) -> FanState:
        """Apply a valid reading and return the resulting state."""
        if not reading.valid:
            raise ValueError("FanController only accepts valid readings.")
        target = self.next_band(self._state.band, reading.celsius)
        return self._apply(target, reason="temperature", temperature=reading.celsius)

    def fail_safe(self, reason: str) -> FanState:
        """Force the critical band when no usable reading exists."""
        logger.error(
            "No usable temperature reading, forcing fan to full speed: %s",
            reason,
            extra={"component": "fan_controller", "band": FanBand.critical.value},
        )
        return self._apply(FanBand.critical, reason=reason, temperature=None)

    def next_band(self, current: FanBand, celsius: float) -> FanBand:
        for band in reversed(_BANDS[current.rank + 1:]):
            if celsius >= self._thresholds[band].entry:
                return band

        band = current
        while band is not FanBand.cold and celsius < self._thresholds[band].exit:
            band = _BANDS[band.rank - 1]
        return band

    def _apply(self, band: FanBand, reason: str, temperature: float | None) -> FanState:
        previous = self._state
        duty = self._duties[band]

        if duty != previous.duty_cycle:
            self._pwm.set_duty_cycle(duty)

        if band is previous.band and duty == previous.duty_cycle:
            return previous

        transitioned_at = self._clock() if band is not previous.band else previous.last_transition_at
        self._state = FanState(band=band, duty_cycle=duty, last_transition_at=transitioned_at)
        if band is not previous.band:
            logger.info(
                "Fan band %s -> %s (%s)",
                previous.band.value,
                band.value,
                reason,
                extra={
                    "component": "fan_controller",
                    "temperature_c": None if temperature is None else round(temperature, 2),
                    "band": band.value,
                    "duty_cycle": duty,
                },
            )
        return self._state

    def _validate(self) -> None:
        ordered = [self._thresholds[band] for band in _BANDS[1:]]
        for band, thresholds in zip(_BANDS[1:], ordered):
            if thresholds.exit >= thresholds.entry:
                raise ValueError(
                    f"{band.value} exit threshold must be below its entry threshold"
                )
        for lower, upper in zip(ordered, ordered[1:]):
            if upper.entry <= lower.entry or upper.exit <= lower.exit:
                raise ValueError("band thresholds must increase from normal to critical")
        for band, duty in self._duties.items():
            if not 0 <= duty <= 100:
                raise ValueError(f"{band.value} duty cycle must be within 0..100")
