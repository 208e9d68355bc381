"""Raspberry Pi hardware backed by the pigpio daemon."""

from __future__ import annotations

import logging
from typing import Any, List

import pigpio

from hardware.base import EdgeCallback
from models.errors import ActuatorError

logger = logging.getLogger(__name__)

FULL_DUTY = 100
_PIGPIO_DUTY_SCALE = 10_000


class PigpioPwm:
    """Hardware PWM channel (GPIO 12/13/18/19)."""

    def __init__(self, pi: Any, gpio: int, frequency: int) -> None:
        self._pi = pi
        self.gpio = gpio
        self.frequency = frequency

    def set_duty_cycle(self, percent: int) -> None:
        if not 0 <= percent <= 100:
            raise ActuatorError(f"duty cycle {percent} outside 0..100")
        try:
            self._pi.hardware_PWM(self.gpio, self.frequency, percent * _PIGPIO_DUTY_SCALE)
        except (pigpio.error, OSError) as exc:
            raise ActuatorError(f"PWM write on GPIO {self.gpio} failed: {exc}") from exc


class PigpioTachInput:

    def __init__(self, pi: Any, gpio: int) -> None:
        self._pi = pi
        self.gpio = gpio
        self._callbacks: List[Any] = []
        pi.set_mode(gpio, pigpio.INPUT)
        pi.set_pull_up_down(gpio, pigpio.PUD_UP)

    def register(self, callback: EdgeCallback) -> None:
        def _on_edge(_gpio: int, level: int, tick: int) -> None:
            # level 2 is a watchdog timeout, not an edge.
            if level == 0:
                callback(tick)

        self._callbacks.append(self._pi.callback(self.gpio, pigpio.FALLING_EDGE, _on_edge))

    def cancel(self) -> None:
        while self._callbacks:
            self._callbacks.pop().cancel()


class PigpioBoard:
    """Owns the pigpio connection, the fan PWM channel and the tach input."""

    def __init__(self, pwm_gpio: int, tach_gpio: int, pwm_frequency: int) -> None:
        self._pi = pigpio.pi()
        if not self._pi.connected:
            raise RuntimeError("Could not connect to pigpio daemon. Make sure pigpiod is running.")
        try:
            self._pwm = PigpioPwm(self._pi, pwm_gpio, pwm_frequency)
            self._tachometer = PigpioTachInput(self._pi, tach_gpio)
            # Run flat out until the first reading decides otherwise.
            self._pwm.set_duty_cycle(FULL_DUTY)
        except pigpio.error as exc:
            self._pi.stop()
            raise RuntimeError(f"Could not configure GPIO {tach_gpio}: {exc}") from exc
        except Exception:
            self._pi.stop()
            raise
        self._closed = False
        logger.info(
            "Initialized PWM at %d Hz on GPIO %d, tachometer on GPIO %d",
            pwm_frequency,
            pwm_gpio,
            tach_gpio,
            extra={"component": "board", "duty_cycle": FULL_DUTY},
        )

    @property
    def pwm(self) -> PigpioPwm:
        return self._pwm

    @property
    def tachometer(self) -> PigpioTachInput:
        return self._tachometer

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._tachometer.cancel()
        try:
            # Leave the fan at full speed while nothing supervises it.
            self._pwm.set_duty_cycle(FULL_DUTY)
        except ActuatorError:
            logger.exception("Could not park fan at full speed", extra={"component": "board"})
        finally:
            self._pi.stop()
