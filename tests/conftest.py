from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Iterator, List

import pytest

from settings import (
    BandThresholds,
    ControlSettings,
    HardwareSettings,
    MetricsSettings,
    SensorSettings,
    Settings,
    TachometerSettings,
    get_settings,
)

METRICS_URL = "https://influx.example.test/api/v1/push/influx/write"


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def control_settings() -> ControlSettings:
    return ControlSettings(
        normal=BandThresholds(entry=10.0, exit=5.0),
        hot=BandThresholds(entry=25.0, exit=20.0),
        critical=BandThresholds(entry=35.0, exit=30.0),
        cold_duty=0,
        normal_duty=40,
        hot_duty=75,
        poll_interval=0.01,
    )


@pytest.fixture()
def metrics_settings() -> MetricsSettings:
    return MetricsSettings(
        url=METRICS_URL,
        username="12345",
        password="secret-token",
        flush_interval=0.01,
        queue_capacity=50,
        batch_size=10,
        request_timeout=1.0,
        backoff_base=1.0,
        backoff_max=8.0,
        max_failures=5,
        location="kitchen",
    )


@pytest.fixture()
def settings(control_settings: ControlSettings, metrics_settings: MetricsSettings) -> Settings:
    return Settings(
        control=control_settings,
        sensor=SensorSettings(
            w1_devices_path="/nonexistent/w1",
            cpu_temp_path="/nonexistent/thermal",
            retries=3,
            retry_delay=0.0,
            timeout=1.0,
            stale_after=30.0,
        ),
        tachometer=TachometerSettings(window=0.01, pulses_per_revolution=2, debounce_us=1000),
        metrics=metrics_settings,
        hardware=HardwareSettings(pwm_gpio=18, tach_gpio=17, pwm_frequency=25_000),
        log_level="DEBUG",
        status_host="127.0.0.1",
        status_port=None,
    )


@pytest.fixture()
def clear_settings_cache() -> Iterator[None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def with_sensor(settings: Settings, **changes) -> Settings:
    return replace(settings, sensor=replace(settings.sensor, **changes))


def ticks(start: int, step: int, count: int) -> List[int]:
    return [(start + step * index) % (1 << 32) for index in range(count)]
