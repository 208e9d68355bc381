from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_LOG_LEVEL_ENV = "LOG_LEVEL"
_INFLUXDB_URL_ENV = "GRAFANA_API_INFLUXDB_URL"
_USERNAME_ENV = "GRAFANA_API_USERNAME"
_PASSWORD_ENV = "GRAFANA_API_PASSWORD"
_STATUS_HOST_ENV = "STATUS_API_HOST"
_STATUS_PORT_ENV = "STATUS_API_PORT"


@dataclass(frozen=True)
class BandThresholds:
    entry: float
    exit: float


@dataclass(frozen=True)
class ControlSettings:
    normal: BandThresholds
    hot: BandThresholds
    critical: BandThresholds
    cold_duty: int
    normal_duty: int
    hot_duty: int
    poll_interval: float


@dataclass(frozen=True)
class SensorSettings:
    w1_devices_path: str
    cpu_temp_path: str
    retries: int
    retry_delay: float
    timeout: float
    stale_after: float


@dataclass(frozen=True)
class TachometerSettings:
    window: float
    pulses_per_revolution: int
    debounce_us: int


@dataclass(frozen=True)
class MetricsSettings:
    url: str
    username: str
    password: str
    flush_interval: float
    queue_capacity: int
    batch_size: int
    request_timeout: float
    backoff_base: float
    backoff_max: float
    max_failures: int
    location: str


@dataclass(frozen=True)
class HardwareSettings:
    pwm_gpio: int
    tach_gpio: int
    pwm_frequency: int


@dataclass(frozen=True)
class Settings:
    control: ControlSettings
    sensor: SensorSettings
    tachometer: TachometerSettings
    metrics: MetricsSettings
    hardware: HardwareSettings
    log_level: str
    status_host: str
    status_port: Optional[int]


def _raw_env(name: str) -> Optional[str]:
    """Return the stripped value of ``name``, treating blank as unset."""
    value = os.getenv(name)
    if value is None:
        return None
    return value.strip() or None


def _read_str_env(name: str, default: str) -> str:
    return _raw_env(name) or default


def _read_required_env(name: str) -> str:
    value = _raw_env(name)
    if value is None:
        raise RuntimeError(f"{name} must be set")
    return value


def _read_float_env(name: str, default: float, positive: bool = True) -> float:
    candidate = _raw_env(name)
    if candidate is None:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    if positive and parsed <= 0:
        return default
    return parsed


def _read_int_env(name: str, default: int, minimum: int = 1) -> int:
    candidate = _raw_env(name)
    if candidate is None:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed >= minimum else default


def _read_optional_port(name: str) -> Optional[int]:
    port = _read_int_env(name, 0, minimum=1)
    return port if 0 < port < 65536 else None


def _read_log_level(default: str) -> str:
    return (_raw_env(_LOG_LEVEL_ENV) or default).upper()


def _read_band(prefix: str, entry: float, exit: float) -> BandThresholds:
    return BandThresholds(
        entry=_read_float_env(f"ICEMAN_{prefix}_ENTRY_TEMP", entry, positive=False),
        exit=_read_float_env(f"ICEMAN_{prefix}_EXIT_TEMP", exit, positive=False),
    )


@lru_cache
def get_settings() -> Settings:
    control = ControlSettings(
        normal=_read_band("NORMAL", 10.0, 5.0),
        hot=_read_band("HOT", 25.0, 20.0),
        critical=_read_band("CRITICAL", 35.0, 30.0),
        cold_duty=_read_int_env("ICEMAN_COLD_DUTY_CYCLE", 0, minimum=0),
        normal_duty=_read_int_env("ICEMAN_NORMAL_DUTY_CYCLE", 40, minimum=0),
        hot_duty=_read_int_env("ICEMAN_HOT_DUTY_CYCLE", 75, minimum=0),
        poll_interval=_read_float_env("ICEMAN_POLL_INTERVAL", 2.0),
    )
    sensor = SensorSettings(
        w1_devices_path=_read_str_env("ICEMAN_W1_DEVICES_PATH", "/sys/bus/w1/devices"),
        cpu_temp_path=_read_str_env(
            "ICEMAN_CPU_TEMP_PATH", "/sys/class/thermal/thermal_zone0/temp"
        ),
        retries=_read_int_env("ICEMAN_SENSOR_RETRIES", 3),
        retry_delay=_read_float_env("ICEMAN_SENSOR_RETRY_DELAY", 0.25),
        timeout=_read_float_env("ICEMAN_SENSOR_TIMEOUT", 2.0),
        stale_after=_read_float_env("ICEMAN_SENSOR_STALE_AFTER", 30.0),
    )
    tachometer = TachometerSettings(
        window=_read_float_env("ICEMAN_TACH_WINDOW", 5.0),
        pulses_per_revolution=_read_int_env("ICEMAN_PULSES_PER_REVOLUTION", 2),
        debounce_us=_read_int_env("ICEMAN_TACH_DEBOUNCE_US", 1000, minimum=0),
    )
    metrics = MetricsSettings(
        url=_read_required_env(_INFLUXDB_URL_ENV),
        username=_read_required_env(_USERNAME_ENV),
        password=_read_required_env(_PASSWORD_ENV),
        flush_interval=_read_float_env("METRICS_FLUSH_INTERVAL", 10.0),
        queue_capacity=_read_int_env("METRICS_QUEUE_CAPACITY", 500),
        batch_size=_read_int_env("METRICS_BATCH_SIZE", 100),
        request_timeout=_read_float_env("METRICS_REQUEST_TIMEOUT", 5.0),
        backoff_base=_read_float_env("METRICS_BACKOFF_BASE", 1.0),
        backoff_max=_read_float_env("METRICS_BACKOFF_MAX", 60.0),
        max_failures=_read_int_env("METRICS_MAX_FAILURES", 5),
        location=_read_str_env("METRICS_LOCATION", "kitchen"),
    )
    hardware = HardwareSettings(
        pwm_gpio=_read_int_env("ICEMAN_PWM_GPIO", 18, minimum=0),
        tach_gpio=_read_int_env("ICEMAN_TACH_GPIO", 17, minimum=0),
        pwm_frequency=_read_int_env("ICEMAN_PWM_FREQUENCY", 25_000),
    )
    return Settings(
        control=control,
        sensor=sensor,
        tachometer=tachometer,
        metrics=metrics,
        hardware=hardware,
        log_level=_read_log_level("INFO"),
        status_host=_read_str_env(_STATUS_HOST_ENV, "127.0.0.1"),
        status_port=_read_optional_port(_STATUS_PORT_ENV),
    )
