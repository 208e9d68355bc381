from __future__ import annotations

from datetime import datetime, timezone

import pytest

from models.records import METRIC_CPU_TEMP, METRIC_PROBE_TEMP, METRIC_RPM, MetricSample
from services.line_protocol import encode_batch, encode_sample, to_unix_nanos

TIMESTAMP = datetime(2024, 1, 1, 12, 0, 0, 123456, tzinfo=timezone.utc)


def test_unix_nanos_keeps_microseconds() -> None:
    assert to_unix_nanos(TIMESTAMP) == 1_704_110_400_123_456_000


def test_encode_sample_sorts_tags() -> None:
    sample = MetricSample(
        name=METRIC_RPM,
        value=1200.0,
        timestamp=TIMESTAMP,
        tags={"location": "kitchen", "fan": "fan1", "duty_cycle": "40", "band": "normal"},
    )

    assert encode_sample(sample) == (
        "fan_controller_rpm,band=normal,duty_cycle=40,fan=fan1,location=kitchen "
        "metric=1200.0 1704110400123456000"
    )


def test_encode_sample_escapes_tag_values() -> None:
    sample = MetricSample(
        name=METRIC_PROBE_TEMP,
        value=-3.5,
        timestamp=TIMESTAMP,
        tags={"location": "walk in, left=1"},
    )

    assert encode_sample(sample).startswith(
        "fan_controller_temp,location=walk\\ in\\,\\ left\\=1 metric=-3.5 "
    )


def test_encode_sample_rejects_nan() -> None:
    sample = MetricSample(name=METRIC_CPU_TEMP, value=float("nan"), timestamp=TIMESTAMP)

    with pytest.raises(ValueError):
        encode_sample(sample)


def test_encode_batch_joins_with_newlines() -> None:
    samples = [
        MetricSample(name=METRIC_PROBE_TEMP, value=4.25, timestamp=TIMESTAMP, tags={"probe": "probe1"}),
        MetricSample(name=METRIC_CPU_TEMP, value=48.0, timestamp=TIMESTAMP, tags={"probe": "cpu"}),
    ]

    lines = encode_batch(samples).split("\n")

    assert lines == [
        "fan_controller_temp,probe=probe1 metric=4.25 1704110400123456000",
        "fan_controller_cpu_temp,probe=cpu metric=48.0 1704110400123456000",
    ]


def test_unknown_metric_names_are_refused() -> None:
    with pytest.raises(ValueError):
        MetricSample(name="fan_controller_duty", value=1.0, timestamp=TIMESTAMP)
