"""InfluxDB line protocol encoding."""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Iterable

from models.records import MetricSample

FIELD_KEY = "metric"
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _escape(token: str) -> str:
    return token.replace("\\", "\\\\").replace(",", "\\,").replace("=", "\\=").replace(" ", "\\ ")


def _escape_measurement(token: str) -> str:
    return token.replace("\\", "\\\\").replace(",", "\\,").replace(" ", "\\ ")


def to_unix_nanos(timestamp: datetime) -> int:
    return (timestamp - _EPOCH) // timedelta(microseconds=1) * 1_000


def encode_sample(sample: MetricSample) -> str:
    if not math.isfinite(sample.value):
        raise ValueError(f"{sample.name} value {sample.value!r} is not finite")
    parts = [_escape_measurement(sample.name)]
    for key in sorted(sample.tags):
        value = sample.tags[key]
        if value == "":
            continue
        parts.append(f"{_escape(key)}={_escape(value)}")
    series = ",".join(parts)
    return f"{series} {FIELD_KEY}={float(sample.value)!r} {to_unix_nanos(sample.timestamp)}"


def encode_batch(samples: Iterable[MetricSample]) -> str:
    return "\n".join(encode_sample(sample) for sample in samples)
