from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from threading import Lock
from typing import Deque, Iterable, List

from models.records import MetricSample

logger = logging.getLogger(__name__)


@dataclass
class QueueStats:
    enqueued: int = 0
    dropped: int = 0
    depth: int = 0


class MetricsQueue:
    """Bounded FIFO of telemetry samples that sheds its oldest entries first."""

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive.")
        self.capacity = capacity
        self._items: Deque[MetricSample] = deque()
        self._lock = Lock()
        self._enqueued = 0
        self._dropped = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def put(self, sample: MetricSample) -> bool:
        """Append ``sample``; return False when an older sample had to be dropped."""
        with self._lock:
            self._items.append(sample)
            self._enqueued += 1
            dropped = self._trim()
        if dropped:
            logger.debug(
                "Metrics queue full, dropped oldest sample",
                extra={"component": "metrics_queue", "dropped": dropped},
            )
        return not dropped

    def take_batch(self, max_items: int) -> List[MetricSample]:
        with self._lock:
            count = min(max_items, len(self._items))
            return [self._items.popleft() for _ in range(count)]

    def requeue_front(self, batch: Iterable[MetricSample]) -> None:
        """Put an undelivered batch back at the head, preserving its order."""
        with self._lock:
            self._items.extendleft(reversed(list(batch)))
            dropped = self._trim()
        if dropped:
            logger.debug(
                "Metrics queue full after requeue, dropped oldest samples",
                extra={"component": "metrics_queue", "dropped": dropped},
            )

    def stats(self) -> QueueStats:
        with self._lock:
            return QueueStats(
                enqueued=self._enqueued,
                dropped=self._dropped,
                depth=len(self._items),
            )

    def _trim(self) -> int:
        dropped = 0
        while len(self._items) > self.capacity:
            self._items.popleft()
            dropped += 1
        self._dropped += dropped
        return dropped
