"""Delivery of telemetry to the remote write endpoint."""

from __future__ import annotations

import logging
import math
from enum import Enum
from threading import Lock
from typing import Callable, List, Optional

import httpx

from models.errors import NetworkError
from models.records import MetricSample
from services.line_protocol import encode_batch
from services.metrics_queue import MetricsQueue
from settings import MetricsSettings

logger = logging.getLogger(__name__)


class EnqueueResult(str, Enum):
    accepted = "accepted"
    displaced_oldest = "displaced_oldest"
    rejected = "rejected"


class MetricsReporter:
    """Batches queued samples into line protocol and pushes them with basic auth.

    A failed push puts its batch back at the head of the queue and lengthens
    the delay before the next attempt. Once ``max_failures`` consecutive
    pushes have failed the batch is abandoned and the delay resets, so an
    unreachable endpoint costs telemetry but never stalls the reporter.
    """

    def __init__(
        self,
        settings: MetricsSettings,
        queue: Optional[MetricsQueue] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.settings = settings
        self.queue = queue if queue is not None else MetricsQueue(settings.queue_capacity)
        self._client = client or httpx.Client(timeout=settings.request_timeout)
        self._auth = httpx.BasicAuth(settings.username, settings.password)
        self._flush_lock = Lock()
        self._consecutive_failures = 0

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    def enqueue(self, sample: MetricSample) -> EnqueueResult:
        """Queue ``sample``; non-finite values are rejected rather than sent."""
        if not math.isfinite(sample.value):
            logger.warning(
                "Discarding non-finite %s sample",
                sample.name,
                extra={"component": "reporter", "last_value": sample.value},
            )
            return EnqueueResult.rejected
        if self.queue.put(sample):
            return EnqueueResult.accepted
        return EnqueueResult.displaced_oldest

    def flush(self) -> bool:
        """Push one batch; return True when nothing is left undelivered from it."""
        with self._flush_lock:
            batch = self.queue.take_batch(self.settings.batch_size)
            if not batch:
                return True

            try:
                self._push(batch)
            except NetworkError as exc:
                self._record_failure(batch, exc)
                return False
            except Exception:
                self.queue.requeue_front(batch)
                raise

            if self._consecutive_failures:
                logger.info(
                    "Metrics endpoint recovered after %d failed attempts",
                    self._consecutive_failures,
                    extra={"component": "reporter", "batch_size": len(batch)},
                )
            self._consecutive_failures = 0
        logger.debug(
            "Published metrics batch",
            extra={"component": "reporter", "batch_size": len(batch)},
        )
        return True

    def drain(self, should_continue: Callable[[], bool] = lambda: True) -> bool:
        """Flush until the queue is empty, a push fails or ``should_continue`` says stop."""
        while len(self.queue):
            if not self.flush():
                return False
            if not should_continue():
                return not len(self.queue)
        return True

    def next_delay(self) -> float:
        if self._consecutive_failures == 0:
            return self.settings.flush_interval
        delay = self.settings.backoff_base * (2 ** (self._consecutive_failures - 1))
        return min(delay, self.settings.backoff_max)

    def close(self) -> None:
        self._client.close()

    def _push(self, batch: List[MetricSample]) -> None:
        body = encode_batch(batch)
        try:
            response = self._client.post(
                self.settings.url,
                content=body.encode("utf-8"),
                auth=self._auth,
                headers={"Content-Type": "text/plain; charset=utf-8"},
                timeout=self.settings.request_timeout,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise NetworkError(
                f"Received status code {exc.response.status_code} from metrics endpoint.",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise NetworkError(f"{type(exc).__name__}: {exc}") from exc

    def _record_failure(self, batch: List[MetricSample], exc: NetworkError) -> None:
        self._consecutive_failures += 1
        extra = {
            "component": "reporter",
            "attempt": self._consecutive_failures,
            "batch_size": len(batch),
            "status_code": exc.status_code,
        }
        if self._consecutive_failures >= self.settings.max_failures:
            logger.error(
                "Giving up on metrics batch after %d consecutive failures: %s",
                self._consecutive_failures,
                exc.detail,
                extra=extra,
            )
            self._consecutive_failures = 0
            return

        self.queue.requeue_front(batch)
        logger.warning(
            "Metrics push failed, retrying later: %s",
            exc.detail,
            extra={**extra, "delay_s": self.next_delay()},
        )
