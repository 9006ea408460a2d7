"""Run-wide usage accounting and monotonic progress reporting."""

import logging
import queue
import threading
from dataclasses import dataclass
from typing import Iterator, Optional, Tuple

from .models import UsageStats

logger = logging.getLogger(__name__)

# Percentage bands of each pipeline stage.
STAGE_SPLIT = (0.0, 10.0)
STAGE_TRANSCRIBE = (10.0, 50.0)
STAGE_MERGE = (50.0, 60.0)
STAGE_TRANSLATE = (60.0, 90.0)
STAGE_CLEANUP = (90.0, 100.0)


class UsageAccumulator:
    """Thread-safe running total of UsageStats. Totals never decrease."""

    def __init__(self):
        self._lock = threading.Lock()
        self._total = UsageStats()

    def add(self, stats: UsageStats) -> None:
        if min(stats.tokens_used, stats.input_tokens, stats.output_tokens, stats.api_calls) < 0:
            raise ValueError(f"Usage counters cannot be negative: {stats}")
        with self._lock:
            self._total = self._total + stats

    def snapshot(self) -> UsageStats:
        with self._lock:
            return UsageStats(**self._total.as_dict())


@dataclass(frozen=True)
class ProgressEvent:
    percent: float
    message: str


_CLOSED = object()


class ProgressReporter:
    """
    Publishes (percent, message) events onto a bounded queue.

    The reported percentage is clamped so consumers never see it go down.
    When the queue is full the oldest pending event is dropped; only the
    latest position matters to a consumer that fell behind.
    """

    def __init__(self, maxsize: int = 256):
        self._queue: "queue.Queue" = queue.Queue(maxsize=maxsize)
        self._lock = threading.Lock()
        self._percent = 0.0
        self._closed = False

    @property
    def percent(self) -> float:
        return self._percent

    def reset(self) -> None:
        """Starts a new run at 0%. Events already queued are kept."""
        with self._lock:
            self._percent = 0.0

    def report(self, percent: float, message: str) -> ProgressEvent:
        with self._lock:
            self._percent = min(100.0, max(self._percent, float(percent)))
            event = ProgressEvent(self._percent, message)
            if not self._closed:
                self._put(event)
        logger.debug(f"Progress {event.percent:.1f}%: {message}")
        return event

    def stage_progress(self, band: Tuple[float, float], done: int, total: int, message: str) -> ProgressEvent:
        """Maps `done` of `total` work units onto a stage band."""
        low, high = band
        fraction = 1.0 if total <= 0 else min(1.0, done / total)
        return self.report(low + (high - low) * fraction, message)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._put(_CLOSED)

    def events(self, timeout: Optional[float] = None) -> Iterator[ProgressEvent]:
        """Yields events until the reporter is closed."""
        while True:
            item = self._queue.get(timeout=timeout)
            if item is _CLOSED:
                return
            yield item

    def _put(self, item) -> None:
        while True:
            try:
                self._queue.put_nowait(item)
                return
            except queue.Full:
                try:
                    self._queue.get_nowait()
                except queue.Empty:
                    pass
