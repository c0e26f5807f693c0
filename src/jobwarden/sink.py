"""
Reporting sink for the operator-facing narrative of a run.

Event watchers and log streamers write from their own threads; the sink
serializes everything through one queue drained by a single consumer
thread, so nothing else needs to be thread safe.
"""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from typing import Any, Callable

import structlog

logger = structlog.get_logger()


@dataclass(frozen=True)
class SinkRecord:
    severity: int
    prefix: str | None
    text: str

    @property
    def line(self) -> str:
        if self.prefix:
            return f"{self.prefix} {self.text}"
        return self.text


_STOP = object()


class ReportingSink:
    """Thread-safe line sink backed by a single-writer queue."""

    def __init__(
        self,
        emit: Callable[[SinkRecord], None] | None = None,
        *,
        run_id: str | None = None,
    ) -> None:
        self._queue: queue.Queue[Any] = queue.Queue()
        self._emit = emit or self._log
        self._log_target = structlog.get_logger("jobwarden.job").bind(run_id=run_id)
        self._consumer: threading.Thread | None = None
        self._closed = False
        self._lock = threading.Lock()

    def _log(self, record: SinkRecord) -> None:
        self._log_target.log(record.severity, record.line)

    def start(self) -> ReportingSink:
        with self._lock:
            if self._consumer is None:
                self._consumer = threading.Thread(
                    target=self._drain, name="jobwarden-sink", daemon=True
                )
                self._consumer.start()
        return self

    def write(self, severity: int, prefix: str | None, text: str) -> None:
        """Queue one line. Safe to call from any thread."""
        # Checked and queued under the lock so no line lands behind _STOP
        with self._lock:
            if not self._closed:
                self._queue.put(SinkRecord(severity, prefix, text))
                return
        logger.debug("sink_write_after_close", text=text)

    def info(self, text: str) -> None:
        self.write(logging.INFO, None, text)

    def warning(self, text: str) -> None:
        self.write(logging.WARNING, None, text)

    def _drain(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                return
            try:
                self._emit(item)
            except Exception as e:
                logger.error("sink_emit_failed", error=str(e))

    def close(self, timeout: float | None = None) -> None:
        """Flush queued lines and stop the consumer. Idempotent."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            consumer = self._consumer
            if consumer is not None:
                self._queue.put(_STOP)
        if consumer is None:
            # Never started: flush inline
            while not self._queue.empty():
                self._emit(self._queue.get_nowait())
            return
        consumer.join(timeout)

    def __enter__(self) -> ReportingSink:
        return self.start()

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
