"""Shared lifecycle for background listener handles."""

from __future__ import annotations

import threading
from typing import Any

import structlog

from jobwarden.models import ResourceRef

logger = structlog.get_logger()


def close_response(response: Any) -> None:
    """Close a streaming urllib3 response, unblocking any reader."""
    try:
        response.close()
        response.release_conn()
    except Exception as e:
        logger.debug("response_close_failed", error=str(e))


class ListenerHandle:
    """
    A live subscription served by one background thread.

    `close()` may be called any number of times; only the first call stops
    the listener.
    """

    kind = "listener"

    def __init__(self, ref: ResourceRef, close_timeout: float = 5.0) -> None:
        self.ref = ref
        self._close_timeout = close_timeout
        self._stopping = threading.Event()
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._response: Any = None
        self.closed = False

    @property
    def stopping(self) -> bool:
        return self._stopping.is_set()

    def start(self, thread: threading.Thread) -> None:
        self._thread = thread
        thread.start()

    def sleep(self, seconds: float) -> bool:
        """Sleep unless closed meanwhile. Returns True if closed."""
        return self._stopping.wait(seconds)

    def _stop(self) -> None:
        """Interrupt the blocking read of the listener thread."""
        with self._lock:
            response, self._response = self._response, None
        if response is not None:
            close_response(response)

    def set_response(self, response: Any) -> bool:
        """
        Register the open HTTP response the thread is reading from.

        Returns False, and closes the response, if the handle is already
        closed.
        """
        with self._lock:
            if not self.closed:
                self._response = response
                return True
        close_response(response)
        return False

    def close(self) -> None:
        with self._lock:
            if self.closed:
                return
            self.closed = True
        self._stopping.set()
        self._stop()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(self._close_timeout)
            if thread.is_alive():
                logger.debug("listener_still_draining", kind=self.kind, ref=str(self.ref))

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.ref} closed={self.closed}>"

    def wait_finished(self, timeout: float) -> bool:
        """Wait for the listener to end on its own. Returns True if it did."""
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()
