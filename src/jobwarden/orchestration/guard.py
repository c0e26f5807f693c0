"""Scoped ownership of listener handles for one lifecycle phase."""

from __future__ import annotations

from typing import Any, Protocol

import structlog

logger = structlog.get_logger()


class Closeable(Protocol):
    def close(self) -> None: ...


class PhaseGuard:
    """
    Stack of handles acquired during a phase.

    `release()` closes them in reverse acquisition order, each exactly once,
    whatever the exit path. A handle failing to close is logged and the
    remaining handles are still released.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._stack: list[Closeable] = []
        self.released: list[Closeable] = []
        self.is_released = False

    def push(self, handle: Closeable) -> Closeable:
        if self.is_released:
            # Late acquisition after release must not leak
            handle.close()
            raise RuntimeError(f"Phase guard '{self.name}' already released")
        self._stack.append(handle)
        return handle

    def __len__(self) -> int:
        return len(self._stack)

    def release(self) -> None:
        if self.is_released:
            return
        self.is_released = True
        while self._stack:
            handle = self._stack.pop()
            try:
                handle.close()
            except Exception as e:
                logger.warning(
                    "handle_release_failed",
                    phase=self.name,
                    handle=repr(handle),
                    error=str(e),
                )
            self.released.append(handle)
        logger.debug("phase_released", phase=self.name, count=len(self.released))

    def __enter__(self) -> PhaseGuard:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.release()
