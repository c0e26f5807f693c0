"""Result types for lifecycle phases."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from jobwarden.models import RunState

T = TypeVar("T")


@dataclass(frozen=True)
class PhaseResult(Generic[T]):
    """Tagged outcome of one phase: a value, or the error that ended it."""

    state: RunState
    value: T | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, state: RunState, value: Any = None) -> PhaseResult[Any]:
        return cls(state=state, value=value)

    @classmethod
    def failure(cls, state: RunState, error: BaseException) -> PhaseResult[Any]:
        return cls(state=state, error=error)

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]
