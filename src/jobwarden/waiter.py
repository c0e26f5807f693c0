"""
Condition waiting against eventually consistent cluster state.

`wait_for` polls a fetch function until a predicate holds or the budget
runs out. A fetch returning None means the resource is not visible yet;
that is retried, never treated as an error.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable

import structlog
from tenacity import AsyncRetrying, RetryCallState, RetryError, retry_if_result, stop_after_delay

from jobwarden.core.errors import WaitTimeoutError
from jobwarden.models import JobPhase, PodPhase

logger = structlog.get_logger()

Fetch = Callable[[], Awaitable[Any]]
Predicate = Callable[[Any], bool]

_MIN_FETCH_BUDGET = 0.05


async def wait_for(
    fetch: Fetch,
    predicate: Predicate,
    timeout: float,
    *,
    interval: float = 1.0,
    description: str = "condition",
) -> Any:
    """
    Wait until `predicate(await fetch())` is true.

    Args:
        fetch: Returns the current state, or None when not found
        predicate: Applied to every non-None state
        timeout: Budget in seconds for the whole wait
        interval: Delay between polls
        description: Used in logs and in the timeout error

    Returns:
        The first state satisfying the predicate

    Raises:
        WaitTimeoutError: Budget exhausted; carries the last observed state
    """
    deadline = time.monotonic() + timeout
    last_state: Any = None

    def satisfied(state: Any) -> bool:
        return state is not None and predicate(state)

    def wait_interval(retry_state: RetryCallState) -> float:
        return max(0.0, min(interval, deadline - time.monotonic()))

    async def fetch_once() -> Any:
        nonlocal last_state
        remaining = max(deadline - time.monotonic(), _MIN_FETCH_BUDGET)
        try:
            state = await asyncio.wait_for(fetch(), timeout=remaining)
        except asyncio.TimeoutError:
            raise WaitTimeoutError(description, timeout, last_state) from None
        last_state = state
        return state

    retrying = AsyncRetrying(
        stop=stop_after_delay(timeout),
        wait=wait_interval,
        retry=retry_if_result(lambda state: not satisfied(state)),
        reraise=True,
    )

    logger.debug("wait_started", condition=description, timeout=timeout)
    try:
        state = await retrying(fetch_once)
    except RetryError:
        logger.debug("wait_timed_out", condition=description, timeout=timeout)
        raise WaitTimeoutError(description, timeout, last_state) from None

    logger.debug("wait_resolved", condition=description)
    return state


# === Predicates ===


def pod_exists(pod: Any) -> bool:
    return pod is not None


def pod_phase(pod: Any) -> str | None:
    return pod.status.phase if pod.status is not None else None


def pod_left_pending(pod: Any) -> bool:
    return pod_phase(pod) in (
        PodPhase.RUNNING.value,
        PodPhase.SUCCEEDED.value,
        PodPhase.FAILED.value,
    )


def job_phase(job: Any) -> JobPhase:
    """Derive a coarse phase from the Job's terminal conditions."""
    status = job.status
    for condition in (status.conditions if status is not None else None) or []:
        if condition.status != "True":
            continue
        if condition.type == JobPhase.COMPLETE.value:
            return JobPhase.COMPLETE
        if condition.type == JobPhase.FAILED.value:
            return JobPhase.FAILED
    return JobPhase.ACTIVE


def job_finished(job: Any) -> bool:
    return job_phase(job) is not JobPhase.ACTIVE
