"""
Pod log streaming.

Follows a container's output and forwards each line to the reporting sink.
A Job-level stream waits in the background for the Job's first pod to start
and then follows it; a Pod-level stream opens immediately.
"""

from __future__ import annotations

import threading
from typing import Any, Iterable, Iterator

import structlog
from kubernetes.client.rest import ApiException

from jobwarden.core.errors import WatchAttachError
from jobwarden.models import JOB, POD, PodPhase, ResourceRef
from jobwarden.watchers.base import ListenerHandle

logger = structlog.get_logger()


def iter_lines(chunks: Iterable[bytes | str]) -> Iterator[str]:
    """Split a chunked byte stream into decoded lines."""
    buffer = b""
    for chunk in chunks:
        if isinstance(chunk, str):
            chunk = chunk.encode("utf-8")
        buffer += chunk
        *lines, buffer = buffer.split(b"\n")
        for line in lines:
            yield line.decode("utf-8", errors="replace").rstrip("\r")
    if buffer:
        yield buffer.decode("utf-8", errors="replace").rstrip("\r")


def container_started(pod: Any) -> bool:
    status = pod.status
    if status is None:
        return False
    if status.phase and status.phase != PodPhase.PENDING.value:
        return True
    for cs in status.container_statuses or []:
        if cs.state is not None and (cs.state.running or cs.state.terminated):
            return True
    return False


class LogHandle(ListenerHandle):
    kind = "log"


class LogStreamer:
    """Attaches background log streams to Jobs and Pods."""

    def __init__(
        self,
        client: Any,
        sink: Any,
        *,
        poll_interval: float = 1.0,
        close_timeout: float = 5.0,
    ) -> None:
        self._client = client
        self._sink = sink
        self._poll_interval = poll_interval
        self._close_timeout = close_timeout

    def attach(
        self,
        ref: ResourceRef,
        severity: int,
        prefix: str | None = None,
        tail_lines: int | None = None,
    ) -> LogHandle:
        handle = LogHandle(ref, self._close_timeout)

        if ref.kind == POD:
            response = self._open(ref, tail_lines)
            handle.set_response(response)
            target = self._pump
            args: tuple[Any, ...] = (handle, response, severity, prefix)
        elif ref.kind == JOB:
            try:
                self._client.list_job_pods(ref)
            except ApiException as e:
                raise WatchAttachError(
                    f"Unable to stream logs for Job '{ref.name}': {e.reason}",
                    details={"status": e.status, "namespace": ref.namespace},
                ) from e
            target = self._follow_job
            args = (handle, severity, prefix, tail_lines)
        else:
            raise ValueError(f"Unsupported resource kind: {ref.kind}")

        thread = threading.Thread(
            target=target,
            args=args,
            name=f"logs-{ref.kind.lower()}-{ref.name}",
            daemon=True,
        )
        handle.start(thread)
        logger.debug("log_stream_attached", ref=str(ref), tail_lines=tail_lines)
        return handle

    def _open(self, pod: ResourceRef, tail_lines: int | None) -> Any:
        try:
            return self._client.open_pod_log(pod, tail_lines=tail_lines)
        except ApiException as e:
            raise WatchAttachError(
                f"Unable to stream logs for Pod '{pod.name}': {e.reason}",
                details={"status": e.status, "namespace": pod.namespace},
            ) from e

    def _follow_job(
        self,
        handle: LogHandle,
        severity: int,
        prefix: str | None,
        tail_lines: int | None,
    ) -> None:
        job = handle.ref
        while not handle.stopping:
            try:
                pods = [p for p in self._client.list_job_pods(job) if container_started(p)]
                if pods:
                    pod = ResourceRef.of(POD, pods[0])
                    response = self._client.open_pod_log(pod, tail_lines=tail_lines)
                    if handle.set_response(response):
                        self._pump(handle, response, severity, prefix)
                    return
            except ApiException as e:
                # Container still creating, retry until closed
                logger.debug("job_log_not_ready", job=job.name, status=e.status)
            except Exception as e:
                if not handle.stopping:
                    logger.warning("job_log_failed", job=job.name, error=str(e))
                return
            if handle.sleep(self._poll_interval):
                return

    def _pump(self, handle: LogHandle, response: Any, severity: int, prefix: str | None) -> None:
        try:
            for line in iter_lines(response.stream(amt=None, decode_content=False)):
                self._sink.write(severity, prefix, line)
        except Exception as e:
            # Closing the response from another thread interrupts the read
            if not handle.stopping:
                logger.warning("log_stream_failed", ref=str(handle.ref), error=str(e))
