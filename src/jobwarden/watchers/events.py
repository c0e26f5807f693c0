"""
Lifecycle event watcher for Jobs and Pods.

Every ADDED/MODIFIED/DELETED event on the watched resource becomes one line
on the reporting sink, giving an audit trail of what the cluster did.
"""

from __future__ import annotations

import logging
import threading
from functools import wraps
from typing import Any, Callable

import structlog
from kubernetes import watch
from kubernetes.client.rest import ApiException
from urllib3.exceptions import ReadTimeoutError

from jobwarden.core.errors import WatchAttachError
from jobwarden.models import JOB, ResourceRef
from jobwarden.watchers.base import ListenerHandle

logger = structlog.get_logger()

# Watch resource version too old, resume from a fresh list
GONE = 410


class WatchHandle(ListenerHandle):
    kind = "watch"

    def __init__(self, ref: ResourceRef, close_timeout: float = 5.0) -> None:
        super().__init__(ref, close_timeout)
        self.watch = watch.Watch()

    def _stop(self) -> None:
        self.watch.stop()
        # stop() is only noticed after the next event; closing the response
        # also unblocks a silent stream
        super()._stop()

    def tracking(self, list_fn: Callable[..., Any]) -> Callable[..., Any]:
        """Wrap `list_fn` so every watch response it opens is owned by this handle."""

        # Watch reads the item type from the signature or docstring of list_fn
        @wraps(list_fn)
        def open_stream(*args: Any, **kwargs: Any) -> Any:
            response = list_fn(*args, **kwargs)
            self.set_response(response)
            return response

        return open_stream


def _conditions(status: Any) -> str:
    items = []
    for condition in getattr(status, "conditions", None) or []:
        text = f"{condition.type}={condition.status}"
        if condition.reason:
            text += f" ({condition.reason})"
        items.append(text)
    return ", ".join(items)


def format_job_status(status: Any) -> str:
    if status is None:
        return "[]"
    parts = [
        f"active={status.active or 0}",
        f"succeeded={status.succeeded or 0}",
        f"failed={status.failed or 0}",
    ]
    conditions = _conditions(status)
    if conditions:
        parts.append(f"conditions=[{conditions}]")
    return f"[{', '.join(parts)}]"


def _container_state(container_status: Any) -> str | None:
    state = container_status.state
    if state is None:
        return None
    if state.terminated is not None:
        text = f"{container_status.name}: terminated ({state.terminated.reason}, exit code {state.terminated.exit_code})"
        if state.terminated.message:
            text += f" {state.terminated.message}"
        return text
    if state.waiting is not None and state.waiting.reason:
        return f"{container_status.name}: waiting ({state.waiting.reason})"
    if state.running is not None:
        return f"{container_status.name}: running"
    return None


def format_pod_status(status: Any) -> str:
    if status is None:
        return "[]"
    parts = [f"phase={status.phase}"]
    if status.reason:
        parts.append(f"reason={status.reason}")
    conditions = _conditions(status)
    if conditions:
        parts.append(f"conditions=[{conditions}]")
    states = [
        text
        for text in (_container_state(cs) for cs in status.container_statuses or [])
        if text
    ]
    if states:
        parts.append(f"containers=[{'; '.join(states)}]")
    return f"[{', '.join(parts)}]"


def format_event(kind: str, action: str, obj: Any) -> str:
    """Format one watch event as a human-readable line."""
    name = obj.metadata.name
    if kind == JOB:
        status = format_job_status(obj.status)
    else:
        status = format_pod_status(obj.status)
    return f"Received action '{action}' on [{kind}: {name}] with status {status}"


class EventWatcher:
    """Attaches background event watches to Jobs and Pods."""

    def __init__(
        self,
        client: Any,
        sink: Any,
        *,
        level: int = logging.DEBUG,
        close_timeout: float = 5.0,
        read_timeout: float = 2.0,
    ) -> None:
        self._client = client
        self._sink = sink
        self._level = level
        self._close_timeout = close_timeout
        # A watch request idle for this long is reopened from the last
        # resource version
        self._read_timeout = read_timeout

    def attach(self, ref: ResourceRef) -> WatchHandle:
        """
        Start watching `ref`.

        The initial list call runs synchronously so a missing permission or
        unreachable API fails here, as WatchAttachError, instead of silently
        in the background thread.
        """
        list_fn = self._client.list_function(ref.kind)
        field_selector = f"metadata.name={ref.name}"
        try:
            initial = list_fn(
                ref.namespace,
                field_selector=field_selector,
                _request_timeout=self._client.request_timeout,
            )
        except ApiException as e:
            raise WatchAttachError(
                f"Unable to watch {ref.kind} '{ref.name}': {e.reason}",
                details={"status": e.status, "namespace": ref.namespace},
            ) from e

        handle = WatchHandle(ref, self._close_timeout)
        thread = threading.Thread(
            target=self._run,
            args=(handle, list_fn, field_selector, initial.metadata.resource_version),
            name=f"watch-{ref.kind.lower()}-{ref.name}",
            daemon=True,
        )
        handle.start(thread)
        logger.debug("watch_attached", ref=str(ref))
        return handle

    def _run(
        self,
        handle: WatchHandle,
        list_fn: Any,
        field_selector: str,
        resource_version: str | None,
    ) -> None:
        ref = handle.ref
        open_stream = handle.tracking(list_fn)
        while not handle.stopping:
            try:
                for event in handle.watch.stream(
                    open_stream,
                    ref.namespace,
                    field_selector=field_selector,
                    resource_version=resource_version,
                    timeout_seconds=self._client.watch_timeout,
                    _request_timeout=(self._client.request_timeout, self._read_timeout),
                ):
                    if handle.stopping:
                        return
                    if event["type"] == "ERROR":
                        raw = event.get("raw_object") or {}
                        if raw.get("code") == GONE:
                            resource_version = None
                            break
                        self._sink.write(
                            logging.WARNING,
                            None,
                            f"Watch error on [{ref.kind}: {ref.name}]: {raw.get('message')}",
                        )
                        continue
                    obj = event["object"]
                    resource_version = obj.metadata.resource_version
                    self._sink.write(self._level, None, format_event(ref.kind, event["type"], obj))
                else:
                    resource_version = handle.watch.resource_version or resource_version
            except ReadTimeoutError:
                # Quiet stream: reopen from the last seen resource version
                continue
            except ApiException as e:
                if e.status == GONE:
                    resource_version = None
                    continue
                if not handle.stopping:
                    self._sink.write(
                        logging.WARNING,
                        None,
                        f"Watch on [{ref.kind}: {ref.name}] closed: {e.reason}",
                    )
                return
            except Exception as e:
                if not handle.stopping:
                    self._sink.write(
                        logging.WARNING,
                        None,
                        f"Watch on [{ref.kind}: {ref.name}] closed: {e}",
                    )
                    logger.warning("watch_stream_failed", ref=str(ref), error=str(e))
                return
