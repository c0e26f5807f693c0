"""
Job lifecycle orchestrator.

Drives one Job from submission to cleanup:

    Building -> Submitted -> UnitPending -> UnitReady -> Completing -> Done

Any failure after submission moves the run to Failed, which always deletes
the Job (unless deletion is disabled) and re-raises the original error.
Each phase function returns a PhaseResult; only `run()` decides on cleanup.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from functools import partial
from typing import Any, Awaitable, Callable

from jobwarden.config.settings import Settings, get_settings
from jobwarden.core.errors import CleanupError, UnitFailedError, WorkloadFailedError
from jobwarden.kube.builder import build_job
from jobwarden.kube.client import ClusterClient
from jobwarden.logging import bind_context
from jobwarden.models import (
    JOB,
    POD,
    JobPhase,
    Outcome,
    PodPhase,
    ResourceMetadata,
    ResourceRef,
    RunState,
    WorkloadSpec,
)
from jobwarden.orchestration.guard import PhaseGuard
from jobwarden.orchestration.results import PhaseResult
from jobwarden.sink import ReportingSink
from jobwarden.waiter import job_finished, job_phase, pod_exists, pod_left_pending, pod_phase, wait_for
from jobwarden.watchers.events import EventWatcher
from jobwarden.watchers.logs import LogStreamer

JOB_LOG_PREFIX = "Job Log:"


def pod_failure(pod: Any) -> UnitFailedError:
    """Describe why a pod ended in the Failed phase."""
    name = pod.metadata.name
    status = pod.status
    if status is None:
        return UnitFailedError(f"Pod '{name}' terminated without any status")

    terminated = next(
        (
            cs.state.terminated
            for cs in status.container_statuses or []
            if cs.state is not None and cs.state.terminated is not None
        ),
        None,
    )
    reason = status.reason or (terminated.reason if terminated is not None else None)
    message = status.message or (terminated.message if terminated is not None else None)

    text = f"Pod '{name}' terminated with status '{status.phase}'"
    if reason:
        text += f", reason '{reason}'"
    if terminated is not None:
        text += f", exit code {terminated.exit_code}"
    if message:
        text += f" & message '{message}'"
    return UnitFailedError(
        text,
        reason=reason,
        details={"pod": name, "phase": status.phase},
    )


def job_failure(job: Any) -> WorkloadFailedError:
    """Describe why a Job finished with a Failed condition."""
    name = job.metadata.name
    failed = next(
        (
            c
            for c in (job.status.conditions or [])
            if c.type == JobPhase.FAILED.value and c.status == "True"
        ),
        None,
    )
    reason = failed.reason if failed is not None else None
    text = f"Job '{name}' failed"
    if reason:
        text += f", reason '{reason}'"
    if failed is not None and failed.message:
        text += f" & message '{failed.message}'"
    return WorkloadFailedError(text, reason=reason, details={"job": name})


class JobOrchestrator:
    """Runs a single Job through its lifecycle."""

    def __init__(
        self,
        client: Any,
        sink: Any,
        *,
        settings: Settings | None = None,
        event_watcher: Any = None,
        log_streamer: Any = None,
        run_id: str | None = None,
    ) -> None:
        self._client = client
        self._sink = sink
        self._settings = settings or get_settings()
        self._events = event_watcher or EventWatcher(
            client,
            sink,
            close_timeout=self._settings.handle_close_timeout,
            read_timeout=self._settings.watch_read_timeout,
        )
        self._logs = log_streamer or LogStreamer(
            client,
            sink,
            poll_interval=self._settings.poll_interval,
            close_timeout=self._settings.handle_close_timeout,
        )
        self.run_id = run_id or uuid.uuid4().hex[:12]
        self.state = RunState.BUILDING
        self.transitions: list[RunState] = [RunState.BUILDING]
        self.job: ResourceRef | None = None
        self._cleaned_up = False
        self._log = bind_context(run_id=self.run_id)

    # === Driver ===

    async def run(self, spec: WorkloadSpec) -> Outcome:
        """
        Submit, observe and clean up one Job.

        Errors before submission propagate directly. After submission the
        Job is always cleaned up and the original error re-raised.
        """
        body = build_job(spec, self.run_id)
        created = await self._client.submit_job(spec.namespace, body)
        self.job = ResourceRef.of(JOB, created)
        self._log = self._log.bind(job=self.job.name, namespace=self.job.namespace)
        self._log.info("job_submitted", uid=self.job.uid)
        self._sink.info(f"Job '{self.job.name}' created")

        job_scope = PhaseGuard("job")
        unit_scope = PhaseGuard("unit")
        try:
            result = await self._drive(spec, job_scope, unit_scope)
        except BaseException as e:
            # Cancellation and interrupts take the same cleanup path
            await asyncio.shield(self._teardown(e, spec.delete, job_scope, unit_scope))
            raise

        if not result.ok:
            await self._teardown(result.error, spec.delete, job_scope, unit_scope)
            raise result.error  # type: ignore[misc]

        self._transition(RunState.COMPLETING)
        await self._release(job_scope)
        await self._release(unit_scope)
        await self._cleanup(spec.delete)
        self._transition(RunState.DONE)
        self._log.info("job_completed")
        return result.unwrap()

    async def _drive(
        self,
        spec: WorkloadSpec,
        job_scope: PhaseGuard,
        unit_scope: PhaseGuard,
    ) -> PhaseResult[Outcome]:
        created = await self._phase(
            RunState.SUBMITTED, self._await_pod_created, spec, job_scope
        )
        if not created.ok:
            return created

        ready = await self._phase(
            RunState.UNIT_PENDING, self._await_pod_ready, spec, created.value, job_scope, unit_scope
        )
        if not ready.ok:
            return ready

        return await self._phase(
            RunState.UNIT_READY, self._await_completion, spec, ready.value, unit_scope
        )

    async def _phase(
        self,
        state: RunState,
        func: Callable[..., Awaitable[Any]],
        *args: Any,
    ) -> PhaseResult[Any]:
        self._transition(state)
        try:
            return PhaseResult.success(state, await func(*args))
        except Exception as e:
            return PhaseResult.failure(state, e)

    # === Phases ===

    async def _await_pod_created(self, spec: WorkloadSpec, job_scope: PhaseGuard) -> ResourceRef:
        job = self._require_job()
        await self._attach(job_scope, self._events.attach, job)
        await self._attach(job_scope, self._logs.attach, job, logging.DEBUG, JOB_LOG_PREFIX)

        pod = await wait_for(
            lambda: self._client.find_pod(job),
            pod_exists,
            spec.wait_until_running,
            interval=self._settings.poll_interval,
            description=f"a pod of job '{job.name}' to be created",
        )
        pod_ref = ResourceRef.of(POD, pod)
        self._log.info("pod_created", pod=pod_ref.name)
        self._sink.info(f"Pod '{pod_ref.name}' created for job '{job.name}'")
        return pod_ref

    async def _await_pod_ready(
        self,
        spec: WorkloadSpec,
        pod_ref: ResourceRef,
        job_scope: PhaseGuard,
        unit_scope: PhaseGuard,
    ) -> Any:
        await self._attach(unit_scope, self._events.attach, pod_ref)
        # Hand off from the job-level listeners to the pod-level ones
        await self._release(job_scope)

        pod = await wait_for(
            lambda: self._client.read_pod(pod_ref),
            pod_left_pending,
            spec.wait_until_running,
            interval=self._settings.poll_interval,
            description=f"pod '{pod_ref.name}' to leave Pending",
        )
        phase = pod_phase(pod)
        self._log.info("pod_ready", pod=pod_ref.name, phase=phase)
        self._sink.info(f"Pod '{pod_ref.name}' is {phase}")
        if phase == PodPhase.FAILED.value:
            raise pod_failure(pod)
        return pod

    async def _await_completion(self, spec: WorkloadSpec, pod: Any, unit_scope: PhaseGuard) -> Outcome:
        job = self._require_job()
        pod_ref = ResourceRef.of(POD, pod)
        pod_logs = await self._attach(
            unit_scope,
            self._logs.attach,
            pod_ref,
            logging.INFO,
            None,
            tail_lines=self._settings.pod_log_tail_lines,
        )

        final = await wait_for(
            lambda: self._client.read_job(job),
            job_finished,
            spec.wait_running,
            interval=self._settings.poll_interval,
            description=f"job '{job.name}' to finish",
        )
        # The container has exited: let its log stream end on its own
        wait_finished = getattr(pod_logs, "wait_finished", None)
        if wait_finished is not None:
            await self._blocking(wait_finished, self._settings.handle_close_timeout)

        phase = job_phase(final)
        self._sink.info(f"Job '{job.name}' is {phase.value}")
        if phase is JobPhase.FAILED:
            raise job_failure(final)

        return Outcome(
            job=ResourceMetadata.from_object_meta(final.metadata),
            pod=ResourceMetadata.from_object_meta(pod.metadata),
        )

    # === Listener scopes ===

    async def _blocking(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """
        Run a blocking call in the default executor.

        The call always runs to completion: if the run is cancelled meanwhile,
        the cancellation is re-raised only once the call has returned.
        """
        loop = asyncio.get_event_loop()
        future = loop.run_in_executor(None, partial(func, *args, **kwargs))
        try:
            return await asyncio.shield(future)
        except asyncio.CancelledError:
            await asyncio.wait([future])
            raise

    async def _attach(
        self,
        scope: PhaseGuard,
        attach: Callable[..., Any],
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        """Attach a listener off the event loop and hand its handle to `scope`."""

        def attach_and_own() -> Any:
            return scope.push(attach(*args, **kwargs))

        return await self._blocking(attach_and_own)

    async def _release(self, scope: PhaseGuard) -> None:
        await self._blocking(scope.release)

    async def _teardown(
        self,
        error: BaseException | None,
        delete: bool,
        job_scope: PhaseGuard,
        unit_scope: PhaseGuard,
    ) -> None:
        await self._release(job_scope)
        await self._release(unit_scope)
        self._fail(error)
        await self._cleanup(delete)

    # === Cleanup ===

    async def _cleanup(self, delete: bool) -> None:
        """Delete the Job at most once per run. Never raises."""
        if self._cleaned_up or self.job is None:
            return
        self._cleaned_up = True
        job = self.job

        if not delete:
            self._log.info("job_kept")
            self._sink.info(f"Job '{job.name}' is kept")
            return

        try:
            await self._delete(job)
        except CleanupError as e:
            self._log.warning("cleanup_failed", error=e.message)
            self._sink.warning(e.message)

    async def _delete(self, job: ResourceRef) -> None:
        try:
            existed = await self._client.delete_job(job)
        except Exception as e:
            raise CleanupError(
                f"Failed to delete job '{job.name}': {e}",
                details={"job": job.name, "namespace": job.namespace},
            ) from e
        if existed:
            self._log.info("job_deleted")
            self._sink.info(f"Job '{job.name}' is deleted")
        else:
            self._log.info("job_already_gone")

    # === State ===

    def _require_job(self) -> ResourceRef:
        if self.job is None:
            raise RuntimeError("Job has not been submitted")
        return self.job

    def _transition(self, state: RunState) -> None:
        self._log.debug("state_changed", previous=self.state.value, state=state.value)
        self.state = state
        self.transitions.append(state)

    def _fail(self, error: BaseException | None) -> None:
        failed_in = self.state
        self._transition(RunState.FAILED)
        self._log.error(
            "job_run_failed",
            state=failed_in.value,
            error_type=type(error).__name__,
            error=str(error),
        )
        self._sink.write(logging.ERROR, None, f"Job run failed while {failed_in.value}: {error}")


async def run_workload(
    spec: WorkloadSpec,
    settings: Settings | None = None,
    *,
    sink: ReportingSink | None = None,
    run_id: str | None = None,
) -> Outcome:
    """
    Run one Job end to end with its own cluster connection and sink.

    The connection is opened once and closed once, on every exit path.
    """
    settings = settings or get_settings()
    run_id = run_id or uuid.uuid4().hex[:12]
    sink = sink or ReportingSink(run_id=run_id)

    with sink:
        with ClusterClient.connect(settings) as client:
            orchestrator = JobOrchestrator(client, sink, settings=settings, run_id=run_id)
            return await orchestrator.run(spec)
