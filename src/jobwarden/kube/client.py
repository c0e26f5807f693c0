"""
Kubernetes cluster client.

Wraps the `kubernetes` package for the handful of calls a Job run needs.
Blocking API calls are pushed to the default executor so the orchestrator
stays responsive; listener threads use the synchronous helpers directly.

Configuration sources, in order:
    - explicit master_url (+ token, ca_cert)
    - kubeconfig / context when either is set
    - in-cluster service account, then the default kubeconfig
"""

from __future__ import annotations

import asyncio
from contextlib import contextmanager
from functools import partial
from typing import Any, Callable, Iterator

import structlog
from kubernetes import client, config
from kubernetes.client.rest import ApiException

from jobwarden.config.settings import Settings
from jobwarden.core.errors import ConfigurationError, SubmissionError
from jobwarden.models import JOB, POD, ResourceRef

logger = structlog.get_logger()


def is_not_found(exc: ApiException) -> bool:
    return exc.status == 404


def _load_api_client(settings: Settings) -> client.ApiClient:
    """Create a single ApiClient for one run."""
    if settings.master_url:
        configuration = client.Configuration()
        configuration.host = settings.master_url
        configuration.verify_ssl = settings.verify_ssl
        if settings.ca_cert:
            configuration.ssl_ca_cert = settings.ca_cert
        if settings.token:
            configuration.api_key = {"authorization": settings.token}
            configuration.api_key_prefix = {"authorization": "Bearer"}
        return client.ApiClient(configuration)

    if not settings.kubeconfig and not settings.context:
        # Try in-cluster config first, then kubeconfig
        try:
            configuration = client.Configuration()
            config.load_incluster_config(client_configuration=configuration)
            return client.ApiClient(configuration)
        except config.ConfigException:
            pass

    try:
        return config.new_client_from_config(
            config_file=settings.kubeconfig,
            context=settings.context,
        )
    except (config.ConfigException, OSError) as e:
        raise ConfigurationError(f"Failed to load Kubernetes config: {e}") from e


def job_pod_selector(ref: ResourceRef) -> str:
    """Label selector matching the pods created for a Job."""
    if ref.uid:
        return f"controller-uid={ref.uid}"
    return f"job-name={ref.name}"


def _created(obj: Any) -> tuple[bool, Any]:
    created = obj.metadata.creation_timestamp
    return (created is None, created)


class ClusterClient:
    """
    Cluster operations used by a single Job run.

    Use `ClusterClient.connect(settings)` to get an instance whose
    ApiClient is closed when the block exits.
    """

    def __init__(
        self,
        api_client: Any,
        *,
        request_timeout: float = 30.0,
        watch_timeout: int = 300,
    ) -> None:
        self.api_client = api_client
        self.request_timeout = request_timeout
        self.watch_timeout = watch_timeout
        self.batch = client.BatchV1Api(api_client)
        self.core = client.CoreV1Api(api_client)

    @classmethod
    @contextmanager
    def connect(cls, settings: Settings) -> Iterator[ClusterClient]:
        api_client = _load_api_client(settings)
        logger.debug("cluster_connected", host=api_client.configuration.host)
        try:
            yield cls(
                api_client,
                request_timeout=settings.request_timeout,
                watch_timeout=settings.watch_timeout,
            )
        finally:
            api_client.close()
            logger.debug("cluster_disconnected")

    async def _run_sync(self, func: Any, *args: Any, **kwargs: Any) -> Any:
        """Run synchronous kubernetes API call in executor."""
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, partial(func, *args, **kwargs))

    # === Async operations used by the orchestrator ===

    async def submit_job(self, namespace: str, body: dict[str, Any]) -> Any:
        """Create the Job. Any API rejection is a SubmissionError."""
        try:
            return await self._run_sync(
                self.batch.create_namespaced_job,
                namespace,
                body,
                _request_timeout=self.request_timeout,
            )
        except ApiException as e:
            raise SubmissionError(
                f"Failed to create job in namespace '{namespace}': {e.reason}",
                details={"status": e.status, "namespace": namespace},
            ) from e

    async def read_job(self, ref: ResourceRef) -> Any | None:
        try:
            return await self._run_sync(
                self.batch.read_namespaced_job_status,
                ref.name,
                ref.namespace,
                _request_timeout=self.request_timeout,
            )
        except ApiException as e:
            if is_not_found(e):
                return None
            raise

    async def read_pod(self, ref: ResourceRef) -> Any | None:
        try:
            return await self._run_sync(
                self.core.read_namespaced_pod,
                ref.name,
                ref.namespace,
                _request_timeout=self.request_timeout,
            )
        except ApiException as e:
            if is_not_found(e):
                return None
            raise

    async def find_pod(self, job: ResourceRef) -> Any | None:
        """Return the oldest pod created for the Job, or None."""
        pods = await self._run_sync(self.list_job_pods, job)
        return pods[0] if pods else None

    async def delete_job(self, ref: ResourceRef) -> bool:
        """
        Delete the Job and, in the background, its pods.

        Returns False when the Job no longer exists.
        """
        try:
            await self._run_sync(
                self.batch.delete_namespaced_job,
                ref.name,
                ref.namespace,
                propagation_policy="Background",
                _request_timeout=self.request_timeout,
            )
        except ApiException as e:
            if is_not_found(e):
                return False
            raise
        return True

    # === Sync helpers used by listener threads ===

    def list_function(self, kind: str) -> Callable[..., Any]:
        if kind == JOB:
            return self.batch.list_namespaced_job
        if kind == POD:
            return self.core.list_namespaced_pod
        raise ValueError(f"Unsupported resource kind: {kind}")

    def list_job_pods(self, job: ResourceRef) -> list[Any]:
        pods = self.core.list_namespaced_pod(
            job.namespace,
            label_selector=job_pod_selector(job),
            _request_timeout=self.request_timeout,
        )
        return sorted(pods.items, key=_created)

    def open_pod_log(
        self,
        pod: ResourceRef,
        tail_lines: int | None = None,
        container: str | None = None,
    ) -> Any:
        """Open a following log stream; the caller must close the response."""
        kwargs: dict[str, Any] = {"follow": True, "_preload_content": False}
        if tail_lines is not None:
            kwargs["tail_lines"] = tail_lines
        if container:
            kwargs["container"] = container
        return self.core.read_namespaced_pod_log(pod.name, pod.namespace, **kwargs)
