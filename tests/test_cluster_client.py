"""Tests for the cluster client wrapper."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
from fakes import make_pod
from kubernetes import config
from kubernetes.client.rest import ApiException

from jobwarden.config.settings import Settings
from jobwarden.core.errors import ConfigurationError, SubmissionError
from jobwarden.kube.client import ClusterClient, _load_api_client, job_pod_selector
from jobwarden.models import JOB, POD, ResourceRef

JOB_REF = ResourceRef(JOB, "batch", "nightly", "uid-1")


@pytest.fixture
def cluster():
    cc = ClusterClient(MagicMock(), request_timeout=2.0, watch_timeout=10)
    cc.batch = MagicMock()
    cc.core = MagicMock()
    return cc


class TestSubmit:
    @pytest.mark.asyncio
    async def test_submit_job(self, cluster):
        body = {"metadata": {"generateName": "jobwarden-"}}
        cluster.batch.create_namespaced_job.return_value = "created"

        result = await cluster.submit_job("batch", body)

        assert result == "created"
        cluster.batch.create_namespaced_job.assert_called_once_with("batch", body, _request_timeout=2.0)

    @pytest.mark.asyncio
    async def test_rejection_is_submission_error(self, cluster):
        cluster.batch.create_namespaced_job.side_effect = ApiException(status=422, reason="Unprocessable Entity")

        with pytest.raises(SubmissionError) as exc_info:
            await cluster.submit_job("batch", {})

        assert exc_info.value.details == {"status": 422, "namespace": "batch"}
        assert "Unprocessable Entity" in exc_info.value.message


class TestReads:
    @pytest.mark.asyncio
    async def test_read_job_uses_status_endpoint(self, cluster):
        cluster.batch.read_namespaced_job_status.return_value = "job"

        assert await cluster.read_job(JOB_REF) == "job"
        cluster.batch.read_namespaced_job_status.assert_called_once_with("nightly", "batch", _request_timeout=2.0)

    @pytest.mark.asyncio
    async def test_not_found_is_none(self, cluster):
        cluster.batch.read_namespaced_job_status.side_effect = ApiException(status=404)
        cluster.core.read_namespaced_pod.side_effect = ApiException(status=404)

        assert await cluster.read_job(JOB_REF) is None
        assert await cluster.read_pod(ResourceRef(POD, "batch", "p")) is None

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self, cluster):
        cluster.core.read_namespaced_pod.side_effect = ApiException(status=500)

        with pytest.raises(ApiException):
            await cluster.read_pod(ResourceRef(POD, "batch", "p"))


class TestPods:
    def test_selector_prefers_uid(self):
        assert job_pod_selector(JOB_REF) == "controller-uid=uid-1"
        assert job_pod_selector(ResourceRef(JOB, "batch", "nightly")) == "job-name=nightly"

    @pytest.mark.asyncio
    async def test_find_pod_returns_oldest(self, cluster):
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        newer = make_pod("newer", created=now + timedelta(seconds=5))
        older = make_pod("older", created=now)
        cluster.core.list_namespaced_pod.return_value = MagicMock(items=[newer, older])

        pod = await cluster.find_pod(JOB_REF)

        assert pod.metadata.name == "older"
        cluster.core.list_namespaced_pod.assert_called_once_with(
            "batch", label_selector="controller-uid=uid-1", _request_timeout=2.0
        )

    @pytest.mark.asyncio
    async def test_find_pod_none_yet(self, cluster):
        cluster.core.list_namespaced_pod.return_value = MagicMock(items=[])

        assert await cluster.find_pod(JOB_REF) is None

    def test_pod_without_timestamp_sorts_last(self, cluster):
        pending = make_pod("fresh")
        pending.metadata.creation_timestamp = None
        cluster.core.list_namespaced_pod.return_value = MagicMock(items=[pending, make_pod("old")])

        assert [p.metadata.name for p in cluster.list_job_pods(JOB_REF)] == ["old", "fresh"]

    def test_open_pod_log_follows(self, cluster):
        cluster.open_pod_log(ResourceRef(POD, "batch", "p"), tail_lines=1000)

        cluster.core.read_namespaced_pod_log.assert_called_once_with(
            "p", "batch", follow=True, _preload_content=False, tail_lines=1000
        )

    def test_list_function(self, cluster):
        assert cluster.list_function(JOB) is cluster.batch.list_namespaced_job
        assert cluster.list_function(POD) is cluster.core.list_namespaced_pod
        with pytest.raises(ValueError):
            cluster.list_function("CronJob")


class TestDelete:
    @pytest.mark.asyncio
    async def test_delete_propagates_to_pods(self, cluster):
        assert await cluster.delete_job(JOB_REF) is True

        cluster.batch.delete_namespaced_job.assert_called_once_with(
            "nightly", "batch", propagation_policy="Background", _request_timeout=2.0
        )

    @pytest.mark.asyncio
    async def test_already_gone(self, cluster):
        cluster.batch.delete_namespaced_job.side_effect = ApiException(status=404)

        assert await cluster.delete_job(JOB_REF) is False

    @pytest.mark.asyncio
    async def test_failure_propagates(self, cluster):
        cluster.batch.delete_namespaced_job.side_effect = ApiException(status=403)

        with pytest.raises(ApiException):
            await cluster.delete_job(JOB_REF)


class TestConnect:
    def test_connect_closes_api_client(self):
        api = MagicMock()
        settings = Settings(_env_file=None, request_timeout=7.0, watch_timeout=60)

        with patch("jobwarden.kube.client._load_api_client", return_value=api):
            with ClusterClient.connect(settings) as cc:
                assert cc.request_timeout == 7.0
                assert cc.watch_timeout == 60
                api.close.assert_not_called()

        api.close.assert_called_once()

    def test_connect_closes_on_error(self):
        api = MagicMock()

        with patch("jobwarden.kube.client._load_api_client", return_value=api):
            with pytest.raises(RuntimeError):
                with ClusterClient.connect(Settings(_env_file=None)):
                    raise RuntimeError("boom")

        api.close.assert_called_once()

    def test_explicit_master_url(self):
        settings = Settings(_env_file=None, master_url="https://k8s.example:6443", token="secret", verify_ssl=False)

        api = _load_api_client(settings)
        try:
            assert api.configuration.host == "https://k8s.example:6443"
            assert api.configuration.verify_ssl is False
            assert api.configuration.api_key == {"authorization": "secret"}
            assert api.configuration.api_key_prefix == {"authorization": "Bearer"}
        finally:
            api.close()

    def test_no_config_available(self):
        with patch("jobwarden.kube.client.config.load_incluster_config", side_effect=config.ConfigException("no sa")), \
                patch("jobwarden.kube.client.config.new_client_from_config",
                      side_effect=config.ConfigException("no kubeconfig")):
            with pytest.raises(ConfigurationError, match="no kubeconfig"):
                _load_api_client(Settings(_env_file=None))
