"""Tests for the command line interface."""

import json
from dataclasses import replace
from unittest.mock import AsyncMock, patch

import pytest
import yaml

from jobwarden.cli.run import _check_variables, render_command, run_command
from jobwarden.core.errors import ExitCode, RenderError, WaitTimeoutError
from jobwarden.main import build_parser, main
from jobwarden.models import Outcome, ResourceMetadata
from jobwarden.specs.loader import load_workload

JOB_FILE = {
    "namespace": "batch",
    "spec": {"template": {"spec": {"containers": [{"name": "main", "image": "busybox:${tag}"}]}}},
    "variables": {"tag": "1.36"},
}


@pytest.fixture
def job_file(tmp_path):
    path = tmp_path / "job.yaml"
    path.write_text(yaml.safe_dump(JOB_FILE))
    return str(path)


def outcome():
    return Outcome(
        job=ResourceMetadata(name="jobwarden-abc12", namespace="batch", uid="uid-1"),
        pod=ResourceMetadata(name="jobwarden-abc12-x1", namespace="batch", uid="uid-2"),
    )


class TestParser:
    def test_run_arguments(self):
        args = build_parser().parse_args(
            ["run", "job.yaml", "-n", "other", "--var", "a=1", "--var", "b=2", "--no-delete",
             "--wait-until-running", "30", "--output", "json"]
        )

        assert args.command == "run"
        assert args.namespace == "other"
        assert args.variables == ["a=1", "b=2"]
        assert args.no_delete is True
        assert args.wait_until_running == 30.0
        assert args.wait_running is None
        assert args.output == "json"


class TestRender:
    def test_prints_manifest(self, job_file, settings, capsys):
        code = render_command(job_file, variables=["tag=latest"], settings=settings)

        manifest = yaml.safe_load(capsys.readouterr().out)
        assert code == ExitCode.SUCCESS
        assert manifest["kind"] == "Job"
        assert manifest["metadata"]["namespace"] == "batch"
        assert manifest["spec"]["template"]["spec"]["containers"][0]["image"] == "busybox:latest"

    def test_undefined_variable_exit_code(self, tmp_path, settings):
        path = tmp_path / "job.yaml"
        path.write_text(yaml.safe_dump({**JOB_FILE, "variables": {}}))

        assert render_command(str(path), settings=settings) == ExitCode.RENDER_ERROR

    def test_all_undefined_variables_reported(self, tmp_path, settings):
        path = tmp_path / "job.yaml"
        job = {**JOB_FILE, "metadata": {"annotations": {"owner": "${owner}", "run": "${run.id}"}}}
        path.write_text(yaml.safe_dump(job))

        spec = load_workload(path, settings, variables={})

        with pytest.raises(RenderError) as exc_info:
            _check_variables(replace(spec, variables={}))

        assert exc_info.value.details == {"variables": ["owner", "tag"]}

    def test_missing_file_exit_code(self, tmp_path, settings):
        assert render_command(str(tmp_path / "nope.yaml"), settings=settings) == ExitCode.CONFIG_ERROR

    def test_main_exits_with_command_code(self, job_file):
        with patch("jobwarden.main.configure_logging"):
            with pytest.raises(SystemExit) as exc_info:
                main(["render", job_file])

        assert exc_info.value.code == 0


class TestRun:
    def test_json_output(self, job_file, settings, capsys):
        run = AsyncMock(return_value=outcome())

        with patch("jobwarden.cli.run.run_workload", run):
            code = run_command(job_file, output_format="json", settings=settings)

        assert code == ExitCode.SUCCESS
        data = json.loads(capsys.readouterr().out)
        assert data["job"]["name"] == "jobwarden-abc12"
        assert data["pod"]["uid"] == "uid-2"

    def test_flags_override_job_file(self, job_file, settings):
        run = AsyncMock(return_value=outcome())

        with patch("jobwarden.cli.run.run_workload", run):
            run_command(
                job_file,
                variables=["tag=2.0"],
                namespace="other",
                no_delete=True,
                wait_until_running=5,
                wait_running=10,
                output_format="json",
                settings=settings,
            )

        spec = run.call_args[0][0]
        assert spec.namespace == "other"
        assert spec.variables == {"tag": "2.0"}
        assert spec.delete is False
        assert spec.wait_until_running == 5
        assert spec.wait_running == 10

    def test_timeout_exit_code(self, job_file, settings):
        run = AsyncMock(side_effect=WaitTimeoutError("pod to start", 600))

        with patch("jobwarden.cli.run.run_workload", run):
            code = run_command(job_file, settings=settings)

        assert code == ExitCode.TIMEOUT

    def test_invalid_variable_exit_code(self, job_file, settings):
        assert run_command(job_file, variables=["novalue"], settings=settings) == ExitCode.CONFIG_ERROR
