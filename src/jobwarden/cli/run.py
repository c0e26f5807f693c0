"""
Run and render commands.

`run` submits a Job and follows it to completion; `render` prints the
manifest that would be submitted without contacting the cluster.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from dataclasses import replace
from typing import Any

import yaml

from jobwarden.cli.ux import console, error, header, print_key_value, success
from jobwarden.config.settings import Settings, get_settings
from jobwarden.core.errors import (
    ExitCode,
    JobWardenError,
    RenderError,
    format_error_message,
    main_with_error_handling,
)
from jobwarden.kube.builder import build_job
from jobwarden.models import Outcome, WorkloadSpec
from jobwarden.orchestrator import run_workload
from jobwarden.specs.loader import load_workload, parse_variables
from jobwarden.specs.template import find_variables


def _load(
    job_file: str,
    settings: Settings,
    variables: list[str] | None,
    namespace: str | None,
) -> WorkloadSpec:
    spec = load_workload(
        job_file,
        settings,
        variables=parse_variables(variables),
        namespace=namespace,
    )
    _check_variables(spec)
    return spec


def _check_variables(spec: WorkloadSpec) -> None:
    """Report every undefined variable at once, before anything is rendered."""
    referenced = find_variables(spec.metadata) | find_variables(spec.spec)
    defined = set(spec.variables) | {"run"}
    missing = sorted(name for name in referenced if name.split(".")[0] not in defined)
    if missing:
        raise RenderError(
            f"Undefined variable(s): {', '.join(missing)}",
            details={"variables": missing},
        )


@main_with_error_handling()
def run_command(
    job_file: str,
    variables: list[str] | None = None,
    namespace: str | None = None,
    no_delete: bool = False,
    wait_until_running: float | None = None,
    wait_running: float | None = None,
    output_format: str = "text",
    settings: Settings | None = None,
) -> int:
    """Submit a Job, follow it to completion and clean it up."""
    settings = settings or get_settings()
    spec = _load(job_file, settings, variables, namespace)

    # Command line flags win over the job file
    overrides: dict[str, Any] = {}
    if no_delete:
        overrides["delete"] = False
    if wait_until_running is not None:
        overrides["wait_until_running"] = wait_until_running
    if wait_running is not None:
        overrides["wait_running"] = wait_running
    if overrides:
        spec = replace(spec, **overrides)

    if output_format == "text":
        header(f"Running job from {job_file}")

    try:
        outcome = asyncio.run(run_workload(spec, settings))
    except JobWardenError as e:
        if output_format == "text":
            error(format_error_message(e))
        raise

    _display_outcome(outcome, output_format)
    return ExitCode.SUCCESS


def _display_outcome(outcome: Outcome, output_format: str) -> None:
    if output_format == "json":
        print(json.dumps(outcome.to_dict(), indent=2, default=str))
        return

    success(f"Job '{outcome.job.name}' completed")
    print_key_value(
        {
            "Job": outcome.job.name,
            "Pod": outcome.pod.name,
            "Namespace": outcome.job.namespace,
            "Job UID": outcome.job.uid or "-",
        },
        title="Outcome",
    )
    console.print()


@main_with_error_handling()
def render_command(
    job_file: str,
    variables: list[str] | None = None,
    namespace: str | None = None,
    settings: Settings | None = None,
) -> int:
    """Print the rendered Job manifest."""
    settings = settings or get_settings()
    spec = _load(job_file, settings, variables, namespace)
    try:
        manifest = build_job(spec, uuid.uuid4().hex[:12])
    except JobWardenError as e:
        error(format_error_message(e))
        raise
    print(yaml.safe_dump(manifest, sort_keys=False), end="")
    return ExitCode.SUCCESS
