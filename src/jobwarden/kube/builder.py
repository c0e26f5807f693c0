"""
Build a batch/v1 Job manifest from a WorkloadSpec.

Rendering is pure: the result is a plain dict ready to submit, checked
against the kubernetes models' field names so typos fail before the
cluster sees them.
"""

from __future__ import annotations

from typing import Any

from kubernetes.client import V1JobSpec, V1ObjectMeta, V1PodSpec

from jobwarden.core.errors import RenderError
from jobwarden.models import WorkloadSpec
from jobwarden.specs.template import render

MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
RUN_ID_LABEL = "jobwarden.io/run-id"
DEFAULT_GENERATE_NAME = "jobwarden-"


def _json_fields(model: type) -> set[str]:
    return set(model.attribute_map.values())


OBJECT_META_FIELDS = _json_fields(V1ObjectMeta)
JOB_SPEC_FIELDS = _json_fields(V1JobSpec)
POD_SPEC_FIELDS = _json_fields(V1PodSpec)


def build_context(spec: WorkloadSpec, run_id: str) -> dict[str, Any]:
    """Variables visible to templates: user variables plus `run`."""
    context = dict(spec.variables)
    context["run"] = {"id": run_id, "namespace": spec.namespace}
    return context


def build_job(spec: WorkloadSpec, run_id: str) -> dict[str, Any]:
    """
    Render a WorkloadSpec into a complete Job manifest.

    Raises:
        RenderError: If a template is unresolved or the result does not
            map onto the Job schema
    """
    context = build_context(spec, run_id)
    metadata = render(spec.metadata, context, "metadata")
    job_spec = render(spec.spec, context, "spec")

    if not isinstance(metadata, dict):
        raise RenderError("Job metadata must be a mapping")
    if not isinstance(job_spec, dict):
        raise RenderError("Job spec must be a mapping")

    metadata = _with_defaults(metadata, spec.namespace, run_id)
    _check_fields("metadata", metadata, OBJECT_META_FIELDS)
    _check_fields("spec", job_spec, JOB_SPEC_FIELDS)
    _check_pod_template(job_spec)

    return {
        "apiVersion": "batch/v1",
        "kind": "Job",
        "metadata": metadata,
        "spec": job_spec,
    }


def _with_defaults(metadata: dict[str, Any], namespace: str, run_id: str) -> dict[str, Any]:
    result = dict(metadata)
    result["namespace"] = namespace
    if not result.get("name") and not result.get("generateName"):
        result["generateName"] = DEFAULT_GENERATE_NAME

    labels = result.get("labels") or {}
    if not isinstance(labels, dict):
        raise RenderError("metadata.labels must be a mapping")
    # User labels win over the defaults
    result["labels"] = {MANAGED_BY_LABEL: "jobwarden", RUN_ID_LABEL: run_id, **labels}
    return result


def _check_fields(path: str, tree: dict[str, Any], allowed: set[str]) -> None:
    unknown = sorted(set(tree) - allowed)
    if unknown:
        raise RenderError(
            f"Unknown field(s) in {path}: {', '.join(unknown)}",
            details={"path": path, "fields": unknown},
        )


def _check_pod_template(job_spec: dict[str, Any]) -> None:
    template = job_spec.get("template")
    if not isinstance(template, dict):
        raise RenderError("spec.template is required")

    pod_spec = template.get("spec")
    if not isinstance(pod_spec, dict):
        raise RenderError("spec.template.spec is required")
    _check_fields("spec.template.spec", pod_spec, POD_SPEC_FIELDS)

    containers = pod_spec.get("containers")
    if not isinstance(containers, list) or not containers:
        raise RenderError("spec.template.spec.containers must be a non-empty list")

    for i, container in enumerate(containers):
        if not isinstance(container, dict):
            raise RenderError(f"spec.template.spec.containers[{i}] must be a mapping")
        for required in ("name", "image"):
            if not container.get(required):
                raise RenderError(
                    f"spec.template.spec.containers[{i}].{required} is required"
                )

    # Jobs reject the default Always policy
    pod_spec.setdefault("restartPolicy", "Never")
