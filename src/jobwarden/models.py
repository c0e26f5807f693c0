"""
Data models for a single Job run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

JOB = "Job"
POD = "Pod"


class PodPhase(str, Enum):
    PENDING = "Pending"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    UNKNOWN = "Unknown"


class JobPhase(str, Enum):
    ACTIVE = "Active"
    COMPLETE = "Complete"
    FAILED = "Failed"


class RunState(str, Enum):
    """Lifecycle states of one run, in order. FAILED is absorbing."""

    BUILDING = "Building"
    SUBMITTED = "Submitted"
    UNIT_PENDING = "UnitPending"
    UNIT_READY = "UnitReady"
    COMPLETING = "Completing"
    DONE = "Done"
    FAILED = "Failed"


@dataclass(frozen=True)
class WorkloadSpec:
    """
    User-supplied Job definition.

    `metadata` and `spec` are template trees rendered against `variables`
    when the Job is built.
    """

    namespace: str
    spec: dict[str, Any]
    metadata: dict[str, Any] = field(default_factory=dict)
    variables: dict[str, Any] = field(default_factory=dict)
    delete: bool = True
    wait_until_running: float = 600.0
    wait_running: float = 3600.0

    def __post_init__(self) -> None:
        """Validate required fields."""
        if not self.namespace:
            raise ValueError("Job namespace is required")
        if not self.spec:
            raise ValueError("Job spec is required")
        if self.wait_until_running <= 0 or self.wait_running <= 0:
            raise ValueError("Wait budgets must be positive")


@dataclass(frozen=True)
class ResourceRef:
    """Identity of a remote resource."""

    kind: str
    namespace: str
    name: str
    uid: str | None = None

    def __str__(self) -> str:
        return f"{self.kind}/{self.namespace}/{self.name}"

    @classmethod
    def of(cls, kind: str, obj: Any) -> ResourceRef:
        meta = obj.metadata
        return cls(kind=kind, namespace=meta.namespace, name=meta.name, uid=meta.uid)


def _get(obj: Any, attr: str, key: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, attr, None)


@dataclass
class ResourceMetadata:
    """Identity snapshot of a Job or Pod."""

    name: str
    namespace: str
    uid: str | None = None
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    generate_name: str | None = None
    resource_version: str | None = None
    generation: int | None = None
    creation_timestamp: datetime | str | None = None

    @classmethod
    def from_object_meta(cls, meta: Any) -> ResourceMetadata:
        """Build from a V1ObjectMeta or its dict form."""
        return cls(
            name=_get(meta, "name", "name"),
            namespace=_get(meta, "namespace", "namespace"),
            uid=_get(meta, "uid", "uid"),
            labels=dict(_get(meta, "labels", "labels") or {}),
            annotations=dict(_get(meta, "annotations", "annotations") or {}),
            generate_name=_get(meta, "generate_name", "generateName"),
            resource_version=_get(meta, "resource_version", "resourceVersion"),
            generation=_get(meta, "generation", "generation"),
            creation_timestamp=_get(meta, "creation_timestamp", "creationTimestamp"),
        )

    def to_dict(self) -> dict[str, Any]:
        created = self.creation_timestamp
        if isinstance(created, datetime):
            created = created.isoformat()
        return {
            "name": self.name,
            "namespace": self.namespace,
            "uid": self.uid,
            "labels": self.labels,
            "annotations": self.annotations,
            "generateName": self.generate_name,
            "resourceVersion": self.resource_version,
            "generation": self.generation,
            "creationTimestamp": created,
        }


@dataclass
class Outcome:
    """Result of a run that completed cleanly."""

    job: ResourceMetadata
    pod: ResourceMetadata

    def to_dict(self) -> dict[str, Any]:
        return {"job": self.job.to_dict(), "pod": self.pod.to_dict()}
