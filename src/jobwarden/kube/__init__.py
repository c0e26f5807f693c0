"""Kubernetes bindings: cluster client and Job manifest builder."""

from jobwarden.kube.builder import build_job
from jobwarden.kube.client import ClusterClient

__all__ = ["ClusterClient", "build_job"]
