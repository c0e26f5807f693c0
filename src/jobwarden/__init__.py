"""Run a Kubernetes Job to completion and always clean it up."""

__version__ = "0.1.0"
