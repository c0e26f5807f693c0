"""Building blocks of the Job lifecycle orchestrator."""

from jobwarden.orchestration.guard import PhaseGuard
from jobwarden.orchestration.results import PhaseResult

__all__ = ["PhaseGuard", "PhaseResult"]
