"""Job definition loading and template rendering."""

from jobwarden.specs.loader import load_workload, parse_duration, parse_variables
from jobwarden.specs.template import find_variables, render

__all__ = [
    "find_variables",
    "load_workload",
    "parse_duration",
    "parse_variables",
    "render",
]
