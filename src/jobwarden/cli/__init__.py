"""
CLI commands for jobwarden.
"""

from jobwarden.cli.run import render_command, run_command

__all__ = ["render_command", "run_command"]
