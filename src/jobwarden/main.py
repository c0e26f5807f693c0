"""
jobwarden CLI - run a Kubernetes Job and always clean it up

Usage:
    jobwarden run job.yaml [--var key=value ...]
    jobwarden render job.yaml [--var key=value ...]
"""

from __future__ import annotations

import argparse
import sys
from typing import Sequence

from jobwarden.config.settings import get_settings
from jobwarden.logging import configure_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="jobwarden", description="jobwarden CLI")
    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Run a Job to completion, then delete it")
    run_parser.add_argument("job_file", help="Path to job YAML file")
    run_parser.add_argument("--namespace", "-n", help="Namespace (overrides the job file)")
    run_parser.add_argument("--var", action="append", dest="variables", metavar="KEY=VALUE",
                            help="Template variable, repeatable")
    run_parser.add_argument("--no-delete", action="store_true",
                            help="Keep the Job after it finishes")
    run_parser.add_argument("--wait-until-running", type=float, metavar="SECONDS",
                            help="Budget for the pod to be created and leave Pending")
    run_parser.add_argument("--wait-running", type=float, metavar="SECONDS",
                            help="Budget for the Job to finish once running")
    run_parser.add_argument("--output", choices=["text", "json"], default="text",
                            help="Output format")
    run_parser.add_argument("--log-format", choices=["json", "console"],
                            help="Log format (default from JOBWARDEN_LOG_FORMAT)")
    run_parser.add_argument("-v", "--verbose", action="store_true",
                            help="Show debug events and job-level logs")

    render_parser = subparsers.add_parser("render", help="Print the rendered Job manifest")
    render_parser.add_argument("job_file", help="Path to job YAML file")
    render_parser.add_argument("--namespace", "-n", help="Namespace (overrides the job file)")
    render_parser.add_argument("--var", action="append", dest="variables", metavar="KEY=VALUE",
                               help="Template variable, repeatable")

    return parser


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = get_settings()

    if args.command == "run":
        from jobwarden.cli.run import run_command

        configure_logging(
            "DEBUG" if args.verbose else settings.log_level,
            args.log_format or settings.log_format,
        )
        sys.exit(run_command(
            args.job_file,
            variables=args.variables,
            namespace=args.namespace,
            no_delete=args.no_delete,
            wait_until_running=args.wait_until_running,
            wait_running=args.wait_running,
            output_format=args.output,
            settings=settings,
        ))

    if args.command == "render":
        from jobwarden.cli.run import render_command

        configure_logging(settings.log_level, settings.log_format)
        sys.exit(render_command(
            args.job_file,
            variables=args.variables,
            namespace=args.namespace,
            settings=settings,
        ))

    parser.print_help()
    sys.exit(1)


if __name__ == "__main__":
    main()
