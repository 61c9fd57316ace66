"""iamcompose CLI entry point."""

from __future__ import annotations

import logging
import sys

import boto3
import botocore.exceptions
import click
from rich.console import Console

from .config import load_config
from .formatters import get_formatter
from .pipeline import discover_jobs, run_batch


@click.command()
@click.argument("paths", nargs=-1, required=True, type=click.Path(exists=True))
@click.option(
    "--home-account",
    default=None,
    envvar="IAMCOMPOSE_HOME_ACCOUNT",
    metavar="ACCOUNT_ID",
    help="Account id trusted principals are compared against.",
)
@click.option(
    "--detect-home-account",
    is_flag=True,
    default=False,
    help="Use sts:GetCallerIdentity to find the home account when none is given.",
)
@click.option(
    "--strict",
    is_flag=True,
    default=False,
    help="Treat least-privilege warnings as errors.",
)
@click.option(
    "--output",
    type=click.Choice(["text", "json"]),
    default="text",
    show_default=True,
    help="Output format.",
)
@click.option(
    "--show-policy",
    is_flag=True,
    default=False,
    help="Print each merged policy document (text output).",
)
@click.option(
    "--workers",
    type=click.IntRange(min=1),
    default=None,
    help="Maximum number of modules processed in parallel.",
)
@click.option(
    "--profile",
    default=None,
    envvar="AWS_PROFILE",
    help="AWS credentials profile name (with --detect-home-account).",
)
@click.option(
    "--region",
    default=None,
    envvar="AWS_DEFAULT_REGION",
    help="AWS region (with --detect-home-account).",
)
@click.option("-v", "--verbose", count=True, help="Log progress (-vv for debug).")
def main(
    paths: tuple[str, ...],
    home_account: str | None,
    detect_home_account: bool,
    strict: bool,
    output: str,
    show_policy: bool,
    workers: int | None,
    profile: str | None,
    region: str | None,
    verbose: int,
) -> None:
    """Validate, compose and analyze IAM policy documents.

    Each PATH is a policy JSON file, a module directory (required.json,
    overrides/*.json, trust.json) or a directory of module directories.

    Exit code is 0 when no errors are found, 1 when any error diagnostic is
    reported and 2 for usage or configuration problems.
    """
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG if verbose > 1 else logging.INFO,
            format="%(levelname)s: %(message)s",
        )

    # Diagnostics (errors) go to stderr; reports go to stdout.
    err = Console(stderr=True, highlight=False)

    # 1. Load the run-wide configuration once, before any parallel work
    sts = None
    if detect_home_account and home_account is None:
        try:
            session = boto3.Session(profile_name=profile, region_name=region)
            sts = session.client("sts")
        except botocore.exceptions.ProfileNotFound as exc:
            err.print(f"[bold red]Error:[/bold red] {exc}")
            sys.exit(2)
    try:
        config = load_config(home_account=home_account, strict=strict, sts_client=sts)
    except ValueError as exc:
        err.print(f"[bold red]Error:[/bold red] {exc}")
        sys.exit(2)
    if config.home_account is None:
        err.print(
            "[yellow]Note:[/yellow] no home account configured; "
            "cross-account trust checks are skipped."
        )

    # 2. Find the modules
    try:
        jobs = discover_jobs(paths)
    except ValueError as exc:
        err.print(f"[bold red]Error:[/bold red] {exc}")
        sys.exit(2)

    # 3. Validate, compose and analyze
    report = run_batch(jobs, config, max_workers=workers)

    # 4. Format and output
    out_console = Console(highlight=False)
    formatter = get_formatter(output, console=out_console, show_policy=show_policy)
    formatter.render(report)

    # 5. Exit code: 0 = clean or warnings only, 1 = errors present
    if report.failed:
        sys.exit(1)
