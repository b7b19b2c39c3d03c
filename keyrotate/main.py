"""
Codeship key rotator — CLI entrypoint.

Usage:
    keyrotate
    keyrotate --verbose --config ./config.json
    python -m keyrotate.main --help
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import click

from keyrotate import __version__
from keyrotate.core.observability.logging_config import (
    ENV_LOG_FILE,
    ENV_LOG_FILE_LEVEL,
    ENV_LOG_LEVEL,
    setup_logging,
)


@click.command()
@click.version_option(version=__version__, prog_name="keyrotate")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to config.json (default: ./config.json).",
)
@click.option(
    "--ledger",
    "ledger_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Completed-projects file (default: ./completed-projects.txt).",
)
def cli(
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
    ledger_path: str | None,
) -> None:
    """Rotate Codeship AES keys and re-encrypt repository secrets.

    Picks the next batch of "pro" projects not yet listed in the
    completed-projects file, and for each one: clones it, decrypts its
    encrypted files with the current key, applies the configured
    replacements, resets the project's AES key, re-encrypts with the new
    key, then commits and pushes.

    Credentials are read from CODESHIP_USERNAME, CODESHIP_PASSWORD and
    CODESHIP_ORGANIZATION. The first run without a config file writes a
    template and exits.
    """
    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get(ENV_LOG_LEVEL, "WARNING")

    setup_logging(
        level=level,
        log_file=os.environ.get(ENV_LOG_FILE),
        log_file_level=os.environ.get(ENV_LOG_FILE_LEVEL),
        quiet_third_party=not debug,
    )

    from keyrotate.core.use_cases.rotate import run_rotation
    from keyrotate.ui.cli.console import ConsoleReporter, print_summary

    result = run_rotation(
        config_path=Path(config_path) if config_path else None,
        ledger_path=Path(ledger_path) if ledger_path else None,
        reporter=ConsoleReporter(quiet=quiet),
    )

    if result.error:
        click.secho(f"❌ {result.error}", fg="red", err=True)
        sys.exit(result.exit_code)

    if result.config_created:
        return

    if result.batch is not None:
        print_summary(result.batch.report)
        if result.batch.aborted:
            click.secho(
                f"\n❌ run aborted, manual intervention required: {result.batch.abort_reason}",
                fg="red",
                bold=True,
                err=True,
            )
            sys.exit(result.exit_code)

    click.echo("adios amigo")


if __name__ == "__main__":
    cli()
