"""
Console output for a rotation run.

ConsoleReporter prints engine progress to stdout as it happens; the
``print_*`` helpers render the end-of-run summary.
"""

from __future__ import annotations

import logging

import click

from keyrotate.core.engine.reporting import ALERT_PREFIX, Reporter
from keyrotate.core.models.report import RunReport

logger = logging.getLogger(__name__)

_RULE = "-" * 56


class ConsoleReporter(Reporter):
    """Reporter that writes to the terminal via click.

    Everything printed is also logged at INFO, so a log file keeps the
    run's history without the default stderr handler echoing it twice.
    """

    def __init__(self, quiet: bool = False):
        self._quiet = quiet

    def banner(self, title: str) -> None:
        super().banner(title)
        click.echo(f"\n\n{_RULE}")
        click.secho(title, fg="cyan", bold=True)

    def info(self, message: str) -> None:
        super().info(message)
        if not self._quiet:
            click.echo(message)

    def success(self, message: str) -> None:
        super().success(message)
        if not self._quiet:
            click.secho(message, fg="green")

    def warn(self, message: str) -> None:
        logger.info(message)
        click.secho(message, fg="yellow")

    def alert(self, message: str) -> None:
        logger.info("%s %s", ALERT_PREFIX, message)
        click.secho(f"{ALERT_PREFIX} {message}", fg="red", bold=True)

    def key_material(self, message: str) -> None:
        # Terminal only.
        click.secho(f"{ALERT_PREFIX} {message}", fg="red", bold=True)


def print_summary(report: RunReport) -> None:
    """PR links, then substitution counts per project and file."""
    click.secho("\n\nall projects complete, now go create some PRs:", bold=True)
    for url in report.pr_urls:
        click.echo(url)

    click.secho("\n\nChange counts by project and file:", bold=True)
    for project, counts in report.change_counts.items():
        click.echo(f"  {project}:")
        for file, count in counts.items():
            click.echo(f"    {file} - {count}")

    if report.abandoned:
        click.secho(
            f"\n{report.abandoned} project(s) were not completed; see the ALERT lines above",
            fg="yellow",
        )
