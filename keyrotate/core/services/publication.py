"""
Publication step — commit the re-encrypted files and push them.

With a push branch configured, rotated files go to a new branch created
from whatever is checked out; otherwise they are pushed straight to the
current branch. The first failing git subcommand stops the sequence and
is reported with its output. Nothing is retried; the operator pushes by
hand.

Pull requests are not opened programmatically. A compare/new-PR link is
produced per hosting provider for the end-of-run report.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from keyrotate.adapters.registry import AdapterRegistry
from keyrotate.core.models.action import Action, Receipt
from keyrotate.core.models.config import RotationConfig

logger = logging.getLogger(__name__)

COMMIT_MESSAGE = "updated encrypted files with rotated credentials"
STAGE_PATHSPEC = "*.encrypted"
DEFAULT_REMOTE = "origin"

DEFAULT_PR_SOURCE = "develop"
DEFAULT_PR_TARGET = "master"

# Checked in order; first substring found in the repository URL wins.
PR_URL_TEMPLATES: list[tuple[str, str]] = [
    ("bitbucket", "https://bitbucket.org/{name}/pull-requests/new?source={source}&t=1"),
    ("github", "https://github.com/{name}/compare/{target}...{source}"),
]


@dataclass
class PublishResult:
    """What the git sequence did for one project."""

    branch: str = ""
    steps: list[tuple[str, Receipt]] = field(default_factory=list)
    failed_step: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.failed_step is None


def pr_url(
    repository_url: str,
    name: str,
    source: str = DEFAULT_PR_SOURCE,
    target: str = DEFAULT_PR_TARGET,
) -> str:
    """Link for opening a PR by hand, or "" for unknown hosts."""
    for marker, template in PR_URL_TEMPLATES:
        if marker in repository_url:
            return template.format(name=name, source=source, target=target)
    return ""


def pr_source_branch(config: RotationConfig) -> str:
    return config.push_branch or config.checkout_branch or DEFAULT_PR_SOURCE


def plan_commands(config: RotationConfig) -> list[tuple[str, dict]]:
    """Ordered (step name, git params) pairs for the push sequence."""
    steps: list[tuple[str, dict]] = []
    if config.push_branch:
        steps.append(
            ("checkout new branch", {"operation": "create_branch", "branch": config.push_branch})
        )
    steps.append(("add encrypted files", {"operation": "add", "pathspec": STAGE_PATHSPEC}))
    steps.append(("commit changes", {"operation": "commit", "message": COMMIT_MESSAGE}))
    if config.push_branch:
        steps.append(
            (
                "push new branch",
                {
                    "operation": "push",
                    "remote": DEFAULT_REMOTE,
                    "branch": config.push_branch,
                    "set_upstream": True,
                },
            )
        )
    else:
        steps.append(("push changes", {"operation": "push"}))
    return steps


def publish(
    registry: AdapterRegistry,
    workspace: Path,
    config: RotationConfig,
    project_name: str | None = None,
) -> PublishResult:
    """Run the commit/push sequence inside ``workspace``."""
    branch = config.push_branch or config.checkout_branch
    result = PublishResult(branch=branch)

    for step_name, params in plan_commands(config):
        action_id = step_name.replace(" ", "-")
        receipt = registry.execute_action(
            Action(id=action_id, adapter="git", params=params, for_project=project_name),
            cwd=str(workspace),
        )
        result.steps.append((step_name, receipt))
        if not receipt.ok:
            result.failed_step = step_name
            result.error = (
                f"failed to {step_name}, branch: {branch or '<current>'}, "
                f"error: {receipt.describe_failure()}"
            )
            logger.error(result.error)
            return result
        logger.info("push process command %s executed successfully", step_name)

    return result
