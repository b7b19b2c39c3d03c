"""
Run report — what happened to each project during one batch run.

The report is an explicit value threaded through the pipeline and
returned to the caller; nothing here is process-global.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

StepKind = Literal["continue", "complete", "skip_project", "abort_run"]
OutcomeStatus = Literal["completed", "no_secrets", "abandoned", "aborted"]


@dataclass(frozen=True)
class StepResult:
    """Tagged outcome of a single state-machine transition."""

    kind: StepKind
    message: str = ""

    @classmethod
    def proceed(cls) -> StepResult:
        return cls("continue")

    @classmethod
    def done(cls, message: str = "") -> StepResult:
        return cls("complete", message)

    @classmethod
    def skip(cls, message: str) -> StepResult:
        return cls("skip_project", message)

    @classmethod
    def abort(cls, message: str) -> StepResult:
        return cls("abort_run", message)


@dataclass
class ProjectOutcome:
    """Terminal result of one project's pipeline run."""

    project: str
    status: OutcomeStatus = "abandoned"
    last_state: str = ""
    encrypted_files: list[str] = field(default_factory=list)
    failed_encryptions: list[str] = field(default_factory=list)
    alerts: list[str] = field(default_factory=list)
    key_rotated: bool = False
    published: bool = False
    publish_blocked: bool = False   # artifacts left behind, do not push
    pr_url: str | None = None
    recorded: bool = False          # written to the completed ledger

    @property
    def counts_as_complete(self) -> bool:
        return self.status in ("completed", "no_secrets")

    def to_dict(self) -> dict:
        return {
            "project": self.project,
            "status": self.status,
            "last_state": self.last_state,
            "encrypted_files": self.encrypted_files,
            "failed_encryptions": self.failed_encryptions,
            "alerts": self.alerts,
            "key_rotated": self.key_rotated,
            "published": self.published,
            "publish_blocked": self.publish_blocked,
            "pr_url": self.pr_url,
            "recorded": self.recorded,
        }


@dataclass
class RunReport:
    """Per-project, per-file substitution counts plus PR links."""

    change_counts: dict[str, dict[str, int]] = field(default_factory=dict)
    pr_urls: list[str] = field(default_factory=list)
    outcomes: list[ProjectOutcome] = field(default_factory=list)

    def start_project(self, project: str) -> None:
        self.change_counts.setdefault(project, {})

    def record_count(self, project: str, file: str, count: int) -> None:
        self.change_counts.setdefault(project, {})[file] = count

    def add_pr_url(self, url: str) -> None:
        if url:
            self.pr_urls.append(url)

    def add_outcome(self, outcome: ProjectOutcome) -> None:
        self.outcomes.append(outcome)

    @property
    def completed(self) -> int:
        return sum(1 for o in self.outcomes if o.counts_as_complete)

    @property
    def abandoned(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "abandoned")

    def to_dict(self) -> dict:
        return {
            "change_counts": self.change_counts,
            "pr_urls": self.pr_urls,
            "completed": self.completed,
            "abandoned": self.abandoned,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }
