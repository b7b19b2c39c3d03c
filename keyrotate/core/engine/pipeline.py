"""
Batch pipeline — runs every selected project through the full flow.

Per project:
    materialize workspace → rotation engine → publish → ledger record → teardown

Failures are isolated per project: a clone that fails, a decrypt that
fails or a key reset that is refused skips that project and the batch
moves on. Only an ``abort_run`` from the engine stops the batch. A
workspace this run created is torn down on every path, and every project
leaves one audit line behind.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from keyrotate.adapters.registry import AdapterRegistry
from keyrotate.core.engine.reporting import Reporter
from keyrotate.core.engine.rotation import KeyResetter, RotationEngine, RotationState, WorkItem
from keyrotate.core.models.config import RotationConfig
from keyrotate.core.models.project import CIProject
from keyrotate.core.models.report import ProjectOutcome, RunReport, StepResult
from keyrotate.core.persistence.audit import AuditEntry, AuditWriter
from keyrotate.core.persistence.ledger import CompletedLedger
from keyrotate.core.services.publication import pr_source_branch, pr_url, publish
from keyrotate.core.services.workspace import CloneError, WorkspaceError, WorkspaceManager

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    """Result of running one batch."""

    report: RunReport = field(default_factory=RunReport)
    aborted: bool = False
    abort_reason: str = ""
    processed: int = 0

    def to_dict(self) -> dict:
        return {
            "aborted": self.aborted,
            "abort_reason": self.abort_reason,
            "processed": self.processed,
            "report": self.report.to_dict(),
        }


def generate_run_id() -> str:
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    return f"run-{now}-{uuid.uuid4().hex[:6]}"


class RotationPipeline:
    """Drives a batch of projects end to end."""

    def __init__(
        self,
        registry: AdapterRegistry,
        api: KeyResetter,
        config: RotationConfig,
        ledger: CompletedLedger,
        base_dir: Path,
        reporter: Reporter | None = None,
        audit: AuditWriter | None = None,
        run_id: str = "",
    ):
        self._registry = registry
        self._config = config
        self._ledger = ledger
        self._reporter = reporter or Reporter()
        self._audit = audit
        self._run_id = run_id or generate_run_id()
        self._workspaces = WorkspaceManager(registry, base_dir, config.checkout_branch)
        self._engine = RotationEngine(registry, self._workspaces, api, config, self._reporter)

    @property
    def run_id(self) -> str:
        return self._run_id

    @property
    def workspaces(self) -> WorkspaceManager:
        return self._workspaces

    def run_batch(self, projects: list[CIProject], report: RunReport | None = None) -> BatchResult:
        """Process ``projects`` in order, stopping only on ``abort_run``."""
        result = BatchResult(report=report if report is not None else RunReport())

        for i, project in enumerate(projects, start=1):
            self._reporter.banner(f"Starting project #{i} - {project.name}")
            step = self.run_project(project, result.report)
            result.processed += 1

            if step.kind == "complete":
                self._reporter.success(f"Finished process for {project.name} project!!!")
            elif step.kind == "abort_run":
                result.aborted = True
                result.abort_reason = step.message
                remaining = len(projects) - i
                if remaining:
                    self._reporter.warn(f"run aborted, {remaining} project(s) left unprocessed")
                break

        logger.info(
            "Batch %s: %d processed, %d complete, %d abandoned%s",
            self._run_id,
            result.processed,
            result.report.completed,
            result.report.abandoned,
            " (aborted)" if result.aborted else "",
        )
        return result

    def run_project(self, project: CIProject, report: RunReport) -> StepResult:
        """Run one project; a workspace this run created is always torn down."""
        outcome = ProjectOutcome(project=project.name)
        report.start_project(project.name)
        workspace: Path | None = None

        try:
            try:
                workspace = self._workspaces.materialize(project)
            except CloneError as e:
                return self._skip(
                    outcome, f"failed to clone project so it was not processed, fix it manually: {e}"
                )
            except WorkspaceError as e:
                return self._skip(outcome, f"{e}, project was not processed")
            return self._run(project, workspace, outcome, report)
        finally:
            outcome.last_state = outcome.last_state or "materialize"
            if workspace is not None and not self._workspaces.teardown(workspace):
                self._reporter.warn(f"failed to remove repo folder {workspace}")
            report.add_outcome(outcome)
            if self._audit is not None:
                self._audit.write(AuditEntry.from_outcome(outcome, run_id=self._run_id))

    def _run(
        self,
        project: CIProject,
        workspace: Path,
        outcome: ProjectOutcome,
        report: RunReport,
    ) -> StepResult:
        item = WorkItem(project=project, workspace=workspace)
        step = self._engine.rotate(item, outcome, report)
        if step.kind in ("skip_project", "abort_run"):
            return step

        if outcome.status == "completed" and item.has_secrets:
            self._publish(item, outcome, report)

        outcome.last_state = RotationState.LEDGER_RECORD.value
        outcome.recorded = self._ledger.append(project.name)
        if not outcome.recorded:
            self._alert(
                outcome,
                f"failed to record {project.name} in {self._ledger.path}; "
                "add it by hand or it will be rotated again",
            )
        return StepResult.done()

    def _publish(self, item: WorkItem, outcome: ProjectOutcome, report: RunReport) -> None:
        outcome.last_state = RotationState.PUBLISH.value
        if outcome.publish_blocked:
            self._reporter.warn(f"not pushing {item.project.name}: workspace still holds artifacts")
            return

        result = publish(self._registry, item.workspace, self._config, item.project.name)
        if not result.ok:
            self._alert(
                outcome,
                f"got an error in commit and push process, YOU PROBABLY NEED TO PUSH MANUALLY!!! "
                f"{result.error}",
            )
            return

        outcome.published = True
        url = pr_url(
            item.project.repository_url,
            item.project.name,
            source=pr_source_branch(self._config),
        )
        outcome.pr_url = url or None
        report.add_pr_url(url)
        self._reporter.success(f"pushed rotated files for {item.project.name}")

    def _alert(self, outcome: ProjectOutcome, message: str) -> None:
        outcome.alerts.append(message)
        self._reporter.alert(message)

    def _skip(self, outcome: ProjectOutcome, message: str) -> StepResult:
        outcome.status = "abandoned"
        outcome.last_state = "materialize"
        self._alert(outcome, message)
        return StepResult.skip(message)
