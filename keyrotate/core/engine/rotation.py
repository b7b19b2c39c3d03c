"""
Secret rotation engine — the per-project state machine.

States run strictly in order and never go back:

    SCAN → DECIDE → MATERIALIZE_OLD_KEY → DECRYPT_AND_SUBSTITUTE
         → RESET_KEY → MATERIALIZE_NEW_KEY → REENCRYPT → CLEANUP

Each handler returns a tagged StepResult:

    continue      → next state
    complete      → project is done (publication/ledger follow in the pipeline)
    skip_project  → abandon this project, batch continues, NOT recorded
    abort_run     → stop the whole batch (needs an operator)

The safety line is RESET_KEY. Anything that fails before it leaves the
remote key untouched and is safe to retry on a later run. After it, the
old key is gone from the platform, so failures are reported but cannot
be undone; the one unrecoverable case (old key file stuck, new one not
written) aborts the run.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Protocol

from keyrotate.adapters.registry import AdapterRegistry
from keyrotate.core.engine.reporting import Reporter
from keyrotate.core.models.action import Action
from keyrotate.core.models.config import RotationConfig
from keyrotate.core.models.project import CIProject
from keyrotate.core.models.report import ProjectOutcome, RunReport, StepResult
from keyrotate.core.services.codeship_api import CodeshipAPIError
from keyrotate.core.services.secrets import (
    decrypted_name,
    find_encrypted_files,
    replace_secrets_in_file,
)
from keyrotate.core.services.workspace import CleanupError, WorkspaceError, WorkspaceManager

logger = logging.getLogger(__name__)


class RotationState(str, Enum):
    SCAN = "scan"
    DECIDE = "decide"
    MATERIALIZE_OLD_KEY = "materialize_old_key"
    DECRYPT_AND_SUBSTITUTE = "decrypt_and_substitute"
    RESET_KEY = "reset_key"
    MATERIALIZE_NEW_KEY = "materialize_new_key"
    REENCRYPT = "reencrypt"
    CLEANUP = "cleanup"
    PUBLISH = "publish"
    LEDGER_RECORD = "ledger_record"
    TEARDOWN = "teardown"


# States the engine itself drives; the rest belong to the pipeline.
ENGINE_STATES: tuple[RotationState, ...] = (
    RotationState.SCAN,
    RotationState.DECIDE,
    RotationState.MATERIALIZE_OLD_KEY,
    RotationState.DECRYPT_AND_SUBSTITUTE,
    RotationState.RESET_KEY,
    RotationState.MATERIALIZE_NEW_KEY,
    RotationState.REENCRYPT,
    RotationState.CLEANUP,
)


class KeyResetter(Protocol):
    def reset_project_aes_key(self, project_uuid: str) -> CIProject: ...


@dataclass
class WorkItem:
    """A project paired with its checkout and discovered encrypted files."""

    project: CIProject
    workspace: Path
    files: list[str] = field(default_factory=list)
    new_key: str = ""

    @property
    def has_secrets(self) -> bool:
        return bool(self.files)


class RotationEngine:
    """Drives one project from SCAN to CLEANUP."""

    def __init__(
        self,
        registry: AdapterRegistry,
        workspaces: WorkspaceManager,
        api: KeyResetter,
        config: RotationConfig,
        reporter: Reporter | None = None,
    ):
        self._registry = registry
        self._workspaces = workspaces
        self._api = api
        self._config = config
        self._reporter = reporter or Reporter()
        self._handlers: dict[
            RotationState, Callable[[WorkItem, ProjectOutcome, RunReport], StepResult]
        ] = {
            RotationState.SCAN: self._scan,
            RotationState.DECIDE: self._decide,
            RotationState.MATERIALIZE_OLD_KEY: self._materialize_old_key,
            RotationState.DECRYPT_AND_SUBSTITUTE: self._decrypt_and_substitute,
            RotationState.RESET_KEY: self._reset_key,
            RotationState.MATERIALIZE_NEW_KEY: self._materialize_new_key,
            RotationState.REENCRYPT: self._reencrypt,
            RotationState.CLEANUP: self._cleanup,
        }

    def rotate(self, item: WorkItem, outcome: ProjectOutcome, report: RunReport) -> StepResult:
        """Run every engine state for ``item`` until one stops the flow.

        ``outcome`` is filled in as states complete; its ``status`` is
        set to the terminal status before returning.
        """
        for state in ENGINE_STATES:
            outcome.last_state = state.value
            logger.debug("%s → %s", item.project.name, state.value)
            result = self._handlers[state](item, outcome, report)

            if result.kind == "continue":
                continue
            if result.kind == "complete":
                if outcome.status != "no_secrets":
                    outcome.status = "completed"
            elif result.kind == "abort_run":
                outcome.status = "aborted"
            else:
                outcome.status = "abandoned"
            return result

        # Failed encryptions and blocked pushes still count as completed;
        # they surface through alerts and publish_blocked instead.
        outcome.status = "completed"
        return StepResult.done()

    # ── States ──────────────────────────────────────────────────

    def _scan(self, item: WorkItem, outcome: ProjectOutcome, report: RunReport) -> StepResult:
        try:
            names = self._workspaces.list_files(item.workspace)
        except WorkspaceError as e:
            return self._abort(outcome, f"unable to read project directory: {e}")

        matched = find_encrypted_files(names, self._config.encrypted_file_regexes)
        unique = list(dict.fromkeys(matched))
        if len(unique) != len(matched):
            self._reporter.warn(
                f"{len(matched) - len(unique)} duplicate pattern matches in "
                f"{item.project.name}; each file is processed once"
            )

        item.files = unique
        outcome.encrypted_files = list(unique)

        if unique:
            self._reporter.info("found encrypted files: \n" + "\n".join(unique))
        else:
            self._reporter.info(f"no encrypted files found for project {item.project.name}")
        return StepResult.proceed()

    def _decide(self, item: WorkItem, outcome: ProjectOutcome, report: RunReport) -> StepResult:
        if item.has_secrets or self._config.reset_keys_in_projects_without_encrypted_files:
            return StepResult.proceed()
        outcome.status = "no_secrets"
        self._reporter.info(
            "since no encrypted files were found, will not rotate key, proceeding to next project..."
        )
        return StepResult.done("no encrypted files")

    def _materialize_old_key(
        self, item: WorkItem, outcome: ProjectOutcome, report: RunReport
    ) -> StepResult:
        if not item.has_secrets:
            return StepResult.proceed()
        try:
            self._workspaces.write_key_file(item.workspace, item.project.aes_key)
        except OSError as e:
            return self._abandon(
                item, outcome, f"failed to create AES file for project {item.project.name}: {e}"
            )
        return StepResult.proceed()

    def _decrypt_and_substitute(
        self, item: WorkItem, outcome: ProjectOutcome, report: RunReport
    ) -> StepResult:
        key_path = str(self._workspaces.key_path(item.workspace))
        rules = self._config.substitution_rules

        for name in item.files:
            target = decrypted_name(name)
            self._reporter.info(f"Decrypting {name} to {target} ...")
            receipt = self._registry.execute_action(
                Action(
                    id=f"decrypt:{name}",
                    adapter="jet",
                    params={
                        "operation": "decrypt",
                        "key_path": key_path,
                        "source": name,
                        "target": target,
                    },
                    for_project=item.project.name,
                ),
                cwd=str(item.workspace),
            )
            if not receipt.ok:
                return self._abandon(
                    item,
                    outcome,
                    f"failed to decrypt {name}, error: {receipt.describe_failure()}",
                )

            try:
                count = replace_secrets_in_file(item.workspace / target, rules)
            except OSError as e:
                return self._abandon(
                    item, outcome, f"failed to replace secrets in file {name}, error: {e}"
                )

            report.record_count(item.project.name, name, count)
            self._reporter.info(f"Replaced {count} strings in {target}")

        return StepResult.proceed()

    def _reset_key(self, item: WorkItem, outcome: ProjectOutcome, report: RunReport) -> StepResult:
        try:
            updated = self._api.reset_project_aes_key(item.project.uuid)
        except CodeshipAPIError as e:
            # The platform may have reset the key before the call failed.
            self._reporter.key_material(
                f"AES key reset for {item.project.name} may or may not have happened; "
                f"the committed files are still encrypted with the old key ({item.project.aes_key})"
            )
            return self._abandon(
                item,
                outcome,
                f"failed to reset AES key for project {item.project.name} on Codeship: {e}; "
                "check the project's current key before the next run",
            )

        item.new_key = updated.aes_key
        outcome.key_rotated = True
        self._reporter.success(f"AES key reset for {item.project.name}")
        return StepResult.proceed()

    def _materialize_new_key(
        self, item: WorkItem, outcome: ProjectOutcome, report: RunReport
    ) -> StepResult:
        if not item.has_secrets:
            return StepResult.proceed()

        try:
            self._workspaces.remove_key_file(item.workspace)
        except OSError as e:
            self._reporter.key_material(
                f"decrypt {item.project.name} files with old key ({item.project.aes_key}) "
                f"and reencrypt with new key ({item.new_key})"
            )
            return self._abort(
                outcome,
                f"unable to delete previous aes file after resetting project aes key: {e}\n"
                "UH OH!!!, manual intervention required. you'll need to decrypt files with "
                "the old key and reencrypt with the new key (both shown on the console)",
            )

        try:
            self._workspaces.write_key_file(item.workspace, item.new_key)
        except OSError as e:
            self._reporter.key_material(
                f"reencrypt {item.project.name} decrypted files with new key ({item.new_key})"
            )
            return self._abort(
                outcome,
                f"failed to create updated AES file for project {item.project.name}: {e}\n"
                "UH OH!!!, manual intervention required. you'll need to reencrypt the "
                "decrypted files with the new key (shown on the console)",
            )
        return StepResult.proceed()

    def _reencrypt(self, item: WorkItem, outcome: ProjectOutcome, report: RunReport) -> StepResult:
        key_path = str(self._workspaces.key_path(item.workspace))

        for name in item.files:
            source = decrypted_name(name)
            self._reporter.info(f"Encrypting {source} to {name} ...")
            receipt = self._registry.execute_action(
                Action(
                    id=f"encrypt:{name}",
                    adapter="jet",
                    params={
                        "operation": "encrypt",
                        "key_path": key_path,
                        "source": source,
                        "target": name,
                    },
                    for_project=item.project.name,
                ),
                cwd=str(item.workspace),
            )
            if not receipt.ok:
                outcome.failed_encryptions.append(name)
                self._alert(
                    outcome, f"failed to encrypt {name}, error: {receipt.describe_failure()}"
                )

        if outcome.failed_encryptions and self._config.require_full_reencryption:
            self._cleanup_quietly(item, outcome)
            return StepResult.skip(
                f"{len(outcome.failed_encryptions)} file(s) were not re-encrypted with the new "
                "key; not publishing or recording this project. manual intervention required"
            )
        return StepResult.proceed()

    def _cleanup(self, item: WorkItem, outcome: ProjectOutcome, report: RunReport) -> StepResult:
        if not item.has_secrets:
            return StepResult.proceed()
        try:
            self._workspaces.cleanup_artifacts(item.workspace)
        except CleanupError as e:
            outcome.publish_blocked = True
            self._alert(
                outcome,
                f"unable to cleanup folder before pushing branch, WONT PUSH AUTOMATICALLY!!! {e}",
            )
        return StepResult.proceed()

    # ── Helpers ─────────────────────────────────────────────────

    def _alert(self, outcome: ProjectOutcome, message: str) -> None:
        outcome.alerts.append(message)
        self._reporter.alert(message)

    def _cleanup_quietly(self, item: WorkItem, outcome: ProjectOutcome) -> None:
        try:
            self._workspaces.cleanup_artifacts(item.workspace)
        except CleanupError as e:
            self._alert(outcome, str(e))

    def _abandon(self, item: WorkItem, outcome: ProjectOutcome, message: str) -> StepResult:
        """Remove key/decrypted artifacts and skip the project."""
        self._alert(outcome, message)
        self._cleanup_quietly(item, outcome)
        return StepResult.skip(message)

    def _abort(self, outcome: ProjectOutcome, message: str) -> StepResult:
        self._alert(outcome, message)
        return StepResult.abort(message)
