"""
Rotation audit — append-only history of per-project outcomes.

Every project the pipeline touches writes one NDJSON line: which state
it reached, whether the key was rotated, and any alerts raised. Unlike
the completed ledger this is never read by the selector; it exists so
an operator can reconstruct what a past run did.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from keyrotate.core.models.report import ProjectOutcome

logger = logging.getLogger(__name__)

DEFAULT_AUDIT_FILE = "rotation-audit.ndjson"


class AuditEntry(BaseModel):
    """A single audit log entry."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    run_id: str = ""
    project: str = ""
    status: str = ""               # completed, no_secrets, abandoned, aborted
    last_state: str = ""
    key_rotated: bool = False
    published: bool = False
    recorded: bool = False
    encrypted_files: list[str] = Field(default_factory=list)
    failed_encryptions: list[str] = Field(default_factory=list)
    alerts: list[str] = Field(default_factory=list)
    context: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_outcome(cls, outcome: ProjectOutcome, run_id: str = "") -> AuditEntry:
        return cls(
            run_id=run_id,
            project=outcome.project,
            status=outcome.status,
            last_state=outcome.last_state,
            key_rotated=outcome.key_rotated,
            published=outcome.published,
            recorded=outcome.recorded,
            encrypted_files=list(outcome.encrypted_files),
            failed_encryptions=list(outcome.failed_encryptions),
            alerts=list(outcome.alerts),
        )


class AuditWriter:
    """Append-only audit writer.

    Each call to write() appends a single JSON line. Write failures are
    logged, never raised.
    """

    def __init__(self, path: Path | None = None):
        self._path = path if path is not None else Path(DEFAULT_AUDIT_FILE)

    @property
    def path(self) -> Path:
        return self._path

    def write(self, entry: AuditEntry) -> None:
        data = entry.model_dump(mode="json")
        line = json.dumps(data, ensure_ascii=False) + "\n"

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line)
            logger.debug("Audit entry written: %s/%s", entry.project, entry.status)
        except OSError as e:
            logger.error("Failed to write audit entry: %s", e)

    def read_all(self) -> list[AuditEntry]:
        """Read all entries, oldest first. Corrupt lines are skipped."""
        if not self._path.is_file():
            return []

        entries = []
        try:
            with self._path.open("r", encoding="utf-8") as f:
                for line_num, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        entries.append(AuditEntry.model_validate_json(line))
                    except ValueError as e:
                        logger.warning("Skipping corrupt audit entry at line %d: %s", line_num, e)
        except OSError as e:
            logger.error("Failed to read audit log: %s", e)

        return entries

    def read_recent(self, n: int = 20) -> list[AuditEntry]:
        return self.read_all()[-n:]
