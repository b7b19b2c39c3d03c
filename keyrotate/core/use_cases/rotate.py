"""
Rotate use case — one full batch run, from config to report.

    load config → credentials → organization → ledger → select batch
        → list batch → pause → preflight → run batch

Everything before the pause is read-only; the operator can interrupt
during the pause with nothing changed. Errors are returned on the
result rather than raised so the CLI decides how to present them.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

from keyrotate.adapters.registry import AdapterRegistry, default_registry
from keyrotate.core.config.loader import (
    ConfigError,
    ConfigTemplateCreated,
    default_config_path,
    load_config,
    load_credentials,
)
from keyrotate.core.engine.pipeline import BatchResult, RotationPipeline
from keyrotate.core.engine.reporting import Reporter
from keyrotate.core.models.project import CIProject
from keyrotate.core.persistence.audit import DEFAULT_AUDIT_FILE, AuditWriter
from keyrotate.core.persistence.ledger import DEFAULT_LEDGER_FILE, CompletedLedger, LedgerError
from keyrotate.core.services.codeship_api import CodeshipAPIError, CodeshipClient
from keyrotate.core.services.selector import SelectionError, select_projects

logger = logging.getLogger(__name__)

PAUSE_SECONDS = 20


@dataclass
class RotateResult:
    """Result of one rotation run."""

    batch: BatchResult | None = None
    selected: list[CIProject] = field(default_factory=list)
    config_created: Path | None = None
    error: str | None = None

    @property
    def exit_code(self) -> int:
        if self.error:
            return 1
        if self.batch is not None and self.batch.aborted:
            return 1
        return 0

    def to_dict(self) -> dict:
        result: dict = {"selected": [p.name for p in self.selected]}
        if self.error:
            result["error"] = self.error
        if self.config_created:
            result["config_created"] = str(self.config_created)
        if self.batch:
            result["batch"] = self.batch.to_dict()
        return result


def run_rotation(
    config_path: Path | None = None,
    ledger_path: Path | None = None,
    audit_path: Path | None = None,
    base_dir: Path | None = None,
    environ: Mapping[str, str] | None = None,
    client: CodeshipClient | None = None,
    registry: AdapterRegistry | None = None,
    reporter: Reporter | None = None,
    pause_seconds: float = PAUSE_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
) -> RotateResult:
    """Rotate the AES keys of the next batch of projects.

    Args:
        config_path: Path to config.json (default: ./config.json).
        ledger_path: Completed-projects ledger (default: ./completed-projects.txt).
        audit_path: NDJSON audit history (default: ./rotation-audit.ndjson).
        base_dir: Directory projects are cloned into (default: cwd).
        environ: Environment to read credentials from (default: os.environ).
        client: Pre-built API client; skips credential loading.
        registry: Pre-configured adapter registry (default: git + jet).
        reporter: Progress sink (default: logging only).
        pause_seconds: Grace period between listing the batch and acting on it.
        sleep: Sleep function, replaceable in tests.

    Returns:
        RotateResult with the batch outcome or an error.
    """
    result = RotateResult()
    base_dir = base_dir or Path.cwd()
    reporter = reporter or Reporter()

    # ── Configuration ────────────────────────────────────────────
    try:
        config = load_config(config_path or default_config_path(base_dir))
    except ConfigTemplateCreated as e:
        result.config_created = e.path
        reporter.info(str(e))
        return result
    except ConfigError as e:
        result.error = str(e)
        return result

    # ── Platform client ──────────────────────────────────────────
    if client is None:
        try:
            client = CodeshipClient(load_credentials(environ))
        except ConfigError as e:
            result.error = str(e)
            return result

    try:
        client.select_organization()
    except CodeshipAPIError as e:
        result.error = f"failed to authenticate with Codeship: {e}"
        return result

    # ── Select batch ─────────────────────────────────────────────
    ledger = CompletedLedger(ledger_path or base_dir / DEFAULT_LEDGER_FILE)
    try:
        completed = ledger.read_names()
    except LedgerError as e:
        result.error = f"{e}; fix or move the file before rotating again"
        return result
    logger.info("%d projects already completed per %s", len(completed), ledger.path)

    try:
        selected = select_projects(client, config, completed)
    except SelectionError as e:
        result.error = str(e)
        return result
    result.selected = selected

    if not selected:
        reporter.info("no projects to be rotated")
        return result

    lines = [f"Found {len(selected)} projects:"]
    lines += [f"  {i} - {p.name}" for i, p in enumerate(selected, start=1)]
    reporter.info("\n".join(lines))

    # ── Grace period ─────────────────────────────────────────────
    if pause_seconds > 0:
        reporter.warn(
            f"Will sleep for {pause_seconds:g} seconds, so bail now or forever hold your peace..."
        )
        sleep(pause_seconds)

    # ── Run ──────────────────────────────────────────────────────
    if registry is None:
        registry = default_registry()

    for name, status in registry.adapter_status().items():
        if not status["available"]:
            reporter.warn(f"{name} does not appear to be installed; its steps will fail")

    pipeline = RotationPipeline(
        registry=registry,
        api=client,
        config=config,
        ledger=ledger,
        base_dir=base_dir,
        reporter=reporter,
        audit=AuditWriter(audit_path or base_dir / DEFAULT_AUDIT_FILE),
    )
    result.batch = pipeline.run_batch(selected)

    if result.batch.aborted:
        logger.error("Run %s aborted: %s", pipeline.run_id, result.batch.abort_reason)
    return result
