"""
Process runner shared by command-line adapters.

Runs a command with stdout and stderr merged (the order an operator
would see in a terminal) and turns the result into a Receipt.
"""

from __future__ import annotations

import logging
import subprocess
import time
from typing import Any

from keyrotate.core.models.action import Receipt

logger = logging.getLogger(__name__)


def run_captured(
    adapter: str,
    action_id: str,
    argv: list[str],
    cwd: str,
    timeout: int | None = None,
    metadata: dict[str, Any] | None = None,
) -> Receipt:
    """Run ``argv`` in ``cwd`` and return a Receipt. Never raises."""
    meta = {"command": " ".join(argv), **(metadata or {})}
    logger.debug("Executing: %s (cwd=%s)", meta["command"], cwd)
    start = time.monotonic()

    try:
        result = subprocess.run(
            argv,
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        return Receipt.failure(
            adapter=adapter,
            action_id=action_id,
            error=f"Command timed out after {timeout}s",
            metadata=meta,
        )
    except FileNotFoundError as e:
        return Receipt.failure(
            adapter=adapter,
            action_id=action_id,
            error=f"Executable not found: {e.filename or argv[0]}",
            metadata=meta,
        )
    except OSError as e:
        return Receipt.failure(
            adapter=adapter,
            action_id=action_id,
            error=f"Command execution error: {e}",
            metadata=meta,
        )

    elapsed_ms = int((time.monotonic() - start) * 1000)
    output = (result.stdout or "").strip()
    meta["return_code"] = result.returncode

    if result.returncode == 0:
        return Receipt.success(
            adapter=adapter,
            action_id=action_id,
            output=output,
            duration_ms=elapsed_ms,
            metadata=meta,
        )
    return Receipt.failure(
        adapter=adapter,
        action_id=action_id,
        error=f"{meta['command']} exited with code {result.returncode}",
        output=output,
        duration_ms=elapsed_ms,
        metadata=meta,
    )
