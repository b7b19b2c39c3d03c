"""
Jet adapter — encrypt/decrypt files with a project's AES key file.

Wraps ``jet encrypt`` / ``jet decrypt`` from the Codeship Pro CLI. The
rotator never implements encryption itself.
"""

from __future__ import annotations

import logging
import shutil

from keyrotate.adapters.base import Adapter, ExecutionContext
from keyrotate.adapters.process import run_captured
from keyrotate.core.models.action import Receipt

logger = logging.getLogger(__name__)


class JetAdapter(Adapter):
    """Symmetric file encryption via the jet CLI.

    Action params:
        operation (str): 'encrypt' or 'decrypt'.
        key_path (str): Path to the AES key file.
        source (str): Input file.
        target (str): Output file (created or overwritten).
        timeout (int): Optional timeout in seconds (default: none).
    """

    def __init__(self, executable: str = "jet"):
        self._executable = executable

    @property
    def name(self) -> str:
        return "jet"

    def is_available(self) -> bool:
        return shutil.which(self._executable) is not None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        params = context.action.params
        operation = params.get("operation", "")
        if operation not in ("encrypt", "decrypt"):
            return False, f"Unknown operation '{operation}'. Valid: decrypt, encrypt"
        for key in ("key_path", "source", "target"):
            if not params.get(key):
                return False, f"Missing required param: '{key}'"
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        params = context.action.params
        argv = [
            self._executable,
            params["operation"],
            "--key-path",
            params["key_path"],
            params["source"],
            params["target"],
        ]
        return run_captured(
            adapter=self.name,
            action_id=context.action.id,
            argv=argv,
            cwd=context.cwd,
            timeout=params.get("timeout"),
            metadata={"operation": params["operation"], "target": params["target"]},
        )
