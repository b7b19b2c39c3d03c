"""
Git adapter — the version-control operations a rotation needs.

clone, checkout, branch creation, add, commit and push, all through the
git CLI. Authentication is whatever the operator's SSH agent provides.
"""

from __future__ import annotations

import logging
import shutil

from keyrotate.adapters.base import Adapter, ExecutionContext
from keyrotate.adapters.process import run_captured
from keyrotate.core.models.action import Receipt

logger = logging.getLogger(__name__)


class GitAdapter(Adapter):
    """Git version control operations.

    Action params:
        operation (str): One of 'clone', 'checkout', 'create_branch',
                         'add', 'commit', 'push'.
        url (str): Repository URL (for 'clone').
        dest (str): Target directory name (for 'clone', optional).
        branch (str): Branch name (for 'checkout', 'create_branch',
                      and 'push' with set_upstream).
        pathspec (str): What to stage (for 'add').
        message (str): Commit message (for 'commit').
        remote (str): Remote name (for 'push', default: origin).
        set_upstream (bool): Push with -u (for 'push').
        timeout (int): Optional timeout in seconds (default: none).
    """

    _REQUIRED = {
        "clone": ("url",),
        "checkout": ("branch",),
        "create_branch": ("branch",),
        "add": ("pathspec",),
        "commit": ("message",),
        "push": (),
    }

    @property
    def name(self) -> str:
        return "git"

    def is_available(self) -> bool:
        return shutil.which("git") is not None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        params = context.action.params
        operation = params.get("operation", "")
        if not operation:
            return False, "Missing required param: 'operation'"

        if operation not in self._REQUIRED:
            valid = ", ".join(sorted(self._REQUIRED))
            return False, f"Unknown operation '{operation}'. Valid: {valid}"

        for key in self._REQUIRED[operation]:
            if not params.get(key):
                return False, f"Missing required param: '{key}' for {operation} operation"

        if operation == "push" and params.get("set_upstream") and not params.get("branch"):
            return False, "Missing required param: 'branch' for upstream push"

        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        params = context.action.params
        argv = self._argv(params)
        return run_captured(
            adapter=self.name,
            action_id=context.action.id,
            argv=argv,
            cwd=context.cwd,
            timeout=params.get("timeout"),
            metadata={"operation": params["operation"]},
        )

    @staticmethod
    def _argv(params: dict) -> list[str]:
        operation = params["operation"]
        if operation == "clone":
            argv = ["git", "clone", params["url"]]
            if params.get("dest"):
                argv.append(params["dest"])
            return argv
        if operation == "checkout":
            return ["git", "checkout", params["branch"]]
        if operation == "create_branch":
            return ["git", "checkout", "-b", params["branch"]]
        if operation == "add":
            return ["git", "add", params["pathspec"]]
        if operation == "commit":
            return ["git", "commit", "-m", params["message"]]
        # push
        if params.get("set_upstream"):
            return ["git", "push", "-u", params.get("remote", "origin"), params["branch"]]
        return ["git", "push"]
