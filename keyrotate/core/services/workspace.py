"""
Workspace manager — a project's local checkout for the length of its run.

Covers the whole lifetime of the directory: clone (+ optional base branch
checkout), the temporary AES key file, removal of key and decrypted
artifacts, and the final recursive delete. Teardown is best-effort and
never raises; the batch must carry on even if a directory is stuck.
"""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

from keyrotate.adapters.registry import AdapterRegistry
from keyrotate.core.models.action import Action, Receipt
from keyrotate.core.models.project import CIProject

logger = logging.getLogger(__name__)

KEY_FILENAME = "codeship.aes"
DECRYPTED_MARKER = "decrypted"

PROVIDER_HOSTS = {
    "github": "github.com",
    "bitbucket": "bitbucket.org",
}


class WorkspaceError(Exception):
    """The workspace could not be prepared; the project is skipped."""

    def __init__(self, message: str, receipt: Receipt | None = None):
        super().__init__(message)
        self.receipt = receipt


class CloneError(WorkspaceError):
    """git clone failed (or no clone URL could be derived)."""


class CheckoutError(WorkspaceError):
    """The configured base branch could not be checked out."""


class CleanupError(Exception):
    """Key material or a decrypted artifact could not be deleted."""


def clone_url(project: CIProject) -> str:
    """SSH clone URL for the project's provider, or "" if unsupported."""
    host = PROVIDER_HOSTS.get(project.repository_provider.lower())
    if not host:
        return ""
    return f"git@{host}:{project.name}.git"


class WorkspaceManager:
    """Materializes and tears down per-project working directories.

    All workspaces live directly under ``base_dir``; every process call
    gets an explicit cwd, so the process working directory never moves.
    """

    def __init__(
        self,
        registry: AdapterRegistry,
        base_dir: Path,
        checkout_branch: str = "",
    ):
        self._registry = registry
        self._base_dir = base_dir
        self._checkout_branch = checkout_branch

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def workspace_path(self, project: CIProject) -> Path:
        return self._base_dir / project.folder_name

    # ── Lifecycle ───────────────────────────────────────────────

    def materialize(self, project: CIProject) -> Path:
        """Clone the project and check out the base branch if configured.

        A directory already at the destination is only removed when it is a
        checkout left behind by an interrupted run (see ``is_leftover``);
        anything else is refused untouched. Whatever this call creates is
        removed again if a later step fails.

        Raises:
            CloneError: Clone failed, the provider is unsupported, or the
                destination is taken by a directory we did not create.
            CheckoutError: The base branch checkout failed.
            WorkspaceError: The checkout directory is missing after cloning.
        """
        dest = self.workspace_path(project)

        if dest.exists():
            if not self.is_leftover(dest):
                raise CloneError(
                    f"destination {dest} already exists and was not created by this tool; "
                    "move it away and rerun"
                )
            logger.warning("Removing stale workspace %s left by an earlier run", dest)
            if not self.teardown(dest):
                raise CloneError(f"stale workspace {dest} could not be removed")

        try:
            self._clone(project, dest)
        except WorkspaceError:
            if dest.exists():
                self.teardown(dest)
            raise
        return dest

    def is_leftover(self, path: Path) -> bool:
        """True for a git checkout still holding our key or decrypted files."""
        if not path.is_dir() or not (path / ".git").exists():
            return False
        try:
            names = self.list_files(path)
        except WorkspaceError:
            return False
        return any(name == KEY_FILENAME or name.endswith(DECRYPTED_MARKER) for name in names)

    def _clone(self, project: CIProject, dest: Path) -> None:
        url = clone_url(project)
        logger.info("Cloning %s into %s", url or "<no url>", dest)
        receipt = self._registry.execute_action(
            Action(
                id="clone",
                adapter="git",
                params={"operation": "clone", "url": url, "dest": dest.name},
                for_project=project.name,
            ),
            cwd=str(self._base_dir),
        )
        if not receipt.ok:
            raise CloneError(
                f"failed to clone repo {url or '<unsupported provider>'}, "
                f"error: {receipt.describe_failure()}",
                receipt,
            )

        if not dest.is_dir():
            raise WorkspaceError(f"failed to change dir into {dest} after clone")

        if self._checkout_branch:
            receipt = self._registry.execute_action(
                Action(
                    id="checkout",
                    adapter="git",
                    params={"operation": "checkout", "branch": self._checkout_branch},
                    for_project=project.name,
                ),
                cwd=str(dest),
            )
            if not receipt.ok:
                raise CheckoutError(
                    f"failed to checkout branch {self._checkout_branch}, "
                    f"error: {receipt.describe_failure()}",
                    receipt,
                )

    def teardown(self, path: Path) -> bool:
        """Recursively delete a workspace. Logs, never raises."""
        if not path.exists():
            return True
        try:
            shutil.rmtree(path)
        except OSError as e:
            logger.error("failed to remove repo folder %s, error: %s", path, e)
            return False
        logger.debug("Removed workspace %s", path)
        return True

    # ── Contents ────────────────────────────────────────────────

    def list_files(self, path: Path) -> list[str]:
        """Top-level regular files (non-recursive), sorted by name.

        Raises:
            WorkspaceError: The directory could not be read.
        """
        try:
            return sorted(entry.name for entry in path.iterdir() if entry.is_file())
        except OSError as e:
            raise WorkspaceError(f"unable to list files in {path}: {e}") from e

    def key_path(self, path: Path) -> Path:
        return path / KEY_FILENAME

    def write_key_file(self, path: Path, key: str) -> Path:
        """Write key material to the fixed key filename (mode 0600).

        Raises:
            OSError: The file could not be written.
        """
        target = self.key_path(path)
        logger.info("creating AES key file: %s", target)
        fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(key)
        return target

    def remove_key_file(self, path: Path) -> None:
        """Delete the key file.

        Raises:
            OSError: Including FileNotFoundError when it is already gone.
        """
        self.key_path(path).unlink()

    def cleanup_artifacts(self, path: Path) -> list[str]:
        """Remove the key file and every top-level ``*decrypted`` file.

        Returns:
            Names of the files removed.

        Raises:
            CleanupError: Something could not be deleted.
        """
        removed: list[str] = []

        key = self.key_path(path)
        try:
            if key.exists():
                key.unlink()
                removed.append(key.name)
        except OSError as e:
            raise CleanupError(f"FAILED TO DELETE FILE: {key} ({e})") from e

        try:
            names = self.list_files(path)
        except WorkspaceError as e:
            raise CleanupError(str(e)) from e

        for name in names:
            if not name.endswith(DECRYPTED_MARKER):
                continue
            target = path / name
            try:
                target.unlink()
            except OSError as e:
                raise CleanupError(f"FAILED TO DELETE FILE: {target} ({e})") from e
            removed.append(name)

        for name in removed:
            logger.info("deleted %s/%s", path, name)
        return removed
