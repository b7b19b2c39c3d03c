"""
Completed-projects ledger — plain-text, newline-delimited, append-only.

A project name lands here once its rotation pipeline reaches a terminal
"done" state. The selector consults the ledger so repeated runs never
touch the same project twice. Entries are never rewritten or removed.
"""

from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_LEDGER_FILE = "completed-projects.txt"


class LedgerError(Exception):
    """The ledger exists but cannot be read."""


class CompletedLedger:
    """Reader/appender for the completed-projects file.

    A missing file means "nothing completed yet", not an error. A file
    that exists but cannot be read is: treating it as empty would select
    every completed project again.
    """

    def __init__(self, path: Path | None = None):
        self._path = path if path is not None else Path(DEFAULT_LEDGER_FILE)

    @property
    def path(self) -> Path:
        return self._path

    def read_names(self) -> set[str]:
        """All recorded project names (blank lines ignored).

        Raises:
            LedgerError: The file exists but is unreadable or not UTF-8.
        """
        if not self._path.exists():
            return set()
        try:
            text = self._path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise LedgerError(f"cannot read ledger {self._path}: {e}") from e
        return {line.strip() for line in text.splitlines() if line.strip()}

    def contains(self, name: str) -> bool:
        return name in self.read_names()

    def append(self, name: str) -> bool:
        """Append one project name.

        Returns:
            True if written. Failures are logged and reported as False,
            never raised.
        """
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(name + "\n")
        except OSError as e:
            logger.error("Failed to append %s to %s: %s", name, self._path, e)
            return False
        logger.debug("Ledger entry written: %s", name)
        return True
