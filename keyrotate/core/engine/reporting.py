"""
Reporter — where operator-facing progress and alerts go.

The base class routes everything through logging so the engine can run
headless (tests, log-file-only runs). The CLI swaps in a console
reporter that prints to stdout with ALERT framing. AES keys only ever go
through ``key_material``, which never logs them.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

ALERT_PREFIX = "ALERT!!!!"


class Reporter:
    """Progress sink used by the pipeline and rotation engine."""

    def banner(self, title: str) -> None:
        logger.info("── %s", title)

    def info(self, message: str) -> None:
        logger.info(message)

    def success(self, message: str) -> None:
        logger.info(message)

    def warn(self, message: str) -> None:
        logger.warning(message)

    def alert(self, message: str) -> None:
        """Something the operator must act on; the batch carries on."""
        logger.error("%s %s", ALERT_PREFIX, message)

    def key_material(self, message: str) -> None:
        """Show AES keys the operator needs for a manual fix.

        Key material must never reach a log file or the audit trail, so the
        headless reporter only notes that it was withheld. The console
        reporter prints it to the terminal.
        """
        logger.error(
            "%s key material withheld from logs; it is only shown on the console", ALERT_PREFIX
        )
