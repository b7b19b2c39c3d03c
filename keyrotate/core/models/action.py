"""
Action and Receipt models — the external-call contract.

Every external process the rotation touches (git, jet) is requested as
an Action and answered with a Receipt. Adapters never raise: a failed
clone or decrypt comes back as a Receipt with status='failed' and the
captured process output, which is what ends up in operator alerts.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Action(BaseModel):
    """A requested external operation.

    ``id`` is stable and human-readable (``clone``, ``decrypt:app.encrypted``)
    so test doubles can target a single step.
    """

    id: str
    adapter: str                        # which adapter handles this
    params: dict[str, Any] = Field(default_factory=dict)
    for_project: str | None = None      # qualified project name, if any


class Receipt(BaseModel):
    """Result of an adapter execution.

    ``output`` holds the combined stdout/stderr of the underlying command
    so failures can be reported verbatim.
    """

    adapter: str
    action_id: str
    status: Literal["ok", "failed"] = "ok"

    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    output: str = ""
    error: str | None = None

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Whether the action succeeded."""
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        """Whether the action failed."""
        return self.status == "failed"

    def describe_failure(self) -> str:
        """One-line failure summary with captured output appended."""
        message = self.error or "unknown error"
        if self.output:
            return f"{message}, output: {self.output}"
        return message

    @classmethod
    def success(
        cls,
        adapter: str,
        action_id: str,
        output: str = "",
        **kwargs: Any,
    ) -> Receipt:
        """Create a success receipt."""
        return cls(
            adapter=adapter,
            action_id=action_id,
            status="ok",
            output=output,
            **kwargs,
        )

    @classmethod
    def failure(
        cls,
        adapter: str,
        action_id: str,
        error: str,
        **kwargs: Any,
    ) -> Receipt:
        """Create a failure receipt."""
        return cls(
            adapter=adapter,
            action_id=action_id,
            status="failed",
            error=error,
            **kwargs,
        )
