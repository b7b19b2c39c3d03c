"""
Adapter registry — central dispatch for every external process call.

The rotation engine, workspace manager and publication step never talk
to adapters directly; they hand Actions to the registry. Tests swap in
doubles by registering them under the same name.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from keyrotate.adapters.base import Adapter, ExecutionContext
from keyrotate.core.models.action import Action, Receipt

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Registry and dispatcher for adapters."""

    def __init__(self) -> None:
        self._adapters: dict[str, Adapter] = {}

    def register(self, adapter: Adapter) -> None:
        name = adapter.name
        if name in self._adapters:
            logger.warning("Overwriting existing adapter: %s", name)
        self._adapters[name] = adapter
        logger.debug("Registered adapter: %s", name)

    def unregister(self, name: str) -> None:
        self._adapters.pop(name, None)

    def get(self, name: str) -> Adapter | None:
        return self._adapters.get(name)

    def list_adapters(self) -> list[str]:
        return list(self._adapters.keys())

    def adapter_status(self) -> dict[str, dict[str, Any]]:
        """Availability of every registered adapter's underlying tool."""
        status = {}
        for name, adapter in self._adapters.items():
            try:
                available = adapter.is_available()
            except Exception:
                available = False
            status[name] = {
                "name": name,
                "available": available,
                "type": adapter.__class__.__name__,
            }
        return status

    def execute_action(self, action: Action, cwd: str = ".") -> Receipt:
        """Resolve, validate and execute an action. Never raises.

        Args:
            action: The action to execute.
            cwd: Working directory for the underlying process.

        Returns:
            Receipt with execution results.
        """
        start_time = time.monotonic()

        adapter = self._adapters.get(action.adapter)
        if adapter is None:
            return Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"No adapter registered for '{action.adapter}'",
            )

        context = ExecutionContext(action=action, cwd=cwd, params=action.params)

        try:
            is_valid, error_msg = adapter.validate(context)
        except Exception as e:
            return Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"Validation error: {e}",
            )
        if not is_valid:
            return Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"Validation failed: {error_msg}",
            )

        try:
            receipt = adapter.execute(context)
        except Exception as e:
            # Adapters should never raise
            logger.error("Adapter %s raised during execution: %s", action.adapter, e)
            receipt = Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"Unexpected error: {e}",
            )

        receipt.duration_ms = int((time.monotonic() - start_time) * 1000)

        marker = "✓" if receipt.ok else "✗"
        logger.info("%s %s:%s → %s", marker, action.adapter, action.id, receipt.status)
        return receipt


def default_registry() -> AdapterRegistry:
    """Registry wired with the real git and jet adapters."""
    from keyrotate.adapters.crypto.jet import JetAdapter
    from keyrotate.adapters.vcs.git import GitAdapter

    registry = AdapterRegistry()
    registry.register(GitAdapter())
    registry.register(JetAdapter())
    return registry
