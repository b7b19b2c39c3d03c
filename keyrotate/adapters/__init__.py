"""Adapters — bindings for the external tools a rotation drives.

Public re-exports for convenient access.
"""

from keyrotate.adapters.base import Adapter, ExecutionContext
from keyrotate.adapters.registry import AdapterRegistry, default_registry

__all__ = [
    "Adapter",
    "AdapterRegistry",
    "ExecutionContext",
    "default_registry",
]
