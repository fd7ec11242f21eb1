"""Adapters — the seam between build steps and external tools.

Public re-exports for convenient access.
"""

from nativeforge.adapters.base import Adapter, ExecutionContext
from nativeforge.adapters.mock import MockAdapter
from nativeforge.adapters.registry import AdapterRegistry

__all__ = [
    "Adapter",
    "AdapterRegistry",
    "ExecutionContext",
    "MockAdapter",
]
