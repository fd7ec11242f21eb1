"""
Adapter registry — central dispatch for tool invocations.

Build steps never talk to adapters directly — always through the
registry held by the BuildContext. This keeps every child process
behind one seam that tests can replace with a MockAdapter.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from nativeforge.adapters.base import Adapter, ExecutionContext
from nativeforge.core.models.action import Action, Receipt

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Central registry and dispatcher for adapters.

    Features:
        - Register/unregister adapters by name
        - Mock mode: route every action to one mock adapter
        - Execute actions through the appropriate adapter
        - Query adapter availability
    """

    def __init__(self, mock_adapter: Adapter | None = None):
        self._adapters: dict[str, Adapter] = {}
        self._mock_adapter = mock_adapter

    @classmethod
    def default(cls) -> AdapterRegistry:
        """Registry with the real subprocess adapter."""
        from nativeforge.adapters.shell.command import ShellCommandAdapter

        registry = cls()
        registry.register(ShellCommandAdapter())
        return registry

    @property
    def mock_mode(self) -> bool:
        return self._mock_adapter is not None

    def set_mock_adapter(self, adapter: Adapter | None) -> None:
        """Route all actions to ``adapter`` (None disables mock mode)."""
        self._mock_adapter = adapter

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
        """Availability of all registered adapters."""
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

    def execute_action(
        self,
        action: Action,
        project_root: str = ".",
        dry_run: bool = False,
    ) -> Receipt:
        """Run an action through its adapter (or the mock). Never raises.

        Args:
            action: The invocation to run.
            project_root: Default working directory when the action has no cwd.
            dry_run: Validate only; return a skipped receipt.
        """
        start_time = time.monotonic()
        context = ExecutionContext(action=action, project_root=project_root, dry_run=dry_run)

        adapter = self._mock_adapter or self._adapters.get(action.adapter)
        if adapter is None:
            return Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"No adapter registered for '{action.adapter}'",
            )

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

        if dry_run:
            return Receipt.skip(
                adapter=action.adapter,
                action_id=action.id,
                reason=f"[dry-run] would run: {action.command_line}",
                metadata={"dry_run": True},
            )

        try:
            receipt = adapter.execute(context)
        except Exception as e:
            logger.error("Adapter %s raised during execution: %s", adapter.name, e)
            receipt = Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"Unexpected error: {e}",
            )

        receipt.duration_ms = int((time.monotonic() - start_time) * 1000)
        return receipt
