"""
Adapter base — the contract between build steps and external tools.

The compiler, the archiver and the downstream build tool are black
boxes. Steps describe what to run as an Action; an adapter runs it and
answers with a Receipt. Adapters never raise: every failure, including
a missing executable or a timeout, comes back as a failed Receipt.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel

from nativeforge.core.models.action import Action, Receipt


class ExecutionContext(BaseModel):
    """Everything an adapter needs to run one action."""

    action: Action
    project_root: str = "."
    dry_run: bool = False

    @property
    def working_dir(self) -> str:
        """Resolved working directory for the action."""
        return self.action.cwd or self.project_root


class Adapter(ABC):
    """Abstract base class for all adapters.

    To create a new adapter:
        1. Subclass Adapter
        2. Implement name, is_available, validate, execute
        3. Register it in the AdapterRegistry
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The adapter identifier (e.g. 'shell')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the adapter can run at all on this host. Never raises."""

    @abstractmethod
    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        """Check the action before running it.

        Returns:
            (is_valid, error_message). error_message is empty if valid.
        """

    @abstractmethod
    def execute(self, context: ExecutionContext) -> Receipt:
        """Run the action and return a receipt. MUST NOT raise."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
