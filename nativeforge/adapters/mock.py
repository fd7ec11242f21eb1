"""
Mock adapter — test double that records invocations without running them.

Configurable per action id to fail, or to return a custom receipt
(e.g. a vendor command whose stdout is a config fragment).
"""

from __future__ import annotations

import threading

from nativeforge.adapters.base import Adapter, ExecutionContext
from nativeforge.core.models.action import Receipt


class MockAdapter(Adapter):
    """Records every action; succeeds unless told otherwise."""

    def __init__(
        self,
        adapter_name: str = "shell",
        available: bool = True,
        default_output: str = "",
    ):
        self._name = adapter_name
        self._available = available
        self._default_output = default_output
        self._responses: dict[str, Receipt] = {}
        self._call_log: list[ExecutionContext] = []
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[ExecutionContext]:
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    @property
    def action_ids(self) -> list[str]:
        return [c.action.id for c in self._call_log]

    def is_available(self) -> bool:
        return self._available

    def set_response(self, action_id: str, receipt: Receipt) -> None:
        self._responses[action_id] = receipt

    def set_failure(self, action_id: str, error: str = "Mock failure", stderr: str = "") -> None:
        self._responses[action_id] = Receipt.failure(
            adapter=self._name,
            action_id=action_id,
            error=error,
            return_code=1,
            stderr=stderr,
        )

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        # compile actions arrive from several worker threads
        with self._lock:
            self._call_log.append(context)

        if context.action.id in self._responses:
            return self._responses[context.action.id]

        return Receipt.success(
            adapter=self._name,
            action_id=context.action.id,
            output=self._default_output,
            return_code=0,
            metadata={"mock": True},
        )

    def reset(self) -> None:
        self._call_log.clear()
        self._responses.clear()
