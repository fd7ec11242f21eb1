"""
Action and Receipt models — the tool invocation contract.

A build step never calls a tool directly: it describes the invocation
as an Action and hands it to the adapter registry, which answers with a
Receipt. Receipts never raise; the step decides which error from the
build taxonomy a failed receipt turns into.

Steps that do their work in-process (placement, restore) also report
through a Receipt so the task graph sees one uniform result type.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Action(BaseModel):
    """An external tool invocation requested by a build step."""

    id: str                         # task id, e.g. "compile:libraw:udp.c"
    adapter: str = "shell"
    argv: list[str] = Field(default_factory=list)
    cwd: str | None = None
    env: dict[str, str] = Field(default_factory=dict)   # overrides on top of os.environ
    timeout: int = 600

    @property
    def command_line(self) -> str:
        return " ".join(self.argv)


class Receipt(BaseModel):
    """Outcome of one step or tool invocation.

    status:
        ok       the step did work (compiled, archived, copied, ...)
        skipped  the artifact was already up to date
        failed   the tool failed; stdout/stderr hold its diagnostics
    """

    adapter: str
    action_id: str
    status: Literal["ok", "skipped", "failed"] = "ok"

    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    output: str = ""                # human-readable summary line
    error: str | None = None
    return_code: int | None = None
    stdout: str = ""
    stderr: str = ""

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def skipped(self) -> bool:
        return self.status == "skipped"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @property
    def diagnostic(self) -> str:
        """The tool's own output, as it should be shown to the user."""
        parts = [p for p in (self.stderr, self.stdout) if p]
        if not parts and self.error:
            parts.append(self.error)
        return "\n".join(parts)

    @classmethod
    def success(cls, adapter: str, action_id: str, output: str = "", **kwargs: Any) -> Receipt:
        return cls(adapter=adapter, action_id=action_id, status="ok", output=output, **kwargs)

    @classmethod
    def failure(cls, adapter: str, action_id: str, error: str, **kwargs: Any) -> Receipt:
        return cls(adapter=adapter, action_id=action_id, status="failed", error=error, **kwargs)

    @classmethod
    def skip(cls, adapter: str, action_id: str, reason: str = "", **kwargs: Any) -> Receipt:
        return cls(adapter=adapter, action_id=action_id, status="skipped", output=reason, **kwargs)
