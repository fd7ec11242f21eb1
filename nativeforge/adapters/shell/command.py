"""
Shell command adapter — runs a tool invocation as an argv list.

This is the only place the orchestrator starts child processes. The
argv is executed directly (no shell), with the caller's environment
plus the action's overrides, and both output streams captured so a
failing step can surface the tool's diagnostic verbatim.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import time
from pathlib import Path

from nativeforge.adapters.base import Adapter, ExecutionContext
from nativeforge.core.models.action import Receipt

logger = logging.getLogger(__name__)


class ShellCommandAdapter(Adapter):
    """Execute tool commands and capture their output."""

    @property
    def name(self) -> str:
        return "shell"

    def is_available(self) -> bool:
        return shutil.which("sh") is not None or os.name == "nt"

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        if not context.action.argv:
            return False, "Missing command (empty argv)"

        cwd = context.working_dir
        if cwd and not Path(cwd).is_dir():
            return False, f"Working directory does not exist: {cwd}"

        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        action = context.action
        cwd = context.working_dir

        env = os.environ.copy()
        env.update(action.env)

        logger.debug("Executing: %s (cwd=%s)", action.command_line, cwd)
        start = time.monotonic()

        try:
            result = subprocess.run(
                action.argv,
                cwd=cwd,
                env=env,
                capture_output=True,
                text=True,
                timeout=action.timeout,
            )
        except subprocess.TimeoutExpired:
            return Receipt.failure(
                adapter=self.name,
                action_id=action.id,
                error=f"Command timed out after {action.timeout}s: {action.command_line}",
                metadata={"argv": action.argv, "timeout": action.timeout},
            )
        except OSError as e:
            # executable missing, not executable, bad cwd, ...
            return Receipt.failure(
                adapter=self.name,
                action_id=action.id,
                error=f"Cannot run {action.argv[0]!r}: {e}",
                metadata={"argv": action.argv},
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        stdout = result.stdout.strip()
        stderr = result.stderr.strip()

        if result.returncode == 0:
            return Receipt.success(
                adapter=self.name,
                action_id=action.id,
                output=stdout,
                duration_ms=elapsed_ms,
                return_code=0,
                stdout=stdout,
                stderr=stderr,
                metadata={"argv": action.argv},
            )

        return Receipt.failure(
            adapter=self.name,
            action_id=action.id,
            error=f"Command exited with code {result.returncode}: {action.command_line}",
            duration_ms=elapsed_ms,
            return_code=result.returncode,
            stdout=stdout,
            stderr=stderr,
            metadata={"argv": action.argv},
        )
