"""
Reset use cases — clean and deepclean.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from nativeforge.core.config.loader import ConfigError, resolve_project
from nativeforge.core.context import BuildContext
from nativeforge.core.engine.executor import (
    ExecutionReport,
    generate_operation_id,
    write_audit_entries,
)
from nativeforge.core.models.mode import BuildMode
from nativeforge.core.persistence.audit import AuditWriter
from nativeforge.core.services import reset

logger = logging.getLogger(__name__)


@dataclass
class ResetResult:
    command: str = "clean"
    project_root: Path | None = None
    removed: list[str] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict:
        if self.error:
            return {"command": self.command, "error": self.error}
        return {
            "command": self.command,
            "project_root": str(self.project_root),
            "removed": self.removed,
        }


def _context(config_path: Path | None, result: ResetResult) -> BuildContext | None:
    try:
        project, root, _ = resolve_project(config_path)
    except ConfigError as e:
        result.error = str(e)
        return None
    ctx = BuildContext.create(project, root, BuildMode.from_env())
    result.project_root = ctx.root
    return ctx


def run_clean(config_path: Path | None = None) -> ResetResult:
    """Remove build outputs; sources and the snapshot are kept."""
    result = ResetResult(command="clean")
    ctx = _context(config_path, result)
    if ctx is None:
        return result

    result.removed = reset.clean(ctx)
    write_audit_entries(
        ExecutionReport(operation_id=generate_operation_id(), command="clean", mode=ctx.mode),
        AuditWriter(ctx.audit_path),
        context={"removed": result.removed},
    )
    return result


def run_deepclean(config_path: Path | None = None) -> ResetResult:
    """Remove everything but sources.

    The ledger lives in the state directory that deepclean deletes, so
    no audit entry is written for it.
    """
    result = ResetResult(command="deepclean")
    ctx = _context(config_path, result)
    if ctx is None:
        return result

    result.removed = reset.deepclean(ctx)
    logger.info("deepclean removed %d path(s)", len(result.removed))
    return result
