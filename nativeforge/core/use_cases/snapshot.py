"""
Snapshot use cases — capture-snapshot (online) and restore-snapshot (offline).
"""

from __future__ import annotations

from functools import partial
from pathlib import Path

from nativeforge.adapters.registry import AdapterRegistry
from nativeforge.core.engine.executor import plan_capture, plan_restore
from nativeforge.core.engine.graph import ProgressCallback
from nativeforge.core.use_cases.build import BuildResult, run_pipeline


def run_capture(
    config_path: Path | None = None,
    mode: str | None = None,
    registry: AdapterRegistry | None = None,
    on_progress: ProgressCallback | None = None,
) -> BuildResult:
    """Vendor every dependency and pack it into the portable archive."""
    return run_pipeline(
        "capture-snapshot",
        plan_capture,
        config_path=config_path,
        mode=mode,
        registry=registry,
        on_progress=on_progress,
    )


def run_restore(
    config_path: Path | None = None,
    force: bool = False,
    registry: AdapterRegistry | None = None,
    on_progress: ProgressCallback | None = None,
) -> BuildResult:
    """Unpack the portable archive. Always offline."""
    return run_pipeline(
        "restore-snapshot",
        partial(plan_restore, force=force),
        config_path=config_path,
        mode="offline",
        registry=registry,
        on_progress=on_progress,
    )
