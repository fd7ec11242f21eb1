"""
Downstream build — run the managed-language build tool and collect its binary.

Online:  the configuration override is removed first (it would redirect
         resolution to a vendor directory that does not exist), then the
         tool resolves live.
Offline: the tool runs with its own frozen/offline flags and the offline
         environment; the configuration override written by restore must
         be present. A refusal to update the lock is ResolutionDrift.
"""

from __future__ import annotations

import logging

from nativeforge.core.context import BuildContext
from nativeforge.core.errors import (
    BuildError,
    NetworkUnavailable,
    ResolutionDrift,
    SnapshotCorrupt,
    ToolchainFailure,
)
from nativeforge.core.models.action import Action, Receipt
from nativeforge.core.models.mode import BuildMode
from nativeforge.core.services.fsutil import atomic_copy, remove_path
from nativeforge.core.services.network import looks_like_network_error

logger = logging.getLogger(__name__)

STEP_TAG = "cargo"
DOWNSTREAM_TASK_ID = "downstream:build"

# Substrings in the tool's stderr meaning "the lock would have to change"
LOCK_DRIFT_MARKERS = (
    "needs to be updated but --frozen was passed",
    "needs to be updated but --locked was passed",
    "lock file needs to be updated",
)


def looks_like_lock_drift(diagnostic: str) -> bool:
    text = diagnostic.lower()
    return any(marker in text for marker in LOCK_DRIFT_MARKERS)


def classify_failure(ctx: BuildContext, step: str, receipt: Receipt, summary: str) -> BuildError:
    """Map a failed downstream receipt onto the build error taxonomy."""
    diagnostic = receipt.diagnostic
    if ctx.mode.frozen and looks_like_lock_drift(diagnostic):
        return ResolutionDrift(
            f"{summary}: the resolution lock would need to change in a frozen build",
            step=step,
            diagnostic=diagnostic,
        )
    if ctx.mode is BuildMode.ONLINE and looks_like_network_error(diagnostic):
        return NetworkUnavailable(
            f"{summary}: package registry unreachable",
            step=step,
            diagnostic=diagnostic,
        )
    return ToolchainFailure(summary, step=step, diagnostic=diagnostic)


def remove_config_override(ctx: BuildContext) -> bool:
    """Drop the offline redirect so the tool resolves against the registry."""
    removed = remove_path(ctx.config_override)
    if removed:
        logger.info("Removed offline configuration override %s", ctx.rel(ctx.config_override))
    return removed


def build_action(ctx: BuildContext) -> Action:
    ds = ctx.project.downstream
    if ctx.mode is BuildMode.ONLINE:
        argv, env = list(ds.build_online), {}
    else:
        argv, env = list(ds.build_offline), dict(ds.offline_env)
    return Action(
        id=DOWNSTREAM_TASK_ID,
        argv=argv,
        cwd=str(ctx.root),
        env=env,
        timeout=ds.timeout,
    )


def run_downstream_build(ctx: BuildContext) -> Receipt:
    """Invoke the downstream build and copy its binary to the project root."""
    if ctx.mode is BuildMode.ONLINE:
        remove_config_override(ctx)
    elif not ctx.config_override.is_file():
        raise SnapshotCorrupt(
            f"Configuration override {ctx.rel(ctx.config_override)} is missing; "
            "the dependency snapshot was not restored",
            step=DOWNSTREAM_TASK_ID,
        )

    action = build_action(ctx)
    logger.debug("Downstream build: %s (mode=%s)", action.command_line, ctx.mode.value)
    receipt = ctx.registry.execute_action(action, project_root=str(ctx.root))
    if receipt.failed:
        raise classify_failure(ctx, DOWNSTREAM_TASK_ID, receipt, f"{action.command_line} failed")

    if ctx.binary_path is not None and ctx.binary_dest is not None:
        if not ctx.binary_path.is_file():
            raise ToolchainFailure(
                f"Build succeeded but {ctx.rel(ctx.binary_path)} was not produced",
                step=DOWNSTREAM_TASK_ID,
                diagnostic=receipt.diagnostic,
            )
        if ctx.binary_dest.is_dir():
            raise ToolchainFailure(
                f"Cannot copy {ctx.rel(ctx.binary_path)}: {ctx.rel(ctx.binary_dest)} is a directory",
                step=DOWNSTREAM_TASK_ID,
            )
        atomic_copy(ctx.binary_path, ctx.binary_dest)
        receipt.metadata["binary"] = ctx.rel(ctx.binary_dest)

    receipt.adapter = STEP_TAG
    receipt.output = " ".join(action.argv[1:]) or action.command_line
    return receipt
