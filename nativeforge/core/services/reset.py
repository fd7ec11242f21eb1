"""
Reset operations — clean and deepclean.

clean       removes build outputs: the downstream output directory, each
            module's build directory, the copied binary and the state file.
deepclean   clean, plus everything snapshot-related: the vendor directory,
            the portable archive, the configuration override and the
            resolution lock. After a deepclean only sources remain and the
            next build must be online.

Both are idempotent: removing something already absent is not an error.
"""

from __future__ import annotations

import logging
from pathlib import Path

from nativeforge.core.context import BuildContext
from nativeforge.core.services.fsutil import remove_if_empty, remove_path

logger = logging.getLogger(__name__)


def _remove(ctx: BuildContext, path: Path | None, removed: list[str]) -> None:
    if path is None:
        return
    if remove_path(path):
        logger.info("Removed %s", path)
        removed.append(ctx.rel(path))


def clean(ctx: BuildContext) -> list[str]:
    """Delete build outputs. Returns the project-relative paths removed."""
    removed: list[str] = []
    _remove(ctx, ctx.output_dir, removed)
    for module in ctx.modules:
        _remove(ctx, module.build_dir, removed)
    # only a file here is the copied binary; a directory of that name is source
    if ctx.binary_dest is not None and (ctx.binary_dest.is_file() or ctx.binary_dest.is_symlink()):
        _remove(ctx, ctx.binary_dest, removed)
    _remove(ctx, ctx.state_path, removed)
    return removed


def deepclean(ctx: BuildContext) -> list[str]:
    """clean, then delete the snapshot, its redirect and the lock."""
    removed = clean(ctx)
    _remove(ctx, ctx.vendor_dir, removed)

    _remove(ctx, ctx.archive_path, removed)
    if ctx.archive_path.parent != ctx.root and remove_if_empty(ctx.archive_path.parent):
        removed.append(ctx.rel(ctx.archive_path.parent))

    _remove(ctx, ctx.config_override, removed)
    if ctx.config_override.parent != ctx.root and remove_if_empty(ctx.config_override.parent):
        removed.append(ctx.rel(ctx.config_override.parent))

    _remove(ctx, ctx.lock_file, removed)
    _remove(ctx, ctx.state_dir, removed)
    return removed
