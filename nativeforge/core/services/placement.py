"""
Artifact placement step — hand the library to the downstream linker.

The downstream tool knows nothing about C; it finds the library purely
because it sits in the directory its linker already searches
(``target/debug/deps`` for Cargo). This step is the only writer of
that file.
"""

from __future__ import annotations

import filecmp
import logging

from nativeforge.core.context import BuildContext, ModulePaths
from nativeforge.core.errors import MissingSource
from nativeforge.core.models.action import Receipt
from nativeforge.core.services.fsutil import atomic_copy, is_newer

logger = logging.getLogger(__name__)

STEP_TAG = "cp"


def place_task_id(module: ModulePaths) -> str:
    return f"place:{module.name}"


def placement_is_current(module: ModulePaths) -> bool:
    placed = module.placed_library
    if not placed.is_file():
        return False
    if is_newer(module.library, placed):
        return False
    return filecmp.cmp(module.library, placed, shallow=False)


def place_library(ctx: BuildContext, module: ModulePaths) -> Receipt:
    """Copy the module's library into the search directory."""
    task_id = place_task_id(module)

    if not module.library.is_file():
        raise MissingSource(
            f"Static library not built: {ctx.rel(module.library)}",
            step=task_id,
        )

    if placement_is_current(module):
        return Receipt.skip(
            adapter=STEP_TAG,
            action_id=task_id,
            reason=f"{ctx.rel(module.placed_library)} is up to date",
        )

    atomic_copy(module.library, module.placed_library)
    logger.debug("Placed %s → %s", module.library, module.placed_library)

    return Receipt.success(
        adapter=STEP_TAG,
        action_id=task_id,
        output=(
            f"copying {module.library.name} into {ctx.rel(module.placed_library.parent)}"
        ),
    )
