"""
Archiver step — bundle a module's objects into one static library.

The library is always rebuilt from scratch into a fresh temp path and
renamed over the old one: appending to an existing archive would keep
members whose sources have since been deleted, and writing in place
would expose a truncated archive if the run is interrupted.
"""

from __future__ import annotations

import hashlib
import logging
import os
from pathlib import Path

from nativeforge.core.context import BuildContext, ModulePaths
from nativeforge.core.errors import MissingSource, ToolchainFailure
from nativeforge.core.models.action import Action, Receipt
from nativeforge.core.services.fsutil import is_newer, sha256_file, temp_sibling

logger = logging.getLogger(__name__)

STEP_TAG = "ar"


def archive_task_id(module: ModulePaths) -> str:
    return f"archive:{module.name}"


def archive_command(ctx: BuildContext, output: Path, objects: list[Path]) -> list[str]:
    tc = ctx.project.toolchain
    return [*tc.ar, tc.arflags, ctx.rel(output), *(ctx.rel(o) for o in objects)]


def objects_fingerprint(objects: list[Path]) -> str:
    h = hashlib.sha256()
    for obj in objects:
        h.update(obj.name.encode("utf-8"))
        h.update(b"\0")
        h.update(sha256_file(obj).encode("ascii"))
        h.update(b"\n")
    return h.hexdigest()


def member_names(objects: list[Path]) -> list[str]:
    return sorted(obj.name for obj in objects)


def library_is_stale(ctx: BuildContext, module: ModulePaths, objects: list[Path]) -> bool:
    """A library is stale when missing, older than an object, or built from
    a different object set than the current one (a source was removed or added).
    """
    if not module.library.is_file():
        return True
    if ctx.state.library_members(ctx.rel(module.library)) != member_names(objects):
        return True
    if any(is_newer(obj, module.library) for obj in objects):
        return True
    if ctx.hash_staleness:
        recorded = ctx.state.fingerprint(ctx.rel(module.library))
        return recorded != objects_fingerprint(objects)
    return False


def build_library(ctx: BuildContext, module: ModulePaths) -> Receipt:
    """Archive the module's current object set if the library is stale.

    Raises:
        MissingSource: an expected object is absent (its compile never ran).
        ToolchainFailure: the archiver exited non-zero or wrote nothing.
    """
    task_id = archive_task_id(module)
    objects = module.objects()

    missing = [ctx.rel(o) for o in objects if not o.is_file()]
    if missing:
        raise MissingSource(
            f"Object artifacts missing for {module.name}: {', '.join(missing)}",
            step=task_id,
        )

    if not library_is_stale(ctx, module, objects):
        return Receipt.skip(
            adapter=STEP_TAG,
            action_id=task_id,
            reason=f"{ctx.rel(module.library)} is up to date",
        )

    tmp = temp_sibling(module.library, "a")
    action = Action(
        id=task_id,
        argv=archive_command(ctx, tmp, objects),
        cwd=str(ctx.root),
        timeout=ctx.project.toolchain.timeout,
    )
    receipt = ctx.registry.execute_action(action, project_root=str(ctx.root))

    if receipt.failed or not tmp.is_file():
        tmp.unlink(missing_ok=True)
        raise ToolchainFailure(
            f"Archiving {ctx.rel(module.library)} failed",
            step=task_id,
            diagnostic=receipt.diagnostic,
        )

    os.replace(tmp, module.library)
    ctx.state.record_library_members(ctx.rel(module.library), member_names(objects))
    if ctx.hash_staleness:
        ctx.state.record_fingerprint(ctx.rel(module.library), objects_fingerprint(objects))

    names = " ".join(ctx.rel(o) for o in objects)
    receipt.adapter = STEP_TAG
    receipt.output = f"bundling [ {names} ] into {ctx.rel(module.library)}"
    receipt.metadata["members"] = len(objects)
    return receipt
