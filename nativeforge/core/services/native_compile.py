"""
Native compiler step — one object file per C source, incrementally.

Staleness policy:
    mtime (default)  an object is rebuilt when it is missing or its source
                     was modified after it, exactly like make. Header
                     changes are not tracked.
    hash             an object is rebuilt when it is missing or the
                     fingerprint of (source bytes, compiler, flags) differs
                     from the one recorded when it was last built.

The compiler writes to a temp path that is renamed over the object only
after a zero exit, so a failed or interrupted compile never leaves a
truncated object with a fresh timestamp.
"""

from __future__ import annotations

import hashlib
import logging
import os
from pathlib import Path

from nativeforge.core.context import BuildContext, ModulePaths
from nativeforge.core.errors import MissingSource, ToolchainFailure
from nativeforge.core.models.action import Action, Receipt
from nativeforge.core.services.fsutil import is_newer, temp_sibling

logger = logging.getLogger(__name__)

STEP_TAG = "gcc"


def compile_task_id(module: ModulePaths, source: Path) -> str:
    return f"compile:{module.name}:{source.name}"


def collect_sources(ctx: BuildContext, module: ModulePaths) -> list[Path]:
    """The module's sources; a module without any is a MissingSource."""
    if not module.src_dir.is_dir():
        raise MissingSource(
            f"Source directory not found for module '{module.name}': {ctx.rel(module.src_dir)}",
            step=f"compile:{module.name}",
        )
    sources = module.sources()
    if not sources:
        raise MissingSource(
            f"No sources matching '{module.source_glob}' in {ctx.rel(module.src_dir)}",
            step=f"compile:{module.name}",
        )
    return sources


def compile_command(ctx: BuildContext, module: ModulePaths, source: Path, output: Path) -> list[str]:
    tc = ctx.project.toolchain
    return [
        *tc.cc,
        "-c", ctx.rel(source),
        "-o", ctx.rel(output),
        *tc.cflags,
        f"-I{ctx.rel(module.include_dir)}",
    ]


def source_fingerprint(ctx: BuildContext, module: ModulePaths, source: Path) -> str:
    tc = ctx.project.toolchain
    h = hashlib.sha256()
    h.update(source.read_bytes())
    h.update(b"\0")
    h.update("\0".join([*tc.cc, *tc.cflags, ctx.rel(module.include_dir)]).encode("utf-8"))
    return h.hexdigest()


def fingerprint_key(ctx: BuildContext, artifact: Path) -> str:
    return ctx.rel(artifact)


def object_is_stale(ctx: BuildContext, module: ModulePaths, source: Path) -> bool:
    obj = module.object_for(source)
    if not obj.is_file():
        return True
    if ctx.hash_staleness:
        recorded = ctx.state.fingerprint(fingerprint_key(ctx, obj))
        return recorded != source_fingerprint(ctx, module, source)
    return is_newer(source, obj)


def compile_source(ctx: BuildContext, module: ModulePaths, source: Path) -> Receipt:
    """Compile one source if its object is stale.

    Raises:
        MissingSource: the source vanished after planning.
        ToolchainFailure: the compiler exited non-zero or wrote nothing.
    """
    task_id = compile_task_id(module, source)
    obj = module.object_for(source)

    if not source.is_file():
        raise MissingSource(f"Source file not found: {ctx.rel(source)}", step=task_id)

    if not object_is_stale(ctx, module, source):
        return Receipt.skip(
            adapter=STEP_TAG,
            action_id=task_id,
            reason=f"{ctx.rel(obj)} is up to date",
        )

    module.build_dir.mkdir(parents=True, exist_ok=True)
    tmp = temp_sibling(obj, "o")
    action = Action(
        id=task_id,
        argv=compile_command(ctx, module, source, tmp),
        cwd=str(ctx.root),
        timeout=ctx.project.toolchain.timeout,
    )
    logger.debug("Compiling %s", ctx.rel(source))
    receipt = ctx.registry.execute_action(action, project_root=str(ctx.root))

    if receipt.failed:
        tmp.unlink(missing_ok=True)
        raise ToolchainFailure(
            f"Compiling {ctx.rel(source)} failed",
            step=task_id,
            diagnostic=receipt.diagnostic,
        )
    if not tmp.is_file():
        raise ToolchainFailure(
            f"Compiler exited successfully but wrote no object for {ctx.rel(source)}",
            step=task_id,
            diagnostic=receipt.diagnostic,
        )

    os.replace(tmp, obj)
    if ctx.hash_staleness:
        ctx.state.record_fingerprint(
            fingerprint_key(ctx, obj), source_fingerprint(ctx, module, source)
        )

    receipt.adapter = STEP_TAG
    receipt.output = f"compiling {ctx.rel(source):<21} to {ctx.rel(obj)}"
    return receipt
