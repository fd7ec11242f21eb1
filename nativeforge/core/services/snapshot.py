"""
Dependency snapshot — capture (online) and restore (offline).

Capture resolves the full dependency graph through the downstream
tool's vendor command, then packs three things into one gzip tar:

    snapshot_manifest.json        first member; digests of every vendored file
    cargo_deps/...                the vendor tree
    .cargo/config.toml            the redirect printed by the vendor command
    Cargo.lock                    the resolution lock, when present

The uncompressed vendor directory is transient and removed afterwards;
the archive is the durable artifact.

Restore verifies every file against the manifest while extracting into
a staging directory, then swaps the staging directory into place, so
the vendor directory is either the previous one or an exact copy of the
captured tree. There is no fallback to live resolution.
"""

from __future__ import annotations

import hashlib
import io
import json
import logging
import os
import shutil
import tarfile
import tempfile
import time
import zlib
from collections.abc import Iterator
from pathlib import Path, PurePosixPath

from pydantic import ValidationError

from nativeforge.core.context import BuildContext
from nativeforge.core.errors import (
    ModeError,
    NetworkUnavailable,
    ResolutionDrift,
    SnapshotCorrupt,
    ToolchainFailure,
)
from nativeforge.core.models.action import Action, Receipt
from nativeforge.core.models.mode import BuildMode
from nativeforge.core.models.snapshot import MANIFEST_NAME, SnapshotFile, SnapshotManifest
from nativeforge.core.services.downstream import classify_failure, remove_config_override
from nativeforge.core.services.fsutil import (
    atomic_write_bytes,
    is_newer,
    remove_path,
    sha256_file,
    temp_sibling,
)
from nativeforge.core.services.network import check_registry_reachable

logger = logging.getLogger(__name__)

STEP_TAG = "tar"
CAPTURE_TASK_ID = "snapshot:capture"
RESTORE_TASK_ID = "snapshot:restore"

# Errors reading the archive that mean "this is not a readable gzip tar"
_ARCHIVE_ERRORS = (tarfile.TarError, EOFError, OSError, zlib.error)


# ═══════════════════════════════════════════════════════════════════
#  Capture
# ═══════════════════════════════════════════════════════════════════


def _member_name(ctx: BuildContext, path: Path) -> str:
    """Archive member name: project-relative, or the bare name if outside."""
    try:
        return path.relative_to(ctx.root).as_posix()
    except ValueError:
        return path.name


def vendor_command(ctx: BuildContext) -> list[str]:
    vendor = _member_name(ctx, ctx.vendor_dir)
    return [arg.replace("{vendor_dir}", vendor) for arg in ctx.project.downstream.vendor]


def scan_vendor_tree(vendor_dir: Path) -> tuple[dict[str, Path], list[str]]:
    """Every file and directory under ``vendor_dir``, keyed by POSIX relpath."""
    files: dict[str, Path] = {}
    dirs: list[str] = []
    for dirpath, dirnames, filenames in os.walk(vendor_dir):
        dirnames.sort()
        base = Path(dirpath)
        for d in dirnames:
            path = base / d
            if path.is_symlink():
                logger.warning("Skipping symlinked directory in vendor tree: %s", path)
                continue
            dirs.append(path.relative_to(vendor_dir).as_posix())
        for name in sorted(filenames):
            path = base / name
            if path.is_file():  # follows file symlinks; dangling links are dropped
                files[path.relative_to(vendor_dir).as_posix()] = path
    return files, dirs


def build_manifest(
    ctx: BuildContext,
    files: dict[str, Path],
    dirs: list[str],
) -> SnapshotManifest:
    entries = {
        rel: SnapshotFile(
            sha256=sha256_file(path),
            size=path.stat().st_size,
            mode=path.stat().st_mode & 0o777,
        )
        for rel, path in files.items()
    }
    lock_present = ctx.lock_file.is_file()
    return SnapshotManifest(
        vendor_dir=_member_name(ctx, ctx.vendor_dir),
        config_override=_member_name(ctx, ctx.config_override),
        lock_file=_member_name(ctx, ctx.lock_file) if lock_present else None,
        lock_sha256=sha256_file(ctx.lock_file) if lock_present else None,
        files=entries,
        dirs=dirs,
    )


def _add_bytes(tar: tarfile.TarFile, name: str, data: bytes, mode: int = 0o644) -> None:
    info = tarfile.TarInfo(name=name)
    info.size = len(data)
    info.mode = mode
    info.mtime = int(time.time())
    tar.addfile(info, io.BytesIO(data))


def write_archive(
    ctx: BuildContext,
    manifest: SnapshotManifest,
    files: dict[str, Path],
    override: bytes,
) -> None:
    """Write the portable archive through a temp file + rename."""
    archive = ctx.archive_path
    archive.parent.mkdir(parents=True, exist_ok=True)
    tmp = temp_sibling(archive, "tar.gz")
    prefix = manifest.vendor_dir

    try:
        with tarfile.open(tmp, "w:gz") as tar:
            _add_bytes(tar, MANIFEST_NAME, manifest.model_dump_json(indent=2).encode("utf-8"))

            root_info = tarfile.TarInfo(name=prefix)
            root_info.type = tarfile.DIRTYPE
            root_info.mode = 0o755
            tar.addfile(root_info)
            for rel in manifest.dirs:
                info = tarfile.TarInfo(name=f"{prefix}/{rel}")
                info.type = tarfile.DIRTYPE
                info.mode = 0o755
                tar.addfile(info)

            for rel, path in files.items():
                entry = manifest.files[rel]
                info = tarfile.TarInfo(name=f"{prefix}/{rel}")
                info.size = entry.size
                info.mode = entry.mode
                info.mtime = int(path.stat().st_mtime)
                with path.open("rb") as f:
                    tar.addfile(info, f)

            _add_bytes(tar, manifest.config_override, override)
            if manifest.lock_file:
                _add_bytes(tar, manifest.lock_file, ctx.lock_file.read_bytes())

        os.replace(tmp, archive)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


def capture_snapshot(ctx: BuildContext) -> Receipt:
    """Resolve, vendor and pack all dependencies into the portable archive.

    Raises:
        ModeError: not running in online mode.
        NetworkUnavailable: the registry cannot be reached.
        ToolchainFailure: the vendor command failed for another reason.
    """
    if ctx.mode is not BuildMode.ONLINE:
        raise ModeError(
            "Capturing a dependency snapshot requires online mode (set ONLINE=1)",
            step=CAPTURE_TASK_ID,
        )

    settings = ctx.project.snapshot
    if settings.registry_url:
        probe = check_registry_reachable(settings.registry_url, timeout=settings.probe_timeout)
        if not probe["reachable"]:
            raise NetworkUnavailable(
                f"Package registry {settings.registry_url} is unreachable",
                step=CAPTURE_TASK_ID,
                diagnostic=probe.get("error", ""),
            )

    remove_config_override(ctx)
    remove_path(ctx.vendor_dir)

    action = Action(
        id=CAPTURE_TASK_ID,
        argv=vendor_command(ctx),
        cwd=str(ctx.root),
        timeout=ctx.project.downstream.timeout,
    )
    receipt = ctx.registry.execute_action(action, project_root=str(ctx.root))

    try:
        if receipt.failed:
            raise classify_failure(
                ctx, CAPTURE_TASK_ID, receipt, f"{action.command_line} failed"
            )
        if not ctx.vendor_dir.is_dir():
            raise ToolchainFailure(
                f"{action.command_line} produced no {ctx.rel(ctx.vendor_dir)} directory",
                step=CAPTURE_TASK_ID,
                diagnostic=receipt.diagnostic,
            )
        override = receipt.stdout.strip()
        if not override:
            raise ToolchainFailure(
                f"{action.command_line} printed no configuration override",
                step=CAPTURE_TASK_ID,
                diagnostic=receipt.diagnostic,
            )

        files, dirs = scan_vendor_tree(ctx.vendor_dir)
        manifest = build_manifest(ctx, files, dirs)
        write_archive(ctx, manifest, files, (override + "\n").encode("utf-8"))
    finally:
        remove_path(ctx.vendor_dir)

    logger.info(
        "Captured %d files (%d bytes) into %s",
        len(manifest.files),
        manifest.total_bytes,
        ctx.archive_path,
    )
    return Receipt.success(
        adapter=STEP_TAG,
        action_id=CAPTURE_TASK_ID,
        output=f"packed {len(manifest.files)} files from {manifest.vendor_dir} into {ctx.rel(ctx.archive_path)}",
        stdout=receipt.stdout,
        stderr=receipt.stderr,
        metadata={
            "files": len(manifest.files),
            "bytes": manifest.total_bytes,
            "archive": ctx.rel(ctx.archive_path),
            "lock_sha256": manifest.lock_sha256,
        },
    )


# ═══════════════════════════════════════════════════════════════════
#  Restore
# ═══════════════════════════════════════════════════════════════════


def read_manifest(archive: Path) -> SnapshotManifest:
    """Read the manifest without unpacking the vendor tree.

    Raises:
        SnapshotCorrupt: archive missing, unreadable, or manifest invalid.
    """
    if not archive.is_file():
        raise SnapshotCorrupt(
            f"Portable archive not found: {archive}",
            step=RESTORE_TASK_ID,
        )
    try:
        with tarfile.open(archive, "r:gz") as tar:
            first = tar.next()
            if first is None or first.name != MANIFEST_NAME or not first.isfile():
                raise SnapshotCorrupt(
                    f"{archive} has no {MANIFEST_NAME} as its first member",
                    step=RESTORE_TASK_ID,
                )
            fobj = tar.extractfile(first)
            raw = fobj.read() if fobj else b""
    except _ARCHIVE_ERRORS as e:
        raise SnapshotCorrupt(
            f"Cannot read portable archive {archive}", step=RESTORE_TASK_ID, diagnostic=str(e)
        ) from e

    try:
        return SnapshotManifest.model_validate(json.loads(raw))
    except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as e:
        raise SnapshotCorrupt(
            f"Invalid snapshot manifest in {archive}", step=RESTORE_TASK_ID, diagnostic=str(e)
        ) from e


def check_lock_drift(ctx: BuildContext, manifest: SnapshotManifest) -> None:
    """An on-disk lock that differs from the captured one is drift."""
    if manifest.lock_sha256 is None or not ctx.lock_file.is_file():
        return
    current = sha256_file(ctx.lock_file)
    if current != manifest.lock_sha256:
        raise ResolutionDrift(
            f"{ctx.rel(ctx.lock_file)} differs from the lock captured in "
            f"{ctx.rel(ctx.archive_path)} ({manifest.created_at})",
            step=RESTORE_TASK_ID,
            diagnostic=f"captured sha256 {manifest.lock_sha256}\ncurrent  sha256 {current}",
        )


def restore_is_needed(ctx: BuildContext) -> bool:
    """Make-style: the vendor tree is rebuilt when missing or older than the archive."""
    if not ctx.vendor_dir.is_dir() or not ctx.config_override.is_file():
        return True
    return is_newer(ctx.archive_path, ctx.vendor_dir)


def _safe_relpath(rel: str) -> PurePosixPath:
    path = PurePosixPath(rel)
    if path.is_absolute() or any(part in ("..", "") for part in path.parts):
        raise SnapshotCorrupt(f"Unsafe path in archive: {rel!r}", step=RESTORE_TASK_ID)
    return path


def _archive_entries(archive: Path, label: str) -> Iterator[tuple[tarfile.TarInfo, bytes | None]]:
    """Yield each member with its content (None for non-files).

    Only reading the archive is guarded here; errors the caller hits
    while writing what it receives propagate unchanged.
    """
    try:
        with tarfile.open(archive, "r:gz") as tar:
            for member in tar:
                data: bytes | None = None
                if member.isfile():
                    fobj = tar.extractfile(member)
                    data = fobj.read() if fobj else b""
                yield member, data
    except _ARCHIVE_ERRORS as e:
        raise SnapshotCorrupt(
            f"Extracting {label} failed", step=RESTORE_TASK_ID, diagnostic=str(e)
        ) from e


def _extract_verified(
    archive: Path,
    manifest: SnapshotManifest,
    staging: Path,
    label: str,
) -> tuple[bytes, bytes | None]:
    """Unpack the vendor tree into ``staging``, checking every digest.

    Returns:
        (config_override_bytes, lock_bytes_or_None)
    """
    prefix = manifest.vendor_dir
    override: bytes | None = None
    lock: bytes | None = None
    seen: set[str] = set()

    for member, data in _archive_entries(archive, label):
        name = member.name.rstrip("/")
        if name == MANIFEST_NAME:
            continue

        if name == manifest.config_override or name == manifest.lock_file:
            if data is None:
                raise SnapshotCorrupt(f"{name} is not a regular file", step=RESTORE_TASK_ID)
            if name == manifest.config_override:
                override = data
            else:
                lock = data
            continue

        if name == prefix:
            continue
        if not name.startswith(prefix + "/"):
            raise SnapshotCorrupt(f"Unexpected archive member: {name}", step=RESTORE_TASK_ID)

        rel = name[len(prefix) + 1:]
        dest = staging.joinpath(*_safe_relpath(rel).parts)

        if member.isdir():
            dest.mkdir(parents=True, exist_ok=True)
            continue
        if data is None:
            raise SnapshotCorrupt(
                f"Unsupported member type in archive: {name}", step=RESTORE_TASK_ID
            )

        expected = manifest.files.get(rel)
        if expected is None:
            raise SnapshotCorrupt(f"{name} is not listed in the manifest", step=RESTORE_TASK_ID)
        if len(data) != expected.size or hashlib.sha256(data).hexdigest() != expected.sha256:
            raise SnapshotCorrupt(f"Checksum mismatch for {name}", step=RESTORE_TASK_ID)

        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(data)
        os.chmod(dest, expected.mode)
        seen.add(rel)

    missing = sorted(set(manifest.files) - seen)
    if missing:
        raise SnapshotCorrupt(
            f"Archive is missing {len(missing)} file(s) listed in its manifest",
            step=RESTORE_TASK_ID,
            diagnostic="\n".join(missing[:20]),
        )
    for rel in manifest.dirs:
        staging.joinpath(*_safe_relpath(rel).parts).mkdir(parents=True, exist_ok=True)
    if override is None:
        raise SnapshotCorrupt(
            f"Archive has no configuration override ({manifest.config_override})",
            step=RESTORE_TASK_ID,
        )
    return override, lock


def _swap_into_place(staging: Path, target: Path) -> None:
    """Replace ``target`` with ``staging``; the old tree is removed after."""
    old: Path | None = None
    if target.exists():
        old = temp_sibling(target, "old")
        os.replace(target, old)
    os.replace(staging, target)
    if old is not None:
        shutil.rmtree(old, ignore_errors=True)


def restore_snapshot(ctx: BuildContext, force: bool = False) -> Receipt:
    """Materialise the vendor directory and configuration override.

    Raises:
        SnapshotCorrupt: archive missing, truncated or failing verification.
        ResolutionDrift: the on-disk lock differs from the captured one.
    """
    manifest = read_manifest(ctx.archive_path)
    check_lock_drift(ctx, manifest)

    if not force and not restore_is_needed(ctx):
        return Receipt.skip(
            adapter=STEP_TAG,
            action_id=RESTORE_TASK_ID,
            reason=f"{ctx.rel(ctx.vendor_dir)} is up to date",
        )

    ctx.vendor_dir.parent.mkdir(parents=True, exist_ok=True)
    staging = Path(
        tempfile.mkdtemp(prefix=f".{ctx.vendor_dir.name}.restore-", dir=ctx.vendor_dir.parent)
    )
    # mkdtemp creates 0700; the vendor tree is shared with the toolchain
    staging.chmod(0o755)
    try:
        override, lock = _extract_verified(
            ctx.archive_path, manifest, staging, label=ctx.rel(ctx.archive_path)
        )
        _swap_into_place(staging, ctx.vendor_dir)
    finally:
        if staging.exists():
            shutil.rmtree(staging, ignore_errors=True)

    atomic_write_bytes(ctx.config_override, override)
    if lock is not None and not ctx.lock_file.exists():
        atomic_write_bytes(ctx.lock_file, lock)
        logger.info("Restored resolution lock %s", ctx.rel(ctx.lock_file))

    # The staging dir's own mtime predates the files written into it; make the
    # restored tree newer than the archive so the next build sees it as current.
    os.utime(ctx.vendor_dir)

    return Receipt.success(
        adapter=STEP_TAG,
        action_id=RESTORE_TASK_ID,
        output=(
            f"extracting Rust dependencies... "
            f"({ctx.rel(ctx.archive_path)} -> {ctx.rel(ctx.vendor_dir)})"
        ),
        metadata={"files": len(manifest.files), "bytes": manifest.total_bytes},
    )
