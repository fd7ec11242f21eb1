"""
Filesystem helpers shared by the build steps.

Every artifact this tool writes (objects, libraries, placed copies,
archives, state) goes through a temp sibling + ``os.replace`` so that
readers only ever see the previous complete file or the new complete
file.
"""

from __future__ import annotations

import hashlib
import logging
import os
import shutil
import uuid
from pathlib import Path

logger = logging.getLogger(__name__)

_CHUNK = 1024 * 1024


def temp_sibling(path: Path, tag: str = "tmp") -> Path:
    """A not-yet-existing path in the same directory as ``path``.

    Same directory means same filesystem, so the final rename is atomic.
    The file is not created: some tools (ar) refuse an empty existing file.
    """
    return path.with_name(f".{path.name}.{os.getpid()}.{uuid.uuid4().hex[:8]}.{tag}")


def atomic_write_bytes(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = temp_sibling(path)
    try:
        tmp.write_bytes(data)
        os.replace(tmp, path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


def atomic_copy(src: Path, dst: Path) -> None:
    """Copy ``src`` to ``dst`` through a temp file.

    Content and permission bits are copied; the timestamp is the copy's
    own, so the destination is never older than its source.
    """
    dst.parent.mkdir(parents=True, exist_ok=True)
    tmp = temp_sibling(dst)
    try:
        shutil.copyfile(src, tmp)
        shutil.copymode(src, tmp)
        os.replace(tmp, dst)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


def sha256_file(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK), b""):
            h.update(chunk)
    return h.hexdigest()


def mtime_ns(path: Path) -> int | None:
    try:
        return path.stat().st_mtime_ns
    except FileNotFoundError:
        return None


def is_newer(candidate: Path, reference: Path) -> bool:
    """True if ``candidate`` was modified after ``reference`` (make semantics)."""
    c, r = mtime_ns(candidate), mtime_ns(reference)
    if c is None or r is None:
        return False
    return c > r


def remove_path(path: Path) -> bool:
    """Delete a file, symlink or directory tree. Returns False if absent."""
    if path.is_symlink() or path.is_file():
        path.unlink()
        return True
    if path.is_dir():
        shutil.rmtree(path)
        return True
    return False


def remove_if_empty(directory: Path) -> bool:
    try:
        directory.rmdir()
        return True
    except OSError:
        return False


def display_path(path: Path, root: Path) -> str:
    """Project-relative POSIX path for messages; absolute if outside root."""
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return str(path)
